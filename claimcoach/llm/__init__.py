from claimcoach.llm.factory import (
    get_primary_llm,
    get_writer_llm,
    clear_llm_cache,
)
