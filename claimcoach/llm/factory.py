from __future__ import annotations

from typing import TYPE_CHECKING

from claimcoach.config import settings

if TYPE_CHECKING:
    from langchain_core.language_models.chat_models import BaseChatModel

# Valid provider identifiers
VALID_PROVIDERS = ("ollama", "openai", "anthropic")

# Module-level cache; cleared when provider settings change
_llm_cache: dict[str, BaseChatModel] = {}


def clear_llm_cache() -> None:
    """Drop all cached LLM instances so they're recreated on next call."""
    _llm_cache.clear()


# ---------------------------------------------------------------------------
# Internal constructors (providers imported lazily)
# ---------------------------------------------------------------------------

def _create_chat_model(
    provider: str,
    *,
    ollama_model: str,
    openai_model: str,
    anthropic_model: str,
    temperature: float,
    json_mode: bool = False,
) -> BaseChatModel:
    if provider == "ollama":
        from langchain_ollama import ChatOllama

        kwargs: dict = dict(
            base_url=settings.OLLAMA_BASE_URL,
            model=ollama_model,
            temperature=temperature,
        )
        if json_mode:
            kwargs["format"] = "json"
        return ChatOllama(**kwargs)

    if provider == "openai":
        from langchain_openai import ChatOpenAI

        if not settings.OPENAI_API_KEY:
            raise ValueError("OPENAI_API_KEY is required when using the openai provider")
        kwargs = dict(
            model=openai_model,
            temperature=temperature,
            api_key=settings.OPENAI_API_KEY,
        )
        if json_mode:
            kwargs["model_kwargs"] = {"response_format": {"type": "json_object"}}
        return ChatOpenAI(**kwargs)

    if provider == "anthropic":
        from langchain_anthropic import ChatAnthropic

        if not settings.ANTHROPIC_API_KEY:
            raise ValueError("ANTHROPIC_API_KEY is required when using the anthropic provider")
        return ChatAnthropic(
            model=anthropic_model,
            temperature=temperature,
            api_key=settings.ANTHROPIC_API_KEY,
        )

    raise ValueError(f"Unknown provider: {provider!r}. Valid: {VALID_PROVIDERS}")


# ---------------------------------------------------------------------------
# Public factory functions
# ---------------------------------------------------------------------------

def get_primary_llm() -> BaseChatModel:
    """Structured-output engine. Used for: estimate parsing, industry estimates, comparison, verdicts."""
    key = "primary"
    if key not in _llm_cache:
        _llm_cache[key] = _create_chat_model(
            settings.LLM_PROVIDER_PRIMARY,
            ollama_model=settings.OLLAMA_MODEL_PRIMARY,
            openai_model=settings.OPENAI_MODEL_PRIMARY,
            anthropic_model=settings.ANTHROPIC_MODEL_PRIMARY,
            temperature=0.1,
            json_mode=True,
        )
    return _llm_cache[key]


def get_writer_llm() -> BaseChatModel:
    """Prose engine. Used for: dispute letters, owner pitches, RCV demand letters."""
    key = "writer"
    if key not in _llm_cache:
        _llm_cache[key] = _create_chat_model(
            settings.LLM_PROVIDER_WRITER,
            ollama_model=settings.OLLAMA_MODEL_WRITER,
            openai_model=settings.OPENAI_MODEL_WRITER,
            anthropic_model=settings.ANTHROPIC_MODEL_WRITER,
            temperature=0.4,
        )
    return _llm_cache[key]
