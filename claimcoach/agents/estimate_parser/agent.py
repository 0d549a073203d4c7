from langchain_core.prompts import ChatPromptTemplate
from langgraph.graph import StateGraph, END

from claimcoach.llm.factory import get_primary_llm
from claimcoach.agents.state import EstimateParserState
from claimcoach.carrier_estimates.schemas import ParsedEstimate
from claimcoach.agents.estimate_parser.prompts import (
    ESTIMATE_PARSER_SYSTEM_PROMPT,
    ESTIMATE_PARSER_USER_PROMPT,
)

# Keep prompts inside typical context windows; estimates put line items first
MAX_DOCUMENT_CHARS = 60_000


async def extract_line_items_node(state: EstimateParserState):
    structured_llm = get_primary_llm().with_structured_output(ParsedEstimate)

    prompt = ChatPromptTemplate.from_messages([
        ("system", ESTIMATE_PARSER_SYSTEM_PROMPT),
        ("user", ESTIMATE_PARSER_USER_PROMPT),
    ])

    chain = prompt | structured_llm

    try:
        result: ParsedEstimate = await chain.ainvoke(
            {"document_text": state["document_text"][:MAX_DOCUMENT_CHARS]}
        )
    except Exception as e:
        return {"errors": [str(e)]}

    if not result.line_items:
        return {"errors": ["no line items extracted from document"]}
    return {"parsed_estimate": result, "errors": []}


def create_estimate_parser_agent():
    workflow = StateGraph(EstimateParserState)
    workflow.add_node("extract_line_items", extract_line_items_node)
    workflow.set_entry_point("extract_line_items")
    workflow.add_edge("extract_line_items", END)

    return workflow.compile()


# Singleton instance accessor
estimate_parser_agent = create_estimate_parser_agent()
