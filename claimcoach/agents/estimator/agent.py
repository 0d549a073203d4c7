from langchain_core.prompts import ChatPromptTemplate
from langgraph.graph import StateGraph, END

from claimcoach.llm.factory import get_primary_llm
from claimcoach.agents.state import EstimatorState
from claimcoach.adjudication.schemas import IndustryEstimate
from claimcoach.agents.estimator.prompts import ESTIMATOR_SYSTEM_PROMPT, ESTIMATOR_USER_PROMPT


async def price_scope_node(state: EstimatorState):
    structured_llm = get_primary_llm().with_structured_output(IndustryEstimate)

    prompt = ChatPromptTemplate.from_messages([
        ("system", ESTIMATOR_SYSTEM_PROMPT),
        ("user", ESTIMATOR_USER_PROMPT),
    ])

    chain = prompt | structured_llm

    try:
        result: IndustryEstimate = await chain.ainvoke(state["claim_context"])
        return {"industry_estimate": result, "errors": []}
    except Exception as e:
        return {"errors": [str(e)]}


def create_estimator_agent():
    workflow = StateGraph(EstimatorState)
    workflow.add_node("price_scope", price_scope_node)
    workflow.set_entry_point("price_scope")
    workflow.add_edge("price_scope", END)

    return workflow.compile()


# Singleton instance accessor
estimator_agent = create_estimator_agent()
