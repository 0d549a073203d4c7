"""Adjudicator: compare the two estimates, then classify the offer.

Graph topology::

    START → compare_estimates → classify_verdict → END
                 └── (errors) ──────────────────→ END
"""

from langgraph.graph import StateGraph, END

from claimcoach.agents.state import AdjudicatorState
from claimcoach.agents.adjudicator.nodes import (
    compare_estimates_node,
    classify_verdict_node,
    check_errors,
)


def create_adjudicator_agent():
    workflow = StateGraph(AdjudicatorState)

    workflow.add_node("compare_estimates", compare_estimates_node)
    workflow.add_node("classify_verdict", classify_verdict_node)

    workflow.set_entry_point("compare_estimates")
    workflow.add_conditional_edges("compare_estimates", check_errors, {
        "continue": "classify_verdict",
        "end": END,
    })
    workflow.add_edge("classify_verdict", END)

    return workflow.compile()


# Singleton instance accessor
adjudicator_agent = create_adjudicator_agent()
