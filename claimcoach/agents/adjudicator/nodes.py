"""Node functions for the adjudication pipeline.

Each node receives ``AdjudicatorState`` and returns a partial state dict.
Both nodes use ``with_structured_output`` on the primary model.
"""

import logging
from typing import Dict, Any, List

from langchain_core.prompts import ChatPromptTemplate

from claimcoach.llm.factory import get_primary_llm
from claimcoach.adjudication.schemas import EstimateComparison, Discrepancy
from claimcoach.adjudication.verdict import VerdictAnalysis
from claimcoach.agents.adjudicator.prompts import (
    COMPARISON_SYSTEM_PROMPT,
    COMPARISON_USER_PROMPT,
    VERDICT_SYSTEM_PROMPT,
    VERDICT_USER_PROMPT,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Routing helper
# ---------------------------------------------------------------------------

def check_errors(state: Dict[str, Any]) -> str:
    """Return ``'end'`` if errors exist, ``'continue'`` otherwise."""
    if state.get("errors"):
        return "end"
    return "continue"


def format_discrepancies(discrepancies: List[Discrepancy]) -> str:
    if not discrepancies:
        return "(none)"
    lines = []
    for i, d in enumerate(discrepancies, start=1):
        lines.append(
            f"{i}. {d.item}: industry ${d.industry_price:,.2f} vs carrier ${d.carrier_price:,.2f} "
            f"(delta ${d.delta:,.2f}) - {d.justification}"
        )
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Stage 1: compare estimates
# ---------------------------------------------------------------------------

async def compare_estimates_node(state: Dict[str, Any]) -> Dict[str, Any]:
    structured_llm = get_primary_llm().with_structured_output(EstimateComparison)

    prompt = ChatPromptTemplate.from_messages([
        ("system", COMPARISON_SYSTEM_PROMPT),
        ("user", COMPARISON_USER_PROMPT),
    ])
    chain = prompt | structured_llm

    try:
        result: EstimateComparison = await chain.ainvoke({
            "industry_estimate": state["industry_estimate"],
            "carrier_estimate": state["carrier_estimate"],
        })
        logger.info(f"Comparison found {len(result.discrepancies)} discrepancies")
        return {"comparison": result}
    except Exception as e:
        logger.error(f"Estimate comparison failed: {e}")
        return {"errors": [f"comparison: {e}"]}


# ---------------------------------------------------------------------------
# Stage 2: classify verdict
# ---------------------------------------------------------------------------

async def classify_verdict_node(state: Dict[str, Any]) -> Dict[str, Any]:
    structured_llm = get_primary_llm().with_structured_output(VerdictAnalysis)

    prompt = ChatPromptTemplate.from_messages([
        ("system", VERDICT_SYSTEM_PROMPT),
        ("user", VERDICT_USER_PROMPT),
    ])
    chain = prompt | structured_llm

    comparison: EstimateComparison = state["comparison"]
    context = state["claim_context"]
    try:
        result: VerdictAnalysis = await chain.ainvoke({
            "claim_number": context.get("claim_number", ""),
            "loss_type": context.get("loss_type", ""),
            "incident_date": context.get("incident_date", ""),
            "total_contractor": f"${comparison.summary.total_industry:,.2f}",
            "total_carrier": f"${comparison.summary.total_carrier:,.2f}",
            "total_delta": f"${comparison.summary.total_delta:,.2f}",
            "discrepancies": format_discrepancies(comparison.discrepancies),
        })
    except Exception as e:
        logger.error(f"Verdict classification failed: {e}")
        return {"errors": [f"verdict: {e}"]}

    # Totals come from the comparison, not the model's restatement of them
    result = result.model_copy(update={
        "total_contractor_estimate": comparison.summary.total_industry,
        "total_carrier_estimate": comparison.summary.total_carrier,
        "total_delta": comparison.summary.total_delta,
    })
    return {"verdict": result}
