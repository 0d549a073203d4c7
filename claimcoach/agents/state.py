import operator
from typing import TypedDict, Annotated, Optional, Dict, Any, List

from claimcoach.adjudication.schemas import EstimateComparison, IndustryEstimate
from claimcoach.adjudication.verdict import VerdictAnalysis
from claimcoach.carrier_estimates.schemas import ParsedEstimate


class EstimateParserState(TypedDict):
    document_text: str
    parsed_estimate: Optional[ParsedEstimate]
    errors: Optional[List[str]]


class EstimatorState(TypedDict):
    claim_context: Dict[str, Any]
    industry_estimate: Optional[IndustryEstimate]
    errors: Optional[List[str]]


class AdjudicatorState(TypedDict):
    claim_context: Dict[str, Any]
    industry_estimate: str  # JSON
    carrier_estimate: str  # JSON
    comparison: Optional[EstimateComparison]
    verdict: Optional[VerdictAnalysis]
    messages: Annotated[List[Any], operator.add]
    errors: Annotated[List[str], operator.add]
