"""Imports every mapped class so metadata and string relationships resolve."""
from claimcoach.claims.models import Claim  # noqa: F401
from claimcoach.activity.models import ClaimActivity  # noqa: F401
from claimcoach.carrier_estimates.models import CarrierEstimate  # noqa: F401
from claimcoach.adjudication.models import AuditReport  # noqa: F401
from claimcoach.payments.models import PaymentRecord  # noqa: F401
from claimcoach.rcv_demand.models import RCVDemandLetter  # noqa: F401
