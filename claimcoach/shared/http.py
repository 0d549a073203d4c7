from fastapi import HTTPException

from claimcoach.exceptions import (
    ClaimCoachError,
    ExternalCallFailure,
    NotFoundError,
    TransitionError,
    UnknownVerdict,
    ValidationError,
)


def http_error(e: ClaimCoachError) -> HTTPException:
    """Translate a domain error into the HTTPException a router raises."""
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=e.message)
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=e.message)
    if isinstance(e, TransitionError):
        return HTTPException(status_code=409, detail=e.message)
    if isinstance(e, ExternalCallFailure):
        return HTTPException(status_code=502, detail=e.message)
    if isinstance(e, UnknownVerdict):
        return HTTPException(status_code=500, detail=e.message)
    return HTTPException(status_code=500, detail=e.message)
