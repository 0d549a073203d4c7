from fastapi import APIRouter

from claimcoach.claims.router import router as claims_router
from claimcoach.activity.router import router as activity_router
from claimcoach.adjudication.router import router as adjudication_router
from claimcoach.payments.router import router as payments_router
from claimcoach.rcv_demand.router import router as rcv_demand_router
from claimcoach.legal_package.router import router as legal_package_router

api_router = APIRouter()


from claimcoach.routes.v1.websockets import router as ws_router

api_router.include_router(claims_router)
api_router.include_router(activity_router)
api_router.include_router(adjudication_router)
api_router.include_router(payments_router)
api_router.include_router(rcv_demand_router)
api_router.include_router(legal_package_router)
api_router.include_router(ws_router, prefix="/ws")
