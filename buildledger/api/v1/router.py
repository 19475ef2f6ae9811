from fastapi import APIRouter

from buildledger.api.v1.change_orders import router as change_orders_router
from buildledger.api.v1.estimates import router as estimates_router
from buildledger.api.v1.expenses import router as expenses_router
from buildledger.api.v1.financials import router as financials_router
from buildledger.api.v1.payees import router as payees_router
from buildledger.api.v1.projects import router as projects_router
from buildledger.api.v1.quotes import router as quotes_router
from buildledger.api.v1.revenues import router as revenues_router

v1_router = APIRouter()

v1_router.include_router(projects_router)
v1_router.include_router(payees_router)
v1_router.include_router(estimates_router)
v1_router.include_router(quotes_router)
v1_router.include_router(change_orders_router)
v1_router.include_router(expenses_router)
v1_router.include_router(revenues_router)
v1_router.include_router(financials_router)
