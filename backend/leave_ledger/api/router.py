from fastapi import APIRouter

from leave_ledger.api.balances import adjustment_router, employee_balance_router
from leave_ledger.api.comp_off import comp_off_router
from leave_ledger.api.jobs import jobs_router
from leave_ledger.api.requests import requests_router

api_router = APIRouter()
api_router.include_router(requests_router)
api_router.include_router(employee_balance_router)
api_router.include_router(adjustment_router)
api_router.include_router(jobs_router)
api_router.include_router(comp_off_router)
