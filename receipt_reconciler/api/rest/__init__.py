from fastapi import APIRouter
from receipt_reconciler.api.rest import tenants, bank_transactions, expenses, reconciliation, ocr

api_router = APIRouter()
api_router.include_router(tenants.router)
api_router.include_router(bank_transactions.router)
api_router.include_router(expenses.router)
api_router.include_router(reconciliation.router)
api_router.include_router(ocr.router)
api_router.include_router(ocr.maintenance_router)
