import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from typing import List, Optional

from receipt_reconciler.api.deps import get_storage, to_http_error, verify_tenant
from receipt_reconciler.core.database import get_db
from receipt_reconciler.core.config import settings
from receipt_reconciler.schemas.bank_transaction import BankTransactionImport, BankTransactionResponse
from receipt_reconciler.services.bank_transaction_service import BankTransactionService
from receipt_reconciler.services.reconciliation_service import ReconciliationService, UploadedReceipt
from receipt_reconciler.services.storage_service import ReceiptStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/bank-transactions", tags=["bank-transactions"])


def _is_dev() -> bool:
    return "test" in settings.database_url or "sqlite" in settings.database_url.lower()


@router.post("/import", response_model=List[BankTransactionResponse], status_code=201, dependencies=[Depends(verify_tenant)])
def import_transactions(
    tenant_id: int,
    import_data: BankTransactionImport,
    db: Session = Depends(get_db),
):
    """Bulk import bank transactions; already known (provider, external_id) pairs are returned unchanged"""
    try:
        transactions, _ = BankTransactionService.import_transactions(db, tenant_id, import_data.transactions)
        return transactions
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception("bank transaction import failed for tenant %s", tenant_id)
        detail = f"Database error: {e}" if _is_dev() else "Database error occurred while importing transactions"
        raise HTTPException(status_code=500, detail=detail)


@router.get("", response_model=List[BankTransactionResponse], dependencies=[Depends(verify_tenant)])
def list_transactions(
    tenant_id: int,
    status: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    """List bank transactions for a tenant"""
    return BankTransactionService.list_transactions(db, tenant_id, status=status, skip=skip, limit=limit)


@router.get("/unmatched", response_model=List[BankTransactionResponse], dependencies=[Depends(verify_tenant)])
def list_unmatched(tenant_id: int, db: Session = Depends(get_db)):
    """Debits still waiting for a receipt or an expense"""
    return BankTransactionService.get_unmatched_transactions(db, tenant_id)


@router.get("/{transaction_id}", response_model=BankTransactionResponse, dependencies=[Depends(verify_tenant)])
def get_transaction(tenant_id: int, transaction_id: int, db: Session = Depends(get_db)):
    transaction = BankTransactionService.get_transaction(db, tenant_id, transaction_id)
    if not transaction:
        raise HTTPException(status_code=404, detail="Bank transaction not found")
    return transaction


@router.post("/{transaction_id}/receipt", response_model=BankTransactionResponse, dependencies=[Depends(verify_tenant)])
def attach_receipt(
    tenant_id: int,
    transaction_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    storage: ReceiptStorage = Depends(get_storage),
):
    """Upload a receipt and attach it to the transaction, replacing any previous one"""
    upload = UploadedReceipt(content=file.file.read(), filename=file.filename or "receipt", mimetype=file.content_type)
    try:
        return ReconciliationService.attach_receipt(db, tenant_id, transaction_id, upload, storage)
    except ValueError as e:
        raise to_http_error(e)


@router.delete("/{transaction_id}/receipt", response_model=BankTransactionResponse, dependencies=[Depends(verify_tenant)])
def detach_receipt(
    tenant_id: int,
    transaction_id: int,
    db: Session = Depends(get_db),
    storage: ReceiptStorage = Depends(get_storage),
):
    try:
        return ReconciliationService.detach_receipt(db, tenant_id, transaction_id, storage)
    except ValueError as e:
        raise to_http_error(e)
