import json
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from receipt_reconciler.api.deps import (
    get_matcher,
    get_ocr_service,
    get_storage,
    to_http_error,
    verify_tenant,
)
from receipt_reconciler.core.database import get_db
from receipt_reconciler.schemas.bank_transaction import BankTransactionResponse
from receipt_reconciler.schemas.expense import ExpenseResponse
from receipt_reconciler.schemas.match import MatchRequest, MatchResponse
from receipt_reconciler.schemas.reconciliation import (
    AutoReconcileResponse,
    LinkRequest,
    LinkResponse,
    UnlinkRequest,
)
from receipt_reconciler.services.matching_service import TransactionMatcher
from receipt_reconciler.services.ocr_service import OcrService
from receipt_reconciler.services.reconciliation_service import ReconciliationService, UploadedReceipt
from receipt_reconciler.services.storage_service import ReceiptStorage

router = APIRouter(prefix="/tenants/{tenant_id}/reconciliation", tags=["reconciliation"])


def _link_response(message, transaction, expense) -> LinkResponse:
    return LinkResponse(
        message=message,
        transaction=BankTransactionResponse.model_validate(transaction),
        expense=ExpenseResponse.model_validate(expense) if expense is not None else None,
    )


@router.post("/match", response_model=MatchResponse, dependencies=[Depends(verify_tenant)])
def match_transactions(
    tenant_id: int,
    request: MatchRequest,
    db: Session = Depends(get_db),
    matcher: TransactionMatcher = Depends(get_matcher),
):
    """Score unreconciled debits against a receipt's amount, date and vendor"""
    try:
        return matcher.find_matches(db, tenant_id, request.amount, request.date, request.vendor)
    except ValueError as e:
        raise to_http_error(e)


@router.post("/link", response_model=LinkResponse, dependencies=[Depends(verify_tenant)])
def link(tenant_id: int, request: LinkRequest, db: Session = Depends(get_db)):
    """Link a transaction and an expense (both sides updated together)"""
    try:
        transaction, expense = ReconciliationService.link(db, tenant_id, request.transaction_id, request.expense_id)
    except ValueError as e:
        raise to_http_error(e)
    return _link_response("Transaction linked to expense", transaction, expense)


@router.post("/unlink", response_model=LinkResponse, dependencies=[Depends(verify_tenant)])
def unlink(tenant_id: int, request: UnlinkRequest, db: Session = Depends(get_db)):
    try:
        transaction, expense = ReconciliationService.unlink(db, tenant_id, request.transaction_id)
    except ValueError as e:
        raise to_http_error(e)
    return _link_response("Transaction unlinked", transaction, expense)


@router.post("/auto", response_model=AutoReconcileResponse, dependencies=[Depends(verify_tenant)])
def auto_reconcile(
    tenant_id: int,
    file: UploadFile = File(...),
    transaction_id: Optional[int] = Form(None),
    ocr_data: Optional[str] = Form(None, description="JSON object with amount, date, vendor..."),
    db: Session = Depends(get_db),
    storage: ReceiptStorage = Depends(get_storage),
    matcher: TransactionMatcher = Depends(get_matcher),
    ocr_service: OcrService = Depends(get_ocr_service),
):
    """Attach a receipt to a transaction, match it automatically, or file it as a new expense"""
    parsed = None
    if ocr_data:
        try:
            parsed = json.loads(ocr_data)
        except json.JSONDecodeError:
            raise HTTPException(status_code=400, detail="ocr_data must be a JSON object")
        if not isinstance(parsed, dict):
            raise HTTPException(status_code=400, detail="ocr_data must be a JSON object")

    upload = UploadedReceipt(content=file.file.read(), filename=file.filename or "receipt", mimetype=file.content_type)
    try:
        return ReconciliationService.auto_reconcile(
            db,
            tenant_id,
            upload,
            storage,
            matcher,
            ocr_service=ocr_service,
            transaction_id=transaction_id,
            ocr_data=parsed,
        )
    except ValueError as e:
        raise to_http_error(e)
