import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from receipt_reconciler.core.errors import ConflictError, NotFoundError
from receipt_reconciler.models.bank_transaction import BankTransaction, ReconciliationStatus
from receipt_reconciler.models.expense import ExpenseRecord, ExpenseSource
from receipt_reconciler.schemas.reconciliation import AutoReconcileResponse, ReceiptFile
from receipt_reconciler.services.bank_transaction_service import BankTransactionService
from receipt_reconciler.services.expense_service import ExpenseService
from receipt_reconciler.services.extraction_service import normalize_payment_method, parse_amount
from receipt_reconciler.services.matching_service import TransactionMatcher, parse_target_date
from receipt_reconciler.services.ocr_service import OcrService
from receipt_reconciler.services.storage_service import ReceiptStorage

logger = logging.getLogger(__name__)

PAYMENT_METHODS = {
    "card": "CARD",
    "transfer": "TRANSFER",
    "check": "CHECK",
    "cash": "CASH",
    "direct_debit": "DIRECT_DEBIT",
}


TEXT_FIELDS = ("vendor", "title", "currency", "category", "date", "payment_method")


def _text(value: Any) -> Optional[str]:
    """A scalar as stripped text; containers, booleans and blanks give None"""
    if value is None or isinstance(value, (bool, dict, list)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    text = str(value).strip()
    return text or None


def _clean_ocr_data(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = dict(data)
    for field in TEXT_FIELDS:
        if field in cleaned:
            cleaned[field] = _text(cleaned[field])
    return cleaned


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value) if value.is_finite() else None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


@dataclass
class UploadedReceipt:
    content: bytes
    filename: str
    mimetype: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReconciliationService:
    """Links bank transactions to expenses and receipts.

    A transaction and an expense reference each other. Both sides are always
    written in the same database transaction.
    """

    @staticmethod
    def link(db: Session, tenant_id: int, transaction_id: int, expense_id: int) -> Tuple[BankTransaction, ExpenseRecord]:
        transaction = BankTransactionService.require_transaction(db, tenant_id, transaction_id)
        expense = ExpenseService.require_expense(db, tenant_id, expense_id)

        if transaction.linked_expense_id not in (None, expense.id):
            raise ConflictError(
                f"Transaction {transaction.id} is already linked to expense {transaction.linked_expense_id}"
            )
        other = db.query(BankTransaction).filter(
            and_(
                BankTransaction.tenant_id == tenant_id,
                BankTransaction.linked_expense_id == expense.id,
                BankTransaction.id != transaction.id,
            )
        ).first()
        if other is not None or expense.linked_transaction_id not in (None, transaction.id):
            linked_to = other.id if other is not None else expense.linked_transaction_id
            raise ConflictError(f"Expense {expense.id} is already linked to transaction {linked_to}")

        side = "transaction"
        try:
            transaction.linked_expense_id = expense.id
            transaction.reconciliation_status = ReconciliationStatus.MATCHED.value
            transaction.reconciliation_date = _utcnow()
            db.flush()
            side = "expense"
            expense.linked_transaction_id = transaction.id
            expense.is_reconciled = True
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error(
                "linking transaction %s to expense %s failed on the %s side, both sides rolled back",
                transaction_id,
                expense_id,
                side,
            )
            raise

        db.refresh(transaction)
        db.refresh(expense)
        logger.info("tenant %s: linked transaction %s to expense %s", tenant_id, transaction.id, expense.id)
        return transaction, expense

    @staticmethod
    def unlink(db: Session, tenant_id: int, transaction_id: int) -> Tuple[BankTransaction, Optional[ExpenseRecord]]:
        transaction = BankTransactionService.require_transaction(db, tenant_id, transaction_id)
        expense_id = transaction.linked_expense_id

        expense = ExpenseService.get_expense(db, tenant_id, expense_id) if expense_id else None
        if expense_id and expense is None:
            logger.info("expense %s linked to transaction %s no longer exists, clearing transaction only",
                        expense_id, transaction.id)
        # Expenses pointing back at this transaction, whatever the transaction side says
        back_refs = db.query(ExpenseRecord).filter(
            and_(
                ExpenseRecord.tenant_id == tenant_id,
                ExpenseRecord.linked_transaction_id == transaction.id,
            )
        ).all()

        side = "transaction"
        try:
            transaction.linked_expense_id = None
            if transaction.receipt_file is None:
                transaction.reconciliation_status = ReconciliationStatus.UNMATCHED.value
                transaction.reconciliation_date = None
            db.flush()
            side = "expense"
            for record in {e.id: e for e in back_refs + ([expense] if expense else [])}.values():
                record.linked_transaction_id = None
                record.is_reconciled = False
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.error("unlinking transaction %s failed on the %s side, both sides rolled back", transaction_id, side)
            raise

        db.refresh(transaction)
        if expense is not None:
            db.refresh(expense)
        logger.info("tenant %s: unlinked transaction %s", tenant_id, transaction.id)
        return transaction, expense

    @staticmethod
    def attach_receipt(
        db: Session,
        tenant_id: int,
        transaction_id: int,
        upload: UploadedReceipt,
        storage: ReceiptStorage,
    ) -> BankTransaction:
        transaction = BankTransactionService.require_transaction(db, tenant_id, transaction_id)
        receipt = storage.upload(tenant_id, upload.content, upload.filename, upload.mimetype)
        ReconciliationService._store_receipt(db, transaction, receipt, storage)
        return transaction

    @staticmethod
    def detach_receipt(db: Session, tenant_id: int, transaction_id: int, storage: ReceiptStorage) -> BankTransaction:
        transaction = BankTransactionService.require_transaction(db, tenant_id, transaction_id)
        if not transaction.receipt_file:
            raise NotFoundError(f"Transaction {transaction_id} has no receipt attached")

        key = transaction.receipt_file.get("key")
        transaction.receipt_file = None
        if transaction.linked_expense_id is None:
            transaction.reconciliation_status = ReconciliationStatus.UNMATCHED.value
            transaction.reconciliation_date = None
        db.commit()
        db.refresh(transaction)

        if key:
            ReconciliationService._delete_quietly(storage, key)
        logger.info("tenant %s: detached receipt from transaction %s", tenant_id, transaction.id)
        return transaction

    @staticmethod
    def auto_reconcile(
        db: Session,
        tenant_id: int,
        upload: UploadedReceipt,
        storage: ReceiptStorage,
        matcher: TransactionMatcher,
        ocr_service: Optional[OcrService] = None,
        transaction_id: Optional[int] = None,
        ocr_data: Optional[Dict[str, Any]] = None,
    ) -> AutoReconcileResponse:
        """File a receipt against a transaction, or keep it as a new expense.

        With ``transaction_id`` the receipt goes straight onto that transaction.
        Otherwise the amount/date/vendor (from ``ocr_data``, or from OCR on the
        uploaded file) are matched; without a qualifying match a new OCR
        expense is created so the document is never lost.
        """
        if transaction_id is not None:
            transaction = BankTransactionService.require_transaction(db, tenant_id, transaction_id)
            receipt = storage.upload(tenant_id, upload.content, upload.filename, upload.mimetype)
            ReconciliationService._store_receipt(db, transaction, receipt, storage)
            return AutoReconcileResponse(
                action="linked",
                message="Receipt attached to the transaction",
                transaction_id=transaction.id,
                receipt_file=receipt,
            )

        receipt = storage.upload(tenant_id, upload.content, upload.filename, upload.mimetype)
        data = _clean_ocr_data(ocr_data or {})
        amount = parse_amount(data.get("amount"))
        if amount is None and ocr_service is not None:
            read = _clean_ocr_data(ReconciliationService._read_receipt(ocr_service, tenant_id, receipt))
            # fields the caller supplied win over what OCR read
            data.update({k: v for k, v in read.items() if k == "amount" or data.get(k) is None})
            amount = parse_amount(data.get("amount"))

        match = None
        if amount:
            try:
                result = matcher.find_matches(db, tenant_id, amount, data.get("date"), data.get("vendor"))
                match = result.best_match
            except Exception:
                logger.warning("matching failed for receipt %s, keeping it as an expense", receipt.key, exc_info=True)

        if match is not None:
            transaction = BankTransactionService.get_transaction(db, tenant_id, match.id)
            try:
                if transaction is not None:
                    transaction.receipt_file = receipt.model_dump(mode="json")
                    transaction.reconciliation_status = ReconciliationStatus.MATCHED.value
                    transaction.reconciliation_date = _utcnow()
                    db.commit()
                    logger.info("tenant %s: receipt %s auto-matched to transaction %s (score %s)",
                                tenant_id, receipt.key, transaction.id, match.score)
                    return AutoReconcileResponse(
                        action="auto-matched",
                        message=f"Receipt matched to transaction with {match.confidence} confidence",
                        transaction_id=transaction.id,
                        matched_transaction=match,
                        receipt_file=receipt,
                    )
            except SQLAlchemyError:
                db.rollback()
                logger.warning("could not attach receipt %s to transaction %s, creating an expense instead",
                               receipt.key, match.id, exc_info=True)

        expense = ReconciliationService._create_expense(db, tenant_id, receipt, amount, data)
        return AutoReconcileResponse(
            action="created",
            message="No matching transaction found, expense created with the receipt",
            expense_id=expense.id,
            receipt_file=receipt,
        )

    @staticmethod
    def _read_receipt(ocr_service: OcrService, tenant_id: int, receipt: ReceiptFile) -> Dict[str, Any]:
        try:
            response = ocr_service.process_document(
                tenant_id, receipt.url, receipt.filename, receipt.mimetype or "application/octet-stream"
            )
        except Exception as e:
            logger.warning("OCR on uploaded receipt %s failed: %s", receipt.key, e)
            return {}
        analysis = response.get("financial_analysis") or {}
        return {
            "amount": (analysis.get("amounts") or {}).get("ttc"),
            "date": (analysis.get("dates") or {}).get("issue"),
            "vendor": (analysis.get("vendor") or {}).get("name"),
            "category": analysis.get("category"),
            "payment_method": analysis.get("payment_method"),
            "ocr_provider": response.get("provider"),
        }

    @staticmethod
    def _create_expense(
        db: Session,
        tenant_id: int,
        receipt: ReceiptFile,
        amount: Optional[Decimal],
        data: Dict[str, Any],
    ) -> ExpenseRecord:
        expense_date, _ = parse_target_date(data.get("date"))
        vendor = data.get("vendor")
        currency = (data.get("currency") or "EUR").upper()
        expense = ExpenseRecord(
            tenant_id=tenant_id,
            title=data.get("title") or vendor or receipt.filename,
            amount=abs(amount) if amount else Decimal("0"),
            currency=currency if re.fullmatch(r"[A-Z]{3}", currency) else "EUR",
            vendor=vendor,
            category=data.get("category") or "OTHER",
            expense_date=expense_date,
            payment_method=PAYMENT_METHODS.get(normalize_payment_method(data.get("payment_method")), "CARD"),
            status="PAID",
            source=ExpenseSource.OCR.value,
            files=[receipt.model_dump(mode="json")],
            ocr_metadata={k: _json_safe(v) for k, v in data.items()} or None,
            linked_transaction_id=None,
            is_reconciled=False,
        )
        db.add(expense)
        db.commit()
        db.refresh(expense)
        logger.info("tenant %s: created expense %s from unmatched receipt %s", tenant_id, expense.id, receipt.key)
        return expense

    @staticmethod
    def _store_receipt(db: Session, transaction: BankTransaction, receipt: ReceiptFile, storage: ReceiptStorage) -> None:
        previous = (transaction.receipt_file or {}).get("key")
        try:
            transaction.receipt_file = receipt.model_dump(mode="json")
            transaction.reconciliation_status = ReconciliationStatus.MATCHED.value
            transaction.reconciliation_date = _utcnow()
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            ReconciliationService._delete_quietly(storage, receipt.key)
            raise
        db.refresh(transaction)
        if previous and previous != receipt.key:
            ReconciliationService._delete_quietly(storage, previous)
        logger.info("attached receipt %s to transaction %s", receipt.key, transaction.id)

    @staticmethod
    def _delete_quietly(storage: ReceiptStorage, key: str) -> None:
        try:
            storage.delete(key)
        except Exception:
            logger.warning("could not delete receipt %s from storage", key, exc_info=True)
