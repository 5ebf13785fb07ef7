from receipt_reconciler.models.tenant import Tenant
from receipt_reconciler.models.bank_transaction import BankTransaction, ReconciliationStatus
from receipt_reconciler.models.expense import ExpenseRecord, ExpenseSource
from receipt_reconciler.models.ocr_usage import OcrUsageCounter
from receipt_reconciler.models.ocr_cache import OcrResultCacheEntry

__all__ = [
    "Tenant",
    "BankTransaction",
    "ReconciliationStatus",
    "ExpenseRecord",
    "ExpenseSource",
    "OcrUsageCounter",
    "OcrResultCacheEntry",
]
