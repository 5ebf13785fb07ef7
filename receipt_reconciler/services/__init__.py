from receipt_reconciler.services.tenant_service import TenantService, PlanResolver
from receipt_reconciler.services.bank_transaction_service import BankTransactionService
from receipt_reconciler.services.expense_service import ExpenseService
from receipt_reconciler.services.matching_service import TransactionMatcher
from receipt_reconciler.services.quota_service import QuotaLedger
from receipt_reconciler.services.ocr_cache_service import ResultCache
from receipt_reconciler.services.ocr_router import OcrRouter
from receipt_reconciler.services.extraction_service import FinancialDataNormalizer
from receipt_reconciler.services.ocr_service import OcrService
from receipt_reconciler.services.storage_service import ReceiptStorage, LocalReceiptStorage
from receipt_reconciler.services.reconciliation_service import ReconciliationService, UploadedReceipt

__all__ = [
    "TenantService",
    "PlanResolver",
    "BankTransactionService",
    "ExpenseService",
    "TransactionMatcher",
    "QuotaLedger",
    "ResultCache",
    "OcrRouter",
    "FinancialDataNormalizer",
    "OcrService",
    "ReceiptStorage",
    "LocalReceiptStorage",
    "ReconciliationService",
    "UploadedReceipt",
]
