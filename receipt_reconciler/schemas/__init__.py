from receipt_reconciler.schemas.tenant import TenantCreate, TenantPlanUpdate, TenantResponse
from receipt_reconciler.schemas.bank_transaction import BankTransactionCreate, BankTransactionImport, BankTransactionResponse
from receipt_reconciler.schemas.expense import ExpenseCreate, ExpenseResponse
from receipt_reconciler.schemas.match import MatchRequest, MatchResponse, TransactionMatch, SearchCriteria
from receipt_reconciler.schemas.reconciliation import (
    LinkRequest,
    UnlinkRequest,
    LinkResponse,
    ReceiptFile,
    AutoReconcileResponse,
)
from receipt_reconciler.schemas.ocr import (
    OcrDocumentRequest,
    OcrResult,
    OcrResponse,
    FinancialData,
    ProviderFailure,
    ProviderUsage,
)

__all__ = [
    "TenantCreate",
    "TenantPlanUpdate",
    "TenantResponse",
    "BankTransactionCreate",
    "BankTransactionImport",
    "BankTransactionResponse",
    "ExpenseCreate",
    "ExpenseResponse",
    "MatchRequest",
    "MatchResponse",
    "TransactionMatch",
    "SearchCriteria",
    "LinkRequest",
    "UnlinkRequest",
    "LinkResponse",
    "ReceiptFile",
    "AutoReconcileResponse",
    "OcrDocumentRequest",
    "OcrResult",
    "OcrResponse",
    "FinancialData",
    "ProviderFailure",
    "ProviderUsage",
]
