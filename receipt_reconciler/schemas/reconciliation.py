from pydantic import BaseModel
from datetime import datetime
from typing import Optional

from receipt_reconciler.schemas.bank_transaction import BankTransactionResponse
from receipt_reconciler.schemas.expense import ExpenseResponse
from receipt_reconciler.schemas.match import TransactionMatch


class LinkRequest(BaseModel):
    transaction_id: int
    expense_id: int


class UnlinkRequest(BaseModel):
    transaction_id: int


class ReceiptFile(BaseModel):
    url: str
    key: str
    filename: str
    mimetype: Optional[str] = None
    size: int = 0
    uploaded_at: datetime


class LinkResponse(BaseModel):
    success: bool = True
    message: str
    transaction: BankTransactionResponse
    expense: Optional[ExpenseResponse] = None


class AutoReconcileResponse(BaseModel):
    success: bool = True
    action: str  # "linked" | "auto-matched" | "created"
    message: str
    transaction_id: Optional[int] = None
    expense_id: Optional[int] = None
    matched_transaction: Optional[TransactionMatch] = None
    receipt_file: ReceiptFile
