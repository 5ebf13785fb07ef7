from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict, Any
from decimal import Decimal


class BankTransactionCreate(BaseModel):
    external_id: Optional[str] = Field(None, max_length=255, description="Aggregator transaction ID (unique per provider)")
    provider: str = Field(default="bridge", max_length=64, description="Bank aggregation provider")
    processed_at: datetime = Field(..., description="Date the bank processed the transaction")
    amount: Decimal = Field(..., description="Signed amount, negative for debits")
    currency: str = Field(default="EUR", max_length=10, description="Currency code")
    description: Optional[str] = Field(None, max_length=1000, description="Bank statement label")
    category: Optional[str] = Field(None, max_length=64)

    @field_validator('external_id')
    @classmethod
    def validate_external_id(cls, v: Optional[str]) -> Optional[str]:
        """Validate external_id is not empty if provided"""
        if v is not None and (not v or not v.strip()):
            raise ValueError("External ID cannot be empty if provided")
        return v.strip() if v else None

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Amount cannot be zero")
        return v

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency is not empty"""
        if not v or not v.strip():
            raise ValueError("Currency cannot be empty")
        return v.strip().upper()


class BankTransactionImport(BaseModel):
    transactions: List[BankTransactionCreate]


class BankTransactionResponse(BaseModel):
    id: int
    tenant_id: int
    provider: str
    external_id: Optional[str]
    processed_at: datetime
    amount: Decimal
    currency: str
    description: Optional[str]
    category: Optional[str]
    linked_expense_id: Optional[int]
    receipt_file: Optional[Dict[str, Any]]
    receipt_required: bool
    reconciliation_status: str
    reconciliation_date: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True
