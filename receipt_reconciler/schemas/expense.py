from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, List, Dict, Any
from decimal import Decimal


class ExpenseCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = Field(..., gt=0, description="Expense amount (must be positive)")
    currency: str = Field(default="EUR", max_length=10)
    vendor: Optional[str] = Field(None, max_length=255)
    category: str = Field(default="OTHER", max_length=64)
    expense_date: datetime
    payment_method: str = Field(default="CARD", max_length=32)

    @field_validator('title')
    @classmethod
    def validate_title(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Title cannot be empty")
        return v.strip()

    @field_validator('currency')
    @classmethod
    def validate_currency(cls, v: str) -> str:
        """Validate currency is not empty"""
        if not v or not v.strip():
            raise ValueError("Currency cannot be empty")
        return v.strip().upper()


class ExpenseResponse(BaseModel):
    id: int
    tenant_id: int
    title: str
    amount: Decimal
    currency: str
    vendor: Optional[str]
    category: str
    expense_date: datetime
    payment_method: str
    status: str
    source: str
    files: List[Dict[str, Any]]
    linked_transaction_id: Optional[int]
    is_reconciled: bool
    created_at: datetime

    class Config:
        from_attributes = True
