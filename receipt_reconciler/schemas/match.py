from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import List, Optional
from decimal import Decimal


class MatchRequest(BaseModel):
    amount: Decimal = Field(..., description="Receipt total, positive")
    date: Optional[str] = Field(None, description="DD/MM/YY, DD/MM/YYYY or YYYY-MM-DD")
    vendor: Optional[str] = Field(None, max_length=255)

    @field_validator('amount')
    @classmethod
    def validate_amount(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Amount is required and cannot be zero")
        return abs(v)


class TransactionMatch(BaseModel):
    id: int
    description: Optional[str]
    amount: Decimal
    date: datetime
    vendor: Optional[str]
    score: int
    confidence: str  # "high" | "medium" | "low"


class DateRange(BaseModel):
    min: datetime
    max: datetime


class AmountRange(BaseModel):
    min: Decimal
    max: Decimal


class SearchCriteria(BaseModel):
    amount: Decimal
    date: datetime
    vendor: Optional[str]
    date_range: DateRange
    amount_range: AmountRange
    date_warning: Optional[str] = None


class MatchResponse(BaseModel):
    success: bool = True
    best_match: Optional[TransactionMatch]
    all_matches: List[TransactionMatch]
    search_criteria: SearchCriteria
