from pydantic import BaseModel, Field, field_validator
from datetime import datetime

PLANS = ("FREE", "FREELANCE", "TPE", "ENTREPRISE", "UNLIMITED")


def _validate_plan(v: str) -> str:
    plan = (v or "").strip().upper()
    if plan not in PLANS:
        raise ValueError(f"Unknown plan '{v}', expected one of {', '.join(PLANS)}")
    return plan


class TenantCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255, description="Tenant name (required, non-empty)")
    plan: str = Field(default="FREE", description="Subscription plan driving plan-metered OCR quotas")

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Validate that name is not empty or just whitespace"""
        if not v or not v.strip():
            raise ValueError("Tenant name cannot be empty")
        return v.strip()

    @field_validator('plan')
    @classmethod
    def validate_plan(cls, v: str) -> str:
        return _validate_plan(v)


class TenantPlanUpdate(BaseModel):
    plan: str

    @field_validator('plan')
    @classmethod
    def validate_plan(cls, v: str) -> str:
        return _validate_plan(v)


class TenantResponse(BaseModel):
    id: int
    name: str
    plan: str
    created_at: datetime

    class Config:
        from_attributes = True
