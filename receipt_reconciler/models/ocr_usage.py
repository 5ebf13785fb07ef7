from sqlalchemy import Column, Integer, String, DateTime, JSON, UniqueConstraint
from sqlalchemy.sql import func

from receipt_reconciler.core.database import Base


class OcrUsageCounter(Base):
    __tablename__ = "ocr_usage_counters"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, nullable=False, index=True)
    provider = Column(String, nullable=False)
    month = Column(String(7), nullable=False)  # "2025-01"
    count = Column(Integer, default=0, nullable=False)
    limit = Column(Integer, nullable=True)  # None = uncapped
    reset_date = Column(DateTime(timezone=True), nullable=False)
    usage_history = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Upsert target for the atomic increment
    __table_args__ = (
        UniqueConstraint('tenant_id', 'provider', 'month', name='uq_tenant_provider_month'),
    )
