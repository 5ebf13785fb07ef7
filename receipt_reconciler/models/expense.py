from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime, Boolean, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from receipt_reconciler.core.database import Base


class ExpenseSource(str, enum.Enum):
    MANUAL = "MANUAL"
    OCR = "OCR"


class ExpenseRecord(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, default="EUR", nullable=False)
    vendor = Column(String, nullable=True)
    category = Column(String, default="OTHER", nullable=False)
    expense_date = Column(DateTime(timezone=True), nullable=False)
    payment_method = Column(String, default="CARD", nullable=False)
    status = Column(String, default="PAID", nullable=False)
    source = Column(String, default=ExpenseSource.MANUAL.value, nullable=False)
    files = Column(JSON, nullable=False, default=list)
    ocr_metadata = Column(JSON(none_as_null=True), nullable=True)
    # Not a foreign key: transactions and expenses reference each other
    linked_transaction_id = Column(Integer, nullable=True, index=True)
    is_reconciled = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="expenses")
