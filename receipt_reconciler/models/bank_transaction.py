from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime, Boolean, JSON, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum

from receipt_reconciler.core.database import Base


class ReconciliationStatus(str, enum.Enum):
    UNMATCHED = "unmatched"
    MATCHED = "matched"


class BankTransaction(Base):
    __tablename__ = "bank_transactions"

    id = Column(Integer, primary_key=True, index=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False, index=True)
    provider = Column(String, default="bridge", nullable=False)
    external_id = Column(String, nullable=True, index=True)
    processed_at = Column(DateTime(timezone=True), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)  # negative = debit
    currency = Column(String, default="EUR", nullable=False)
    description = Column(String, nullable=True)
    category = Column(String, nullable=True)
    linked_expense_id = Column(Integer, ForeignKey("expenses.id", ondelete="SET NULL"), nullable=True, index=True)
    receipt_file = Column(JSON(none_as_null=True), nullable=True)
    receipt_required = Column(Boolean, default=True, nullable=False)
    reconciliation_status = Column(String, default=ReconciliationStatus.UNMATCHED.value, nullable=False, index=True)
    reconciliation_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="bank_transactions")
    linked_expense = relationship("ExpenseRecord", foreign_keys=[linked_expense_id])

    # External ids are unique per aggregator within a tenant
    __table_args__ = (
        Index("ix_tenant_provider_external_id", "tenant_id", "provider", "external_id", unique=True),
    )

    @property
    def is_debit(self) -> bool:
        return self.amount is not None and self.amount < 0
