from sqlalchemy import Column, Integer, String, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from receipt_reconciler.core.database import Base


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True, index=True)
    plan = Column(String, default="FREE", nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('name', name='uq_tenant_name'),
    )

    # Relationships
    bank_transactions = relationship("BankTransaction", back_populates="tenant", cascade="all, delete-orphan")
    expenses = relationship("ExpenseRecord", back_populates="tenant", cascade="all, delete-orphan")
