from sqlalchemy.orm import Session
from sqlalchemy import and_
from typing import List, Optional

from receipt_reconciler.core.errors import NotFoundError
from receipt_reconciler.models.expense import ExpenseRecord, ExpenseSource
from receipt_reconciler.schemas.expense import ExpenseCreate


class ExpenseService:
    @staticmethod
    def create_expense(db: Session, tenant_id: int, expense_data: ExpenseCreate) -> ExpenseRecord:
        """Create a manual expense"""
        expense = ExpenseRecord(
            tenant_id=tenant_id,
            title=expense_data.title,
            amount=expense_data.amount,
            currency=expense_data.currency,
            vendor=expense_data.vendor,
            category=expense_data.category,
            expense_date=expense_data.expense_date,
            payment_method=expense_data.payment_method,
            source=ExpenseSource.MANUAL.value,
            files=[],
        )
        db.add(expense)
        db.commit()
        db.refresh(expense)
        return expense

    @staticmethod
    def get_expense(db: Session, tenant_id: int, expense_id: int) -> ExpenseRecord | None:
        """Get expense by ID, ensuring tenant isolation"""
        return db.query(ExpenseRecord).filter(
            and_(
                ExpenseRecord.id == expense_id,
                ExpenseRecord.tenant_id == tenant_id
            )
        ).first()

    @staticmethod
    def require_expense(db: Session, tenant_id: int, expense_id: int) -> ExpenseRecord:
        expense = ExpenseService.get_expense(db, tenant_id, expense_id)
        if expense is None:
            raise NotFoundError(f"Expense {expense_id} not found")
        return expense

    @staticmethod
    def list_expenses(
        db: Session,
        tenant_id: int,
        reconciled: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[ExpenseRecord]:
        """List expenses for a tenant, newest first"""
        query = db.query(ExpenseRecord).filter(ExpenseRecord.tenant_id == tenant_id)
        if reconciled is not None:
            query = query.filter(ExpenseRecord.is_reconciled == reconciled)
        return query.order_by(ExpenseRecord.expense_date.desc()).offset(skip).limit(limit).all()
