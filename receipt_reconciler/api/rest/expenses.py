from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from receipt_reconciler.api.deps import verify_tenant
from receipt_reconciler.core.database import get_db
from receipt_reconciler.schemas.expense import ExpenseCreate, ExpenseResponse
from receipt_reconciler.services.expense_service import ExpenseService

router = APIRouter(prefix="/tenants/{tenant_id}/expenses", tags=["expenses"])


@router.post("", response_model=ExpenseResponse, status_code=201, dependencies=[Depends(verify_tenant)])
def create_expense(tenant_id: int, expense_data: ExpenseCreate, db: Session = Depends(get_db)):
    """Create a manual expense"""
    return ExpenseService.create_expense(db, tenant_id, expense_data)


@router.get("", response_model=List[ExpenseResponse], dependencies=[Depends(verify_tenant)])
def list_expenses(
    tenant_id: int,
    reconciled: Optional[bool] = None,
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
):
    """List expenses, optionally only (un)reconciled ones"""
    return ExpenseService.list_expenses(db, tenant_id, reconciled=reconciled, skip=skip, limit=limit)


@router.get("/{expense_id}", response_model=ExpenseResponse, dependencies=[Depends(verify_tenant)])
def get_expense(tenant_id: int, expense_id: int, db: Session = Depends(get_db)):
    expense = ExpenseService.get_expense(db, tenant_id, expense_id)
    if not expense:
        raise HTTPException(status_code=404, detail="Expense not found")
    return expense
