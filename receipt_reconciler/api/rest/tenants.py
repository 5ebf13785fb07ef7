import logging
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional

from receipt_reconciler.api.deps import plan_cache, to_http_error
from receipt_reconciler.core.database import get_db
from receipt_reconciler.schemas.tenant import TenantCreate, TenantPlanUpdate, TenantResponse
from receipt_reconciler.services.tenant_service import TenantService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants", tags=["tenants"])


@router.post("", response_model=TenantResponse, status_code=201)
def create_tenant(tenant_data: TenantCreate, db: Session = Depends(get_db)):
    """Create a tenant on the given plan (FREE by default)"""
    try:
        tenant = TenantService.create_tenant(db, tenant_data)
    except ValueError as e:
        raise HTTPException(status_code=409, detail=str(e))
    logger.info("created tenant %s on plan %s", tenant.id, tenant.plan)
    return tenant


@router.get("", response_model=List[TenantResponse])
def list_tenants(plan: Optional[str] = None, skip: int = 0, limit: int = 100, db: Session = Depends(get_db)):
    return TenantService.list_tenants(db, plan=plan.upper() if plan else None, skip=skip, limit=limit)


@router.get("/{tenant_id}", response_model=TenantResponse)
def get_tenant(tenant_id: int, db: Session = Depends(get_db)):
    try:
        return TenantService.require_tenant(db, tenant_id)
    except ValueError as e:
        raise to_http_error(e)


@router.patch("/{tenant_id}/plan", response_model=TenantResponse)
def update_plan(tenant_id: int, plan_data: TenantPlanUpdate, db: Session = Depends(get_db)):
    """Change the subscription plan; plan-metered OCR quotas follow immediately"""
    try:
        tenant = TenantService.update_plan(db, tenant_id, plan_data.plan)
    except ValueError as e:
        raise to_http_error(e)
    plan_cache.invalidate(tenant_id)
    return tenant
