import logging
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Callable, List, Optional

from receipt_reconciler.core.errors import NotFoundError
from receipt_reconciler.core.ttl_cache import TTLCache
from receipt_reconciler.models.tenant import Tenant
from receipt_reconciler.schemas.tenant import TenantCreate

logger = logging.getLogger(__name__)

DEFAULT_PLAN = "FREE"


class TenantService:
    @staticmethod
    def create_tenant(db: Session, tenant_data: TenantCreate) -> Tenant:
        """Create a new tenant"""
        existing_tenant = db.query(Tenant).filter(Tenant.name == tenant_data.name).first()
        if existing_tenant:
            raise ValueError(f"Tenant with name '{tenant_data.name}' already exists")

        tenant = Tenant(name=tenant_data.name, plan=tenant_data.plan)
        db.add(tenant)
        try:
            db.commit()
            db.refresh(tenant)
            return tenant
        except IntegrityError as e:
            db.rollback()
            raise ValueError(f"Tenant with name '{tenant_data.name}' already exists") from e

    @staticmethod
    def get_tenant(db: Session, tenant_id: int) -> Tenant | None:
        """Get tenant by ID"""
        return db.query(Tenant).filter(Tenant.id == tenant_id).first()

    @staticmethod
    def list_tenants(db: Session, plan: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[Tenant]:
        """List tenants, optionally only those on one plan"""
        query = db.query(Tenant)
        if plan:
            query = query.filter(Tenant.plan == plan)
        return query.order_by(Tenant.id).offset(skip).limit(limit).all()

    @staticmethod
    def require_tenant(db: Session, tenant_id: int) -> Tenant:
        tenant = TenantService.get_tenant(db, tenant_id)
        if tenant is None:
            raise NotFoundError("Tenant not found")
        return tenant

    @staticmethod
    def verify_tenant_exists(db: Session, tenant_id: int) -> bool:
        """Verify tenant exists"""
        return db.query(Tenant).filter(Tenant.id == tenant_id).first() is not None

    @staticmethod
    def update_plan(db: Session, tenant_id: int, plan: str) -> Tenant:
        tenant = TenantService.require_tenant(db, tenant_id)
        tenant.plan = plan
        db.commit()
        db.refresh(tenant)
        logger.info("tenant %s moved to plan %s", tenant_id, plan)
        return tenant


class PlanResolver:
    """Resolves a tenant's subscription plan, cached for a few minutes.

    A missing tenant (or one without a plan) resolves to ``FREE`` so quota
    checks always have something to work with.
    """

    def __init__(self, session_factory: Callable[[], Session], cache: TTLCache):
        self._session_factory = session_factory
        self._cache = cache

    def get_plan(self, tenant_id: int) -> str:
        return self._cache.get(tenant_id, lambda: self._load(tenant_id))

    def invalidate(self, tenant_id: int | None = None) -> None:
        self._cache.invalidate(tenant_id)

    def _load(self, tenant_id: int) -> str:
        with self._session_factory() as db:
            tenant = TenantService.get_tenant(db, tenant_id)
            if tenant is None or not tenant.plan:
                logger.debug("no plan on record for tenant %s, using %s", tenant_id, DEFAULT_PLAN)
                return DEFAULT_PLAN
            return tenant.plan
