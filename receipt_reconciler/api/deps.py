from functools import lru_cache
from typing import Callable, List

import httpx
from fastapi import Depends, HTTPException
from sqlalchemy.orm import Session

from receipt_reconciler.core.background import BestEffortRunner
from receipt_reconciler.core.config import settings
from receipt_reconciler.core.database import get_db, get_session_factory
from receipt_reconciler.core.errors import ConflictError, NotFoundError, OcrExhaustedError
from receipt_reconciler.core.ttl_cache import TTLCache
from receipt_reconciler.services.extraction_service import FinancialDataNormalizer
from receipt_reconciler.services.matching_service import TransactionMatcher
from receipt_reconciler.services.ocr_cache_service import ResultCache
from receipt_reconciler.services.ocr_providers import OcrProvider, default_providers
from receipt_reconciler.services.ocr_router import OcrRouter
from receipt_reconciler.services.ocr_service import OcrService
from receipt_reconciler.services.quota_service import QuotaLedger
from receipt_reconciler.services.storage_service import LocalReceiptStorage, ReceiptStorage
from receipt_reconciler.services.tenant_service import PlanResolver, TenantService

# Shared across requests; invalidated on plan change or provider quota refusal
plan_cache = TTLCache(ttl_seconds=settings.plan_cache_ttl_seconds)


def verify_tenant(tenant_id: int, db: Session = Depends(get_db)):
    """Dependency to verify tenant exists"""
    if not TenantService.verify_tenant_exists(db, tenant_id):
        raise HTTPException(status_code=404, detail="Tenant not found")
    return tenant_id


def to_http_error(e: Exception) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ConflictError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, OcrExhaustedError):
        return HTTPException(
            status_code=502,
            detail={
                "message": str(e),
                "errors": [{"provider": p, "error": err} for p, err in e.failures],
            },
        )
    return HTTPException(status_code=400, detail=str(e))


@lru_cache
def get_task_runner() -> BestEffortRunner:
    return BestEffortRunner(
        max_workers=settings.background_workers,
        inline=settings.background_inline,
        max_pending=settings.background_max_pending,
    )


@lru_cache
def _http_client() -> httpx.Client:
    return httpx.Client(timeout=settings.ocr_request_timeout)


def get_ocr_providers() -> List[OcrProvider]:
    return default_providers(client=_http_client())


def get_plan_resolver(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> PlanResolver:
    return PlanResolver(session_factory, plan_cache)


def get_quota_ledger(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
    plan_resolver: PlanResolver = Depends(get_plan_resolver),
) -> QuotaLedger:
    return QuotaLedger(session_factory, plan_resolver=plan_resolver)


def get_result_cache(
    session_factory: Callable[[], Session] = Depends(get_session_factory),
) -> ResultCache:
    return ResultCache(session_factory)


def get_normalizer() -> FinancialDataNormalizer:
    return FinancialDataNormalizer()


def get_ocr_router(
    providers: List[OcrProvider] = Depends(get_ocr_providers),
    ledger: QuotaLedger = Depends(get_quota_ledger),
    runner: BestEffortRunner = Depends(get_task_runner),
    plan_resolver: PlanResolver = Depends(get_plan_resolver),
) -> OcrRouter:
    return OcrRouter(providers, ledger, runner, plan_resolver=plan_resolver)


def get_ocr_service(
    router: OcrRouter = Depends(get_ocr_router),
    cache: ResultCache = Depends(get_result_cache),
    normalizer: FinancialDataNormalizer = Depends(get_normalizer),
    runner: BestEffortRunner = Depends(get_task_runner),
) -> OcrService:
    return OcrService(router, cache, normalizer, runner)


@lru_cache
def get_storage() -> ReceiptStorage:
    return LocalReceiptStorage()


def get_matcher() -> TransactionMatcher:
    return TransactionMatcher()
