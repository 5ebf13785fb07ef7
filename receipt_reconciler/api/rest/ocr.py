import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends

from receipt_reconciler.api.deps import (
    get_ocr_router,
    get_ocr_service,
    get_quota_ledger,
    get_result_cache,
    to_http_error,
    verify_tenant,
)
from receipt_reconciler.core.errors import OcrExhaustedError
from receipt_reconciler.schemas.ocr import OcrDocumentRequest, ProviderUsage
from receipt_reconciler.services.ocr_cache_service import ResultCache
from receipt_reconciler.services.ocr_router import OcrRouter
from receipt_reconciler.services.ocr_service import OcrService
from receipt_reconciler.services.quota_service import QuotaLedger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tenants/{tenant_id}/ocr", tags=["ocr"])
maintenance_router = APIRouter(prefix="/ocr/maintenance", tags=["ocr"])


@router.post("/process", dependencies=[Depends(verify_tenant)])
def process_document(
    tenant_id: int,
    request: OcrDocumentRequest,
    ocr_service: OcrService = Depends(get_ocr_service),
) -> Dict[str, Any]:
    """Run the document through the provider chain and extract financial data"""
    try:
        return ocr_service.process_document(tenant_id, request.document_url, request.file_name, request.mime_type)
    except (ValueError, OcrExhaustedError) as e:
        raise to_http_error(e)


@router.get("/usage", response_model=List[ProviderUsage], dependencies=[Depends(verify_tenant)])
def usage(tenant_id: int, ledger: QuotaLedger = Depends(get_quota_ledger)):
    """Current month usage and remaining quota per provider"""
    return ledger.usage_stats(tenant_id)


@router.get("/providers", dependencies=[Depends(verify_tenant)])
def providers(tenant_id: int, ocr_router: OcrRouter = Depends(get_ocr_router)) -> List[Dict[str, Any]]:
    """Providers in the order they are tried"""
    return [
        {
            "name": provider.name,
            "configured": provider.is_configured(),
            "quota_checked": provider.quota_checked,
            "default": provider.name == ocr_router.default_provider,
        }
        for provider in ocr_router.provider_order()
    ]


@maintenance_router.post("/cleanup")
def cleanup(
    ledger: QuotaLedger = Depends(get_quota_ledger),
    cache: ResultCache = Depends(get_result_cache),
) -> Dict[str, int]:
    """Drop usage counters past retention and expired cache entries"""
    pruned = ledger.prune()
    purged = cache.purge_expired()
    logger.info("OCR maintenance: pruned %s counter(s), purged %s cache entr(ies)", pruned, purged)
    return {"pruned_counters": pruned, "purged_cache_entries": purged}
