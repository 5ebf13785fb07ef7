import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from receipt_reconciler.core.background import BestEffortRunner
from receipt_reconciler.core.errors import DocumentValidationError, OcrExhaustedError
from receipt_reconciler.schemas.ocr import SUPPORTED_MIME_TYPES, OcrResponse
from receipt_reconciler.services.extraction_service import FinancialDataNormalizer
from receipt_reconciler.services.ocr_cache_service import ResultCache
from receipt_reconciler.services.ocr_router import OcrRouter

logger = logging.getLogger(__name__)


def validate_mime_type(mime_type: str) -> str:
    normalized = (mime_type or "").strip().lower()
    if normalized not in SUPPORTED_MIME_TYPES:
        raise DocumentValidationError(
            f"Unsupported file type: {mime_type or 'unknown'}. Supported formats: JPG, PNG, GIF, WebP, PDF, TIFF, BMP"
        )
    return normalized


class OcrService:
    """Document in, canonical financial data out.

    The result cache is consulted first; a hit never reaches a provider and
    never consumes quota. Cache writes happen on the best-effort runner.
    """

    def __init__(
        self,
        router: OcrRouter,
        cache: ResultCache,
        normalizer: FinancialDataNormalizer,
        runner: BestEffortRunner,
    ):
        self.router = router
        self.cache = cache
        self.normalizer = normalizer
        self.runner = runner

    def process_document(self, tenant_id: int, document_url: str, file_name: str, mime_type: str) -> Dict[str, Any]:
        if not document_url or not document_url.strip():
            raise DocumentValidationError("Document URL is required")
        mime_type = validate_mime_type(mime_type)

        key = ResultCache.url_key(document_url)
        cached = self._cached(key)
        if cached is not None:
            logger.info("OCR cache hit for %s", file_name)
            return cached

        result = self.router.process(document_url, file_name, mime_type, tenant_id)
        if not result.success:
            raise OcrExhaustedError([(failure.provider, failure.error) for failure in result.errors])

        financial = self.normalizer.normalize(result.extracted_text, structured=result.structured)
        fallback_errors: List[Dict[str, str]] = [failure.model_dump() for failure in result.errors]
        response = OcrResponse(
            success=True,
            provider=result.provider,
            extracted_text=result.extracted_text,
            financial_analysis=financial,
            metadata={
                **result.metadata,
                "file_name": file_name,
                "mime_type": mime_type,
                "processed_at": datetime.now(timezone.utc).isoformat(),
                "fallback_errors": fallback_errors,
            },
            message=f"Document processed with {result.provider}",
        ).model_dump(mode="json")

        self.runner.submit(f"OCR cache write for {file_name}", self.cache.set, key, response)
        return response

    def _cached(self, key: str):
        try:
            return self.cache.get(key)
        except Exception:
            logger.warning("OCR cache read failed, continuing without cache", exc_info=True)
            return None
