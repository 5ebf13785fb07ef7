import logging
from typing import List, Optional, Sequence, Tuple

from receipt_reconciler.core.background import BestEffortRunner
from receipt_reconciler.core.config import settings
from receipt_reconciler.core.errors import ProviderError, QuotaExceededError
from receipt_reconciler.schemas.ocr import OcrResult, ProviderFailure
from receipt_reconciler.services.ocr_providers import OcrProvider
from receipt_reconciler.services.quota_service import QuotaLedger
from receipt_reconciler.services.tenant_service import PlanResolver

logger = logging.getLogger(__name__)


class OcrRouter:
    """Tries OCR providers one after another until one returns text.

    Built per request. Eligibility (configuration and quota) is evaluated on
    every call, nothing about a tenant is remembered between calls.
    """

    def __init__(
        self,
        providers: Sequence[OcrProvider],
        ledger: QuotaLedger,
        runner: BestEffortRunner,
        plan_resolver: Optional[PlanResolver] = None,
        default_provider: Optional[str] = None,
    ):
        self.providers = list(providers)
        self.ledger = ledger
        self.runner = runner
        self.plan_resolver = plan_resolver
        self.default_provider = default_provider if default_provider is not None else settings.ocr_default_provider

    def provider_order(self) -> List[OcrProvider]:
        promoted = [p for p in self.providers if p.name == self.default_provider]
        return promoted + [p for p in self.providers if p.name != self.default_provider]

    def process(self, document_url: str, file_name: str, mime_type: str, tenant_id: int) -> OcrResult:
        failures: List[Tuple[str, str]] = []

        for provider in self.provider_order():
            if not provider.is_configured():
                failures.append((provider.name, "not configured"))
                continue
            if provider.quota_checked and not self._has_quota(tenant_id, provider.name):
                logger.info("skipping %s for tenant %s: monthly quota exhausted", provider.name, tenant_id)
                failures.append((provider.name, "monthly quota exhausted"))
                continue

            try:
                result = provider.run(document_url, mime_type)
            except QuotaExceededError as e:
                logger.warning("%s reported quota exhaustion for tenant %s: %s", provider.name, tenant_id, e.message)
                failures.append((provider.name, f"quota exceeded: {e.message}"))
                if self.plan_resolver is not None:
                    self.plan_resolver.invalidate(tenant_id)
                continue
            except ProviderError as e:
                logger.warning("OCR provider %s failed: %s", provider.name, e.message)
                failures.append((provider.name, e.message))
                continue
            except Exception as e:
                logger.exception("OCR provider %s raised unexpectedly", provider.name)
                failures.append((provider.name, str(e) or e.__class__.__name__))
                continue

            if not result.success or not result.extracted_text.strip():
                failures.append((provider.name, result.error or "no text extracted"))
                continue

            self.runner.submit(
                f"OCR usage increment for tenant {tenant_id} on {provider.name}",
                self.ledger.increment,
                tenant_id,
                provider.name,
                {"file_name": file_name, "document_id": document_url, "success": True},
            )
            logger.info("document %s read by %s", file_name, provider.name)
            result.provider = provider.name
            result.errors = [ProviderFailure(provider=name, error=error) for name, error in failures]
            return result

        summary = "; ".join(f"{name}: {error}" for name, error in failures) or "no OCR provider registered"
        logger.error("all OCR providers failed for %s: %s", file_name, summary)
        return OcrResult(
            success=False,
            provider="none",
            error=f"All OCR providers failed: {summary}",
            errors=[ProviderFailure(provider=name, error=error) for name, error in failures],
        )

    def _has_quota(self, tenant_id: int, provider: str) -> bool:
        try:
            return self.ledger.has_quota(tenant_id, provider)
        except Exception:
            # A broken ledger must not take OCR down with it
            logger.warning("quota lookup failed for %s, treating as available", provider, exc_info=True)
            return True
