from typing import Any, Dict, Optional

import httpx

from receipt_reconciler.core.config import settings
from receipt_reconciler.core.errors import ProviderError, ProviderNotConfiguredError
from receipt_reconciler.schemas.ocr import OcrResult
from receipt_reconciler.services.ocr_providers.base import OcrProvider


class MistralOcrProvider(OcrProvider):
    """Mistral OCR, a paid API with no monthly cap"""

    name = "mistral"
    quota_checked = False

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(client=client, timeout=timeout)
        self.api_key = api_key if api_key is not None else settings.mistral_api_key
        self.model = model or settings.mistral_ocr_model
        self.endpoint = endpoint or settings.mistral_ocr_endpoint

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def process_document(self, document_url: str, mime_type: str) -> Dict[str, Any]:
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.name, "MISTRAL_API_KEY is not set")

        if mime_type.startswith("image/"):
            document = {"type": "image_url", "image_url": document_url}
        else:
            document = {"type": "document_url", "document_url": document_url}
        return self._post_json(
            self.endpoint,
            json={"model": self.model, "document": document, "include_image_base64": False},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    def to_canonical_format(self, raw: Dict[str, Any]) -> OcrResult:
        pages = raw.get("pages")
        if not isinstance(pages, list):
            raise ProviderError(self.name, "response has no pages")
        text = "\n\n".join(page.get("markdown") or page.get("text") or "" for page in pages).strip()
        usage = raw.get("usage_info") or {}
        return OcrResult(
            success=True,
            extracted_text=text,
            provider=self.name,
            data={"pages": len(pages)},
            metadata={
                "model": raw.get("model", self.model),
                "pages_processed": usage.get("pages_processed", len(pages)),
            },
        )
