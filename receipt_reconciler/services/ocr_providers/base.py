import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import httpx

from receipt_reconciler.core.config import settings
from receipt_reconciler.core.errors import ProviderError, QuotaExceededError
from receipt_reconciler.schemas.ocr import OcrResult

logger = logging.getLogger(__name__)

QUOTA_STATUS_CODES = (402, 429)


class OcrProvider(ABC):
    """One OCR backend in the provider chain.

    Subclasses only know how to talk to their vendor. Ordering, quota checks
    and fallback belong to the router.
    """

    name: str = ""
    # Whether the router asks the quota ledger before calling this provider
    quota_checked: bool = True

    def __init__(self, client: Optional[httpx.Client] = None, timeout: Optional[float] = None):
        self.timeout = timeout or settings.ocr_request_timeout
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout, follow_redirects=True)
        return self._client

    @abstractmethod
    def is_configured(self) -> bool:
        ...

    @abstractmethod
    def process_document(self, document_url: str, mime_type: str) -> Dict[str, Any]:
        """Call the vendor and return its raw response"""

    @abstractmethod
    def to_canonical_format(self, raw: Dict[str, Any]) -> OcrResult:
        ...

    def run(self, document_url: str, mime_type: str) -> OcrResult:
        return self.to_canonical_format(self.process_document(document_url, mime_type))

    def _post_json(self, url: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = self.client.post(url, timeout=self.timeout, **kwargs)
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"request failed: {e}") from e
        self._raise_for_status(response)
        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(self.name, "response is not valid JSON") from e

    def _download(self, url: str) -> Tuple[bytes, str]:
        try:
            response = self.client.get(url, timeout=self.timeout)
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"document download failed: {e}") from e
        if response.status_code >= 400:
            raise ProviderError(self.name, f"document download failed with HTTP {response.status_code}")
        content_type = response.headers.get("content-type", "").split(";")[0].strip()
        return response.content, content_type

    def _raise_for_status(self, response: httpx.Response) -> None:
        if response.status_code < 400:
            return
        body = response.text[:300]
        if response.status_code in QUOTA_STATUS_CODES or "quota" in body.lower():
            raise QuotaExceededError(self.name, f"HTTP {response.status_code}: {body}")
        raise ProviderError(self.name, f"HTTP {response.status_code}: {body}")


def detect_mime_type(url: str, fallback: str = "application/pdf") -> str:
    lower_url = url.lower().split("?")[0]
    if lower_url.endswith(".pdf"):
        return "application/pdf"
    if lower_url.endswith(".png"):
        return "image/png"
    if lower_url.endswith((".jpg", ".jpeg")):
        return "image/jpeg"
    if lower_url.endswith(".webp"):
        return "image/webp"
    if lower_url.endswith(".gif"):
        return "image/gif"
    return fallback


def parse_json_payload(text: str) -> Dict[str, Any]:
    """Parse a model answer that should be JSON but may be wrapped in prose or fences"""
    try:
        return json.loads(text)
    except ValueError:
        pass
    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(0))
        except ValueError:
            logger.warning("could not parse JSON from model answer, keeping raw text")
    return {"raw_text": text, "confidence": 0.3, "parse_error": True}
