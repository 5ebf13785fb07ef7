import base64
from typing import Any, Dict, Optional

import httpx

from receipt_reconciler.core.config import settings
from receipt_reconciler.core.errors import ProviderError, ProviderNotConfiguredError
from receipt_reconciler.schemas.ocr import OcrResult
from receipt_reconciler.services.ocr_providers.base import OcrProvider, detect_mime_type


class GoogleDocumentAIProvider(OcrProvider):
    """Google Document AI processor, free tier capped at 1000 pages a month"""

    name = "google-document-ai"
    quota_checked = True

    def __init__(
        self,
        access_token: Optional[str] = None,
        project_id: Optional[str] = None,
        location: Optional[str] = None,
        processor_id: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(client=client, timeout=timeout)
        self.access_token = access_token if access_token is not None else settings.google_documentai_access_token
        self.project_id = project_id if project_id is not None else settings.google_project_id
        self.location = location or settings.google_location
        self.processor_id = processor_id if processor_id is not None else settings.google_processor_id

    def is_configured(self) -> bool:
        return bool(self.access_token and self.project_id and self.processor_id)

    @property
    def endpoint(self) -> str:
        return (
            f"https://{self.location}-documentai.googleapis.com/v1/projects/{self.project_id}"
            f"/locations/{self.location}/processors/{self.processor_id}:process"
        )

    def process_document(self, document_url: str, mime_type: str) -> Dict[str, Any]:
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.name, "Document AI project, processor or token is missing")

        content, content_type = self._download(document_url)
        resolved_type = content_type or mime_type
        if not resolved_type or resolved_type == "application/octet-stream":
            resolved_type = detect_mime_type(document_url)
        body = {
            "rawDocument": {
                "content": base64.b64encode(content).decode("ascii"),
                "mimeType": resolved_type,
            }
        }
        return self._post_json(
            self.endpoint,
            json=body,
            headers={"Authorization": f"Bearer {self.access_token}"},
        )

    def to_canonical_format(self, raw: Dict[str, Any]) -> OcrResult:
        document = raw.get("document")
        if not document:
            raise ProviderError(self.name, "response has no document")
        entities = [
            {
                "type": entity.get("type"),
                "text": entity.get("mentionText"),
                "confidence": entity.get("confidence"),
            }
            for entity in document.get("entities") or []
        ]
        return OcrResult(
            success=True,
            extracted_text=document.get("text") or "",
            provider=self.name,
            data={"entities": entities},
            metadata={"pages_processed": len(document.get("pages") or []) or 1},
        )
