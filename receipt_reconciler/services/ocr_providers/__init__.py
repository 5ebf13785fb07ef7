from typing import List, Optional

import httpx

from receipt_reconciler.services.ocr_providers.base import OcrProvider
from receipt_reconciler.services.ocr_providers.claude_vision import ClaudeVisionProvider
from receipt_reconciler.services.ocr_providers.mindee import MindeeProvider
from receipt_reconciler.services.ocr_providers.google_document_ai import GoogleDocumentAIProvider
from receipt_reconciler.services.ocr_providers.mistral import MistralOcrProvider


def default_providers(client: Optional[httpx.Client] = None) -> List[OcrProvider]:
    """Every known backend, in fixed fallback order"""
    return [
        ClaudeVisionProvider(client=client),
        MindeeProvider(client=client),
        GoogleDocumentAIProvider(client=client),
        MistralOcrProvider(client=client),
    ]


__all__ = [
    "OcrProvider",
    "ClaudeVisionProvider",
    "MindeeProvider",
    "GoogleDocumentAIProvider",
    "MistralOcrProvider",
    "default_providers",
]
