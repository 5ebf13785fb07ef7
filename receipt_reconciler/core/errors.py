from typing import List, Tuple


class NotFoundError(ValueError):
    pass


class ConflictError(ValueError):
    pass


class DocumentValidationError(ValueError):
    pass


class InvalidTaxIdError(DocumentValidationError):
    pass


class ProviderError(Exception):
    """A provider call failed (network, 5xx, malformed response)"""

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ProviderNotConfiguredError(ProviderError):
    pass


class QuotaExceededError(ProviderError):
    pass


class OcrExhaustedError(Exception):
    """Every provider in the chain failed or was skipped"""

    def __init__(self, failures: List[Tuple[str, str]]):
        self.failures = failures
        detail = "; ".join(f"{provider}: {error}" for provider, error in failures) or "no OCR provider configured"
        super().__init__(f"All OCR providers failed: {detail}")
