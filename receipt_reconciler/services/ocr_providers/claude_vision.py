import base64
from typing import Any, Dict, Optional

import httpx

from receipt_reconciler.core.config import settings
from receipt_reconciler.core.errors import ProviderError, ProviderNotConfiguredError
from receipt_reconciler.schemas.ocr import OcrResult
from receipt_reconciler.services.ocr_providers.base import OcrProvider, detect_mime_type, parse_json_payload

ANTHROPIC_VERSION = "2023-06-01"

SYSTEM_PROMPT = """You extract data from French financial documents (invoices, receipts, till tickets, expense notes).

Return ONLY valid JSON, no text before or after, with this structure:
{
  "document_type": "FACTURE" | "AVOIR" | "DEVIS" | "AUTRE",
  "invoice_number": "string",
  "invoice_date": "YYYY-MM-DD",
  "due_date": "YYYY-MM-DD or null",
  "vendor": {"name": "", "address": "", "city": "", "postal_code": "", "siret": "14 digits",
             "siren": "9 digits", "vat_number": "FR + 11 digits", "rcs": "", "email": "", "phone": ""},
  "client": {"name": "", "address": "", "client_number": ""},
  "items": [{"description": "", "quantity": 1, "unit_price_ht": 0.0, "vat_rate": 20,
             "total_ht": 0.0, "total_ttc": 0.0}],
  "totals": {"total_ht": 0.0, "total_vat": 0.0, "total_ttc": 0.0},
  "payment_details": {"method": "CARD|CASH|CHECK|TRANSFER|DIRECT_DEBIT|UNKNOWN", "iban": "", "bic": ""},
  "category": "OFFICE_SUPPLIES|EQUIPMENT|TRAVEL|MEALS|MARKETING|TRAINING|SERVICES|RENT|UTILITIES|INSURANCE|SUBSCRIPTIONS|OTHER",
  "currency": "EUR",
  "confidence": 0.95
}

Rules:
- Amounts are numbers without currency symbols.
- Dates on French documents are DD/MM/YYYY: "02/11/2025" is 2 November 2025, output "2025-11-02".
- The vendor issues the document; the client receives and pays it. Do not mix their identifiers.
- Use null for anything absent."""

USER_PROMPT = (
    "Read every line of this financial document. The name at the top is vendor.name, "
    "the TOTAL / NET A PAYER at the bottom is totals.total_ttc. Extract the date, every line item, "
    "HT/TVA/TTC totals and the payment method. Return only the JSON."
)


class ClaudeVisionProvider(OcrProvider):
    """Anthropic messages API reading the document image or PDF directly"""

    name = "claude-vision"
    quota_checked = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        endpoint: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(client=client, timeout=timeout)
        self.api_key = api_key if api_key is not None else settings.anthropic_api_key
        self.model = model or settings.anthropic_model
        self.endpoint = endpoint or settings.anthropic_endpoint

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def process_document(self, document_url: str, mime_type: str) -> Dict[str, Any]:
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.name, "ANTHROPIC_API_KEY is not set")

        content, content_type = self._download(document_url)
        media_type = content_type or mime_type or detect_mime_type(document_url)
        if media_type == "application/octet-stream":
            media_type = detect_mime_type(document_url)
        block_type = "document" if media_type == "application/pdf" else "image"

        payload = {
            "model": self.model,
            "max_tokens": 4096,
            "temperature": 0,
            "system": SYSTEM_PROMPT,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": block_type,
                            "source": {
                                "type": "base64",
                                "media_type": media_type,
                                "data": base64.b64encode(content).decode("ascii"),
                            },
                        },
                        {"type": "text", "text": USER_PROMPT},
                    ],
                }
            ],
        }
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }
        return self._post_json(self.endpoint, json=payload, headers=headers)

    def to_canonical_format(self, raw: Dict[str, Any]) -> OcrResult:
        text = next(
            (block.get("text", "") for block in raw.get("content") or [] if block.get("type") == "text"),
            "",
        )
        if not text:
            raise ProviderError(self.name, "no text block in response")

        data = parse_json_payload(text)
        vendor = data.get("vendor") or {}
        client = data.get("client") or {}
        totals = data.get("totals") or {}
        payment = data.get("payment_details") or {}

        structured = {
            "vendor": {
                "name": vendor.get("name"),
                "siret": vendor.get("siret"),
                "siren": vendor.get("siren"),
                "vat_number": vendor.get("vat_number"),
                "rcs": vendor.get("rcs"),
                "address": vendor.get("address"),
                "city": vendor.get("city"),
                "postal_code": vendor.get("postal_code"),
                "email": vendor.get("email"),
                "phone": vendor.get("phone"),
            },
            "client": {
                "name": client.get("name"),
                "address": client.get("address"),
                "client_number": client.get("client_number"),
            },
            "invoice": {
                "number": data.get("invoice_number"),
                "date": data.get("invoice_date"),
                "due_date": data.get("due_date"),
            },
            "amounts": {
                "total_ht": totals.get("total_ht"),
                "total_vat": totals.get("total_vat"),
                "total_ttc": totals.get("total_ttc"),
                "currency": data.get("currency") or "EUR",
            },
            "items": data.get("items") or [],
            "payment": {
                "method": payment.get("method"),
                "iban": payment.get("iban"),
                "bic": payment.get("bic"),
            },
            "category": data.get("category"),
            "confidence": data.get("confidence"),
        }
        usage = raw.get("usage") or {}
        return OcrResult(
            success=True,
            extracted_text=text,
            provider=self.name,
            structured=None if data.get("parse_error") else structured,
            data=data,
            metadata={
                "model": raw.get("model", self.model),
                "input_tokens": usage.get("input_tokens", 0),
                "output_tokens": usage.get("output_tokens", 0),
            },
        )
