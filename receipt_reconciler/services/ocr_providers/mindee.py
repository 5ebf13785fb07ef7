from typing import Any, Dict, List, Optional

import httpx

from receipt_reconciler.core.config import settings
from receipt_reconciler.core.errors import ProviderError, ProviderNotConfiguredError
from receipt_reconciler.schemas.ocr import OcrResult
from receipt_reconciler.services.ocr_providers.base import OcrProvider


def _value(field: Optional[Dict[str, Any]]) -> Any:
    return field.get("value") if isinstance(field, dict) else None


class MindeeProvider(OcrProvider):
    """Mindee invoice API, free tier capped at 250 pages a month"""

    name = "mindee"
    quota_checked = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(client=client, timeout=timeout)
        self.api_key = api_key if api_key is not None else settings.mindee_api_key
        self.endpoint = endpoint or settings.mindee_endpoint

    def is_configured(self) -> bool:
        return bool(self.api_key)

    def process_document(self, document_url: str, mime_type: str) -> Dict[str, Any]:
        if not self.is_configured():
            raise ProviderNotConfiguredError(self.name, "MINDEE_API_KEY is not set")
        return self._post_json(
            self.endpoint,
            json={"document": document_url},
            headers={"Authorization": f"Token {self.api_key}"},
        )

    def to_canonical_format(self, raw: Dict[str, Any]) -> OcrResult:
        prediction = ((raw.get("document") or {}).get("inference") or {}).get("prediction")
        if not prediction:
            raise ProviderError(self.name, "response has no prediction")

        registrations = prediction.get("supplier_company_registrations") or []
        siret = next((r.get("value") for r in registrations if r.get("type") == "SIRET"), None)
        vat_number = next((r.get("value") for r in registrations if r.get("type") == "VAT NUMBER"), None)
        items = [
            {
                "description": item.get("description"),
                "quantity": item.get("quantity"),
                "unit_price_ht": item.get("unit_price"),
                "total_ttc": item.get("total_amount"),
                "vat_rate": item.get("tax_rate"),
            }
            for item in prediction.get("line_items") or []
        ]
        locale = prediction.get("locale") or {}

        structured = {
            "vendor": {
                "name": _value(prediction.get("supplier_name")),
                "siret": siret,
                "vat_number": vat_number,
                "address": _value(prediction.get("supplier_address")),
                "email": _value(prediction.get("supplier_email")),
                "phone": _value(prediction.get("supplier_phone_number")),
            },
            "client": {
                "name": _value(prediction.get("customer_name")),
                "address": _value(prediction.get("customer_address")),
            },
            "invoice": {
                "number": _value(prediction.get("invoice_number")),
                "date": _value(prediction.get("date")),
                "due_date": _value(prediction.get("due_date")),
            },
            "amounts": {
                "total_ht": _value(prediction.get("total_net")),
                "total_vat": _value(prediction.get("total_tax")),
                "total_ttc": _value(prediction.get("total_amount")),
                "currency": locale.get("currency") or "EUR",
            },
            "items": items,
            "payment": {},
            "confidence": self._confidence(prediction),
        }
        return OcrResult(
            success=True,
            extracted_text=self._build_text(prediction),
            provider=self.name,
            structured=structured,
            data=prediction,
            metadata={"document_type": _value(prediction.get("document_type")) or "INVOICE"},
        )

    @staticmethod
    def _build_text(prediction: Dict[str, Any]) -> str:
        lines: List[str] = []
        labelled = (
            ("Fournisseur", "supplier_name"),
            ("Adresse", "supplier_address"),
            ("Facture N°", "invoice_number"),
            ("Date", "date"),
            ("Échéance", "due_date"),
            ("Client", "customer_name"),
        )
        for label, key in labelled:
            value = _value(prediction.get(key))
            if value:
                lines.append(f"{label}: {value}")
        for item in prediction.get("line_items") or []:
            lines.append(f"- {item.get('description') or 'Article'}: {item.get('total_amount')}€")
        for label, key in (("Total HT", "total_net"), ("Total TVA", "total_tax"), ("Total TTC", "total_amount")):
            value = _value(prediction.get(key))
            if value is not None:
                lines.append(f"{label}: {value}€")
        return "\n".join(lines)

    @staticmethod
    def _confidence(prediction: Dict[str, Any]) -> float:
        scores = [
            (prediction.get(key) or {}).get("confidence")
            for key in ("invoice_number", "date", "total_amount", "supplier_name")
        ]
        scores = [s for s in scores if isinstance(s, (int, float))]
        return round(sum(scores) / len(scores), 2) if scores else 0.0
