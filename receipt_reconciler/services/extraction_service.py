import json
import logging
import re
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Tuple

from receipt_reconciler.core.config import settings
from receipt_reconciler.core.errors import InvalidTaxIdError
from receipt_reconciler.schemas.ocr import (
    Amounts,
    ClientInfo,
    DocumentDates,
    FinancialData,
    LineItem,
    PaymentDetails,
    VendorInfo,
)

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Amounts never span a line break: "1 234,56", "99.90"
_AMOUNT = r"([0-9][0-9 \u00a0\u202f]*[,.]\d{2})"
_DATE = r"(\d{1,2}[/.\-]\d{1,2}[/.\-]\d{2,4})"


def _compile(*patterns: str, flags: int = re.IGNORECASE) -> List[Pattern]:
    return [re.compile(p, flags) for p in patterns]


# French invoice patterns, first match wins per field
INVOICE_PATTERNS: Dict[str, List[Pattern]] = {
    "document_number": _compile(
        r"(?:Facture|Invoice|N°\s*facture|Numéro\s*de\s*facture|Réf\.?\s*facture|N°)[:\s]*([A-Z]{0,4}[-/]?\d{4,}[-/]?\d{0,6})",
        r"\b(?:FA|FAC|FACT|INV)[-/]?(\d{4,}[-/]?\d{0,6})",
    ),
    "issue_date": _compile(
        r"Date\s*(?:de\s*)?(?:facture|émission|facturation)?[:\s]*" + _DATE,
        r"\b(?:Le|Du|Émise?\s*le)\b[:\s]*" + _DATE,
        r"(\d{1,2}[/.\-]\d{1,2}[/.\-]\d{4})",
    ),
    "due_date": _compile(
        r"(?:Échéance|Date\s*d['’]échéance|Date\s*limite|Payable\s*(?:avant\s*le|le)|À\s*payer\s*avant)[:\s]*" + _DATE,
    ),
    "total_ttc": _compile(
        r"(?:Total\s*TTC|Montant\s*TTC|Net\s*à\s*payer|Total\s*à\s*payer)[:\s€]*" + _AMOUNT,
        r"\bTotal[:\s€]*" + _AMOUNT,
    ),
    "total_ht": _compile(
        r"(?:Total\s*HT|Montant\s*HT|Base\s*HT|Sous-?total\s*HT)[:\s€]*" + _AMOUNT,
        r"\bHT[:\s€]*" + _AMOUNT,
    ),
    "total_vat": _compile(
        r"(?:Montant\s*TVA|Total\s*TVA|\bTVA)[:\s€]*" + _AMOUNT,
        r"\bTVA\s*\(?\s*\d+(?:[,.]\d+)?\s*%\s*\)?[:\s€]*" + _AMOUNT,
    ),
    "vat_rate": _compile(
        r"(?:Taux\s*(?:de\s*)?TVA|\bTVA)\s*\(?[:\s]*(\d{1,2}(?:[,.]\d{1,2})?)\s*%",
        r"(\d{1,2}(?:[,.]\d{1,2})?)\s*%",
    ),
    "siret": _compile(r"SIRET[:\s]*(\d[\d ]{7,18}\d)"),
    "siren": _compile(r"SIREN[:\s]*(\d[\d ]{5,12}\d)"),
    "vat_number": _compile(
        r"(?:TVA\s*intra(?:communautaire)?|N°\s*TVA|VAT|Identifiant\s*TVA)[:\s]*(FR[\d ]{8,16}\d)",
        r"\b(FR\s?\d{2}\s?\d{3}\s?\d{3}\s?\d{3})\b",
    ),
    "rcs": _compile(r"\bRCS\s+([A-Za-zÀ-ÿ\-]+(?:\s+[AB])?\s+\d{3}\s?\d{3}\s?\d{3})"),
    "iban": _compile(r"IBAN[:\s]*([A-Z]{2}\d{2}(?: ?[A-Z0-9]{4}){2,7}(?: ?[A-Z0-9]{1,4})?)"),
    "bic": _compile(r"(?:BIC|SWIFT)[:\s]*([A-Z]{4}[A-Z]{2}[A-Z0-9]{2}(?:[A-Z0-9]{3})?)\b"),
    "email": _compile(r"([a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,})"),
    "phone": _compile(
        r"(?:Tél\.?|Téléphone|Tel\.?|Phone)[:\s]*((?:0|\+33)\s?[1-9](?:[\s.\-]?\d{2}){4})",
        r"((?:0|\+33)[1-9](?:[\s.\-]?\d{2}){4})",
    ),
    "payment_method": _compile(
        r"(?:Mode\s*de\s*paiement|Paiement|Règlement)[:\s]*(Carte\s*(?:bancaire|bleue)|CB|Virement|Chèque|Espèces|Prélèvement)",
        r"\b(Carte\s*(?:bancaire|bleue)|CB|Virement|Chèque|Espèces|Prélèvement)\b",
    ),
}

# Case matters here: a city starts with a capital letter
POSTAL_CODE_CITY = re.compile(r"(?<!\d)(?<!\d )\b(\d{5})[ \t]+([A-ZÀ-Ÿ][A-Za-zÀ-ÿ\-' ]+)")

EXPENSE_CATEGORIES: Dict[str, List[str]] = {
    "OFFICE_SUPPLIES": ["fourniture", "bureau", "papeterie", "cartouche", "encre", "stylo", "classeur", "papier"],
    "EQUIPMENT": ["ordinateur", "écran", "clavier", "souris", "imprimante", "scanner", "téléphone", "matériel",
                  "équipement", "informatique"],
    "TRAVEL": ["transport", "train", "avion", "taxi", "uber", "vtc", "essence", "carburant", "péage", "parking",
               "hôtel", "hébergement"],
    "MEALS": ["restaurant", "repas", "déjeuner", "dîner", "café", "traiteur", "restauration"],
    "MARKETING": ["publicité", "marketing", "communication", "flyer", "affiche", "pub", "google ads", "facebook"],
    "TRAINING": ["formation", "cours", "séminaire", "conférence", "atelier", "coaching"],
    "SERVICES": ["prestation", "service", "conseil", "consulting", "maintenance", "réparation", "nettoyage"],
    "RENT": ["loyer", "location", "bail", "charges locatives"],
    "UTILITIES": ["électricité", "gaz", "eau", "internet", "télécom", "abonnement", "edf", "engie"],
    "INSURANCE": ["assurance", "mutuelle", "prévoyance"],
    "SUBSCRIPTIONS": ["abonnement", "licence", "saas", "logiciel", "software"],
}

_CATEGORY_PATTERNS: List[Tuple[str, Pattern]] = [
    (category, re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")", re.IGNORECASE))
    for category, keywords in EXPENSE_CATEGORIES.items()
]

SYSTEM_PROMPT = (
    "Expert en extraction de factures françaises. Montants: virgule -> point. "
    "Dates: JJ/MM/AAAA -> YYYY-MM-DD. Réponds uniquement en JSON."
)

JSON_SHAPE = """{
  "vendor": {"name": "", "siret": "", "siren": "", "vat_number": "", "rcs": "", "address": "", "city": "", "postal_code": "", "email": "", "phone": ""},
  "client": {"name": "", "address": "", "client_number": ""},
  "invoice": {"number": "", "date": "YYYY-MM-DD", "due_date": null},
  "amounts": {"total_ht": 0, "total_vat": 0, "total_ttc": 0, "currency": "EUR"},
  "items": [{"description": "", "quantity": 1, "unit_price_ht": 0, "total_ht": 0, "total_ttc": 0, "vat_rate": 20}],
  "payment": {"method": "", "iban": "", "bic": ""},
  "category": "OFFICE_SUPPLIES|EQUIPMENT|TRAVEL|MEALS|MARKETING|TRAINING|SERVICES|RENT|UTILITIES|INSURANCE|SUBSCRIPTIONS|OTHER",
  "confidence": 0.0
}"""


# ---------------------------------------------------------------------------
# Value helpers
# ---------------------------------------------------------------------------

def parse_amount(value: Any) -> Optional[Decimal]:
    """Parse ``1 234,56 €``, ``1.234,56``, ``1,234.56`` or a number into a 2-decimal Decimal"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float, Decimal)):
        return _finite_cents(str(value))
    cleaned = re.sub(r"[\s€]", "", str(value))
    if not cleaned:
        return None
    if "," in cleaned and "." in cleaned:
        # Whichever separator comes last is the decimal one
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    else:
        cleaned = cleaned.replace(",", ".")
    return _finite_cents(cleaned)


def _finite_cents(text: str) -> Optional[Decimal]:
    # NaN and Infinity parse as Decimals but are never amounts
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(value: Decimal) -> str:
    """French display format: ``1 234,56``"""
    quantized = Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    return f"{quantized:,.2f}".replace(",", " ").replace(".", ",")


def _digits(value: Any) -> str:
    return re.sub(r"\s", "", str(value))


def validate_siret(value: Any) -> str:
    cleaned = _digits(value)
    if not re.fullmatch(r"\d{14}", cleaned):
        raise InvalidTaxIdError(f"Invalid SIRET '{value}': must be exactly 14 digits")
    return cleaned


def validate_siren(value: Any) -> str:
    cleaned = _digits(value)
    if not re.fullmatch(r"\d{9}", cleaned):
        raise InvalidTaxIdError(f"Invalid SIREN '{value}': must be exactly 9 digits")
    return cleaned


def validate_vat_number(value: Any) -> str:
    cleaned = _digits(value).upper()
    if not re.fullmatch(r"FR\d{11}", cleaned):
        raise InvalidTaxIdError(f"Invalid VAT number '{value}': expected FR followed by 11 digits")
    return cleaned


def validate_iban(value: Any) -> str:
    cleaned = _digits(value).upper()
    if not re.fullmatch(r"[A-Z]{2}\d{2}[A-Z0-9]{10,30}", cleaned):
        raise InvalidTaxIdError(f"Invalid IBAN '{value}'")
    # ISO 13616 mod-97 check
    rearranged = cleaned[4:] + cleaned[:4]
    numeric = "".join(str(int(ch, 36)) for ch in rearranged)
    if int(numeric) % 97 != 1:
        raise InvalidTaxIdError(f"Invalid IBAN '{value}': checksum mismatch")
    return cleaned


def normalize_document_date(value: Any) -> Optional[str]:
    """Return ``YYYY-MM-DD`` for an ISO or French ``DD/MM/YYYY`` date, None otherwise"""
    if not value:
        return None
    text = str(value).strip()
    iso = re.fullmatch(r"(\d{4})-(\d{2})-(\d{2})(?:[T ].*)?", text)
    if iso:
        year, month, day = (int(part) for part in iso.groups())
    else:
        french = re.fullmatch(r"(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2,4})", text)
        if not french:
            return None
        day, month, year = (int(part) for part in french.groups())
        if year < 100:
            year += 1900 if year > 50 else 2000
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def normalize_payment_method(method: Optional[str]) -> str:
    if not method:
        return "unknown"
    lower = str(method).lower()
    if "prélèvement" in lower or "prelevement" in lower or "direct" in lower:
        return "direct_debit"
    if "carte" in lower or re.search(r"\bcb\b", lower) or "card" in lower:
        return "card"
    if "virement" in lower or "transfer" in lower:
        return "transfer"
    if "chèque" in lower or "cheque" in lower or "check" in lower:
        return "check"
    if "espèce" in lower or "espece" in lower or "cash" in lower:
        return "cash"
    return "unknown"


def infer_tax_rate(total_ht: Optional[Decimal], total_vat: Optional[Decimal]) -> Optional[Decimal]:
    """Snap the VAT/HT ratio to the usual French rates"""
    if not total_ht or total_vat is None:
        return None
    rate = total_vat / total_ht * 100
    if Decimal("19") <= rate <= Decimal("21"):
        return Decimal("20")
    if Decimal("9.5") <= rate <= Decimal("10.5"):
        return Decimal("10")
    if Decimal("5") <= rate <= Decimal("6"):
        return Decimal("5.5")
    if Decimal("2") <= rate <= Decimal("3"):
        return Decimal("2.1")
    return rate.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def detect_category(ai_category: Optional[str], *texts: Optional[str]) -> str:
    if ai_category and ai_category.upper() in EXPENSE_CATEGORIES:
        return ai_category.upper()
    haystack = "\n".join(t for t in texts if t)
    for category, pattern in _CATEGORY_PATTERNS:
        if pattern.search(haystack):
            return category
    return "OTHER"


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = re.sub(r"\s+", " ", str(value)).strip()
    return text or None


def _first_valid(
    validator: Callable[[Any], str], candidates: Iterable[Any], warnings: List[str]
) -> Optional[str]:
    """First candidate the validator accepts; rejections are reported only if nothing passes"""
    rejected = []
    for candidate in candidates:
        if not candidate:
            continue
        try:
            return validator(candidate)
        except InvalidTaxIdError as e:
            rejected.append(str(e))
    warnings.extend(rejected)
    return None


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class FinancialDataNormalizer:
    """Turns OCR output into :class:`FinancialData`.

    Two passes run over the text: a battery of French invoice regexes and an
    OpenAI-compatible chat model. AI values win, regex values fill the gaps,
    then missing HT/VAT/TTC totals are derived from the other two.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        max_retries: Optional[int] = None,
        client: Any = None,
        enabled: Optional[bool] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.extraction_api_key
        self.base_url = base_url or settings.extraction_base_url
        self.model = model or settings.extraction_model
        self.fallback_model = fallback_model or settings.extraction_fallback_model
        self.max_retries = settings.extraction_max_retries if max_retries is None else max_retries
        self.enabled = settings.ai_enabled if enabled is None else enabled
        self._client = client

    def is_configured(self) -> bool:
        return self.enabled and (self._client is not None or bool(self.api_key))

    def normalize(self, text: str, structured: Optional[Dict[str, Any]] = None) -> FinancialData:
        text = text or ""
        regex_data = self.extract_with_patterns(text)
        if structured:
            ai_data = structured
        elif text.strip():
            ai_data = self.extract_with_ai(text, regex_data)
        else:
            ai_data = {}
        return self.merge(regex_data, ai_data, text)

    # -- pattern pass -----------------------------------------------------

    def extract_with_patterns(self, text: str) -> Dict[str, Any]:
        result: Dict[str, Any] = {field: None for field in INVOICE_PATTERNS}
        result["postal_code"] = None
        result["city"] = None

        for field, patterns in INVOICE_PATTERNS.items():
            for pattern in patterns:
                match = pattern.search(text)
                if match:
                    result[field] = self._clean_value(field, match.group(1))
                    break

        postal = POSTAL_CODE_CITY.search(text)
        if postal:
            result["postal_code"] = postal.group(1)
            result["city"] = postal.group(2).strip()
        return result

    @staticmethod
    def _clean_value(field: str, value: str) -> Any:
        if field in ("total_ttc", "total_ht", "total_vat"):
            return parse_amount(value)
        if field == "vat_rate":
            try:
                return Decimal(value.replace(",", "."))
            except InvalidOperation:
                return None
        if field in ("siret", "siren"):
            return _digits(value)
        if field in ("vat_number", "iban", "bic"):
            return _digits(value).upper()
        return _clean_text(value)

    # -- AI pass ----------------------------------------------------------

    def extract_with_ai(self, text: str, hints: Dict[str, Any]) -> Dict[str, Any]:
        """Ask the model for the extraction shape; ``{}`` when unconfigured or every attempt failed"""
        if not self.is_configured():
            logger.debug("AI extraction skipped: no API key configured")
            return {}

        client = self._get_client()
        last_error = None
        attempts = self.max_retries + 1
        for attempt in range(1, attempts + 1):
            model = self.fallback_model if attempt == attempts and attempt > 1 else self.model
            prompt = self._detailed_prompt(text) if attempt == 2 else self._prompt(text, hints)
            try:
                response = client.chat.completions.create(
                    model=model,
                    messages=[
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=0.1 if attempt == 1 else 0.2,
                    response_format={"type": "json_object"},
                    max_tokens=2500 if attempt == 1 else 3500,
                )
                content = response.choices[0].message.content
                if not content:
                    last_error = "empty answer"
                    continue
                data = json.loads(content)
                if self._is_usable(data):
                    return data
                last_error = "incomplete extraction"
            except Exception as e:
                last_error = str(e)
                logger.warning("AI extraction attempt %s with %s failed: %s", attempt, model, e)

        logger.warning("AI extraction gave up after %s attempts: %s", attempts, last_error)
        return {}

    def _get_client(self):
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    @staticmethod
    def _is_usable(data: Any) -> bool:
        if not isinstance(data, dict):
            return False
        amounts = data.get("amounts") or {}
        has_amount = any((parse_amount(amounts.get(k)) or 0) > 0 for k in ("total_ttc", "total_ht"))
        has_number = bool((data.get("invoice") or {}).get("number"))
        has_vendor = len((data.get("vendor") or {}).get("name") or "") > 2
        return has_amount or has_number or has_vendor

    @staticmethod
    def _prompt(text: str, hints: Dict[str, Any]) -> str:
        truncated = text if len(text) <= 6000 else text[:6000] + "..."
        known = {k: str(v) for k, v in hints.items() if v is not None}
        return (
            "Analyse cette facture française et extrais les données en JSON.\n\n"
            f"DOCUMENT:\n{truncated}\n\n"
            f"INDICES (extraction par motifs): {json.dumps(known, ensure_ascii=False)}\n\n"
            "RÈGLES:\n"
            "- Montants: convertir la virgule en point (1 234,56 -> 1234.56)\n"
            "- Dates: format YYYY-MM-DD\n"
            "- SIRET: 14 chiffres, TVA: FR + 11 chiffres\n"
            "- Si absent: null\n\n"
            f"JSON REQUIS:\n{JSON_SHAPE}"
        )

    @staticmethod
    def _detailed_prompt(text: str) -> str:
        truncated = text if len(text) <= 8000 else text[:8000] + "..."
        return (
            "Analyse cette facture française avec une extrême précision.\n\n"
            f'DOCUMENT:\n"""\n{truncated}\n"""\n\n'
            "INSTRUCTIONS:\n"
            "1. VENDEUR: l'entreprise qui ÉMET la facture, pas le client\n"
            "2. SIRET: 14 chiffres consécutifs (espaces possibles)\n"
            "3. TVA INTRACOM: FR suivi de 11 chiffres\n"
            "4. MONTANTS: \"Total TTC\", \"Net à payer\", \"Montant TTC\", virgule convertie en point\n"
            "5. DATE: JJ/MM/AAAA convertie en YYYY-MM-DD\n"
            "6. NUMÉRO: \"Facture n°\", \"N° facture\", \"Invoice\"\n\n"
            f"RÉPONDS UNIQUEMENT EN JSON:\n{JSON_SHAPE}"
        )

    # -- merge ------------------------------------------------------------

    def merge(self, regex_data: Dict[str, Any], ai_data: Dict[str, Any], text: str) -> FinancialData:
        warnings: List[str] = []
        vendor_ai = ai_data.get("vendor") or {}
        client_ai = ai_data.get("client") or {}
        invoice_ai = ai_data.get("invoice") or {}
        amounts_ai = ai_data.get("amounts") or {}
        payment_ai = ai_data.get("payment") or {}

        vendor = VendorInfo(
            name=_clean_text(vendor_ai.get("name")),
            siret=_first_valid(validate_siret, (vendor_ai.get("siret"), regex_data.get("siret")), warnings),
            siren=_first_valid(validate_siren, (vendor_ai.get("siren"), regex_data.get("siren")), warnings),
            vat_number=_first_valid(
                validate_vat_number, (vendor_ai.get("vat_number"), regex_data.get("vat_number")), warnings
            ),
            rcs=_clean_text(vendor_ai.get("rcs")) or regex_data.get("rcs"),
            address=_clean_text(vendor_ai.get("address")),
            city=_clean_text(vendor_ai.get("city")) or regex_data.get("city"),
            postal_code=_clean_text(vendor_ai.get("postal_code")) or regex_data.get("postal_code"),
            email=_clean_text(vendor_ai.get("email")) or regex_data.get("email"),
            phone=_clean_text(vendor_ai.get("phone")) or regex_data.get("phone"),
        )
        client = ClientInfo(
            name=_clean_text(client_ai.get("name")),
            address=_clean_text(client_ai.get("address")),
            client_number=_clean_text(client_ai.get("client_number")),
        )

        issue_date = normalize_document_date(invoice_ai.get("date")) or normalize_document_date(
            regex_data.get("issue_date")
        )
        due_date = normalize_document_date(invoice_ai.get("due_date")) or normalize_document_date(
            regex_data.get("due_date")
        )

        ht = parse_amount(amounts_ai.get("total_ht")) or regex_data.get("total_ht")
        vat = parse_amount(amounts_ai.get("total_vat")) or regex_data.get("total_vat")
        ttc = parse_amount(amounts_ai.get("total_ttc")) or regex_data.get("total_ttc")
        ht, vat, ttc = self._derive_totals(ht, vat, ttc)

        items = [self._line_item(item) for item in ai_data.get("items") or [] if isinstance(item, dict)]

        method = payment_ai.get("method") or regex_data.get("payment_method")
        payment = PaymentDetails(
            iban=_first_valid(validate_iban, (payment_ai.get("iban"), regex_data.get("iban")), warnings),
            bic=(_clean_text(payment_ai.get("bic")) or regex_data.get("bic") or None),
        )
        if payment.bic:
            payment.bic = payment.bic.upper()

        category = detect_category(
            ai_data.get("category"),
            vendor.name,
            " ".join(item.description for item in items),
            text,
        )

        data = FinancialData(
            vendor=vendor,
            client=client,
            document_number=_clean_text(invoice_ai.get("number")) or regex_data.get("document_number"),
            dates=DocumentDates(issue=issue_date, due=due_date),
            amounts=Amounts(ht=ht, vat=vat, ttc=ttc),
            tax_rate=regex_data.get("vat_rate") or infer_tax_rate(ht, vat),
            currency=(amounts_ai.get("currency") or "EUR").upper(),
            line_items=items,
            category=category,
            payment_method=normalize_payment_method(method),
            payment=payment,
            warnings=warnings,
        )
        data.description = self._describe(data)
        data.confidence = self._confidence(data, ai_data.get("confidence"))
        for warning in warnings:
            logger.info("document validation: %s", warning)
        return data

    @staticmethod
    def _derive_totals(
        ht: Optional[Decimal], vat: Optional[Decimal], ttc: Optional[Decimal]
    ) -> Tuple[Optional[Decimal], Optional[Decimal], Optional[Decimal]]:
        if ht is not None and vat is not None and ttc is None:
            ttc = (ht + vat).quantize(CENT, rounding=ROUND_HALF_UP)
        elif ttc is not None and vat is not None and ht is None:
            ht = (ttc - vat).quantize(CENT, rounding=ROUND_HALF_UP)
        elif ttc is not None and ht is not None and vat is None:
            vat = (ttc - ht).quantize(CENT, rounding=ROUND_HALF_UP)
        return ht, vat, ttc

    @staticmethod
    def _line_item(item: Dict[str, Any]) -> LineItem:
        return LineItem(
            description=_clean_text(item.get("description")) or "Article",
            quantity=parse_amount(item.get("quantity")) or Decimal("1"),
            unit_price_ht=parse_amount(item.get("unit_price_ht")),
            total_ht=parse_amount(item.get("total_ht")),
            total_ttc=parse_amount(item.get("total_ttc")),
            vat_rate=parse_amount(item.get("vat_rate")),
        )

    @staticmethod
    def _describe(data: FinancialData) -> str:
        parts = []
        if data.vendor.name:
            parts.append(data.vendor.name)
        item_names = [item.description for item in data.line_items[:3] if item.description]
        if item_names:
            parts.append(f"({', '.join(item_names)})")
        return " ".join(parts) or "Document importé"

    @staticmethod
    def _confidence(data: FinancialData, ai_confidence: Any) -> float:
        checklist = [
            data.vendor.name,
            data.document_number,
            data.dates.issue,
            data.amounts.ttc,
            data.amounts.ht,
            data.amounts.vat,
            data.vendor.siret,
            data.line_items,
            data.payment_method != "unknown",
            data.vendor.address,
        ]
        found = sum(1 for field in checklist if field)
        score = round(found / len(checklist), 2)
        try:
            reported = float(ai_confidence) if ai_confidence is not None else 0.0
        except (TypeError, ValueError):
            reported = 0.0
        return max(score, min(reported, 1.0))
