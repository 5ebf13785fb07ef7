import json
import pytest
from decimal import Decimal
from types import SimpleNamespace

from receipt_reconciler.core.errors import InvalidTaxIdError
from receipt_reconciler.services.extraction_service import (
    FinancialDataNormalizer,
    detect_category,
    format_amount,
    infer_tax_rate,
    normalize_document_date,
    normalize_payment_method,
    parse_amount,
    validate_iban,
    validate_siren,
    validate_siret,
    validate_vat_number,
)

INVOICE_TEXT = """SARL Papeterie Moderne
12 rue des Lilas
75011 Paris
SIRET : 123 456 789 00012
TVA intracommunautaire : FR12345678901
Facture N° FA-2024-0042
Date : 15/03/2024
Échéance : 14/04/2024
Ramettes papier A4 x10
Total HT : 1 250,00 €
TVA 20 % : 250,00 €
Total TTC : 1 500,00 €
Règlement : Virement
IBAN : FR76 3000 6000 0112 3456 7890 189
BIC : AGRIFRPP882
"""


class FakeCompletions:
    """Scripted chat completions: each entry is a JSON string or an exception"""

    def __init__(self, answers):
        self.answers = list(answers)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=answer))])


def _client(answers):
    completions = FakeCompletions(answers)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


@pytest.fixture
def normalizer():
    return FinancialDataNormalizer(enabled=False)


def test_vat_derived_from_ttc_and_ht(normalizer):
    data = normalizer.normalize("Total TTC: 120,00 €\nTotal HT: 100,00 €")
    assert data.amounts.ttc == Decimal("120.00")
    assert data.amounts.ht == Decimal("100.00")
    assert data.amounts.vat == Decimal("20.00")
    assert data.tax_rate == Decimal("20")


def test_ht_derived_from_ttc_and_vat(normalizer):
    data = normalizer.normalize("Montant TVA : 10,00\nNet à payer : 110,00")
    assert data.amounts.ht == Decimal("100.00")


def test_full_invoice_with_patterns(normalizer):
    data = normalizer.normalize(INVOICE_TEXT)

    assert data.document_number == "FA-2024-0042"
    assert data.dates.issue == "2024-03-15"
    assert data.dates.due == "2024-04-14"
    assert data.amounts.ht == Decimal("1250.00")
    assert data.amounts.vat == Decimal("250.00")
    assert data.amounts.ttc == Decimal("1500.00")
    assert data.tax_rate == Decimal("20")
    assert data.vendor.siret == "12345678900012"
    assert data.vendor.vat_number == "FR12345678901"
    assert data.vendor.postal_code == "75011"
    assert data.vendor.city == "Paris"
    assert data.payment_method == "transfer"
    assert data.payment.iban == "FR7630006000011234567890189"
    assert data.payment.bic == "AGRIFRPP882"
    assert data.category == "OFFICE_SUPPLIES"
    assert data.warnings == []
    assert 0 < data.confidence <= 1


def test_invalid_identifiers_become_warnings(normalizer):
    data = normalizer.normalize("SIRET : 123 456 78\nTotal TTC : 12,00")
    assert data.vendor.siret is None
    assert any("SIRET" in w for w in data.warnings)


def test_empty_text_gives_empty_result(normalizer):
    data = normalizer.normalize("")
    assert data.amounts.ttc is None
    assert data.category == "OTHER"
    assert data.payment_method == "unknown"
    assert data.confidence == 0.0


def test_structured_input_wins_over_patterns(normalizer):
    structured = {
        "vendor": {"name": "Orange SA", "siret": "38012986600013"},
        "invoice": {"number": "F-77", "date": "02/11/2025"},
        "amounts": {"total_ttc": 59.99, "total_vat": 10.0},
        "category": "utilities",
        "confidence": 0.95,
    }
    data = normalizer.normalize("Total TTC : 12,00", structured=structured)

    assert data.vendor.name == "Orange SA"
    assert data.document_number == "F-77"
    assert data.dates.issue == "2025-11-02"
    assert data.amounts.ttc == Decimal("59.99")
    assert data.amounts.ht == Decimal("49.99")
    assert data.category == "UTILITIES"
    assert data.confidence == 0.95


def test_non_finite_structured_amount_falls_back_to_patterns(normalizer):
    data = normalizer.normalize("Total TTC: 120,00 €", structured={"amounts": {"total_ttc": "NaN"}})
    assert data.amounts.ttc == Decimal("120.00")


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1 234,56 €", Decimal("1234.56")),
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("99.9", Decimal("99.90")),
        (42, Decimal("42.00")),
        ("abc", None),
        (None, None),
        ("NaN", None),
        ("-Infinity", None),
        (float("nan"), None),
        (float("inf"), None),
        (Decimal("NaN"), None),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == expected


def test_format_amount_round_trips():
    for value in (Decimal("0.50"), Decimal("12.00"), Decimal("1234.56"), Decimal("1000000.01")):
        assert parse_amount(format_amount(value)) == value
    assert format_amount(Decimal("1234.5")) == "1 234,50"


def test_validators_accept_well_formed_ids():
    assert validate_siret("123 456 789 00012") == "12345678900012"
    assert validate_siren("123456789") == "123456789"
    assert validate_vat_number("fr 12345678901") == "FR12345678901"
    assert validate_iban("FR76 3000 6000 0112 3456 7890 189") == "FR7630006000011234567890189"


@pytest.mark.parametrize(
    "validator,value",
    [
        (validate_siret, "1234567890001"),
        (validate_siren, "12345678"),
        (validate_vat_number, "DE123456789"),
        (validate_iban, "FR7630006000011234567890188"),
    ],
)
def test_validators_reject_malformed_ids(validator, value):
    with pytest.raises(InvalidTaxIdError) as exc_info:
        validator(value)
    assert value in str(exc_info.value)


@pytest.mark.parametrize(
    "ht,vat,rate",
    [
        ("100", "20", Decimal("20")),
        ("100", "10", Decimal("10")),
        ("100", "5.5", Decimal("5.5")),
        ("100", "2.1", Decimal("2.1")),
        ("100", "0", Decimal("0.0")),
    ],
)
def test_infer_tax_rate(ht, vat, rate):
    assert infer_tax_rate(Decimal(ht), Decimal(vat)) == rate


def test_infer_tax_rate_unknown():
    assert infer_tax_rate(None, Decimal("20")) is None
    assert infer_tax_rate(Decimal("100"), None) is None


@pytest.mark.parametrize(
    "method,expected",
    [
        ("Carte bancaire", "card"),
        ("CB", "card"),
        ("Virement SEPA", "transfer"),
        ("Chèque", "check"),
        ("Espèces", "cash"),
        ("Prélèvement automatique", "direct_debit"),
        ("bitcoin", "unknown"),
        (None, "unknown"),
    ],
)
def test_normalize_payment_method(method, expected):
    assert normalize_payment_method(method) == expected


@pytest.mark.parametrize(
    "value,expected",
    [
        ("2024-03-15", "2024-03-15"),
        ("15/03/2024", "2024-03-15"),
        ("15/03/24", "2024-03-15"),
        ("15/03/99", "1999-03-15"),
        ("31/02/2024", None),
        ("demain", None),
    ],
)
def test_normalize_document_date(value, expected):
    assert normalize_document_date(value) == expected


def test_detect_category():
    assert detect_category("travel") == "TRAVEL"
    assert detect_category("NOT_A_CATEGORY", "Déjeuner client restaurant") == "MEALS"
    assert detect_category(None, "Formation Python avancée") == "TRAINING"
    assert detect_category(None, "Kebab") == "OTHER"


def test_ai_pass_retry_ladder():
    """Attempt 1 is incomplete, attempt 2 errors, the last attempt uses the fallback model"""
    good = json.dumps({
        "vendor": {"name": "Papeterie Moderne"},
        "invoice": {"number": "FA-1", "date": "2024-03-15"},
        "amounts": {"total_ttc": 1500, "total_ht": 1250},
        "confidence": 0.9,
    })
    client, completions = _client(["{}", RuntimeError("rate limited"), good])
    normalizer = FinancialDataNormalizer(
        client=client, model="small", fallback_model="large", max_retries=2, enabled=True
    )

    data = normalizer.normalize("Facture Papeterie Moderne Total TTC 1500,00")

    assert [c["model"] for c in completions.calls] == ["small", "small", "large"]
    assert [c["temperature"] for c in completions.calls] == [0.1, 0.2, 0.2]
    assert [c["max_tokens"] for c in completions.calls] == [2500, 3500, 3500]
    assert "extrême précision" in completions.calls[1]["messages"][1]["content"]
    assert data.vendor.name == "Papeterie Moderne"
    assert data.amounts.vat == Decimal("250.00")
    assert data.confidence == 0.9


def test_ai_pass_gives_up_and_patterns_remain():
    client, completions = _client([RuntimeError("down"), RuntimeError("down")])
    normalizer = FinancialDataNormalizer(client=client, max_retries=1, enabled=True)

    data = normalizer.normalize("Total TTC : 36,00\nTotal HT : 30,00")

    assert len(completions.calls) == 2
    assert data.amounts.vat == Decimal("6.00")


def test_ai_pass_skipped_when_disabled():
    client, completions = _client([])
    normalizer = FinancialDataNormalizer(client=client, enabled=False)
    normalizer.normalize("Total TTC : 36,00")
    assert completions.calls == []


def test_prompt_truncates_long_documents():
    client, completions = _client([json.dumps({"vendor": {"name": "ACME SAS"}})])
    normalizer = FinancialDataNormalizer(client=client, enabled=True)

    normalizer.normalize("x" * 7000)

    prompt = completions.calls[0]["messages"][1]["content"]
    assert "x" * 6000 + "..." in prompt
    assert "x" * 6001 not in prompt
