import pytest
from decimal import Decimal
from fastapi import status

from receipt_reconciler.core.errors import DocumentValidationError, OcrExhaustedError, ProviderError
from receipt_reconciler.services.extraction_service import FinancialDataNormalizer
from receipt_reconciler.services.ocr_cache_service import ResultCache
from receipt_reconciler.services.ocr_router import OcrRouter
from receipt_reconciler.services.ocr_service import OcrService, validate_mime_type

URL = "https://files.example.com/ticket.pdf"


@pytest.fixture
def ocr_service(providers, ledger, runner, plan_resolver, session_factory):
    router = OcrRouter(providers, ledger, runner, plan_resolver=plan_resolver, default_provider="claude-vision")
    return OcrService(router, ResultCache(session_factory), FinancialDataNormalizer(enabled=False), runner)


@pytest.mark.parametrize("mime_type", ["application/pdf", " IMAGE/PNG ", "image/webp"])
def test_validate_mime_type_accepts(mime_type):
    assert validate_mime_type(mime_type) == mime_type.strip().lower()


@pytest.mark.parametrize("mime_type", ["text/plain", "application/zip", ""])
def test_validate_mime_type_rejects(mime_type):
    with pytest.raises(DocumentValidationError):
        validate_mime_type(mime_type)


def test_process_document_extracts_financial_data(ocr_service, tenant):
    response = ocr_service.process_document(tenant.id, URL, "ticket.pdf", "application/pdf")

    assert response["success"] is True
    assert response["provider"] == "claude-vision"
    assert Decimal(response["financial_analysis"]["amounts"]["ttc"]) == Decimal("120.00")
    assert Decimal(response["financial_analysis"]["amounts"]["vat"]) == Decimal("20.00")
    assert response["metadata"]["file_name"] == "ticket.pdf"
    assert response["metadata"]["fallback_errors"] == []
    assert response["message"] == "Document processed with claude-vision"


def test_cache_hit_skips_providers_and_quota(ocr_service, providers, ledger, tenant):
    first = ocr_service.process_document(tenant.id, URL, "ticket.pdf", "application/pdf")
    second = ocr_service.process_document(tenant.id, URL + "#page=1", "ticket.pdf", "application/pdf")

    assert second == first
    assert providers[0].calls == 1
    assert ledger.current_usage(tenant.id, "claude-vision") == 1


def test_fallback_errors_are_reported(ocr_service, providers, tenant):
    providers[0].error = ProviderError("claude-vision", "HTTP 500: boom")

    response = ocr_service.process_document(tenant.id, URL, "ticket.pdf", "application/pdf")

    assert response["provider"] == "mindee"
    assert response["metadata"]["fallback_errors"] == [{"provider": "claude-vision", "error": "HTTP 500: boom"}]


def test_exhausted_chain_raises(ocr_service, providers, tenant, session_factory):
    for provider in providers:
        provider.error = ProviderError(provider.name, "HTTP 503: down")

    with pytest.raises(OcrExhaustedError) as exc_info:
        ocr_service.process_document(tenant.id, URL, "ticket.pdf", "application/pdf")

    assert [name for name, _ in exc_info.value.failures] == [p.name for p in providers]
    # Failures are not cached
    assert ResultCache(session_factory).get(ResultCache.url_key(URL)) is None


def test_rejects_bad_input_before_any_provider(ocr_service, providers, tenant):
    with pytest.raises(DocumentValidationError):
        ocr_service.process_document(tenant.id, URL, "notes.txt", "text/plain")
    with pytest.raises(DocumentValidationError):
        ocr_service.process_document(tenant.id, "  ", "ticket.pdf", "application/pdf")
    assert all(p.calls == 0 for p in providers)


def _payload(**overrides):
    payload = {"document_url": URL, "file_name": "ticket.pdf", "mime_type": "application/pdf"}
    payload.update(overrides)
    return payload


def test_process_endpoint(client, tenant, providers):
    response = client.post(f"/api/tenants/{tenant.id}/ocr/process", json=_payload())
    assert response.status_code == status.HTTP_200_OK
    assert response.json()["provider"] == "claude-vision"

    # Served from cache the second time
    response = client.post(f"/api/tenants/{tenant.id}/ocr/process", json=_payload())
    assert response.status_code == status.HTTP_200_OK
    assert providers[0].calls == 1

    usage = {u["provider"]: u for u in client.get(f"/api/tenants/{tenant.id}/ocr/usage").json()}
    assert usage["claude-vision"]["used"] == 1
    assert usage["claude-vision"]["limit"] == 5
    assert usage["claude-vision"]["available"] == 4


def test_process_endpoint_unsupported_type(client, tenant):
    response = client.post(f"/api/tenants/{tenant.id}/ocr/process", json=_payload(mime_type="text/plain"))
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "Unsupported file type" in response.json()["detail"]


def test_process_endpoint_requires_http_url(client, tenant):
    response = client.post(f"/api/tenants/{tenant.id}/ocr/process", json=_payload(document_url="ftp://x/ticket.pdf"))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_process_endpoint_all_providers_down(client, tenant, providers):
    for provider in providers:
        provider.error = ProviderError(provider.name, "HTTP 503: down")

    response = client.post(f"/api/tenants/{tenant.id}/ocr/process", json=_payload())

    assert response.status_code == status.HTTP_502_BAD_GATEWAY
    detail = response.json()["detail"]
    assert detail["message"].startswith("All OCR providers failed")
    assert [e["provider"] for e in detail["errors"]] == [p.name for p in providers]


def test_process_endpoint_unknown_tenant(client):
    response = client.post("/api/tenants/999/ocr/process", json=_payload())
    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_providers_endpoint(client, tenant, providers):
    providers[1].configured = False

    response = client.get(f"/api/tenants/{tenant.id}/ocr/providers")

    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert [p["name"] for p in data] == ["claude-vision", "mindee", "google-document-ai", "mistral"]
    assert data[0]["default"] is True
    assert data[1]["configured"] is False
    assert data[3]["quota_checked"] is False


def test_maintenance_cleanup(client):
    response = client.post("/api/ocr/maintenance/cleanup")
    assert response.status_code == status.HTTP_200_OK
    assert response.json() == {"pruned_counters": 0, "purged_cache_entries": 0}
