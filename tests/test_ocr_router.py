import pytest

from receipt_reconciler.services.ocr_router import OcrRouter

PDF_URL = "https://files.example.com/ticket.pdf"


@pytest.fixture
def make_router(ledger, runner, plan_resolver):
    def _make(providers, default_provider="claude-vision"):
        return OcrRouter(providers, ledger, runner, plan_resolver=plan_resolver, default_provider=default_provider)

    return _make


def _process(router, tenant):
    return router.process(PDF_URL, "ticket.pdf", "application/pdf", tenant.id)


def test_falls_back_and_counts_only_the_winner(make_router, make_provider, ledger, tenant):
    first = make_provider("mindee", fails="error")
    second = make_provider("google-document-ai")
    router = make_router([first, second])

    result = _process(router, tenant)

    assert result.success
    assert result.provider == "google-document-ai"
    assert [(f.provider, f.error) for f in result.errors] == [("mindee", "HTTP 500: boom")]
    assert first.calls == 1 and second.calls == 1
    assert ledger.current_usage(tenant.id, "mindee") == 0
    assert ledger.current_usage(tenant.id, "google-document-ai") == 1


def test_usage_history_records_the_document(make_router, make_provider, ledger, tenant):
    _process(make_router([make_provider("mindee")]), tenant)

    history = ledger.history(tenant.id, "mindee")
    assert history[-1]["file_name"] == "ticket.pdf"
    assert history[-1]["document_id"] == PDF_URL


def test_unconfigured_provider_is_skipped(make_router, make_provider, tenant):
    idle = make_provider("mindee", configured=False)
    router = make_router([idle, make_provider("mistral", quota_checked=False)])

    result = _process(router, tenant)

    assert result.provider == "mistral"
    assert idle.calls == 0
    assert result.errors[0].error == "not configured"


def test_exhausted_quota_skips_without_calling(make_router, make_provider, ledger, tenant):
    for _ in range(5):
        ledger.increment(tenant.id, "claude-vision")
    claude = make_provider("claude-vision")
    router = make_router([claude, make_provider("mindee")])

    result = _process(router, tenant)

    assert result.provider == "mindee"
    assert claude.calls == 0
    assert result.errors[0].provider == "claude-vision"
    assert "quota" in result.errors[0].error


def test_uncapped_provider_ignores_usage(make_router, make_provider, ledger, tenant):
    for _ in range(10):
        ledger.increment(tenant.id, "mistral")
    mistral = make_provider("mistral", quota_checked=False)

    result = _process(make_router([mistral]), tenant)

    assert result.provider == "mistral"
    assert ledger.current_usage(tenant.id, "mistral") == 11


def test_provider_quota_refusal_invalidates_plan(make_router, make_provider, plan_resolver, tenant, db):
    assert plan_resolver.get_plan(tenant.id) == "FREE"
    tenant.plan = "TPE"
    db.commit()
    router = make_router([make_provider("claude-vision", fails="quota"), make_provider("mindee")])

    result = _process(router, tenant)

    assert result.provider == "mindee"
    assert result.errors[0].error.startswith("quota exceeded")
    assert plan_resolver.get_plan(tenant.id) == "TPE"


def test_all_providers_failing(make_router, make_provider, ledger, tenant):
    router = make_router([
        make_provider("claude-vision", fails="error"),
        make_provider("mindee", configured=False),
        make_provider("mistral", quota_checked=False, text="   "),
    ])

    result = _process(router, tenant)

    assert result.success is False
    assert result.provider == "none"
    assert [f.provider for f in result.errors] == ["claude-vision", "mindee", "mistral"]
    assert result.errors[2].error == "no text extracted"
    assert result.error.startswith("All OCR providers failed")
    assert all(s.used == 0 for s in ledger.usage_stats(tenant.id))


def test_unexpected_exception_is_a_failure(make_router, make_provider, tenant):
    broken = make_provider("claude-vision", error=RuntimeError("socket closed"))
    result = _process(make_router([broken, make_provider("mindee")]), tenant)

    assert result.provider == "mindee"
    assert result.errors[0].error == "socket closed"


def test_default_provider_goes_first(make_router, make_provider):
    providers = [make_provider("claude-vision"), make_provider("mindee"), make_provider("mistral")]

    router = make_router(providers, default_provider="mistral")
    assert [p.name for p in router.provider_order()] == ["mistral", "claude-vision", "mindee"]

    router = make_router(providers, default_provider="unknown")
    assert [p.name for p in router.provider_order()] == ["claude-vision", "mindee", "mistral"]


def test_broken_ledger_does_not_block_ocr(make_router, make_provider, ledger, tenant, monkeypatch):
    def boom(*args):
        raise RuntimeError("database is locked")

    monkeypatch.setattr(ledger, "has_quota", boom)
    result = _process(make_router([make_provider("claude-vision")]), tenant)
    assert result.provider == "claude-vision"
