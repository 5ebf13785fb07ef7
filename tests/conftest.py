import pytest
import uuid
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from datetime import datetime, timezone
from decimal import Decimal

from receipt_reconciler.api.deps import (
    get_normalizer,
    get_ocr_providers,
    get_storage,
    get_task_runner,
    plan_cache,
)
from receipt_reconciler.core.background import BestEffortRunner
from receipt_reconciler.core.database import Base, get_db, get_session_factory
from receipt_reconciler.core.errors import ProviderError, QuotaExceededError
from receipt_reconciler.core.ttl_cache import TTLCache
from receipt_reconciler.main import app
from receipt_reconciler.models.tenant import Tenant
from receipt_reconciler.models.bank_transaction import BankTransaction
from receipt_reconciler.models.expense import ExpenseRecord
from receipt_reconciler.schemas.ocr import OcrResult
from receipt_reconciler.services.extraction_service import FinancialDataNormalizer
from receipt_reconciler.services.ocr_providers.base import OcrProvider
from receipt_reconciler.services.quota_service import QuotaLedger
from receipt_reconciler.services.storage_service import LocalReceiptStorage
from receipt_reconciler.services.tenant_service import PlanResolver


# Test database
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

TEST_PROVIDER_LIMITS = {
    "claude-vision": None,
    "mindee": 250,
    "google-document-ai": 1000,
    "mistral": None,
}
TEST_PLAN_QUOTAS = {"FREE": 5, "FREELANCE": 50, "TPE": 200, "ENTREPRISE": 1000, "UNLIMITED": 999999}


class FakeProvider(OcrProvider):
    """Provider double: returns ``text`` or raises ``error``, counting calls"""

    def __init__(self, name, text="Total TTC: 120,00 €\nTotal HT: 100,00 €", error=None,
                 configured=True, quota_checked=True):
        super().__init__()
        self.name = name
        self.quota_checked = quota_checked
        self.text = text
        self.error = error
        self.configured = configured
        self.calls = 0

    def is_configured(self):
        return self.configured

    def process_document(self, document_url, mime_type):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return {"text": self.text}

    def to_canonical_format(self, raw):
        return OcrResult(success=True, extracted_text=raw["text"], provider=self.name)


@pytest.fixture
def make_provider():
    """Factory for provider doubles; ``fails`` is "error", "quota" or None"""
    def _make(name, fails=None, **kwargs):
        if fails == "error":
            kwargs["error"] = ProviderError(name, "HTTP 500: boom")
        elif fails == "quota":
            kwargs["error"] = QuotaExceededError(name, "HTTP 429: quota exceeded")
        return FakeProvider(name, **kwargs)

    return _make


@pytest.fixture(scope="function")
def db():
    """Create a fresh database for each test"""
    # Drop all tables first to ensure clean state
    Base.metadata.drop_all(bind=engine)
    # Create all tables
    Base.metadata.create_all(bind=engine)
    plan_cache.invalidate()
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db):
    """Factory for work done outside the request session (ledger, cache)"""
    return TestingSessionLocal


@pytest.fixture
def runner():
    return BestEffortRunner(inline=True)


@pytest.fixture
def plan_resolver(db):
    return PlanResolver(TestingSessionLocal, TTLCache(ttl_seconds=300))


@pytest.fixture
def ledger(db, plan_resolver):
    return QuotaLedger(
        TestingSessionLocal,
        plan_resolver=plan_resolver,
        provider_limits=TEST_PROVIDER_LIMITS,
        plan_metered=["claude-vision"],
        plan_quotas=TEST_PLAN_QUOTAS,
        history_size=100,
    )


@pytest.fixture
def storage(tmp_path):
    return LocalReceiptStorage(root_dir=str(tmp_path / "receipts"), public_base_url="http://testserver/receipts")


@pytest.fixture
def providers():
    """Provider chain used by the API; tests mutate it before calling"""
    return [
        FakeProvider("claude-vision"),
        FakeProvider("mindee"),
        FakeProvider("google-document-ai"),
        FakeProvider("mistral", quota_checked=False),
    ]


@pytest.fixture(scope="function")
def client(db, runner, storage, providers):
    """Create a test client with database and collaborator overrides"""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    app.dependency_overrides[get_task_runner] = lambda: runner
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_ocr_providers] = lambda: providers
    app.dependency_overrides[get_normalizer] = lambda: FinancialDataNormalizer(enabled=False)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def tenant(db):
    """Create a sample tenant with unique name"""
    # Use UUID to ensure unique tenant names across tests
    unique_id = str(uuid.uuid4())[:8]
    tenant = Tenant(name=f"Atelier Dupont {unique_id}", plan="FREE")
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


@pytest.fixture
def other_tenant(db):
    tenant = Tenant(name=f"Cabinet Martin {str(uuid.uuid4())[:8]}", plan="FREE")
    db.add(tenant)
    db.commit()
    db.refresh(tenant)
    return tenant


@pytest.fixture
def make_transaction(db, tenant):
    """Factory for bank transactions, debits by default"""
    counter = {"n": 0}

    def _make(amount="-49.99", processed_at=None, description="PRLV BOUYGUES TELECOM", tenant_id=None, **kwargs):
        counter["n"] += 1
        transaction = BankTransaction(
            tenant_id=tenant_id or tenant.id,
            provider="bridge",
            external_id=f"TX-{counter['n']:04d}",
            processed_at=processed_at or datetime(2024, 3, 16, 12, 0, tzinfo=timezone.utc),
            amount=Decimal(amount),
            currency="EUR",
            description=description,
            **kwargs,
        )
        db.add(transaction)
        db.commit()
        db.refresh(transaction)
        return transaction

    return _make


@pytest.fixture
def bank_transaction(make_transaction):
    return make_transaction()


@pytest.fixture
def expense(db, tenant):
    """Create a sample manual expense"""
    expense = ExpenseRecord(
        tenant_id=tenant.id,
        title="Forfait mobile mars",
        amount=Decimal("49.99"),
        currency="EUR",
        vendor="Bouygues Telecom",
        category="SUBSCRIPTIONS",
        expense_date=datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc),
        payment_method="DIRECT_DEBIT",
        source="MANUAL",
        files=[],
    )
    db.add(expense)
    db.commit()
    db.refresh(expense)
    return expense
