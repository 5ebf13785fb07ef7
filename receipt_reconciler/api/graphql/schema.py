import strawberry
from strawberry.scalars import JSON
from strawberry.types import Info
from typing import List, Optional
from decimal import Decimal
from datetime import datetime

from receipt_reconciler.services.tenant_service import TenantService
from receipt_reconciler.services.bank_transaction_service import BankTransactionService
from receipt_reconciler.services.expense_service import ExpenseService
from receipt_reconciler.services.reconciliation_service import ReconciliationService


# GraphQL Types
@strawberry.type
class BankTransaction:
    id: int
    tenant_id: int
    provider: str
    external_id: Optional[str]
    processed_at: datetime
    amount: Decimal
    currency: str
    description: Optional[str]
    category: Optional[str]
    linked_expense_id: Optional[int]
    receipt_url: Optional[str]
    reconciliation_status: str
    reconciliation_date: Optional[datetime]

    @classmethod
    def from_model(cls, transaction):
        return cls(
            id=transaction.id,
            tenant_id=transaction.tenant_id,
            provider=transaction.provider,
            external_id=transaction.external_id,
            processed_at=transaction.processed_at,
            amount=transaction.amount,
            currency=transaction.currency,
            description=transaction.description,
            category=transaction.category,
            linked_expense_id=transaction.linked_expense_id,
            receipt_url=(transaction.receipt_file or {}).get("url"),
            reconciliation_status=transaction.reconciliation_status,
            reconciliation_date=transaction.reconciliation_date,
        )


@strawberry.type
class Expense:
    id: int
    tenant_id: int
    title: str
    amount: Decimal
    currency: str
    vendor: Optional[str]
    category: str
    expense_date: datetime
    source: str
    linked_transaction_id: Optional[int]
    is_reconciled: bool

    @classmethod
    def from_model(cls, expense):
        return cls(
            id=expense.id,
            tenant_id=expense.tenant_id,
            title=expense.title,
            amount=expense.amount,
            currency=expense.currency,
            vendor=expense.vendor,
            category=expense.category,
            expense_date=expense.expense_date,
            source=expense.source,
            linked_transaction_id=expense.linked_transaction_id,
            is_reconciled=expense.is_reconciled,
        )


@strawberry.type
class TransactionMatch:
    id: int
    description: Optional[str]
    amount: Decimal
    date: datetime
    vendor: Optional[str]
    score: int
    confidence: str


@strawberry.type
class MatchResult:
    best_match: Optional[TransactionMatch]
    all_matches: List[TransactionMatch]
    date_warning: Optional[str]


@strawberry.type
class ProviderUsage:
    provider: str
    used: int
    limit: Optional[int]
    available: Optional[int]
    month: str


@strawberry.type
class LinkResult:
    transaction: BankTransaction
    expense: Optional[Expense]


@strawberry.type
class OcrDocument:
    provider: str
    extracted_text: str
    financial_analysis: JSON
    metadata: JSON


# Input Types
@strawberry.input
class OcrDocumentInput:
    document_url: str
    file_name: str
    mime_type: str


def _require_tenant(info: Info, tenant_id: int):
    if not TenantService.verify_tenant_exists(info.context["db"], tenant_id):
        raise ValueError("Tenant not found")


def _to_match(match) -> TransactionMatch:
    return TransactionMatch(
        id=match.id,
        description=match.description,
        amount=match.amount,
        date=match.date,
        vendor=match.vendor,
        score=match.score,
        confidence=match.confidence,
    )


# Queries
@strawberry.type
class Query:
    @strawberry.field
    def bank_transactions(
        self,
        info: Info,
        tenant_id: int,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[BankTransaction]:
        _require_tenant(info, tenant_id)
        transactions = BankTransactionService.list_transactions(
            info.context["db"], tenant_id, status=status, skip=skip, limit=limit
        )
        return [BankTransaction.from_model(t) for t in transactions]

    @strawberry.field
    def expenses(
        self,
        info: Info,
        tenant_id: int,
        reconciled: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Expense]:
        _require_tenant(info, tenant_id)
        expenses = ExpenseService.list_expenses(
            info.context["db"], tenant_id, reconciled=reconciled, skip=skip, limit=limit
        )
        return [Expense.from_model(e) for e in expenses]

    @strawberry.field
    def match_transactions(
        self,
        info: Info,
        tenant_id: int,
        amount: Decimal,
        date: Optional[str] = None,
        vendor: Optional[str] = None,
    ) -> MatchResult:
        _require_tenant(info, tenant_id)
        result = info.context["matcher"].find_matches(info.context["db"], tenant_id, abs(amount), date, vendor)
        return MatchResult(
            best_match=_to_match(result.best_match) if result.best_match else None,
            all_matches=[_to_match(m) for m in result.all_matches],
            date_warning=result.search_criteria.date_warning,
        )

    @strawberry.field
    def ocr_usage(self, info: Info, tenant_id: int) -> List[ProviderUsage]:
        _require_tenant(info, tenant_id)
        stats = info.context["ocr_service"].router.ledger.usage_stats(tenant_id)
        return [
            ProviderUsage(
                provider=s.provider,
                used=s.used,
                limit=s.limit,
                available=s.available,
                month=s.month,
            )
            for s in stats
        ]


# Mutations
@strawberry.type
class Mutation:
    @strawberry.mutation
    def link_transaction(self, info: Info, tenant_id: int, transaction_id: int, expense_id: int) -> LinkResult:
        _require_tenant(info, tenant_id)
        transaction, expense = ReconciliationService.link(info.context["db"], tenant_id, transaction_id, expense_id)
        return LinkResult(transaction=BankTransaction.from_model(transaction), expense=Expense.from_model(expense))

    @strawberry.mutation
    def unlink_transaction(self, info: Info, tenant_id: int, transaction_id: int) -> LinkResult:
        _require_tenant(info, tenant_id)
        transaction, expense = ReconciliationService.unlink(info.context["db"], tenant_id, transaction_id)
        return LinkResult(
            transaction=BankTransaction.from_model(transaction),
            expense=Expense.from_model(expense) if expense else None,
        )

    @strawberry.mutation
    def process_document(self, info: Info, tenant_id: int, input: OcrDocumentInput) -> OcrDocument:
        _require_tenant(info, tenant_id)
        try:
            response = info.context["ocr_service"].process_document(
                tenant_id, input.document_url, input.file_name, input.mime_type
            )
        except Exception as e:
            raise ValueError(str(e)) from e
        return OcrDocument(
            provider=response["provider"],
            extracted_text=response["extracted_text"],
            financial_analysis=response["financial_analysis"],
            metadata=response["metadata"],
        )


# Create schema
schema = strawberry.Schema(query=Query, mutation=Mutation)
