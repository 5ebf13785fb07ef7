import logging
import re
import unicodedata
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from receipt_reconciler.core.errors import NotFoundError
from receipt_reconciler.models.bank_transaction import BankTransaction, ReconciliationStatus
from receipt_reconciler.schemas.bank_transaction import BankTransactionCreate

logger = logging.getLogger(__name__)

# Checked in order, first hit wins
DESCRIPTION_CATEGORIES: List[Tuple[str, List[str]]] = [
    ("MEALS", ["carrefour", "leclerc", "auchan", "lidl", "franprix", "monoprix", "intermarche", "casino",
               "super u", "picard", "biocoop"]),
    ("MEALS", ["restaurant", "mcdo", "mcdonald", "burger", "pizza", "sushi", "kebab", "boulangerie",
               "deliveroo", "uber eat", "just eat"]),
    ("TRAVEL", ["sncf", "ratp", "uber", "taxi", "bolt", "blablacar", "navigo", "velib", "lime", "total",
                "shell", "bp", "esso", "station", "autoroute", "peage", "parking"]),
    ("SOFTWARE", ["netflix", "spotify", "amazon", "google", "apple", "microsoft", "adobe", "dropbox", "slack",
                  "notion", "figma", "github", "aws", "heroku", "vercel", "digitalocean"]),
    ("SUBSCRIPTIONS", ["orange", "sfr", "bouygues", "free", "sosh"]),
    ("INSURANCE", ["assurance", "maif", "macif", "axa", "allianz", "groupama"]),
    ("UTILITIES", ["loyer", "edf", "engie", "veolia", "eau"]),
    ("TAXES", ["impot", "dgfip", "tresor public", "urssaf"]),
]

_PATTERNS = [
    (category, re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")"))
    for category, keywords in DESCRIPTION_CATEGORIES
]
_OPERATION_PREFIX = re.compile(r"^(cb|vir|prlv|cheque|chq|retrait|dab|tip)\s+")


def categorize_description(description: Optional[str]) -> str:
    """Expense category guessed from a bank statement label"""
    if not description:
        return "OTHER"
    text = unicodedata.normalize("NFKD", description.lower()).encode("ascii", "ignore").decode("ascii")
    text = _OPERATION_PREFIX.sub("", text.strip())
    for category, pattern in _PATTERNS:
        if pattern.search(text):
            return category
    return "OTHER"


def _to_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


class BankTransactionService:
    @staticmethod
    def import_transactions(
        db: Session,
        tenant_id: int,
        transactions: List[BankTransactionCreate],
    ) -> Tuple[List[BankTransaction], int]:
        """Import transactions from the bank feed. Returns (transactions, number already known).

        A transaction whose (provider, external_id) is already stored for the
        tenant is returned as-is and never overwritten.
        """
        result: List[BankTransaction] = []
        new_transactions: List[BankTransaction] = []
        pending = {}
        duplicates = 0

        for tx_data in transactions:
            if tx_data.external_id:
                key = (tx_data.provider, tx_data.external_id)
                existing = pending.get(key) or db.query(BankTransaction).filter(
                    and_(
                        BankTransaction.tenant_id == tenant_id,
                        BankTransaction.provider == tx_data.provider,
                        BankTransaction.external_id == tx_data.external_id,
                    )
                ).first()
                if existing:
                    duplicates += 1
                    result.append(existing)
                    continue

            transaction = BankTransaction(
                tenant_id=tenant_id,
                provider=tx_data.provider,
                external_id=tx_data.external_id,
                processed_at=_to_utc(tx_data.processed_at),
                amount=tx_data.amount,
                currency=tx_data.currency,
                description=tx_data.description,
                category=tx_data.category or categorize_description(tx_data.description),
                reconciliation_status=ReconciliationStatus.UNMATCHED.value,
            )
            if tx_data.external_id:
                pending[(tx_data.provider, tx_data.external_id)] = transaction
            new_transactions.append(transaction)
            result.append(transaction)

        if new_transactions:
            db.add_all(new_transactions)
            try:
                db.commit()
            except IntegrityError as e:
                db.rollback()
                raise ValueError(f"Failed to import transactions: {str(e.orig)}") from e
            for tx in new_transactions:
                db.refresh(tx)

        logger.info(
            "tenant %s: imported %s transaction(s), %s already known",
            tenant_id,
            len(new_transactions),
            duplicates,
        )
        return result, duplicates

    @staticmethod
    def get_transaction(db: Session, tenant_id: int, transaction_id: int) -> BankTransaction | None:
        """Get transaction by ID, ensuring tenant isolation"""
        return db.query(BankTransaction).filter(
            and_(
                BankTransaction.id == transaction_id,
                BankTransaction.tenant_id == tenant_id
            )
        ).first()

    @staticmethod
    def require_transaction(db: Session, tenant_id: int, transaction_id: int) -> BankTransaction:
        transaction = BankTransactionService.get_transaction(db, tenant_id, transaction_id)
        if transaction is None:
            raise NotFoundError(f"Transaction {transaction_id} not found")
        return transaction

    @staticmethod
    def list_transactions(
        db: Session,
        tenant_id: int,
        status: Optional[str] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[BankTransaction]:
        """List transactions for a tenant"""
        query = db.query(BankTransaction).filter(BankTransaction.tenant_id == tenant_id)
        if status:
            query = query.filter(BankTransaction.reconciliation_status == status)
        return query.order_by(BankTransaction.processed_at.desc()).offset(skip).limit(limit).all()

    @staticmethod
    def get_unmatched_transactions(db: Session, tenant_id: int) -> List[BankTransaction]:
        """Debits with neither a linked expense nor an attached receipt"""
        return db.query(BankTransaction).filter(
            and_(
                BankTransaction.tenant_id == tenant_id,
                BankTransaction.amount < 0,
                BankTransaction.linked_expense_id.is_(None),
                BankTransaction.receipt_file.is_(None),
            )
        ).order_by(BankTransaction.processed_at.desc()).all()
