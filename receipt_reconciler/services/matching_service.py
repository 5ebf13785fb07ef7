import logging
import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, List, Optional, Tuple

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from receipt_reconciler.core.config import settings
from receipt_reconciler.models.bank_transaction import BankTransaction
from receipt_reconciler.schemas.match import (
    AmountRange,
    DateRange,
    MatchResponse,
    SearchCriteria,
    TransactionMatch,
)

logger = logging.getLogger(__name__)

AMOUNT_POINTS = Decimal("40")
AMOUNT_PENALTY_PER_UNIT = Decimal("20")
DATE_POINTS = Decimal("20")
DATE_PENALTY_PER_DAY = Decimal("5")
VENDOR_POINTS = 40
VENDOR_WORD_POINTS = 15
PRIMARY_LIMIT = 10
VENDOR_LIMIT = 5
MIN_PRIMARY_RESULTS = 5

_BANK_PREFIX = re.compile(r"^(PRELEVEMENT|VIREMENT|CARTE|PRLV|VIR|CB)\b\s*", re.IGNORECASE)
_SHORT_DATE = re.compile(r"\d{2}/\d{2}/\d{2,4}")
_DAY_FIRST = re.compile(r"^(\d{1,2})[/.\-](\d{1,2})[/.\-](\d{2}|\d{4})$")
_YEAR_FIRST = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")


@dataclass(frozen=True)
class MatchTarget:
    amount: Decimal
    date: datetime
    vendor: Optional[str] = None


@dataclass(frozen=True)
class Candidate:
    id: int
    amount: Decimal
    processed_at: datetime
    description: Optional[str] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _midday(year: int, month: int, day: int) -> datetime:
    return datetime(year, month, day, 12, 0, tzinfo=timezone.utc)


def parse_target_date(value: Optional[str], now: Optional[datetime] = None) -> Tuple[datetime, Optional[str]]:
    """Read a receipt date and anchor it at 12:00 UTC.

    Accepts DD/MM/YY, DD/MM/YYYY and YYYY-MM-DD. A YYYY-MM-DD whose month is
    above 12 is read as YYYY-DD-MM. When day and month are both 12 or less the
    French DD/MM order is assumed, which cannot be told apart from MM/DD.
    Returns the date and a warning when it fell back to today.
    """
    today = as_utc(now or _utcnow())
    fallback = _midday(today.year, today.month, today.day)
    if not value or not str(value).strip():
        return fallback, "No date provided, searching around today"

    text = str(value).strip()
    try:
        match = _DAY_FIRST.match(text)
        if match:
            day, month, year = (int(part) for part in match.groups())
            if year < 100:
                year += 2000
            return _midday(year, month, day), None

        match = _YEAR_FIRST.match(text)
        if match:
            year, month, day = (int(part) for part in match.groups())
            if month > 12:
                month, day = day, month
            return _midday(year, month, day), None

        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        parsed = as_utc(parsed) if parsed.tzinfo else parsed
        return _midday(parsed.year, parsed.month, parsed.day), None
    except ValueError:
        pass

    logger.warning("unparseable receipt date %r, falling back to today", text)
    return fallback, f"Unparseable date '{text}', searching around today"


def _normalize(text: str) -> str:
    ascii_text = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    return ascii_text.lower()


def _compact(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", _normalize(text))


def _words(text: str) -> List[str]:
    return [w for w in re.split(r"[^a-z0-9]+", _normalize(text)) if w]


def _escape_like(word: str) -> str:
    return word.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def vendor_score(vendor: Optional[str], description: Optional[str]) -> int:
    if not vendor or not description:
        return 0
    compact_vendor = _compact(vendor)
    compact_description = _compact(description)
    if compact_vendor and compact_description and (
        compact_vendor in compact_description or compact_description in compact_vendor
    ):
        return VENDOR_POINTS

    description_words = [w for w in _words(description) if len(w) >= 4]
    shared = [
        w for w in _words(vendor)
        if len(w) >= 4 and any(w in d or d in w for d in description_words)
    ]
    return min(VENDOR_POINTS, VENDOR_WORD_POINTS * len(shared))


def score_candidate(target: MatchTarget, candidate: Candidate) -> int:
    """Amount (40) + date (20) + vendor (40), rounded half up"""
    amount_diff = abs(abs(Decimal(candidate.amount)) - abs(Decimal(target.amount)))
    score = max(Decimal(0), AMOUNT_POINTS - amount_diff * AMOUNT_PENALTY_PER_UNIT)

    seconds = abs((as_utc(candidate.processed_at) - as_utc(target.date)).total_seconds())
    days = Decimal(str(seconds)) / Decimal(86400)
    score += max(Decimal(0), DATE_POINTS - days * DATE_PENALTY_PER_DAY)

    score += vendor_score(target.vendor, candidate.description)
    return int(score.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def confidence_label(score: int) -> str:
    if score >= 70:
        return "high"
    if score >= 40:
        return "medium"
    return "low"


def extract_vendor_from_description(description: Optional[str]) -> Optional[str]:
    """``"PRLV BOUYGUES TELECOM 15/03/24"`` -> ``"BOUYGUES TELECOM"``"""
    if not description:
        return None
    cleaned = _BANK_PREFIX.sub("", description)
    cleaned = _SHORT_DATE.sub("", cleaned)
    cleaned = cleaned.replace("*", "").strip()
    words = cleaned.split()[:3]
    return " ".join(words) or description[:30]


class TransactionMatcher:
    """Finds unreconciled debits that look like a given receipt"""

    def __init__(
        self,
        threshold: Optional[int] = None,
        date_window_days: Optional[int] = None,
        fallback_days: Optional[int] = None,
        tolerance_ratio: Optional[float] = None,
        tolerance_min: Optional[float] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.threshold = settings.match_threshold if threshold is None else threshold
        self.date_window = timedelta(days=settings.match_date_window_days if date_window_days is None else date_window_days)
        self.fallback_window = timedelta(days=settings.match_fallback_days if fallback_days is None else fallback_days)
        self.tolerance_ratio = Decimal(str(settings.match_amount_tolerance_ratio if tolerance_ratio is None else tolerance_ratio))
        self.tolerance_min = Decimal(str(settings.match_amount_tolerance_min if tolerance_min is None else tolerance_min))
        self._now = now

    def amount_range(self, amount: Decimal) -> Tuple[Decimal, Decimal]:
        amount = abs(Decimal(amount))
        tolerance = max(amount * self.tolerance_ratio, self.tolerance_min)
        return amount - tolerance, amount + tolerance

    def find_matches(
        self,
        db: Session,
        tenant_id: int,
        amount: Decimal,
        date: Optional[str] = None,
        vendor: Optional[str] = None,
    ) -> MatchResponse:
        if amount is None or Decimal(amount) == 0:
            raise ValueError("Amount is required to search for matching transactions")

        target_date, date_warning = parse_target_date(date, self._now())
        target = MatchTarget(amount=abs(Decimal(amount)), date=target_date, vendor=vendor or None)
        amount_min, amount_max = self.amount_range(target.amount)
        date_min, date_max = target_date - self.date_window, target_date + self.date_window

        transactions = self._candidates(db, tenant_id, target, amount_min, amount_max, date_min, date_max)

        matches = []
        for tx in transactions:
            candidate = Candidate(
                id=tx.id,
                amount=tx.amount,
                processed_at=as_utc(tx.processed_at),
                description=tx.description,
            )
            score = score_candidate(target, candidate)
            matches.append(
                TransactionMatch(
                    id=tx.id,
                    description=tx.description,
                    amount=tx.amount,
                    date=candidate.processed_at,
                    vendor=extract_vendor_from_description(tx.description),
                    score=score,
                    confidence=confidence_label(score),
                )
            )
        matches.sort(key=lambda m: m.score, reverse=True)

        best_match = matches[0] if matches and matches[0].score >= self.threshold else None
        logger.info(
            "tenant %s: %s candidate(s) for %s, best score %s",
            tenant_id,
            len(matches),
            target.amount,
            best_match.score if best_match else 0,
        )
        return MatchResponse(
            best_match=best_match,
            all_matches=matches,
            search_criteria=SearchCriteria(
                amount=target.amount,
                date=target_date,
                vendor=target.vendor,
                date_range=DateRange(min=date_min, max=date_max),
                amount_range=AmountRange(min=amount_min, max=amount_max),
                date_warning=date_warning,
            ),
        )

    def _candidates(
        self,
        db: Session,
        tenant_id: int,
        target: MatchTarget,
        amount_min: Decimal,
        amount_max: Decimal,
        date_min: datetime,
        date_max: datetime,
    ) -> List[BankTransaction]:
        # Debits are stored negative, so the window is mirrored
        unreconciled = and_(
            BankTransaction.tenant_id == tenant_id,
            BankTransaction.amount < 0,
            BankTransaction.linked_expense_id.is_(None),
            BankTransaction.receipt_file.is_(None),
            BankTransaction.amount <= -amount_min,
            BankTransaction.amount >= -amount_max,
        )

        found = db.query(BankTransaction).filter(
            unreconciled,
            BankTransaction.processed_at >= date_min,
            BankTransaction.processed_at <= date_max,
        ).order_by(BankTransaction.processed_at.desc()).limit(PRIMARY_LIMIT).all()

        if target.vendor and len(found) < MIN_PRIMARY_RESULTS:
            keywords = [w for w in target.vendor.lower().split() if len(w) > 3]
            if keywords:
                by_vendor = db.query(BankTransaction).filter(
                    unreconciled,
                    or_(*[
                        BankTransaction.description.ilike(f"%{_escape_like(w)}%", escape="\\")
                        for w in keywords
                    ]),
                ).order_by(BankTransaction.processed_at.desc()).limit(VENDOR_LIMIT).all()
                seen = {tx.id for tx in found}
                found.extend(tx for tx in by_vendor if tx.id not in seen)

        if not found:
            since = self._now() - self.fallback_window
            found = db.query(BankTransaction).filter(
                unreconciled,
                BankTransaction.processed_at >= since,
            ).order_by(BankTransaction.processed_at.desc()).limit(PRIMARY_LIMIT).all()

        return found
