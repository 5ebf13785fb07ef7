import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional

from sqlalchemy import and_
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from receipt_reconciler.core.config import settings
from receipt_reconciler.models.ocr_usage import OcrUsageCounter
from receipt_reconciler.schemas.ocr import ProviderUsage
from receipt_reconciler.services.tenant_service import PlanResolver

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def month_key(moment: datetime) -> str:
    return moment.strftime("%Y-%m")


def next_month_start(moment: datetime) -> datetime:
    if moment.month == 12:
        return datetime(moment.year + 1, 1, 1, tzinfo=timezone.utc)
    return datetime(moment.year, moment.month + 1, 1, tzinfo=timezone.utc)


def shift_month(key: str, months: int) -> str:
    """Move a ``YYYY-MM`` key by ``months`` (negative goes back)"""
    year, month = (int(part) for part in key.split("-"))
    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def _insert_for(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert
    if dialect == "sqlite":
        return sqlite.insert
    raise NotImplementedError(f"Atomic usage increment is not supported on {dialect}")


class QuotaLedger:
    """Monthly OCR usage per (tenant, provider).

    Counters live in one row per calendar month, so a new month starts at
    zero without any reset job. Increments are a single upsert statement.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        plan_resolver: Optional[PlanResolver] = None,
        provider_limits: Optional[Dict[str, Optional[int]]] = None,
        plan_metered: Optional[Iterable[str]] = None,
        plan_quotas: Optional[Dict[str, int]] = None,
        history_size: Optional[int] = None,
        now: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._plan_resolver = plan_resolver
        self.provider_limits = dict(settings.provider_monthly_limits if provider_limits is None else provider_limits)
        self.plan_metered = set(settings.plan_metered_providers if plan_metered is None else plan_metered)
        self.plan_quotas = dict(settings.plan_monthly_quotas if plan_quotas is None else plan_quotas)
        self.history_size = history_size or settings.usage_history_size
        self._now = now

    def limit_for(self, tenant_id: int, provider: str) -> Optional[int]:
        """Monthly cap for the provider, ``None`` when uncapped"""
        if provider in self.plan_metered:
            plan = self._plan_resolver.get_plan(tenant_id) if self._plan_resolver else "FREE"
            return self.plan_quotas.get(plan, self.plan_quotas.get("FREE"))
        return self.provider_limits.get(provider)

    def current_usage(self, tenant_id: int, provider: str) -> int:
        with self._session_factory() as db:
            counter = self._counter(db, tenant_id, provider, month_key(self._now()))
            return counter.count if counter else 0

    def has_quota(self, tenant_id: int, provider: str) -> bool:
        limit = self.limit_for(tenant_id, provider)
        if limit is None:
            return True
        return self.current_usage(tenant_id, provider) < limit

    def increment(self, tenant_id: int, provider: str, meta: Optional[Dict[str, Any]] = None) -> OcrUsageCounter:
        now = self._now()
        month = month_key(now)
        limit = self.limit_for(tenant_id, provider)
        meta = meta or {}
        entry = {
            "timestamp": now.isoformat(),
            "file_name": meta.get("file_name"),
            "document_id": meta.get("document_id"),
            "success": meta.get("success", True),
        }

        with self._session_factory() as db:
            insert = _insert_for(db)
            stmt = insert(OcrUsageCounter).values(
                tenant_id=tenant_id,
                provider=provider,
                month=month,
                count=1,
                limit=limit,
                reset_date=next_month_start(now),
                usage_history=[],
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["tenant_id", "provider", "month"],
                set_=dict(
                    count=OcrUsageCounter.count + 1,
                    limit=stmt.excluded["limit"],
                    updated_at=stmt.excluded.updated_at,
                ),
            )
            db.execute(stmt)

            # History is informational; the count above is the source of truth
            counter = (
                db.query(OcrUsageCounter)
                .filter(
                    and_(
                        OcrUsageCounter.tenant_id == tenant_id,
                        OcrUsageCounter.provider == provider,
                        OcrUsageCounter.month == month,
                    )
                )
                .with_for_update()
                .one()
            )
            history: List[Dict[str, Any]] = list(counter.usage_history or [])
            history.append(entry)
            counter.usage_history = history[-self.history_size:]
            db.commit()
            db.refresh(counter)
            logger.debug("ocr usage %s/%s %s -> %s", tenant_id, provider, month, counter.count)
            return counter

    def usage_stats(self, tenant_id: int, providers: Optional[Iterable[str]] = None) -> List[ProviderUsage]:
        month = month_key(self._now())
        names = list(providers) if providers is not None else list(self.provider_limits)
        with self._session_factory() as db:
            rows = db.query(OcrUsageCounter).filter(
                and_(OcrUsageCounter.tenant_id == tenant_id, OcrUsageCounter.month == month)
            ).all()
            used = {row.provider: row.count for row in rows}

        stats = []
        for name in names:
            limit = self.limit_for(tenant_id, name)
            count = used.get(name, 0)
            stats.append(
                ProviderUsage(
                    provider=name,
                    used=count,
                    limit=limit,
                    available=None if limit is None else max(0, limit - count),
                    month=month,
                )
            )
        return stats

    def history(self, tenant_id: int, provider: str) -> List[Dict[str, Any]]:
        with self._session_factory() as db:
            counter = self._counter(db, tenant_id, provider, month_key(self._now()))
            return list(counter.usage_history) if counter else []

    def prune(self, retention_months: Optional[int] = None) -> int:
        """Delete counters older than the retention window, returns rows removed"""
        months = settings.usage_retention_months if retention_months is None else retention_months
        cutoff = shift_month(month_key(self._now()), -months)
        with self._session_factory() as db:
            removed = db.query(OcrUsageCounter).filter(OcrUsageCounter.month < cutoff).delete(synchronize_session=False)
            db.commit()
        if removed:
            logger.info("pruned %s OCR usage counters older than %s", removed, cutoff)
        return removed

    @staticmethod
    def _counter(db: Session, tenant_id: int, provider: str, month: str) -> Optional[OcrUsageCounter]:
        return db.query(OcrUsageCounter).filter(
            and_(
                OcrUsageCounter.tenant_id == tenant_id,
                OcrUsageCounter.provider == provider,
                OcrUsageCounter.month == month,
            )
        ).first()
