import hashlib
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from sqlalchemy.orm import Session

from receipt_reconciler.core.config import settings
from receipt_reconciler.models.ocr_cache import OcrResultCacheEntry

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def canonical_url(url: str) -> str:
    """Strip whitespace and the fragment, lower-case scheme and host"""
    parts = urlsplit(url.strip())
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), parts.path, parts.query, ""))


class ResultCache:
    """OCR responses keyed by sha256, written once and expired after a TTL"""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        ttl_days: Optional[int] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._session_factory = session_factory
        self.ttl = timedelta(days=settings.ocr_cache_ttl_days if ttl_days is None else ttl_days)
        self._now = now

    @staticmethod
    def url_key(document_url: str) -> str:
        return hashlib.sha256(canonical_url(document_url).encode("utf-8")).hexdigest()

    @staticmethod
    def content_key(content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._session_factory() as db:
            entry = db.get(OcrResultCacheEntry, key)
            if entry is None:
                return None
            if _as_utc(entry.expires_at) <= self._now():
                logger.debug("ocr cache entry %s expired", key[:12])
                return None
            return json.loads(entry.payload)

    def set(self, key: str, payload: Dict[str, Any]) -> bool:
        """Store ``payload`` unless ``key`` already holds a live entry. Returns True when written."""
        now = self._now()
        with self._session_factory() as db:
            entry = db.get(OcrResultCacheEntry, key)
            if entry is not None:
                if _as_utc(entry.expires_at) > now:
                    return False
                # An expired entry is replaced as a whole, never patched
                db.delete(entry)
                db.flush()
            db.add(
                OcrResultCacheEntry(
                    cache_key=key,
                    payload=json.dumps(payload, ensure_ascii=False),
                    created_at=now,
                    expires_at=now + self.ttl,
                )
            )
            db.commit()
        logger.debug("ocr cache stored %s", key[:12])
        return True

    def purge_expired(self) -> int:
        with self._session_factory() as db:
            removed = db.query(OcrResultCacheEntry).filter(
                OcrResultCacheEntry.expires_at <= self._now()
            ).delete(synchronize_session=False)
            db.commit()
        if removed:
            logger.info("purged %s expired OCR cache entries", removed)
        return removed
