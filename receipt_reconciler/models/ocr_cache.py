from sqlalchemy import Column, String, DateTime, Text
from sqlalchemy.sql import func

from receipt_reconciler.core.database import Base


class OcrResultCacheEntry(Base):
    __tablename__ = "ocr_result_cache"

    cache_key = Column(String(64), primary_key=True)  # sha256 hex
    payload = Column(Text, nullable=False)  # JSON string, written once
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
