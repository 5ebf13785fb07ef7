import logging
import mimetypes
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from receipt_reconciler.core.config import settings
from receipt_reconciler.schemas.reconciliation import ReceiptFile

logger = logging.getLogger(__name__)


class ReceiptStorage(ABC):
    """Object storage for receipt files"""

    @abstractmethod
    def upload(self, tenant_id: int, content: bytes, filename: str, mimetype: Optional[str] = None) -> ReceiptFile:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class LocalReceiptStorage(ReceiptStorage):
    """Stores receipts on disk and serves them under ``public_base_url``"""

    def __init__(self, root_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.root = Path(root_dir or settings.storage_dir)
        self.public_base_url = (public_base_url or settings.storage_public_url).rstrip("/")

    def upload(self, tenant_id: int, content: bytes, filename: str, mimetype: Optional[str] = None) -> ReceiptFile:
        suffix = Path(filename).suffix.lower()
        key = f"{tenant_id}/{uuid.uuid4().hex}{suffix}"
        path = self.root / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        logger.info("stored receipt %s (%s bytes)", key, len(content))
        return ReceiptFile(
            url=f"{self.public_base_url}/{key}",
            key=key,
            filename=filename,
            mimetype=mimetype or mimetypes.guess_type(filename)[0] or "application/octet-stream",
            size=len(content),
            uploaded_at=datetime.now(timezone.utc),
        )

    def delete(self, key: str) -> None:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Refusing to delete outside the storage root: {key}")
        path.unlink(missing_ok=True)
        logger.info("deleted receipt %s", key)
