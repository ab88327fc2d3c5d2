"""Key-value persistence used by the scheduling core.

The core only needs `load(key)` and `save(key, blob)`; blobs are JSON text
produced by the repositories.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Dict, Optional
from sqlalchemy.orm import Session

from familytasks.database.models import KeyValueEntryDB

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Opaque key-value persistence."""

    @abstractmethod
    def load(self, key: str) -> Optional[str]:
        """Return the blob stored under `key`, or None."""

    @abstractmethod
    def save(self, key: str, blob: str) -> None:
        """Store `blob` under `key`, replacing any previous value."""


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store (tests, ephemeral runs)."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def load(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def save(self, key: str, blob: str) -> None:
        self._data[key] = blob


class SqlKeyValueStore(KeyValueStore):
    """Store backed by the `key_value_entries` table."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def load(self, key: str) -> Optional[str]:
        db = self.session_factory()
        try:
            row = db.query(KeyValueEntryDB).filter(KeyValueEntryDB.key == key).first()
            return row.value if row else None
        finally:
            db.close()

    def save(self, key: str, blob: str) -> None:
        db = self.session_factory()
        try:
            row = db.query(KeyValueEntryDB).filter(KeyValueEntryDB.key == key).first()
            if row is None:
                db.add(KeyValueEntryDB(key=key, value=blob, updated_at=datetime.utcnow()))
            else:
                row.value = blob
            db.commit()
            logger.debug(f"Saved key {key} ({len(blob)} bytes)")
        except Exception as e:
            db.rollback()
            logger.error(f"Failed to save key {key}: {type(e).__name__}: {str(e)}")
            raise
        finally:
            db.close()
