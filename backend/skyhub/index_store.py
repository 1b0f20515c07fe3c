"""
Index Store
索引存储

JSON document store holding one ``{"Name", "Url"}`` record per stored
image, keyed by ``Name``.

Features:
- Upsert semantics: re-running the pipeline converges, never duplicates
- Per-key atomicity: upserts are serialized with an asyncio.Lock
- Crash-safe persistence: the file is replaced atomically on every write
- Rollback: a failed write leaves the in-memory view unchanged
"""

import asyncio
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from .errors import IndexConnectError, IndexWriteError
from .models import StoredImageRecord

logger = logging.getLogger(__name__)


class JsonIndexStore:
    """
    File-backed index of stored images.

    Usage:
        index = JsonIndexStore("./skyhub_index.json")
        await index.open()
        await index.upsert(StoredImageRecord(name, url))
        records = await index.find_all()
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._records: Dict[str, StoredImageRecord] = {}
        self._lock = asyncio.Lock()
        self._opened = False

    async def open(self) -> None:
        """
        Load existing documents from disk.

        Raises:
            IndexConnectError: file unreadable or not a list of documents
        """
        async with self._lock:
            self._records = await asyncio.to_thread(self._load)
            self._opened = True
        logger.info(f"[IndexStore] Opened {self.path} ({len(self._records)} records)")

    def _load(self) -> Dict[str, StoredImageRecord]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                documents = json.load(f)
            records = {}
            for doc in documents:
                record = StoredImageRecord.from_document(doc)
                records[record.name] = record
            return records
        except (OSError, ValueError, TypeError, KeyError) as e:
            raise IndexConnectError(f"Cannot open index {self.path}: {e}") from e

    def _persist(self, records: Dict[str, StoredImageRecord]) -> None:
        documents = [r.to_document() for r in records.values()]
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(documents, f, indent=2)
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def _check_open(self) -> None:
        if not self._opened:
            raise IndexWriteError("Index store is not open")

    async def upsert(self, record: StoredImageRecord) -> None:
        """
        Insert ``record`` or replace the address of the record with the same name.

        Raises:
            IndexWriteError: empty key/address, store not open, or persistence failure
        """
        self._check_open()
        if not record.name or not record.address:
            raise IndexWriteError(f"Record needs both a name and an address: {record!r}")

        async with self._lock:
            previous = self._records.get(record.name)
            self._records[record.name] = record
            try:
                await asyncio.to_thread(self._persist, dict(self._records))
            except OSError as e:
                if previous is None:
                    del self._records[record.name]
                else:
                    self._records[record.name] = previous
                raise IndexWriteError(f"Failed to persist index {self.path}: {e}") from e

        action = "Updated" if previous else "Inserted"
        logger.debug(f"[IndexStore] {action} {record.name}")

    async def get(self, name: str) -> Optional[StoredImageRecord]:
        return self._records.get(name)

    async def find_all(self) -> List[StoredImageRecord]:
        """All records, in the order their names were first inserted."""
        async with self._lock:
            return list(self._records.values())

    def count(self) -> int:
        return len(self._records)
