"""
Versioned embedding cache.

One JSON record, stored under a fixed key, holds the vectors of the whole
knowledge base together with the identity it was computed for. The record is
reused only when schema version, entry count and every entry fingerprint
match; anything else evicts it.
"""

import hashlib
import json
import sqlite3
import time
from dataclasses import asdict, dataclass
from typing import List, Optional, Sequence

from ..core.config import CACHE_KEY, FINGERPRINT_PREFIX_LEN
from ..core.errors import CacheCorruptError, CacheStaleError
from ..core.storage import IKeyValueStore
from ..util.logging import logger
from .types import Entry


def fingerprint(entry: Entry) -> str:
    """Identity of an entry's embedded text: readable prefix plus a digest of the full text."""
    digest = hashlib.sha256(entry.embedding_text.encode("utf-8")).hexdigest()[:16]
    return f"{entry.primary_text[:FINGERPRINT_PREFIX_LEN]}#{digest}"


@dataclass
class CacheRecord:
    """Persisted shape of the embedding cache."""

    schema_version: str
    created_at: int
    entry_count: int
    fingerprints: List[str]
    vectors: List[List[float]]

    @classmethod
    def from_json(cls, raw: str) -> "CacheRecord":
        """
        Parse a stored record.

        Raises:
            CacheCorruptError: invalid JSON or missing/mistyped fields
        """
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, TypeError) as e:
            raise CacheCorruptError(f"Cache record is not valid JSON: {e}") from e

        if not isinstance(data, dict):
            raise CacheCorruptError("Cache record is not a JSON object")

        try:
            record = cls(
                schema_version=str(data["schema_version"]),
                created_at=int(data["created_at"]),
                entry_count=int(data["entry_count"]),
                fingerprints=[str(f) for f in data["fingerprints"]],
                vectors=[[float(x) for x in vector] for vector in data["vectors"]],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CacheCorruptError(f"Cache record has an invalid shape: {e}") from e

        return record

    def to_json(self) -> str:
        return json.dumps(asdict(self))


class EmbeddingCache:
    """Identity-checked persisted store of the knowledge base's embedding vectors."""

    def __init__(self, store: IKeyValueStore, schema_version: str, cache_key: str = CACHE_KEY):
        self.store = store
        self.schema_version = schema_version
        self.cache_key = cache_key

    def validate(self, record: CacheRecord, entries: Sequence[Entry]) -> None:
        """
        Check a record against the current entries.

        Raises:
            CacheStaleError: version, count, fingerprint or vector mismatch
        """
        if record.schema_version != self.schema_version:
            raise CacheStaleError(
                f"Schema version changed: {record.schema_version} != {self.schema_version}"
            )

        if record.entry_count != len(entries):
            raise CacheStaleError(f"Entry count changed: {record.entry_count} != {len(entries)}")

        if len(record.fingerprints) != len(entries) or len(record.vectors) != len(entries):
            raise CacheStaleError("Record lists do not match its entry count")

        for position, entry in enumerate(entries):
            if record.fingerprints[position] != fingerprint(entry):
                raise CacheStaleError(f"Entry {entry.id} changed since the cache was written")

        dimensions = {len(vector) for vector in record.vectors}
        if len(dimensions) > 1 or 0 in dimensions:
            raise CacheStaleError(f"Inconsistent vector dimensions: {sorted(dimensions)}")

    def load(self, entries: Sequence[Entry]) -> Optional[List[List[float]]]:
        """
        Return cached vectors aligned with ``entries``, or None.

        A stale or corrupt record is evicted before returning None.
        """
        try:
            raw = self.store.get(self.cache_key)
        except sqlite3.Error as e:
            logger.log_cache_event("load", "failed", {"error": str(e)})
            return None

        if raw is None:
            logger.log_cache_event("miss", "empty", {"key": self.cache_key})
            return None

        try:
            record = CacheRecord.from_json(raw)
            self.validate(record, entries)
        except (CacheCorruptError, CacheStaleError) as e:
            logger.log_cache_event("evict", "stale", {"reason": str(e)})
            self.clear()
            return None

        logger.log_cache_event("hit", "success", {
            "entries": record.entry_count,
            "created_at": record.created_at
        })
        return record.vectors

    def save(self, entries: Sequence[Entry], vectors: Sequence[Sequence[float]]) -> bool:
        """
        Persist vectors for the current entries.

        Best effort: failures are logged and reported as False, never raised.
        """
        try:
            if len(vectors) != len(entries):
                raise ValueError(f"{len(vectors)} vectors for {len(entries)} entries")

            record = CacheRecord(
                schema_version=self.schema_version,
                created_at=int(time.time() * 1000),
                entry_count=len(entries),
                fingerprints=[fingerprint(entry) for entry in entries],
                vectors=[[float(x) for x in vector] for vector in vectors],
            )
            self.store.set(self.cache_key, record.to_json())
        except (sqlite3.Error, OSError, TypeError, ValueError) as e:
            logger.log_cache_event("save", "failed", {"error": str(e)})
            return False

        logger.log_cache_event("save", "success", {"entries": len(entries)})
        return True

    def clear(self) -> None:
        """Evict the stored record."""
        try:
            self.store.delete(self.cache_key)
        except sqlite3.Error as e:
            logger.log_cache_event("clear", "failed", {"error": str(e)})
