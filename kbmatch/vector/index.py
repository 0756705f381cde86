"""
In-memory vector store keyed by entry identity, and cosine similarity ranking.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence
import numpy as np

from .types import Entry, ScoredEntry, VectorRecord


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """
    Cosine similarity of two equal-length vectors, in [-1, 1].

    Returns 0.0 when either vector has zero norm.

    Raises:
        ValueError: if the vectors differ in length
    """
    a = np.asarray(vec_a, dtype=float)
    b = np.asarray(vec_b, dtype=float)
    if a.shape != b.shape:
        raise ValueError(f"Vector length mismatch: {a.shape[0]} != {b.shape[0]}")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    return float(np.dot(a, b) / (norm_a * norm_b))


class IVectorStore(ABC):
    """Abstract interface for entry vector storage."""

    @abstractmethod
    def add(self, record: VectorRecord) -> None:
        """Add a single vector record to the store."""
        pass

    @abstractmethod
    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        pass

    @abstractmethod
    def search(self, query_vector: np.ndarray, candidate_ids: Optional[Iterable[str]] = None) -> List[ScoredEntry]:
        """Score candidates against the query and return them ranked."""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Clear all records from the store."""
        pass


class SimpleInMemoryVectorStore(IVectorStore):
    """In-memory implementation of IVectorStore using cosine similarity.

    Entries and vectors live in one mapping, entry id -> VectorRecord, so an
    entry can never be paired with another entry's vector.
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        self._records: Dict[str, VectorRecord] = {}  # entry_id -> VectorRecord

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, entry_id: str) -> bool:
        return entry_id in self._records

    def add(self, record: VectorRecord) -> None:
        """Add a single vector record to the store."""
        vector = np.asarray(record.vector, dtype=float)
        if vector.ndim != 1 or vector.size == 0:
            raise ValueError(f"Vector for entry {record.id} must be a non-empty 1-D array")

        if self.dimension is None:
            self.dimension = vector.size
        elif vector.size != self.dimension:
            raise ValueError(f"Vector dimension {vector.size} does not match expected dimension {self.dimension}")

        self._records[record.id] = VectorRecord(entry=record.entry, vector=vector)

    def batch_add(self, records: List[VectorRecord]) -> None:
        """Add multiple vector records to the store."""
        for record in records:
            self.add(record)

    def get(self, entry_id: str) -> Optional[VectorRecord]:
        return self._records.get(entry_id)

    def entries(self) -> List[Entry]:
        return [record.entry for record in self._records.values()]

    def search(self, query_vector: np.ndarray, candidate_ids: Optional[Iterable[str]] = None) -> List[ScoredEntry]:
        """
        Score candidates (all entries when None) and sort by descending score.

        Scores are cosine similarity x 100. The sort is stable, so equal
        scores keep candidate order.
        """
        if candidate_ids is None:
            candidate_ids = self._records.keys()

        scored = []
        for entry_id in candidate_ids:
            record = self._records.get(entry_id)
            if record is None:
                continue
            score = cosine_similarity(query_vector, record.vector) * 100
            scored.append(ScoredEntry(entry=record.entry, score=score))

        scored.sort(key=lambda item: item.score, reverse=True)
        return scored

    def clear(self) -> None:
        """Clear all records from the store."""
        self._records.clear()
