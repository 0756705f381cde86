"""
Data types shared by the category index, the vector store and the match engine.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
import numpy as np

DEFAULT_CATEGORY = "general"


@dataclass(frozen=True)
class Entry:
    """One knowledge-base record. Immutable after load."""

    id: str
    """Stable identity: explicit record id, or load position"""

    primary_text: str
    """Question or proposal statement"""

    secondary_text: Optional[str] = None
    """Stored answer, when the record has one"""

    category: str = DEFAULT_CATEGORY

    @property
    def response_text(self) -> str:
        """Text returned to the user when this entry is the match."""
        return self.secondary_text or self.primary_text

    @property
    def embedding_text(self) -> str:
        """Text fed to the embedding model (question and answer together)."""
        return f"{self.primary_text} {self.secondary_text or ''}".strip()


@dataclass
class VectorRecord:
    """An entry paired with its embedding vector."""

    entry: Entry
    vector: np.ndarray

    @property
    def id(self) -> str:
        return self.entry.id


@dataclass
class ScoredEntry:
    """Ranking row: a candidate entry and its similarity score (0-100 scale)."""

    entry: Entry
    score: float


@dataclass
class Alternative:
    """A runner-up match offered alongside the primary answer."""

    entry_id: str
    text: str
    confidence: float
    category: str


@dataclass
class MatchResult:
    """Outcome of one query. Not persisted."""

    status: str
    """matched | no_match | loading | error"""

    answer: str
    confidence: float
    matched_entry_id: Optional[str] = None
    matched_text: Optional[str] = None
    category: Optional[str] = None
    alternatives: List[Alternative] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "status": self.status,
            "answer": self.answer,
            "confidence": self.confidence,
            "matched_entry_id": self.matched_entry_id,
            "matched_text": self.matched_text,
            "category": self.category,
            "alternatives": [
                {
                    "entry_id": alt.entry_id,
                    "text": alt.text,
                    "confidence": alt.confidence,
                    "category": alt.category,
                }
                for alt in self.alternatives
            ],
        }
