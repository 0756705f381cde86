"""
Match engine: the retrieval kernel.

Owns one loaded knowledge base (entries, category buckets, vectors) and
answers queries against it. Nothing is module-level; callers construct an
engine, await load(), then query it.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from ..core.config import (
    ERROR_MESSAGE,
    NO_MATCH_MESSAGE,
    NOT_READY_MESSAGE,
    MatchSettings,
)
from ..core.errors import ModelUnavailableError
from ..util.logging import logger
from .cache import EmbeddingCache
from .categories import CategoryBucket, CategoryIndex
from .embeddings import EmbeddingsService, IEmbeddingProvider, ProgressCallback
from .index import SimpleInMemoryVectorStore
from .types import Alternative, Entry, MatchResult, ScoredEntry, VectorRecord


def excerpt(text: str, max_chars: int) -> str:
    """Shorten text for display in an alternatives list."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars - 3].rstrip() + "..."


def suggestion_terms(categories: Sequence[str], limit: int = 9) -> str:
    return ", ".join(categories[:limit])


def not_ready_result() -> MatchResult:
    return MatchResult(status="loading", answer=NOT_READY_MESSAGE, confidence=0.0)


def error_result() -> MatchResult:
    return MatchResult(status="error", answer=ERROR_MESSAGE, confidence=0.0)


def apply_threshold_policy(ranked: List[ScoredEntry], settings: MatchSettings,
                           categories: Sequence[str] = ()) -> MatchResult:
    """
    Turn a ranked candidate list into a MatchResult.

    Alternatives are the runners-up inside the window scoring strictly above
    ``alternative_min_score``. A best score below ``confidence_threshold``
    yields the fixed no-match message; at or above it, the entry's answer.
    """
    no_match_answer = NO_MATCH_MESSAGE.format(terms=suggestion_terms(list(categories)))

    if not ranked:
        return MatchResult(status="no_match", answer=no_match_answer, confidence=0.0)

    best = ranked[0]
    alternatives = [
        Alternative(
            entry_id=item.entry.id,
            text=excerpt(item.entry.primary_text, settings.excerpt_max_chars),
            confidence=item.score,
            category=item.entry.category,
        )
        for item in ranked[1:1 + settings.alternatives_window]
        if item.score > settings.alternative_min_score
    ]

    if best.score < settings.confidence_threshold:
        return MatchResult(
            status="no_match",
            answer=no_match_answer,
            confidence=best.score,
            alternatives=alternatives,
        )

    return MatchResult(
        status="matched",
        answer=best.entry.response_text,
        confidence=best.score,
        matched_entry_id=best.entry.id,
        matched_text=best.entry.primary_text,
        category=best.entry.category,
        alternatives=alternatives,
    )


class MatchEngine:
    """
    Semantic retrieval over one knowledge base.

    Queries are refused (with a "still loading" result) until load() has
    filled the vector store; after that the store and buckets are read-only.
    """

    def __init__(self, entries: Sequence[Entry], provider: IEmbeddingProvider,
                 cache: Optional[EmbeddingCache] = None,
                 category_index: Optional[CategoryIndex] = None,
                 settings: Optional[MatchSettings] = None):
        """
        Args:
            entries: Knowledge-base entries in load order
            provider: Text -> vector embedding provider
            cache: Persisted embedding cache; None disables caching
            category_index: Keyword classifier; None searches every entry
            settings: Thresholds and batch size, defaults from config
        """
        self.entries = list(entries)
        self.provider = provider
        self.cache = cache
        self.settings = settings or MatchSettings.from_env()
        self.category_index = category_index or CategoryIndex({})
        self.embeddings_service = EmbeddingsService(provider, self.settings.batch_size)
        self.store = SimpleInMemoryVectorStore()
        self.bucket: CategoryBucket = {}
        self.ready = False
        self.cache_hit: Optional[bool] = None
        self.loaded_at: Optional[datetime] = None

    async def load(self, progress: Optional[ProgressCallback] = None) -> None:
        """
        Build category buckets and make every entry's vector available.

        Vectors come from the cache when it still matches the entries,
        otherwise they are computed in batches and written back.
        """
        self.ready = False
        self.store.clear()
        self.bucket = self.category_index.build(self.entries)

        vectors = self.cache.load(self.entries) if self.cache is not None else None
        self.cache_hit = vectors is not None

        if vectors is None:
            vectors = await self.embeddings_service.embed_entries(self.entries, progress)
            if self.cache is not None:
                self.cache.save(self.entries, vectors)
        elif progress is not None:
            progress(len(self.entries), len(self.entries))

        self.store.batch_add([
            VectorRecord(entry=entry, vector=np.asarray(vector, dtype=float))
            for entry, vector in zip(self.entries, vectors)
        ])

        self.loaded_at = datetime.now()
        self.ready = True
        logger.log_operation("engine.load", "ready", {
            "entries": len(self.entries),
            "categories": len(self.bucket),
            "cache_hit": self.cache_hit
        })

    def candidates(self, query: str) -> List[str]:
        """Entry ids to rank for a query, per the configured search mode."""
        if self.settings.search_mode == "exact":
            return [entry.id for entry in self.entries]
        return self.category_index.relevant_subset(query, self.bucket)

    def rank(self, query_vector: Sequence[float], candidate_ids: List[str]) -> List[ScoredEntry]:
        return self.store.search(np.asarray(query_vector, dtype=float), candidate_ids)

    async def find_best_match(self, query: str) -> MatchResult:
        """
        Answer one query.

        Never raises: an unloaded engine or model gives the "still loading"
        result, and any other failure gives a fixed apology with confidence 0.
        """
        if not self.ready or not self.provider.is_ready():
            logger.log_query(query, "not_ready")
            return not_ready_result()

        try:
            query_vector = await self.embeddings_service.embed_text(query)
            candidate_ids = self.candidates(query)
            ranked = self.rank(query_vector, candidate_ids)
            result = apply_threshold_policy(ranked, self.settings, self.category_index.categories)
        except ModelUnavailableError:
            logger.log_query(query, "not_ready")
            return not_ready_result()
        except Exception:
            logger.exception(f"Query processing failed for: {query[:50]}")
            return error_result()

        logger.log_query(query, result.status, result.confidence, {
            "candidates": len(candidate_ids),
            "matched_entry_id": result.matched_entry_id
        })
        return result

    def stats(self) -> Dict[str, Any]:
        """Summary of the loaded state for health reporting."""
        return {
            "ready": self.ready,
            "entry_count": len(self.entries),
            "vector_count": len(self.store),
            "categories": {category: len(ids) for category, ids in self.bucket.items()},
            "cache_hit": self.cache_hit,
            "search_mode": self.settings.search_mode,
            "loaded_at": self.loaded_at.isoformat() if self.loaded_at else None,
        }
