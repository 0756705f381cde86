"""
Semantic retrieval: embeddings, category pre-filtering, vector ranking and the
persisted embedding cache.
"""

from .types import Entry, VectorRecord, ScoredEntry, Alternative, MatchResult
from .index import IVectorStore, SimpleInMemoryVectorStore, cosine_similarity
from .embeddings import IEmbeddingProvider, DeterministicHashEmbedding, SentenceTransformerEmbedding, EmbeddingsService
from .categories import CategoryIndex
from .cache import EmbeddingCache, CacheRecord, fingerprint
from .engine import MatchEngine, apply_threshold_policy

__all__ = [
    'Entry',
    'VectorRecord',
    'ScoredEntry',
    'Alternative',
    'MatchResult',
    'IVectorStore',
    'SimpleInMemoryVectorStore',
    'cosine_similarity',
    'IEmbeddingProvider',
    'DeterministicHashEmbedding',
    'SentenceTransformerEmbedding',
    'EmbeddingsService',
    'CategoryIndex',
    'EmbeddingCache',
    'CacheRecord',
    'fingerprint',
    'MatchEngine',
    'apply_threshold_policy'
]
