"""
Configuration for the knowledge-base matcher.
All settings come from environment variables (optionally a .env file).
"""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from dotenv import load_dotenv

from .errors import ConfigError

load_dotenv()

# Storage
DB_PATH = os.getenv("DB_PATH", "./data/kbmatch.db")

# Knowledge base input
KB_PATH = os.getenv("KB_PATH", "./data/preguntas_respuestas.json")
KB_PRIMARY_FIELD = os.getenv("KB_PRIMARY_FIELD")  # None -> try known aliases
KB_RESPONSE_FIELD = os.getenv("KB_RESPONSE_FIELD")

# Category keyword table (JSON object: category -> keywords)
CATEGORY_KEYWORDS_PATH = os.getenv(
    "CATEGORY_KEYWORDS_PATH",
    str(Path(__file__).resolve().parent.parent / "data" / "categories.json")
)

# Embedding provider
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "sentence_transformers")  # sentence_transformers|hash
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "intfloat/multilingual-e5-small")
EMBED_DIM = int(os.getenv("EMBED_DIM", "384"))
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "10"))

# Embedding cache - bump CACHE_SCHEMA_VERSION when the record shape changes
CACHE_KEY = os.getenv("CACHE_KEY", "chatbot_embeddings_cache")
CACHE_SCHEMA_VERSION = "v1.0"
FINGERPRINT_PREFIX_LEN = 80

# Candidate selection
SEARCH_MODE = os.getenv("SEARCH_MODE", "filtered")  # filtered|exact
CATEGORY_TOP_N = int(os.getenv("CATEGORY_TOP_N", "3"))
CATEGORY_MIN_CANDIDATES = int(os.getenv("CATEGORY_MIN_CANDIDATES", "20"))

# Decision thresholds (scores are cosine similarity x 100)
CONFIDENCE_THRESHOLD = float(os.getenv("CONFIDENCE_THRESHOLD", "30"))
ALTERNATIVE_MIN_SCORE = float(os.getenv("ALTERNATIVE_MIN_SCORE", "40"))
ALTERNATIVES_WINDOW = int(os.getenv("ALTERNATIVES_WINDOW", "4"))
RELATED_HINT_THRESHOLD = float(os.getenv("RELATED_HINT_THRESHOLD", "50"))
ALTERNATIVES_MAX_CONFIDENCE = float(os.getenv("ALTERNATIVES_MAX_CONFIDENCE", "75"))
SPECIFIC_HINT_THRESHOLD = float(os.getenv("SPECIFIC_HINT_THRESHOLD", "40"))
ALTERNATIVES_DISPLAY_MAX = 3
EXCERPT_MAX_CHARS = 120

# Fixed user-facing messages
NOT_READY_MESSAGE = "The system is still loading. Please wait a few seconds."
WAIT_FOR_LOAD_MESSAGE = "Please wait for the system to finish loading."
NO_MATCH_MESSAGE = ("I could not find a direct answer to your question. "
                    "Try rephrasing or using terms such as: {terms}.")
ERROR_MESSAGE = "Something went wrong while processing your question. Please try again."
RELATED_QUESTION_TEMPLATE = "Related question: \"{text}\""
ALTERNATIVES_HEADER = "You could also ask about:"
SPECIFIC_TIP_TEMPLATE = "Tip: try to be more specific. I can help with topics such as: {terms}, etc."

DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Version string
VERSION = "1.0.0"

SEARCH_MODES = ("filtered", "exact")


@dataclass(frozen=True)
class MatchSettings:
    """Snapshot of the ranking and reply thresholds handed to an engine."""

    search_mode: str = "filtered"
    category_top_n: int = 3
    category_min_candidates: int = 20
    confidence_threshold: float = 30.0
    alternative_min_score: float = 40.0
    alternatives_window: int = 4
    related_hint_threshold: float = 50.0
    alternatives_max_confidence: float = 75.0
    specific_hint_threshold: float = 40.0
    alternatives_display_max: int = 3
    excerpt_max_chars: int = 120
    batch_size: int = 10

    @classmethod
    def from_env(cls) -> "MatchSettings":
        """Build settings from the module-level configuration."""
        return cls(
            search_mode=SEARCH_MODE,
            category_top_n=CATEGORY_TOP_N,
            category_min_candidates=CATEGORY_MIN_CANDIDATES,
            confidence_threshold=CONFIDENCE_THRESHOLD,
            alternative_min_score=ALTERNATIVE_MIN_SCORE,
            alternatives_window=ALTERNATIVES_WINDOW,
            related_hint_threshold=RELATED_HINT_THRESHOLD,
            alternatives_max_confidence=ALTERNATIVES_MAX_CONFIDENCE,
            specific_hint_threshold=SPECIFIC_HINT_THRESHOLD,
            alternatives_display_max=ALTERNATIVES_DISPLAY_MAX,
            excerpt_max_chars=EXCERPT_MAX_CHARS,
            batch_size=EMBED_BATCH_SIZE,
        )


def get_cache_schema_version() -> str:
    """Cache schema version tied to the embedding model, so a model swap invalidates caches."""
    model = EMBED_MODEL_NAME if EMBED_PROVIDER != "hash" else f"hash-{EMBED_DIM}"
    return f"{CACHE_SCHEMA_VERSION}:{model}"


def load_category_keywords(path: str = None) -> Dict[str, List[str]]:
    """
    Load the category keyword table. Object order is the declaration order.

    Raises:
        ConfigError: file missing, unreadable, or not a JSON object
    """
    path = path or CATEGORY_KEYWORDS_PATH
    try:
        with open(path, encoding="utf-8") as f:
            table = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read category table {path}: {e}") from e

    if not isinstance(table, dict):
        raise ConfigError(f"Category table must be a JSON object: {path}")

    return {str(category): [str(k) for k in keywords] for category, keywords in table.items()}


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "hash":
        from kbmatch.vector.embeddings import DeterministicHashEmbedding
        return DeterministicHashEmbedding(EMBED_DIM)

    from kbmatch.vector.embeddings import SentenceTransformerEmbedding
    return SentenceTransformerEmbedding(EMBED_MODEL_NAME)


def get_kv_store(db_path: str = None):
    """Get the SQLite-backed key-value store used for the embedding cache."""
    from kbmatch.core.storage import SQLiteKeyValueStore
    return SQLiteKeyValueStore(db_path or DB_PATH)


def get_match_engine(entries=None, kb_path: str = None, db_path: str = None):
    """
    Build a match engine wired from configuration. The engine is not loaded yet.

    Raises:
        KnowledgeBaseError: if ``entries`` is None and the knowledge base cannot be loaded
        ConfigError: if the category keyword table cannot be loaded
    """
    from kbmatch.core.knowledge_base import load_entries
    from kbmatch.vector.cache import EmbeddingCache
    from kbmatch.vector.categories import CategoryIndex
    from kbmatch.vector.engine import MatchEngine

    if entries is None:
        entries = load_entries(kb_path)

    settings = MatchSettings.from_env()
    cache = EmbeddingCache(get_kv_store(db_path), get_cache_schema_version(), CACHE_KEY)
    category_index = CategoryIndex(
        load_category_keywords(),
        top_n=settings.category_top_n,
        min_candidates=settings.category_min_candidates
    )
    return MatchEngine(entries, get_embedding_provider(), cache=cache,
                       category_index=category_index, settings=settings)


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate matcher configuration and return any issues."""
    issues = []

    if SEARCH_MODE not in SEARCH_MODES:
        issues.append(f"Invalid SEARCH_MODE: {SEARCH_MODE}")

    if EMBED_PROVIDER not in ["sentence_transformers", "hash"]:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if EMBED_BATCH_SIZE < 1:
        issues.append("EMBED_BATCH_SIZE must be >= 1")

    if CATEGORY_TOP_N < 1:
        issues.append("CATEGORY_TOP_N must be >= 1")

    for name, value in [
        ("CONFIDENCE_THRESHOLD", CONFIDENCE_THRESHOLD),
        ("ALTERNATIVE_MIN_SCORE", ALTERNATIVE_MIN_SCORE),
        ("RELATED_HINT_THRESHOLD", RELATED_HINT_THRESHOLD),
        ("ALTERNATIVES_MAX_CONFIDENCE", ALTERNATIVES_MAX_CONFIDENCE),
        ("SPECIFIC_HINT_THRESHOLD", SPECIFIC_HINT_THRESHOLD),
    ]:
        if not 0 <= value <= 100:
            issues.append(f"{name} must be between 0 and 100: {value}")

    return issues
