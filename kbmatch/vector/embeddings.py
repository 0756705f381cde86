"""
Embedding providers and bulk embedding for knowledge-base entries.
The provider is the only slow dependency: model loading and inference.
"""

from abc import ABC, abstractmethod
import asyncio
import hashlib
import time
from typing import Callable, List, Optional, Sequence

import numpy as np
from sentence_transformers import SentenceTransformer

from ..core.errors import ModelUnavailableError
from ..util.logging import logger
from .types import Entry

ProgressCallback = Callable[[int, int], None]


class IEmbeddingProvider(ABC):
    """Abstract interface for embedding providers."""

    @abstractmethod
    def embed_text(self, text: str) -> list[float]:
        """Generate a normalized embedding vector for given text."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        pass

    def load(self) -> None:
        """Initialize the underlying model. No-op for providers without one."""
        pass

    def is_ready(self) -> bool:
        """Whether embed_text can be called."""
        return True


class DeterministicHashEmbedding(IEmbeddingProvider):
    """Deterministic hash-based embedding provider for testing purposes.

    Expands SHA-256 digests of the text into a unit-length vector, so
    identical text always maps to the identical vector without a model.
    """

    def __init__(self, dimension: int = 384):
        self.dimension = dimension

    def embed_text(self, text: str) -> list[float]:
        """Generate deterministic embedding vector using hash function."""
        values = []
        counter = 0
        while len(values) < self.dimension:
            digest = hashlib.sha256(f"{counter}:{text}".encode()).digest()
            for i in range(0, len(digest), 4):
                value = int.from_bytes(digest[i:i + 4], "big")
                # Map to [-1, 1]
                values.append((value / (2**32)) * 2 - 1)
            counter += 1

        vector = np.array(values[:self.dimension])
        norm = np.linalg.norm(vector)
        if norm > 0:
            vector = vector / norm
        return vector.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        return self.dimension


class SentenceTransformerEmbedding(IEmbeddingProvider):
    """Sentence transformers embedding provider using pre-trained models.

    Defaults to the multilingual e5-small model (384 dimensions). The model
    must be loaded explicitly with load() before embed_text is used.
    """

    def __init__(self, model_name: str = "intfloat/multilingual-e5-small"):
        self.model_name = model_name
        self._model = None
        self._dimension = None

    def load(self) -> None:
        """
        Load the model once; later calls are no-ops.

        Raises:
            ModelUnavailableError: the model could not be downloaded or built
        """
        if self._model is None:
            started = time.monotonic()
            try:
                self._model = SentenceTransformer(self.model_name)
            except Exception as e:
                logger.log_operation("embeddings.model_load", "failed", {"model": self.model_name, "error": str(e)})
                raise ModelUnavailableError(f"Could not load embedding model {self.model_name}: {e}") from e
            logger.log_operation("embeddings.model_load", "success", {
                "model": self.model_name,
                "duration_ms": round((time.monotonic() - started) * 1000, 2)
            })

    def is_ready(self) -> bool:
        return self._model is not None

    def _prepare(self, text: str) -> str:
        # e5 models were trained with an explicit input prefix
        if "e5" in self.model_name.lower():
            return f"query: {text}"
        return text

    def embed_text(self, text: str) -> list[float]:
        """Generate embedding vector using sentence transformers."""
        if self._model is None:
            raise ModelUnavailableError(f"Embedding model not loaded: {self.model_name}")

        embedding = self._model.encode(self._prepare(text), convert_to_tensor=False, normalize_embeddings=True)
        return embedding.tolist()

    def get_dimension(self) -> int:
        """Get the dimension of the embedding vectors."""
        if self._model is None:
            raise ModelUnavailableError(f"Embedding model not loaded: {self.model_name}")
        if self._dimension is None:
            self._dimension = self._model.get_sentence_embedding_dimension()
        return self._dimension


class EmbeddingsService:
    """
    Bulk embedding of knowledge-base entries.

    Entries are processed in sequential batches. Every call inside a batch runs
    concurrently and the next batch starts only once the whole batch is done,
    so at most ``batch_size`` provider calls are in flight.
    """

    def __init__(self, provider: IEmbeddingProvider, batch_size: int = 10):
        """
        Initialize the embeddings service.

        Args:
            provider: Embedding provider used for every entry
            batch_size: Number of concurrent provider calls per batch
        """
        if batch_size < 1:
            raise ValueError(f"Batch size must be >= 1: {batch_size}")
        self.provider = provider
        self.batch_size = batch_size

    async def embed_text(self, text: str) -> list[float]:
        """Embed one text without blocking the event loop."""
        return await asyncio.to_thread(self.provider.embed_text, text)

    async def embed_entries(self, entries: Sequence[Entry],
                            progress: Optional[ProgressCallback] = None) -> List[list[float]]:
        """
        Embed every entry, batch by batch.

        Args:
            entries: Entries in knowledge-base order
            progress: Called with (done, total) after each batch

        Returns:
            Vectors in the same order as ``entries``
        """
        total = len(entries)
        total_batches = (total + self.batch_size - 1) // self.batch_size
        vectors: List[list[float]] = []

        for batch_index in range(total_batches):
            start = batch_index * self.batch_size
            end = min(start + self.batch_size, total)
            started = time.monotonic()

            batch_vectors = await asyncio.gather(
                *(self.embed_text(entry.embedding_text) for entry in entries[start:end])
            )
            vectors.extend(batch_vectors)

            logger.log_embedding_batch(batch_index + 1, total_batches, end, total,
                                       (time.monotonic() - started) * 1000)
            if progress is not None:
                progress(end, total)

        return vectors
