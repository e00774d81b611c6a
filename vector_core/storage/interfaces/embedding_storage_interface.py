"""
Abstract interface for embedding storage backends.

This module defines the capability set every backend must provide so the engine is not
coupled to one storage product: create-schema, upsert, upsert-batch, update, delete,
point-lookup, nearest-neighbor-search, enumerate-partitions and health-check.

Backends receive records that were already validated at the engine boundary. They are
responsible for atomicity: each call is one transaction, and a batch either commits as a
whole or not at all.
"""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, Optional, Sequence

import numpy as np

from vector_core.model.embedding_record import EmbeddingRecord, SearchResult


DEFAULT_DIMENSION = 100


class EmbeddingStorageInterface(ABC):
    """
    Abstract base class for embedding storage backends.

    Search is approximate when the backend's cluster index is trained; see
    vector_core.storage.index for the recall tradeoff.
    """

    def __init__(self, dimension: int = DEFAULT_DIMENSION):
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        """Return the fixed vector dimension shared by schema and operations."""
        return self._dimension

    # Connection Management
    @abstractmethod
    async def connect(self) -> None:
        """Establish connection to the storage backend."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Close connection to the storage backend."""
        pass

    # Schema
    @abstractmethod
    async def provision(self) -> None:
        """
        Drop and recreate the embeddings relation, its constraints and indexes.

        Destroys all stored records. Raises BackendUnavailableError if the storage
        cannot be reached or lacks the required capabilities.
        """
        pass

    @abstractmethod
    async def build_index(self) -> Dict[str, Any]:
        """
        Train the cluster index over all stored embeddings and reassign every record.

        Returns:
            Dictionary describing the trained index
        """
        pass

    @abstractmethod
    async def get_index_info(self) -> Dict[str, Any]:
        """Return dimension, metric and cluster index state."""
        pass

    # Mutations
    async def upsert_one(self, record: EmbeddingRecord) -> None:
        """Insert a record or fully replace the record with the same key."""
        await self.upsert_many([record])

    @abstractmethod
    async def upsert_many(self, records: Sequence[EmbeddingRecord]) -> int:
        """
        Insert-or-replace every record as one transaction.

        Later entries win over earlier entries with the same key.

        Returns:
            Number of records written
        """
        pass

    @abstractmethod
    async def update(self, record: EmbeddingRecord) -> int:
        """
        Overwrite content, metadata and embedding of an existing record.

        Returns:
            Number of records affected (0 when the key does not exist)
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, record_id: str) -> int:
        """
        Remove the record keyed by (collection, record_id) if present.

        Returns:
            Number of records removed
        """
        pass

    # Queries
    @abstractmethod
    async def get(self, collection: str, record_id: str) -> Optional[EmbeddingRecord]:
        """Return the record for the key, or None if absent."""
        pass

    @abstractmethod
    async def search(
        self,
        query_vector: np.ndarray,
        collection: str,
        limit: int,
        threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        """
        Nearest-neighbor search within one collection.

        Results are ordered by ascending cosine distance, ties broken by ascending id.
        When threshold is given, results farther than it are dropped before truncation
        to limit.
        """
        pass

    @abstractmethod
    async def list_collections(self) -> List[str]:
        """Return the distinct collection names currently populated, sorted."""
        pass

    @abstractmethod
    async def count(self, collection: Optional[str] = None) -> int:
        """Count records, optionally within one collection."""
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Return True if the backend is reachable and the schema is queryable."""
        pass

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(dim={self.dimension})"


class EmbeddingStoreError(Exception):
    """Base exception for embedding store errors."""
    pass


class ValidationError(EmbeddingStoreError, ValueError):
    """
    Malformed input; the operation was not attempted.

    Attributes:
        field: Name of the offending field, if known
        index: Position of the offending entry in a batch, if any
    """

    def __init__(self, message: str, field: Optional[str] = None, index: Optional[int] = None):
        super().__init__(message)
        self.field = field
        self.index = index


class DimensionMismatchError(ValidationError):
    """Raised when a vector does not have the configured dimension."""

    def __init__(self, expected: int, actual: int, index: Optional[int] = None):
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}",
            field="embedding",
            index=index,
        )
        self.expected = expected
        self.actual = actual


class ConflictError(EmbeddingStoreError):
    """Reserved for insert-only semantics; insert-or-replace never raises it."""
    pass


class BackendUnavailableError(EmbeddingStoreError):
    """Storage is unreachable or the schema is missing. Callers may retry with backoff."""
    pass
