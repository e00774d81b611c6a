"""
Embedding Store module that integrates all components.

This module provides the unified interface for storing embedding records and
querying them by similarity, combining the schema manager, mutation engine and
query engine over one storage backend.

Nearest-neighbor search is approximate once the IVF index has been trained
(see build_index()): only the nprobe closest clusters are scanned, so a true
neighbor in an unprobed cluster can be missed. Search is exact while the index
is untrained or when nprobe >= nlist.
"""

from typing import Any, Dict, List, Optional, Sequence, Union

from vector_core.core.maintenance_gate import MaintenanceGate
from vector_core.core.mutation_engine import MutationEngine
from vector_core.core.query_engine import QueryEngine
from vector_core.core.schema_manager import SchemaManager
from vector_core.model.embedding_record import EmbeddingRecord, SearchResult
from vector_core.monitoring.structured_logger import (
    LogLevel,
    LoggingContext,
    OperationLogger,
    get_logger,
)
from vector_core.storage.factory import create_storage
from vector_core.storage.interfaces import EmbeddingStorageInterface


class EmbeddingStore:
    """
    Main entry point for working with stored embeddings.

    Ordinary operations share the store concurrently; provision() and
    build_index() run exclusively, waiting for in-flight operations to finish
    and holding new ones back until they complete.

    Example:
        async with EmbeddingStore.from_config() as store:
            await store.upsert_one("doc-1", "docs", "hello", None, vector)
            results = await store.search(query, "docs", limit=5)
    """

    def __init__(self, storage: EmbeddingStorageInterface):
        """
        Initialize the EmbeddingStore.

        Args:
            storage: Backend implementing the embedding storage interface
        """
        self.storage = storage
        self.schema = SchemaManager(storage)
        self.mutations = MutationEngine(storage)
        self.queries = QueryEngine(storage)

        self._gate = MaintenanceGate()
        self.logger = get_logger(__name__, component="embedding_store")

    @classmethod
    def from_config(
        cls,
        backend_type: Optional[str] = None,
        config_override: Optional[Dict[str, Any]] = None,
    ) -> "EmbeddingStore":
        """
        Build a store over the backend selected by the configuration manager.

        Args:
            backend_type: 'sqlite' or 'numpy'; None uses the configured backend
            config_override: Backend constructor arguments overriding the configuration
        """
        return cls(create_storage(backend_type, config_override))

    @property
    def dimension(self) -> int:
        return self.storage.dimension

    async def connect(self) -> None:
        await self.storage.connect()

    async def close(self) -> None:
        await self.storage.close()

    async def __aenter__(self) -> "EmbeddingStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _operation(self, name: str, level: LogLevel = LogLevel.DEBUG, **context) -> OperationLogger:
        return OperationLogger(self.logger, name, level, **context)

    # Maintenance
    async def provision(self) -> None:
        """
        Drop and recreate the schema, discarding every stored record.

        Intended for initial setup or full reinitialization only.

        Raises:
            BackendUnavailableError: If the backend is unreachable (never retried)
        """
        with LoggingContext():
            async with self._gate.exclusive():
                with self._operation("provision", LogLevel.INFO):
                    await self.schema.provision()

    async def build_index(self) -> Dict[str, Any]:
        """(Re)train the IVF centroids over all stored embeddings."""
        with LoggingContext():
            async with self._gate.exclusive():
                with self._operation("build_index", LogLevel.INFO):
                    return await self.schema.build_index()

    async def get_index_info(self) -> Dict[str, Any]:
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("get_index_info"):
                    return await self.schema.get_index_info()

    # Mutations
    async def upsert_one(
        self,
        record_id: str,
        collection: str,
        content: str,
        metadata: Optional[Dict[str, Any]],
        embedding: Sequence[float],
    ) -> None:
        """
        Insert a record or fully replace the one stored under (collection, record_id).

        Raises:
            ValidationError: Missing id/collection/content or wrong embedding dimension
            BackendUnavailableError: Storage unreachable or schema missing
        """
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("upsert_one", collection=collection):
                    await self.mutations.upsert_one(
                        record_id, collection, content, metadata, embedding
                    )

    async def upsert_many(self, records: Sequence[Union[EmbeddingRecord, Dict[str, Any]]]) -> int:
        """
        Insert-or-replace a batch atomically.

        Raises:
            ValidationError: If any entry is malformed; nothing is written
        """
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("upsert_many") as op:
                    written = await self.mutations.upsert_many(records)
                    op.context["records"] = written
                    return written

    async def update(
        self,
        record_id: str,
        collection: str,
        content: str,
        metadata: Optional[Dict[str, Any]],
        embedding: Sequence[float],
    ) -> int:
        """Overwrite an existing record; a missing key is a no-op returning 0."""
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("update", collection=collection):
                    return await self.mutations.update(
                        record_id, collection, content, metadata, embedding
                    )

    async def delete(self, record_id: str, collection: str) -> int:
        """Remove a record; a missing key is a no-op returning 0."""
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("delete", collection=collection):
                    return await self.mutations.delete(record_id, collection)

    # Queries
    async def get_by_id(self, record_id: str, collection: str) -> Optional[EmbeddingRecord]:
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("get_by_id", collection=collection):
                    return await self.queries.get_by_id(record_id, collection)

    async def search(
        self,
        query_embedding: Sequence[float],
        collection: str,
        limit: int = 10,
        threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        """
        Approximate nearest-neighbor search within one collection.

        Results are ordered by ascending cosine distance, ties by ascending id.
        ``threshold`` drops results farther than the given distance before
        truncation to ``limit``.
        """
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("search", collection=collection, limit=limit) as op:
                    results = await self.queries.search(
                        query_embedding, collection, limit, threshold
                    )
                    op.context["results"] = len(results)
                    return results

    async def list_collections(self) -> List[str]:
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("list_collections"):
                    return await self.queries.list_collections()

    async def count(self, collection: Optional[str] = None) -> int:
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("count", collection=collection):
                    return await self.queries.count(collection)

    async def health_check(self) -> bool:
        """True if the backend is reachable and the schema is queryable; never raises."""
        with LoggingContext():
            async with self._gate.shared():
                with self._operation("health_check"):
                    return await self.queries.health_check()
