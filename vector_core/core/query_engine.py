"""
Query engine: point lookup, nearest-neighbor search, collection enumeration and health.

Search results are ordered by ascending cosine distance with ties broken by ascending
id. Once the IVF index is trained only the nearest clusters are scanned, so recall can
fall below 100%; raise nprobe (up to nlist) to trade latency for recall.
"""

import logging
from typing import List, Optional, Sequence

from vector_core.model.embedding_record import EmbeddingRecord, SearchResult
from vector_core.storage.interfaces import EmbeddingStorageInterface
from vector_core.storage.validation import (
    validate_collection,
    validate_embedding,
    validate_key,
    validate_limit,
    validate_threshold,
)


class QueryEngine:
    def __init__(self, storage: EmbeddingStorageInterface):
        self.storage = storage
        self.logger = logging.getLogger(__name__)

    async def get_by_id(self, record_id: str, collection: str) -> Optional[EmbeddingRecord]:
        """Return the record keyed by (collection, id), or None if absent."""
        record_id, collection = validate_key(record_id, collection)
        return await self.storage.get(collection, record_id)

    async def search(
        self,
        query_embedding: Sequence[float],
        collection: str,
        limit: int = 10,
        threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        """
        Find the records of a collection nearest to a query embedding.

        Args:
            query_embedding: Query vector of the configured dimension
            collection: Collection to search; results never cross collections
            limit: Maximum number of results (at least 1)
            threshold: Optional maximum cosine distance; farther records are dropped
                before the result is truncated to ``limit``

        Returns:
            Results ordered by ascending distance, ties by ascending id
        """
        query_vector = validate_embedding(query_embedding, self.storage.dimension)
        collection = validate_collection(collection)
        limit = validate_limit(limit)
        threshold = validate_threshold(threshold)

        results = await self.storage.search(query_vector, collection, limit, threshold)
        self.logger.debug(f"Search in '{collection}' returned {len(results)} results")
        return results

    async def list_collections(self) -> List[str]:
        """Return the distinct populated collection names, sorted."""
        return await self.storage.list_collections()

    async def count(self, collection: Optional[str] = None) -> int:
        if collection is not None:
            collection = validate_collection(collection)
        return await self.storage.count(collection)

    async def health_check(self) -> bool:
        """True if the backend is reachable and the schema is queryable."""
        healthy = await self.storage.health_check()
        if not healthy:
            self.logger.warning("Embedding store health check failed")
        return healthy
