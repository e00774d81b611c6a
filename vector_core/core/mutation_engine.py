"""
Mutation engine: insert-or-replace, update and delete of embedding records.

Input is validated before the backend is touched, so a rejected call leaves
storage unchanged.
"""

import logging
from typing import Any, Dict, Optional, Sequence, Union

from vector_core.model.embedding_record import EmbeddingRecord
from vector_core.storage.interfaces import EmbeddingStorageInterface
from vector_core.storage.validation import validate_batch, validate_key, validate_record


class MutationEngine:
    """Validates and applies record mutations against a storage backend."""

    def __init__(self, storage: EmbeddingStorageInterface):
        self.storage = storage
        self.logger = logging.getLogger(__name__)

    async def upsert_one(
        self,
        record_id: str,
        collection: str,
        content: str,
        metadata: Optional[Dict[str, Any]],
        embedding: Sequence[float],
    ) -> None:
        """
        Insert a record, or fully replace the one already stored under (collection, id).

        Raises:
            ValidationError: On a missing field or an embedding of the wrong dimension
        """
        record = validate_record(
            record_id, collection, content, metadata, embedding, self.storage.dimension
        )
        await self.storage.upsert_one(record)

    async def upsert_many(self, records: Sequence[Union[EmbeddingRecord, Dict[str, Any]]]) -> int:
        """
        Insert-or-replace a batch of records as one unit.

        Either every record is written or none is. A malformed entry fails the
        whole call with a ValidationError whose ``index`` names the entry.

        Returns:
            Number of records written
        """
        validated = validate_batch(records, self.storage.dimension)
        if not validated:
            return 0

        written = await self.storage.upsert_many(validated)
        self.logger.debug(f"Batch upsert wrote {written} records")
        return written

    async def update(
        self,
        record_id: str,
        collection: str,
        content: str,
        metadata: Optional[Dict[str, Any]],
        embedding: Sequence[float],
    ) -> int:
        """
        Overwrite an existing record's content, metadata and embedding.

        Returns:
            1 if the record existed, 0 if there was nothing to update
        """
        record = validate_record(
            record_id, collection, content, metadata, embedding, self.storage.dimension
        )
        affected = await self.storage.update(record)
        if not affected:
            self.logger.debug(f"Update of missing record {collection}/{record_id} was a no-op")
        return affected

    async def delete(self, record_id: str, collection: str) -> int:
        """
        Remove the record keyed by (collection, id) if it exists.

        Returns:
            1 if a record was removed, 0 otherwise
        """
        record_id, collection = validate_key(record_id, collection)
        return await self.storage.delete(collection, record_id)
