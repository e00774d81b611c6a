"""
Schema lifecycle for the embedding store.

Provisioning is a destructive reset meant for initial setup or full reinitialization.
It is never retried: any failure is surfaced as a fatal BackendUnavailableError.
"""

import logging
from typing import Any, Dict

from vector_core.storage.interfaces import (
    BackendUnavailableError,
    EmbeddingStorageInterface,
    EmbeddingStoreError,
)


class SchemaManager:
    """Owns provisioning and index (re)building for one storage backend."""

    def __init__(self, storage: EmbeddingStorageInterface):
        self.storage = storage
        self.logger = logging.getLogger(__name__)

    async def provision(self) -> None:
        """
        Drop and recreate the embeddings relation and its indexes.

        All stored records are lost.

        Raises:
            BackendUnavailableError: If the backend is unreachable or cannot host the schema
        """
        self.logger.warning(
            f"Provisioning embedding schema (dimension={self.storage.dimension}); "
            f"all existing records will be discarded"
        )
        try:
            await self.storage.provision()
        except BackendUnavailableError:
            self.logger.error("Provisioning failed: storage backend unavailable")
            raise
        except (EmbeddingStoreError, OSError) as e:
            self.logger.error(f"Provisioning failed: {e}")
            raise BackendUnavailableError(f"Provisioning failed: {e}") from e

        self.logger.info("Embedding schema provisioned")

    async def build_index(self) -> Dict[str, Any]:
        """
        Train the IVF centroids over every stored embedding and reassign all records.

        Returns:
            Index description including the number of vectors trained on
        """
        self.logger.info("Building IVF index")
        info = await self.storage.build_index()
        self.logger.info(
            f"IVF index ready: {info.get('num_clusters')} clusters over "
            f"{info.get('trained_vectors')} vectors"
        )
        return info

    async def get_index_info(self) -> Dict[str, Any]:
        return await self.storage.get_index_info()
