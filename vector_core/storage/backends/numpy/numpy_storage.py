"""
NumPy-based embedding storage implementation.

This module provides a lightweight in-memory implementation of the
EmbeddingStorageInterface using NumPy for vector math. Good for tests, development and
small deployments without a database. State can optionally be persisted to disk with
pickle; a write is only acknowledged once the snapshot is saved.
"""

import copy
import logging
import os
import pickle
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from vector_core.model.embedding_record import EmbeddingRecord, SearchResult
from vector_core.storage.index import IVFIndex, cosine_distances, rank_by_distance
from vector_core.storage.interfaces import (
    DEFAULT_DIMENSION,
    BackendUnavailableError,
    EmbeddingStorageInterface,
)

_SNAPSHOT_FILE = "embeddings.pkl"
_SNAPSHOT_VERSION = 1


class NumpyStorage(EmbeddingStorageInterface):
    """
    NumPy-based implementation of the embedding storage interface.

    Records are held as collection -> id -> entry dictionaries. Entries are never
    mutated in place; every write swaps in new entries under a lock, which makes
    rollback of a failed batch a matter of restoring the previous mapping.
    """

    def __init__(
        self,
        dimension: int = DEFAULT_DIMENSION,
        persist_path: Optional[str] = None,
        auto_save: bool = True,
        nlist: int = 100,
        nprobe: int = 10,
        max_iterations: int = 25,
        train_threshold: int = 0,
        seed: Optional[int] = None,
    ):
        """
        Initialize the NumPy storage.

        Args:
            dimension: Fixed embedding dimension
            persist_path: Directory to save snapshots to (None for memory-only)
            auto_save: Save after every write (default: True)
            nlist: Number of IVF clusters trained by build_index()
            nprobe: Number of clusters scanned per search
            max_iterations: k-means iteration bound
            train_threshold: Train automatically once an untrained store holds this many
                records (0 disables)
            seed: Random seed for k-means
        """
        super().__init__(dimension)

        self.logger = logging.getLogger(__name__)

        self.persist_path = persist_path
        self.auto_save = auto_save
        self.nlist = nlist
        self.nprobe = nprobe
        self.max_iterations = max_iterations
        self.train_threshold = train_threshold
        self.seed = seed

        # Thread safety
        self._lock = Lock()

        self._records: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._centroids: Optional[np.ndarray] = None
        self._provisioned = False
        self._is_connected = False

        if self.persist_path:
            self._load_from_disk()

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    @property
    def _persisting(self) -> bool:
        return bool(self.persist_path and self.auto_save)

    async def connect(self) -> None:
        """Mark the store ready (no-op for the in-memory store)."""
        self._is_connected = True
        self.logger.info("Connected to NumPy embedding storage")

    async def close(self) -> None:
        """Save pending state if persistence is enabled and mark the store closed."""
        if self._persisting and self._provisioned:
            with self._lock:
                self._save_to_disk()
        self._is_connected = False
        self.logger.info("Disconnected from NumPy embedding storage")

    def _require_schema(self):
        if not self._provisioned:
            raise BackendUnavailableError("Embedding schema is missing; run provision() first")

    def _index(self) -> IVFIndex:
        return IVFIndex(
            nlist=self.nlist,
            nprobe=self.nprobe,
            max_iterations=self.max_iterations,
            seed=self.seed,
            centroids=self._centroids,
        )

    def _snapshot(self) -> Optional[Tuple[Dict[str, Dict[str, Dict[str, Any]]], Any]]:
        if not self._persisting:
            return None
        return {c: dict(entries) for c, entries in self._records.items()}, self._centroids

    def _commit(self, snapshot) -> None:
        """Persist the current state; restore the snapshot if saving fails."""
        if not self._persisting:
            return
        try:
            self._save_to_disk()
        except BackendUnavailableError:
            self._records, self._centroids = snapshot
            raise

    @staticmethod
    def _make_entry(record: EmbeddingRecord, vector: np.ndarray, cluster_id) -> Dict[str, Any]:
        return {
            "content": record.content,
            "metadata": copy.deepcopy(record.metadata),
            "vector": np.array(vector, dtype=np.float64),
            "cluster_id": cluster_id,
        }

    @staticmethod
    def _to_record(collection: str, record_id: str, entry: Dict[str, Any]) -> EmbeddingRecord:
        return EmbeddingRecord(
            record_id=record_id,
            collection=collection,
            content=entry["content"],
            embedding=entry["vector"].tolist(),
            metadata=copy.deepcopy(entry["metadata"]),
        )

    def _put(self, collection: str, record_id: str, entry: Dict[str, Any]) -> None:
        self._records.setdefault(collection, {})[record_id] = entry

    # Schema
    async def provision(self) -> None:
        """Discard every record and start from an empty schema."""
        with self._lock:
            snapshot = self._snapshot()
            previous = self._provisioned
            self._records = {}
            self._centroids = None
            self._provisioned = True
            try:
                self._commit(snapshot)
            except BackendUnavailableError:
                self._provisioned = previous
                raise

        self.logger.info(f"Provisioned NumPy embedding storage (dimension={self.dimension})")

    def _train(self) -> Dict[str, Any]:
        keys = [(c, rid) for c, entries in self._records.items() for rid in entries]
        index = IVFIndex(
            nlist=self.nlist,
            nprobe=self.nprobe,
            max_iterations=self.max_iterations,
            seed=self.seed,
        )
        if not keys:
            self._centroids = None
            return {**index.get_info(), "trained_vectors": 0}

        vectors = np.vstack([self._records[c][rid]["vector"] for c, rid in keys])
        assignments = index.train(vectors)
        self._centroids = index.centroids

        for (collection, record_id), cluster_id in zip(keys, assignments):
            entry = dict(self._records[collection][record_id])
            entry["cluster_id"] = int(cluster_id)
            self._records[collection][record_id] = entry

        return {**index.get_info(), "trained_vectors": len(keys)}

    async def build_index(self) -> Dict[str, Any]:
        with self._lock:
            self._require_schema()
            snapshot = self._snapshot()
            info = self._train()
            self._commit(snapshot)

        self.logger.info(
            f"Built IVF index: {info['num_clusters']} clusters, {info['trained_vectors']} vectors"
        )
        return info

    async def get_index_info(self) -> Dict[str, Any]:
        with self._lock:
            self._require_schema()
            index = self._index()
            unassigned = sum(
                1
                for entries in self._records.values()
                for entry in entries.values()
                if entry["cluster_id"] is None
            )
            memory_bytes = sum(
                entry["vector"].nbytes
                for entries in self._records.values()
                for entry in entries.values()
            )

        return {
            **index.get_info(),
            "backend": "numpy",
            "dimension": self.dimension,
            "metric_type": "COSINE",
            "unassigned_vectors": unassigned,
            "memory_usage_mb": memory_bytes / (1024 * 1024),
        }

    # Mutations
    async def upsert_many(self, records: Sequence[EmbeddingRecord]) -> int:
        if not records:
            return 0

        vectors = np.vstack([np.asarray(r.embedding, dtype=np.float64) for r in records])

        with self._lock:
            self._require_schema()
            snapshot = self._snapshot()
            index = self._index()
            assignments = index.assign(vectors)

            # Stage first so a failure leaves no partial batch behind
            staged = [
                (
                    record.collection,
                    record.record_id,
                    self._make_entry(
                        record,
                        vectors[i],
                        None if assignments is None else int(assignments[i]),
                    ),
                )
                for i, record in enumerate(records)
            ]
            for collection, record_id, entry in staged:
                self._put(collection, record_id, entry)

            if self.train_threshold and not index.is_trained:
                total = sum(len(entries) for entries in self._records.values())
                if total >= self.train_threshold:
                    self.logger.info(f"Store reached {total} records, training IVF index")
                    self._train()

            self._commit(snapshot)

        self.logger.debug(f"Upserted {len(records)} records")
        return len(records)

    async def update(self, record: EmbeddingRecord) -> int:
        vector = np.asarray(record.embedding, dtype=np.float64)

        with self._lock:
            self._require_schema()
            if record.record_id not in self._records.get(record.collection, {}):
                return 0

            snapshot = self._snapshot()
            assignment = self._index().assign(vector)
            self._put(
                record.collection,
                record.record_id,
                self._make_entry(record, vector, None if assignment is None else int(assignment[0])),
            )
            self._commit(snapshot)
            return 1

    async def delete(self, collection: str, record_id: str) -> int:
        with self._lock:
            self._require_schema()
            entries = self._records.get(collection)
            if not entries or record_id not in entries:
                return 0

            snapshot = self._snapshot()
            remaining = dict(entries)
            del remaining[record_id]
            if remaining:
                self._records[collection] = remaining
            else:
                # Last record gone, so the collection is gone too
                del self._records[collection]
            self._commit(snapshot)
            return 1

    # Queries
    async def get(self, collection: str, record_id: str) -> Optional[EmbeddingRecord]:
        with self._lock:
            self._require_schema()
            entry = self._records.get(collection, {}).get(record_id)
            if entry is None:
                return None
            return self._to_record(collection, record_id, entry)

    async def search(
        self,
        query_vector: np.ndarray,
        collection: str,
        limit: int,
        threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        with self._lock:
            self._require_schema()
            entries = self._records.get(collection)
            if not entries:
                return []

            index = self._index()
            if index.is_exhaustive():
                candidates = list(entries.items())
            else:
                probed = set(index.probe(query_vector))
                candidates = [
                    (rid, entry)
                    for rid, entry in entries.items()
                    if entry["cluster_id"] is None or entry["cluster_id"] in probed
                ]
            if not candidates:
                return []

            ids = [rid for rid, _ in candidates]
            vectors = np.vstack([entry["vector"] for _, entry in candidates])
            ranked = rank_by_distance(ids, cosine_distances(query_vector, vectors), limit, threshold)

            return [
                SearchResult(self._to_record(collection, rid, entries[rid]), distance)
                for rid, distance in ranked
            ]

    async def list_collections(self) -> List[str]:
        with self._lock:
            self._require_schema()
            return sorted(c for c, entries in self._records.items() if entries)

    async def count(self, collection: Optional[str] = None) -> int:
        with self._lock:
            self._require_schema()
            if collection is not None:
                return len(self._records.get(collection, {}))
            return sum(len(entries) for entries in self._records.values())

    async def health_check(self) -> bool:
        if not self._provisioned:
            self.logger.error("NumPy health check failed: schema not provisioned")
            return False
        return True

    # Persistence
    def _save_to_disk(self) -> None:
        """Write a snapshot atomically (temp file + rename)."""
        try:
            persist_path = Path(self.persist_path)
            persist_path.mkdir(parents=True, exist_ok=True)

            snapshot_file = persist_path / _SNAPSHOT_FILE
            tmp_file = persist_path / f"{_SNAPSHOT_FILE}.tmp"
            with open(tmp_file, "wb") as f:
                pickle.dump(
                    {
                        "version": _SNAPSHOT_VERSION,
                        "dimension": self.dimension,
                        "records": self._records,
                        "centroids": self._centroids,
                    },
                    f,
                    protocol=pickle.HIGHEST_PROTOCOL,
                )
            os.replace(tmp_file, snapshot_file)

            self.logger.debug(f"Saved embeddings snapshot to {snapshot_file}")

        except (OSError, pickle.PicklingError) as e:
            self.logger.error(f"Failed to save to disk: {e}")
            raise BackendUnavailableError(f"Failed to persist embeddings: {e}") from e

    def _load_from_disk(self) -> None:
        """Load a saved snapshot; a missing or unusable snapshot leaves the store unprovisioned."""
        snapshot_file = Path(self.persist_path) / _SNAPSHOT_FILE
        if not snapshot_file.exists():
            return

        try:
            with open(snapshot_file, "rb") as f:
                data = pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError) as e:
            self.logger.warning(f"Failed to load from disk: {e}")
            return

        if data.get("dimension") != self.dimension:
            self.logger.warning(
                f"Snapshot dimension {data.get('dimension')} does not match configured "
                f"dimension {self.dimension}; re-provision required"
            )
            return

        self._records = data["records"]
        self._centroids = data["centroids"]
        self._provisioned = True
        total = sum(len(entries) for entries in self._records.values())
        self.logger.info(f"Loaded {total} embeddings from {snapshot_file}")
