"""
SQLite storage implementation for embedding records.

This module provides a durable, aiosqlite-based implementation of the
EmbeddingStorageInterface. Records live in one relation keyed by (collection, id);
the IVF cluster centroids live in a side table, and each record carries the id of the
cluster it was assigned to so a search only reads the probed clusters.
"""

import asyncio
import json
import logging
import sqlite3
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import aiosqlite
import numpy as np

from vector_core.model.embedding_record import EmbeddingRecord, SearchResult
from vector_core.storage.index import IVFIndex, cosine_distances, rank_by_distance
from vector_core.storage.interfaces import (
    DEFAULT_DIMENSION,
    BackendUnavailableError,
    EmbeddingStorageInterface,
    EmbeddingStoreError,
)

# Stay well below SQLITE_MAX_VARIABLE_NUMBER on older builds
_MAX_PARAMS = 500

_UPSERT_SQL = """
    INSERT INTO embeddings (collection, id, content, metadata, embedding, cluster_id)
    VALUES (?, ?, ?, ?, ?, ?)
    ON CONFLICT (collection, id) DO UPDATE SET
        content = excluded.content,
        metadata = excluded.metadata,
        embedding = excluded.embedding,
        cluster_id = excluded.cluster_id
"""


def _encode_vector(vector: np.ndarray) -> bytes:
    return np.asarray(vector, dtype="<f8").tobytes()


def _decode_vector(blob: bytes) -> np.ndarray:
    return np.frombuffer(blob, dtype="<f8")


def _encode_metadata(metadata: Optional[Dict[str, Any]]) -> Optional[str]:
    return None if metadata is None else json.dumps(metadata)


class SqliteStorage(EmbeddingStorageInterface):
    """
    SQLite-based implementation of the EmbeddingStorageInterface.

    One connection is shared by all callers of an instance; every operation runs as a
    single transaction and transactions are serialized with an asyncio.Lock, so
    concurrent coroutines never observe a half-applied write. Other processes are
    coordinated by SQLite's own locking (WAL journal plus busy timeout).
    """

    def __init__(
        self,
        database_path: str = "./data/embeddings.db",
        dimension: int = DEFAULT_DIMENSION,
        nlist: int = 100,
        nprobe: int = 10,
        max_iterations: int = 25,
        train_threshold: int = 0,
        seed: Optional[int] = None,
        busy_timeout: int = 5000,
    ):
        """
        Initialize SqliteStorage.

        Args:
            database_path: Path to the SQLite database file (":memory:" for a private in-memory db)
            dimension: Fixed embedding dimension
            nlist: Number of IVF clusters trained by build_index()
            nprobe: Number of clusters scanned per search
            max_iterations: k-means iteration bound
            train_threshold: Train automatically once an untrained store holds this many
                records (0 disables)
            seed: Random seed for k-means
            busy_timeout: Milliseconds to wait on a database locked by another process
        """
        super().__init__(dimension)
        self.database_path = database_path
        self.nlist = nlist
        self.nprobe = nprobe
        self.max_iterations = max_iterations
        self.train_threshold = train_threshold
        self.seed = seed
        self.busy_timeout = busy_timeout
        self.logger = logging.getLogger(__name__)

        self._connected = False
        self._db_connection: Optional[aiosqlite.Connection] = None
        self._lock = asyncio.Lock()
        self._connect_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def _in_memory(self) -> bool:
        return str(self.database_path) == ":memory:"

    # Connection Management
    async def connect(self) -> None:
        """Open the database connection. Does not create the schema."""
        if self._connected:
            return

        async with self._connect_lock:
            if self._connected:
                return

            try:
                if not self._in_memory:
                    Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)

                self._db_connection = await aiosqlite.connect(
                    str(self.database_path), isolation_level=None
                )
                await self._db_connection.execute(
                    f"PRAGMA busy_timeout = {int(self.busy_timeout)}"
                )
                if not self._in_memory:
                    await self._db_connection.execute("PRAGMA journal_mode = WAL")

                self._connected = True
                self.logger.info(f"Connected to SQLite database at {self.database_path}")

            except (sqlite3.Error, OSError) as e:
                self.logger.error(f"Failed to connect to SQLite database: {e}")
                if self._db_connection is not None:
                    await self._db_connection.close()
                    self._db_connection = None
                raise BackendUnavailableError(
                    f"Cannot open SQLite database at {self.database_path}: {e}"
                ) from e

    async def close(self) -> None:
        """Close the database connection."""
        if not self._connected:
            return

        try:
            await self._db_connection.close()
            self.logger.info("Disconnected from SQLite database")
        except sqlite3.Error as e:
            self.logger.error(f"Error closing SQLite database: {e}")
        finally:
            self._db_connection = None
            self._connected = False

    @asynccontextmanager
    async def _transaction(self, write: bool = False):
        """Run the enclosed statements as one serialized transaction."""
        await self.connect()

        async with self._lock:
            db = self._db_connection
            try:
                await db.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            except sqlite3.Error as e:
                raise self._translate_error(e) from e

            try:
                yield db
            except sqlite3.Error as e:
                await self._rollback(db)
                raise self._translate_error(e) from e
            except BaseException:
                await self._rollback(db)
                raise
            else:
                try:
                    await db.execute("COMMIT")
                except sqlite3.Error as e:
                    await self._rollback(db)
                    raise self._translate_error(e) from e

    async def _rollback(self, db: aiosqlite.Connection) -> None:
        try:
            await db.execute("ROLLBACK")
        except sqlite3.Error as e:
            self.logger.warning(f"Rollback failed: {e}")

    def _translate_error(self, error: sqlite3.Error) -> EmbeddingStoreError:
        message = str(error)
        if "no such table" in message:
            return BackendUnavailableError(
                "Embedding schema is missing; run provision() first"
            )
        if isinstance(error, sqlite3.IntegrityError):
            return EmbeddingStoreError(f"SQLite constraint violated: {message}")
        return BackendUnavailableError(f"SQLite operation failed: {message}")

    # Schema
    def _schema_statements(self) -> List[str]:
        blob_size = self.dimension * 8
        return [
            "DROP TABLE IF EXISTS embeddings",
            "DROP TABLE IF EXISTS embedding_index",
            "DROP TABLE IF EXISTS embedding_schema",
            f"""
            CREATE TABLE embeddings (
                collection TEXT NOT NULL CHECK (length(collection) > 0),
                id TEXT NOT NULL,
                content TEXT NOT NULL,
                metadata TEXT,  -- JSON document, NULL when absent
                embedding BLOB NOT NULL CHECK (length(embedding) = {blob_size}),
                cluster_id INTEGER,  -- NULL until an index is trained
                PRIMARY KEY (collection, id)
            )
            """,
            "CREATE INDEX idx_embeddings_collection ON embeddings (collection)",
            "CREATE INDEX idx_embeddings_cluster ON embeddings (collection, cluster_id)",
            """
            CREATE TABLE embedding_index (
                cluster_id INTEGER PRIMARY KEY,
                centroid BLOB NOT NULL
            )
            """,
            """
            CREATE TABLE embedding_schema (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
            """,
        ]

    async def provision(self) -> None:
        """Drop and recreate the schema, discarding all stored records."""
        async with self._transaction(write=True) as db:
            for statement in self._schema_statements():
                await db.execute(statement)
            await db.executemany(
                "INSERT INTO embedding_schema (key, value) VALUES (?, ?)",
                [
                    ("dimension", str(self.dimension)),
                    ("metric", "COSINE"),
                    ("index_type", "IVF_FLAT"),
                    ("nlist", str(self.nlist)),
                ],
            )

        self.logger.info(
            f"Provisioned embeddings schema (dimension={self.dimension}, nlist={self.nlist})"
        )

    async def _load_index(self, db: aiosqlite.Connection) -> IVFIndex:
        """Check the stored schema and load the current centroids."""
        cursor = await db.execute("SELECT value FROM embedding_schema WHERE key = 'dimension'")
        row = await cursor.fetchone()
        if row is None:
            raise BackendUnavailableError("Embedding schema metadata is missing; run provision()")
        if int(row[0]) != self.dimension:
            raise BackendUnavailableError(
                f"Stored schema dimension {row[0]} does not match configured dimension "
                f"{self.dimension}; re-provision required"
            )

        cursor = await db.execute("SELECT centroid FROM embedding_index ORDER BY cluster_id")
        rows = await cursor.fetchall()
        centroids = np.vstack([_decode_vector(r[0]) for r in rows]) if rows else None

        return IVFIndex(
            nlist=self.nlist,
            nprobe=self.nprobe,
            max_iterations=self.max_iterations,
            seed=self.seed,
            centroids=centroids,
        )

    async def _train(self, db: aiosqlite.Connection) -> Dict[str, Any]:
        cursor = await db.execute("SELECT collection, id, embedding FROM embeddings")
        rows = await cursor.fetchall()

        index = IVFIndex(
            nlist=self.nlist,
            nprobe=self.nprobe,
            max_iterations=self.max_iterations,
            seed=self.seed,
        )
        await db.execute("DELETE FROM embedding_index")

        if not rows:
            await db.execute("UPDATE embeddings SET cluster_id = NULL")
            return {**index.get_info(), "trained_vectors": 0}

        vectors = np.vstack([_decode_vector(r[2]) for r in rows])
        assignments = index.train(vectors)

        await db.executemany(
            "INSERT INTO embedding_index (cluster_id, centroid) VALUES (?, ?)",
            [(i, _encode_vector(c)) for i, c in enumerate(index.centroids)],
        )
        await db.executemany(
            "UPDATE embeddings SET cluster_id = ? WHERE collection = ? AND id = ?",
            [(int(a), r[0], r[1]) for a, r in zip(assignments, rows)],
        )
        return {**index.get_info(), "trained_vectors": len(rows)}

    async def build_index(self) -> Dict[str, Any]:
        """Retrain the IVF centroids over every stored embedding."""
        async with self._transaction(write=True) as db:
            await self._load_index(db)
            info = await self._train(db)

        self.logger.info(
            f"Built IVF index: {info['num_clusters']} clusters, {info['trained_vectors']} vectors"
        )
        return info

    async def get_index_info(self) -> Dict[str, Any]:
        async with self._transaction() as db:
            index = await self._load_index(db)
            cursor = await db.execute("SELECT COUNT(*) FROM embeddings WHERE cluster_id IS NULL")
            unassigned = (await cursor.fetchone())[0]

        return {
            **index.get_info(),
            "backend": "sqlite",
            "dimension": self.dimension,
            "metric_type": "COSINE",
            "unassigned_vectors": unassigned,
        }

    # Mutations
    async def upsert_many(self, records: Sequence[EmbeddingRecord]) -> int:
        if not records:
            return 0

        vectors = np.vstack([np.asarray(r.embedding, dtype=np.float64) for r in records])

        async with self._transaction(write=True) as db:
            index = await self._load_index(db)
            assignments = index.assign(vectors)
            rows = [
                (
                    record.collection,
                    record.record_id,
                    record.content,
                    _encode_metadata(record.metadata),
                    _encode_vector(vectors[i]),
                    None if assignments is None else int(assignments[i]),
                )
                for i, record in enumerate(records)
            ]
            await db.executemany(_UPSERT_SQL, rows)

            if self.train_threshold and not index.is_trained:
                cursor = await db.execute("SELECT COUNT(*) FROM embeddings")
                total = (await cursor.fetchone())[0]
                if total >= self.train_threshold:
                    self.logger.info(f"Store reached {total} records, training IVF index")
                    await self._train(db)

        self.logger.debug(f"Upserted {len(records)} records")
        return len(records)

    async def update(self, record: EmbeddingRecord) -> int:
        vector = np.asarray(record.embedding, dtype=np.float64)

        async with self._transaction(write=True) as db:
            index = await self._load_index(db)
            assignment = index.assign(vector)
            cursor = await db.execute(
                """
                UPDATE embeddings
                SET content = ?, metadata = ?, embedding = ?, cluster_id = ?
                WHERE collection = ? AND id = ?
                """,
                (
                    record.content,
                    _encode_metadata(record.metadata),
                    _encode_vector(vector),
                    None if assignment is None else int(assignment[0]),
                    record.collection,
                    record.record_id,
                ),
            )
            affected = cursor.rowcount

        if not affected:
            self.logger.debug(f"Update of missing record {record.collection}/{record.record_id}")
        return affected

    async def delete(self, collection: str, record_id: str) -> int:
        async with self._transaction(write=True) as db:
            cursor = await db.execute(
                "DELETE FROM embeddings WHERE collection = ? AND id = ?", (collection, record_id)
            )
            return cursor.rowcount

    # Queries
    def _row_to_record(self, row) -> EmbeddingRecord:
        record_id, collection, content, metadata, embedding = row
        return EmbeddingRecord(
            record_id=record_id,
            collection=collection,
            content=content,
            embedding=_decode_vector(embedding).tolist(),
            metadata=None if metadata is None else json.loads(metadata),
        )

    async def get(self, collection: str, record_id: str) -> Optional[EmbeddingRecord]:
        async with self._transaction() as db:
            cursor = await db.execute(
                """
                SELECT id, collection, content, metadata, embedding
                FROM embeddings WHERE collection = ? AND id = ?
                """,
                (collection, record_id),
            )
            row = await cursor.fetchone()

        return None if row is None else self._row_to_record(row)

    async def _fetch_records(
        self, db: aiosqlite.Connection, collection: str, record_ids: List[str]
    ) -> Dict[str, EmbeddingRecord]:
        records = {}
        for start in range(0, len(record_ids), _MAX_PARAMS):
            chunk = record_ids[start:start + _MAX_PARAMS]
            placeholders = ", ".join("?" for _ in chunk)
            cursor = await db.execute(
                f"""
                SELECT id, collection, content, metadata, embedding
                FROM embeddings WHERE collection = ? AND id IN ({placeholders})
                """,
                (collection, *chunk),
            )
            for row in await cursor.fetchall():
                records[row[0]] = self._row_to_record(row)
        return records

    async def search(
        self,
        query_vector: np.ndarray,
        collection: str,
        limit: int,
        threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        async with self._transaction() as db:
            index = await self._load_index(db)

            if index.is_exhaustive():
                cursor = await db.execute(
                    "SELECT id, embedding FROM embeddings WHERE collection = ?", (collection,)
                )
            else:
                clusters = index.probe(query_vector)
                placeholders = ", ".join("?" for _ in clusters)
                cursor = await db.execute(
                    f"""
                    SELECT id, embedding FROM embeddings
                    WHERE collection = ? AND (cluster_id IN ({placeholders}) OR cluster_id IS NULL)
                    """,
                    (collection, *clusters),
                )
            candidates = await cursor.fetchall()
            if not candidates:
                return []

            ids = [row[0] for row in candidates]
            vectors = np.vstack([_decode_vector(row[1]) for row in candidates])
            ranked = rank_by_distance(ids, cosine_distances(query_vector, vectors), limit, threshold)
            records = await self._fetch_records(db, collection, [rid for rid, _ in ranked])

        return [SearchResult(records[rid], distance) for rid, distance in ranked]

    async def list_collections(self) -> List[str]:
        async with self._transaction() as db:
            cursor = await db.execute(
                "SELECT DISTINCT collection FROM embeddings ORDER BY collection"
            )
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def count(self, collection: Optional[str] = None) -> int:
        async with self._transaction() as db:
            if collection is None:
                cursor = await db.execute("SELECT COUNT(*) FROM embeddings")
            else:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM embeddings WHERE collection = ?", (collection,)
                )
            row = await cursor.fetchone()
        return row[0]

    async def health_check(self) -> bool:
        """Probe the relation; False if the database or the schema is unavailable."""
        try:
            async with self._transaction() as db:
                cursor = await db.execute("SELECT 1 FROM embeddings LIMIT 1")
                await cursor.fetchall()
                await self._load_index(db)
            return True
        except EmbeddingStoreError as e:
            self.logger.error(f"SQLite health check failed: {e}")
            return False
