"""
Basic Usage Example

This example demonstrates storing embeddings in collections and querying them
by cosine similarity with both storage backends, including the IVF index and
its approximate recall.
"""

import asyncio
import tempfile
from pathlib import Path

import numpy as np

from vector_core import EmbeddingStore, ValidationError
from vector_core.storage import create_storage, list_available_backends

DIMENSION = 100


def topic_vector(axis: int, rng: np.random.Generator) -> list:
    """A noisy vector near one basis axis, standing in for a real text embedding."""
    vector = np.zeros(DIMENSION)
    vector[axis] = 1.0
    return (vector + rng.normal(scale=0.05, size=DIMENSION)).tolist()


async def demonstrate_backend(backend_type: str, config_override):
    print(f"\n{'='*60}")
    print(f"🗄️  {backend_type.upper()} backend")
    print(f"{'='*60}")

    rng = np.random.default_rng(0)
    store = EmbeddingStore(create_storage(backend_type, config_override))

    async with store:
        await store.provision()
        print("✅ Schema provisioned")

        # Single upserts
        await store.upsert_one("py-1", "articles", "Python is a programming language",
                               {"topic": "python"}, topic_vector(0, rng))
        await store.upsert_one("ml-1", "articles", "Machine learning learns from data",
                               None, topic_vector(10, rng))

        # An atomic batch
        batch = [
            {"id": f"py-{i}", "collection": "articles", "content": f"Python note {i}",
             "embedding": topic_vector(0, rng)}
            for i in range(2, 6)
        ] + [
            {"id": f"db-{i}", "collection": "notes", "content": f"Database note {i}",
             "metadata": {"n": i}, "embedding": topic_vector(20, rng)}
            for i in range(3)
        ]
        written = await store.upsert_many(batch)
        print(f"📥 Upserted a batch of {written} records")

        # Validation failures leave the store untouched
        try:
            await store.upsert_many(batch + [{"id": "bad", "collection": "notes",
                                              "content": "short vector", "embedding": [1.0]}])
        except ValidationError as e:
            print(f"⚠️  Batch rejected: {e}")

        print(f"📚 Collections: {await store.list_collections()}")
        print(f"🔢 Records: {await store.count()}")

        # Exact search before the index is trained
        query = topic_vector(0, rng)
        results = await store.search(query, "articles", limit=3)
        print("\n🔍 Exact search:")
        for result in results:
            print(f"   {result.record_id:<6} distance={result.distance:.4f}")

        # Threshold drops distant matches before the limit applies
        close = await store.search(query, "articles", limit=10, threshold=0.1)
        print(f"🎯 Within distance 0.1: {[r.record_id for r in close]}")

        # Train the IVF index; search now only scans the probed clusters
        info = await store.build_index()
        print(f"\n🧭 Trained {info['num_clusters']} clusters over {info['trained_vectors']} vectors")
        results = await store.search(query, "articles", limit=3)
        print("🔍 Approximate search:")
        for result in results:
            print(f"   {result.record_id:<6} distance={result.distance:.4f}")

        # Update and delete are no-ops for missing keys
        updated = await store.update("missing", "articles", "nothing", None, query)
        deleted = await store.delete("ml-1", "articles")
        print(f"\n✏️  Updated {updated}, deleted {deleted}")

        record = await store.get_by_id("db-1", "notes")
        print(f"📄 {record}")
        print(f"💚 Healthy: {await store.health_check()}")


async def main():
    print("🚀 Vector Engine basic usage")
    print(f"Available backends: {list_available_backends()}")

    with tempfile.TemporaryDirectory() as temp_dir:
        overrides = {"nlist": 4, "nprobe": 2, "seed": 42}
        await demonstrate_backend(
            "sqlite", {**overrides, "database_path": str(Path(temp_dir) / "example.db")}
        )
        await demonstrate_backend("numpy", {**overrides, "persist_path": None})


if __name__ == "__main__":
    asyncio.run(main())
