"""
NumPy-based embedding storage.

Usage:
    storage = NumpyStorage(dimension=100, persist_path='./data/numpy_embeddings')
    await storage.connect()
    await storage.provision()

    await storage.upsert_one(record)
    results = await storage.search(query_vector, 'docs', limit=10)
"""

from .numpy_storage import NumpyStorage

__all__ = ["NumpyStorage"]
