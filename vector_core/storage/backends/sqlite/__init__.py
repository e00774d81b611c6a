"""
SQLite storage backend implementation.

This module provides a durable SQLite-based implementation of the
embedding storage interface, suitable for single-node deployments.
"""

from .sqlite_storage import SqliteStorage

__all__ = ["SqliteStorage"]
