"""
Storage backend implementations for the vector engine.

This module contains concrete implementations of the embedding
storage interface.
"""

# Import backends that are available
__all__ = []

try:
    from .sqlite import SqliteStorage
    __all__.extend(['SqliteStorage'])
except ImportError:
    pass

try:
    from .numpy import NumpyStorage
    __all__.extend(['NumpyStorage'])
except ImportError:
    pass
