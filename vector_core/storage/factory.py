"""
Storage factory for creating embedding storage backend instances.

This module provides a factory function to instantiate the appropriate
embedding storage backend based on configuration settings.
"""
import logging
from typing import Dict, Any, Optional, List

from vector_core.storage.interfaces.embedding_storage_interface import EmbeddingStorageInterface
from vector_core.config import get_config


class StorageFactory:
    """
    Factory class for creating embedding storage backend instances.

    This factory creates and configures storage backends based on the
    application configuration, providing a unified way to instantiate
    different storage implementations.
    """

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._backends = {}
        self._register_backends()

    def _register_backends(self):
        """Register available storage backends."""
        try:
            from vector_core.storage.backends.sqlite import SqliteStorage
            self._backends['sqlite'] = SqliteStorage
        except ImportError:
            self.logger.warning("SQLite backend not available (missing aiosqlite)")

        try:
            from vector_core.storage.backends.numpy import NumpyStorage
            self._backends['numpy'] = NumpyStorage
        except ImportError:
            self.logger.warning("NumPy backend not available (missing numpy)")

    def create_storage(self, backend_type: Optional[str] = None,
                       config_override: Optional[Dict[str, Any]] = None) -> EmbeddingStorageInterface:
        """
        Create an embedding storage backend instance.

        Args:
            backend_type: Type of backend to create ('sqlite', 'numpy').
                         If None, uses configuration setting.
            config_override: Optional constructor arguments overriding the configuration.

        Returns:
            Configured storage backend instance

        Raises:
            ValueError: If the backend type is not supported
        """
        storage_config = get_config().get_storage_config(backend_type)
        backend_type = storage_config['backend']

        if backend_type not in self._backends:
            available_backends = list(self._backends.keys())
            raise ValueError(f"Unsupported backend type '{backend_type}'. "
                             f"Available backends: {available_backends}")

        backend_class = self._backends[backend_type]
        backend_config = self._get_backend_config(storage_config, config_override)

        if backend_type == 'sqlite':
            return self._create_sqlite_storage(backend_class, backend_config)
        return self._create_numpy_storage(backend_class, backend_config)

    def _get_backend_config(self, storage_config: Dict[str, Any],
                            config_override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        """Get configuration for a specific backend."""
        backend_config = dict(storage_config['backend_config'])

        if config_override:
            backend_config.update(config_override)

        return backend_config

    @staticmethod
    def _index_kwargs(config: Dict[str, Any]) -> Dict[str, Any]:
        return {
            key: config[key]
            for key in ('dimension', 'nlist', 'nprobe', 'max_iterations', 'train_threshold', 'seed')
            if key in config
        }

    def _create_sqlite_storage(self, backend_class, config: Dict[str, Any]):
        """Create SQLite storage instance with proper configuration."""
        return backend_class(
            database_path=config.get('database_path', './data/embeddings.db'),
            busy_timeout=config.get('busy_timeout', 5000),
            **self._index_kwargs(config)
        )

    def _create_numpy_storage(self, backend_class, config: Dict[str, Any]):
        """Create NumPy storage instance with proper configuration."""
        return backend_class(
            persist_path=config.get('persist_path'),
            auto_save=config.get('auto_save', True),
            **self._index_kwargs(config)
        )

    def list_available_backends(self) -> List[str]:
        """
        List all available storage backends.

        Returns:
            List of backend type names
        """
        return list(self._backends.keys())

    def is_backend_available(self, backend_type: str) -> bool:
        """
        Check if a specific backend is available.

        Args:
            backend_type: Type of backend to check

        Returns:
            True if backend is available, False otherwise
        """
        return backend_type in self._backends


# Global factory instance
_storage_factory = StorageFactory()


def create_storage(backend_type: Optional[str] = None,
                   config_override: Optional[Dict[str, Any]] = None) -> EmbeddingStorageInterface:
    """
    Create an embedding storage backend instance using the global factory.

    Args:
        backend_type: Type of backend to create ('sqlite', 'numpy').
                     If None, uses configuration setting.
        config_override: Optional constructor arguments overriding the configuration.

    Returns:
        Configured storage backend instance

    Raises:
        ValueError: If the backend type is not supported
    """
    return _storage_factory.create_storage(backend_type, config_override)


def list_available_backends() -> List[str]:
    """List all available storage backends."""
    return _storage_factory.list_available_backends()


def is_backend_available(backend_type: str) -> bool:
    """Check if a specific backend is available."""
    return _storage_factory.is_backend_available(backend_type)
