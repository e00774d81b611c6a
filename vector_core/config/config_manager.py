"""
Centralized Configuration Management System

This module provides the configuration system for the vector engine:
- Defaults defined as dataclasses
- YAML/JSON configuration files with environment-specific overrides
- Environment variable overrides (highest priority)
- Validation on startup and on every update
"""

import os
import json
import yaml
import logging
from typing import Any, Dict, Optional, Union
from pathlib import Path
from dataclasses import dataclass, field
from enum import Enum
import threading


class Environment(Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackendType(Enum):
    SQLITE = "sqlite"
    NUMPY = "numpy"


@dataclass
class StoreConfig:
    """Embedding store configuration"""

    backend: StorageBackendType = StorageBackendType.SQLITE
    dimension: int = 100
    metric_type: str = "COSINE"


@dataclass
class IndexConfig:
    """IVF index configuration"""

    nlist: int = 100
    nprobe: int = 10
    max_iterations: int = 25
    train_threshold: int = 0  # 0 disables automatic training
    seed: Optional[int] = None


@dataclass
class SqliteStorageConfig:
    """SQLite storage configuration"""

    database_path: str = "./data/embeddings.db"
    busy_timeout: int = 5000  # milliseconds


@dataclass
class NumpyStorageConfig:
    """NumPy storage configuration"""

    persist_path: Optional[str] = "./data/numpy_embeddings"
    auto_save: bool = True


@dataclass
class StorageConfig:
    """Storage layer configuration"""

    sqlite: SqliteStorageConfig = field(default_factory=SqliteStorageConfig)
    numpy: NumpyStorageConfig = field(default_factory=NumpyStorageConfig)


@dataclass
class LoggingConfig:
    """Logging configuration"""

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Optional[str] = None
    max_file_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5
    enable_console: bool = True
    structured: bool = False


@dataclass
class AppConfig:
    """Main application configuration"""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False

    store: StoreConfig = field(default_factory=StoreConfig)
    index: IndexConfig = field(default_factory=IndexConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


class ConfigValidationError(Exception):
    """Raised when configuration validation fails"""

    pass


def _to_bool(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


class ConfigManager:
    """
    Centralized configuration manager with support for:
    - Environment-specific configurations
    - Configuration validation
    - Runtime configuration updates
    """

    _instance: Optional["ConfigManager"] = None
    _lock = threading.Lock()

    def __new__(cls, *args, **kwargs):
        """Singleton pattern implementation"""
        if not cls._instance:
            with cls._lock:
                if not cls._instance:
                    cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self, config_dir: Optional[Union[str, Path]] = None):
        # Avoid re-initialization in singleton
        if hasattr(self, "_initialized"):
            return

        self._initialized = True
        if config_dir:
            self.config_dir = Path(config_dir)
        else:
            # Look for config directory relative to project root
            project_root = Path(__file__).parent.parent.parent
            self.config_dir = project_root / "config"

        self.config: AppConfig = AppConfig()
        self.logger = logging.getLogger(__name__)

        self._load_configuration()

    def _load_configuration(self):
        """Load configuration from multiple sources in priority order"""
        # 1. Defaults
        self.config = AppConfig()

        # 2. Base configuration file
        self._load_from_file("config.yaml")
        self._load_from_file("config.json")

        # 3. Environment-specific configuration
        env = os.getenv("ENVIRONMENT", "development").lower()
        self._load_from_file(f"environments/config.{env}.yaml")
        self._load_from_file(f"environments/config.{env}.json")

        # 4. Environment variables (highest priority)
        self._load_from_environment()

        # 5. Validate
        self._validate_configuration()

    def _load_from_file(self, filename: str):
        """Load configuration from YAML/JSON file"""
        file_path = self.config_dir / filename
        if not file_path.exists():
            return

        try:
            with open(file_path, "r") as f:
                if filename.endswith(".yaml") or filename.endswith(".yml"):
                    data = yaml.safe_load(f)
                else:
                    data = json.load(f)
        except (OSError, yaml.YAMLError, json.JSONDecodeError) as e:
            self.logger.warning(f"Failed to load configuration from {filename}: {e}")
            return

        if data:
            self._update_config_from_dict(data)
            self.logger.info(f"Loaded configuration from {filename}")

    def _load_from_environment(self):
        """Load configuration from environment variables"""
        env_mappings = {
            # Environment
            "ENVIRONMENT": ("environment", lambda x: Environment(x.lower())),
            "DEBUG": ("debug", _to_bool),
            # Store
            "VECTOR_STORE_BACKEND": ("store.backend", lambda x: StorageBackendType(x.lower())),
            "EMBEDDING_DIMENSION": ("store.dimension", int),
            # Index
            "INDEX_NLIST": ("index.nlist", int),
            "INDEX_NPROBE": ("index.nprobe", int),
            "INDEX_TRAIN_THRESHOLD": ("index.train_threshold", int),
            # Storage
            "SQLITE_DATABASE_PATH": ("storage.sqlite.database_path", str),
            "NUMPY_PERSIST_PATH": ("storage.numpy.persist_path", str),
            # Logging
            "LOG_LEVEL": ("logging.level", lambda x: LogLevel(x.upper())),
            "LOG_FORMAT": ("logging.format", str),
            "LOG_FILE": ("logging.file_path", str),
        }

        for env_var, (config_path, converter) in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    self._set_nested_attr(self.config, config_path, converter(value))
                except (ValueError, TypeError) as e:
                    self.logger.warning(f"Invalid value for {env_var}: {value}, error: {e}")

    def _update_config_from_dict(self, data: Dict[str, Any], prefix: str = ""):
        """Update configuration from dictionary recursively"""
        for key, value in data.items():
            config_path = f"{prefix}.{key}" if prefix else key

            if isinstance(value, dict):
                self._update_config_from_dict(value, config_path)
                continue

            try:
                # Enum conversions for file-based config
                if config_path == "environment" and isinstance(value, str):
                    value = Environment(value.lower())
                elif config_path == "logging.level" and isinstance(value, str):
                    value = LogLevel(value.upper())
                elif config_path == "store.backend" and isinstance(value, str):
                    value = StorageBackendType(value.lower())

                self._set_nested_attr(self.config, config_path, value)

            except AttributeError:
                self.logger.warning(f"Unknown configuration key: {config_path}")
            except ValueError as e:
                self.logger.warning(f"Invalid value for {config_path}: {value}, error: {e}")

    def _set_nested_attr(self, obj: Any, path: str, value: Any):
        """Set nested attribute using dot notation"""
        parts = path.split(".")
        for part in parts[:-1]:
            obj = getattr(obj, part)
        if not hasattr(obj, parts[-1]):
            raise AttributeError(path)
        setattr(obj, parts[-1], value)

    def _validate_configuration(self):
        """Validate configuration settings"""
        errors = []

        store = self.config.store
        index = self.config.index

        if not isinstance(store.dimension, int) or store.dimension <= 0:
            errors.append("Embedding dimension must be a positive integer")

        if str(store.metric_type).upper() != "COSINE":
            errors.append(f"Unsupported metric type '{store.metric_type}' (only COSINE)")

        if index.nlist < 1:
            errors.append("Index nlist must be at least 1")

        if index.nprobe < 1 or index.nprobe > index.nlist:
            errors.append(f"Index nprobe must be between 1 and nlist ({index.nlist})")

        if index.max_iterations < 1:
            errors.append("Index max_iterations must be at least 1")

        if index.train_threshold < 0:
            errors.append("Index train_threshold must not be negative")

        if not self.config.storage.sqlite.database_path:
            errors.append("SQLite database_path is required")

        if errors:
            raise ConfigValidationError(f"Configuration validation failed: {'; '.join(errors)}")

        self.logger.info("Configuration validation passed")

    def reload_configuration(self):
        """Reload configuration from all sources"""
        self._load_configuration()
        self.logger.info("Configuration reloaded successfully")

    def get(self, path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation"""
        try:
            obj = self.config
            for part in path.split("."):
                obj = getattr(obj, part)
            return obj
        except AttributeError:
            return default

    def set(self, path: str, value: Any):
        """Set configuration value using dot notation; the change is reverted if invalid"""
        previous = self.get(path)
        self._set_nested_attr(self.config, path, value)
        try:
            self._validate_configuration()
        except ConfigValidationError:
            self._set_nested_attr(self.config, path, previous)
            raise

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary"""

        def _asdict_recursive(obj):
            if hasattr(obj, "__dict__"):
                result = {}
                for key, value in obj.__dict__.items():
                    if isinstance(value, Enum):
                        result[key] = value.value
                    elif hasattr(value, "__dict__"):
                        result[key] = _asdict_recursive(value)
                    else:
                        result[key] = value
                return result
            return obj

        return _asdict_recursive(self.config)

    def save_to_file(self, filename: str, format: str = "yaml"):
        """Save current configuration to file"""
        file_path = self.config_dir / filename
        file_path.parent.mkdir(parents=True, exist_ok=True)
        config_dict = self.to_dict()

        with open(file_path, "w") as f:
            if format.lower() == "yaml":
                yaml.dump(config_dict, f, default_flow_style=False, indent=2)
            else:
                json.dump(config_dict, f, indent=2)

        self.logger.info(f"Configuration saved to {filename}")

    def get_storage_config(self, backend_type: Optional[str] = None) -> Dict[str, Any]:
        """
        Get storage configuration for the storage factory.

        Args:
            backend_type: Backend to build settings for; None uses the configured backend

        Returns:
            Dictionary with backend and backend_config keys; backend_config holds the
            constructor arguments shared by all backends plus the backend-specific ones
        """
        if backend_type is None:
            backend_type = self.config.store.backend.value
        index = self.config.index

        backend_config = {
            "dimension": self.config.store.dimension,
            "nlist": index.nlist,
            "nprobe": index.nprobe,
            "max_iterations": index.max_iterations,
            "train_threshold": index.train_threshold,
            "seed": index.seed,
        }

        if backend_type == "sqlite":
            sqlite_config = self.config.storage.sqlite
            backend_config.update(
                {
                    "database_path": sqlite_config.database_path,
                    "busy_timeout": sqlite_config.busy_timeout,
                }
            )
        elif backend_type == "numpy":
            numpy_config = self.config.storage.numpy
            backend_config.update(
                {
                    "persist_path": numpy_config.persist_path,
                    "auto_save": numpy_config.auto_save,
                }
            )

        return {"backend": backend_type, "backend_config": backend_config}


# Global configuration instance
_config_manager: Optional[ConfigManager] = None


def get_config() -> ConfigManager:
    """Get the global configuration manager instance"""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager


def init_config(config_dir: Optional[Union[str, Path]] = None) -> ConfigManager:
    """Initialize the global configuration manager"""
    global _config_manager
    with ConfigManager._lock:
        ConfigManager._instance = None
    _config_manager = ConfigManager(config_dir)
    return _config_manager
