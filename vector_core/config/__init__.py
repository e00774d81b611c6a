from .config_manager import (
    ConfigManager,
    get_config,
    init_config,
    ConfigValidationError,
    Environment,
    StorageBackendType,
)

__all__ = [
    "ConfigManager",
    "get_config",
    "init_config",
    "ConfigValidationError",
    "Environment",
    "StorageBackendType",
]
