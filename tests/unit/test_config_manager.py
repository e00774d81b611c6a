"""
Tests for the configuration management system.
"""
import os
import tempfile
import pytest
import json
import yaml
from pathlib import Path
from unittest.mock import patch

from vector_core.config.config_manager import (
    ConfigManager,
    AppConfig,
    Environment,
    LogLevel,
    StorageBackendType,
    ConfigValidationError,
    get_config,
    init_config
)


class TestConfigManager:
    """Test the ConfigManager class."""

    def setup_method(self):
        """Set up for each test method."""
        # Reset the singleton
        ConfigManager._instance = None
        import vector_core.config.config_manager as config_module
        config_module._config_manager = None

    def test_singleton_pattern(self):
        """Test that ConfigManager follows singleton pattern."""
        with tempfile.TemporaryDirectory() as temp_dir:
            config1 = ConfigManager(temp_dir)
            config2 = ConfigManager()
            assert config1 is config2

    def test_default_configuration(self):
        """Test that default configuration is properly loaded."""
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                assert config.config.environment == Environment.DEVELOPMENT
                assert config.config.store.backend == StorageBackendType.SQLITE
                assert config.config.store.dimension == 100
                assert config.config.store.metric_type == "COSINE"
                assert config.config.index.nlist == 100
                assert config.config.index.nprobe == 10
                assert config.config.storage.sqlite.database_path == "./data/embeddings.db"

    def test_yaml_config_loading(self):
        """Test loading configuration from YAML file."""
        with tempfile.TemporaryDirectory() as temp_dir:
            test_config = {
                "environment": "testing",
                "debug": True,
                "store": {"backend": "numpy", "dimension": 8},
                "index": {"nlist": 16, "nprobe": 4},
                "logging": {"level": "debug"}
            }

            with open(Path(temp_dir) / "config.yaml", 'w') as f:
                yaml.dump(test_config, f)

            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                assert config.config.environment == Environment.TESTING
                assert config.config.debug is True
                assert config.config.store.backend == StorageBackendType.NUMPY
                assert config.config.store.dimension == 8
                assert config.config.index.nlist == 16
                assert config.config.index.nprobe == 4
                assert config.config.logging.level == LogLevel.DEBUG

    def test_json_config_loading(self):
        """Test loading configuration from JSON file."""
        with tempfile.TemporaryDirectory() as temp_dir:
            test_config = {
                "environment": "staging",
                "storage": {"sqlite": {"database_path": "/tmp/vectors.db", "busy_timeout": 100}}
            }

            with open(Path(temp_dir) / "config.json", 'w') as f:
                json.dump(test_config, f)

            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                assert config.config.environment == Environment.STAGING
                assert config.config.storage.sqlite.database_path == "/tmp/vectors.db"
                assert config.config.storage.sqlite.busy_timeout == 100

    def test_unknown_keys_are_ignored(self):
        """Unknown keys and bad enum values are logged and skipped."""
        with tempfile.TemporaryDirectory() as temp_dir:
            test_config = {"store": {"backend": "milvus", "color": "blue"}, "mystery": 1}

            with open(Path(temp_dir) / "config.yaml", 'w') as f:
                yaml.dump(test_config, f)

            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                assert config.config.store.backend == StorageBackendType.SQLITE
                assert not hasattr(config.config.store, "color")

    def test_malformed_file_is_skipped(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with open(Path(temp_dir) / "config.yaml", 'w') as f:
                f.write("store: [unclosed")

            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                assert config.config.store.dimension == 100

    def test_environment_specific_config(self):
        """Test loading environment-specific configuration."""
        with tempfile.TemporaryDirectory() as temp_dir:
            environments_dir = Path(temp_dir) / "environments"
            environments_dir.mkdir()

            with open(Path(temp_dir) / "config.yaml", 'w') as f:
                yaml.dump({"storage": {"sqlite": {"database_path": "base.db"}}}, f)

            with open(environments_dir / "config.production.yaml", 'w') as f:
                yaml.dump({"storage": {"sqlite": {"database_path": "prod.db"}}}, f)

            with patch.dict(os.environ, {'ENVIRONMENT': 'production'}, clear=True):
                config = ConfigManager(temp_dir)
                # Environment-specific config should override base config
                assert config.config.storage.sqlite.database_path == "prod.db"
                assert config.config.environment == Environment.PRODUCTION

    def test_environment_variable_override(self):
        """Test that environment variables override file configuration."""
        with tempfile.TemporaryDirectory() as temp_dir:
            with open(Path(temp_dir) / "config.yaml", 'w') as f:
                yaml.dump({"store": {"dimension": 64}, "index": {"nprobe": 2}}, f)

            env_vars = {
                'EMBEDDING_DIMENSION': '256',
                'INDEX_NPROBE': '8',
                'VECTOR_STORE_BACKEND': 'NUMPY',
                'NUMPY_PERSIST_PATH': '/tmp/np',
                'LOG_LEVEL': 'warning',
                'DEBUG': 'yes'
            }

            with patch.dict(os.environ, env_vars, clear=True):
                config = ConfigManager(temp_dir)

                assert config.config.store.dimension == 256
                assert config.config.index.nprobe == 8
                assert config.config.store.backend == StorageBackendType.NUMPY
                assert config.config.storage.numpy.persist_path == "/tmp/np"
                assert config.config.logging.level == LogLevel.WARNING
                assert config.config.debug is True

    def test_invalid_environment_variable_is_ignored(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {'INDEX_NLIST': 'many'}, clear=True):
                config = ConfigManager(temp_dir)

                assert config.config.index.nlist == 100

    @pytest.mark.parametrize(
        "env_vars,message",
        [
            ({'EMBEDDING_DIMENSION': '0'}, "dimension must be a positive integer"),
            ({'INDEX_NLIST': '4', 'INDEX_NPROBE': '5'}, "nprobe must be between 1 and nlist"),
            ({'INDEX_NLIST': '0'}, "nlist must be at least 1"),
            ({'INDEX_TRAIN_THRESHOLD': '-1'}, "train_threshold must not be negative"),
            ({'SQLITE_DATABASE_PATH': ''}, "database_path is required"),
        ],
    )
    def test_configuration_validation_failure(self, env_vars, message):
        """Test configuration validation failures."""
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, env_vars, clear=True):
                with pytest.raises(ConfigValidationError) as exc_info:
                    ConfigManager(temp_dir)
                assert message in str(exc_info.value)

    def test_unsupported_metric_type(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with open(Path(temp_dir) / "config.yaml", 'w') as f:
                yaml.dump({"store": {"metric_type": "L2"}}, f)

            with patch.dict(os.environ, {}, clear=True):
                with pytest.raises(ConfigValidationError) as exc_info:
                    ConfigManager(temp_dir)
                assert "only COSINE" in str(exc_info.value)

    def test_get_and_set_methods(self):
        """Test the get and set methods for configuration values."""
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                assert config.get('index.nprobe') == 10
                assert config.get('nonexistent.key', 'default') == 'default'

                config.set('index.nprobe', 20)
                assert config.get('index.nprobe') == 20
                assert config.config.index.nprobe == 20

    def test_set_reverts_invalid_value(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                with pytest.raises(ConfigValidationError):
                    config.set('index.nprobe', 500)

                assert config.config.index.nprobe == 10

    def test_set_unknown_path(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                with pytest.raises(AttributeError):
                    config.set('index.colour', 'red')

    def test_to_dict_method(self):
        """Test converting configuration to dictionary."""
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)
                config_dict = config.to_dict()

                assert isinstance(config_dict, dict)
                assert config_dict['environment'] == 'development'
                assert config_dict['store']['backend'] == 'sqlite'
                assert config_dict['storage']['numpy']['auto_save'] is True
                assert config_dict['logging']['level'] == 'INFO'

    def test_save_to_file(self):
        """Test saving configuration to file."""
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)

                config.save_to_file("saved/test_config.yaml", 'yaml')
                with open(Path(temp_dir) / "saved" / "test_config.yaml", 'r') as f:
                    saved_config = yaml.safe_load(f)
                assert saved_config['store']['dimension'] == 100

                config.save_to_file("test_config.json", 'json')
                with open(Path(temp_dir) / "test_config.json", 'r') as f:
                    saved_config = json.load(f)
                assert saved_config['index']['nlist'] == 100

    def test_reload_configuration(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {}, clear=True):
                config = ConfigManager(temp_dir)
                with open(Path(temp_dir) / "config.yaml", 'w') as f:
                    yaml.dump({"store": {"dimension": 32}}, f)

                config.reload_configuration()

                assert config.config.store.dimension == 32

    def test_storage_config_for_sqlite(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {'SQLITE_DATABASE_PATH': '/tmp/x.db'}, clear=True):
                config = ConfigManager(temp_dir)

                storage_config = config.get_storage_config()

                assert storage_config['backend'] == 'sqlite'
                backend_config = storage_config['backend_config']
                assert backend_config['database_path'] == '/tmp/x.db'
                assert backend_config['dimension'] == 100
                assert backend_config['nprobe'] == 10
                assert 'persist_path' not in backend_config

    def test_storage_config_for_numpy(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {'VECTOR_STORE_BACKEND': 'numpy'}, clear=True):
                config = ConfigManager(temp_dir)

                storage_config = config.get_storage_config()

                assert storage_config['backend'] == 'numpy'
                assert storage_config['backend_config']['auto_save'] is True
                assert 'database_path' not in storage_config['backend_config']

    def test_storage_config_for_requested_backend(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            env_vars = {'NUMPY_PERSIST_PATH': '/tmp/np', 'SQLITE_DATABASE_PATH': '/tmp/x.db'}
            with patch.dict(os.environ, env_vars, clear=True):
                config = ConfigManager(temp_dir)

                storage_config = config.get_storage_config('numpy')

                assert storage_config['backend'] == 'numpy'
                assert storage_config['backend_config']['persist_path'] == '/tmp/np'
                assert 'database_path' not in storage_config['backend_config']
                assert config.get_storage_config()['backend_config']['database_path'] == '/tmp/x.db'

    def test_global_config_functions(self):
        """Test global configuration functions."""
        with tempfile.TemporaryDirectory() as temp_dir:
            with patch.dict(os.environ, {}, clear=True):
                config1 = init_config(temp_dir)
                assert isinstance(config1, ConfigManager)

                config2 = get_config()
                assert config1 is config2

    def test_init_config_rebuilds_instance(self):
        with tempfile.TemporaryDirectory() as first_dir, tempfile.TemporaryDirectory() as second_dir:
            with open(Path(second_dir) / "config.yaml", 'w') as f:
                yaml.dump({"store": {"dimension": 12}}, f)

            with patch.dict(os.environ, {}, clear=True):
                first = init_config(first_dir)
                second = init_config(second_dir)

                assert first is not second
                assert second.config.store.dimension == 12
                assert get_config() is second


class TestConfigDataClasses:
    """Test the configuration data classes."""

    def test_defaults(self):
        config = AppConfig()

        assert config.index.train_threshold == 0
        assert config.index.seed is None
        assert config.storage.numpy.persist_path == "./data/numpy_embeddings"
        assert config.logging.structured is False

    def test_nested_defaults_are_independent(self):
        first = AppConfig()
        second = AppConfig()

        first.index.nprobe = 1

        assert second.index.nprobe == 10

    def test_enum_values(self):
        """Test enum value conversions."""
        assert Environment.DEVELOPMENT.value == "development"
        assert LogLevel.INFO.value == "INFO"
        assert StorageBackendType.SQLITE.value == "sqlite"
        assert StorageBackendType.NUMPY.value == "numpy"
