"""
Configuration constants and environment-backed settings for Taskflow.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Store backends
STORE_BACKENDS = ("sql", "memory")
DEFAULT_STORE_BACKEND = "sql"
DEFAULT_DATABASE_URL = "sqlite:///taskflow.db"

# Object storage (any S3-compatible endpoint)
DEFAULT_STORAGE_BUCKET = "task-files"
DEFAULT_STORAGE_REGION = "us-east-1"

# Store retry policy for reads
DEFAULT_STORE_MAX_RETRIES = 3
MIN_STORE_MAX_RETRIES = 0

# Logging
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_USE_COLORS = True

_TRUE_VALUES = ('true', '1', 'yes', 'on')

CONFIG_TEMPLATE = """# Taskflow configuration
# Store backend: sql or memory. memory keeps nothing between runs
# and is only useful for tests.
TASKFLOW_STORE={store_backend}

# SQLAlchemy URL. Point this at the hosted Postgres in production.
DATABASE_URL={database_url}

# S3-compatible object storage for task attachments
STORAGE_BUCKET={storage_bucket}
# STORAGE_ENDPOINT_URL=https://<project>.storage.example.com/s3
STORAGE_REGION={storage_region}
# AWS_ACCESS_KEY_ID=
# AWS_SECRET_ACCESS_KEY=

# Retries for store reads
STORE_MAX_RETRIES={store_max_retries}

# Logging
LOG_LEVEL={log_level}
LOG_COLORS={use_colors}
"""


class ConfigurationManager:
    """Configuration management class with validation and environment variable support."""

    def __init__(self):
        """Initialize configuration with default values and environment variable overrides."""
        self._config: Dict[str, Any] = {}
        self._load_defaults()
        self._load_from_environment()

    def _load_defaults(self) -> None:
        self._config = {
            'store_backend': DEFAULT_STORE_BACKEND,
            'database_url': DEFAULT_DATABASE_URL,
            'storage_bucket': DEFAULT_STORAGE_BUCKET,
            'storage_endpoint_url': None,
            'storage_region': DEFAULT_STORAGE_REGION,
            'store_max_retries': DEFAULT_STORE_MAX_RETRIES,
            'log_level': DEFAULT_LOG_LEVEL,
            'use_colors': DEFAULT_USE_COLORS,
        }

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        if 'TASKFLOW_STORE' in os.environ:
            self.set_store_backend(os.environ['TASKFLOW_STORE'])

        if 'DATABASE_URL' in os.environ:
            self.set_database_url(os.environ['DATABASE_URL'])

        if 'STORAGE_BUCKET' in os.environ:
            self.set_storage_bucket(os.environ['STORAGE_BUCKET'])

        if os.environ.get('STORAGE_ENDPOINT_URL'):
            self._config['storage_endpoint_url'] = os.environ['STORAGE_ENDPOINT_URL'].strip()

        if os.environ.get('STORAGE_REGION'):
            self._config['storage_region'] = os.environ['STORAGE_REGION'].strip()

        if 'STORE_MAX_RETRIES' in os.environ:
            try:
                retries = int(os.environ['STORE_MAX_RETRIES'])
            except ValueError:
                raise ValueError(f"Invalid STORE_MAX_RETRIES value: {os.environ['STORE_MAX_RETRIES']}. Must be an integer >= {MIN_STORE_MAX_RETRIES}")
            self.set_store_max_retries(retries)

        if 'LOG_LEVEL' in os.environ:
            self.set_log_level(os.environ['LOG_LEVEL'])

        if 'LOG_COLORS' in os.environ:
            self._config['use_colors'] = os.environ['LOG_COLORS'].lower() in _TRUE_VALUES

    def get_store_backend(self) -> str:
        return self._config['store_backend']

    def set_store_backend(self, backend: str) -> None:
        if not isinstance(backend, str) or backend.strip().lower() not in STORE_BACKENDS:
            raise ValueError(f"store_backend must be one of: {', '.join(STORE_BACKENDS)}")
        self._config['store_backend'] = backend.strip().lower()

    def get_database_url(self) -> str:
        return self._config['database_url']

    def set_database_url(self, url: str) -> None:
        if not isinstance(url, str) or not url.strip():
            raise ValueError("database_url must be a non-empty string")
        self._config['database_url'] = url.strip()

    def get_storage_bucket(self) -> str:
        return self._config['storage_bucket']

    def set_storage_bucket(self, bucket: str) -> None:
        if not isinstance(bucket, str) or not bucket.strip():
            raise ValueError("storage_bucket must be a non-empty string")
        self._config['storage_bucket'] = bucket.strip()

    def get_storage_endpoint_url(self) -> Optional[str]:
        return self._config['storage_endpoint_url']

    def get_storage_region(self) -> str:
        return self._config['storage_region']

    def get_store_max_retries(self) -> int:
        return self._config['store_max_retries']

    def set_store_max_retries(self, retries: int) -> None:
        """Set the number of read retries with validation."""
        if not isinstance(retries, int) or isinstance(retries, bool):
            raise ValueError("store_max_retries must be an integer")
        if retries < MIN_STORE_MAX_RETRIES:
            raise ValueError(f"store_max_retries must be >= {MIN_STORE_MAX_RETRIES}")
        self._config['store_max_retries'] = retries

    def get_log_level(self) -> str:
        return self._config['log_level']

    def set_log_level(self, level: str) -> None:
        if not isinstance(level, str) or level.strip().upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of: {', '.join(LOG_LEVELS)}")
        self._config['log_level'] = level.strip().upper()

    def get_use_colors(self) -> bool:
        return self._config['use_colors']

    def set_use_colors(self, enabled: bool) -> None:
        if not isinstance(enabled, bool):
            raise ValueError("use_colors must be a boolean")
        self._config['use_colors'] = enabled

    def get_all_config(self) -> Dict[str, Any]:
        """Get all configuration values as a dictionary."""
        return self._config.copy()

    def update_config(self, config_dict: Dict[str, Any]) -> None:
        """Update configuration with a dictionary of values."""
        setters = {
            'store_backend': self.set_store_backend,
            'database_url': self.set_database_url,
            'storage_bucket': self.set_storage_bucket,
            'store_max_retries': self.set_store_max_retries,
            'log_level': self.set_log_level,
            'use_colors': self.set_use_colors,
        }
        for key, value in config_dict.items():
            if key not in setters:
                raise ValueError(f"Unknown configuration key: {key}")
            setters[key](value)

    def validate_config(self) -> bool:
        """Validate all configuration values."""
        try:
            if self._config['store_backend'] not in STORE_BACKENDS:
                return False
            if not isinstance(self._config['database_url'], str) or not self._config['database_url'].strip():
                return False
            if not isinstance(self._config['store_max_retries'], int):
                return False
            if self._config['store_max_retries'] < MIN_STORE_MAX_RETRIES:
                return False
            if self._config['log_level'] not in LOG_LEVELS:
                return False
            return True
        except KeyError:
            return False

    def create_config_template(self, path: Union[str, Path]) -> str:
        """
        Write a commented .env template populated with the current values.

        Returns:
            The path written, as a string
        """
        target = Path(path).expanduser()
        target.parent.mkdir(parents=True, exist_ok=True)
        values = dict(self._config)
        values['use_colors'] = str(values['use_colors']).lower()
        target.write_text(CONFIG_TEMPLATE.format(**values), encoding="utf-8")
        return str(target)


_config_manager: Optional[ConfigurationManager] = None


def get_config_manager() -> ConfigurationManager:
    """
    Return the shared configuration, reading the environment on first use.

    Importing this module never reads the environment, so a bad value
    surfaces as a ValueError at the call site instead of at import.
    """
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigurationManager()
    return _config_manager
