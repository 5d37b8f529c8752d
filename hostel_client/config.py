"""
Configuration Management for the Hostel API Client.

This module handles client configuration including server URL, credential
renewal settings, storage backend and logging, with support for
configuration files and environment variables.
"""

import os
import json
import logging
from pathlib import Path
from typing import Optional, Dict, Any, List
from configparser import ConfigParser

from hostel_shared.exceptions import ConfigurationError, ErrorCode

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_TEMPLATE = """# Hostel API Client Configuration
# Configuration file: {config_path}

[server]
# API base URL
url = http://localhost:5000/api

# Request timeout in seconds
timeout = 30

[auth]
login_path = /auth/login
renewal_path = /auth/access-token
logout_path = /auth/logout

# Targets that never trigger credential renewal (JSON list)
exempt_paths = ["/auth/login", "/auth/access-token", "/auth/refresh"]

# Seconds to wait for a renewal before failing every queued request
renewal_timeout = 10

# Where the user is sent when the session cannot be recovered
login_route = /login

[storage]
# secure (system keyring or encrypted file) or memory
backend = secure
service_name = hostel-api-client

[logging]
# Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL
level = INFO
# standard, json or detailed
format = standard
"""


class ClientConfiguration:
    """
    Configuration manager for the Hostel API Client.

    Supports configuration from:
    1. Overrides set at runtime, e.g. from command line arguments (highest priority)
    2. Environment variables
    3. Configuration file
    4. Default values (lowest priority)
    """

    ENV_MAPPINGS = {
        'HOSTEL_CLIENT_SERVER_URL': ('server', 'url'),
        'HOSTEL_CLIENT_TIMEOUT': ('server', 'timeout'),
        'HOSTEL_CLIENT_RENEWAL_TIMEOUT': ('auth', 'renewal_timeout'),
        'HOSTEL_CLIENT_STORAGE_BACKEND': ('storage', 'backend'),
        'HOSTEL_CLIENT_LOG_LEVEL': ('logging', 'level'),
        'HOSTEL_CLIENT_LOG_FORMAT': ('logging', 'format'),
        'HOSTEL_CLIENT_LOG_FILE': ('logging', 'file'),
    }

    def __init__(self, config_file: Optional[str] = None, create_default: bool = True):
        self._config_file = config_file or self._get_default_config_path()
        self._config_data: Dict[str, Dict[str, Any]] = {}
        self._overrides: Dict[str, Any] = {}

        if create_default and not os.path.exists(self._config_file):
            self._create_default_config(self._config_file)

        self._load_configuration()

    @classmethod
    def defaults(cls) -> 'ClientConfiguration':
        """Configuration from environment variables and defaults only, without touching disk."""
        config = cls.__new__(cls)
        config._config_file = None
        config._config_data = {}
        config._overrides = {}
        config._load_from_environment()
        config._set_defaults()
        return config

    def _get_default_config_path(self) -> str:
        return str(Path.home() / '.hostel-client' / 'client.conf')

    def _create_default_config(self, config_path: str) -> None:
        """Create a default configuration file."""
        try:
            Path(config_path).parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, 'w') as f:
                f.write(DEFAULT_CONFIG_TEMPLATE.format(config_path=config_path))
            logger.info(f"Created default configuration file: {config_path}")
        except OSError as e:
            logger.warning(f"Failed to create default configuration: {e}")

    def _load_configuration(self) -> None:
        """Load configuration from file and environment variables."""
        if self._config_file and os.path.exists(self._config_file):
            self._load_from_file()
            logger.info(f"Configuration loaded from: {self._config_file}")
        else:
            logger.info(f"Configuration file not found: {self._config_file}")

        self._load_from_environment()
        self._set_defaults()

    def _load_from_file(self) -> None:
        """Load configuration from INI file."""
        config = ConfigParser()
        try:
            config.read(self._config_file)
        except Exception as e:
            raise ConfigurationError(
                f"Invalid configuration file {self._config_file}: {e}",
                error_code=ErrorCode.CONFIG_INVALID_FORMAT,
                cause=e
            )

        for section_name in config.sections():
            section_data = {}
            for key, value in config[section_name].items():
                # Try to parse as JSON for complex values
                try:
                    section_data[key] = json.loads(value)
                except (json.JSONDecodeError, ValueError):
                    section_data[key] = value

            self._config_data[section_name] = section_data

    def _load_from_environment(self) -> None:
        """Load configuration from environment variables."""
        for env_var, (section, key) in self.ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value is not None:
                self._config_data.setdefault(section, {})[key] = value

    def _set_defaults(self) -> None:
        """Set default configuration values."""
        defaults = {
            'server': {
                'url': 'http://localhost:5000/api',
                'timeout': 30.0,
            },
            'auth': {
                'login_path': '/auth/login',
                'renewal_path': '/auth/access-token',
                'logout_path': '/auth/logout',
                'exempt_paths': ['/auth/login', '/auth/access-token', '/auth/refresh'],
                'renewal_timeout': 10.0,
                'login_route': '/login',
            },
            'storage': {
                'backend': 'secure',
                'service_name': 'hostel-api-client',
                'cookie_file': str(Path.home() / '.hostel-client' / 'cookies.pickle'),
            },
            'logging': {
                'level': 'INFO',
                'format': 'standard',
                'file': None,
            },
        }

        for section, section_defaults in defaults.items():
            section_data = self._config_data.setdefault(section, {})
            for key, default_value in section_defaults.items():
                section_data.setdefault(key, default_value)

    def get_config(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in format 'section.key'
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if key in self._overrides:
            return self._overrides[key]

        if '.' not in key:
            return self._config_data.get(key, default)

        section, config_key = key.split('.', 1)
        return self._config_data.get(section, {}).get(config_key, default)

    def set_override(self, key: str, value: Any) -> None:
        """Override a configuration value for this process, using dot notation."""
        self._overrides[key] = value
        logger.debug(f"Configuration override set: {key}")

    def _get_float(self, key: str) -> float:
        value = self.get_config(key)
        try:
            result = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"'{key}' must be a number, got {value!r}", config_key=key)
        if result <= 0:
            raise ConfigurationError(f"'{key}' must be positive, got {value!r}", config_key=key)
        return result

    def get_server_url(self) -> str:
        return str(self.get_config('server.url'))

    def get_server_timeout(self) -> float:
        return self._get_float('server.timeout')

    def get_renewal_timeout(self) -> float:
        return self._get_float('auth.renewal_timeout')

    def get_login_path(self) -> str:
        return str(self.get_config('auth.login_path'))

    def get_renewal_path(self) -> str:
        return str(self.get_config('auth.renewal_path'))

    def get_logout_path(self) -> str:
        return str(self.get_config('auth.logout_path'))

    def get_login_route(self) -> str:
        return str(self.get_config('auth.login_route'))

    def get_exempt_paths(self) -> List[str]:
        """Exempt paths always include the login and renewal endpoints."""
        value = self.get_config('auth.exempt_paths') or []
        if isinstance(value, str):
            value = [part.strip() for part in value.split(',') if part.strip()]
        if not isinstance(value, list):
            raise ConfigurationError(
                f"'auth.exempt_paths' must be a list, got {value!r}",
                config_key='auth.exempt_paths'
            )

        paths = [str(path) for path in value]
        for required in (self.get_login_path(), self.get_renewal_path()):
            if required not in paths:
                paths.append(required)
        return paths

    def get_storage_backend(self) -> str:
        backend = str(self.get_config('storage.backend')).lower()
        if backend not in ('secure', 'memory'):
            raise ConfigurationError(
                f"Unknown storage backend {backend!r}",
                config_key='storage.backend'
            )
        return backend

    def get_storage_service_name(self) -> str:
        return str(self.get_config('storage.service_name'))

    def get_cookie_file(self) -> Path:
        return Path(str(self.get_config('storage.cookie_file'))).expanduser()

    def get_log_level(self) -> str:
        return str(self.get_config('logging.level')).upper()

    def get_log_format(self) -> str:
        return str(self.get_config('logging.format')).lower()

    def get_log_file(self) -> Optional[str]:
        return self.get_config('logging.file')

    def get_config_file_path(self) -> Optional[str]:
        return self._config_file

    def get_all_config(self) -> Dict[str, Any]:
        return {section: dict(values) for section, values in self._config_data.items()}
