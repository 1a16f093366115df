"""
Config system - Layered configuration for session engines.

Merge precedence (later overrides earlier):
defaults < config files (JSON/YAML) < .env file < environment variables < overrides
"""

from typing import Any, Dict, Optional
from pathlib import Path
import copy
import json
import os

from dotenv import dotenv_values

from .sessions.faults import SessionConfigFault
from .sessions.policy import SessionPolicy


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or validated."""
    pass


DEFAULT_SESSION_CONFIG: Dict[str, Any] = {
    "name": "default",
    "id_byte_length": 16,
    "id_prefix": "",
    "transport": {
        "adapter": "cookie",  # "cookie", "header"
        # "name" has no default: the integrator must choose it
        "path": "/",
        "domain": None,
        "max_age": None,
        "secure": True,
        "httponly": True,
        "samesite": "lax",
    },
    "persistence": {
        "backend": "memory",  # "memory", "file", "redis"
        "ttl": None,
        "key_prefix": "sess:",
        "serializer": "json",
        "timeout": 5.0,
        "max_sessions": 10000,
        # File store options
        "directory": None,
        # Redis options
        "redis_url": "redis://localhost:6379/0",
        "max_connections": 10,
        "socket_timeout": 5.0,
        "connect_timeout": 5.0,
    },
}


# Fields that stay text even when the value looks like a number or null
STRING_FIELDS = frozenset({"name", "id_prefix", "key_prefix", "adapter", "serializer", "redis_url"})


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources.

    Environment variables use a prefix and double underscores for nesting:
    ``SK_SESSIONS__TRANSPORT__NAME=sid`` sets ``sessions.transport.name``.

    Example:
        >>> loader = ConfigLoader.load(paths=["config/sessions.yaml"], env_file=".env")
        >>> engine = SessionEngine.from_policy(loader.session_policy())
    """

    def __init__(self, env_prefix: str = "SK_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = "SK_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
        environ: Optional[Dict[str, str]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources with proper merge strategy.

        Args:
            paths: Config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)
            environ: Environment mapping (defaults to os.environ)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(pattern)

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env(os.environ if environ is None else environ)

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matches = sorted(glob(pattern))
        if not matches and not any(ch in pattern for ch in "*?["):
            raise ConfigError(f"Config file not found: {pattern}")

        for path_str in matches:
            path = Path(path_str)

            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigError(f"Unsupported config file type: {path}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in {path}: {e}") from e
        if data:
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml

        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}") from e
        if data:
            self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        env_path = Path(path)
        if not env_path.exists():
            return

        for key, value in dotenv_values(env_path).items():
            if value is not None and key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _load_from_env(self, environ):
        """Load config from environment variables."""
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert SK_SESSIONS__TRANSPORT__NAME to nested dict."""
        key = key[len(self.env_prefix):]

        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        leaf = parts[-1]
        current[leaf] = value if leaf in STRING_FIELDS else self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        lowered = value.lower()
        if lowered in ("true", "yes", "on"):
            return True
        if lowered in ("false", "no", "off"):
            return False
        if lowered in ("null", "none"):
            return None

        # Number
        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        # JSON
        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        parts = path.split(".")
        current = self.config_data

        for part in parts:
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def to_dict(self) -> dict:
        """Export all config as dictionary."""
        return copy.deepcopy(self.config_data)

    def get_session_config(self) -> dict:
        """
        Get session configuration merged over defaults.

        Returns:
            Session configuration dictionary
        """
        merged = copy.deepcopy(DEFAULT_SESSION_CONFIG)
        user_config = self.get("sessions", {})
        if user_config:
            if not isinstance(user_config, dict):
                raise ConfigError("'sessions' config section must be a mapping")
            self._merge_dict(merged, user_config)
        return merged

    def session_policy(self) -> SessionPolicy:
        """
        Build the SessionPolicy described by the ``sessions`` section.

        Raises:
            SessionConfigFault: A field is missing or invalid
        """
        config = self.get_session_config()
        try:
            return SessionPolicy.from_dict(config.get("name", "default"), config)
        except SessionConfigFault:
            raise
        except (TypeError, ValueError) as e:
            raise SessionConfigFault("sessions", str(e)) from e
