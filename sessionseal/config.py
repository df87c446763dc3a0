"""
Config system - Layered configuration for SessionSeal.

Merge precedence (later overrides earlier):
1. Built-in defaults
2. Config files (YAML or JSON)
3. ``.env`` file (python-dotenv)
4. Environment variables (``SESSIONSEAL_`` prefix, ``__`` nests)
5. Manual overrides

Builders turn the merged dict into session option objects and wire up
a ready SessionEngine.

Example config file::

    sessions:
      key: "base64:9d8Kx..."
      expiration_seconds: 259200
      transport:
        cookie_name: session
        secure: true
      store:
        backend: redis
        url: redis://localhost:6379/0
        max_connections: 10

Equivalent environment variable::

    SESSIONSEAL_SESSIONS__STORE__URL=redis://cache:6379/0
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from datetime import timedelta
from glob import glob
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import dotenv_values

from .sessions.engine import SessionEngine
from .sessions.faults import ConfigurationError
from .sessions.options import SessionOptions, StoreOptions, TransportOptions
from .sessions.redis_store import RedisStore
from .sessions.store import MemoryStore
from .sessions.transport import CookieTransport


logger = logging.getLogger("sessionseal.config")

DEFAULT_ENV_PREFIX = "SESSIONSEAL_"

# Leaves that are always text, even when they look like numbers or booleans
_STRING_FIELDS = frozenset({
    "key", "key_prefix", "url", "cookie_name", "cookie_path", "cookie_domain", "samesite",
})

_BASE64_PREFIX = "base64:"


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = DEFAULT_ENV_PREFIX):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list[str]] = None,
        env_prefix: str = DEFAULT_ENV_PREFIX,
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
            environ: Environment mapping (defaults to ``os.environ``)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)
        loader._merge_dict(loader.config_data, default_config())

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
        matches = sorted(glob(pattern))
        if not matches:
            logger.warning(f"No config file matches {pattern!r}")

        for path_str in matches:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigurationError(f"unsupported config file type: {path.name}")

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            data = json.load(f)
        if data:
            self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f)
        if data:
            self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load prefixed keys from a .env file."""
        if not Path(path).exists():
            logger.debug(f"Env file {path!r} not found, skipping")
            return
        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self, environ):
        """Load config from environment variables."""
        for key, value in environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert SESSIONSEAL_SESSIONS__STORE__URL to nested dict."""
        parts = key[len(self.env_prefix):].lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        leaf = parts[-1]
        current[leaf] = value if leaf in _STRING_FIELDS else self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

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
        current = self.config_data
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default
        return current

    def get_session_config(self) -> dict:
        """Session section of the merged config."""
        return self.get("sessions", {}) or {}

    def to_dict(self) -> dict:
        return self.config_data


def default_config() -> dict:
    """
    Built-in defaults.

    Option fields left out here stay ``None`` and are filled in by
    ``with_defaults``.
    """
    return {
        "sessions": {
            "key": None,
            "expiration_seconds": None,
            "transport": {},
            "store": {"backend": "redis"},
        },
    }


# ============================================================================
# Builders
# ============================================================================

def decode_key(value: Any) -> bytes:
    """
    Turn a configured key into bytes.

    ``base64:<data>`` is decoded (URL-safe or standard alphabet, padding
    optional); any other text is UTF-8 encoded.

    Raises:
        ConfigurationError: Key missing, empty or undecodable
    """
    if isinstance(value, bytes):
        key = value
    elif isinstance(value, str):
        if value.startswith(_BASE64_PREFIX):
            data = value[len(_BASE64_PREFIX):].strip().replace("+", "-").replace("/", "_")
            data = data.rstrip("=")
            try:
                key = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
            except (binascii.Error, ValueError):
                raise ConfigurationError("session key is not valid base64")
        else:
            key = value.encode("utf-8")
    elif value is None:
        key = b""
    else:
        raise ConfigurationError(f"session key must be text, got {type(value).__name__}")

    if not key:
        raise ConfigurationError("no session key")
    return key


def build_session_options(config: dict) -> SessionOptions:
    """Build SessionOptions from the ``sessions`` section."""
    seconds = config.get("expiration_seconds")
    expiration = None
    if seconds is not None:
        try:
            expiration = timedelta(seconds=float(seconds))
        except (TypeError, ValueError):
            raise ConfigurationError(f"expiration_seconds must be a number, got {seconds!r}")
    return SessionOptions(key=decode_key(config.get("key")), expiration=expiration)


def build_transport_options(config: dict) -> TransportOptions:
    """Build TransportOptions from the ``sessions.transport`` section."""
    transport = config.get("transport") or {}
    samesite = transport.get("samesite")
    if samesite is not None:
        samesite = str(samesite).capitalize()
        if samesite not in ("Strict", "Lax", "None"):
            raise ConfigurationError(f"samesite must be Strict, Lax or None, got {samesite!r}")
    return TransportOptions(
        cookie_name=transport.get("cookie_name"),
        cookie_path=transport.get("cookie_path"),
        http_only=transport.get("http_only"),
        secure=transport.get("secure"),
        samesite=samesite,
        cookie_domain=transport.get("cookie_domain"),
    )


def build_store_options(config: dict) -> StoreOptions:
    """Build StoreOptions from the ``sessions.store`` section."""
    store = config.get("store") or {}
    return StoreOptions(
        url=store.get("url"),
        max_connections=store.get("max_connections"),
        pool_timeout=store.get("pool_timeout"),
        socket_timeout=store.get("socket_timeout"),
        socket_connect_timeout=store.get("socket_connect_timeout"),
        health_check_interval=store.get("health_check_interval"),
        operation_timeout=store.get("operation_timeout"),
        key_prefix=store.get("key_prefix"),
    )


def build_store(config: dict):
    """
    Factory: create the session store named by ``sessions.store.backend``.

    Raises:
        ConfigurationError: Unknown backend
    """
    backend = str((config.get("store") or {}).get("backend", "redis")).lower()

    if backend == "redis":
        return RedisStore(build_store_options(config))
    elif backend == "memory":
        return MemoryStore()

    raise ConfigurationError(f"unknown session store backend {backend!r}")


def build_engine(config: dict, *, store=None) -> SessionEngine:
    """
    Wire a SessionEngine from the ``sessions`` section.

    Args:
        config: Session config dict
        store: Store to use instead of the configured backend

    Raises:
        ConfigurationError: Invalid configuration
    """
    options = build_session_options(config)
    transport = CookieTransport(build_transport_options(config))
    if store is None:
        store = build_store(config)
    logger.info(f"Session engine configured with {store.name} store")
    return SessionEngine.from_options(options, store, transport)


__all__ = [
    "ConfigLoader",
    "default_config",
    "decode_key",
    "build_session_options",
    "build_transport_options",
    "build_store_options",
    "build_store",
    "build_engine",
]
