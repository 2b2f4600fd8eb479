"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the Gemini server.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m geminiserver --port 1966                         │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── GEMINI_PORT=1966 python -m geminiserver                    │
    │                                                                      │
    │   3. JSON configuration file                                        │
    │      └── --config server.json  or  GEMINI_CONFIG=server.json        │
    │                                                                      │
    │   4. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The config is FROZEN: it's built once before the listener starts and
shared read-only by every worker thread. Overrides produce a new object
(dataclasses.replace), they never mutate the old one.

Example config file:

    {
        "host": "example.org",
        "port": 1965,
        "content_root": "/srv/gemini",
        "cert_path": "/etc/gemini/cert.pem",
        "key_path": "/etc/gemini/key.pem",
        "content_charset": "utf-8",
        "content_lang": "en"
    }

=============================================================================
"""

import codecs
import json
import logging
import os
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Mapping, Optional


logger = logging.getLogger(__name__)


# Environment variable -> config field
ENV_VARS = {
    "GEMINI_HOST": "host",
    "GEMINI_PORT": "port",
    "GEMINI_BIND_ADDRESS": "bind_address",
    "GEMINI_CONTENT_ROOT": "content_root",
    "GEMINI_CERT_PATH": "cert_path",
    "GEMINI_KEY_PATH": "key_path",
    "GEMINI_CONTENT_CHARSET": "content_charset",
    "GEMINI_CONTENT_LANG": "content_lang",
    "GEMINI_TIMEOUT": "timeout",
    "GEMINI_WORKERS": "max_workers",
    "GEMINI_LOG_LEVEL": "log_level",
    "GEMINI_LOG_FORMAT": "log_format",
}

CONFIG_PATH_ENV = "GEMINI_CONFIG"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigError(ValueError):
    """Invalid or unreadable configuration. Fatal at startup."""


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the Gemini server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    IDENTITY      host, port, bind_address
    CONTENT       content_root, content_charset, content_lang
    TLS           cert_path, key_path
    NETWORK       backlog, timeout, max_request_size
    THREADING     min_workers, max_workers
    LOGGING       log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    host: str = "localhost"
    """
    The host name this server answers for. Requests for any other host
    get "53 Proxy request refused". Also the default bind address.
    """

    port: int = 1965
    """1965 is the standard Gemini port."""

    bind_address: Optional[str] = None
    """
    Address to listen on, when it differs from ``host``.
    "0.0.0.0" inside containers, where ``host`` is the public name.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    content_root: str = "content"

    content_charset: str = ""
    """charset parameter of text/gemini responses. Empty = omitted."""

    content_lang: str = ""
    """lang parameter of text/gemini responses (e.g. "en"). Empty = omitted."""

    # ─────────────────────────────────────────────────────────────────────
    # TLS
    # ─────────────────────────────────────────────────────────────────────

    cert_path: str = "cert.pem"
    key_path: str = "key.pem"

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    backlog: int = 128

    timeout: float = 10.0
    """
    Per-connection timeout in seconds for the TLS handshake, and a
    deadline for the whole request line. Stops slow clients from holding
    a worker forever.
    """

    max_request_size: int = 1024
    """Longest accepted URL in bytes (protocol limit is 1024)."""

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL
    # ─────────────────────────────────────────────────────────────────────

    min_workers: int = 4
    max_workers: int = 16

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """Access log format: 'text' or 'json'."""

    @property
    def listen_address(self) -> str:
        return self.bind_address or self.host

    # =========================================================================
    # LOADING
    # =========================================================================

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "ServerConfig":
        """
        Build a config from a mapping of field names to values.

        Values are coerced to the field's type, so strings from the
        environment ("1965") and JSON numbers both work.

        Raises:
            ConfigError: Unknown key or value of the wrong type.
        """
        known = {f.name: f for f in fields(cls)}
        kwargs: Dict[str, Any] = {}

        for key, value in values.items():
            if key not in known:
                raise ConfigError(f"Unknown configuration key: {key!r}")
            kwargs[key] = _coerce(key, value, known[key].type)

        # GEMINI_WORKERS only sets the maximum; keep the pair consistent
        if "max_workers" in kwargs and "min_workers" not in kwargs:
            kwargs["min_workers"] = max(1, min(cls.min_workers, kwargs["max_workers"]))

        return cls(**kwargs)

    @classmethod
    def from_file(cls, path: str) -> "ServerConfig":
        """Load a JSON config file. Missing keys keep their defaults."""
        return cls.from_dict(_read_json(path))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        GEMINI_HOST             Served host name (default: localhost)
        GEMINI_PORT             Port (default: 1965)
        GEMINI_BIND_ADDRESS     Listen address (default: host)
        GEMINI_CONTENT_ROOT     Content directory (default: content)
        GEMINI_CERT_PATH        TLS certificate (default: cert.pem)
        GEMINI_KEY_PATH         TLS private key (default: key.pem)
        GEMINI_CONTENT_CHARSET  charset parameter (default: omitted)
        GEMINI_CONTENT_LANG     lang parameter (default: omitted)
        GEMINI_TIMEOUT          Connection timeout seconds (default: 10)
        GEMINI_WORKERS          Max worker threads (default: 16)
        GEMINI_LOG_LEVEL        Logging level (default: INFO)
        GEMINI_LOG_FORMAT       Access log format (default: text)

        =====================================================================
        """
        return cls.from_dict(_env_values(environ))

    @classmethod
    def load(
        cls,
        config_path: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> "ServerConfig":
        """
        Load configuration: defaults < JSON file < environment.

        Args:
            config_path: JSON file. Falls back to $GEMINI_CONFIG; when
                         neither is set no file is read.
            environ: Environment mapping (default: os.environ).

        Raises:
            ConfigError: Unreadable file, invalid JSON, unknown keys,
                         or values that fail validation.
        """
        environ = os.environ if environ is None else environ
        config_path = config_path or environ.get(CONFIG_PATH_ENV)

        values: Dict[str, Any] = {}
        if config_path:
            values.update(_read_json(config_path))
            logger.debug(f"Loaded configuration file {config_path}")

        values.update(_env_values(environ))

        config = cls.from_dict(values)
        config.validate()
        return config

    def with_overrides(self, **overrides: Any) -> "ServerConfig":
        """
        Return a copy with the given fields replaced. None values are
        ignored, which suits argparse defaults.
        """
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes) if changes else self

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate(self) -> None:
        """
        Validate configuration values.

        Called at startup, before any socket is bound, so a typo in the
        config fails immediately instead of on the first request.

        Raises:
            ConfigError: On the first invalid value.
        """
        if not self.host:
            raise ConfigError("host must not be empty")

        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.min_workers < 1:
            raise ConfigError("min_workers must be >= 1")

        if self.max_workers < self.min_workers:
            raise ConfigError("max_workers must be >= min_workers")

        if self.timeout <= 0:
            raise ConfigError("timeout must be > 0")

        if self.max_request_size < 1:
            raise ConfigError("max_request_size must be >= 1")

        if self.content_charset:
            try:
                codecs.lookup(self.content_charset)
            except LookupError:
                raise ConfigError(f"Unknown charset: {self.content_charset!r}")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"Invalid log_level: {self.log_level!r}")

        if self.log_format not in ("text", "json"):
            raise ConfigError(f"Invalid log_format: {self.log_format!r}")


# =============================================================================
# HELPERS
# =============================================================================

def _read_json(path: str) -> Dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config file {path}: {e}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in config file {path}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a JSON object")

    return data


def _env_values(environ: Optional[Mapping[str, str]]) -> Dict[str, str]:
    environ = os.environ if environ is None else environ
    return {
        field_name: environ[var]
        for var, field_name in ENV_VARS.items()
        if var in environ
    }


def _coerce(key: str, value: Any, field_type: Any) -> Any:
    """Convert a raw config value to the field's declared type."""
    # Annotations are strings or typing objects depending on the Python
    # version, so compare by name.
    if isinstance(field_type, str):
        type_name = field_type
    else:
        type_name = getattr(field_type, "__name__", str(field_type))

    try:
        if type_name == "int":
            if isinstance(value, bool):
                raise ValueError("booleans are not integers")
            return int(value)
        if type_name == "float":
            if isinstance(value, bool):
                raise ValueError("booleans are not numbers")
            return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key}: {value!r} ({e})")

    if value is None:
        return None

    if not isinstance(value, str):
        raise ConfigError(f"Invalid value for {key}: expected a string, got {value!r}")

    return value
