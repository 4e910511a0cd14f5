"""
Config system - layered, typed proxy configuration.

Merge order (later overrides earlier):

1. ``ProxyConfig`` defaults
2. A YAML or JSON config file
3. A ``.env`` file (``GOPROXY_*`` keys only)
4. ``GOPROXY_*`` environment variables
5. Explicit overrides (e.g. CLI options)

Example ``goproxy.yaml``::

    storage_backend: filesystem
    storage_root: /srv/goproxy
    retry_max_attempts: 5
    url_prefix: /mod
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml
from dotenv import dotenv_values

from .faults import ConfigInvalidFault
from .retry import RetryPolicy
from .storage import FilesystemObjectStore, MemoryObjectStore, ObjectStore, S3ObjectStore

logger = logging.getLogger("goproxy.config")

ENV_PREFIX = "GOPROXY_"
BACKENDS = ("filesystem", "memory", "s3")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_TRUE = ("true", "yes", "on", "1")
_FALSE = ("false", "no", "off", "0")


@dataclass
class ProxyConfig:
    """
    Proxy configuration.

    Loaded via :meth:`ConfigLoader.load`.
    """
    storage_backend: str = "filesystem"   # "filesystem", "memory", "s3"
    storage_root: str = "goproxy-store"   # Filesystem backend root

    # S3 / MinIO
    s3_bucket: str = ""
    s3_prefix: str = ""
    s3_endpoint_url: str = ""
    s3_region: str = "us-east-1"

    # Store retries
    retry_max_attempts: int = 3
    retry_base_delay: float = 0.05
    retry_multiplier: float = 2.0
    retry_max_delay: float = 2.0

    write_latest_pointer: bool = True
    sweep_grace_period: float = 900.0  # Seconds before an orphan may be swept

    # HTTP read surface
    url_prefix: str = ""
    host: str = "127.0.0.1"
    port: int = 8080

    log_level: str = "INFO"

    def validate(self) -> "ProxyConfig":
        """
        Check cross-field constraints.

        Raises:
            ConfigInvalidFault: On the first invalid value.
        """
        if self.storage_backend not in BACKENDS:
            raise ConfigInvalidFault(
                "storage_backend", f"must be one of {', '.join(BACKENDS)}",
            )
        if self.storage_backend == "s3" and not self.s3_bucket:
            raise ConfigInvalidFault("s3_bucket", "required for the s3 backend")
        if self.storage_backend == "filesystem" and not self.storage_root:
            raise ConfigInvalidFault("storage_root", "required for the filesystem backend")
        if self.retry_max_attempts < 1:
            raise ConfigInvalidFault("retry_max_attempts", "must be at least 1")
        for name in ("retry_base_delay", "retry_max_delay"):
            if getattr(self, name) < 0:
                raise ConfigInvalidFault(name, "must not be negative")
        if self.sweep_grace_period < 0:
            raise ConfigInvalidFault("sweep_grace_period", "must not be negative")
        if self.retry_multiplier < 1:
            raise ConfigInvalidFault("retry_multiplier", "must be at least 1")
        if not 0 < self.port < 65536:
            raise ConfigInvalidFault("port", "must be between 1 and 65535")
        if self.url_prefix and not self.url_prefix.startswith("/"):
            raise ConfigInvalidFault("url_prefix", "must start with '/'")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigInvalidFault("log_level", f"must be one of {', '.join(LOG_LEVELS)}")
        self.log_level = self.log_level.upper()
        self.url_prefix = self.url_prefix.rstrip("/")
        return self

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            multiplier=self.retry_multiplier,
            max_delay=self.retry_max_delay,
        )

    def create_store(self) -> ObjectStore:
        """Instantiate the configured storage backend."""
        if self.storage_backend == "memory":
            return MemoryObjectStore()
        if self.storage_backend == "s3":
            return S3ObjectStore(
                bucket=self.s3_bucket,
                prefix=self.s3_prefix,
                endpoint_url=self.s3_endpoint_url or None,
                region_name=self.s3_region,
            )
        return FilesystemObjectStore(self.storage_root)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigLoader:
    """
    Loads and merges :class:`ProxyConfig` from multiple sources.

    Usage::

        config = ConfigLoader.load("goproxy.yaml", env_file=".env")
        store = config.create_store()
    """

    def __init__(self, env_prefix: str = ENV_PREFIX):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        path: Optional[Union[str, Path]] = None,
        env_file: Optional[Union[str, Path]] = None,
        overrides: Optional[Mapping[str, Any]] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> ProxyConfig:
        """
        Build a validated :class:`ProxyConfig`.

        Args:
            path: YAML (``.yaml``/``.yml``) or JSON config file.
            env_file: ``.env`` file; only ``GOPROXY_*`` keys are read.
            overrides: Highest-precedence values; ``None`` values are ignored.
            environ: Environment mapping (defaults to ``os.environ``).

        Raises:
            ConfigInvalidFault: Missing or unparseable file, unknown key, or
                invalid value.
        """
        loader = cls()
        if path:
            loader._load_file(Path(path))
        if env_file:
            loader._load_env_file(Path(env_file))
        loader._load_from_env(os.environ if environ is None else environ)
        if overrides:
            loader._merge({k: v for k, v in overrides.items() if v is not None}, "overrides")
        return loader.build()

    def build(self) -> ProxyConfig:
        values = {}
        for f in fields(ProxyConfig):
            if f.name in self.config_data:
                values[f.name] = self._coerce(f.name, f.default, self.config_data[f.name])
        return ProxyConfig(**values).validate()

    # ── Sources ──────────────────────────────────────────────────────

    def _load_file(self, path: Path) -> None:
        if not path.is_file():
            raise ConfigInvalidFault(str(path), "config file not found")
        text = path.read_text(encoding="utf-8")
        try:
            if path.suffix == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (ValueError, yaml.YAMLError) as exc:
            raise ConfigInvalidFault(str(path), f"unparseable config file: {exc}")
        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigInvalidFault(str(path), "config file must contain a mapping")
        # Allow the settings to be nested under a top-level "goproxy" key
        if set(data) == {"goproxy"} and isinstance(data["goproxy"], dict):
            data = data["goproxy"]
        self._merge(data, str(path))

    def _load_env_file(self, path: Path) -> None:
        if not path.is_file():
            raise ConfigInvalidFault(str(path), "env file not found")
        self._merge(self._strip_prefix(dotenv_values(path)), str(path))

    def _load_from_env(self, environ: Mapping[str, str]) -> None:
        # Unknown GOPROXY_* names here belong to other tools.
        self._merge(self._strip_prefix(environ), "environment", strict=False)

    def _strip_prefix(self, values: Mapping[str, Optional[str]]) -> Dict[str, Any]:
        return {
            key[len(self.env_prefix):].lower(): value
            for key, value in values.items()
            if key.startswith(self.env_prefix) and value is not None
        }

    def _merge(self, data: Mapping[str, Any], source: str, strict: bool = True) -> None:
        known = {f.name for f in fields(ProxyConfig)}
        for key, value in data.items():
            key = str(key)
            if key not in known:
                if not strict:
                    logger.debug("Ignoring unknown setting %r from %s", key, source)
                    continue
                raise ConfigInvalidFault(key, f"unknown setting (from {source})")
            self.config_data[key] = value
        logger.debug("Loaded %d setting(s) from %s", len(data), source)

    # ── Coercion ─────────────────────────────────────────────────────

    @staticmethod
    def _coerce(key: str, default: Any, value: Any) -> Any:
        """Coerce *value* to the type of the field's default."""
        if isinstance(default, bool):
            if isinstance(value, bool):
                return value
            text = str(value).strip().lower()
            if text in _TRUE:
                return True
            if text in _FALSE:
                return False
            raise ConfigInvalidFault(key, f"expected a boolean, got {value!r}")
        if isinstance(default, int):
            if isinstance(value, bool):
                raise ConfigInvalidFault(key, f"expected an integer, got {value!r}")
            try:
                return int(str(value).strip())
            except ValueError:
                raise ConfigInvalidFault(key, f"expected an integer, got {value!r}")
        if isinstance(default, float):
            if isinstance(value, bool):
                raise ConfigInvalidFault(key, f"expected a number, got {value!r}")
            try:
                return float(value)
            except (TypeError, ValueError):
                raise ConfigInvalidFault(key, f"expected a number, got {value!r}")
        if value is None:
            return ""
        if isinstance(value, (dict, list)):
            raise ConfigInvalidFault(key, f"expected a string, got {type(value).__name__}")
        return str(value)
