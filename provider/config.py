"""Daemon configuration: dataclass defaults, then environment, then CLI flags."""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from provider.errors import ConfigError

DEFAULT_STORAGE_DIR = str(Path.home() / ".provider-storage")

DISCOVERY_INTERVAL_SEC = 30.0
USAGE_INTERVAL_SEC = 3600.0
HEARTBEAT_INTERVAL_SEC = 15.0
SHUTDOWN_GRACE_SEC = 10.0

_ENV_VARS = {
    "db_path": "PROVIDER_DB_PATH",
    "storage_dir": "PROVIDER_STORAGE_DIR",
    "capacity_gb": "PROVIDER_CAPACITY_GB",
    "price_per_gb": "PROVIDER_PRICE_PER_GB",
    "private_key": "PROVIDER_PRIVATE_KEY",
}


@dataclass
class ProviderConfig:
    db_path: str = "data/marketplace.db"
    storage_dir: str = DEFAULT_STORAGE_DIR
    capacity_gb: float = 0.0
    price_per_gb: float = 1.0
    private_key: str = field(default="", repr=False)
    discovery_interval_sec: float = DISCOVERY_INTERVAL_SEC
    usage_interval_sec: float = USAGE_INTERVAL_SEC
    heartbeat_interval_sec: float = HEARTBEAT_INTERVAL_SEC
    shutdown_grace_sec: float = SHUTDOWN_GRACE_SEC
    api_port: int = 0

    @classmethod
    def from_env(cls, environ: Optional[dict] = None, **overrides) -> "ProviderConfig":
        """Build a config from environment variables, then apply non-None overrides."""
        environ = os.environ if environ is None else environ
        values = {}
        types = {f.name: f.type for f in fields(cls)}
        for name, var in _ENV_VARS.items():
            raw = environ.get(var)
            if raw is None or raw == "":
                continue
            if types[name] in (float, "float"):
                try:
                    values[name] = float(raw)
                except ValueError:
                    raise ConfigError(f"{var} must be a number, got {raw!r}")
            else:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self):
        if not self.private_key:
            raise ConfigError("private key is required (set PROVIDER_PRIVATE_KEY)")
        if self.capacity_gb <= 0:
            raise ConfigError("capacity must be greater than 0 GB")
        if self.price_per_gb < 0:
            raise ConfigError("price per GB cannot be negative")
        for name in ("discovery_interval_sec", "usage_interval_sec", "heartbeat_interval_sec"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if not self.storage_dir:
            raise ConfigError("storage directory is required")

    @property
    def offline_threshold_sec(self) -> float:
        return self.heartbeat_interval_sec * 3
