"""Application settings loaded from environment variables and config files.

Configuration is loaded from (highest priority first):
1. Environment variables (prefix: ``L2BRIDGE_``, nested via ``__``)
2. YAML config file (``L2BRIDGE_CONFIG_PATH`` env var)
3. Defaults defined here
"""

from __future__ import annotations

import enum
import re
from pathlib import Path
from typing import Any, Self

import yaml
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Enums for validated choices
# ---------------------------------------------------------------------------


class DatabaseEngine(enum.StrEnum):
    """Supported database engines."""

    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"


class LedgerBackend(enum.StrEnum):
    """Where the claim ledger persists its records."""

    MEMORY = "memory"
    DATABASE = "database"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


def normalize_endpoint(endpoint: str) -> str:
    """Normalize a relay endpoint into ``scheme://host[:port][/path]``.

    Local hosts default to ``http://``; everything else to ``https://``.

    Raises:
        ValueError: If the endpoint is empty.
    """
    value = endpoint.strip()
    if not value:
        msg = "Relay endpoint is required"
        raise ValueError(msg)
    if not _SCHEME_RE.match(value):
        if "localhost" in value or "127.0.0.1" in value:
            value = f"http://{value}"
        else:
            value = f"https://{value}"
    return value.rstrip("/")


# ---------------------------------------------------------------------------
# Sub-config models
# ---------------------------------------------------------------------------


class ServerConfig(BaseSettings):
    """Local control API settings."""

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_SERVER__",
        case_sensitive=False,
    )

    host: str = "127.0.0.1"
    port: int = 8780


class RelayConfig(BaseSettings):
    """Off-chain relay settings."""

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_RELAY__",
        case_sensitive=False,
    )

    url: str = "http://localhost:8765"
    timeout: float = 30.0
    api_token: str = ""

    @field_validator("url")
    @classmethod
    def _normalize_url(cls, value: str) -> str:
        return normalize_endpoint(value)


class ChainConfig(BaseSettings):
    """L1 chain and bridge contract settings."""

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_CHAIN__",
        case_sensitive=False,
    )

    rpc_url: str = "https://sepolia.base.org"
    chain_id: int = 84532  # Base Sepolia
    bridge_address: str = ""
    private_key: str = Field(
        default="",
        description="Key for the headless wallet signer; empty disables the local session",
    )
    receipt_poll_interval: float = 2.0
    request_timeout: int = 60


class DatabaseConfig(BaseSettings):
    """Database settings."""

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_DB__",
        case_sensitive=False,
    )

    engine: DatabaseEngine = Field(
        default=DatabaseEngine.SQLITE,
        description="Database backend: sqlite or postgresql",
    )
    dsn: str = Field(
        default="sqlite+aiosqlite:///./l2_bridge.db",
        description="Async database connection string",
    )
    max_idle_connections: int = 5
    max_open_connections: int = 10
    debug_sql: bool = False


class LedgerConfig(BaseSettings):
    """Durable claim ledger settings."""

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_LEDGER__",
        case_sensitive=False,
    )

    backend: LedgerBackend = LedgerBackend.DATABASE
    namespace: str = "l2bridge_batched_withdrawals"


class PollerConfig(BaseSettings):
    """Proof polling budget."""

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_POLLER__",
        case_sensitive=False,
    )

    interval: float = 5.0
    max_attempts: int = Field(default=60, ge=1)


class MetricsConfig(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_METRICS__",
        case_sensitive=False,
    )

    enabled: bool = True


class TaskConfig(BaseSettings):
    """Background job settings."""

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_TASK__",
        case_sensitive=False,
    )

    enabled: bool = True
    proof_refresh_period: float = 60.0
    auto_claim: bool = False


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------


def _load_yaml(path: str | Path) -> dict[str, Any]:
    """Load a YAML configuration file and return its contents as a dict.

    Returns an empty dict if the file doesn't exist or is empty.
    """
    p = Path(path)
    if not p.exists():
        return {}
    text = p.read_text(encoding="utf-8")
    data = yaml.safe_load(text)
    return data if isinstance(data, dict) else {}


class AppConfig(BaseSettings):
    """Top-level application configuration.

    Loads settings from environment variables (``L2BRIDGE_`` prefix),
    an optional YAML file, and built-in defaults.
    """

    model_config = SettingsConfigDict(
        env_prefix="L2BRIDGE_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    debug: bool = False
    version: str = "0.1.0"
    config_path: str = ""

    server: ServerConfig = Field(default_factory=ServerConfig)
    relay: RelayConfig = Field(default_factory=RelayConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)
    db: DatabaseConfig = Field(default_factory=DatabaseConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)
    task: TaskConfig = Field(default_factory=TaskConfig)

    @model_validator(mode="before")
    @classmethod
    def _merge_yaml(cls, values: dict[str, Any]) -> dict[str, Any]:
        """Merge YAML config file contents under the env var overrides."""
        config_path = values.get("config_path", "")
        if not config_path:
            return values
        yaml_data = _load_yaml(config_path)
        # YAML values serve as defaults; env vars (already in *values*) win.
        for key, val in yaml_data.items():
            if key not in values or values[key] is None:
                values[key] = val
            elif isinstance(val, dict) and isinstance(values.get(key), dict):
                values[key] = {**val, **values[key]}
        return values

    @classmethod
    def from_yaml(cls, path: str | Path) -> Self:
        """Construct ``AppConfig`` loading defaults from a YAML file.

        Environment variables still override YAML values.
        """
        return cls(config_path=str(path))
