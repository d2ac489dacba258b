from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]
LedgerNetwork = Literal["testnet", "mainnet"]

_HEX_SEED = re.compile(r"^[0-9a-fA-F]{64}$")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so it’s easy to extend later (type casting, required vars)
    return os.environ.get(name, default).strip()


def _getenv_int(name: str, default: str, *, minimum: int = 0) -> int:
    raw = _getenv(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum} (got {value})")
    return value


def _getenv_bool(name: str, default: str) -> bool:
    raw = _getenv(name, default).lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # Ledger anchoring. All optional: without a node URL and signing key
    # certificates are issued unanchored.
    ledger_node_url: str | None = None
    ledger_indexer_url: str | None = None
    ledger_api_token: str | None = None
    ledger_network: LedgerNetwork = "testnet"
    ledger_signing_key: str | None = None
    ledger_confirmation_rounds: int = 3
    ledger_submit_attempts: int = 3
    ledger_timeout_seconds: float = 10.0
    cert_metadata_base_url: str | None = None

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"

    @property
    def ledger_configured(self) -> bool:
        return self.ledger_node_url is not None


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()
    port_raw = _getenv("PORT", "8000")

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    try:
        port = int(port_raw)
    except ValueError:
        raise ValueError(f"PORT must be an integer (got {port_raw!r})") from None

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    network_raw = _getenv("LEDGER_NETWORK", "testnet").lower()
    if network_raw not in ("testnet", "mainnet"):
        raise ValueError(
            f"LEDGER_NETWORK must be testnet|mainnet (got {network_raw!r})"
        )

    signing_key = _getenv("LEDGER_SIGNING_KEY", "") or None
    if signing_key is not None and not _HEX_SEED.match(signing_key):
        # Never echo the value back: it is private key material.
        raise ValueError("LEDGER_SIGNING_KEY must be 64 hex characters")

    timeout_raw = _getenv("LEDGER_TIMEOUT_SECONDS", "10")
    try:
        ledger_timeout = float(timeout_raw)
    except ValueError:
        raise ValueError(
            f"LEDGER_TIMEOUT_SECONDS must be a number (got {timeout_raw!r})"
        ) from None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getenv_bool("LOG_JSON", "false"),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        ledger_node_url=_getenv("LEDGER_NODE_URL", "") or None,
        ledger_indexer_url=_getenv("LEDGER_INDEXER_URL", "") or None,
        ledger_api_token=_getenv("LEDGER_API_TOKEN", "") or None,
        ledger_network=network_raw,
        ledger_signing_key=signing_key,
        ledger_confirmation_rounds=_getenv_int(
            "LEDGER_CONFIRMATION_ROUNDS", "3", minimum=1
        ),
        ledger_submit_attempts=_getenv_int("LEDGER_SUBMIT_ATTEMPTS", "3", minimum=1),
        ledger_timeout_seconds=ledger_timeout,
        cert_metadata_base_url=_getenv("CERT_METADATA_BASE_URL", "") or None,
    )


# Optional: module-level singleton so imports are cheap
SETTINGS = load_settings()
