from __future__ import annotations

import pytest

from certanchor.core.config import AppEnv, Settings, load_settings

_BASE_VARS = ("APP_ENV", "LOG_LEVEL", "LOG_JSON", "PORT", "DATABASE_URL", "REDIS_URL")


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in _BASE_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def _make_settings(app_env: AppEnv = "dev", **overrides: object) -> Settings:
    fields: dict[str, object] = dict(
        app_env=app_env,
        log_level="info",
        log_json=False,
        port=8000,
        database_url=None,
        redis_url=None,
    )
    fields.update(overrides)
    return Settings(**fields)  # type: ignore[arg-type]


def test_defaults_run_without_infrastructure(clean_env: pytest.MonkeyPatch) -> None:
    settings = load_settings()
    assert (settings.app_env, settings.log_level, settings.port) == ("dev", "info", 8000)
    assert settings.log_json is False
    assert settings.database_url is None
    assert settings.redis_url is None


@pytest.mark.parametrize(
    ("app_env", "log_level", "expected"),
    [
        ("prod", "error", ("prod", "error")),
        ("PROD", "DEBUG", ("prod", "debug")),
        ("  test  ", "  warning  ", ("test", "warning")),
    ],
)
def test_env_and_level_are_normalized(
    clean_env: pytest.MonkeyPatch, app_env: str, log_level: str, expected: tuple[str, str]
) -> None:
    clean_env.setenv("APP_ENV", app_env)
    clean_env.setenv("LOG_LEVEL", log_level)
    settings = load_settings()
    assert (settings.app_env, settings.log_level) == expected


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("APP_ENV", "staging", "APP_ENV must be dev|test|prod"),
        ("APP_ENV", "", "APP_ENV must be dev|test|prod"),
        ("LOG_LEVEL", "verbose", "LOG_LEVEL must be debug|info|warning|error"),
        ("PORT", "eighty", "PORT must be an integer"),
        ("LEDGER_SUBMIT_ATTEMPTS", "many", "LEDGER_SUBMIT_ATTEMPTS must be an integer"),
        ("LEDGER_TIMEOUT_SECONDS", "soon", "LEDGER_TIMEOUT_SECONDS must be a number"),
    ],
)
def test_invalid_values_are_rejected(
    clean_env: pytest.MonkeyPatch, name: str, value: str, message: str
) -> None:
    clean_env.setenv(name, value)
    with pytest.raises(ValueError, match=message):
        load_settings()


def test_empty_urls_mean_not_configured(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("DATABASE_URL", "   ")
    clean_env.setenv("REDIS_URL", "")
    settings = load_settings()
    assert settings.database_url is None
    assert settings.redis_url is None


@pytest.mark.parametrize("app_env", ["dev", "test", "prod"])
def test_exactly_one_env_flag_is_set(app_env: AppEnv) -> None:
    s = _make_settings(app_env)
    assert [s.is_dev, s.is_test, s.is_prod].count(True) == 1
    assert getattr(s, f"is_{app_env}") is True


def test_settings_is_frozen() -> None:
    s = _make_settings()
    with pytest.raises(AttributeError):
        s.ledger_network = "mainnet"  # type: ignore[misc]


# ---- ledger settings ----


def test_ledger_is_off_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("LEDGER_NODE_URL", "LEDGER_SIGNING_KEY", "LEDGER_NETWORK"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.ledger_configured is False
    assert settings.ledger_signing_key is None
    assert settings.ledger_network == "testnet"
    assert settings.ledger_confirmation_rounds == 3


def test_ledger_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_NODE_URL", "http://algod:4001")
    monkeypatch.setenv("LEDGER_NETWORK", "MAINNET")
    monkeypatch.setenv("LEDGER_SIGNING_KEY", "ab" * 32)
    monkeypatch.setenv("LEDGER_CONFIRMATION_ROUNDS", "5")
    monkeypatch.setenv("LEDGER_TIMEOUT_SECONDS", "2.5")
    settings = load_settings()
    assert settings.ledger_configured is True
    assert settings.ledger_network == "mainnet"
    assert settings.ledger_confirmation_rounds == 5
    assert settings.ledger_timeout_seconds == 2.5


def test_rejects_unknown_ledger_network(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_NETWORK", "devnet")
    with pytest.raises(ValueError, match="LEDGER_NETWORK must be testnet|mainnet"):
        load_settings()


def test_bad_signing_key_is_not_echoed(monkeypatch: pytest.MonkeyPatch) -> None:
    secret = "not-a-hex-seed-but-still-secret"
    monkeypatch.setenv("LEDGER_SIGNING_KEY", secret)
    with pytest.raises(ValueError) as excinfo:
        load_settings()
    assert secret not in str(excinfo.value)


def test_rejects_zero_confirmation_rounds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LEDGER_CONFIRMATION_ROUNDS", "0")
    with pytest.raises(ValueError, match="LEDGER_CONFIRMATION_ROUNDS must be >= 1"):
        load_settings()


def test_rejects_non_boolean_log_json(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_JSON", "sometimes")
    with pytest.raises(ValueError, match="LOG_JSON must be a boolean"):
        load_settings()


def test_settings_ledger_not_configured_without_node() -> None:
    assert _make_settings().ledger_configured is False
