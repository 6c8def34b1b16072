from shared.runtime_settings import (
    DEFAULT_DEV_CORS_ALLOW_ORIGINS,
    env_flag,
    load_runtime_settings,
    parse_cors_allowlist,
)


def test_env_flag_truthy_and_falsey() -> None:
    assert env_flag("X", default=False, environ={"X": "true"}) is True
    assert env_flag("X", default=True, environ={"X": "0"}) is False
    assert env_flag("X", default=True, environ={}) is True


def test_parse_cors_allowlist_uses_fallback_when_empty() -> None:
    assert parse_cors_allowlist("") == list(DEFAULT_DEV_CORS_ALLOW_ORIGINS)


def test_parse_cors_allowlist_parses_csv_values() -> None:
    raw = " http://localhost:3000, https://example.com "
    assert parse_cors_allowlist(raw) == ["http://localhost:3000", "https://example.com"]


def test_load_runtime_settings_reads_expected_keys() -> None:
    settings = load_runtime_settings(
        {
            "CODEX_DEV_MODE": "false",
            "CODEX_CORS_ALLOW_ORIGINS": "https://app.example.com",
            "CODEX_HOST": "0.0.0.0",
            "CODEX_PORT": "9001",
        }
    )
    assert settings.dev_mode is False
    assert settings.cors_allow_origins == ["https://app.example.com"]
    assert settings.host == "0.0.0.0"
    assert settings.port == 9001


def test_load_runtime_settings_defaults() -> None:
    settings = load_runtime_settings({"CODEX_PORT": "not-a-port"})
    assert settings.dev_mode is True
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000


def test_out_of_range_port_falls_back() -> None:
    assert load_runtime_settings({"CODEX_PORT": "70000"}).port == 8000


def test_wildcard_origin_is_detected() -> None:
    settings = load_runtime_settings({"CODEX_CORS_ALLOW_ORIGINS": "*", "CODEX_PORT": "9000"})
    assert settings.allows_any_origin is True
    assert settings.api_base_url == "http://127.0.0.1:9000"
