import pytest

from psv_python_backend.services.oracle_config import (
    get_env_oracle_defaults,
    load_oracle_config,
    merge_oracle_config,
    save_oracle_config,
)


def test_env_oracle_defaults(monkeypatch):
    monkeypatch.setenv("PSV_ORACLE_MODE", "online")
    monkeypatch.setenv("PSV_ORACLE_BASE_URL", "http://localhost:1234")
    monkeypatch.setenv("PSV_ORACLE_CHAT_MODEL", "qwen2.5-7b-instruct")
    monkeypatch.setenv("PSV_ORACLE_JSON_MODE", "false")
    monkeypatch.setenv("PSV_ORACLE_TIMEOUT_SECONDS", "45")

    defaults = get_env_oracle_defaults()

    assert defaults["mode"] == "online"
    assert defaults["base_url"] == "http://localhost:1234"
    assert defaults["chat_model"] == "qwen2.5-7b-instruct"
    assert defaults["json_mode"] is False
    assert defaults["timeout_seconds"] == 45.0


def test_merge_oracle_config_sanitizes_values(monkeypatch):
    monkeypatch.setenv("PSV_ORACLE_MODE", "local")
    monkeypatch.setenv("PSV_ORACLE_TIMEOUT_SECONDS", "30")

    merged = merge_oracle_config({"mode": "invalid", "json_mode": "0", "timeout_seconds": "-5"})

    assert merged["mode"] == "local"
    assert merged["json_mode"] is False
    assert merged["timeout_seconds"] == 30.0


def test_merge_oracle_config_accepts_overrides(monkeypatch):
    monkeypatch.delenv("PSV_ORACLE_MODE", raising=False)

    merged = merge_oracle_config({"mode": " ONLINE ", "timeout_seconds": "12.5",
                                  "online_model": "claude-3-5-haiku-20241022"})

    assert merged["mode"] == "online"
    assert merged["timeout_seconds"] == 12.5
    assert merged["online_model"] == "claude-3-5-haiku-20241022"


@pytest.mark.asyncio
async def test_save_then_load_round_trip(db_session, monkeypatch):
    monkeypatch.setenv("PSV_ORACLE_MODE", "local")

    assert (await load_oracle_config(db_session))["mode"] == "local"

    await save_oracle_config(db_session, {"mode": "online"})
    await save_oracle_config(db_session, {"mode": "online", "timeout_seconds": 10})
    loaded = await load_oracle_config(db_session)

    assert loaded["mode"] == "online"
    assert loaded["timeout_seconds"] == 10.0


@pytest.mark.asyncio
async def test_save_rejects_non_object_payload(db_session):
    with pytest.raises(ValueError):
        await save_oracle_config(db_session, ["mode", "online"])
