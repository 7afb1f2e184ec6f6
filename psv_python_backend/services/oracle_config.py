"""Scoring-oracle configuration: environment defaults plus DB overrides."""
import logging
import os
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from psv_python_backend.models import AppSetting

logger = logging.getLogger(__name__)

ORACLE_CONFIG_KEY = "oracle_config"
ORACLE_MODES = {"local", "online"}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    return value_str in {"1", "true", "yes", "on"}


def get_env_oracle_defaults() -> Dict[str, Any]:
    return {
        "mode": os.getenv("PSV_ORACLE_MODE", "local"),
        "base_url": os.getenv("PSV_ORACLE_BASE_URL", "http://localhost:1234"),
        "chat_model": os.getenv("PSV_ORACLE_CHAT_MODEL", "deepseek-chat"),
        "json_mode": _to_bool(os.getenv("PSV_ORACLE_JSON_MODE", "true")),
        "timeout_seconds": float(os.getenv("PSV_ORACLE_TIMEOUT_SECONDS", "30")),
    }


def merge_oracle_config(overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    config = get_env_oracle_defaults()
    if not overrides:
        return config

    sanitized = {}
    for key, value in overrides.items():
        if key == "json_mode":
            sanitized[key] = _to_bool(value)
        elif key == "mode":
            normalized = str(value).strip().lower()
            sanitized[key] = normalized if normalized in ORACLE_MODES else config["mode"]
        elif key == "timeout_seconds":
            try:
                timeout = float(value)
            except (TypeError, ValueError):
                continue
            if timeout > 0:
                sanitized[key] = timeout
        else:
            sanitized[key] = value

    config.update(sanitized)
    return config


async def load_oracle_config(session: Optional[AsyncSession] = None) -> Dict[str, Any]:
    """Env defaults merged with the ``oracle_config`` app setting, if any."""
    if session is None:
        return get_env_oracle_defaults()

    result = await session.execute(
        select(AppSetting).where(AppSetting.key == ORACLE_CONFIG_KEY)
    )
    setting = result.scalar_one_or_none()
    overrides = setting.value if setting else {}
    return merge_oracle_config(overrides)


async def save_oracle_config(session: AsyncSession, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Persist oracle overrides and return the merged config."""
    if not isinstance(payload, dict):
        raise ValueError("Payload must be a JSON object.")

    stmt = select(AppSetting).where(AppSetting.key == ORACLE_CONFIG_KEY)
    existing = (await session.execute(stmt)).scalar_one_or_none()
    if existing:
        existing.value = payload
    else:
        session.add(AppSetting(key=ORACLE_CONFIG_KEY, value=payload))
    await session.commit()
    logger.info("Saved oracle config overrides: %s", sorted(payload))
    return merge_oracle_config(payload)
