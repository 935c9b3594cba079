"""Key/value persistence for the auto delete preferences."""

from __future__ import annotations

import json
import logging
from typing import Optional

from sqlalchemy.orm import Session

from trolley.models.shopping import AutoDeleteSetting, OnboardingState

from .models import SettingORM
from .repository import session_scope

logger = logging.getLogger(__name__)

AUTO_DELETE_SETTING_KEY = "auto_delete_setting"
ONBOARDING_STATE_KEY = "auto_delete_onboarding"
AUTO_DELETE_COUNT_KEY = "auto_delete_count"


def _encode_value(value) -> str:
    return json.dumps(value)


def _decode_value(value: str):
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _read(session: Session, key: str):
    row = session.get(SettingORM, key)
    if row is None:
        return None
    return _decode_value(row.value)


def get_value(key: str):
    with session_scope() as session:
        return _read(session, key)


def set_value(key: str, value) -> None:
    logger.debug("Persisting setting key=%s value=%s", key, value)
    with session_scope() as session:
        session.merge(SettingORM(key=key, value=_encode_value(value)))


class SqlSettingsStore:
    """``SettingsStore`` implementation over the ``settings`` table.

    Unknown or malformed stored values fall back to the defaults (OFF, INIT, 0).
    """

    def get_auto_delete_setting(self) -> AutoDeleteSetting:
        raw = get_value(AUTO_DELETE_SETTING_KEY)
        try:
            return AutoDeleteSetting(raw) if raw is not None else AutoDeleteSetting.OFF
        except ValueError:
            logger.warning("Ignoring unknown auto delete setting %r", raw)
            return AutoDeleteSetting.OFF

    def set_auto_delete_setting(self, value: AutoDeleteSetting) -> None:
        set_value(AUTO_DELETE_SETTING_KEY, AutoDeleteSetting(value).value)

    def get_onboarding_state(self) -> OnboardingState:
        raw = get_value(ONBOARDING_STATE_KEY)
        try:
            return OnboardingState(raw) if raw is not None else OnboardingState.INIT
        except ValueError:
            logger.warning("Ignoring unknown onboarding state %r", raw)
            return OnboardingState.INIT

    def set_onboarding_state(self, value: OnboardingState) -> None:
        set_value(ONBOARDING_STATE_KEY, OnboardingState(value).value)

    def get_auto_delete_count(self) -> int:
        return _as_count(get_value(AUTO_DELETE_COUNT_KEY))

    def increment_auto_delete_count(self, by: int = 1) -> int:
        with session_scope() as session:
            total = _as_count(_read(session, AUTO_DELETE_COUNT_KEY)) + by
            session.merge(SettingORM(key=AUTO_DELETE_COUNT_KEY, value=_encode_value(total)))
        return total

    def reset_auto_delete_count(self) -> int:
        set_value(AUTO_DELETE_COUNT_KEY, 0)
        return 0


def _as_count(raw: Optional[object]) -> int:
    if isinstance(raw, bool) or not isinstance(raw, int):
        return 0
    return max(raw, 0)


__all__ = [
    "AUTO_DELETE_COUNT_KEY",
    "AUTO_DELETE_SETTING_KEY",
    "ONBOARDING_STATE_KEY",
    "SqlSettingsStore",
    "get_value",
    "set_value",
]
