"""Decide between the auto delete onboarding dialog, a passive notice, or nothing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from trolley.host import OnboardingVariant
from trolley.models.shopping import AutoDeleteSetting, OnboardingState
from trolley.storage import SettingsStore

logger = logging.getLogger(__name__)


class TriggerKind(str, Enum):
    PASSIVE_SYNC = "passive_sync"
    USER_OPENED_EXPIRED_ITEM = "user_opened_expired_item"
    MASS_DELETE_COMPLETED = "mass_delete_completed"
    EXPIRED_SWIPE_SETTLED = "expired_swipe_settled"


@dataclass(frozen=True)
class TriggerContext:
    """Event that may warrant an auto delete directive.

    ``expiry_driven`` only matters for ``MASS_DELETE_COMPLETED``.
    """

    kind: TriggerKind
    expiry_driven: bool = False

    @classmethod
    def passive_sync(cls) -> "TriggerContext":
        return cls(TriggerKind.PASSIVE_SYNC)

    @classmethod
    def user_opened_expired_item(cls) -> "TriggerContext":
        return cls(TriggerKind.USER_OPENED_EXPIRED_ITEM)

    @classmethod
    def mass_delete_completed(cls, expiry_driven: bool) -> "TriggerContext":
        return cls(TriggerKind.MASS_DELETE_COMPLETED, expiry_driven=expiry_driven)

    @classmethod
    def expired_swipe_settled(cls) -> "TriggerContext":
        return cls(TriggerKind.EXPIRED_SWIPE_SETTLED)


class PolicyAction(str, Enum):
    NONE = "none"
    PASSIVE_NOTICE = "passive_notice"
    ONBOARDING_DIALOG = "onboarding_dialog"
    EXPIRED_NOTICE = "expired_notice"


@dataclass(frozen=True)
class PolicyDecision:
    action: PolicyAction
    count: int = 0
    variant: Optional[OnboardingVariant] = None
    cancelable: bool = False

    @property
    def is_none(self) -> bool:
        return self.action is PolicyAction.NONE


NO_ACTION = PolicyDecision(PolicyAction.NONE)

# Returns True when the host accepted the directive.
Emitter = Callable[[PolicyDecision], bool]


class AutoDeletePolicy:
    """Auto delete decision table backed by the settings store.

    ``decide`` is side-effect free. ``evaluate`` hands the decision to an
    emitter and only commits the resulting state change (count reset or
    onboarding suppression) once the emitter reports the host accepted it.
    """

    def __init__(self, settings_store: SettingsStore) -> None:
        self._settings = settings_store

    def decide(self, trigger: TriggerContext) -> PolicyDecision:
        setting = self._settings.get_auto_delete_setting()
        onboarding = self._settings.get_onboarding_state()
        kind = trigger.kind

        if kind is TriggerKind.PASSIVE_SYNC:
            count = self._settings.get_auto_delete_count()
            if count > 0:
                return PolicyDecision(PolicyAction.PASSIVE_NOTICE, count=count)
            return NO_ACTION

        may_onboard = onboarding.may_show and setting is AutoDeleteSetting.OFF

        if kind is TriggerKind.USER_OPENED_EXPIRED_ITEM:
            if may_onboard:
                return PolicyDecision(
                    PolicyAction.ONBOARDING_DIALOG, variant=OnboardingVariant.INTERACT
                )
            return PolicyDecision(PolicyAction.EXPIRED_NOTICE)

        if kind is TriggerKind.MASS_DELETE_COMPLETED:
            if trigger.expiry_driven and may_onboard:
                return PolicyDecision(
                    PolicyAction.ONBOARDING_DIALOG, variant=OnboardingVariant.MASS_DELETE
                )
            return NO_ACTION

        if kind is TriggerKind.EXPIRED_SWIPE_SETTLED:
            if may_onboard:
                return PolicyDecision(
                    PolicyAction.ONBOARDING_DIALOG, variant=OnboardingVariant.INTERACT
                )
            return NO_ACTION

        raise ValueError(f"Unsupported trigger '{kind}'")

    def evaluate(self, trigger: TriggerContext, emit: Emitter) -> PolicyDecision:
        decision = self.decide(trigger)
        if decision.is_none:
            return decision

        logger.debug(
            "Auto delete decision trigger=%s action=%s",
            trigger.kind.value,
            decision.action.value,
        )
        if not emit(decision):
            logger.info("Auto delete %s not shown; state left unchanged", decision.action.value)
            return decision

        if decision.action is PolicyAction.PASSIVE_NOTICE:
            self._settings.reset_auto_delete_count()
        elif decision.action is PolicyAction.ONBOARDING_DIALOG:
            self._settings.set_onboarding_state(OnboardingState.DO_NOT_SHOW)
        return decision

    def note_expired_swipe(self) -> None:
        """Move onboarding from INIT to SHOW once an expired item was swiped away."""

        if self._settings.get_onboarding_state() is OnboardingState.INIT:
            self._settings.set_onboarding_state(OnboardingState.SHOW)


class AutoDeleteSettingsController:
    """Settings screen actions for the auto delete preference."""

    def __init__(self, settings_store: SettingsStore) -> None:
        self._settings = settings_store

    @property
    def setting(self) -> AutoDeleteSetting:
        return self._settings.get_auto_delete_setting()

    def toggle_auto_delete(self) -> AutoDeleteSetting:
        """Flip between OFF and IMMEDIATELY; the user has now seen the feature."""

        current = self._settings.get_auto_delete_setting()
        updated = (
            AutoDeleteSetting.IMMEDIATELY
            if current is AutoDeleteSetting.OFF
            else AutoDeleteSetting.OFF
        )
        self._settings.set_auto_delete_setting(updated)
        self._settings.set_onboarding_state(OnboardingState.DO_NOT_SHOW)
        logger.info("Auto delete toggled %s -> %s", current.value, updated.value)
        return updated

    def select_retention(self, setting: AutoDeleteSetting) -> AutoDeleteSetting:
        """Pick the retention period; anything but 7 or 30 days means immediately."""

        setting = AutoDeleteSetting(setting)
        if setting not in (AutoDeleteSetting.SEVEN_DAYS, AutoDeleteSetting.THIRTY_DAYS):
            setting = AutoDeleteSetting.IMMEDIATELY
        previous = self._settings.get_auto_delete_setting()
        self._settings.set_auto_delete_setting(setting)
        if previous is not setting:
            logger.info("Auto delete retention changed %s -> %s", previous.value, setting.value)
        return setting


__all__ = [
    "AutoDeletePolicy",
    "AutoDeleteSettingsController",
    "NO_ACTION",
    "PolicyAction",
    "PolicyDecision",
    "TriggerContext",
    "TriggerKind",
]
