"""Auto delete decisions and the expiry sweep."""

from trolley.policy.auto_delete import (
    AutoDeletePolicy,
    AutoDeleteSettingsController,
    PolicyAction,
    PolicyDecision,
    TriggerContext,
    TriggerKind,
)
from trolley.policy.sweeper import AutoDeleteSweeper

__all__ = [
    "AutoDeletePolicy",
    "AutoDeleteSettingsController",
    "AutoDeleteSweeper",
    "PolicyAction",
    "PolicyDecision",
    "TriggerContext",
    "TriggerKind",
]
