"""Presentation host contract and a recording implementation."""

from __future__ import annotations

import threading
from enum import Enum
from typing import List, Optional, Protocol

from pydantic import BaseModel, ConfigDict, Field

from trolley.errors import PresentationUnavailable
from trolley.models.rows import Row, describe
from trolley.models.shopping import ItemStatus, ShoppingItem


class OnboardingVariant(str, Enum):
    """What caused the auto delete onboarding dialog to appear."""

    INTERACT = "interact"
    MASS_DELETE = "mass_delete"


class DirectiveKind(str, Enum):
    UNDO_AFFORDANCE = "undo_affordance"
    ONBOARDING_DIALOG = "onboarding_dialog"
    PASSIVE_NOTICE = "passive_notice"
    EMPTY_LIST_NOTICE = "empty_list_notice"
    ITEM_NOTICE = "item_notice"
    ERROR_NOTICE = "error_notice"
    DELETE_CONFIRMATION = "delete_confirmation"
    OPEN_ITEM = "open_item"
    MASS_DELETE_COMPLETED = "mass_delete_completed"
    REFRESH_ROW = "refresh_row"
    REFRESH_RANGE = "refresh_range"
    ROWS_INSERTED = "rows_inserted"
    ROWS_REMOVED = "rows_removed"
    RELOAD = "reload"
    FOCUS_ROW = "focus_row"


# Directives that interrupt the user; everything else only updates the view.
USER_FACING = frozenset(
    {
        DirectiveKind.UNDO_AFFORDANCE,
        DirectiveKind.ONBOARDING_DIALOG,
        DirectiveKind.PASSIVE_NOTICE,
        DirectiveKind.EMPTY_LIST_NOTICE,
        DirectiveKind.ITEM_NOTICE,
        DirectiveKind.ERROR_NOTICE,
        DirectiveKind.DELETE_CONFIRMATION,
    }
)


class Directive(BaseModel):
    """Instruction recorded for (or serialized to) the presentation layer."""

    kind: DirectiveKind
    index: Optional[int] = Field(default=None)
    length: Optional[int] = Field(default=None)
    count: Optional[int] = Field(default=None)
    variant: Optional[OnboardingVariant] = Field(default=None)
    cancelable: Optional[bool] = Field(default=None)
    status: Optional[ItemStatus] = Field(default=None)
    item_id: Optional[int] = Field(default=None)
    label: Optional[str] = Field(default=None)

    model_config = ConfigDict(frozen=True)


class PresentationHost(Protocol):
    """Receiver of engine directives.

    User-facing methods may raise ``PresentationUnavailable`` when the screen
    cannot show anything; the engine drops the directive in that case.
    """

    def show_undo_affordance(self, row: Row) -> None: ...

    def show_onboarding_dialog(self, variant: OnboardingVariant, cancelable: bool) -> None: ...

    def show_passive_notice(self, count: int) -> None: ...

    def show_empty_list_notice(self) -> None: ...

    def show_item_notice(self, status: ItemStatus) -> None: ...

    def show_error_notice(self) -> None: ...

    def show_delete_confirmation(self) -> None: ...

    def open_item(self, item: ShoppingItem) -> None: ...

    def mass_delete_completed(self) -> None: ...

    def refresh_row(self, index: int) -> None: ...

    def refresh_range(self, start: int, length: int) -> None: ...

    def rows_inserted(self, start: int, length: int) -> None: ...

    def rows_removed(self, start: int, length: int) -> None: ...

    def reload(self) -> None: ...

    def focus_row(self, index: int) -> None: ...


class RecordingHost:
    """Host that records directives instead of drawing anything.

    Setting ``available`` to false makes every user-facing directive raise
    ``PresentationUnavailable``, mimicking a torn-down screen.
    """

    def __init__(self) -> None:
        self.directives: List[Directive] = []
        self.available = True
        self._lock = threading.Lock()

    def drain(self) -> List[Directive]:
        with self._lock:
            directives, self.directives = self.directives, []
        return directives

    def of_kind(self, kind: DirectiveKind) -> List[Directive]:
        with self._lock:
            return [directive for directive in self.directives if directive.kind is kind]

    def _record(self, kind: DirectiveKind, **fields: object) -> None:
        if kind in USER_FACING and not self.available:
            raise PresentationUnavailable(f"Cannot show {kind.value}")
        directive = Directive(kind=kind, **fields)
        with self._lock:
            self.directives.append(directive)

    def show_undo_affordance(self, row: Row) -> None:
        self._record(DirectiveKind.UNDO_AFFORDANCE, label=describe(row).strip())

    def show_onboarding_dialog(self, variant: OnboardingVariant, cancelable: bool) -> None:
        self._record(DirectiveKind.ONBOARDING_DIALOG, variant=variant, cancelable=cancelable)

    def show_passive_notice(self, count: int) -> None:
        self._record(DirectiveKind.PASSIVE_NOTICE, count=count)

    def show_empty_list_notice(self) -> None:
        self._record(DirectiveKind.EMPTY_LIST_NOTICE)

    def show_item_notice(self, status: ItemStatus) -> None:
        self._record(DirectiveKind.ITEM_NOTICE, status=status)

    def show_error_notice(self) -> None:
        self._record(DirectiveKind.ERROR_NOTICE)

    def show_delete_confirmation(self) -> None:
        self._record(DirectiveKind.DELETE_CONFIRMATION)

    def open_item(self, item: ShoppingItem) -> None:
        self._record(DirectiveKind.OPEN_ITEM, item_id=item.id, label=item.title)

    def mass_delete_completed(self) -> None:
        self._record(DirectiveKind.MASS_DELETE_COMPLETED)

    def refresh_row(self, index: int) -> None:
        self._record(DirectiveKind.REFRESH_ROW, index=index)

    def refresh_range(self, start: int, length: int) -> None:
        self._record(DirectiveKind.REFRESH_RANGE, index=start, length=length)

    def rows_inserted(self, start: int, length: int) -> None:
        self._record(DirectiveKind.ROWS_INSERTED, index=start, length=length)

    def rows_removed(self, start: int, length: int) -> None:
        self._record(DirectiveKind.ROWS_REMOVED, index=start, length=length)

    def reload(self) -> None:
        self._record(DirectiveKind.RELOAD)

    def focus_row(self, index: int) -> None:
        self._record(DirectiveKind.FOCUS_ROW, index=index)


__all__ = [
    "Directive",
    "DirectiveKind",
    "OnboardingVariant",
    "PresentationHost",
    "RecordingHost",
    "USER_FACING",
]
