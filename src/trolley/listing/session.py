"""Per-list session state shared by the engine components."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set
from uuid import uuid4

from trolley.models.shopping import ItemKey, ShoppingItem


@dataclass
class ListSession:
    """Mutable flags scoped to one list's lifetime.

    ``items_to_animate`` holds rows whose insert animation has not finished
    yet; while it is non-empty regrouping must not collapse into a full reload.
    ``deferred_actions`` holds structural changes requested mid drag or swipe,
    replayed in order once the gesture ends.
    """

    session_id: str = field(default_factory=lambda: uuid4().hex)
    is_dragging: bool = False
    is_swiping: bool = False
    is_undoing: bool = False
    is_hidden: bool = False
    items_to_animate: Set[ItemKey] = field(default_factory=set)
    deferred_sync: Optional[List[ShoppingItem]] = None
    deferred_actions: List[Callable[[], None]] = field(default_factory=list)

    @property
    def is_modify_disabled(self) -> bool:
        return self.is_dragging or self.is_swiping

    @property
    def is_animating(self) -> bool:
        return self.is_undoing or bool(self.items_to_animate)

    def defer_sync(self, items: List[ShoppingItem]) -> None:
        # Newer data always wins over an older parked sync.
        self.deferred_sync = list(items)

    def take_deferred_sync(self) -> Optional[List[ShoppingItem]]:
        items, self.deferred_sync = self.deferred_sync, None
        return items

    def defer_action(self, action: Callable[[], None]) -> None:
        self.deferred_actions.append(action)

    def take_deferred_actions(self) -> List[Callable[[], None]]:
        actions, self.deferred_actions = self.deferred_actions, []
        return actions

    def reset_flags(self) -> None:
        self.is_dragging = False
        self.is_swiping = False
        self.is_undoing = False
        self.items_to_animate.clear()


__all__ = ["ListSession"]
