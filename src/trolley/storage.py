"""Collaborator contracts for item storage and the settings store."""

from __future__ import annotations

import threading
from typing import Dict, List, Optional, Protocol, Sequence, Tuple
from uuid import uuid4

from trolley.errors import MissingBackingItem
from trolley.models.shopping import (
    AutoDeleteSetting,
    ItemKey,
    OnboardingState,
    ShoppingItem,
    Store,
    utcnow,
)

OrderEntry = Tuple[ItemKey, int, float]  # (item key, store id, position)

UNSET = object()


class ShoppingStorage(Protocol):
    """Persistence backend for shopping items."""

    def query_active_items(self) -> List[ShoppingItem]:
        """Return every item currently on the list."""

    def get_item(self, key: ItemKey) -> Optional[ShoppingItem]:
        """Return the active item for ``key`` or ``None``."""

    def persist_delete(self, key: ItemKey) -> None:
        """Remove one item; raises ``MissingBackingItem`` for unknown keys."""

    def persist_undo(self, item: ShoppingItem, position: float) -> ShoppingItem:
        """Restore a previously deleted item at the given ordering position."""

    def persist_bulk_delete(self, keys: Sequence[ItemKey]) -> int:
        """Remove several items at once and return how many were removed."""

    def persist_checked_state(self, key: ItemKey, checked: bool) -> ShoppingItem:
        """Store the checked flag of one item."""

    def persist_order(self, entries: Sequence[OrderEntry]) -> None:
        """Store the store assignment and ordering position of items."""

    def add_manual_items(self, titles: Sequence[str], store: Store) -> List[ShoppingItem]:
        """Create free-text items in ``store``."""

    def update_item_details(
        self,
        key: ItemKey,
        *,
        quantity: object = UNSET,
        quantity_unit: object = UNSET,
        note: object = UNSET,
    ) -> ShoppingItem:
        """Update quantity, unit and/or note of one item."""


class SettingsStore(Protocol):
    """Key/value store holding the auto delete preferences."""

    def get_auto_delete_setting(self) -> AutoDeleteSetting: ...

    def set_auto_delete_setting(self, value: AutoDeleteSetting) -> None: ...

    def get_onboarding_state(self) -> OnboardingState: ...

    def set_onboarding_state(self, value: OnboardingState) -> None: ...

    def get_auto_delete_count(self) -> int: ...

    def increment_auto_delete_count(self, by: int = 1) -> int: ...

    def reset_auto_delete_count(self) -> int: ...


class InMemoryShoppingStorage:
    """Dictionary backed storage used for development and tests."""

    def __init__(self, items: Sequence[ShoppingItem] = ()) -> None:
        self._lock = threading.Lock()
        self._active: Dict[ItemKey, ShoppingItem] = {}
        self._deleted: Dict[ItemKey, ShoppingItem] = {}
        self._next_id = 1
        for item in items:
            self._store(item)

    def _store(self, item: ShoppingItem) -> ShoppingItem:
        if item.id is None and item.manual_uuid is None:
            item = item.model_copy(update={"id": self._next_id})
        if item.id is not None:
            self._next_id = max(self._next_id, item.id + 1)
        self._active[item.key] = item
        return item

    def query_active_items(self) -> List[ShoppingItem]:
        with self._lock:
            return list(self._active.values())

    def get_item(self, key: ItemKey) -> Optional[ShoppingItem]:
        with self._lock:
            return self._active.get(key)

    def persist_delete(self, key: ItemKey) -> None:
        with self._lock:
            item = self._active.pop(key, None)
            if item is None:
                raise MissingBackingItem(key)
            self._deleted[key] = item

    def persist_undo(self, item: ShoppingItem, position: float) -> ShoppingItem:
        with self._lock:
            self._deleted.pop(item.key, None)
            restored = item.model_copy(update={"position": position})
            self._active[restored.key] = restored
            return restored

    def persist_bulk_delete(self, keys: Sequence[ItemKey]) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                item = self._active.pop(key, None)
                if item is not None:
                    self._deleted[key] = item
                    removed += 1
        return removed

    def persist_checked_state(self, key: ItemKey, checked: bool) -> ShoppingItem:
        return self._update(key, {"is_checked": checked})

    def persist_order(self, entries: Sequence[OrderEntry]) -> None:
        with self._lock:
            for key, store_id, position in entries:
                item = self._active.get(key)
                if item is None:
                    continue
                store = item.store
                if store.id != store_id:
                    store = self._known_store(store_id) or Store(id=store_id)
                self._active[key] = item.model_copy(update={"store": store, "position": position})

    def _known_store(self, store_id: int) -> Optional[Store]:
        for item in self._active.values():
            if item.store.id == store_id:
                return item.store
        return None

    def add_manual_items(self, titles: Sequence[str], store: Store) -> List[ShoppingItem]:
        with self._lock:
            base = max((item.position for item in self._active.values()), default=0.0)
            created = []
            for offset, title in enumerate(titles, start=1):
                item = ShoppingItem(
                    id=self._next_id,
                    manual_uuid=uuid4(),
                    store=store,
                    title=title,
                    position=base + offset,
                    added_at=utcnow(),
                )
                self._next_id += 1
                created.append(self._store(item))
            return created

    def update_item_details(
        self,
        key: ItemKey,
        *,
        quantity: object = UNSET,
        quantity_unit: object = UNSET,
        note: object = UNSET,
    ) -> ShoppingItem:
        changes: Dict[str, object] = {}
        if quantity is not UNSET:
            changes["quantity"] = quantity
        if quantity_unit is not UNSET:
            changes["quantity_unit"] = quantity_unit
        if note is not UNSET:
            changes["note"] = note
        return self._update(key, changes)

    def _update(self, key: ItemKey, changes: Dict[str, object]) -> ShoppingItem:
        with self._lock:
            item = self._active.get(key)
            if item is None:
                raise MissingBackingItem(key)
            updated = item.model_copy(update=changes)
            self._active[key] = updated
            return updated


class InMemorySettingsStore:
    """Settings store kept in process memory."""

    def __init__(
        self,
        setting: AutoDeleteSetting = AutoDeleteSetting.OFF,
        onboarding: OnboardingState = OnboardingState.INIT,
        count: int = 0,
    ) -> None:
        self._setting = setting
        self._onboarding = onboarding
        self._count = count

    def get_auto_delete_setting(self) -> AutoDeleteSetting:
        return self._setting

    def set_auto_delete_setting(self, value: AutoDeleteSetting) -> None:
        self._setting = AutoDeleteSetting(value)

    def get_onboarding_state(self) -> OnboardingState:
        return self._onboarding

    def set_onboarding_state(self, value: OnboardingState) -> None:
        self._onboarding = OnboardingState(value)

    def get_auto_delete_count(self) -> int:
        return self._count

    def increment_auto_delete_count(self, by: int = 1) -> int:
        self._count += by
        return self._count

    def reset_auto_delete_count(self) -> int:
        self._count = 0
        return self._count


__all__ = [
    "InMemorySettingsStore",
    "InMemoryShoppingStorage",
    "OrderEntry",
    "SettingsStore",
    "ShoppingStorage",
    "UNSET",
]
