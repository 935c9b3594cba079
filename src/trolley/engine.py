"""Host-facing facade that drives one shopping list session.

Every public method is serialized behind a re-entrant lock so row mutations
happen one at a time, the way a UI thread would apply them. Regrouping for
syncs and refreshes may run on an executor; results come back through
``ui_dispatch`` and are discarded if a newer regroup was requested meanwhile.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from concurrent.futures import Executor, Future
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple, Union

from trolley import metrics
from trolley.config import Settings, get_settings
from trolley.errors import ConcurrentMutationConflict, MissingBackingItem, PresentationUnavailable
from trolley.host import DirectiveKind, PresentationHost
from trolley.listing.grouped_list import GroupedList, RowDiff, group_items
from trolley.listing.mass_delete import (
    MIN_ROWS_FOR_MASS_DELETE,
    MassDeleteOutcome,
    classify,
    requires_confirmation,
    snapshot_outcome,
)
from trolley.listing.session import ListSession
from trolley.listing.undo import DeleteUndoController, PendingUndo, UndoResult
from trolley.logging_utils import SessionLoggerAdapter
from trolley.models.rows import HeaderRow, ItemRow, ManualItemRow, Row, row_for_item
from trolley.models.shopping import (
    MAX_MANUAL_TITLE_LENGTH,
    DeleteType,
    ItemKey,
    ItemStatus,
    ShoppingItem,
    clamp_quantity,
    my_list_store,
    utcnow,
)
from trolley.policy.auto_delete import (
    AutoDeletePolicy,
    PolicyAction,
    PolicyDecision,
    TriggerContext,
)
from trolley.storage import UNSET, OrderEntry, SettingsStore, ShoppingStorage

logger = logging.getLogger(__name__)

UiDispatch = Callable[[Callable[[], None]], None]


def _call_now(callback: Callable[[], None]) -> None:
    callback()


def _serialized(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper


def normalize_titles(titles: Sequence[str]) -> List[str]:
    """Trim titles, skip blank ones and cap their length."""

    cleaned = []
    for title in titles:
        stripped = (title or "").strip()
        if stripped:
            cleaned.append(stripped[:MAX_MANUAL_TITLE_LENGTH])
    return cleaned


def parse_quantity(value: Union[int, str, None]) -> int:
    """Interpret quantity input; empty text means unset (0)."""

    if value is None:
        return 0
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        value = int(text)
    return clamp_quantity(int(value))


class ShoppingListEngine:
    """Owns the grouped rows of one list and reacts to host events."""

    def __init__(
        self,
        storage: ShoppingStorage,
        settings_store: SettingsStore,
        host: PresentationHost,
        *,
        settings: Optional[Settings] = None,
        session: Optional[ListSession] = None,
        executor: Optional[Executor] = None,
        ui_dispatch: UiDispatch = _call_now,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = settings or get_settings()
        self._storage = storage
        self._settings_store = settings_store
        self._host = host
        self._session = session or ListSession()
        self._rows = GroupedList(my_list_first=settings.my_list_first)
        self._undo = DeleteUndoController(
            self._rows,
            storage,
            timeout=settings.undo_timeout_seconds,
            clock=clock,
        )
        self._policy = AutoDeletePolicy(settings_store)
        self._executor = executor
        self._ui_dispatch = ui_dispatch
        self._my_list_first = settings.my_list_first
        self._lock = threading.RLock()
        self._generation = 0
        self._pending_mass_delete: Optional[DeleteType] = None
        self._log = SessionLoggerAdapter(logger, {"session_id": self._session.session_id})

    # ---------- read accessors ----------

    @property
    def rows(self) -> GroupedList:
        return self._rows

    @property
    def session(self) -> ListSession:
        return self._session

    @property
    def undo_controller(self) -> DeleteUndoController:
        return self._undo

    @property
    def pending_mass_delete(self) -> Optional[DeleteType]:
        return self._pending_mass_delete

    def snapshot(self) -> List[Row]:
        with self._lock:
            return list(self._rows.snapshot())

    # ---------- swipe delete / undo ----------

    @_serialized
    def on_swipe_started(self) -> None:
        self._tick()
        self._session.is_swiping = True

    @_serialized
    def on_swipe_cancelled(self) -> None:
        self._session.is_swiping = False
        self._apply_deferred_sync()

    @_serialized
    def on_swipe_delete(self, index: int) -> Optional[PendingUndo]:
        """Remove the row at ``index`` and offer undo for it."""

        self._tick()
        self._settle(self._undo.confirm())
        try:
            row = self._rows.row_at(index)
            collapses = self._rows.header_collapses_on_removal(index)
            pending = self._undo.delete(index)
        finally:
            self._session.is_swiping = False
        start, length = (index - 1, 2) if collapses else (index, 1)

        self._host.rows_removed(start, length)
        if pending is None:
            self._log.warning("Dropped row %s with no backing item", index)
        else:
            if pending.was_expired:
                self._policy.note_expired_swipe()
            self._emit(DirectiveKind.UNDO_AFFORDANCE, lambda: self._host.show_undo_affordance(row))
            self._log.debug("Swipe deleted index=%s header_removed=%s", index, collapses)
        self._apply_deferred_sync()
        return pending

    @_serialized
    def on_undo_requested(self) -> UndoResult:
        """Restore the pending swipe delete and focus the restored row."""

        self._tick()
        self._session.is_undoing = True
        try:
            result = self._undo.undo()
        finally:
            self._session.is_undoing = False

        if result.diff is not None:
            self._apply_diff(result.diff)
        elif result.header_restored:
            self._host.rows_inserted(result.index - 1, 2)
        else:
            self._host.rows_inserted(result.index, 1)

        if result.index is not None:
            restored = self._rows.row_at(result.index)
            if isinstance(restored, (ItemRow, ManualItemRow)):
                self._session.items_to_animate.add(restored.shopping_item.key)
            self._host.focus_row(result.index)
        return result

    @_serialized
    def on_undo_dismissed(self) -> Optional[PendingUndo]:
        """The undo affordance went away without undo; the delete stands."""

        pending = self._undo.confirm()
        self._settle(pending)
        return pending

    # ---------- mass delete ----------

    @_serialized
    def on_mass_delete_requested(self, delete_type: DeleteType) -> Optional[MassDeleteOutcome]:
        self._tick()
        delete_type = DeleteType(delete_type)
        if self._rows.count < MIN_ROWS_FOR_MASS_DELETE:
            self._emit(DirectiveKind.EMPTY_LIST_NOTICE, self._host.show_empty_list_notice)
            return None
        if requires_confirmation(delete_type):
            self._pending_mass_delete = delete_type
            self._emit(DirectiveKind.DELETE_CONFIRMATION, self._host.show_delete_confirmation)
            return None
        return self._perform_mass_delete(delete_type)

    @_serialized
    def on_mass_delete_confirmed(self) -> Optional[MassDeleteOutcome]:
        delete_type, self._pending_mass_delete = self._pending_mass_delete, None
        if delete_type is None:
            self._log.warning("Mass delete confirmed with nothing pending")
            return None
        return self._perform_mass_delete(delete_type)

    @_serialized
    def on_mass_delete_cancelled(self) -> None:
        self._pending_mass_delete = None

    def _perform_mass_delete(self, delete_type: DeleteType) -> Optional[MassDeleteOutcome]:
        if self._session.is_modify_disabled:
            self._park("mass delete", lambda: self._perform_mass_delete(delete_type))
            return None
        self._settle(self._undo.confirm())
        now = utcnow()
        selected = classify(delete_type, self._rows.snapshot(), now)
        if selected.is_empty:
            self._log.debug("No rows matched delete_type=%s", delete_type.value)
            return None

        outcome = snapshot_outcome(delete_type, selected, now)
        persisted = self._storage.persist_bulk_delete(selected.keys)
        self._rebuild_now(animating=self._session.is_animating)
        metrics.MASS_DELETES.labels(delete_type=delete_type.value).inc()
        self._log.info(
            "Mass deleted %s rows delete_type=%s expiry_driven=%s",
            persisted,
            delete_type.value,
            outcome.was_expiry_driven,
        )

        self._emit(DirectiveKind.MASS_DELETE_COMPLETED, self._host.mass_delete_completed)
        if not self._session.is_hidden:
            self._policy.evaluate(
                TriggerContext.mass_delete_completed(outcome.was_expiry_driven),
                self._emit_decision,
            )
        return replace(outcome, persisted_count=persisted)

    # ---------- dragging ----------

    @_serialized
    def on_drag_started(self) -> None:
        self._tick()
        self._settle(self._undo.confirm())
        self._session.is_dragging = True

    @_serialized
    def on_drag_move(self, from_index: int, to_index: int) -> int:
        """Move one row; returns the destination actually used.

        Destinations are clamped so a row never lands before the first header
        or after the footer.
        """

        row = self._rows.row_at(from_index)
        if not row.is_removable:
            raise ValueError(f"Row at index {from_index} ({row.kind.value}) cannot be dragged")
        destination = max(1, min(to_index, self._rows.count - 2))
        if destination != from_index:
            self._rows.move_row(from_index, destination)
        return destination

    @_serialized
    def on_drag_move_completed(self, from_index: int) -> Optional[int]:
        """Drop the header the dragged row may have left empty at ``from_index``."""

        removed = self._rows.remove_header_if_needed(from_index)
        if removed is not None:
            self._host.rows_removed(removed, 1)
        return removed

    @_serialized
    def on_drag_ended(self) -> None:
        self._session.is_dragging = False
        entries = self._order_entries()
        if entries:
            self._storage.persist_order(entries)
        deferred = self._session.take_deferred_sync()
        # A parked sync predates the new order; storage now holds both.
        self._rebuild_now(animating=deferred is None or self._session.is_animating)
        if deferred is not None:
            self._evaluate_passive()
        self._replay_deferred_actions()

    def _order_entries(self) -> List[OrderEntry]:
        entries: List[OrderEntry] = []
        store_id: Optional[int] = None
        ordinal = 0
        for row in self._rows:
            if isinstance(row, HeaderRow):
                store_id = row.store.id
                ordinal = 0
            elif isinstance(row, (ItemRow, ManualItemRow)) and store_id is not None:
                ordinal += 1
                entries.append((row.shopping_item.key, store_id, float(ordinal)))
        return entries

    # ---------- sync / refresh ----------

    @_serialized
    def on_sync_received(self, items: Sequence[ShoppingItem]) -> Future:
        """Regroup freshly synced items; parked while dragging or swiping."""

        self._tick()
        if self._session.is_modify_disabled:
            self._session.defer_sync(list(items))
            self._log.info(
                "Deferred sync of %s items: %s",
                len(items),
                ConcurrentMutationConflict("list is being dragged or swiped"),
            )
            future: Future = Future()
            future.set_result(None)
            return future
        return self._schedule_rebuild(list(items))

    @_serialized
    def refresh(self) -> Future:
        """Reload rows from storage; a full reload unless an animation is running."""

        self._tick()
        return self._schedule_rebuild(None, force_reload=True)

    def _schedule_rebuild(
        self, items: Optional[List[ShoppingItem]], *, force_reload: bool = False
    ) -> Future:
        self._generation += 1
        generation = self._generation
        result: Future = Future()

        def regroup() -> List[Row]:
            source = items if items is not None else self._storage.query_active_items()
            return group_items(source, my_list_first=self._my_list_first)

        def deliver(rows: List[Row]) -> None:
            with self._lock:
                if generation != self._generation:
                    self._log.debug("Discarding stale regroup generation=%s", generation)
                    result.set_result(None)
                    return
                if self._session.is_modify_disabled:
                    self._session.defer_sync([r.shopping_item for r in rows if r.is_removable])
                    result.set_result(None)
                    return
                animating = self._session.is_animating
                diff = self._rows.apply_rows(rows, animating=animating)
                if force_reload and not animating:
                    self._host.reload()
                else:
                    self._apply_diff(diff)
                self._evaluate_passive()
                result.set_result(diff)

        def report_failure() -> None:
            with self._lock:
                self._emit(DirectiveKind.ERROR_NOTICE, self._host.show_error_notice)

        def on_done(task: Future) -> None:
            error = task.exception()
            if error is not None:
                self._log.error("Regrouping rows failed: %s", error)
                self._ui_dispatch(report_failure)
                result.set_exception(error)
                return
            rows = task.result()
            self._ui_dispatch(lambda: deliver(rows))

        if self._executor is None:
            task: Future = Future()
            try:
                task.set_result(regroup())
            except Exception as exc:  # noqa: BLE001 - surfaced through the future
                task.set_exception(exc)
            on_done(task)
        else:
            self._executor.submit(regroup).add_done_callback(on_done)
        return result

    def _rebuild_now(self, *, animating: bool) -> RowDiff:
        self._generation += 1
        diff = self._rows.rebuild(self._storage.query_active_items(), animating=animating)
        self._apply_diff(diff)
        return diff

    def _apply_deferred_sync(self) -> None:
        if self._session.is_modify_disabled:
            return
        deferred = self._session.take_deferred_sync()
        if deferred is not None:
            self._schedule_rebuild(deferred)
        self._replay_deferred_actions()

    def _park(self, name: str, action: Callable[[], None]) -> None:
        self._session.defer_action(action)
        self._log.info(
            "Deferred %s: %s",
            name,
            ConcurrentMutationConflict("list is being dragged or swiped"),
        )

    def _replay_deferred_actions(self) -> None:
        for action in self._session.take_deferred_actions():
            action()

    # ---------- item interactions ----------

    @_serialized
    def on_item_opened(self, item_id: int) -> ItemStatus:
        """Open an item, or explain why it cannot be opened."""

        self._tick()
        index, item = self._locate(("id", item_id))
        status = item.status()
        if status is ItemStatus.NONE:
            self._settle(self._undo.confirm())
            self._emit(DirectiveKind.OPEN_ITEM, lambda: self._host.open_item(item))
        elif status is ItemStatus.EXPIRED:
            self._policy.evaluate(TriggerContext.user_opened_expired_item(), self._emit_decision)
        else:
            self._emit(DirectiveKind.ITEM_NOTICE, lambda: self._host.show_item_notice(status))
        self._log.debug("Opened item index=%s status=%s", index, status.value)
        return status

    @_serialized
    def on_item_checked(self, item_id: int, checked: bool) -> Optional[ShoppingItem]:
        self._tick()
        index, item = self._locate(("id", item_id))
        try:
            updated = self._storage.persist_checked_state(item.key, checked)
        except MissingBackingItem:
            self._drop_row(index)
            return None
        self._rows.replace_row(index, row_for_item(updated))
        self._host.refresh_row(index)
        return updated

    @_serialized
    def add_manual_items(self, titles: Sequence[str]) -> List[ShoppingItem]:
        """Add free-text items to the My List group."""

        self._tick()
        cleaned = normalize_titles(titles)
        if not cleaned:
            return []
        created = self._storage.add_manual_items(cleaned, my_list_store())
        self._session.items_to_animate.update(item.key for item in created)
        if self._session.is_modify_disabled:
            self._park("manual add", lambda: self._rebuild_now(animating=True))
        else:
            self._rebuild_now(animating=True)
        self._log.info("Added %s manual items", len(created))
        return created

    @_serialized
    def edit_item_quantity(
        self,
        item_id: int,
        quantity: Union[int, str, None],
        quantity_unit: object = UNSET,
    ) -> ShoppingItem:
        index, item = self._locate(("id", item_id))
        value = parse_quantity(quantity)
        changes = {}
        if value != item.quantity:
            changes["quantity"] = value
        if quantity_unit is not UNSET and quantity_unit != item.quantity_unit:
            changes["quantity_unit"] = quantity_unit
        if not changes:
            return item
        return self._update_details(index, item, changes)

    @_serialized
    def edit_item_note(self, item_id: int, note: Optional[str]) -> ShoppingItem:
        index, item = self._locate(("id", item_id))
        cleaned = (note or "").strip() or None
        if cleaned == item.note:
            return item
        return self._update_details(index, item, {"note": cleaned})

    def _update_details(self, index: int, item: ShoppingItem, changes: dict) -> ShoppingItem:
        try:
            updated = self._storage.update_item_details(item.key, **changes)
        except MissingBackingItem:
            self._drop_row(index)
            raise
        self._rows.replace_row(index, row_for_item(updated))
        self._host.refresh_row(index)
        return updated

    # ---------- visibility / animations ----------

    @_serialized
    def on_hidden_changed(self, hidden: bool) -> Optional[Future]:
        self._session.is_hidden = hidden
        if hidden:
            # Nothing may pop up on a hidden list, so settle without the policy.
            self._undo.confirm()
            self._pending_mass_delete = None
            self._session.reset_flags()
            self._replay_deferred_actions()
            return None
        return self._schedule_rebuild(None, force_reload=True)

    @_serialized
    def on_animation_finished(self, key: ItemKey) -> None:
        self._session.items_to_animate.discard(key)

    # ---------- helpers ----------

    def _tick(self) -> None:
        self._settle(self._undo.expire_if_due())

    def _settle(self, pending: Optional[PendingUndo]) -> None:
        if pending is None or not pending.was_expired or self._session.is_hidden:
            return
        self._policy.evaluate(TriggerContext.expired_swipe_settled(), self._emit_decision)

    def _evaluate_passive(self) -> None:
        if self._session.is_hidden:
            return
        self._policy.evaluate(TriggerContext.passive_sync(), self._emit_decision)

    def _locate(self, key: ItemKey) -> Tuple[int, ShoppingItem]:
        index = self._rows.index_of(key)
        if index is None:
            raise MissingBackingItem(key)
        row = self._rows.row_at(index)
        return index, row.shopping_item

    def _drop_row(self, index: int) -> None:
        if self._rows.header_collapses_on_removal(index):
            self._rows.remove_row(index - 1)
            self._rows.remove_row(index - 1)
            self._host.rows_removed(index - 1, 2)
        else:
            self._rows.remove_row(index)
            self._host.rows_removed(index, 1)
        self._log.warning("Dropped row %s whose item vanished from storage", index)

    def _apply_diff(self, diff: RowDiff) -> None:
        if diff.is_empty:
            return
        if diff.full_reload:
            self._host.reload()
            return
        for op in diff.operations:
            if op.tag == "remove":
                self._host.rows_removed(op.start, op.length)
            elif op.tag == "insert":
                self._host.rows_inserted(op.start, op.length)
            else:
                self._host.refresh_range(op.start, op.length)

    def _emit(self, kind: DirectiveKind, show: Callable[[], None]) -> bool:
        try:
            show()
        except PresentationUnavailable as exc:
            metrics.DIRECTIVES.labels(kind=kind.value, status="dropped").inc()
            self._log.warning("Dropped %s directive: %s", kind.value, exc)
            return False
        metrics.DIRECTIVES.labels(kind=kind.value, status="shown").inc()
        return True

    def _emit_decision(self, decision: PolicyDecision) -> bool:
        if decision.action is PolicyAction.PASSIVE_NOTICE:
            return self._emit(
                DirectiveKind.PASSIVE_NOTICE,
                lambda: self._host.show_passive_notice(decision.count),
            )
        if decision.action is PolicyAction.ONBOARDING_DIALOG:
            return self._emit(
                DirectiveKind.ONBOARDING_DIALOG,
                lambda: self._host.show_onboarding_dialog(decision.variant, decision.cancelable),
            )
        if decision.action is PolicyAction.EXPIRED_NOTICE:
            return self._emit(
                DirectiveKind.ITEM_NOTICE,
                lambda: self._host.show_item_notice(ItemStatus.EXPIRED),
            )
        return False


__all__ = ["ShoppingListEngine", "normalize_titles", "parse_quantity"]
