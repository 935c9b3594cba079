"""Swipe delete with a time-boxed undo."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from trolley import metrics
from trolley.errors import InvalidUndoState, MissingBackingItem
from trolley.listing.grouped_list import GroupedList, RowDiff
from trolley.models.rows import HeaderRow, ItemLikeRow, ItemRow, ManualItemRow, row_for_item
from trolley.storage import ShoppingStorage

logger = logging.getLogger(__name__)


class UndoState(str, Enum):
    IDLE = "idle"
    REMOVED = "removed"


@dataclass(frozen=True)
class PendingUndo:
    """Everything needed to put a swiped row back where it was.

    ``item_index`` is where the item goes back once any removed header has
    been reinserted at ``header_index`` (it then shifts by one).
    """

    row: ItemLikeRow
    header_removed: bool
    header_row: Optional[HeaderRow]
    item_index: int
    header_index: Optional[int]
    created_at: float
    rows_version: int = 0
    was_expired: bool = False

    @property
    def restore_index(self) -> int:
        return self.item_index + 1 if self.header_removed else self.item_index


@dataclass(frozen=True)
class UndoResult:
    """Where the restored row landed.

    ``diff`` is set when the rows were regrouped after the delete; the stored
    indices were stale then and the list was rebuilt from storage instead.
    """

    index: Optional[int]
    header_restored: bool = False
    diff: Optional[RowDiff] = None


class DeleteUndoController:
    """Owns the single pending delete of a list session."""

    def __init__(
        self,
        rows: GroupedList,
        storage: ShoppingStorage,
        *,
        timeout: float = 4.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._rows = rows
        self._storage = storage
        self._timeout = timeout
        self._clock = clock
        self._pending: Optional[PendingUndo] = None

    @property
    def state(self) -> UndoState:
        return UndoState.REMOVED if self._pending is not None else UndoState.IDLE

    @property
    def pending(self) -> Optional[PendingUndo]:
        return self._pending

    def delete(self, index: int) -> Optional[PendingUndo]:
        """Remove the row at ``index`` and remember how to restore it.

        Returns ``None`` when storage no longer knew the item; the row is still
        dropped locally in that case.
        """

        if self._pending is not None:
            self.confirm()

        row = self._rows.row_at(index)
        if not isinstance(row, (ItemRow, ManualItemRow)):
            raise ValueError(f"Row at index {index} ({row.kind.value}) is not removable")

        header_row: Optional[HeaderRow] = None
        header_index: Optional[int] = None
        item_index = index
        if self._rows.header_collapses_on_removal(index):
            header_index = index - 1
            removed_header = self._rows.remove_row(header_index)
            assert isinstance(removed_header, HeaderRow)
            header_row = removed_header
            item_index = index - 1
        self._rows.remove_row(item_index)

        try:
            self._storage.persist_delete(row.shopping_item.key)
        except MissingBackingItem:
            logger.warning(
                "Swiped item %s was already gone from storage; dropping row",
                row.shopping_item.key,
            )
            return None

        self._pending = PendingUndo(
            row=row,
            header_removed=header_row is not None,
            header_row=header_row,
            item_index=item_index,
            header_index=header_index,
            created_at=self._clock(),
            rows_version=self._rows.version,
            was_expired=row.shopping_item.is_expired(),
        )
        metrics.ROW_DELETES.labels(result="deleted").inc()
        logger.debug(
            "Deleted row index=%s header_removed=%s", index, self._pending.header_removed
        )
        return self._pending

    def undo(self) -> UndoResult:
        """Reinsert the pending row and report where it went."""

        pending = self._pending
        if pending is None:
            raise InvalidUndoState("No delete is pending")
        self._pending = None

        restored = self._storage.persist_undo(
            pending.row.shopping_item, pending.row.shopping_item.position
        )
        if pending.rows_version != self._rows.version:
            diff = self._rows.rebuild(self._storage.query_active_items(), animating=True)
            metrics.ROW_DELETES.labels(result="undone").inc()
            logger.debug("Rows changed since delete; regrouped for undo")
            return UndoResult(index=self._rows.index_of(restored.key), diff=diff)
        if pending.header_removed:
            assert pending.header_index is not None and pending.header_row is not None
            self._rows.insert_row(pending.header_index, pending.header_row)
        self._rows.insert_row(pending.restore_index, row_for_item(restored))
        metrics.ROW_DELETES.labels(result="undone").inc()
        logger.debug("Undid delete restore_index=%s", pending.restore_index)
        return UndoResult(index=pending.restore_index, header_restored=pending.header_removed)

    def confirm(self) -> Optional[PendingUndo]:
        """Drop the pending record; the delete itself is already durable."""

        pending, self._pending = self._pending, None
        if pending is not None:
            metrics.ROW_DELETES.labels(result="confirmed").inc()
        return pending

    def expire_if_due(self) -> Optional[PendingUndo]:
        if self._pending is None:
            return None
        if self._clock() - self._pending.created_at < self._timeout:
            return None
        logger.debug("Undo affordance expired")
        return self.confirm()


__all__ = ["DeleteUndoController", "PendingUndo", "UndoResult", "UndoState"]
