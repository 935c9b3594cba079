"""Grouped row sequence backing the shopping list view.

The sequence always follows ``Header (Item|ManualItem)+ ... Footer`` (or is
just ``[Footer]``). Primitive edits here do not maintain that shape on their
own; the delete/undo controller and the drag handling call the header rules
below to keep it intact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from trolley.errors import IndexOutOfRange
from trolley.models.rows import (
    FOOTER,
    FooterRow,
    HeaderRow,
    ItemLikeRow,
    ItemRow,
    ManualItemRow,
    Row,
    RowKind,
    row_for_item,
)
from trolley.models.shopping import ItemKey, ShoppingItem, Store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiffOp:
    """Single structural change.

    ``start`` is relative to the sequence as it stands when the operation is
    applied; operations are emitted back to front so earlier ones never shift
    the indices of later ones.
    """

    tag: str  # "insert" | "remove" | "change"
    start: int
    length: int
    rows: Tuple[Row, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class RowDiff:
    operations: Tuple[DiffOp, ...] = field(default_factory=tuple)
    full_reload: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.operations

    def apply_to(self, rows: Sequence[Row]) -> List[Row]:
        """Replay the operations on ``rows`` and return the resulting sequence."""

        result = list(rows)
        for op in self.operations:
            if op.tag == "remove":
                del result[op.start : op.start + op.length]
            elif op.tag == "insert":
                result[op.start : op.start] = list(op.rows)
            elif op.tag == "change":
                result[op.start : op.start + op.length] = list(op.rows)
            else:
                raise ValueError(f"Unknown diff operation '{op.tag}'")
        return result


def _store_sort_key(store: Store, my_list_first: bool) -> tuple:
    if store.is_my_list:
        return (0 if my_list_first else 2, "", store.id)
    return (1, store.name.casefold(), store.id)


def _item_sort_key(item: ShoppingItem) -> tuple:
    return (item.position, item.added_at, str(item.key))


def group_items(items: Iterable[ShoppingItem], *, my_list_first: bool = True) -> List[Row]:
    """Partition items by store and lay them out as header/item rows plus footer.

    Pure function so it can run off the UI thread.
    """

    stores: Dict[int, Store] = {}
    grouped: Dict[int, List[ShoppingItem]] = {}
    for item in items:
        stores.setdefault(item.store.id, item.store)
        grouped.setdefault(item.store.id, []).append(item)

    rows: List[Row] = []
    for store in sorted(stores.values(), key=lambda s: _store_sort_key(s, my_list_first)):
        members = grouped[store.id]
        rows.append(HeaderRow(store))
        rows.extend(row_for_item(item) for item in sorted(members, key=_item_sort_key))
    rows.append(FOOTER)
    return rows


def _content(row: Row) -> object:
    if isinstance(row, HeaderRow):
        return row.store
    if isinstance(row, (ItemRow, ManualItemRow)):
        return row.shopping_item
    return None


def diff_rows(old: Sequence[Row], new: Sequence[Row], *, animating: bool = False) -> RowDiff:
    """Compute the structural difference between two row sequences.

    Rows are matched by identity; matched rows whose underlying record changed
    are reported as ``change``. Unless an animation is in flight, any change
    also marks the diff as a full reload.
    """

    matcher = SequenceMatcher(a=list(old), b=list(new), autojunk=False)
    operations: List[DiffOp] = []
    for tag, i1, i2, j1, j2 in reversed(matcher.get_opcodes()):
        if tag == "equal":
            operations.extend(_changed_runs(old, new, i1, j1, i2 - i1))
            continue
        if tag in ("replace", "delete"):
            operations.append(DiffOp("remove", i1, i2 - i1))
        if tag in ("replace", "insert"):
            operations.append(DiffOp("insert", i1, j2 - j1, tuple(new[j1:j2])))

    return RowDiff(tuple(operations), full_reload=bool(operations) and not animating)


def _changed_runs(
    old: Sequence[Row], new: Sequence[Row], i1: int, j1: int, length: int
) -> List[DiffOp]:
    runs: List[DiffOp] = []
    offset = length - 1
    while offset >= 0:
        if _content(old[i1 + offset]) == _content(new[j1 + offset]):
            offset -= 1
            continue
        end = offset
        while offset >= 0 and _content(old[i1 + offset]) != _content(new[j1 + offset]):
            offset -= 1
        start = offset + 1
        runs.append(
            DiffOp(
                "change",
                i1 + start,
                end - start + 1,
                tuple(new[j1 + start : j1 + end + 1]),
            )
        )
    return runs


class GroupedList:
    """Ordered row sequence owned by a single list session."""

    def __init__(self, *, my_list_first: bool = True) -> None:
        self._rows: List[Row] = [FOOTER]
        self._my_list_first = my_list_first
        self._version = 0

    # ---------- read accessors ----------

    @property
    def count(self) -> int:
        return len(self._rows)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[Row]:
        return iter(tuple(self._rows))

    def snapshot(self) -> Tuple[Row, ...]:
        return tuple(self._rows)

    def row_at(self, index: int) -> Row:
        self._check_index(index)
        return self._rows[index]

    def type_at(self, index: int) -> RowKind:
        return self.row_at(index).kind

    @property
    def version(self) -> int:
        """Bumped whenever rows are regrouped or relocated."""

        return self._version

    @property
    def is_empty(self) -> bool:
        return self.count <= 2

    def removable_rows(self) -> List[ItemLikeRow]:
        return [row for row in self._rows if isinstance(row, (ItemRow, ManualItemRow))]

    def index_of(self, key: ItemKey) -> Optional[int]:
        for index, row in enumerate(self._rows):
            if isinstance(row, (ItemRow, ManualItemRow)) and row.shopping_item.key == key:
                return index
        return None

    def is_well_formed(self) -> bool:
        rows = self._rows
        if not rows or not isinstance(rows[-1], FooterRow):
            return False
        if any(isinstance(row, FooterRow) for row in rows[:-1]):
            return False
        if len(rows) == 1:
            return True
        if not isinstance(rows[0], HeaderRow):
            return False
        for current, following in zip(rows, rows[1:]):
            if isinstance(current, HeaderRow) and following.is_group_boundary:
                return False
        return True

    # ---------- primitive edits ----------

    def insert_row(self, index: int, row: Row) -> None:
        if index < 0 or index > self.count:
            raise IndexOutOfRange(index, self.count)
        self._rows.insert(index, row)

    def remove_row(self, index: int) -> Row:
        self._check_index(index)
        return self._rows.pop(index)

    def move_row(self, from_index: int, to_index: int) -> Row:
        self._check_index(from_index)
        self._check_index(to_index)
        row = self._rows.pop(from_index)
        self._rows.insert(to_index, row)
        self._version += 1
        return row

    def replace_row(self, index: int, row: Row) -> None:
        self._check_index(index)
        self._rows[index] = row

    # ---------- header rules ----------

    def header_collapses_on_removal(self, index: int) -> bool:
        """Whether removing the row at ``index`` leaves its header without items.

        Evaluated against the current sequence with only the item row in mind;
        the header before the group's header is never considered.
        """

        row = self.row_at(index)
        if not row.is_removable or index == 0:
            return False
        if not self._rows[index - 1].is_header:
            return False
        if index == self.count - 2:
            return True
        return self._rows[index + 1].is_group_boundary

    def remove_header_if_needed(self, original_position: int) -> Optional[int]:
        """Drop the header orphaned by moving a row away from ``original_position``.

        Returns the index of the removed header, if any.
        """

        if original_position <= 0 or original_position >= self.count - 1:
            return None
        if not self._rows[original_position].is_header:
            return None
        if self._rows[original_position - 1].is_header:
            removed = original_position - 1
        elif self._rows[original_position + 1].is_group_boundary:
            removed = original_position
        else:
            return None
        self._rows.pop(removed)
        logger.debug("Removed emptied header at index=%s after move", removed)
        return removed

    # ---------- regrouping ----------

    def group(self, items: Iterable[ShoppingItem]) -> List[Row]:
        return group_items(items, my_list_first=self._my_list_first)

    def rebuild(self, items: Iterable[ShoppingItem], *, animating: bool = False) -> RowDiff:
        return self.apply_rows(self.group(items), animating=animating)

    def apply_rows(self, rows: Sequence[Row], *, animating: bool = False) -> RowDiff:
        """Swap in a regrouped sequence and return the diff against the old one."""

        diff = diff_rows(self._rows, rows, animating=animating)
        self._rows = list(rows)
        self._version += 1
        logger.debug(
            "Applied regrouped rows count=%s operations=%s full_reload=%s",
            self.count,
            len(diff.operations),
            diff.full_reload,
        )
        return diff

    def _check_index(self, index: int) -> None:
        if index < 0 or index >= len(self._rows):
            raise IndexOutOfRange(index, len(self._rows))


__all__ = ["DiffOp", "GroupedList", "RowDiff", "diff_rows", "group_items"]
