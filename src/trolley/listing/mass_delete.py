"""Bulk deletion by category."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from trolley.models.rows import ItemLikeRow, ItemRow, ManualItemRow, Row
from trolley.models.shopping import DeleteType, ItemKey, utcnow

logger = logging.getLogger(__name__)

# Below this many rows the list only holds a header and footer at most.
MIN_ROWS_FOR_MASS_DELETE = 3


@dataclass(frozen=True)
class RowSet:
    """Rows selected for removal, in list order."""

    rows: Tuple[ItemLikeRow, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows

    @property
    def keys(self) -> List[ItemKey]:
        return [row.shopping_item.key for row in self.rows]


@dataclass(frozen=True)
class MassDeleteOutcome:
    """Snapshot taken before a bulk delete is persisted."""

    delete_type: DeleteType
    removed: RowSet
    was_expiry_driven: bool
    persisted_count: int = 0


def _matches(delete_type: DeleteType, row: ItemLikeRow, now: datetime) -> bool:
    item = row.shopping_item
    if delete_type is DeleteType.ALL:
        return True
    if delete_type is DeleteType.CHECKED:
        return item.is_checked
    if delete_type is DeleteType.EXPIRED:
        return item.is_expired(now)
    if delete_type is DeleteType.CHECKED_AND_EXPIRED:
        return item.is_checked or item.is_expired(now)
    raise ValueError(f"Unsupported delete type '{delete_type}'")


def classify(
    delete_type: DeleteType, rows: Iterable[Row], now: Optional[datetime] = None
) -> RowSet:
    """Select the removable rows matching ``delete_type``.

    Returns an empty set when the list is too small to hold anything worth
    deleting.
    """

    delete_type = DeleteType(delete_type)
    materialized = list(rows)
    if len(materialized) < MIN_ROWS_FOR_MASS_DELETE:
        return RowSet()
    now = now or utcnow()
    selected = tuple(
        row
        for row in materialized
        if isinstance(row, (ItemRow, ManualItemRow)) and _matches(delete_type, row, now)
    )
    logger.debug("Classified %s rows for delete_type=%s", len(selected), delete_type.value)
    return RowSet(selected)


def requires_confirmation(delete_type: DeleteType) -> bool:
    return DeleteType(delete_type) is DeleteType.ALL


def snapshot_outcome(
    delete_type: DeleteType, removed: RowSet, now: Optional[datetime] = None
) -> MassDeleteOutcome:
    """Record whether any removed row was expired before the rows disappear."""

    now = now or utcnow()
    expiry_driven = any(row.shopping_item.is_expired(now) for row in removed)
    return MassDeleteOutcome(
        delete_type=DeleteType(delete_type),
        removed=removed,
        was_expiry_driven=expiry_driven,
    )


__all__ = [
    "MIN_ROWS_FOR_MASS_DELETE",
    "MassDeleteOutcome",
    "RowSet",
    "classify",
    "requires_confirmation",
    "snapshot_outcome",
]
