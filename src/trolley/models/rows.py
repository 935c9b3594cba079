"""Row variants that make up the grouped shopping list."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Hashable, Union

from trolley.models.shopping import ShoppingItem, Store


class RowKind(str, Enum):
    HEADER = "header"
    ITEM = "item"
    MANUAL_ITEM = "manual_item"
    FOOTER = "footer"


class _RowBase:
    """Shared predicates and identity semantics for every row variant."""

    kind: ClassVar[RowKind]

    @property
    def identity(self) -> Hashable:
        raise NotImplementedError

    @property
    def is_header(self) -> bool:
        return self.kind is RowKind.HEADER

    @property
    def is_removable(self) -> bool:
        return self.kind in (RowKind.ITEM, RowKind.MANUAL_ITEM)

    @property
    def is_group_boundary(self) -> bool:
        return self.kind in (RowKind.HEADER, RowKind.FOOTER)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, _RowBase):
            return NotImplemented
        return self.kind is other.kind and self.identity == other.identity

    def __hash__(self) -> int:
        return hash((self.kind, self.identity))


@dataclass(frozen=True, eq=False)
class HeaderRow(_RowBase):
    """Group boundary naming the store of the rows that follow it."""

    store: Store
    kind: ClassVar[RowKind] = RowKind.HEADER

    @property
    def identity(self) -> Hashable:
        return self.store.id


@dataclass(frozen=True, eq=False)
class ItemRow(_RowBase):
    """Shopping entry backed by a catalog product."""

    shopping_item: ShoppingItem
    kind: ClassVar[RowKind] = RowKind.ITEM

    @property
    def identity(self) -> Hashable:
        return self.shopping_item.key


@dataclass(frozen=True, eq=False)
class ManualItemRow(_RowBase):
    """Free-text shopping entry with no catalog product."""

    shopping_item: ShoppingItem
    kind: ClassVar[RowKind] = RowKind.MANUAL_ITEM

    @property
    def identity(self) -> Hashable:
        return self.shopping_item.key


@dataclass(frozen=True, eq=False)
class FooterRow(_RowBase):
    """Trailing sentinel; exactly one per list."""

    kind: ClassVar[RowKind] = RowKind.FOOTER

    @property
    def identity(self) -> Hashable:
        return None


Row = Union[HeaderRow, ItemRow, ManualItemRow, FooterRow]
ItemLikeRow = Union[ItemRow, ManualItemRow]

FOOTER = FooterRow()


def row_for_item(item: ShoppingItem) -> ItemLikeRow:
    """Wrap a shopping item in the row variant matching its kind."""

    if item.is_manual:
        return ManualItemRow(item)
    return ItemRow(item)


def describe(row: Row) -> str:
    """Short human readable label used in logs and CLI output."""

    if isinstance(row, HeaderRow):
        return f"[{row.store.name or row.store.id}]"
    if isinstance(row, (ItemRow, ManualItemRow)):
        item = row.shopping_item
        marker = "x" if item.is_checked else " "
        return f"  ({marker}) {item.title}"
    if isinstance(row, FooterRow):
        return "--"
    raise TypeError(f"Unknown row type: {type(row).__name__}")


__all__ = [
    "FOOTER",
    "FooterRow",
    "HeaderRow",
    "ItemLikeRow",
    "ItemRow",
    "ManualItemRow",
    "Row",
    "RowKind",
    "describe",
    "row_for_item",
]
