"""Data models for shopping items and the rows of the grouped list."""

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
from trolley.models.shopping import (
    AutoDeleteSetting,
    DeleteType,
    ItemKey,
    ItemStatus,
    OnboardingState,
    ShoppingItem,
    Store,
    my_list_store,
)

__all__ = [
    "FOOTER",
    "FooterRow",
    "HeaderRow",
    "ItemLikeRow",
    "ItemRow",
    "ManualItemRow",
    "Row",
    "RowKind",
    "row_for_item",
    "AutoDeleteSetting",
    "DeleteType",
    "ItemKey",
    "ItemStatus",
    "OnboardingState",
    "ShoppingItem",
    "Store",
    "my_list_store",
]
