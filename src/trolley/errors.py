"""Error taxonomy for the shopping list engine."""

from __future__ import annotations

from typing import Hashable, Optional


class TrolleyError(Exception):
    """Base class for all engine errors."""


class IndexOutOfRange(TrolleyError, IndexError):
    """A row index outside ``[0, count)`` was accessed."""

    def __init__(self, index: int, count: int) -> None:
        super().__init__(f"Row index {index} out of range for list of {count} rows")
        self.index = index
        self.count = count


class MissingBackingItem(TrolleyError, LookupError):
    """A row references a shopping item that storage no longer holds."""

    def __init__(self, key: Hashable, message: Optional[str] = None) -> None:
        super().__init__(message or f"Shopping item {key!r} not found")
        self.key = key


class ConcurrentMutationConflict(TrolleyError):
    """A structural mutation arrived while the list was being dragged or swiped."""


class PresentationUnavailable(TrolleyError):
    """The presentation host cannot currently show a directive."""


class InvalidUndoState(TrolleyError):
    """Undo was requested while no delete is pending."""


__all__ = [
    "ConcurrentMutationConflict",
    "IndexOutOfRange",
    "InvalidUndoState",
    "MissingBackingItem",
    "PresentationUnavailable",
    "TrolleyError",
]
