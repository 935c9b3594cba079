"""Grouped row sequence and the mutations applied to it."""

from trolley.listing.grouped_list import DiffOp, GroupedList, RowDiff, diff_rows, group_items
from trolley.listing.mass_delete import MassDeleteOutcome, RowSet, classify, requires_confirmation
from trolley.listing.session import ListSession
from trolley.listing.undo import DeleteUndoController, PendingUndo, UndoResult, UndoState

__all__ = [
    "DeleteUndoController",
    "DiffOp",
    "GroupedList",
    "ListSession",
    "MassDeleteOutcome",
    "PendingUndo",
    "RowDiff",
    "RowSet",
    "UndoResult",
    "UndoState",
    "classify",
    "diff_rows",
    "group_items",
    "requires_confirmation",
]
