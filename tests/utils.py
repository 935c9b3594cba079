"""Builders shared by the test suite."""

from __future__ import annotations

from concurrent.futures import Executor, Future
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Tuple

from trolley.models.shopping import ShoppingItem, Store, my_list_store, utcnow

ALDI = Store(id=1, name="Aldi")
BAKERY = Store(id=2, name="Bakery")
COOP = Store(id=3, name="Coop")


def make_item(
    item_id: int,
    store: Store = ALDI,
    *,
    title: Optional[str] = None,
    position: Optional[float] = None,
    checked: bool = False,
    expired: bool = False,
    expired_days: float = 1,
    manual: bool = False,
    **fields,
) -> ShoppingItem:
    valid_until: Optional[datetime] = fields.pop("valid_until", None)
    if expired:
        valid_until = utcnow() - timedelta(days=expired_days)
    return ShoppingItem(
        id=item_id,
        store=my_list_store() if manual and store is ALDI else store,
        title=title or f"item {item_id}",
        product_id=None if manual else 1000 + item_id,
        is_checked=checked,
        valid_until=valid_until,
        position=float(item_id if position is None else position),
        **fields,
    )


class FakeClock:
    """Monotonic clock stand-in advanced by hand."""

    def __init__(self, start: float = 100.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ManualExecutor(Executor):
    """Executor that only runs submitted work when told to."""

    def __init__(self) -> None:
        self.queue: List[Tuple[Future, Callable]] = []

    def submit(self, fn, /, *args, **kwargs) -> Future:
        future: Future = Future()
        self.queue.append((future, lambda: fn(*args, **kwargs)))
        return future

    def run(self, order: Optional[List[int]] = None) -> None:
        pending, self.queue = self.queue, []
        for position in order if order is not None else range(len(pending)):
            future, call = pending[position]
            future.set_result(call())
