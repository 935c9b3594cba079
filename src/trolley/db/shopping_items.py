"""Shopping item persistence backed by SQLite."""
# mypy: ignore-errors

from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from trolley.errors import MissingBackingItem
from trolley.models.shopping import ItemKey, ShoppingItem, Store
from trolley.storage import UNSET, OrderEntry

from .models import ShoppingItemORM, StoreORM
from .repository import session_scope

logger = logging.getLogger(__name__)


def _to_model(row: ShoppingItemORM, store: StoreORM) -> ShoppingItem:
    return ShoppingItem.model_validate(
        {
            "id": row.id,
            "manual_uuid": UUID(row.manual_uuid) if row.manual_uuid else None,
            "store": {"id": store.id, "name": store.name},
            "title": row.title,
            "product_id": row.product_id,
            "is_checked": row.is_checked,
            "quantity": row.quantity,
            "quantity_unit": row.quantity_unit,
            "note": row.note,
            "valid_until": row.valid_until,
            "is_disabled": row.is_disabled,
            "in_region": row.in_region,
            "position": row.position,
            "added_at": row.added_at,
        }
    )


def _ensure_store(session: Session, store: Store) -> StoreORM:
    db_store = session.get(StoreORM, store.id)
    if db_store is None:
        db_store = StoreORM(id=store.id, name=store.name)
        session.add(db_store)
    elif store.name and db_store.name != store.name:
        db_store.name = store.name
    return db_store


def _lookup(
    session: Session, key: ItemKey, *, active_only: bool = True
) -> Optional[ShoppingItemORM]:
    kind, value = key
    if kind == "id":
        row = session.get(ShoppingItemORM, int(value))
    elif kind == "uuid":
        row = (
            session.execute(
                select(ShoppingItemORM).where(ShoppingItemORM.manual_uuid == str(value))
            )
            .scalars()
            .first()
        )
    else:
        raise ValueError(f"Unknown item key kind '{kind}'")
    if row is None or (active_only and not row.is_active):
        return None
    return row


def _require(session: Session, key: ItemKey) -> ShoppingItemORM:
    row = _lookup(session, key)
    if row is None:
        raise MissingBackingItem(key)
    return row


def _model_for(session: Session, row: ShoppingItemORM) -> ShoppingItem:
    store = session.get(StoreORM, row.store_id)
    assert store is not None
    return _to_model(row, store)


def list_active_items() -> List[ShoppingItem]:
    """Return every active item joined with its store."""

    with session_scope() as session:
        rows = session.execute(
            select(ShoppingItemORM, StoreORM)
            .join(StoreORM, ShoppingItemORM.store_id == StoreORM.id)
            .where(ShoppingItemORM.is_active.is_(True))
            .order_by(ShoppingItemORM.store_id.asc(), ShoppingItemORM.position.asc())
        ).all()
        return [_to_model(item, store) for item, store in rows]


def get_item(key: ItemKey) -> Optional[ShoppingItem]:
    with session_scope() as session:
        row = _lookup(session, key)
        if row is None:
            return None
        return _model_for(session, row)


def _write_item(session: Session, item: ShoppingItem) -> ShoppingItem:
    _ensure_store(session, item.store)
    row = None
    if item.id is not None or item.manual_uuid is not None:
        row = _lookup(session, item.key, active_only=False)
    if row is None:
        row = ShoppingItemORM(id=item.id, added_at=item.added_at)
        session.add(row)
    row.manual_uuid = str(item.manual_uuid) if item.manual_uuid else None
    row.store_id = item.store.id
    row.title = item.title
    row.product_id = item.product_id
    row.is_checked = item.is_checked
    row.quantity = item.quantity
    row.quantity_unit = item.quantity_unit
    row.note = item.note
    row.valid_until = item.valid_until
    row.is_disabled = item.is_disabled
    row.in_region = item.in_region
    row.position = item.position
    row.is_active = True
    session.flush()
    return _model_for(session, row)


def upsert_items(items: Iterable[ShoppingItem]) -> List[ShoppingItem]:
    """Insert or update items by id, reactivating any that were soft deleted."""

    saved: List[ShoppingItem] = []
    with session_scope() as session:
        for item in items:
            saved.append(_write_item(session, item))
    logger.debug("Upserted %s shopping items", len(saved))
    return saved


def soft_delete_item(key: ItemKey) -> None:
    with session_scope() as session:
        row = _require(session, key)
        row.is_active = False


def restore_item(item: ShoppingItem, position: float) -> ShoppingItem:
    """Reactivate a soft deleted item, recreating it if the row is gone."""

    with session_scope() as session:
        row = _lookup(session, item.key, active_only=False)
        if row is None:
            logger.warning("Restoring %s without a stored row; recreating it", item.key)
            return _write_item(session, item.model_copy(update={"position": position}))
        row.is_active = True
        row.position = position
        session.flush()
        return _model_for(session, row)


def soft_delete_items(keys: Sequence[ItemKey]) -> int:
    removed = 0
    with session_scope() as session:
        for key in keys:
            row = _lookup(session, key)
            if row is None:
                continue
            row.is_active = False
            removed += 1
    return removed


def set_checked(key: ItemKey, checked: bool) -> ShoppingItem:
    with session_scope() as session:
        row = _require(session, key)
        row.is_checked = bool(checked)
        session.flush()
        return _model_for(session, row)


def save_order(entries: Sequence[OrderEntry]) -> None:
    with session_scope() as session:
        for key, store_id, position in entries:
            row = _lookup(session, key)
            if row is None:
                logger.debug("Skipping order update for missing item %s", key)
                continue
            row.store_id = store_id
            row.position = position


def create_manual_items(titles: Sequence[str], store: Store) -> List[ShoppingItem]:
    with session_scope() as session:
        _ensure_store(session, store)
        base = session.execute(
            select(func.max(ShoppingItemORM.position)).where(ShoppingItemORM.is_active.is_(True))
        ).scalar()
        base = float(base or 0.0)
        rows = []
        for offset, title in enumerate(titles, start=1):
            row = ShoppingItemORM(
                manual_uuid=str(uuid4()),
                store_id=store.id,
                title=title,
                position=base + offset,
            )
            session.add(row)
            rows.append(row)
        session.flush()
        return [_model_for(session, row) for row in rows]


def update_item_details(
    key: ItemKey,
    *,
    quantity: int | object = UNSET,
    quantity_unit: str | None | object = UNSET,
    note: str | None | object = UNSET,
) -> ShoppingItem:
    with session_scope() as session:
        row = _require(session, key)
        if quantity is not UNSET:
            row.quantity = int(quantity)  # type: ignore[arg-type]
        if quantity_unit is not UNSET:
            row.quantity_unit = (
                quantity_unit.strip() if quantity_unit else None  # type: ignore[union-attr]
            )
        if note is not UNSET:
            row.note = note  # type: ignore[assignment]
        session.flush()
        return _model_for(session, row)


class SqlShoppingStorage:
    """``ShoppingStorage`` implementation over the module level helpers."""

    def query_active_items(self) -> List[ShoppingItem]:
        return list_active_items()

    def get_item(self, key: ItemKey) -> Optional[ShoppingItem]:
        return get_item(key)

    def persist_delete(self, key: ItemKey) -> None:
        soft_delete_item(key)

    def persist_undo(self, item: ShoppingItem, position: float) -> ShoppingItem:
        return restore_item(item, position)

    def persist_bulk_delete(self, keys: Sequence[ItemKey]) -> int:
        return soft_delete_items(keys)

    def persist_checked_state(self, key: ItemKey, checked: bool) -> ShoppingItem:
        return set_checked(key, checked)

    def persist_order(self, entries: Sequence[OrderEntry]) -> None:
        save_order(entries)

    def add_manual_items(self, titles: Sequence[str], store: Store) -> List[ShoppingItem]:
        return create_manual_items(titles, store)

    def update_item_details(
        self,
        key: ItemKey,
        *,
        quantity: object = UNSET,
        quantity_unit: object = UNSET,
        note: object = UNSET,
    ) -> ShoppingItem:
        return update_item_details(
            key, quantity=quantity, quantity_unit=quantity_unit, note=note
        )


__all__ = [
    "SqlShoppingStorage",
    "create_manual_items",
    "get_item",
    "list_active_items",
    "restore_item",
    "save_order",
    "set_checked",
    "soft_delete_item",
    "soft_delete_items",
    "update_item_details",
    "upsert_items",
]
