"""Shopping list domain records."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

MY_LIST_STORE_ID = 0
MY_LIST_NAME = "My List"

MIN_QUANTITY = 0
MAX_QUANTITY = 999
MAX_MANUAL_TITLE_LENGTH = 200

ItemKey = Tuple[str, Union[int, UUID]]


class ItemStatus(str, Enum):
    """Availability status derived from an item's catalog data."""

    NONE = "none"
    EXPIRED = "expired"
    OUT_OF_REGION = "out_of_region"
    DISABLED = "disabled"


class DeleteType(str, Enum):
    """Criteria accepted by the mass delete flow."""

    ALL = "all"
    CHECKED = "checked"
    EXPIRED = "expired"
    CHECKED_AND_EXPIRED = "checked_and_expired"


class AutoDeleteSetting(str, Enum):
    """User-selected retention policy for expired items."""

    OFF = "off"
    IMMEDIATELY = "immediately"
    SEVEN_DAYS = "seven_days"
    THIRTY_DAYS = "thirty_days"

    @property
    def retention_days(self) -> Optional[int]:
        return _RETENTION_DAYS[self]


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime (SQLite friendly)."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


_RETENTION_DAYS = {
    AutoDeleteSetting.OFF: None,
    AutoDeleteSetting.IMMEDIATELY: 0,
    AutoDeleteSetting.SEVEN_DAYS: 7,
    AutoDeleteSetting.THIRTY_DAYS: 30,
}


class OnboardingState(str, Enum):
    """Whether the auto delete onboarding dialog may still be shown."""

    INIT = "init"
    SHOW = "show"
    DO_NOT_SHOW = "do_not_show"

    @property
    def may_show(self) -> bool:
        return self is not OnboardingState.DO_NOT_SHOW


class Store(BaseModel):
    """Store that groups shopping items under a header."""

    id: int
    name: str = Field(default="")

    model_config = ConfigDict(frozen=True)

    @property
    def is_my_list(self) -> bool:
        return self.id == MY_LIST_STORE_ID


def my_list_store() -> Store:
    return Store(id=MY_LIST_STORE_ID, name=MY_LIST_NAME)


class ShoppingItem(BaseModel):
    """Single entry on the shopping list.

    ``id`` stays ``None`` until storage assigns the durable identifier; manual
    items carry ``manual_uuid`` so they can be tracked before that happens.
    """

    id: Optional[int] = Field(default=None)
    manual_uuid: Optional[UUID] = Field(default=None)
    store: Store
    title: str = Field(default="", max_length=255)
    product_id: Optional[int] = Field(default=None)
    is_checked: bool = Field(default=False)
    quantity: int = Field(default=0, ge=MIN_QUANTITY, le=MAX_QUANTITY)
    quantity_unit: Optional[str] = Field(default=None, max_length=64)
    note: Optional[str] = Field(default=None, max_length=1000)
    valid_until: Optional[datetime] = Field(default=None)
    is_disabled: bool = Field(default=False)
    in_region: bool = Field(default=True)
    position: float = Field(default=0.0)
    added_at: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict(frozen=True)

    @field_validator("valid_until", "added_at")
    @classmethod
    def _as_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @property
    def is_manual(self) -> bool:
        return self.product_id is None

    @property
    def key(self) -> ItemKey:
        """Identity used to correlate rows with storage records."""

        if self.id is not None:
            return ("id", self.id)
        if self.manual_uuid is not None:
            return ("uuid", self.manual_uuid)
        raise ValueError(f"Shopping item '{self.title}' has neither id nor manual uuid")

    def status(self, now: Optional[datetime] = None) -> ItemStatus:
        if self.is_disabled:
            return ItemStatus.DISABLED
        if not self.in_region:
            return ItemStatus.OUT_OF_REGION
        if self.valid_until is not None and self.valid_until < (now or utcnow()):
            return ItemStatus.EXPIRED
        return ItemStatus.NONE

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.status(now) is ItemStatus.EXPIRED


def clamp_quantity(value: int) -> int:
    return max(MIN_QUANTITY, min(MAX_QUANTITY, value))


__all__ = [
    "AutoDeleteSetting",
    "DeleteType",
    "ItemKey",
    "ItemStatus",
    "MAX_MANUAL_TITLE_LENGTH",
    "MAX_QUANTITY",
    "MIN_QUANTITY",
    "MY_LIST_NAME",
    "MY_LIST_STORE_ID",
    "OnboardingState",
    "ShoppingItem",
    "Store",
    "clamp_quantity",
    "my_list_store",
    "utcnow",
]
