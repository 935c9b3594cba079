"""Background removal of expired items according to the auto delete setting."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from trolley import metrics
from trolley.models.shopping import AutoDeleteSetting, ItemKey, ShoppingItem, utcnow
from trolley.storage import SettingsStore, ShoppingStorage

logger = logging.getLogger(__name__)


def _due_for_removal(item: ShoppingItem, cutoff: datetime, now: datetime) -> bool:
    if not item.is_expired(now) or item.valid_until is None:
        return False
    return item.valid_until <= cutoff


class AutoDeleteSweeper:
    """Bulk delete items that have been expired for at least the retention period.

    Removed items are added to the running auto delete count so the list can
    tell the user about them with a passive notice on its next sync.
    """

    def __init__(self, storage: ShoppingStorage, settings_store: SettingsStore) -> None:
        self._storage = storage
        self._settings = settings_store

    def due_items(self, now: Optional[datetime] = None) -> List[ShoppingItem]:
        setting = self._settings.get_auto_delete_setting()
        days = setting.retention_days
        if days is None:
            return []
        now = now or utcnow()
        cutoff = now - timedelta(days=days)
        return [
            item
            for item in self._storage.query_active_items()
            if _due_for_removal(item, cutoff, now)
        ]

    def sweep(self, now: Optional[datetime] = None) -> int:
        """Run one pass and return how many items were removed."""

        setting = self._settings.get_auto_delete_setting()
        if setting is AutoDeleteSetting.OFF:
            logger.debug("Auto delete is off; skipping sweep")
            return 0

        keys: List[ItemKey] = [item.key for item in self.due_items(now)]
        if not keys:
            return 0

        removed = self._storage.persist_bulk_delete(keys)
        if removed:
            total = self._settings.increment_auto_delete_count(removed)
            metrics.AUTO_DELETED_ITEMS.inc(removed)
            logger.info(
                "Auto deleted %s expired items setting=%s pending_notice_count=%s",
                removed,
                setting.value,
                total,
            )
        return removed


__all__ = ["AutoDeleteSweeper"]
