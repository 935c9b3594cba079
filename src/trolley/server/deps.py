"""Dependency definitions for the Trolley API server."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from fastapi import Depends, HTTPException, Request, status

from trolley.config import Settings, get_settings
from trolley.db.settings_store import SqlSettingsStore
from trolley.db.shopping_items import SqlShoppingStorage
from trolley.engine import ShoppingListEngine
from trolley.host import RecordingHost
from trolley.policy.auto_delete import AutoDeleteSettingsController
from trolley.storage import SettingsStore, ShoppingStorage

logger = logging.getLogger(__name__)

# Seconds an endpoint waits for an off-thread regroup to land.
REBUILD_WAIT_SECONDS = 10.0


class ListState:
    """The single list session served by one application instance.

    Directives produced by the engine are recorded on ``host`` and handed to
    the client with the next response.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        storage: Optional[ShoppingStorage] = None,
        settings_store: Optional[SettingsStore] = None,
    ) -> None:
        self.storage = storage or SqlShoppingStorage()
        self.settings_store = settings_store or SqlSettingsStore()
        self.host = RecordingHost()
        self.executor = ThreadPoolExecutor(
            max_workers=settings.rebuild_workers,
            thread_name_prefix="trolley-regroup",
        )
        self.engine = ShoppingListEngine(
            self.storage,
            self.settings_store,
            self.host,
            settings=settings,
            executor=self.executor,
        )
        self._loaded = False
        self._load_lock = threading.Lock()

    def ensure_loaded(self) -> None:
        with self._load_lock:
            if self._loaded:
                return
            self.engine.refresh().result(timeout=REBUILD_WAIT_SECONDS)
            self._loaded = True
            logger.debug("Loaded list session %s", self.engine.session.session_id)

    def close(self) -> None:
        self.executor.shutdown(wait=False)


def get_list_state(request: Request) -> ListState:
    state: ListState = request.app.state.list_state
    state.ensure_loaded()
    return state


def get_auto_delete_settings(
    state: ListState = Depends(get_list_state),
) -> AutoDeleteSettingsController:
    return AutoDeleteSettingsController(state.settings_store)


def require_api_token(
    request: Request,
    settings = Depends(get_settings),
) -> None:
    """Ensure requests carry the configured API token when required."""

    token = settings.api_token
    if not token:
        return

    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.split("Bearer ")[-1].strip() == token:
        return

    if request.query_params.get("api_token") == token:
        return

    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


__all__ = [
    "ListState",
    "REBUILD_WAIT_SECONDS",
    "get_auto_delete_settings",
    "get_list_state",
    "require_api_token",
]
