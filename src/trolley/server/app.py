"""ASGI application exposing one shopping list session."""
# mypy: ignore-errors

from __future__ import annotations

import logging
from concurrent.futures import Future
from time import perf_counter
from typing import Any, Callable, Optional, TypeVar, Union
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import Body, Depends, FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from trolley import __version__, metrics
from trolley.config import Settings, get_settings
from trolley.db.shopping_items import upsert_items
from trolley.errors import IndexOutOfRange, InvalidUndoState, MissingBackingItem
from trolley.host import Directive
from trolley.logging_utils import configure_logging as configure_app_logging
from trolley.models.rows import HeaderRow, ItemRow, ManualItemRow, Row, RowKind, describe
from trolley.models.shopping import (
    AutoDeleteSetting,
    DeleteType,
    ItemStatus,
    OnboardingState,
    ShoppingItem,
    Store,
)
from trolley.policy.auto_delete import AutoDeleteSettingsController
from trolley.policy.sweeper import AutoDeleteSweeper
from trolley.server import deps

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _json_safe(value: Any) -> Any:
    """Convert non-serializable values into JSON-safe representations."""

    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, (list, tuple)):
        return [_json_safe(entry) for entry in value]
    if isinstance(value, dict):
        return {key: _json_safe(sub_value) for key, sub_value in value.items()}
    return repr(value)


def _configure_logging(settings: Settings) -> None:
    configure_app_logging(settings.log_level, settings.log_format, [settings.api_token or ""])


def _wait(future: Optional[Future]) -> None:
    if future is not None:
        future.result(timeout=deps.REBUILD_WAIT_SECONDS)


def _bad_request(call: Callable[[], T]) -> T:
    try:
        return call()
    except (IndexOutOfRange, MissingBackingItem, InvalidUndoState):
        raise
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


class RowView(BaseModel):
    index: int
    kind: RowKind
    label: str
    store: Optional[Store] = None
    item: Optional[ShoppingItem] = None


class ListResponse(BaseModel):
    rows: list[RowView]
    directives: list[Directive] = Field(default_factory=list)
    undo_pending: bool = False
    result: Optional[dict[str, Any]] = None


class AutoDeleteView(BaseModel):
    setting: AutoDeleteSetting
    onboarding: OnboardingState
    pending_notice_count: int


def _row_view(index: int, row: Row) -> RowView:
    store = None
    item = None
    if isinstance(row, HeaderRow):
        store = row.store
    elif isinstance(row, (ItemRow, ManualItemRow)):
        item = row.shopping_item
        store = item.store
    return RowView(index=index, kind=row.kind, label=describe(row).strip(), store=store, item=item)


def _list_response(
    state: deps.ListState, result: Optional[dict[str, Any]] = None
) -> ListResponse:
    engine = state.engine
    return ListResponse(
        rows=[_row_view(index, row) for index, row in enumerate(engine.snapshot())],
        directives=state.host.drain(),
        undo_pending=engine.undo_controller.pending is not None,
        result=result,
    )


def run_sweep(state: deps.ListState) -> int:
    """Sweep expired items and refresh the list when anything was removed."""

    removed = AutoDeleteSweeper(state.storage, state.settings_store).sweep()
    if removed:
        _wait(state.engine.refresh())
    return removed


def create_app() -> FastAPI:
    """Create and configure a FastAPI application instance."""

    settings = get_settings()
    _configure_logging(settings)

    application = FastAPI(title="Trolley Shopping List", version=__version__)
    application.state.list_state = deps.ListState(settings)

    sweep_scheduler: AsyncIOScheduler | None = None
    if settings.sweep_enabled:
        sweep_scheduler = AsyncIOScheduler()
        sweep_scheduler.add_job(
            lambda: run_sweep(application.state.list_state),
            "interval",
            seconds=settings.sweep_interval_seconds,
            max_instances=1,
            coalesce=True,
        )

        @application.on_event("startup")
        async def start_sweeper() -> None:
            assert sweep_scheduler is not None
            sweep_scheduler.start()

    @application.on_event("shutdown")
    async def shutdown_list_state() -> None:
        if sweep_scheduler is not None:
            sweep_scheduler.shutdown(wait=False)
        application.state.list_state.close()

    logger.debug("Application created with log level %s", settings.log_level)

    if settings.log_requests:
        access_logger = logging.getLogger("trolley.access")

        @application.middleware("http")
        async def log_request_response(request: Request, call_next):
            """Log request/response details without leaking sensitive data."""

            request_id = request.headers.get("X-Request-ID") or uuid4().hex
            request.state.request_id = request_id
            start = perf_counter()
            path = request.url.path
            method = request.method
            try:
                response: Response = await call_next(request)
            except Exception:
                duration_ms = (perf_counter() - start) * 1000
                access_logger.exception(
                    "HTTP %s %s status=500 duration_ms=%.2f",
                    method,
                    path,
                    duration_ms,
                    extra={"request_id": request_id},
                )
                metrics.REQUEST_COUNT.labels(method=method, path=path, status="500").inc()
                metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(
                    duration_ms / 1000.0
                )
                raise

            duration_ms = (perf_counter() - start) * 1000
            response.headers.setdefault("X-Request-ID", request_id)
            access_logger.info(
                "HTTP %s %s status=%s duration_ms=%.2f",
                method,
                path,
                response.status_code,
                duration_ms,
                extra={"request_id": request_id},
            )
            metrics.REQUEST_COUNT.labels(
                method=method,
                path=path,
                status=str(response.status_code),
            ).inc()
            metrics.REQUEST_LATENCY.labels(method=method, path=path).observe(duration_ms / 1000.0)
            return response

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        log_kwargs: dict[str, Any] = {}
        request_id = getattr(request.state, "request_id", None)
        if request_id:
            log_kwargs["extra"] = {"request_id": request_id}

        logger.warning(
            "Validation error on %s %s: %s",
            request.method,
            request.url.path,
            exc.errors(),
            **log_kwargs,
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": [_json_safe(error) for error in exc.errors()]},
        )

    @application.exception_handler(IndexOutOfRange)
    async def index_out_of_range_handler(request: Request, exc: IndexOutOfRange):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @application.exception_handler(MissingBackingItem)
    async def missing_item_handler(request: Request, exc: MissingBackingItem):
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @application.exception_handler(InvalidUndoState)
    async def invalid_undo_handler(request: Request, exc: InvalidUndoState):
        return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})

    @application.get("/list", response_model=ListResponse, summary="Current grouped rows")
    def list_rows(state: deps.ListState = Depends(deps.get_list_state)) -> ListResponse:
        return _list_response(state)

    @application.post("/list/refresh", response_model=ListResponse, summary="Reload from storage")
    def list_refresh(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        _wait(state.engine.refresh())
        return _list_response(state)

    @application.post(
        "/list/sync",
        response_model=ListResponse,
        summary="Store synced items and regroup the list",
    )
    def list_sync(
        payload: SyncRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        if payload.items:
            upsert_items(payload.items)
        _wait(state.engine.on_sync_received(state.storage.query_active_items()))
        return _list_response(state)

    @application.post("/list/swipe/start", response_model=ListResponse)
    def list_swipe_start(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        state.engine.on_swipe_started()
        return _list_response(state)

    @application.post("/list/swipe/cancel", response_model=ListResponse)
    def list_swipe_cancel(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        state.engine.on_swipe_cancelled()
        return _list_response(state)

    @application.post(
        "/list/rows/{index}/swipe-delete",
        response_model=ListResponse,
        summary="Swipe delete one row",
    )
    def list_swipe_delete(
        index: int,
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        pending = _bad_request(lambda: state.engine.on_swipe_delete(index))
        result = None
        if pending is not None:
            result = {"header_removed": pending.header_removed, "was_expired": pending.was_expired}
        return _list_response(state, result)

    @application.post("/list/undo", response_model=ListResponse, summary="Undo the swipe delete")
    def list_undo(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        undone = state.engine.on_undo_requested()
        return _list_response(state, {"index": undone.index})

    @application.post("/list/undo/dismiss", response_model=ListResponse)
    def list_undo_dismiss(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        state.engine.on_undo_dismissed()
        return _list_response(state)

    @application.post("/list/mass-delete", response_model=ListResponse, summary="Bulk delete")
    def list_mass_delete(
        payload: MassDeleteRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        outcome = state.engine.on_mass_delete_requested(payload.delete_type)
        return _list_response(state, _outcome_payload(outcome))

    @application.post("/list/mass-delete/confirm", response_model=ListResponse)
    def list_mass_delete_confirm(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        outcome = state.engine.on_mass_delete_confirmed()
        return _list_response(state, _outcome_payload(outcome))

    @application.post("/list/mass-delete/cancel", response_model=ListResponse)
    def list_mass_delete_cancel(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        state.engine.on_mass_delete_cancelled()
        return _list_response(state)

    @application.post("/list/drag/start", response_model=ListResponse)
    def list_drag_start(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        state.engine.on_drag_started()
        return _list_response(state)

    @application.post("/list/drag/move", response_model=ListResponse)
    def list_drag_move(
        payload: DragMoveRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        destination = _bad_request(
            lambda: state.engine.on_drag_move(payload.from_index, payload.to_index)
        )
        return _list_response(state, {"to_index": destination})

    @application.post("/list/drag/complete", response_model=ListResponse)
    def list_drag_complete(
        payload: DragCompleteRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        removed = state.engine.on_drag_move_completed(payload.from_index)
        return _list_response(state, {"removed_header_index": removed})

    @application.post("/list/drag/end", response_model=ListResponse)
    def list_drag_end(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        state.engine.on_drag_ended()
        return _list_response(state)

    @application.post("/list/items", response_model=ListResponse, summary="Add manual items")
    def list_add_items(
        payload: ManualItemsRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        created = state.engine.add_manual_items(payload.titles)
        return _list_response(state, {"created": [item.id for item in created]})

    @application.post("/list/items/{item_id}/open", response_model=ListResponse)
    def list_open_item(
        item_id: int,
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        item_status: ItemStatus = state.engine.on_item_opened(item_id)
        return _list_response(state, {"status": item_status.value})

    @application.post("/list/items/{item_id}/check", response_model=ListResponse)
    def list_check_item(
        item_id: int,
        payload: CheckRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        state.engine.on_item_checked(item_id, payload.checked)
        return _list_response(state)

    @application.patch("/list/items/{item_id}", response_model=ListResponse)
    def list_edit_item(
        item_id: int,
        payload: ItemEditRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        fields = payload.model_dump(exclude_unset=True)
        if not fields:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields provided for update",
            )
        engine = state.engine
        if "quantity" in fields or "quantity_unit" in fields:
            current = engine.rows.row_at(_require_index(engine, item_id)).shopping_item
            _bad_request(
                lambda: engine.edit_item_quantity(
                    item_id,
                    fields.get("quantity", str(current.quantity)),
                    fields.get("quantity_unit", current.quantity_unit),
                )
            )
        if "note" in fields:
            engine.edit_item_note(item_id, fields["note"])
        return _list_response(state)

    @application.post("/list/visibility", response_model=ListResponse)
    def list_visibility(
        payload: VisibilityRequest = Body(...),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        _wait(state.engine.on_hidden_changed(payload.hidden))
        return _list_response(state)

    @application.post("/list/animations/{item_id}/finished", response_model=ListResponse)
    def list_animation_finished(
        item_id: int,
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> ListResponse:
        state.engine.on_animation_finished(("id", item_id))
        return _list_response(state)

    @application.get("/settings/auto-delete", response_model=AutoDeleteView)
    def auto_delete_get(state: deps.ListState = Depends(deps.get_list_state)) -> AutoDeleteView:
        return _auto_delete_view(state)

    @application.post("/settings/auto-delete/toggle", response_model=AutoDeleteView)
    def auto_delete_toggle(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
        controller: AutoDeleteSettingsController = Depends(deps.get_auto_delete_settings),
    ) -> AutoDeleteView:
        controller.toggle_auto_delete()
        return _auto_delete_view(state)

    @application.put("/settings/auto-delete", response_model=AutoDeleteView)
    def auto_delete_select(
        payload: RetentionRequest = Body(...),
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
        controller: AutoDeleteSettingsController = Depends(deps.get_auto_delete_settings),
    ) -> AutoDeleteView:
        controller.select_retention(payload.setting)
        return _auto_delete_view(state)

    @application.post("/sweep", summary="Run the auto delete sweep once")
    def sweep_now(
        auth: None = Depends(deps.require_api_token),
        state: deps.ListState = Depends(deps.get_list_state),
    ) -> dict[str, int]:
        return {"removed": run_sweep(state)}

    @application.get("/metrics", include_in_schema=False)
    def metrics_endpoint() -> Response:
        payload = generate_latest()
        return Response(content=payload, media_type=CONTENT_TYPE_LATEST)

    return application


def _require_index(engine, item_id: int) -> int:
    index = engine.rows.index_of(("id", item_id))
    if index is None:
        raise MissingBackingItem(("id", item_id))
    return index


def _outcome_payload(outcome) -> Optional[dict[str, Any]]:
    if outcome is None:
        return None
    return {
        "delete_type": outcome.delete_type.value,
        "removed": outcome.persisted_count,
        "expiry_driven": outcome.was_expiry_driven,
    }


def _auto_delete_view(state: deps.ListState) -> AutoDeleteView:
    store = state.settings_store
    return AutoDeleteView(
        setting=store.get_auto_delete_setting(),
        onboarding=store.get_onboarding_state(),
        pending_notice_count=store.get_auto_delete_count(),
    )


class SyncRequest(BaseModel):
    items: list[ShoppingItem] = Field(default_factory=list)


class MassDeleteRequest(BaseModel):
    delete_type: DeleteType


class DragMoveRequest(BaseModel):
    from_index: int = Field(ge=0)
    to_index: int = Field(ge=0)


class DragCompleteRequest(BaseModel):
    from_index: int = Field(ge=0)


class ManualItemsRequest(BaseModel):
    titles: list[str] = Field(min_length=1)


class CheckRequest(BaseModel):
    checked: bool


class ItemEditRequest(BaseModel):
    quantity: Optional[Union[int, str]] = Field(default=None)
    quantity_unit: Optional[str] = Field(default=None, max_length=64)
    note: Optional[str] = Field(default=None, max_length=1000)


class VisibilityRequest(BaseModel):
    hidden: bool


class RetentionRequest(BaseModel):
    setting: AutoDeleteSetting


app = create_app()

__all__ = ["app", "create_app", "run_sweep"]
