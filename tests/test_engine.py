"""Tests for the list engine: host events in, directives out."""

from __future__ import annotations

import pytest

from trolley.engine import normalize_titles, parse_quantity
from trolley.errors import InvalidUndoState, MissingBackingItem
from trolley.host import DirectiveKind, OnboardingVariant
from trolley.listing.grouped_list import RowDiff
from trolley.models.rows import FOOTER, HeaderRow, ItemRow, ManualItemRow
from trolley.models.shopping import (
    DeleteType,
    ItemStatus,
    OnboardingState,
    my_list_store,
)

from tests.utils import ALDI, BAKERY, ManualExecutor, make_item


def _kinds(host):
    return [directive.kind for directive in host.drain()]


# ---------- swipe delete / undo ----------


def test_swipe_delete_and_undo_directives(build_engine, host):
    engine, _ = build_engine(make_item(1), make_item(2))
    before = engine.snapshot()

    engine.on_swipe_started()
    assert engine.session.is_swiping
    engine.on_swipe_delete(2)

    removed, affordance = host.drain()
    assert (removed.kind, removed.index, removed.length) == (DirectiveKind.ROWS_REMOVED, 2, 1)
    assert affordance.kind is DirectiveKind.UNDO_AFFORDANCE
    assert affordance.label == "( ) item 2"
    assert engine.session.is_swiping is False

    result = engine.on_undo_requested()

    inserted, focus = host.drain()
    assert (inserted.kind, inserted.index, inserted.length) == (DirectiveKind.ROWS_INSERTED, 2, 1)
    assert (focus.kind, focus.index) == (DirectiveKind.FOCUS_ROW, 2)
    assert result.index == 2
    assert engine.snapshot() == before
    assert ("id", 2) in engine.session.items_to_animate

    engine.on_animation_finished(("id", 2))
    assert not engine.session.items_to_animate


def test_swiping_last_item_of_group_removes_and_restores_header(build_engine, host):
    engine, _ = build_engine(make_item(1))

    engine.on_swipe_delete(1)
    removed = host.drain()[0]
    assert (removed.index, removed.length) == (0, 2)
    assert engine.snapshot() == [FOOTER]

    engine.on_undo_requested()
    inserted, focus = host.drain()
    assert (inserted.kind, inserted.index, inserted.length) == (DirectiveKind.ROWS_INSERTED, 0, 2)
    assert focus.index == 1
    assert engine.snapshot() == [HeaderRow(ALDI), ItemRow(make_item(1)), FOOTER]


def test_undo_without_pending_delete_raises(build_engine):
    engine, _ = build_engine(make_item(1))

    with pytest.raises(InvalidUndoState):
        engine.on_undo_requested()
    assert engine.session.is_undoing is False


def test_dismissing_expired_swipe_shows_onboarding(build_engine, host, settings_store):
    engine, _ = build_engine(make_item(1, expired=True), make_item(2))

    engine.on_swipe_delete(1)
    assert settings_store.get_onboarding_state() is OnboardingState.SHOW
    host.drain()

    engine.on_undo_dismissed()

    (dialog,) = host.drain()
    assert dialog.kind is DirectiveKind.ONBOARDING_DIALOG
    assert dialog.variant is OnboardingVariant.INTERACT
    assert dialog.cancelable is False
    assert settings_store.get_onboarding_state() is OnboardingState.DO_NOT_SHOW


def test_undone_expired_swipe_shows_nothing(build_engine, host, settings_store):
    engine, _ = build_engine(make_item(1, expired=True), make_item(2))

    engine.on_swipe_delete(1)
    engine.on_undo_requested()

    assert DirectiveKind.ONBOARDING_DIALOG not in _kinds(host)
    assert settings_store.get_onboarding_state() is OnboardingState.SHOW


def test_undo_affordance_times_out(build_engine, host, clock):
    engine, _ = build_engine(make_item(1, expired=True), make_item(2))
    engine.on_swipe_delete(1)
    host.drain()

    clock.advance(5)
    engine.on_swipe_started()

    assert engine.undo_controller.pending is None
    assert _kinds(host) == [DirectiveKind.ONBOARDING_DIALOG]
    with pytest.raises(InvalidUndoState):
        engine.on_undo_requested()


def test_undo_after_sync_regroups_from_storage(build_engine, host):
    engine, storage = build_engine(make_item(1), make_item(2))
    engine.on_swipe_delete(1)
    storage.add_manual_items(["eggs"], ALDI)
    engine.on_sync_received(storage.query_active_items())
    host.drain()

    result = engine.on_undo_requested()

    assert result.diff is not None
    assert engine.rows.index_of(("id", 1)) == result.index
    assert engine.rows.is_well_formed()
    assert host.drain()[-1].kind is DirectiveKind.FOCUS_ROW


def test_swipe_with_unavailable_host_still_deletes(build_engine, host):
    engine, storage = build_engine(make_item(1), make_item(2))
    host.available = False

    pending = engine.on_swipe_delete(1)

    assert pending is not None
    assert storage.get_item(("id", 1)) is None
    assert _kinds(host) == [DirectiveKind.ROWS_REMOVED]


# ---------- mass delete ----------


def test_mass_delete_on_empty_list_shows_notice(build_engine, host):
    engine, _ = build_engine()

    assert engine.on_mass_delete_requested(DeleteType.ALL) is None

    assert _kinds(host) == [DirectiveKind.EMPTY_LIST_NOTICE]
    assert engine.pending_mass_delete is None


def test_delete_all_waits_for_confirmation(build_engine, host):
    engine, storage = build_engine(make_item(1), make_item(2))

    assert engine.on_mass_delete_requested(DeleteType.ALL) is None
    assert _kinds(host) == [DirectiveKind.DELETE_CONFIRMATION]
    assert engine.pending_mass_delete is DeleteType.ALL
    assert len(engine.rows.removable_rows()) == 2

    outcome = engine.on_mass_delete_confirmed()

    assert outcome.persisted_count == 2
    assert outcome.was_expiry_driven is False
    assert engine.snapshot() == [FOOTER]
    assert storage.query_active_items() == []
    assert _kinds(host) == [DirectiveKind.RELOAD, DirectiveKind.MASS_DELETE_COMPLETED]


def test_cancelled_delete_all_keeps_rows(build_engine, host):
    engine, _ = build_engine(make_item(1), make_item(2))

    engine.on_mass_delete_requested(DeleteType.ALL)
    engine.on_mass_delete_cancelled()

    assert engine.on_mass_delete_confirmed() is None
    assert len(engine.rows.removable_rows()) == 2


def test_expiry_driven_mass_delete_shows_onboarding(build_engine, host, settings_store):
    engine, _ = build_engine(
        make_item(1, checked=True, expired=True), make_item(2), make_item(3, BAKERY)
    )

    outcome = engine.on_mass_delete_requested(DeleteType.CHECKED)

    assert outcome.was_expiry_driven is True
    assert [row.shopping_item.id for row in engine.rows.removable_rows()] == [2, 3]
    directives = host.drain()
    assert [d.kind for d in directives][-2:] == [
        DirectiveKind.MASS_DELETE_COMPLETED,
        DirectiveKind.ONBOARDING_DIALOG,
    ]
    assert directives[-1].variant is OnboardingVariant.MASS_DELETE
    assert settings_store.get_onboarding_state() is OnboardingState.DO_NOT_SHOW


def test_mass_delete_without_matches_changes_nothing(build_engine, host):
    engine, _ = build_engine(make_item(1), make_item(2))

    assert engine.on_mass_delete_requested(DeleteType.EXPIRED) is None
    assert _kinds(host) == []
    assert len(engine.rows.removable_rows()) == 2


# ---------- dragging ----------


def test_drag_destination_is_clamped_and_order_persisted(build_engine, host):
    engine, storage = build_engine(make_item(1), make_item(2), make_item(3, BAKERY))
    # [H(Aldi), 1, 2, H(Bakery), 3, F]

    engine.on_drag_started()
    assert engine.on_drag_move(1, 0) == 1
    assert engine.on_drag_move(1, 10) == 4
    assert engine.on_drag_move_completed(1) is None
    engine.on_drag_ended()

    moved = storage.get_item(("id", 1))
    assert moved.store == BAKERY
    assert moved.position == 2.0
    assert storage.get_item(("id", 2)).position == 1.0
    assert [row.shopping_item.id for row in engine.rows.removable_rows()] == [2, 3, 1]
    assert engine.rows.is_well_formed()
    assert engine.session.is_dragging is False


def test_dragging_last_item_out_removes_its_header(build_engine, host):
    engine, storage = build_engine(make_item(1), make_item(2, BAKERY), make_item(3, BAKERY))
    # [H(Aldi), 1, H(Bakery), 2, 3, F]

    engine.on_drag_started()
    engine.on_drag_move(1, 3)
    removed = engine.on_drag_move_completed(1)

    assert removed == 0
    last = host.drain()[-1]
    assert (last.kind, last.index, last.length) == (DirectiveKind.ROWS_REMOVED, 0, 1)
    assert engine.rows.is_well_formed()

    engine.on_drag_ended()
    assert [row for row in engine.snapshot() if isinstance(row, HeaderRow)] == [
        HeaderRow(BAKERY)
    ]
    assert storage.get_item(("id", 1)).store == BAKERY


def test_headers_cannot_be_dragged(build_engine):
    engine, _ = build_engine(make_item(1))

    with pytest.raises(ValueError):
        engine.on_drag_move(0, 1)


def test_mass_delete_during_drag_runs_after_the_drop(build_engine, host):
    engine, storage = build_engine(
        make_item(1), make_item(2), make_item(3, BAKERY, checked=True), make_item(4, BAKERY)
    )
    # [H(Aldi), 1, 2, H(Bakery), 3, 4, F]

    engine.on_drag_started()
    assert engine.on_drag_move(1, 5) == 5
    dragged = engine.snapshot()

    assert engine.on_mass_delete_requested(DeleteType.CHECKED) is None
    assert engine.snapshot() == dragged
    assert engine.session.is_dragging
    assert len(engine.session.deferred_actions) == 1
    assert storage.get_item(("id", 3)) is not None

    engine.on_drag_ended()

    assert storage.get_item(("id", 1)).store == BAKERY
    assert storage.get_item(("id", 3)) is None
    assert [row.shopping_item.id for row in engine.rows.removable_rows()] == [2, 4, 1]
    assert DirectiveKind.MASS_DELETE_COMPLETED in _kinds(host)
    assert engine.session.deferred_actions == []
    assert engine.rows.is_well_formed()


def test_manual_add_during_drag_keeps_the_move(build_engine):
    engine, storage = build_engine(
        make_item(1), make_item(2), make_item(3, BAKERY), make_item(4, BAKERY)
    )

    engine.on_drag_started()
    engine.on_drag_move(1, 5)
    dragged = engine.snapshot()

    created = engine.add_manual_items(["milk"])

    assert [item.title for item in created] == ["milk"]
    assert engine.snapshot() == dragged

    engine.on_drag_ended()

    assert storage.get_item(("id", 1)).store == BAKERY
    manual = [row for row in engine.snapshot() if isinstance(row, ManualItemRow)]
    assert [row.shopping_item.title for row in manual] == ["milk"]
    assert engine.rows.is_well_formed()


def test_mass_delete_during_swipe_runs_when_swipe_cancelled(build_engine):
    engine, storage = build_engine(make_item(1), make_item(2, checked=True))

    engine.on_swipe_started()
    assert engine.on_mass_delete_requested(DeleteType.CHECKED) is None
    assert len(engine.rows.removable_rows()) == 2

    engine.on_swipe_cancelled()

    assert storage.get_item(("id", 2)) is None
    assert [row.shopping_item.id for row in engine.rows.removable_rows()] == [1]


# ---------- sync / refresh ----------


def test_sync_during_drag_is_applied_when_drag_ends(build_engine, host):
    engine, storage = build_engine(make_item(1))
    engine.on_drag_started()
    storage.add_manual_items(["eggs"], ALDI)

    future = engine.on_sync_received(storage.query_active_items())

    assert future.result() is None
    assert engine.session.deferred_sync is not None
    assert len(engine.rows.removable_rows()) == 1

    engine.on_drag_ended()

    assert engine.session.deferred_sync is None
    assert len(engine.rows.removable_rows()) == 2
    assert DirectiveKind.RELOAD in _kinds(host)


def test_sync_during_swipe_is_applied_when_swipe_cancelled(build_engine):
    engine, storage = build_engine(make_item(1))
    engine.on_swipe_started()
    storage.add_manual_items(["eggs"], ALDI)

    engine.on_sync_received(storage.query_active_items())
    assert len(engine.rows.removable_rows()) == 1

    engine.on_swipe_cancelled()
    assert len(engine.rows.removable_rows()) == 2


def test_sync_shows_passive_notice_once(build_engine, host, settings_store):
    engine, storage = build_engine(make_item(1))
    settings_store.increment_auto_delete_count(3)

    engine.on_sync_received(storage.query_active_items())
    notices = host.of_kind(DirectiveKind.PASSIVE_NOTICE)
    assert [notice.count for notice in notices] == [3]
    assert settings_store.get_auto_delete_count() == 0
    host.drain()

    engine.on_sync_received(storage.query_active_items())
    assert host.of_kind(DirectiveKind.PASSIVE_NOTICE) == []


def test_dropped_passive_notice_keeps_count(build_engine, host, settings_store):
    engine, _ = build_engine(make_item(1))
    settings_store.increment_auto_delete_count(3)
    host.available = False

    engine.refresh()
    assert settings_store.get_auto_delete_count() == 3

    host.available = True
    engine.refresh()
    assert settings_store.get_auto_delete_count() == 0
    assert host.of_kind(DirectiveKind.PASSIVE_NOTICE)[0].count == 3


def test_refresh_reloads_unless_animating(build_engine, host):
    engine, _ = build_engine(make_item(1))

    engine.refresh()
    assert _kinds(host) == [DirectiveKind.RELOAD]

    engine.add_manual_items(["eggs"])
    host.drain()
    engine.refresh()
    assert DirectiveKind.RELOAD not in _kinds(host)


def test_stale_regroup_is_discarded(build_engine):
    executor = ManualExecutor()
    engine, _ = build_engine(executor=executor)

    older = engine.on_sync_received([make_item(1)])
    newer = engine.on_sync_received([make_item(1), make_item(2)])
    executor.run(order=[1, 0])

    assert isinstance(newer.result(), RowDiff)
    assert older.result() is None
    assert len(engine.rows.removable_rows()) == 2


# ---------- item interactions ----------


def test_opening_available_item(build_engine, host):
    engine, _ = build_engine(make_item(1, title="milk"))

    assert engine.on_item_opened(1) is ItemStatus.NONE

    (opened,) = host.drain()
    assert (opened.kind, opened.item_id, opened.label) == (DirectiveKind.OPEN_ITEM, 1, "milk")


def test_opening_expired_item_shows_onboarding_then_notice(build_engine, host):
    engine, _ = build_engine(make_item(1, expired=True))

    assert engine.on_item_opened(1) is ItemStatus.EXPIRED
    assert host.drain()[0].variant is OnboardingVariant.INTERACT

    engine.on_item_opened(1)
    (notice,) = host.drain()
    assert (notice.kind, notice.status) == (DirectiveKind.ITEM_NOTICE, ItemStatus.EXPIRED)


@pytest.mark.parametrize(
    ("fields", "status"),
    [
        ({"is_disabled": True}, ItemStatus.DISABLED),
        ({"in_region": False}, ItemStatus.OUT_OF_REGION),
    ],
)
def test_opening_unavailable_item_shows_notice(build_engine, host, fields, status):
    engine, _ = build_engine(make_item(1, **fields))

    assert engine.on_item_opened(1) is status
    (notice,) = host.drain()
    assert (notice.kind, notice.status) == (DirectiveKind.ITEM_NOTICE, status)


def test_opening_unknown_item_raises(build_engine):
    engine, _ = build_engine(make_item(1))

    with pytest.raises(MissingBackingItem):
        engine.on_item_opened(42)


def test_checking_item_refreshes_its_row(build_engine, host):
    engine, storage = build_engine(make_item(1))

    updated = engine.on_item_checked(1, True)

    assert updated.is_checked is True
    assert storage.get_item(("id", 1)).is_checked is True
    assert engine.rows.row_at(1).shopping_item.is_checked is True
    (refresh,) = host.drain()
    assert (refresh.kind, refresh.index) == (DirectiveKind.REFRESH_ROW, 1)


def test_checking_vanished_item_drops_row(build_engine, host):
    engine, storage = build_engine(make_item(1))
    storage.persist_delete(("id", 1))

    assert engine.on_item_checked(1, True) is None

    assert engine.snapshot() == [FOOTER]
    (removed,) = host.drain()
    assert (removed.kind, removed.index, removed.length) == (DirectiveKind.ROWS_REMOVED, 0, 2)


def test_manual_items_land_in_my_list(build_engine, host):
    engine, _ = build_engine(make_item(1))

    created = engine.add_manual_items(["  bread ", "", "x" * 300])

    assert [item.title for item in created] == ["bread", "x" * 200]
    assert engine.rows.row_at(0) == HeaderRow(my_list_store())
    assert isinstance(engine.rows.row_at(1), ManualItemRow)
    assert {item.key for item in created} <= engine.session.items_to_animate
    assert DirectiveKind.RELOAD not in _kinds(host)
    assert engine.add_manual_items(["   "]) == []


def test_quantity_and_note_edits(build_engine, host):
    engine, storage = build_engine(make_item(1))

    assert engine.edit_item_quantity(1, "5").quantity == 5
    assert engine.edit_item_quantity(1, 5000).quantity == 999
    assert engine.edit_item_quantity(1, "").quantity == 0
    assert engine.edit_item_quantity(1, 2, "kg").quantity_unit == "kg"
    assert engine.edit_item_note(1, "  ripe ones ").note == "ripe ones"
    assert len(host.of_kind(DirectiveKind.REFRESH_ROW)) == 5
    host.drain()

    engine.edit_item_quantity(1, 2)
    engine.edit_item_note(1, "ripe ones")
    assert _kinds(host) == []

    assert engine.edit_item_note(1, "   ").note is None
    assert storage.get_item(("id", 1)).note is None

    with pytest.raises(ValueError):
        engine.edit_item_quantity(1, "a few")


def test_quantity_parsing_and_title_cleanup():
    assert parse_quantity(None) == 0
    assert parse_quantity(" 7 ") == 7
    assert parse_quantity(-3) == 0
    assert normalize_titles(["", " a ", "   "]) == ["a"]


# ---------- visibility ----------


def test_hiding_list_settles_everything_silently(build_engine, host, settings_store):
    engine, storage = build_engine(make_item(1, expired=True), make_item(2), make_item(3))
    engine.on_swipe_delete(1)
    engine.on_mass_delete_requested(DeleteType.ALL)
    host.drain()

    assert engine.on_hidden_changed(True) is None

    assert engine.undo_controller.pending is None
    assert engine.pending_mass_delete is None
    assert storage.get_item(("id", 1)) is None
    assert _kinds(host) == []
    assert settings_store.get_onboarding_state() is OnboardingState.SHOW

    future = engine.on_hidden_changed(False)
    assert isinstance(future.result(), RowDiff)
    assert _kinds(host) == [DirectiveKind.RELOAD]


def test_failed_regroup_shows_error_notice(build_engine, host, monkeypatch):
    engine, storage = build_engine(make_item(1))

    def broken():
        raise RuntimeError("database is locked")

    monkeypatch.setattr(storage, "query_active_items", broken)
    future = engine.refresh()

    with pytest.raises(RuntimeError):
        future.result()
    assert _kinds(host) == [DirectiveKind.ERROR_NOTICE]
    assert len(engine.rows.removable_rows()) == 1
