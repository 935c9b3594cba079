"""Integration tests for the list session endpoints."""

from __future__ import annotations

from datetime import timedelta

from fastapi import status

from trolley.models.shopping import utcnow

from tests.integration.utils import auth_headers

ITEMS = [
    {"id": 1, "store": {"id": 1, "name": "Aldi"}, "title": "milk", "product_id": 101},
    {"id": 2, "store": {"id": 1, "name": "Aldi"}, "title": "butter", "product_id": 102},
    {"id": 3, "store": {"id": 2, "name": "Bakery"}, "title": "rye", "product_id": 103},
]


def _sync(client, items=ITEMS):
    response = client.post("/list/sync", json={"items": items}, headers=auth_headers())
    assert response.status_code == status.HTTP_200_OK
    return response.json()


def _kinds(payload):
    return [directive["kind"] for directive in payload["directives"]]


def _labels(payload):
    return [row["label"] for row in payload["rows"]]


def test_empty_list_has_only_the_footer(client):
    response = client.get("/list")

    assert response.status_code == status.HTTP_200_OK
    payload = response.json()
    assert [row["kind"] for row in payload["rows"]] == ["footer"]
    assert payload["undo_pending"] is False


def test_sync_groups_items_by_store(client):
    payload = _sync(client)

    assert _labels(payload) == ["[Aldi]", "( ) milk", "( ) butter", "[Bakery]", "( ) rye", "--"]
    assert payload["rows"][1]["item"]["id"] == 1
    assert payload["rows"][3]["store"] == {"id": 2, "name": "Bakery"}


def test_swipe_delete_then_undo(client):
    _sync(client)

    response = client.post("/list/rows/4/swipe-delete", headers=auth_headers())
    assert response.status_code == status.HTTP_200_OK
    payload = response.json()
    assert payload["result"] == {"header_removed": True, "was_expired": False}
    assert payload["undo_pending"] is True
    assert "undo_affordance" in _kinds(payload)
    assert "[Bakery]" not in _labels(payload)

    response = client.post("/list/undo", headers=auth_headers())
    payload = response.json()
    assert payload["result"] == {"index": 4}
    assert _labels(payload)[3:5] == ["[Bakery]", "( ) rye"]
    assert payload["undo_pending"] is False


def test_undo_without_pending_delete_conflicts(client):
    _sync(client)

    response = client.post("/list/undo", headers=auth_headers())

    assert response.status_code == status.HTTP_409_CONFLICT


def test_swipe_delete_rejects_bad_rows(client):
    _sync(client)

    missing = client.post("/list/rows/42/swipe-delete", headers=auth_headers())
    header = client.post("/list/rows/0/swipe-delete", headers=auth_headers())

    assert missing.status_code == status.HTTP_404_NOT_FOUND
    assert header.status_code == status.HTTP_400_BAD_REQUEST


def test_delete_all_requires_confirmation(client):
    _sync(client)

    response = client.post(
        "/list/mass-delete", json={"delete_type": "all"}, headers=auth_headers()
    )
    payload = response.json()
    assert _kinds(payload) == ["delete_confirmation"]
    assert payload["result"] is None

    response = client.post("/list/mass-delete/confirm", headers=auth_headers())
    payload = response.json()
    assert payload["result"] == {"delete_type": "all", "removed": 3, "expiry_driven": False}
    assert _labels(payload) == ["--"]
    assert "mass_delete_completed" in _kinds(payload)


def test_mass_delete_rejects_unknown_type(client):
    response = client.post(
        "/list/mass-delete", json={"delete_type": "some"}, headers=auth_headers()
    )

    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_drag_moves_item_between_stores(client):
    _sync(client)
    headers = auth_headers()

    client.post("/list/drag/start", headers=headers)
    response = client.post(
        "/list/drag/move", json={"from_index": 1, "to_index": 4}, headers=headers
    )
    assert response.json()["result"] == {"to_index": 4}
    client.post("/list/drag/complete", json={"from_index": 1}, headers=headers)
    payload = client.post("/list/drag/end", headers=headers).json()

    assert _labels(payload) == ["[Aldi]", "( ) butter", "[Bakery]", "( ) rye", "( ) milk", "--"]


def test_manual_items_and_edits(client):
    _sync(client)
    headers = auth_headers()

    response = client.post("/list/items", json={"titles": [" eggs ", ""]}, headers=headers)
    payload = response.json()
    (created,) = payload["result"]["created"]
    assert _labels(payload)[:2] == ["[My List]", "( ) eggs"]

    response = client.patch(
        f"/list/items/{created}",
        json={"quantity": "12", "quantity_unit": "pcs", "note": "free range"},
        headers=headers,
    )
    item = response.json()["rows"][1]["item"]
    assert (item["quantity"], item["quantity_unit"], item["note"]) == (12, "pcs", "free range")

    empty = client.patch(f"/list/items/{created}", json={}, headers=headers)
    assert empty.status_code == status.HTTP_400_BAD_REQUEST

    bad = client.patch(f"/list/items/{created}", json={"quantity": "dozen"}, headers=headers)
    assert bad.status_code == status.HTTP_400_BAD_REQUEST


def test_check_and_open_item(client):
    _sync(client)

    response = client.post("/list/items/2/check", json={"checked": True}, headers=auth_headers())
    assert response.json()["rows"][2]["item"]["is_checked"] is True

    response = client.post("/list/items/2/open")
    payload = response.json()
    assert payload["result"] == {"status": "none"}
    assert _kinds(payload) == ["open_item"]

    missing = client.post("/list/items/99/open")
    assert missing.status_code == status.HTTP_404_NOT_FOUND


def test_sweep_removes_expired_items_and_notifies(client):
    expired = dict(ITEMS[0], valid_until=(utcnow() - timedelta(days=2)).isoformat())
    _sync(client, [expired, ITEMS[1]])
    headers = auth_headers()

    assert client.post("/sweep", headers=headers).json() == {"removed": 0}

    toggled = client.post("/settings/auto-delete/toggle", headers=headers).json()
    assert toggled == {
        "setting": "immediately",
        "onboarding": "do_not_show",
        "pending_notice_count": 0,
    }

    assert client.post("/sweep", headers=headers).json() == {"removed": 1}

    payload = client.get("/list").json()
    notices = [d for d in payload["directives"] if d["kind"] == "passive_notice"]
    assert [notice["count"] for notice in notices] == [1]
    assert _labels(payload) == ["[Aldi]", "( ) butter", "--"]


def test_auto_delete_settings(client):
    assert client.get("/settings/auto-delete").json()["setting"] == "off"

    response = client.put(
        "/settings/auto-delete", json={"setting": "seven_days"}, headers=auth_headers()
    )
    assert response.json()["setting"] == "seven_days"

    response = client.put("/settings/auto-delete", json={"setting": "off"}, headers=auth_headers())
    assert response.json()["setting"] == "immediately"


def test_hidden_list_shows_nothing_until_visible(client):
    _sync(client)
    client.post("/list/rows/1/swipe-delete", headers=auth_headers())

    payload = client.post("/list/visibility", json={"hidden": True}).json()
    assert payload["undo_pending"] is False
    assert payload["directives"] == []

    payload = client.post("/list/visibility", json={"hidden": False}).json()
    assert _kinds(payload) == ["reload"]
