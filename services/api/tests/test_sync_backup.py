"""Sync status, backup export and import."""

import pytest

from app.services.sync_backup import import_backup
from app.services.sync_errors import ImportTooLargeError, ImportValidationError
from app.settings import settings


def _backup(**data):
    return {"version": 1, "exportedAt": "2026-03-01T00:00:00+00:00", "data": data}


def test_status_without_record(client, headers):
    body = client.get("/api/sync/status", headers=headers).json()
    assert body["success"] is True
    assert body["hasRecord"] is False
    assert body["lastSyncedAt"] is None
    assert body["dataTypes"] == {
        "inventory": 0, "recipes": 0, "mealPlans": 0, "shoppingList": 0, "cookware": 0,
    }


def test_status_counts_and_timestamps(client, headers):
    client.post(
        "/api/sync",
        json={"data": {"inventory": [{"id": "a"}, {"id": "b"}], "cookware": [{"id": "c"}]}},
        headers=headers,
    )
    client.delete("/api/sync/inventory/items/b", headers=headers)

    body = client.get("/api/sync/status", headers=headers).json()
    assert body["hasRecord"] is True
    assert body["dataTypes"]["inventory"] == 1
    assert body["dataTypes"]["cookware"] == 1
    assert set(body["sectionTimestamps"]) == {"inventory", "cookware"}
    assert body["updatedAt"] >= max(body["sectionTimestamps"].values())


def test_export_skips_deleted_inventory(client, headers):
    client.post(
        "/api/sync",
        json={"data": {"inventory": [{"id": "a"}, {"id": "b"}], "analytics": {"opens": 1}}},
        headers=headers,
    )
    client.delete("/api/sync/inventory/items/a", headers=headers)

    body = client.get("/api/sync/export", headers=headers).json()
    assert body["version"] == 1
    assert body["exportedAt"]
    assert body["data"]["inventory"] == [{"id": "b"}]
    assert body["data"]["analytics"] == {"opens": 1}
    assert body["data"]["preferences"] is None


def test_export_then_replace_import_restores_data(client, headers, pro_headers):
    data = {
        "recipes": [{"id": "r1", "title": "Curry", "servings": 4}],
        "customLocations": [{"id": "l1", "name": "Cellar"}],
        "preferences": {"servingSize": 2},
    }
    client.post("/api/sync", json={"data": data}, headers=pro_headers)
    backup = client.get("/api/sync/export", headers=pro_headers).json()
    backup.pop("success")

    client.post("/api/sync", json={"data": {"recipes": [], "customLocations": []}}, headers=pro_headers)

    resp = client.post("/api/sync/import", json={"backup": backup, "mode": "replace"}, headers=pro_headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["mode"] == "replace"
    assert body["warnings"] == []
    assert body["summary"]["recipes"] == 1
    assert body["summary"]["preferences"] is True

    pulled = client.get("/api/sync", headers=pro_headers).json()["data"]
    for key, value in data.items():
        assert pulled[key] == value


def test_replace_import_truncates_to_plan(db_session, user, clock):
    backup = _backup(
        cookware=[{"id": f"c{n}"} for n in range(8)],
        customLocations=[{"id": "l1"}],
    )
    result = import_backup(db_session, user, backup, "replace", now=clock())

    assert result["summary"]["cookware"] == 5
    assert result["summary"]["customLocations"] is False
    assert any("cookware truncated from 8 to 5" in w for w in result["warnings"])
    assert any("customLocations" in w for w in result["warnings"])


def test_merge_import_keeps_existing_items(client, headers):
    client.post("/api/sync", json={"data": {"recipes": [{"id": "r1", "title": "Mine"}]}}, headers=headers)

    resp = client.post(
        "/api/sync/import",
        json={"backup": _backup(recipes=[{"id": "r2", "title": "Imported"}]), "mode": "merge"},
        headers=headers,
    )
    assert resp.status_code == 200
    assert resp.json()["summary"]["recipes"] == 2


def test_import_rejects_oversized_arrays(db_session, user, clock, monkeypatch):
    monkeypatch.setattr(settings, "import_max_array_size", 3)
    with pytest.raises(ImportTooLargeError) as exc:
        import_backup(db_session, user, _backup(wasteLog=[{}] * 4, recipes=[{"id": "r"}]), "merge", now=clock())

    detail = exc.value.to_detail()
    assert detail["code"] == "IMPORT_ARRAY_TOO_LARGE"
    assert detail["limit"] == 3
    assert detail["violations"] == [{"section": "wasteLog", "count": 4}]


def test_import_rejects_invalid_items(client, headers):
    bad = _backup(inventory=[{"id": "ok"}, {"name": "missing id"}], preferences={"servingSize": 0})
    resp = client.post("/api/sync/import", json={"backup": bad, "mode": "replace"}, headers=headers)
    assert resp.status_code == 400
    detail = resp.json()["detail"]
    assert detail["code"] == "IMPORT_VALIDATION_FAILED"
    assert len(detail["errors"]) == 2
    assert detail["errors"][0].startswith("inventory[1]")

    # Nothing was written
    assert client.get("/api/sync/status", headers=headers).json()["hasRecord"] is False


def test_import_error_list_is_capped(db_session, user, clock):
    with pytest.raises(ImportValidationError) as exc:
        import_backup(db_session, user, _backup(recipes=[{"title": "x"}] * 30), "merge", now=clock())
    assert len(exc.value.details["errors"]) == 20


def test_import_rejects_unknown_version(client, headers):
    backup = {"version": 2, "exportedAt": "2026-03-01T00:00:00Z", "data": {}}
    resp = client.post("/api/sync/import", json={"backup": backup, "mode": "merge"}, headers=headers)
    assert resp.status_code == 422
