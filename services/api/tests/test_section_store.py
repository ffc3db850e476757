import pytest

from app.db import transaction
from app.services import section_store
from app.services.sync_errors import InvalidCursorError
from app.schemas import SyncInventoryItem, SyncRecipe, SyncCookwareItem


def _inv(**kw):
    return SyncInventoryItem.model_validate(kw)


def test_replace_section_round_trips_known_and_extra_fields(db_session, user, clock):
    items = [
        _inv(id="a", name="Milk", quantity=2, storageLocation="fridge", brandColor="blue"),
        _inv(id="b", name="Eggs", nutrition={"kcal": 70}, customTags=["protein"]),
    ]
    with transaction(db_session):
        count = section_store.replace_section(db_session, user.id, "inventory", items, clock())
    assert count == 2

    out = section_store.read_section(db_session, user.id, "inventory")
    assert out == [
        {"id": "a", "name": "Milk", "quantity": 2, "storageLocation": "fridge", "brandColor": "blue"},
        {"id": "b", "name": "Eggs", "nutrition": {"kcal": 70}, "customTags": ["protein"]},
    ]


def test_replace_section_empty_list_clears(db_session, user, clock):
    with transaction(db_session):
        section_store.replace_section(db_session, user.id, "recipes", [SyncRecipe(id="r1", title="Soup")], clock())
    with transaction(db_session):
        section_store.replace_section(db_session, user.id, "recipes", [], clock(1))

    assert section_store.read_section(db_session, user.id, "recipes") == []
    assert section_store.count_items(db_session, user.id, "recipes") == 0


def test_replace_keeps_payload_order_and_last_duplicate_wins(db_session, user, clock):
    items = [
        _inv(id="z", name="first z"),
        _inv(id="a", name="a"),
        _inv(id="z", name="second z"),
    ]
    with transaction(db_session):
        count = section_store.replace_section(db_session, user.id, "inventory", items, clock())

    assert count == 2
    out = section_store.read_section(db_session, user.id, "inventory")
    assert [i["id"] for i in out] == ["z", "a"]
    assert out[0]["name"] == "second z"


def test_numeric_ids_are_coerced_to_strings(db_session, user, clock):
    item = SyncCookwareItem.model_validate({"id": 42, "name": "Wok"})
    assert item.id == "42"


def test_replace_failure_rolls_back_whole_section(db_session, user, clock):
    with transaction(db_session):
        section_store.replace_section(db_session, user.id, "inventory", [_inv(id="keep", name="Keep")], clock())

    with pytest.raises(RuntimeError):
        with transaction(db_session):
            section_store.replace_section(db_session, user.id, "inventory", [_inv(id="new")], clock(1))
            raise RuntimeError("connection dropped")

    out = section_store.read_section(db_session, user.id, "inventory")
    assert [i["id"] for i in out] == ["keep"]


def test_upsert_item_inserts_then_overwrites(db_session, user, clock):
    with transaction(db_session):
        _, created = section_store.upsert_item(db_session, user.id, "recipes", SyncRecipe(id="r1", title="Old"), clock())
    assert created is True

    with transaction(db_session):
        row, created = section_store.upsert_item(
            db_session, user.id, "recipes", SyncRecipe(id="r1", title="New", isFavorite=True), clock(5)
        )
    assert created is False
    assert row.title == "New"

    out = section_store.read_section(db_session, user.id, "recipes")
    assert out == [{"id": "r1", "title": "New", "isFavorite": True}]


def test_upsert_appends_new_items_after_existing(db_session, user, clock):
    with transaction(db_session):
        section_store.replace_section(
            db_session, user.id, "recipes", [SyncRecipe(id="b"), SyncRecipe(id="a")], clock()
        )
    with transaction(db_session):
        section_store.upsert_item(db_session, user.id, "recipes", SyncRecipe(id="c"), clock(1))

    assert [r["id"] for r in section_store.read_section(db_session, user.id, "recipes")] == ["b", "a", "c"]


def test_delete_item_soft_deletes_inventory(db_session, user, clock):
    with transaction(db_session):
        section_store.replace_section(db_session, user.id, "inventory", [_inv(id="a", name="Milk")], clock())
    with transaction(db_session):
        outcome = section_store.delete_item(db_session, user.id, "inventory", "a", clock(10))

    assert outcome == "soft_deleted"
    out = section_store.read_section(db_session, user.id, "inventory")
    assert out[0]["deletedAt"].startswith("2026-03-01T12:00:10")
    assert section_store.count_items(db_session, user.id, "inventory") == 0
    assert section_store.count_items(db_session, user.id, "inventory", include_deleted=True) == 1


def test_delete_item_hard_deletes_other_sections(db_session, user, clock):
    with transaction(db_session):
        section_store.replace_section(db_session, user.id, "cookware", [SyncCookwareItem(id="pan")], clock())
    with transaction(db_session):
        assert section_store.delete_item(db_session, user.id, "cookware", "pan", clock(1)) == "deleted"
        assert section_store.delete_item(db_session, user.id, "cookware", "missing", clock(1)) is None

    assert section_store.read_section(db_session, user.id, "cookware") == []


def test_sections_are_scoped_per_user(db_session, user, pro_user, clock):
    with transaction(db_session):
        section_store.replace_section(db_session, user.id, "cookware", [SyncCookwareItem(id="pan")], clock())
        section_store.replace_section(db_session, pro_user.id, "cookware", [SyncCookwareItem(id="pan")], clock())
        section_store.replace_section(db_session, user.id, "cookware", [], clock(1))

    assert section_store.read_section(db_session, user.id, "cookware") == []
    assert section_store.read_section(db_session, pro_user.id, "cookware") == [{"id": "pan"}]


def test_unknown_section_raises():
    with pytest.raises(ValueError):
        section_store.get_spec("pantry")


def test_known_fields_keep_client_json_types(db_session, user, clock):
    item = _inv(id="a", quantity=2, fdcId="12345", deletedAt="2026-01-01T00:00:00.000Z")
    with transaction(db_session):
        section_store.replace_section(db_session, user.id, "inventory", [item], clock())

    out = section_store.read_section(db_session, user.id, "inventory")[0]
    assert out == {"id": "a", "quantity": 2, "fdcId": "12345", "deletedAt": "2026-01-01T00:00:00.000Z"}
    assert isinstance(out["quantity"], int)


def _seed_recipes(db_session, user, clock, count):
    for n in range(count):
        with transaction(db_session):
            section_store.upsert_item(db_session, user.id, "recipes", SyncRecipe(id=f"r{n}"), clock(n))


def test_list_page_walks_section_with_cursor(db_session, user, clock):
    _seed_recipes(db_session, user, clock, 5)

    first = section_store.list_page(db_session, user.id, "recipes", limit=2)
    assert [i["id"] for i in first.items] == ["r0", "r1"]
    assert first.next_cursor

    second = section_store.list_page(db_session, user.id, "recipes", limit=2, cursor=first.next_cursor)
    assert [i["id"] for i in second.items] == ["r2", "r3"]

    last = section_store.list_page(db_session, user.id, "recipes", limit=2, cursor=second.next_cursor)
    assert [i["id"] for i in last.items] == ["r4"]
    assert last.next_cursor is None


def test_list_page_breaks_timestamp_ties_by_item_id(db_session, user, clock):
    with transaction(db_session):
        section_store.replace_section(
            db_session, user.id, "recipes", [SyncRecipe(id="b"), SyncRecipe(id="c"), SyncRecipe(id="a")], clock()
        )

    first = section_store.list_page(db_session, user.id, "recipes", limit=2)
    rest = section_store.list_page(db_session, user.id, "recipes", limit=2, cursor=first.next_cursor)
    assert [i["id"] for i in first.items + rest.items] == ["a", "b", "c"]


def test_list_page_skips_soft_deleted_inventory(db_session, user, clock):
    with transaction(db_session):
        section_store.replace_section(db_session, user.id, "inventory", [_inv(id="a"), _inv(id="b")], clock())
    with transaction(db_session):
        section_store.delete_item(db_session, user.id, "inventory", "a", clock(1))

    page = section_store.list_page(db_session, user.id, "inventory")
    assert [i["id"] for i in page.items] == ["b"]
    assert page.next_cursor is None


def test_cursor_round_trip_and_garbage(clock):
    cursor = section_store.encode_cursor(clock(3), "r1")
    assert section_store.decode_cursor(cursor) == (clock(3), "r1")

    for bad in ("not-a-cursor!", "e30", "WzFd"):
        with pytest.raises(InvalidCursorError):
            section_store.decode_cursor(bad)
