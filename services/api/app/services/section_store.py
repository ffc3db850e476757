"""Section Store: per-user keyed collections for the normalized sections.

Each item is stored as known columns plus an `extra_data` extension map.
Writing splits a validated schema item into both; reading merges them back so
a client gets every field it sent, including ones the server never modeled.

None of these helpers commit. Callers own the transaction boundary (see
`app.db.transaction`), which is what makes a section replace atomic.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.orm import Session

from app.core.clock import as_utc, isoformat, parse_timestamp
from app.models import (
    CookwareItem,
    InventoryItem,
    MealPlan,
    SavedRecipe,
    ShoppingItem,
)
from app.schemas import (
    SyncCookwareItem,
    SyncInventoryItem,
    SyncItem,
    SyncMealPlan,
    SyncRecipe,
    SyncShoppingItem,
)
from app.services.sync_errors import InvalidCursorError


@dataclass(frozen=True)
class SectionSpec:
    name: str            # wire name, e.g. "mealPlans"
    payload_field: str   # SyncPayload attribute, e.g. "meal_plans"
    model: type
    schema: type[SyncItem]
    soft_delete: bool = False

    @property
    def known_fields(self) -> list[tuple[str, str]]:
        """(attribute, wire alias) for every modeled field except the id."""
        return [
            (attr, field.alias or attr)
            for attr, field in self.schema.model_fields.items()
            if attr != "id"
        ]


SECTIONS: dict[str, SectionSpec] = {
    spec.name: spec
    for spec in (
        SectionSpec("inventory", "inventory", InventoryItem, SyncInventoryItem, soft_delete=True),
        SectionSpec("recipes", "recipes", SavedRecipe, SyncRecipe),
        SectionSpec("mealPlans", "meal_plans", MealPlan, SyncMealPlan),
        SectionSpec("shoppingList", "shopping_list", ShoppingItem, SyncShoppingItem),
        SectionSpec("cookware", "cookware", CookwareItem, SyncCookwareItem),
    )
}

# The four sections a full replace treats uniformly; cookware is gated separately.
CORE_SECTIONS = ("inventory", "recipes", "mealPlans", "shoppingList")


def get_spec(section: str) -> SectionSpec:
    try:
        return SECTIONS[section]
    except KeyError:
        raise ValueError(f"Unknown section '{section}'") from None


# --- Codec ---

def _column_values(spec: SectionSpec, item: SyncItem) -> dict[str, Any]:
    values = {attr: getattr(item, attr) for attr, _ in spec.known_fields}
    values["extra_data"] = dict(item.model_extra) if item.model_extra else None
    return values


def to_wire(spec: SectionSpec, row) -> dict[str, Any]:
    """Known columns (non-null only) + extension map, keyed as the client sent them."""
    out: dict[str, Any] = {"id": row.item_id}
    for attr, alias in spec.known_fields:
        value = getattr(row, attr)
        if value is not None:
            out[alias] = value
    if row.extra_data:
        for key, value in row.extra_data.items():
            out.setdefault(key, value)
    return out


def parse_item(section: str, raw: dict[str, Any]) -> SyncItem:
    return get_spec(section).schema.model_validate(raw)


# --- Reads ---

def read_section(db: Session, user_id: str, section: str) -> list[dict[str, Any]]:
    spec = get_spec(section)
    rows = db.scalars(
        select(spec.model)
        .where(spec.model.user_id == user_id)
        .order_by(spec.model.position, spec.model.item_id)
    ).all()
    return [to_wire(spec, row) for row in rows]


def get_item(db: Session, user_id: str, section: str, item_id: str):
    spec = get_spec(section)
    return db.scalar(
        select(spec.model).where(
            spec.model.user_id == user_id,
            spec.model.item_id == item_id,
        )
    )


def count_items(db: Session, user_id: str, section: str, include_deleted: bool = False) -> int:
    spec = get_spec(section)
    query = select(func.count()).select_from(spec.model).where(spec.model.user_id == user_id)
    if spec.soft_delete and not include_deleted:
        query = query.where(spec.model.deleted_at.is_(None))
    return db.scalar(query) or 0


def existing_item_ids(db: Session, user_id: str, section: str) -> set[str]:
    spec = get_spec(section)
    return set(db.scalars(
        select(spec.model.item_id).where(spec.model.user_id == user_id)
    ).all())


# --- Paged listing ---

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 200


@dataclass(frozen=True)
class SectionPage:
    items: list[dict[str, Any]]
    next_cursor: Optional[str]


def encode_cursor(updated_at: datetime, item_id: str) -> str:
    raw = json.dumps({"u": isoformat(updated_at), "i": item_id}, separators=(",", ":"))
    return base64.urlsafe_b64encode(raw.encode()).decode().rstrip("=")


def decode_cursor(cursor: str) -> tuple[datetime, str]:
    """Inverse of `encode_cursor`. Raises InvalidCursorError for anything else."""
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        decoded = json.loads(base64.urlsafe_b64decode(padded.encode()))
    except (binascii.Error, ValueError):
        raise InvalidCursorError() from None
    if not isinstance(decoded, dict):
        raise InvalidCursorError()
    updated_at = parse_timestamp(decoded.get("u"))
    item_id = decoded.get("i")
    if updated_at is None or not isinstance(item_id, str):
        raise InvalidCursorError()
    return updated_at, item_id


def list_page(
    db: Session,
    user_id: str,
    section: str,
    limit: int = DEFAULT_PAGE_SIZE,
    cursor: Optional[str] = None,
) -> SectionPage:
    """One page of a section, oldest write first, keyed on (updated_at, item_id).

    Soft-deleted items are left out.
    """
    spec = get_spec(section)
    model = spec.model
    query = select(model).where(model.user_id == user_id)
    if spec.soft_delete:
        query = query.where(model.deleted_at.is_(None))
    if cursor:
        after_ts, after_id = decode_cursor(cursor)
        query = query.where(
            or_(
                model.updated_at > after_ts,
                and_(model.updated_at == after_ts, model.item_id > after_id),
            )
        )

    rows = db.scalars(
        query.order_by(model.updated_at, model.item_id).limit(limit + 1)
    ).all()
    has_more = len(rows) > limit
    rows = rows[:limit]

    next_cursor = None
    if has_more and rows:
        last = rows[-1]
        next_cursor = encode_cursor(as_utc(last.updated_at), last.item_id)
    return SectionPage(items=[to_wire(spec, row) for row in rows], next_cursor=next_cursor)


# --- Writes ---

def dedupe_items(items: Iterable[SyncItem]) -> list[SyncItem]:
    # Same id twice in one payload: last value wins, first position kept.
    by_id: dict[str, SyncItem] = {}
    for item in items:
        by_id[item.id] = item
    return list(by_id.values())


def replace_section(
    db: Session, user_id: str, section: str, items: Iterable[SyncItem], now: datetime
) -> int:
    """Delete every item in the section and insert `items`. Returns the new count."""
    spec = get_spec(section)
    incoming = dedupe_items(items)

    db.execute(delete(spec.model).where(spec.model.user_id == user_id))
    db.add_all([
        spec.model(
            user_id=user_id,
            item_id=item.id,
            position=index,
            updated_at=now,
            **_column_values(spec, item),
        )
        for index, item in enumerate(incoming)
    ])
    db.flush()
    return len(incoming)


def upsert_item(
    db: Session, user_id: str, section: str, item: SyncItem, now: datetime
) -> tuple[Any, bool]:
    """Insert or overwrite one item keyed by (user_id, item.id).

    Returns (row, created). Items not named are never touched.
    """
    spec = get_spec(section)
    row = get_item(db, user_id, section, item.id)
    values = _column_values(spec, item)

    if row is None:
        next_position = db.scalar(
            select(func.coalesce(func.max(spec.model.position) + 1, 0))
            .where(spec.model.user_id == user_id)
        )
        row = spec.model(
            user_id=user_id,
            item_id=item.id,
            position=next_position or 0,
            updated_at=now,
            **values,
        )
        db.add(row)
        db.flush()
        return row, True

    for attr, value in values.items():
        setattr(row, attr, value)
    row.updated_at = now
    db.flush()
    return row, False


def upsert_items(
    db: Session, user_id: str, section: str, items: Iterable[SyncItem], now: datetime
) -> dict[str, int]:
    created = updated = 0
    for item in dedupe_items(items):
        _, was_created = upsert_item(db, user_id, section, item, now)
        if was_created:
            created += 1
        else:
            updated += 1
    return {"created": created, "updated": updated}


def delete_item(
    db: Session, user_id: str, section: str, item_id: str, now: datetime
) -> Optional[str]:
    """Remove one item. Inventory is soft-deleted so other devices see the tombstone.

    Returns "soft_deleted", "deleted", or None when the item did not exist.
    """
    spec = get_spec(section)
    row = get_item(db, user_id, section, item_id)
    if row is None:
        return None

    if spec.soft_delete:
        row.deleted_at = isoformat(now)
        row.updated_at = now
        db.flush()
        return "soft_deleted"

    db.delete(row)
    db.flush()
    return "deleted"
