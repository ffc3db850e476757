"""Full-Replace Writer plus single-item upsert/delete.

Every normalized section is replaced in its own transaction together with its
timestamp stamp, so a failure part-way through a push leaves earlier sections
committed and the failing section untouched. Blob sections, preferences and
the onboarding flag go in one final transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.clock import as_utc, isoformat, parse_timestamp, utcnow
from app.db import transaction
from app.models import User
from app.schemas import SyncPayload
from app.services import entitlements, section_store
from app.services.sync_errors import (
    CookwareLimitError,
    FeatureNotAvailableError,
    InvalidItemError,
    PantryLimitError,
)
from app.services.sync_state import BLOB_SECTIONS, lock_or_create_state, set_blob, stamp_sections
from app.services.user_prefs import (
    apply_preferences_to_user,
    format_validation_error,
    onboarding_completed,
    validate_preferences,
)

logger = logging.getLogger("kitchensync.sync")


@dataclass
class SyncResult:
    synced_at: datetime
    prefs_synced: bool = True
    prefs_error: Optional[str] = None
    sections: list[str] = field(default_factory=list)

    def to_response(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "syncedAt": isoformat(self.synced_at),
            "prefsSynced": self.prefs_synced,
        }
        if self.prefs_error:
            out["prefsError"] = self.prefs_error
        return out


def present_sections(payload: SyncPayload) -> list[str]:
    """Wire names of the sections the client actually sent, in response order."""
    sent = payload.model_fields_set
    names = [
        name for name, spec in section_store.SECTIONS.items()
        if spec.payload_field in sent
    ]
    names += [name for name, attr in BLOB_SECTIONS.items() if attr in sent]
    return names


def check_full_replace_gates(user: User, payload: SyncPayload) -> None:
    """Raise before anything is written if the push exceeds the user's plan."""
    if payload.cookware is not None:
        limit = entitlements.cookware_limit(user)
        if limit is not None and len(payload.cookware) > limit:
            logger.warning(
                f"Cookware limit rejected for user {user.id}: {len(payload.cookware)} > {limit}"
            )
            raise CookwareLimitError(limit=limit, count=len(payload.cookware))

    if payload.custom_locations and not entitlements.check_feature_access(
        user, entitlements.CUSTOM_STORAGE_AREAS
    ):
        raise FeatureNotAvailableError(entitlements.CUSTOM_STORAGE_AREAS)


def apply_full_replace(
    db: Session,
    user: User,
    payload: SyncPayload,
    now: Optional[datetime] = None,
) -> SyncResult:
    now = now or utcnow()
    check_full_replace_gates(user, payload)

    result = SyncResult(synced_at=now)
    sent = present_sections(payload)
    if not sent:
        return result

    # Preferences never fail the push; invalid ones are reported and skipped.
    prefs: Optional[dict] = None
    if "preferences" in sent and payload.preferences is not None:
        prefs, error = validate_preferences(payload.preferences)
        if error:
            result.prefs_synced = False
            result.prefs_error = error
            logger.warning(f"Invalid sync preferences for user {user.id}: {error}")

    for section, spec in section_store.SECTIONS.items():
        if section not in sent:
            continue
        items = getattr(payload, spec.payload_field) or []
        with transaction(db):
            state, _ = lock_or_create_state(db, user.id, now)
            count = section_store.replace_section(db, user.id, section, items, now)
            stamp_sections(state, [section], now)
        result.sections.append(section)
        logger.info(f"REPLACE | {user.id} | {section}={count}")

    blobs = []
    with transaction(db):
        state, _ = lock_or_create_state(db, user.id, now)
        for section, attr in BLOB_SECTIONS.items():
            if section not in sent:
                continue
            if section == "preferences":
                if prefs is None:
                    continue
                set_blob(state, section, prefs)
                apply_preferences_to_user(user, prefs)
            else:
                set_blob(state, section, getattr(payload, attr))
            blobs.append(section)
        stamp_sections(state, blobs, now)

        if "onboarding" in blobs and onboarding_completed(payload.onboarding):
            user.has_completed_onboarding = True

    result.sections.extend(blobs)
    logger.info(f"SYNC | {user.id} | sections={result.sections} prefs_synced={result.prefs_synced}")
    return result


# --- Single items ---

@dataclass
class ItemResult:
    operation: str
    item_id: str
    section: str
    reason: Optional[str] = None

    def to_response(self) -> dict[str, Any]:
        out = {"operation": self.operation, "itemId": self.item_id, "section": self.section}
        if self.reason:
            out["reason"] = self.reason
        return out


def apply_item_upsert(
    db: Session,
    user: User,
    section: str,
    data: dict[str, Any],
    client_timestamp: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ItemResult:
    """Upsert one item. A write older than what the server holds is skipped."""
    now = now or utcnow()
    try:
        item = section_store.parse_item(section, data)
    except ValidationError as exc:
        raise InvalidItemError(section, [format_validation_error(exc, root=section)]) from exc

    client_ts = parse_timestamp(client_timestamp) if client_timestamp else None
    existing = section_store.get_item(db, user.id, section, item.id)

    if existing is not None and client_ts is not None:
        stored_ts = as_utc(existing.updated_at)
        if stored_ts is not None and stored_ts > client_ts:
            logger.info(f"SKIP | {user.id} | {section}/{item.id} stale")
            return ItemResult("skipped", item.id, section, reason="stale_update")

    if existing is None and section == "cookware":
        check = entitlements.check_cookware_limit(db, user)
        if not check.allowed:
            raise CookwareLimitError(
                limit=check.limit,
                count=section_store.count_items(db, user.id, "cookware") + 1,
            )

    if existing is None and section == "inventory":
        check = entitlements.check_pantry_limit(db, user)
        if not check.allowed:
            raise PantryLimitError(limit=check.limit, remaining=check.remaining)

    with transaction(db):
        state, _ = lock_or_create_state(db, user.id, now)
        row, created = section_store.upsert_item(db, user.id, section, item, client_ts or now)
        stamp_sections(state, [section], now)

    return ItemResult("created" if created else "updated", item.id, section)


def apply_item_delete(
    db: Session,
    user: User,
    section: str,
    item_id: str,
    now: Optional[datetime] = None,
) -> ItemResult:
    now = now or utcnow()
    section_store.get_spec(section)

    with transaction(db):
        outcome = section_store.delete_item(db, user.id, section, item_id, now)
        if outcome is not None:
            state, _ = lock_or_create_state(db, user.id, now)
            stamp_sections(state, [section], now)

    return ItemResult(outcome or "not_found", item_id, section)
