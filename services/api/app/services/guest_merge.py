"""Guest-Merge Writer.

Folds the data a user collected before signing in into their account without
removing anything the account already holds. Items are upserted by id, array
blobs gain the entries they lack, and whole-value blobs are only adopted when
the account has none. Plan limits never fail a merge; over-limit data is cut.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.clock import isoformat, utcnow
from app.db import transaction
from app.models import User
from app.schemas import SyncCookwareItem, SyncPayload
from app.services import entitlements, section_store
from app.services.sync_state import (
    ARRAY_BLOBS,
    BLOB_SECTIONS,
    WHOLE_VALUE_BLOBS,
    get_blob,
    get_state,
    lock_or_create_state,
    set_blob,
    stamp_sections,
)
from app.services.user_prefs import apply_preferences_to_user, onboarding_completed, validate_preferences

logger = logging.getLogger("kitchensync.sync.merge")


@dataclass
class MergeResult:
    migrated_at: datetime
    merged: bool
    warnings: list[str] = field(default_factory=list)
    summary: dict[str, Any] = field(default_factory=dict)

    def to_response(self) -> dict[str, Any]:
        return {"migratedAt": isoformat(self.migrated_at), "merged": self.merged}


def fit_cookware_to_quota(
    db: Session, user: User, items: list[SyncCookwareItem]
) -> tuple[list[SyncCookwareItem], int]:
    """Keep every item already on the account plus as many new ones as fit.

    Returns (items to upsert, number dropped).
    """
    items = section_store.dedupe_items(items)
    limit = entitlements.cookware_limit(user)
    if limit is None:
        return items, 0

    existing = section_store.existing_item_ids(db, user.id, "cookware")
    slots = max(0, limit - len(existing))
    kept = []
    dropped = 0
    for item in items:
        if item.id in existing:
            kept.append(item)
        elif slots > 0:
            kept.append(item)
            slots -= 1
        else:
            dropped += 1
    return kept, dropped


def _entry_id(entry: Any) -> Optional[Any]:
    if isinstance(entry, dict):
        return entry.get("id")
    return None


def merge_entries(existing: Any, incoming: Any) -> Any:
    """Append incoming entries the existing list lacks. Never removes anything."""
    if not isinstance(incoming, list) or not incoming:
        return existing
    if existing is None:
        existing = []
    if not isinstance(existing, list):
        # Not ours to reshape
        return existing

    merged = list(existing)
    seen_ids = {_entry_id(e) for e in merged if _entry_id(e) is not None}
    for entry in incoming:
        entry_id = _entry_id(entry)
        if entry_id is not None:
            if entry_id in seen_ids:
                continue
            seen_ids.add(entry_id)
            merged.append(entry)
        elif entry not in merged:
            merged.append(entry)
    return merged


def apply_guest_merge(
    db: Session,
    user: User,
    payload: SyncPayload,
    guest_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MergeResult:
    now = now or utcnow()
    had_record = get_state(db, user.id) is not None
    result = MergeResult(migrated_at=now, merged=had_record)
    logger.info(f"Starting guest data migration for user {user.id} (guest={guest_id}, merged={had_record})")

    # --- Gates degrade instead of failing ---
    cookware = payload.cookware
    if cookware:
        cookware, dropped = fit_cookware_to_quota(db, user, cookware)
        if dropped:
            logger.info(f"Truncated guest cookware for user {user.id}: dropped {dropped}")
            result.warnings.append(f"cookware truncated to plan limit ({dropped} item(s) dropped)")

    custom_locations = payload.custom_locations
    if custom_locations and not entitlements.check_feature_access(user, entitlements.CUSTOM_STORAGE_AREAS):
        logger.info(f"Skipping custom locations for user {user.id}: feature not available")
        result.warnings.append("customLocations skipped: feature not available on current plan")
        custom_locations = None

    # --- Normalized sections: item-level upsert ---
    for section, spec in section_store.SECTIONS.items():
        items = cookware if section == "cookware" else getattr(payload, spec.payload_field)
        if not items:
            continue
        with transaction(db):
            state, _ = lock_or_create_state(db, user.id, now)
            counts = section_store.upsert_items(db, user.id, section, items, now)
            stamp_sections(state, [section], now)
        result.summary[section] = counts
        logger.info(f"MERGE | {user.id} | {section} {counts}")

    # --- Blobs ---
    adopted_prefs = None
    with transaction(db):
        state, _ = lock_or_create_state(db, user.id, now)
        changed = []

        for section in ARRAY_BLOBS:
            incoming = custom_locations if section == "customLocations" else getattr(payload, BLOB_SECTIONS[section])
            current = get_blob(state, section)
            merged = merge_entries(current, incoming)
            if merged != current:
                set_blob(state, section, merged)
                changed.append(section)

        for section in WHOLE_VALUE_BLOBS:
            incoming = getattr(payload, BLOB_SECTIONS[section])
            if incoming is None or get_blob(state, section) is not None:
                continue
            if section == "preferences":
                prefs, error = validate_preferences(incoming)
                if error:
                    logger.warning(f"Skipping invalid guest preferences for user {user.id}: {error}")
                    result.warnings.append(f"preferences skipped: {error}")
                    continue
                adopted_prefs = incoming = prefs
            set_blob(state, section, incoming)
            changed.append(section)

        # Analytics has no merge rule; adopt it like a whole value.
        if payload.analytics is not None and state.analytics is None:
            state.analytics = payload.analytics
            changed.append("analytics")

        stamp_sections(state, changed, now)
        if adopted_prefs is not None:
            apply_preferences_to_user(user, adopted_prefs)
        if onboarding_completed(payload.onboarding):
            user.has_completed_onboarding = True

    result.summary["blobs"] = changed
    logger.info(f"Successfully migrated guest data for user {user.id}")
    return result
