"""Sync State Record access: blob sections and write watermarks."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.clock import as_utc, isoformat, parse_timestamp
from app.models import UserSyncState

# wire name -> UserSyncState column (also the SyncPayload attribute)
BLOB_SECTIONS: dict[str, str] = {
    "preferences": "preferences",
    "wasteLog": "waste_log",
    "consumedLog": "consumed_log",
    "analytics": "analytics",
    "onboarding": "onboarding",
    "customLocations": "custom_locations",
    "userProfile": "user_profile",
}

# Merged entry-by-entry on guest migration
ARRAY_BLOBS = ("wasteLog", "consumedLog", "customLocations")
# Adopted from the guest only when the account has nothing
WHOLE_VALUE_BLOBS = ("preferences", "onboarding", "userProfile")


def get_state(db: Session, user_id: str) -> Optional[UserSyncState]:
    return db.scalar(select(UserSyncState).where(UserSyncState.user_id == user_id))


def lock_state(db: Session, user_id: str) -> Optional[UserSyncState]:
    """Re-read the record with a row lock held until the current transaction ends.

    Timestamp maps are read-modify-write; the lock keeps two writers from
    dropping each other's section stamps.
    """
    return db.scalar(
        select(UserSyncState)
        .where(UserSyncState.user_id == user_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )


def lock_or_create_state(db: Session, user_id: str, now: datetime) -> tuple[UserSyncState, bool]:
    state = lock_state(db, user_id)
    if state is not None:
        return state, False
    state = UserSyncState(user_id=user_id, section_updated_at={}, updated_at=now)
    db.add(state)
    db.flush()
    return state, True


def section_timestamps(state: UserSyncState) -> dict[str, datetime]:
    stamps = {}
    for section, raw in (state.section_updated_at or {}).items():
        parsed = parse_timestamp(raw)
        if parsed is not None:
            stamps[section] = parsed
    return stamps


def stamp_sections(state: UserSyncState, sections: Iterable[str], now: datetime) -> None:
    """Record a write to `sections` at `now`. Stamps and `updated_at` only move forward."""
    sections = list(sections)
    if not sections:
        return
    current = section_timestamps(state)
    stamps = dict(state.section_updated_at or {})
    for section in sections:
        previous = current.get(section)
        if previous is None or previous < now:
            stamps[section] = isoformat(now)
    # New dict so the JSON column is flagged dirty
    state.section_updated_at = stamps

    latest = max(parse_timestamp(v) for v in stamps.values())
    updated_at = as_utc(state.updated_at)
    if updated_at is None or updated_at < latest:
        state.updated_at = latest


def get_blob(state: Optional[UserSyncState], section: str) -> Any:
    if state is None:
        return None
    return getattr(state, BLOB_SECTIONS[section])


def set_blob(state: UserSyncState, section: str, value: Any) -> None:
    setattr(state, BLOB_SECTIONS[section], value)
