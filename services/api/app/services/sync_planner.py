"""Delta Planner: answers a client poll with unchanged, delta, or full data.

The client sends the `serverTimestamp` of its previous sync as its watermark.
Sections whose stamp is newer than the watermark are sent whole; everything
else is left out of the payload entirely (absent, not empty). Cookware is
always sent in full.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.clock import as_utc, isoformat, parse_timestamp, utcnow
from app.models import User, UserSyncState
from app.services import section_store
from app.services.sync_state import BLOB_SECTIONS, get_blob, get_state, section_timestamps

logger = logging.getLogger("kitchensync.sync.read")

# Response order
ALL_SECTIONS = (*section_store.CORE_SECTIONS, "cookware", *BLOB_SECTIONS)


def _read_section(db: Session, state: UserSyncState, section: str) -> Any:
    if section in section_store.SECTIONS:
        return section_store.read_section(db, state.user_id, section)
    return get_blob(state, section)


def _acknowledge(db: Session, state: UserSyncState) -> None:
    """The client now holds everything up to `updated_at`; echo that from now on."""
    if as_utc(state.last_synced_at) != as_utc(state.updated_at):
        state.last_synced_at = state.updated_at
        db.commit()


def plan_sync_read(
    db: Session,
    user: User,
    last_synced_at: Optional[str] = None,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    server_timestamp = isoformat(now or utcnow())
    state = get_state(db, user.id)

    if state is None:
        data: dict[str, Any] = {section: [] for section in section_store.CORE_SECTIONS}
        data["cookware"] = section_store.read_section(db, user.id, "cookware")
        return {
            "data": data,
            "lastSyncedAt": None,
            "serverTimestamp": server_timestamp,
        }

    watermark = None
    if last_synced_at:
        watermark = parse_timestamp(last_synced_at)
        if watermark is None:
            logger.warning(
                f"Invalid lastSyncedAt '{last_synced_at}' for user {user.id}, falling back to full sync"
            )

    if watermark is not None:
        if as_utc(state.updated_at) <= watermark:
            return {
                "data": None,
                "unchanged": True,
                "serverTimestamp": server_timestamp,
                "lastSyncedAt": isoformat(state.last_synced_at),
            }

        stamps = section_timestamps(state)
        data = {}
        for section in ALL_SECTIONS:
            if section == "cookware":
                continue
            stamp = stamps.get(section)
            if stamp is not None and stamp > watermark:
                data[section] = _read_section(db, state, section)
        data["cookware"] = section_store.read_section(db, user.id, "cookware")

        logger.info(f"DELTA | {user.id} | sections={sorted(data)}")
        _acknowledge(db, state)
        return {
            "data": data,
            "delta": True,
            "serverTimestamp": server_timestamp,
            "lastSyncedAt": isoformat(state.last_synced_at),
        }

    data = {section: _read_section(db, state, section) for section in ALL_SECTIONS}
    logger.info(f"FULL | {user.id}")
    _acknowledge(db, state)
    return {
        "data": data,
        "lastSyncedAt": isoformat(state.updated_at),
        "serverTimestamp": server_timestamp,
    }
