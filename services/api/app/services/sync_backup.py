"""Sync status, backup export and backup import."""

import logging
from datetime import datetime
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.clock import isoformat, utcnow
from app.models import User
from app.schemas import SyncPayload, SyncPreferences
from app.services import entitlements, section_store
from app.services.guest_merge import apply_guest_merge
from app.services.sync_errors import ImportTooLargeError, ImportValidationError
from app.services.sync_planner import ALL_SECTIONS
from app.services.sync_state import BLOB_SECTIONS, get_blob, get_state, section_timestamps
from app.services.sync_writer import apply_full_replace
from app.services.user_prefs import format_validation_error
from app.settings import settings

logger = logging.getLogger("kitchensync.sync.backup")

BACKUP_VERSION = 1

# Blobs that are lists of entries, size-checked alongside the item sections
_LIST_BLOBS = ("wasteLog", "consumedLog", "customLocations")


def get_sync_status(db: Session, user: User) -> dict[str, Any]:
    state = get_state(db, user.id)
    stamps = section_timestamps(state) if state is not None else {}
    return {
        "lastSyncedAt": isoformat(state.last_synced_at) if state is not None else None,
        "updatedAt": isoformat(state.updated_at) if state is not None else None,
        "sectionTimestamps": {name: isoformat(ts) for name, ts in stamps.items()},
        "hasRecord": state is not None,
        "dataTypes": {
            section: section_store.count_items(db, user.id, section)
            for section in section_store.SECTIONS
        },
    }


def export_backup(db: Session, user: User, now: Optional[datetime] = None) -> dict[str, Any]:
    """Every section as it would be pushed back, minus deleted inventory."""
    state = get_state(db, user.id)
    data: dict[str, Any] = {}
    for section in ALL_SECTIONS:
        if section in section_store.SECTIONS:
            items = section_store.read_section(db, user.id, section)
            if section_store.SECTIONS[section].soft_delete:
                items = [item for item in items if not item.get("deletedAt")]
            data[section] = items
        else:
            data[section] = get_blob(state, section)

    logger.info(f"EXPORT | {user.id}")
    return {
        "version": BACKUP_VERSION,
        "exportedAt": isoformat(now or utcnow()),
        "data": data,
    }


def _check_array_sizes(data: dict[str, Any]) -> None:
    limit = settings.import_max_array_size
    violations = []
    for section in (*section_store.SECTIONS, *_LIST_BLOBS):
        value = data.get(section)
        if isinstance(value, list) and len(value) > limit:
            violations.append({"section": section, "count": len(value)})
    if violations:
        raise ImportTooLargeError(limit=limit, violations=violations)


def _validate_backup_data(data: dict[str, Any]) -> list[str]:
    errors = []
    for section in section_store.SECTIONS:
        value = data.get(section)
        if value is None:
            continue
        if not isinstance(value, list):
            errors.append(f"{section}: expected a list")
            continue
        for index, raw in enumerate(value):
            try:
                section_store.parse_item(section, raw)
            except ValidationError as exc:
                errors.append(f"{section}[{index}]: {format_validation_error(exc, root=section)}")

    prefs = data.get("preferences")
    if prefs is not None:
        try:
            SyncPreferences.model_validate(prefs)
        except ValidationError as exc:
            errors.append(f"preferences: {format_validation_error(exc)}")

    for section in _LIST_BLOBS:
        value = data.get(section)
        if value is not None and not isinstance(value, list):
            errors.append(f"{section}: expected a list")
    return errors


def _truncate(data: dict[str, Any], section: str, limit: Optional[int], warnings: list[str]) -> None:
    items = data.get(section)
    if limit is None or not isinstance(items, list) or len(items) <= limit:
        return
    warnings.append(f"{section} truncated from {len(items)} to {limit} items (plan limit)")
    data[section] = items[:limit]


def import_backup(
    db: Session,
    user: User,
    backup: dict[str, Any],
    mode: str,
    now: Optional[datetime] = None,
) -> dict[str, Any]:
    """Restore a backup produced by `export_backup`.

    `replace` overwrites every section the backup holds; `merge` folds it in
    the way a guest migration would. Plan limits truncate rather than fail.
    """
    now = now or utcnow()
    data = dict(backup.get("data") or {})

    _check_array_sizes(data)
    errors = _validate_backup_data(data)
    if errors:
        raise ImportValidationError(errors)

    warnings: list[str] = []
    known = {*section_store.SECTIONS, *BLOB_SECTIONS}
    data = {key: value for key, value in data.items() if key in known}

    if mode == "replace":
        limits = entitlements.get_tier_limits(entitlements.get_user_tier(user))
        _truncate(data, "inventory", limits.max_pantry_items, warnings)
        _truncate(data, "cookware", limits.max_cookware_items, warnings)
        if data.get("customLocations") and not entitlements.check_feature_access(
            user, entitlements.CUSTOM_STORAGE_AREAS
        ):
            warnings.append("customLocations skipped: feature not available on current plan")
            data.pop("customLocations")

        payload = SyncPayload.model_validate(data)
        result = apply_full_replace(db, user, payload, now=now)
        if not result.prefs_synced:
            warnings.append(f"preferences skipped: {result.prefs_error}")
    else:
        payload = SyncPayload.model_validate(data)
        merge = apply_guest_merge(db, user, payload, now=now)
        warnings.extend(merge.warnings)

    state = get_state(db, user.id)
    summary: dict[str, Any] = {
        section: section_store.count_items(db, user.id, section)
        for section in section_store.SECTIONS
    }
    for section in BLOB_SECTIONS:
        value = get_blob(state, section)
        summary[section] = len(value) if section in _LIST_BLOBS and isinstance(value, list) else value is not None

    logger.info(f"IMPORT | {user.id} | mode={mode} warnings={len(warnings)}")
    return {
        "mode": mode,
        "importedAt": isoformat(now),
        "summary": summary,
        "warnings": warnings,
    }
