import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..db import get_db
from ..deps import get_current_user
from ..infra.idempotency import idempotency_clear_key, idempotency_precheck, idempotency_store_result
from ..models import User
from ..schemas import BackupImportRequest, MigrateGuestRequest, SyncItemUpsertRequest, SyncPushRequest
from ..services import section_store
from ..services.guest_merge import apply_guest_merge
from ..services.sync_backup import export_backup, get_sync_status, import_backup
from ..services.sync_errors import MissingDataError, SyncError
from ..services.sync_planner import plan_sync_read
from ..services.sync_writer import apply_full_replace, apply_item_delete, apply_item_upsert

router = APIRouter()
logger = logging.getLogger("kitchensync.sync")


def _raise_http(exc: SyncError) -> NoReturn:
    raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc


def _check_section(section: str) -> None:
    if section not in section_store.SECTIONS:
        raise HTTPException(
            status_code=404,
            detail={"error": f"Unknown section '{section}'", "code": "UNKNOWN_SECTION"},
        )


@router.get("/sync")
def get_sync(
    last_synced_at: Optional[str] = Query(None, alias="lastSyncedAt"),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Pull server state: unchanged, a delta since `lastSyncedAt`, or everything."""
    return {"success": True, **plan_sync_read(db, user, last_synced_at)}


@router.post("/sync")
def push_sync(
    body: SyncPushRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Replace every section present in `data` with the client's copy."""
    try:
        result = apply_full_replace(db, user, body.data)
    except SyncError as e:
        _raise_http(e)
    return {"success": True, **result.to_response()}


@router.post("/migrate-guest-data")
async def migrate_guest_data(
    request: Request,
    body: MigrateGuestRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Merge a signed-out session's data into the account. Retry-safe with Idempotency-Key."""
    if body.data is None:
        _raise_http(MissingDataError())

    pre = await idempotency_precheck(request, scope_id=str(user.id), route_key="migrate_guest", required=False)
    if isinstance(pre, JSONResponse):
        return pre
    redis_key = req_hash = None
    if pre is not None:
        redis_key, req_hash, _ = pre

    try:
        result = apply_guest_merge(db, user, body.data, guest_id=body.guest_id)
        res = {"success": True, **result.to_response()}
        if redis_key:
            await idempotency_store_result(redis_key, req_hash, status=200, body=res)
        return res
    except SyncError as e:
        if redis_key:
            await idempotency_clear_key(redis_key)
        _raise_http(e)
    except Exception:
        logger.exception(f"Guest data migration failed for user {user.id}")
        if redis_key:
            await idempotency_clear_key(redis_key)
        raise


@router.get("/sync/status")
def sync_status(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"success": True, **get_sync_status(db, user)}


@router.get("/sync/export")
def sync_export(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Download a full backup of the user's synced data."""
    return {"success": True, **export_backup(db, user)}


@router.post("/sync/import")
def sync_import(
    body: BackupImportRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        result = import_backup(db, user, body.backup.model_dump(by_alias=True), body.mode)
    except SyncError as e:
        _raise_http(e)
    return {"success": True, **result}


@router.get("/sync/{section}/items")
def list_sync_items(
    section: str,
    limit: int = Query(section_store.DEFAULT_PAGE_SIZE, ge=1, le=section_store.MAX_PAGE_SIZE),
    cursor: Optional[str] = Query(None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Page through one section, oldest write first. Pass `nextCursor` back as `cursor`."""
    _check_section(section)
    try:
        page = section_store.list_page(db, user.id, section, limit=limit, cursor=cursor)
    except SyncError as e:
        _raise_http(e)
    return {"success": True, "items": page.items, "nextCursor": page.next_cursor}


@router.put("/sync/{section}/items")
def upsert_sync_item(
    section: str,
    body: SyncItemUpsertRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create or update a single item; stale writes are skipped, not applied."""
    _check_section(section)
    try:
        result = apply_item_upsert(db, user, section, body.data, body.client_timestamp)
    except SyncError as e:
        _raise_http(e)
    return {"success": True, **result.to_response()}


@router.delete("/sync/{section}/items/{item_id}")
def delete_sync_item(
    section: str,
    item_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    _check_section(section)
    result = apply_item_delete(db, user, section, item_id)
    return {"success": True, **result.to_response()}
