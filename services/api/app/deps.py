"""FastAPI dependencies for the Kitchen Sync API.

Provides:
- Database session dependency
- Current user resolution (X-User-Id header)
"""

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from .db import get_db
from .models import User


def get_current_user(
    db: Session = Depends(get_db),
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
) -> User:
    """Resolve the calling user from the X-User-Id header.

    Session issuance lives in the auth service; by the time a request reaches
    this API the gateway has already put the verified user id on the header.

    Raises:
        HTTPException 401 if the header is missing
        HTTPException 404 if no such user exists
    """
    if not x_user_id:
        raise HTTPException(
            status_code=401,
            detail={"error": "Not authenticated", "code": "NOT_AUTHENTICATED"},
        )

    user = db.get(User, x_user_id)
    if user is None:
        raise HTTPException(
            status_code=404,
            detail={"error": f"User '{x_user_id}' not found", "code": "USER_NOT_FOUND"},
        )
    return user
