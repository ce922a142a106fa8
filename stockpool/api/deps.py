"""
Request dependencies - caller context and lock policy
"""
from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from stockpool.core import get_db
from stockpool.schemas.common import RequestContext
from stockpool.schemas.lock import LockPolicy
from stockpool.services import LockService


def _parse_uuid(value: str, header: str) -> UUID:
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"{header} must be a UUID")


async def get_request_context(
    x_organization_id: Optional[str] = Header(None),
    x_user_id: Optional[str] = Header(None),
    x_user_role: str = Header("sales")
) -> RequestContext:
    """Caller identity as forwarded by the authenticating gateway"""
    if not x_organization_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated"
        )
    return RequestContext(
        organization_id=_parse_uuid(x_organization_id, "X-Organization-Id"),
        user_id=_parse_uuid(x_user_id, "X-User-Id") if x_user_id else None,
        role=x_user_role.lower()
    )


def get_lock_policy(
    ctx: RequestContext = Depends(get_request_context),
    db: Session = Depends(get_db)
) -> LockPolicy:
    """Lock policy read once per request"""
    return LockService.get_lock_policy(db, ctx.organization_id)
