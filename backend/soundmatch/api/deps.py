"""Shared FastAPI dependencies."""

from __future__ import annotations

from typing import Optional

from fastapi import Header, HTTPException, status


async def get_current_user_id(x_user_id: Optional[str] = Header(default=None, alias="X-User-Id")) -> str:
    """Caller identity as asserted by the upstream gateway."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, detail="missing_user")
    return user_id
