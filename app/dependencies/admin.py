from __future__ import annotations

"""
Admin guards
------------
- ensure_admin(caller): raise 403 unless the caller is an admin
- admin_caller: FastAPI dependency returning the admin `CallerContext`
"""

from fastapi import Depends, HTTPException, status

from app.core.security import CallerContext, get_caller


def ensure_admin(caller: CallerContext) -> None:
    if not caller.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")


async def admin_caller(caller: CallerContext = Depends(get_caller)) -> CallerContext:
    ensure_admin(caller)
    return caller


__all__ = ["ensure_admin", "admin_caller"]
