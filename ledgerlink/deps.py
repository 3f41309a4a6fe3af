"""Annotated FastAPI dependencies shared by the routers.

Usage:
    from ledgerlink.deps import CurrentUserId, DbSession

    async def detect(db: DbSession, user_id: CurrentUserId): ...
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ledgerlink.auth import get_current_user_id
from ledgerlink.database import get_db

DbSession = Annotated[AsyncSession, Depends(get_db)]
CurrentUserId = Annotated[UUID, Depends(get_current_user_id)]

__all__ = ["CurrentUserId", "DbSession"]
