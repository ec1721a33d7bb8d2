"""Shared router dependencies. Authentication itself happens upstream of this API."""

import uuid
from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.user import User
from services.catalog import Catalog, load_catalog
from services.payments import PaymentCollaborator, get_payments


async def current_user(
    x_user_id: uuid.UUID = Header(..., alias="X-User-Id"),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Resolve the authenticated user forwarded by the gateway."""
    user = await db.get(User, x_user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return user


async def catalog(db: AsyncSession = Depends(get_db)) -> Catalog:
    return await load_catalog(db)


async def payments(db: AsyncSession = Depends(get_db)) -> PaymentCollaborator:
    return get_payments(db)
