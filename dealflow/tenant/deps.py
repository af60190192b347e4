"""FastAPI dependencies for tenant resolution."""

from __future__ import annotations

import hmac

from fastapi import Depends, HTTPException, Path, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..errors import NotFound
from ..models.location import Location


async def get_current_location(
    request: Request,
    slug: str = Path(..., description="Location slug"),
    db: AsyncSession = Depends(get_db),
) -> Location:
    """Resolve location slug to Location model. Raises 404 if not found."""
    result = await db.execute(select(Location).where(Location.slug == slug))
    location = result.scalar_one_or_none()
    if not location:
        raise HTTPException(status_code=404, detail=f"Location '{slug}' not found")

    expected_token = settings.tenant_access_tokens_map.get(slug)
    provided_token = request.headers.get(settings.tenant_token_header, "").strip()

    if expected_token:
        if not provided_token or not hmac.compare_digest(provided_token, expected_token):
            raise HTTPException(status_code=403, detail="Location access token required")
    elif settings.tenant_auth_required:
        raise HTTPException(status_code=403, detail="Tenant authorization required")

    return location


def ensure_owned(entity, location: Location, what: str):
    """Return ``entity`` if it belongs to ``location``; NotFound otherwise."""
    if entity is None or entity.location_id != location.id:
        raise NotFound(f"{what} not found")
    return entity
