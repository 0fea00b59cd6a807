"""Public site settings read by every client on load."""

from decimal import Decimal

from fastapi import APIRouter, Depends
from libs.db.session import get_async_db
from services.marketplace_service.routers._helpers import (
    get_service_fee_rate,
    get_site_title,
)
from services.marketplace_service.schemas import SiteSettingsResponse
from sqlalchemy.ext.asyncio import AsyncSession

router = APIRouter(tags=["settings"])


@router.get("/settings", response_model=SiteSettingsResponse)
async def get_public_settings(
    rate: Decimal = Depends(get_service_fee_rate),
    db: AsyncSession = Depends(get_async_db),
):
    return {"commission_rate": rate, "site_title": await get_site_title(db)}
