"""Partner availability, blocked dates and calendar day view."""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_os.config import Settings, get_settings
from clinic_os.core.database import get_db
from clinic_os.core.repository import PartnerRepository
from clinic_os.scheduling.availability import day_view
from clinic_os.scheduling.errors import NotFoundError
from clinic_os.scheduling.models import (
    AvailabilityWindow,
    BlockedPeriod,
    DaySlot,
    PartnerAvailability,
    PartnerBlockedDate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/partners")


async def _partner_repo(partner_id: str, db: AsyncSession) -> PartnerRepository:
    repo = PartnerRepository(db)
    if await repo.get_partner(partner_id) is None:
        raise NotFoundError(f"Partner {partner_id} not found")
    return repo


@router.get("/{partner_id}/availability", response_model=list[PartnerAvailability])
async def get_availability(partner_id: str, db: AsyncSession = Depends(get_db)) -> list[PartnerAvailability]:
    repo = await _partner_repo(partner_id, db)
    return await repo.list_availability(partner_id)


@router.put("/{partner_id}/availability", response_model=list[PartnerAvailability])
async def set_availability(
    partner_id: str,
    rules: list[AvailabilityWindow],
    db: AsyncSession = Depends(get_db),
) -> list[PartnerAvailability]:
    """Replace the partner's weekly working windows."""
    repo = await _partner_repo(partner_id, db)
    saved = await repo.replace_availability(partner_id, rules)
    logger.info(f"Replaced availability for partner {partner_id}: {len(saved)} rule(s)")
    return saved


@router.get("/{partner_id}/blocked-dates", response_model=list[PartnerBlockedDate])
async def list_blocked_dates(
    partner_id: str,
    date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[PartnerBlockedDate]:
    repo = await _partner_repo(partner_id, db)
    return await repo.list_blocked_dates(partner_id, date)


@router.post("/{partner_id}/blocked-dates", response_model=PartnerBlockedDate, status_code=201)
async def add_blocked_date(
    partner_id: str,
    block: BlockedPeriod,
    db: AsyncSession = Depends(get_db),
) -> PartnerBlockedDate:
    repo = await _partner_repo(partner_id, db)
    saved = await repo.add_blocked_date(partner_id, block)
    logger.info(f"Blocked {saved.blocked_date} for partner {partner_id}")
    return saved


@router.delete("/{partner_id}/blocked-dates/{blocked_id}", status_code=204, response_class=Response)
async def remove_blocked_date(
    partner_id: str,
    blocked_id: str,
    db: AsyncSession = Depends(get_db),
) -> Response:
    repo = await _partner_repo(partner_id, db)
    if not await repo.remove_blocked_date(partner_id, blocked_id):
        raise NotFoundError(f"Blocked date {blocked_id} not found for partner {partner_id}")
    return Response(status_code=204)


@router.get("/{partner_id}/day-view", response_model=list[DaySlot])
async def get_day_view(
    partner_id: str,
    date: date = Query(...),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> list[DaySlot]:
    """Per-slot status for one partner's calendar column."""
    repo = await _partner_repo(partner_id, db)
    rules = await repo.list_availability(partner_id)
    blocked = await repo.list_blocked_dates(partner_id, date)
    appointments = await repo.list_day_appointments(date, partner_id)
    return day_view(date, rules, blocked, appointments, slot_minutes=settings.slot_minutes)
