"""FastAPI dependencies wiring the booking core to a request."""

from __future__ import annotations

from datetime import datetime

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_os.config import Settings, get_settings
from clinic_os.core.database import get_db
from clinic_os.scheduling.booking import BookingService, Clock, PartnerLocks


def get_partner_locks(request: Request) -> PartnerLocks:
    """The process-wide lock registry created in the app lifespan."""
    locks = getattr(request.app.state, "partner_locks", None)
    if locks is None:
        locks = request.app.state.partner_locks = PartnerLocks()
    return locks


def get_clock() -> Clock:
    """Wall clock used for advance-booking checks and check-in timestamps."""
    return datetime.now


async def get_booking_service(
    db: AsyncSession = Depends(get_db),
    locks: PartnerLocks = Depends(get_partner_locks),
    clock: Clock = Depends(get_clock),
    settings: Settings = Depends(get_settings),
) -> BookingService:
    return BookingService(
        db,
        locks,
        clock=clock,
        override_scope=settings.encaixe_override_scope,
        slot_minutes=settings.slot_minutes,
        suggestion_count=settings.suggestion_count,
    )
