"""Clinic settings endpoints and policy checks."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from clinic_os.core.database import get_db
from clinic_os.core.repository import ClinicSettingsRepository
from clinic_os.scheduling.business_hours import (
    merge_settings,
    validate_appointment_movement,
    validate_business_hours,
)
from clinic_os.scheduling.conflicts import ensure_range
from clinic_os.scheduling.models import (
    BusinessHoursCheck,
    ClinicSettings,
    ClinicSettingsPatch,
    MovementCheck,
    ValidationResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/clinic-settings")


@router.get("", response_model=ClinicSettings)
async def get_clinic_settings(db: AsyncSession = Depends(get_db)) -> ClinicSettings:
    """Current settings; the defaults are stored on first read."""
    return await ClinicSettingsRepository(db).load_or_default()


@router.put("", response_model=ClinicSettings)
async def update_clinic_settings(
    patch: ClinicSettingsPatch,
    db: AsyncSession = Depends(get_db),
) -> ClinicSettings:
    repo = ClinicSettingsRepository(db)
    current = await repo.load_or_default()
    updated = merge_settings(current, patch)
    return await repo.replace(updated)


@router.post("/validate-hours", response_model=ValidationResult)
async def validate_hours(
    check: BusinessHoursCheck,
    db: AsyncSession = Depends(get_db),
) -> ValidationResult:
    """Run the business-hours validator; reports the first rule broken."""
    ensure_range(check.start_time, check.end_time)
    settings = await ClinicSettingsRepository(db).load_or_default()
    return validate_business_hours(settings, check.date, check.start_time, check.end_time)


@router.post("/validate-movement", response_model=ValidationResult)
async def validate_movement(
    check: MovementCheck,
    db: AsyncSession = Depends(get_db),
) -> ValidationResult:
    settings = await ClinicSettingsRepository(db).load_or_default()
    return validate_appointment_movement(settings, check.status)
