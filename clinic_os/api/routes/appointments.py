"""Appointment booking, editing and status-transition endpoints."""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from clinic_os.api.dependencies import get_booking_service
from clinic_os.scheduling.booking import BookingService
from clinic_os.scheduling.models import (
    Appointment,
    AppointmentDraft,
    AppointmentPatch,
    AppointmentStatus,
    AvailabilityResult,
    BookingOutcome,
    CancelRequest,
    RescheduleRequest,
)

router = APIRouter(prefix="/appointments")


@router.get("/availability-check", response_model=AvailabilityResult)
async def availability_check(
    partner_id: str = Query(..., alias="partnerId"),
    date: date = Query(...),
    start_time: str = Query(..., alias="startTime"),
    end_time: str = Query(..., alias="endTime"),
    room_id: Optional[str] = Query(None, alias="roomId"),
    exclude_appointment_id: Optional[str] = Query(None, alias="excludeAppointmentId"),
    service: BookingService = Depends(get_booking_service),
) -> AvailabilityResult:
    """Report every conflict for a slot without booking it."""
    return await service.check_availability(
        partner_id,
        date,
        start_time,
        end_time,
        room_id=room_id,
        exclude_appointment_id=exclude_appointment_id,
    )


@router.get("", response_model=list[Appointment])
async def list_appointments(
    date_from: Optional[date] = Query(None, alias="dateFrom"),
    date_to: Optional[date] = Query(None, alias="dateTo"),
    partner_id: Optional[str] = Query(None, alias="partnerId"),
    patient_id: Optional[str] = Query(None, alias="patientId"),
    status: Optional[AppointmentStatus] = Query(None),
    service: BookingService = Depends(get_booking_service),
) -> list[Appointment]:
    return await service.list_appointments(date_from, date_to, partner_id, patient_id, status)


@router.post("", response_model=BookingOutcome, status_code=201)
async def create_appointment(
    draft: AppointmentDraft,
    service: BookingService = Depends(get_booking_service),
) -> BookingOutcome:
    """Book an appointment; 409 with the full conflict list when the slot is taken."""
    return await service.create_appointment(draft)


@router.get("/{appointment_id}", response_model=Appointment)
async def get_appointment(
    appointment_id: str,
    service: BookingService = Depends(get_booking_service),
) -> Appointment:
    return await service.get_appointment(appointment_id)


@router.put("/{appointment_id}", response_model=BookingOutcome)
async def update_appointment(
    appointment_id: str,
    patch: AppointmentPatch,
    service: BookingService = Depends(get_booking_service),
) -> BookingOutcome:
    return await service.update_appointment(appointment_id, patch)


@router.delete("/{appointment_id}", status_code=204, response_class=Response)
async def delete_appointment(
    appointment_id: str,
    service: BookingService = Depends(get_booking_service),
) -> Response:
    await service.delete_appointment(appointment_id)
    return Response(status_code=204)


@router.get("/{appointment_id}/allowed-events")
async def allowed_events(
    appointment_id: str,
    service: BookingService = Depends(get_booking_service),
) -> dict:
    """Events the appointment's current status permits."""
    appointment = await service.get_appointment(appointment_id)
    return {
        "status": appointment.status.value,
        "events": await service.allowed_events(appointment_id),
    }


@router.post("/{appointment_id}/reschedule", response_model=BookingOutcome)
async def reschedule_appointment(
    appointment_id: str,
    request: RescheduleRequest,
    service: BookingService = Depends(get_booking_service),
) -> BookingOutcome:
    return await service.reschedule_appointment(appointment_id, request)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


@router.post("/{appointment_id}/confirm", response_model=Appointment)
async def confirm(appointment_id: str, service: BookingService = Depends(get_booking_service)) -> Appointment:
    return await service.confirm(appointment_id)


@router.post("/{appointment_id}/checkin", response_model=Appointment)
async def check_in(appointment_id: str, service: BookingService = Depends(get_booking_service)) -> Appointment:
    return await service.check_in(appointment_id)


@router.post("/{appointment_id}/checkout", response_model=Appointment)
async def check_out(appointment_id: str, service: BookingService = Depends(get_booking_service)) -> Appointment:
    return await service.check_out(appointment_id)


@router.post("/{appointment_id}/undo-checkin", response_model=Appointment)
async def undo_check_in(appointment_id: str, service: BookingService = Depends(get_booking_service)) -> Appointment:
    return await service.undo_check_in(appointment_id)


@router.post("/{appointment_id}/undo-checkout", response_model=Appointment)
async def undo_check_out(appointment_id: str, service: BookingService = Depends(get_booking_service)) -> Appointment:
    return await service.undo_check_out(appointment_id)


@router.post("/{appointment_id}/no-show", response_model=Appointment)
async def no_show(appointment_id: str, service: BookingService = Depends(get_booking_service)) -> Appointment:
    return await service.no_show(appointment_id)


@router.post("/{appointment_id}/cancel", response_model=Appointment)
async def cancel(
    appointment_id: str,
    request: Optional[CancelRequest] = None,
    service: BookingService = Depends(get_booking_service),
) -> Appointment:
    """Cancel with a mandatory reason (422 when it is missing or blank)."""
    return await service.cancel(appointment_id, request.reason if request else None)
