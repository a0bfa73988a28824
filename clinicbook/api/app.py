"""FastAPI application factory for the scheduling API."""

import logging
from datetime import date, datetime

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from clinicbook.api.models import (
    ActorRequest,
    ApproveRequest,
    BookRequest,
    BulkApproveRequest,
    CancelRequest,
    CheckSlotRequest,
    CompleteRequest,
    DeclineRequest,
    NoShowRequest,
    RescheduleRequest,
)
from clinicbook.models import (
    Appointment,
    AppointmentStatus,
    BookingFailure,
    CancellationReceipt,
    FailureKind,
    Slot,
)
from clinicbook.outcome import Outcome
from clinicbook.service import (
    AppointmentStatistics,
    AppointmentSummary,
    SchedulingService,
    build_service,
)
from clinicbook.storage import DependencyFailureError
from clinicbook.workflow import BulkApprovalItem

logger = logging.getLogger(__name__)

STATUS_CODES: dict[FailureKind, int] = {
    FailureKind.NOT_FOUND: 404,
    FailureKind.INVALID_REQUEST: 422,
    FailureKind.OUTSIDE_AVAILABILITY: 409,
    FailureKind.SLOT_CONFLICT: 409,
    FailureKind.INVALID_TRANSITION: 409,
    FailureKind.RESCHEDULE_LIMIT_EXCEEDED: 409,
    FailureKind.POLICY_VIOLATION: 422,
    FailureKind.DEPENDENCY_FAILURE: 503,
}


def failure_response(failure: BookingFailure) -> HTTPException:
    """HTTPException for a failed operation, with the failure as detail."""
    return HTTPException(
        status_code=STATUS_CODES.get(failure.kind, 400),
        detail=failure.model_dump(mode="json"),
    )


def unwrap(outcome: Outcome):
    """Return the outcome's value or raise the mapped HTTPException."""
    if not outcome.success:
        raise failure_response(outcome.error)
    return outcome.value


def create_app(service: SchedulingService | None = None) -> FastAPI:
    """Create FastAPI app with optional service injection.

    Args:
        service: Scheduling service. If None, builds one on the configured
            SQLite database and YAML directory.

    Returns:
        Configured FastAPI application.
    """
    if service is None:
        service = build_service()

    app = FastAPI(title="Clinic Scheduling API", version="0.1.0")
    app.state.service = service

    @app.exception_handler(DependencyFailureError)
    async def dependency_failure_handler(
        request: Request, exc: DependencyFailureError
    ) -> JSONResponse:
        logger.error(f"Dependency failure on {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content={"detail": exc.failure.model_dump(mode="json")})

    # --- Health ---

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # --- Availability ---

    @app.get("/doctors/{doctor_id}/slots", response_model=list[Slot])
    async def list_slots(doctor_id: str, day: date, available: bool | None = None) -> list[Slot]:
        """Slots for a doctor on a day, optionally filtered by availability."""
        slots = unwrap(await app.state.service.get_available_slots(doctor_id, day))
        if available is not None:
            slots = [s for s in slots if s.available == available]
        return slots

    @app.get("/doctors/{doctor_id}/slots/range", response_model=dict[date, list[Slot]])
    async def list_slot_range(
        doctor_id: str, start: date, days: int = 7
    ) -> dict[date, list[Slot]]:
        """Slots for consecutive days from start, keyed by date."""
        return unwrap(await app.state.service.get_available_slots_range(doctor_id, start, days))

    @app.get("/doctors/{doctor_id}/appointments", response_model=list[Appointment])
    async def doctor_appointments(doctor_id: str, day: date | None = None) -> list[Appointment]:
        return await app.state.service.appointments_for_doctor(doctor_id, day)

    @app.get("/patients/{patient_id}/appointments", response_model=list[Appointment])
    async def patient_appointments(
        patient_id: str, status: AppointmentStatus | None = None
    ) -> list[Appointment]:
        """Patient's appointments, newest first."""
        statuses = {status} if status else None
        return await app.state.service.appointments_for_patient(patient_id, statuses)

    # --- Appointment Routes ---

    @app.post("/appointments", response_model=Appointment, status_code=201)
    async def book(data: BookRequest) -> Appointment:
        """Book an appointment (pending approval)."""
        return unwrap(
            await app.state.service.book(
                data.patient_id,
                data.doctor_id,
                data.date_time,
                data.duration,
                data.metadata,
                appointment_type=data.appointment_type,
                priority=data.priority,
                reason_for_visit=data.reason_for_visit,
            )
        )

    @app.post("/appointments/check", response_model=Slot)
    async def check_slot(data: CheckSlotRequest) -> Slot:
        """Run the booking checks without booking; returns the covering slot."""
        return unwrap(
            await app.state.service.check_slot(
                data.patient_id,
                data.doctor_id,
                data.date_time,
                data.duration,
                appointment_type=data.appointment_type,
                priority=data.priority,
            )
        )

    @app.get("/appointments/pending", response_model=list[Appointment])
    async def pending(doctor_id: str | None = None) -> list[Appointment]:
        """Approval queue, earliest first."""
        return await app.state.service.pending_approvals(doctor_id)

    @app.get("/appointments/upcoming", response_model=list[Appointment])
    async def upcoming(
        days: int = 7, doctor_id: str | None = None, patient_id: str | None = None
    ) -> list[Appointment]:
        return await app.state.service.upcoming_appointments(days, doctor_id, patient_id)

    @app.post("/appointments/bulk-approve", response_model=list[BulkApprovalItem])
    async def bulk_approve(data: BulkApproveRequest) -> list[BulkApprovalItem]:
        return await app.state.service.bulk_approve(data.appointment_ids, data.actor, data.notes)

    @app.get("/appointments/{appointment_id}", response_model=Appointment)
    async def get_appointment(appointment_id: str) -> Appointment:
        return unwrap(await app.state.service.get_appointment(appointment_id))

    @app.get("/appointments/{appointment_id}/summary", response_model=AppointmentSummary)
    async def summary(appointment_id: str) -> AppointmentSummary:
        return unwrap(await app.state.service.summary(appointment_id))

    # --- Workflow Routes ---

    @app.post("/appointments/{appointment_id}/approve", response_model=Appointment)
    async def approve(appointment_id: str, data: ApproveRequest) -> Appointment:
        return unwrap(await app.state.service.approve(appointment_id, data.actor, data.notes))

    @app.post("/appointments/{appointment_id}/decline", response_model=Appointment)
    async def decline(appointment_id: str, data: DeclineRequest) -> Appointment:
        return unwrap(await app.state.service.decline(appointment_id, data.actor, data.reason))

    @app.post("/appointments/{appointment_id}/confirm", response_model=Appointment)
    async def confirm(appointment_id: str, data: ActorRequest) -> Appointment:
        return unwrap(await app.state.service.confirm(appointment_id, data.actor))

    @app.post("/appointments/{appointment_id}/start", response_model=Appointment)
    async def start(appointment_id: str, data: ActorRequest) -> Appointment:
        return unwrap(await app.state.service.start(appointment_id, data.actor))

    @app.post("/appointments/{appointment_id}/complete", response_model=Appointment)
    async def complete(appointment_id: str, data: CompleteRequest) -> Appointment:
        return unwrap(
            await app.state.service.complete(
                appointment_id,
                data.actor,
                data.notes,
                data.diagnosis,
                data.treatment_plan,
                data.follow_up_required,
            )
        )

    @app.post("/appointments/{appointment_id}/no-show", response_model=Appointment)
    async def no_show(appointment_id: str, data: NoShowRequest) -> Appointment:
        return unwrap(
            await app.state.service.mark_no_show(appointment_id, data.actor, data.reason)
        )

    @app.post("/appointments/{appointment_id}/reschedule", response_model=Appointment)
    async def reschedule(appointment_id: str, data: RescheduleRequest) -> Appointment:
        return unwrap(
            await app.state.service.reschedule(
                appointment_id, data.new_date_time, data.reason, data.actor
            )
        )

    @app.post("/appointments/{appointment_id}/cancel", response_model=CancellationReceipt)
    async def cancel(appointment_id: str, data: CancelRequest) -> CancellationReceipt:
        return unwrap(await app.state.service.cancel(appointment_id, data.actor, data.reason))

    # --- Statistics ---

    @app.get("/statistics", response_model=AppointmentStatistics)
    async def statistics(
        doctor_id: str | None = None,
        patient_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> AppointmentStatistics:
        return await app.state.service.statistics(doctor_id, patient_id, start, end)

    return app
