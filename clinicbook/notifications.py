"""Notification dispatch for appointment lifecycle events.

Delivery is best-effort: the Notifier bounds every send with a timeout
and logs failures instead of raising them, so a committed transition
is never undone by a notification problem.
"""

import asyncio
import logging
from datetime import datetime
from enum import Enum
from typing import Protocol, runtime_checkable

import httpx
from pydantic import BaseModel, Field

from clinicbook.config import NOTIFY_TIMEOUT, WEBHOOK_URL
from clinicbook.models import Appointment, Role

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    """Notification types sent by the scheduling core."""

    BOOKING_CONFIRMATION = "appointment_confirmation"
    APPROVED = "appointment_approved"
    DECLINED = "appointment_declined"
    CONFIRMED = "appointment_confirmed"
    STARTED = "appointment_started"
    COMPLETED = "appointment_completed"
    NO_SHOW = "appointment_no_show"
    RESCHEDULED = "appointment_rescheduled"
    CANCELLED = "appointment_cancelled"


class Notification(BaseModel):
    """One outbound message."""

    recipient_id: str
    recipient_type: str
    message: str
    kind: str
    created_at: datetime = Field(default_factory=datetime.now)


@runtime_checkable
class NotificationDispatcher(Protocol):
    """Delivery collaborator. Return values are ignored by the core."""

    async def send(
        self, recipient_id: str, recipient_type: str, message: str, kind: str
    ) -> None: ...


class LoggingDispatcher:
    """Writes notifications to the log. Default when nothing else is configured."""

    async def send(
        self, recipient_id: str, recipient_type: str, message: str, kind: str
    ) -> None:
        logger.info(f"📨 [{kind}] to {recipient_type} {recipient_id}: {message}")


class OutboxDispatcher:
    """Keeps sent notifications in memory, newest last."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(
        self, recipient_id: str, recipient_type: str, message: str, kind: str
    ) -> None:
        self.sent.append(
            Notification(
                recipient_id=recipient_id,
                recipient_type=recipient_type,
                message=message,
                kind=kind,
            )
        )

    def for_recipient(self, recipient_id: str) -> list[Notification]:
        return [n for n in self.sent if n.recipient_id == recipient_id]

    def clear(self) -> None:
        self.sent.clear()


class WebhookDispatcher:
    """POSTs each notification as JSON to a webhook URL."""

    def __init__(
        self,
        url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = NOTIFY_TIMEOUT,
    ):
        self.url = url
        self._client = client
        self._timeout = timeout

    async def send(
        self, recipient_id: str, recipient_type: str, message: str, kind: str
    ) -> None:
        payload = Notification(
            recipient_id=recipient_id,
            recipient_type=recipient_type,
            message=message,
            kind=kind,
        ).model_dump(mode="json")
        if self._client is not None:
            response = await self._client.post(self.url, json=payload, timeout=self._timeout)
            response.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()


def default_dispatcher() -> NotificationDispatcher:
    """Webhook dispatcher if CLINICBOOK_WEBHOOK_URL is set, else logging."""
    if WEBHOOK_URL:
        return WebhookDispatcher(WEBHOOK_URL)
    return LoggingDispatcher()


class Notifier:
    """Best-effort wrapper around a NotificationDispatcher."""

    def __init__(self, dispatcher: NotificationDispatcher, timeout: float = NOTIFY_TIMEOUT):
        self.dispatcher = dispatcher
        self.timeout = timeout

    async def notify(
        self,
        recipient_id: str,
        recipient_type: Role | str,
        message: str,
        kind: NotificationKind,
    ) -> bool:
        """Send one notification.

        Returns:
            True if the dispatcher accepted it, False on error or timeout
        """
        recipient = Role(recipient_type).value
        try:
            await asyncio.wait_for(
                self.dispatcher.send(recipient_id, recipient, message, kind.value),
                self.timeout,
            )
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"Notification {kind.value} to {recipient} {recipient_id} timed out after {self.timeout}s"
            )
        except Exception as e:
            logger.warning(f"Notification {kind.value} to {recipient} {recipient_id} failed: {e}")
        return False


# =============================================================================
# Recipients and messages
# =============================================================================


def counter_party(appointment: Appointment, actor: str) -> tuple[str, Role]:
    """Who should hear about an action performed by actor.

    The patient's counter-party is the doctor and vice versa. Actions by
    anyone else (the approval authority) are reported to the patient.
    """
    if actor == appointment.patient_id:
        return appointment.doctor_id, Role.DOCTOR
    return appointment.patient_id, Role.PATIENT


def _when(appointment: Appointment) -> str:
    return appointment.date_time.strftime("%Y-%m-%d %H:%M")


def render_message(
    kind: NotificationKind,
    appointment: Appointment,
    note: str = "",
) -> str:
    """Human-readable notification text for a lifecycle event."""
    when = _when(appointment)
    messages = {
        NotificationKind.BOOKING_CONFIRMATION: f"Your appointment request for {when} has been received and is awaiting approval.",
        NotificationKind.APPROVED: f"Your appointment on {when} has been approved.",
        NotificationKind.DECLINED: f"Your appointment request for {when} has been declined.",
        NotificationKind.CONFIRMED: f"The appointment on {when} has been confirmed by the patient.",
        NotificationKind.STARTED: f"Your appointment on {when} has started.",
        NotificationKind.COMPLETED: f"Your appointment on {when} has been completed.",
        NotificationKind.NO_SHOW: f"The appointment on {when} was marked as a no-show.",
        NotificationKind.RESCHEDULED: f"The appointment has been moved to {when}.",
        NotificationKind.CANCELLED: f"The appointment on {when} has been cancelled.",
    }
    message = messages[kind]
    if note:
        message = f"{message} {note}"
    return message
