"""Tests for clinicbook.notifications module."""

import asyncio
import logging
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from clinicbook.models import Appointment, ApprovalWorkflow, Role
from clinicbook.notifications import (
    LoggingDispatcher,
    NotificationKind,
    Notifier,
    OutboxDispatcher,
    WebhookDispatcher,
    counter_party,
    default_dispatcher,
    render_message,
)

T10 = datetime(2024, 1, 15, 10, 0)


@pytest.fixture
def appointment() -> Appointment:
    return Appointment(
        appointment_id="APT1",
        patient_id="PAT001",
        doctor_id="DOC001",
        date_time=T10,
        approval_workflow=ApprovalWorkflow(requested_date=T10),
        created_at=T10,
        updated_at=T10,
    )


class TestCounterParty:
    def test_patient_action_goes_to_doctor(self, appointment):
        assert counter_party(appointment, "PAT001") == ("DOC001", Role.DOCTOR)

    def test_doctor_action_goes_to_patient(self, appointment):
        assert counter_party(appointment, "DOC001") == ("PAT001", Role.PATIENT)

    def test_authority_action_goes_to_patient(self, appointment):
        assert counter_party(appointment, "MGR001") == ("PAT001", Role.PATIENT)


class TestRenderMessage:
    def test_every_kind_renders(self, appointment):
        for kind in NotificationKind:
            assert "2024-01-15 10:00" in render_message(kind, appointment)

    def test_note_appended(self, appointment):
        message = render_message(NotificationKind.DECLINED, appointment, "Reason: full")
        assert message.endswith("Reason: full")


class TestNotifier:
    """Delivery is best-effort: failures are logged and swallowed."""

    @pytest.mark.asyncio
    async def test_delivers(self):
        outbox = OutboxDispatcher()
        notifier = Notifier(outbox, timeout=1.0)

        sent = await notifier.notify("PAT001", Role.PATIENT, "Hello", NotificationKind.APPROVED)

        assert sent is True
        assert outbox.sent[0].recipient_type == "patient"
        assert outbox.sent[0].kind == "appointment_approved"
        assert outbox.for_recipient("PAT001") == outbox.sent

    @pytest.mark.asyncio
    async def test_dispatcher_error_swallowed(self, caplog):
        dispatcher = AsyncMock()
        dispatcher.send.side_effect = ConnectionError("refused")
        notifier = Notifier(dispatcher, timeout=1.0)

        with caplog.at_level(logging.WARNING, logger="clinicbook.notifications"):
            sent = await notifier.notify("PAT001", "patient", "Hi", NotificationKind.APPROVED)

        assert sent is False
        assert "refused" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout_swallowed(self, caplog):
        class SlowDispatcher:
            async def send(self, recipient_id, recipient_type, message, kind):
                await asyncio.sleep(5)

        notifier = Notifier(SlowDispatcher(), timeout=0.01)

        with caplog.at_level(logging.WARNING, logger="clinicbook.notifications"):
            sent = await notifier.notify("DOC001", Role.DOCTOR, "Hi", NotificationKind.CONFIRMED)

        assert sent is False
        assert "timed out" in caplog.text

    @pytest.mark.asyncio
    async def test_logging_dispatcher(self, caplog):
        with caplog.at_level(logging.INFO, logger="clinicbook.notifications"):
            await LoggingDispatcher().send("PAT001", "patient", "Hello", "appointment_approved")
        assert "PAT001" in caplog.text


class TestWebhookDispatcher:
    @pytest.mark.asyncio
    async def test_posts_json_payload(self):
        response = MagicMock()
        client = AsyncMock()
        client.post.return_value = response
        dispatcher = WebhookDispatcher("https://hooks.example/notify", client=client)

        await dispatcher.send("PAT001", "patient", "Hello", "appointment_approved")

        client.post.assert_awaited_once()
        args, kwargs = client.post.call_args
        assert args[0] == "https://hooks.example/notify"
        assert kwargs["json"]["recipient_id"] == "PAT001"
        assert kwargs["json"]["kind"] == "appointment_approved"
        response.raise_for_status.assert_called_once()

    @pytest.mark.asyncio
    async def test_http_error_swallowed_by_notifier(self):
        request = httpx.Request("POST", "https://hooks.example/notify")
        client = AsyncMock()
        client.post.return_value = httpx.Response(500, request=request)
        notifier = Notifier(WebhookDispatcher("https://hooks.example/notify", client=client))

        sent = await notifier.notify("PAT001", Role.PATIENT, "Hi", NotificationKind.APPROVED)

        assert sent is False

    def test_default_dispatcher_uses_webhook_when_configured(self):
        with patch("clinicbook.notifications.WEBHOOK_URL", "https://hooks.example/notify"):
            assert isinstance(default_dispatcher(), WebhookDispatcher)

    def test_default_dispatcher_logs_without_webhook(self):
        with patch("clinicbook.notifications.WEBHOOK_URL", None):
            assert isinstance(default_dispatcher(), LoggingDispatcher)
