"""
Tests for status checks, polling and reconciliation
"""

import asyncio
import pytest
from datetime import timedelta

from call_orchestrator.core.exceptions import CallNotFoundError, StatusCheckTimeoutError
from call_orchestrator.models.call import CallSession, CallStatus, utcnow
from call_orchestrator.models.provider import TwilioCallInfo


async def dispatched(manager, make_intent) -> CallSession:
    result = await manager.initiate_call(make_intent())
    assert result.success is True
    return await manager.repositories.call_logs.get_session(result.call_log_id)


class TestStatusNormalisation:
    """Tests for CallStatus.normalize"""

    @pytest.mark.parametrize("raw,expected", [
        ("completed", CallStatus.COMPLETED),
        ("Completed", CallStatus.COMPLETED),
        ("COMPLETED", CallStatus.COMPLETED),
        ("in_progress", CallStatus.IN_PROGRESS),
        ("No-Answer", CallStatus.NO_ANSWER),
        ("cancelled", CallStatus.CANCELED),
    ])
    def test_normalize(self, raw, expected):
        assert CallStatus.normalize(raw) == expected

    def test_unknown_status(self):
        assert CallStatus.normalize("on-hold") is None
        assert CallStatus.normalize(None) is None


class TestCheckStatus:
    """Tests for CallStatusTracker.check_status"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reported", ["Completed", "COMPLETED", "completed"])
    async def test_completion_clears_guard(self, manager, make_intent, mock_twilio_service, reported):
        session = await dispatched(manager, make_intent)
        mock_twilio_service.get_call.return_value = TwilioCallInfo(
            sid=session.call_sid, status=reported, duration="37", price="-0.0140"
        )

        updated = await manager.tracker.check_status(session.call_sid)

        assert updated.status == CallStatus.COMPLETED
        assert updated.duration_seconds == 37
        assert updated.cost == pytest.approx(0.014)
        assert updated.ended_at is not None
        assert await manager.repositories.call_logs.get_active_session("user-1") is None

    @pytest.mark.asyncio
    async def test_terminal_session_is_not_reopened(self, manager, make_intent, mock_twilio_service):
        session = await dispatched(manager, make_intent)
        mock_twilio_service.get_call.return_value = TwilioCallInfo(sid=session.call_sid, status="busy")
        await manager.tracker.check_status(session.call_sid)

        for late in ("ringing", "in-progress", "completed", "failed"):
            updated = await manager.tracker.apply_provider_status(session.id, late)
            assert updated.status == CallStatus.BUSY

    @pytest.mark.asyncio
    async def test_terminal_session_skips_provider(self, manager, make_intent, mock_twilio_service):
        session = await dispatched(manager, make_intent)
        await manager.tracker.apply_provider_status(session.id, "no-answer")

        result = await manager.tracker.check_status(session.call_sid)

        assert result.status == CallStatus.NO_ANSWER
        mock_twilio_service.get_call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_call_sid(self, manager, mock_twilio_service):
        with pytest.raises(CallNotFoundError):
            await manager.tracker.check_status("CAunknown")

        mock_twilio_service.get_call.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_status_check_timeout(self, manager, make_intent, mock_twilio_service):
        session = await dispatched(manager, make_intent)

        async def hang(credentials, call_sid):
            await asyncio.sleep(1)

        mock_twilio_service.get_call.side_effect = hang
        manager.tracker.timeout_seconds = 0.01

        with pytest.raises(StatusCheckTimeoutError) as exc_info:
            await manager.tracker.check_status(session.call_sid)

        assert exc_info.value.error_code == "REQUEST_TIMEOUT"
        current = await manager.repositories.call_logs.get_session(session.id)
        assert current.status == CallStatus.QUEUED

    @pytest.mark.asyncio
    async def test_manager_envelope_for_timeout(self, manager, make_intent, mock_twilio_service):
        from call_orchestrator.models.call import StatusQuery

        session = await dispatched(manager, make_intent)

        async def hang(credentials, call_sid):
            await asyncio.sleep(1)

        mock_twilio_service.get_call.side_effect = hang
        manager.tracker.timeout_seconds = 0.01

        result = await manager.get_call_status(StatusQuery(callSid=session.call_sid))

        assert result.success is False
        assert result.code == "REQUEST_TIMEOUT"
        assert result.outcome_unknown is True

    @pytest.mark.asyncio
    async def test_unknown_provider_status_is_ignored(self, manager, make_intent):
        session = await dispatched(manager, make_intent)

        updated = await manager.tracker.apply_provider_status(session.id, "on-hold")

        assert updated.status == CallStatus.QUEUED


class TestPolling:
    """Tests for the bounded polling loop"""

    @pytest.mark.asyncio
    async def test_polls_until_terminal(self, manager, make_intent, mock_twilio_service):
        session = await dispatched(manager, make_intent)
        mock_twilio_service.get_call.side_effect = [
            TwilioCallInfo(sid=session.call_sid, status="ringing"),
            TwilioCallInfo(sid=session.call_sid, status="in-progress"),
            TwilioCallInfo(sid=session.call_sid, status="completed", duration="12"),
        ]
        manager.tracker.poll_interval_seconds = 0
        manager.tracker.poll_max_seconds = 10

        final = await manager.track_call(session.id)

        assert final.status == CallStatus.COMPLETED
        assert final.unconfirmed is False
        assert mock_twilio_service.get_call.await_count == 3

    @pytest.mark.asyncio
    async def test_ceiling_marks_unconfirmed(self, manager, make_intent, mock_twilio_service):
        session = await dispatched(manager, make_intent)
        mock_twilio_service.get_call.return_value = TwilioCallInfo(sid=session.call_sid, status="in-progress")
        manager.tracker.poll_interval_seconds = 0.01
        manager.tracker.poll_max_seconds = 0

        final = await manager.track_call(session.id)

        assert final.status == CallStatus.IN_PROGRESS
        assert final.unconfirmed is True

    @pytest.mark.asyncio
    async def test_provider_errors_do_not_stop_polling(self, manager, make_intent, mock_twilio_service):
        session = await dispatched(manager, make_intent)
        mock_twilio_service.get_call.side_effect = [
            CallNotFoundError(session.call_sid),
            TwilioCallInfo(sid=session.call_sid, status="failed"),
        ]
        manager.tracker.poll_interval_seconds = 0
        manager.tracker.poll_max_seconds = 10

        final = await manager.track_call(session.id)

        assert final.status == CallStatus.FAILED


class TestReconcile:
    """Tests for sessions that never learned their call SID"""

    @pytest.fixture
    async def unplaced(self, manager):
        session = CallSession(
            id="log-unplaced",
            user_id="user-1",
            prospect_id="prospect-1",
            agent_config_id="config-1",
            to_number="+15551234567",
            started_at=utcnow() - timedelta(seconds=30),
        )
        await manager.repositories.call_logs.create_session(session)
        return session

    @pytest.mark.asyncio
    async def test_adopts_matching_provider_call(self, manager, unplaced, mock_twilio_service):
        mock_twilio_service.list_calls.return_value = [
            TwilioCallInfo(sid="CAfound", status="in-progress", date_created=utcnow() - timedelta(seconds=25)),
        ]

        session = await manager.tracker.reconcile(unplaced.id)

        assert session.call_sid == "CAfound"
        assert session.status == CallStatus.IN_PROGRESS
        kwargs = mock_twilio_service.list_calls.await_args.kwargs
        assert kwargs["to_number"] == "+15551234567"

    @pytest.mark.asyncio
    async def test_ignores_older_calls(self, manager, unplaced, mock_twilio_service):
        mock_twilio_service.list_calls.return_value = [
            TwilioCallInfo(sid="CAold", status="completed", date_created=utcnow() - timedelta(hours=2)),
        ]

        session = await manager.tracker.reconcile(unplaced.id)

        assert session.call_sid is None
        assert session.status == CallStatus.INITIATED

    @pytest.mark.asyncio
    async def test_unplaced_call_fails_after_grace(self, manager, mock_twilio_service):
        await manager.repositories.call_logs.create_session(CallSession(
            id="log-stale",
            user_id="user-1",
            to_number="+15551234567",
            started_at=utcnow() - timedelta(hours=1),
        ))

        session = await manager.tracker.reconcile("log-stale")

        assert session.status == CallStatus.FAILED
        assert session.error_code == "CALL_ERROR"
        assert await manager.repositories.call_logs.get_active_session("user-1") is None

    @pytest.mark.asyncio
    async def test_get_session_envelope(self, manager, unplaced):
        result = await manager.get_session(unplaced.id)

        assert result.success is True
        assert result.call_status == "initiated"
        assert result.data["id"] == unplaced.id

    @pytest.mark.asyncio
    async def test_unknown_session(self, manager):
        result = await manager.get_session("missing")

        assert result.success is False
        assert result.code == "CALL_NOT_FOUND"
