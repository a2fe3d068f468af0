"""
End-to-end call lifecycle through the call manager
"""

import pytest

from call_orchestrator.models.call import CallStatus, StatusQuery
from call_orchestrator.models.provider import DispatchOutcome, TwilioCallInfo
from call_orchestrator.models.webhook import CorrelationParams, StatusCallbackPayload


class TestCallLifecycle:
    """Dispatch, guard, completion and redial"""

    @pytest.mark.asyncio
    async def test_dispatch_complete_redial(self, manager, make_intent, mock_twilio_service):
        mock_twilio_service.place_call.side_effect = [
            DispatchOutcome(call_sid="CAfirst", provider="twilio", status="queued"),
            DispatchOutcome(call_sid="CAsecond", provider="twilio", status="queued"),
        ]

        first = await manager.initiate_call(make_intent())
        assert first.success is True
        assert first.call_sid == "CAfirst"

        blocked = await manager.initiate_call(make_intent())
        assert blocked.success is False
        assert blocked.code == "CALL_IN_PROGRESS"

        mock_twilio_service.get_call.return_value = TwilioCallInfo(sid="CAfirst", status="completed", duration="45")
        status = await manager.get_call_status(StatusQuery(callSid="CAfirst", userId="user-1"))
        assert status.success is True
        assert status.call_status == "completed"
        assert status.data["duration_seconds"] == 45
        assert await manager.repositories.call_logs.get_active_session("user-1") is None

        redial = await manager.initiate_call(make_intent())
        assert redial.success is True
        assert redial.call_sid == "CAsecond"
        assert mock_twilio_service.place_call.await_count == 2

    @pytest.mark.asyncio
    async def test_status_callbacks_drive_the_session(self, manager, make_intent):
        placed = await manager.initiate_call(make_intent())
        correlation = CorrelationParams(call_log_id=placed.call_log_id)

        for reported in ("ringing", "in-progress"):
            await manager.handle_status_callback(
                correlation, StatusCallbackPayload(CallSid=placed.call_sid, CallStatus=reported)
            )

        session = await manager.handle_status_callback(
            correlation,
            StatusCallbackPayload(
                CallSid=placed.call_sid,
                CallStatus="completed",
                CallDuration=61,
                RecordingUrl="https://api.twilio.com/rec/RE1",
            ),
        )

        assert session.status == CallStatus.COMPLETED
        assert session.duration_seconds == 61
        assert session.recording_url == "https://api.twilio.com/rec/RE1"

        # Duplicate and out-of-order callbacks change nothing
        again = await manager.handle_status_callback(
            correlation, StatusCallbackPayload(CallSid=placed.call_sid, CallStatus="ringing")
        )
        assert again.status == CallStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_status_callback_without_correlation(self, manager, make_intent):
        placed = await manager.initiate_call(make_intent())

        session = await manager.handle_status_callback(
            CorrelationParams(), StatusCallbackPayload(CallSid=placed.call_sid, CallStatus="busy")
        )

        assert session.id == placed.call_log_id
        assert session.status == CallStatus.BUSY

    @pytest.mark.asyncio
    async def test_status_callback_for_unknown_call(self, manager):
        session = await manager.handle_status_callback(
            CorrelationParams(), StatusCallbackPayload(CallSid="CAnobody", CallStatus="completed")
        )

        assert session is None

    @pytest.mark.asyncio
    async def test_verify_credentials(self, manager, mock_twilio_service):
        from call_orchestrator.models.call import ProviderPath

        result = await manager.verify_credentials("user-1", ProviderPath.TELEPHONY)

        assert result["success"] is True
        assert result["data"]["twilio"]["valid"] is True
        mock_twilio_service.verify_account.assert_awaited_once()
