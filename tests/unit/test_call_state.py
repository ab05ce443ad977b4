"""Unit tests for the call state machine and event bus."""

import asyncio

import pytest

from app.core.outreach.events import MissionEvent, MissionEventBus, MissionEventType
from app.core.outreach.models import SpeakerRole, Utterance
from app.core.outreach.state import (
    CallStatus,
    can_transition,
    get_valid_transitions,
    is_terminal_status,
)


class TestCallStatus:
    """Tests for call state transitions."""

    def test_automated_path(self):
        assert can_transition(CallStatus.PENDING, CallStatus.RINGING)
        assert can_transition(CallStatus.RINGING, CallStatus.IN_PROGRESS)
        assert can_transition(CallStatus.IN_PROGRESS, CallStatus.COMPLETE)
        assert can_transition(CallStatus.IN_PROGRESS, CallStatus.FAILED)

    def test_no_answer_only_from_ringing(self):
        assert can_transition(CallStatus.RINGING, CallStatus.NO_ANSWER)
        assert not can_transition(CallStatus.PENDING, CallStatus.NO_ANSWER)
        assert not can_transition(CallStatus.IN_PROGRESS, CallStatus.NO_ANSWER)

    def test_no_going_back(self):
        assert not can_transition(CallStatus.IN_PROGRESS, CallStatus.RINGING)
        assert not can_transition(CallStatus.RINGING, CallStatus.PENDING)

    def test_terminal_states_are_final(self):
        for status in (CallStatus.COMPLETE, CallStatus.FAILED, CallStatus.NO_ANSWER):
            assert is_terminal_status(status)
            assert get_valid_transitions(status) == set()

    def test_live_states_are_not_terminal(self):
        for status in (CallStatus.PENDING, CallStatus.RINGING, CallStatus.IN_PROGRESS):
            assert not is_terminal_status(status)

    def test_wire_values(self):
        assert CallStatus.IN_PROGRESS.value == "in-progress"
        assert CallStatus.NO_ANSWER.value == "no-answer"


class TestMissionEventBus:
    """Tests for MissionEventBus."""

    @pytest.mark.asyncio
    async def test_fan_out(self):
        bus = MissionEventBus()
        first = bus.subscribe()
        second = bus.subscribe()

        bus.publish(MissionEvent(MissionEventType.MISSION_STARTED, "m-1"))

        assert (await first.get()).type == MissionEventType.MISSION_STARTED
        assert (await second.get()).mission_id == "m-1"

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = MissionEventBus()
        queue = bus.subscribe()
        bus.unsubscribe(queue)

        bus.publish(MissionEvent(MissionEventType.MISSION_DONE, "m-1"))

        assert bus.subscriber_count == 0
        assert queue.empty()

    @pytest.mark.asyncio
    async def test_full_queue_drops_without_blocking(self):
        bus = MissionEventBus(max_queue_size=1)
        queue = bus.subscribe()

        bus.publish(MissionEvent(MissionEventType.CALL_STATUS, "m-1", "a", CallStatus.RINGING))
        bus.publish(MissionEvent(MissionEventType.CALL_STATUS, "m-1", "a", CallStatus.IN_PROGRESS))

        assert queue.qsize() == 1
        assert (await asyncio.wait_for(queue.get(), 1)).status == CallStatus.RINGING

    def test_to_dict(self):
        event = MissionEvent(
            MissionEventType.CALL_UTTERANCE,
            "m-1",
            provider_id="med-1",
            utterance=Utterance(SpeakerRole.AGENT, "Hello"),
        )

        data = event.to_dict()

        assert data["type"] == "call_utterance"
        assert data["provider_id"] == "med-1"
        assert data["utterance"]["role"] == "agent"
        assert "status" not in data
