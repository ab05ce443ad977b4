"""Unit tests for the dialogue oracle."""

import json
from datetime import date, time
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.core.outreach.models import Category, SpeakerRole, TimeWindow
from app.core.outreach.oracle import (
    JSON_PREFILL,
    DialogueOracle,
    OracleError,
    OracleResponseError,
    format_windows,
    parse_script,
    strip_code_fences,
)
from app.infra.claude import ClaudeClientError, ClaudeResponse


def reply(has_availability: bool = True, slots: list[dict] | None = None) -> str:
    if slots is None:
        slots = [{"day": "2026-02-10", "start": "09:00", "end": "10:00"}]
    return json.dumps({
        "messages": [
            {"role": "receptionist", "text": "CityHealth, how can I help?"},
            {"role": "agent", "text": "Hi, I'm calling to book a checkup."},
            {"role": "receptionist", "text": "We have Tuesday at nine."},
        ],
        "result": {"hasAvailability": has_availability, "offeredSlots": slots},
    })


def claude_response(content: str) -> ClaudeResponse:
    return ClaudeResponse(
        content=content,
        model="claude-test",
        input_tokens=100,
        output_tokens=200,
        stop_reason="end_turn",
        latency_ms=12.0,
    )


@pytest.fixture
def mock_claude():
    client = MagicMock()
    client.generate = AsyncMock(return_value=claude_response(reply()))
    return client


class TestStripCodeFences:
    """Tests for strip_code_fences()."""

    def test_json_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_bare_fence(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'

    def test_no_fence(self):
        assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestParseScript:
    """Tests for parse_script()."""

    def test_valid_reply(self):
        script = parse_script(reply())

        assert len(script.lines) == 3
        assert script.lines[0].role == SpeakerRole.COUNTERPARTY
        assert script.lines[1].role == SpeakerRole.AGENT
        assert script.has_availability is True
        assert script.proposed_slots == [
            TimeWindow(day=date(2026, 2, 10), start=time(9), end=time(10)),
        ]

    def test_fenced_reply(self):
        script = parse_script(f"```json\n{reply()}\n```")
        assert len(script.lines) == 3

    def test_no_availability(self):
        script = parse_script(reply(has_availability=False, slots=[]))
        assert script.has_availability is False
        assert script.proposed_slots == []

    def test_offered_slots_default_to_empty(self):
        content = json.dumps({
            "messages": [{"role": "agent", "text": "Hello"}],
            "result": {"hasAvailability": False},
        })
        assert parse_script(content).proposed_slots == []

    def test_not_json(self):
        with pytest.raises(OracleResponseError):
            parse_script("Sure! Here's a call transcript:")

    def test_missing_result(self):
        with pytest.raises(OracleResponseError):
            parse_script(json.dumps({"messages": []}))

    def test_unknown_role(self):
        content = json.dumps({
            "messages": [{"role": "narrator", "text": "The phone rings."}],
            "result": {"hasAvailability": False, "offeredSlots": []},
        })
        with pytest.raises(OracleResponseError):
            parse_script(content)

    def test_inverted_slot(self):
        with pytest.raises(OracleResponseError):
            parse_script(reply(slots=[{"day": "2026-02-10", "start": "11:00", "end": "10:00"}]))

    def test_slot_with_offset_rejected(self):
        with pytest.raises(OracleResponseError):
            parse_script(reply(slots=[{"day": "2026-02-10", "start": "09:00Z", "end": "10:00Z"}]))

    def test_unparseable_slot_day(self):
        with pytest.raises(OracleResponseError):
            parse_script(reply(slots=[{"day": "Tuesday", "start": "09:00", "end": "10:00"}]))


class TestFormatWindows:
    """Tests for prompt window rendering."""

    def test_empty(self):
        assert format_windows([]) == "(no free windows supplied)"

    def test_joined(self):
        windows = [
            TimeWindow(day=date(2026, 2, 10), start=time(8), end=time(12)),
            TimeWindow(day=date(2026, 2, 11), start=time(13), end=time(17)),
        ]
        assert format_windows(windows) == "2026-02-10 08:00-12:00, 2026-02-11 13:00-17:00"


class TestDialogueOracle:
    """Tests for DialogueOracle.generate()."""

    @pytest.mark.asyncio
    async def test_generate_returns_script(self, mock_claude, make_provider, free_windows):
        oracle = DialogueOracle(claude_client=mock_claude)

        script = await oracle.generate(
            make_provider(), Category.MEDICAL, list(free_windows), "Annual checkup"
        )

        assert len(script.lines) == 3
        assert script.latency_ms is not None

    @pytest.mark.asyncio
    async def test_prompt_carries_windows_and_public_attributes(
        self, mock_claude, make_provider, free_windows
    ):
        oracle = DialogueOracle(claude_client=mock_claude)

        await oracle.generate(
            make_provider(), Category.MEDICAL, list(free_windows), "Annual checkup"
        )

        kwargs = mock_claude.generate.call_args.kwargs
        assert kwargs["prefill"] == JSON_PREFILL
        assert "CityHealth Medical Center" in kwargs["system_prompt"]
        assert "2026-02-10 08:00-12:00" in kwargs["system_prompt"]
        assert "Annual checkup" in kwargs["prompt"]
        # Distance is scoring data and never reaches the prompt
        assert "1.2" not in kwargs["system_prompt"]

    @pytest.mark.asyncio
    async def test_client_error_becomes_oracle_error(self, mock_claude, make_provider, free_windows):
        mock_claude.generate = AsyncMock(side_effect=ClaudeClientError("boom"))
        oracle = DialogueOracle(claude_client=mock_claude)

        with pytest.raises(OracleError) as exc_info:
            await oracle.generate(make_provider(), Category.MEDICAL, list(free_windows), "")

        assert not isinstance(exc_info.value, OracleResponseError)

    @pytest.mark.asyncio
    async def test_malformed_reply_raises(self, mock_claude, make_provider, free_windows):
        mock_claude.generate = AsyncMock(return_value=claude_response("{not json"))
        oracle = DialogueOracle(claude_client=mock_claude)

        with pytest.raises(OracleResponseError):
            await oracle.generate(make_provider(), Category.MEDICAL, list(free_windows), "")
