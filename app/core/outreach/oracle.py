"""
Dialogue Oracle.

Asks Claude to script a phone call between the booking agent and a provider's
receptionist, and turns the reply into a validated DialogueScript.

The oracle's availability verdict is advisory. Callers must still check the
proposed slots against the user's free windows.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from app.config import settings
from app.core.outreach.models import Category, Provider, SpeakerRole, TimeWindow
from app.infra.claude import ClaudeClient, ClaudeClientError, get_claude_client

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """You are simulating a phone call between an AI booking agent and a receptionist at "{name}" (a {category} provider located at {address}, rated {rating}/5).

Generate a realistic phone call transcript as a JSON array of messages. The call should:
1. Start with the receptionist answering the phone (greeting specific to the business type)
2. The AI agent introduces itself and explains it's calling on behalf of a client
3. The agent asks about availability for: {need}
4. The receptionist checks their schedule and responds (80% chance they have availability, 20% they don't)
5. If available, the receptionist MUST offer 1-2 specific time slots chosen from the client's FREE windows (busy periods are already removed):
   {windows}
   Start and end times MUST fall entirely within one of these windows. For example if a free window is "2026-02-10 09:00-12:00", you could offer "2026-02-10 09:00-10:00" but NEVER "2026-02-10 13:00-14:00".
6. The agent confirms interest and thanks them
7. The call ends naturally

Each message has: role ("agent" or "receptionist") and text.
Also include a final "result" object with: hasAvailability (boolean) and offeredSlots (array of {{"day","start","end"}} objects if available).

Keep the conversation natural ("Let me check...", "One moment please...") and use terminology appropriate for a {category} business.

Respond with ONLY valid JSON in this format:
{{
  "messages": [{{"role": "agent"|"receptionist", "text": "..."}}],
  "result": {{"hasAvailability": true|false, "offeredSlots": [{{"day": "2026-02-10", "start": "09:00", "end": "10:00"}}]}}
}}"""

USER_PROMPT = (
    'Simulate the phone call now. The business is "{name}", a {category} provider. '
    "The client needs: {need}"
)

# Forces the reply to open inside the JSON object
JSON_PREFILL = "{"

_ROLE_MAP = {
    "agent": SpeakerRole.AGENT,
    "receptionist": SpeakerRole.COUNTERPARTY,
    "counterparty": SpeakerRole.COUNTERPARTY,
}


class OracleError(Exception):
    """Raised when the dialogue oracle cannot produce a script."""
    pass


class OracleResponseError(OracleError):
    """Raised when the oracle reply is not valid JSON or breaks the schema."""
    pass


class _ScriptMessage(BaseModel):
    role: Literal["agent", "receptionist", "counterparty"]
    text: str = Field(min_length=1)


class _ScriptSlot(BaseModel):
    day: str
    start: str
    end: str


class _ScriptResult(BaseModel):
    has_availability: bool = Field(alias="hasAvailability")
    offered_slots: list[_ScriptSlot] = Field(default_factory=list, alias="offeredSlots")


class _ScriptPayload(BaseModel):
    messages: list[_ScriptMessage]
    result: _ScriptResult


@dataclass(frozen=True)
class ScriptLine:
    """One scripted line of dialogue."""

    role: SpeakerRole
    text: str


@dataclass
class DialogueScript:
    """Parsed oracle output."""

    lines: list[ScriptLine] = field(default_factory=list)
    has_availability: bool = False
    proposed_slots: list[TimeWindow] = field(default_factory=list)
    latency_ms: Optional[float] = None


def format_windows(windows: list[TimeWindow]) -> str:
    """Render windows for the prompt."""
    if not windows:
        return "(no free windows supplied)"
    return ", ".join(str(w) for w in windows)


def strip_code_fences(content: str) -> str:
    """Remove markdown code fences around a JSON reply."""
    content = content.strip()
    if content.startswith("```"):
        lines = content.split("\n")
        # Remove first line (```json or ```)
        lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        content = "\n".join(lines)
    return content.strip()


def parse_script(content: str) -> DialogueScript:
    """Parse a raw oracle reply.

    Raises:
        OracleResponseError: On non-JSON output or schema violations
    """
    cleaned = strip_code_fences(content)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise OracleResponseError(f"Oracle reply is not valid JSON: {e}") from e

    try:
        payload = _ScriptPayload.model_validate(data)
        slots = [
            TimeWindow.from_dict(slot.model_dump())
            for slot in payload.result.offered_slots
        ]
    except ValidationError as e:
        raise OracleResponseError(f"Oracle reply does not match schema: {e}") from e
    except ValueError as e:
        raise OracleResponseError(f"Oracle proposed a malformed slot: {e}") from e

    return DialogueScript(
        lines=[ScriptLine(role=_ROLE_MAP[m.role], text=m.text) for m in payload.messages],
        has_availability=payload.result.has_availability,
        proposed_slots=slots,
    )


class DialogueOracle:
    """Generates simulated call dialogue through Claude."""

    def __init__(self, claude_client: Optional[ClaudeClient] = None):
        """Initialize oracle.

        Args:
            claude_client: Optional Claude client (for testing)
        """
        self._client = claude_client

    async def _get_client(self) -> ClaudeClient:
        """Get or create Claude client."""
        if self._client is None:
            self._client = await get_claude_client()
        return self._client

    async def generate(
        self,
        provider: Provider,
        category: Category,
        free_windows: list[TimeWindow],
        need_description: str,
    ) -> DialogueScript:
        """Script one call.

        Args:
            provider: Provider being called (only public attributes are sent)
            category: Request category
            free_windows: User's reconciled free windows
            need_description: What the user needs

        Returns:
            DialogueScript with ordered lines and a verdict

        Raises:
            OracleError: If Claude cannot be reached
            OracleResponseError: If the reply is malformed
        """
        summary = provider.public_summary()
        system_prompt = SYSTEM_PROMPT.format(
            name=summary["name"],
            category=category.value,
            address=summary["address"] or "an undisclosed address",
            rating=summary["rating"],
            need=need_description or "an appointment",
            windows=format_windows(free_windows),
        )
        prompt = USER_PROMPT.format(
            name=summary["name"],
            category=category.value,
            need=need_description or "an appointment",
        )

        logger.info(
            f"Requesting dialogue for {provider.name} "
            f"({category.value}, {len(free_windows)} free windows)"
        )

        start_time = time.perf_counter()

        try:
            client = await self._get_client()
            response = await client.generate(
                prompt=prompt,
                system_prompt=system_prompt,
                max_tokens=settings.oracle_max_tokens,
                temperature=settings.oracle_temperature,
                prefill=JSON_PREFILL,
            )
        except ClaudeClientError as e:
            raise OracleError(f"Dialogue generation failed for {provider.name}: {e}") from e

        try:
            script = parse_script(response.content)
        except OracleResponseError:
            logger.error(f"Unparseable oracle reply for {provider.name}: {response.content[:200]!r}")
            raise

        script.latency_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(
            f"Dialogue for {provider.name}: {len(script.lines)} lines, "
            f"available={script.has_availability}, slots={len(script.proposed_slots)}"
        )
        return script


# Singleton
_oracle: Optional[DialogueOracle] = None


def get_dialogue_oracle() -> DialogueOracle:
    """Get singleton DialogueOracle."""
    global _oracle
    if _oracle is None:
        _oracle = DialogueOracle()
    return _oracle
