"""
Call Attempt.

Drives one simulated provider call through its lifecycle:

    pending -> ringing -> in-progress -> complete | failed | no-answer

Each attempt runs as its own asyncio task. Every side effect (status change,
transcript append) is preceded by a liveness check, so once an attempt is
cancelled or taken over nothing further is recorded, even by work that was
already suspended mid-flight.
"""

import asyncio
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional, Protocol

from app.config import Settings, settings as default_settings
from app.core.outreach.models import (
    BookingRequest,
    Provider,
    SpeakerRole,
    TimeWindow,
    Utterance,
    fits_any,
)
from app.core.outreach.oracle import (
    DialogueOracle,
    DialogueScript,
    OracleError,
    OracleResponseError,
    ScriptLine,
)
from app.core.outreach.state import (
    CallStatus,
    InvalidTransitionError,
    can_transition,
    is_terminal_status,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


class CallActionError(Exception):
    """Raised when a manual action is not allowed in the call's current state."""
    pass


class RandomSource(Protocol):
    """Source of randomness for jitter and no-answer outcomes.

    random.Random satisfies this protocol.
    """

    def random(self) -> float: ...

    def uniform(self, a: float, b: float) -> float: ...


class VoicePlayback(Protocol):
    """Speaks a line and returns True once playback has finished."""

    async def speak(self, text: str, voice_profile: str) -> bool: ...


class CallListener(Protocol):
    """Receives status and transcript deltas from an attempt."""

    def on_status(self, attempt: "CallAttempt", status: CallStatus) -> None: ...

    def on_utterance(self, attempt: "CallAttempt", utterance: Utterance) -> None: ...


@dataclass(frozen=True)
class CallPolicy:
    """Timing and probability knobs for simulated calls."""

    dial_delay_min: float = 0.5
    dial_delay_max: float = 2.0
    ring_duration_min: float = 2.0
    ring_duration_max: float = 3.5
    no_answer_probability: float = 0.1
    pacing_base_seconds: float = 0.8
    pacing_per_char_seconds: float = 0.025
    pacing_max_seconds: float = 4.0
    oracle_timeout_seconds: float = 45.0
    voice_agent_profile: str = "agent"
    voice_counterparty_profile: str = "receptionist"

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "CallPolicy":
        """Build a policy from application settings."""
        config = config or default_settings
        return cls(
            dial_delay_min=config.dial_delay_min,
            dial_delay_max=config.dial_delay_max,
            ring_duration_min=config.ring_duration_min,
            ring_duration_max=config.ring_duration_max,
            no_answer_probability=config.no_answer_probability,
            pacing_base_seconds=config.pacing_base_seconds,
            pacing_per_char_seconds=config.pacing_per_char_seconds,
            pacing_max_seconds=config.pacing_max_seconds,
            oracle_timeout_seconds=config.oracle_timeout_seconds,
            voice_agent_profile=config.voice_agent_profile,
            voice_counterparty_profile=config.voice_counterparty_profile,
        )

    def pacing_for(self, text: str) -> float:
        """Readability pause after a line, proportional to its length."""
        return min(
            self.pacing_base_seconds + len(text) * self.pacing_per_char_seconds,
            self.pacing_max_seconds,
        )


@dataclass(frozen=True)
class CallSnapshot:
    """Read-only view of a call."""

    provider: Provider
    status: CallStatus
    transcript: tuple[Utterance, ...] = ()
    offered_slots: tuple[TimeWindow, ...] = ()
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    suspended: bool = False

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self.status)

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.to_dict(),
            "status": self.status.value,
            "transcript": [u.to_dict() for u in self.transcript],
            "offered_slots": [s.to_dict() for s in self.offered_slots],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "suspended": self.suspended,
        }


def validate_slots(
    proposed: Iterable[TimeWindow],
    free_windows: Iterable[TimeWindow],
) -> tuple[list[TimeWindow], list[TimeWindow]]:
    """Split proposed slots into (accepted, rejected) by free-window containment."""
    windows = list(free_windows)
    accepted: list[TimeWindow] = []
    rejected: list[TimeWindow] = []
    for slot in proposed:
        (accepted if fits_any(slot, windows) else rejected).append(slot)
    return accepted, rejected


class CallAttempt:
    """
    One provider contact.

    The attempt is the only writer of its own status and transcript.
    Observers get deltas through the listener and read snapshots.
    """

    def __init__(
        self,
        provider: Provider,
        request: BookingRequest,
        oracle: DialogueOracle,
        policy: Optional[CallPolicy] = None,
        voice: Optional[VoicePlayback] = None,
        random_source: Optional[RandomSource] = None,
        listener: Optional[CallListener] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        """Initialize attempt.

        Args:
            provider: Provider to call
            request: Booking request (free windows, description, category)
            oracle: Dialogue oracle
            policy: Timing/probability policy (defaults to settings)
            voice: Optional voice playback for narration
            random_source: Jitter/no-answer randomness (for testing)
            listener: Receives status and transcript deltas
            clock: Timestamp source
        """
        self.provider = provider
        self._request = request
        self._oracle = oracle
        self._policy = policy or CallPolicy.from_settings()
        self._voice = voice
        self._random: RandomSource = random_source or random.Random()
        self._listener = listener
        self._clock = clock

        self._status = CallStatus.PENDING
        self._transcript: list[Utterance] = []
        self._offered_slots: list[TimeWindow] = []
        self._started_at: Optional[datetime] = None
        self._ended_at: Optional[datetime] = None

        self._cancelled = False
        self._suspended = False
        self._resumed = False
        self._task: Optional[asyncio.Task] = None

    # === Read-only state ===

    @property
    def provider_id(self) -> str:
        return self.provider.id

    @property
    def status(self) -> CallStatus:
        return self._status

    @property
    def transcript(self) -> tuple[Utterance, ...]:
        return tuple(self._transcript)

    @property
    def offered_slots(self) -> tuple[TimeWindow, ...]:
        return tuple(self._offered_slots)

    @property
    def is_terminal(self) -> bool:
        return is_terminal_status(self._status)

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_suspended(self) -> bool:
        return self._suspended

    @property
    def is_resumed(self) -> bool:
        return self._resumed

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    def snapshot(self) -> CallSnapshot:
        """Get a read-only view."""
        return CallSnapshot(
            provider=self.provider,
            status=self._status,
            transcript=tuple(self._transcript),
            offered_slots=tuple(self._offered_slots),
            started_at=self._started_at,
            ended_at=self._ended_at,
            suspended=self._suspended,
        )

    # === Lifecycle ===

    def start(self) -> asyncio.Task:
        """Schedule the call on the running event loop."""
        if self._task is not None:
            raise CallActionError(f"Call to {self.provider.name} already started")
        self._task = asyncio.create_task(
            self.run(), name=f"call:{self.provider.id}"
        )
        return self._task

    async def run(self) -> None:
        """Drive the call to a terminal state unless interrupted."""
        self._started_at = self._clock()
        try:
            await self._drive()
        except asyncio.CancelledError:
            logger.debug(f"Call to {self.provider.name} cancelled in {self._status.value}")
            raise
        except Exception as e:
            logger.error(f"Call to {self.provider.name} crashed: {e}", exc_info=True)
            if not self.is_terminal:
                self._fail(f"Error during call to {self.provider.name}.")

    def cancel(self) -> None:
        """Stop all automated work. Recorded entries are kept."""
        self._cancelled = True
        self._abandon_task()

    def take_over(self) -> bool:
        """Suspend automated progression in favour of manual messaging.

        Returns:
            False if the call had already finished
        """
        if self.is_terminal:
            return False
        self._suspended = True
        self._resumed = False
        self._abandon_task()
        logger.info(f"Manual takeover of call to {self.provider.name} ({self._status.value})")
        return True

    def resume(self) -> None:
        """Re-enable manual messaging and resolution. Automated dialogue is not replayed."""
        if not self._suspended:
            raise CallActionError(f"Call to {self.provider.name} is not taken over")
        self._resumed = True
        logger.info(f"Call to {self.provider.name} resumed for manual handling")

    def add_user_message(self, text: str) -> Utterance:
        """Append a user-authored line without touching the state machine."""
        if self.is_terminal:
            raise CallActionError(f"Call to {self.provider.name} already ended")
        if self._cancelled:
            raise CallActionError(f"Call to {self.provider.name} was cancelled")
        text = text.strip()
        if not text:
            raise CallActionError("Message text is empty")
        return self._append(SpeakerRole.USER, text)

    def resolve(self, proposed_slots: Iterable[TimeWindow]) -> CallStatus:
        """Finish a taken-over call by hand.

        Slots go through the same free-window validation as oracle proposals.
        """
        if not (self._suspended and self._resumed):
            raise CallActionError(
                f"Call to {self.provider.name} must be taken over and resumed first"
            )
        if self._cancelled:
            raise CallActionError(f"Call to {self.provider.name} was cancelled")
        if self.is_terminal:
            raise CallActionError(f"Call to {self.provider.name} already ended")

        accepted, rejected = validate_slots(proposed_slots, self._request.free_windows)
        self._conclude(
            has_availability=bool(accepted or rejected),
            accepted=accepted,
            rejected=rejected,
        )
        return self._status

    # === Internals ===

    def _abandon_task(self) -> None:
        task = self._task
        if task is not None and not task.done():
            task.cancel()

    def _live(self) -> bool:
        return not (self._cancelled or self._suspended)

    async def _pause(self, seconds: float) -> None:
        await asyncio.sleep(max(seconds, 0.0))

    def _jitter(self, low: float, high: float) -> float:
        if high <= low:
            return low
        return self._random.uniform(low, high)

    async def _drive(self) -> None:
        policy = self._policy
        name = self.provider.name

        await self._pause(self._jitter(policy.dial_delay_min, policy.dial_delay_max))
        if not self._live():
            return

        self._set_status(CallStatus.RINGING)
        self._append(SpeakerRole.SYSTEM, f"Calling {name}...")

        await self._pause(self._jitter(policy.ring_duration_min, policy.ring_duration_max))
        if not self._live():
            return

        if self._random.random() < policy.no_answer_probability:
            self._append(SpeakerRole.SYSTEM, f"{name} did not answer.")
            self._finish(CallStatus.NO_ANSWER, [])
            return

        self._set_status(CallStatus.IN_PROGRESS)
        self._append(SpeakerRole.SYSTEM, f"Connected to {name}.")

        script = await self._fetch_script()
        if script is None or not self._live():
            return

        for line in script.lines:
            if not self._live():
                return
            self._append(line.role, line.text)
            await self._wait_after(line)

        if not self._live():
            return

        accepted, rejected = validate_slots(script.proposed_slots, self._request.free_windows)
        self._conclude(
            has_availability=script.has_availability,
            accepted=accepted,
            rejected=rejected,
        )

    async def _fetch_script(self) -> Optional[DialogueScript]:
        """Ask the oracle once. Any failure fails the call."""
        name = self.provider.name
        try:
            return await asyncio.wait_for(
                self._oracle.generate(
                    provider=self.provider,
                    category=self._request.category,
                    free_windows=list(self._request.free_windows),
                    need_description=self._request.description,
                ),
                timeout=self._policy.oracle_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Dialogue oracle timed out for {name}")
            self._fail(f"Call to {name} timed out.")
        except OracleResponseError as e:
            logger.warning(f"Dialogue oracle returned malformed output for {name}: {e}")
            self._fail(f"Call to {name} encountered an issue.")
        except OracleError as e:
            logger.error(f"Dialogue oracle failed for {name}: {e}")
            self._fail(f"Call to {name} encountered an issue.")
        except Exception as e:
            logger.error(f"Unexpected error during call to {name}: {e}", exc_info=True)
            self._fail(f"Error during call to {name}.")
        return None

    async def _wait_after(self, line: ScriptLine) -> None:
        """Hold the next line until this one has been read or spoken."""
        if self._voice is not None and line.role in (SpeakerRole.AGENT, SpeakerRole.COUNTERPARTY):
            profile = (
                self._policy.voice_agent_profile
                if line.role == SpeakerRole.AGENT
                else self._policy.voice_counterparty_profile
            )
            try:
                if await self._voice.speak(line.text, profile):
                    return
            except Exception as e:
                logger.warning(f"Voice playback unavailable, falling back to pacing: {e}")

        await self._pause(self._policy.pacing_for(line.text))

    def _conclude(
        self,
        has_availability: bool,
        accepted: list[TimeWindow],
        rejected: list[TimeWindow],
    ) -> None:
        name = self.provider.name

        if rejected:
            logger.info(
                f"Discarded {len(rejected)} slot(s) from {name} outside free windows: "
                f"{', '.join(str(s) for s in rejected)}"
            )

        if not has_availability:
            if accepted:
                logger.info(f"{name} reported no availability; ignoring {len(accepted)} proposed slot(s)")
            self._fail(f"{name} has no availability.")
        elif accepted:
            self._append(
                SpeakerRole.SYSTEM,
                f"{name} offered {len(accepted)} slot(s) within your availability.",
            )
            self._finish(CallStatus.COMPLETE, accepted)
        elif rejected:
            self._fail(f"{name} only offered times outside your availability.")
        else:
            self._fail(f"{name} has no availability.")

    def _fail(self, reason: str) -> None:
        if self._cancelled or (self._suspended and not self._resumed):
            return
        self._append(SpeakerRole.SYSTEM, reason)
        self._finish(CallStatus.FAILED, [])

    def _finish(self, status: CallStatus, slots: list[TimeWindow]) -> None:
        self._offered_slots = list(slots)
        self._ended_at = self._clock()
        self._set_status(status)

    def _set_status(self, status: CallStatus) -> None:
        if not can_transition(self._status, status):
            raise InvalidTransitionError(
                f"Invalid call transition for {self.provider.name}: "
                f"{self._status.value} -> {status.value}"
            )
        self._status = status
        logger.debug(f"Call to {self.provider.name}: {status.value}")
        if self._listener is not None:
            self._listener.on_status(self, status)

    def _append(self, role: SpeakerRole, text: str) -> Utterance:
        timestamp = self._clock()
        if self._transcript and timestamp < self._transcript[-1].timestamp:
            timestamp = self._transcript[-1].timestamp
        utterance = Utterance(role=role, text=text, timestamp=timestamp)
        self._transcript.append(utterance)
        if self._listener is not None:
            self._listener.on_utterance(self, utterance)
        return utterance
