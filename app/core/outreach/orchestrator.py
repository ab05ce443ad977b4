"""
Outreach Orchestrator - Main coordinator.

Owns the current mission: spawns one CallAttempt per provider, folds their
status and transcript deltas into the mission context, decides when the
mission is done and ranks the collected offers.

The mission context is written only by this module's update handlers.
Everyone else reads snapshots or subscribes to the event stream.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional
from uuid import uuid4

from app.config import settings
from app.core.outreach.call import (
    CallActionError,
    CallAttempt,
    CallPolicy,
    CallSnapshot,
    RandomSource,
    VoicePlayback,
)
from app.core.outreach.directory import ProviderLookup, get_provider_directory
from app.core.outreach.events import MissionEvent, MissionEventBus, MissionEventType
from app.core.outreach.models import (
    BookingRequest,
    Provider,
    ScoredOffer,
    TimeWindow,
    Utterance,
)
from app.core.outreach.oracle import DialogueOracle, get_dialogue_oracle
from app.core.outreach.scoring import collect_offers, score_offers, validate_weights
from app.core.outreach.state import CallStatus, is_terminal_status
from app.core.outreach.voice import get_voice_client

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


NO_PROVIDERS_NOTICE = "No providers found for this category and location."


class MissionError(Exception):
    """Raised when the orchestrator is used incorrectly."""
    pass


class MissionStatus(str, Enum):
    """Overall mission state."""

    RUNNING = "running"
    DONE = "done"
    STOPPED = "stopped"
    NO_PROVIDERS = "no_providers"


@dataclass
class CallRecord:
    """Mission-side view of one call, kept current by the update handlers."""

    provider: Provider
    status: CallStatus = CallStatus.PENDING
    transcript: list[Utterance] = field(default_factory=list)
    offered_slots: list[TimeWindow] = field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    suspended: bool = False

    def snapshot(self) -> CallSnapshot:
        return CallSnapshot(
            provider=self.provider,
            status=self.status,
            transcript=tuple(self.transcript),
            offered_slots=tuple(self.offered_slots),
            started_at=self.started_at,
            ended_at=self.ended_at,
            suspended=self.suspended,
        )


@dataclass
class MissionContext:
    """All state for one mission. Owned by the orchestrator."""

    request: BookingRequest
    mission_id: str = field(default_factory=lambda: str(uuid4()))
    status: MissionStatus = MissionStatus.RUNNING
    records: dict[str, CallRecord] = field(default_factory=dict)
    attempts: dict[str, CallAttempt] = field(default_factory=dict)
    results: Optional[list[ScoredOffer]] = None
    taken_over: bool = False
    notice: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)
    finished_at: Optional[datetime] = None
    events: MissionEventBus = field(default_factory=MissionEventBus)
    settled: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def completed_count(self) -> int:
        return sum(1 for r in self.records.values() if is_terminal_status(r.status))

    @property
    def total_count(self) -> int:
        return len(self.records)

    @property
    def all_terminal(self) -> bool:
        return bool(self.records) and all(
            is_terminal_status(r.status) for r in self.records.values()
        )


@dataclass(frozen=True)
class MissionSnapshot:
    """Read-only projection of a mission."""

    mission_id: str
    request_id: str
    status: MissionStatus
    calls: tuple[CallSnapshot, ...]
    completed: int
    total: int
    taken_over: bool = False
    results: Optional[tuple[ScoredOffer, ...]] = None
    notice: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.status == MissionStatus.DONE

    @property
    def progress(self) -> float:
        """Fraction of calls in a terminal state."""
        if self.total == 0:
            return 0.0
        return self.completed / self.total

    @property
    def progress_percent(self) -> int:
        return round(self.progress * 100)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {
            "mission_id": self.mission_id,
            "request_id": self.request_id,
            "status": self.status.value,
            "completed": self.completed,
            "total": self.total,
            "progress_percent": self.progress_percent,
            "taken_over": self.taken_over,
            "calls": [c.to_dict() for c in self.calls],
        }
        if self.results is not None:
            result["results"] = [r.to_dict() for r in self.results]
        if self.notice:
            result["notice"] = self.notice
        return result


class _MissionListener:
    """Routes attempt deltas into one mission's handlers."""

    def __init__(self, orchestrator: "OutreachOrchestrator", context: MissionContext):
        self._orchestrator = orchestrator
        self._context = context

    def on_status(self, attempt: CallAttempt, status: CallStatus) -> None:
        self._orchestrator._handle_status(self._context, attempt, status)

    def on_utterance(self, attempt: CallAttempt, utterance: Utterance) -> None:
        self._orchestrator._handle_utterance(self._context, attempt, utterance)


class MissionHandle:
    """Read-only access to a mission, plus stop()."""

    def __init__(self, orchestrator: "OutreachOrchestrator", context: MissionContext):
        self._orchestrator = orchestrator
        self._context = context

    @property
    def mission_id(self) -> str:
        return self._context.mission_id

    @property
    def request(self) -> BookingRequest:
        return self._context.request

    @property
    def status(self) -> MissionStatus:
        return self._context.status

    @property
    def is_done(self) -> bool:
        return self._context.status == MissionStatus.DONE

    @property
    def results(self) -> Optional[list[ScoredOffer]]:
        """Ranked offers, available once the mission is done."""
        results = self._context.results
        return list(results) if results is not None else None

    def statuses(self) -> dict[str, CallStatus]:
        """Current status per provider id."""
        return {pid: r.status for pid, r in self._context.records.items()}

    def transcript(self, provider_id: str) -> tuple[Utterance, ...]:
        """Full transcript for one provider."""
        record = self._context.records.get(provider_id)
        if record is None:
            raise MissionError(f"Unknown provider: {provider_id}")
        return tuple(record.transcript)

    def progress(self) -> tuple[int, int]:
        """(completed, total) call counts."""
        return self._context.completed_count, self._context.total_count

    def snapshot(self) -> MissionSnapshot:
        return self._orchestrator._snapshot(self._context)

    def subscribe(self) -> asyncio.Queue:
        """Receive MissionEvents as they happen."""
        return self._context.events.subscribe()

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._context.events.unsubscribe(queue)

    async def wait(self, timeout: Optional[float] = None) -> MissionSnapshot:
        """Wait until the mission is done, stopped or had no providers."""
        await asyncio.wait_for(self._context.settled.wait(), timeout=timeout)
        return self.snapshot()

    async def stop(self) -> MissionSnapshot:
        """Stop this mission if it is still the current one."""
        if self._orchestrator._mission is self._context:
            return await self._orchestrator.stop_mission()
        return self.snapshot()


class OutreachOrchestrator:
    """
    Runs outreach missions.

    Coordinates:
    - Provider resolution
    - Concurrent call attempts
    - Takeover / resume / manual messaging
    - Completion detection and offer ranking
    """

    def __init__(
        self,
        oracle: Optional[DialogueOracle] = None,
        directory: Optional[ProviderLookup] = None,
        voice: Optional[VoicePlayback] = None,
        policy: Optional[CallPolicy] = None,
        random_source: Optional[RandomSource] = None,
        partial_credit: Optional[float] = None,
    ):
        """Initialize orchestrator with optional dependencies.

        Args:
            oracle: Dialogue oracle (defaults to the Claude-backed singleton)
            directory: Provider lookup (defaults to configured directory)
            voice: Voice playback for narration (off when None)
            policy: Call timing/probability policy (defaults to settings)
            random_source: Randomness for jitter and no-answer (for testing)
            partial_credit: Availability score for out-of-window offers
        """
        self._oracle = oracle
        self._directory = directory
        self._voice = voice
        self._policy = policy or CallPolicy.from_settings()
        self._random = random_source
        self._partial_credit = (
            settings.partial_availability_credit if partial_credit is None else partial_credit
        )
        self._mission: Optional[MissionContext] = None
        self._start_lock = asyncio.Lock()

    def _get_oracle(self) -> DialogueOracle:
        if self._oracle is None:
            self._oracle = get_dialogue_oracle()
        return self._oracle

    def _get_directory(self) -> ProviderLookup:
        if self._directory is None:
            self._directory = get_provider_directory()
        return self._directory

    @property
    def current(self) -> Optional[MissionHandle]:
        """Handle for the current mission, if any."""
        if self._mission is None:
            return None
        return MissionHandle(self, self._mission)

    # === Mission lifecycle ===

    async def start_mission(
        self,
        request: Optional[BookingRequest],
        providers: Optional[Iterable[Provider]] = None,
    ) -> MissionHandle:
        """Start calling providers for a request.

        Args:
            request: Booking request
            providers: Providers to call (resolved through the directory if None)

        Returns:
            MissionHandle for the new mission, or for the running mission
            when the same request is started again

        Raises:
            MissionError: If no request is given
            ScoringError: If the request's weights cannot be scored
        """
        if request is None:
            raise MissionError("A booking request is required to start a mission")
        validate_weights(request.weights)

        async with self._start_lock:
            current = self._mission
            if (
                current is not None
                and current.request.id == request.id
                and current.status == MissionStatus.RUNNING
            ):
                logger.info(f"Mission {current.mission_id} already running for request {request.id}")
                return MissionHandle(self, current)

            if current is not None:
                await self._discard(current)
                self._mission = None

            if providers is None:
                provider_list = await self._get_directory().lookup(
                    request.category, request.location or None
                )
            else:
                provider_list = list(providers)

            context = MissionContext(request=request)
            self._mission = context

            if not provider_list:
                context.status = MissionStatus.NO_PROVIDERS
                context.notice = NO_PROVIDERS_NOTICE
                context.finished_at = _utcnow()
                context.settled.set()
                logger.warning(
                    f"No providers for {request.category.value} near {request.location!r}"
                )
                self._publish(context, MissionEventType.NO_PROVIDERS, data={"notice": context.notice})
                return MissionHandle(self, context)

            listener = _MissionListener(self, context)
            for provider in provider_list:
                if provider.id in context.attempts:
                    logger.warning(f"Duplicate provider {provider.id} skipped")
                    continue
                context.records[provider.id] = CallRecord(provider=provider)
                context.attempts[provider.id] = CallAttempt(
                    provider=provider,
                    request=request,
                    oracle=self._get_oracle(),
                    policy=self._policy,
                    voice=self._voice,
                    random_source=self._random,
                    listener=listener,
                )

            logger.info(
                f"Mission {context.mission_id} started: {len(context.attempts)} calls "
                f"for {request.category.value}"
            )
            self._publish(
                context,
                MissionEventType.MISSION_STARTED,
                data={"providers": list(context.attempts)},
            )

            for attempt in context.attempts.values():
                attempt.start()

            return MissionHandle(self, context)

    async def stop_mission(self) -> MissionSnapshot:
        """Cancel every call in the current mission.

        Recorded transcript entries are kept.

        Raises:
            MissionError: If there is no mission
        """
        context = self._require_mission()
        if context.status == MissionStatus.RUNNING:
            await self._discard(context)
        return self._snapshot(context)

    async def _discard(self, context: MissionContext) -> None:
        # Flags first, so nothing suspended can record once we start awaiting
        for attempt in context.attempts.values():
            attempt.cancel()

        if context.status == MissionStatus.RUNNING:
            context.status = MissionStatus.STOPPED
            context.finished_at = _utcnow()
            context.settled.set()
            logger.info(f"Mission {context.mission_id} stopped")
            self._publish(context, MissionEventType.MISSION_STOPPED)

        tasks = [a.task for a in context.attempts.values() if a.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # === Manual control ===

    def take_over(self, provider_id: Optional[str] = None) -> list[str]:
        """Suspend automated calling for one provider or all of them.

        Returns:
            Provider ids that were suspended
        """
        context = self._require_running()
        suspended = []
        for attempt in self._targets(context, provider_id):
            if attempt.take_over():
                context.records[attempt.provider_id].suspended = True
                suspended.append(attempt.provider_id)
                self._publish(context, MissionEventType.TAKEOVER, provider_id=attempt.provider_id)

        if provider_id is None:
            context.taken_over = True
        return suspended

    def resume(self, provider_id: Optional[str] = None) -> list[str]:
        """Re-enable manual messaging and resolution after a takeover.

        Automated dialogue is not replayed.

        Returns:
            Provider ids that were resumed
        """
        context = self._require_running()
        resumed = []
        for attempt in self._targets(context, provider_id):
            if attempt.is_suspended and not attempt.is_terminal:
                attempt.resume()
                resumed.append(attempt.provider_id)
                self._publish(context, MissionEventType.RESUMED, provider_id=attempt.provider_id)

        if provider_id is None:
            context.taken_over = False
        return resumed

    def send_message(self, provider_id: str, text: str) -> Utterance:
        """Append a user-authored line to a call's transcript."""
        context = self._require_running()
        attempt = self._attempt(context, provider_id)
        try:
            return attempt.add_user_message(text)
        except CallActionError as e:
            raise MissionError(str(e)) from e

    def resolve_call(self, provider_id: str, slots: Iterable[TimeWindow]) -> CallStatus:
        """Finish a taken-over, resumed call with the slots agreed manually."""
        context = self._require_running()
        attempt = self._attempt(context, provider_id)
        try:
            return attempt.resolve(slots)
        except CallActionError as e:
            raise MissionError(str(e)) from e

    # === Update handlers (sole writers of mission state) ===

    def _handle_status(
        self,
        context: MissionContext,
        attempt: CallAttempt,
        status: CallStatus,
    ) -> None:
        record = context.records[attempt.provider_id]
        view = attempt.snapshot()
        record.status = status
        record.offered_slots = list(view.offered_slots)
        record.started_at = view.started_at
        record.ended_at = view.ended_at
        record.suspended = view.suspended

        self._publish(
            context,
            MissionEventType.CALL_STATUS,
            provider_id=attempt.provider_id,
            status=status,
            data={"offered_slots": [s.to_dict() for s in record.offered_slots]}
            if is_terminal_status(status) else {},
        )
        self._check_done(context)

    def _handle_utterance(
        self,
        context: MissionContext,
        attempt: CallAttempt,
        utterance: Utterance,
    ) -> None:
        context.records[attempt.provider_id].transcript.append(utterance)
        self._publish(
            context,
            MissionEventType.CALL_UTTERANCE,
            provider_id=attempt.provider_id,
            utterance=utterance,
        )

    def _check_done(self, context: MissionContext) -> None:
        if context.status != MissionStatus.RUNNING or not context.all_terminal:
            return

        offers = collect_offers(context.records.values())
        context.results = score_offers(
            offers,
            context.request.weights,
            context.request.free_windows,
            partial_credit=self._partial_credit,
        )
        context.status = MissionStatus.DONE
        context.finished_at = _utcnow()
        context.settled.set()

        logger.info(
            f"Mission {context.mission_id} done: {len(offers)} offers from "
            f"{context.total_count} calls"
        )
        self._publish(
            context,
            MissionEventType.MISSION_DONE,
            data={"offers": len(offers)},
        )

    # === Helpers ===

    def _publish(
        self,
        context: MissionContext,
        event_type: MissionEventType,
        provider_id: Optional[str] = None,
        status: Optional[CallStatus] = None,
        utterance: Optional[Utterance] = None,
        data: Optional[dict] = None,
    ) -> None:
        context.events.publish(
            MissionEvent(
                type=event_type,
                mission_id=context.mission_id,
                provider_id=provider_id,
                status=status,
                utterance=utterance,
                data=data or {},
            )
        )

    def _snapshot(self, context: MissionContext) -> MissionSnapshot:
        return MissionSnapshot(
            mission_id=context.mission_id,
            request_id=context.request.id,
            status=context.status,
            calls=tuple(r.snapshot() for r in context.records.values()),
            completed=context.completed_count,
            total=context.total_count,
            taken_over=context.taken_over,
            results=tuple(context.results) if context.results is not None else None,
            notice=context.notice,
        )

    def _require_mission(self) -> MissionContext:
        if self._mission is None:
            raise MissionError("No mission has been started")
        return self._mission

    def _require_running(self) -> MissionContext:
        context = self._require_mission()
        if context.status != MissionStatus.RUNNING:
            raise MissionError(f"Mission is {context.status.value}")
        return context

    def _attempt(self, context: MissionContext, provider_id: str) -> CallAttempt:
        attempt = context.attempts.get(provider_id)
        if attempt is None:
            raise MissionError(f"Unknown provider: {provider_id}")
        return attempt

    def _targets(self, context: MissionContext, provider_id: Optional[str]) -> list[CallAttempt]:
        if provider_id is None:
            return list(context.attempts.values())
        return [self._attempt(context, provider_id)]


# Singleton
_orchestrator: Optional[OutreachOrchestrator] = None


def get_orchestrator() -> OutreachOrchestrator:
    """Get singleton OutreachOrchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = OutreachOrchestrator(voice=get_voice_client())
    return _orchestrator
