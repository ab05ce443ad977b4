"""
Outreach Module

Finds an appointment by calling providers concurrently: reconciles the user's
availability with their calendar, runs one narrated call per provider, lets
the user take over any call and ranks the slots offered.

Usage:
    from app.core.outreach import (
        BookingRequest,
        Category,
        get_orchestrator,
        reconcile,
    )

    request = BookingRequest(
        description="Annual checkup",
        category=Category.MEDICAL,
        free_windows=tuple(reconcile(base_windows, busy_events)),
    )
    handle = await get_orchestrator().start_mission(request)
    snapshot = await handle.wait()
    print(snapshot.results[0].provider.name)  # Best offer
"""

# Models
from app.core.outreach.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    BusyEvent,
    Category,
    Provider,
    ScoredOffer,
    ScoringWeights,
    SlotOffer,
    SpeakerRole,
    TimeWindow,
    Utterance,
)

# Availability Reconciler
from app.core.outreach.availability import parse_busy_events, reconcile

# Slot Scorer
from app.core.outreach.scoring import ScoringError, collect_offers, score_offers

# Call Attempt
from app.core.outreach.state import CallStatus, InvalidTransitionError
from app.core.outreach.call import CallAttempt, CallPolicy, CallSnapshot

# Dialogue Oracle
from app.core.outreach.oracle import (
    DialogueOracle,
    OracleError,
    OracleResponseError,
    get_dialogue_oracle,
)

# Orchestrator
from app.core.outreach.events import MissionEvent, MissionEventType
from app.core.outreach.orchestrator import (
    MissionError,
    MissionHandle,
    MissionSnapshot,
    MissionStatus,
    OutreachOrchestrator,
    get_orchestrator,
)

# Bookings
from app.core.outreach.bookings import BookingLedger, get_booking_ledger

__all__ = [
    # Models
    "Booking",
    "BookingRequest",
    "BookingStatus",
    "BusyEvent",
    "Category",
    "Provider",
    "ScoredOffer",
    "ScoringWeights",
    "SlotOffer",
    "SpeakerRole",
    "TimeWindow",
    "Utterance",
    # Availability
    "parse_busy_events",
    "reconcile",
    # Scoring
    "ScoringError",
    "collect_offers",
    "score_offers",
    # Calls
    "CallAttempt",
    "CallPolicy",
    "CallSnapshot",
    "CallStatus",
    "InvalidTransitionError",
    # Oracle
    "DialogueOracle",
    "OracleError",
    "OracleResponseError",
    "get_dialogue_oracle",
    # Orchestrator
    "MissionError",
    "MissionEvent",
    "MissionEventType",
    "MissionHandle",
    "MissionSnapshot",
    "MissionStatus",
    "OutreachOrchestrator",
    "get_orchestrator",
    # Bookings
    "BookingLedger",
    "get_booking_ledger",
]
