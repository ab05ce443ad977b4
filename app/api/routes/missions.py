"""
Missions API Endpoints.

Start an outreach mission, watch it, take over calls and read the ranked
results. There is at most one current mission.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.api.routes.planning import resolve_free_windows
from app.api.schemas import (
    BusyEventModel,
    ErrorResponse,
    TimeWindowModel,
    WeightsModel,
    to_windows,
)
from app.core.outreach.calendar import CalendarEventSource, get_calendar_source
from app.core.outreach.models import BookingRequest, Category
from app.core.outreach.orchestrator import (
    MissionError,
    MissionHandle,
    OutreachOrchestrator,
    get_orchestrator,
)
from app.core.outreach.scoring import ScoringError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/missions", tags=["Missions"])


class StartMissionRequest(BaseModel):
    """What to book and when the user is free."""

    description: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        examples=["Annual checkup, new patient"],
    )
    category: Category
    location: str = Field(default="", examples=["San Francisco"])
    availability: list[TimeWindowModel] = Field(
        ...,
        min_length=1,
        description="Windows the user is generally available",
    )
    busy_events: list[BusyEventModel] = Field(default_factory=list)
    calendar_token: Optional[str] = None
    weights: WeightsModel = Field(default_factory=WeightsModel)
    request_id: Optional[str] = Field(
        default=None,
        description="Client id for the request; starting it again while running is a no-op",
    )


class TakeoverRequest(BaseModel):
    """Target one call, or every call when provider_id is omitted."""

    provider_id: Optional[str] = None


class MessageRequest(BaseModel):
    """A line typed by the user during a taken-over call."""

    text: str = Field(..., min_length=1, max_length=2000)


class ResolveRequest(BaseModel):
    """Slots agreed with the provider during manual handling."""

    slots: list[TimeWindowModel] = Field(default_factory=list)


def _current(orchestrator: OutreachOrchestrator) -> MissionHandle:
    handle = orchestrator.current
    if handle is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No mission has been started",
        )
    return handle


def _conflict(e: MissionError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Start a mission",
    responses={
        422: {"model": ErrorResponse, "description": "Invalid windows or weights"},
        502: {"model": ErrorResponse, "description": "Calendar unavailable"},
    },
)
async def start_mission(
    request: StartMissionRequest,
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
    calendar: CalendarEventSource = Depends(get_calendar_source),
) -> dict:
    """
    Reconcile availability, then call every matching provider concurrently.

    A previous mission is stopped and replaced.
    """
    free_windows = await resolve_free_windows(
        request.availability,
        request.busy_events,
        request.calendar_token,
        calendar,
    )

    fields = {}
    if request.request_id:
        fields["id"] = request.request_id

    booking_request = BookingRequest(
        description=request.description,
        category=request.category,
        location=request.location,
        free_windows=tuple(free_windows),
        weights=request.weights.to_weights(),
        **fields,
    )

    try:
        handle = await orchestrator.start_mission(booking_request)
    except ScoringError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except MissionError as e:
        raise _conflict(e)

    snapshot = handle.snapshot().to_dict()
    snapshot["free_windows"] = [w.to_dict() for w in free_windows]
    return snapshot


@router.get("/current", summary="Current mission state")
async def current_mission(
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
) -> dict:
    return _current(orchestrator).snapshot().to_dict()


@router.post("/current/stop", summary="Stop every call")
async def stop_mission(
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
) -> dict:
    _current(orchestrator)
    snapshot = await orchestrator.stop_mission()
    return snapshot.to_dict()


@router.post("/current/takeover", summary="Suspend automated calling")
async def take_over(
    request: TakeoverRequest,
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
) -> dict:
    _current(orchestrator)
    try:
        suspended = orchestrator.take_over(request.provider_id)
    except MissionError as e:
        raise _conflict(e)
    return {"suspended": suspended}


@router.post("/current/resume", summary="Enable manual messaging after a takeover")
async def resume(
    request: TakeoverRequest,
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
) -> dict:
    _current(orchestrator)
    try:
        resumed = orchestrator.resume(request.provider_id)
    except MissionError as e:
        raise _conflict(e)
    return {"resumed": resumed}


@router.post(
    "/current/calls/{provider_id}/messages",
    status_code=status.HTTP_201_CREATED,
    summary="Add a user line to a call transcript",
)
async def send_message(
    provider_id: str,
    request: MessageRequest,
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
) -> dict:
    _current(orchestrator)
    try:
        utterance = orchestrator.send_message(provider_id, request.text)
    except MissionError as e:
        raise _conflict(e)
    return utterance.to_dict()


@router.post(
    "/current/calls/{provider_id}/resolve",
    summary="Finish a manually handled call",
)
async def resolve_call(
    provider_id: str,
    request: ResolveRequest,
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
) -> dict:
    _current(orchestrator)
    slots = to_windows(request.slots)
    try:
        call_status = orchestrator.resolve_call(provider_id, slots)
    except MissionError as e:
        raise _conflict(e)
    return {"provider_id": provider_id, "status": call_status.value}


@router.get("/current/results", summary="Ranked offers")
async def results(
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Available once every call has finished."""
    handle = _current(orchestrator)
    ranked = handle.results
    if ranked is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Mission is {handle.status.value}",
        )
    return {
        "mission_id": handle.mission_id,
        "results": [r.to_dict() for r in ranked],
    }
