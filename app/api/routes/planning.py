"""
Planning API Endpoints.

Stateless helpers: turn availability plus calendar events into free windows,
and rank offers against those windows.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from app.config import settings
from app.api.schemas import (
    BusyEventModel,
    ErrorResponse,
    TimeWindowModel,
    WeightsModel,
    to_busy_events,
    to_windows,
)
from app.core.outreach.availability import parse_busy_events, reconcile
from app.core.outreach.calendar import (
    CalendarEventSource,
    CalendarSourceError,
    get_calendar_source,
)
from app.core.outreach.models import BusyEvent, Provider, SlotOffer, TimeWindow
from app.core.outreach.scoring import ScoringError, score_offers

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/planning", tags=["Planning"])


class FreeWindowsRequest(BaseModel):
    """Availability to reconcile."""

    availability: list[TimeWindowModel] = Field(
        ...,
        description="Windows the user is generally available",
    )
    busy_events: list[BusyEventModel] = Field(
        default_factory=list,
        description="Calendar events blocking time",
    )
    calendar_token: Optional[str] = Field(
        default=None,
        description="OAuth token; when given, busy events are also read from the calendar",
    )


class FreeWindowsResponse(BaseModel):
    """Reconciled free windows."""

    free_windows: list[dict]


class OfferModel(BaseModel):
    """A provider and one slot it offers."""

    provider: dict
    slot: TimeWindowModel


class ScoreRequest(BaseModel):
    """Offers to rank."""

    offers: list[OfferModel]
    free_windows: list[TimeWindowModel] = Field(default_factory=list)
    weights: WeightsModel = Field(default_factory=WeightsModel)


class ScoreResponse(BaseModel):
    """Ranked offers, best first."""

    results: list[dict]


async def collect_busy_events(
    models: list[BusyEventModel],
    calendar_token: Optional[str],
    calendar: CalendarEventSource,
) -> list[BusyEvent]:
    """Merge inline events with the user's calendar, mapping calendar failures to 502."""
    events = parse_busy_events(to_busy_events(models))
    if calendar_token:
        try:
            events.extend(await calendar.list_busy_events(calendar_token))
        except CalendarSourceError as e:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=str(e),
            )
    return events


async def resolve_free_windows(
    availability: list[TimeWindowModel],
    busy_events: list[BusyEventModel],
    calendar_token: Optional[str],
    calendar: CalendarEventSource,
) -> list[TimeWindow]:
    events = await collect_busy_events(busy_events, calendar_token, calendar)
    return reconcile(to_windows(availability), events)


@router.post(
    "/free-windows",
    response_model=FreeWindowsResponse,
    summary="Reconcile availability with calendar events",
    responses={
        422: {"model": ErrorResponse, "description": "Invalid window"},
        502: {"model": ErrorResponse, "description": "Calendar unavailable"},
    },
)
async def free_windows(
    request: FreeWindowsRequest,
    calendar: CalendarEventSource = Depends(get_calendar_source),
) -> FreeWindowsResponse:
    windows = await resolve_free_windows(
        request.availability,
        request.busy_events,
        request.calendar_token,
        calendar,
    )
    return FreeWindowsResponse(free_windows=[w.to_dict() for w in windows])


@router.post(
    "/score",
    response_model=ScoreResponse,
    summary="Rank offers",
    responses={
        422: {"model": ErrorResponse, "description": "Invalid offers or weights"},
    },
)
async def score(request: ScoreRequest) -> ScoreResponse:
    """Score offers by availability fit, rating and distance."""
    try:
        offers = [
            SlotOffer(provider=Provider.from_dict(o.provider), slot=o.slot.to_window())
            for o in request.offers
        ]
        ranked = score_offers(
            offers,
            request.weights.to_weights(),
            to_windows(request.free_windows),
            partial_credit=settings.partial_availability_credit,
        )
    except (ScoringError, ValueError, KeyError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )

    return ScoreResponse(results=[r.to_dict() for r in ranked])
