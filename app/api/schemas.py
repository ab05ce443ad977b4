"""Request/response models shared by the API routes."""

from datetime import date, time
from typing import Optional

from fastapi import HTTPException, status
from pydantic import BaseModel, Field

from app.core.outreach.models import ScoringWeights, TimeWindow


class TimeWindowModel(BaseModel):
    """A window on one day, e.g. {"day": "2026-02-10", "start": "09:00", "end": "10:00"}."""

    day: date
    start: time
    end: time

    def to_window(self) -> TimeWindow:
        return TimeWindow(day=self.day, start=self.start, end=self.end)


class BusyEventModel(BaseModel):
    """Calendar event blocking time. Timestamps are read as local wall-clock."""

    start: str = Field(..., examples=["2026-02-10T09:00:00-08:00"])
    end: Optional[str] = Field(default=None, examples=["2026-02-10T10:00:00-08:00"])
    all_day: Optional[bool] = None
    summary: Optional[str] = None

    def to_event(self) -> dict:
        return self.model_dump(exclude_none=True)


class WeightsModel(BaseModel):
    """Scoring weights; only the ratio matters."""

    availability: float = 50.0
    rating: float = 30.0
    distance: float = 20.0

    def to_weights(self) -> ScoringWeights:
        return ScoringWeights(
            availability=self.availability,
            rating=self.rating,
            distance=self.distance,
        )


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


def to_windows(models: list[TimeWindowModel]) -> list[TimeWindow]:
    """Convert wire windows, mapping invalid ranges to 422."""
    try:
        return [m.to_window() for m in models]
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )


def to_busy_events(models: list[BusyEventModel]) -> list[dict]:
    return [m.to_event() for m in models]
