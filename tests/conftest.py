"""Shared fixtures for outreach tests."""

from datetime import date, time
from typing import Callable

import pytest

from app.core.outreach.call import CallPolicy
from app.core.outreach.models import (
    BookingRequest,
    Category,
    Provider,
    ScoringWeights,
    TimeWindow,
)


class FixedRandom:
    """Deterministic stand-in for random.Random."""

    def __init__(self, value: float = 0.99):
        self.value = value

    def random(self) -> float:
        return self.value

    def uniform(self, a: float, b: float) -> float:
        return a


def make_window(day: int, start: int, end: int) -> TimeWindow:
    return TimeWindow(day=date(2026, 2, day), start=time(start), end=time(end))


@pytest.fixture
def answering_random() -> FixedRandom:
    """Calls are always picked up."""
    return FixedRandom(0.99)


@pytest.fixture
def silent_random() -> FixedRandom:
    """Calls are never picked up."""
    return FixedRandom(0.0)


@pytest.fixture
def fast_policy() -> CallPolicy:
    """No dial, ring or pacing delays."""
    return CallPolicy(
        dial_delay_min=0.0,
        dial_delay_max=0.0,
        ring_duration_min=0.0,
        ring_duration_max=0.0,
        no_answer_probability=0.1,
        pacing_base_seconds=0.0,
        pacing_per_char_seconds=0.0,
        pacing_max_seconds=0.0,
        oracle_timeout_seconds=1.0,
    )


@pytest.fixture
def free_windows() -> tuple[TimeWindow, ...]:
    return (make_window(10, 8, 12), make_window(11, 13, 17))


@pytest.fixture
def make_provider() -> Callable[..., Provider]:
    def _make(
        pid: str = "med-1",
        name: str = "CityHealth Medical Center",
        rating: float = 4.8,
        distance: float = 1.2,
    ) -> Provider:
        return Provider(
            id=pid,
            name=name,
            category=Category.MEDICAL,
            address="123 Main St",
            city="San Francisco",
            zip="94102",
            phone="(415) 555-0101",
            rating=rating,
            distance=distance,
        )

    return _make


@pytest.fixture
def booking_request(free_windows) -> BookingRequest:
    return BookingRequest(
        description="Annual checkup",
        category=Category.MEDICAL,
        free_windows=free_windows,
        weights=ScoringWeights(),
        location="San Francisco",
        id="req-1",
    )
