"""
Outreach data models.

Value types shared by the reconciler, scorer, call attempts and orchestrator.
Wire format uses ISO days ("2026-02-10") and wall-clock times ("09:00").
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import Any, Optional, Union
from uuid import uuid4


def _utcnow() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def _parse_day(value: Union[str, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _parse_time(value: Union[str, time]) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value))


def format_time(value: time) -> str:
    """Format a wall-clock time as HH:MM."""
    return value.strftime("%H:%M")


class Category(str, Enum):
    """Provider categories."""

    MEDICAL = "medical"
    AUTO = "auto"
    BEAUTY = "beauty"
    HOME = "home"
    FITNESS = "fitness"
    LEGAL = "legal"


class SpeakerRole(str, Enum):
    """Who said a transcript line."""

    AGENT = "agent"
    COUNTERPARTY = "counterparty"
    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True)
class TimeWindow:
    """A span of wall-clock time on a single day.

    No timezone is attached; comparisons are purely local. The latest
    possible end is 23:59, so a whole-day window stops one minute short of
    midnight.
    """

    day: date
    start: time
    end: time

    def __post_init__(self) -> None:
        if self.start.tzinfo is not None or self.end.tzinfo is not None:
            raise ValueError(
                f"Window times must not carry a timezone offset: {self.day} "
                f"{self.start.isoformat()}-{self.end.isoformat()}"
            )
        if not self.start < self.end:
            raise ValueError(
                f"Window start must be before end: {self.day} "
                f"{format_time(self.start)}-{format_time(self.end)}"
            )

    @classmethod
    def from_dict(cls, data: dict) -> "TimeWindow":
        """Create from wire dict ({"day", "start", "end"})."""
        return cls(
            day=_parse_day(data["day"]),
            start=_parse_time(data["start"]),
            end=_parse_time(data["end"]),
        )

    def to_dict(self) -> dict:
        """Convert to wire dict."""
        return {
            "day": self.day.isoformat(),
            "start": format_time(self.start),
            "end": format_time(self.end),
        }

    def contains(self, other: "TimeWindow") -> bool:
        """Check whether other lies fully inside this window on the same day."""
        return (
            self.day == other.day
            and self.start <= other.start
            and other.end <= self.end
        )

    def __str__(self) -> str:
        return f"{self.day.isoformat()} {format_time(self.start)}-{format_time(self.end)}"


def fits_any(slot: TimeWindow, windows: list[TimeWindow]) -> bool:
    """Check whether slot is fully contained in at least one window."""
    return any(window.contains(slot) for window in windows)


@dataclass(frozen=True)
class BusyEvent:
    """A calendar entry that blocks time.

    start/end may be ISO strings ("2026-02-10" or "2026-02-10T09:00:00-08:00")
    or date/datetime objects. Only wall-clock fields are ever read.
    """

    start: Union[str, date, datetime]
    end: Union[str, date, datetime]
    all_day: bool = False
    summary: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "BusyEvent":
        """Create from dict with start/end and an allDay/all_day flag."""
        all_day = data.get("all_day", data.get("allDay"))
        if all_day is None:
            all_day = "T" not in str(data["start"])
        return cls(
            start=data["start"],
            end=data.get("end") or data["start"],
            all_day=bool(all_day),
            summary=data.get("summary"),
        )


@dataclass(frozen=True)
class Provider:
    """A service provider that can be called."""

    id: str
    name: str
    category: Category
    address: str = ""
    city: str = ""
    zip: str = ""
    phone: str = ""
    rating: float = 0.0
    distance: float = 0.0
    available_slots: tuple[TimeWindow, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "Provider":
        """Create from API response dict."""
        slots = data.get("available_slots", data.get("availableSlots")) or []
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            category=Category(data.get("category", Category.MEDICAL.value)),
            address=data.get("address", ""),
            city=data.get("city", ""),
            zip=str(data.get("zip", "")),
            phone=data.get("phone", ""),
            rating=float(data.get("rating", 0.0)),
            distance=float(data.get("distance", 0.0)),
            available_slots=tuple(TimeWindow.from_dict(s) for s in slots),
        )

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category.value,
            "address": self.address,
            "city": self.city,
            "zip": self.zip,
            "phone": self.phone,
            "rating": self.rating,
            "distance": self.distance,
            "available_slots": [s.to_dict() for s in self.available_slots],
        }

    def public_summary(self) -> dict:
        """Attributes shared with the dialogue oracle."""
        return {
            "name": self.name,
            "category": self.category.value,
            "address": self.address,
            "phone": self.phone,
            "rating": self.rating,
        }


@dataclass(frozen=True)
class Utterance:
    """A single transcript line."""

    role: SpeakerRole
    text: str
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "role": self.role.value,
            "text": self.text,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class ScoringWeights:
    """Relative importance of each score component."""

    availability: float = 50.0
    rating: float = 30.0
    distance: float = 20.0

    @property
    def total(self) -> float:
        return self.availability + self.rating + self.distance

    @classmethod
    def from_dict(cls, data: dict) -> "ScoringWeights":
        return cls(
            availability=float(data.get("availability", 0)),
            rating=float(data.get("rating", 0)),
            distance=float(data.get("distance", 0)),
        )

    def to_dict(self) -> dict:
        return {
            "availability": self.availability,
            "rating": self.rating,
            "distance": self.distance,
        }


@dataclass(frozen=True)
class SlotOffer:
    """A slot offered by a provider, before scoring."""

    provider: Provider
    slot: TimeWindow


@dataclass(frozen=True)
class ComponentScores:
    """Integer scores in [0, 100]."""

    availability: int
    rating: int
    distance: int
    total: int

    def to_dict(self) -> dict:
        return {
            "availability": self.availability,
            "rating": self.rating,
            "distance": self.distance,
            "total": self.total,
        }


@dataclass(frozen=True)
class ScoredOffer:
    """A ranked offer. Recomputed on every scoring run."""

    provider: Provider
    slot: TimeWindow
    scores: ComponentScores

    @property
    def total_score(self) -> int:
        return self.scores.total

    def to_dict(self) -> dict:
        return {
            "provider": self.provider.to_dict(),
            "slot": self.slot.to_dict(),
            "scores": self.scores.to_dict(),
        }


@dataclass(frozen=True)
class BookingRequest:
    """What the user needs. Immutable once created."""

    description: str
    category: Category
    free_windows: tuple[TimeWindow, ...]
    weights: ScoringWeights = field(default_factory=ScoringWeights)
    location: str = ""
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "category": self.category.value,
            "location": self.location,
            "free_windows": [w.to_dict() for w in self.free_windows],
            "weights": self.weights.to_dict(),
            "created_at": self.created_at.isoformat(),
        }


class BookingStatus(str, Enum):
    """Lifecycle of a confirmed booking."""

    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


@dataclass
class Booking:
    """A confirmed appointment chosen from ranked offers."""

    request_id: str
    provider: Provider
    slot: TimeWindow
    id: str = field(default_factory=lambda: str(uuid4()))
    status: BookingStatus = BookingStatus.CONFIRMED
    confirmed_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "request_id": self.request_id,
            "provider": self.provider.to_dict(),
            "slot": self.slot.to_dict(),
            "status": self.status.value,
            "confirmed_at": self.confirmed_at.isoformat(),
        }

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, data: str) -> "Booking":
        """Deserialize from JSON string."""
        raw = json.loads(data)
        return cls(
            id=raw["id"],
            request_id=raw["request_id"],
            provider=Provider.from_dict(raw["provider"]),
            slot=TimeWindow.from_dict(raw["slot"]),
            status=BookingStatus(raw["status"]),
            confirmed_at=datetime.fromisoformat(raw["confirmed_at"]),
        )
