"""
HTTP client for calendar busy events (Google Calendar v3).

Only the events listing is used. Each event becomes a BusyEvent carrying the
raw start/end strings, so the reconciler can read local wall-clock fields
without any timezone conversion.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from app.config import get_settings
from app.core.outreach.availability import parse_busy_events
from app.core.outreach.models import BusyEvent

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD = timedelta(days=30)
MAX_RESULTS = 100


class CalendarSourceError(Exception):
    """Raised when busy events cannot be fetched."""
    pass


def _event_to_dict(item: dict) -> dict:
    start = item.get("start") or {}
    end = item.get("end") or {}
    return {
        "summary": item.get("summary") or "(No title)",
        "start": start.get("dateTime") or start.get("date"),
        "end": end.get("dateTime") or end.get("date"),
        "all_day": not start.get("dateTime"),
    }


class CalendarEventSource:
    """
    Reads busy events from the user's primary calendar.

    API used:
    - GET /calendars/primary/events?timeMin&timeMax&singleEvents&orderBy&maxResults
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize client.

        Args:
            base_url: Calendar API base URL (defaults to settings)
            timeout: Request timeout in seconds
        """
        settings = get_settings()
        self.base_url = base_url or settings.calendar_api_url
        self.timeout = timeout or settings.http_timeout_seconds
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def list_busy_events(
        self,
        access_token: str,
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> list[BusyEvent]:
        """Fetch busy events.

        Args:
            access_token: OAuth access token (obtained and refreshed elsewhere)
            time_min: Range start (defaults to now)
            time_max: Range end (defaults to 30 days after time_min)

        Returns:
            Busy events in calendar order

        Raises:
            CalendarSourceError: If the calendar cannot be read
        """
        client = await self._get_client()

        time_min = time_min or datetime.now(timezone.utc)
        time_max = time_max or time_min + DEFAULT_LOOKAHEAD

        params = {
            "timeMin": time_min.isoformat(),
            "timeMax": time_max.isoformat(),
            "singleEvents": "true",
            "orderBy": "startTime",
            "maxResults": str(MAX_RESULTS),
        }

        try:
            response = await client.get(
                "/calendars/primary/events",
                params=params,
                headers={"Authorization": f"Bearer {access_token}"},
            )
            response.raise_for_status()
            data = response.json()

        except httpx.HTTPStatusError as e:
            logger.error(f"Calendar API error [{e.response.status_code}]: {e}")
            raise CalendarSourceError(
                f"Calendar API returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch calendar events: {e}")
            raise CalendarSourceError("Unable to reach calendar") from e

        items = data.get("items", [])
        events = parse_busy_events(_event_to_dict(item) for item in items)
        logger.info(f"Fetched {len(events)} busy events")
        return events


# Singleton
_source: Optional[CalendarEventSource] = None


def get_calendar_source() -> CalendarEventSource:
    """Get singleton CalendarEventSource."""
    global _source
    if _source is None:
        _source = CalendarEventSource()
    return _source
