"""
Provider directory.

Resolves the providers to call for a category and location. Two sources:
- ProviderDirectoryClient: HTTP search service (PROVIDER_DIRECTORY_URL)
- StaticProviderDirectory: built-in catalogue for local development

An empty result is a valid outcome, not an error.
"""

import logging
from datetime import date, time
from typing import Optional, Protocol, Union

import httpx

from app.config import get_settings
from app.core.outreach.models import Category, Provider, TimeWindow

logger = logging.getLogger(__name__)


class ProviderLookup(Protocol):
    """Anything that can find providers."""

    async def lookup(
        self,
        category: Category,
        location: Optional[str] = None,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
    ) -> list[Provider]: ...


class ProviderDirectoryClient:
    """
    HTTP client for the provider search service.

    Service exposes:
    - POST /providers/search - {category, location?, lat?, lon?} -> {providers: [...]}
    """

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize client.

        Args:
            base_url: Directory base URL (defaults to settings)
            timeout: Request timeout in seconds
        """
        settings = get_settings()
        self.base_url = base_url or settings.provider_directory_url or ""
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

    async def lookup(
        self,
        category: Category,
        location: Optional[str] = None,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
    ) -> list[Provider]:
        """Search providers near a location.

        Args:
            category: Provider category
            location: Free-text location (geocoded by the service)
            lat: Latitude, if already known
            lon: Longitude, if already known

        Returns:
            Providers found (empty on no match or transport failure)
        """
        client = await self._get_client()

        payload: dict = {"category": category.value}
        if location:
            payload["location"] = location
        if lat is not None and lon is not None:
            payload["lat"] = lat
            payload["lon"] = lon

        try:
            response = await client.post("/providers/search", json=payload)
            response.raise_for_status()

            data = response.json()
            if isinstance(data, list):
                items = data
            else:
                items = data.get("providers", data.get("items", []))

        except httpx.HTTPError as e:
            logger.error(f"Failed to search providers: {e}")
            return []

        providers: list[Provider] = []
        for item in items:
            try:
                providers.append(Provider.from_dict(item))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed provider entry: {e}")

        logger.info(f"Directory returned {len(providers)} {category.value} providers")
        return providers


def _slot(day: str, start: str, end: str) -> TimeWindow:
    return TimeWindow(
        day=date.fromisoformat(day),
        start=time.fromisoformat(start),
        end=time.fromisoformat(end),
    )


def _provider(
    id: str,
    name: str,
    category: Category,
    address: str,
    zip: str,
    phone: str,
    rating: float,
    distance: float,
    slots: list[tuple[str, str, str]],
    city: str = "San Francisco",
) -> Provider:
    return Provider(
        id=id,
        name=name,
        category=category,
        address=address,
        city=city,
        zip=zip,
        phone=phone,
        rating=rating,
        distance=distance,
        available_slots=tuple(_slot(*s) for s in slots),
    )


DEFAULT_CATALOGUE: tuple[Provider, ...] = (
    # Medical
    _provider("med-1", "CityHealth Medical Center", Category.MEDICAL, "123 Main St", "94102",
              "(415) 555-0101", 4.8, 1.2,
              [("2026-02-09", "09:00", "09:30"), ("2026-02-10", "14:00", "14:30"),
               ("2026-02-11", "11:00", "11:30")]),
    _provider("med-2", "Bay Area Family Practice", Category.MEDICAL, "456 Oak Ave", "94103",
              "(415) 555-0102", 4.5, 2.4,
              [("2026-02-09", "10:30", "11:00"), ("2026-02-12", "09:00", "09:30")]),
    _provider("med-3", "Pacific Heights Dental", Category.MEDICAL, "789 Pine St", "94108",
              "(415) 555-0103", 4.9, 0.8,
              [("2026-02-10", "08:00", "08:30"), ("2026-02-10", "15:00", "15:30"),
               ("2026-02-13", "10:00", "10:30")]),
    _provider("med-4", "Marina Wellness Clinic", Category.MEDICAL, "321 Marina Blvd", "94123",
              "(415) 555-0104", 4.3, 3.1,
              [("2026-02-11", "13:00", "13:30")]),
    _provider("med-5", "Sunset Medical Group", Category.MEDICAL, "654 Sunset Blvd", "94116",
              "(415) 555-0105", 4.6, 5.2,
              [("2026-02-09", "16:00", "16:30"), ("2026-02-14", "09:00", "09:30")]),
    # Auto
    _provider("auto-1", "Golden Gate Auto Service", Category.AUTO, "100 Geary St", "94108",
              "(415) 555-0201", 4.7, 1.5,
              [("2026-02-09", "08:00", "09:00"), ("2026-02-10", "10:00", "11:00")]),
    _provider("auto-2", "Mission District Motors", Category.AUTO, "200 Mission St", "94105",
              "(415) 555-0202", 4.4, 2.8,
              [("2026-02-11", "09:00", "10:00"), ("2026-02-12", "14:00", "15:00")]),
    _provider("auto-3", "Precision Tire & Brake", Category.AUTO, "300 Van Ness Ave", "94102",
              "(415) 555-0203", 4.2, 0.9,
              [("2026-02-09", "11:00", "12:00"), ("2026-02-13", "08:00", "09:00")]),
    # Beauty
    _provider("beauty-1", "Luxe Hair Studio", Category.BEAUTY, "50 Grant Ave", "94108",
              "(415) 555-0301", 4.9, 1.0,
              [("2026-02-09", "10:00", "11:00"), ("2026-02-10", "13:00", "14:00"),
               ("2026-02-11", "16:00", "17:00")]),
    _provider("beauty-2", "Glow Skin & Spa", Category.BEAUTY, "75 Fillmore St", "94117",
              "(415) 555-0302", 4.6, 2.3,
              [("2026-02-10", "09:00", "10:00"), ("2026-02-12", "11:00", "12:00")]),
    _provider("beauty-3", "Nails & Beyond", Category.BEAUTY, "88 Hayes St", "94102",
              "(415) 555-0303", 4.1, 1.8,
              [("2026-02-09", "14:00", "15:00"), ("2026-02-13", "10:00", "11:00")]),
    # Home Services
    _provider("home-1", "ProFix Plumbing", Category.HOME, "500 Howard St", "94105",
              "(415) 555-0401", 4.5, 3.5,
              [("2026-02-10", "08:00", "10:00"), ("2026-02-11", "13:00", "15:00")]),
    _provider("home-2", "SparkClean Services", Category.HOME, "600 Market St", "94104",
              "(415) 555-0402", 4.8, 1.1,
              [("2026-02-09", "09:00", "12:00"), ("2026-02-12", "09:00", "12:00")]),
    _provider("home-3", "Bay Electrical Co", Category.HOME, "700 Folsom St", "94107",
              "(415) 555-0403", 4.3, 4.2,
              [("2026-02-11", "10:00", "12:00"), ("2026-02-14", "08:00", "10:00")]),
    _provider("home-4", "Green Thumb Landscaping", Category.HOME, "800 Divisadero St", "94117",
              "(415) 555-0404", 4.7, 2.9,
              [("2026-02-13", "07:00", "10:00")]),
)


class StaticProviderDirectory:
    """In-process provider catalogue."""

    def __init__(self, providers: Optional[Union[list[Provider], tuple[Provider, ...]]] = None):
        self._providers = tuple(DEFAULT_CATALOGUE if providers is None else providers)

    async def lookup(
        self,
        category: Category,
        location: Optional[str] = None,
        lat: Optional[float] = None,
        lon: Optional[float] = None,
    ) -> list[Provider]:
        """Filter by category, then narrow by location when it matches anything.

        Coordinates are ignored; the catalogue carries precomputed distances.
        """
        matches = [p for p in self._providers if p.category == category]

        loc = (location or "").strip().lower()
        if loc:
            near = [
                p for p in matches
                if loc in p.city.lower() or loc in p.zip or loc in p.address.lower()
            ]
            # Unknown location falls back to the whole category
            if near:
                matches = near

        logger.debug(f"Static directory: {len(matches)} {category.value} providers for {loc!r}")
        return matches


# Singleton
_directory: Optional[ProviderLookup] = None


def get_provider_directory() -> ProviderLookup:
    """Get singleton directory: HTTP when configured, static catalogue otherwise."""
    global _directory
    if _directory is None:
        if get_settings().provider_directory_url:
            _directory = ProviderDirectoryClient()
        else:
            _directory = StaticProviderDirectory()
    return _directory
