"""Booking ledger: confirmed offers, stored in Redis with in-memory fallback."""

import logging
from typing import Optional

from redis.exceptions import RedisError

from app.config import settings
from app.core.outreach.models import (
    Booking,
    BookingRequest,
    BookingStatus,
    ScoredOffer,
)
from app.infra.redis import APP_PREFIX, get_redis

logger = logging.getLogger(__name__)

BOOKING_PREFIX = f"{APP_PREFIX}booking:"
BOOKING_INDEX_KEY = f"{APP_PREFIX}bookings"


class BookingLedger:
    """
    Stores bookings confirmed from ranked offers.

    Key pattern:
    - outreach:v1:booking:{booking_id} -> booking JSON
    - outreach:v1:bookings -> set of booking ids

    Gracefully handles Redis unavailability with in-memory fallback.
    """

    def __init__(self):
        """Initialize booking ledger."""
        self._ttl = settings.redis_session_ttl
        self._in_memory_fallback: dict[str, Booking] = {}

    def _key(self, booking_id: str) -> str:
        """Generate Redis key."""
        return f"{BOOKING_PREFIX}{booking_id}"

    async def confirm(self, request: BookingRequest, offer: ScoredOffer) -> Booking:
        """
        Record a booking for the chosen offer.

        Args:
            request: Request the offer answers
            offer: Ranked offer the user picked

        Returns:
            Confirmed Booking
        """
        booking = Booking(
            request_id=request.id,
            provider=offer.provider,
            slot=offer.slot,
        )
        await self._save(booking)
        logger.info(f"Booking {booking.id} confirmed with {offer.provider.name} at {offer.slot}")
        return booking

    async def get(self, booking_id: str) -> Optional[Booking]:
        """Get a booking by id, or None if not found."""
        redis = await get_redis()

        if redis:
            try:
                data = await redis.get(self._key(booking_id))
            except RedisError as e:
                logger.error(f"Failed to read booking {booking_id}: {e}")
                return self._in_memory_fallback.get(booking_id)
            if data:
                return Booking.from_json(data)
            return self._in_memory_fallback.get(booking_id)

        return self._in_memory_fallback.get(booking_id)

    async def cancel(self, booking_id: str) -> Optional[Booking]:
        """
        Cancel a booking.

        Returns:
            The cancelled Booking, or None if not found
        """
        booking = await self.get(booking_id)
        if booking is None:
            return None

        if booking.status != BookingStatus.CANCELLED:
            booking.status = BookingStatus.CANCELLED
            await self._save(booking)
            logger.info(f"Booking {booking_id} cancelled")

        return booking

    async def list_bookings(self) -> list[Booking]:
        """All known bookings, oldest first."""
        bookings: dict[str, Booking] = dict(self._in_memory_fallback)
        redis = await get_redis()

        if redis:
            try:
                ids = await redis.smembers(BOOKING_INDEX_KEY)
                for booking_id in ids:
                    data = await redis.get(self._key(booking_id))
                    if data:
                        bookings[booking_id] = Booking.from_json(data)
                    else:
                        # Record expired
                        await redis.srem(BOOKING_INDEX_KEY, booking_id)
            except RedisError as e:
                logger.error(f"Failed to list bookings: {e}")

        return sorted(bookings.values(), key=lambda b: b.confirmed_at)

    async def _save(self, booking: Booking) -> None:
        redis = await get_redis()

        if redis:
            try:
                await redis.setex(self._key(booking.id), self._ttl, booking.to_json())
                await redis.sadd(BOOKING_INDEX_KEY, booking.id)
                return
            except RedisError as e:
                logger.error(f"Failed to save booking {booking.id}: {e}")

        self._in_memory_fallback[booking.id] = booking
        logger.warning(f"Redis unavailable, using in-memory fallback for booking {booking.id}")


# Singleton
_ledger: Optional[BookingLedger] = None


def get_booking_ledger() -> BookingLedger:
    """Get singleton BookingLedger."""
    global _ledger
    if _ledger is None:
        _ledger = BookingLedger()
    return _ledger
