"""
Bookings API Endpoints.

Confirm one of the current mission's ranked offers, list bookings, cancel.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from app.api.schemas import ErrorResponse, TimeWindowModel
from app.core.outreach.bookings import BookingLedger, get_booking_ledger
from app.core.outreach.orchestrator import OutreachOrchestrator, get_orchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


class ConfirmBookingRequest(BaseModel):
    """Which ranked offer to book."""

    provider_id: str
    slot: TimeWindowModel


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    summary="Confirm an offer",
    responses={
        404: {"model": ErrorResponse, "description": "No such offer"},
        409: {"model": ErrorResponse, "description": "Mission not finished"},
    },
)
async def confirm_booking(
    request: ConfirmBookingRequest,
    orchestrator: OutreachOrchestrator = Depends(get_orchestrator),
    ledger: BookingLedger = Depends(get_booking_ledger),
) -> dict:
    handle = orchestrator.current
    if handle is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No mission has been started",
        )

    ranked = handle.results
    if ranked is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Mission is {handle.status.value}",
        )

    slot = request.slot.to_window()
    offer = next(
        (r for r in ranked if r.provider.id == request.provider_id and r.slot == slot),
        None,
    )
    if offer is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Offer not found in mission results",
        )

    booking = await ledger.confirm(handle.request, offer)
    return booking.to_dict()


@router.get("", summary="List bookings")
async def list_bookings(
    ledger: BookingLedger = Depends(get_booking_ledger),
) -> dict:
    bookings = await ledger.list_bookings()
    return {"bookings": [b.to_dict() for b in bookings]}


@router.delete(
    "/{booking_id}",
    summary="Cancel a booking",
    responses={404: {"model": ErrorResponse, "description": "Booking not found"}},
)
async def cancel_booking(
    booking_id: str,
    ledger: BookingLedger = Depends(get_booking_ledger),
) -> dict:
    booking = await ledger.cancel(booking_id)
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )
    return booking.to_dict()
