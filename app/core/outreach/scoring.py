"""
Slot Scorer.

Ranks (provider, slot) offers by a weighted blend of availability fit,
provider rating and distance.
"""

import math
from typing import Iterable, Sequence

from app.core.outreach.models import (
    ComponentScores,
    ScoredOffer,
    ScoringWeights,
    SlotOffer,
    TimeWindow,
    fits_any,
)

MAX_RATING = 5.0
DEFAULT_PARTIAL_CREDIT = 0.4


class ScoringError(ValueError):
    """Raised when scoring inputs violate their contract."""
    pass


def _percent(value: float) -> int:
    """Scale to 0-100 and round half up."""
    return int(math.floor(value * 100 + 0.5))


def validate_weights(weights: ScoringWeights) -> float:
    """Check weights and return their sum.

    Raises:
        ScoringError: If any weight is negative or the sum is not positive
    """
    components = (weights.availability, weights.rating, weights.distance)
    if any(w < 0 for w in components):
        raise ScoringError(f"Scoring weights must be non-negative: {weights}")

    total = weights.total
    if total <= 0:
        raise ScoringError(f"Scoring weights must have a positive sum: {weights}")
    return total


def collect_offers(calls: Iterable) -> list[SlotOffer]:
    """Flatten calls (anything with provider and offered_slots) into offers, in call order."""
    return [
        SlotOffer(provider=call.provider, slot=slot)
        for call in calls
        for slot in call.offered_slots
    ]


def score_offers(
    offers: Sequence[SlotOffer],
    weights: ScoringWeights,
    free_windows: Iterable[TimeWindow],
    partial_credit: float = DEFAULT_PARTIAL_CREDIT,
) -> list[ScoredOffer]:
    """Score and rank offers.

    Args:
        offers: Candidate (provider, slot) pairs, in preference order for ties
        weights: Component weights (need not sum to 1)
        free_windows: User's reconciled free windows
        partial_credit: Availability score for a slot outside every window

    Returns:
        ScoredOffers sorted by total score, highest first. Equal totals keep
        their input order.

    Raises:
        ScoringError: If weights are negative or sum to zero
    """
    weight_total = validate_weights(weights)
    windows = list(free_windows)

    if not offers:
        return []

    # Recomputed per call; floor of 1 avoids dividing by zero
    max_distance = max(max(o.provider.distance for o in offers), 1.0)

    scored: list[ScoredOffer] = []
    for offer in offers:
        availability = 1.0 if fits_any(offer.slot, windows) else partial_credit
        rating = offer.provider.rating / MAX_RATING
        distance = 1.0 - offer.provider.distance / (max_distance + 1.0)

        total = (
            weights.availability * availability
            + weights.rating * rating
            + weights.distance * distance
        ) / weight_total

        scored.append(
            ScoredOffer(
                provider=offer.provider,
                slot=offer.slot,
                scores=ComponentScores(
                    availability=_percent(availability),
                    rating=_percent(rating),
                    distance=_percent(distance),
                    total=_percent(total),
                ),
            )
        )

    # sorted() is stable, so ties stay in input order
    return sorted(scored, key=lambda s: s.scores.total, reverse=True)
