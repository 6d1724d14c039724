from typing import Dict, List, Literal, Optional, Tuple

from dive_booking.exceptions import InvalidStepTransitionError
from dive_booking.state.booking_state import CombinationOrder, TripType


StepId = Literal[
    "trip_type",
    "dates",
    "guests",
    "accommodation",
    "resort_accommodation",
    "resort_dates",
    "pelagian_dates",
    "cabin",
    "pelagian_cabin",
    "activities",
    "review",
]

STEP_LABELS: Dict[str, str] = {
    "trip_type": "Trip Type",
    "dates": "Dates",
    "guests": "Guests",
    "accommodation": "Accommodation",
    "resort_accommodation": "Resort Accommodation",
    "resort_dates": "Resort Dates",
    "pelagian_dates": "Pelagian Dates",
    "cabin": "Cabin",
    "pelagian_cabin": "Pelagian Cabin",
    "activities": "Activities",
    "review": "Review & Quote",
}

BASE_STEPS: Tuple[StepId, ...] = ("trip_type", "dates", "guests")

STEP_TABLE: Dict[Tuple[TripType, Optional[CombinationOrder]], Tuple[StepId, ...]] = {
    ("resort-only", None): BASE_STEPS + ("accommodation", "activities", "review"),
    ("pelagian-only", None): BASE_STEPS + ("cabin", "review"),
    ("combination-stay", "resort-first"): BASE_STEPS
    + ("resort_accommodation", "pelagian_dates", "pelagian_cabin", "activities", "review"),
    ("combination-stay", "pelagian-first"): BASE_STEPS
    + ("pelagian_dates", "pelagian_cabin", "resort_dates", "resort_accommodation", "activities", "review"),
}


def steps_for(
    trip_type: Optional[TripType],
    combination_order: Optional[CombinationOrder] = None,
) -> List[StepId]:
    """
    Ordered wizard steps for a trip type and, for combination stays, the
    chosen ordering.

    Until the trip is fully determined (no trip type yet, or a combination
    stay without an order) only the base steps are returned.
    """
    if trip_type != "combination-stay":
        combination_order = None
    return list(STEP_TABLE.get((trip_type, combination_order), BASE_STEPS))


def clamp_position(position: int, steps: List[StepId]) -> int:
    if not steps:
        return 0
    return max(0, min(position, len(steps) - 1))


def step_at(steps: List[StepId], position: int) -> StepId:
    """Map a (clamped) step position to its step id."""
    if not steps:
        raise InvalidStepTransitionError("No steps available")
    return steps[clamp_position(position, steps)]


def step_label(step: StepId) -> str:
    try:
        return STEP_LABELS[step]
    except KeyError:
        raise InvalidStepTransitionError(f"Unknown step: {step!r}") from None
