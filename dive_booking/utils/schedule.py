from datetime import date, timedelta
from typing import Dict, FrozenSet, List, Optional

from dive_booking.state.booking_state import FieldError, LegType


MONDAY = 0
FRIDAY = 4

# Flights to the resort operate Mondays and Fridays; the Pelagian sails Mondays.
ALLOWED_WEEKDAYS: Dict[LegType, FrozenSet[int]] = {
    "resort": frozenset({MONDAY, FRIDAY}),
    "pelagian": frozenset({MONDAY}),
}

DEFAULT_DEPARTURE_OFFSET = timedelta(days=7)

_LEG_LABELS: Dict[LegType, str] = {
    "resort": "Resort",
    "pelagian": "Pelagian",
}


def _allowed(leg: LegType) -> FrozenSet[int]:
    try:
        return ALLOWED_WEEKDAYS[leg]
    except KeyError:
        raise ValueError(f"Unknown leg type: {leg!r}") from None


def is_schedule_day(leg: LegType, day: date) -> bool:
    return day.weekday() in _allowed(leg)


def is_valid_arrival(leg: LegType, day: date, today: Optional[date] = None) -> bool:
    """
    An arrival date is valid when it is not in the past and falls on one
    of the leg's scheduled weekdays.

    Args:
        leg (LegType): "resort" or "pelagian".
        day (date): Candidate arrival date.
        today (date | None): Reference day; defaults to the local calendar day.

    Returns:
        bool: True if the date can be used as an arrival date.
    """
    today = today or date.today()
    return day >= today and is_schedule_day(leg, day)


def is_valid_departure(leg: LegType, day: date, arrival: date) -> bool:
    return is_schedule_day(leg, day) and day > arrival


def suggest_departure(leg: LegType, arrival: date) -> date:
    """
    Default departure for a freshly chosen arrival: one week later, rolled
    forward to the next scheduled weekday for the leg.
    """
    allowed = _allowed(leg)
    candidate = arrival + DEFAULT_DEPARTURE_OFFSET
    while candidate.weekday() not in allowed:
        candidate += timedelta(days=1)
    return candidate


def nights_between(arrival: date, departure: date) -> int:
    return (departure - arrival).days


def validate_leg(
    leg: LegType,
    arrival: Optional[date],
    departure: Optional[date],
    today: Optional[date] = None,
) -> List[FieldError]:
    """
    Check one stay leg against its schedule rule.

    Field names are prefixed with the leg ("resort_arrival_date",
    "pelagian_departure_date", ...) so errors can be shown next to the
    matching date picker.

    Returns:
        List[FieldError]: Empty when the leg is valid.
    """
    label = _LEG_LABELS.get(leg)
    if label is None:
        raise ValueError(f"Unknown leg type: {leg!r}")

    errors: List[FieldError] = []
    arrival_field = f"{leg}_arrival_date"
    departure_field = f"{leg}_departure_date"
    days = "Mondays" if leg == "pelagian" else "Mondays or Fridays"

    if arrival is None:
        errors.append(FieldError(field=arrival_field, message=f"Please select a {label.lower()} arrival date."))
    elif not is_valid_arrival(leg, arrival, today=today):
        if arrival < (today or date.today()):
            message = f"{label} arrival date cannot be in the past."
        else:
            message = f"{label} arrivals are only possible on {days}."
        errors.append(FieldError(field=arrival_field, message=message))

    if departure is None:
        errors.append(
            FieldError(field=departure_field, message=f"Please select a {label.lower()} departure date.")
        )
    elif not is_schedule_day(leg, departure):
        errors.append(FieldError(field=departure_field, message=f"{label} departures are only possible on {days}."))
    elif arrival is not None and not is_valid_departure(leg, departure, arrival):
        errors.append(FieldError(field=departure_field, message=f"{label} departure must be after arrival."))

    return errors
