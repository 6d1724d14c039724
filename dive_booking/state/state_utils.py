from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import EmailStr, TypeAdapter, ValidationError

from dive_booking.state.booking_state import (
    ActivityAllocation,
    BookingDraft,
    FieldError,
    GuestCount,
    LegType,
    WizardState,
)
from dive_booking.exceptions import InvalidStepTransitionError
from dive_booking.state.catalog_state import Catalog
from dive_booking.utils.schedule import validate_leg
from dive_booking.utils.steps import StepId


MAX_ADULTS = 10
MAX_CHILDREN = 5
MAX_INFANTS = 5

_EMAIL_ADAPTER = TypeAdapter(EmailStr)

WIZARD_STATE_KEY = "booking"


def get_wizard_state(context: Any) -> WizardState:
    """
    Load WizardState from a session context.

    The context is any object exposing a dict-like `state` attribute; the
    wizard keeps its data under the "booking" key.

    Args:
        context: Session context holding the per-session state dict.

    Returns:
        WizardState: The loaded wizard state (fresh if none was stored).
    """
    state_obj = getattr(context, "state", None)
    if state_obj is None:
        return WizardState()

    raw = state_obj.get(WIZARD_STATE_KEY) or {}
    return WizardState.model_validate(raw)


def save_wizard_state(context: Any, wizard: WizardState) -> None:
    """
    Persist WizardState into the session context under the "booking" key.
    """
    state_obj = getattr(context, "state", None)
    if state_obj is None:
        return

    state_obj[WIZARD_STATE_KEY] = wizard.model_dump(mode="json")


def guest_ids(guests: GuestCount) -> List[str]:
    """
    Stable ordinal ids for billable guests, adults first.

    >>> guest_ids(GuestCount(adults=2, children=1))
    ['adult-1', 'adult-2', 'child-1']
    """
    ids = [f"adult-{i}" for i in range(1, max(guests.adults, 0) + 1)]
    ids += [f"child-{i}" for i in range(1, max(guests.children, 0) + 1)]
    return ids


def total_nights(draft: BookingDraft) -> int:
    nights = 0
    legs: List[LegType] = []
    if draft.includes_resort_leg():
        legs.append("resort")
    if draft.includes_pelagian_leg():
        legs.append("pelagian")
    for leg in legs:
        stay = draft.stay_leg(leg)
        if stay is not None:
            nights += max(stay.nights, 0)
    return nights


def max_activity_days(draft: BookingDraft) -> int:
    # One travel day is never an activity day.
    return max(total_nights(draft) - 1, 0)


def sync_activity_allocation(
    draft: BookingDraft,
    default_activity_id: Optional[str] = None,
) -> Dict[str, ActivityAllocation]:
    """
    Align the per-guest activity allocation with the current guest count.

    Guests that still exist keep their selections, removed guests are
    dropped, and (when default_activity_id is given) new guests get a
    zero-day allocation of the default activity. Day counts above the
    current cap are lowered to it.
    """
    cap = max_activity_days(draft)
    allocation: Dict[str, ActivityAllocation] = {}
    for gid in guest_ids(draft.guests):
        existing = draft.activity_allocation.get(gid)
        if existing is not None:
            allocation[gid] = ActivityAllocation(
                activity_id=existing.activity_id,
                days=min(max(existing.days, 0), cap),
            )
        elif default_activity_id is not None:
            allocation[gid] = ActivityAllocation(activity_id=default_activity_id, days=0)
    draft.activity_allocation = allocation
    return allocation


def validate_guests(draft: BookingDraft) -> List[FieldError]:
    errors: List[FieldError] = []
    guests = draft.guests
    if guests.adults < 1:
        errors.append(FieldError(field="adults", message="At least 1 adult is required."))
    elif guests.adults > MAX_ADULTS:
        errors.append(FieldError(field="adults", message=f"At most {MAX_ADULTS} adults per booking."))
    if guests.children < 0 or guests.children > MAX_CHILDREN:
        errors.append(FieldError(field="children", message=f"Children must be between 0 and {MAX_CHILDREN}."))
    if guests.infants < 0 or guests.infants > MAX_INFANTS:
        errors.append(FieldError(field="infants", message=f"Infants must be between 0 and {MAX_INFANTS}."))
    if draft.visit_count is None:
        errors.append(FieldError(field="visit_count", message="Please select your visit count."))
    return errors


def validate_trip_type(draft: BookingDraft) -> List[FieldError]:
    if draft.trip_type is None:
        return [FieldError(field="trip_type", message="Please select your trip type.")]
    if draft.trip_type == "combination-stay" and draft.combination_order is None:
        return [FieldError(field="combination_order", message="Please choose which stay comes first.")]
    return []


def validate_accommodation(draft: BookingDraft, catalog: Catalog) -> List[FieldError]:
    if not draft.accommodation_id:
        return [FieldError(field="accommodation_id", message="Please select an accommodation.")]
    if catalog.find_accommodation(draft.accommodation_id) is None:
        return [
            FieldError(
                field="accommodation_id",
                message="The selected accommodation is no longer available. Please choose another.",
            )
        ]
    return []


def validate_cabin(draft: BookingDraft, catalog: Catalog) -> List[FieldError]:
    if not draft.cabin_id:
        return [FieldError(field="cabin_id", message="Please select a Pelagian cabin.")]
    if catalog.find_cabin(draft.cabin_id) is None:
        return [
            FieldError(
                field="cabin_id",
                message="The selected cabin is no longer available. Please choose another.",
            )
        ]
    return []


def validate_activities(draft: BookingDraft, catalog: Catalog) -> List[FieldError]:
    if not draft.activity_allocation:
        return [FieldError(field="activity_allocation", message="Please select an activity package.")]

    errors: List[FieldError] = []
    roster = set(guest_ids(draft.guests))
    cap = max_activity_days(draft)
    for gid, choice in draft.activity_allocation.items():
        field = f"activity_allocation.{gid}"
        if gid not in roster:
            errors.append(FieldError(field=field, message=f"Unknown guest {gid}."))
            continue
        if catalog.find_activity(choice.activity_id) is None:
            errors.append(
                FieldError(
                    field=field,
                    message="The selected activity package is no longer available. Please choose another.",
                )
            )
        if choice.days > cap:
            errors.append(
                FieldError(field=field, message=f"At most {cap} activity days are possible for this stay.")
            )
    return errors


def is_valid_email(value: str) -> bool:
    try:
        _EMAIL_ADAPTER.validate_python(value)
    except ValidationError:
        return False
    return True


def validate_contact(draft: BookingDraft) -> List[FieldError]:
    contact = draft.contact
    errors: List[FieldError] = []
    if len(contact.first_name.strip()) < 2:
        errors.append(FieldError(field="first_name", message="First name must be at least 2 characters."))
    if len(contact.last_name.strip()) < 2:
        errors.append(FieldError(field="last_name", message="Last name must be at least 2 characters."))
    if not is_valid_email(contact.email.strip()):
        errors.append(FieldError(field="email", message="Please enter a valid email address."))
    if len(contact.phone.strip()) < 5:
        errors.append(FieldError(field="phone", message="Please enter a valid phone number."))
    return errors


def validate_configuration(
    draft: BookingDraft,
    catalog: Catalog,
    today: Optional[date] = None,
) -> List[FieldError]:
    """
    Check whether a draft is eligible for submission.

    Rules depend on the trip type: resort legs need schedule-valid dates,
    a resolvable accommodation and an activity selection; Pelagian legs
    need schedule-valid dates and a resolvable cabin. Guests, visit count
    and contact details are always required.

    Args:
        draft (BookingDraft): The wizard's current draft.
        catalog (Catalog): Reference data used to resolve selected ids.
        today (date | None): Reference day for the "not in the past" rule.

    Returns:
        List[FieldError]: Empty when the draft can be submitted.
    """
    errors = validate_trip_type(draft)

    if draft.includes_resort_leg():
        errors += validate_leg("resort", draft.resort_arrival_date, draft.resort_departure_date, today=today)
        errors += validate_accommodation(draft, catalog)
        errors += validate_activities(draft, catalog)

    if draft.includes_pelagian_leg():
        errors += validate_leg("pelagian", draft.pelagian_arrival_date, draft.pelagian_departure_date, today=today)
        errors += validate_cabin(draft, catalog)

    errors += validate_guests(draft)
    errors += validate_contact(draft)
    return errors


def is_booking_complete(draft: BookingDraft, catalog: Catalog, today: Optional[date] = None) -> bool:
    return not validate_configuration(draft, catalog, today=today)


def first_leg(draft: BookingDraft) -> Optional[LegType]:
    """Leg whose dates are picked on the generic "Dates" step."""
    if draft.trip_type == "resort-only":
        return "resort"
    if draft.trip_type == "pelagian-only":
        return "pelagian"
    if draft.trip_type == "combination-stay":
        return "resort" if draft.combination_order == "resort-first" else "pelagian"
    return None


def validate_step(
    draft: BookingDraft,
    step: StepId,
    catalog: Catalog,
    today: Optional[date] = None,
) -> List[FieldError]:
    """
    Validation gate for leaving a wizard step.

    Only the fields collected on that step are checked, except the review
    step which runs the full submission check.
    """
    if step == "trip_type":
        return validate_trip_type(draft)

    if step in ("dates", "resort_dates", "pelagian_dates"):
        if step == "dates":
            leg = first_leg(draft)
            if leg is None:
                return validate_trip_type(draft)
        else:
            leg = "resort" if step == "resort_dates" else "pelagian"
        return validate_leg(
            leg,
            getattr(draft, f"{leg}_arrival_date"),
            getattr(draft, f"{leg}_departure_date"),
            today=today,
        )

    if step == "guests":
        return validate_guests(draft)
    if step in ("accommodation", "resort_accommodation"):
        return validate_accommodation(draft, catalog)
    if step in ("cabin", "pelagian_cabin"):
        return validate_cabin(draft, catalog)
    if step == "activities":
        if not draft.includes_resort_leg():
            return []
        return validate_activities(draft, catalog)
    if step == "review":
        return validate_configuration(draft, catalog, today=today)

    raise InvalidStepTransitionError(f"Unknown step: {step!r}")
