from datetime import date
from typing import Any, Dict, List, Optional
import logging

from dive_booking.exceptions import (
    InvalidConfigurationError,
    PricingError,
    SubmissionError,
)
from dive_booking.persistence.store import BookingStore, InMemoryBookingStore
from dive_booking.settings import get_settings
from dive_booking.state.booking_state import (
    ActivityAllocation,
    BookingDraft,
    CombinationOrder,
    FieldError,
    LegType,
    TripType,
    VisitCount,
    WizardState,
)
from dive_booking.state.catalog_state import Catalog, get_default_catalog
from dive_booking.state.state_utils import (
    MAX_ADULTS,
    MAX_CHILDREN,
    MAX_INFANTS,
    get_wizard_state,
    guest_ids,
    max_activity_days,
    save_wizard_state,
    sync_activity_allocation,
    validate_step,
)
from dive_booking.tools.submission import submit_draft
from dive_booking.utils.costs import compute_price_quote
from dive_booking.utils.schedule import suggest_departure, validate_leg
from dive_booking.utils.steps import clamp_position, step_at, step_label, steps_for


logger = logging.getLogger(__name__)


class BookingContext:
    """
    Per-session context handed to every wizard tool.

    `state` is the session state dict the wizard reads and writes; the
    catalog, store and clock can be swapped out (tests pass a fixed
    `today`).
    """

    def __init__(
        self,
        state: Optional[Dict[str, Any]] = None,
        catalog: Optional[Catalog] = None,
        store: Optional[BookingStore] = None,
        today: Optional[date] = None,
    ) -> None:
        self.state = state if state is not None else {}
        self.catalog = catalog or get_default_catalog()
        self.store = store or InMemoryBookingStore()
        self.today = today


def _errors(errors: List[FieldError]) -> List[Dict[str, str]]:
    return [e.model_dump() for e in errors]


def _error_result(errors: List[FieldError]) -> Dict[str, Any]:
    return {"status": "error", "errors": _errors(errors)}


def _step_payload(wizard: WizardState) -> Dict[str, Any]:
    steps = steps_for(wizard.draft.trip_type, wizard.draft.combination_order)
    current = step_at(steps, wizard.current_step)
    return {
        "position": wizard.current_step,
        "step": current,
        "label": step_label(current),
        "steps": steps,
    }


def _reset_downstream(draft: BookingDraft) -> None:
    draft.resort_arrival_date = None
    draft.resort_departure_date = None
    draft.pelagian_arrival_date = None
    draft.pelagian_departure_date = None
    draft.accommodation_id = None
    draft.cabin_id = None
    draft.activity_allocation = {}


def _ensure_default_activities(draft: BookingDraft) -> None:
    if draft.includes_resort_leg():
        sync_activity_allocation(draft, default_activity_id=get_settings().default_activity_id)


def select_trip_type(
    context: BookingContext,
    trip_type: TripType,
    combination_order: Optional[CombinationOrder] = None,
) -> Dict[str, Any]:
    """
    Choose the trip type (and, for combination stays, which leg comes
    first). Changing either clears every downstream selection and clamps
    the current step to the new step list.

    Args:
        context: BookingContext with access to the session state.
        trip_type: "resort-only", "pelagian-only" or "combination-stay".
        combination_order: "resort-first" or "pelagian-first"; ignored for
            single-leg trips.

    Returns:
        dict: Status plus the recomputed step list.
    """
    wizard = get_wizard_state(context)
    draft = wizard.draft

    logger.info(
        "[Tool] select_trip_type called",
        extra={"trip_type": trip_type, "combination_order": combination_order},
    )

    if trip_type != "combination-stay":
        combination_order = None

    if (trip_type, combination_order) != (draft.trip_type, draft.combination_order):
        if draft.trip_type is not None:
            logger.info("Trip type changed; clearing downstream selections")
        _reset_downstream(draft)
        draft.trip_type = trip_type
        draft.combination_order = combination_order

    steps = steps_for(draft.trip_type, draft.combination_order)
    wizard.current_step = clamp_position(wizard.current_step, steps)
    save_wizard_state(context, wizard)

    return {"status": "success", **_step_payload(wizard)}


def set_stay_dates(
    context: BookingContext,
    leg: LegType,
    arrival: date,
    departure: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Set the dates of one stay leg. When no departure is given the default
    suggestion (a week later, on a scheduled weekday) is used.
    Invalid dates are not stored.
    """
    wizard = get_wizard_state(context)
    draft = wizard.draft

    logger.info(
        "[Tool] set_stay_dates called",
        extra={"leg": leg, "arrival": str(arrival), "departure": str(departure)},
    )

    if (leg == "resort" and not draft.includes_resort_leg()) or (
        leg == "pelagian" and not draft.includes_pelagian_leg()
    ):
        return _error_result(
            [FieldError(field=f"{leg}_arrival_date", message=f"This trip has no {leg} stay.")]
        )

    suggested = departure is None
    if suggested:
        departure = suggest_departure(leg, arrival)

    errors = validate_leg(leg, arrival, departure, today=context.today)
    if errors:
        return _error_result(errors)

    setattr(draft, f"{leg}_arrival_date", arrival)
    setattr(draft, f"{leg}_departure_date", departure)
    # Shorter stays lower the activity-day cap.
    sync_activity_allocation(draft)
    save_wizard_state(context, wizard)

    return {
        "status": "success",
        "leg": leg,
        "arrival_date": arrival.isoformat(),
        "departure_date": departure.isoformat(),
        "departure_suggested": suggested,
        "nights": (departure - arrival).days,
    }


def update_guests(
    context: BookingContext,
    adults: Optional[int] = None,
    children: Optional[int] = None,
    infants: Optional[int] = None,
    visit_count: Optional[VisitCount] = None,
) -> Dict[str, Any]:
    """
    Update guest counts and visit count. Fields left as None are
    unchanged. Existing guests keep their activity selections; removed
    guests lose theirs.
    """
    wizard = get_wizard_state(context)
    draft = wizard.draft

    logger.info(
        "[Tool] update_guests called",
        extra={"adults": adults, "children": children, "infants": infants, "visit_count": visit_count},
    )

    errors: List[FieldError] = []
    if adults is not None and not 1 <= adults <= MAX_ADULTS:
        errors.append(FieldError(field="adults", message=f"Adults must be between 1 and {MAX_ADULTS}."))
    if children is not None and not 0 <= children <= MAX_CHILDREN:
        errors.append(FieldError(field="children", message=f"Children must be between 0 and {MAX_CHILDREN}."))
    if infants is not None and not 0 <= infants <= MAX_INFANTS:
        errors.append(FieldError(field="infants", message=f"Infants must be between 0 and {MAX_INFANTS}."))
    if errors:
        return _error_result(errors)

    if adults is not None:
        draft.guests.adults = adults
    if children is not None:
        draft.guests.children = children
    if infants is not None:
        draft.guests.infants = infants
    if visit_count is not None:
        draft.visit_count = visit_count

    if draft.activity_allocation:
        _ensure_default_activities(draft)
    save_wizard_state(context, wizard)

    return {
        "status": "success",
        "guests": draft.guests.model_dump(),
        "guest_ids": guest_ids(draft.guests),
        "visit_count": draft.visit_count,
    }


def select_accommodation(context: BookingContext, accommodation_id: str) -> Dict[str, Any]:
    wizard = get_wizard_state(context)
    logger.info("[Tool] select_accommodation called", extra={"accommodation_id": accommodation_id})

    if not wizard.draft.includes_resort_leg():
        return _error_result([FieldError(field="accommodation_id", message="This trip has no resort stay.")])
    if context.catalog.find_accommodation(accommodation_id) is None:
        return _error_result([FieldError(field="accommodation_id", message="Unknown accommodation.")])

    wizard.draft.accommodation_id = accommodation_id
    save_wizard_state(context, wizard)
    return {"status": "success", "accommodation_id": accommodation_id}


def select_cabin(context: BookingContext, cabin_id: str) -> Dict[str, Any]:
    wizard = get_wizard_state(context)
    logger.info("[Tool] select_cabin called", extra={"cabin_id": cabin_id})

    if not wizard.draft.includes_pelagian_leg():
        return _error_result([FieldError(field="cabin_id", message="This trip has no Pelagian stay.")])
    if context.catalog.find_cabin(cabin_id) is None:
        return _error_result([FieldError(field="cabin_id", message="Unknown cabin.")])

    wizard.draft.cabin_id = cabin_id
    save_wizard_state(context, wizard)
    return {"status": "success", "cabin_id": cabin_id}


def allocate_activity(
    context: BookingContext,
    activity_id: str,
    days: Optional[int] = None,
    guest_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Choose an activity package for one guest, or for every guest when
    guest_id is None. Days default to the maximum the stay allows
    (total nights minus one travel day).
    """
    wizard = get_wizard_state(context)
    draft = wizard.draft

    logger.info(
        "[Tool] allocate_activity called",
        extra={"guest_id": guest_id, "activity_id": activity_id, "days": days},
    )

    field = f"activity_allocation.{guest_id}" if guest_id else "activity_allocation"
    if not draft.includes_resort_leg():
        return _error_result([FieldError(field=field, message="Activities are only available at the resort.")])
    if context.catalog.find_activity(activity_id) is None:
        return _error_result([FieldError(field=field, message="Unknown activity package.")])

    roster = guest_ids(draft.guests)
    if guest_id is not None and guest_id not in roster:
        return _error_result([FieldError(field=field, message=f"Unknown guest {guest_id}.")])

    cap = max_activity_days(draft)
    if days is None:
        days = cap
    if not 0 <= days <= cap:
        return _error_result(
            [FieldError(field=field, message=f"Activity days must be between 0 and {cap} for this stay.")]
        )

    targets = [guest_id] if guest_id is not None else roster
    for gid in targets:
        draft.activity_allocation[gid] = ActivityAllocation(activity_id=activity_id, days=days)
    _ensure_default_activities(draft)
    save_wizard_state(context, wizard)

    return {
        "status": "success",
        "activity_allocation": {gid: a.model_dump() for gid, a in draft.activity_allocation.items()},
        "max_activity_days": cap,
    }


def update_contact(
    context: BookingContext,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    email: Optional[str] = None,
    phone: Optional[str] = None,
    special_requests: Optional[str] = None,
) -> Dict[str, Any]:
    wizard = get_wizard_state(context)
    contact = wizard.draft.contact

    logger.info("[Tool] update_contact called")

    if first_name is not None:
        contact.first_name = first_name
    if last_name is not None:
        contact.last_name = last_name
    if email is not None:
        contact.email = email
    if phone is not None:
        contact.phone = phone
    if special_requests is not None:
        contact.special_requests = special_requests

    save_wizard_state(context, wizard)
    return {"status": "success"}


def get_current_step(context: BookingContext) -> Dict[str, Any]:
    wizard = get_wizard_state(context)
    return {"status": "success", **_step_payload(wizard)}


def next_step(context: BookingContext) -> Dict[str, Any]:
    """
    Advance one step if the current step's required fields are valid.
    On failure the position is unchanged and field errors are returned.
    """
    wizard = get_wizard_state(context)
    draft = wizard.draft
    steps = steps_for(draft.trip_type, draft.combination_order)
    position = clamp_position(wizard.current_step, steps)
    current = steps[position]

    logger.info("[Tool] next_step called", extra={"step": current, "position": position})

    errors = validate_step(draft, current, context.catalog, today=context.today)
    if errors:
        logger.info("Step validation failed", extra={"step": current, "fields": [e.field for e in errors]})
        return {**_error_result(errors), "step": current}

    wizard.current_step = clamp_position(position + 1, steps)
    if steps[wizard.current_step] == "activities":
        _ensure_default_activities(draft)
    save_wizard_state(context, wizard)

    return {"status": "success", **_step_payload(wizard)}


def previous_step(context: BookingContext) -> Dict[str, Any]:
    wizard = get_wizard_state(context)
    steps = steps_for(wizard.draft.trip_type, wizard.draft.combination_order)
    wizard.current_step = clamp_position(wizard.current_step - 1, steps)
    save_wizard_state(context, wizard)
    return {"status": "success", **_step_payload(wizard)}


def get_quote(context: BookingContext) -> Dict[str, Any]:
    """
    Price the current draft. Requires every selection of the trip type to
    be present; contact details are not needed for a quote.
    """
    wizard = get_wizard_state(context)

    logger.info("[Tool] get_quote called", extra={"trip_type": wizard.draft.trip_type})

    try:
        configuration = wizard.draft.to_configuration()
    except InvalidConfigurationError as exc:
        return _error_result(exc.errors)

    try:
        quote = compute_price_quote(configuration, context.catalog)
    except PricingError as exc:
        return {"status": "error", "reason": "pricing_failed", "detail": str(exc)}

    return {
        "status": "success",
        "quote": quote.model_dump(mode="json"),
        "total_minor_units": quote.total_minor_units,
    }


def submit_booking(context: BookingContext) -> Dict[str, Any]:
    """
    Submit the completed draft. All-or-nothing: on any failure the draft
    stays exactly as it was so the guest can correct it and retry.
    """
    wizard = get_wizard_state(context)

    logger.info("[Tool] submit_booking called", extra={"trip_type": wizard.draft.trip_type})

    if wizard.status == "submitted":
        return {"status": "skipped", "reason": "already_submitted", "booking_id": wizard.booking_id}

    try:
        record, quote = submit_draft(wizard.draft, context.catalog, context.store, today=context.today)
    except InvalidConfigurationError as exc:
        return _error_result(exc.errors)
    except PricingError as exc:
        return {"status": "error", "reason": "pricing_failed", "detail": str(exc)}
    except SubmissionError as exc:
        return {"status": "error", "reason": "submission_failed", "detail": str(exc)}

    wizard.status = "submitted"
    wizard.booking_id = record.id
    save_wizard_state(context, wizard)

    return {
        "status": "success",
        "booking": record.model_dump(mode="json"),
        "quote": quote.model_dump(mode="json"),
    }
