from datetime import date, timedelta
from decimal import Decimal

from dive_booking.persistence.store import InMemoryBookingStore
from dive_booking.state.catalog_state import load_catalog
from dive_booking.state.state_utils import get_wizard_state
from dive_booking.tools.wizard_tools import (
    BookingContext,
    allocate_activity,
    get_current_step,
    get_quote,
    next_step,
    previous_step,
    select_accommodation,
    select_cabin,
    select_trip_type,
    set_stay_dates,
    submit_booking,
    update_contact,
    update_guests,
)


CATALOG = load_catalog()
TODAY = date(2026, 10, 1)
MONDAY = date(2026, 11, 2)
TUESDAY = date(2026, 11, 3)


class FailingStore(InMemoryBookingStore):
    def submit(self, configuration, total_minor_units):
        raise ConnectionError("database unreachable")


def _context(store=None) -> BookingContext:
    return BookingContext(catalog=CATALOG, store=store or InMemoryBookingStore(), today=TODAY)


def _resort_only_at_review(ctx: BookingContext) -> None:
    select_trip_type(ctx, "resort-only")
    next_step(ctx)
    set_stay_dates(ctx, "resort", MONDAY)
    next_step(ctx)
    update_guests(ctx, adults=2)
    next_step(ctx)
    select_accommodation(ctx, "ocean-bungalow")
    next_step(ctx)
    allocate_activity(ctx, "unlimited-dive", days=6, guest_id="adult-1")
    allocate_activity(ctx, "unlimited-dive", days=4, guest_id="adult-2")
    next_step(ctx)


def test_select_trip_type_sets_steps_and_stores_state():
    ctx = _context()

    result = select_trip_type(ctx, "combination-stay", "resort-first")

    assert result["status"] == "success"
    assert result["step"] == "trip_type"
    assert len(result["steps"]) == 8
    assert ctx.state["booking"]["draft"]["trip_type"] == "combination-stay"
    assert ctx.state["booking"]["draft"]["combination_order"] == "resort-first"


def test_combination_order_is_dropped_for_single_leg_trips():
    ctx = _context()

    select_trip_type(ctx, "pelagian-only", "resort-first")

    assert get_wizard_state(ctx).draft.combination_order is None


def test_changing_trip_type_clears_downstream_selections():
    ctx = _context()
    select_trip_type(ctx, "combination-stay", "resort-first")
    next_step(ctx)
    set_stay_dates(ctx, "resort", MONDAY)

    result = select_trip_type(ctx, "pelagian-only")

    draft = get_wizard_state(ctx).draft
    assert draft.resort_arrival_date is None
    assert draft.resort_departure_date is None
    assert draft.activity_allocation == {}
    assert result["position"] == 1
    assert result["step"] == "dates"


def test_set_stay_dates_suggests_departure_a_week_later():
    ctx = _context()
    select_trip_type(ctx, "resort-only")

    result = set_stay_dates(ctx, "resort", MONDAY)

    assert result["status"] == "success"
    assert result["departure_date"] == "2026-11-09"
    assert result["departure_suggested"] is True
    assert result["nights"] == 7
    assert ctx.state["booking"]["draft"]["resort_arrival_date"] == "2026-11-02"


def test_set_stay_dates_rejects_off_schedule_arrival_without_storing():
    ctx = _context()
    select_trip_type(ctx, "resort-only")

    result = set_stay_dates(ctx, "resort", TUESDAY)

    assert result["status"] == "error"
    assert [e["field"] for e in result["errors"]] == ["resort_arrival_date"]
    assert get_wizard_state(ctx).draft.resort_arrival_date is None


def test_set_stay_dates_rejects_leg_the_trip_does_not_have():
    ctx = _context()
    select_trip_type(ctx, "resort-only")

    result = set_stay_dates(ctx, "pelagian", MONDAY)

    assert result["status"] == "error"
    assert result["errors"][0]["field"] == "pelagian_arrival_date"


def test_next_step_is_gated_on_current_step_fields():
    ctx = _context()
    select_trip_type(ctx, "resort-only")
    next_step(ctx)

    result = next_step(ctx)

    assert result["status"] == "error"
    assert result["step"] == "dates"
    fields = {e["field"] for e in result["errors"]}
    assert fields == {"resort_arrival_date", "resort_departure_date"}
    assert get_current_step(ctx)["position"] == 1


def test_next_step_without_trip_type_reports_trip_type():
    ctx = _context()

    result = next_step(ctx)

    assert result["status"] == "error"
    assert result["errors"][0]["field"] == "trip_type"


def test_previous_step_clamps_at_first_step():
    ctx = _context()
    select_trip_type(ctx, "resort-only")

    result = previous_step(ctx)

    assert result["position"] == 0
    assert result["step"] == "trip_type"


def test_update_guests_enforces_limits():
    ctx = _context()

    result = update_guests(ctx, adults=11, children=6)

    assert result["status"] == "error"
    assert {e["field"] for e in result["errors"]} == {"adults", "children"}
    assert get_wizard_state(ctx).draft.guests.adults == 2


def test_entering_activities_creates_default_allocation():
    ctx = _context()
    select_trip_type(ctx, "resort-only")
    next_step(ctx)
    set_stay_dates(ctx, "resort", MONDAY)
    next_step(ctx)
    next_step(ctx)
    select_accommodation(ctx, "palm-bungalow")

    result = next_step(ctx)

    assert result["step"] == "activities"
    allocation = get_wizard_state(ctx).draft.activity_allocation
    assert set(allocation) == {"adult-1", "adult-2"}
    assert all(a.activity_id == "no-activity" and a.days == 0 for a in allocation.values())


def test_guest_count_change_keeps_existing_and_defaults_new_guests():
    ctx = _context()
    _resort_only_at_review(ctx)

    update_guests(ctx, adults=1, children=1)

    allocation = get_wizard_state(ctx).draft.activity_allocation
    assert set(allocation) == {"adult-1", "child-1"}
    assert allocation["adult-1"].activity_id == "unlimited-dive"
    assert allocation["adult-1"].days == 6
    assert allocation["child-1"].activity_id == "no-activity"


def test_allocate_activity_defaults_days_to_cap_for_every_guest():
    ctx = _context()
    select_trip_type(ctx, "resort-only")
    set_stay_dates(ctx, "resort", MONDAY)

    result = allocate_activity(ctx, "snorkeling")

    assert result["status"] == "success"
    assert result["max_activity_days"] == 6
    assert result["activity_allocation"]["adult-1"] == {"activity_id": "snorkeling", "days": 6}
    assert result["activity_allocation"]["adult-2"] == {"activity_id": "snorkeling", "days": 6}


def test_allocate_activity_rejects_days_over_cap_and_unknown_guest():
    ctx = _context()
    select_trip_type(ctx, "resort-only")
    set_stay_dates(ctx, "resort", MONDAY)

    too_many = allocate_activity(ctx, "snorkeling", days=7, guest_id="adult-1")
    unknown = allocate_activity(ctx, "snorkeling", days=1, guest_id="child-3")

    assert too_many["status"] == "error"
    assert too_many["errors"][0]["field"] == "activity_allocation.adult-1"
    assert unknown["status"] == "error"


def test_activities_not_available_on_pelagian_only():
    ctx = _context()
    select_trip_type(ctx, "pelagian-only")

    result = allocate_activity(ctx, "unlimited-dive", days=1)

    assert result["status"] == "error"


def test_selection_tools_reject_unknown_ids_and_wrong_leg():
    ctx = _context()
    select_trip_type(ctx, "resort-only")

    assert select_accommodation(ctx, "treehouse")["status"] == "error"
    assert select_cabin(ctx, "deluxe-cabin")["status"] == "error"
    assert get_wizard_state(ctx).draft.accommodation_id is None


def test_get_quote_for_completed_resort_stay():
    ctx = _context()
    _resort_only_at_review(ctx)

    result = get_quote(ctx)

    assert result["status"] == "success"
    assert Decimal(result["quote"]["total"]) == Decimal("11610")
    assert result["total_minor_units"] == 1161000
    assert get_current_step(ctx)["step"] == "review"


def test_get_quote_reports_missing_selections():
    ctx = _context()
    select_trip_type(ctx, "resort-only")

    result = get_quote(ctx)

    assert result["status"] == "error"
    assert "resort_dates" in {e["field"] for e in result["errors"]}


def test_submit_booking_requires_contact_details():
    ctx = _context()
    _resort_only_at_review(ctx)

    result = submit_booking(ctx)

    assert result["status"] == "error"
    assert {"first_name", "last_name", "email", "phone"} <= {e["field"] for e in result["errors"]}
    assert get_wizard_state(ctx).status == "in_progress"


def test_submit_booking_stores_once():
    store = InMemoryBookingStore()
    ctx = _context(store)
    _resort_only_at_review(ctx)
    update_contact(ctx, first_name="Ada", last_name="Diver", email="ada@example.com", phone="555-0100")

    first = submit_booking(ctx)
    second = submit_booking(ctx)

    assert first["status"] == "success"
    assert first["booking"]["id"] == 1
    assert first["booking"]["total_price"] == 1161000
    assert second["status"] == "skipped"
    assert second["booking_id"] == 1
    assert len(store.list_all()) == 1


def test_submit_booking_store_failure_leaves_draft_untouched():
    ctx = _context(FailingStore())
    _resort_only_at_review(ctx)
    update_contact(ctx, first_name="Ada", last_name="Diver", email="ada@example.com", phone="555-0100")
    before = dict(ctx.state["booking"])

    result = submit_booking(ctx)

    assert result["status"] == "error"
    assert result["reason"] == "submission_failed"
    assert ctx.state["booking"] == before
    assert get_wizard_state(ctx).status == "in_progress"


def test_pelagian_first_combination_walkthrough():
    ctx = _context()
    select_trip_type(ctx, "combination-stay", "pelagian-first")
    next_step(ctx)
    set_stay_dates(ctx, "pelagian", MONDAY)
    next_step(ctx)
    next_step(ctx)
    set_stay_dates(ctx, "pelagian", MONDAY)
    assert next_step(ctx)["step"] == "pelagian_cabin"
    select_cabin(ctx, "standard-cabin")
    assert next_step(ctx)["step"] == "resort_dates"
    set_stay_dates(ctx, "resort", MONDAY + timedelta(days=7))
    assert next_step(ctx)["step"] == "resort_accommodation"
    select_accommodation(ctx, "one-bedroom-villa")
    assert next_step(ctx)["step"] == "activities"
    assert next_step(ctx)["step"] == "review"

    assert get_quote(ctx)["status"] == "success"
