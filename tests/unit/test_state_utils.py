from datetime import date, timedelta

import pytest
from pydantic import ValidationError

from dive_booking.exceptions import InvalidConfigurationError
from dive_booking.state.booking_state import (
    ActivityAllocation,
    BookingDraft,
    CombinationStayConfiguration,
    ContactDetails,
    GuestCount,
    ResortOnlyConfiguration,
    _ConfigurationBase,
)
from dive_booking.state.catalog_state import load_catalog
from dive_booking.state.state_utils import (
    guest_ids,
    is_booking_complete,
    is_valid_email,
    max_activity_days,
    sync_activity_allocation,
    validate_configuration,
    validate_step,
)


CATALOG = load_catalog()
TODAY = date(2026, 10, 1)
MONDAY = date(2026, 11, 2)
CONTACT = ContactDetails(first_name="Ada", last_name="Diver", email="ada@example.com", phone="555-0100")


def _complete_resort_draft(**overrides) -> BookingDraft:
    fields = dict(
        trip_type="resort-only",
        resort_arrival_date=MONDAY,
        resort_departure_date=MONDAY + timedelta(days=7),
        accommodation_id="ocean-bungalow",
        guests=GuestCount(adults=2),
        visit_count="first",
        activity_allocation={
            "adult-1": ActivityAllocation(activity_id="unlimited-dive", days=6),
            "adult-2": ActivityAllocation(activity_id="no-activity", days=0),
        },
        contact=CONTACT,
    )
    fields.update(overrides)
    return BookingDraft(**fields)


def test_catalog_lookups_return_none_for_unknown_ids():
    assert CATALOG.find_accommodation("ocean-bungalow").price_per_night == 490
    assert CATALOG.find_activity("no-activity").price_per_day == 0
    assert CATALOG.find_cabin("master-stateroom") is not None
    assert CATALOG.find_accommodation("igloo") is None
    assert CATALOG.find_cabin(None) is None
    assert CATALOG.flight_price == 900


def test_empty_draft_is_incomplete():
    draft = BookingDraft()

    errors = validate_configuration(draft, CATALOG, today=TODAY)

    assert is_booking_complete(draft, CATALOG, today=TODAY) is False
    assert "trip_type" in {e.field for e in errors}


def test_complete_resort_draft_is_submit_eligible():
    assert validate_configuration(_complete_resort_draft(), CATALOG, today=TODAY) == []


def test_resort_rules_require_dates_accommodation_and_activity():
    draft = BookingDraft(trip_type="resort-only", contact=CONTACT)

    fields = {e.field for e in validate_configuration(draft, CATALOG, today=TODAY)}

    assert {
        "resort_arrival_date",
        "resort_departure_date",
        "accommodation_id",
        "activity_allocation",
    } <= fields
    assert "cabin_id" not in fields


def test_combination_stay_requires_both_legs_and_order():
    draft = BookingDraft(trip_type="combination-stay", contact=CONTACT)

    fields = {e.field for e in validate_configuration(draft, CATALOG, today=TODAY)}

    assert {"combination_order", "resort_arrival_date", "pelagian_arrival_date", "cabin_id"} <= fields


def test_stale_catalog_id_is_a_field_error():
    draft = _complete_resort_draft(accommodation_id="retired-hut")

    errors = validate_configuration(draft, CATALOG, today=TODAY)

    assert [e.field for e in errors] == ["accommodation_id"]


def test_off_schedule_dates_are_rejected():
    draft = _complete_resort_draft(resort_departure_date=MONDAY + timedelta(days=8))

    errors = validate_configuration(draft, CATALOG, today=TODAY)

    assert [e.field for e in errors] == ["resort_departure_date"]


def test_contact_rules():
    draft = _complete_resort_draft(
        contact=ContactDetails(first_name="A", last_name="Diver", email="not-an-email", phone="123")
    )

    fields = [e.field for e in validate_configuration(draft, CATALOG, today=TODAY)]

    assert fields == ["first_name", "email", "phone"]


def test_guest_limits():
    draft = _complete_resort_draft(guests=GuestCount(adults=11, children=6))

    fields = {e.field for e in validate_configuration(draft, CATALOG, today=TODAY)}

    assert {"adults", "children"} <= fields


@pytest.mark.parametrize("email", ["a@b..c", "ada@", "@example.com", "ada diver@example.com", ""])
def test_malformed_email_is_rejected(email):
    draft = _complete_resort_draft(
        contact=ContactDetails(first_name="Ada", last_name="Diver", email=email, phone="555-0100")
    )

    fields = [e.field for e in validate_configuration(draft, CATALOG, today=TODAY)]

    assert not is_valid_email(email)
    assert fields == ["email"]


def test_guest_counts_below_minimum_are_refused_by_the_model():
    with pytest.raises(ValidationError):
        GuestCount(adults=0)
    with pytest.raises(ValidationError):
        GuestCount(adults=-2)
    with pytest.raises(ValidationError):
        GuestCount(children=-1)
    with pytest.raises(ValidationError):
        GuestCount(infants=-1)


def test_negative_activity_days_are_refused_by_the_model():
    with pytest.raises(ValidationError):
        ActivityAllocation(activity_id="snorkeling", days=-50)


def test_activity_days_are_capped_by_nights_minus_travel_day():
    draft = _complete_resort_draft(
        activity_allocation={"adult-1": ActivityAllocation(activity_id="snorkeling", days=7)}
    )

    errors = validate_configuration(draft, CATALOG, today=TODAY)

    assert max_activity_days(draft) == 6
    assert [e.field for e in errors] == ["activity_allocation.adult-1"]


def test_max_activity_days_sums_legs_and_floors_at_zero():
    combo = BookingDraft(
        trip_type="combination-stay",
        combination_order="pelagian-first",
        pelagian_arrival_date=MONDAY,
        pelagian_departure_date=MONDAY + timedelta(days=7),
        resort_arrival_date=MONDAY + timedelta(days=7),
        resort_departure_date=MONDAY + timedelta(days=11),
    )

    assert max_activity_days(combo) == 10
    assert max_activity_days(BookingDraft(trip_type="resort-only")) == 0


def test_guest_ids_are_ordinal_and_adults_first():
    assert guest_ids(GuestCount(adults=2, children=2, infants=1)) == [
        "adult-1",
        "adult-2",
        "child-1",
        "child-2",
    ]


def test_sync_keeps_existing_guests_and_drops_removed_ones():
    draft = _complete_resort_draft(guests=GuestCount(adults=1, children=1))
    draft.activity_allocation["child-1"] = ActivityAllocation(activity_id="snorkeling", days=3)

    allocation = sync_activity_allocation(draft, default_activity_id="no-activity")

    assert set(allocation) == {"adult-1", "child-1"}
    assert allocation["adult-1"].activity_id == "unlimited-dive"
    assert allocation["child-1"].days == 3

    draft.guests.children = 2
    allocation = sync_activity_allocation(draft, default_activity_id="no-activity")

    assert allocation["child-1"].activity_id == "snorkeling"
    assert allocation["child-2"] == ActivityAllocation(activity_id="no-activity", days=0)


def test_step_gate_checks_only_that_steps_fields():
    draft = BookingDraft(trip_type="combination-stay", combination_order="pelagian-first")

    assert validate_step(draft, "trip_type", CATALOG, today=TODAY) == []
    dates_errors = validate_step(draft, "dates", CATALOG, today=TODAY)
    assert {e.field for e in dates_errors} == {"pelagian_arrival_date", "pelagian_departure_date"}
    assert {e.field for e in validate_step(draft, "resort_dates", CATALOG, today=TODAY)} == {
        "resort_arrival_date",
        "resort_departure_date",
    }
    assert validate_step(draft, "guests", CATALOG, today=TODAY) == []
    assert [e.field for e in validate_step(draft, "pelagian_cabin", CATALOG, today=TODAY)] == ["cabin_id"]


def test_trip_type_gate_requires_combination_order():
    draft = BookingDraft(trip_type="combination-stay")

    assert [e.field for e in validate_step(draft, "trip_type", CATALOG, today=TODAY)] == ["combination_order"]


def test_to_configuration_builds_the_matching_variant():
    config = _complete_resort_draft().to_configuration()

    assert isinstance(config, ResortOnlyConfiguration)
    assert config.total_nights() == 7
    assert set(config.stay_legs()) == {"resort"}

    combo = BookingDraft(
        trip_type="combination-stay",
        combination_order="resort-first",
        resort_arrival_date=MONDAY,
        resort_departure_date=MONDAY + timedelta(days=7),
        pelagian_arrival_date=MONDAY + timedelta(days=7),
        pelagian_departure_date=MONDAY + timedelta(days=14),
        accommodation_id="palm-bungalow",
        cabin_id="standard-cabin",
    ).to_configuration()

    assert isinstance(combo, CombinationStayConfiguration)
    assert combo.total_nights() == 14


def test_to_configuration_refuses_missing_selections():
    with pytest.raises(InvalidConfigurationError) as excinfo:
        BookingDraft(trip_type="pelagian-only").to_configuration()

    assert {e.field for e in excinfo.value.errors} == {"pelagian_dates", "cabin_id"}


def test_configuration_base_requires_a_trip_variant():
    with pytest.raises(TypeError):
        _ConfigurationBase(guests=GuestCount(), visit_count="first", contact=CONTACT)
