import json
import logging
import sys
from datetime import date, timedelta

from dotenv import load_dotenv

from dive_booking.settings import get_settings
from dive_booking.tools.wizard_tools import (
    BookingContext,
    allocate_activity,
    get_current_step,
    get_quote,
    next_step,
    select_accommodation,
    select_cabin,
    select_trip_type,
    set_stay_dates,
    submit_booking,
    update_contact,
    update_guests,
)


load_dotenv()


def _next_weekday(start: date, weekday: int) -> date:
    return start + timedelta(days=(weekday - start.weekday()) % 7)


def _print(label: str, payload) -> None:
    print(f"[WIZARD] {label}")
    print(json.dumps(payload, indent=2, default=str))


def run_sample_booking() -> None:
    """
    Walk a combination stay (resort first, then the Pelagian) through every
    wizard step and print the resulting quote and stored booking.
    """
    ctx = BookingContext()

    resort_arrival = _next_weekday(date.today() + timedelta(days=30), 0)
    resort_departure = resort_arrival + timedelta(days=7)
    pelagian_arrival = resort_departure

    _print("trip type", select_trip_type(ctx, "combination-stay", "resort-first"))
    _print("resort dates", set_stay_dates(ctx, "resort", resort_arrival, resort_departure))
    next_step(ctx)
    next_step(ctx)

    update_guests(ctx, adults=2, children=1, visit_count="second-third")
    next_step(ctx)

    select_accommodation(ctx, "ocean-bungalow")
    next_step(ctx)

    set_stay_dates(ctx, "pelagian", pelagian_arrival)
    next_step(ctx)

    select_cabin(ctx, "deluxe-cabin")
    next_step(ctx)

    allocate_activity(ctx, "unlimited-dive", days=6, guest_id="adult-1")
    allocate_activity(ctx, "snorkeling", days=4, guest_id="adult-2")
    allocate_activity(ctx, "snorkeling", days=4, guest_id="child-1")
    next_step(ctx)

    _print("current step", get_current_step(ctx))
    _print("quote", get_quote(ctx))

    update_contact(
        ctx,
        first_name="Ada",
        last_name="Diver",
        email="ada.diver@example.com",
        phone="+1 555 0100",
        special_requests="Nitrox certification course",
    )
    _print("submission", submit_booking(ctx))


def serve() -> None:
    import uvicorn

    from dive_booking.api import create_app

    settings = get_settings()
    uvicorn.run(create_app(), host=settings.host, port=settings.port)


if __name__ == "__main__":
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )

    if "--serve" in sys.argv[1:]:
        serve()
    else:
        run_sample_booking()
