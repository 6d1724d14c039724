import logging
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from dive_booking.exceptions import (
    IncompleteConfigurationError,
    InvalidConfigurationError,
    UnknownCatalogItemError,
)
from dive_booking.state.booking_state import (
    BookingDraft,
    CombinationStayConfiguration,
    PelagianOnlyConfiguration,
    ResortOnlyConfiguration,
    StayLeg,
    VisitCount,
)
from dive_booking.state.catalog_state import Catalog
from dive_booking.state.state_utils import guest_ids


logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

VISITOR_DISCOUNT_RATES = {
    "first": Decimal("0"),
    "second-third": Decimal("0.05"),
    "fourth-plus": Decimal("0.10"),
}

VISITOR_DISCOUNT_REASONS = {
    "first": "First-time visitor (no discount)",
    "second-third": "2nd or 3rd visit (5% discount)",
    "fourth-plus": "4th or more visit (10% discount)",
}

# (exclusive lower bound on total nights, rate), highest threshold first.
STAY_DISCOUNT_TIERS = (
    (14, Decimal("0.10")),
    (7, Decimal("0.05")),
)

AnyConfiguration = Union[ResortOnlyConfiguration, PelagianOnlyConfiguration, CombinationStayConfiguration]


class PriceLine(BaseModel):
    code: str
    description: str
    amount: Decimal


class PriceQuote(BaseModel):
    """
    Derived price breakdown for a complete configuration. Never stored on
    its own; recompute it from the configuration when needed.
    """

    model_config = ConfigDict(frozen=True)

    currency: str = "USD"
    total_guests: int
    resort_nights: int = 0
    pelagian_nights: int = 0
    total_nights: int = 0

    accommodation_total: Decimal = ZERO
    activity_total: Decimal = ZERO
    cabin_total: Decimal = ZERO
    flight_total: Decimal = ZERO

    discountable_amount: Decimal = ZERO
    visitor_discount_rate: Decimal = ZERO
    stay_discount_rate: Decimal = ZERO
    discount_rate: Decimal = ZERO
    discount_reason: str = ""

    subtotal: Decimal = ZERO
    discount: Decimal = ZERO
    total: Decimal = ZERO

    lines: List[PriceLine] = Field(default_factory=list)

    @property
    def total_minor_units(self) -> int:
        return to_minor_units(self.total)


def to_minor_units(amount: Decimal) -> int:
    """Convert a currency amount to integer cents, rounding half up."""
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def visitor_discount_rate(visit_count: Optional[VisitCount]) -> Decimal:
    return VISITOR_DISCOUNT_RATES.get(visit_count, ZERO)


def stay_discount_rate(total_nights: int) -> Decimal:
    for threshold, rate in STAY_DISCOUNT_TIERS:
        if total_nights > threshold:
            return rate
    return ZERO


def effective_discount_rate(stay_rate: Decimal, visitor_rate: Decimal) -> Decimal:
    """
    The two tiers never stack. A nonzero stay-length rate always wins,
    even when the visitor rate is higher.
    """
    return stay_rate if stay_rate > 0 else visitor_rate


def _discount_reason(visit_count: Optional[VisitCount], total_nights: int, stay_rate: Decimal) -> str:
    if stay_rate > 0:
        return f"Stay of {total_nights} nights ({int(stay_rate * 100)}% discount)"
    return VISITOR_DISCOUNT_REASONS.get(visit_count, VISITOR_DISCOUNT_REASONS["first"])


def _leg_nights(leg_name: str, leg: StayLeg) -> int:
    nights = leg.nights
    if nights < 0:
        logger.error(
            "Pricing invariant violated: departure precedes arrival",
            extra={"leg": leg_name, "arrival": str(leg.arrival_date), "departure": str(leg.departure_date)},
        )
        raise IncompleteConfigurationError(f"{leg_name} departure precedes arrival")
    return nights


def _check_activity_days(configuration: AnyConfiguration, total_nights: int) -> None:
    # One travel day is never an activity day.
    cap = max(total_nights - 1, 0)
    for gid in guest_ids(configuration.guests):
        choice = configuration.activity_allocation.get(gid)
        if choice is None or 0 <= choice.days <= cap:
            continue
        logger.error(
            "Pricing invariant violated: activity days out of range",
            extra={"guest_id": gid, "days": choice.days, "max_days": cap},
        )
        raise IncompleteConfigurationError(f"{gid} has {choice.days} activity days; this stay allows 0 to {cap}")


def _unknown(kind: str, item_id: Optional[str]) -> UnknownCatalogItemError:
    logger.error("Pricing failed: unknown catalog item", extra={"kind": kind, "item_id": item_id})
    return UnknownCatalogItemError(kind, item_id)


def _persons(count: int) -> str:
    return f"{count} person{'s' if count != 1 else ''}"


def compute_price_quote(
    configuration: Union[AnyConfiguration, BookingDraft],
    catalog: Catalog,
) -> PriceQuote:
    """
    Price a complete booking configuration.

    Per-guest multipliers use adults + children only. Accommodation and
    cabin lines are price-per-night x guests x nights of their leg. Each
    guest's activity-days are billed at that guest's own activity price.
    Flights are charged once per guest regardless of leg count and are
    never discounted.

    A BookingDraft is accepted for convenience and converted first; a draft
    that is not complete is an upstream invariant violation.

    Args:
        configuration: A ResortOnly/PelagianOnly/CombinationStay
            configuration (or a complete BookingDraft).
        catalog (Catalog): Reference data for prices.

    Returns:
        PriceQuote: The computed quote.

    Raises:
        IncompleteConfigurationError: required leg or selection data is missing,
            or a guest has more activity-days than the stay allows.
        UnknownCatalogItemError: a selected id is not in the catalog.
    """
    if isinstance(configuration, BookingDraft):
        try:
            configuration = configuration.to_configuration()
        except InvalidConfigurationError as exc:
            logger.error(
                "Pricing invoked on an incomplete configuration",
                extra={"fields": [e.field for e in exc.errors]},
            )
            raise IncompleteConfigurationError(str(exc)) from exc

    total_guests = configuration.guests.billable
    lines: List[PriceLine] = []
    legs = configuration.stay_legs()

    resort_leg = legs.get("resort")
    pelagian_leg = legs.get("pelagian")
    resort_nights = _leg_nights("resort", resort_leg) if resort_leg is not None else 0
    pelagian_nights = _leg_nights("pelagian", pelagian_leg) if pelagian_leg is not None else 0
    if resort_leg is not None:
        _check_activity_days(configuration, resort_nights + pelagian_nights)

    accommodation_total = ZERO
    activity_total = ZERO
    cabin_total = ZERO

    if resort_leg is not None:
        accommodation = catalog.find_accommodation(configuration.accommodation_id)
        if accommodation is None:
            raise _unknown("accommodation", configuration.accommodation_id)
        accommodation_total = Decimal(accommodation.price_per_night) * total_guests * resort_nights
        lines.append(
            PriceLine(
                code="accommodation",
                description=(
                    f"{accommodation.name} ({_persons(total_guests)} × {resort_nights} nights "
                    f"× ${accommodation.price_per_night})"
                ),
                amount=accommodation_total,
            )
        )

        activity_days = 0
        roster = guest_ids(configuration.guests)
        stale = [gid for gid in configuration.activity_allocation if gid not in roster]
        if stale:
            logger.warning("Ignoring activity allocation for unknown guests", extra={"guests": stale})
        for gid in roster:
            choice = configuration.activity_allocation.get(gid)
            if choice is None:
                continue
            activity = catalog.find_activity(choice.activity_id)
            if activity is None:
                raise _unknown("activity", choice.activity_id)
            activity_total += Decimal(activity.price_per_day) * choice.days
            activity_days += choice.days
        lines.append(
            PriceLine(
                code="activities",
                description=f"Activities ({activity_days} activity-days)",
                amount=activity_total,
            )
        )

    if pelagian_leg is not None:
        cabin = catalog.find_cabin(configuration.cabin_id)
        if cabin is None:
            raise _unknown("cabin", configuration.cabin_id)
        cabin_total = Decimal(cabin.price_per_night) * total_guests * pelagian_nights
        lines.append(
            PriceLine(
                code="cabin",
                description=(
                    f"Pelagian {cabin.name} ({_persons(total_guests)} × {pelagian_nights} nights "
                    f"× ${cabin.price_per_night})"
                ),
                amount=cabin_total,
            )
        )

    flight_total = Decimal(catalog.flight_price) * total_guests
    lines.append(
        PriceLine(
            code="flights",
            description=f"Flights ({_persons(total_guests)} × ${catalog.flight_price})",
            amount=flight_total,
        )
    )

    total_nights = resort_nights + pelagian_nights
    discountable = accommodation_total + activity_total + cabin_total
    visitor_rate = visitor_discount_rate(configuration.visit_count)
    stay_rate = stay_discount_rate(total_nights)
    rate = effective_discount_rate(stay_rate, visitor_rate)

    discount = (discountable * rate).quantize(CENT, rounding=ROUND_HALF_UP)
    subtotal = discountable + flight_total
    total = subtotal - discount

    return PriceQuote(
        currency=catalog.currency,
        total_guests=total_guests,
        resort_nights=resort_nights,
        pelagian_nights=pelagian_nights,
        total_nights=total_nights,
        accommodation_total=accommodation_total,
        activity_total=activity_total,
        cabin_total=cabin_total,
        flight_total=flight_total,
        discountable_amount=discountable,
        visitor_discount_rate=visitor_rate,
        stay_discount_rate=stay_rate,
        discount_rate=rate,
        discount_reason=_discount_reason(configuration.visit_count, total_nights, stay_rate),
        subtotal=subtotal,
        discount=discount,
        total=total,
        lines=lines,
    )
