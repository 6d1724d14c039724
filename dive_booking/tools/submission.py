import logging
from datetime import date
from typing import Optional, Tuple

from dive_booking.exceptions import InvalidConfigurationError, SubmissionError
from dive_booking.persistence.store import BookingRecord, BookingStore
from dive_booking.state.booking_state import BookingDraft
from dive_booking.state.catalog_state import Catalog
from dive_booking.state.state_utils import validate_configuration
from dive_booking.utils.costs import PriceQuote, compute_price_quote


logger = logging.getLogger(__name__)


def submit_draft(
    draft: BookingDraft,
    catalog: Catalog,
    store: BookingStore,
    today: Optional[date] = None,
) -> Tuple[BookingRecord, PriceQuote]:
    """
    Validate, price and store a draft as one all-or-nothing operation.

    The draft itself is never modified, so a failed submission can simply
    be retried.

    Raises:
        InvalidConfigurationError: field validation failed; nothing is stored.
        PricingError: the configuration could not be priced.
        SubmissionError: the store failed to persist the booking.
    """
    errors = validate_configuration(draft, catalog, today=today)
    if errors:
        logger.info("Booking submission refused", extra={"fields": [e.field for e in errors]})
        raise InvalidConfigurationError(errors)

    configuration = draft.to_configuration()
    quote = compute_price_quote(configuration, catalog)

    try:
        record = store.submit(configuration, quote.total_minor_units)
    except SubmissionError:
        logger.exception("Booking store rejected submission")
        raise
    except Exception as exc:
        logger.exception("Booking store failed")
        raise SubmissionError("Failed to create booking") from exc

    logger.info(
        "Booking submitted",
        extra={"booking_id": record.id, "trip_type": record.trip_type, "total_price": record.total_price},
    )
    return record, quote
