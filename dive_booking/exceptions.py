from typing import Optional


class BookingError(Exception):
    """Base exception for booking engine errors."""


class PricingError(BookingError):
    """
    Pricing was invoked on a configuration that validation should have
    rejected. Indicates an upstream invariant violation.
    """


class UnknownCatalogItemError(PricingError):
    """A selected accommodation, cabin or activity id is not in the catalog."""

    def __init__(self, kind: str, item_id: Optional[str]):
        self.kind = kind
        self.item_id = item_id
        super().__init__(f"Unknown {kind} id: {item_id!r}")


class IncompleteConfigurationError(PricingError):
    """Required leg data is missing or out of range for pricing."""


class InvalidConfigurationError(BookingError):
    """Raised when a draft with outstanding field errors is finalized or submitted."""

    def __init__(self, errors):
        self.errors = list(errors)
        fields = ", ".join(e.field for e in self.errors) or "unknown"
        super().__init__(f"Booking configuration is invalid ({fields})")


class SubmissionError(BookingError):
    """The booking store failed to persist a finalized booking."""


class InvalidStepTransitionError(BookingError):
    """A wizard step id outside the known step set was requested."""
