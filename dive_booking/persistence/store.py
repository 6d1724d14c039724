import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import date
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field

from dive_booking.exceptions import SubmissionError
from dive_booking.state.booking_state import (
    ActivityAllocation,
    CombinationOrder,
    CombinationStayConfiguration,
    PelagianOnlyConfiguration,
    ResortOnlyConfiguration,
    TripType,
    VisitCount,
)


logger = logging.getLogger(__name__)

AnyConfiguration = Union[ResortOnlyConfiguration, PelagianOnlyConfiguration, CombinationStayConfiguration]


class BookingRecord(BaseModel):
    """
    Immutable stored booking. Dates of a leg the trip type does not use
    are None. The legacy arrival/departure pair mirrors the resort dates
    of resort-only bookings for older single-leg consumers.
    """

    id: int
    trip_type: TripType
    combination_order: Optional[CombinationOrder] = None

    resort_arrival_date: Optional[date] = None
    resort_departure_date: Optional[date] = None
    pelagian_arrival_date: Optional[date] = None
    pelagian_departure_date: Optional[date] = None
    arrival_date: Optional[date] = None
    departure_date: Optional[date] = None

    adults: int
    children: int = 0
    infants: int = 0
    visit_count: VisitCount

    accommodation_id: Optional[str] = None
    cabin_id: Optional[str] = None
    activity_id: Optional[str] = None
    activity_days: Optional[str] = Field(
        default=None,
        description="JSON object mapping guest id to {activity_id, days}.",
    )

    first_name: str
    last_name: str
    email: str
    phone: str
    special_requests: Optional[str] = None

    total_price: int = Field(..., description="Total price in minor currency units (cents).")

    def activity_allocation(self) -> Dict[str, ActivityAllocation]:
        if not self.activity_days:
            return {}
        raw = json.loads(self.activity_days)
        return {gid: ActivityAllocation.model_validate(v) for gid, v in raw.items()}


def build_record_fields(configuration: AnyConfiguration, total_minor_units: int) -> Dict:
    """Flatten a configuration into BookingRecord fields (everything but the id)."""
    legs = configuration.stay_legs()
    resort = legs.get("resort")
    pelagian = legs.get("pelagian")
    allocation: Dict[str, ActivityAllocation] = getattr(configuration, "activity_allocation", {}) or {}

    fields = {
        "trip_type": configuration.trip_type,
        "combination_order": getattr(configuration, "combination_order", None),
        "resort_arrival_date": resort.arrival_date if resort else None,
        "resort_departure_date": resort.departure_date if resort else None,
        "pelagian_arrival_date": pelagian.arrival_date if pelagian else None,
        "pelagian_departure_date": pelagian.departure_date if pelagian else None,
        "adults": configuration.guests.adults,
        "children": configuration.guests.children,
        "infants": configuration.guests.infants,
        "visit_count": configuration.visit_count,
        "accommodation_id": getattr(configuration, "accommodation_id", None),
        "cabin_id": getattr(configuration, "cabin_id", None),
        # Primary activity: the first guest's choice.
        "activity_id": next(iter(allocation.values())).activity_id if allocation else None,
        "activity_days": (
            json.dumps({gid: a.model_dump() for gid, a in allocation.items()}) if allocation else None
        ),
        "first_name": configuration.contact.first_name,
        "last_name": configuration.contact.last_name,
        "email": configuration.contact.email,
        "phone": configuration.contact.phone,
        "special_requests": configuration.contact.special_requests,
        "total_price": total_minor_units,
    }
    if configuration.trip_type == "resort-only":
        fields["arrival_date"] = resort.arrival_date
        fields["departure_date"] = resort.departure_date
    return fields


class BookingStore(ABC):
    """
    Submission sink for finalized bookings. Implementations must assign
    unique ids under concurrent submissions.
    """

    @abstractmethod
    def submit(self, configuration: AnyConfiguration, total_minor_units: int) -> BookingRecord:
        raise NotImplementedError

    @abstractmethod
    def get_by_id(self, booking_id: int) -> Optional[BookingRecord]:
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> List[BookingRecord]:
        raise NotImplementedError


class InMemoryBookingStore(BookingStore):
    """Process-local store standing in for a database table."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[int, BookingRecord] = {}
        self._next_id = 1

    def submit(self, configuration: AnyConfiguration, total_minor_units: int) -> BookingRecord:
        try:
            fields = build_record_fields(configuration, total_minor_units)
        except (TypeError, ValueError) as exc:
            raise SubmissionError("Failed to serialize booking") from exc

        with self._lock:
            booking_id = self._next_id
            try:
                record = BookingRecord(id=booking_id, **fields)
            except ValueError as exc:
                raise SubmissionError("Failed to serialize booking") from exc
            self._next_id += 1
            self._records[booking_id] = record

        logger.info("Stored booking", extra={"booking_id": booking_id, "trip_type": record.trip_type})
        return record.model_copy()

    def get_by_id(self, booking_id: int) -> Optional[BookingRecord]:
        with self._lock:
            record = self._records.get(booking_id)
        return record.model_copy() if record is not None else None

    def list_all(self) -> List[BookingRecord]:
        with self._lock:
            records = list(self._records.values())
        return [r.model_copy() for r in records]
