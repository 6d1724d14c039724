from abc import abstractmethod
from datetime import date
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from dive_booking.exceptions import InvalidConfigurationError


TripType = Literal["resort-only", "pelagian-only", "combination-stay"]
CombinationOrder = Literal["resort-first", "pelagian-first"]
VisitCount = Literal["first", "second-third", "fourth-plus"]
LegType = Literal["resort", "pelagian"]


class FieldError(BaseModel):
    """User-correctable problem keyed by the offending field."""

    field: str
    message: str


class StayLeg(BaseModel):
    model_config = ConfigDict(frozen=True)

    arrival_date: date
    departure_date: date

    @property
    def nights(self) -> int:
        return (self.departure_date - self.arrival_date).days


class GuestCount(BaseModel):
    # Only adults and children are billable.
    adults: int = Field(default=2, ge=1)
    children: int = Field(default=0, ge=0)
    infants: int = Field(default=0, ge=0)

    @property
    def billable(self) -> int:
        return self.adults + self.children


class ActivityAllocation(BaseModel):
    activity_id: str = Field(..., description="Catalog activity id chosen by this guest.")
    days: int = Field(default=0, ge=0, description="Number of activity-days for this guest.")


class ContactDetails(BaseModel):
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    special_requests: Optional[str] = None


class BookingDraft(BaseModel):
    """
    The partially-filled booking the wizard accumulates step by step.

    Every selection is optional here. Completeness is checked by
    state_utils.validate_configuration, and a complete draft is turned into
    one of the BookingConfiguration variants with to_configuration().
    """

    trip_type: Optional[TripType] = None
    # Only meaningful for combination stays.
    combination_order: Optional[CombinationOrder] = None

    resort_arrival_date: Optional[date] = None
    resort_departure_date: Optional[date] = None
    pelagian_arrival_date: Optional[date] = None
    pelagian_departure_date: Optional[date] = None

    guests: GuestCount = Field(default_factory=GuestCount)
    visit_count: Optional[VisitCount] = "first"

    accommodation_id: Optional[str] = None
    cabin_id: Optional[str] = None
    # Keyed by synthesized guest id ("adult-1", "child-2", ...).
    activity_allocation: Dict[str, ActivityAllocation] = Field(default_factory=dict)

    contact: ContactDetails = Field(default_factory=ContactDetails)

    def includes_resort_leg(self) -> bool:
        return self.trip_type in ("resort-only", "combination-stay")

    def includes_pelagian_leg(self) -> bool:
        return self.trip_type in ("pelagian-only", "combination-stay")

    def stay_leg(self, leg: LegType) -> Optional[StayLeg]:
        if leg == "resort":
            arrival, departure = self.resort_arrival_date, self.resort_departure_date
        else:
            arrival, departure = self.pelagian_arrival_date, self.pelagian_departure_date
        if arrival is None or departure is None:
            return None
        return StayLeg(arrival_date=arrival, departure_date=departure)

    def to_configuration(self) -> "BookingConfiguration":
        """
        Build the trip-type specific configuration from this draft.

        Only structural presence is checked here (schedule and catalog
        rules need a clock and a catalog, see state_utils).

        Raises:
            InvalidConfigurationError: when a field required by the trip
                type is missing.
        """
        errors: List[FieldError] = []
        if self.trip_type is None:
            errors.append(FieldError(field="trip_type", message="Please select your trip type."))
        if self.visit_count is None:
            errors.append(FieldError(field="visit_count", message="Please select your visit count."))
        if self.trip_type == "combination-stay" and self.combination_order is None:
            errors.append(
                FieldError(field="combination_order", message="Please choose which stay comes first.")
            )

        resort_leg = self.stay_leg("resort")
        pelagian_leg = self.stay_leg("pelagian")
        if self.includes_resort_leg():
            if resort_leg is None:
                errors.append(FieldError(field="resort_dates", message="Please select your resort dates."))
            if not self.accommodation_id:
                errors.append(FieldError(field="accommodation_id", message="Please select an accommodation."))
        if self.includes_pelagian_leg():
            if pelagian_leg is None:
                errors.append(FieldError(field="pelagian_dates", message="Please select your Pelagian dates."))
            if not self.cabin_id:
                errors.append(FieldError(field="cabin_id", message="Please select a Pelagian cabin."))

        if errors:
            raise InvalidConfigurationError(errors)

        common = {
            "guests": self.guests.model_copy(),
            "visit_count": self.visit_count,
            "contact": self.contact.model_copy(),
        }
        allocation = {k: v.model_copy() for k, v in self.activity_allocation.items()}

        if self.trip_type == "resort-only":
            return ResortOnlyConfiguration(
                resort_leg=resort_leg,
                accommodation_id=self.accommodation_id,
                activity_allocation=allocation,
                **common,
            )
        if self.trip_type == "pelagian-only":
            return PelagianOnlyConfiguration(
                pelagian_leg=pelagian_leg,
                cabin_id=self.cabin_id,
                **common,
            )
        return CombinationStayConfiguration(
            combination_order=self.combination_order,
            resort_leg=resort_leg,
            pelagian_leg=pelagian_leg,
            accommodation_id=self.accommodation_id,
            cabin_id=self.cabin_id,
            activity_allocation=allocation,
            **common,
        )


class _ConfigurationBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    guests: GuestCount
    visit_count: VisitCount
    contact: ContactDetails

    @abstractmethod
    def stay_legs(self) -> Dict[LegType, StayLeg]:
        raise NotImplementedError

    def total_nights(self) -> int:
        return sum(leg.nights for leg in self.stay_legs().values())


class ResortOnlyConfiguration(_ConfigurationBase):
    trip_type: Literal["resort-only"] = "resort-only"
    resort_leg: StayLeg
    accommodation_id: str
    activity_allocation: Dict[str, ActivityAllocation] = Field(default_factory=dict)

    def stay_legs(self) -> Dict[LegType, StayLeg]:
        return {"resort": self.resort_leg}


class PelagianOnlyConfiguration(_ConfigurationBase):
    trip_type: Literal["pelagian-only"] = "pelagian-only"
    pelagian_leg: StayLeg
    cabin_id: str

    def stay_legs(self) -> Dict[LegType, StayLeg]:
        return {"pelagian": self.pelagian_leg}


class CombinationStayConfiguration(_ConfigurationBase):
    trip_type: Literal["combination-stay"] = "combination-stay"
    combination_order: CombinationOrder
    resort_leg: StayLeg
    pelagian_leg: StayLeg
    accommodation_id: str
    cabin_id: str
    activity_allocation: Dict[str, ActivityAllocation] = Field(default_factory=dict)

    def stay_legs(self) -> Dict[LegType, StayLeg]:
        return {"resort": self.resort_leg, "pelagian": self.pelagian_leg}


BookingConfiguration = Annotated[
    Union[ResortOnlyConfiguration, PelagianOnlyConfiguration, CombinationStayConfiguration],
    Field(discriminator="trip_type"),
]


class WizardState(BaseModel):
    """Per-session wizard state: the draft plus the current step position."""

    draft: BookingDraft = Field(default_factory=BookingDraft)
    current_step: int = 0
    status: Literal["in_progress", "submitted"] = "in_progress"
    booking_id: Optional[int] = None
