import logging
import os
from functools import lru_cache
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field

from dive_booking.settings import get_settings


logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = os.path.join(os.path.dirname(__file__), "../config/catalog.yaml")


class AccommodationOption(BaseModel):
    """
    A resort room type. Prices are per person per night in whole
    currency units.
    """

    id: str = Field(..., description="Stable catalog identifier (e.g. 'ocean-bungalow').")
    name: str = Field(..., description="Display name of the accommodation.")
    price_per_night: int = Field(
        ...,
        ge=0,
        description="Price per person per night.",
    )
    description: Optional[str] = Field(
        default=None,
        description="Short description shown on the accommodation step.",
    )
    features: List[str] = Field(
        default_factory=list,
        description="Feature tags (e.g. Beachfront, Private Pool).",
    )


class CabinOption(BaseModel):
    """
    A liveaboard cabin on the Pelagian. Same pricing unit as
    AccommodationOption.
    """

    id: str = Field(..., description="Stable catalog identifier (e.g. 'master-stateroom').")
    name: str = Field(..., description="Display name of the cabin.")
    price_per_night: int = Field(
        ...,
        ge=0,
        description="Price per person per night.",
    )
    description: Optional[str] = Field(
        default=None,
        description="Short description shown on the cabin step.",
    )
    features: List[str] = Field(
        default_factory=list,
        description="Feature tags (e.g. Full Beam, Ensuite Bathroom).",
    )


class ActivityOption(BaseModel):
    """
    An activity package billed per guest per activity-day. A price of 0
    represents "no activity".
    """

    id: str = Field(..., description="Stable catalog identifier (e.g. 'unlimited-dive').")
    name: str = Field(..., description="Display name of the package.")
    price_per_day: int = Field(
        ...,
        ge=0,
        description="Price per person per activity-day.",
    )
    description: Optional[str] = Field(
        default=None,
        description="Short description shown on the activities step.",
    )
    features: List[str] = Field(
        default_factory=list,
        description="Feature tags (e.g. Nitrox Included).",
    )


class Catalog(BaseModel):
    """
    Read-only reference data for the booking wizard.

    Lookups return None for unknown ids; callers treat absence as a
    validation failure on the corresponding field.
    """

    currency: str = "USD"
    flight_price: int = Field(
        default=900,
        ge=0,
        description="Per-person flight price, charged once per trip.",
    )
    accommodations: List[AccommodationOption] = Field(default_factory=list)
    cabins: List[CabinOption] = Field(default_factory=list)
    activities: List[ActivityOption] = Field(default_factory=list)

    def find_accommodation(self, accommodation_id: Optional[str]) -> Optional[AccommodationOption]:
        for option in self.accommodations:
            if option.id == accommodation_id:
                return option
        return None

    def find_cabin(self, cabin_id: Optional[str]) -> Optional[CabinOption]:
        for option in self.cabins:
            if option.id == cabin_id:
                return option
        return None

    def find_activity(self, activity_id: Optional[str]) -> Optional[ActivityOption]:
        for option in self.activities:
            if option.id == activity_id:
                return option
        return None


def load_catalog(path: Optional[str] = None) -> Catalog:
    """
    Load and validate catalog data from a YAML file.

    Args:
        path (str | None): YAML file to read. Defaults to the bundled
            config/catalog.yaml.

    Returns:
        Catalog: The validated catalog.
    """
    catalog_path = path or DEFAULT_CATALOG_PATH
    with open(catalog_path, "r") as f:
        raw = yaml.safe_load(f) or {}

    catalog = Catalog.model_validate(raw)
    logger.info(
        "Loaded catalog",
        extra={
            "path": catalog_path,
            "accommodations": len(catalog.accommodations),
            "cabins": len(catalog.cabins),
            "activities": len(catalog.activities),
        },
    )
    return catalog


@lru_cache(maxsize=None)
def get_default_catalog() -> Catalog:
    return load_catalog(get_settings().catalog_path)
