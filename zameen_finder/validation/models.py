"""Pydantic models for data validation and cleaning.

This module defines the validated form of an emitted listing record. It
guarantees the output contract before a record reaches a sink: numeric
fields are finite or null, the source tag and currency are set, and the
area unit is one of the reported units.
"""

from datetime import datetime, UTC
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from zameen_finder.scraper.base import AreaUnit


class ListingModel(BaseModel):
    """Validated listing record.

    Example:
        listing = ListingModel(
            title="10 Marla House for Sale",
            price=45000000,
            currency="PKR",
            area=10,
            area_unit="marla",
            url="https://www.zameen.com/Property/dha_defence-10_marla_house-1234567-1482-4.html",
            source="zameen.com",
            external_id="1234567",
        )
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        allow_inf_nan=False,
        json_schema_extra={
            "example": {
                "title": "10 Marla House for Sale",
                "price": 45000000,
                "currency": "PKR",
                "bedrooms": 5,
                "bathrooms": 6,
                "area": 10,
                "area_unit": "marla",
                "location": "DHA Phase 2, DHA Defence, Islamabad",
                "city": "Islamabad",
                "property_type": "House",
                "purpose": "sale",
                "url": "https://www.zameen.com/Property/dha_defence-10_marla_house-1234567-1482-4.html",
                "source": "zameen.com",
                "external_id": "1234567",
            }
        },
    )

    title: Optional[str] = Field(None, description="Listing title")
    price: Optional[float] = Field(None, ge=0, description="Asking price")
    currency: str = Field(..., min_length=1, description="Price currency (PKR unless stated)")
    bedrooms: Optional[float] = Field(None, ge=0, description="Number of bedrooms")
    bathrooms: Optional[float] = Field(None, ge=0, description="Number of bathrooms")
    area: Optional[float] = Field(None, gt=0, description="Area in area_unit")
    area_unit: Optional[AreaUnit] = Field(None, description="kanal, marla, sqft or sqm")

    location: Optional[str] = Field(None, description="Location path, most general last")
    city: Optional[str] = Field(None, description="City name")
    property_type: Optional[str] = Field(None, description="House, Flat, Plot, ...")
    purpose: Optional[Literal["sale", "rent"]] = Field(None, description="Listing purpose")
    description: Optional[str] = Field(None, description="Plain-text description")

    url: Optional[str] = Field(None, description="Canonical detail-page URL")
    source: str = Field(..., min_length=1, description="Data source tag")
    external_id: Optional[str] = Field(None, description="Site listing id")
    scraped_at: datetime = Field(
        default_factory=lambda: datetime.now(UTC), description="When the record was emitted"
    )

    @field_validator("title", "location", "city", "property_type", "description", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Treat empty strings as missing."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("external_id", mode="before")
    @classmethod
    def stringify_id(cls, v):
        if v is None:
            return None
        return str(v)

    @model_validator(mode="after")
    def validate_area_unit_pair(self):
        """An area without a unit (or a unit without an area) is meaningless."""
        if (self.area is None) != (self.area_unit is None):
            raise ValueError(f"area ({self.area}) and area_unit ({self.area_unit}) must be set together")
        return self

    @model_validator(mode="after")
    def validate_identity(self):
        if not self.external_id and not self.url:
            raise ValueError("record needs an external_id or a url")
        return self

    @property
    def identity_key(self) -> str:
        return self.external_id or self.url
