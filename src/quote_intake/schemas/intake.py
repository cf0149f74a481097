"""
Canonical intake schema.

Every leaf of the intake tree is always present: strings default to "" and
the auto counts default to 0. Documents are exchanged with camelCase keys
(``lastActiveTab``, ``propertyAddress`` ...) while Python code uses the
snake_case attribute names.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 3
MAX_AUTO_ENTRIES = 10
VIN_LENGTH = 17

_VIN_STRIP_RE = re.compile(r"[^A-Z0-9]")

T = TypeVar("T")


def sanitize_vin(raw: Any) -> str:
    """Upper-case a VIN and drop anything that is not A-Z or 0-9."""
    if raw is None:
        return ""
    return _VIN_STRIP_RE.sub("", str(raw).upper())


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a Z suffix."""
    moment = now or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Tab(str, Enum):
    """Intake form tabs."""
    AUTO = "auto"
    HOME = "home"
    BUSINESS = "business"

    @classmethod
    def parse(cls, value: Any) -> "Tab":
        """Known tab for value, falling back to AUTO."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.AUTO


class IntakeModel(BaseModel):
    """Base model: camelCase aliases, assignment validation, unknown keys dropped."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "validate_assignment": True,
        "extra": "ignore",
    }

    def to_document(self) -> Dict[str, Any]:
        """JSON-ready dict with camelCase keys. Never aliases live state."""
        return self.model_dump(by_alias=True, mode="json")


# --- Shared records ---
class Address(IntakeModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""


class Contact(IntakeModel):
    name: str = ""
    phone: str = ""
    email: str = ""


# --- Customer ---
class Customer(IntakeModel):
    name: str = ""
    phone: str = ""
    email: str = ""
    address: Address = Field(default_factory=Address)


# --- Auto ---
class Driver(IntakeModel):
    name: str = ""
    dob: str = ""
    license_state: str = ""
    license: str = ""


class Vehicle(IntakeModel):
    vin: str = Field("", description="Upper-cased alphanumeric VIN, full or partial")
    decoded: str = Field("", description="Year Make Model from the VIN decoder")

    @field_validator("vin", mode="before")
    @classmethod
    def normalize_vin(cls, v):
        return sanitize_vin(v)


class AutoCounts(IntakeModel):
    drivers: int = Field(0, ge=0, le=MAX_AUTO_ENTRIES)
    vehicles: int = Field(0, ge=0, le=MAX_AUTO_ENTRIES)


def _fit(items: List[T], count: int, factory: Callable[[], T]) -> List[T]:
    fitted = list(items[:count])
    while len(fitted) < count:
        fitted.append(factory())
    return fitted


class AutoSection(IntakeModel):
    counts: AutoCounts = Field(default_factory=AutoCounts)
    drivers: List[Driver] = Field(default_factory=list)
    vehicles: List[Vehicle] = Field(default_factory=list)

    def normalize(self) -> None:
        """Pad or truncate the driver and vehicle lists to the declared counts."""
        if len(self.drivers) != self.counts.drivers:
            self.drivers = _fit(self.drivers, self.counts.drivers, Driver)
        if len(self.vehicles) != self.counts.vehicles:
            self.vehicles = _fit(self.vehicles, self.counts.vehicles, Vehicle)


# --- Home ---
class HomeSection(IntakeModel):
    property_address: Address = Field(default_factory=Address)
    year_built: str = ""
    square_feet: str = ""
    construction_type: str = ""
    roof_type: str = ""
    roof_age: str = ""
    number_of_stories: str = ""
    dwelling_coverage_a: str = ""
    deductible: str = ""
    prior_carrier: str = ""
    expiration_date: str = ""
    claims_last5_years: str = ""
    claims_notes: str = ""
    occupancy: str = ""
    security_notes: str = ""
    hydrant_distance: str = ""
    fire_station_distance: str = ""
    mortgagee_name: str = ""
    mortgagee_loan_number: str = ""


# --- Business ---
class WorkersComp(IntakeModel):
    payroll_estimate: str = ""
    num_employees: str = ""
    class_codes: str = ""
    prior_carrier: str = ""
    expiration_date: str = ""
    claims: str = ""
    claims_notes: str = ""


class GeneralLiability(IntakeModel):
    sales_estimate: str = ""
    subcontractors_used: str = ""
    operations_description: str = ""
    prior_carrier: str = ""
    expiration_date: str = ""


class BusinessSection(IntakeModel):
    business_name: str = ""
    entity_type: str = ""
    tax_id: str = ""
    years_in_business: str = ""
    naics: str = ""
    sic: str = ""
    address: Address = Field(default_factory=Address)
    contact: Contact = Field(default_factory=Contact)
    workers_comp: WorkersComp = Field(default_factory=WorkersComp)
    general_liability: GeneralLiability = Field(default_factory=GeneralLiability)


# --- Root ---
class Meta(IntakeModel):
    version: int = SCHEMA_VERSION
    updated_at: str = Field(default_factory=utc_timestamp)


class IntakeState(IntakeModel):
    """The single authoritative intake document."""

    customer: Customer = Field(default_factory=Customer)
    auto: AutoSection = Field(default_factory=AutoSection)
    home: HomeSection = Field(default_factory=HomeSection)
    business: BusinessSection = Field(default_factory=BusinessSection)
    meta: Meta = Field(default_factory=Meta)
    last_active_tab: Tab = Tab.AUTO

    @field_validator("last_active_tab", mode="before")
    @classmethod
    def known_tab(cls, v):
        return Tab.parse(v)


def default_state(now: Optional[datetime] = None) -> IntakeState:
    """Fresh, fully populated intake tree. No structure is shared between calls."""
    return IntakeState(meta=Meta(updated_at=utc_timestamp(now)))


def text_fields(model_cls: Type[IntakeModel]) -> Tuple[str, ...]:
    """camelCase names of the plain string leaves of a record type."""
    return tuple(
        field.alias or name
        for name, field in model_cls.model_fields.items()
        if field.annotation is str
    )
