"""
Canonical pydantic schemas for the quote intake service.

This package contains:
- The canonical intake document and its records
- The field inventory of earlier document versions
- Request/response contracts of the HTTP surface
"""

from .intake import (
    MAX_AUTO_ENTRIES,
    SCHEMA_VERSION,
    Address,
    AutoCounts,
    AutoSection,
    BusinessSection,
    Contact,
    Customer,
    Driver,
    GeneralLiability,
    HomeSection,
    IntakeState,
    Meta,
    Tab,
    Vehicle,
    WorkersComp,
    default_state,
    sanitize_vin,
)

__all__ = [
    "MAX_AUTO_ENTRIES",
    "SCHEMA_VERSION",
    "Address",
    "AutoCounts",
    "AutoSection",
    "BusinessSection",
    "Contact",
    "Customer",
    "Driver",
    "GeneralLiability",
    "HomeSection",
    "IntakeState",
    "Meta",
    "Tab",
    "Vehicle",
    "WorkersComp",
    "default_state",
    "sanitize_vin",
]
