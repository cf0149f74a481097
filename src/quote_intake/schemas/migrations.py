"""
Field inventory of earlier intake document versions.

Version history:
- v1: drivers, vehicles and counts at the document root, customer only.
- v2: flat home and business records (street in ``propertyAddress`` /
  ``address`` strings, sibling city/state/zip, ``contactName`` ...),
  ``auto.driverCount`` / ``auto.vehicleCount``.
- v3: nested addresses and contact, ``auto.counts``, renamed leaves.

Each mapping is canonical name -> prior names, tried in order.
"""

from typing import Dict, Tuple

# === RENAMED LEAVES ===
HOME_RENAMES: Dict[str, Tuple[str, ...]] = {
    "dwellingCoverageA": ("dwellingCoverage",),
    "expirationDate": ("priorCarrierExpiration",),
    "securityNotes": ("securityAlarms",),
}

WORKERS_COMP_RENAMES: Dict[str, Tuple[str, ...]] = {
    "numEmployees": ("numberOfEmployees",),
    "expirationDate": ("priorCarrierExpiration",),
}

GENERAL_LIABILITY_RENAMES: Dict[str, Tuple[str, ...]] = {
    "salesEstimate": ("salesRevenueEstimate",),
    "operationsDescription": ("descriptionOfOperations",),
    "expirationDate": ("priorCarrierExpiration",),
}

DRIVER_RENAMES: Dict[str, Tuple[str, ...]] = {
    "license": ("licenseNumber",),
}

# === FLAT LAYOUTS OF NESTED RECORDS ===
# Nested key -> flat sibling names on the parent record.
CUSTOMER_ADDRESS_FLAT: Dict[str, Tuple[str, ...]] = {
    "street": ("street", "address"),
    "city": ("city",),
    "state": ("state",),
    "zip": ("zip",),
}

# In v2 the property address itself was a plain street string.
HOME_ADDRESS_FLAT: Dict[str, Tuple[str, ...]] = {
    "street": ("propertyAddress", "street"),
    "city": ("city",),
    "state": ("state",),
    "zip": ("zip",),
}

BUSINESS_ADDRESS_FLAT: Dict[str, Tuple[str, ...]] = {
    "street": ("address", "street"),
    "city": ("city",),
    "state": ("state",),
    "zip": ("zip",),
}

BUSINESS_CONTACT_FLAT: Dict[str, Tuple[str, ...]] = {
    "name": ("contactName",),
    "phone": ("contactPhone",),
    "email": ("contactEmail",),
}

# === AUTO COUNTS ===
# auto.counts.<kind> -> v2 names on the auto record
AUTO_COUNT_FLAT: Dict[str, Tuple[str, ...]] = {
    "drivers": ("driverCount",),
    "vehicles": ("vehicleCount",),
}

# Keys that only a v1 document carries at its root
V1_ROOT_KEYS: Tuple[str, ...] = ("counts", "drivers", "vehicles")
