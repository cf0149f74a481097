"""
Reconcile arbitrary external documents into the canonical intake schema.

Input may come from the durable store, an opened file or pasted text and may
be any JSON-like value: a current document, one written by an earlier
version, a partially corrupt one, or something unrelated. Each leaf is
resolved by trying its current path, then its known prior paths, then the
default. Values taken from a prior path are logged and reported as
migrations. Nothing in here raises.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .schemas.intake import (
    MAX_AUTO_ENTRIES,
    SCHEMA_VERSION,
    Address,
    Contact,
    Customer,
    Driver,
    GeneralLiability,
    HomeSection,
    BusinessSection,
    IntakeModel,
    IntakeState,
    Tab,
    Vehicle,
    WorkersComp,
    text_fields,
    utc_timestamp,
)
from .schemas.migrations import (
    AUTO_COUNT_FLAT,
    BUSINESS_ADDRESS_FLAT,
    BUSINESS_CONTACT_FLAT,
    CUSTOMER_ADDRESS_FLAT,
    DRIVER_RENAMES,
    GENERAL_LIABILITY_RENAMES,
    HOME_ADDRESS_FLAT,
    HOME_RENAMES,
    V1_ROOT_KEYS,
    WORKERS_COMP_RENAMES,
)
from .utils.logging import reconcile_logger

# (record, key, dotted path for reporting)
Candidate = Tuple[Mapping[str, Any], str, str]


@dataclass(frozen=True)
class FieldMigration:
    """A canonical field whose value was read from a prior location."""
    field: str
    source: str


@dataclass
class ReconcileResult:
    state: IntakeState
    migrations: List[FieldMigration] = field(default_factory=list)
    source_version: Optional[int] = None
    newer_than_schema: bool = False


def _record(value: Any) -> Mapping[str, Any]:
    return value if isinstance(value, Mapping) else {}


def _text(value: Any) -> Optional[str]:
    """Leaf value as text, or None when it cannot be interpreted."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return str(int(value)) if value.is_integer() else str(value)
    return None


def _count(value: Any) -> Optional[int]:
    """Non-negative cardinality, or None when it cannot be interpreted."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and math.isfinite(value):
        number = int(value)
    elif isinstance(value, str):
        try:
            number = int(value.strip())
        except ValueError:
            return None
    else:
        return None
    return max(0, min(number, MAX_AUTO_ENTRIES))


class _Resolver:
    """Resolves leaves in order and keeps track of migrations."""

    def __init__(self):
        self.migrations: List[FieldMigration] = []

    def _note(self, target: str, source: str) -> None:
        self.migrations.append(FieldMigration(field=target, source=source))
        reconcile_logger.log_migration(group=target.rsplit(".", 1)[0], field=target, source=source)

    def text(self, target: str, candidates: Sequence[Candidate]) -> str:
        for position, (record, key, path) in enumerate(candidates):
            value = _text(record.get(key))
            if value is None:
                continue
            if position > 0:
                self._note(target, path)
            return value
        return ""

    def record(self,
               prefix: str,
               source: Mapping[str, Any],
               model_cls: type,
               renames: Optional[Dict[str, Tuple[str, ...]]] = None) -> Dict[str, str]:
        """Resolve every text leaf of model_cls from source, honouring renames."""
        renames = renames or {}
        resolved = {}
        for name in text_fields(model_cls):
            candidates = [(source, name, f"{prefix}.{name}")]
            candidates += [(source, old, f"{prefix}.{old}") for old in renames.get(name, ())]
            resolved[name] = self.text(f"{prefix}.{name}", candidates)
        return resolved

    def nested(self,
               prefix: str,
               nested: Mapping[str, Any],
               parent: Mapping[str, Any],
               parent_prefix: str,
               model_cls: type,
               flat: Dict[str, Tuple[str, ...]]) -> Dict[str, str]:
        """Resolve a nested record, falling back to its flat sibling layout."""
        resolved = {}
        for name in text_fields(model_cls):
            candidates = [(nested, name, f"{prefix}.{name}")]
            candidates += [(parent, old, f"{parent_prefix}.{old}") for old in flat.get(name, ())]
            resolved[name] = self.text(f"{prefix}.{name}", candidates)
        return resolved


# --- Per-group rules ---
def _customer(doc: Mapping[str, Any], r: _Resolver) -> Dict[str, Any]:
    customer = _record(doc.get("customer"))
    resolved: Dict[str, Any] = r.record("customer", customer, Customer)
    resolved["address"] = r.nested(
        "customer.address", _record(customer.get("address")),
        customer, "customer", Address, CUSTOMER_ADDRESS_FLAT,
    )
    return resolved


def _list_source(doc: Mapping[str, Any], auto: Mapping[str, Any], kind: str) -> Tuple[Optional[list], str]:
    if isinstance(auto.get(kind), list):
        return auto[kind], f"auto.{kind}"
    if isinstance(doc.get(kind), list):
        return doc[kind], kind
    return None, ""


def _resolve_count(doc: Mapping[str, Any],
                   auto: Mapping[str, Any],
                   kind: str,
                   items: Optional[list],
                   items_path: str,
                   r: _Resolver) -> int:
    target = f"auto.counts.{kind}"
    current = _count(_record(auto.get("counts")).get(kind))
    if current is not None:
        return current
    for old in AUTO_COUNT_FLAT[kind]:
        value = _count(auto.get(old))
        if value is not None:
            r._note(target, f"auto.{old}")
            return value
    value = _count(_record(doc.get("counts")).get(kind))
    if value is not None:
        r._note(target, f"counts.{kind}")
        return value
    if items is not None:
        r._note(target, f"len({items_path})")
        return min(len(items), MAX_AUTO_ENTRIES)
    return 0


def _auto(doc: Mapping[str, Any], r: _Resolver) -> Dict[str, Any]:
    auto = _record(doc.get("auto"))

    drivers_raw, drivers_path = _list_source(doc, auto, "drivers")
    vehicles_raw, vehicles_path = _list_source(doc, auto, "vehicles")
    if drivers_path == "drivers":
        r._note("auto.drivers", "drivers")
    if vehicles_path == "vehicles":
        r._note("auto.vehicles", "vehicles")

    counts = {
        "drivers": _resolve_count(doc, auto, "drivers", drivers_raw, drivers_path, r),
        "vehicles": _resolve_count(doc, auto, "vehicles", vehicles_raw, vehicles_path, r),
    }

    drivers = [
        r.record(f"auto.drivers.{i}", _record(item), Driver, DRIVER_RENAMES)
        for i, item in enumerate((drivers_raw or [])[:counts["drivers"]])
    ]
    vehicles = [
        r.record(f"auto.vehicles.{i}", _record(item), Vehicle)
        for i, item in enumerate((vehicles_raw or [])[:counts["vehicles"]])
    ]
    return {"counts": counts, "drivers": drivers, "vehicles": vehicles}


def _home(doc: Mapping[str, Any], r: _Resolver) -> Dict[str, Any]:
    home = _record(doc.get("home"))
    resolved: Dict[str, Any] = r.record("home", home, HomeSection, HOME_RENAMES)
    resolved["propertyAddress"] = r.nested(
        "home.propertyAddress", _record(home.get("propertyAddress")),
        home, "home", Address, HOME_ADDRESS_FLAT,
    )
    return resolved


def _business(doc: Mapping[str, Any], r: _Resolver) -> Dict[str, Any]:
    business = _record(doc.get("business"))
    resolved: Dict[str, Any] = r.record("business", business, BusinessSection)
    resolved["address"] = r.nested(
        "business.address", _record(business.get("address")),
        business, "business", Address, BUSINESS_ADDRESS_FLAT,
    )
    resolved["contact"] = r.nested(
        "business.contact", _record(business.get("contact")),
        business, "business", Contact, BUSINESS_CONTACT_FLAT,
    )
    resolved["workersComp"] = r.record(
        "business.workersComp", _record(business.get("workersComp")),
        WorkersComp, WORKERS_COMP_RENAMES,
    )
    resolved["generalLiability"] = r.record(
        "business.generalLiability", _record(business.get("generalLiability")),
        GeneralLiability, GENERAL_LIABILITY_RENAMES,
    )
    return resolved


def _source_version(doc: Mapping[str, Any]) -> Optional[int]:
    version = _record(doc.get("meta")).get("version")
    if isinstance(version, int) and not isinstance(version, bool):
        return version
    if "auto" not in doc and any(key in doc for key in V1_ROOT_KEYS):
        return 1
    return None


def _active_tab(value: Any) -> Tab:
    try:
        return Tab.parse(value)
    except TypeError:
        return Tab.AUTO


def reconcile_document(external: Any, now: Optional[datetime] = None) -> ReconcileResult:
    """
    Map any JSON-like value onto a complete canonical intake.

    Args:
        external: Parsed document of unknown shape (or an IntakeState)
        now: Instant stamped into meta.updatedAt (defaults to the current time)

    Returns:
        ReconcileResult with the canonical state and the migrations applied
    """
    if isinstance(external, IntakeModel):
        external = external.to_document()
    doc = _record(external)
    resolver = _Resolver()

    canonical = {
        "customer": _customer(doc, resolver),
        "auto": _auto(doc, resolver),
        "home": _home(doc, resolver),
        "business": _business(doc, resolver),
        "meta": {"version": SCHEMA_VERSION, "updatedAt": utc_timestamp(now)},
        "lastActiveTab": _active_tab(doc.get("lastActiveTab")),
    }
    state = IntakeState.model_validate(canonical)
    state.auto.normalize()

    source_version = _source_version(doc)
    newer = source_version is not None and source_version > SCHEMA_VERSION
    if newer:
        reconcile_logger.log_newer_version(source_version, SCHEMA_VERSION)
    reconcile_logger.log_reconciled(source_version, SCHEMA_VERSION, len(resolver.migrations))

    return ReconcileResult(
        state=state,
        migrations=resolver.migrations,
        source_version=source_version,
        newer_than_schema=newer,
    )


def reconcile(external: Any, now: Optional[datetime] = None) -> IntakeState:
    """Canonical intake for any JSON-like value. Never raises."""
    return reconcile_document(external, now).state
