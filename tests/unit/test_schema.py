from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from quote_intake.schemas import (
    MAX_AUTO_ENTRIES,
    SCHEMA_VERSION,
    AutoSection,
    Driver,
    IntakeState,
    Tab,
    Vehicle,
    default_state,
    sanitize_vin,
)
from quote_intake.schemas.intake import text_fields, utc_timestamp, HomeSection

FIXED_NOW = datetime(2024, 3, 5, 12, 30, 0, tzinfo=timezone.utc)


class TestSanitizeVin:
    def test_uppercases_and_strips(self):
        assert sanitize_vin(" 1hgcm8-2633 a004352 ") == "1HGCM82633A004352"

    def test_none_and_numbers(self):
        assert sanitize_vin(None) == ""
        assert sanitize_vin(12345) == "12345"

    def test_vehicle_applies_sanitizer_on_assignment(self):
        vehicle = Vehicle(vin="abc-123")
        assert vehicle.vin == "ABC123"
        vehicle.vin = "x y z"
        assert vehicle.vin == "XYZ"


class TestDefaultState:
    def test_every_leaf_present(self):
        doc = default_state(FIXED_NOW).to_document()

        assert doc["customer"]["address"] == {"street": "", "city": "", "state": "", "zip": ""}
        assert doc["auto"] == {"counts": {"drivers": 0, "vehicles": 0}, "drivers": [], "vehicles": []}
        assert doc["home"]["propertyAddress"]["zip"] == ""
        assert doc["home"]["claimsLast5Years"] == ""
        assert doc["business"]["workersComp"]["numEmployees"] == ""
        assert doc["business"]["generalLiability"]["operationsDescription"] == ""
        assert doc["meta"] == {"version": SCHEMA_VERSION, "updatedAt": "2024-03-05T12:30:00.000Z"}
        assert doc["lastActiveTab"] == "auto"

    def test_no_shared_structure(self):
        first = default_state()
        second = default_state()
        first.customer.address.city = "Austin"
        first.auto.drivers.append(Driver(name="A"))

        assert second.customer.address.city == ""
        assert second.auto.drivers == []


class TestTab:
    @pytest.mark.parametrize("value,expected", [
        ("home", Tab.HOME),
        ("business", Tab.BUSINESS),
        ("garage", Tab.AUTO),
        (None, Tab.AUTO),
        (Tab.HOME, Tab.HOME),
    ])
    def test_parse(self, value, expected):
        assert Tab.parse(value) == expected

    def test_unknown_tab_on_state(self):
        state = IntakeState(last_active_tab="somewhere")
        assert state.last_active_tab == Tab.AUTO


class TestAutoSection:
    def test_normalize_pads_and_truncates(self):
        auto = AutoSection()
        auto.counts.drivers = 2
        auto.counts.vehicles = 1
        auto.normalize()
        assert len(auto.drivers) == 2
        assert len(auto.vehicles) == 1

        auto.drivers[0].name = "Kept"
        auto.counts.drivers = 1
        auto.normalize()
        assert [d.name for d in auto.drivers] == ["Kept"]

    def test_counts_bounded(self):
        auto = AutoSection()
        with pytest.raises(ValidationError):
            auto.counts.drivers = MAX_AUTO_ENTRIES + 1
        with pytest.raises(ValidationError):
            auto.counts.vehicles = -1


class TestDocumentShape:
    def test_aliases_are_camel_case(self):
        assert "dwellingCoverageA" in text_fields(HomeSection)
        assert "mortgageeLoanNumber" in text_fields(HomeSection)
        assert "propertyAddress" not in text_fields(HomeSection)

    def test_populate_by_alias_and_name(self):
        by_alias = Driver.model_validate({"licenseState": "TX"})
        by_name = Driver(license_state="TX")
        assert by_alias == by_name

    def test_unknown_keys_dropped(self):
        state = IntakeState.model_validate({"customer": {"name": "Jo", "nickname": "J"}, "extra": 1})
        assert "nickname" not in state.customer.to_document()
        assert "extra" not in state.to_document()

    def test_utc_timestamp_naive_is_utc(self):
        assert utc_timestamp(FIXED_NOW.replace(tzinfo=None)) == "2024-03-05T12:30:00.000Z"
