# Overview: Pytest coverage for sector/operator administration and pricing administration.

from datetime import timedelta
from decimal import Decimal

import pytest

from parkcore.errors import NotFoundError, StateConflictError, ValidationError
from parkcore.services import operator_service, pricing_service, tariff_service
from parkcore.time_utils import utcnow


class TestOperatorAdministration:

    def test_sector_and_streets(self, db_session):
        sector = operator_service.create_sector(name=" Centro ")
        assert sector.name == "Centro"
        street = operator_service.create_street(sector.id, name="Prat")
        assert street.sector_id == sector.id
        with pytest.raises(StateConflictError):
            operator_service.create_street(sector.id, name="Prat")
        assert [s.name for s in operator_service.list_sectors()] == ["Centro"]

    def test_street_for_unknown_sector(self, db_session):
        with pytest.raises(NotFoundError):
            operator_service.create_street(999999, name="Prat")

    def test_operator_rut_is_unique(self, db_session):
        operator_service.create_operator(name="Ana", rut="1-9")
        with pytest.raises(StateConflictError):
            operator_service.create_operator(name="Otra Ana", rut="1-9")

    def test_operator_name_required(self, db_session):
        with pytest.raises(ValidationError):
            operator_service.create_operator(name="  ")

    def test_status_values(self, db_session, operator):
        with pytest.raises(ValidationError):
            operator_service.set_operator_status(operator.id, status="SUSPENDED")
        assert operator_service.set_operator_status(operator.id, status="inactive").status == "INACTIVE"
        assert [o.id for o in operator_service.list_operators("INACTIVE")] == [operator.id]

    def test_assignment_window(self, db_session, sector, cashier):
        now = utcnow()
        with pytest.raises(ValidationError):
            operator_service.assign_operator(
                cashier.id, sector_id=sector.id, valid_from=now, valid_to=now - timedelta(days=1)
            )
        assignment = operator_service.assign_operator(cashier.id, sector_id=sector.id, valid_to=now + timedelta(days=30))
        assert assignment.is_valid_at(now + timedelta(days=1))
        assert not assignment.is_valid_at(now + timedelta(days=31))
        assert [a.id for a in operator_service.list_assignments(cashier.id)] == [assignment.id]

    def test_assignment_street_must_belong_to_sector(self, db_session, sector, street, cashier):
        other = operator_service.create_sector(name="Norte")
        with pytest.raises(ValidationError):
            operator_service.assign_operator(cashier.id, sector_id=other.id, street_id=street.id)


class TestPricingAdministration:

    def test_profile_rules_and_simulation(self, db_session, sector):
        profile = pricing_service.create_profile({
            "sector_id": sector.id,
            "name": "Weekday",
            "active_from": (utcnow() - timedelta(hours=1)).isoformat() + "Z",
        })
        pricing_service.create_rule(profile.id, {
            "name": "First hour",
            "min_duration_minutes": 0,
            "max_duration_minutes": 60,
            "price_per_min": "50",
            "min_amount": "500",
        })
        pricing_service.create_discount_rule(profile.id, {
            "name": "Sunday",
            "kind": "percentage",
            "value": "10",
            "conditions": {"days_of_week": [0]},
        })

        loaded = pricing_service.get_profile(profile.id).to_dict(include_rules=True)
        assert loaded["rules"][0]["price_per_min"] == "50.00"
        assert loaded["discount_rules"][0]["kind"] == "PERCENTAGE"

        price = tariff_service.simulate(sector.id, 20, at=utcnow())
        assert price.gross == Decimal("1000.00")

    def test_profile_defaults_to_now(self, db_session, sector):
        profile = pricing_service.create_profile({"sector_id": sector.id, "name": "Now"})
        assert profile.active_from is not None
        assert profile.is_active is True

    def test_profile_window_validation(self, db_session, sector):
        with pytest.raises(ValidationError):
            pricing_service.create_profile({
                "sector_id": sector.id,
                "name": "Backwards",
                "active_from": "2026-02-01T00:00:00Z",
                "active_to": "2026-01-01T00:00:00Z",
            })

    def test_unknown_fields_rejected(self, db_session, sector):
        with pytest.raises(ValidationError):
            pricing_service.create_profile({"sector_id": sector.id, "name": "X", "id": 5})

    def test_profile_for_unknown_sector(self, db_session):
        with pytest.raises(NotFoundError):
            pricing_service.create_profile({"sector_id": 999999, "name": "Ghost"})

    @pytest.mark.parametrize("payload", [
        {"name": "No price"},
        {"name": "Range", "price_per_min": "10", "min_duration_minutes": 30, "max_duration_minutes": 10},
        {"name": "Base", "price_per_min": "10", "min_amount_is_base": True, "min_amount": "500"},
        {"name": "Float minutes", "price_per_min": "10", "min_duration_minutes": 1.5},
        {"name": "Negative", "price_per_min": "-10"},
    ])
    def test_invalid_rules(self, db_session, profile, payload):
        with pytest.raises(ValidationError):
            pricing_service.create_rule(profile.id, payload)

    @pytest.mark.parametrize("payload", [
        {"kind": "BOGO", "value": "10"},
        {"kind": "PERCENTAGE", "value": "150"},
        {"kind": "FIXED", "value": "100", "conditions": {"weather": "rain"}},
        {"kind": "FIXED", "value": "100", "conditions": {"days_of_week": [7]}},
    ])
    def test_invalid_discounts(self, db_session, profile, payload):
        with pytest.raises(ValidationError):
            pricing_service.create_discount_rule(profile.id, payload)

    def test_toggle_profile(self, db_session, sector, profile):
        pricing_service.set_profile_active(profile.id, is_active=False)
        assert pricing_service.get_profile(profile.id).is_active is False
        assert [p.id for p in pricing_service.list_profiles(sector.id)] == [profile.id]
