# Overview: Pytest coverage for the Flask CLI command groups.

from parkcore.models import Operator, PricingRule, Sector
from parkcore.services import debt_service, shift_service


class TestSystemCommands:

    def test_seed_demo_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()

        first = runner.invoke(args=["system", "seed-demo", "--sector", "Norte"])
        assert first.exit_code == 0
        assert "Created sector: Norte" in first.output

        second = runner.invoke(args=["system", "seed-demo", "--sector", "Norte"])
        assert second.exit_code == 0
        assert "Using existing sector: Norte" in second.output

        assert db_session.query(Sector).filter_by(name="Norte").count() == 1
        assert db_session.query(Operator).filter_by(name="Demo Operator").count() == 1
        assert db_session.query(PricingRule).count() == 2

    def test_init_db(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["system", "init-db"])
        assert result.exit_code == 0
        assert "Database tables created" in result.output


class TestInspectionCommands:

    def test_shifts_list_and_totals(self, app, db_session, operator, shift):
        runner = app.test_cli_runner()

        listed = runner.invoke(args=["shifts", "list", "--status", "OPEN"])
        assert listed.exit_code == 0
        assert "OPEN" in listed.output

        totals = runner.invoke(args=["shifts", "totals", str(shift.id)])
        assert totals.exit_code == 0
        assert "10000.00" in totals.output

    def test_shifts_list_empty(self, app, db_session):
        result = app.test_cli_runner().invoke(args=["shifts", "list"])
        assert "No shifts found" in result.output

    def test_debts_pending(self, app, db_session):
        debt_service.create_manual(plate="XY99", amount="1500", origin="FINE")
        result = app.test_cli_runner().invoke(args=["debts", "pending"])
        assert result.exit_code == 0
        assert "Pending debts: 1" in result.output
        assert "1500.00" in result.output

    def test_closed_shift_shows_over_short(self, app, db_session, shift):
        shift_service.close_shift(shift.id, declared_cash="9900")
        result = app.test_cli_runner().invoke(args=["shifts", "list", "--status", "CLOSED"])
        assert "-100.00" in result.output
