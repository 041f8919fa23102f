# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/parkcore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (dev/test; production uses `flask db upgrade`).
# - python -m flask system seed-demo
#   Idempotent demo data: sector, street, operator, assignment, pricing profile and rule.
#
# Shift inspection:
# - python -m flask shifts list --status OPEN --limit 20
#   List recent shifts with optional filters.
# - python -m flask shifts totals 3
#   Print the computed cash totals of a shift.
#
# Debt inspection:
# - python -m flask debts pending
#   Summarize pending debts by origin.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Operator, OperatorAssignment, PricingProfile, PricingRule, Sector, Street
from .services import debt_service, shift_service
from .time_utils import utcnow


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command('seed-demo')
@click.option('--sector', 'sector_name', default='Centro', help='Sector name')
@click.option('--operator', 'operator_name', default='Demo Operator', help='Operator name')
@with_appcontext
def seed_demo(sector_name, operator_name):
    """
    Seed a minimal working configuration.

    Creates (if missing):
    - Sector with one street
    - Operator assigned to the sector
    - Active pricing profile with a "0-60 min @ 50/min, min 500" rule
      and an open-ended "60+ min @ 40/min, daily max 8000" rule
    """
    now = utcnow()

    sector = db.session.query(Sector).filter_by(name=sector_name).first()
    if not sector:
        sector = Sector(name=sector_name)
        db.session.add(sector)
        db.session.flush()
        db.session.add(Street(sector_id=sector.id, name="Main Street"))
        click.echo(f"PASS Created sector: {sector.name} (ID: {sector.id})")
    else:
        click.echo(f"PASS Using existing sector: {sector.name} (ID: {sector.id})")

    operator = db.session.query(Operator).filter_by(name=operator_name).first()
    if not operator:
        operator = Operator(name=operator_name, status="ACTIVE")
        db.session.add(operator)
        db.session.flush()
        db.session.add(OperatorAssignment(operator_id=operator.id, sector_id=sector.id, valid_from=now))
        click.echo(f"PASS Created operator: {operator.name} (ID: {operator.id})")
    else:
        click.echo(f"PASS Using existing operator: {operator.name} (ID: {operator.id})")

    profile = db.session.query(PricingProfile).filter_by(sector_id=sector.id).first()
    if not profile:
        profile = PricingProfile(sector_id=sector.id, name="Default", is_active=True, active_from=now)
        db.session.add(profile)
        db.session.flush()
        db.session.add_all([
            PricingRule(
                profile_id=profile.id, name="First hour", min_duration_minutes=0, max_duration_minutes=60,
                price_per_min=50, min_amount=500, priority=1,
            ),
            PricingRule(
                profile_id=profile.id, name="Long stay", min_duration_minutes=61, max_duration_minutes=None,
                price_per_min=40, daily_max_amount=8000, priority=2,
            ),
        ])
        click.echo(f"PASS Created pricing profile: {profile.name} (ID: {profile.id})")
    else:
        click.echo(f"PASS Using existing pricing profile: {profile.name} (ID: {profile.id})")

    db.session.commit()
    click.echo("\nPASS Demo data ready")


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--status', type=click.Choice(['OPEN', 'CLOSED', 'CANCELED']), help='Filter by status')
@click.option('--operator-id', type=int, help='Filter by operator ID')
@click.option('--limit', type=int, default=20, help='Max shifts to show')
@with_appcontext
def list_shifts_cli(status, operator_id, limit):
    """
    List recent shifts.

    Example:
        flask shifts list
        flask shifts list --status OPEN
    """
    shifts = shift_service.list_shifts(status=status, operator_id=operator_id, limit=limit)
    if not shifts:
        click.echo("No shifts found")
        return

    click.echo(f"\n{'ID':<6} {'Operator':<10} {'Device':<12} {'Status':<10} {'Opened':<22} {'Over/Short':>12}")
    click.echo("-" * 76)
    for s in shifts:
        over_short = str(s.cash_over_short) if s.cash_over_short is not None else "-"
        click.echo(
            f"{s.id:<6} {s.operator_id:<10} {(s.device_id or '-'):<12} {s.status:<10} "
            f"{s.opened_at.strftime('%Y-%m-%d %H:%M:%S'):<22} {over_short:>12}"
        )


@shifts_group.command('totals')
@click.argument('shift_id', type=int)
@with_appcontext
def shift_totals_cli(shift_id):
    """Print the computed cash totals of a shift."""
    totals = shift_service.compute_totals(shift_id).to_dict()
    for key in (
        "opening_float", "cash_collected", "cash_withdrawals", "cash_deposits",
        "cash_expected", "cash_declared", "cash_over_short", "tickets_count", "sales_total",
    ):
        value = totals[key]
        click.echo(f"{key:<18} {value if value is not None else '-'}")
    for m in totals["payments_by_method"]:
        click.echo(f"  {m['method']:<16} {m['collected']:>12} ({m['count']})")


@click.group('debts')
def debts_group():
    """Debt inspection commands."""


@debts_group.command('pending')
@with_appcontext
def pending_debts_cli():
    """Summarize pending debts."""
    summary = debt_service.pending_summary()
    click.echo(f"Pending debts: {summary['total_debts']}  Total: {summary['total_amount']}")
    for origin, bucket in summary["by_origin"].items():
        click.echo(f"  {origin:<10} {bucket['count']:>5} {bucket['total']:>14}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shifts_group)
    app.cli.add_command(debts_group)
