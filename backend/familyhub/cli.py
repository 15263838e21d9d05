# Overview: Flask CLI command groups for bootstrap, inspection, and scheduled jobs.

# backend/familyhub/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email admin@familyhub.local --name Admin --password "Password123" --role ADMIN
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#   List all users with role and active status.
#
# Venues:
# - python -m flask venues create --owner-email vendor@familyhub.local --name "Kids Club"
#   Create a venue at the FREE tier.
# - python -m flask venues list
#
# Tariffs:
# - python -m flask tariffs sweep [--now 2026-05-01T00:00:00Z]
#   Run one tariff sweep and print the JSON summary. Exit code 1 if any venue failed.
# - python -m flask tariffs show 12
#   Print a venue's entitlement, status and tariff history.
# - python -m flask tariffs apply-payment 12 --tier SUPER --days 30
#   Apply a confirmed payment (extends or switches the paid period).
#
# Sessions:
# - python -m flask sessions cleanup
#   Delete expired sessions.

import json

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Venue, ROLES
from .services.auth_service import create_user, normalize_email, PasswordValidationError, UserExistsError
from .services import entitlement_store, session_service, tariff_service, venue_service
from .services.tariff_sweep_service import run_tariff_sweep
from .services.storage import StorageError
from .time_utils import parse_iso_datetime, to_utc_z
from .validation import ValidationError


def _parse_now(value):
    if not value:
        return None
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise click.BadParameter(f"'{value}' is not an ISO-8601 datetime", param_hint="--now")


@click.group('system')
def system_group():
    """System maintenance commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask users create' to add an admin.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', default=None, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), default='USER', show_default=True, help='Role')
@with_appcontext
def create_user_cli(email, name, password, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one letter
    - At least one digit
    """
    try:
        user = create_user(email=email, password=password, name=name, role=role)
        click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with role '{user.role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {str(e)}")
        click.echo("Requirements: 8+ chars, at least one letter and one digit")
    except (UserExistsError, ValueError) as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {str(e)}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<8} {'Active':<8} {'Name'}")
    click.echo("="*80)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<8} {active_str:<8} {user.name or ''}")

    click.echo("="*80 + "\n")


@click.group('venues')
def venues_group():
    """Venue bootstrap commands."""


@venues_group.command('create')
@click.option('--owner-email', default=None, help='Email of the owning vendor')
@click.option('--name', prompt=True, help='Venue name')
@with_appcontext
def create_venue_cli(owner_email, name):
    """Create a venue at the FREE tier (with its entitlement and first history entry)."""
    owner_id = None
    if owner_email:
        owner = db.session.query(User).filter_by(email=normalize_email(owner_email)).first()
        if not owner:
            click.echo(f"FAIL User '{owner_email}' not found")
            return
        owner_id = owner.id

    try:
        venue = venue_service.create_venue(name, owner_user_id=owner_id)
    except (ValueError, StorageError) as e:
        click.echo(f"FAIL Failed to create venue: {str(e)}")
        return

    click.echo(f"PASS Created venue: {venue.name} (ID: {venue.id}) at FREE tier")


@venues_group.command('list')
@with_appcontext
def list_venues():
    """List venues with their current tier."""
    venues = db.session.query(Venue).order_by(Venue.id).all()

    if not venues:
        click.echo("No venues found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<35} {'Owner':<7} {'Tier':<9} {'Expires'}")
    click.echo("="*80)

    for venue in venues:
        ent = venue.entitlement
        tier = ent.tier if ent else "-"
        expires = to_utc_z(ent.expires_at) if ent and ent.expires_at else "-"
        owner = venue.owner_user_id or "-"
        click.echo(f"{venue.id:<5} {venue.name:<35} {owner!s:<7} {tier:<9} {expires}")

    click.echo("="*80 + "\n")


@click.group('tariffs')
def tariffs_group():
    """Venue tariff lifecycle commands."""


@tariffs_group.command('sweep')
@click.option('--now', 'now_value', default=None, help='Evaluate as of this ISO-8601 time (default: current time)')
@with_appcontext
def sweep_cli(now_value):
    """
    Run one tariff sweep: renewals, grace periods, downgrades, counter resets.

    Safe to re-run; a second run at the same time changes nothing.
    """
    result = run_tariff_sweep(now=_parse_now(now_value))
    click.echo(json.dumps(result.to_dict(), indent=2))
    if result.errors:
        raise SystemExit(1)


@tariffs_group.command('show')
@click.argument('venue_id', type=int)
@with_appcontext
def show_tariff_cli(venue_id):
    """Print a venue's entitlement, status and history."""
    row = entitlement_store.get(venue_id)
    if row is None:
        click.echo(f"FAIL No entitlement for venue {venue_id}")
        return

    click.echo(json.dumps({
        "entitlement": row.to_dict(),
        "status": tariff_service.get_status(venue_id).to_dict(),
        "history": [entry.to_dict() for entry in entitlement_store.list_history(venue_id)],
    }, indent=2))


@tariffs_group.command('apply-payment')
@click.argument('venue_id', type=int)
@click.option('--tier', required=True, type=click.Choice(['SUPER', 'MAXIMUM']), help='Paid tier')
@click.option('--days', default=30, show_default=True, type=int, help='Paid duration in days')
@click.option('--price', 'price_cents', default=None, type=int, help='Price in kopecks (default: list price)')
@with_appcontext
def apply_payment_cli(venue_id, tier, days, price_cents):
    """Apply a confirmed payment to a venue."""
    try:
        row = tariff_service.apply_paid_period(venue_id, tier, days, price_cents)
    except (ValidationError, LookupError, StorageError) as e:
        click.echo(f"FAIL {str(e)}")
        return

    click.echo(f"PASS Venue {venue_id} is {row.tier} until {to_utc_z(row.expires_at)}")


@click.group('sessions')
def sessions_group():
    """Session maintenance commands."""


@sessions_group.command('cleanup')
@with_appcontext
def cleanup_sessions_cli():
    """Delete sessions whose refresh window has passed."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired session(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(venues_group)
    app.cli.add_command(tariffs_group)
    app.cli.add_command(sessions_group)
