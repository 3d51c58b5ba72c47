# Overview: Flask CLI command groups for bootstrap, user management and offline sync.

# backend/fastbill/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users (each user is a tenant):
# - python -m flask users create --username shop --email shop@example.com --password "Password123!"
# - python -m flask users list
# - python -m flask users set-tier --username shop --tier PAID
#
# Offline sync:
# - python -m flask sync status --user shop
#   Show the pending queue of a user's till.
# - python -m flask sync drain --user shop
#   Try to commit every queued order now.
# - python -m flask sync discard --user shop --local-id 1717171717171
#   Drop a queued order that can never commit.
# - python -m flask sync watch [--interval 5] [--once]
#   Probe the database periodically; a reconnect drains every known till.

import time

import click
from flask import current_app
from flask.cli import with_appcontext
from sqlalchemy.exc import SQLAlchemyError

from .extensions import db
from .models import User
from .services.auth_service import create_user, PasswordValidationError
from .services import subscription_service
from .validation import ValidationError, ConflictError
from .decorators import TERMINALS_EXTENSION, CACHE_EXTENSION
from .offline.pending_store import storage_key


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables (use migrations for schema changes)."""
    db.create_all()
    click.echo("PASS Tables created")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA! Locally queued orders are not touched.
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', default='', help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_user_cli(username, email, password):
    """
    Create a new user (tenant) on the FREE tier trial.

    Password must be 8+ characters with upper, lower, digit and special char.
    """
    try:
        user = create_user(username=username, password=password, email=email or None)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user {user.username} (ID: {user.id}, tier: {user.subscription_tier})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with tier and catalog size."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Active':<8} {'Tier':<6} {'Products'}")
    click.echo("=" * 90)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.username:<20} {(user.email or '-'):<30} "
            f"{('yes' if user.is_active else 'no'):<8} {user.subscription_tier:<6} {user.product_count}"
        )
    click.echo("=" * 90 + "\n")


@users_group.command('set-tier')
@click.option('--username', required=True, help='Username')
@click.option('--tier', type=click.Choice(['FREE', 'PAID'], case_sensitive=False), required=True)
@with_appcontext
def set_tier_cli(username, tier):
    user = _require_user(username)
    cache = current_app.extensions[CACHE_EXTENSION]
    if tier.upper() == "FREE":
        subscription_service.revert_to_free_tier(user.id, cache)
    else:
        subscription_service.set_tier(user.id, tier, cache)
    click.echo(f"PASS {username} is now on the {tier.upper()} tier")


def _require_user(username: str) -> User:
    user = db.session.query(User).filter_by(username=username).first()
    if not user:
        raise click.ClickException(f"User '{username}' not found")
    return user


@click.group('sync')
def sync_group():
    """Offline order queue commands."""


@sync_group.command('status')
@click.option('--user', 'username', required=True, help='Username')
@with_appcontext
def sync_status(username):
    user = _require_user(username)
    terminal = current_app.extensions[TERMINALS_EXTENSION].open(user.id)
    status = terminal.status()

    click.echo(f"Sync status: {status['status']} ({status['pending_count']} pending)")
    for entry in status["pending"]:
        error = f"  last error: {entry['last_error']}" if entry["last_error"] else ""
        click.echo(
            f"  {entry['local_id']}  {entry['sync_state']:<10} attempts={entry['attempts']}"
            f"  total={entry['total_cents']}{error}"
        )


@sync_group.command('drain')
@click.option('--user', 'username', required=True, help='Username')
@with_appcontext
def sync_drain(username):
    user = _require_user(username)
    terminal = current_app.extensions[TERMINALS_EXTENSION].open(user.id)
    report = terminal.sync.drain()

    for local_id in report.committed:
        click.echo(f"PASS Synced order {local_id}")
    for local_id in report.failed:
        click.echo(f"FAIL Order {local_id}: {report.errors.get(local_id)}")
    click.echo(f"Status: {report.status}")


@sync_group.command('discard')
@click.option('--user', 'username', required=True, help='Username')
@click.option('--local-id', required=True, help='Local id of the queued order')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def sync_discard(username, local_id, yes):
    user = _require_user(username)
    terminal = current_app.extensions[TERMINALS_EXTENSION].open(user.id)
    if terminal.pending.get(local_id) is None:
        raise click.ClickException(f"No pending order {local_id}")
    if not yes:
        click.confirm(f"WARN Order {local_id} will never reach the database. Continue?", abort=True)
    terminal.discard_pending(local_id)
    click.echo(f"PASS Discarded order {local_id}")


def _tenants_with_queues(registry) -> list[int]:
    tenant_ids = set(registry.tenant_ids())
    try:
        user_ids = [user_id for (user_id,) in db.session.query(User.id).all()]
    except SQLAlchemyError:
        db.session.rollback()
        click.echo("WARN Database unreachable; watching open tills only")
        return sorted(tenant_ids)
    for user_id in user_ids:
        if registry.storage.get_item(storage_key(user_id)):
            tenant_ids.add(user_id)
    return sorted(tenant_ids)


@sync_group.command('watch')
@click.option('--interval', type=float, default=None, help='Seconds between probes')
@click.option('--once', is_flag=True, help='Probe once and exit')
@with_appcontext
def sync_watch(interval, once):
    """
    Probe the database on an interval. Every till with a local queue is
    opened first so a reconnect drains all of them.
    """
    registry = current_app.extensions[TERMINALS_EXTENSION]
    interval = interval or current_app.config["SYNC_INTERVAL_SECONDS"]
    monitor = registry.connectivity

    for tenant_id in _tenants_with_queues(registry):
        registry.open(tenant_id)

    # Start pessimistic so the first successful probe counts as a reconnect
    monitor.report(False)
    while True:
        online = monitor.check()
        click.echo(f"{'online' if online else 'offline'}; tills: "
                   + ", ".join(f"{t}={registry.get(t).sync.status}" for t in registry.tenant_ids()))
        if once:
            return
        time.sleep(interval)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sync_group)
