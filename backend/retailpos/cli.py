# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/retailpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --email admin@retailpos.local --first-name Ada --last-name Admin
#   Create tables and a first approved ADMIN (prompts for the password). Idempotent.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list [--status VERIFIED] [--role STAFF]
#   List users with role, status and active flag.
# - python -m flask users create --email m@retailpos.local --role MANAGER
#   Create an approved, verified user (prompts if options are omitted).
# - python -m flask users approve m@retailpos.local
#   Approve a VERIFIED user.
# - python -m flask users set-role m@retailpos.local STAFF
#   Change a user's role.
# - python -m flask users migrate-legacy-roles --dry-run
#   Rewrite stored legacy role values (EMPLOYEE -> STAFF).
#
# Maintenance:
# - python -m flask maintenance cleanup-sessions --retention-days 30
#   Delete expired/revoked sessions older than the retention window.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services.access_service import Role, UserStatus, StatusTransitionError, parse_role, transition_status
from .services.auth_service import AuthError, PasswordValidationError, create_user, get_user_by_email
from .services.session_service import cleanup_expired_sessions


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--email', prompt=True, help='Admin email address')
@click.option('--first-name', prompt=True, help='Admin first name')
@click.option('--last-name', prompt=True, help='Admin last name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
@with_appcontext
def init_system(email, first_name, last_name, password):
    """
    Create the schema and bootstrap the first administrator.

    Skips user creation when an approved ADMIN already exists.

    SECURITY: The bootstrap admin skips email verification.
    """
    click.echo("START Initializing RetailPOS...")
    db.create_all()
    click.echo("PASS Tables ready")

    existing_admin = db.session.query(User).filter(
        User.role == Role.ADMIN.value,
        User.status == UserStatus.APPROVED.value,
    ).first()
    if existing_admin:
        click.echo(f"PASS Using existing admin: {existing_admin.email} (ID: {existing_admin.id})")
        return

    try:
        user = create_user(email, password, first_name, last_name, role=Role.ADMIN.value)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except AuthError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--status', type=click.Choice([s.value for s in UserStatus], case_sensitive=False))
@click.option('--role', 'role_name', help='Filter by stored role value')
@with_appcontext
def list_users(status, role_name):
    """List all users with role and status."""
    query = db.session.query(User)
    if status:
        query = query.filter(User.status == status.upper())
    if role_name:
        query = query.filter(User.role == role_name.upper())

    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Role':<10} {'Status':<11} {'Active':<8} {'Verified'}")
    click.echo("=" * 90)

    for user in users:
        active_str = "Yes" if user.is_active else "No"
        verified_str = "Yes" if user.email_verified else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.role:<10} {user.status:<11} {active_str:<8} {verified_str}")

    click.echo("=" * 90 + "\n")


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([r.value for r in Role], case_sensitive=False), prompt=True, help='Role')
@with_appcontext
def create_user_cli(email, first_name, last_name, password, role):
    """
    Create an approved, verified user.

    Password must meet the strength policy (12+ chars, upper, lower, digit,
    special char, no common words).
    """
    try:
        user = create_user(email, password, first_name, last_name, role=role.upper())
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")
    except AuthError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS Created user: {user.email} with role '{user.role}' (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('approve')
@click.argument('email')
@with_appcontext
def approve_user_cli(email):
    """Approve a VERIFIED user."""
    user = get_user_by_email(email)
    if not user:
        raise click.ClickException(f"User {email} not found")

    try:
        transition_status(user, UserStatus.APPROVED)
    except StatusTransitionError as e:
        raise click.ClickException(str(e))

    db.session.commit()
    click.echo(f"PASS Approved {user.email}")


@users_group.command('set-role')
@click.argument('email')
@click.argument('role', type=click.Choice([r.value for r in Role], case_sensitive=False))
@with_appcontext
def set_role_cli(email, role):
    """Change a user's role."""
    user = get_user_by_email(email)
    if not user:
        raise click.ClickException(f"User {email} not found")

    previous = user.role
    user.role = role.upper()
    db.session.commit()
    click.echo(f"PASS {user.email}: {previous} -> {user.role}")


@users_group.command('migrate-legacy-roles')
@click.option('--dry-run', is_flag=True, help='Report without writing')
@with_appcontext
def migrate_legacy_roles(dry_run):
    """
    Rewrite stored role values that are not current roles.

    Legacy aliases (EMPLOYEE) map to their replacement (STAFF). Values that
    map to nothing are reported and left alone; the access gate denies them.
    """
    valid = {r.value for r in Role}
    candidates = db.session.query(User).filter(User.role.notin_(valid)).all()

    if not candidates:
        click.echo("PASS No legacy roles found.")
        return

    migrated = 0
    for user in candidates:
        target = parse_role(user.role)
        if target is None:
            click.echo(f"WARN  {user.email}: unknown role {user.role!r} left unchanged")
            continue
        click.echo(f"{'WOULD MIGRATE' if dry_run else 'MIGRATE'} {user.email}: {user.role} -> {target.value}")
        if not dry_run:
            user.role = target.value
        migrated += 1

    if dry_run:
        click.echo(f"DRY RUN {migrated} user(s) would be migrated.")
        return

    db.session.commit()
    current_app.logger.info("Migrated %s legacy role value(s)", migrated)
    click.echo(f"PASS Migrated {migrated} user(s).")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('cleanup-sessions')
@click.option('--retention-days', type=int, default=30, show_default=True)
@with_appcontext
def cleanup_sessions_cli(retention_days):
    """Delete expired or revoked sessions older than the retention window."""
    deleted = cleanup_expired_sessions(retention_days=retention_days)
    click.echo(f"Deleted {deleted} sessions older than {retention_days} days.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
