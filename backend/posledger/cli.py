# Overview: Flask CLI command groups for tenants, bridge tokens, fiscal queue and ledger maintenance.

# backend/posledger/cli.py
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
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
# - python -m flask orgs create --name "Acme Corp" --code "ACME" [--timezone Asia/Baku]
# - python -m flask orgs configure-printer --org-id 1 --provider omnitech --url http://192.168.1.50:8989 --username u --password p
#
# Fiscal printer bridge:
# - python -m flask bridge create-token --org-id 1 --name "Front desk PC"
#   Prints the plaintext token once; only its hash is stored.
# - python -m flask bridge list --org-id 1
# - python -m flask bridge revoke-token --token-id 3
#
# Fiscal queue:
# - python -m flask fiscal jobs --org-id 1 [--status failed] [--limit 20]
# - python -m flask fiscal reset-stuck [--org-id 1]
#   Return jobs stuck in processing to pending.
#
# Scheduled maintenance (cron):
# - python -m flask loyalty expire-points [--org-id 1]
# - python -m flask gift-cards expire [--org-id 1]
# - python -m flask maintenance purge-idempotency-keys

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Organization, FiscalPrinterConfig
from .services import (
    bridge_token_service,
    fiscal_job_service,
    gift_card_service,
    idempotency_service,
    loyalty_service,
)
from .services.bridge_token_service import BridgeTokenError
from .services.fiscal_job_service import FiscalJobError
from .services.fiscal_providers import get_provider, provider_names, UnsupportedProviderError
from .time_utils import to_utc_z


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


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
    click.echo("PASS Database reset complete")


@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Printer'}")
    click.echo("="*80)

    for org in orgs:
        config = db.session.query(FiscalPrinterConfig).filter_by(org_id=org.id).first()
        active_str = "Yes" if org.is_active else "No"
        printer = config.provider if config else "-"
        click.echo(f"{org.id:<5} {org.name:<30} {org.code or '-':<15} {active_str:<8} {printer}")

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--timezone', 'tz_name', default='Asia/Baku', show_default=True, help='Business timezone of fiscal devices')
@with_appcontext
def create_org_cli(name, code, tz_name):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, timezone=tz_name, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


@orgs_group.command('configure-printer')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--provider', required=True, help='Fiscal provider (caspos, omnitech)')
@click.option('--url', 'endpoint_url', help='Device endpoint reachable from the bridge')
@click.option('--username', help='Device username')
@click.option('--password', help='Device password')
@with_appcontext
def configure_printer_cli(org_id, provider, endpoint_url, username, password):
    """Create or update an organization's fiscal printer configuration."""
    try:
        get_provider(provider)
    except UnsupportedProviderError:
        click.echo(f"FAIL Unknown provider '{provider}'. Available: {', '.join(provider_names())}")
        return

    org = db.session.query(Organization).filter_by(id=org_id).first()
    if not org:
        click.echo(f"FAIL Organization {org_id} not found")
        return

    config = db.session.query(FiscalPrinterConfig).filter_by(org_id=org_id).first()
    if not config:
        config = FiscalPrinterConfig(org_id=org_id, provider=provider)
        db.session.add(config)
    config.provider = provider
    config.endpoint_url = endpoint_url or config.endpoint_url
    config.username = username or config.username
    config.password = password or config.password
    config.is_active = True
    db.session.commit()

    click.echo(f"PASS Fiscal printer for {org.name}: {config.provider} @ {config.endpoint_url or '-'}")


@click.group('bridge')
def bridge_group():
    """Fiscal printer bridge credentials."""


@bridge_group.command('create-token')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--name', required=True, help='Bridge name (e.g., the PC it runs on)')
@with_appcontext
def create_token_cli(org_id, name):
    """Issue a bridge token. The plaintext is shown only once."""
    try:
        record, plaintext = bridge_token_service.create_token(org_id, name)
    except BridgeTokenError as e:
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created bridge token {record.id} for org {org_id}")
    click.echo(f"   Token: {plaintext}")
    click.echo("   Store it now; it cannot be shown again.")


@bridge_group.command('list')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def list_tokens_cli(org_id):
    """List bridge tokens and when each bridge was last seen."""
    tokens = bridge_token_service.list_tokens(org_id)
    if not tokens:
        click.echo("No bridge tokens found.")
        return

    for token in tokens:
        click.echo(
            f"{token.id:<5} {token.name:<30} {token.status:<8} "
            f"v{token.bridge_version or '-':<10} last seen {to_utc_z(token.last_seen_at) or 'never'}"
        )


@bridge_group.command('revoke-token')
@click.option('--token-id', type=int, required=True, help='Bridge token ID')
@with_appcontext
def revoke_token_cli(token_id):
    """Revoke a bridge token; the bridge is rejected on its next request."""
    try:
        record = bridge_token_service.revoke_token(token_id)
    except BridgeTokenError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Revoked bridge token {record.id} ({record.name})")


@click.group('fiscal')
def fiscal_group():
    """Fiscal job queue inspection and repair."""


@fiscal_group.command('jobs')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@click.option('--status', help='pending, processing, completed, failed')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_jobs_cli(org_id, status, limit):
    """List recent fiscal jobs with their retry state."""
    try:
        jobs = fiscal_job_service.list_jobs(org_id, status=status, limit=limit)
    except FiscalJobError as e:
        click.echo(f"FAIL {e}")
        return

    stats = fiscal_job_service.job_stats(org_id)
    click.echo("  ".join(f"{k}={v}" for k, v in stats.items()))

    for job in jobs:
        ref = f"sale {job.sale_id}" if job.sale_id else (f"return {job.return_id}" if job.return_id else "-")
        click.echo(
            f"{job.id:<6} {job.operation_type:<16} {job.status:<11} {ref:<14} "
            f"retries={job.retry_count} next={to_utc_z(job.next_retry_at) or '-'} "
            f"{job.error_message or ''}"
        )


@fiscal_group.command('reset-stuck')
@click.option('--org-id', type=int, help='Limit to one organization')
@with_appcontext
def reset_stuck_cli(org_id):
    """Return jobs stuck in processing to pending."""
    count = fiscal_job_service.reset_stuck_jobs(org_id)
    click.echo(f"PASS Reset {count} stuck job(s)")


@click.group('loyalty')
def loyalty_group():
    """Loyalty points maintenance."""


@loyalty_group.command('expire-points')
@click.option('--org-id', type=int, help='Limit to one organization')
@with_appcontext
def expire_points_cli(org_id):
    """Expire earned points past their expiry date."""
    count = loyalty_service.expire_points(org_id)
    click.echo(f"PASS Wrote {count} expiry transaction(s)")


@click.group('gift-cards')
def gift_cards_group():
    """Gift card maintenance."""


@gift_cards_group.command('expire')
@click.option('--org-id', type=int, help='Limit to one organization')
@with_appcontext
def expire_gift_cards_cli(org_id):
    """Expire active gift cards past their expiry date."""
    count = gift_card_service.expire_due_cards(org_id)
    click.echo(f"PASS Expired {count} gift card(s)")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('purge-idempotency-keys')
@with_appcontext
def purge_idempotency_keys_cli():
    """Delete expired idempotency keys."""
    count = idempotency_service.purge_expired()
    click.echo(f"PASS Deleted {count} expired key(s)")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(bridge_group)
    app.cli.add_command(fiscal_group)
    app.cli.add_command(loyalty_group)
    app.cli.add_command(gift_cards_group)
    app.cli.add_command(maintenance_group)
