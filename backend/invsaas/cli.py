# Overview: Flask CLI command groups for bootstrap, tenant management, and stock maintenance.

# backend/invsaas/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "invsaas:create_app" (PowerShell: $env:FLASK_APP="invsaas:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (idempotent). Use "flask db upgrade" for migrated deployments.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management (MULTI-TENANT):
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants create --id acme --name "Acme Corp"
#   Register a tenant id issued by the upstream identity service.
#
# Stock maintenance:
# - python -m flask stock adjust --tenant acme --sku TS-RED-M --quantity 5 [--decrease] --reason "Cycle count"
#   Apply a manual adjustment to one variant through the stock engine.
# - python -m flask stock audit --tenant acme [--sku TS-RED-M]
#   Reconcile every variant's ledger chain against its current stock.

import click
from flask.cli import with_appcontext

from .extensions import db
from .errors import InventoryError
from .models import Tenant, Variant
from .services import stock_service
from .services.tenant_service import create_tenant, require_tenant, scoped_query


CLI_ACTOR = "cli"


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("PASS Database initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the append-only stock ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<20} {'Name':<30} {'Active':<8} {'Variants'}")
    click.echo("="*70)

    for tenant in tenants:
        variant_count = scoped_query(Variant, tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<20} {tenant.name:<30} {active_str:<8} {variant_count}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--id', 'tenant_id', required=True, help='Upstream tenant identifier')
@click.option('--name', required=True, help='Tenant display name')
@with_appcontext
def create_tenant_cli(tenant_id, name):
    """Register a new tenant."""
    try:
        tenant = create_tenant(tenant_id, name)
    except InventoryError as e:
        click.echo(f"FAIL {e.message}")
        return

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id})")


@click.group('stock')
def stock_group():
    """Stock maintenance commands."""


@stock_group.command('adjust')
@click.option('--tenant', 'tenant_id', required=True, help='Tenant ID')
@click.option('--sku', required=True, help='Variant SKU')
@click.option('--quantity', type=int, required=True, help='Positive quantity to adjust by')
@click.option('--decrease', is_flag=True, help='Decrease stock instead of increasing it')
@click.option('--reason', default=None, help='Reason recorded on the movement')
@with_appcontext
def adjust_stock(tenant_id, sku, quantity, decrease, reason):
    """Apply a manual adjustment movement to one variant."""
    try:
        require_tenant(tenant_id)
        variant = stock_service.get_variant_by_sku(tenant_id, sku)
        variant, movement = stock_service.apply_movement(
            tenant_id=tenant_id,
            product_id=variant.product_id,
            variant_id=variant.id,
            movement_type="adjustment",
            quantity=quantity,
            direction=stock_service.DIRECTION_DECREASE if decrease else stock_service.DIRECTION_INCREASE,
            reason=reason or "CLI adjustment",
            performed_by=CLI_ACTOR,
        )
    except InventoryError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(
        f"PASS {variant.sku}: {movement.previous_stock} -> {movement.new_stock} "
        f"(movement {movement.id})"
    )


@stock_group.command('audit')
@click.option('--tenant', 'tenant_id', required=True, help='Tenant ID')
@click.option('--sku', default=None, help='Audit a single variant SKU')
@with_appcontext
def audit_stock(tenant_id, sku):
    """Verify ledger chains and cached stock for a tenant's variants."""
    try:
        require_tenant(tenant_id)
        if sku:
            variants = [stock_service.get_variant_by_sku(tenant_id, sku)]
        else:
            variants = scoped_query(Variant, tenant_id).order_by(Variant.id).all()
    except InventoryError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    failures = 0
    for variant in variants:
        report = stock_service.verify_variant_ledger(tenant_id, variant.id)
        if report["consistent"]:
            click.echo(f"PASS {report['sku']}: stock={report['stock']} movements={report['movement_count']}")
            continue
        failures += 1
        click.echo(f"FAIL {report['sku']}: stock={report['stock']} movements={report['movement_count']}")
        for problem in report["problems"]:
            click.echo(f"   - {problem['kind']} at movement {problem['movement_id']}")

    if failures:
        click.echo(f"\nFAIL {failures} of {len(variants)} variant ledgers are inconsistent")
        raise SystemExit(1)
    click.echo(f"\nPASS {len(variants)} variant ledgers verified")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)
    app.cli.add_command(stock_group)
