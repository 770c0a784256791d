# pbd/cli.py
# =============================================================================
# Operator CLI
#   flask donations poll            run one reconciliation batch (cron entry)
#   flask donations sync <id>       reconcile a single request
#   flask charities populate        warm the charity cache
#   flask charities sync <id>       refresh one charity
# =============================================================================

import json
import sys

import click
from flask import Flask
from flask.cli import AppGroup

from pbd.errors import DonationError
from pbd.gateways import gateways
from pbd.models import Platform
from pbd.services import CharityCache, ReconciliationPoller

donations_cli = AppGroup("donations", help="Donation request reconciliation.")
charities_cli = AppGroup("charities", help="Charity cache maintenance.")


@donations_cli.command("poll")
@click.option("--json", "as_json", is_flag=True, help="Print the run summary as JSON.")
def poll_cmd(as_json: bool) -> None:
    """Run one reconciliation batch over pending donation requests."""
    summary = ReconciliationPoller.from_app(gateways()).run(trigger="cli")
    if as_json:
        click.echo(json.dumps(summary.as_dict()))
        return
    click.secho(
        f"✅ checked={summary.checked} succeeded={summary.succeeded} reviewed={summary.reviewed} "
        f"timed_out={summary.timed_out} unchanged={summary.unchanged} skipped={summary.skipped}",
        fg="bright_green",
    )
    if summary.errors:
        click.secho(f"⚠️  {summary.errors} request(s) failed; they stay pending.", fg="yellow")


@donations_cli.command("sync")
@click.argument("request_id")
def sync_request_cmd(request_id: str) -> None:
    """Reconcile a single donation request now."""
    try:
        result = ReconciliationPoller.from_app(gateways()).reconcile_one(request_id)
    except DonationError as e:
        click.secho(f"❌ {e.message}", fg="red", bold=True)
        sys.exit(1)
    req = result["request"]
    click.echo(f"{req['referenceId']}: {req['status']} ({result['outcome']})")


@charities_cli.command("populate")
@click.option(
    "--mode",
    type=click.Choice(["essential", "full"]),
    default="essential",
    show_default=True,
    help="Essential syncs a handful of searches; full sweeps every category.",
)
def populate_cmd(mode: str) -> None:
    """Fill the charity cache from the processor."""
    summary = CharityCache.from_app(gateways()).populate(mode)
    click.secho(
        f"✅ Cached {summary.total} charities "
        f"(priority={summary.priority_synced}, search={summary.search_synced})",
        fg="bright_green",
    )
    for err in summary.errors:
        click.secho(f"  - {err}", fg="yellow")


@charities_cli.command("sync")
@click.argument("organization_id")
@click.option("--platform", default=Platform.JUSTGIVING, show_default=True)
def sync_charity_cmd(organization_id: str, platform: str) -> None:
    """Refresh one charity from the processor."""
    try:
        row = CharityCache.from_app(gateways()).force_sync(platform, organization_id)
    except DonationError as e:
        click.secho(f"❌ {e.message}", fg="red", bold=True)
        sys.exit(1)
    if row is None:
        click.secho(f"❌ Charity {organization_id} not found on {platform}", fg="red")
        sys.exit(1)
    click.echo(f"{row.organization_id}: {row.name} ({row.slug})")


def register_cli(app: Flask) -> None:
    app.cli.add_command(donations_cli)
    app.cli.add_command(charities_cli)
