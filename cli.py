# Simple CLI for Portfolio Sync
import asyncio
import importlib
import json

import click

from app.main import ApplicationOrchestrator


def _load_login(path):
    """Instantiate a LoginAutomation from a 'module:attribute' path."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise click.BadParameter("expected 'module:attribute'", param_hint="--login")
    target = getattr(importlib.import_module(module_name), attr)
    return target() if isinstance(target, type) else target


def _echo_health(app):
    health = app.sync_service.get_session_health()
    click.echo(json.dumps({"session": health.to_dict()}, indent=2))


async def _with_app(job):
    app = ApplicationOrchestrator()
    await app.startup()
    try:
        return await job(app)
    finally:
        await app.shutdown()


@click.group()
def cli():
    """Portfolio Sync CLI"""
    pass


@cli.command("init-db")
def init_db():
    """Create database tables"""
    click.echo("Initializing database...")

    async def job(app):
        return None

    asyncio.run(_with_app(job))
    click.echo("Database ready")


@cli.command("sync-account")
@click.argument("account_id", type=int)
def sync_account(account_id):
    """Sync holdings, positions and margins for one account"""

    async def job(app):
        account = await app.repository.get_account(account_id)
        if account is None:
            click.echo(f"Account not found: {account_id}", err=True)
            raise click.exceptions.Exit(1)
        try:
            result = await app.sync_service.sync_account(account)
        except Exception as e:
            click.echo(json.dumps(app.sync_service.describe_sync_error(e, account.api_key), indent=2), err=True)
            raise click.exceptions.Exit(1)
        click.echo(f"Synced account {account_id}: "
                   f"{len(result.holdings)} holdings, {len(result.positions.get('net', []))} positions")
        _echo_health(app)

    asyncio.run(_with_app(job))


@cli.command("sync-all")
@click.option("--login", "login_path", default=None,
              help="LoginAutomation implementation as 'module:attribute'; omit to reuse stored request tokens")
def sync_all(login_path):
    """Sync every active account in turn"""
    login = _load_login(login_path) if login_path else None

    async def job(app):
        summary = await app.sync_all(login=login)
        click.echo(summary.message)
        for outcome in summary.results:
            click.echo(f"  [{outcome.status.value}] {outcome.account_name} ({outcome.account_id}): {outcome.message}")
        _echo_health(app)

    asyncio.run(_with_app(job))


if __name__ == "__main__":
    cli()
