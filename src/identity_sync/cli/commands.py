"""identity-sync CLI commands.

Commands:
    identity-sync apply <config.yaml>
    identity-sync status
    identity-sync destroy <name>
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import typer

from identity_sync.api import IdentityApiClient, IdentityApiSettings
from identity_sync.audit import ReconcileAuditLogger, configure_audit_logging
from identity_sync.config import get_settings
from identity_sync.errors import AuthenticationError, IdentitySyncError
from identity_sync.logs import configure_logging
from identity_sync.models.config import DesiredConfig
from identity_sync.models.entities import Account, Client
from identity_sync.reconcile import (
    AccountReconciler,
    ClientReconciler,
    ReconcileResult,
    adopt_ids,
    plan_account_create,
    plan_account_update,
    plan_create,
    plan_update,
)
from identity_sync.state import StateStore

logger = logging.getLogger(__name__)

ApiUrl = Annotated[
    Optional[str],
    typer.Option("--api-url", help="Identity API base URL"),
]
TokenUrl = Annotated[
    Optional[str],
    typer.Option("--token-url", help="Identity server issuing tokens"),
]
ClientId = Annotated[
    Optional[str],
    typer.Option("--client-id", help="Client ID used to authenticate"),
]
ClientSecret = Annotated[
    Optional[str],
    typer.Option("--client-secret", help="Client secret used to authenticate"),
]
StateFile = Annotated[
    Optional[Path],
    typer.Option("--state", "-s", help="State file (default: IDENTITY_SYNC_STATE_FILE)"),
]
Verbose = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable verbose output"),
]


def _setup(verbose: bool) -> ReconcileAuditLogger:
    """Configure logging and return the audit logger."""
    settings = get_settings()
    configure_logging(verbose)
    configure_audit_logging(
        log_level="DEBUG" if verbose else settings.log_level,
        json_format=settings.log_json,
        service_name=settings.service_name,
    )
    return ReconcileAuditLogger(enabled=settings.audit_enabled)


def _build_settings(
    api_url: str | None,
    token_url: str | None,
    client_id: str | None,
    client_secret: str | None,
) -> IdentityApiSettings:
    """Build settings from environment and CLI overrides."""
    return IdentityApiSettings().with_overrides(
        api_url=api_url,
        token_url=token_url,
        client_id=client_id,
        client_secret=client_secret,
    )


def _load_state(state_file: Path | None) -> StateStore:
    path = state_file or get_settings().state_file
    try:
        return StateStore.load(path)
    except (OSError, ValueError) as e:
        typer.secho(f"Error loading state: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _run(coro):
    """Run a coroutine, turning authentication failures into exit code 1."""
    try:
        return asyncio.run(coro)
    except AuthenticationError as e:
        typer.secho(f"Authentication failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _echo_result(result: ReconcileResult) -> None:
    if result.ok:
        typer.echo(result.summary())
    else:
        typer.secho(result.summary(), fg=typer.colors.RED)


def _plan_only(config: DesiredConfig, store: StateStore) -> bool:
    """Print the plans without touching the remote. Returns success."""
    ok = True
    for client_config in config.clients:
        desired = client_config.to_entity()
        previous = store.clients.get(desired.name)
        try:
            if previous is None:
                plan = plan_create(desired)
            else:
                plan = plan_update(previous, adopt_ids(previous, desired))
        except IdentitySyncError as e:
            typer.secho(f"Client {desired.name}: {e}", fg=typer.colors.RED)
            ok = False
            continue
        typer.echo(plan.summary())

    for account_config in config.accounts:
        desired = account_config.to_entity()
        previous = store.accounts.get(desired.username)
        try:
            if previous is None:
                plan = plan_account_create(desired)
            else:
                plan = plan_account_update(previous, desired)
        except IdentitySyncError as e:
            typer.secho(f"Account {desired.username}: {e}", fg=typer.colors.RED)
            ok = False
            continue
        typer.echo(plan.summary())

    return ok


async def _async_apply(
    settings: IdentityApiSettings,
    config: DesiredConfig,
    store: StateStore,
    audit: ReconcileAuditLogger,
) -> list[ReconcileResult]:
    """Reconcile every declared entity, recording outcomes in ``store``."""
    results: list[ReconcileResult] = []

    async with IdentityApiClient(settings) as api:
        await api.authenticate()
        clients = ClientReconciler(api, audit)
        accounts = AccountReconciler(api, audit)

        for client_config in config.clients:
            desired = client_config.to_entity()
            previous = store.clients.get(desired.name)
            if previous is None:
                result = await clients.create(desired)
            else:
                result = await clients.update(previous, adopt_ids(previous, desired))
            if result.entity is not None:
                store.record(result.entity)
            _echo_result(result)
            results.append(result)

        for account_config in config.accounts:
            desired = account_config.to_entity()
            previous = store.accounts.get(desired.username)
            if previous is None:
                result = await accounts.create(desired)
            else:
                result = await accounts.update(previous, desired)
            if result.entity is not None:
                store.record(result.entity)
            _echo_result(result)
            results.append(result)

    return results


def apply(
    config_path: Annotated[
        Path,
        typer.Argument(
            help="Path to the desired state YAML file",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    state_file: StateFile = None,
    dry_run: Annotated[
        bool,
        typer.Option(
            "--dry-run", "-n", help="Show what would be done without making changes"
        ),
    ] = False,
    api_url: ApiUrl = None,
    token_url: TokenUrl = None,
    client_id: ClientId = None,
    client_secret: ClientSecret = None,
    verbose: Verbose = False,
) -> None:
    """Create or update clients and accounts to match configuration.

    Entities not yet in the state file are created; tracked ones are
    updated. Running it twice in a row makes no further changes.

    Example:
        identity-sync apply identity.yaml --dry-run
    """
    audit = _setup(verbose)

    try:
        config = DesiredConfig.from_yaml(config_path)
    except (OSError, ValueError) as e:
        typer.secho(f"Error loading config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    store = _load_state(state_file)
    typer.echo(
        f"Config: {len(config.clients)} clients, {len(config.accounts)} accounts"
    )

    if dry_run:
        ok = _plan_only(config, store)
        typer.secho("\n[DRY RUN] No changes applied", fg=typer.colors.YELLOW)
        if not ok:
            raise typer.Exit(1)
        return

    settings = _build_settings(api_url, token_url, client_id, client_secret)
    typer.echo(f"Syncing to identity API: {settings.api_url}")

    # Entities recorded before an aborted run still exist remotely
    try:
        results = _run(_async_apply(settings, config, store, audit))
    finally:
        store.save()

    failed = [r for r in results if not r.ok]
    typer.echo(f"\n{len(results) - len(failed)} succeeded, {len(failed)} failed")
    if any(r.requires_operator for r in failed):
        typer.secho(
            "Some entities may be in a mixed state, inspect them before re-running",
            fg=typer.colors.YELLOW,
        )
    if failed:
        raise typer.Exit(1)


async def _async_status(
    settings: IdentityApiSettings,
    store: StateStore,
    audit: ReconcileAuditLogger,
) -> list[ReconcileResult]:
    results: list[ReconcileResult] = []
    async with IdentityApiClient(settings) as api:
        await api.authenticate()
        clients = ClientReconciler(api, audit)
        accounts = AccountReconciler(api, audit)
        for client in store.clients.values():
            results.append(await clients.read(client.id))
        for account in store.accounts.values():
            results.append(await accounts.read(account.username))
    return results


def _describe(entity: Client | Account) -> str:
    if isinstance(entity, Client):
        return (
            f"Client {entity.name} (id={entity.id}): "
            f"{len([u for u in entity.urls if not u.deleted])} urls, "
            f"{len([c for c in entity.claims if not c.deleted])} claims, "
            f"{len([s for s in entity.secrets if not s.deleted])} secrets"
        )
    state = "enabled" if entity.enabled else "disabled"
    return (
        f"Account {entity.username} (id={entity.id}): {state}, "
        f"role={entity.role or '-'}, {len(entity.properties)} properties"
    )


def status(
    state_file: StateFile = None,
    api_url: ApiUrl = None,
    token_url: TokenUrl = None,
    client_id: ClientId = None,
    client_secret: ClientSecret = None,
    verbose: Verbose = False,
) -> None:
    """Show the remote state of every tracked client and account."""
    audit = _setup(verbose)
    store = _load_state(state_file)

    if not store.clients and not store.accounts:
        typer.echo("Nothing tracked yet")
        return

    settings = _build_settings(api_url, token_url, client_id, client_secret)
    results = _run(_async_status(settings, store, audit))

    failed = False
    for result in results:
        if result.ok:
            typer.echo(_describe(result.entity))
        else:
            failed = True
            typer.secho(f"Error: {result.error}", fg=typer.colors.RED)
    if failed:
        raise typer.Exit(1)


async def _async_destroy(
    settings: IdentityApiSettings,
    entity: Client | Account,
    audit: ReconcileAuditLogger,
) -> ReconcileResult:
    async with IdentityApiClient(settings) as api:
        await api.authenticate()
        if isinstance(entity, Client):
            return await ClientReconciler(api, audit).delete(entity)
        return await AccountReconciler(api, audit).disable(entity)


def destroy(
    name: Annotated[str, typer.Argument(help="Client name or account username")],
    state_file: StateFile = None,
    api_url: ApiUrl = None,
    token_url: TokenUrl = None,
    client_id: ClientId = None,
    client_secret: ClientSecret = None,
    verbose: Verbose = False,
) -> None:
    """Delete a tracked client, or disable a tracked account.

    Accounts cannot be deleted remotely; disabling is the closest thing.
    """
    audit = _setup(verbose)
    store = _load_state(state_file)

    entity = store.lookup(name)
    if entity is None:
        typer.secho(f"Not tracked: {name}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    settings = _build_settings(api_url, token_url, client_id, client_secret)
    result = _run(_async_destroy(settings, entity, audit))

    if not result.ok:
        typer.secho(f"Error: {result.error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    store.forget(name)
    store.save()
    verb = "Deleted" if isinstance(entity, Client) else "Disabled"
    typer.secho(f"{verb} {name}", fg=typer.colors.GREEN)
