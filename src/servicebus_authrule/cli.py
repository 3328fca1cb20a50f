"""Typer CLI for managing queue authorization rules."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from pathlib import Path
from typing import Any, TypeVar

import typer
from rich.console import Console
from rich.table import Table

from servicebus_authrule.config.loader import load_provider_config, load_rule_config
from servicebus_authrule.config.models import AuthorizationRuleConfig, ProviderConfig
from servicebus_authrule.errors import InvalidResourceIdError, ProviderError
from servicebus_authrule.factory import create_resource
from servicebus_authrule.observability.logging import configure_logging
from servicebus_authrule.resources.ids import parse_queue_authorization_rule_id
from servicebus_authrule.resources.queue_authorization_rule import (
    QueueAuthorizationRuleResource,
)
from servicebus_authrule.resources.state import (
    RIGHTS_FIELDS,
    SECRET_FIELDS,
    PlanAction,
    ResourceState,
    plan,
)
from servicebus_authrule.state.store import StateFileStore

console = Console()
app = typer.Typer(name="sbrule", help="Service Bus queue authorization rule CLI")

T = TypeVar("T")

DEFAULT_STATE = "sbrule.state.json"

_STATE_OPTION = typer.Option(DEFAULT_STATE, "--state", help="State file path")
_PROVIDER_OPTION = typer.Option(
    None, "--provider-config", help="Provider YAML (defaults + environment)"
)


def _load_provider(provider_config: str | None) -> ProviderConfig:
    try:
        provider = load_provider_config(
            Path(provider_config) if provider_config else None
        )
    except (OSError, ValueError, TypeError) as exc:
        console.print(f"[red]Provider config error:[/red] {exc}")
        raise typer.Exit(1) from exc
    configure_logging(provider.logging)
    return provider


def _load_rule(config_path: str) -> AuthorizationRuleConfig:
    path = Path(config_path)
    if not path.exists():
        console.print(f"[red]Config file not found: {path}[/red]")
        raise typer.Exit(1)
    try:
        return load_rule_config(path)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Validation error:[/red] {exc}")
        raise typer.Exit(1) from exc


def _load_state(store: StateFileStore) -> ResourceState:
    try:
        return store.load()
    except ValueError as exc:
        console.print(f"[red]State error:[/red] {exc}")
        raise typer.Exit(1) from exc


def _resource_for_state(
    provider: ProviderConfig, state: ResourceState
) -> QueueAuthorizationRuleResource:
    """Build a handler bound to the subscription the stored rule lives in."""
    assert state.id is not None
    try:
        subscription_id = parse_queue_authorization_rule_id(state.id).subscription_id
    except InvalidResourceIdError as exc:
        console.print(f"[red]State error:[/red] {exc}")
        raise typer.Exit(1) from exc
    if subscription_id == provider.azure.subscription_id:
        return create_resource(provider)
    azure = provider.azure.model_copy(update={"subscription_id": subscription_id})
    return create_resource(provider.model_copy(update={"azure": azure}))


def _run(
    store: StateFileStore, state: ResourceState, coro: Coroutine[Any, Any, T]
) -> T:
    """Run a handler coroutine, persisting *state* whatever the outcome."""
    try:
        return asyncio.run(coro)
    except ProviderError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc
    finally:
        store.save(state)


def _print_state(state: ResourceState, show_secrets: bool = False) -> None:
    if not state.exists:
        console.print("[yellow]No resource in state[/yellow]")
        return
    table = Table(title="Queue Authorization Rule")
    table.add_column("Attribute", style="cyan")
    table.add_column("Value")
    data = state.to_state_dict() if show_secrets else state.model_dump()
    for key, value in data.items():
        if key in SECRET_FIELDS and value is not None and not show_secrets:
            value = "(sensitive)"
        table.add_row(key, "" if value is None else str(value))
    console.print(table)


@app.command()
def validate(
    config_path: str = typer.Argument(..., help="Path to authorization rule YAML"),
    provider_config: str | None = _PROVIDER_OPTION,
) -> None:
    """Validate an authorization rule configuration file."""
    rule = _load_rule(config_path)
    provider = _load_provider(provider_config)
    rights = ", ".join(r.value for r in rule.rights)
    rule_id = rule.resource_id(provider.azure.subscription_id)
    console.print(f"[green]Valid:[/green] {rule_id}")
    console.print(f"  rights: {rights}")


@app.command("plan")
def plan_command(
    config_path: str = typer.Argument(..., help="Path to authorization rule YAML"),
    state_path: str = _STATE_OPTION,
    provider_config: str | None = _PROVIDER_OPTION,
) -> None:
    """Show the action needed to converge the stored state on the config."""
    rule = _load_rule(config_path)
    provider = _load_provider(provider_config)
    state = _load_state(StateFileStore(state_path))
    action = plan(state, rule, provider.azure.subscription_id)
    console.print(f"Plan: [bold]{action}[/bold]")
    if action == PlanAction.UPDATE:
        for name in RIGHTS_FIELDS:
            before, after = getattr(state, name), getattr(rule, name)
            if before != after:
                console.print(f"  {name}: {before} → {after}")


async def _converge(
    resource: QueueAuthorizationRuleResource,
    state: ResourceState,
    rule: AuthorizationRuleConfig,
    action: PlanAction,
    current: QueueAuthorizationRuleResource,
) -> None:
    if action == PlanAction.REPLACE:
        await current.delete(state)
        await resource.create(state, rule)
    elif action == PlanAction.CREATE:
        await resource.create(state, rule)
    elif action == PlanAction.UPDATE:
        await resource.update(state, rule)


@app.command()
def apply(
    config_path: str = typer.Argument(..., help="Path to authorization rule YAML"),
    state_path: str = _STATE_OPTION,
    provider_config: str | None = _PROVIDER_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Create, update or replace the rule to match the config."""
    rule = _load_rule(config_path)
    provider = _load_provider(provider_config)
    store = StateFileStore(state_path)
    state = _load_state(store)

    action = plan(state, rule, provider.azure.subscription_id)
    if action == PlanAction.NOOP:
        console.print("[green]No changes[/green]")
        return
    if action == PlanAction.REPLACE and not yes:
        confirm = typer.confirm(
            f"Replace {state.id}? The current rule is deleted first"
        )
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    resource = create_resource(provider)
    current = _resource_for_state(provider, state) if state.exists else resource
    _run(store, state, _converge(resource, state, rule, action, current))
    console.print(f"[green]Applied ({action}):[/green] {state.id}")


@app.command()
def refresh(
    state_path: str = _STATE_OPTION,
    provider_config: str | None = _PROVIDER_OPTION,
) -> None:
    """Re-read the rule and update the state file."""
    provider = _load_provider(provider_config)
    store = StateFileStore(state_path)
    state = _load_state(store)
    if not state.exists:
        console.print("[yellow]No resource in state[/yellow]")
        return

    previous_id = state.id
    resource = _resource_for_state(provider, state)
    _run(store, state, resource.read(state))
    if state.exists:
        console.print(f"[green]Refreshed:[/green] {state.id}")
    else:
        console.print(
            f"[yellow]Rule no longer exists, removed from state:[/yellow] "
            f"{previous_id}"
        )


@app.command("import")
def import_command(
    resource_id: str = typer.Argument(..., help="Resource ID of an existing rule"),
    state_path: str = _STATE_OPTION,
    provider_config: str | None = _PROVIDER_OPTION,
) -> None:
    """Adopt an existing rule into the state file."""
    provider = _load_provider(provider_config)
    store = StateFileStore(state_path)
    if _load_state(store).exists:
        console.print(f"[red]State file {store.path} already tracks a resource[/red]")
        raise typer.Exit(1)

    resource = create_resource(provider)
    try:
        state = asyncio.run(resource.import_rule(resource_id))
    except (ProviderError, ValueError) as exc:
        console.print(f"[red]Import failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    store.save(state)
    console.print(f"[green]Imported:[/green] {state.id}")


@app.command()
def destroy(
    state_path: str = _STATE_OPTION,
    provider_config: str | None = _PROVIDER_OPTION,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
) -> None:
    """Delete the rule tracked in the state file."""
    provider = _load_provider(provider_config)
    store = StateFileStore(state_path)
    state = _load_state(store)
    if not state.exists:
        console.print("[yellow]Nothing to destroy[/yellow]")
        return

    if not yes:
        confirm = typer.confirm(f"Delete {state.id}?")
        if not confirm:
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    deleted_id = state.id
    resource = _resource_for_state(provider, state)
    _run(store, state, resource.delete(state))
    console.print(f"[green]Deleted:[/green] {deleted_id}")


@app.command()
def show(
    state_path: str = _STATE_OPTION,
    show_secrets: bool = typer.Option(
        False, "--show-secrets", help="Print keys and connection strings"
    ),
) -> None:
    """Print the stored state."""
    _print_state(_load_state(StateFileStore(state_path)), show_secrets=show_secrets)
