#!/usr/bin/env python3
"""Runnable demo: create, widen and delete a queue authorization rule.

Prerequisites:
    az login                              # or AZURE_CLIENT_ID/SECRET/TENANT_ID
    export AZURE_SUBSCRIPTION_ID=...
    uv run python examples/queue_rule_demo.py <resource-group> <namespace> <queue>
"""

from __future__ import annotations

import asyncio
import sys

from rich.console import Console

from servicebus_authrule.config.loader import load_provider_config
from servicebus_authrule.config.models import AuthorizationRuleConfig
from servicebus_authrule.factory import create_resource
from servicebus_authrule.observability.logging import configure_logging
from servicebus_authrule.resources.state import ResourceState

console = Console()


def main(resource_group: str, namespace: str, queue: str) -> None:
    # 1. Provider config from defaults + environment
    provider = load_provider_config()
    configure_logging(provider.logging)
    resource = create_resource(provider)

    rule = AuthorizationRuleConfig(
        name="demo-listener",
        namespace_name=namespace,
        queue_name=queue,
        resource_group_name=resource_group,
        listen=True,
    )

    async def run() -> None:
        # 2. Create with Listen only
        state = await resource.create(ResourceState(), rule)
        console.print(f"[green]Created:[/green] {state.id}")
        console.print(f"  rights: listen={state.listen} send={state.send}")

        # 3. Widen to Listen + Send in place
        widened = rule.model_copy(update={"send": True})
        await resource.update(state, widened)
        console.print(f"  rights: listen={state.listen} send={state.send}")

        # 4. Delete and confirm the state is cleared
        await resource.delete(state)
        console.print(f"[green]Deleted[/green] (state exists: {state.exists})")

    asyncio.run(run())


if __name__ == "__main__":
    if len(sys.argv) != 4:
        console.print(__doc__)
        sys.exit(1)
    main(*sys.argv[1:])
