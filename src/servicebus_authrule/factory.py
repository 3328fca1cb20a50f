"""Factory functions that wire handlers to the management API."""

from __future__ import annotations

from typing import Any

from servicebus_authrule.config.models import ProviderConfig
from servicebus_authrule.resources.queue_authorization_rule import (
    ProviderContext,
    QueueAuthorizationRuleResource,
)
from servicebus_authrule.servicebus.api import NamespacesApi, ReplicationWaiter


def create_replication_waiter(
    config: ProviderConfig, api: NamespacesApi
) -> ReplicationWaiter:
    """Create the replication waiter selected by ``config.replication``."""
    from servicebus_authrule.servicebus.replication import (
        NoopReplicationWaiter,
        PairedNamespaceReplicationWaiter,
    )

    if not config.replication.enabled:
        return NoopReplicationWaiter()
    return PairedNamespaceReplicationWaiter(
        api, poll_interval=config.replication.poll_interval_seconds
    )


def create_resource(
    config: ProviderConfig, management_client: Any | None = None
) -> QueueAuthorizationRuleResource:
    """Create a queue authorization rule handler for the configured subscription.

    *management_client* defaults to a ``ServiceBusManagementClient`` built
    from ``config.azure``.
    """
    from servicebus_authrule.servicebus.client import (
        AzureServiceBusApi,
        create_management_client,
    )

    if management_client is None:
        management_client = create_management_client(config.azure)
    api = AzureServiceBusApi(management_client)
    context = ProviderContext(
        subscription_id=config.azure.subscription_id,
        timeouts=config.timeouts,
    )
    return QueueAuthorizationRuleResource(
        api=api,
        replication=create_replication_waiter(config, api),
        context=context,
    )
