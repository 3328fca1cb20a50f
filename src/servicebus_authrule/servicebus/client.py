"""Azure SDK adapter for the Service Bus management API."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from functools import partial
from typing import Any, TypeVar

from azure.core.exceptions import ResourceNotFoundError as AzureResourceNotFoundError

from servicebus_authrule.config.models import AzureCloud, AzureConfig
from servicebus_authrule.errors import ResourceNotFoundError
from servicebus_authrule.resources.ids import QueueAuthorizationRuleId
from servicebus_authrule.resources.rights import AccessRight
from servicebus_authrule.servicebus.api import (
    AccessKeys,
    AuthorizationRule,
    DisasterRecoveryConfig,
)

T = TypeVar("T")

_RESOURCE_MANAGER_ENDPOINTS = {
    AzureCloud.PUBLIC: "https://management.azure.com",
    AzureCloud.CHINA: "https://management.chinacloudapi.cn",
    AzureCloud.US_GOVERNMENT: "https://management.usgovcloudapi.net",
}


def create_management_client(config: AzureConfig) -> Any:
    """Build a ``ServiceBusManagementClient`` for the configured cloud."""
    from azure.identity import (
        AzureAuthorityHosts,
        ClientSecretCredential,
        DefaultAzureCredential,
    )
    from azure.mgmt.servicebus import ServiceBusManagementClient

    authority = {
        AzureCloud.PUBLIC: AzureAuthorityHosts.AZURE_PUBLIC_CLOUD,
        AzureCloud.CHINA: AzureAuthorityHosts.AZURE_CHINA,
        AzureCloud.US_GOVERNMENT: AzureAuthorityHosts.AZURE_GOVERNMENT,
    }[config.cloud]

    credential: Any
    if config.client_secret is not None:
        assert config.tenant_id is not None
        assert config.client_id is not None
        credential = ClientSecretCredential(
            tenant_id=config.tenant_id,
            client_id=config.client_id,
            client_secret=config.client_secret.get_secret_value(),
            authority=authority,
        )
    else:
        credential = DefaultAzureCredential(authority=authority)

    endpoint = _RESOURCE_MANAGER_ENDPOINTS[config.cloud]
    return ServiceBusManagementClient(
        credential=credential,
        subscription_id=config.subscription_id,
        base_url=endpoint,
        credential_scopes=[f"{endpoint}/.default"],
    )


def _rights_of(rule: Any) -> list[str]:
    return [str(getattr(r, "value", r)) for r in (rule.rights or [])]


class AzureServiceBusApi:
    """Async facade over the synchronous ``ServiceBusManagementClient``.

    Blocking SDK calls run on the loop's default executor. Azure's
    ``ResourceNotFoundError`` is translated into this package's
    ``ResourceNotFoundError``; every other SDK error propagates unchanged.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    async def _call(self, fn: Callable[..., T], /, *args: Any, **kwargs: Any) -> T:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(fn, *args, **kwargs))
        except AzureResourceNotFoundError as exc:
            raise ResourceNotFoundError(str(exc)) from exc

    # -- Authorization rules ---------------------------------------------------

    async def get_rule(self, rule_id: QueueAuthorizationRuleId) -> AuthorizationRule:
        rule = await self._call(
            self._client.queues.get_authorization_rule,
            resource_group_name=rule_id.resource_group,
            namespace_name=rule_id.namespace_name,
            queue_name=rule_id.queue_name,
            authorization_rule_name=rule_id.authorization_rule_name,
        )
        return AuthorizationRule(name=rule.name, rights=_rights_of(rule))

    async def create_or_update_rule(
        self, rule_id: QueueAuthorizationRuleId, rights: list[AccessRight]
    ) -> AuthorizationRule:
        from azure.mgmt.servicebus.models import SBAuthorizationRule

        parameters = SBAuthorizationRule(rights=[r.value for r in rights])
        rule = await self._call(
            self._client.queues.create_or_update_authorization_rule,
            resource_group_name=rule_id.resource_group,
            namespace_name=rule_id.namespace_name,
            queue_name=rule_id.queue_name,
            authorization_rule_name=rule_id.authorization_rule_name,
            parameters=parameters,
        )
        return AuthorizationRule(name=rule.name, rights=_rights_of(rule))

    async def delete_rule(self, rule_id: QueueAuthorizationRuleId) -> None:
        await self._call(
            self._client.queues.delete_authorization_rule,
            resource_group_name=rule_id.resource_group,
            namespace_name=rule_id.namespace_name,
            queue_name=rule_id.queue_name,
            authorization_rule_name=rule_id.authorization_rule_name,
        )

    async def list_keys(self, rule_id: QueueAuthorizationRuleId) -> AccessKeys:
        keys = await self._call(
            self._client.queues.list_keys,
            resource_group_name=rule_id.resource_group,
            namespace_name=rule_id.namespace_name,
            queue_name=rule_id.queue_name,
            authorization_rule_name=rule_id.authorization_rule_name,
        )
        return AccessKeys(
            primary_key=keys.primary_key,
            secondary_key=keys.secondary_key,
            primary_connection_string=keys.primary_connection_string,
            secondary_connection_string=keys.secondary_connection_string,
            alias_primary_connection_string=keys.alias_primary_connection_string,
            alias_secondary_connection_string=keys.alias_secondary_connection_string,
        )

    # -- Namespaces / disaster recovery ----------------------------------------

    async def get_namespace_sku(self, resource_group: str, namespace_name: str) -> str:
        namespace = await self._call(
            self._client.namespaces.get,
            resource_group_name=resource_group,
            namespace_name=namespace_name,
        )
        if namespace.sku is None:
            return ""
        return str(getattr(namespace.sku.name, "value", namespace.sku.name))

    async def list_disaster_recovery_configs(
        self, resource_group: str, namespace_name: str
    ) -> list[DisasterRecoveryConfig]:
        def _list() -> list[Any]:
            return list(
                self._client.disaster_recovery_configs.list(
                    resource_group_name=resource_group,
                    namespace_name=namespace_name,
                )
            )

        configs = await self._call(_list)
        return [_disaster_recovery_config(c) for c in configs]

    async def get_disaster_recovery_config(
        self, resource_group: str, namespace_name: str, alias: str
    ) -> DisasterRecoveryConfig:
        config = await self._call(
            self._client.disaster_recovery_configs.get,
            resource_group_name=resource_group,
            namespace_name=namespace_name,
            alias=alias,
        )
        return _disaster_recovery_config(config)


def _disaster_recovery_config(config: Any) -> DisasterRecoveryConfig:
    state = config.provisioning_state
    pending = config.pending_replication_operations_count
    if state is not None:
        state = str(getattr(state, "value", state))
    return DisasterRecoveryConfig(
        name=config.name,
        provisioning_state=state,
        pending_replication_operations_count=pending,
    )
