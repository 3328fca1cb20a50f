"""Management API protocols the resource handlers depend on."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from servicebus_authrule.resources.ids import QueueAuthorizationRuleId
from servicebus_authrule.resources.rights import AccessRight


@dataclass(frozen=True)
class AuthorizationRule:
    name: str
    rights: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AccessKeys:
    """Secret material returned by the list-keys call."""

    primary_key: str | None = None
    secondary_key: str | None = None
    primary_connection_string: str | None = None
    secondary_connection_string: str | None = None
    alias_primary_connection_string: str | None = None
    alias_secondary_connection_string: str | None = None


@dataclass(frozen=True)
class DisasterRecoveryConfig:
    """A geo disaster recovery alias pairing two namespaces."""

    name: str
    provisioning_state: str | None = None
    pending_replication_operations_count: int | None = None


@runtime_checkable
class AuthorizationRulesApi(Protocol):
    """Queue authorization rule operations.

    Every method raises ``ResourceNotFoundError`` when the rule is absent.
    """

    async def get_rule(self, rule_id: QueueAuthorizationRuleId) -> AuthorizationRule:
        ...

    async def create_or_update_rule(
        self, rule_id: QueueAuthorizationRuleId, rights: list[AccessRight]
    ) -> AuthorizationRule:
        ...

    async def delete_rule(self, rule_id: QueueAuthorizationRuleId) -> None:
        ...

    async def list_keys(self, rule_id: QueueAuthorizationRuleId) -> AccessKeys:
        ...


@runtime_checkable
class NamespacesApi(Protocol):
    """Namespace and disaster recovery lookups used by the replication wait."""

    async def get_namespace_sku(self, resource_group: str, namespace_name: str) -> str:
        ...

    async def list_disaster_recovery_configs(
        self, resource_group: str, namespace_name: str
    ) -> list[DisasterRecoveryConfig]:
        ...

    async def get_disaster_recovery_config(
        self, resource_group: str, namespace_name: str, alias: str
    ) -> DisasterRecoveryConfig:
        ...


@runtime_checkable
class ReplicationWaiter(Protocol):
    async def wait_for_replication(
        self, resource_group: str, namespace_name: str, timeout: float
    ) -> None:
        """Block until the namespace's paired replica caught up, or raise."""
        ...
