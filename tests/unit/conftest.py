"""Shared fixtures: an in-memory management API and handler wiring."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field

import pytest
import structlog

from servicebus_authrule.config.models import AuthorizationRuleConfig, TimeoutsConfig
from servicebus_authrule.errors import ResourceNotFoundError
from servicebus_authrule.resources.ids import QueueAuthorizationRuleId
from servicebus_authrule.resources.queue_authorization_rule import (
    ProviderContext,
    QueueAuthorizationRuleResource,
)
from servicebus_authrule.resources.rights import AccessRight
from servicebus_authrule.servicebus.api import AccessKeys, AuthorizationRule

SUBSCRIPTION_ID = "sub1"


class FakeAuthorizationRulesApi:
    """Stores rules in a dict and records every call made against it.

    Set ``fail[<method>]`` to an exception to make that method raise it.
    """

    def __init__(self) -> None:
        self.rules: dict[str, list[str]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail: dict[str, Exception] = {}

    def _record(self, method: str, rule_id: QueueAuthorizationRuleId) -> None:
        self.calls.append((method, rule_id.id()))
        if method in self.fail:
            raise self.fail[method]

    def _lookup(self, rule_id: QueueAuthorizationRuleId) -> list[str]:
        try:
            return self.rules[rule_id.id()]
        except KeyError:
            raise ResourceNotFoundError(f"{rule_id} not found") from None

    @property
    def mutating_calls(self) -> list[tuple[str, str]]:
        mutating = ("create_or_update_rule", "delete_rule")
        return [c for c in self.calls if c[0] in mutating]

    async def get_rule(self, rule_id: QueueAuthorizationRuleId) -> AuthorizationRule:
        self._record("get_rule", rule_id)
        return AuthorizationRule(
            name=rule_id.authorization_rule_name, rights=list(self._lookup(rule_id))
        )

    async def create_or_update_rule(
        self, rule_id: QueueAuthorizationRuleId, rights: list[AccessRight]
    ) -> AuthorizationRule:
        self._record("create_or_update_rule", rule_id)
        self.rules[rule_id.id()] = [r.value for r in rights]
        return AuthorizationRule(
            name=rule_id.authorization_rule_name, rights=self.rules[rule_id.id()]
        )

    async def delete_rule(self, rule_id: QueueAuthorizationRuleId) -> None:
        self._record("delete_rule", rule_id)
        self._lookup(rule_id)
        del self.rules[rule_id.id()]

    async def list_keys(self, rule_id: QueueAuthorizationRuleId) -> AccessKeys:
        self._record("list_keys", rule_id)
        self._lookup(rule_id)
        name = rule_id.authorization_rule_name
        endpoint = (
            f"Endpoint=sb://{rule_id.namespace_name}.servicebus.windows.net/"
            f";SharedAccessKeyName={name}"
        )
        return AccessKeys(
            primary_key=f"{name}-primary",
            secondary_key=f"{name}-secondary",
            primary_connection_string=f"{endpoint};SharedAccessKey={name}-primary",
            secondary_connection_string=f"{endpoint};SharedAccessKey={name}-secondary",
        )


@dataclass
class RecordingReplicationWaiter:
    calls: list[tuple[str, str, float]] = field(default_factory=list)
    error: Exception | None = None

    async def wait_for_replication(
        self, resource_group: str, namespace_name: str, timeout: float
    ) -> None:
        self.calls.append((resource_group, namespace_name, timeout))
        if self.error is not None:
            raise self.error


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


@pytest.fixture
def api() -> FakeAuthorizationRulesApi:
    return FakeAuthorizationRulesApi()


@pytest.fixture
def replication() -> RecordingReplicationWaiter:
    return RecordingReplicationWaiter()


@pytest.fixture
def timeouts() -> TimeoutsConfig:
    return TimeoutsConfig(create=60, read=10, update=45, delete=30)


@pytest.fixture
def resource(
    api: FakeAuthorizationRulesApi,
    replication: RecordingReplicationWaiter,
    timeouts: TimeoutsConfig,
) -> QueueAuthorizationRuleResource:
    context = ProviderContext(subscription_id=SUBSCRIPTION_ID, timeouts=timeouts)
    return QueueAuthorizationRuleResource(api, replication, context)


@pytest.fixture
def rule() -> AuthorizationRuleConfig:
    return AuthorizationRuleConfig(
        name="rule1",
        namespace_name="ns1-primary",
        queue_name="q1",
        resource_group_name="rg1",
        listen=True,
    )
