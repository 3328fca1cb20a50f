"""Lifecycle handlers for Service Bus queue authorization rules.

The provisioning engine drives these handlers; each one runs to completion
under the deadline configured for its operation and communicates the outcome
through the ``ResourceState`` it is given:

    absent -> create -> present -> (update -> present)* -> delete -> absent

``read`` also moves ``present -> absent`` when the rule was removed out of
band.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

import structlog

from servicebus_authrule.config.models import AuthorizationRuleConfig, TimeoutsConfig
from servicebus_authrule.errors import (
    ApiError,
    InvalidResourceIdError,
    OperationTimeoutError,
    ReplicationError,
    ReplicationTimeoutError,
    RequiresReplacementError,
    ResourceAlreadyExistsError,
    ResourceNotFoundError,
)
from servicebus_authrule.resources.ids import (
    QueueAuthorizationRuleId,
    parse_queue_authorization_rule_id,
)
from servicebus_authrule.resources.rights import flatten_rights
from servicebus_authrule.resources.state import (
    IMMUTABLE_FIELDS,
    ResourceState,
    changed_fields,
)
from servicebus_authrule.servicebus.api import AuthorizationRulesApi, ReplicationWaiter

logger = structlog.get_logger()

RESOURCE_TYPE = "servicebus_queue_authorization_rule"

# Slack left between the replication waiter's budget and the handler deadline.
REPLICATION_MARGIN_SECONDS = 5.0


@dataclass(frozen=True)
class ProviderContext:
    """Per-provider values every handler invocation needs."""

    subscription_id: str
    timeouts: TimeoutsConfig = field(default_factory=TimeoutsConfig)


class QueueAuthorizationRuleResource:
    """Create, read, update and delete a queue authorization rule."""

    def __init__(
        self,
        api: AuthorizationRulesApi,
        replication: ReplicationWaiter,
        context: ProviderContext,
    ) -> None:
        self._api = api
        self._replication = replication
        self._context = context

    # -- Lifecycle -------------------------------------------------------------

    async def create(
        self, state: ResourceState, desired: AuthorizationRuleConfig
    ) -> ResourceState:
        """Create the rule described by *desired* and record it in *state*.

        Raises:
            ResourceAlreadyExistsError: if the rule already exists; it must be
                imported instead.
        """
        rule_id = desired.resource_id(self._context.subscription_id)
        timeout = self._context.timeouts.create
        async with _deadline("creating", rule_id, timeout) as deadline:
            await self._check_not_exists(rule_id)
            await self._apply(state, rule_id, desired, deadline)
            await self._read(state, rule_id)
        logger.info("authorization_rule.created", resource_id=str(rule_id))
        return state

    async def update(
        self, state: ResourceState, desired: AuthorizationRuleConfig
    ) -> ResourceState:
        """Update the rights of an existing rule in place.

        Raises:
            RequiresReplacementError: if an identifying field changed.
        """
        current_id = _parse_state_id(state)
        changed = changed_fields(state, desired, IMMUTABLE_FIELDS)
        if changed:
            raise RequiresReplacementError(current_id.id(), changed)

        rule_id = desired.resource_id(self._context.subscription_id)
        if rule_id.id().lower() != current_id.id().lower():
            raise RequiresReplacementError(current_id.id(), ["subscription_id"])

        timeout = self._context.timeouts.update
        async with _deadline("updating", rule_id, timeout) as deadline:
            await self._apply(state, rule_id, desired, deadline)
            await self._read(state, rule_id)
        logger.info("authorization_rule.updated", resource_id=str(rule_id))
        return state

    async def read(self, state: ResourceState) -> ResourceState:
        """Refresh *state* from the API, clearing it if the rule is gone."""
        rule_id = _parse_state_id(state)
        self._check_subscription(rule_id)
        async with _deadline("reading", rule_id, self._context.timeouts.read):
            await self._read(state, rule_id)
        return state

    async def delete(self, state: ResourceState) -> ResourceState:
        rule_id = _parse_state_id(state)
        self._check_subscription(rule_id)
        timeout = self._context.timeouts.delete
        async with _deadline("deleting", rule_id, timeout) as deadline:
            try:
                await self._api.delete_rule(rule_id)
            except Exception as exc:
                raise ApiError(
                    f"deleting {rule_id}: {exc}", resource_id=str(rule_id)
                ) from exc
            await self._wait_for_replication(rule_id, deadline)
        state.clear()
        logger.info("authorization_rule.deleted", resource_id=str(rule_id))
        return state

    async def import_rule(self, resource_id: str) -> ResourceState:
        """Adopt an existing rule by its resource ID.

        Raises:
            InvalidResourceIdError: if *resource_id* is malformed or belongs
                to another subscription.
            ResourceNotFoundError: if no such rule exists.
        """
        rule_id = parse_queue_authorization_rule_id(resource_id)
        state = ResourceState(id=rule_id.id())
        await self.read(state)
        if not state.exists:
            raise ResourceNotFoundError(
                f"cannot import non-existent {rule_id}", resource_id=rule_id.id()
            )
        logger.info("authorization_rule.imported", resource_id=str(rule_id))
        return state

    # -- Internals -------------------------------------------------------------

    def _check_subscription(self, rule_id: QueueAuthorizationRuleId) -> None:
        expected = self._context.subscription_id
        if rule_id.subscription_id.lower() != expected.lower():
            msg = (
                f"{rule_id} belongs to subscription {rule_id.subscription_id!r}, "
                f"not the configured subscription {expected!r}"
            )
            raise InvalidResourceIdError(msg, resource_id=rule_id.id())

    async def _check_not_exists(self, rule_id: QueueAuthorizationRuleId) -> None:
        try:
            await self._api.get_rule(rule_id)
        except ResourceNotFoundError:
            return
        except Exception as exc:
            raise ApiError(
                f"checking for presence of existing {rule_id}: {exc}",
                resource_id=str(rule_id),
            ) from exc
        raise ResourceAlreadyExistsError(RESOURCE_TYPE, rule_id.id())

    async def _apply(
        self,
        state: ResourceState,
        rule_id: QueueAuthorizationRuleId,
        desired: AuthorizationRuleConfig,
        deadline: asyncio.Timeout,
    ) -> None:
        logger.info(
            "authorization_rule.submitting",
            resource_id=str(rule_id),
            rights=[r.value for r in desired.rights],
        )
        try:
            await self._api.create_or_update_rule(rule_id, desired.rights)
        except Exception as exc:
            raise ApiError(
                f"creating/updating {rule_id}: {exc}", resource_id=str(rule_id)
            ) from exc

        state.id = rule_id.id()
        await self._wait_for_replication(rule_id, deadline)

    async def _wait_for_replication(
        self, rule_id: QueueAuthorizationRuleId, deadline: asyncio.Timeout
    ) -> None:
        try:
            await self._replication.wait_for_replication(
                rule_id.resource_group,
                rule_id.namespace_name,
                _replication_budget(deadline),
            )
        except Exception as exc:
            error_cls = (
                ReplicationTimeoutError
                if isinstance(exc, ReplicationTimeoutError)
                else ReplicationError
            )
            raise error_cls(
                f"waiting for replication to complete for Service Bus Namespace "
                f"Disaster Recovery Configs (Namespace {rule_id.namespace_name!r} "
                f"/ Resource Group {rule_id.resource_group!r}) after changing "
                f"{rule_id}: {exc}",
                resource_id=str(rule_id),
            ) from exc

    async def _read(
        self, state: ResourceState, rule_id: QueueAuthorizationRuleId
    ) -> None:
        try:
            rule = await self._api.get_rule(rule_id)
        except ResourceNotFoundError:
            logger.warning(
                "authorization_rule.not_found_removing_from_state",
                resource_id=str(rule_id),
            )
            state.clear()
            return
        except Exception as exc:
            raise ApiError(
                f"retrieving {rule_id}: {exc}", resource_id=str(rule_id)
            ) from exc

        try:
            keys = await self._api.list_keys(rule_id)
        except Exception as exc:
            raise ApiError(
                f"listing keys for {rule_id}: {exc}", resource_id=str(rule_id)
            ) from exc

        state.id = rule_id.id()
        state.name = rule_id.authorization_rule_name
        state.queue_name = rule_id.queue_name
        state.namespace_name = rule_id.namespace_name
        state.resource_group_name = rule_id.resource_group

        state.listen, state.send, state.manage = flatten_rights(rule.rights)

        state.primary_key = keys.primary_key
        state.primary_connection_string = keys.primary_connection_string
        state.secondary_key = keys.secondary_key
        state.secondary_connection_string = keys.secondary_connection_string
        state.primary_connection_string_alias = keys.alias_primary_connection_string
        state.secondary_connection_string_alias = (
            keys.alias_secondary_connection_string
        )


def _replication_budget(deadline: asyncio.Timeout) -> float:
    """Time left for the replication wait, less the margin."""
    when = deadline.when()
    if when is None:
        return float("inf")
    remaining = when - asyncio.get_running_loop().time()
    return max(remaining - REPLICATION_MARGIN_SECONDS, 0.0)


def _parse_state_id(state: ResourceState) -> QueueAuthorizationRuleId:
    if state.id is None:
        msg = "resource state has no ID; the rule has not been created"
        raise ValueError(msg)
    return parse_queue_authorization_rule_id(state.id)


@asynccontextmanager
async def _deadline(
    operation: str, rule_id: QueueAuthorizationRuleId, seconds: float
) -> AsyncIterator[asyncio.Timeout]:
    """Bound a handler by its configured timeout."""
    try:
        async with asyncio.timeout(seconds) as deadline:
            yield deadline
    except TimeoutError as exc:
        raise OperationTimeoutError(
            f"timed out after {seconds:g}s {operation} {rule_id}",
            resource_id=str(rule_id),
        ) from exc
