"""Wait for geo disaster recovery replication to a paired namespace.

Only Premium namespaces can be paired. A namespace with exactly one disaster
recovery alias replicates entity changes (queues, authorization rules) to its
secondary asynchronously; the alias reports ``Accepted`` while replication is
in flight and ``Succeeded`` once the secondary has caught up.
"""

from __future__ import annotations

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_before_delay,
    wait_fixed,
)

from servicebus_authrule.errors import (
    ReplicationError,
    ReplicationTimeoutError,
)
from servicebus_authrule.servicebus.api import DisasterRecoveryConfig, NamespacesApi

logger = structlog.get_logger()

PREMIUM_SKU = "Premium"
STATE_ACCEPTED = "Accepted"
STATE_SUCCEEDED = "Succeeded"
STATE_FAILED = "Failed"


class _ReplicationPending(Exception):
    """Internal signal that the alias has not finished replicating yet."""


class PairedNamespaceReplicationWaiter:
    """Polls a namespace's disaster recovery alias until replication completes."""

    def __init__(self, api: NamespacesApi, poll_interval: float = 30.0) -> None:
        self._api = api
        self._poll_interval = poll_interval

    async def wait_for_replication(
        self, resource_group: str, namespace_name: str, timeout: float
    ) -> None:
        try:
            sku = await self._api.get_namespace_sku(resource_group, namespace_name)
        except Exception as exc:
            msg = (
                f"retrieving Service Bus Namespace {namespace_name!r} "
                f"(Resource Group {resource_group!r}): {exc}"
            )
            raise ReplicationError(msg) from exc

        if (sku or "").lower() != PREMIUM_SKU.lower():
            return

        try:
            configs = await self._api.list_disaster_recovery_configs(
                resource_group, namespace_name
            )
        except Exception as exc:
            msg = (
                f"listing Disaster Recovery Configs for Service Bus Namespace "
                f"{namespace_name!r} (Resource Group {resource_group!r}): {exc}"
            )
            raise ReplicationError(msg) from exc

        if len(configs) != 1:
            return

        alias = configs[0].name
        logger.info(
            "replication.waiting",
            resource_group=resource_group,
            namespace=namespace_name,
            alias=alias,
            timeout_seconds=timeout,
        )

        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_ReplicationPending),
            stop=stop_before_delay(timeout),
            wait=wait_fixed(self._poll_interval),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._check_alias(resource_group, namespace_name, alias)
        except _ReplicationPending as exc:
            msg = (
                f"timed out after {timeout:g}s waiting for replication of "
                f"Disaster Recovery Config {alias!r} (Namespace {namespace_name!r} "
                f"/ Resource Group {resource_group!r}): {exc}"
            )
            raise ReplicationTimeoutError(msg) from exc

        logger.info(
            "replication.completed",
            resource_group=resource_group,
            namespace=namespace_name,
            alias=alias,
        )

    async def _check_alias(
        self, resource_group: str, namespace_name: str, alias: str
    ) -> None:
        try:
            config = await self._api.get_disaster_recovery_config(
                resource_group, namespace_name, alias
            )
        except Exception as exc:
            msg = (
                f"reading Disaster Recovery Config {alias!r} (Namespace "
                f"{namespace_name!r} / Resource Group {resource_group!r}): {exc}"
            )
            raise ReplicationError(msg) from exc

        state = _replication_state(config)
        if state == STATE_FAILED:
            msg = (
                f"replication for Disaster Recovery Config {alias!r} (Namespace "
                f"{namespace_name!r} / Resource Group {resource_group!r}) failed"
            )
            raise ReplicationError(msg)
        if state == STATE_SUCCEEDED:
            return
        if state == STATE_ACCEPTED:
            logger.debug(
                "replication.pending",
                alias=alias,
                pending_operations=config.pending_replication_operations_count,
            )
            raise _ReplicationPending(f"provisioning state is {state!r}")

        msg = (
            f"unexpected provisioning state {state!r} for Disaster Recovery "
            f"Config {alias!r} (Namespace {namespace_name!r} / Resource Group "
            f"{resource_group!r})"
        )
        raise ReplicationError(msg)


def _replication_state(config: DisasterRecoveryConfig) -> str | None:
    """Fold pending operations into the provisioning state.

    The alias can report ``Succeeded`` while operations are still queued for
    the secondary, so a non-zero pending count is treated as ``Accepted``.
    """
    if config.provisioning_state is None:
        return None
    if config.provisioning_state == STATE_FAILED:
        return STATE_FAILED
    if config.pending_replication_operations_count:
        return STATE_ACCEPTED
    return config.provisioning_state


class NoopReplicationWaiter:
    """Used when replication waiting is disabled in the provider config."""

    async def wait_for_replication(
        self, resource_group: str, namespace_name: str, timeout: float
    ) -> None:
        logger.debug(
            "replication.skipped",
            resource_group=resource_group,
            namespace=namespace_name,
        )
