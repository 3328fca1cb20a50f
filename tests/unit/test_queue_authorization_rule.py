"""Unit tests for the queue authorization rule lifecycle handlers."""

from __future__ import annotations

import asyncio

import pytest

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
from servicebus_authrule.resources.queue_authorization_rule import (
    REPLICATION_MARGIN_SECONDS,
    ProviderContext,
    QueueAuthorizationRuleResource,
)
from servicebus_authrule.resources.state import ResourceState
from servicebus_authrule.servicebus.api import DisasterRecoveryConfig
from servicebus_authrule.servicebus.replication import PairedNamespaceReplicationWaiter

RULE_ID = (
    "/subscriptions/sub1/resourceGroups/rg1/providers/Microsoft.ServiceBus"
    "/namespaces/ns1-primary/queues/q1/authorizationRules/rule1"
)


def _updated(
    rule: AuthorizationRuleConfig, **changes: object
) -> AuthorizationRuleConfig:
    return AuthorizationRuleConfig.model_validate({**rule.model_dump(), **changes})



def _assert_waited(call: tuple[str, str, float], handler_timeout: float) -> None:
    """The waiter gets the handler's remaining time, less the margin."""
    resource_group, namespace_name, budget = call
    assert (resource_group, namespace_name) == ("rg1", "ns1-primary")
    ceiling = handler_timeout - REPLICATION_MARGIN_SECONDS
    assert ceiling - 1 < budget <= ceiling

@pytest.mark.asyncio
class TestCreate:
    async def test_create_then_read_projects_declared_rights(self, resource, rule):
        state = await resource.create(ResourceState(), rule)

        assert state.id == RULE_ID
        assert (state.listen, state.send, state.manage) == (True, False, False)
        assert state.name == "rule1"
        assert state.queue_name == "q1"
        assert state.namespace_name == "ns1-primary"
        assert state.resource_group_name == "rg1"
        for secret in (
            state.primary_key,
            state.secondary_key,
            state.primary_connection_string,
            state.secondary_connection_string,
        ):
            assert secret is not None
            assert secret.get_secret_value()

    async def test_create_with_all_rights(self, resource, rule):
        desired = _updated(rule, send=True, manage=True)
        state = await resource.create(ResourceState(), desired)
        assert (state.listen, state.send, state.manage) == (True, True, True)

    async def test_existing_rule_raises_already_exists(self, resource, api, rule):
        api.rules[RULE_ID] = ["Send"]
        state = ResourceState()

        with pytest.raises(ResourceAlreadyExistsError, match="imported") as exc_info:
            await resource.create(state, rule)

        assert exc_info.value.resource_id == RULE_ID
        assert api.mutating_calls == []
        assert state.id is None

    async def test_presence_check_failure_is_wrapped(self, resource, api, rule):
        api.fail["get_rule"] = RuntimeError("throttled")

        with pytest.raises(ApiError, match="checking for presence of existing"):
            await resource.create(ResourceState(), rule)
        assert api.mutating_calls == []

    async def test_submission_failure_leaves_id_unset(self, resource, api, rule):
        api.fail["create_or_update_rule"] = RuntimeError("409 conflict")
        state = ResourceState()

        with pytest.raises(ApiError, match="creating/updating") as exc_info:
            await resource.create(state, rule)

        assert RULE_ID in str(exc_info.value)
        assert state.id is None

    async def test_waits_for_replication_with_create_timeout(
        self, resource, replication, rule
    ):
        await resource.create(ResourceState(), rule)
        assert len(replication.calls) == 1
        _assert_waited(replication.calls[0], handler_timeout=60)

    async def test_replication_failure_keeps_id_recorded(
        self, resource, replication, rule
    ):
        replication.error = ReplicationError("alias failed")
        state = ResourceState()

        with pytest.raises(ReplicationError, match="ns1-primary") as exc_info:
            await resource.create(state, rule)

        assert RULE_ID in str(exc_info.value)
        # The rule was submitted, so the engine must track it.
        assert state.id == RULE_ID

    async def test_replication_timeout_keeps_error_kind(
        self, resource, replication, rule
    ):
        replication.error = ReplicationTimeoutError("still Accepted")
        with pytest.raises(ReplicationTimeoutError):
            await resource.create(ResourceState(), rule)

    async def test_stuck_replication_reports_replication_timeout(self, api, rule):
        context = ProviderContext(
            subscription_id="sub1", timeouts=TimeoutsConfig(create=0.2)
        )
        waiter = PairedNamespaceReplicationWaiter(
            _StuckPremiumNamespace(), poll_interval=0.01
        )
        resource = QueueAuthorizationRuleResource(api, waiter, context)
        state = ResourceState()

        with pytest.raises(ReplicationTimeoutError) as exc_info:
            await resource.create(state, rule)

        message = str(exc_info.value)
        assert "ns1-primary" in message
        assert "rg1" in message
        assert state.id == RULE_ID

    async def test_list_keys_failure_is_wrapped(self, resource, api, rule):
        api.fail["list_keys"] = RuntimeError("forbidden")
        with pytest.raises(ApiError, match="listing keys for"):
            await resource.create(ResourceState(), rule)

    async def test_deadline_expiry_raises_operation_timeout(self, api, rule):
        class SlowWaiter:
            async def wait_for_replication(self, *args):
                await asyncio.sleep(10)

        context = ProviderContext(
            subscription_id="sub1", timeouts=TimeoutsConfig(create=0.05)
        )
        resource = QueueAuthorizationRuleResource(api, SlowWaiter(), context)

        with pytest.raises(OperationTimeoutError, match="creating") as exc_info:
            await resource.create(ResourceState(), rule)
        assert exc_info.value.resource_id == RULE_ID


@pytest.mark.asyncio
class TestRead:
    async def test_read_refreshes_rights_changed_out_of_band(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        api.rules[RULE_ID] = ["Listen", "Send"]

        await resource.read(state)

        assert (state.listen, state.send, state.manage) == (True, True, False)

    async def test_missing_rule_clears_state(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        del api.rules[RULE_ID]

        result = await resource.read(state)

        assert result.id is None
        assert result.primary_key is None
        assert result.listen is False

    async def test_read_failure_is_wrapped(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        api.fail["get_rule"] = RuntimeError("500 internal error")

        with pytest.raises(ApiError, match="retrieving") as exc_info:
            await resource.read(state)

        assert RULE_ID in str(exc_info.value)
        assert state.id == RULE_ID

    async def test_rights_are_matched_case_insensitively(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        api.rules[RULE_ID] = ["listen", "send", "manage"]

        await resource.read(state)

        assert (state.listen, state.send, state.manage) == (True, True, True)

    async def test_queue_name_with_slash_survives_lifecycle(
        self, resource, api, rule
    ):
        desired = _updated(rule, queue_name="orders/eu")
        state = await resource.create(ResourceState(), desired)

        await resource.read(state)
        assert state.queue_name == "orders/eu"
        assert state.id.endswith("/queues/orders/eu/authorizationRules/rule1")

        await resource.delete(state)
        assert state.id is None
        assert api.rules == {}

    async def test_malformed_id_is_rejected(self, resource):
        with pytest.raises(InvalidResourceIdError):
            await resource.read(ResourceState(id="/subscriptions/sub1"))

    async def test_read_without_id_is_rejected(self, resource):
        with pytest.raises(ValueError, match="no ID"):
            await resource.read(ResourceState())


@pytest.mark.asyncio
class TestUpdate:
    async def test_update_changes_rights_in_place(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)

        await resource.update(state, _updated(rule, send=True))

        assert api.rules[RULE_ID] == ["Listen", "Send"]
        assert (state.listen, state.send) == (True, True)
        assert state.id == RULE_ID

    async def test_update_waits_with_update_timeout(self, resource, replication, rule):
        state = await resource.create(ResourceState(), rule)
        await resource.update(state, _updated(rule, send=True))
        _assert_waited(replication.calls[-1], handler_timeout=45)

    async def test_update_skips_presence_check(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        api.calls.clear()

        await resource.update(state, _updated(rule, send=True))

        assert api.calls[0][0] == "create_or_update_rule"

    async def test_changed_identity_requires_replacement(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        api.calls.clear()

        with pytest.raises(RequiresReplacementError) as exc_info:
            await resource.update(state, _updated(rule, queue_name="q2"))

        assert exc_info.value.fields == ["queue_name"]
        assert api.calls == []

    async def test_changed_subscription_requires_replacement(self, api, rule):
        state = ResourceState(id=RULE_ID)
        context = ProviderContext(subscription_id="sub2")
        resource = QueueAuthorizationRuleResource(api, _NoWait(), context)
        state.name, state.namespace_name = "rule1", "ns1-primary"
        state.queue_name, state.resource_group_name = "q1", "rg1"

        with pytest.raises(RequiresReplacementError, match="subscription_id"):
            await resource.update(state, rule)

    async def test_update_failure_leaves_id_unchanged(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        api.fail["create_or_update_rule"] = RuntimeError("boom")

        with pytest.raises(ApiError, match=RULE_ID):
            await resource.update(state, _updated(rule, send=True))

        assert state.id == RULE_ID
        assert state.send is False


@pytest.mark.asyncio
class TestDelete:
    async def test_delete_removes_rule_and_clears_state(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)

        await resource.delete(state)

        assert RULE_ID not in api.rules
        assert state.id is None

    async def test_delete_waits_with_delete_timeout(self, resource, replication, rule):
        state = await resource.create(ResourceState(), rule)
        await resource.delete(state)
        _assert_waited(replication.calls[-1], handler_timeout=30)

    async def test_delete_failure_leaves_id_unchanged(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        api.fail["delete_rule"] = RuntimeError("locked")

        with pytest.raises(ApiError, match="deleting") as exc_info:
            await resource.delete(state)

        assert RULE_ID in str(exc_info.value)
        assert state.id == RULE_ID
        assert RULE_ID in api.rules

    async def test_second_delete_is_detected_by_read(self, resource, api, rule):
        state = await resource.create(ResourceState(), rule)
        stale = state.model_copy()
        await resource.delete(state)

        await resource.read(stale)

        assert stale.id is None


@pytest.mark.asyncio
class TestImport:
    async def test_import_existing_rule(self, resource, api):
        api.rules[RULE_ID] = ["Listen", "Send", "Manage"]

        state = await resource.import_rule(RULE_ID)

        assert state.id == RULE_ID
        assert state.name == "rule1"
        assert (state.listen, state.send, state.manage) == (True, True, True)

    async def test_import_missing_rule_raises_not_found(self, resource):
        with pytest.raises(ResourceNotFoundError, match="non-existent"):
            await resource.import_rule(RULE_ID)

    async def test_import_malformed_id(self, resource):
        with pytest.raises(InvalidResourceIdError):
            await resource.import_rule("rule1")

    async def test_import_from_other_subscription_is_rejected(self, resource, api):
        other = RULE_ID.replace("/sub1/", "/sub2/")
        api.rules[other] = ["Listen"]

        with pytest.raises(InvalidResourceIdError, match="sub2"):
            await resource.import_rule(other)
        assert api.calls == []

    async def test_delete_in_other_subscription_is_rejected(self, resource, api):
        other = RULE_ID.replace("/sub1/", "/sub2/")
        api.rules[other] = ["Listen"]

        with pytest.raises(InvalidResourceIdError, match="configured subscription"):
            await resource.delete(ResourceState(id=other))
        assert other in api.rules


class _NoWait:
    async def wait_for_replication(self, resource_group, namespace_name, timeout):
        return None


class _StuckPremiumNamespace:
    """A paired Premium namespace whose alias never leaves ``Accepted``."""

    async def get_namespace_sku(self, resource_group, namespace_name):
        return "Premium"

    async def list_disaster_recovery_configs(self, resource_group, namespace_name):
        return [DisasterRecoveryConfig(name="alias1")]

    async def get_disaster_recovery_config(self, resource_group, namespace_name, alias):
        return DisasterRecoveryConfig(
            name=alias,
            provisioning_state="Accepted",
            pending_replication_operations_count=1,
        )
