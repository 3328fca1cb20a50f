"""Persisted resource state and change planning."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, SecretStr

from servicebus_authrule.config.models import AuthorizationRuleConfig

# Fields that identify the rule; a change to any of them forces replacement.
IMMUTABLE_FIELDS = ("name", "namespace_name", "queue_name", "resource_group_name")
RIGHTS_FIELDS = ("listen", "send", "manage")
SECRET_FIELDS = (
    "primary_key",
    "secondary_key",
    "primary_connection_string",
    "secondary_connection_string",
    "primary_connection_string_alias",
    "secondary_connection_string_alias",
)


class PlanAction(StrEnum):
    CREATE = "create"
    NOOP = "noop"
    UPDATE = "update"
    REPLACE = "replace"


class ResourceState(BaseModel, validate_assignment=True):
    """State of one queue authorization rule as recorded by the engine.

    ``id`` is the persisted identity: ``None`` means the rule is absent (never
    created, deleted, or removed out of band).
    """

    id: str | None = None
    name: str | None = None
    namespace_name: str | None = None
    queue_name: str | None = None
    resource_group_name: str | None = None
    listen: bool = False
    send: bool = False
    manage: bool = False
    primary_key: SecretStr | None = None
    secondary_key: SecretStr | None = None
    primary_connection_string: SecretStr | None = None
    secondary_connection_string: SecretStr | None = None
    primary_connection_string_alias: SecretStr | None = None
    secondary_connection_string_alias: SecretStr | None = None

    @property
    def exists(self) -> bool:
        return self.id is not None

    def clear(self) -> None:
        """Forget the resource, dropping its identity and observed values."""
        for field_name, field in type(self).model_fields.items():
            setattr(self, field_name, field.default)

    def to_state_dict(self) -> dict[str, Any]:
        """Dump with secrets unmasked, for writing to a state file."""
        data = self.model_dump()
        for field_name in SECRET_FIELDS:
            secret = getattr(self, field_name)
            data[field_name] = None if secret is None else secret.get_secret_value()
        return data


def changed_fields(
    state: ResourceState, desired: AuthorizationRuleConfig, fields: tuple[str, ...]
) -> list[str]:
    return [f for f in fields if getattr(state, f) != getattr(desired, f)]


def plan(
    state: ResourceState, desired: AuthorizationRuleConfig, subscription_id: str
) -> PlanAction:
    """Decide how to converge *state* on *desired* in *subscription_id*."""
    if state.id is None:
        return PlanAction.CREATE
    if changed_fields(state, desired, IMMUTABLE_FIELDS):
        return PlanAction.REPLACE
    if state.id.lower() != desired.resource_id(subscription_id).id().lower():
        return PlanAction.REPLACE
    if changed_fields(state, desired, RIGHTS_FIELDS):
        return PlanAction.UPDATE
    return PlanAction.NOOP
