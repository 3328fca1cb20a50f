"""Pydantic configuration models for the provider and its resources."""

from __future__ import annotations

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator

from servicebus_authrule.resources.ids import QueueAuthorizationRuleId
from servicebus_authrule.resources.rights import (
    AccessRight,
    check_rights,
    expand_rights,
)
from servicebus_authrule.resources.validate import (
    validate_authorization_rule_name,
    validate_namespace_name,
    validate_queue_name,
    validate_resource_group_name,
)


class AzureCloud(StrEnum):
    """Azure clouds with a distinct Resource Manager endpoint."""

    PUBLIC = "public"
    CHINA = "china"
    US_GOVERNMENT = "usgovernment"


class LogLevel(StrEnum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class AzureConfig(BaseModel):
    """Subscription and credentials used to reach the management API.

    When ``client_secret`` is unset the credential chain of
    ``DefaultAzureCredential`` is used (environment, managed identity,
    Azure CLI, ...).
    """

    subscription_id: str = Field(min_length=1)
    tenant_id: str | None = None
    client_id: str | None = None
    client_secret: SecretStr | None = None
    cloud: AzureCloud = AzureCloud.PUBLIC

    @model_validator(mode="after")
    def check_service_principal(self) -> Self:
        """Require tenant_id and client_id alongside a client secret."""
        if self.client_secret is not None and not (self.tenant_id and self.client_id):
            msg = "tenant_id and client_id are required when client_secret is set"
            raise ValueError(msg)
        return self


class TimeoutsConfig(BaseModel):
    """Per-operation deadlines, in seconds."""

    create: float = Field(default=1800.0, gt=0)
    read: float = Field(default=300.0, gt=0)
    update: float = Field(default=1800.0, gt=0)
    delete: float = Field(default=1800.0, gt=0)


class ReplicationConfig(BaseModel):
    """Paired namespace (geo disaster recovery) replication wait settings."""

    enabled: bool = True
    poll_interval_seconds: float = Field(default=30.0, ge=0)


class LoggingConfig(BaseModel):
    level: LogLevel = LogLevel.INFO
    json_output: bool = False


class ProviderConfig(BaseModel, extra="forbid"):
    """Provider-level configuration shared by every handler invocation."""

    azure: AzureConfig
    timeouts: TimeoutsConfig = TimeoutsConfig()
    replication: ReplicationConfig = ReplicationConfig()
    logging: LoggingConfig = LoggingConfig()


class AuthorizationRuleConfig(BaseModel, extra="forbid"):
    """Desired configuration of a queue authorization rule.

    ``name``, ``namespace_name``, ``queue_name`` and ``resource_group_name``
    identify the rule and cannot change once it exists; the rights flags are
    updated in place.
    """

    name: str
    namespace_name: str
    queue_name: str
    resource_group_name: str
    listen: bool = False
    send: bool = False
    manage: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_authorization_rule_name(v)

    @field_validator("namespace_name")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        return validate_namespace_name(v)

    @field_validator("queue_name")
    @classmethod
    def validate_queue(cls, v: str) -> str:
        return validate_queue_name(v)

    @field_validator("resource_group_name")
    @classmethod
    def validate_resource_group(cls, v: str) -> str:
        return validate_resource_group_name(v)

    @model_validator(mode="after")
    def check_rights_combination(self) -> Self:
        check_rights(listen=self.listen, send=self.send, manage=self.manage)
        return self

    @property
    def rights(self) -> list[AccessRight]:
        return expand_rights(listen=self.listen, send=self.send, manage=self.manage)

    def resource_id(self, subscription_id: str) -> QueueAuthorizationRuleId:
        return QueueAuthorizationRuleId(
            subscription_id=subscription_id,
            resource_group=self.resource_group_name,
            namespace_name=self.namespace_name,
            queue_name=self.queue_name,
            authorization_rule_name=self.name,
        )
