"""Resource identifiers for queue authorization rules."""

from __future__ import annotations

from dataclasses import dataclass

from servicebus_authrule.errors import InvalidResourceIdError

PROVIDER_NAMESPACE = "Microsoft.ServiceBus"

# Key order of the canonical ID; "providers" is checked separately.
_SEGMENT_KEYS = (
    "subscriptions",
    "resourceGroups",
    "providers",
    "namespaces",
    "queues",
    "authorizationRules",
)


@dataclass(frozen=True)
class QueueAuthorizationRuleId:
    """Composite key addressing a single queue authorization rule."""

    subscription_id: str
    resource_group: str
    namespace_name: str
    queue_name: str
    authorization_rule_name: str

    def id(self) -> str:
        return (
            f"/subscriptions/{self.subscription_id}"
            f"/resourceGroups/{self.resource_group}"
            f"/providers/{PROVIDER_NAMESPACE}"
            f"/namespaces/{self.namespace_name}"
            f"/queues/{self.queue_name}"
            f"/authorizationRules/{self.authorization_rule_name}"
        )

    def __str__(self) -> str:
        return self.id()


def parse_queue_authorization_rule_id(value: str) -> QueueAuthorizationRuleId:
    """Parse the canonical ID string produced by ``QueueAuthorizationRuleId.id``.

    Raises:
        InvalidResourceIdError: if the string is not a well-formed queue
            authorization rule ID.
    """
    if not value or not value.startswith("/"):
        msg = f"resource ID {value!r} must start with '/'"
        raise InvalidResourceIdError(msg, resource_id=value)

    parts = value.strip("/").split("/")
    if len(parts) < 2 * len(_SEGMENT_KEYS):
        msg = (
            f"resource ID {value!r} does not match the format "
            f"/subscriptions/{{subscriptionId}}/resourceGroups/{{resourceGroup}}"
            f"/providers/{PROVIDER_NAMESPACE}/namespaces/{{namespaceName}}"
            f"/queues/{{queueName}}/authorizationRules/{{ruleName}}"
        )
        raise InvalidResourceIdError(msg, resource_id=value)

    # Queue names may contain '/', so the queue segment spans everything
    # between the "queues" key and the trailing "authorizationRules" pair.
    pairs = [
        *zip(parts[0:8:2], parts[1:8:2], strict=True),
        (parts[8], "/".join(parts[9:-2])),
        (parts[-2], parts[-1]),
    ]

    values: dict[str, str] = {}
    for expected, (key, segment) in zip(_SEGMENT_KEYS, pairs, strict=True):
        if key != expected:
            msg = f"resource ID {value!r}: expected segment {expected!r}, got {key!r}"
            raise InvalidResourceIdError(msg, resource_id=value)
        if not segment:
            msg = f"resource ID {value!r}: segment {expected!r} has an empty value"
            raise InvalidResourceIdError(msg, resource_id=value)
        values[key] = segment

    if values["providers"].lower() != PROVIDER_NAMESPACE.lower():
        msg = (
            f"resource ID {value!r}: expected provider {PROVIDER_NAMESPACE!r}, "
            f"got {values['providers']!r}"
        )
        raise InvalidResourceIdError(msg, resource_id=value)

    return QueueAuthorizationRuleId(
        subscription_id=values["subscriptions"],
        resource_group=values["resourceGroups"],
        namespace_name=values["namespaces"],
        queue_name=values["queues"],
        authorization_rule_name=values["authorizationRules"],
    )
