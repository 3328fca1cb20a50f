"""Name validators for the fields of a queue authorization rule.

Each validator returns the value unchanged or raises ``ValueError`` so it can
be used directly from a pydantic ``field_validator``.
"""

from __future__ import annotations

import re

_RULE_NAME = re.compile(r"^[a-zA-Z0-9]([-._a-zA-Z0-9]{0,48}[a-zA-Z0-9])?$")
_NAMESPACE_NAME = re.compile(r"^[a-zA-Z][-a-zA-Z0-9]{4,48}[a-zA-Z0-9]$")
_QUEUE_NAME = re.compile(r"^[a-zA-Z0-9]([-._/~a-zA-Z0-9]{0,258}[_a-zA-Z0-9])?$")
_RESOURCE_GROUP_NAME = re.compile(r"^[-\w._()]+$")

_RESERVED_NAMESPACE_SUFFIXES = ("-sb", "-mgmt")


def validate_authorization_rule_name(value: str) -> str:
    if not _RULE_NAME.match(value):
        msg = (
            f"authorization rule name {value!r} must be 1-50 characters of "
            f"letters, numbers, periods, hyphens and underscores, and must "
            f"start and end with a letter or number"
        )
        raise ValueError(msg)
    return value


def validate_namespace_name(value: str) -> str:
    if not _NAMESPACE_NAME.match(value):
        msg = (
            f"namespace name {value!r} must be 6-50 characters of letters, "
            f"numbers and hyphens, start with a letter and end with a letter "
            f"or number"
        )
        raise ValueError(msg)
    if value.lower().endswith(_RESERVED_NAMESPACE_SUFFIXES):
        msg = f"namespace name {value!r} cannot end with '-sb' or '-mgmt'"
        raise ValueError(msg)
    return value


def validate_queue_name(value: str) -> str:
    if not _QUEUE_NAME.match(value):
        msg = (
            f"queue name {value!r} must be 1-260 characters of letters, "
            f"numbers, periods, hyphens, underscores, slashes and tildes, "
            f"start with a letter or number and end with a letter, number "
            f"or underscore"
        )
        raise ValueError(msg)
    return value


def validate_resource_group_name(value: str) -> str:
    """Resource group names follow the Azure Resource Manager naming rules."""
    if not 1 <= len(value) <= 90:
        msg = f"resource group name {value!r} must be 1-90 characters long"
        raise ValueError(msg)
    if not _RESOURCE_GROUP_NAME.match(value):
        msg = (
            f"resource group name {value!r} may only contain letters, "
            f"numbers, underscores, parentheses, hyphens and periods"
        )
        raise ValueError(msg)
    if value.endswith("."):
        msg = f"resource group name {value!r} cannot end with a period"
        raise ValueError(msg)
    return value
