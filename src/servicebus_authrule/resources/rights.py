"""Access rights carried by a queue authorization rule."""

from __future__ import annotations

from collections.abc import Iterable
from enum import StrEnum


class AccessRight(StrEnum):
    """Rights granted by an authorization rule, as named by the management API."""

    LISTEN = "Listen"
    SEND = "Send"
    MANAGE = "Manage"


def check_rights(*, listen: bool, send: bool, manage: bool) -> None:
    """Reject rights combinations the management API does not accept."""
    if not (listen or send or manage):
        msg = "one of the `listen`, `send` or `manage` properties needs to be set"
        raise ValueError(msg)
    if manage and not (listen and send):
        msg = "if `manage` is set both `listen` and `send` must be set to true too"
        raise ValueError(msg)


def expand_rights(*, listen: bool, send: bool, manage: bool) -> list[AccessRight]:
    rights: list[AccessRight] = []
    if listen:
        rights.append(AccessRight.LISTEN)
    if send:
        rights.append(AccessRight.SEND)
    if manage:
        rights.append(AccessRight.MANAGE)
    return rights


def flatten_rights(rights: Iterable[str] | None) -> tuple[bool, bool, bool]:
    """Project API rights into ``(listen, send, manage)`` flags.

    Matching is case-insensitive since older API versions return lower-case
    right names.
    """
    listen = send = manage = False
    for right in rights or ():
        name = str(getattr(right, "value", right)).lower()
        if name == AccessRight.LISTEN.lower():
            listen = True
        elif name == AccessRight.SEND.lower():
            send = True
        elif name == AccessRight.MANAGE.lower():
            manage = True
    return listen, send, manage
