"""YAML + environment variable config loader."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import ValidationError

from servicebus_authrule.config.defaults import drop_empty, load_defaults, merge_configs
from servicebus_authrule.config.models import AuthorizationRuleConfig, ProviderConfig

# ${NAME} or ${NAME:-fallback}; "\}" escapes a brace inside the fallback.
_ENV_REFERENCE = re.compile(
    r"\$\{(?P<name>[^}:]+)"
    r"(?::-(?P<fallback>(?:[^}\\]|\\.)*))?}"
)


def _substitute(text: str, where: str) -> str:
    def _lookup(ref: re.Match[str]) -> str:
        name, fallback = ref.group("name"), ref.group("fallback")
        if name in os.environ:
            return os.environ[name]
        if fallback is None:
            location = f"{where}: " if where else ""
            msg = (
                f"{location}environment variable '{name}' is not set "
                f"and has no default"
            )
            raise ValueError(msg)
        return fallback.replace("\\}", "}")

    return _ENV_REFERENCE.sub(_lookup, text)


def resolve_env_vars(data: Any, where: str = "") -> Any:
    """Substitute environment references in every string of *data*.

    *where* is the dotted key path of *data*, used to point errors at the
    offending config entry (``azure.client_secret``, ``tags[0]``).
    """
    if isinstance(data, str):
        return _substitute(data, where)
    if isinstance(data, dict):
        return {
            key: resolve_env_vars(value, f"{where}.{key}" if where else str(key))
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [resolve_env_vars(item, f"{where}[{i}]") for i, item in enumerate(data)]
    return data


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Read a YAML mapping from *path* with environment references resolved."""
    source = Path(path)
    if not source.is_file():
        msg = f"Config file not found: {source}"
        raise FileNotFoundError(msg)
    try:
        data = yaml.safe_load(source.read_text())
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        position = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        msg = f"Failed to parse YAML in {source}{position}: {exc}"
        raise ValueError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{source} must contain a YAML mapping, got {type(data).__name__}"
        raise TypeError(msg)
    return cast(dict[str, Any], resolve_env_vars(data))


def build_provider_config(overrides: dict[str, Any] | None = None) -> ProviderConfig:
    """Build a validated ProviderConfig from the built-in defaults and *overrides*."""
    base = cast(dict[str, Any], resolve_env_vars(load_defaults("provider")))
    merged = merge_configs(base, overrides or {})
    return ProviderConfig.model_validate(drop_empty(merged))


def load_provider_config(path: str | Path | None = None) -> ProviderConfig:
    """Load provider config from built-in defaults, optionally merged with overrides."""
    overrides = load_yaml(path) if path is not None else None
    try:
        return build_provider_config(overrides)
    except ValidationError as exc:
        source = path or "built-in defaults"
        msg = f"Invalid provider config ({source}):\n{exc}"
        raise ValueError(msg) from exc


def load_rule_config(path: str | Path) -> AuthorizationRuleConfig:
    """Load the desired configuration of a queue authorization rule."""
    data = load_yaml(path)
    try:
        return AuthorizationRuleConfig.model_validate(data)
    except ValidationError as exc:
        msg = f"Invalid authorization rule config ({path}):\n{exc}"
        raise ValueError(msg) from exc
