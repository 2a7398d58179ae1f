"""Engine configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from smartform.resolver import ResolutionOptions


_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {value!r}")


@dataclass
class EngineConfig:
    """Runtime settings shared by the resolver, evaluators and services.

    Attributes:
        max_depth: Maximum template resolution depth
        strict: Propagate resolution errors instead of falling back
        cache_ttl: Dynamic function cache lifetime in seconds (0 disables)
        case_sensitive: Case-sensitive string equality in conditions
        allow_empty_groups: Accept AND/OR conditions without children
    """

    max_depth: int = 10
    strict: bool = False
    cache_ttl: float = 300.0
    case_sensitive: bool = True
    allow_empty_groups: bool = False

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Create config from environment variables.

        Reads SMARTFORM_MAX_DEPTH, SMARTFORM_STRICT, SMARTFORM_CACHE_TTL,
        SMARTFORM_CASE_SENSITIVE and SMARTFORM_ALLOW_EMPTY_GROUPS. Unset
        variables keep the defaults.
        """
        defaults = cls()
        config = cls(
            max_depth=_env_int("SMARTFORM_MAX_DEPTH", defaults.max_depth),
            strict=_env_bool("SMARTFORM_STRICT", defaults.strict),
            cache_ttl=_env_float("SMARTFORM_CACHE_TTL", defaults.cache_ttl),
            case_sensitive=_env_bool("SMARTFORM_CASE_SENSITIVE", defaults.case_sensitive),
            allow_empty_groups=_env_bool(
                "SMARTFORM_ALLOW_EMPTY_GROUPS", defaults.allow_empty_groups
            ),
        )
        if config.max_depth < 1:
            raise ValueError("SMARTFORM_MAX_DEPTH must be at least 1")
        if config.cache_ttl < 0:
            raise ValueError("SMARTFORM_CACHE_TTL must not be negative")
        return config

    def resolution_options(self) -> ResolutionOptions:
        """Default template resolution options for this configuration."""
        from smartform.resolver import ResolutionOptions

        return ResolutionOptions(strict=self.strict, max_depth=self.max_depth)
