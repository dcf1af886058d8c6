"""Channel configuration.

Options can be set explicitly or picked up from ANYRPC_* environment
variables via ChannelConfig.from_env().
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any

ENV_PREFIX = "ANYRPC_"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class ChannelConfig:
    """Per-channel options."""

    # Dispatch
    ignore_unhandled: bool = False  # No error response for unknown methods
    allow_handler_override: bool = False  # Replace instead of DuplicateHandlerError

    # Calls
    default_timeout: float = 5.0  # Seconds

    # Raise the local id counter past ids observed on inbound calls, for
    # peers generating ids into the same numeric space
    rebase_call_ids: bool = True

    def __post_init__(self) -> None:
        if self.default_timeout <= 0:
            raise ValueError(f"default_timeout must be positive, got {self.default_timeout}")

    def with_options(self, **options: Any) -> ChannelConfig:
        """Return a copy with the given options replaced."""
        if not options:
            return self
        return replace(self, **options)

    @classmethod
    def from_env(cls, **overrides: Any) -> ChannelConfig:
        """Build a config from ANYRPC_* environment variables.

        Explicit keyword overrides take precedence over the environment.
        """
        values: dict[str, Any] = {}
        for f in fields(cls):
            raw = os.environ.get(f"{ENV_PREFIX}{f.name.upper()}")
            if raw is None:
                continue
            if f.type == "bool":
                values[f.name] = raw.strip().lower() in _TRUTHY
            else:
                values[f.name] = float(raw)
        values.update(overrides)
        return cls(**values)
