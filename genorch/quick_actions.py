"""Merge user quick-action overrides onto provider defaults.

User values are loose (``True``, ``False``, ``None`` or a config mapping) and
are parsed into one of three variants before merging:

    Keep          -- keep the provider default (``True``)
    Remove        -- drop the action (``False`` / ``None``)
    Override(cfg) -- replace the entry wholesale (anything else)
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Union


@dataclass(frozen=True)
class Keep:
    pass


@dataclass(frozen=True)
class Remove:
    pass


@dataclass(frozen=True)
class Override:
    config: Any


QuickActionValue = Union[Keep, Remove, Override]


def parse_quick_action_value(value: Any) -> QuickActionValue:
    if value is True:
        return Keep()
    if value is False or value is None:
        return Remove()
    return Override(value)


def merge_quick_actions_config(
    defaults: Mapping[str, Any],
    user_config: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Return *defaults* with *user_config* applied. Neither input is mutated.

    ``Keep`` preserves the default by reference, or becomes ``True`` when the
    provider has no default for that action.
    """
    merged = dict(defaults)
    if user_config is None:
        return merged

    for action_id, raw in user_config.items():
        value = parse_quick_action_value(raw)
        if isinstance(value, Remove):
            merged.pop(action_id, None)
        elif isinstance(value, Keep):
            if action_id not in defaults:
                merged[action_id] = True
        else:
            merged[action_id] = value.config
    return merged
