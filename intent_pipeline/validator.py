"""
Intent validation and confidence gating.

The only place a ResolvedAction is built. Checks run in a fixed order:
confidence gate, unknown, answer, target lookup, numeric argument.
"""

from __future__ import annotations

from typing import Optional, Tuple, Union

from .actions import (
    IntentAction,
    OpenApp,
    OpenFile,
    RawIntent,
    Rejection,
    RejectionKind,
    ResolvedAction,
    RunSystem,
    Speak,
)
from .capabilities import ARGUMENT_ACTIONS, CapabilityTable, normalize_key


VOLUME_RANGE = (0, 100)


def _split_system_target(target: str) -> Tuple[str, Optional[str]]:
    """'volume_set 40' -> ('volume_set', '40')"""
    parts = target.strip().split(None, 1)
    name = normalize_key(parts[0]) if parts else ""
    arg = parts[1].strip() if len(parts) > 1 else None
    return name, arg


def _resolve_system(raw: RawIntent, table: CapabilityTable) -> Union[RunSystem, Rejection]:
    name, arg_text = _split_system_target(raw.target or "")
    if not table.has_system_action(name):
        return Rejection(RejectionKind.UNKNOWN_TARGET, f"system action '{name}' is not enabled")

    if name not in ARGUMENT_ACTIONS:
        if arg_text is not None or raw.value is not None:
            return Rejection(RejectionKind.MALFORMED_REPLY, f"'{name}' takes no argument")
        return RunSystem(name)

    if arg_text is not None:
        try:
            level = int(arg_text.rstrip("%").strip())
        except ValueError:
            return Rejection(RejectionKind.MALFORMED_REPLY, f"'{name}' argument is not an integer: {arg_text!r}")
        if raw.value is not None and raw.value != level:
            return Rejection(RejectionKind.MALFORMED_REPLY, f"'{name}' has conflicting levels {level} and {raw.value}")
    elif raw.value is not None:
        level = raw.value
    else:
        return Rejection(RejectionKind.MALFORMED_REPLY, f"'{name}' requires a level")

    low, high = VOLUME_RANGE
    if not low <= level <= high:
        return Rejection(RejectionKind.MALFORMED_REPLY, f"'{name}' level {level} outside {low}-{high}")
    return RunSystem(name, level)


def validate(
    raw: RawIntent,
    table: CapabilityTable,
    min_confidence: float,
) -> Union[ResolvedAction, Rejection]:
    """Turn an untrusted RawIntent into an executable action or a rejection."""
    if raw.confidence < min_confidence:
        return Rejection(
            RejectionKind.LOW_CONFIDENCE,
            f"confidence {raw.confidence:.2f} below {min_confidence:.2f}",
        )

    if raw.action == IntentAction.UNKNOWN:
        return Rejection(RejectionKind.LOW_CONFIDENCE, "model could not classify the command")

    if raw.action == IntentAction.ANSWER:
        if not raw.response or not raw.response.strip():
            return Rejection(RejectionKind.MALFORMED_REPLY, "answer without response text")
        return Speak(raw.response.strip())

    if not raw.target or not raw.target.strip():
        return Rejection(RejectionKind.MALFORMED_REPLY, f"{raw.action.value} without target")

    if raw.action == IntentAction.OPEN_FILE:
        path = table.lookup_file(raw.target)
        if path is None:
            return Rejection(RejectionKind.UNKNOWN_TARGET, f"no file named '{normalize_key(raw.target)}'")
        return OpenFile(path, name=normalize_key(raw.target))

    if raw.action == IntentAction.OPEN_APP:
        command = table.lookup_app(raw.target)
        if command is None:
            return Rejection(RejectionKind.UNKNOWN_TARGET, f"no application named '{normalize_key(raw.target)}'")
        return OpenApp(command, name=normalize_key(raw.target))

    return _resolve_system(raw, table)
