"""
Value types that flow through the intent pipeline.

RawIntent is untrusted model output. ResolvedAction variants are only built
by the validator and always carry a reference taken from the capability
table. Rejection is returned (never raised) for every failure that happens
before an action is dispatched.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class IntentAction(str, Enum):
    """Action categories the model may reply with."""

    OPEN_FILE = "open_file"
    OPEN_APP = "open_app"
    SYSTEM = "system"
    ANSWER = "answer"
    UNKNOWN = "unknown"


class RawIntent(BaseModel):
    """Parsed model reply. Extra keys are ignored."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    action: IntentAction
    target: Optional[str] = None
    response: Optional[str] = None
    value: Optional[int] = None
    confidence: float = Field(ge=0.0, le=1.0)

    @field_validator("action", mode="before")
    @classmethod
    def _normalize_action(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("confidence", mode="before")
    @classmethod
    def _numeric_confidence(cls, v):
        # bool is an int subclass; "0.9" must not slip through lax coercion
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError("confidence must be a number")
        return v

    @field_validator("value", mode="before")
    @classmethod
    def _integral_value(cls, v):
        if v is None:
            return v
        if isinstance(v, bool):
            raise ValueError("value must be an integer")
        if isinstance(v, float) and not v.is_integer():
            raise ValueError("value must be an integer")
        return v


class RejectionKind(str, Enum):
    LOW_CONFIDENCE = "low_confidence"
    UNKNOWN_TARGET = "unknown_target"
    MALFORMED_REPLY = "malformed_reply"
    TIMEOUT = "timeout"
    UPSTREAM_UNAVAILABLE = "upstream_unavailable"


@dataclass(frozen=True)
class Rejection:
    """Why a command did nothing. Always produced before any side effect."""

    kind: RejectionKind
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}" if self.detail else self.kind.value


@dataclass(frozen=True)
class OpenFile:
    path: str
    name: str = ""


@dataclass(frozen=True)
class OpenApp:
    command: str
    name: str = ""


@dataclass(frozen=True)
class RunSystem:
    action_name: str
    argument: Optional[int] = None


@dataclass(frozen=True)
class Speak:
    text: str


ResolvedAction = Union[OpenFile, OpenApp, RunSystem, Speak]


def describe(action: ResolvedAction) -> dict:
    """Flat, log-friendly view of a resolved action."""
    if isinstance(action, OpenFile):
        return {"kind": "open_file", "name": action.name, "path": action.path}
    if isinstance(action, OpenApp):
        return {"kind": "open_app", "name": action.name, "command": action.command}
    if isinstance(action, RunSystem):
        return {"kind": "system", "name": action.action_name, "argument": action.argument}
    if isinstance(action, Speak):
        return {"kind": "speak", "length": len(action.text)}
    return {"kind": type(action).__name__}


class ExecutorError(Exception):
    """An executor could not realise an action. Carries the underlying cause."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause

    def __str__(self) -> str:
        base = super().__str__()
        if self.cause is not None:
            return f"{base}: {self.cause}"
        return base


@dataclass(frozen=True)
class Outcome:
    """Result of dispatching one resolved action."""

    resolved: ResolvedAction
    error: Optional[ExecutorError] = None

    @property
    def ok(self) -> bool:
        return self.error is None
