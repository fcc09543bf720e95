"""
Feedback signals and the default feedback sink.

A FeedbackSignal is the terminal status of one voice command. Rendering it
(TTS, sound cue) belongs to an external collaborator; the pipeline hands the
signal over and does not wait.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter

from .actions import ExecutorError, Rejection, RejectionKind


logger = get_logger(LogComponent.FEEDBACK)
emitter = EventEmitter(ObsComponent.FEEDBACK)


class FeedbackStatus(str, Enum):
    SUCCESS = "success"
    REJECTED = "rejected"
    FAILED = "failed"


SUCCESS_MESSAGE = "Ok"
FAILED_MESSAGE = "Command failed"
BUSY_MESSAGE = "Still working on the last command"

REJECTION_MESSAGES = {
    RejectionKind.LOW_CONFIDENCE: "I don't know how to do that",
    RejectionKind.UNKNOWN_TARGET: "I don't have that configured",
    RejectionKind.MALFORMED_REPLY: "Sorry, I didn't catch that. Please try again",
    RejectionKind.TIMEOUT: "That took too long. Please try again",
    RejectionKind.UPSTREAM_UNAVAILABLE: "The language model is not running",
}


@dataclass(frozen=True)
class FeedbackSignal:
    status: FeedbackStatus
    rejection: Optional[Rejection] = None
    error: Optional[ExecutorError] = None

    @classmethod
    def success(cls) -> "FeedbackSignal":
        return cls(FeedbackStatus.SUCCESS)

    @classmethod
    def rejected(cls, rejection: Rejection) -> "FeedbackSignal":
        return cls(FeedbackStatus.REJECTED, rejection=rejection)

    @classmethod
    def failed(cls, error: ExecutorError) -> "FeedbackSignal":
        return cls(FeedbackStatus.FAILED, error=error)

    @property
    def message(self) -> str:
        return get_user_message(self)


def get_user_message(signal: FeedbackSignal) -> str:
    """Short user-facing sentence for a signal. Never includes internal details."""
    if signal.status == FeedbackStatus.SUCCESS:
        return SUCCESS_MESSAGE
    if signal.status == FeedbackStatus.REJECTED and signal.rejection is not None:
        return REJECTION_MESSAGES.get(signal.rejection.kind, FAILED_MESSAGE)
    return FAILED_MESSAGE


class FeedbackSink(Protocol):
    """External feedback collaborator. Both calls must return promptly."""

    def emit(self, signal: FeedbackSignal, command_id: str = "") -> None: ...

    def say(self, text: str, command_id: str = "") -> None: ...


class ConsoleFeedback:
    """
    Feedback sink that logs what an audio layer would render.

    mode "tts" speaks the message, "sound" names a cue, "both" does both.
    """

    def __init__(self, mode: str = "tts"):
        self.mode = mode

    def emit(self, signal: FeedbackSignal, command_id: str = "") -> None:
        cue = "success" if signal.status == FeedbackStatus.SUCCESS else "error"
        spoken = signal.message if self.mode in ("tts", "both") else None
        sound = cue if self.mode in ("sound", "both") else None

        emitter.emit(
            "feedback.emitted",
            command_id=command_id,
            status=signal.status.value,
            rejection_kind=signal.rejection.kind.value if signal.rejection else None,
            sound=sound,
            spoken=spoken,
        )
        logger.info("Feedback", command_id=command_id, status=signal.status.value, user_message=signal.message)

    def say(self, text: str, command_id: str = "") -> None:
        if self.mode == "sound":
            logger.info("Speech suppressed in sound mode", command_id=command_id, length=len(text))
            return
        logger.with_command(command_id).info_pii("Speak", text=text)
