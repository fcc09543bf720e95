"""
Command pipeline orchestration.

One voice command makes exactly one forward pass:

    IDLE -> BUILDING -> AWAITING_INTENT -> VALIDATING -> DISPATCHING -> DONE

Any stage may jump straight to DONE with a rejection. AWAITING_INTENT is the
only suspend point; a task cancelled there ends in CANCELLED and nothing is
dispatched. Commands are serialised behind a single slot: a command that
arrives while another is in flight is ignored with feedback.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Protocol, Union

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity

from .actions import Outcome, RawIntent, Rejection, RejectionKind, ResolvedAction, describe
from .capabilities import CapabilityTable
from .config import PipelineConfig
from .dispatcher import Dispatcher
from .executors import Executors, default_executors
from .feedback import BUSY_MESSAGE, ConsoleFeedback, FeedbackSignal, FeedbackSink, FeedbackStatus
from .intent_client import EndpointState, IntentClient
from .prompt import PromptRequest, build_prompt
from .validator import validate


logger = get_logger(LogComponent.PIPELINE)
emitter = EventEmitter(ObsComponent.PIPELINE)


class CommandState(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    AWAITING_INTENT = "awaiting_intent"
    VALIDATING = "validating"
    DISPATCHING = "dispatching"
    DONE = "done"
    CANCELLED = "cancelled"


_STATE_ORDER = {state: i for i, state in enumerate(CommandState)}
TERMINAL_STATES = frozenset({CommandState.DONE, CommandState.CANCELLED})


class PipelineBusy(RuntimeError):
    """A command is already in flight; the new one was ignored."""


class IntentResolver(Protocol):
    """Anything that can turn a prompt into a RawIntent (IntentClient or a fake)."""

    async def resolve(
        self,
        request: PromptRequest,
        timeout: float,
        command_id: str = "",
    ) -> Union[RawIntent, Rejection]: ...


@dataclass
class CommandRun:
    """State of one voice command. Discarded after feedback is emitted."""

    command_id: str
    transcript: str
    state: CommandState = CommandState.IDLE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    ended_at: Optional[datetime] = None

    raw_intent: Optional[RawIntent] = None
    resolved: Optional[ResolvedAction] = None
    rejection: Optional[Rejection] = None
    outcome: Optional[Outcome] = None
    signal: Optional[FeedbackSignal] = None

    def transition_to(self, new_state: CommandState) -> CommandState:
        """Move forward. Returns the previous state."""
        if self.is_terminal() or _STATE_ORDER[new_state] <= _STATE_ORDER[self.state]:
            raise ValueError(f"invalid transition {self.state.value} -> {new_state.value}")
        old_state = self.state
        self.state = new_state
        if new_state in TERMINAL_STATES:
            self.ended_at = datetime.now(timezone.utc)
        return old_state

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def to_dict(self) -> Dict[str, Any]:
        return {
            "command_id": self.command_id,
            "state": self.state.value,
            "status": self.signal.status.value if self.signal else None,
            "action": describe(self.resolved) if self.resolved is not None else None,
            "rejection": (
                {"kind": self.rejection.kind.value, "detail": self.rejection.detail}
                if self.rejection else None
            ),
            "error": str(self.outcome.error) if self.outcome and self.outcome.error else None,
            "message": self.signal.message if self.signal else None,
        }


def new_command_id() -> str:
    return f"cmd_{uuid.uuid4().hex[:12]}"


class CommandPipeline:
    """Transcript in, one action (or a rejection) and a feedback signal out."""

    def __init__(
        self,
        table: CapabilityTable,
        client: IntentResolver,
        dispatcher: Dispatcher,
        feedback: FeedbackSink,
        *,
        min_confidence: float = 0.6,
        timeout: float = 5.0,
        model: Optional[str] = None,
    ):
        self.table = table
        self.client = client
        self.dispatcher = dispatcher
        self.feedback = feedback
        self.min_confidence = min_confidence
        self.timeout = timeout
        self.model = model
        self._slot = asyncio.Lock()

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        table: CapabilityTable,
        *,
        feedback: Optional[FeedbackSink] = None,
        executors: Optional[Executors] = None,
        client: Optional[IntentResolver] = None,
        endpoint_state: Optional[EndpointState] = None,
    ) -> "CommandPipeline":
        feedback = feedback or ConsoleFeedback(config.feedback_mode)
        executors = executors or default_executors(speak=feedback.say)
        client = client or IntentClient.from_config(config, state=endpoint_state)
        return cls(
            table,
            client,
            Dispatcher(executors),
            feedback,
            min_confidence=config.min_confidence,
            timeout=config.timeout_seconds,
            model=config.model,
        )

    @property
    def busy(self) -> bool:
        return self._slot.locked()

    async def submit(self, transcript: str) -> CommandRun:
        """Run a command unless one is already in flight (then raise PipelineBusy)."""
        if self._slot.locked():
            command_id = new_command_id()
            emitter.emit("command.ignored", command_id=command_id, severity=Severity.WARN, reason="busy")
            self._safe_feedback(lambda: self.feedback.say(BUSY_MESSAGE, command_id), command_id)
            raise PipelineBusy("a command is already in progress")
        async with self._slot:
            return await self.run(transcript)

    async def run(self, transcript: str, command_id: Optional[str] = None) -> CommandRun:
        run = CommandRun(command_id=command_id or new_command_id(), transcript=transcript)
        log = logger.with_command(run.command_id)

        emitter.emit(
            "command.received",
            command_id=run.command_id,
            transcript_length=len(transcript.strip()),
        )
        log.debug_pii("Transcript", transcript=transcript)

        if not transcript.strip():
            return self._reject(run, Rejection(RejectionKind.MALFORMED_REPLY, "empty transcript"))

        run.transition_to(CommandState.BUILDING)
        request = build_prompt(transcript, self.table, model=self.model)

        run.transition_to(CommandState.AWAITING_INTENT)
        emitter.emit("intent.requested", command_id=run.command_id, timeout_s=self.timeout)
        try:
            result = await self.client.resolve(request, self.timeout, command_id=run.command_id)
        except asyncio.CancelledError:
            run.transition_to(CommandState.CANCELLED)
            emitter.emit("command.cancelled", command_id=run.command_id, severity=Severity.WARN)
            log.warning("Command cancelled while awaiting intent")
            raise
        except Exception as e:
            log.exception("Intent resolver raised", error_type=type(e).__name__)
            result = Rejection(RejectionKind.UPSTREAM_UNAVAILABLE, f"resolver error: {type(e).__name__}")

        if isinstance(result, Rejection):
            return self._reject(run, result)

        run.raw_intent = result
        emitter.emit(
            "intent.received",
            command_id=run.command_id,
            action=result.action.value,
            confidence=result.confidence,
        )

        run.transition_to(CommandState.VALIDATING)
        resolved = validate(result, self.table, self.min_confidence)
        if isinstance(resolved, Rejection):
            return self._reject(run, resolved)

        run.resolved = resolved
        emitter.emit("action.resolved", command_id=run.command_id, **describe(resolved))

        run.transition_to(CommandState.DISPATCHING)
        run.outcome = self.dispatcher.dispatch(resolved, command_id=run.command_id)
        if run.outcome.ok:
            return self._finish(run, FeedbackSignal.success())
        return self._finish(run, FeedbackSignal.failed(run.outcome.error))

    def _reject(self, run: CommandRun, rejection: Rejection) -> CommandRun:
        run.rejection = rejection
        emitter.emit(
            "intent.rejected",
            command_id=run.command_id,
            severity=Severity.WARN,
            kind=rejection.kind.value,
            detail=rejection.detail,
            stage=run.state.value,
        )
        return self._finish(run, FeedbackSignal.rejected(rejection))

    def _finish(self, run: CommandRun, signal: FeedbackSignal) -> CommandRun:
        run.signal = signal
        run.transition_to(CommandState.DONE)
        emitter.emit(
            "command.completed",
            command_id=run.command_id,
            severity=Severity.INFO if signal.status == FeedbackStatus.SUCCESS else Severity.WARN,
            status=signal.status.value,
        )
        self._safe_feedback(lambda: self.feedback.emit(signal, run.command_id), run.command_id)
        return run

    def _safe_feedback(self, call, command_id: str) -> None:
        # Feedback errors are logged, never raised
        try:
            call()
        except Exception as e:
            logger.with_command(command_id).error(
                "Feedback sink failed",
                error=str(e),
                error_type=type(e).__name__,
            )
