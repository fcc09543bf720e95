"""
Dispatcher: the single irreversible step.

Calls exactly one executor per resolved action and never retries. Whatever
the executor raises is folded into Outcome.error.
"""

from __future__ import annotations

import time
from typing import Optional

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity

from .actions import (
    ExecutorError,
    OpenApp,
    OpenFile,
    Outcome,
    ResolvedAction,
    RunSystem,
    Speak,
    describe,
)
from .executors import Executors


logger = get_logger(LogComponent.DISPATCHER)
emitter = EventEmitter(ObsComponent.DISPATCHER)


class Dispatcher:
    def __init__(self, executors: Executors):
        self.executors = executors

    def _invoke(self, action: ResolvedAction) -> None:
        if isinstance(action, OpenFile):
            self.executors.open_path(action.path)
        elif isinstance(action, OpenApp):
            self.executors.launch(action.command)
        elif isinstance(action, RunSystem):
            self.executors.run_system(action.action_name, action.argument)
        elif isinstance(action, Speak):
            self.executors.speak(action.text)
        else:
            raise ExecutorError(f"no executor for {type(action).__name__}")

    def dispatch(self, action: ResolvedAction, command_id: str = "") -> Outcome:
        start_ts = time.monotonic()
        error: Optional[ExecutorError] = None
        try:
            self._invoke(action)
        except ExecutorError as e:
            error = e
        except Exception as e:
            error = ExecutorError(f"{type(e).__name__} in executor", cause=e)

        latency_ms = int((time.monotonic() - start_ts) * 1000)
        if error is None:
            emitter.emit(
                "action.dispatched",
                command_id=command_id,
                latency_ms=latency_ms,
                **{f"action_{k}": v for k, v in describe(action).items()},
            )
        else:
            logger.error(
                "Executor failed",
                command_id=command_id,
                error=str(error),
                cause_type=type(error.cause).__name__ if error.cause else None,
            )
            emitter.emit(
                "action.failed",
                command_id=command_id,
                severity=Severity.ERROR,
                latency_ms=latency_ms,
                error_class=type(error.cause or error).__name__,
                **{f"action_{k}": v for k, v in describe(action).items()},
            )
        return Outcome(resolved=action, error=error)
