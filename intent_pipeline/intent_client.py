"""
Intent client for a local LLM chat endpoint.

Posts a rendered prompt to an Ollama-style /api/chat endpoint on loopback and
turns the reply into a RawIntent. Failures are returned as Rejection values:

- deadline expired              -> TIMEOUT (never retried)
- connection refused / HTTP 5xx -> UPSTREAM_UNAVAILABLE (retried after a fixed backoff)
- unusable reply content        -> MALFORMED_REPLY (never retried)

Endpoint state (readiness, last error, latency) is an explicit object owned by
the caller so the pipeline can be tested without a live runtime.
"""

from __future__ import annotations

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

import aiohttp

from logging_setup import get_logger, Component as LogComponent
from observability.events import Component as ObsComponent, EventEmitter, Severity

from .actions import RawIntent, Rejection, RejectionKind
from .config import PipelineConfig
from .prompt import PromptRequest
from .reply_parser import parse_reply


logger = get_logger(LogComponent.INTENT_CLIENT)
emitter = EventEmitter(ObsComponent.INTENT_CLIENT)


@dataclass
class EndpointState:
    """What we last observed about the chat endpoint."""

    ready: bool = False
    last_error: Optional[str] = None
    last_latency_ms: Optional[int] = None
    requests: int = 0
    failures: int = 0

    def record_success(self, latency_ms: int) -> None:
        self.ready = True
        self.last_error = None
        self.last_latency_ms = latency_ms

    def record_failure(self, error: str) -> None:
        self.ready = False
        self.failures += 1
        self.last_error = error


def tags_endpoint(chat_endpoint: str) -> str:
    """Ollama lists installed models at /api/tags next to /api/chat."""
    if chat_endpoint.rstrip("/").endswith("/api/chat"):
        return chat_endpoint.rstrip("/")[: -len("/api/chat")] + "/api/tags"
    return chat_endpoint


def extract_message_content(body: str) -> Union[str, Rejection]:
    """
    Pull the assistant message text out of a chat response body.

    Accepts Ollama's {"message": {"content": ...}} and the OpenAI-compatible
    {"choices": [{"message": {"content": ...}}]} shapes.
    """
    try:
        data = json.loads(body)
    except (json.JSONDecodeError, RecursionError):
        return Rejection(RejectionKind.MALFORMED_REPLY, "response body is not JSON")
    if not isinstance(data, dict):
        return Rejection(RejectionKind.MALFORMED_REPLY, "response body is not an object")

    message = data.get("message")
    if message is None:
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")

    content = message.get("content") if isinstance(message, dict) else None
    if not isinstance(content, str) or not content.strip():
        return Rejection(RejectionKind.MALFORMED_REPLY, "response has no message content")
    return content.strip()


class IntentClient:
    """Resolves a prompt into a RawIntent via the chat endpoint."""

    def __init__(
        self,
        endpoint: str,
        model: str,
        *,
        state: Optional[EndpointState] = None,
        max_retries: int = 1,
        retry_backoff: float = 0.5,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.endpoint = endpoint
        self.model = model
        self.state = state if state is not None else EndpointState()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self._sleep = sleep

    @classmethod
    def from_config(cls, config: PipelineConfig, state: Optional[EndpointState] = None) -> "IntentClient":
        return cls(
            config.chat_endpoint,
            config.model,
            state=state,
            max_retries=config.max_retries,
            retry_backoff=config.retry_backoff_seconds,
        )

    async def resolve(
        self,
        request: PromptRequest,
        timeout: float,
        command_id: str = "",
    ) -> Union[RawIntent, Rejection]:
        """
        Send one prompt and parse the reply.

        Only UPSTREAM_UNAVAILABLE is retried; each attempt gets the full timeout.
        """
        attempt = 0
        while True:
            result = await self._attempt(request, timeout, command_id)
            retryable = isinstance(result, Rejection) and result.kind == RejectionKind.UPSTREAM_UNAVAILABLE
            if not retryable or attempt >= self.max_retries:
                return result

            attempt += 1
            emitter.emit(
                "intent.retry",
                command_id=command_id,
                severity=Severity.WARN,
                attempt=attempt,
                reason=result.detail,
                backoff_ms=int(self.retry_backoff * 1000),
            )
            await self._sleep(self.retry_backoff)

    async def _attempt(
        self,
        request: PromptRequest,
        timeout: float,
        command_id: str,
    ) -> Union[RawIntent, Rejection]:
        payload = request.payload(self.model)
        start_ts = time.monotonic()
        self.state.requests += 1
        try:
            status, body = await asyncio.wait_for(self._post_chat(payload, timeout), timeout=timeout)
        except asyncio.TimeoutError:
            # Checked before connection errors: aiohttp's timeout errors are also ClientConnectionErrors
            self.state.record_failure("timeout")
            logger.warning(
                "Chat request timed out",
                command_id=command_id,
                endpoint=self.endpoint,
                timeout_s=timeout,
            )
            return Rejection(RejectionKind.TIMEOUT, f"no reply within {timeout:g}s")
        except (aiohttp.ClientError, OSError) as e:
            self.state.record_failure(type(e).__name__)
            logger.warning(
                "Chat endpoint unavailable",
                command_id=command_id,
                endpoint=self.endpoint,
                error=str(e),
                error_type=type(e).__name__,
            )
            return Rejection(RejectionKind.UPSTREAM_UNAVAILABLE, f"{type(e).__name__}: {e}")

        latency_ms = int((time.monotonic() - start_ts) * 1000)
        if not 200 <= status < 300:
            self.state.record_failure(f"http_{status}")
            logger.warning(
                "Chat endpoint returned error status",
                command_id=command_id,
                endpoint=self.endpoint,
                status=status,
                latency_ms=latency_ms,
            )
            return Rejection(RejectionKind.UPSTREAM_UNAVAILABLE, f"HTTP {status}")

        self.state.record_success(latency_ms)
        logger.info("Chat reply received", command_id=command_id, status=status, latency_ms=latency_ms)

        try:
            text = body.decode("utf-8")
        except UnicodeDecodeError:
            return Rejection(RejectionKind.MALFORMED_REPLY, "response body is not UTF-8")

        content = extract_message_content(text)
        if isinstance(content, Rejection):
            return content
        logger.debug("Model content", command_id=command_id, content_length=len(content))
        return parse_reply(content)

    async def _post_chat(self, payload: dict[str, Any], timeout: float) -> Tuple[int, bytes]:
        """POST the chat payload and return (status, raw body)."""
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as s:
            async with s.post(self.endpoint, json=payload) as resp:
                return resp.status, await resp.read()

    async def check_ready(self, timeout: float = 2.0) -> bool:
        """
        Probe the runtime's model listing. Updates state; never raises for
        network problems.
        """
        url = tags_endpoint(self.endpoint)
        start_ts = time.monotonic()
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=timeout)) as s:
                async with s.get(url) as resp:
                    ok = 200 <= resp.status < 300
        except (asyncio.TimeoutError, aiohttp.ClientError, OSError) as e:
            self.state.record_failure(type(e).__name__)
            logger.warning("Chat endpoint readiness probe failed", endpoint=url, error_type=type(e).__name__)
            return False

        latency_ms = int((time.monotonic() - start_ts) * 1000)
        if ok:
            self.state.record_success(latency_ms)
        else:
            self.state.record_failure(f"http_{resp.status}")
        logger.info("Chat endpoint readiness probe", endpoint=url, ready=ok, latency_ms=latency_ms)
        return ok
