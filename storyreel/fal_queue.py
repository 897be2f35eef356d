# File: storyreel/fal_queue.py
"""
fal.ai Queue Client (REST) with an explicit poll state machine.

Every fal.ai model used by StoryReel (image, video, speech, transcription) runs
through the same queue cycle:

    POST {queue}/{model_id}          -> request_id, status_url, response_url
    GET  status_url                  -> IN_QUEUE | IN_PROGRESS | COMPLETED | FAILED
    GET  response_url                -> model output JSON

Polling is modelled as states:

    Submitted -> Polling(attempt) ... -> Completed(result) | Failed(error) | TimedOut

`QueuePoller` drives the transitions with an injected `sleep`, so the bounded
attempt count and timeout can be exercised without real delays.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Union

import aiohttp

from .config import PipelineConfig

DEFAULT_SUBMIT_TIMEOUT_SEC = 30
DEFAULT_STATUS_TIMEOUT_SEC = 30
DEFAULT_RESULT_TIMEOUT_SEC = 60

PENDING_STATUSES = ("IN_QUEUE", "IN_PROGRESS")
FAILED_STATUSES = ("FAILED", "CANCELLED", "ERROR")

CONTENT_POLICY_MESSAGE = ("CONTENT_POLICY_VIOLATION: The input violates content policy and cannot be processed. "
                          "Use a different prompt or image that complies with content guidelines.")

logger = logging.getLogger(__name__)


class FalApiError(Exception):
    def __init__(self, message, status_code=None, error_body=None):
        super().__init__(message)
        self.status_code = status_code
        self.error_body = str(error_body) if error_body is not None else ""

    def __str__(self):
        body = self.error_body
        return (f"{super().__str__()} "
                f"(Status: {self.status_code if self.status_code else 'N/A'}, "
                f"Body: {body[:200]}{'...' if len(body) > 200 else ''})")


class FalTimeoutError(FalApiError):
    """Raised when a job is still pending after the maximum number of polls."""
    pass


# --- Poll states ---

@dataclass(frozen=True)
class Submitted:
    request_id: str
    status_url: str
    response_url: str


@dataclass(frozen=True)
class Polling:
    attempt: int
    status: str = "IN_QUEUE"
    queue_position: Optional[int] = None


@dataclass(frozen=True)
class Completed:
    result: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Failed:
    error: str


@dataclass(frozen=True)
class TimedOut:
    attempts: int


PollState = Union[Submitted, Polling, Completed, Failed, TimedOut]


def transition(attempt: int, status_data: Dict[str, Any], max_attempts: int) -> PollState:
    """
    Maps one status response to the next state. COMPLETED maps to an empty
    `Completed`; the poller fills in the result afterwards.
    """
    status = str(status_data.get("status", "")).upper()
    if status == "COMPLETED":
        return Completed()
    if status in FAILED_STATUSES:
        return Failed(error=str(status_data.get("error") or f"Job ended with status {status}"))
    if status in PENDING_STATUSES:
        if attempt >= max_attempts:
            return TimedOut(attempts=attempt)
        return Polling(attempt=attempt, status=status, queue_position=status_data.get("queue_position"))
    return Failed(error=f"Unknown job status: {status or 'missing'}")


class QueuePoller:
    """Runs the poll state machine for one submitted job until a terminal state."""

    def __init__(self,
                 fetch_status: Callable[[Submitted], Awaitable[Dict[str, Any]]],
                 fetch_result: Callable[[Submitted], Awaitable[Dict[str, Any]]],
                 max_attempts: int = 300,
                 interval_seconds: float = 2.0,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
                 on_state: Optional[Callable[[PollState], None]] = None):
        self._fetch_status = fetch_status
        self._fetch_result = fetch_result
        self.max_attempts = max(1, max_attempts)
        self.interval_seconds = interval_seconds
        self._sleep = sleep
        self._on_state = on_state

    def _emit(self, state: PollState) -> PollState:
        if self._on_state: self._on_state(state)
        return state

    async def run(self, submitted: Submitted) -> PollState:
        self._emit(submitted)
        attempt = 0
        while True:
            attempt += 1
            status_data = await self._fetch_status(submitted)
            state = self._emit(transition(attempt, status_data, self.max_attempts))
            if isinstance(state, Polling):
                await self._sleep(self.interval_seconds)
                continue
            if isinstance(state, Completed):
                result = await self._fetch_result(submitted)
                return self._emit(Completed(result=result))
            return state


class FalQueueClient:
    """
    Thin async client for the fal.ai queue REST API. One instance is shared by all
    model clients of a run; call `close()` when done.
    """

    def __init__(self, config: PipelineConfig, session: Optional[aiohttp.ClientSession] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        if not config.fal_key:
            raise ValueError("fal.ai API key is required (FAL_KEY).")
        self.base_url = config.fal_queue_base_url.rstrip("/")
        self.poll_max_attempts = config.poll_max_attempts
        self.poll_interval_seconds = config.poll_interval_seconds
        self._headers = {"Authorization": f"Key {config.fal_key}", "Content-Type": "application/json"}
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self.total_jobs = 0
        self.total_failed_jobs = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
            logger.debug("Aiohttp session closed for FalQueueClient.")
        self._session = None

    async def _request(self, method: str, url: str, timeout_sec: int, payload: Optional[Dict[str, Any]] = None) -> Any:
        session = await self._get_session()
        data = json.dumps(payload) if payload is not None else None
        try:
            async with session.request(method, url, data=data, headers=self._headers,
                                       timeout=aiohttp.ClientTimeout(total=timeout_sec)) as response:
                response_text = await response.text()
                if not (200 <= response.status < 300):
                    logger.error(f"Fal API Error: {method} {url} - Status {response.status} - Body: {response_text[:500]}")
                    raise self._error_for_status(url, response.status, response_text)
                try:
                    return json.loads(response_text)
                except json.JSONDecodeError as e:
                    raise FalApiError(f"Failed to decode JSON from {url}", status_code=response.status, error_body=response_text) from e
        except asyncio.TimeoutError as e:
            raise FalApiError(f"Request to {url} timed out after {timeout_sec}s", status_code=408) from e
        except aiohttp.ClientError as e:
            raise FalApiError(f"Client error ({type(e).__name__}) for {url}: {e}") from e

    @staticmethod
    def _error_for_status(url: str, status: int, body: str) -> FalApiError:
        if status == 422:
            try:
                detail = json.loads(body).get("detail")
                if isinstance(detail, list) and detail and isinstance(detail[0], dict) \
                        and detail[0].get("type") == "content_policy_violation":
                    logger.warning("Content policy violation detected.")
                    return FalApiError(CONTENT_POLICY_MESSAGE, status_code=status, error_body=body)
            except (json.JSONDecodeError, AttributeError):
                pass
            return FalApiError(f"Validation error from {url}", status_code=status, error_body=body)
        if status in (401, 403):
            return FalApiError(f"Unauthorized: fal.ai rejected the API key for {url}", status_code=status, error_body=body)
        return FalApiError(f"Request to {url} failed with status {status}", status_code=status, error_body=body)

    async def submit(self, model_id: str, payload: Dict[str, Any]) -> Submitted:
        url = f"{self.base_url}/{model_id}"
        logger.debug(f"Submitting job to {url}. Payload keys: {list(payload.keys())}")
        data = await self._request("POST", url, DEFAULT_SUBMIT_TIMEOUT_SEC, payload=payload)
        request_id = data.get("request_id")
        status_url = data.get("status_url")
        response_url = data.get("response_url")
        if not all([request_id, status_url, response_url]):
            raise FalApiError("Submission response missing critical fields.", error_body=data)
        self.total_jobs += 1
        logger.info(f"Job submitted to {model_id}. Request ID: {request_id}")
        return Submitted(request_id=request_id, status_url=status_url, response_url=response_url)

    async def fetch_status(self, submitted: Submitted) -> Dict[str, Any]:
        return await self._request("GET", submitted.status_url, DEFAULT_STATUS_TIMEOUT_SEC)

    async def fetch_result(self, submitted: Submitted) -> Dict[str, Any]:
        return await self._request("GET", submitted.response_url, DEFAULT_RESULT_TIMEOUT_SEC)

    async def run(self, model_id: str, payload: Dict[str, Any], log_prefix: str = "FalQueue") -> Dict[str, Any]:
        """Submits a job, polls it to a terminal state and returns the model output."""
        start_time = time.monotonic()
        submitted = await self.submit(model_id, payload)

        def _log_state(state: PollState):
            if isinstance(state, Polling):
                position = f", queue position {state.queue_position}" if state.queue_position is not None else ""
                logger.debug(f"{log_prefix}: poll {state.attempt}/{self.poll_max_attempts} - {state.status}{position}")

        poller = QueuePoller(self.fetch_status, self.fetch_result, max_attempts=self.poll_max_attempts,
                             interval_seconds=self.poll_interval_seconds, sleep=self._sleep, on_state=_log_state)
        state = await poller.run(submitted)
        duration = time.monotonic() - start_time

        if isinstance(state, Completed):
            logger.info(f"{log_prefix}: job {submitted.request_id} completed ({duration:.1f}s)")
            return state.result
        self.total_failed_jobs += 1
        if isinstance(state, TimedOut):
            raise FalTimeoutError(f"Job timeout: {submitted.request_id} still pending after {state.attempts} polls "
                                  f"({state.attempts * self.poll_interval_seconds:.0f}s)", status_code=408)
        raise FalApiError(f"Job {submitted.request_id} failed: {state.error}", error_body=state.error)
