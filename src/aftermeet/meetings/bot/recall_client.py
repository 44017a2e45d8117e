"""Async HTTP client wrapper for Recall.ai REST API.

Provides RecallClient with a tenacity retry policy for transient failures
(timeouts, connection errors, HTTP 429 and 5xx): exponential backoff whose
delay doubles per attempt from a configurable base, up to a configurable
attempt count. Non-transient HTTP errors are raised on the first attempt.
Bot creation is only retried when the POST provably never landed.

Methods cover what the meeting pipeline needs: create a bot, read its state,
download the transcript, and delete a bot that is no longer wanted.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger(__name__)

# Bot states reported by GET /bots/{id}/
STATE_MEDIA_READY = "media_ready"
TERMINAL_FAILURE_STATES = frozenset({"done", "error", "fatal"})


class RecallAPIError(Exception):
    """Permanent Recall.ai failure (rejected request or exhausted retries)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def is_transient_error(exc: BaseException) -> bool:
    """True for failures worth retrying: network blips, 429 and 5xx."""
    if isinstance(exc, (httpx.TimeoutException, httpx.ConnectError)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


def is_unsent_error(exc: BaseException) -> bool:
    """True when the request cannot have reached Recall.ai: connect failures and 429.

    Only these are retried for bot creation; a timeout or 5xx may follow an
    accepted request, and a second POST would put a second bot in the call.
    """
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code == 429
    return False


class RecallClient:
    """Async client for Recall.ai REST API.

    Uses httpx.AsyncClient with a caller-specified timeout per request type.
    Timeouts count as transient failures and go through the same retry
    policy as rate limiting.

    Args:
        api_key: Recall.ai API token.
        region: Recall.ai region (default: us-west-2).
        timeout: Read timeout in seconds for status/transcript requests.
        max_attempts: Total attempts per request before giving up.
        backoff_base: Delay in seconds before the first retry; doubles per attempt.
        sleep: Awaitable sleep used between retries (injectable for tests).
    """

    TIMEOUT_MUTATE = 30.0  # create/delete operations

    def __init__(
        self,
        api_key: str,
        region: str = "us-west-2",
        timeout: float = 10.0,
        max_attempts: int = 3,
        backoff_base: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._api_key = api_key
        self._base_url = f"https://{region}.recall.ai/api/v1"
        self._headers = {
            "Authorization": f"Token {api_key}",
            "Content-Type": "application/json",
        }
        self._timeout = timeout
        self._max_attempts = max_attempts
        self._backoff_base = backoff_base
        self._sleep = sleep

    def _client(self, timeout: float, authenticated: bool = True) -> httpx.AsyncClient:
        """Create a new httpx client with specified timeout."""
        return httpx.AsyncClient(
            headers=self._headers if authenticated else None,
            timeout=timeout,
        )

    def _retrying(
        self, retry_on: Callable[[BaseException], bool] = is_transient_error
    ) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base),
            retry=retry_if_exception(retry_on),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )

    @staticmethod
    def _log_retry(retry_state: Any) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "recall.retrying",
            attempt=retry_state.attempt_number,
            wait_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(exc),
        )

    async def _request(
        self,
        method: str,
        url: str,
        timeout: float,
        authenticated: bool = True,
        retry_on: Callable[[BaseException], bool] = is_transient_error,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one request under the retry policy and raise on HTTP errors."""
        async for attempt in self._retrying(retry_on):
            with attempt:
                async with self._client(timeout, authenticated) as client:
                    if method == "GET":
                        response = await client.get(url, **kwargs)
                    elif method == "POST":
                        response = await client.post(url, **kwargs)
                    else:
                        response = await client.delete(url, **kwargs)
                    response.raise_for_status()
                    return response
        raise RecallAPIError(f"{method} {url} failed")  # pragma: no cover

    async def create_bot(self, config: dict) -> dict:
        """Create a new meeting bot.

        POST /bots/ with the bot configuration including calendar_invite and
        the platform-specific block.

        Args:
            config: Complete bot creation configuration dict.

        Returns:
            Bot creation response with bot id.

        Raises:
            RecallAPIError: If the provider rejects the request.
            httpx.HTTPError: On a timeout or 5xx (not retried), or when connect
                failures or rate limiting outlast the retry policy.
        """
        try:
            response = await self._request(
                "POST",
                f"{self._base_url}/bots/",
                self.TIMEOUT_MUTATE,
                retry_on=is_unsent_error,
                json=config,
            )
        except httpx.HTTPStatusError as exc:
            if is_transient_error(exc):
                raise
            raise RecallAPIError(
                f"Recall.ai rejected bot creation: {exc.response.status_code} {exc.response.text}",
                status_code=exc.response.status_code,
            ) from exc
        data = response.json()
        logger.info(
            "recall.bot_created",
            bot_id=data.get("id"),
            status="created",
        )
        return data

    async def get_bot(self, bot_id: str) -> dict:
        """Get bot state.

        GET /bots/{bot_id}/ returns the bot's ``state`` and, once the
        recording is processed, a ``transcript_url``.

        Args:
            bot_id: Recall.ai bot identifier.

        Returns:
            Bot detail response.
        """
        response = await self._request(
            "GET",
            f"{self._base_url}/bots/{bot_id}/",
            self._timeout,
        )
        data = response.json()
        logger.debug(
            "recall.bot_state",
            bot_id=bot_id,
            state=data.get("state"),
        )
        return data

    async def fetch_transcript(self, transcript_url: str) -> list[dict]:
        """Download transcript segments from a (pre-signed) transcript URL.

        Args:
            transcript_url: URL reported by get_bot.

        Returns:
            Ordered list of segment dicts, each carrying ``text``.
        """
        response = await self._request(
            "GET",
            transcript_url,
            self._timeout,
            authenticated=False,
        )
        data = response.json()
        segments = data if isinstance(data, list) else []
        logger.info(
            "recall.transcript_retrieved",
            segment_count=len(segments),
        )
        return segments

    async def delete_bot(self, bot_id: str) -> None:
        """Delete a scheduled bot so it does not join the meeting.

        DELETE /bots/{bot_id}/

        Args:
            bot_id: Recall.ai bot identifier.
        """
        await self._request(
            "DELETE",
            f"{self._base_url}/bots/{bot_id}/",
            self.TIMEOUT_MUTATE,
        )
        logger.info(
            "recall.bot_deleted",
            bot_id=bot_id,
            operation="delete",
        )


def join_transcript(segments: list[dict]) -> str:
    """Concatenate transcript segment texts with single spaces.

    Missing or blank segments contribute nothing.
    """
    parts = []
    for segment in segments:
        text = segment.get("text") if isinstance(segment, dict) else None
        if text and text.strip():
            parts.append(text.strip())
    return " ".join(parts)
