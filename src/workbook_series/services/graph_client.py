"""Microsoft Graph client for workbooks shared by link.

Shared files are addressed through the ``/shares/{share_id}`` endpoint,
where the share id is the sharing URL encoded as ``"u!" + base64url``.
Throttled responses (429/503) are retried with exponential backoff via
tenacity, honoring ``Retry-After`` when Graph sends it.
"""

from __future__ import annotations

import base64
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field
from tenacity import (
    RetryCallState,
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from workbook_series.config import settings
from workbook_series.utils.exceptions import (
    ErrorCode,
    GraphAPIError,
    GraphAuthError,
    GraphRateLimitError,
    SyncError,
)
from workbook_series.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

_AUTH_STATUSES = frozenset({401, 403})
_THROTTLE_STATUSES = frozenset({429, 503})


def share_id_from_link(link: str) -> str:
    """Encode a sharing URL as a Graph share id (``u!`` + unpadded base64url)."""
    if not link:
        return ""
    encoded = base64.urlsafe_b64encode(link.encode("utf-8")).decode("ascii")
    return "u!" + encoded.rstrip("=")


class DriveItemMeta(BaseModel):
    """The driveItem fields used for change detection."""

    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    etag: str | None = Field(default=None, alias="eTag")
    last_modified: str | None = Field(default=None, alias="lastModifiedDateTime")
    web_url: str | None = Field(default=None, alias="webUrl")
    size: int | None = None


class _WaitRetryAfter(wait_base):
    """Wait what Retry-After asks for, else defer to the fallback strategy."""

    def __init__(self, fallback: wait_base, max_wait: float) -> None:
        self.fallback = fallback
        self.max_wait = max_wait

    def __call__(self, retry_state: RetryCallState) -> float:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        if isinstance(error, GraphRateLimitError) and error.retry_after is not None:
            return max(0.0, min(error.retry_after, self.max_wait))
        return self.fallback(retry_state)


def graph_retry(
    max_attempts: int, min_wait: float, max_wait: float
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Retry decorator for throttled Graph calls."""
    return retry(
        retry=retry_if_exception_type(GraphRateLimitError),
        stop=stop_after_attempt(max_attempts),
        wait=_WaitRetryAfter(
            wait_exponential(multiplier=1, min=min_wait, max=max_wait), max_wait
        ),
        before_sleep=before_sleep_log(logger.logger, logging.WARNING),
        reraise=True,
    )


def _parse_retry_after(value: str | None) -> float | None:
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        # HTTP-date form; fall back to exponential backoff
        return None


def _error_message(response: httpx.Response) -> str | None:
    try:
        body: Any = response.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return None


class GraphClient:
    """Async client for the two driveItem calls the sync workflow needs."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        max_attempts: int | None = None,
        min_wait: float | None = None,
        max_wait: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Graph base URL. Defaults to settings.
            timeout: Request timeout in seconds. Defaults to settings.
            max_attempts: Attempts per request when throttled.
            min_wait: Lower bound of the exponential backoff.
            max_wait: Upper bound of any single wait.
            transport: Optional httpx transport, used by tests.
        """
        self.base_url = (base_url or settings.graph_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.sync_timeout_seconds
        self._transport = transport
        self._get = graph_retry(
            max_attempts if max_attempts is not None else settings.sync_max_attempts,
            min_wait if min_wait is not None else settings.sync_backoff_min_seconds,
            max_wait if max_wait is not None else settings.sync_backoff_max_seconds,
        )(self._get_once)

    async def fetch_meta(self, share_id: str, token: str) -> DriveItemMeta:
        """Fetch name, eTag and modification time of a shared item."""
        response = await self._get(f"/shares/{share_id}/driveItem", token, "fetch_meta")
        try:
            return DriveItemMeta.model_validate(response.json())
        except ValueError as e:
            # covers both undecodable JSON and a body of the wrong shape
            logger.error("Unexpected driveItem payload", error=str(e))
            raise GraphAPIError(
                response.status_code,
                "Microsoft Graph returned an unreadable driveItem response",
                details={"operation": "fetch_meta"},
            ) from e

    async def fetch_content(self, share_id: str, token: str) -> bytes:
        """Download the binary content of a shared item."""
        response = await self._get(
            f"/shares/{share_id}/driveItem/content", token, "fetch_content"
        )
        return response.content

    async def _get_once(self, path: str, token: str, operation: str) -> httpx.Response:
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                response = await client.get(
                    path, headers={"Authorization": f"Bearer {token}"}
                )
        except httpx.HTTPError as e:
            logger.log_api_call(
                service="graph",
                operation=operation,
                duration_seconds=time.perf_counter() - start,
                success=False,
                error_message=str(e),
            )
            raise SyncError(
                f"Could not reach Microsoft Graph: {e}",
                ErrorCode.GRAPH_API_ERROR,
                details={"operation": operation},
            ) from e

        duration = time.perf_counter() - start
        if response.is_success:
            logger.log_api_call(
                service="graph",
                operation=operation,
                duration_seconds=duration,
                status_code=response.status_code,
            )
            return response

        message = _error_message(response)
        logger.log_api_call(
            service="graph",
            operation=operation,
            duration_seconds=duration,
            status_code=response.status_code,
            success=False,
            error_message=message,
        )
        status = response.status_code
        if status in _THROTTLE_STATUSES:
            raise GraphRateLimitError(
                status,
                retry_after=_parse_retry_after(response.headers.get("Retry-After")),
                message=message,
            )
        if status in _AUTH_STATUSES:
            raise GraphAuthError(status, message)
        raise GraphAPIError(status, message)
