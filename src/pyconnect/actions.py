"""Async convenience actions: JSON-aware HTTP requests and delays."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from typing import Any

import aiohttp
from pydantic import BaseModel, ConfigDict

from pyconnect.exceptions import ActionError, ActionTimeoutError

_logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


class ApiResponse(BaseModel):
    """Decoded HTTP response."""

    model_config = ConfigDict(frozen=True)

    data: Any = None
    status: int
    ok: bool


async def api(
    url: str,
    method: str = "GET",
    *,
    body: Any = None,
    headers: Mapping[str, str] | None = None,
    timeout: float = DEFAULT_TIMEOUT_S,
    session: aiohttp.ClientSession | None = None,
) -> ApiResponse:
    """Send an HTTP request and decode the response.

    *body* is JSON-encoded for every method except ``GET``. The response is
    parsed as JSON when its content type says so and returned as text
    otherwise. Non-2xx statuses are not errors: check ``ok``.

    Raises
    ------
    ActionTimeoutError
        The request did not complete within *timeout* seconds.
    ActionError
        Connection failure or a JSON body that cannot be decoded.
    """
    method = method.upper()
    request_headers = {"Content-Type": "application/json", **(headers or {})}
    kwargs: dict[str, Any] = {"headers": request_headers}
    if body is not None and method != "GET":
        kwargs["json"] = body

    owns_session = session is None
    http = session if session is not None else aiohttp.ClientSession()
    _logger.debug("%s %s", method, url)
    try:
        async with asyncio.timeout(timeout):
            async with http.request(method, url, **kwargs) as resp:
                data: Any
                if "application/json" in resp.headers.get("Content-Type", ""):
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError as exc:
                        raise ActionError(f"Invalid JSON from {url}: {exc}", url=url) from exc
                else:
                    data = await resp.text()
                return ApiResponse(data=data, status=resp.status, ok=resp.ok)
    except TimeoutError as exc:
        raise ActionTimeoutError(f"Request timeout after {timeout}s: {url}", url=url) from exc
    except aiohttp.ClientError as exc:
        raise ActionError(f"Request to {url} failed: {exc}", url=url) from exc
    finally:
        if owns_session:
            await http.close()


async def delay(seconds: float) -> None:
    """Sleep for *seconds*."""
    await asyncio.sleep(seconds)
