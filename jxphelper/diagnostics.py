"""Debug timing and error display for the JXP client."""

import json
import secrets
import string
import time
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

import httpx
from loguru import logger

from .exceptions import decode_body

_ALPHABET = string.ascii_lowercase + string.digits


def random_string(length: int = 22) -> str:
    """Random suffix used to tell concurrent timings apart."""
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


@contextmanager
def timed(operation: str, type: str, enabled: bool) -> Iterator[None]:  # noqa: A002
    """Log start/end markers for ``operation`` when ``enabled``."""
    if not enabled:
        yield
        return
    label = f"{operation}.{type}-{random_string()}"
    logger.debug(f"{label}: started")
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.debug(f"{label}: {(time.perf_counter() - start) * 1000:.3f}ms")


def display_error(err: Exception, response: httpx.Response | None = None) -> None:
    """Log one line describing a failed request. Never raises.

    ``response`` defaults to the one attached to ``err``; pass it when the
    error was raised from a response httpx itself accepted.
    """
    try:
        if response is None:
            response = err.response  # type: ignore[attr-defined]
        request = response.request
        body = decode_body(response)
        data = json.dumps(body) if body is not None else "No data"
        logger.error(
            f"{datetime.now(timezone.utc).isoformat()}\turl: {request.url}"
            f"\tmethod: {request.method}\tstatus: {response.status_code}"
            f"\tstatusText: {response.reason_phrase}\tdata: {data}"
        )
    except Exception:
        logger.error(repr(err))


def describe(err: httpx.HTTPError) -> str:
    """Short description for a transport failure."""
    try:
        return f"{err.request.method} {err.request.url}: {err}"
    except RuntimeError:
        return str(err)
