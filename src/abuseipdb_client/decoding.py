"""
Response decoding.

Turns raw response bodies into ApiResult values. Decoding never raises:
bodies that cannot be parsed are logged and reported as DECODE_FAILURE.
"""

import json
import logging
from enum import Enum
from typing import Iterable, Optional, Union

import aiohttp

from .config import TRACE
from .results import ApiResult

logger = logging.getLogger("abuseipdb_client")

Body = Union[bytes, str]


class DecodeMode(str, Enum):
    JSON = "json"
    PLAINTEXT = "plaintext"


def is_blank(chunk: Body) -> bool:
    """True for empty or whitespace-only data."""
    return not chunk or chunk.isspace()


def collect_chunks(chunks: Iterable[bytes]) -> bytes:
    """Concatenate response chunks in arrival order, skipping blank ones."""
    return b"".join(chunk for chunk in chunks if not is_blank(chunk))


async def read_body(response: aiohttp.ClientResponse) -> bytes:
    """Drain a response body chunk by chunk."""
    chunks = [chunk async for chunk in response.content.iter_any()]
    return collect_chunks(chunks)


def _to_text(raw_body: Body) -> str:
    if isinstance(raw_body, bytes):
        return raw_body.decode("utf-8", errors="replace")
    return raw_body


def decode_json(raw_body: Body, log: Optional[logging.Logger] = None) -> ApiResult:
    """
    Parse a JSON response body.

    Returns:
        OK with the parsed value, EMPTY for a blank body, or DECODE_FAILURE
    """
    log = log or logger
    text = _to_text(raw_body)

    if is_blank(text):
        log.debug("Response body was empty")
        return ApiResult.empty()

    try:
        return ApiResult.success(json.loads(text))
    except json.JSONDecodeError as e:
        log.error(f"Failed to parse JSON: {e}")
        log.log(TRACE, f"Erroneous output: {text}")
        return ApiResult.decode_failure(text, f"Invalid JSON: {e}")


def decode_plaintext(raw_body: Body, log: Optional[logging.Logger] = None) -> ApiResult:
    """
    Decode a plaintext response body.

    JSON bodies (e.g. API errors) are returned pretty-printed, anything
    else verbatim.
    """
    log = log or logger
    text = _to_text(raw_body)

    if is_blank(text):
        log.debug("Response body was empty")
        return ApiResult.empty()

    try:
        return ApiResult.success(json.dumps(json.loads(text), indent=2))
    except json.JSONDecodeError:
        return ApiResult.success(text)


def decode(raw_body: Body, mode: DecodeMode = DecodeMode.JSON, log: Optional[logging.Logger] = None) -> ApiResult:
    """Decode a response body according to mode."""
    if mode == DecodeMode.PLAINTEXT:
        return decode_plaintext(raw_body, log)
    return decode_json(raw_body, log)
