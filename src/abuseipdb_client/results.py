"""
Result and error types shared by the client and the service layer.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class AbuseIPDBError(Exception):
    """Base class for errors raised by the client."""


class InvalidInputError(AbuseIPDBError, ValueError):
    """Local input was rejected before any network activity."""


class CategoryExpansionError(AbuseIPDBError, RuntimeError):
    """A non-zero category flag set expanded to no API category ids."""


class BulkReportFileError(AbuseIPDBError, OSError):
    """The CSV given for a bulk report is missing, not a file or unreadable."""


class KeyMismatchError(AbuseIPDBError):
    """A registry was asked for a client with a different API key."""


class ClientClosedError(AbuseIPDBError):
    """The client was used after close()."""


class ResultStatus(str, Enum):
    """Outcome of an API call."""
    OK = "ok"
    EMPTY = "empty"
    INVALID_INPUT = "invalid_input"
    TRANSPORT_FAILURE = "transport_failure"
    DECODE_FAILURE = "decode_failure"


@dataclass(frozen=True)
class ApiResult:
    """
    The result of one API exchange.

    ``value`` holds the parsed JSON (or text for the plaintext blacklist)
    when ``status`` is OK. Failures carry a human readable ``error`` and,
    for decode failures, the ``raw_body`` that could not be parsed.
    """
    status: ResultStatus
    value: Any = None
    error: Optional[str] = None
    raw_body: Optional[str] = None
    http_status: Optional[int] = None

    @classmethod
    def success(cls, value: Any, http_status: Optional[int] = None) -> "ApiResult":
        return cls(ResultStatus.OK, value=value, http_status=http_status)

    @classmethod
    def empty(cls, http_status: Optional[int] = None) -> "ApiResult":
        return cls(ResultStatus.EMPTY, http_status=http_status)

    @classmethod
    def invalid_input(cls, reason: str) -> "ApiResult":
        return cls(ResultStatus.INVALID_INPUT, error=reason)

    @classmethod
    def transport_failure(cls, detail: str) -> "ApiResult":
        return cls(ResultStatus.TRANSPORT_FAILURE, error=detail)

    @classmethod
    def decode_failure(cls, raw_body: str, detail: str, http_status: Optional[int] = None) -> "ApiResult":
        return cls(ResultStatus.DECODE_FAILURE, error=detail, raw_body=raw_body, http_status=http_status)

    def with_http_status(self, http_status: Optional[int]) -> "ApiResult":
        return ApiResult(self.status, self.value, self.error, self.raw_body, http_status)

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.OK

    @property
    def failed(self) -> bool:
        return self.status not in (ResultStatus.OK, ResultStatus.EMPTY)

    @property
    def is_empty(self) -> bool:
        """True when there is no payload, whatever the reason."""
        return self.value is None or self.value == "" or self.value == {} or self.value == []

    @property
    def http_error(self) -> bool:
        """True when the API answered with a 4xx/5xx status."""
        return self.http_status is not None and self.http_status >= 400

    def __bool__(self) -> bool:
        return self.ok and not self.is_empty

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.ok and not self.http_error,
            "status": self.status.value,
        }
        if self.http_status is not None:
            result["http_status"] = self.http_status
        if self.ok:
            result["data"] = self.value
        if self.error:
            result["error"] = self.error
        if self.raw_body is not None:
            result["raw_body"] = self.raw_body
        return result
