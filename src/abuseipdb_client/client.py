"""
AbuseIPDB API client.

One client owns one aiohttp session, created on first use and reused for
every call until close(). Calls through a client are serialized: at most
one request is in flight per instance. Use one client per concurrent
caller if parallel requests are needed.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import aiohttp
from yarl import URL

from .categories import ReportCategories
from .config import (
    API_BASE_URL,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_MINIMUM_CONFIDENCE,
    DEFAULT_REQUEST_TIMEOUT,
    MAX_IPS_BASIC_SUB,
    ApiEndpoint,
    get_endpoint,
)
from .decoding import DecodeMode, decode, read_body
from .encoding import (
    FORM_CONTENT,
    JSON_CONTENT,
    build_blacklist_query,
    build_bulk_form,
    build_check_block_query,
    build_check_query,
    build_headers,
    build_report_body,
    mask_key,
    read_csv_upload,
    with_query,
)
from .results import ApiResult, ClientClosedError, InvalidInputError


@dataclass(frozen=True)
class BlacklistOptions:
    """
    Options for a blacklist request.

    ``only_countries`` and ``except_countries`` are mutually exclusive;
    when ``only_countries`` is non-empty it wins.
    """
    limit: int = MAX_IPS_BASIC_SUB
    minimum_confidence: int = DEFAULT_MINIMUM_CONFIDENCE
    only_countries: tuple[str, ...] = field(default_factory=tuple)
    except_countries: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        # accept any iterable but store tuples so options stay immutable
        object.__setattr__(self, "only_countries", tuple(self.only_countries))
        object.__setattr__(self, "except_countries", tuple(self.except_countries))

    def to_query(self, plaintext: bool = False) -> str:
        return build_blacklist_query(
            self.minimum_confidence,
            self.limit,
            self.only_countries,
            self.except_countries,
            plaintext=plaintext
        )


class ClientState(str, Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    CLOSED = "closed"


@dataclass
class PreparedRequest:
    """Everything one exchange needs; discarded when the call ends."""
    endpoint: ApiEndpoint
    url: str
    headers: dict[str, str]
    data: Any = None
    mode: DecodeMode = DecodeMode.JSON


class AbuseIPDBClient:
    """Client for the AbuseIPDB v2 API. See https://docs.abuseipdb.com/."""

    def __init__(
        self,
        api_key: str,
        logger: Optional[logging.Logger] = None,
        base_url: str = API_BASE_URL,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    ):
        if not api_key:
            raise InvalidInputError("API key must not be empty")

        self._api_key = api_key
        self._logger = logger or logging.getLogger("abuseipdb_client")
        self._base_url = base_url
        self._timeout = aiohttp.ClientTimeout(total=timeout, connect=connect_timeout)
        self._session: Optional[aiohttp.ClientSession] = None
        self._closed = False
        self._lock = asyncio.Lock()
        self.request_count = 0

    def __repr__(self) -> str:
        return f"<AbuseIPDBClient key={mask_key(self._api_key)} state={self.state.value}>"

    async def __aenter__(self) -> "AbuseIPDBClient":
        await self.initialise()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def state(self) -> ClientState:
        if self._closed:
            return ClientState.CLOSED
        if self._session is None:
            return ClientState.UNINITIALIZED
        return ClientState.READY

    async def initialise(self) -> aiohttp.ClientSession:
        """Create the underlying session if needed and return it."""
        if self._closed:
            raise ClientClosedError("Client has been closed")

        if self._session is None:
            self._logger.debug(f"Creating HTTP session for key {mask_key(self._api_key)}")
            self._session = aiohttp.ClientSession(timeout=self._timeout)

        return self._session

    async def close(self) -> None:
        """Release the session. The client cannot be used afterwards."""
        if self._closed:
            return

        self._closed = True
        session, self._session = self._session, None
        if session is not None:
            await session.close()
            self._logger.debug("HTTP session closed")

    # =========================================================================
    # Request Plumbing
    # =========================================================================

    def _prepare(
        self,
        endpoint_name: str,
        query: str = "",
        data: Any = None,
        content_type: Optional[str] = None
    ) -> PreparedRequest:
        endpoint = get_endpoint(endpoint_name)

        extra: dict[str, str] = {}
        if endpoint.accept != JSON_CONTENT:
            extra["Accept"] = endpoint.accept
        if content_type:
            extra["Content-Type"] = content_type

        return PreparedRequest(
            endpoint=endpoint,
            url=with_query(endpoint.url(self._base_url), query),
            headers=build_headers(self._api_key, extra),
            data=data,
            mode=DecodeMode.PLAINTEXT if endpoint.accept != JSON_CONTENT else DecodeMode.JSON
        )

    async def _perform(self, request: PreparedRequest) -> ApiResult:
        """Run one exchange and decode its body. Network errors are returned, not raised."""
        async with self._lock:
            session = await self.initialise()
            method = request.endpoint.method.value

            self._logger.debug(f"Connecting to {request.url} ({method})")
            self.request_count += 1

            try:
                async with session.request(
                    method,
                    URL(request.url, encoded=True),
                    headers=request.headers,
                    data=request.data
                ) as response:
                    status = response.status
                    body = await read_body(response)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                detail = str(e) or "request timed out"
                self._logger.error(f"HTTP request failed: {detail} ({type(e).__name__})")
                return ApiResult.transport_failure(f"{type(e).__name__}: {detail}")

        if status >= 400:
            self._logger.warning(f"{request.endpoint.name} returned HTTP {status}")

        return decode(body, request.mode, self._logger).with_http_status(status)

    # =========================================================================
    # API Endpoints
    # =========================================================================

    async def bulk_report(self, csv_path: Union[str, Path]) -> ApiResult:
        """
        Upload a CSV file of reports.

        Args:
            csv_path: Path to a CSV in the format AbuseIPDB documents

        Raises:
            BulkReportFileError: if the file is missing, not a regular file or unreadable
        """
        upload = await asyncio.to_thread(read_csv_upload, csv_path)
        self._logger.debug(f"Bulk reporting {upload.filename} ({upload.size} bytes)")
        request = self._prepare("bulk_report", data=build_bulk_form(upload))
        return await self._perform(request)

    async def check_blocked(self, network: str, subnet_size: int) -> ApiResult:
        """
        Check whether a network has any reported addresses.

        Args:
            network: Network address, e.g. 192.0.2.0
            subnet_size: CIDR prefix length, e.g. 24
        """
        request = self._prepare("check_block", query=build_check_block_query(network, subnet_size))
        return await self._perform(request)

    async def check_ip_address(self, ip_address: str) -> ApiResult:
        """Check whether an IP address has been reported."""
        request = self._prepare("check", query=build_check_query(ip_address))
        return await self._perform(request)

    async def clear_ip_address(self, ip_address: str) -> ApiResult:
        """Remove all reports of an IP address made with this API key."""
        request = self._prepare("clear_address", query=build_check_query(ip_address))
        return await self._perform(request)

    async def get_blacklist(self, options: Optional[BlacklistOptions] = None) -> ApiResult:
        """Get the blacklist as JSON. Defaults apply when options is None."""
        options = options or BlacklistOptions()
        request = self._prepare("blacklist", query=options.to_query())
        return await self._perform(request)

    async def get_blacklist_plaintext(self, options: Optional[BlacklistOptions] = None) -> ApiResult:
        """Get the blacklist as plain text, one address per line."""
        options = options or BlacklistOptions()
        request = self._prepare("blacklist_plaintext", query=options.to_query(plaintext=True))
        return await self._perform(request)

    async def report_ip(
        self,
        ip_address: str,
        categories: Union[ReportCategories, int],
        comment: str = ""
    ) -> ApiResult:
        """
        Report a single IP address.

        Args:
            ip_address: Address to report
            categories: One or more ReportCategories OR'd together
            comment: Free text; strip personal information before sending

        Raises:
            InvalidInputError: if categories is zero
            CategoryExpansionError: if categories contains no known category
        """
        body = build_report_body(ip_address, categories, comment)
        request = self._prepare("report", data=body.encode("utf-8"), content_type=FORM_CONTENT)
        self._logger.debug(f"Post fields: {body}")
        return await self._perform(request)


def make_blacklist_options(
    limit: Optional[int] = None,
    minimum_confidence: Optional[int] = None,
    only_countries: Iterable[str] = (),
    except_countries: Iterable[str] = ()
) -> BlacklistOptions:
    """Build BlacklistOptions, using defaults for unset values."""
    return BlacklistOptions(
        limit=MAX_IPS_BASIC_SUB if limit is None else limit,
        minimum_confidence=DEFAULT_MINIMUM_CONFIDENCE if minimum_confidence is None else minimum_confidence,
        only_countries=tuple(only_countries),
        except_countries=tuple(except_countries)
    )
