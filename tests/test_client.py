"""
Tests for AbuseIPDBClient endpoint calls, using a mocked aiohttp session.
"""

import asyncio
import json
import logging

import pytest
import aiohttp
from unittest.mock import AsyncMock, MagicMock, patch
from abuseipdb_client.categories import ReportCategories
from abuseipdb_client.client import AbuseIPDBClient, BlacklistOptions, ClientState, make_blacklist_options
from abuseipdb_client.config import MAX_IPS_BASIC_SUB
from abuseipdb_client.encoding import read_csv_upload
from abuseipdb_client.results import (
    BulkReportFileError,
    CategoryExpansionError,
    ClientClosedError,
    InvalidInputError,
    ResultStatus,
)

BASE = "https://api.abuseipdb.com/api/v2"


def sent_request(mock_session):
    """Return (method, url, headers, data) of the last request."""
    call = mock_session.request.call_args
    method, url = call.args
    return method, str(url), call.kwargs["headers"], call.kwargs["data"]


class TestBlacklistOptions:
    """Test BlacklistOptions defaults and query building."""

    def test_defaults(self):
        options = BlacklistOptions()
        assert options.limit == MAX_IPS_BASIC_SUB
        assert options.minimum_confidence == 100
        assert options.only_countries == ()
        assert options.except_countries == ()

    def test_lists_become_tuples(self):
        options = BlacklistOptions(only_countries=["US"], except_countries=["DE", "FR"])
        assert options.only_countries == ("US",)
        assert options.except_countries == ("DE", "FR")

    def test_immutable(self):
        options = BlacklistOptions()
        with pytest.raises(AttributeError):
            options.limit = 5

    def test_default_query(self):
        query = BlacklistOptions().to_query()
        assert "confidenceMinimum=100" in query
        assert f"limit={MAX_IPS_BASIC_SUB}" in query
        assert "exceptCountries=" in query
        assert "onlyCountries" not in query

    def test_make_options_uses_defaults(self):
        assert make_blacklist_options() == BlacklistOptions()
        assert make_blacklist_options(limit=50).limit == 50


class TestClientLifecycle:
    """Test lazy initialisation and close."""

    def test_empty_key_rejected(self):
        with pytest.raises(InvalidInputError):
            AbuseIPDBClient("")

    def test_repr_masks_key(self, client, api_key):
        assert api_key not in repr(client)

    @pytest.mark.asyncio
    async def test_session_created_lazily_once(self, client, mock_session_class):
        assert client.state == ClientState.UNINITIALIZED
        mock_session_class.assert_not_called()

        await client.check_ip_address("192.0.2.10")
        await client.check_ip_address("192.0.2.11")

        assert client.state == ClientState.READY
        assert mock_session_class.call_count == 1
        assert client.request_count == 2

    @pytest.mark.asyncio
    async def test_session_uses_bounded_timeout(self, api_key, mock_session_class):
        client = AbuseIPDBClient(api_key, timeout=12, connect_timeout=3)
        await client.initialise()

        timeout = mock_session_class.call_args.kwargs["timeout"]
        assert timeout.total == 12
        assert timeout.connect == 3

    @pytest.mark.asyncio
    async def test_close_releases_session_once(self, client, mock_session):
        await client.initialise()
        await client.close()
        await client.close()

        mock_session.close.assert_awaited_once()
        assert client.state == ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_close_without_session(self, client, mock_session_class):
        await client.close()
        mock_session_class.assert_not_called()
        assert client.state == ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_calls_after_close_rejected(self, client, mock_session):
        await client.close()
        with pytest.raises(ClientClosedError):
            await client.check_ip_address("192.0.2.10")
        mock_session.request.assert_not_called()

    @pytest.mark.asyncio
    async def test_context_manager(self, api_key, mock_session):
        async with AbuseIPDBClient(api_key) as client:
            assert client.state == ClientState.READY
        mock_session.close.assert_awaited_once()
        assert client.state == ClientState.CLOSED


class TestEndpoints:
    """Test the request each endpoint sends."""

    @pytest.mark.asyncio
    async def test_check_ip_address(self, client, mock_session, respond, api_key, sample_check_response):
        respond(json.dumps(sample_check_response).encode())

        result = await client.check_ip_address("192.0.2.10")

        method, url, headers, data = sent_request(mock_session)
        assert method == "GET"
        assert url == f"{BASE}/check?ipAddress=192.0.2.10&verbose"
        assert headers == {"Key": api_key, "Accept": "application/json"}
        assert data is None
        assert result.ok
        assert result.value == sample_check_response
        assert result.http_status == 200

    @pytest.mark.asyncio
    async def test_clear_ip_address(self, client, mock_session, respond):
        respond(b'{"data": {"numReportsDeleted": 2}}')

        result = await client.clear_ip_address("192.0.2.10")

        method, url, _, _ = sent_request(mock_session)
        assert method == "DELETE"
        assert url == f"{BASE}/clear-address?ipAddress=192.0.2.10&verbose"
        assert result.value["data"]["numReportsDeleted"] == 2

    @pytest.mark.asyncio
    async def test_check_blocked(self, client, mock_session, respond):
        respond(b'{"data": {"networkAddress": "192.0.2.0", "reportedAddress": []}}')

        result = await client.check_blocked("192.0.2.0", 24)

        method, url, _, _ = sent_request(mock_session)
        assert method == "GET"
        assert url == f"{BASE}/check-block?network=192.0.2.0%2F24"
        assert result.ok

    @pytest.mark.asyncio
    async def test_get_blacklist_defaults(self, client, mock_session, respond, sample_blacklist_response):
        respond(json.dumps(sample_blacklist_response).encode())

        result = await client.get_blacklist()

        method, url, headers, _ = sent_request(mock_session)
        assert method == "GET"
        assert url == f"{BASE}/blacklist?confidenceMinimum=100&limit=100000&exceptCountries="
        assert headers["Accept"] == "application/json"
        assert len(result.value["data"]) == 2

    @pytest.mark.asyncio
    async def test_get_blacklist_only_countries(self, client, mock_session, respond):
        respond(b'{"data": []}')
        options = BlacklistOptions(limit=500, minimum_confidence=90, only_countries=("US", "CN"))

        await client.get_blacklist(options)

        _, url, _, _ = sent_request(mock_session)
        assert url == f"{BASE}/blacklist?confidenceMinimum=90&limit=500&onlyCountries=US%2CCN"

    @pytest.mark.asyncio
    async def test_get_blacklist_plaintext(self, client, mock_session, respond):
        respond(b"192.0.2.10\n198.51.100.7\n")

        result = await client.get_blacklist_plaintext()

        method, url, headers, _ = sent_request(mock_session)
        assert method == "GET"
        assert url.endswith("&exceptCountries=&plaintext")
        assert headers["Accept"] == "text/plain"
        assert "application/json" not in headers.values()
        assert result.value == "192.0.2.10\n198.51.100.7\n"

    @pytest.mark.asyncio
    async def test_get_blacklist_plaintext_json_error(self, client, respond, sample_error_response):
        respond(json.dumps(sample_error_response).encode(), status=401)

        result = await client.get_blacklist_plaintext()

        assert result.ok
        assert result.value == json.dumps(sample_error_response, indent=2)
        assert result.http_status == 401

    @pytest.mark.asyncio
    async def test_report_ip(self, client, mock_session, respond, api_key):
        respond(b'{"data": {"ipAddress": "192.0.2.10", "abuseConfidenceScore": 52}}')

        result = await client.report_ip(
            "192.0.2.10",
            ReportCategories.BRUTE_FORCE | ReportCategories.SSH,
            "Failed password for root"
        )

        method, url, headers, data = sent_request(mock_session)
        assert method == "POST"
        assert url == f"{BASE}/report"
        assert headers["Key"] == api_key
        assert headers["Content-Type"] == "application/x-www-form-urlencoded"
        assert data == b"ip=192.0.2.10&categories=18%2C22&comment=Failed%20password%20for%20root"
        assert result.value["data"]["abuseConfidenceScore"] == 52

    @pytest.mark.asyncio
    async def test_bulk_report(self, client, mock_session, respond, csv_file):
        respond(b'{"data": {"savedReports": 2, "invalidReports": []}}')

        result = await client.bulk_report(csv_file)

        method, url, headers, data = sent_request(mock_session)
        assert method == "POST"
        assert url == f"{BASE}/bulk-report"
        assert "Content-Type" not in headers
        assert isinstance(data, aiohttp.FormData)
        assert result.value["data"]["savedReports"] == 2

    @pytest.mark.asyncio
    async def test_custom_base_url(self, api_key, mock_session, respond):
        respond(b"{}")
        client = AbuseIPDBClient(api_key, base_url="http://localhost:8080/api/v2/")

        await client.check_ip_address("192.0.2.10")

        _, url, _, _ = sent_request(mock_session)
        assert url == "http://localhost:8080/api/v2/check?ipAddress=192.0.2.10&verbose"


class TestPreconditions:
    """Test input errors raised before any request is made."""

    @pytest.mark.asyncio
    async def test_report_zero_categories(self, client, mock_session):
        with pytest.raises(InvalidInputError):
            await client.report_ip("192.0.2.10", ReportCategories(0))

        mock_session.request.assert_not_called()
        assert client.request_count == 0
        assert client.state == ClientState.UNINITIALIZED

    @pytest.mark.asyncio
    async def test_report_reserved_categories(self, client, mock_session):
        with pytest.raises(CategoryExpansionError):
            await client.report_ip("192.0.2.10", 1 << 40)

        assert client.request_count == 0

    @pytest.mark.asyncio
    async def test_bulk_report_missing_file(self, client, mock_session, tmp_path):
        with pytest.raises(BulkReportFileError):
            await client.bulk_report(tmp_path / "missing.csv")

        mock_session.request.assert_not_called()
        assert client.request_count == 0

    @pytest.mark.asyncio
    async def test_bulk_report_reads_file_off_loop(self, client, respond, csv_file):
        respond(b'{"data": {"savedReports": 2, "invalidReports": []}}')

        with patch('abuseipdb_client.client.asyncio.to_thread', wraps=asyncio.to_thread) as to_thread:
            await client.bulk_report(csv_file)

        to_thread.assert_called_once_with(read_csv_upload, csv_file)

    @pytest.mark.asyncio
    async def test_bulk_report_directory(self, client, mock_session, tmp_path):
        with pytest.raises(BulkReportFileError):
            await client.bulk_report(tmp_path)

        mock_session.request.assert_not_called()


class TestFailures:
    """Test that network and decode failures come back as results."""

    @pytest.mark.asyncio
    async def test_transport_failure(self, client, mock_session, caplog):
        mock_session.request.side_effect = aiohttp.ClientConnectionError("Cannot connect to host")

        with caplog.at_level(logging.ERROR):
            result = await client.check_ip_address("192.0.2.10")

        assert result.status == ResultStatus.TRANSPORT_FAILURE
        assert "ClientConnectionError" in result.error
        assert "Cannot connect to host" in result.error
        assert result.is_empty
        assert not result
        assert "HTTP request failed" in caplog.text

    @pytest.mark.asyncio
    async def test_timeout(self, client, mock_session):
        mock_session.request.side_effect = asyncio.TimeoutError()

        result = await client.get_blacklist()

        assert result.status == ResultStatus.TRANSPORT_FAILURE
        assert "request timed out" in result.error

    @pytest.mark.asyncio
    async def test_decode_failure(self, client, respond):
        respond(b"<html>502 Bad Gateway</html>", status=502)

        result = await client.check_ip_address("192.0.2.10")

        assert result.status == ResultStatus.DECODE_FAILURE
        assert result.raw_body == "<html>502 Bad Gateway</html>"
        assert result.http_status == 502

    @pytest.mark.asyncio
    async def test_empty_body(self, client, respond):
        respond(b"  \n ")

        result = await client.check_ip_address("192.0.2.10")

        assert result.status == ResultStatus.EMPTY
        assert not result.failed

    @pytest.mark.asyncio
    async def test_api_error_payload_is_returned(self, client, respond, sample_error_response):
        respond(json.dumps(sample_error_response).encode(), status=401)

        result = await client.check_ip_address("192.0.2.10")

        assert result.ok
        assert result.http_status == 401
        assert result.value["errors"][0]["status"] == 401
        assert result.http_error
        assert result.to_dict()["success"] is False

    @pytest.mark.asyncio
    async def test_chunked_body(self, client, respond):
        respond(chunks=[b'{"data": ', b"   ", b'{"totalReports": 7}', b"\n", b"}"])

        result = await client.check_ip_address("192.0.2.10")

        assert result.value == {"data": {"totalReports": 7}}

    @pytest.mark.asyncio
    async def test_client_usable_after_failure(self, client, mock_session, respond):
        mock_session.request.side_effect = aiohttp.ClientConnectionError("down")
        failed = await client.check_ip_address("192.0.2.10")

        mock_session.request.side_effect = None
        respond(b'{"data": {}}')
        recovered = await client.check_ip_address("192.0.2.10")

        assert failed.status == ResultStatus.TRANSPORT_FAILURE
        assert recovered.ok


class TestSerialization:
    """Test that one client runs one request at a time."""

    @pytest.mark.asyncio
    async def test_concurrent_calls_do_not_overlap(self, client, mock_session):
        state = {"active": 0, "peak": 0}

        class SlowContent:
            async def iter_any(self):
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
                await asyncio.sleep(0.01)
                state["active"] -= 1
                yield b'{"data": {}}'

        response = MagicMock()
        response.status = 200
        response.content = SlowContent()
        mock_session.request.return_value.__aenter__ = AsyncMock(return_value=response)

        results = await asyncio.gather(*(client.check_ip_address(f"192.0.2.{i}") for i in range(5)))

        assert all(r.ok for r in results)
        assert state["peak"] == 1
        assert client.request_count == 5
