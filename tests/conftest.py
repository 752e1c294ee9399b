"""
Pytest fixtures for abuseipdb-client tests.
"""

import logging

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from abuseipdb_client.client import AbuseIPDBClient


TEST_API_KEY = "test-api-key-0123456789"


class FakeContent:
    """Stands in for aiohttp's StreamReader; yields the given chunks in order."""

    def __init__(self, chunks):
        self._chunks = list(chunks)

    async def iter_any(self):
        for chunk in self._chunks:
            yield chunk


def make_response(body=b"", status=200, chunks=None):
    response = MagicMock()
    response.status = status
    response.content = FakeContent([body] if chunks is None else chunks)
    return response


@pytest.fixture
def api_key():
    return TEST_API_KEY


@pytest.fixture
def mock_session_class():
    """Patch aiohttp.ClientSession so no network calls are made."""
    with patch('aiohttp.ClientSession') as session_class:
        session = MagicMock()
        session.close = AsyncMock()
        request_cm = session.request.return_value
        request_cm.__aenter__ = AsyncMock(return_value=make_response(b'{"data": {}}'))
        request_cm.__aexit__ = AsyncMock(return_value=False)
        session_class.return_value = session
        yield session_class


@pytest.fixture
def mock_session(mock_session_class):
    return mock_session_class.return_value


@pytest.fixture
def respond(mock_session):
    """Set the response the mocked session returns for the next request."""
    def _respond(body=b"", status=200, chunks=None):
        response = make_response(body, status, chunks)
        mock_session.request.return_value.__aenter__ = AsyncMock(return_value=response)
        return response
    return _respond


@pytest.fixture
def client(api_key):
    return AbuseIPDBClient(api_key, logger=logging.getLogger("abuseipdb_client.tests"))


@pytest.fixture
def csv_file(tmp_path):
    """A small bulk report CSV."""
    path = tmp_path / "reports.csv"
    path.write_text(
        "IP,Categories,ReportDate,Comment\n"
        "192.0.2.10,\"18,22\",2024-01-01T10:00:00Z,SSH brute force\n"
        "192.0.2.11,14,2024-01-01T11:00:00Z,Port scan\n"
    )
    return path


@pytest.fixture
def sample_check_response():
    """Sample /check response."""
    return {
        "data": {
            "ipAddress": "192.0.2.10",
            "isPublic": True,
            "ipVersion": 4,
            "isWhitelisted": False,
            "abuseConfidenceScore": 85,
            "countryCode": "NL",
            "usageType": "Data Center/Web Hosting/Transit",
            "isp": "Example ISP",
            "domain": "example.com",
            "totalReports": 150,
            "numDistinctUsers": 42,
            "lastReportedAt": "2024-01-01T00:00:00+00:00",
            "reports": []
        }
    }


@pytest.fixture
def sample_blacklist_response():
    """Sample /blacklist response."""
    return {
        "meta": {"generatedAt": "2024-01-01T00:00:00+00:00"},
        "data": [
            {"ipAddress": "192.0.2.10", "countryCode": "NL", "abuseConfidenceScore": 100,
             "lastReportedAt": "2024-01-01T00:00:00+00:00"},
            {"ipAddress": "198.51.100.7", "countryCode": "US", "abuseConfidenceScore": 100,
             "lastReportedAt": "2024-01-01T00:00:00+00:00"}
        ]
    }


@pytest.fixture
def sample_error_response():
    """Sample API error payload."""
    return {
        "errors": [
            {"detail": "Authentication failed. Your API key is either missing, incorrect, or revoked.",
             "status": 401}
        ]
    }


@pytest.fixture
def response_factory():
    return make_response
