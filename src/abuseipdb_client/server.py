#!/usr/bin/env python3
"""
AbuseIPDB MCP Server

Exposes the AbuseIPDB v2 API as MCP tools:
- Checking single addresses and whole networks
- Reporting addresses, one at a time or as a CSV bulk upload
- Clearing own reports
- Downloading the blacklist as JSON or plain text

All tools share one client per API key; its HTTP session is released
when the server shuts down.
"""

import argparse
import json
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Optional

from fastmcp import FastMCP

from . import __version__
from .categories import expand_categories, list_categories, parse_categories
from .client import AbuseIPDBClient, make_blacklist_options
from .config import (
    API_ENDPOINTS,
    MAX_IPS_BASIC_SUB,
    DEFAULT_MINIMUM_CONFIDENCE,
    ClientSettings,
    parse_log_level,
    setup_logging,
    load_settings,
    get_timestamp,
    # Validation
    validate_ip,
    validate_subnet_size,
    validate_confidence,
    validate_limit,
    validate_country_codes,
)
from .registry import ClientRegistry
from .results import AbuseIPDBError, ApiResult

# Configure logging
logger = setup_logging("abuseipdb_client")

_settings: Optional[ClientSettings] = None
registry = ClientRegistry()


@asynccontextmanager
async def lifespan(server):
    try:
        yield {}
    finally:
        await registry.close()


# Initialize FastMCP
mcp = FastMCP("abuseipdb", lifespan=lifespan)


# =============================================================================
# Client Access
# =============================================================================

def configure(settings: ClientSettings) -> None:
    """Install settings and start over with an empty registry."""
    global _settings, registry
    _settings = settings
    registry = ClientRegistry(
        base_url=settings.base_url,
        timeout=settings.timeout,
        connect_timeout=settings.connect_timeout
    )


def get_settings() -> ClientSettings:
    global _settings
    if _settings is None:
        _settings = ClientSettings()
    return _settings


def get_client() -> AbuseIPDBClient:
    """Get the shared client. Raises AbuseIPDBError if no API key is configured."""
    settings = get_settings()
    if not settings.has_api_key:
        raise AbuseIPDBError("ABUSEIPDB_API_KEY is not configured")
    return registry.get_instance(settings.api_key, logger)


# =============================================================================
# Response Helpers
# =============================================================================

def _respond(result: ApiResult, **extra: Any) -> str:
    return json.dumps({**result.to_dict(), **extra, "checked_at": get_timestamp()}, indent=2)


def _error(message: str) -> str:
    return json.dumps(ApiResult.invalid_input(message).to_dict(), indent=2)


def _split_list(value: Optional[str]) -> list[str]:
    """Split a JSON array or comma-separated string into items."""
    if not value:
        return []

    value = value.strip()
    if value.startswith('['):
        try:
            return [str(item).strip() for item in json.loads(value) if str(item).strip()]
        except json.JSONDecodeError:
            pass
    return [item.strip() for item in value.strip('[]').split(',') if item.strip()]


# =============================================================================
# MCP Tools
# =============================================================================

async def get_api_info() -> str:
    """
    Get the configured endpoints and client settings.

    Returns:
        JSON with endpoint descriptions and configuration status
    """
    return json.dumps({
        "success": True,
        "version": __version__,
        "endpoints": [endpoint.to_dict() for endpoint in API_ENDPOINTS.values()],
        "settings": get_settings().to_dict()
    }, indent=2)


async def list_report_categories() -> str:
    """
    List the categories an address can be reported for.

    Returns:
        JSON with category ids and names
    """
    categories = list_categories()
    return json.dumps({
        "success": True,
        "categories": categories,
        "total": len(categories)
    }, indent=2)


async def check_ip(ip: str) -> str:
    """
    Check an IP address against AbuseIPDB.

    Args:
        ip: IP address to check

    Returns:
        JSON with the AbuseIPDB report for the address
    """
    is_valid, error = validate_ip(ip)
    if not is_valid:
        return _error(error)

    try:
        result = await get_client().check_ip_address(ip)
    except AbuseIPDBError as e:
        return _error(str(e))

    return _respond(result, ip=ip)


async def check_network(network: str, subnet_size: int = 24) -> str:
    """
    Check a network (CIDR) for reported addresses.

    Args:
        network: Network address, e.g. 192.0.2.0
        subnet_size: Prefix length in bits (default: 24)

    Returns:
        JSON with reported addresses inside the network
    """
    is_valid, error = validate_subnet_size(network, subnet_size)
    if not is_valid:
        return _error(error)

    try:
        result = await get_client().check_blocked(network, subnet_size)
    except AbuseIPDBError as e:
        return _error(str(e))

    return _respond(result, network=f"{network}/{subnet_size}")


async def clear_ip(ip: str) -> str:
    """
    Remove all reports of an IP address made with the configured API key.

    Args:
        ip: IP address to clear

    Returns:
        JSON with the number of deleted reports
    """
    is_valid, error = validate_ip(ip)
    if not is_valid:
        return _error(error)

    try:
        result = await get_client().clear_ip_address(ip)
    except AbuseIPDBError as e:
        return _error(str(e))

    return _respond(result, ip=ip)


async def report_ip(ip: str, categories: str, comment: str = "") -> str:
    """
    Report an abusive IP address.

    Args:
        ip: IP address to report
        categories: Category names or ids, comma-separated (e.g. "ssh,brute_force" or "18,22")
        comment: Optional comment; do not include personal information

    Returns:
        JSON with the updated abuse confidence score
    """
    is_valid, error = validate_ip(ip)
    if not is_valid:
        return _error(error)

    try:
        flags = parse_categories(_split_list(categories))
        result = await get_client().report_ip(ip, flags, comment)
    except AbuseIPDBError as e:
        return _error(str(e))

    return _respond(result, ip=ip, categories=expand_categories(flags))


async def bulk_report(csv_path: str) -> str:
    """
    Upload a CSV file of reports.

    Args:
        csv_path: Path to a CSV in AbuseIPDB's bulk report format

    Returns:
        JSON with saved and invalid report counts
    """
    try:
        result = await get_client().bulk_report(Path(csv_path).expanduser())
    except AbuseIPDBError as e:
        return _error(str(e))

    return _respond(result, csv_path=csv_path)


def _blacklist_options(
    limit: int,
    minimum_confidence: int,
    only_countries: str,
    except_countries: str
):
    only = _split_list(only_countries)
    excluded = _split_list(except_countries)

    for is_valid, error in (
        validate_limit(limit),
        validate_confidence(minimum_confidence),
        validate_country_codes(only + excluded),
    ):
        if not is_valid:
            return None, error

    return make_blacklist_options(limit, minimum_confidence, only, excluded), None


async def get_blacklist(
    limit: int = MAX_IPS_BASIC_SUB,
    minimum_confidence: int = DEFAULT_MINIMUM_CONFIDENCE,
    only_countries: str = "",
    except_countries: str = ""
) -> str:
    """
    Download the AbuseIPDB blacklist.

    Args:
        limit: Maximum entries (default: 100000)
        minimum_confidence: Minimum abuse confidence 0-100 (default: 100)
        only_countries: Country codes to include, comma-separated (takes precedence)
        except_countries: Country codes to exclude, comma-separated

    Returns:
        JSON with blacklisted addresses
    """
    options, error = _blacklist_options(limit, minimum_confidence, only_countries, except_countries)
    if error:
        return _error(error)

    try:
        result = await get_client().get_blacklist(options)
    except AbuseIPDBError as e:
        return _error(str(e))

    return _respond(result)


async def get_blacklist_plaintext(
    limit: int = MAX_IPS_BASIC_SUB,
    minimum_confidence: int = DEFAULT_MINIMUM_CONFIDENCE,
    only_countries: str = "",
    except_countries: str = ""
) -> str:
    """
    Download the AbuseIPDB blacklist as plain text, one address per line.

    Args:
        limit: Maximum entries (default: 100000)
        minimum_confidence: Minimum abuse confidence 0-100 (default: 100)
        only_countries: Country codes to include, comma-separated (takes precedence)
        except_countries: Country codes to exclude, comma-separated

    Returns:
        JSON wrapping the plain text list
    """
    options, error = _blacklist_options(limit, minimum_confidence, only_countries, except_countries)
    if error:
        return _error(error)

    try:
        result = await get_client().get_blacklist_plaintext(options)
    except AbuseIPDBError as e:
        return _error(str(e))

    return _respond(result)


TOOLS = (
    get_api_info,
    list_report_categories,
    check_ip,
    check_network,
    clear_ip,
    report_ip,
    bulk_report,
    get_blacklist,
    get_blacklist_plaintext,
)

for _tool in TOOLS:
    mcp.tool()(_tool)


# =============================================================================
# Entry Point
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="abuseipdb-mcp", description="AbuseIPDB MCP server")
    parser.add_argument("-c", "--config", type=Path, help="Path to a JSON config file")
    parser.add_argument("-l", "--log-level", help="Log level (trace, debug, info, warning, error)")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[list[str]] = None):
    """Entry point for MCP server."""
    args = build_parser().parse_args(argv)

    settings = load_settings(args.config, logger)
    if args.log_level:
        settings.log_level = parse_log_level(args.log_level, settings.log_level)
    logger.setLevel(settings.log_level)

    configure(settings)
    if not settings.has_api_key:
        logger.warning("No API key configured; set ABUSEIPDB_API_KEY or api.key in the config file")

    logger.info(f"Starting AbuseIPDB MCP server v{__version__}")
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
