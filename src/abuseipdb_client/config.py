"""
Shared configuration for the AbuseIPDB client.

Centralizes constants, endpoint definitions, settings loading and input
validation so client.py, registry.py and server.py agree on them.
"""

import os
import re
import json
import ipaddress
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional


# =============================================================================
# Logging Setup
# =============================================================================

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'


def setup_logging(name: str, level: int = logging.INFO, to_stderr: bool = True) -> logging.Logger:
    """
    Set up logging for a module.

    Args:
        name: Logger name
        level: Logging level
        to_stderr: Log to stderr (required for MCP servers)

    Returns:
        Configured logger
    """
    import sys

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr if to_stderr else sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)

    return logger


def parse_log_level(value: Any, default: int = logging.INFO) -> int:
    """Translate a level name ("debug", "TRACE") or number into a logging level."""
    if isinstance(value, int):
        return value
    if not value:
        return default

    name = str(value).strip().upper()
    if name.isdigit():
        return int(name)

    level = logging.getLevelName(name)
    return level if isinstance(level, int) else default


# =============================================================================
# Path Configuration
# =============================================================================

DEFAULT_CONFIG_LOCATION = "/etc/abuseipdb_client/config.json"


def get_config_path() -> Path:
    """Get the config file path from environment or default."""
    return Path(os.environ.get("ABUSEIPDB_CONFIG", DEFAULT_CONFIG_LOCATION))


# =============================================================================
# API Endpoints
# =============================================================================

API_BASE_URL = "https://api.abuseipdb.com/api/v2"


class HttpMethod(str, Enum):
    """HTTP verbs used by the API."""
    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ApiEndpoint:
    """Configuration for a single API endpoint."""
    name: str
    path: str
    method: HttpMethod
    description: str
    accept: str = "application/json"

    def url(self, base_url: str = API_BASE_URL) -> str:
        return f"{base_url.rstrip('/')}{self.path}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "method": self.method.value,
            "description": self.description,
            "accept": self.accept
        }


API_ENDPOINTS: dict[str, ApiEndpoint] = {
    "bulk_report": ApiEndpoint(
        name="bulk_report",
        path="/bulk-report",
        method=HttpMethod.POST,
        description="Upload a CSV file of reports"
    ),
    "check_block": ApiEndpoint(
        name="check_block",
        path="/check-block",
        method=HttpMethod.GET,
        description="Check a network (CIDR) for reported addresses"
    ),
    "check": ApiEndpoint(
        name="check",
        path="/check",
        method=HttpMethod.GET,
        description="Check a single IP address"
    ),
    "clear_address": ApiEndpoint(
        name="clear_address",
        path="/clear-address",
        method=HttpMethod.DELETE,
        description="Remove own reports for an IP address"
    ),
    "blacklist": ApiEndpoint(
        name="blacklist",
        path="/blacklist",
        method=HttpMethod.GET,
        description="Download the blacklist as JSON"
    ),
    "blacklist_plaintext": ApiEndpoint(
        name="blacklist_plaintext",
        path="/blacklist",
        method=HttpMethod.GET,
        description="Download the blacklist as plain text",
        accept="text/plain"
    ),
    "report": ApiEndpoint(
        name="report",
        path="/report",
        method=HttpMethod.POST,
        description="Report a single IP address"
    ),
}


def get_endpoint(name: str) -> ApiEndpoint:
    """Get an endpoint by name. Raises KeyError for unknown names."""
    return API_ENDPOINTS[name]


# =============================================================================
# Constants
# =============================================================================

# Blacklist size caps per subscription tier
MAX_IPS_STANDARD = 10_000
MAX_IPS_BASIC_SUB = 100_000
MAX_IPS_PREMIUM_SUB = 500_000

DEFAULT_MINIMUM_CONFIDENCE = 100

# Request settings
DEFAULT_REQUEST_TIMEOUT = 30  # seconds
DEFAULT_CONNECT_TIMEOUT = 10  # seconds

# Validation patterns
COUNTRY_CODE_REGEX = re.compile(r'^[A-Za-z]{2}$')
CONFIG_PATH_REGEX = re.compile(r'^[A-Za-z0-9_-]+(\.[A-Za-z0-9_-]+)*$')


# =============================================================================
# Config File
# =============================================================================

DEFAULT_CONFIG: dict[str, Any] = {
    "api": {
        "key": "",
        "base_url": API_BASE_URL,
        "timeout": DEFAULT_REQUEST_TIMEOUT,
        "connect_timeout": DEFAULT_CONNECT_TIMEOUT
    },
    "logging": {
        "level": "INFO"
    }
}


class ConfigStore:
    """JSON-backed key/value store addressed by dotted paths ("api.key")."""

    def __init__(self, data: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = json.loads(json.dumps(data if data is not None else DEFAULT_CONFIG))

    @classmethod
    def load(cls, path: Optional[Path] = None, logger: Optional[logging.Logger] = None) -> "ConfigStore":
        """
        Load configuration from a JSON file.

        A missing, unreadable or malformed file is logged and the defaults
        are used instead, so the caller always gets a usable store.
        """
        logger = logger or logging.getLogger("abuseipdb_client.config")
        path = Path(path) if path else get_config_path()

        try:
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            logger.error(f"Couldn't open config file {path}: {e}. Loading defaults.")
            return cls()

        try:
            loaded = json.loads(content)
        except json.JSONDecodeError as e:
            logger.critical(f"Failed to parse configuration {path}: {e}")
            logger.critical("Falling back to default configuration")
            return cls()

        if not isinstance(loaded, dict):
            logger.critical(f"Configuration {path} must contain a JSON object")
            return cls()

        store = cls()
        store._merge(store._data, loaded)
        return store

    @staticmethod
    def _merge(target: dict[str, Any], source: dict[str, Any]) -> None:
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigStore._merge(target[key], value)
            else:
                target[key] = value

    def _lookup(self, path: str) -> tuple[bool, Any]:
        if not CONFIG_PATH_REGEX.match(path):
            raise KeyError(f"Invalid config path: {path!r}")

        node: Any = self._data
        for token in path.split("."):
            if not isinstance(node, dict) or token not in node:
                return False, None
            node = node[token]
        return True, node

    def has(self, path: str) -> bool:
        """Check whether a dotted path exists."""
        return self._lookup(path)[0]

    def get(self, path: str, default: Any = None) -> Any:
        """Get the value at a dotted path, or default if absent."""
        found, value = self._lookup(path)
        return value if found else default

    def require(self, path: str) -> Any:
        """Get the value at a dotted path, raising KeyError if absent."""
        found, value = self._lookup(path)
        if not found:
            raise KeyError(f"Attempt to retrieve non-existing config: {path}")
        return value

    def to_dict(self) -> dict[str, Any]:
        return json.loads(json.dumps(self._data))


# =============================================================================
# Client Settings
# =============================================================================

@dataclass
class ClientSettings:
    """Settings for building a client, loaded from file and environment."""
    api_key: str = field(default_factory=lambda: os.environ.get("ABUSEIPDB_API_KEY", ""))
    base_url: str = API_BASE_URL
    timeout: float = DEFAULT_REQUEST_TIMEOUT
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    log_level: int = logging.INFO

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_store(cls, store: ConfigStore) -> "ClientSettings":
        """Build settings from a config store, letting the environment override it."""
        env = os.environ
        return cls(
            api_key=env.get("ABUSEIPDB_API_KEY") or store.get("api.key", ""),
            base_url=store.get("api.base_url", API_BASE_URL),
            timeout=float(env.get("ABUSEIPDB_TIMEOUT") or store.get("api.timeout", DEFAULT_REQUEST_TIMEOUT)),
            connect_timeout=float(store.get("api.connect_timeout", DEFAULT_CONNECT_TIMEOUT)),
            log_level=parse_log_level(env.get("ABUSEIPDB_LOG_LEVEL") or store.get("logging.level"))
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "api_key_configured": self.has_api_key,
            "base_url": self.base_url,
            "timeout": self.timeout,
            "connect_timeout": self.connect_timeout,
            "log_level": logging.getLevelName(self.log_level)
        }


def load_settings(path: Optional[Path] = None, logger: Optional[logging.Logger] = None) -> ClientSettings:
    """Load client settings from the config file and environment."""
    return ClientSettings.from_store(ConfigStore.load(path, logger))


# =============================================================================
# Input Validation
# =============================================================================

def validate_ip(ip: str) -> tuple[bool, Optional[str]]:
    """
    Validate an IP address.

    Args:
        ip: IP address string to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    try:
        ipaddress.ip_address(ip)
        return True, None
    except ValueError:
        return False, f"Invalid IP address format: {ip}"


def validate_subnet_size(network: str, subnet_size: int) -> tuple[bool, Optional[str]]:
    """
    Validate a network address and CIDR prefix length.

    Args:
        network: Network address, e.g. 192.0.2.0
        subnet_size: Prefix length in bits

    Returns:
        Tuple of (is_valid, error_message)
    """
    is_valid, error = validate_ip(network)
    if not is_valid:
        return False, error

    max_bits = ipaddress.ip_address(network).max_prefixlen
    if not isinstance(subnet_size, int) or not 0 <= subnet_size <= max_bits:
        return False, f"Invalid subnet size: {subnet_size}. Expected 0-{max_bits}."
    return True, None


def validate_confidence(confidence: int) -> tuple[bool, Optional[str]]:
    """Validate an abuse confidence value (0-100)."""
    if isinstance(confidence, int) and 0 <= confidence <= 100:
        return True, None
    return False, f"Invalid confidence: {confidence}. Expected 0-100."


def validate_limit(limit: int) -> tuple[bool, Optional[str]]:
    """Validate a blacklist size limit."""
    if isinstance(limit, int) and 0 < limit <= MAX_IPS_PREMIUM_SUB:
        return True, None
    return False, f"Invalid limit: {limit}. Expected 1-{MAX_IPS_PREMIUM_SUB}."


def validate_country_codes(codes: Iterable[str]) -> tuple[bool, Optional[str]]:
    """
    Validate ISO 3166 alpha-2 country codes.

    Args:
        codes: Country codes to validate

    Returns:
        Tuple of (is_valid, error_message)
    """
    invalid = [code for code in codes if not COUNTRY_CODE_REGEX.match(code)]
    if invalid:
        return False, f"Invalid country code(s): {', '.join(invalid)}"
    return True, None


# =============================================================================
# Helper Functions
# =============================================================================

def get_timestamp() -> str:
    """Get current ISO timestamp."""
    return datetime.now().isoformat()
