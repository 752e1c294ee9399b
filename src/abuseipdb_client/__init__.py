"""
AbuseIPDB Client

Async client for the AbuseIPDB v2 API: checking and reporting abusive
IP addresses, bulk uploads and blacklist downloads.
"""

__version__ = "0.2.0"

from .categories import (
    ReportCategories,
    CATEGORY_IDS,
    expand_categories,
    parse_categories,
    category_name,
)
from .client import (
    AbuseIPDBClient,
    BlacklistOptions,
    ClientState,
)
from .config import (
    # Configuration
    API_BASE_URL,
    API_ENDPOINTS,
    MAX_IPS_STANDARD,
    MAX_IPS_BASIC_SUB,
    MAX_IPS_PREMIUM_SUB,
    ClientSettings,
    ConfigStore,
    # Functions
    setup_logging,
    load_settings,
)
from .decoding import DecodeMode, decode
from .registry import ClientRegistry
from .results import (
    ApiResult,
    ResultStatus,
    # Errors
    AbuseIPDBError,
    InvalidInputError,
    CategoryExpansionError,
    BulkReportFileError,
    KeyMismatchError,
    ClientClosedError,
)

__all__ = [
    "__version__",
    # Categories
    "ReportCategories",
    "CATEGORY_IDS",
    "expand_categories",
    "parse_categories",
    "category_name",
    # Client
    "AbuseIPDBClient",
    "BlacklistOptions",
    "ClientState",
    "ClientRegistry",
    # Configuration
    "API_BASE_URL",
    "API_ENDPOINTS",
    "MAX_IPS_STANDARD",
    "MAX_IPS_BASIC_SUB",
    "MAX_IPS_PREMIUM_SUB",
    "ClientSettings",
    "ConfigStore",
    "setup_logging",
    "load_settings",
    # Results
    "ApiResult",
    "ResultStatus",
    "DecodeMode",
    "decode",
    # Errors
    "AbuseIPDBError",
    "InvalidInputError",
    "CategoryExpansionError",
    "BulkReportFileError",
    "KeyMismatchError",
    "ClientClosedError",
]
