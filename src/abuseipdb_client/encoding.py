"""
Request parameter encoding.

Builds the query strings, form bodies and headers for each endpoint.
Values are escaped one at a time so the wire format matches what the
API documents, including bare flags such as ``verbose`` and ``plaintext``.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union
from urllib.parse import quote

import aiohttp

from .categories import ReportCategories, expand_categories
from .results import BulkReportFileError, CategoryExpansionError, InvalidInputError


JSON_CONTENT = "application/json"
TEXT_CONTENT = "text/plain"
FORM_CONTENT = "application/x-www-form-urlencoded"


def escape(value: Union[str, int]) -> str:
    """
    Percent-encode a single URL component.

    Only unreserved characters (letters, digits, ``-._~``) are left as is;
    everything else is encoded from its UTF-8 bytes.
    """
    return quote(str(value), safe="")


def join_countries(codes: Iterable[str]) -> str:
    """Join country codes with a comma."""
    return ",".join(code.strip() for code in codes if code.strip())


def mask_key(api_key: str) -> str:
    """Shorten an API key for log output."""
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}...{api_key[-4:]}"


def build_headers(api_key: str, extra: Optional[Mapping[str, str]] = None) -> dict[str, str]:
    """
    Build the standard request headers.

    Args:
        api_key: AbuseIPDB API key
        extra: Additional headers; names matching a standard header (case
            insensitive) replace it

    Returns:
        Header mapping
    """
    headers = {"Key": api_key, "Accept": JSON_CONTENT}

    for name, value in (extra or {}).items():
        for existing in [h for h in headers if h.lower() == name.lower()]:
            del headers[existing]
        headers[name] = value

    return headers


# =============================================================================
# Query Strings
# =============================================================================

def build_check_query(ip_address: str) -> str:
    """Query for /check and /clear-address."""
    return f"ipAddress={escape(ip_address)}&verbose"


def build_check_block_query(network: str, subnet_size: int) -> str:
    """Query for /check-block; the CIDR string is escaped as a whole."""
    return f"network={escape(f'{network}/{subnet_size}')}"


def build_blacklist_query(
    minimum_confidence: int,
    limit: int,
    only_countries: Iterable[str] = (),
    except_countries: Iterable[str] = (),
    plaintext: bool = False
) -> str:
    """
    Query for /blacklist.

    ``only_countries`` takes precedence; ``exceptCountries`` is always sent
    otherwise, even when empty.
    """
    only = list(only_countries)
    if only:
        country_param = f"onlyCountries={escape(join_countries(only))}"
    else:
        country_param = f"exceptCountries={escape(join_countries(except_countries))}"

    query = f"confidenceMinimum={escape(minimum_confidence)}&limit={escape(limit)}&{country_param}"
    if plaintext:
        query += "&plaintext"
    return query


def with_query(url: str, query: str) -> str:
    return f"{url}?{query}" if query else url


# =============================================================================
# Request Bodies
# =============================================================================

def build_report_body(ip_address: str, categories: Union[ReportCategories, int], comment: str = "") -> str:
    """
    Form body for /report.

    Raises:
        InvalidInputError: if no category flag is set
        CategoryExpansionError: if the flags expand to no category ids
    """
    if int(categories) == 0:
        raise InvalidInputError("categories must be a valid category!")

    category_ids = expand_categories(categories)
    if not category_ids:
        raise CategoryExpansionError(f"Failed to parse categories from flags {int(categories):#x}")

    category_list = ",".join(str(c) for c in category_ids)
    return f"ip={escape(ip_address)}&categories={escape(category_list)}&comment={escape(comment or '')}"


@dataclass(frozen=True)
class CsvUpload:
    """A CSV file read for a bulk report."""
    filename: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


def read_csv_upload(csv_path: Union[str, Path]) -> CsvUpload:
    """
    Read a CSV file for /bulk-report. Blocking; the client runs it in a
    worker thread.

    Raises:
        BulkReportFileError: if the path is missing, not a regular file or unreadable
    """
    path = Path(csv_path)

    if not path.exists():
        raise BulkReportFileError(f"CSV file does not exist: {path}")
    if not path.is_file():
        raise BulkReportFileError(f"CSV must be a regular file: {path}")

    try:
        with open(path, "rb") as fh:
            content = fh.read()
    except OSError as e:
        raise BulkReportFileError(f"Failed to open file {path}: {e}") from e

    return CsvUpload(filename=path.name, content=content)


def build_bulk_form(upload: CsvUpload) -> aiohttp.FormData:
    """Multipart form for /bulk-report: the CSV plus ``submit=send``."""
    form = aiohttp.FormData()
    form.add_field("csv", upload.content, filename=upload.filename, content_type="text/csv")
    form.add_field("submit", "send")
    return form
