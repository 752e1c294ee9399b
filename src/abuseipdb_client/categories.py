"""
Report categories.

Each category occupies one bit of a flag set so several can be reported
at once. The bit value is not the id the API expects; CATEGORY_IDS maps
bit positions to API ids.
"""

from enum import IntFlag
from typing import Iterable, Union

from .results import InvalidInputError


class ReportCategories(IntFlag):
    """Bit-coded report categories. Combine with ``|``."""
    DNS_COMPROMISE = 1 << 0
    DNS_POISONING = 1 << 1
    FRAUD_ORDERS = 1 << 2
    DDOS_ATTACK = 1 << 3
    FTP_BRUTE_FORCE = 1 << 4
    PING_OF_DEATH = 1 << 5
    PHISHING = 1 << 6
    FRAUD_VOIP = 1 << 7
    OPEN_PROXY = 1 << 8
    WEB_SPAM = 1 << 9
    EMAIL_SPAM = 1 << 10
    BLOG_SPAM = 1 << 11
    VPN_IP = 1 << 12
    PORT_SCAN = 1 << 13
    HACKING = 1 << 14
    SQL_INJECTION = 1 << 15
    SPOOFING = 1 << 16
    BRUTE_FORCE = 1 << 17
    BAD_WEB_BOT = 1 << 18
    EXPLOITED_HOST = 1 << 19
    WEB_APP_ATTACK = 1 << 20
    SSH = 1 << 21
    IOT_TARGETED = 1 << 22
    # bits 23-63 reserved


USED_BITS = 23

# API category id per bit position
CATEGORY_IDS: tuple[int, ...] = tuple(range(1, USED_BITS + 1))

CATEGORY_BY_ID: dict[int, ReportCategories] = {
    api_id: ReportCategories(1 << bit) for bit, api_id in enumerate(CATEGORY_IDS)
}


def expand_categories(flags: Union[ReportCategories, int]) -> list[int]:
    """
    Expand a category flag set into API category ids.

    Args:
        flags: Combined category flags

    Returns:
        API ids of the set bits in ascending bit order; empty if no known bit is set
    """
    value = int(flags)
    return [api_id for bit, api_id in enumerate(CATEGORY_IDS) if value >> bit & 1]


def category_name(api_id: int) -> str:
    """Get the display name of an API category id, e.g. 22 -> "ssh"."""
    try:
        return CATEGORY_BY_ID[api_id].name.lower()
    except KeyError:
        raise InvalidInputError(f"Unknown category id: {api_id}") from None


def parse_categories(values: Iterable[Union[str, int]]) -> ReportCategories:
    """
    Combine category names or API ids into a flag set.

    Names are matched case-insensitively and may use dashes, underscores or
    spaces ("ssh", "Brute-Force", "web app attack"). Numeric strings and
    ints are treated as API ids.

    Raises:
        InvalidInputError: for unknown names or ids
    """
    flags = ReportCategories(0)

    for value in values:
        if isinstance(value, int) or str(value).strip().isdecimal():
            api_id = int(value)
            if api_id not in CATEGORY_BY_ID:
                raise InvalidInputError(f"Unknown category id: {api_id}")
            flags |= CATEGORY_BY_ID[api_id]
            continue

        key = str(value).strip().upper().replace("-", "_").replace(" ", "_")
        try:
            flags |= ReportCategories[key]
        except KeyError:
            raise InvalidInputError(f"Unknown category: {value}") from None

    return flags


def list_categories() -> list[dict[str, Union[int, str]]]:
    """Describe all categories for display."""
    return [
        {"id": api_id, "name": flag.name.lower(), "flag": int(flag)}
        for api_id, flag in CATEGORY_BY_ID.items()
    ]
