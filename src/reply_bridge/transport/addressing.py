"""Address helpers for phone-style and group-style chat addresses.

Personal chats are addressed as ``<digits>@s.whatsapp.net`` and group chats
as ``<id>@g.us``. Phone numbers are normalized to international form with
the ``62`` country prefix.
"""

import re

from reply_bridge.models import DestinationKind

PERSONAL_SERVER = "s.whatsapp.net"
GROUP_SERVER = "g.us"

DEFAULT_COUNTRY_CODE = "62"

# Valid normalized phone numbers are 11-15 digits including the country code
MIN_PHONE_DIGITS = 11
MAX_PHONE_DIGITS = 15

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_phone_number(phone: str, country_code: str = DEFAULT_COUNTRY_CODE) -> str | None:
    """Normalize a phone number to international digits.

    Strips every non-digit, drops leading zeros and prefixes the country
    code when missing.

    Args:
        phone: Raw phone number, e.g. "0811-1222-333" or "+62 811 1222 333".
        country_code: Country prefix to add when absent.

    Returns:
        The normalized number, or None if it is not 11-15 digits long.

    Example:
        >>> normalize_phone_number("0811-1222-333")
        '628111222333'
        >>> normalize_phone_number("12345") is None
        True
    """
    digits = _NON_DIGITS.sub("", phone).lstrip("0")
    if not digits.startswith(country_code):
        digits = country_code + digits

    if not (MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS):
        return None
    return digits


def classify_destination(destination: str) -> DestinationKind:
    """Return GROUP for group addresses, PERSONAL otherwise."""
    if f"@{GROUP_SERVER}" in destination:
        return DestinationKind.GROUP
    return DestinationKind.PERSONAL


def personal_address(phone: str) -> str:
    """Build the personal chat address for a normalized phone number."""
    return f"{phone}@{PERSONAL_SERVER}"


def user_part(address: str) -> str:
    """Return the user part of an address (the phone for personal chats).

    A device suffix such as ``:12`` is dropped.

    Example:
        >>> user_part("628111222333@s.whatsapp.net")
        '628111222333'
        >>> user_part("628111222333:12@s.whatsapp.net")
        '628111222333'
    """
    return address.split("@", 1)[0].split(":", 1)[0]
