"""Kenyan mobile number normalisation (``254XXXXXXXXX``)."""

import re

COUNTRY_CODE = "254"
MOBILE_PREFIXES = ("7", "1")  # Safaricom / Airtel / Telkom 07xx and 01xx ranges

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(phone: str) -> str:
    """
    Convert common local spellings to ``254XXXXXXXXX``.

    ``0712 345 678``, ``712345678``, ``+254712345678`` and
    ``254712345678`` all normalise to ``254712345678``.  Input whose
    shape is not recognised is returned as bare digits.
    """
    digits = _NON_DIGITS.sub("", phone or "")
    if len(digits) == 10 and digits.startswith("0"):
        return COUNTRY_CODE + digits[1:]
    if len(digits) == 9:
        return COUNTRY_CODE + digits
    return digits


def is_valid_phone(phone: str) -> bool:
    formatted = normalize_phone(phone)
    return (
        len(formatted) == 12
        and formatted.startswith(COUNTRY_CODE)
        and formatted[3] in MOBILE_PREFIXES
    )
