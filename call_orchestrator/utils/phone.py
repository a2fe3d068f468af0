"""
Phone number normalisation
"""

import re
from typing import Optional

E164_PATTERN = re.compile(r"^\+[1-9]\d{7,14}$")


def normalize_e164(phone_number: Optional[str]) -> Optional[str]:
    """
    Normalise a stored phone number to E.164.

    Numbers that already carry a leading '+' keep their country code;
    anything else is treated as North American and gets '+1'. Returns
    None when the result is not a structurally valid E.164 number.
    """
    if not phone_number or not phone_number.strip():
        return None

    raw = phone_number.strip()
    digits = re.sub(r"\D", "", raw)

    if raw.startswith("+"):
        candidate = f"+{digits}"
    else:
        candidate = f"+1{digits}"

    if not E164_PATTERN.match(candidate):
        return None
    return candidate


def is_valid_e164(phone_number: Optional[str]) -> bool:
    """Check a number is already in E.164 form"""
    return bool(phone_number and E164_PATTERN.match(phone_number))
