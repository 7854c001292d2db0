"""ULID and booking reference generation helpers."""

import secrets
import string
from typing import Optional

import ulid

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits


def generate_ulid() -> str:
    """Generate a new ULID string."""
    return str(ulid.ULID())


def parse_ulid(ulid_str: str) -> Optional[ulid.ULID]:
    """Parse and validate a ULID string."""
    try:
        return ulid.ULID.from_str(ulid_str)
    except (ValueError, TypeError, AttributeError):
        return None


def is_valid_ulid(ulid_str: str) -> bool:
    """Check if a string is a valid ULID."""
    return parse_ulid(ulid_str) is not None


def generate_booking_reference(prefix: str = "SPA", length: int = 6) -> str:
    """Generate a human-shareable booking reference such as ``SPA7K2QXD``."""
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))
    return f"{prefix.upper()}{suffix}"
