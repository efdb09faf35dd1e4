"""Human-facing identifiers generated once per record."""

import secrets
import uuid

# No 0/O or 1/I so references survive being read aloud
REFERENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
VERIFICATION_CODE_LENGTH = 6


def new_id() -> str:
    return str(uuid.uuid4())


def _reference(prefix: str, length: int = 6) -> str:
    body = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))
    return f"{prefix}-{body}"


def booking_reference() -> str:
    return _reference("BK")


def ride_reference() -> str:
    return _reference("RD")


def verification_code(length: int = VERIFICATION_CODE_LENGTH) -> str:
    """Short numeric code the passenger shows the driver at pickup."""
    return "".join(secrets.choice("0123456789") for _ in range(length))
