"""Input validation for tracking commands."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

import base58

from vybe_alert_engine.tracker.errors import InvalidAddressError, InvalidThresholdError

# Solana address regex (base58, 32-44 chars)
SOLANA_ADDRESS_REGEX = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")
PUBLIC_KEY_LENGTH = 32


def is_valid_solana_address(address: str) -> bool:
    """Validate that a string is a base58 encoded 32 byte public key."""
    if not address or not isinstance(address, str):
        return False
    if not SOLANA_ADDRESS_REGEX.match(address):
        return False
    try:
        return len(base58.b58decode(address)) == PUBLIC_KEY_LENGTH
    except ValueError:
        return False


def validate_address(address: str) -> str:
    """Return the address unchanged or raise InvalidAddressError."""
    candidate = address.strip() if isinstance(address, str) else address
    if not is_valid_solana_address(candidate):
        raise InvalidAddressError(str(address))
    return candidate


def parse_threshold(value: Decimal | int | float | str) -> Decimal:
    """Parse a positive, finite threshold or raise InvalidThresholdError."""
    if isinstance(value, bool):
        raise InvalidThresholdError(value)
    try:
        threshold = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as e:
        raise InvalidThresholdError(value) from e
    if not threshold.is_finite() or threshold <= 0:
        raise InvalidThresholdError(value)
    return threshold
