"""Errors surfaced synchronously by the tracking engines' command operations."""

from __future__ import annotations


class TrackingError(Exception):
    """Base class for command-facing tracking errors."""


class ValidationError(TrackingError):
    """Raised when a request carries malformed input; never retried."""


class InvalidAddressError(ValidationError):
    """Raised when a wallet or token address is not a valid Solana public key."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Invalid Solana address: {address!r}")
        self.address = address


class InvalidThresholdError(ValidationError):
    """Raised when a threshold is not a positive finite number."""

    def __init__(self, value: object) -> None:
        super().__init__(f"Threshold must be a positive number, got {value!r}")
        self.value = value


class SubscriberLimitExceededError(TrackingError):
    """Raised when a subscriber already tracks the maximum number of wallets."""

    def __init__(self, subscriber_id: int, limit: int) -> None:
        super().__init__(f"Subscriber {subscriber_id} already tracks {limit} wallets")
        self.subscriber_id = subscriber_id
        self.limit = limit


class NoTokensFoundError(TrackingError):
    """Raised when a wallet to be tracked holds no tokens."""

    def __init__(self, wallet_address: str) -> None:
        super().__init__(f"No tokens found in wallet {wallet_address}")
        self.wallet_address = wallet_address


class NotFoundError(TrackingError):
    """Raised when removing an entity the subscriber does not have."""

    def __init__(self, subscriber_id: int, entity: str) -> None:
        super().__init__(f"Subscriber {subscriber_id} has no subscription for {entity}")
        self.subscriber_id = subscriber_id
        self.entity = entity
