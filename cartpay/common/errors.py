"""Error taxonomy shared by the payment service and the topic provisioner.

Library exceptions (aiokafka, OS, asyncio timeouts) are wrapped into these at
the Kafka seam so callers only ever branch on `CartPayError` subclasses.
"""

from typing import Any


class CartPayError(Exception):
    """Base error carrying the HTTP status it maps to and a detail string."""

    status_code = 500

    def __init__(self, message: str, details: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details if details is not None else message


class ClusterConnectionError(CartPayError):
    """The log cluster could not be reached at connect time."""

    status_code = 503


class CartValidationError(CartPayError):
    """Request body is missing a usable cart."""

    status_code = 400


class MalformedBodyError(CartValidationError):
    """Request body is not valid JSON."""


class PublishError(CartPayError):
    """The broker rejected or failed to deliver a record."""


class PublishTimeoutError(PublishError):
    """A publish did not complete within the configured timeout."""

    status_code = 504


class AdminOperationError(CartPayError):
    """Listing, creating or awaiting topics failed."""

    def __init__(
        self,
        message: str,
        errors: list[dict[str, Any]] | None = None,
        details: str | None = None,
    ) -> None:
        super().__init__(message, details)
        self.errors = errors or []
