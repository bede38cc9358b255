"""Error taxonomy for scheduling and delivery.

Failures local to one subscriber or one job are raised as one of these,
caught at the batch loop, logged with context and recorded on the job.
"""

from typing import Any


class GlintupError(Exception):
    """Base class for all domain errors."""


class ValidationError(GlintupError):
    """Malformed subscriber configuration. Never silently corrected."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class ContentUnavailableError(GlintupError):
    """Inventory, generation and fallback together could not supply enough words."""


class ContentGenerationError(GlintupError):
    """The generation provider failed or returned an unusable payload."""


class ConfigurationError(GlintupError):
    """Provider credentials or a required setting are missing."""


class InvalidTransitionError(GlintupError):
    """An outbox job status change the state machine does not allow."""


class NotFoundError(GlintupError):
    """A referenced subscriber or outbox job does not exist."""


class DeliveryError(GlintupError):
    """A provider refused or failed a send."""

    transient: bool = False

    def __init__(
        self,
        message: str,
        *,
        provider: str,
        reason: str,
        status_code: int | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.reason = reason
        self.status_code = status_code
        self.detail = detail

    def describe(self) -> str:
        code = f" ({self.status_code})" if self.status_code else ""
        return f"{self.provider}:{self.reason}{code}: {self}"


class TransientDeliveryError(DeliveryError):
    """Timeout, rate limit or provider 5xx. Eligible for a later retry."""

    transient = True


class PermanentDeliveryError(DeliveryError):
    """Invalid target, rejected content or a provider 4xx. Terminal."""


def is_transient_status(status_code: int) -> bool:
    """429 and 5xx are retryable, everything else is not."""
    return status_code == 429 or status_code >= 500


def classify_status_code(
    status_code: int,
    message: str,
    *,
    provider: str,
    detail: Any = None,
) -> DeliveryError:
    """Build the delivery error matching a provider HTTP status code."""
    if is_transient_status(status_code):
        reason = "rate-limited" if status_code == 429 else "provider-unavailable"
        return TransientDeliveryError(
            message, provider=provider, reason=reason, status_code=status_code, detail=detail
        )
    return PermanentDeliveryError(
        message, provider=provider, reason="provider-rejected", status_code=status_code, detail=detail
    )
