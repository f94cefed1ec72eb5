"""Custom exception hierarchy for Arcane Warding.

All exceptions inherit from ArcaneWardingError, so the absorption pipeline
can catch every recoverable failure at its boundary while keeping the
domain-specific context each error carries.

Every exception class exposes a stable ``code`` used in trigger results and
failure notifications.

Example:
    >>> from arcane_warding.core.exceptions import InactiveWardError
    >>> raise InactiveWardError("Ward is not active", owner_id="wizard-1")
"""

from __future__ import annotations

from typing import Any


class ArcaneWardingError(Exception):
    """Base exception for all Arcane Warding errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    code: str = "arcane_warding_error"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        """Return a detailed string representation of the exception."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(ArcaneWardingError):
    """Raised when settings are missing or invalid."""

    code = "configuration_error"

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize configuration error with the offending key.

        Args:
            message: Human-readable error description.
            config_key: The configuration key that caused the error.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


class ValidationError(ArcaneWardingError):
    """Raised when an operation receives an invalid argument."""

    code = "validation_error"

    def __init__(
        self,
        message: str,
        *,
        field_name: str | None = None,
        invalid_value: Any = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize validation error with field context.

        Args:
            message: Human-readable error description.
            field_name: Name of the field that failed validation.
            invalid_value: The value that failed validation.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if field_name:
            combined_details["field_name"] = field_name
        if invalid_value is not None:
            combined_details["invalid_value"] = invalid_value
        super().__init__(message, details=combined_details)


class AuthorityError(ArcaneWardingError):
    """Raised when a non-privileged party attempts a ward mutation."""

    code = "not_authority"

    def __init__(
        self,
        message: str,
        *,
        user_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if user_id:
            combined_details["user_id"] = user_id
        super().__init__(message, details=combined_details)


# =============================================================================
# Ward Ledger Exceptions
# =============================================================================


class WardError(ArcaneWardingError):
    """Base exception for ward ledger errors."""

    code = "ward_error"

    def __init__(
        self,
        message: str,
        *,
        owner_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize ward error with owner context.

        Args:
            message: Human-readable error description.
            owner_id: Identifier of the actor owning the ward.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if owner_id:
            combined_details["owner_id"] = owner_id
        super().__init__(message, details=combined_details)

    @property
    def owner_id(self) -> str | None:
        """Identifier of the ward owner, if known."""
        return self.details.get("owner_id")


class WardNotFoundError(WardError):
    """Raised when an operation targets an owner with no ward record."""

    code = "ward_not_found"


class InactiveWardError(WardError):
    """Raised when a ward is mutated while its effect marker is absent.

    The failed absorption is still described: nothing was absorbed and the
    whole amount remains.
    """

    code = "inactive_ward"

    def __init__(
        self,
        message: str,
        *,
        owner_id: str | None = None,
        absorbed: int = 0,
        remaining: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize inactive ward error with the unabsorbed split.

        Args:
            message: Human-readable error description.
            owner_id: Identifier of the actor owning the ward.
            absorbed: Amount absorbed (always 0 for an inactive ward).
            remaining: Amount left unabsorbed.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        combined_details["absorbed"] = absorbed
        if remaining is not None:
            combined_details["remaining"] = remaining
        super().__init__(message, owner_id=owner_id, details=combined_details)
        self.absorbed = absorbed
        self.remaining = remaining


# =============================================================================
# Confirmation Exceptions
# =============================================================================


class ConfirmationError(ArcaneWardingError):
    """Base exception for confirmation request errors."""

    code = "confirmation_error"

    def __init__(
        self,
        message: str,
        *,
        request_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if request_id:
            combined_details["request_id"] = request_id
        super().__init__(message, details=combined_details)


class RequestTimedOutError(ConfirmationError):
    """Raised when a confirmation deadline elapses without an answer."""

    code = "request_timed_out"

    def __init__(
        self,
        message: str,
        *,
        request_id: str | None = None,
        timeout: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize timeout error.

        Args:
            message: Human-readable error description.
            request_id: Correlation token of the request.
            timeout: The deadline that elapsed, in seconds.
            details: Optional dictionary containing additional error context.
        """
        combined_details = details or {}
        if timeout is not None:
            combined_details["timeout"] = timeout
        super().__init__(message, request_id=request_id, details=combined_details)


class UnreachableDecisionMakerError(ConfirmationError):
    """Raised when no connected party can answer a confirmation."""

    code = "unreachable_decision_maker"

    def __init__(
        self,
        message: str,
        *,
        decision_maker: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if decision_maker:
            combined_details["decision_maker"] = decision_maker
        super().__init__(message, details=combined_details)


class PresentationClosedError(ConfirmationError):
    """Raised by a presentation collaborator when the dialog was abandoned."""

    code = "presentation_closed"


# =============================================================================
# Donor Selection Exceptions
# =============================================================================


class DonorSelectionError(ArcaneWardingError):
    """Base exception for projected-ward donor selection."""

    code = "donor_selection_error"


class NoEligibleDonorError(DonorSelectionError):
    """Raised when no candidate passes the projected-ward filters."""

    code = "no_eligible_donor"

    def __init__(
        self,
        message: str,
        *,
        target_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if target_id:
            combined_details["target_id"] = target_id
        super().__init__(message, details=combined_details)


# =============================================================================
# Channel Exceptions
# =============================================================================


class ChannelError(ArcaneWardingError):
    """Base exception for message channel errors."""

    code = "channel_error"


class MessageFormatError(ChannelError):
    """Raised when an envelope cannot be parsed."""

    code = "message_format_error"

    def __init__(
        self,
        message: str,
        *,
        message_type: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if message_type:
            combined_details["message_type"] = message_type
        super().__init__(message, details=combined_details)


__all__ = [
    "ArcaneWardingError",
    "ConfigurationError",
    "ValidationError",
    "AuthorityError",
    "WardError",
    "WardNotFoundError",
    "InactiveWardError",
    "ConfirmationError",
    "RequestTimedOutError",
    "UnreachableDecisionMakerError",
    "PresentationClosedError",
    "DonorSelectionError",
    "NoEligibleDonorError",
    "ChannelError",
    "MessageFormatError",
]
