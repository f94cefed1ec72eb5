"""Core module providing configuration, logging, and base exceptions.

Exports:
    Exceptions:
        ArcaneWardingError: Base exception for all library errors.
        WardError, InactiveWardError, WardNotFoundError: Ledger errors.
        ConfirmationError, RequestTimedOutError,
        UnreachableDecisionMakerError, PresentationClosedError: Broker errors.
        NoEligibleDonorError: Projected ward selection error.

    Configuration:
        Settings: Main settings class.
        get_settings: Get the settings singleton.
        clear_settings_cache: Force settings reload.

    Logging:
        configure_logging: Set up logging.
        get_logger: Get a configured logger instance.
        bind_context: Add context to log entries.
        clear_context: Clear logging context.
"""

from __future__ import annotations

from arcane_warding.core.config import (
    Settings,
    WardSettings,
    clear_settings_cache,
    get_settings,
)
from arcane_warding.core.exceptions import (
    ArcaneWardingError,
    AuthorityError,
    ChannelError,
    ConfigurationError,
    ConfirmationError,
    DonorSelectionError,
    InactiveWardError,
    MessageFormatError,
    NoEligibleDonorError,
    PresentationClosedError,
    RequestTimedOutError,
    UnreachableDecisionMakerError,
    ValidationError,
    WardError,
    WardNotFoundError,
)
from arcane_warding.core.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    unbind_context,
)


__all__ = [
    # Base exception
    "ArcaneWardingError",
    # Configuration exceptions
    "ConfigurationError",
    "ValidationError",
    "AuthorityError",
    # Ledger exceptions
    "WardError",
    "WardNotFoundError",
    "InactiveWardError",
    # Broker exceptions
    "ConfirmationError",
    "RequestTimedOutError",
    "UnreachableDecisionMakerError",
    "PresentationClosedError",
    # Pipeline exceptions
    "DonorSelectionError",
    "NoEligibleDonorError",
    # Channel exceptions
    "ChannelError",
    "MessageFormatError",
    # Configuration
    "Settings",
    "WardSettings",
    "get_settings",
    "clear_settings_cache",
    # Logging
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
]
