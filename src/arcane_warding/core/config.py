"""Configuration management for Arcane Warding.

Settings are loaded with pydantic-settings from environment variables and
``.env`` files. The resolved Settings object is handed to a Session at
construction time; engine components read configuration from the session
rather than from the cached singleton.

Example:
    >>> from arcane_warding.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.ward.projected_ward_range
    30.0

Environment Variables:
    ARCANE_WARDING_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    ARCANE_WARDING_JSON_LOGS: Emit JSON log lines instead of console output
    ARCANE_WARDING_WARD_PROJECTED_WARD_RANGE: Maximum donor distance
    ARCANE_WARDING_WARD_PROJECTED_WARD_TIMEOUT_SECONDS: Projected ward dialog deadline
    ARCANE_WARDING_WARD_CREATE_WARD_TIMEOUT_SECONDS: Create ward dialog deadline
    ARCANE_WARDING_WARD_RELAY_TIMEOUT_SECONDS: Relayed damage answer deadline
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from arcane_warding.core.exceptions import ConfigurationError


class WardSettings(BaseSettings):
    """Rules constants for the ward pipeline.

    Attributes:
        projected_ward_range: Maximum distance between donor and target.
        projected_ward_timeout_seconds: Deadline for projected ward dialogs.
        create_ward_timeout_seconds: Deadline for the create ward dialog,
            or None to wait until the player answers.
        relay_timeout_seconds: Deadline for the authority's answer to
            relayed damage; no answer means nothing was absorbed.
        heal_per_spell_level: Ward charge restored per spell level.
        create_activity_names: Activity the ward effect links to, per ruleset.
        default_ruleset: Ruleset assumed for actors that do not declare one.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCANE_WARDING_WARD_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    projected_ward_range: float = Field(
        default=30.0,
        ge=0,
        description="Maximum donor to target distance",
    )
    projected_ward_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        le=300,
        description="Projected ward confirmation deadline",
    )
    create_ward_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Create ward confirmation deadline",
    )
    relay_timeout_seconds: float = Field(
        default=3.0,
        gt=0,
        le=300,
        description="How long a participant waits for the authority to absorb relayed damage",
    )
    heal_per_spell_level: int = Field(
        default=2,
        ge=1,
        le=20,
        description="Ward charge restored per spell level",
    )
    create_activity_names: dict[str, str] = Field(
        default_factory=lambda: {"2014": "Midi Use", "2024": "Create Ward"},
        description="Create ward activity name per ruleset",
    )
    default_ruleset: Literal["2014", "2024"] = Field(
        default="2024",
        description="Ruleset for actors without one",
    )

    @model_validator(mode="after")
    def validate_default_ruleset_activity(self) -> "WardSettings":
        """Ensure the default ruleset has a create ward activity name.

        Raises:
            ConfigurationError: If no activity name is configured for it.
        """
        if self.default_ruleset not in self.create_activity_names:
            raise ConfigurationError(
                f"No create ward activity configured for ruleset {self.default_ruleset!r}",
                config_key="create_activity_names",
            )
        return self

    def activity_name_for(self, ruleset: str | None) -> str | None:
        """Return the create ward activity name for a ruleset."""
        return self.create_activity_names.get(ruleset or self.default_ruleset)


class Settings(BaseSettings):
    """Main settings aggregating all configuration domains.

    Attributes:
        app_name: Application name.
        app_version: Application version string.
        debug: Log at DEBUG level whatever log_level says.
        log_level: Logging level.
        json_logs: Emit JSON log lines.
        ward: Ward rules settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCANE_WARDING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    app_name: str = Field(default="Arcane Warding", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Force DEBUG logging")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    json_logs: bool = Field(default=False, description="Emit JSON log lines")

    ward: WardSettings = Field(default_factory=WardSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the settings singleton.

    Returns:
        The Settings instance.

    Raises:
        ConfigurationError: If configuration is missing or invalid.
    """
    try:
        return Settings()
    except ConfigurationError:
        raise
    except Exception as exc:
        raise ConfigurationError(
            f"Failed to load settings: {exc}",
            details={"original_error": str(exc)},
        ) from exc


def clear_settings_cache() -> None:
    """Clear the settings cache, forcing a reload on next access."""
    get_settings.cache_clear()


__all__ = [
    "WardSettings",
    "Settings",
    "get_settings",
    "clear_settings_cache",
]
