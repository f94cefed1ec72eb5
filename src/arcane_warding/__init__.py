"""Arcane Warding - damage-absorbing ward pools for tabletop sessions.

A ward is a per-actor pool of temporary protection. It absorbs incoming
damage, is recharged by spell casts and long rests, and can be projected
onto an ally once per attack with the donor's consent.

ARCHITECTURE:
- The WardLedger owns every pool; only the session authority mutates it
- The ActionBroker obtains approve/decline answers with a bounded deadline
- The AbsorptionPipeline turns host triggers into ledger commands

Example:
    >>> from arcane_warding import Session, SpellCastTrigger, WardingRuntime, get_settings
    >>>
    >>> session = Session(
    ...     local_user_id="gm",
    ...     authority_user_id="gm",
    ...     directory=directory,
    ...     presenter=presenter,
    ...     notifier=notifier,
    ...     settings=get_settings(),
    ... )
    >>> async with WardingRuntime(session) as runtime:
    ...     await runtime.handle(SpellCastTrigger(actor_id="wizard-1", spell_level=1))

Modules:
    core: Configuration, logging, and base exceptions.
    models: Pydantic V2 schemas for wards, triggers, and messages.
    engine: Ledger, broker, pipeline, and session wiring.
"""

from __future__ import annotations

# Core
from arcane_warding.core.config import Settings, get_settings
from arcane_warding.core.exceptions import ArcaneWardingError
from arcane_warding.core.logging import configure_logging, get_logger

# Engine
from arcane_warding.engine import (
    AbsorptionPipeline,
    ActionBroker,
    LocalBus,
    Session,
    WardingRuntime,
    WardLedger,
)

# Models
from arcane_warding.models import (
    AttackResolvedTrigger,
    ConfirmationSubject,
    DamageRecord,
    DamageTrigger,
    Outcome,
    ProjectedDamageTrigger,
    RestCompletedTrigger,
    ResultStatus,
    SpellCastTrigger,
    TriggerResult,
    Ward,
)


__version__ = "0.1.0"

__all__ = [
    # Core
    "Settings",
    "get_settings",
    "ArcaneWardingError",
    "configure_logging",
    "get_logger",
    # Engine
    "WardLedger",
    "ActionBroker",
    "AbsorptionPipeline",
    "Session",
    "LocalBus",
    "WardingRuntime",
    # Models
    "Ward",
    "DamageRecord",
    "ConfirmationSubject",
    "Outcome",
    "ResultStatus",
    "TriggerResult",
    "SpellCastTrigger",
    "DamageTrigger",
    "AttackResolvedTrigger",
    "ProjectedDamageTrigger",
    "RestCompletedTrigger",
]
