"""Pydantic models for wards, triggers, protocol messages, and results."""

from __future__ import annotations

from arcane_warding.models.enums import (
    ActorType,
    ConfirmationKind,
    HealStatus,
    MessageType,
    NotificationKey,
    Outcome,
    RestType,
    ResultStatus,
    TriggerKind,
)
from arcane_warding.models.events import (
    AttackResolvedTrigger,
    DamageComponent,
    DamageRecord,
    DamageTrigger,
    ProjectedDamageTrigger,
    RestCompletedTrigger,
    SpellCastTrigger,
    Trigger,
    trigger_adapter,
)
from arcane_warding.models.messages import (
    ConfirmationSubject,
    CreateDialogRequest,
    DialogResult,
    Envelope,
    TriggerRelay,
    TriggerRelayResult,
)
from arcane_warding.models.results import (
    AbsorbResult,
    HealResult,
    Notification,
    TriggerResult,
)
from arcane_warding.models.ward import ActorProfile, ProjectedWardMarker, Ward


__all__ = [
    # Enums
    "ActorType",
    "ConfirmationKind",
    "HealStatus",
    "MessageType",
    "NotificationKey",
    "Outcome",
    "RestType",
    "ResultStatus",
    "TriggerKind",
    # Ward state
    "Ward",
    "ActorProfile",
    "ProjectedWardMarker",
    # Triggers
    "DamageComponent",
    "DamageRecord",
    "SpellCastTrigger",
    "DamageTrigger",
    "AttackResolvedTrigger",
    "ProjectedDamageTrigger",
    "RestCompletedTrigger",
    "Trigger",
    "trigger_adapter",
    # Messages
    "ConfirmationSubject",
    "CreateDialogRequest",
    "DialogResult",
    "TriggerRelay",
    "TriggerRelayResult",
    "Envelope",
    # Results
    "AbsorbResult",
    "HealResult",
    "Notification",
    "TriggerResult",
]
