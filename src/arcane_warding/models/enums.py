"""Enumeration types for Arcane Warding."""

from __future__ import annotations

from enum import StrEnum


class Outcome(StrEnum):
    """Binary answer to a confirmation request."""

    APPROVED = "approved"
    DECLINED = "declined"

    @property
    def approved(self) -> bool:
        """True when the decision maker said yes."""
        return self is Outcome.APPROVED


class ConfirmationKind(StrEnum):
    """What a confirmation dialog is asking for."""

    ARCANE_WARD = "arcane_ward"
    """Create a ward on the caster after an eligible spell."""

    PROJECTED_WARD = "projected_ward"
    """Project the donor's ward onto an attacked ally."""


class TriggerKind(StrEnum):
    """Host events the absorption pipeline reacts to."""

    SPELL_CAST = "spell_cast"
    DAMAGE = "damage"
    ATTACK_RESOLVED = "attack_resolved"
    PROJECTED_DAMAGE = "projected_damage"
    REST_COMPLETED = "rest_completed"


class RestType(StrEnum):
    """Rest lengths reported by the host."""

    SHORT = "short"
    LONG = "long"


class ActorType(StrEnum):
    """Kinds of actors known to the directory."""

    CHARACTER = "character"
    NPC = "npc"


class HealStatus(StrEnum):
    """Outcome of a ward heal."""

    HEALED = "healed"
    ALREADY_FULL = "already_full"


class ResultStatus(StrEnum):
    """Outcome of handling one trigger."""

    CREATED = "created"
    """A new ward was created and activated."""

    HEALED = "healed"
    """The ward recovered charge."""

    ALREADY_FULL = "already_full"
    """Heal requested on a ward with nothing spent."""

    ABSORBED = "absorbed"
    """Damage was (partly) absorbed by a ward."""

    PROJECTED = "projected"
    """A donor agreed to project their ward onto the target."""

    RESET = "reset"
    """The ward was recharged by a long rest."""

    DECLINED = "declined"
    """The decision maker declined, timed out, or could not be reached."""

    SKIPPED = "skipped"
    """A guard short-circuited the trigger."""

    IGNORED = "ignored"
    """The trigger does not concern any ward."""

    NO_ELIGIBLE_DONOR = "no_eligible_donor"
    """No projected ward candidate passed the filters."""

    RELAYED = "relayed"
    """The trigger was forwarded to the session authority."""

    FAILED = "failed"
    """A recoverable error stopped the trigger."""


class NotificationKey(StrEnum):
    """Message keys handed to the notification sink.

    Localized text for each key is the notifier's concern.
    """

    EFFECT_CREATED = "effect_created"
    WARD_HEALED = "ward_healed"
    WARD_AT_MAX = "ward_at_max"
    ABSORBED = "absorbed"
    PROJECTED_WARD_APPLIED = "projected_ward_applied"
    PROJECTED_WARD_ABSORBED = "projected_ward_absorbed"
    LONG_REST = "long_rest"
    MISSING_FEATURE = "missing_feature"
    WARD_FAILURE = "ward_failure"


class MessageType(StrEnum):
    """Envelope types carried on the message channel."""

    CREATE_DIALOG_REQUEST = "createDialogRequest"
    DIALOG_RESULT = "dialogResult"
    TRIGGER_RELAY = "triggerRelay"
    TRIGGER_RESULT = "triggerResult"


__all__ = [
    "Outcome",
    "ConfirmationKind",
    "TriggerKind",
    "RestType",
    "ActorType",
    "HealStatus",
    "ResultStatus",
    "NotificationKey",
    "MessageType",
]
