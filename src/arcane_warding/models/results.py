"""Results returned by the ledger and the pipeline, and outgoing notifications."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field

from arcane_warding.models.enums import HealStatus, NotificationKey, ResultStatus, TriggerKind


class AbsorbResult(BaseModel):
    """Split of an absorbed amount.

    Attributes:
        owner_id: Ward that absorbed the damage.
        absorbed: Amount taken by the ward.
        remaining: Amount left to apply to the actor.
        spent: Ward's spent charge after the absorption.
        current: Ward's remaining charge after the absorption.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    owner_id: str
    absorbed: Annotated[int, Field(ge=0)]
    remaining: Annotated[int, Field(ge=0)]
    spent: Annotated[int, Field(ge=0)]
    current: Annotated[int, Field(ge=0)]


class HealResult(BaseModel):
    """Outcome of restoring ward charge."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    owner_id: str
    status: HealStatus
    healed: Annotated[int, Field(ge=0)] = 0
    spent: Annotated[int, Field(ge=0)] = 0

    @property
    def success(self) -> bool:
        """True when any charge was restored."""
        return self.status is HealStatus.HEALED


class Notification(BaseModel):
    """Message handed to the notification sink.

    ``full_messaging`` is the ward owner's preference; the sink decides what
    to do with it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    owner_id: str
    key: NotificationKey
    params: dict[str, Any] = Field(default_factory=dict)
    full_messaging: bool = False


@dataclass
class TriggerResult:
    """Result of handling one trigger.

    Attributes:
        kind: The trigger kind that was handled.
        status: What happened.
        owner_id: Ward owner involved, if any.
        donor_id: Donor of a projected ward, if any.
        target_id: Protected or damaged actor, if any.
        absorbed: Damage absorbed.
        remaining: Damage left after absorption.
        healed: Charge restored.
        error_code: Error code when status is FAILED.
        message: Human-readable summary.
    """

    kind: TriggerKind
    status: ResultStatus
    owner_id: str | None = None
    donor_id: str | None = None
    target_id: str | None = None
    absorbed: int = 0
    remaining: int = 0
    healed: int = 0
    error_code: str = ""
    message: str = ""

    def merge_absorption(self, result: AbsorbResult) -> None:
        """Copy an absorption split into this result."""
        self.absorbed += result.absorbed
        self.remaining = result.remaining


__all__ = [
    "AbsorbResult",
    "HealResult",
    "Notification",
    "TriggerResult",
]
