"""Wire schemas for the confirmation protocol.

Every message on the channel is a JSON envelope ``{"type", "payload"}``.
Payload field names follow the host's camelCase convention on the wire and
snake_case in Python.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from arcane_warding.models.enums import ConfirmationKind, MessageType, Outcome, ResultStatus


_WIRE_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
)


class ConfirmationSubject(BaseModel):
    """Context shown to the decision maker.

    The broker never inspects it; it is handed to the presentation layer.
    """

    model_config = ConfigDict(**_WIRE_CONFIG, frozen=True)

    kind: ConfirmationKind = ConfirmationKind.ARCANE_WARD
    item_name: str | None = None
    actor_id: str | None = None
    attacker_id: str | None = None
    target_id: str | None = None


class CreateDialogRequest(BaseModel):
    """Ask a remote decision maker to answer a confirmation."""

    model_config = _WIRE_CONFIG

    request_id: str = Field(alias="requestID", min_length=1)
    decision_maker: str = Field(min_length=1)
    subject: ConfirmationSubject
    timeout: float | None = Field(default=None, gt=0)


class DialogResult(BaseModel):
    """Answer to a CreateDialogRequest, correlated by request ID."""

    model_config = _WIRE_CONFIG

    request_id: str = Field(alias="requestID", min_length=1)
    outcome: Outcome


class TriggerRelay(BaseModel):
    """A trigger forwarded by a non-authority party to the authority."""

    model_config = _WIRE_CONFIG

    relay_id: str = Field(alias="relayID", min_length=1)
    trigger: dict[str, Any]
    sender: str | None = None
    expects_result: bool = False


class TriggerRelayResult(BaseModel):
    """What the authority did with a relayed trigger, sent back to its sender.

    Only the split matters to the sender: it rewrites its own copy of the
    damage record to ``remaining`` when anything was absorbed.
    """

    model_config = _WIRE_CONFIG

    relay_id: str = Field(alias="relayID", min_length=1)
    recipient: str = Field(min_length=1)
    status: ResultStatus
    absorbed: int = Field(default=0, ge=0)
    remaining: int = Field(default=0, ge=0)
    error_code: str = ""


class Envelope(BaseModel):
    """Message as it travels on the named channel."""

    model_config = ConfigDict(extra="ignore")

    type: MessageType
    payload: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def wrap(cls, message_type: MessageType, payload: BaseModel) -> "Envelope":
        """Build an envelope from a payload model using wire names."""
        return cls(type=message_type, payload=payload.model_dump(mode="json", by_alias=True))

    def to_wire(self) -> dict[str, Any]:
        """Serialise to the JSON-compatible dict sent on the channel."""
        return self.model_dump(mode="json")


__all__ = [
    "ConfirmationSubject",
    "CreateDialogRequest",
    "DialogResult",
    "TriggerRelay",
    "TriggerRelayResult",
    "Envelope",
]
