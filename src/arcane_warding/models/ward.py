"""Pydantic V2 schemas for ward state and ward actors.

A Ward is the depletable absorption pool owned by one actor. Its arithmetic
lives in the WardLedger; this module only defines the record and the
invariants every record must satisfy.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator

from arcane_warding.models.enums import ActorType


class Ward(BaseModel):
    """Absorption pool attached to one actor.

    Attributes:
        owner_id: Identifier of the actor that owns the pool.
        capacity: Maximum absorbable charge.
        spent: Charge consumed so far.
        has_active_effect: Whether the "ward active" marker exists.
        full_messaging: Notification preference forwarded to the sink.
        linked_activities: Activities the create ward effect is linked to.
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
    )

    owner_id: str = Field(min_length=1, description="Owning actor")
    capacity: Annotated[int, Field(ge=0, description="Maximum charge")]
    spent: Annotated[int, Field(ge=0, description="Charge consumed")] = 0
    has_active_effect: bool = Field(default=False, description="Ward marker present")
    full_messaging: bool = Field(default=False, description="Send full notifications")
    linked_activities: list[str] = Field(
        default_factory=list,
        description="Activities carrying the ward effect",
    )

    @model_validator(mode="after")
    def validate_spent_within_capacity(self) -> "Ward":
        """Ensure the pool never holds more spent charge than capacity."""
        if self.spent > self.capacity:
            raise ValueError(
                f"spent ({self.spent}) cannot exceed capacity ({self.capacity})"
            )
        return self

    @computed_field  # type: ignore[prop-decorator]
    @property
    def current(self) -> int:
        """Charge still available to absorb damage."""
        return self.capacity - self.spent

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_depleted(self) -> bool:
        """True when the pool has no charge left."""
        return self.current == 0


class ActorProfile(BaseModel):
    """Snapshot of a host actor as seen by the ward pipeline.

    The host's document model is out of scope; the actor directory hands
    these profiles to the pipeline.

    Attributes:
        id: Actor identifier.
        name: Display name.
        actor_type: Character or NPC.
        owner_user_id: Player user controlling the actor, None for
            actors run by the session authority.
        has_ward_feature: Actor has the Arcane Ward feature.
        has_projected_ward: Actor has the Projected Ward feature.
        ward_capacity: Ward capacity derived by the host.
        ruleset: Ruleset the ward feature was authored for.
        full_messaging: Notification preference for the ward.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    id: str = Field(min_length=1, description="Actor ID")
    name: str = Field(min_length=1, max_length=100, description="Display name")
    actor_type: ActorType = Field(default=ActorType.CHARACTER, description="Actor type")
    owner_user_id: str | None = Field(default=None, description="Controlling player")
    has_ward_feature: bool = Field(default=False, description="Has Arcane Ward")
    has_projected_ward: bool = Field(default=False, description="Has Projected Ward")
    ward_capacity: Annotated[int, Field(ge=0, description="Ward capacity")] = 0
    ruleset: str | None = Field(default=None, description="Feature ruleset")
    full_messaging: bool = Field(default=False, description="Full notifications")


class ProjectedWardMarker(BaseModel):
    """Link between a donor's ward and the actor it currently protects.

    Lives from the moment the donor agrees until the target's next damage
    event, which consumes it.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    donor_id: str = Field(min_length=1, description="Actor donating the ward")
    target_id: str = Field(min_length=1, description="Protected actor")
    attacker_id: str | None = Field(default=None, description="Attacker that triggered it")
    armed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


__all__ = [
    "Ward",
    "ActorProfile",
    "ProjectedWardMarker",
]
