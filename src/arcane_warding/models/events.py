"""Trigger payloads and the mutable damage record.

Host integrations translate their own hooks into one of the trigger models
below and hand it to ``AbsorptionPipeline.handle``. Triggers form a tagged
union discriminated by ``kind``, so they survive a JSON round trip when a
non-authority party relays them to the session authority.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from arcane_warding.models.enums import RestType


HEALING_DAMAGE_TYPE = "healing"


class DamageComponent(BaseModel):
    """One entry of a damage breakdown (e.g. 7 fire)."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    damage_type: str = Field(min_length=1, description="Damage type")
    value: Annotated[int, Field(ge=0, description="Damage amount")]


class DamageRecord(BaseModel):
    """Damage about to be applied to an actor.

    The pipeline rewrites this record in place when a ward absorbs part of
    the damage; the host applies whatever is left afterwards.

    Attributes:
        target_id: Actor receiving the damage.
        attacker_id: Actor dealing the damage.
        total_damage: Total damage after resistances.
        hp_damage: Damage that will reach hit points.
        is_hit: Whether the attack hit.
        is_healing: Whether the record is healing rather than damage.
        damage_detail: Per-type breakdown.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    target_id: str = Field(min_length=1, description="Damaged actor")
    attacker_id: str | None = Field(default=None, description="Attacking actor")
    total_damage: Annotated[int, Field(ge=0, description="Total damage")]
    hp_damage: Annotated[int, Field(ge=0, description="Damage to hit points")] = 0
    is_hit: bool = Field(default=True, description="Attack hit")
    is_healing: bool = Field(default=False, description="Record is healing")
    damage_detail: list[DamageComponent] = Field(
        default_factory=list,
        description="Damage breakdown",
    )

    @model_validator(mode="before")
    @classmethod
    def fill_host_defaults(cls, data: Any) -> Any:
        """Default hp_damage to the total and detect healing breakdowns."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "hp_damage" not in data and "total_damage" in data:
            data["hp_damage"] = data["total_damage"]
        for detail in data.get("damage_detail") or []:
            damage_type = (
                detail.get("damage_type") if isinstance(detail, dict) else detail.damage_type
            )
            if damage_type == HEALING_DAMAGE_TYPE:
                data["is_healing"] = True
                break
        return data

    def rewrite(self, remaining: int) -> None:
        """Rewrite the record to the post-absorption total.

        Every breakdown entry is set to the single remaining total rather
        than prorated.
        """
        self.total_damage = remaining
        self.hp_damage = remaining
        for detail in self.damage_detail:
            detail.value = remaining


# =============================================================================
# Triggers
# =============================================================================


class SpellCastTrigger(BaseModel):
    """An actor finished casting a spell of the warding school.

    Attributes:
        actor_id: The caster.
        item_name: Spell name, forwarded to the confirmation dialog.
        spell_level: Base level of the spell (0 for cantrips).
        cast_level: Level the spell was cast at, when upcast.
    """

    model_config = ConfigDict(extra="forbid")

    kind: Literal["spell_cast"] = "spell_cast"
    actor_id: str = Field(min_length=1)
    item_name: str | None = None
    spell_level: Annotated[int, Field(ge=0, le=9)] = 0
    cast_level: Annotated[int | None, Field(ge=0, le=9)] = None

    @property
    def effective_level(self) -> int:
        """Level used for healing: the cast level when upcast."""
        if self.cast_level is not None and self.cast_level != self.spell_level:
            return self.cast_level
        return self.spell_level


class DamageTrigger(BaseModel):
    """Damage is about to apply to an actor."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["damage"] = "damage"
    record: DamageRecord


class AttackResolvedTrigger(BaseModel):
    """An attack roll against a target completed."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["attack_resolved"] = "attack_resolved"
    attacker_id: str | None = None
    target_id: str = Field(min_length=1)
    item_name: str | None = None
    is_hit: bool = True


class ProjectedDamageTrigger(BaseModel):
    """Damage against a target protected by a projected ward."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["projected_damage"] = "projected_damage"
    record: DamageRecord


class RestCompletedTrigger(BaseModel):
    """An actor completed a rest."""

    model_config = ConfigDict(extra="forbid")

    kind: Literal["rest_completed"] = "rest_completed"
    actor_id: str = Field(min_length=1)
    rest_type: RestType = RestType.LONG


Trigger = Annotated[
    Union[
        SpellCastTrigger,
        DamageTrigger,
        AttackResolvedTrigger,
        ProjectedDamageTrigger,
        RestCompletedTrigger,
    ],
    Field(discriminator="kind"),
]

trigger_adapter: TypeAdapter[Trigger] = TypeAdapter(Trigger)


__all__ = [
    "HEALING_DAMAGE_TYPE",
    "DamageComponent",
    "DamageRecord",
    "SpellCastTrigger",
    "DamageTrigger",
    "AttackResolvedTrigger",
    "ProjectedDamageTrigger",
    "RestCompletedTrigger",
    "Trigger",
    "trigger_adapter",
]
