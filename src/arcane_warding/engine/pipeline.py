"""Absorption pipeline: turns host triggers into ward mutations.

The pipeline owns no ward state. For each trigger it reads the ledger, asks
the broker for consent where the rules require it, then issues ledger
commands and reports the result to the notification sink.

Trigger handling, by kind:

- spell_cast: offer to create a ward, or heal an active one.
- damage: absorb incoming damage with the target's own ward, after first
  consuming any projected ward armed for that target.
- attack_resolved: offer the first eligible donor the chance to project
  their ward onto the target.
- projected_damage: consume the target's projected ward marker.
- rest_completed: recharge an active ward after a long rest.

Only the session authority executes triggers; other participants relay
them. Relayed damage waits for the authority's absorption split so the
local damage record is rewritten exactly as it would be on the authority.
Recoverable errors never escape ``handle``: they are logged, sent to
the notification sink, and returned as a FAILED result.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable

from arcane_warding.core.exceptions import (
    ArcaneWardingError,
    AuthorityError,
    InactiveWardError,
    NoEligibleDonorError,
    RequestTimedOutError,
    UnreachableDecisionMakerError,
)
from arcane_warding.core.logging import get_logger
from arcane_warding.engine.broker import ActionBroker
from arcane_warding.engine.ledger import WardLedger
from arcane_warding.engine.session import Session
from arcane_warding.models.enums import (
    ActorType,
    ConfirmationKind,
    HealStatus,
    NotificationKey,
    Outcome,
    RestType,
    ResultStatus,
    TriggerKind,
)
from arcane_warding.models.events import (
    AttackResolvedTrigger,
    DamageRecord,
    DamageTrigger,
    ProjectedDamageTrigger,
    RestCompletedTrigger,
    SpellCastTrigger,
    Trigger,
)
from arcane_warding.models.messages import ConfirmationSubject
from arcane_warding.models.results import TriggerResult
from arcane_warding.models.ward import ActorProfile, ProjectedWardMarker


logger = get_logger(__name__)


def owner_of(trigger: Trigger) -> str:
    """Actor a trigger is about, used to route failure notifications."""
    if isinstance(trigger, (DamageTrigger, ProjectedDamageTrigger)):
        return trigger.record.target_id
    if isinstance(trigger, AttackResolvedTrigger):
        return trigger.target_id
    return trigger.actor_id


class AbsorptionPipeline:
    """Coordinates triggers against the ward ledger and action broker.

    Attributes:
        session: Session context.
        ledger: Ward ledger of the session.
        broker: Action broker of the session.
    """

    def __init__(self, session: Session, ledger: WardLedger, broker: ActionBroker) -> None:
        """Initialize the pipeline.

        On the session authority the pipeline registers itself with the
        broker so relayed triggers are executed here.
        """
        self.session = session
        self.ledger = ledger
        self.broker = broker
        self._handlers: dict[TriggerKind, Callable[..., Awaitable[TriggerResult]]] = {
            TriggerKind.SPELL_CAST: self._on_spell_cast,
            TriggerKind.DAMAGE: self._on_damage,
            TriggerKind.ATTACK_RESOLVED: self._on_attack_resolved,
            TriggerKind.PROJECTED_DAMAGE: self._on_projected_damage,
            TriggerKind.REST_COMPLETED: self._on_rest_completed,
        }
        if session.is_authority:
            broker.set_trigger_handler(self.handle)

    # =========================================================================
    # Entry points
    # =========================================================================

    async def handle(self, trigger: Trigger) -> TriggerResult:
        """Handle one trigger.

        Args:
            trigger: The tagged trigger payload.

        Returns:
            What happened. Never raises for recoverable ward errors.
        """
        kind = TriggerKind(trigger.kind)
        owner_id = owner_of(trigger)

        with self.session.bind_logging():
            if not self.session.is_authority:
                return await self._relay(kind, owner_id, trigger)

            logger.debug("Handling trigger", kind=str(kind), owner_id=owner_id)
            try:
                return await self._handlers[kind](trigger)
            except NoEligibleDonorError as exc:
                logger.info("No projected ward donor", **exc.details)
                self.session.notify(
                    owner_id,
                    NotificationKey.WARD_FAILURE,
                    full_messaging=self._full_messaging(owner_id),
                    code=exc.code,
                )
                return TriggerResult(
                    kind=kind,
                    status=ResultStatus.NO_ELIGIBLE_DONOR,
                    target_id=owner_id,
                    error_code=exc.code,
                    message=exc.message,
                )
            except ArcaneWardingError as exc:
                return self._failure(kind, owner_id, exc)

    async def bootstrap(self) -> list[str]:
        """Prepare wards for every warding actor at session start.

        Ensures each ward-bearing character has a ward and that its create
        ward activity is linked. Safe to run repeatedly.

        Returns:
            Owners whose activity was linked by this call.

        Raises:
            AuthorityError: If this session is not the authority.
        """
        self._require_authority("bootstrap")
        linked: list[str] = []
        for actor in self.session.directory.list_actors():
            if actor.actor_type is not ActorType.CHARACTER or not actor.has_ward_feature:
                continue

            await self.ledger.ensure_ward(
                actor.id,
                actor.ward_capacity,
                full_messaging=actor.full_messaging,
            )
            activity = self.session.settings.ward.activity_name_for(actor.ruleset)
            if activity is None:
                logger.warning("No create ward activity", actor_id=actor.id, ruleset=actor.ruleset)
                self.session.notify(
                    actor.id,
                    NotificationKey.MISSING_FEATURE,
                    full_messaging=self._full_messaging(actor.id),
                    actor=actor.name,
                )
                continue
            if await self.ledger.link_activity(actor.id, activity):
                linked.append(actor.id)

        logger.info("Ward bootstrap complete", wards=len(self.ledger), linked=len(linked))
        return linked

    async def remove_owner(self, owner_id: str) -> bool:
        """Forget an actor whose ward feature or record was removed.

        Drops the ward, every projected ward it donated, and any projected
        ward protecting it.
        """
        self._require_authority("remove_owner")
        dropped = self.session.markers.discard_donor(owner_id)
        self.session.markers.take(owner_id)
        removed = await self.ledger.remove_ward(owner_id)
        logger.info("Ward owner removed", owner_id=owner_id, markers_dropped=dropped)
        return removed

    async def _relay(self, kind: TriggerKind, owner_id: str, trigger: Trigger) -> TriggerResult:
        """Forward a trigger to the authority.

        Damage triggers wait for the authority's absorption split and rewrite
        the local record with it. Without an answer nothing was absorbed
        here, and the record is left as it is.
        """
        if not isinstance(trigger, (DamageTrigger, ProjectedDamageTrigger)):
            try:
                self.broker.relay_trigger(trigger)
            except ArcaneWardingError as exc:
                return self._failure(kind, owner_id, exc)
            return TriggerResult(kind=kind, status=ResultStatus.RELAYED, owner_id=owner_id)

        record = trigger.record
        try:
            reply = await self.broker.relay_for_result(
                trigger,
                self.session.settings.ward.relay_timeout_seconds,
            )
        except ArcaneWardingError as exc:
            return self._failure(kind, owner_id, exc, remaining=record.total_damage)

        if reply.absorbed:
            record.rewrite(reply.remaining)
        return TriggerResult(
            kind=kind,
            status=ResultStatus.RELAYED,
            owner_id=owner_id,
            target_id=record.target_id,
            absorbed=reply.absorbed,
            remaining=record.total_damage,
            error_code=reply.error_code,
        )

    # =========================================================================
    # Spell cast
    # =========================================================================

    async def _on_spell_cast(self, trigger: SpellCastTrigger) -> TriggerResult:
        kind = TriggerKind.SPELL_CAST
        actor = self.session.directory.get_actor(trigger.actor_id)
        if actor is None or not actor.has_ward_feature:
            return TriggerResult(
                kind=kind,
                status=ResultStatus.IGNORED,
                owner_id=trigger.actor_id,
                message="Caster has no ward feature",
            )
        if actor.actor_type is not ActorType.CHARACTER:
            return TriggerResult(
                kind=kind,
                status=ResultStatus.IGNORED,
                owner_id=actor.id,
                message="Only characters hold wards",
            )

        if not self.ledger.is_active(actor.id):
            return await self._offer_ward(actor, trigger)

        level = trigger.effective_level
        if level == 0:
            return TriggerResult(
                kind=kind,
                status=ResultStatus.IGNORED,
                owner_id=actor.id,
                message="Cantrips do not charge the ward",
            )

        amount = level * self.session.settings.ward.heal_per_spell_level
        result = await self.ledger.heal(actor.id, amount)
        if result.status is HealStatus.ALREADY_FULL:
            self.session.notify(
                actor.id,
                NotificationKey.WARD_AT_MAX,
                full_messaging=self._full_messaging(actor.id),
                actor=actor.name,
            )
            return TriggerResult(kind=kind, status=ResultStatus.ALREADY_FULL, owner_id=actor.id)

        self.session.notify(
            actor.id,
            NotificationKey.WARD_HEALED,
            full_messaging=self._full_messaging(actor.id),
            actor=actor.name,
            healed=result.healed,
        )
        return TriggerResult(
            kind=kind,
            status=ResultStatus.HEALED,
            owner_id=actor.id,
            healed=result.healed,
        )

    async def _offer_ward(self, actor: ActorProfile, trigger: SpellCastTrigger) -> TriggerResult:
        kind = TriggerKind.SPELL_CAST
        subject = ConfirmationSubject(
            kind=ConfirmationKind.ARCANE_WARD,
            item_name=trigger.item_name,
            actor_id=actor.id,
        )
        outcome = await self._ask(actor, subject, self.session.settings.ward.create_ward_timeout_seconds)
        if not outcome.approved:
            return TriggerResult(kind=kind, status=ResultStatus.DECLINED, owner_id=actor.id)

        ward = await self.ledger.create_ward(
            actor.id,
            actor.ward_capacity,
            full_messaging=actor.full_messaging,
        )
        self.session.notify(
            actor.id,
            NotificationKey.EFFECT_CREATED,
            full_messaging=ward.full_messaging,
            actor=actor.name,
        )
        return TriggerResult(kind=kind, status=ResultStatus.CREATED, owner_id=actor.id)

    # =========================================================================
    # Damage
    # =========================================================================

    async def _on_damage(self, trigger: DamageTrigger) -> TriggerResult:
        record = trigger.record
        marker = self.session.markers.take(record.target_id)
        if marker is None:
            return await self._absorb_own(record)

        try:
            result = await self._absorb_projected(marker, record, TriggerKind.DAMAGE)
        except ArcaneWardingError as exc:
            result = self._failure(
                TriggerKind.DAMAGE,
                marker.donor_id,
                exc,
                remaining=record.total_damage,
            )

        own = await self._absorb_own(record)
        if own.status is ResultStatus.ABSORBED:
            result.status = ResultStatus.ABSORBED
            result.owner_id = own.owner_id
            result.absorbed += own.absorbed
            result.remaining = own.remaining
        return result

    async def _on_projected_damage(self, trigger: ProjectedDamageTrigger) -> TriggerResult:
        record = trigger.record
        marker = self.session.markers.take(record.target_id)
        if marker is None:
            return TriggerResult(
                kind=TriggerKind.PROJECTED_DAMAGE,
                status=ResultStatus.IGNORED,
                target_id=record.target_id,
                remaining=record.total_damage,
                message="No projected ward armed for target",
            )
        return await self._absorb_projected(marker, record, TriggerKind.PROJECTED_DAMAGE)

    async def _absorb_own(self, record: DamageRecord) -> TriggerResult:
        owner_id = record.target_id
        result = TriggerResult(
            kind=TriggerKind.DAMAGE,
            status=ResultStatus.SKIPPED,
            owner_id=owner_id,
            target_id=owner_id,
            remaining=record.total_damage,
        )
        reason = self._damage_skip_reason(record, owner_id)
        if reason:
            result.message = reason
            return result

        absorption = await self.ledger.absorb(owner_id, record.total_damage)
        record.rewrite(absorption.remaining)

        self.session.notify(
            owner_id,
            NotificationKey.ABSORBED,
            full_messaging=self._full_messaging(owner_id),
            absorbed=absorption.absorbed,
            remaining=absorption.remaining,
            depleted=absorption.current == 0,
        )
        result.status = ResultStatus.ABSORBED
        result.merge_absorption(absorption)
        return result

    async def _absorb_projected(
        self,
        marker: ProjectedWardMarker,
        record: DamageRecord,
        kind: TriggerKind,
    ) -> TriggerResult:
        donor_id = marker.donor_id
        result = TriggerResult(
            kind=kind,
            status=ResultStatus.SKIPPED,
            owner_id=donor_id,
            donor_id=donor_id,
            target_id=record.target_id,
            remaining=record.total_damage,
        )
        reason = self._damage_skip_reason(record, donor_id)
        if reason:
            logger.info("Projected ward consumed without absorbing", donor_id=donor_id, reason=reason)
            result.message = reason
            return result

        absorption = await self.ledger.absorb(donor_id, record.total_damage)
        record.rewrite(absorption.remaining)

        self.session.notify(
            donor_id,
            NotificationKey.PROJECTED_WARD_ABSORBED,
            full_messaging=self._full_messaging(donor_id),
            target_id=record.target_id,
            attacker_id=record.attacker_id,
            absorbed=absorption.absorbed,
            remaining=absorption.remaining,
            depleted=absorption.current == 0,
        )
        result.status = ResultStatus.ABSORBED
        result.merge_absorption(absorption)
        return result

    def _damage_skip_reason(self, record: DamageRecord, ward_owner_id: str) -> str:
        """Fast-exit guards, evaluated in order; empty when absorption applies."""
        if record.is_healing:
            return "Damage is healing"
        if not record.is_hit:
            return "Attack missed"
        if record.total_damage == 0:
            return "No damage to absorb"
        if not self.ledger.is_active(ward_owner_id):
            return "Ward is not active"
        if self.ledger.current(ward_owner_id) == 0:
            return "Ward is depleted"
        return ""

    # =========================================================================
    # Projected ward
    # =========================================================================

    async def _on_attack_resolved(self, trigger: AttackResolvedTrigger) -> TriggerResult:
        kind = TriggerKind.ATTACK_RESOLVED
        target_id = trigger.target_id
        if not trigger.is_hit:
            return TriggerResult(
                kind=kind,
                status=ResultStatus.SKIPPED,
                target_id=target_id,
                message="Attack missed",
            )
        if self.ledger.is_active(target_id) or target_id in self.session.markers:
            return TriggerResult(
                kind=kind,
                status=ResultStatus.SKIPPED,
                target_id=target_id,
                message="Target is already warded",
            )

        for donor in self._projected_ward_candidates():
            reason = self._donor_skip_reason(donor, trigger)
            if reason:
                logger.debug("Projected ward candidate skipped", donor_id=donor.id, reason=reason)
                continue
            # only the first eligible donor is asked
            return await self._offer_projection(donor, trigger)

        raise NoEligibleDonorError(
            "No projected ward donor can reach the target",
            target_id=target_id,
        )

    def _projected_ward_candidates(self) -> list[ActorProfile]:
        return [
            actor
            for actor in self.session.directory.list_actors()
            if actor.actor_type is ActorType.CHARACTER
            and actor.has_projected_ward
            and self.ledger.is_active(actor.id)
        ]

    def _donor_skip_reason(self, donor: ActorProfile, trigger: AttackResolvedTrigger) -> str:
        if self.ledger.current(donor.id) == 0:
            return "Ward is depleted"
        distance = self.session.directory.distance(donor.id, trigger.target_id)
        if distance is None or distance < 0:
            return "Target not in line of sight"
        if distance > self.session.settings.ward.projected_ward_range:
            return "Target out of range"
        if donor.id == trigger.attacker_id:
            return "Donor is the attacker"
        return ""

    async def _offer_projection(
        self,
        donor: ActorProfile,
        trigger: AttackResolvedTrigger,
    ) -> TriggerResult:
        kind = TriggerKind.ATTACK_RESOLVED
        subject = ConfirmationSubject(
            kind=ConfirmationKind.PROJECTED_WARD,
            item_name=trigger.item_name,
            actor_id=donor.id,
            attacker_id=trigger.attacker_id,
            target_id=trigger.target_id,
        )
        outcome = await self._ask(
            donor,
            subject,
            self.session.settings.ward.projected_ward_timeout_seconds,
        )
        if not outcome.approved:
            return TriggerResult(
                kind=kind,
                status=ResultStatus.DECLINED,
                donor_id=donor.id,
                target_id=trigger.target_id,
            )

        marker = ProjectedWardMarker(
            donor_id=donor.id,
            target_id=trigger.target_id,
            attacker_id=trigger.attacker_id,
        )
        if not self.session.markers.arm(marker):
            return TriggerResult(
                kind=kind,
                status=ResultStatus.SKIPPED,
                donor_id=donor.id,
                target_id=trigger.target_id,
                message="Target is already protected",
            )

        self.session.notify(
            donor.id,
            NotificationKey.PROJECTED_WARD_APPLIED,
            full_messaging=self._full_messaging(donor.id),
            actor=donor.name,
            target_id=trigger.target_id,
        )
        return TriggerResult(
            kind=kind,
            status=ResultStatus.PROJECTED,
            owner_id=donor.id,
            donor_id=donor.id,
            target_id=trigger.target_id,
        )

    # =========================================================================
    # Rest
    # =========================================================================

    async def _on_rest_completed(self, trigger: RestCompletedTrigger) -> TriggerResult:
        kind = TriggerKind.REST_COMPLETED
        if trigger.rest_type is not RestType.LONG or not self.ledger.is_active(trigger.actor_id):
            return TriggerResult(kind=kind, status=ResultStatus.IGNORED, owner_id=trigger.actor_id)

        await self.ledger.reset_on_long_rest(trigger.actor_id)
        actor = self.session.directory.get_actor(trigger.actor_id)
        self.session.notify(
            trigger.actor_id,
            NotificationKey.LONG_REST,
            full_messaging=self._full_messaging(trigger.actor_id),
            actor=actor.name if actor else trigger.actor_id,
        )
        return TriggerResult(kind=kind, status=ResultStatus.RESET, owner_id=trigger.actor_id)

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _ask(
        self,
        actor: ActorProfile,
        subject: ConfirmationSubject,
        timeout: float | None,
    ) -> Outcome:
        """Confirm with the actor's decision maker.

        An unreachable decision maker or an elapsed deadline is a decline,
        reported to the notification sink.
        """
        try:
            decision_maker = self.session.resolve_decision_maker(actor)
            return await self.broker.decide(decision_maker, subject, timeout)
        except (UnreachableDecisionMakerError, RequestTimedOutError) as exc:
            logger.info("Confirmation not answered, declining", code=exc.code, details=exc.details)
            self.session.notify(
                actor.id,
                NotificationKey.WARD_FAILURE,
                full_messaging=self._full_messaging(actor.id),
                code=exc.code,
            )
            return Outcome.DECLINED

    def _full_messaging(self, owner_id: str) -> bool:
        ward = self.ledger.get(owner_id)
        if ward is not None:
            return ward.full_messaging
        actor = self.session.directory.get_actor(owner_id)
        return actor.full_messaging if actor else False

    def _failure(
        self,
        kind: TriggerKind,
        owner_id: str,
        exc: ArcaneWardingError,
        *,
        remaining: int = 0,
    ) -> TriggerResult:
        logger.warning(
            "Trigger failed",
            kind=str(kind),
            owner_id=owner_id,
            code=exc.code,
            error=exc.message,
        )
        self.session.notify(
            owner_id,
            NotificationKey.WARD_FAILURE,
            full_messaging=self._full_messaging(owner_id),
            code=exc.code,
        )
        if isinstance(exc, InactiveWardError) and exc.remaining is not None:
            remaining = exc.remaining
        return TriggerResult(
            kind=kind,
            status=ResultStatus.FAILED,
            owner_id=owner_id,
            remaining=remaining,
            error_code=exc.code,
            message=exc.message,
        )

    def _require_authority(self, operation: str) -> None:
        if not self.session.is_authority:
            raise AuthorityError(
                f"Only the session authority may run {operation}",
                user_id=self.session.local_user_id,
            )


__all__ = [
    "AbsorptionPipeline",
    "owner_of",
]
