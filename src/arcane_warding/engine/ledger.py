"""Ward ledger: the single owner of every ward pool in a session.

All pool arithmetic happens here. Mutations for one owner are serialized by
a per-owner asyncio.Lock so overlapping damage and heal tasks never read a
stale ``spent``; different owners never contend.

Example:
    >>> ledger = WardLedger()
    >>> await ledger.ensure_ward("wizard-1", capacity=20)
    >>> await ledger.set_active("wizard-1", True)
    >>> result = await ledger.absorb("wizard-1", 7)
    >>> result.absorbed, result.remaining
    (7, 0)
"""

from __future__ import annotations

import asyncio

from arcane_warding.core.exceptions import InactiveWardError, ValidationError, WardNotFoundError
from arcane_warding.core.logging import get_logger
from arcane_warding.models.enums import HealStatus
from arcane_warding.models.results import AbsorbResult, HealResult
from arcane_warding.models.ward import Ward


logger = get_logger(__name__)


class WardLedger:
    """Per-session store of ward pools with pool-bound arithmetic.

    Every returned Ward is a copy; callers cannot mutate ledger state
    except through the operations below.
    """

    def __init__(self) -> None:
        """Initialize an empty ledger."""
        self._wards: dict[str, Ward] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __contains__(self, owner_id: object) -> bool:
        return owner_id in self._wards

    def __len__(self) -> int:
        return len(self._wards)

    # =========================================================================
    # Read access
    # =========================================================================

    def owners(self) -> list[str]:
        """Return the owners holding a ward, in creation order."""
        return list(self._wards)

    def get(self, owner_id: str) -> Ward | None:
        """Return a copy of the owner's ward, or None."""
        ward = self._wards.get(owner_id)
        return ward.model_copy(deep=True) if ward is not None else None

    def snapshot(self, owner_id: str) -> Ward:
        """Return a copy of the owner's ward.

        Raises:
            WardNotFoundError: If the owner has no ward.
        """
        return self._require(owner_id).model_copy(deep=True)

    def is_active(self, owner_id: str) -> bool:
        """True when the owner has a ward with its active marker."""
        ward = self._wards.get(owner_id)
        return ward is not None and ward.has_active_effect

    def current(self, owner_id: str) -> int:
        """Charge left in the owner's ward (0 when there is none)."""
        ward = self._wards.get(owner_id)
        return ward.current if ward is not None else 0

    # =========================================================================
    # Mutations
    # =========================================================================

    async def ensure_ward(
        self,
        owner_id: str,
        capacity: int,
        *,
        full_messaging: bool | None = None,
    ) -> Ward:
        """Create the owner's ward if absent, refreshing capacity otherwise.

        An existing pool keeps its spent charge, clamped to the new capacity,
        and its notification preference.

        Args:
            owner_id: Actor owning the ward.
            capacity: Capacity derived by the host.
            full_messaging: Notification preference for a new ward.

        Returns:
            A copy of the ward.
        """
        self._validate_amount(capacity, "capacity")
        async with self._lock_for(owner_id):
            ward = self._wards.get(owner_id)
            if ward is None:
                ward = Ward(
                    owner_id=owner_id,
                    capacity=capacity,
                    full_messaging=bool(full_messaging),
                )
                self._wards[owner_id] = ward
                logger.info("Ward created", owner_id=owner_id, capacity=capacity)
            else:
                if ward.capacity != capacity:
                    # spent first so the pool never exceeds the new capacity
                    ward.spent = min(ward.spent, capacity)
                    ward.capacity = capacity
                    logger.debug("Ward capacity refreshed", owner_id=owner_id, capacity=capacity)
            return ward.model_copy(deep=True)

    async def create_ward(
        self,
        owner_id: str,
        capacity: int,
        *,
        full_messaging: bool | None = None,
    ) -> Ward:
        """Ensure, fully recharge, and activate the owner's ward in one step."""
        await self.ensure_ward(owner_id, capacity, full_messaging=full_messaging)
        async with self._lock_for(owner_id):
            ward = self._require(owner_id)
            ward.spent = 0
            ward.has_active_effect = True
            logger.info("Ward activated", owner_id=owner_id, capacity=ward.capacity)
            return ward.model_copy(deep=True)

    async def absorb(self, owner_id: str, amount: int) -> AbsorbResult:
        """Consume up to the ward's current charge to offset damage.

        Args:
            owner_id: Actor owning the ward.
            amount: Incoming damage, non-negative.

        Returns:
            The absorbed/remaining split.

        Raises:
            ValidationError: If amount is negative.
            WardNotFoundError: If the owner has no ward.
            InactiveWardError: If the ward is not active; nothing is absorbed.
        """
        self._validate_amount(amount, "amount")
        async with self._lock_for(owner_id):
            ward = self._require(owner_id)
            if not ward.has_active_effect:
                raise InactiveWardError(
                    "Cannot absorb damage with an inactive ward",
                    owner_id=owner_id,
                    absorbed=0,
                    remaining=amount,
                )

            absorbed = min(ward.current, amount)
            ward.spent += absorbed
            result = AbsorbResult(
                owner_id=owner_id,
                absorbed=absorbed,
                remaining=amount - absorbed,
                spent=ward.spent,
                current=ward.current,
            )

        logger.info(
            "Ward absorbed damage",
            owner_id=owner_id,
            absorbed=result.absorbed,
            remaining=result.remaining,
            current=result.current,
        )
        return result

    async def heal(self, owner_id: str, amount: int) -> HealResult:
        """Restore ward charge by reducing spent.

        Returns ALREADY_FULL with nothing healed when no charge is spent.

        Raises:
            ValidationError: If amount is negative.
            WardNotFoundError: If the owner has no ward.
            InactiveWardError: If the ward is not active.
        """
        self._validate_amount(amount, "amount")
        async with self._lock_for(owner_id):
            ward = self._require(owner_id)
            if not ward.has_active_effect:
                raise InactiveWardError(
                    "Cannot heal an inactive ward",
                    owner_id=owner_id,
                )

            if ward.spent == 0:
                logger.debug("Ward already at maximum", owner_id=owner_id)
                return HealResult(owner_id=owner_id, status=HealStatus.ALREADY_FULL)

            healed = min(ward.spent, amount)
            ward.spent -= healed
            result = HealResult(
                owner_id=owner_id,
                status=HealStatus.HEALED,
                healed=healed,
                spent=ward.spent,
            )

        logger.info("Ward healed", owner_id=owner_id, healed=healed, spent=result.spent)
        return result

    async def reset_on_long_rest(self, owner_id: str) -> Ward:
        """Clear all spent charge after a long rest."""
        async with self._lock_for(owner_id):
            ward = self._require(owner_id)
            ward.spent = 0
            logger.info("Ward reset on long rest", owner_id=owner_id)
            return ward.model_copy(deep=True)

    async def set_active(self, owner_id: str, active: bool) -> Ward:
        """Record whether the ward's active marker exists."""
        async with self._lock_for(owner_id):
            ward = self._require(owner_id)
            if ward.has_active_effect != active:
                ward.has_active_effect = active
                logger.info("Ward active state changed", owner_id=owner_id, active=active)
            return ward.model_copy(deep=True)

    async def set_full_messaging(self, owner_id: str, enabled: bool) -> Ward:
        """Toggle the owner's notification preference."""
        async with self._lock_for(owner_id):
            ward = self._require(owner_id)
            ward.full_messaging = enabled
            return ward.model_copy(deep=True)

    async def link_activity(self, owner_id: str, activity_name: str) -> bool:
        """Link the create ward behavior to an activity.

        Safe to call repeatedly: an existing link is detected and left alone.

        Returns:
            True if the link was created by this call.
        """
        if not activity_name:
            raise ValidationError("Activity name is required", field_name="activity_name")
        async with self._lock_for(owner_id):
            ward = self._require(owner_id)
            if activity_name in ward.linked_activities:
                logger.debug(
                    "Ward effect already linked",
                    owner_id=owner_id,
                    activity=activity_name,
                )
                return False
            ward.linked_activities = [*ward.linked_activities, activity_name]
            logger.info("Ward effect linked", owner_id=owner_id, activity=activity_name)
            return True

    async def remove_ward(self, owner_id: str) -> bool:
        """Drop the owner's ward when the actor or feature goes away.

        Returns:
            True if a ward was removed.
        """
        async with self._lock_for(owner_id):
            removed = self._wards.pop(owner_id, None) is not None
        self._locks.pop(owner_id, None)
        if removed:
            logger.info("Ward removed", owner_id=owner_id)
        return removed

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock_for(self, owner_id: str) -> asyncio.Lock:
        lock = self._locks.get(owner_id)
        if lock is None:
            lock = self._locks[owner_id] = asyncio.Lock()
        return lock

    def _require(self, owner_id: str) -> Ward:
        ward = self._wards.get(owner_id)
        if ward is None:
            raise WardNotFoundError("No ward for owner", owner_id=owner_id)
        return ward

    @staticmethod
    def _validate_amount(amount: int, field_name: str) -> None:
        if amount < 0:
            raise ValidationError(
                f"{field_name} must be non-negative",
                field_name=field_name,
                invalid_value=amount,
            )


__all__ = ["WardLedger"]
