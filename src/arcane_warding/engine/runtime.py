"""Session-scoped wiring of the ledger, broker and pipeline.

Example:
    >>> session = Session(local_user_id="gm", authority_user_id="gm", ...)
    >>> async with WardingRuntime(session) as runtime:
    ...     result = await runtime.handle(trigger)
"""

from __future__ import annotations

from types import TracebackType

from arcane_warding.core.logging import configure_logging, get_logger
from arcane_warding.engine.broker import ActionBroker
from arcane_warding.engine.ledger import WardLedger
from arcane_warding.engine.pipeline import AbsorptionPipeline
from arcane_warding.engine.session import Session
from arcane_warding.models.events import Trigger
from arcane_warding.models.results import TriggerResult


logger = get_logger(__name__)


class WardingRuntime:
    """Everything one participant needs for the lifetime of a game session.

    Attributes:
        session: Session context.
        ledger: Ward ledger. Only the authority's ledger is mutated.
        broker: Action broker.
        pipeline: Absorption pipeline.
    """

    def __init__(
        self,
        session: Session,
        ledger: WardLedger | None = None,
        *,
        configure_logs: bool = False,
    ) -> None:
        """Wire one participant.

        Args:
            session: Session context.
            ledger: Ledger to use; a fresh one by default.
            configure_logs: Set up logging from the session settings on
                start. Leave off when the host configures logging itself.
        """
        self.session = session
        self.configure_logs = configure_logs
        self.ledger = ledger if ledger is not None else WardLedger()
        self.broker = ActionBroker(session)
        self.pipeline = AbsorptionPipeline(session, self.ledger, self.broker)
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, *, bootstrap: bool = True) -> None:
        """Subscribe to the channel and, on the authority, bootstrap wards."""
        if self._running:
            return
        if self.configure_logs:
            settings = self.session.settings
            configure_logging(
                level="DEBUG" if settings.debug else settings.log_level,
                json_format=settings.json_logs,
            )
        self.broker.start()
        if bootstrap and self.session.is_authority:
            await self.pipeline.bootstrap()
        self._running = True
        logger.info(
            "Warding runtime started",
            session_id=self.session.session_id,
            user_id=self.session.local_user_id,
        )

    async def close(self) -> None:
        """Decline outstanding confirmations and drop armed markers."""
        await self.broker.close()
        self.session.markers.clear()
        self._running = False
        logger.info("Warding runtime closed", session_id=self.session.session_id)

    async def handle(self, trigger: Trigger) -> TriggerResult:
        """Handle one host trigger."""
        return await self.pipeline.handle(trigger)

    async def __aenter__(self) -> WardingRuntime:
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()


__all__ = ["WardingRuntime"]
