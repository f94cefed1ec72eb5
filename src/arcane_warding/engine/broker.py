"""Action broker: obtains approve/decline decisions with bounded latency.

The broker asks exactly one decision maker per request. A decision maker in
this process is asked through the presentation collaborator; a remote one is
asked with a ``createDialogRequest`` envelope and answers with a correlated
``dialogResult``. Whichever comes first, the answer or the deadline,
resolves the request; anything arriving later is dropped.

The broker is also the channel entry point for the other side of the
protocol: it answers dialog requests addressed to the local user and, on the
session authority, hands relayed triggers to the pipeline. A relay that
asks for it is answered with a ``triggerResult`` carrying the absorption
split, so the sender can rewrite its own damage record.
"""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar
from uuid import uuid4

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from arcane_warding.core.exceptions import (
    ChannelError,
    MessageFormatError,
    PresentationClosedError,
    RequestTimedOutError,
    UnreachableDecisionMakerError,
    ValidationError,
)
from arcane_warding.core.logging import get_logger
from arcane_warding.engine.session import Session
from arcane_warding.models.enums import MessageType, Outcome
from arcane_warding.models.events import Trigger, trigger_adapter
from arcane_warding.models.messages import (
    ConfirmationSubject,
    CreateDialogRequest,
    DialogResult,
    Envelope,
    TriggerRelay,
    TriggerRelayResult,
)
from arcane_warding.models.results import TriggerResult


logger = get_logger(__name__)

TriggerHandler = Callable[[Trigger], Awaitable[Any]]
ModelT = TypeVar("ModelT", bound=BaseModel)

RECENT_ID_LIMIT = 512
"""How many answered request/relay IDs are remembered for deduplication."""


@dataclass
class PendingConfirmation:
    """An outstanding remote confirmation.

    Attributes:
        request_id: Correlation token.
        decision_maker: User entitled to answer.
        subject: Context passed to the presentation layer.
        timeout: Deadline in seconds, or None.
        future: Completed with the outcome on resolution.
        resolved: Whether an answer or the deadline has been honoured.
    """

    request_id: str
    decision_maker: str
    subject: ConfirmationSubject
    timeout: float | None
    future: asyncio.Future[Outcome] = field(repr=False)
    resolved: bool = False

    def resolve(self, outcome: Outcome) -> bool:
        """Resolve once; later calls are ignored.

        Returns:
            True if this call resolved the request.
        """
        if self.resolved:
            return False
        self.resolved = True
        if not self.future.done():
            self.future.set_result(outcome)
        return True


class _RecentIds:
    """Bounded memory of recently seen IDs."""

    def __init__(self, limit: int = RECENT_ID_LIMIT) -> None:
        self._ids: OrderedDict[str, None] = OrderedDict()
        self._limit = limit

    def add(self, value: str) -> bool:
        """Remember an ID; False if it was already known."""
        if value in self._ids:
            return False
        self._ids[value] = None
        if len(self._ids) > self._limit:
            self._ids.popitem(last=False)
        return True


class ActionBroker:
    """Request/response coordination for ward confirmations.

    Attributes:
        session: The session this broker serves.
    """

    def __init__(self, session: Session) -> None:
        """Initialize the broker.

        Args:
            session: Session providing the presenter and channel.
        """
        self.session = session
        self._pending: dict[str, PendingConfirmation] = {}
        self._answered_requests = _RecentIds()
        self._seen_relays = _RecentIds()
        self._answer_tasks: set[asyncio.Task[None]] = set()
        self._pending_relays: dict[str, asyncio.Future[TriggerRelayResult]] = {}
        self._trigger_handler: TriggerHandler | None = None
        self._started = False

    @property
    def pending_count(self) -> int:
        """Number of remote requests still awaiting an answer."""
        return len(self._pending)

    def pending(self, request_id: str) -> PendingConfirmation | None:
        """Return the outstanding request with this ID, if any."""
        return self._pending.get(request_id)

    def set_trigger_handler(self, handler: TriggerHandler | None) -> None:
        """Register the callable that executes relayed triggers."""
        self._trigger_handler = handler

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Subscribe to the session channel."""
        if self._started:
            return
        if self.session.channel is not None:
            self.session.channel.subscribe(self.handle_envelope)
        self._started = True
        logger.info(
            "ActionBroker started",
            user_id=self.session.local_user_id,
            authority=self.session.is_authority,
        )

    async def close(self) -> None:
        """Unsubscribe and decline every outstanding request."""
        if self.session.channel is not None:
            self.session.channel.unsubscribe(self.handle_envelope)
        self._started = False

        for pending in list(self._pending.values()):
            pending.resolve(Outcome.DECLINED)
        self._pending.clear()
        for future in self._pending_relays.values():
            if not future.done():
                future.set_exception(ChannelError("Broker closed before the authority answered"))
        self._pending_relays.clear()

        tasks = list(self._answer_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("ActionBroker closed", user_id=self.session.local_user_id)

    # =========================================================================
    # Confirmation
    # =========================================================================

    async def confirm(
        self,
        decision_maker: str,
        subject: ConfirmationSubject,
        timeout: float | None = None,
    ) -> Outcome:
        """Obtain a decision from exactly one party.

        Args:
            decision_maker: User entitled to answer.
            subject: Context shown to the decision maker.
            timeout: Deadline in seconds; None waits for the answer.

        Returns:
            APPROVED or DECLINED. Deadlines and dismissals yield DECLINED.

        Raises:
            ValidationError: If the timeout is not positive.
            UnreachableDecisionMakerError: If a remote decision maker is not
                connected.
        """
        try:
            return await self.decide(decision_maker, subject, timeout)
        except RequestTimedOutError as exc:
            logger.info("Confirmation timed out", kind=str(subject.kind), **exc.details)
            return Outcome.DECLINED

    async def decide(
        self,
        decision_maker: str,
        subject: ConfirmationSubject,
        timeout: float | None = None,
    ) -> Outcome:
        """Like ``confirm``, but an elapsed deadline is raised, not declined.

        Raises:
            ValidationError: If the timeout is not positive.
            UnreachableDecisionMakerError: If a remote decision maker is not
                connected.
            RequestTimedOutError: If the deadline elapsed without an answer.
        """
        if timeout is not None and timeout <= 0:
            raise ValidationError(
                "Confirmation timeout must be positive",
                field_name="timeout",
                invalid_value=timeout,
            )
        if self.session.is_local(decision_maker):
            return await self._confirm_locally(subject, timeout)
        return await self._confirm_remotely(decision_maker, subject, timeout)

    async def _confirm_locally(
        self,
        subject: ConfirmationSubject,
        timeout: float | None,
    ) -> Outcome:
        presentation = self.session.presenter.present_confirmation(subject, timeout)
        try:
            if timeout is None:
                outcome = await presentation
            else:
                outcome = await asyncio.wait_for(presentation, timeout)
        except TimeoutError as exc:
            raise RequestTimedOutError(
                "Local confirmation deadline elapsed",
                timeout=timeout,
            ) from exc
        except PresentationClosedError:
            logger.info("Local confirmation dismissed", kind=str(subject.kind))
            return Outcome.DECLINED

        outcome = Outcome(outcome)
        logger.info("Local confirmation answered", kind=str(subject.kind), outcome=str(outcome))
        return outcome

    async def _confirm_remotely(
        self,
        decision_maker: str,
        subject: ConfirmationSubject,
        timeout: float | None,
    ) -> Outcome:
        channel = self.session.channel
        if channel is None or not channel.is_connected(decision_maker):
            raise UnreachableDecisionMakerError(
                "Decision maker is not connected",
                decision_maker=decision_maker,
            )

        request = CreateDialogRequest(
            request_id=uuid4().hex,
            decision_maker=decision_maker,
            subject=subject,
            timeout=timeout,
        )
        request_id = request.request_id
        pending = PendingConfirmation(
            request_id=request_id,
            decision_maker=decision_maker,
            subject=subject,
            timeout=timeout,
            future=asyncio.get_running_loop().create_future(),
        )

        logger.info(
            "Remote confirmation requested",
            request_id=request_id,
            decision_maker=decision_maker,
            timeout=timeout,
        )
        self._pending[request_id] = pending
        try:
            channel.send(Envelope.wrap(MessageType.CREATE_DIALOG_REQUEST, request).to_wire())
            return await self._await_reply(pending)
        finally:
            self._pending.pop(request_id, None)

    async def _await_reply(self, pending: PendingConfirmation) -> Outcome:
        if pending.timeout is None:
            return await pending.future
        try:
            return await asyncio.wait_for(asyncio.shield(pending.future), pending.timeout)
        except TimeoutError as exc:
            if not pending.resolve(Outcome.DECLINED):
                return pending.future.result()
            raise RequestTimedOutError(
                "Confirmation deadline elapsed",
                request_id=pending.request_id,
                timeout=pending.timeout,
            ) from exc

    # =========================================================================
    # Relay
    # =========================================================================

    def relay_trigger(self, trigger: Trigger) -> str:
        """Forward a trigger to the session authority without waiting.

        Returns:
            The relay ID.

        Raises:
            UnreachableDecisionMakerError: If the authority is not connected.
        """
        relay_id = uuid4().hex
        self._send_relay(relay_id, trigger, expects_result=False)
        return relay_id

    async def relay_for_result(self, trigger: Trigger, timeout: float) -> TriggerRelayResult:
        """Relay a trigger and wait for the authority's ``triggerResult``.

        Raises:
            UnreachableDecisionMakerError: If the authority is not connected.
            RequestTimedOutError: If no answer arrived within ``timeout``.
        """
        relay_id = uuid4().hex
        future: asyncio.Future[TriggerRelayResult] = asyncio.get_running_loop().create_future()
        self._pending_relays[relay_id] = future
        try:
            self._send_relay(relay_id, trigger, expects_result=True)
            return await asyncio.wait_for(future, timeout)
        except TimeoutError as exc:
            raise RequestTimedOutError(
                "Authority did not answer relayed trigger",
                timeout=timeout,
                details={"relay_id": relay_id},
            ) from exc
        finally:
            self._pending_relays.pop(relay_id, None)

    def _send_relay(self, relay_id: str, trigger: Trigger, *, expects_result: bool) -> None:
        authority = self.session.authority_user_id
        channel = self.session.channel
        if channel is None or not channel.is_connected(authority):
            raise UnreachableDecisionMakerError(
                "Session authority is not connected",
                decision_maker=authority,
            )
        relay = TriggerRelay(
            relay_id=relay_id,
            trigger=trigger.model_dump(mode="json"),
            sender=self.session.local_user_id,
            expects_result=expects_result,
        )
        channel.send(Envelope.wrap(MessageType.TRIGGER_RELAY, relay).to_wire())
        logger.info("Trigger relayed to authority", kind=trigger.kind, relay_id=relay_id)

    # =========================================================================
    # Incoming envelopes
    # =========================================================================

    async def handle_envelope(self, message: dict[str, Any]) -> None:
        """Process one envelope from the channel.

        Unknown types, malformed payloads, unknown request IDs, and
        duplicates are logged and dropped.
        """
        try:
            envelope = Envelope.model_validate(message)
        except PydanticValidationError as exc:
            logger.warning("Dropping malformed envelope", error=str(exc))
            return

        handlers = {
            MessageType.DIALOG_RESULT: self._on_dialog_result,
            MessageType.CREATE_DIALOG_REQUEST: self._on_create_dialog_request,
            MessageType.TRIGGER_RELAY: self._on_trigger_relay,
            MessageType.TRIGGER_RESULT: self._on_trigger_result,
        }
        try:
            await handlers[envelope.type](envelope.payload)
        except MessageFormatError as exc:
            logger.warning("Dropping invalid payload", error=exc.message, details=exc.details)

    async def _on_dialog_result(self, payload: dict[str, Any]) -> None:
        result = _parse(DialogResult, payload, MessageType.DIALOG_RESULT)
        pending = self._pending.get(result.request_id)
        if pending is None:
            logger.debug("Ignoring result for unknown request", request_id=result.request_id)
            return
        if pending.resolve(result.outcome):
            logger.info(
                "Remote confirmation answered",
                request_id=result.request_id,
                outcome=str(result.outcome),
            )
        else:
            logger.debug("Ignoring duplicate result", request_id=result.request_id)

    async def _on_create_dialog_request(self, payload: dict[str, Any]) -> None:
        request = _parse(CreateDialogRequest, payload, MessageType.CREATE_DIALOG_REQUEST)
        if not self.session.is_local(request.decision_maker):
            return
        if not self._answered_requests.add(request.request_id):
            logger.debug("Ignoring duplicate dialog request", request_id=request.request_id)
            return

        task = asyncio.get_running_loop().create_task(self._answer(request))
        self._answer_tasks.add(task)
        task.add_done_callback(self._answer_tasks.discard)

    async def _answer(self, request: CreateDialogRequest) -> None:
        try:
            outcome = await self._confirm_locally(request.subject, request.timeout)
        except RequestTimedOutError:
            logger.info("Dialog request timed out", request_id=request.request_id)
            outcome = Outcome.DECLINED
        channel = self.session.channel
        if channel is None:
            return
        reply = DialogResult(request_id=request.request_id, outcome=outcome)
        channel.send(Envelope.wrap(MessageType.DIALOG_RESULT, reply).to_wire())

    async def _on_trigger_relay(self, payload: dict[str, Any]) -> None:
        if not self.session.is_authority:
            return
        relay = _parse(TriggerRelay, payload, MessageType.TRIGGER_RELAY)
        if not self._seen_relays.add(relay.relay_id):
            logger.debug("Ignoring duplicate relay", relay_id=relay.relay_id)
            return
        try:
            trigger = trigger_adapter.validate_python(relay.trigger)
        except PydanticValidationError as exc:
            raise MessageFormatError(
                "Relayed trigger is invalid",
                message_type=MessageType.TRIGGER_RELAY,
                details={"error": str(exc)},
            ) from exc

        if self._trigger_handler is None:
            logger.warning("No trigger handler registered", relay_id=relay.relay_id)
            return
        logger.info("Executing relayed trigger", kind=trigger.kind, sender=relay.sender)
        result = await self._trigger_handler(trigger)

        channel = self.session.channel
        if not relay.expects_result or relay.sender is None or channel is None:
            return
        if not isinstance(result, TriggerResult):
            logger.warning("Trigger handler returned no result", relay_id=relay.relay_id)
            return
        reply = TriggerRelayResult(
            relay_id=relay.relay_id,
            recipient=relay.sender,
            status=result.status,
            absorbed=result.absorbed,
            remaining=result.remaining,
            error_code=result.error_code,
        )
        channel.send(Envelope.wrap(MessageType.TRIGGER_RESULT, reply).to_wire())

    async def _on_trigger_result(self, payload: dict[str, Any]) -> None:
        result = _parse(TriggerRelayResult, payload, MessageType.TRIGGER_RESULT)
        if not self.session.is_local(result.recipient):
            return
        future = self._pending_relays.get(result.relay_id)
        if future is None or future.done():
            logger.debug("Ignoring result for unknown relay", relay_id=result.relay_id)
            return
        future.set_result(result)
        logger.info(
            "Relayed trigger answered",
            relay_id=result.relay_id,
            status=str(result.status),
            absorbed=result.absorbed,
        )


def _parse(
    model: type[ModelT],
    payload: dict[str, Any],
    message_type: MessageType,
) -> ModelT:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise MessageFormatError(
            "Invalid message payload",
            message_type=message_type,
            details={"error": str(exc)},
        ) from exc


__all__ = [
    "PendingConfirmation",
    "TriggerHandler",
    "ActionBroker",
]
