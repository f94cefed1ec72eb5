"""Tests for the action broker."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Any

import pytest

from arcane_warding.core.exceptions import (
    PresentationClosedError,
    RequestTimedOutError,
    UnreachableDecisionMakerError,
    ValidationError,
)
from arcane_warding.engine.broker import ActionBroker
from arcane_warding.engine.session import Session
from arcane_warding.models.enums import ConfirmationKind, MessageType, Outcome, ResultStatus
from arcane_warding.models.events import DamageRecord, DamageTrigger, SpellCastTrigger
from arcane_warding.models.messages import ConfirmationSubject
from arcane_warding.models.results import TriggerResult


SUBJECT = ConfirmationSubject(kind=ConfirmationKind.ARCANE_WARD, actor_id="wizard-1")


class RecordingChannel:
    """Message channel that records sent envelopes."""

    def __init__(self, *connected: str) -> None:
        self.connected = set(connected)
        self.sent: list[dict[str, Any]] = []
        self.handlers: list[Any] = []

    def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def subscribe(self, handler: Any) -> None:
        self.handlers.append(handler)

    def unsubscribe(self, handler: Any) -> None:
        if handler in self.handlers:
            self.handlers.remove(handler)

    def is_connected(self, user_id: str) -> bool:
        return user_id in self.connected

    def of_type(self, message_type: MessageType) -> list[dict[str, Any]]:
        return [m for m in self.sent if m["type"] == message_type]


def _result(request_id: str, outcome: Outcome) -> dict[str, Any]:
    return {
        "type": "dialogResult",
        "payload": {"requestID": request_id, "outcome": str(outcome)},
    }


async def _request_id(channel: RecordingChannel, index: int = 0) -> str:
    while len(channel.of_type(MessageType.CREATE_DIALOG_REQUEST)) <= index:
        await asyncio.sleep(0)
    return channel.of_type(MessageType.CREATE_DIALOG_REQUEST)[index]["payload"]["requestID"]


class TestLocalConfirmation:
    """Tests for confirmations answered in this process."""

    def test_local_approval(self, broker: ActionBroker, presenter: Any) -> None:
        outcome = asyncio.run(broker.confirm("gm", SUBJECT))

        assert outcome is Outcome.APPROVED
        assert presenter.calls == [(SUBJECT, None)]

    def test_local_decline(self, broker: ActionBroker, presenter: Any) -> None:
        presenter.answers.append(Outcome.DECLINED)

        assert asyncio.run(broker.confirm("gm", SUBJECT)) is Outcome.DECLINED

    def test_dismissal_is_decline(self, broker: ActionBroker, presenter: Any) -> None:
        presenter.answers.append(PresentationClosedError("Dialog closed"))

        assert asyncio.run(broker.confirm("gm", SUBJECT)) is Outcome.DECLINED

    def test_local_deadline(self, broker: ActionBroker, presenter: Any) -> None:
        """An unanswered local dialog declines once its deadline passes."""
        presenter.answers.append(None)

        started = time.monotonic()
        outcome = asyncio.run(broker.confirm("gm", SUBJECT, timeout=0.05))
        elapsed = time.monotonic() - started

        assert outcome is Outcome.DECLINED
        assert 0.04 <= elapsed < 1.0

    def test_decide_raises_on_deadline(self, broker: ActionBroker, presenter: Any) -> None:
        presenter.answers.append(None)

        with pytest.raises(RequestTimedOutError) as exc_info:
            asyncio.run(broker.decide("gm", SUBJECT, timeout=0.05))

        assert exc_info.value.details["timeout"] == 0.05


class TestRemoteConfirmation:
    """Tests for confirmations answered over the channel."""

    @pytest.fixture
    def channel(self) -> RecordingChannel:
        return RecordingChannel("gm", "player-1")

    @pytest.fixture
    def remote_broker(
        self,
        make_session: Callable[..., Session],
        channel: RecordingChannel,
    ) -> ActionBroker:
        broker = ActionBroker(make_session(channel=channel))
        broker.start()
        return broker

    def test_request_is_sent(self, remote_broker: ActionBroker, channel: RecordingChannel) -> None:
        async def scenario() -> Outcome:
            task = asyncio.create_task(remote_broker.confirm("player-1", SUBJECT, timeout=1.0))
            request_id = await _request_id(channel)
            assert remote_broker.pending_count == 1
            await remote_broker.handle_envelope(_result(request_id, Outcome.APPROVED))
            return await task

        assert asyncio.run(scenario()) is Outcome.APPROVED
        payload = channel.of_type(MessageType.CREATE_DIALOG_REQUEST)[0]["payload"]
        assert payload["decisionMaker"] == "player-1"
        assert payload["timeout"] == 1.0
        assert remote_broker.pending_count == 0

    def test_deadline_declines_and_drops_late_reply(
        self,
        remote_broker: ActionBroker,
        channel: RecordingChannel,
    ) -> None:
        """No reply within the deadline declines; a later reply is dropped."""

        async def scenario() -> tuple[Outcome, float]:
            started = time.monotonic()
            task = asyncio.create_task(remote_broker.confirm("player-1", SUBJECT, timeout=0.05))
            request_id = await _request_id(channel)
            outcome = await task
            elapsed = time.monotonic() - started

            await asyncio.sleep(0.01)
            await remote_broker.handle_envelope(_result(request_id, Outcome.APPROVED))
            assert remote_broker.pending(request_id) is None
            return outcome, elapsed

        outcome, elapsed = asyncio.run(scenario())

        assert outcome is Outcome.DECLINED
        assert 0.04 <= elapsed < 1.0
        assert remote_broker.pending_count == 0

    def test_duplicate_results_resolve_once(
        self,
        remote_broker: ActionBroker,
        channel: RecordingChannel,
    ) -> None:
        async def scenario() -> Outcome:
            task = asyncio.create_task(remote_broker.confirm("player-1", SUBJECT, timeout=1.0))
            request_id = await _request_id(channel)
            await remote_broker.handle_envelope(_result(request_id, Outcome.DECLINED))
            await remote_broker.handle_envelope(_result(request_id, Outcome.APPROVED))
            return await task

        assert asyncio.run(scenario()) is Outcome.DECLINED

    def test_concurrent_requests_resolve_independently(
        self,
        remote_broker: ActionBroker,
        channel: RecordingChannel,
    ) -> None:
        async def scenario() -> list[Outcome]:
            first = asyncio.create_task(remote_broker.confirm("player-1", SUBJECT, timeout=1.0))
            second = asyncio.create_task(remote_broker.confirm("player-1", SUBJECT, timeout=1.0))
            first_id = await _request_id(channel, 0)
            second_id = await _request_id(channel, 1)
            assert first_id != second_id

            await remote_broker.handle_envelope(_result(second_id, Outcome.APPROVED))
            await remote_broker.handle_envelope(_result(first_id, Outcome.DECLINED))
            return [await first, await second]

        assert asyncio.run(scenario()) == [Outcome.DECLINED, Outcome.APPROVED]

    @pytest.mark.parametrize("timeout", [0, -1.0])
    def test_non_positive_timeout_rejected(
        self,
        remote_broker: ActionBroker,
        channel: RecordingChannel,
        timeout: float,
    ) -> None:
        with pytest.raises(ValidationError) as exc_info:
            asyncio.run(remote_broker.confirm("player-1", SUBJECT, timeout=timeout))

        assert exc_info.value.details["field_name"] == "timeout"
        assert remote_broker.pending_count == 0
        assert channel.sent == []

    def test_unreachable_decision_maker(self, remote_broker: ActionBroker) -> None:
        with pytest.raises(UnreachableDecisionMakerError):
            asyncio.run(remote_broker.confirm("player-2", SUBJECT, timeout=1.0))

    def test_no_channel_is_unreachable(self, broker: ActionBroker) -> None:
        with pytest.raises(UnreachableDecisionMakerError):
            asyncio.run(broker.confirm("player-1", SUBJECT))

    def test_close_declines_outstanding(
        self,
        remote_broker: ActionBroker,
        channel: RecordingChannel,
    ) -> None:
        async def scenario() -> Outcome:
            task = asyncio.create_task(remote_broker.confirm("player-1", SUBJECT))
            await _request_id(channel)
            await remote_broker.close()
            return await task

        assert asyncio.run(scenario()) is Outcome.DECLINED
        assert channel.handlers == []


class TestIncomingEnvelopes:
    """Tests for the channel entry point."""

    def test_unknown_request_ignored(self, broker: ActionBroker) -> None:
        asyncio.run(broker.handle_envelope(_result("unknown", Outcome.APPROVED)))

        assert broker.pending_count == 0

    @pytest.mark.parametrize(
        "message",
        [
            {"type": "somethingElse", "payload": {}},
            {"payload": {}},
            {"type": "dialogResult", "payload": {"outcome": "maybe"}},
            {"type": "createDialogRequest", "payload": {"requestID": "r1"}},
        ],
    )
    def test_malformed_envelopes_dropped(self, broker: ActionBroker, message: dict[str, Any]) -> None:
        asyncio.run(broker.handle_envelope(message))

        assert broker.pending_count == 0

    def test_answers_request_addressed_to_local_user(
        self,
        make_session: Callable[..., Session],
        presenter: Any,
    ) -> None:
        channel = RecordingChannel("gm", "player-1")
        broker = ActionBroker(make_session("player-1", channel=channel))
        request = {
            "type": "createDialogRequest",
            "payload": {
                "requestID": "r1",
                "decisionMaker": "player-1",
                "subject": {"kind": "projected_ward", "actorId": "wizard-1"},
                "timeout": 1.0,
            },
        }

        async def scenario() -> None:
            await broker.handle_envelope(request)
            await broker.handle_envelope(request)
            while not channel.of_type(MessageType.DIALOG_RESULT):
                await asyncio.sleep(0)
            await broker.close()

        asyncio.run(scenario())

        replies = channel.of_type(MessageType.DIALOG_RESULT)
        assert replies == [
            {"type": "dialogResult", "payload": {"requestID": "r1", "outcome": "approved"}},
        ]
        assert len(presenter.calls) == 1
        assert presenter.calls[0][0].kind is ConfirmationKind.PROJECTED_WARD

    def test_request_for_other_user_ignored(
        self,
        make_session: Callable[..., Session],
        presenter: Any,
    ) -> None:
        channel = RecordingChannel("gm", "player-1")
        broker = ActionBroker(make_session("player-1", channel=channel))
        request = {
            "type": "createDialogRequest",
            "payload": {"requestID": "r1", "decisionMaker": "player-2", "subject": {}},
        }

        asyncio.run(broker.handle_envelope(request))

        assert channel.sent == []
        assert presenter.calls == []

    def test_relay_runs_handler_once(self, broker: ActionBroker) -> None:
        handled: list[Any] = []

        async def handler(trigger: Any) -> None:
            handled.append(trigger)

        broker.set_trigger_handler(handler)
        relay = {
            "type": "triggerRelay",
            "payload": {
                "relayID": "x1",
                "trigger": {"kind": "spell_cast", "actor_id": "wizard-1", "spell_level": 1},
                "sender": "player-1",
            },
        }

        async def scenario() -> None:
            await broker.handle_envelope(relay)
            await broker.handle_envelope(relay)

        asyncio.run(scenario())

        assert len(handled) == 1
        assert isinstance(handled[0], SpellCastTrigger)

    def test_relay_ignored_by_non_authority(self, make_session: Callable[..., Session]) -> None:
        broker = ActionBroker(make_session("player-1"))
        handled: list[Any] = []

        async def handler(trigger: Any) -> None:
            handled.append(trigger)

        broker.set_trigger_handler(handler)
        relay = {
            "type": "triggerRelay",
            "payload": {"relayID": "x1", "trigger": {"kind": "spell_cast", "actor_id": "a"}},
        }

        asyncio.run(broker.handle_envelope(relay))

        assert handled == []

    def test_invalid_relayed_trigger_dropped(self, broker: ActionBroker) -> None:
        handled: list[Any] = []

        async def handler(trigger: Any) -> None:
            handled.append(trigger)

        broker.set_trigger_handler(handler)
        relay = {
            "type": "triggerRelay",
            "payload": {"relayID": "x1", "trigger": {"kind": "teleport"}},
        }

        asyncio.run(broker.handle_envelope(relay))

        assert handled == []


def test_relay_trigger_requires_connected_authority(make_session: Callable[..., Session]) -> None:
    broker = ActionBroker(make_session("player-1", channel=RecordingChannel("player-1")))

    with pytest.raises(UnreachableDecisionMakerError):
        broker.relay_trigger(SpellCastTrigger(actor_id="wizard-1"))


def test_relay_trigger_sends_envelope(make_session: Callable[..., Session]) -> None:
    channel = RecordingChannel("gm", "player-1")
    broker = ActionBroker(make_session("player-1", channel=channel))

    relay_id = broker.relay_trigger(SpellCastTrigger(actor_id="wizard-1", spell_level=2))

    (envelope,) = channel.of_type(MessageType.TRIGGER_RELAY)
    assert envelope["payload"]["relayID"] == relay_id
    assert envelope["payload"]["sender"] == "player-1"
    assert envelope["payload"]["trigger"]["kind"] == "spell_cast"


def _relay_result(relay_id: str, recipient: str, **fields: Any) -> dict[str, Any]:
    return {
        "type": "triggerResult",
        "payload": {"relayID": relay_id, "recipient": recipient, **fields},
    }


class TestRelayResults:
    """Tests for relays that wait for the authority's answer."""

    @pytest.fixture
    def channel(self) -> RecordingChannel:
        return RecordingChannel("gm", "player-1")

    @pytest.fixture
    def player_broker(
        self,
        make_session: Callable[..., Session],
        channel: RecordingChannel,
    ) -> ActionBroker:
        broker = ActionBroker(make_session("player-1", channel=channel))
        broker.start()
        return broker

    @staticmethod
    def _damage_trigger() -> DamageTrigger:
        return DamageTrigger(record=DamageRecord(target_id="wizard-1", total_damage=6))

    def test_answer_resolves_relay(
        self,
        player_broker: ActionBroker,
        channel: RecordingChannel,
    ) -> None:
        async def scenario() -> Any:
            task = asyncio.create_task(player_broker.relay_for_result(self._damage_trigger(), 1.0))
            while not channel.of_type(MessageType.TRIGGER_RELAY):
                await asyncio.sleep(0)
            relay_id = channel.sent[0]["payload"]["relayID"]
            await player_broker.handle_envelope(
                _relay_result(relay_id, "player-2", status="absorbed", absorbed=1, remaining=5),
            )
            assert not task.done()
            await player_broker.handle_envelope(
                _relay_result(relay_id, "player-1", status="absorbed", absorbed=6, remaining=0),
            )
            return await task

        reply = asyncio.run(scenario())

        assert reply.status is ResultStatus.ABSORBED
        assert (reply.absorbed, reply.remaining) == (6, 0)
        assert channel.sent[0]["payload"]["expectsResult"] is True

    def test_unanswered_relay_times_out(self, player_broker: ActionBroker) -> None:
        with pytest.raises(RequestTimedOutError) as exc_info:
            asyncio.run(player_broker.relay_for_result(self._damage_trigger(), 0.05))

        assert "relay_id" in exc_info.value.details

    def test_authority_answers_relay(self, make_session: Callable[..., Session]) -> None:
        channel = RecordingChannel("gm", "player-1")
        broker = ActionBroker(make_session(channel=channel))

        async def handler(trigger: Any) -> TriggerResult:
            return TriggerResult(
                kind=trigger.kind,
                status=ResultStatus.ABSORBED,
                absorbed=4,
                remaining=2,
            )

        broker.set_trigger_handler(handler)
        relay = {
            "type": "triggerRelay",
            "payload": {
                "relayID": "x1",
                "trigger": self._damage_trigger().model_dump(mode="json"),
                "sender": "player-1",
                "expectsResult": True,
            },
        }

        async def scenario() -> None:
            await broker.handle_envelope(relay)
            await broker.handle_envelope(relay)

        asyncio.run(scenario())

        (reply,) = channel.of_type(MessageType.TRIGGER_RESULT)
        assert reply["payload"] == {
            "relayID": "x1",
            "recipient": "player-1",
            "status": "absorbed",
            "absorbed": 4,
            "remaining": 2,
            "errorCode": "",
        }
