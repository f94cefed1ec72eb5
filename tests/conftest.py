"""Pytest configuration and shared fixtures.

This module provides fake host collaborators and factories for the ward
ledger, broker, and pipeline used across the test suite.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import pytest

from arcane_warding.core.config import Settings, WardSettings, clear_settings_cache
from arcane_warding.engine.broker import ActionBroker
from arcane_warding.engine.ledger import WardLedger
from arcane_warding.engine.pipeline import AbsorptionPipeline
from arcane_warding.engine.session import MessageChannel, Session
from arcane_warding.models.enums import ActorType, Outcome
from arcane_warding.models.messages import ConfirmationSubject
from arcane_warding.models.results import Notification
from arcane_warding.models.ward import ActorProfile


if TYPE_CHECKING:
    from collections.abc import Generator


GM = "gm"
PLAYER = "player-1"


# =============================================================================
# Configuration Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Reset the settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def settings() -> Settings:
    """Settings with short deadlines suitable for tests."""
    return Settings(
        ward=WardSettings(
            projected_ward_timeout_seconds=0.05,
            create_ward_timeout_seconds=None,
            relay_timeout_seconds=0.2,
        ),
    )


# =============================================================================
# Fake Collaborators
# =============================================================================


class FakeDirectory:
    """In-memory actor directory with explicit distances."""

    def __init__(self, actors: list[ActorProfile] | None = None) -> None:
        self.actors: dict[str, ActorProfile] = {a.id: a for a in actors or []}
        self.distances: dict[frozenset[str], float | None] = {}

    def add(self, actor: ActorProfile) -> ActorProfile:
        self.actors[actor.id] = actor
        return actor

    def set_distance(self, a: str, b: str, distance: float | None) -> None:
        self.distances[frozenset((a, b))] = distance

    def get_actor(self, actor_id: str) -> ActorProfile | None:
        return self.actors.get(actor_id)

    def list_actors(self) -> list[ActorProfile]:
        return list(self.actors.values())

    def distance(self, source_id: str, target_id: str) -> float | None:
        return self.distances.get(frozenset((source_id, target_id)), 5.0)


class FakePresenter:
    """Presentation collaborator answering from a scripted queue.

    Each queued answer is an Outcome, an exception to raise, or ``None`` to
    never answer (the dialog stays open until cancelled).
    """

    def __init__(self, *answers: Outcome | BaseException | None) -> None:
        self.answers: list[Outcome | BaseException | None] = list(answers)
        self.default: Outcome | BaseException | None = Outcome.APPROVED
        self.calls: list[tuple[ConfirmationSubject, float | None]] = []

    async def present_confirmation(
        self,
        subject: ConfirmationSubject,
        timeout: float | None,
    ) -> Outcome:
        self.calls.append((subject, timeout))
        answer = self.answers.pop(0) if self.answers else self.default
        if answer is None:
            await asyncio.Event().wait()
        if isinstance(answer, BaseException):
            raise answer
        return answer


class RecordingNotifier:
    """Notification sink that records every notification."""

    def __init__(self, *, fail: bool = False) -> None:
        self.notifications: list[Notification] = []
        self.fail = fail

    def notify(self, owner_id: str, notification: Notification) -> None:
        if self.fail:
            raise RuntimeError("chat is unavailable")
        self.notifications.append(notification)

    @property
    def keys(self) -> list[str]:
        return [str(n.key) for n in self.notifications]


@pytest.fixture
def make_actor() -> Callable[..., ActorProfile]:
    """Factory for actor profiles with ward-bearing defaults."""

    def _make(actor_id: str, **overrides: Any) -> ActorProfile:
        data: dict[str, Any] = {
            "id": actor_id,
            "name": actor_id.replace("-", " ").title(),
            "actor_type": ActorType.CHARACTER,
            "has_ward_feature": True,
            "ward_capacity": 20,
            "ruleset": "2024",
        }
        data.update(overrides)
        return ActorProfile(**data)

    return _make


@pytest.fixture
def directory() -> FakeDirectory:
    return FakeDirectory()


@pytest.fixture
def presenter() -> FakePresenter:
    return FakePresenter()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def make_session(
    settings: Settings,
    directory: FakeDirectory,
    presenter: FakePresenter,
    notifier: RecordingNotifier,
) -> Callable[..., Session]:
    """Factory for sessions sharing the test collaborators by default."""

    def _make(
        local_user_id: str = GM,
        authority_user_id: str = GM,
        *,
        channel: MessageChannel | None = None,
        **overrides: Any,
    ) -> Session:
        data: dict[str, Any] = {
            "directory": directory,
            "presenter": presenter,
            "notifier": notifier,
            "settings": settings,
        }
        data.update(overrides)
        return Session(
            local_user_id=local_user_id,
            authority_user_id=authority_user_id,
            channel=channel,
            **data,
        )

    return _make


@pytest.fixture
def session(make_session: Callable[..., Session]) -> Session:
    """Authority session with every participant local."""
    return make_session()


@pytest.fixture
def ledger() -> WardLedger:
    return WardLedger()


@pytest.fixture
def broker(session: Session) -> ActionBroker:
    return ActionBroker(session)


@pytest.fixture
def pipeline(session: Session, ledger: WardLedger, broker: ActionBroker) -> AbsorptionPipeline:
    return AbsorptionPipeline(session, ledger, broker)


@pytest.fixture
def make_presenter() -> Callable[..., FakePresenter]:
    """Factory for additional scripted presenters."""
    return FakePresenter


@pytest.fixture
def make_notifier() -> Callable[..., RecordingNotifier]:
    """Factory for additional recording notifiers."""
    return RecordingNotifier
