"""Session context and the collaborator interfaces it carries.

A Session is created when a game session starts and torn down when it ends.
It is injected into the broker and the pipeline at construction; nothing in
the engine reaches for process-wide state.

The host integration supplies the collaborators:

- ActorDirectory: read access to actors and distances between them.
- PresentationCollaborator: shows a confirmation dialog and returns the answer.
- MessageChannel: named channel to the other session participants.
- NotificationSink: fire-and-forget chat/UI notifications.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from uuid import uuid4

from arcane_warding.core.config import Settings
from arcane_warding.core.exceptions import UnreachableDecisionMakerError
from arcane_warding.core.logging import bind_context, get_logger, unbind_context
from arcane_warding.models.enums import NotificationKey, Outcome
from arcane_warding.models.messages import ConfirmationSubject
from arcane_warding.models.results import Notification
from arcane_warding.models.ward import ActorProfile, ProjectedWardMarker


logger = get_logger(__name__)


EnvelopeHandler = Callable[[dict[str, Any]], Awaitable[None] | None]


# =============================================================================
# Collaborator Interfaces
# =============================================================================


@runtime_checkable
class ActorDirectory(Protocol):
    """Host actor lookup."""

    def get_actor(self, actor_id: str) -> ActorProfile | None:
        """Return the actor's profile, or None if unknown."""
        ...

    def list_actors(self) -> list[ActorProfile]:
        """Return every actor in the session, in a stable order."""
        ...

    def distance(self, source_id: str, target_id: str) -> float | None:
        """Distance between two actors, or None when blocked or unmeasurable."""
        ...


@runtime_checkable
class PresentationCollaborator(Protocol):
    """Shows confirmation dialogs to the local user."""

    async def present_confirmation(
        self,
        subject: ConfirmationSubject,
        timeout: float | None,
    ) -> Outcome:
        """Ask the local user; dismissal must resolve to DECLINED."""
        ...


@runtime_checkable
class MessageChannel(Protocol):
    """Named channel delivering JSON envelopes between participants."""

    def send(self, message: dict[str, Any]) -> None:
        """Broadcast an envelope to the other participants."""
        ...

    def subscribe(self, handler: EnvelopeHandler) -> None:
        """Register a handler for incoming envelopes."""
        ...

    def unsubscribe(self, handler: EnvelopeHandler) -> None:
        """Remove a previously registered handler."""
        ...

    def is_connected(self, user_id: str) -> bool:
        """True when the user is connected and can answer."""
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Receives chat/UI notifications about ward activity."""

    def notify(self, owner_id: str, notification: Notification) -> None:
        """Deliver a notification; failures are the sink's problem."""
        ...


# =============================================================================
# Projected Ward Markers
# =============================================================================


class MarkerBoard:
    """One-shot projected ward subscriptions, keyed by protected actor.

    A marker is armed when a donor agrees to project their ward and is
    consumed by the target's next damage event. ``take`` removes the marker,
    so a marker is consumed at most once.
    """

    def __init__(self) -> None:
        self._markers: dict[str, ProjectedWardMarker] = {}

    def __len__(self) -> int:
        return len(self._markers)

    def __contains__(self, target_id: object) -> bool:
        return target_id in self._markers

    def arm(self, marker: ProjectedWardMarker) -> bool:
        """Arm a marker for its target.

        Returns:
            False if the target is already protected; the existing marker
            is kept.
        """
        if marker.target_id in self._markers:
            return False
        self._markers[marker.target_id] = marker
        logger.info(
            "Projected ward armed",
            donor_id=marker.donor_id,
            target_id=marker.target_id,
        )
        return True

    def peek(self, target_id: str) -> ProjectedWardMarker | None:
        """Return the target's marker without consuming it."""
        return self._markers.get(target_id)

    def take(self, target_id: str) -> ProjectedWardMarker | None:
        """Consume and return the target's marker."""
        return self._markers.pop(target_id, None)

    def discard_donor(self, donor_id: str) -> int:
        """Drop every marker donated by an actor.

        Returns:
            Number of markers dropped.
        """
        targets = [t for t, m in self._markers.items() if m.donor_id == donor_id]
        for target_id in targets:
            del self._markers[target_id]
        return len(targets)

    def clear(self) -> None:
        """Drop every marker."""
        self._markers.clear()


# =============================================================================
# Session
# =============================================================================


@dataclass
class Session:
    """Explicit context shared by the broker and the pipeline.

    Attributes:
        local_user_id: User this process acts for.
        authority_user_id: The privileged coordinating user, the only one
            allowed to mutate wards.
        directory: Host actor lookup.
        presenter: Local confirmation dialogs.
        notifier: Notification sink.
        settings: Resolved settings, passed in by the host.
        channel: Message channel to remote participants, None when every
            participant lives in this process.
        session_id: Identifier bound into every log entry.
        markers: Armed projected ward markers.
    """

    local_user_id: str
    authority_user_id: str
    directory: ActorDirectory
    presenter: PresentationCollaborator
    notifier: NotificationSink
    settings: Settings
    channel: MessageChannel | None = None
    session_id: str = field(default_factory=lambda: uuid4().hex)
    markers: MarkerBoard = field(default_factory=MarkerBoard)

    @property
    def is_authority(self) -> bool:
        """True when this process is the privileged coordinating party."""
        return self.local_user_id == self.authority_user_id

    def is_local(self, user_id: str) -> bool:
        """True when the user is the one this process acts for."""
        return user_id == self.local_user_id

    def is_reachable(self, user_id: str) -> bool:
        """True when the user can answer a confirmation."""
        if self.is_local(user_id):
            return True
        return self.channel is not None and self.channel.is_connected(user_id)

    def resolve_decision_maker(self, actor: ActorProfile) -> str:
        """Pick the user entitled to decide for an actor.

        Actors without a player owner are decided by the authority.

        Raises:
            UnreachableDecisionMakerError: If the owning player cannot answer.
        """
        user_id = actor.owner_user_id or self.authority_user_id
        if not self.is_reachable(user_id):
            raise UnreachableDecisionMakerError(
                f"No connected user can decide for {actor.name}",
                decision_maker=user_id,
                details={"actor_id": actor.id},
            )
        return user_id

    def notify(
        self,
        owner_id: str,
        key: NotificationKey,
        *,
        full_messaging: bool = False,
        **params: Any,
    ) -> None:
        """Send a notification without letting sink failures propagate."""
        notification = Notification(
            owner_id=owner_id,
            key=key,
            params=params,
            full_messaging=full_messaging,
        )
        try:
            self.notifier.notify(owner_id, notification)
        except Exception:
            logger.exception("Notification sink failed", owner_id=owner_id, key=str(key))

    @contextmanager
    def bind_logging(self) -> Iterator[None]:
        """Bind session and user identifiers into the logging context."""
        bind_context(session_id=self.session_id, user_id=self.local_user_id)
        try:
            yield
        finally:
            unbind_context("session_id", "user_id")


__all__ = [
    "EnvelopeHandler",
    "ActorDirectory",
    "PresentationCollaborator",
    "MessageChannel",
    "NotificationSink",
    "MarkerBoard",
    "Session",
]
