"""Ward engine: ledger, confirmation broker, and absorption pipeline.

Submodules:
    ledger: Ward pools and their arithmetic, serialized per owner.
    broker: Approve/decline confirmations, local or over the channel.
    pipeline: Trigger handling and projected ward coordination.
    session: Session context and collaborator interfaces.
    channel: In-process message channel.
    runtime: Session-scoped wiring of the above.

Example:
    >>> from arcane_warding.core.config import get_settings
    >>> from arcane_warding.engine import LocalBus, Session, WardingRuntime
    >>>
    >>> bus = LocalBus()
    >>> session = Session(
    ...     local_user_id="gm",
    ...     authority_user_id="gm",
    ...     directory=directory,
    ...     presenter=presenter,
    ...     notifier=notifier,
    ...     settings=get_settings(),
    ...     channel=bus.connect("gm"),
    ... )
    >>> async with WardingRuntime(session) as runtime:
    ...     result = await runtime.handle(trigger)
"""

from __future__ import annotations

from arcane_warding.engine.broker import ActionBroker, PendingConfirmation, TriggerHandler
from arcane_warding.engine.channel import DEFAULT_CHANNEL_NAME, BusEndpoint, LocalBus
from arcane_warding.engine.ledger import WardLedger
from arcane_warding.engine.pipeline import AbsorptionPipeline, owner_of
from arcane_warding.engine.runtime import WardingRuntime
from arcane_warding.engine.session import (
    ActorDirectory,
    EnvelopeHandler,
    MarkerBoard,
    MessageChannel,
    NotificationSink,
    PresentationCollaborator,
    Session,
)


__all__ = [
    # Ledger
    "WardLedger",
    # Broker
    "ActionBroker",
    "PendingConfirmation",
    "TriggerHandler",
    # Pipeline
    "AbsorptionPipeline",
    "owner_of",
    # Session
    "Session",
    "MarkerBoard",
    "ActorDirectory",
    "PresentationCollaborator",
    "MessageChannel",
    "NotificationSink",
    "EnvelopeHandler",
    # Channel
    "DEFAULT_CHANNEL_NAME",
    "BusEndpoint",
    "LocalBus",
    # Runtime
    "WardingRuntime",
]
