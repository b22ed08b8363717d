"""Session storage backends."""

from .durable import (
    ActorId,
    ActorNamespace,
    DurableSessionBackend,
    LocalActorNamespace,
    parse_actor_id,
)
from .ephemeral import EphemeralSessionStore
from .types import SessionRecord

__all__ = [
    "ActorId",
    "ActorNamespace",
    "DurableSessionBackend",
    "EphemeralSessionStore",
    "LocalActorNamespace",
    "SessionRecord",
    "parse_actor_id",
]
