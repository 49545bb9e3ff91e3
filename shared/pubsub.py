"""
Pub/sub client contract.

The messaging SDK is an external collaborator. Everything the application
needs from it goes through the types in this module, so the store and the
view never touch SDK objects directly:

    connect(publish_key, subscribe_key, client_id) -> PubSubClient
    subscribe(channels, with_presence)
    publish(channel, payload) -> timetoken        (raises PublishError)
    add_listener / remove_listener                (four event kinds)
    close()
"""

from __future__ import annotations
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Optional, Tuple, Union

from shared.log import get_logger

logger = get_logger(__name__)


class PublishError(Exception):
    """Raised when the SDK reports a failed publish."""
    pass


# ========================================
#           EVENTS
# ========================================

@dataclass(frozen=True)
class MessageEvent:
    channel: str
    payload: Any
    publisher: Optional[str] = None
    timetoken: Optional[int] = None


@dataclass(frozen=True)
class PresenceEvent:
    """
    Presence notification. ``metadata`` is sparse: keys such as
    ``pn_action``, ``pn_uuid`` and ``pn_occupancy`` are only present when the
    SDK supplied them.
    """
    channel: str
    metadata: Dict[str, Any] = field(default_factory=dict)


SUBSCRIBED = "subscribed"
UNSUBSCRIBED = "unsubscribed"


@dataclass(frozen=True)
class SubscriptionChange:
    kind: str                       # SUBSCRIBED | UNSUBSCRIBED
    channels: Tuple[str, ...] = ()


@dataclass(frozen=True)
class StatusEvent:
    """Either ``ok`` with a connection ``state`` or a failure with ``error``."""
    ok: bool
    state: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, state: str) -> "StatusEvent":
        return cls(ok=True, state=state)

    @classmethod
    def failure(cls, error: str) -> "StatusEvent":
        return cls(ok=False, error=error)


Event = Union[MessageEvent, PresenceEvent, SubscriptionChange, StatusEvent]


# ========================================
#           LISTENER
# ========================================

@dataclass(eq=False)
class SubscriptionListener:
    """
    Four independent callback slots. Unset slots ignore their event kind.
    Listeners compare by identity so the owner can remove exactly the one it
    added.
    """
    on_message: Optional[Callable[[MessageEvent], None]] = None
    on_presence: Optional[Callable[[PresenceEvent], None]] = None
    on_subscription_change: Optional[Callable[[SubscriptionChange], None]] = None
    on_status: Optional[Callable[[StatusEvent], None]] = None

    def dispatch(self, event: Event) -> None:
        if isinstance(event, MessageEvent):
            handler = self.on_message
        elif isinstance(event, PresenceEvent):
            handler = self.on_presence
        elif isinstance(event, SubscriptionChange):
            handler = self.on_subscription_change
        elif isinstance(event, StatusEvent):
            handler = self.on_status
        else:
            raise TypeError(f"Unknown event type: {type(event).__name__}")
        if handler:
            handler(event)


# ========================================
#           CLIENT
# ========================================

class PubSubClient(ABC):
    """
    Base for SDK adapters. Subclasses call ``_emit`` from whatever thread or
    loop the SDK delivers on; listener failures are logged and do not stop
    delivery to the remaining listeners.
    """

    def __init__(self, client_id: str) -> None:
        self.client_id = client_id
        self._listeners: list[SubscriptionListener] = []

    def add_listener(self, listener: SubscriptionListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: SubscriptionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listeners(self) -> Tuple[SubscriptionListener, ...]:
        return tuple(self._listeners)

    def _emit(self, event: Event) -> None:
        for listener in list(self._listeners):
            try:
                listener.dispatch(event)
            except Exception as e:
                logger.error("Listener failed on %s: %s", type(event).__name__, e,
                             extra={"client_id": self.client_id})

    @abstractmethod
    def subscribe(self, channels: Iterable[str], with_presence: bool = False) -> None:
        ...

    @abstractmethod
    async def publish(self, channel: str, payload: Any) -> int:
        """Publish ``payload`` and return the server-issued timetoken."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
