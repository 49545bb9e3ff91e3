from __future__ import annotations
import inspect
from typing import Any, Iterable, List, Optional

from pubnub.callbacks import SubscribeCallback
from pubnub.enums import PNOperationType, PNStatusCategory
from pubnub.exceptions import PubNubException
from pubnub.pnconfiguration import PNConfiguration
from pubnub.pubnub_asyncio import PubNubAsyncio

from shared.log import get_logger, log_event
from shared.pubsub import (
    SUBSCRIBED,
    UNSUBSCRIBED,
    Event,
    MessageEvent,
    PresenceEvent,
    PubSubClient,
    PublishError,
    StatusEvent,
    SubscriptionChange,
)

logger = get_logger(__name__)

PRESENCE_SUFFIX = "-pnpres"

# Categories that describe the subscribe connection itself
_CONNECTION_CATEGORIES = {
    PNStatusCategory.PNConnectedCategory,
    PNStatusCategory.PNReconnectedCategory,
    PNStatusCategory.PNDisconnectedCategory,
}


def _state_name(category: PNStatusCategory) -> str:
    """PNReconnectedCategory -> 'reconnected'"""
    name = category.name
    if name.startswith("PN"):
        name = name[2:]
    if name.endswith("Category"):
        name = name[:-len("Category")]
    return name.lower()


def _describe_status(status: Any) -> str:
    error_data = getattr(status, "error_data", None)
    information = getattr(error_data, "information", None)
    if information:
        return str(information)
    category = getattr(status, "category", None)
    if isinstance(category, PNStatusCategory):
        return _state_name(category)
    return "unknown error"


def _data_channels(channels: Optional[Iterable[str]]) -> List[str]:
    return [ch for ch in (channels or []) if not ch.endswith(PRESENCE_SUFFIX)]


class _CallbackBridge(SubscribeCallback):
    """Receives SDK callbacks and forwards translated events to the client."""

    def __init__(self, owner: "PubNubClient") -> None:
        self.owner = owner

    def status(self, pubnub, status) -> None:
        for event in self.owner.translate_status(status):
            self.owner._deliver(event)

    def message(self, pubnub, message) -> None:
        self.owner._deliver(self.owner.translate_message(message))

    def presence(self, pubnub, presence) -> None:
        self.owner._deliver(self.owner.translate_presence(presence))


class PubNubClient(PubSubClient):
    """
    ``PubSubClient`` backed by PubNub's asyncio SDK.

    Subscribe-change notifications are derived from connected/unsubscribe
    statuses, since the Python SDK folds them into the status stream.
    """

    def __init__(self, pubnub: PubNubAsyncio, client_id: str) -> None:
        super().__init__(client_id)
        self._pubnub = pubnub
        self._requested: List[str] = []
        self._closed = False
        self._bridge = _CallbackBridge(self)
        self._pubnub.add_listener(self._bridge)

    @classmethod
    def connect(cls, publish_key: str, subscribe_key: str, client_id: str) -> "PubNubClient":
        config = PNConfiguration()
        config.publish_key = publish_key
        config.subscribe_key = subscribe_key
        config.user_id = client_id
        logger.debug("Creating PubNub client", extra={"client_id": client_id})
        return cls(PubNubAsyncio(config), client_id)

    def subscribe(self, channels: Iterable[str], with_presence: bool = False) -> None:
        channels = sorted(channels)
        self._requested.extend(ch for ch in channels if ch not in self._requested)
        builder = self._pubnub.subscribe().channels(channels)
        if with_presence:
            builder = builder.with_presence()
        builder.execute()
        logger.info("Subscribing to %s (presence=%s)", ", ".join(channels), with_presence,
                    extra={"client_id": self.client_id})

    async def publish(self, channel: str, payload: Any) -> int:
        try:
            envelope = await self._pubnub.publish().channel(channel).message(payload).future()
        except PubNubException as e:
            raise PublishError(str(e)) from e

        if envelope.status.is_error():
            raise PublishError(_describe_status(envelope.status))
        return int(envelope.result.timetoken)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pubnub.remove_listener(self._bridge)
        self._pubnub.unsubscribe_all()
        # stop() is a coroutine in recent SDK releases
        result = self._pubnub.stop()
        if inspect.isawaitable(result):
            await result
        logger.debug("PubNub client stopped", extra={"client_id": self.client_id})

    # ========================================
    #           SDK -> CONTRACT TRANSLATION
    # ========================================

    def translate_status(self, status: Any) -> List[Event]:
        if status.is_error():
            return [StatusEvent.failure(_describe_status(status))]

        events: List[Event] = []
        category = status.category
        affected = _data_channels(getattr(status, "affected_channels", None))

        if category in _CONNECTION_CATEGORIES:
            events.append(StatusEvent.success(_state_name(category)))

        if category == PNStatusCategory.PNConnectedCategory:
            events.append(SubscriptionChange(SUBSCRIBED, tuple(affected or self._requested)))
        elif getattr(status, "operation", None) == PNOperationType.PNUnsubscribeOperation:
            events.append(SubscriptionChange(UNSUBSCRIBED, tuple(affected)))

        if not events:
            logger.debug("Ignoring status %s", _state_name(category),
                         extra={"client_id": self.client_id})
        return events

    def translate_message(self, message: Any) -> MessageEvent:
        timetoken = getattr(message, "timetoken", None)
        return MessageEvent(
            channel=message.channel,
            payload=message.message,
            publisher=getattr(message, "publisher", None),
            timetoken=int(timetoken) if timetoken is not None else None,
        )

    def translate_presence(self, presence: Any) -> PresenceEvent:
        metadata = {
            "pn_action": getattr(presence, "event", None),
            "pn_uuid": getattr(presence, "uuid", None),
            "pn_occupancy": getattr(presence, "occupancy", None),
            "pn_timestamp": getattr(presence, "timestamp", None),
            "pn_state": getattr(presence, "state", None),
        }
        return PresenceEvent(
            channel=presence.channel,
            metadata={k: v for k, v in metadata.items() if v is not None},
        )

    def _deliver(self, event: Event) -> None:
        log_event(logger, "debug", "Inbound event", event=event, client_id=self.client_id)
        self._emit(event)
