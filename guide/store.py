"""
Client store: the bridge between the pub/sub client and the view.

The store registers one four-slot listener on the client, subscribes to the
guide channel with presence, and turns every event into a ``Message`` on an
append-only log. Observers are told about each append. All log mutation
happens on the store's event loop; callbacks that arrive from another thread
are handed over with ``call_soon_threadsafe``.
"""

from __future__ import annotations
import asyncio
import concurrent.futures
from datetime import tzinfo
from typing import Callable, List, Optional, Set, Tuple, Union

from guide.config import CHANNEL, DecodeFailurePolicy, GuideConfig
from guide.models import NULL_TEXT, EntryUpdate, Message, PayloadDecodeError
from guide.timetoken import format_timetoken
from shared.log import get_logger
from shared.pubnub_client import PubNubClient
from shared.pubsub import (
    SUBSCRIBED,
    MessageEvent,
    PresenceEvent,
    PubSubClient,
    PublishError,
    StatusEvent,
    SubscriptionChange,
    SubscriptionListener,
)

logger = get_logger(__name__)

Observer = Callable[[Message], None]
ClientFactory = Callable[[str, str, str], PubSubClient]
PublishHandle = Union["asyncio.Task[Optional[int]]", "concurrent.futures.Future[Optional[int]]"]

# Log categories
PUBLISH_SENT = "[PUBLISH: sent]"
PUBLISH_FAILED = "[PUBLISH: failed]"
MESSAGE_RECEIVED = "[MESSAGE: received]"
SUBSCRIPTION_CHANGED = "[SUBSCRIPTION CHANGED: new channels]"
STATUS_CONNECTION = "[STATUS: connection]"
STATUS_ERROR = "[STATUS: error]"


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


def _copy_outcome(task: asyncio.Task, future: concurrent.futures.Future) -> None:
    if task.cancelled():
        future.cancel()
    elif task.exception() is not None:
        future.set_exception(task.exception())
    else:
        future.set_result(task.result())


class GuideStore:

    def __init__(
        self,
        client: PubSubClient,
        config: GuideConfig,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        tz: Optional[tzinfo] = None,
    ) -> None:
        self.client = client
        self.config = config
        self.tz = tz
        self._channel = CHANNEL
        self._messages: List[Message] = []
        self._observers: List[Observer] = []
        self._loop = loop or _running_loop()
        self._pending: Set[asyncio.Task] = set()
        self._closed = False

        # Handlers go in before subscribe so no early event is missed
        self.listener = SubscriptionListener(
            on_message=self._marshal(self._on_message),
            on_presence=self._marshal(self._on_presence),
            on_subscription_change=self._marshal(self._on_subscription_change),
            on_status=self._marshal(self._on_status),
        )
        self.client.add_listener(self.listener)
        self.client.subscribe({self._channel}, with_presence=True)

    @classmethod
    def connect(cls, config: GuideConfig, client_factory: ClientFactory = PubNubClient.connect,
                **kwargs) -> "GuideStore":
        client = client_factory(config.publish_key, config.subscribe_key, config.client_id)
        return cls(client, config, **kwargs)

    @property
    def channel(self) -> str:
        return self._channel

    @property
    def client_id(self) -> str:
        return self.config.client_id

    @property
    def messages(self) -> Tuple[Message, ...]:
        """The log in arrival order"""
        return tuple(self._messages)

    @property
    def pending(self) -> Tuple[asyncio.Task, ...]:
        return tuple(self._pending)

    # ========================================
    #           OBSERVERS
    # ========================================

    def add_observer(self, observer: Observer) -> None:
        self._observers.append(observer)

    def remove_observer(self, observer: Observer) -> None:
        if observer in self._observers:
            self._observers.remove(observer)

    def display(self, message_type: str, message_text: str) -> Message:
        message = Message(message_type=message_type, message_text=message_text)
        self._messages.append(message)
        for observer in list(self._observers):
            observer(message)
        return message

    # ========================================
    #           PUBLISH
    # ========================================

    def publish(self, update: str, entry: Optional[str] = None) -> Optional[PublishHandle]:
        """
        Send an EntryUpdate without waiting for the result.

        The returned task (or thread-safe future, when called off the loop)
        resolves to the timetoken, or None when the publish failed. A closed
        store publishes nothing and returns None.
        """
        if self._closed:
            logger.warning("Store closed; not publishing %r", update,
                           extra={"client_id": self.client_id, "channel": self._channel})
            return None
        payload = EntryUpdate(
            update=update,
            entry=self.config.default_entry if entry is None else entry,
        )
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        if _running_loop() is self._loop:
            return self._start(payload)

        future: "concurrent.futures.Future[Optional[int]]" = concurrent.futures.Future()

        def start() -> None:
            if self._closed:
                logger.warning("Store closed before publish started", extra={"client_id": self.client_id})
                future.set_result(None)
                return
            self._start(payload).add_done_callback(lambda task: _copy_outcome(task, future))

        self._loop.call_soon_threadsafe(start)
        return future

    def _start(self, payload: EntryUpdate) -> "asyncio.Task[Optional[int]]":
        task = self._loop.create_task(self._send(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _send(self, payload: EntryUpdate) -> Optional[int]:
        try:
            timetoken = await self.client.publish(self._channel, payload.to_dict())
        except PublishError as e:
            logger.error("failed: %s", e, extra={"client_id": self.client_id, "channel": self._channel})
            if self.config.surface_errors:
                self.display(PUBLISH_FAILED, f"error: {e}")
            return None

        self.display(
            PUBLISH_SENT,
            f"timetoken: {format_timetoken(timetoken, self.tz)} ({timetoken})",
        )
        return timetoken

    async def flush(self) -> None:
        """Wait for every started publish to finish"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ========================================
    #           EVENT HANDLERS
    # ========================================

    def _marshal(self, handler: Callable) -> Callable:
        def run(event) -> None:
            # Events queued before close() must not reach the log
            if not self._closed:
                handler(event)

        def dispatch(event) -> None:
            loop = self._loop
            if loop is None or _running_loop() is loop:
                run(event)
            else:
                loop.call_soon_threadsafe(run, event)
        return dispatch

    def _on_message(self, event: MessageEvent) -> None:
        try:
            update = EntryUpdate.from_payload(event.payload)
        except PayloadDecodeError as e:
            if self.config.decode_failure is DecodeFailurePolicy.DROP:
                logger.warning("Dropping undecodable message: %s", e,
                               extra={"channel": event.channel, "timetoken": event.timetoken})
                return
            logger.debug("Substituting null fields: %s", e, extra={"channel": event.channel})
            update = EntryUpdate.from_payload_lenient(event.payload)

        self.display(MESSAGE_RECEIVED, f"entry: {update.entry}, update: {update.update}")

    def _on_presence(self, event: PresenceEvent) -> None:
        action = event.metadata.get("pn_action", NULL_TEXT)
        user = event.metadata.get("pn_uuid", NULL_TEXT)
        self.display(f"[PRESENCE: {action}]", f"event uuid: {user}, channel: {event.channel}")

    def _on_subscription_change(self, event: SubscriptionChange) -> None:
        if event.kind != SUBSCRIBED:
            return
        first = event.channels[0] if event.channels else NULL_TEXT
        self.display(SUBSCRIPTION_CHANGED, f"channels added: {first}")
        if self.config.auto_publish_on_subscribe and not self._closed:
            self.publish(self.config.auto_publish_text)

    def _on_status(self, event: StatusEvent) -> None:
        if event.ok:
            self.display(STATUS_CONNECTION, f"state: {event.state}")
            return
        logger.error("Status Error: %s", event.error, extra={"client_id": self.client_id})
        if self.config.surface_errors:
            self.display(STATUS_ERROR, f"error: {event.error}")

    # ========================================
    #           TEARDOWN
    # ========================================

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.client.remove_listener(self.listener)
        await self.flush()
        await self.client.close()
        logger.info("Store closed", extra={"client_id": self.client_id})
