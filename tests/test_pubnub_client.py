from types import SimpleNamespace

import pytest
from pubnub.enums import PNOperationType, PNStatusCategory

from shared import pubnub_client
from shared.pubnub_client import PubNubClient
from shared.pubsub import (
    SUBSCRIBED,
    UNSUBSCRIBED,
    MessageEvent,
    PresenceEvent,
    PublishError,
    StatusEvent,
    SubscriptionChange,
    SubscriptionListener,
)


class FakeStatus:
    def __init__(self, category, error=False, affected_channels=None, operation=None, information=None):
        self.category = category
        self.affected_channels = affected_channels
        self.operation = operation
        self.error_data = SimpleNamespace(information=information) if information else None
        self._error = error

    def is_error(self):
        return self._error


class Builder:
    """Records chained builder calls made against the SDK."""

    def __init__(self, sdk, kind):
        self.sdk = sdk
        self.kind = kind
        self.calls = {}

    def channels(self, channels):
        self.calls["channels"] = list(channels)
        return self

    def channel(self, channel):
        self.calls["channel"] = channel
        return self

    def message(self, message):
        self.calls["message"] = message
        return self

    def with_presence(self):
        self.calls["presence"] = True
        return self

    def execute(self):
        self.sdk.executed.append((self.kind, self.calls))

    async def future(self):
        self.sdk.executed.append((self.kind, self.calls))
        return self.sdk.publish_envelope


class FakePubNub:
    def __init__(self):
        self.listeners = []
        self.executed = []
        self.unsubscribed = False
        self.stopped = False
        self.publish_envelope = SimpleNamespace(
            status=FakeStatus(PNStatusCategory.PNAcknowledgmentCategory),
            result=SimpleNamespace(timetoken=15870497400000000),
        )

    def add_listener(self, listener):
        self.listeners.append(listener)

    def remove_listener(self, listener):
        self.listeners.remove(listener)

    def subscribe(self):
        return Builder(self, "subscribe")

    def publish(self):
        return Builder(self, "publish")

    def unsubscribe_all(self):
        self.unsubscribed = True

    async def stop(self):
        self.stopped = True


@pytest.fixture
def sdk():
    return FakePubNub()


@pytest.fixture
def client(sdk):
    return PubNubClient(sdk, "arthur")


def collect(client):
    events = []
    client.add_listener(SubscriptionListener(
        on_message=events.append,
        on_presence=events.append,
        on_subscription_change=events.append,
        on_status=events.append,
    ))
    return events


def test_connect_configures_sdk(monkeypatch):
    created = []
    monkeypatch.setattr(pubnub_client, "PubNubAsyncio", lambda config: created.append(config) or FakePubNub())

    client = PubNubClient.connect("pub", "sub", "arthur")

    (config,) = created
    assert config.publish_key == "pub"
    assert config.subscribe_key == "sub"
    assert config.user_id == "arthur"
    assert client.client_id == "arthur"


def test_subscribe_with_presence(client, sdk):
    client.subscribe({"the_guide"}, with_presence=True)
    client.subscribe({"other"})

    assert sdk.executed == [
        ("subscribe", {"channels": ["the_guide"], "presence": True}),
        ("subscribe", {"channels": ["other"]}),
    ]


@pytest.mark.asyncio
async def test_publish_returns_timetoken(client, sdk):
    timetoken = await client.publish("the_guide", {"entry": "Earth", "update": "Harmless."})

    assert timetoken == 15870497400000000
    assert sdk.executed == [
        ("publish", {"channel": "the_guide", "message": {"entry": "Earth", "update": "Harmless."}})
    ]


@pytest.mark.asyncio
async def test_publish_error_status_raises(client, sdk):
    sdk.publish_envelope = SimpleNamespace(
        status=FakeStatus(PNStatusCategory.PNAccessDeniedCategory, error=True, information="Forbidden"),
        result=None,
    )

    with pytest.raises(PublishError, match="Forbidden"):
        await client.publish("the_guide", {"update": "x", "entry": "y"})


@pytest.mark.asyncio
async def test_close_detaches_and_stops(client, sdk):
    await client.close()
    await client.close()

    assert sdk.listeners == []
    assert sdk.unsubscribed is True
    assert sdk.stopped is True


def test_connected_status_emits_state_and_subscription(client, sdk):
    events = collect(client)
    client.subscribe({"the_guide"}, with_presence=True)

    bridge = sdk.listeners[0]
    bridge.status(sdk, FakeStatus(
        PNStatusCategory.PNConnectedCategory,
        affected_channels=["the_guide-pnpres", "the_guide"],
        operation=PNOperationType.PNSubscribeOperation,
    ))

    assert events == [
        StatusEvent.success("connected"),
        SubscriptionChange(SUBSCRIBED, ("the_guide",)),
    ]


def test_connected_without_affected_channels_uses_requested(client, sdk):
    events = collect(client)
    client.subscribe({"the_guide"}, with_presence=True)

    sdk.listeners[0].status(sdk, FakeStatus(PNStatusCategory.PNConnectedCategory))

    assert events[-1] == SubscriptionChange(SUBSCRIBED, ("the_guide",))


def test_unsubscribe_and_error_statuses(client, sdk):
    events = collect(client)
    bridge = sdk.listeners[0]

    bridge.status(sdk, FakeStatus(
        PNStatusCategory.PNAcknowledgmentCategory,
        affected_channels=["the_guide"],
        operation=PNOperationType.PNUnsubscribeOperation,
    ))
    bridge.status(sdk, FakeStatus(PNStatusCategory.PNUnexpectedDisconnectCategory, error=True))
    bridge.status(sdk, FakeStatus(PNStatusCategory.PNAcknowledgmentCategory))

    assert events == [
        SubscriptionChange(UNSUBSCRIBED, ("the_guide",)),
        StatusEvent.failure("unexpecteddisconnect"),
    ]


def test_message_and_presence_translation(client, sdk):
    events = collect(client)
    bridge = sdk.listeners[0]

    bridge.message(sdk, SimpleNamespace(
        channel="the_guide",
        message={"entry": "Earth", "update": "Harmless."},
        publisher="ford",
        timetoken="15870497400000000",
    ))
    bridge.presence(sdk, SimpleNamespace(
        channel="the_guide", event="join", uuid="ford", occupancy=2, timestamp=1587049740, state=None,
    ))

    assert events == [
        MessageEvent("the_guide", {"entry": "Earth", "update": "Harmless."}, "ford", 15870497400000000),
        PresenceEvent("the_guide", {
            "pn_action": "join", "pn_uuid": "ford", "pn_occupancy": 2, "pn_timestamp": 1587049740,
        }),
    ]


def test_failing_listener_does_not_block_others(client, sdk):
    def explode(event):
        raise RuntimeError("boom")

    client.add_listener(SubscriptionListener(on_status=explode))
    events = collect(client)

    sdk.listeners[0].status(sdk, FakeStatus(PNStatusCategory.PNReconnectedCategory))

    assert events == [StatusEvent.success("reconnected")]
