import asyncio
import os
import tempfile
from typing import Any, Iterable, List, Optional, Tuple

import pytest

# Keep test runs from writing logs/ into the working tree
if "GUIDE_LOG_DIR" not in os.environ:
    os.environ["GUIDE_LOG_DIR"] = tempfile.mkdtemp(prefix="guide-logs-")

from guide.config import GuideConfig
from shared.pubsub import PubSubClient, PublishError

TIMETOKEN = 15870497400000000  # 2020-04-16 15:09:00 UTC


class FakePubSubClient(PubSubClient):
    """In-memory stand-in for the SDK: records calls, replays events on demand."""

    def __init__(self, client_id: str = "fake-client") -> None:
        super().__init__(client_id)
        self.subscriptions: List[Tuple[frozenset, bool]] = []
        self.published: List[Tuple[str, Any]] = []
        self.timetoken = TIMETOKEN
        self.fail_with: Optional[str] = None
        self.gate: Optional[asyncio.Event] = None
        self.closed = False

    def subscribe(self, channels: Iterable[str], with_presence: bool = False) -> None:
        self.subscriptions.append((frozenset(channels), with_presence))

    async def publish(self, channel: str, payload: Any) -> int:
        self.published.append((channel, payload))
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_with:
            raise PublishError(self.fail_with)
        self.timetoken += 1
        return self.timetoken

    async def close(self) -> None:
        self.closed = True

    def emit(self, event) -> None:
        self._emit(event)


@pytest.fixture
def fake_client():
    return FakePubSubClient()


@pytest.fixture
def config():
    return GuideConfig(client_id="test-client", auto_publish_on_subscribe=False)
