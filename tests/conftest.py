import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from live_offer_service.schemas import CheckoutIntent, LiveOffer


def make_offer(offer_id="offer-1", event_id="event-1", total=10, reserved=3, sold=2, **fields):
    return LiveOffer(
        id=offer_id,
        work_id=fields.pop("work_id", f"work-{offer_id}"),
        live_event_id=event_id,
        stock_total=total,
        stock_reserved=reserved,
        stock_sold=sold,
        **fields,
    )


def stock_change(row, event="UPDATE", table="live_offers"):
    return json.dumps({"event": event, "table": table, "new": row})


class FakeBackend:
    """In-memory stand-in for LiveOfferBackend that records every call."""

    def __init__(self, offers=()):
        self.offers = list(offers)
        self.lock_result = True
        self.lock_error = None
        self.release_result = True
        self.release_error = None
        self.list_error = None
        self.intent_error = None
        self.client_secret = "pi_123_secret_456"
        self.lock_delay = 0
        self.list_delay = 0
        self.calls = []

    def count(self, name):
        return len([c for c in self.calls if c[0] == name])

    async def list_live_offers_for_event(self, event_id):
        self.calls.append(("list", event_id, None))
        if self.list_delay:
            await asyncio.sleep(self.list_delay)
        if self.list_error:
            raise self.list_error
        return [o for o in self.offers if o.live_event_id == event_id]

    async def acquire_live_offer_lock(self, offer_id, access_token=None):
        self.calls.append(("acquire", offer_id, access_token))
        if self.lock_delay:
            await asyncio.sleep(self.lock_delay)
        if self.lock_error:
            raise self.lock_error
        return self.lock_result

    async def release_live_offer_lock(self, offer_id, access_token=None):
        self.calls.append(("release", offer_id, access_token))
        if self.release_error:
            raise self.release_error
        return self.release_result

    async def create_live_offer_intent(self, offer_id, access_token=None):
        self.calls.append(("intent", offer_id, access_token))
        if self.intent_error:
            raise self.intent_error
        return CheckoutIntent(client_secret=self.client_secret)


class FakePubSub:
    def __init__(self):
        self.channels = []
        self.closed = False
        self._queue = asyncio.Queue()

    async def subscribe(self, *channels):
        self.channels.extend(channels)

    async def listen(self):
        while True:
            message = await self._queue.get()
            if message is None:
                return
            yield message

    def publish(self, data, message_type="message"):
        channel = self.channels[0] if self.channels else None
        self._queue.put_nowait({"type": message_type, "channel": channel, "data": data})

    def finish(self):
        self._queue.put_nowait(None)

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self):
        self.pubsubs = []
        self.counters = {}
        self.ttls = {}
        self.fail = False

    def _check(self):
        if self.fail:
            raise RedisConnectionError("redis is down")

    def pubsub(self):
        pubsub = FakePubSub()
        self.pubsubs.append(pubsub)
        return pubsub

    async def incr(self, key):
        self._check()
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    async def expire(self, key, seconds):
        self._check()
        self.ttls[key] = seconds
        return True

    async def ttl(self, key):
        self._check()
        return self.ttls.get(key, -1)


class FakeProducer:
    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_and_wait(self, topic, value=None):
        if self.fail:
            raise RuntimeError("broker unavailable")
        self.sent.append((topic, value))


async def wait_until(predicate, attempts=50):
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()


@pytest.fixture
def offer():
    return make_offer()


@pytest.fixture
def backend(offer):
    return FakeBackend([offer, make_offer("offer-2", total=5, reserved=0, sold=0)])


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def producer():
    return FakeProducer()
