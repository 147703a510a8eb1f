import asyncio
import json
import logging
from typing import Dict, Iterable, List, Optional

import redis.asyncio as redis
from pydantic import ValidationError

from live_offer_service import config
from live_offer_service.backend_client import LiveOfferBackend
from live_offer_service.schemas import LiveOffer, StockChange

logger = logging.getLogger(__name__)

LIVE_OFFERS_TABLE = "live_offers"


def channel_for_event(event_id: str) -> str:
    return f"{config.STOCK_CHANNEL_PREFIX}:{event_id}"


class StockView:
    """Locally held offers of one live event, keyed by offer id."""

    def __init__(self, event_id: str, offers: Iterable[LiveOffer] = ()):
        self.event_id = event_id
        self._offers: Dict[str, LiveOffer] = {}
        self.replace_all(offers)

    def replace_all(self, offers: Iterable[LiveOffer]):
        self._offers = {offer.id: offer for offer in offers}

    def offers(self) -> List[LiveOffer]:
        return list(self._offers.values())

    def get(self, offer_id: str) -> Optional[LiveOffer]:
        return self._offers.get(offer_id)

    def apply_change(self, row: dict) -> bool:
        """
        Merges the fields of a changed row into the offer with the same id.

        Only the fields present in ``row`` are replaced. Rows for unknown
        offers or for another event are ignored. Returns True when the
        local view actually changed.
        """
        offer_id = row.get("id")
        current = self._offers.get(offer_id)
        if current is None:
            return False
        row_event_id = row.get("live_event_id")
        if row_event_id is not None and row_event_id != self.event_id:
            return False

        try:
            merged = LiveOffer.model_validate({**current.model_dump(), **row})
        except ValidationError as e:
            logger.error(f"Dropping invalid stock update for live offer {offer_id}: {e}")
            return False

        if merged == current:
            return False
        self._offers[offer_id] = merged
        return True


class StockViewSync:
    """Keeps one StockView current from the event's realtime channel."""

    def __init__(self, redis_client: redis.Redis, view: StockView):
        self._redis = redis_client
        self.view = view
        self._pubsub = None
        self.task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()

    async def subscribe(self):
        channel = channel_for_event(self.view.event_id)
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(channel)
        logger.info(f"Subscribed to stock changes on {channel}.")

    async def start(self):
        # Notifications published before the consumer starts stay buffered
        # on the subscribed connection.
        if self._pubsub is None:
            await self.subscribe()
        self.task = asyncio.create_task(self.run())

    async def run(self):
        """Redis 채널의 변경 알림을 소비하여 로컬 재고 뷰에 반영합니다."""
        try:
            async for message in self._pubsub.listen():
                if message["type"] == "message":
                    self.handle_message(message["data"])
        except asyncio.CancelledError:
            logger.info(f"Stock sync for event {self.view.event_id} cancelled.")
        except Exception as e:
            logger.error(f"Error in stock sync loop for event {self.view.event_id}: {e}")

    def handle_message(self, data) -> bool:
        if isinstance(data, bytes):
            data = data.decode("utf-8")
        try:
            change = StockChange.model_validate(json.loads(data))
        except (ValueError, ValidationError) as e:
            logger.error(f"Failed to decode stock change: {data}, error: {e}")
            return False

        if change.event != "UPDATE" or change.table != LIVE_OFFERS_TABLE:
            return False
        changed = self.view.apply_change(change.new)
        if changed:
            logger.info(f"Live offer {change.new.get('id')} updated from realtime channel.")
        return changed

    async def stop(self):
        if self.task and not self.task.done():
            self.task.cancel()
        if self.task:
            await asyncio.gather(self.task, return_exceptions=True)
        if self._pubsub:
            await self._pubsub.aclose()
            self._pubsub = None
        logger.info(f"Stock sync for event {self.view.event_id} stopped.")


class StockViewHub:
    """
    Shares one StockViewSync per live event between sessions.

    The first acquire loads the offers and subscribes; the last release
    tears the subscription down. A sync whose channel has ended is
    resubscribed and reloaded the next time the event is asked for.
    """

    def __init__(self, redis_client: redis.Redis, backend: LiveOfferBackend):
        self._redis = redis_client
        self._backend = backend
        self._syncs: Dict[str, StockViewSync] = {}
        self._refcounts: Dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def _open(self, view: StockView) -> StockViewSync:
        sync = StockViewSync(self._redis, view)
        await sync.subscribe()
        try:
            view.replace_all(await self._backend.list_live_offers_for_event(view.event_id))
        except Exception:
            await sync.stop()
            raise
        await sync.start()
        return sync

    async def _revive(self, event_id: str, sync: StockViewSync) -> StockViewSync:
        # caller holds self._lock
        if sync.running:
            return sync
        logger.warning(f"Stock sync for event {event_id} has ended; resubscribing.")
        await sync.stop()
        sync = await self._open(sync.view)
        self._syncs[event_id] = sync
        return sync

    async def acquire(self, event_id: str) -> StockView:
        async with self._lock:
            sync = self._syncs.get(event_id)
            if sync is None:
                sync = await self._open(StockView(event_id))
                self._syncs[event_id] = sync
                self._refcounts[event_id] = 0
            else:
                sync = await self._revive(event_id, sync)
            self._refcounts[event_id] += 1
            return sync.view

    async def refresh(self, event_id: str) -> Optional[StockView]:
        """Returns the view of an already acquired event, resubscribing a dead sync."""
        async with self._lock:
            sync = self._syncs.get(event_id)
            if sync is None:
                return None
            return (await self._revive(event_id, sync)).view

    async def release(self, event_id: str):
        async with self._lock:
            if event_id not in self._syncs:
                return
            self._refcounts[event_id] -= 1
            if self._refcounts[event_id] > 0:
                return
            sync = self._syncs.pop(event_id)
            del self._refcounts[event_id]
        await sync.stop()

    def view(self, event_id: str) -> Optional[StockView]:
        sync = self._syncs.get(event_id)
        return sync.view if sync else None

    async def close(self):
        async with self._lock:
            syncs = list(self._syncs.values())
            self._syncs.clear()
            self._refcounts.clear()
        await asyncio.gather(*(sync.stop() for sync in syncs), return_exceptions=True)
