import logging
from typing import Optional

from live_offer_service.backend_client import LiveOfferBackend

logger = logging.getLogger(__name__)


class ReservationClient:
    """
    Requests and releases stock locks for one buyer.

    The remote lock procedure is the only arbiter of stock; every failure
    here is reported as "not reserved" and never retried.
    """

    def __init__(self, backend: LiveOfferBackend, access_token: Optional[str] = None):
        self._backend = backend
        self.access_token = access_token

    async def acquire_lock(self, offer_id: str) -> bool:
        try:
            locked = await self._backend.acquire_live_offer_lock(offer_id, self.access_token)
        except Exception as e:
            logger.error(f"Stock lock for live offer {offer_id} failed: {e}")
            return False
        if locked:
            logger.info(f"Stock lock granted for live offer {offer_id}.")
        else:
            logger.warning(f"Stock lock denied for live offer {offer_id}.")
        return locked

    async def release_lock(self, offer_id: str) -> bool:
        try:
            released = await self._backend.release_live_offer_lock(offer_id, self.access_token)
        except Exception as e:
            # 서버 측 TTL 만료가 최종 안전장치
            logger.error(f"Releasing stock lock for live offer {offer_id} failed: {e}")
            return False
        if released:
            logger.info(f"Stock lock released for live offer {offer_id}.")
        else:
            logger.warning(f"Attempted to release stock lock for live offer {offer_id}, but no active reservation was found.")
        return released
