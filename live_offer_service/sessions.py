import asyncio
import logging
from typing import Dict, Optional

from live_offer_service.backend_client import LiveOfferBackend
from live_offer_service.checkout_events import CheckoutEventPublisher
from live_offer_service.intents import IntentIssuer
from live_offer_service.presenter import CheckoutPresenter
from live_offer_service.reservation import ReservationClient
from live_offer_service.stock_sync import StockView, StockViewHub

logger = logging.getLogger(__name__)


class BuyerSession:
    """One buyer front end: its checkout presenter and current event context."""

    def __init__(self, session_id: str, backend: LiveOfferBackend, access_token: Optional[str] = None,
                 publisher: Optional[CheckoutEventPublisher] = None):
        self.session_id = session_id
        self.event_id: Optional[str] = None
        self.event_lock = asyncio.Lock()
        self.reservations = ReservationClient(backend, access_token)
        self.intents = IntentIssuer(backend, access_token)
        sink = publisher.sink_for(session_id) if publisher else None
        self.presenter = CheckoutPresenter(self.reservations, self.intents, outcome_sink=sink)

    def update_access_token(self, access_token: Optional[str]):
        if access_token:
            self.reservations.access_token = access_token
            self.intents.access_token = access_token


class SessionRegistry:
    def __init__(self, backend: LiveOfferBackend, hub: StockViewHub,
                 publisher: Optional[CheckoutEventPublisher] = None):
        self._backend = backend
        self._hub = hub
        self._publisher = publisher
        self._sessions: Dict[str, BuyerSession] = {}

    def get(self, session_id: str) -> Optional[BuyerSession]:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str, access_token: Optional[str] = None) -> BuyerSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = BuyerSession(session_id, self._backend, access_token, self._publisher)
            self._sessions[session_id] = session
            logger.info(f"Buyer session {session_id} opened.")
        else:
            session.update_access_token(access_token)
        return session

    def view_for(self, session: BuyerSession) -> Optional[StockView]:
        if session.event_id is None:
            return None
        return self._hub.view(session.event_id)

    async def set_event(self, session: BuyerSession, event_id: str) -> StockView:
        """Switches the session's event context, moving its stock subscription along."""
        async with session.event_lock:
            if session.event_id == event_id:
                view = await self._hub.refresh(event_id)
                if view is not None:
                    return view
            view = await self._hub.acquire(event_id)
            previous, session.event_id = session.event_id, event_id
            if previous is not None and previous != event_id:
                await self._hub.release(previous)
                logger.info(f"Buyer session {session.session_id} moved from event {previous} to {event_id}.")
            return view

    async def close(self, session_id: str) -> bool:
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        # 진행 중인 purchase가 끝난 뒤 collecting 상태면 취소(락 해제)
        await session.presenter.close()
        async with session.event_lock:
            if session.event_id is not None:
                await self._hub.release(session.event_id)
                session.event_id = None
        logger.info(f"Buyer session {session_id} closed.")
        return True

    async def close_all(self):
        for session_id in list(self._sessions):
            await self.close(session_id)
