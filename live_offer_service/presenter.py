"""
Checkout presenter: the purchase state machine of one buyer session.

    idle --purchase--> collecting --succeeded/failed/cancelled--> idle

Only one payment intent is outstanding at a time. Terminal outcomes are
recorded in ``outcome`` and always leave the presenter idle with the client
secret cleared. Transitions happen only on buyer actions and payment
callbacks; nothing here is time-based.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from live_offer_service.errors import IntentCreationError
from live_offer_service.intents import IntentIssuer
from live_offer_service.reservation import ReservationClient
from live_offer_service.schemas import (
    CheckoutOutcome,
    CheckoutState,
    CheckoutStatus,
    LiveOffer,
    ReservationAttempt,
    ReservationOutcome,
)

logger = logging.getLogger(__name__)

STOCK_NOT_SECURED_MESSAGE = "Stock could not be secured."
SOLD_OUT_MESSAGE = "This item is sold out."
CHECKOUT_IN_PROGRESS_MESSAGE = "A checkout is already in progress."
PAYMENT_FAILED_MESSAGE = "An error occurred while processing the payment."

# Intent rejections that mean the reservation no longer backs the purchase
EXPIRED_RESERVATION_STATUSES = (409, 410)

OutcomeSink = Callable[[CheckoutOutcome, LiveOffer, Optional[str]], Awaitable[None]]


class CheckoutPresenter:
    def __init__(
        self,
        reservations: ReservationClient,
        intents: IntentIssuer,
        outcome_sink: Optional[OutcomeSink] = None,
    ):
        self._reservations = reservations
        self._intents = intents
        self._outcome_sink = outcome_sink
        self._lock = asyncio.Lock()

        self.status = CheckoutStatus.IDLE
        self.outcome: Optional[CheckoutOutcome] = None
        self.offer: Optional[LiveOffer] = None
        self.client_secret: Optional[str] = None
        self.error: Optional[str] = None
        self.attempt: Optional[ReservationAttempt] = None

    def snapshot(self) -> CheckoutState:
        return CheckoutState(
            state=self.status,
            outcome=self.outcome,
            offer_id=self.offer.id if self.offer else None,
            work_id=self.offer.work_id if self.offer else None,
            client_secret=self.client_secret,
            error=self.error,
        )

    async def purchase(self, offer: LiveOffer) -> CheckoutState:
        async with self._lock:
            if self.status == CheckoutStatus.COLLECTING:
                logger.warning(f"Purchase of live offer {offer.id} rejected: checkout for {self.offer.id} in progress.")
                return self.snapshot().model_copy(update={"error": CHECKOUT_IN_PROGRESS_MESSAGE})

            self.outcome = None
            self.error = None
            # The displayed count is advisory; the remote lock decides.
            if offer.available <= 0:
                self.error = SOLD_OUT_MESSAGE
                return self.snapshot()

            self.attempt = ReservationAttempt(offer_id=offer.id, requested_at=datetime.now(timezone.utc))
            if not await self._reservations.acquire_lock(offer.id):
                self.attempt.outcome = ReservationOutcome.DENIED
                self.error = STOCK_NOT_SECURED_MESSAGE
                self.outcome = CheckoutOutcome.DENIED
                logger.warning(f"Reservation attempt for live offer {offer.id} {self.attempt.outcome.value}.")
                self.attempt = None
                await self._notify(CheckoutOutcome.DENIED, offer, self.error)
                return self.snapshot()
            self.attempt.outcome = ReservationOutcome.GRANTED

            try:
                intent = await self._intents.create_intent(offer.id)
            except IntentCreationError as e:
                if e.status_code in EXPIRED_RESERVATION_STATUSES:
                    self.attempt.outcome = ReservationOutcome.EXPIRED
                self.error = e.reason
                self.outcome = CheckoutOutcome.FAILED
                logger.warning(f"Reservation attempt for live offer {offer.id} abandoned ({self.attempt.outcome.value}): {e.reason}")
                self.attempt = None
                await self._reservations.release_lock(offer.id)
                await self._notify(CheckoutOutcome.FAILED, offer, self.error)
                return self.snapshot()

            self.offer = offer
            self.client_secret = intent.client_secret
            self.status = CheckoutStatus.COLLECTING
            logger.info(f"Checkout for live offer {offer.id} is collecting payment.")
            return self.snapshot()

    async def payment_succeeded(self) -> CheckoutState:
        return await self._finish(CheckoutOutcome.SUCCEEDED)

    async def payment_failed(self, message: Optional[str] = None) -> CheckoutState:
        return await self._finish(CheckoutOutcome.FAILED, message or PAYMENT_FAILED_MESSAGE)

    async def cancel(self) -> CheckoutState:
        return await self._finish(CheckoutOutcome.CANCELLED)

    async def close(self) -> CheckoutState:
        """Waits for an in-flight purchase, then cancels the checkout if it is collecting."""
        async with self._lock:
            if self.status != CheckoutStatus.COLLECTING:
                return self.snapshot()
            return await self._complete(CheckoutOutcome.CANCELLED)

    async def _finish(self, outcome: CheckoutOutcome, error: Optional[str] = None) -> CheckoutState:
        async with self._lock:
            if self.status != CheckoutStatus.COLLECTING:
                logger.warning(f"Ignoring {outcome.value} callback: no checkout in progress.")
                return self.snapshot()
            return await self._complete(outcome, error)

    async def _complete(self, outcome: CheckoutOutcome, error: Optional[str] = None) -> CheckoutState:
        # caller holds self._lock
        offer = self.offer
        self.status = CheckoutStatus.IDLE
        self.outcome = outcome
        self.error = error
        self.offer = None
        self.client_secret = None
        self.attempt = None

        if outcome == CheckoutOutcome.SUCCEEDED:
            # stock_sold는 실시간 동기화로 반영됨
            logger.info(f"Checkout for live offer {offer.id} succeeded.")
        else:
            logger.warning(f"Checkout for live offer {offer.id} ended: {outcome.value}.")
            await self._reservations.release_lock(offer.id)
        await self._notify(outcome, offer, error)
        return self.snapshot()

    async def _notify(self, outcome: CheckoutOutcome, offer: LiveOffer, error: Optional[str]):
        if self._outcome_sink is None:
            return
        try:
            await self._outcome_sink(outcome, offer, error)
        except Exception as e:
            logger.error(f"Failed to report {outcome.value} for live offer {offer.id}: {e}")
