import logging
from datetime import datetime, timezone
from typing import Optional

from aiokafka import AIOKafkaProducer

from live_offer_service import config
from live_offer_service.schemas import CheckoutOutcome, LiveOffer

logger = logging.getLogger(__name__)

EVENT_TYPES = {
    CheckoutOutcome.SUCCEEDED: "LiveOfferCheckoutSucceeded",
    CheckoutOutcome.FAILED: "LiveOfferCheckoutFailed",
    CheckoutOutcome.CANCELLED: "LiveOfferCheckoutCancelled",
    CheckoutOutcome.DENIED: "LiveOfferReservationDenied",
}


class CheckoutEventPublisher:
    def __init__(self, producer: AIOKafkaProducer, topic: str = config.LIVE_OFFER_CHECKOUTS_TOPIC):
        self._producer = producer
        self._topic = topic

    def sink_for(self, session_id: str):
        async def sink(outcome: CheckoutOutcome, offer: LiveOffer, error: Optional[str]):
            await self.publish(session_id, outcome, offer, error)
        return sink

    async def publish(self, session_id: str, outcome: CheckoutOutcome, offer: LiveOffer, error: Optional[str] = None):
        """체크아웃 결과 이벤트를 Kafka에 전송합니다."""
        event_data = {
            "event_type": EVENT_TYPES[outcome],
            "session_id": session_id,
            "live_offer_id": offer.id,
            "live_event_id": offer.live_event_id,
            "work_id": offer.work_id,
            "error": error,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        try:
            await self._producer.send_and_wait(self._topic, value=event_data)
            logger.info(f"Event {event_data['event_type']} for live offer {offer.id} sent to Kafka.")
        except Exception as e:
            logger.error(f"Failed to send event for live offer {offer.id} to Kafka: {e}")
