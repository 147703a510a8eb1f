import logging
from typing import Optional

from live_offer_service.backend_client import LiveOfferBackend
from live_offer_service.errors import BackendUnavailableError, IntentCreationError, LiveOfferBackendError
from live_offer_service.schemas import CheckoutIntent

logger = logging.getLogger(__name__)


class IntentIssuer:
    def __init__(self, backend: LiveOfferBackend, access_token: Optional[str] = None):
        self._backend = backend
        self.access_token = access_token

    async def create_intent(self, offer_id: str) -> CheckoutIntent:
        """
        Asks the payment backend for a single-use client secret.

        The caller must already hold a granted reservation for ``offer_id``;
        the backend rejects the request otherwise.
        """
        try:
            intent = await self._backend.create_live_offer_intent(offer_id, self.access_token)
        except BackendUnavailableError as e:
            logger.error(f"Payment intent for live offer {offer_id} failed: {e}")
            raise IntentCreationError("The payment service is not reachable. Please try again later.") from e
        except LiveOfferBackendError as e:
            logger.error(f"Payment intent for live offer {offer_id} rejected ({e.status_code}): {e.message}")
            raise IntentCreationError(e.message, status_code=e.status_code) from e
        except Exception as e:
            logger.error(f"Unexpected error creating payment intent for live offer {offer_id}: {e}")
            raise IntentCreationError("The purchase could not be processed.") from e
        logger.info(f"Payment intent issued for live offer {offer_id}.")
        return intent
