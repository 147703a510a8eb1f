import logging
from typing import List, Optional

import httpx
from pydantic import ValidationError

from live_offer_service import config
from live_offer_service.errors import BackendRejectedError, BackendUnavailableError
from live_offer_service.schemas import CheckoutIntent, LiveOffer

logger = logging.getLogger(__name__)


class LiveOfferBackend:
    """
    HTTP client for the live-offer edge functions.

    The backend owns the offer table, the reserve/release procedures and
    payment-intent creation; this client only forwards calls and maps
    failures onto LiveOfferBackendError subclasses.
    """

    def __init__(
        self,
        base_url: str = config.LIVE_OFFERS_BACKEND_URL,
        api_key: str = config.LIVE_OFFERS_BACKEND_API_KEY,
        timeout_ms: int = config.LIVE_OFFERS_BACKEND_TIMEOUT_MS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"apikey": api_key} if api_key else {}
        # Convert ms to seconds
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout_ms / 1000.0,
            transport=transport,
        )

    async def aclose(self):
        await self._client.aclose()

    async def _request(self, method: str, path: str, access_token: Optional[str] = None, **kwargs) -> httpx.Response:
        headers = {}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            return await self._client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.error(f"Live-offer backend timed out on {method} {path}: {e}")
            raise BackendUnavailableError(f"Live-offer backend timed out: {path}") from e
        except httpx.RequestError as e:
            logger.error(f"Live-offer backend unreachable on {method} {path}: {e}")
            raise BackendUnavailableError(f"Live-offer backend unreachable: {e}") from e

    @staticmethod
    def _rejected(response: httpx.Response) -> BackendRejectedError:
        try:
            data = response.json()
        except ValueError:
            data = None
        message = data.get("error") if isinstance(data, dict) else None
        message = message or f"request failed: {response.status_code}"
        return BackendRejectedError(message, status_code=response.status_code)

    @staticmethod
    def _body(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Live-offer backend sent a non-JSON body from {response.request.url.path}: {e}")
            raise BackendRejectedError("invalid response from live-offer backend", status_code=response.status_code) from e
        if not isinstance(data, dict):
            logger.error(f"Live-offer backend sent an unexpected body from {response.request.url.path}: {data!r}")
            raise BackendRejectedError("invalid response from live-offer backend", status_code=response.status_code)
        return data

    async def list_live_offers_for_event(self, event_id: str) -> List[LiveOffer]:
        params = {"event_id": event_id} if event_id else None
        response = await self._request("GET", "/live-offers-list", params=params)
        if response.is_error:
            raise self._rejected(response)
        items = self._body(response).get("items") or []
        if not isinstance(items, list):
            raise BackendRejectedError("invalid response from live-offer backend", status_code=response.status_code)
        offers = []
        for item in items:
            try:
                offers.append(LiveOffer.model_validate(item))
            except ValidationError as e:
                logger.error(f"Skipping invalid live offer row for event {event_id}: {e}")
        return offers

    async def acquire_live_offer_lock(self, offer_id: str, access_token: Optional[str] = None) -> bool:
        response = await self._request(
            "POST", "/live-offers-lock", access_token,
            json={"action": "acquire", "live_offer_id": offer_id},
        )
        # 409 is the procedure saying "no stock for you", not a failure
        if response.status_code == 409:
            return False
        if response.is_error:
            raise self._rejected(response)
        return self._body(response).get("locked") is True

    async def release_live_offer_lock(self, offer_id: str, access_token: Optional[str] = None) -> bool:
        response = await self._request(
            "POST", "/live-offers-lock", access_token,
            json={"action": "release", "live_offer_id": offer_id},
        )
        if response.is_error:
            raise self._rejected(response)
        return self._body(response).get("released") is True

    async def create_live_offer_intent(self, offer_id: str, access_token: Optional[str] = None) -> CheckoutIntent:
        response = await self._request(
            "POST", "/live-offers-create-intent", access_token,
            json={"live_offer_id": offer_id},
        )
        if response.is_error:
            raise self._rejected(response)
        data = self._body(response)
        client_secret = data.get("clientSecret") or data.get("client_secret")
        if not client_secret:
            raise BackendRejectedError("payment backend returned no client secret", status_code=response.status_code)
        return CheckoutIntent(client_secret=client_secret)
