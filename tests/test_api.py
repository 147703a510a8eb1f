import httpx
import pytest

from live_offer_service.checkout_events import CheckoutEventPublisher
from live_offer_service.errors import BackendRejectedError, BackendUnavailableError
from live_offer_service.main import app
from live_offer_service.presenter import CHECKOUT_IN_PROGRESS_MESSAGE, STOCK_NOT_SECURED_MESSAGE
from live_offer_service.rate_limit import RateLimiter
from live_offer_service.sessions import SessionRegistry
from live_offer_service.stock_sync import StockViewHub

from conftest import make_offer, stock_change, wait_until

HEADERS = {"X-Session-Id": "session-1", "Authorization": "Bearer buyer-token"}


@pytest.fixture
async def client(backend, fake_redis, producer):
    backend.offers.append(make_offer("offer-3", event_id="event-2"))
    hub = StockViewHub(fake_redis, backend)
    app.state.stock_views = hub
    app.state.sessions = SessionRegistry(backend, hub, CheckoutEventPublisher(producer, topic="live_offer_checkouts"))
    app.state.purchase_limiter = RateLimiter(fake_redis, "live_offer_purchase", max_requests=3, window_seconds=60)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await app.state.sessions.close_all()
    await hub.close()


async def open_event(client, event_id="event-1"):
    response = await client.get(f"/api/live-events/{event_id}/offers", headers=HEADERS)
    assert response.status_code == 200
    return response.json()


async def test_health_check(client):
    response = await client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


async def test_list_offers_for_event(client, fake_redis):
    offers = await open_event(client)

    assert [o["id"] for o in offers] == ["offer-1", "offer-2"]
    assert offers[0]["available"] == 5
    assert fake_redis.pubsubs[0].channels == ["live_offers:event-1"]


async def test_session_header_is_required(client):
    response = await client.get("/api/live-events/event-1/offers")
    assert response.status_code == 422


async def test_list_failure_is_bad_gateway(client, backend):
    backend.list_error = BackendUnavailableError("backend down")

    response = await client.get("/api/live-events/event-1/offers", headers=HEADERS)

    assert response.status_code == 502


async def test_offers_follow_realtime_stock_changes(client, fake_redis):
    await open_event(client)

    fake_redis.pubsubs[0].publish(stock_change({"id": "offer-1", "live_event_id": "event-1", "stock_reserved": 4}))
    view = app.state.stock_views.view("event-1")
    assert await wait_until(lambda: view.get("offer-1").stock_reserved == 4)

    offers = await open_event(client)
    assert offers[0]["available"] == 4
    assert offers[0]["stock_sold"] == 2
    assert offers[1]["available"] == 5


async def test_switching_event_moves_subscription(client, fake_redis):
    await open_event(client, "event-1")
    offers = await open_event(client, "event-2")

    assert [o["id"] for o in offers] == ["offer-3"]
    assert fake_redis.pubsubs[0].closed
    assert not fake_redis.pubsubs[1].closed


async def test_purchase_flow_reaches_collecting(client, backend, producer):
    await open_event(client)

    response = await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "collecting"
    assert body["client_secret"] == "pi_123_secret_456"
    assert body["work_id"] == "work-offer-1"
    assert response.headers["X-RateLimit-Remaining"] == "2"
    assert ("acquire", "offer-1", "buyer-token") in backend.calls

    state = (await client.get("/api/checkout/", headers=HEADERS)).json()
    assert state["state"] == "collecting"


async def test_purchase_of_unknown_offer_is_not_found(client):
    response = await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)
    assert response.status_code == 404

    await open_event(client)
    response = await client.post("/api/live-offers/offer-3/purchase", headers=HEADERS)
    assert response.status_code == 404


async def test_denied_purchase_is_conflict(client, backend, producer):
    backend.lock_result = False
    await open_event(client)

    response = await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)

    assert response.status_code == 409
    body = response.json()
    assert body["state"] == "idle"
    assert body["error"] == STOCK_NOT_SECURED_MESSAGE
    assert backend.count("intent") == 0
    assert producer.sent[0][1]["event_type"] == "LiveOfferReservationDenied"


async def test_intent_failure_is_bad_gateway(client, backend):
    backend.intent_error = BackendRejectedError("offer not active", status_code=400)
    await open_event(client)

    response = await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)

    assert response.status_code == 502
    assert response.json()["state"] == "idle"
    assert response.json()["error"] == "offer not active"
    assert backend.count("release") == 1


async def test_purchase_while_collecting_is_conflict(client, backend):
    await open_event(client)
    await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)

    response = await client.post("/api/live-offers/offer-2/purchase", headers=HEADERS)

    assert response.status_code == 409
    assert response.json()["error"] == CHECKOUT_IN_PROGRESS_MESSAGE
    assert backend.count("intent") == 1

    state = (await client.get("/api/checkout/", headers=HEADERS)).json()
    assert state["state"] == "collecting"
    assert state["error"] is None


async def test_payment_callbacks_close_the_flow(client, backend, producer):
    await open_event(client)
    await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)

    failed = await client.post("/api/checkout/failed", json={"message": "Your card was declined."}, headers=HEADERS)
    cancelled = await client.post("/api/checkout/cancel", headers=HEADERS)

    assert failed.json()["state"] == "idle"
    assert failed.json()["error"] == "Your card was declined."
    assert failed.json()["client_secret"] is None
    assert cancelled.json()["state"] == "idle"
    assert backend.count("release") == 1
    assert [e[1]["event_type"] for e in producer.sent] == ["LiveOfferCheckoutFailed"]


async def test_payment_success(client, backend):
    await open_event(client)
    await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)

    response = await client.post("/api/checkout/succeeded", headers=HEADERS)

    assert response.json()["state"] == "idle"
    assert response.json()["outcome"] == "succeeded"
    assert backend.count("release") == 0


async def test_purchase_attempts_are_rate_limited(client, backend):
    backend.lock_result = False
    await open_event(client)

    statuses = [
        (await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)).status_code
        for _ in range(3)
    ]
    limited = await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)

    assert statuses == [409, 409, 409]
    assert limited.status_code == 429
    assert limited.headers["Retry-After"] == "60"
    assert limited.headers["X-RateLimit-Remaining"] == "0"
    assert backend.count("acquire") == 3


async def test_closing_session_cancels_checkout_and_unsubscribes(client, backend, fake_redis):
    await open_event(client)
    await client.post("/api/live-offers/offer-1/purchase", headers=HEADERS)

    response = await client.delete("/api/sessions/current", headers=HEADERS)

    assert response.status_code == 204
    assert backend.count("release") == 1
    assert fake_redis.pubsubs[0].closed
    assert app.state.sessions.get("session-1") is None
