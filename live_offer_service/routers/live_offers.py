from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from live_offer_service.dependencies import get_purchase_limiter, get_session, get_sessions
from live_offer_service.errors import LiveOfferBackendError
from live_offer_service.rate_limit import RateLimiter
from live_offer_service.schemas import CheckoutOutcome, CheckoutState, CheckoutStatus, LiveOffer
from live_offer_service.sessions import BuyerSession, SessionRegistry

router = APIRouter(
    prefix="/api",
    tags=["live-offers"],
)

# ===============================
# Live Offer Endpoints
# ===============================

@router.get("/live-events/{event_id}/offers", response_model=List[LiveOffer])
async def read_event_offers(
    event_id: str,
    session: BuyerSession = Depends(get_session),
    sessions: SessionRegistry = Depends(get_sessions),
):
    try:
        view = await sessions.set_event(session, event_id)
    except LiveOfferBackendError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Failed to load live offers: {e.message}")
    return view.offers()

@router.post("/live-offers/{offer_id}/purchase", response_model=CheckoutState)
async def purchase_live_offer(
    offer_id: str,
    response: Response,
    session: BuyerSession = Depends(get_session),
    sessions: SessionRegistry = Depends(get_sessions),
    limiter: RateLimiter = Depends(get_purchase_limiter),
):
    view = sessions.view_for(session)
    offer = view.get(offer_id) if view else None
    if offer is None:
        raise HTTPException(status_code=404, detail="Live offer not found")

    limit = await limiter.check(session.session_id)
    limit_headers = {
        "X-RateLimit-Limit": str(limiter.max_requests),
        "X-RateLimit-Remaining": str(limit.remaining),
        "X-RateLimit-Reset": str(limit.reset_after),
    }
    if not limit.allowed:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many purchase attempts. Please wait before trying again.",
            headers={**limit_headers, "Retry-After": str(limit.reset_after)},
        )
    response.headers.update(limit_headers)

    state = await session.presenter.purchase(offer)
    if state.state == CheckoutStatus.COLLECTING and state.error is None:
        return state
    if state.outcome == CheckoutOutcome.FAILED:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    else:
        response.status_code = status.HTTP_409_CONFLICT
    return state

@router.delete("/sessions/current", status_code=status.HTTP_204_NO_CONTENT)
async def close_session(
    session: BuyerSession = Depends(get_session),
    sessions: SessionRegistry = Depends(get_sessions),
):
    await sessions.close(session.session_id)
    return
