from typing import Optional

from fastapi import Header, Request

from live_offer_service.rate_limit import RateLimiter
from live_offer_service.sessions import BuyerSession, SessionRegistry


def get_sessions(request: Request) -> SessionRegistry:
    return request.app.state.sessions


def get_purchase_limiter(request: Request) -> RateLimiter:
    return request.app.state.purchase_limiter


def get_session(
    request: Request,
    x_session_id: str = Header(...),
    authorization: Optional[str] = Header(None),
) -> BuyerSession:
    access_token = None
    if authorization and authorization.lower().startswith("bearer "):
        access_token = authorization[len("bearer "):].strip()
    return get_sessions(request).get_or_create(x_session_id, access_token)
