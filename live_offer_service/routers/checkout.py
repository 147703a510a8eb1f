from fastapi import APIRouter, Depends

from live_offer_service.dependencies import get_session
from live_offer_service.schemas import CheckoutState, PaymentFailure
from live_offer_service.sessions import BuyerSession

router = APIRouter(
    prefix="/api/checkout",
    tags=["checkout"],
)

# ===============================
# Payment collection callbacks
# ===============================

@router.get("/", response_model=CheckoutState)
def read_checkout(session: BuyerSession = Depends(get_session)):
    return session.presenter.snapshot()

@router.post("/succeeded", response_model=CheckoutState)
async def checkout_succeeded(session: BuyerSession = Depends(get_session)):
    return await session.presenter.payment_succeeded()

@router.post("/failed", response_model=CheckoutState)
async def checkout_failed(failure: PaymentFailure, session: BuyerSession = Depends(get_session)):
    return await session.presenter.payment_failed(failure.message)

@router.post("/cancel", response_model=CheckoutState)
async def checkout_cancel(session: BuyerSession = Depends(get_session)):
    return await session.presenter.cancel()
