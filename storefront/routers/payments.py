from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pymongo.database import Database

from ..config import Settings
from ..database import get_db
from ..deps import get_gateway, get_settings
from ..schemas import PaymentOrderRequest, VerifyPaymentRequest
from ..security import get_current_user, require_admin
from ..services import payments as payment_service
from ..utils import success

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/create-order")
def create_order(payload: PaymentOrderRequest, user: dict = Depends(get_current_user),
                 db: Database = Depends(get_db), gateway=Depends(get_gateway)):
    data = payment_service.create_gateway_order(db, gateway, user["_id"], payload.order_id, payload.currency,
                                                payload.receipt)
    return success("Razorpay order created", data)


@router.post("/verify")
def verify(payload: VerifyPaymentRequest, user: dict = Depends(get_current_user), db: Database = Depends(get_db),
           settings: Settings = Depends(get_settings)):
    order = payment_service.verify_client_payment(db, settings, user["_id"], payload.model_dump())
    return success("Payment verified successfully", {"order": order})


@router.post("/webhook")
async def webhook(request: Request, db: Database = Depends(get_db), settings: Settings = Depends(get_settings)):
    body = await request.body()
    payment_service.handle_webhook(db, settings, body, request.headers.get("x-razorpay-signature"))
    return JSONResponse({"received": True})


@router.post("/refund/{order_id}")
def refund(order_id: str, admin: dict = Depends(require_admin), db: Database = Depends(get_db),
           gateway=Depends(get_gateway)):
    order = payment_service.refund_order(db, gateway, order_id)
    return success("Refund initiated successfully", {"order": order})
