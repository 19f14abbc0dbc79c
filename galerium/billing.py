from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from .config import Settings
from .db import get_db
from .deps import get_current_user, get_gateway, get_settings
from .errors import ServiceError, ValidationError
from .gateway import GatewayError, PaymentGateway
from .logging import get_logger
from .models import User
from .plans import CURRENCY, PRODUCT_NAME, Plan, build_external_reference, get_plan
from .schemas import PlanIn
from .subscriptions import handle_payment_notification

logger = get_logger("billing")

router = APIRouter(prefix="/api/payments", tags=["payments"])

# Mercado Pago requires a CPF for PIX payers; we do not collect one yet
PLACEHOLDER_CPF = "12345678909"


def _require_plan(plan_type: Optional[str]) -> Plan:
    plan = get_plan(plan_type)
    if not plan:
        raise ValidationError("Invalid plan type")
    return plan


def _require_gateway(gateway: Optional[PaymentGateway]) -> PaymentGateway:
    if gateway is None:
        raise ServiceError("Mercado Pago not configured", status_code=503)
    return gateway


def _webhook_url(settings: Settings) -> str:
    return f"{settings.backend_url}/api/payments/webhook"


def _split_name(name: str):
    parts = (name or "").split()
    first = parts[0] if parts else "User"
    last = " ".join(parts[1:]) or "User"
    return first, last


@router.post("/create-preference")
def create_preference(
    payload: PlanIn,
    user: User = Depends(get_current_user),
    gateway: Optional[PaymentGateway] = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    plan = _require_plan(payload.type)
    gateway = _require_gateway(gateway)

    data: Dict[str, Any] = {
        "items": [{
            "id": f"galerium-{plan.id}",
            "title": f"{PRODUCT_NAME} - {plan.title}",
            "description": f"Full access to AI assets - {plan.title}",
            "unit_price": plan.price,
            "quantity": 1,
            "currency_id": CURRENCY,
        }],
        "payer": {"name": user.name, "email": user.email},
        "external_reference": build_external_reference(user.id, plan.id),
        "notification_url": _webhook_url(settings),
    }
    if settings.frontend_url:
        data["back_urls"] = {
            "success": f"{settings.frontend_url}/payment/success",
            "failure": f"{settings.frontend_url}/payment/failure",
            "pending": f"{settings.frontend_url}/payment/pending",
        }
        data["auto_return"] = "approved"

    try:
        pref = gateway.create_preference(data)
    except GatewayError as e:
        logger.error("payments.preference_failed", extra={"user_id": user.id, "error_message": str(e)})
        raise ServiceError("Error processing payment")

    return {
        "id": pref.get("id"),
        "init_point": pref.get("init_point"),
        "sandbox_init_point": pref.get("sandbox_init_point"),
    }


@router.post("/create-pix")
def create_pix(
    payload: PlanIn,
    user: User = Depends(get_current_user),
    gateway: Optional[PaymentGateway] = Depends(get_gateway),
    settings: Settings = Depends(get_settings),
):
    plan = _require_plan(payload.type)
    gateway = _require_gateway(gateway)

    first_name, last_name = _split_name(user.name)
    data = {
        "transaction_amount": plan.price,
        "description": f"{PRODUCT_NAME} - {plan.title}",
        "payment_method_id": "pix",
        "payer": {
            "email": user.email,
            "first_name": first_name,
            "last_name": last_name,
            "identification": {"type": "CPF", "number": PLACEHOLDER_CPF},
        },
        "external_reference": build_external_reference(user.id, plan.id, "pix"),
        "notification_url": _webhook_url(settings),
    }

    try:
        charge = gateway.create_payment(data)
    except GatewayError as e:
        logger.error("payments.pix_failed", extra={"user_id": user.id, "error_message": str(e)})
        raise ServiceError("Error processing PIX payment")

    tx = (charge.get("point_of_interaction") or {}).get("transaction_data") or {}
    return {
        "id": charge.get("id"),
        "status": charge.get("status"),
        "qr_code": tx.get("qr_code"),
        "qr_code_base64": tx.get("qr_code_base64"),
        "ticket_url": tx.get("ticket_url"),
    }


@router.post("/webhook")
async def webhook(
    request: Request,
    db: Session = Depends(get_db),
    gateway: Optional[PaymentGateway] = Depends(get_gateway),
):
    # always acknowledge: Mercado Pago retries anything but 2xx, and failures
    # are logged here instead
    try:
        payload = await request.json()
    except ValueError:
        logger.warning("webhook.invalid_json")
        return {"received": True}
    if not isinstance(payload, dict):
        logger.warning("webhook.invalid_body")
        return {"received": True}

    logger.info("webhook.received", extra={"type": payload.get("type"), "data": payload.get("data")})
    try:
        await run_in_threadpool(handle_payment_notification, db, gateway, payload)
    except Exception:
        logger.exception("webhook.failed", extra={"type": payload.get("type")})
    return {"received": True}
