"""
Reconciles Mercado Pago payment notifications with Subscription rows.

A notification only names a payment id; the payment itself is fetched from
the gateway, and when it is approved the external reference tells us which
user and plan it belongs to. Each user has exactly one Subscription row, so
activation is an upsert keyed by user id and replaying a notification is
harmless.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .gateway import PaymentGateway
from .logging import get_logger
from .models import Subscription, User, utcnow
from .plans import parse_external_reference, period_days, plan_name

logger = get_logger("subscriptions")

APPROVED = "approved"


def _apply(sub: Subscription, *, plan_type: str, payment_id: str, amount: Optional[float], now: datetime) -> None:
    sub.status = "active"
    sub.plan_id = plan_type
    sub.plan_name = plan_name(plan_type)
    sub.current_period_start = now
    sub.current_period_end = now + timedelta(days=period_days(plan_type))
    sub.mp_payment_id = payment_id
    sub.amount = amount
    sub.cancel_at_period_end = False


def find_subscription(db: Session, user_id: str) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def activate_subscription(
    db: Session,
    *,
    user_id: str,
    plan_type: str,
    payment_id: str,
    amount: Optional[float],
    now: Optional[datetime] = None,
) -> Subscription:
    """Create or replace the user's subscription as active from `now`."""
    now = now or utcnow()
    sub = find_subscription(db, user_id)
    if sub is None:
        sub = Subscription(user_id=user_id)
        _apply(sub, plan_type=plan_type, payment_id=payment_id, amount=amount, now=now)
        db.add(sub)
        try:
            db.commit()
        except IntegrityError:
            # a concurrent notification inserted the row first
            db.rollback()
            sub = db.query(Subscription).filter(Subscription.user_id == user_id).one()
            _apply(sub, plan_type=plan_type, payment_id=payment_id, amount=amount, now=now)
            db.commit()
    else:
        _apply(sub, plan_type=plan_type, payment_id=payment_id, amount=amount, now=now)
        db.commit()
    db.refresh(sub)
    return sub


def handle_payment_notification(
    db: Session,
    gateway: Optional[PaymentGateway],
    payload: Dict[str, Any],
    *,
    now: Optional[datetime] = None,
) -> Optional[Subscription]:
    """Process one webhook body; returns the activated subscription, if any.

    On failure the session is rolled back before the error propagates.
    """
    try:
        return _process_notification(db, gateway, payload, now=now)
    except Exception:
        db.rollback()
        raise


def _process_notification(
    db: Session,
    gateway: Optional[PaymentGateway],
    payload: Dict[str, Any],
    *,
    now: Optional[datetime],
) -> Optional[Subscription]:
    kind = payload.get("type")
    data = payload.get("data") or {}
    payment_id = data.get("id") if isinstance(data, dict) else None

    if kind != "payment":
        logger.info("webhook.ignored", extra={"type": kind})
        return None
    if gateway is None:
        logger.warning("webhook.gateway_not_configured", extra={"payment_id": payment_id})
        return None
    if payment_id is None:
        logger.warning("webhook.missing_payment_id")
        return None

    payment = gateway.get_payment(payment_id)
    status = payment.get("status")
    logger.info("webhook.payment_status", extra={"payment_id": payment_id, "status": status})
    if status != APPROVED:
        return None

    try:
        user_id, plan_type = parse_external_reference(payment.get("external_reference"))
    except ValueError:
        logger.warning(
            "webhook.bad_reference",
            extra={"payment_id": payment_id, "reference": payment.get("external_reference")},
        )
        return None

    if db.get(User, user_id) is None:
        logger.warning("webhook.unknown_user", extra={"payment_id": payment_id, "user_id": user_id})
        return None

    sub = activate_subscription(
        db,
        user_id=user_id,
        plan_type=plan_type,
        payment_id=str(payment_id),
        amount=payment.get("transaction_amount"),
        now=now,
    )
    logger.info("subscription.activated", extra={"user_id": user_id, "plan_id": plan_type})
    return sub
