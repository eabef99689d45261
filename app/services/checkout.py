"""
Stripe Checkout Session creation for download packs.
One-off payments (mode=payment); the Stripe webhook turns a completed session into a credit.
"""
import logging
from dataclasses import dataclass
from typing import Any, Optional

import stripe

from app.core.config import Settings
from app.core.errors import BadRequest, Misconfigured, UpstreamFailure
from app.schemas.auth import Identity

logger = logging.getLogger(__name__)

MIN_AMOUNT = 100  # minor units
MAX_TOKEN_COUNT = 1000
DEFAULT_PLAN_NAME = "Download pack"
PRODUCT_DESCRIPTION = "AI Mastering Agent - WAV download entitlement"


@dataclass
class CheckoutRequest:
    amount_cents: int
    plan_name: str = DEFAULT_PLAN_NAME
    token_count: int = 1


def _as_int(value: Any) -> Optional[int]:
    """Integer value of a JSON number or numeric string; None for anything else."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return _as_int(float(value.strip()))
        except ValueError:
            return None
    return None


def parse_checkout_request(body: Any) -> CheckoutRequest:
    if not isinstance(body, dict):
        body = {}

    amount = _as_int(body.get("amountCents"))
    if amount is None or amount < MIN_AMOUNT:
        raise BadRequest("bad_request", f"Invalid amountCents (min {MIN_AMOUNT})")

    plan_name = body.get("planName")
    if not isinstance(plan_name, str) or not plan_name.strip():
        plan_name = DEFAULT_PLAN_NAME

    try:
        token_count = int(float(body.get("tokenCount") or 1))
    except (TypeError, ValueError, OverflowError):
        token_count = 1
    token_count = max(1, min(MAX_TOKEN_COUNT, token_count))

    return CheckoutRequest(amount_cents=amount, plan_name=plan_name.strip(), token_count=token_count)


def create_checkout_session(
    settings: Settings,
    identity: Identity,
    request: CheckoutRequest,
    origin: Optional[str] = None,
) -> dict:
    """
    Create a Stripe Checkout Session and return {"url", "sessionId"}.
    The user id goes into client_reference_id and metadata so the webhook can credit the right account.
    """
    if not settings.stripe_configured:
        logger.error("[CHECKOUT] STRIPE_SECRET_KEY missing or not a secret key")
        raise Misconfigured()

    base_url = (origin or settings.frontend_url).rstrip("/")

    try:
        session = stripe.checkout.Session.create(
            api_key=settings.stripe_secret_key,
            mode="payment",
            payment_method_types=["card"],
            line_items=[
                {
                    "quantity": 1,
                    "price_data": {
                        "currency": settings.checkout_currency,
                        "unit_amount": request.amount_cents,
                        "product_data": {
                            "name": request.plan_name,
                            "description": PRODUCT_DESCRIPTION,
                        },
                    },
                }
            ],
            client_reference_id=identity.id,
            success_url=f"{base_url}/?checkout=success",
            cancel_url=f"{base_url}/?checkout=cancelled",
            metadata={
                "user_id": identity.id,
                "amount_cents": str(request.amount_cents),
                "token_count": str(request.token_count),
            },
        )
    except stripe.StripeError as e:
        logger.error("[CHECKOUT] Stripe error creating session for user %s: %s", identity.id, e)
        raise UpstreamFailure("stripe_error", getattr(e, "user_message", None) or "Checkout failed")

    logger.info("[CHECKOUT] Created Stripe Checkout Session %s for user %s", session.id, identity.id)
    return {"url": session.url, "sessionId": session.id}
