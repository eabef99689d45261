"""
Stripe webhook reconciliation: a completed Checkout Session becomes one paid download credit.

Stripe retries any delivery that doesn't get a 2xx, so we only acknowledge after
the credit row is committed, and answer 500 (not 2xx) when an event can't be
credited. Re-delivery of an already credited event is left to Stripe's own
event de-duplication.
"""
import json
import logging
from typing import Optional

import stripe
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings
from app.core.errors import InvalidSignature, Misconfigured, ReconciliationError, UpstreamFailure
from app.models.download_token import DownloadToken

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PACK_PLACEHOLDER = "pack"
SIGNATURE_TOLERANCE = 300  # seconds, same as stripe.Webhook.construct_event


def verify_event(payload: bytes, sig_header: Optional[str], settings: Settings) -> dict:
    """Check the Stripe-Signature header against the raw body and return the decoded event."""
    if not settings.stripe_webhook_secret or not settings.stripe_configured:
        logger.error("[WEBHOOK] Stripe or webhook secret not configured")
        raise Misconfigured()

    if not sig_header:
        logger.warning("[WEBHOOK] Missing Stripe-Signature header")
        raise InvalidSignature()

    try:
        body = payload.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            body, sig_header, settings.stripe_webhook_secret, tolerance=SIGNATURE_TOLERANCE
        )
        event = json.loads(body)
    except (stripe.SignatureVerificationError, ValueError) as e:
        logger.warning("[WEBHOOK] Signature verification failed: %s", e)
        raise InvalidSignature()

    if not isinstance(event, dict):
        raise InvalidSignature()
    return event


def _amount_cents(session: dict) -> int:
    metadata = session.get("metadata") or {}
    raw = metadata.get("amount_cents")
    if raw:
        try:
            return int(raw)
        except (TypeError, ValueError):
            logger.warning("[WEBHOOK] Unparsable metadata.amount_cents=%r", raw)
    return int(session.get("amount_total") or 0)


def reconcile_event(db: Session, event: dict, settings: Settings) -> dict:
    """Credit the user for a completed checkout; acknowledge every other event type untouched."""
    event_type = event.get("type")
    if event_type != CHECKOUT_COMPLETED:
        logger.info("[WEBHOOK] Ignoring event %s (%s)", event.get("id"), event_type)
        return {"received": True}

    session = (event.get("data") or {}).get("object") or {}
    metadata = session.get("metadata") or {}
    user_id = session.get("client_reference_id") or metadata.get("user_id")
    if not user_id:
        logger.error("[WEBHOOK] %s for session %s has no user id", event.get("id"), session.get("id"))
        raise ReconciliationError()

    amount = _amount_cents(session)
    if metadata.get("token_count") not in (None, "", "1"):
        # Packs are sold with a token_count, but each completed payment credits exactly one download.
        logger.warning(
            "[WEBHOOK] session %s requested token_count=%s; crediting 1",
            session.get("id"), metadata.get("token_count"),
        )

    token = DownloadToken(
        user_id=str(user_id),
        paid=True,
        file_path=PACK_PLACEHOLDER,
        file_name=PACK_PLACEHOLDER,
        mastering_target=settings.default_mastering_target,
        amount_cents=amount,
        stripe_session_id=session.get("id"),
    )
    try:
        db.add(token)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[WEBHOOK] insert download_tokens failed for user %s: %s", user_id, e)
        raise UpstreamFailure("db_error")

    logger.info("[WEBHOOK] Credited 1 download to user %s (session %s, %s)", user_id, session.get("id"), amount)
    return {"received": True}
