"""
Webhooks for the payment provider (Stripe).
Register https://your-backend.com/api/webhook-stripe in the Stripe dashboard for
checkout.session.completed.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.db.session import get_db
from app.services.payment_reconciler import reconcile_event, verify_event

router = APIRouter()


@router.post("/webhook-stripe")
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    # Signature is computed over the raw body; read it before any JSON parsing.
    payload = await request.body()
    event = verify_event(payload, request.headers.get("stripe-signature"), settings)
    return reconcile_event(db, event, settings)
