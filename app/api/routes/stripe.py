"""
Stripe Checkout Session Routes
Handles Stripe Checkout Session creation for download packs
"""
import json
from typing import Optional
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Request

from app.core.config import Settings, get_settings
from app.core.errors import BadRequest
from app.dependencies.auth import get_current_identity
from app.schemas.auth import Identity
from app.services.checkout import create_checkout_session, parse_checkout_request

router = APIRouter()


def _request_origin(request: Request) -> Optional[str]:
    """Where to send the buyer back to: Origin, then Referer, then Host."""
    origin = request.headers.get("origin")
    if origin:
        return origin
    referer = urlsplit(request.headers.get("referer") or "")
    if referer.scheme and referer.netloc:
        return f"{referer.scheme}://{referer.netloc}"
    host = request.headers.get("host")
    return f"https://{host}" if host else None


@router.post("/create-checkout-session")
async def create_checkout(
    request: Request,
    settings: Settings = Depends(get_settings),
    identity: Identity = Depends(get_current_identity),
):
    """
    Create a Stripe Checkout Session for a download pack.
    Body: {"amountCents": int >= 100, "planName"?: str, "tokenCount"?: int}
    Returns the checkout URL to redirect the user to.
    """
    raw = await request.body()
    try:
        body = json.loads(raw) if raw else {}
    except ValueError:
        raise BadRequest("bad_request", "Invalid JSON")

    checkout_request = parse_checkout_request(body)
    return create_checkout_session(settings, identity, checkout_request, origin=_request_origin(request))
