"""
Bearer-token authentication against Supabase Auth.
Supports both HS256 (shared JWT secret) and ES256/RS256 (project JWKS).
"""
import logging
from typing import Dict, Optional

import jwt  # PyJWT
from fastapi import Depends, Header

from app.core.config import Settings, get_settings
from app.core.errors import Misconfigured, Unauthenticated
from app.schemas.auth import Identity

logger = logging.getLogger(__name__)

SUPABASE_AUDIENCE = "authenticated"
ASYMMETRIC_ALGORITHMS = ("ES256", "RS256")

# One PyJWKClient per JWKS URL; the client caches fetched keys itself.
_JWKS_CLIENTS: Dict[str, jwt.PyJWKClient] = {}


def get_jwks_client(supabase_url: str) -> jwt.PyJWKClient:
    jwks_url = f"{supabase_url}/auth/v1/.well-known/jwks.json"
    client = _JWKS_CLIENTS.get(jwks_url)
    if client is None:
        client = jwt.PyJWKClient(jwks_url, cache_keys=True, lifespan=3600, timeout=10)
        _JWKS_CLIENTS[jwks_url] = client
    return client


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the raw token from an Authorization header or raise missing_token."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthenticated("missing_token", "Missing authorization token")

    token = authorization[len("Bearer "):].strip()
    # Reject common invalid token values sent by clients that lost their session
    if not token or token.lower() in ("null", "undefined", "none"):
        raise Unauthenticated("missing_token", "Missing authorization token")
    return token


def verify_supabase_token(token: str, settings: Settings) -> dict:
    """
    Verify a Supabase access token and return its claims.
    Raises Unauthenticated on any verification failure, Misconfigured when the
    key material needed for the token's algorithm is not configured.
    """
    if token.count(".") != 2:
        logger.info("[AUTH] Rejected token with invalid format (length %s)", len(token))
        raise Unauthenticated()

    try:
        algo = jwt.get_unverified_header(token).get("alg")
    except jwt.PyJWTError as e:
        logger.info("[AUTH] Failed to decode token header: %s", e)
        raise Unauthenticated()

    if algo == "HS256":
        if not settings.supabase_jwt_secret:
            logger.error("[AUTH] SUPABASE_JWT_SECRET is missing for HS256 verification")
            raise Misconfigured()
        key = settings.supabase_jwt_secret
    elif algo in ASYMMETRIC_ALGORITHMS:
        if not settings.supabase_url:
            logger.error("[AUTH] SUPABASE_URL is missing for %s verification", algo)
            raise Misconfigured()
        try:
            key = get_jwks_client(settings.supabase_url).get_signing_key_from_jwt(token).key
        except jwt.PyJWKClientError as e:
            logger.warning("[AUTH] Could not resolve signing key: %s", e)
            raise Unauthenticated()
    else:
        logger.info("[AUTH] Unsupported algorithm: %s", algo)
        raise Unauthenticated()

    try:
        return jwt.decode(
            token,
            key,
            algorithms=[algo],
            audience=SUPABASE_AUDIENCE,
            options={"verify_aud": True, "require": ["sub", "exp"]},
        )
    except jwt.PyJWTError as e:
        logger.info("[AUTH] %s verification failed: %s", algo, e)
        raise Unauthenticated()


def get_current_identity(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> Identity:
    """
    FastAPI dependency: resolve the caller from the Authorization header.
    This is the main dependency to use in route handlers.
    """
    if not settings.auth_configured:
        settings.require("supabase_jwt_secret", context="auth")

    token = extract_bearer_token(authorization)
    payload = verify_supabase_token(token, settings)

    user_id = payload.get("sub")
    if not user_id:
        raise Unauthenticated()
    email = payload.get("email") or None
    return Identity(id=str(user_id), email=email)
