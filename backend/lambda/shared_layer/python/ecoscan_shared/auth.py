"""ecoscan_shared.auth — Cognito JWT authentication for EcoScan admin routes.

The dashboard (Amplify) sends the Cognito ID token as
``Authorization: Bearer <jwt>``; the ``ecoscan_id_token`` cookie is accepted
as a fallback. Tokens are validated as RS256 JWTs against the User Pool JWKS
endpoint, and admin routes additionally require membership of the
``ADMIN_GROUP`` Cognito group.

Requires environment variables:
    COGNITO_USER_POOL_ID   — e.g. eu-central-1_AbCdEf123
    COGNITO_CLIENT_ID      — app client id, checked as the token audience
"""

from __future__ import annotations

import json
import logging
import time
import urllib.request
from typing import Any, Dict, List, Optional, Tuple

import jwt
from jwt.algorithms import RSAAlgorithm

from ecoscan_shared import config
from ecoscan_shared.http_utils import _error

logger = logging.getLogger(__name__)

_COOKIE_NAME = "ecoscan_id_token"

# ---------------------------------------------------------------------------
# JWKS cache
# ---------------------------------------------------------------------------

_jwks_cache: Dict[str, Any] = {}
_jwks_fetched_at: float = 0.0
_JWKS_TTL: float = 3600.0


def _extract_token(event: Dict[str, Any]) -> Optional[str]:
    """Extract the ID token from the Authorization header or cookies."""
    headers = event.get("headers") or {}
    auth_header = headers.get("authorization") or headers.get("Authorization") or ""
    if auth_header.lower().startswith("bearer "):
        token = auth_header[len("bearer ") :].strip()
        if token:
            return token

    cookie_header = headers.get("cookie") or headers.get("Cookie") or ""
    cookie_parts: List[str] = [
        part.strip() for part in cookie_header.split(";") if part.strip()
    ]
    event_cookies = event.get("cookies") or []
    if isinstance(event_cookies, list):
        cookie_parts.extend(
            part.strip()
            for part in event_cookies
            if isinstance(part, str) and part.strip()
        )

    prefix = f"{_COOKIE_NAME}="
    for part in cookie_parts:
        if part.startswith(prefix):
            return part[len(prefix) :]
    return None


def _get_jwks() -> Dict[str, Any]:
    """Fetch (and cache) Cognito User Pool JWKS."""
    global _jwks_cache, _jwks_fetched_at
    now = time.time()
    if _jwks_cache and (now - _jwks_fetched_at) < _JWKS_TTL:
        return _jwks_cache

    if not config.COGNITO_USER_POOL_ID:
        raise ValueError("COGNITO_USER_POOL_ID not set")

    region = config.COGNITO_USER_POOL_ID.split("_")[0]
    url = (
        f"https://cognito-idp.{region}.amazonaws.com/"
        f"{config.COGNITO_USER_POOL_ID}/.well-known/jwks.json"
    )

    with urllib.request.urlopen(url, timeout=5) as resp:
        data = json.loads(resp.read())

    _jwks_cache = {
        key_data["kid"]: RSAAlgorithm.from_jwk(json.dumps(key_data))
        for key_data in data.get("keys", [])
    }
    _jwks_fetched_at = now
    return _jwks_cache


def _verify_token(token: str) -> Dict[str, Any]:
    """Verify a Cognito JWT (RS256). Returns decoded claims dict."""
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise ValueError(f"Invalid token header: {exc}") from exc

    kid = header.get("kid")
    alg = header.get("alg", "RS256")
    if alg != "RS256":
        raise ValueError(f"Unexpected token algorithm: {alg}")

    key = _get_jwks().get(kid)
    if key is None:
        raise ValueError("Token key ID not found in JWKS")

    try:
        return jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=config.COGNITO_CLIENT_ID,
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise ValueError("Token has expired. Please sign in again.")
    except jwt.InvalidAudienceError:
        raise ValueError("Token audience mismatch.")
    except jwt.PyJWTError as exc:
        raise ValueError(f"Token validation failed: {exc}") from exc


def _is_admin(claims: Dict[str, Any]) -> bool:
    groups = claims.get("cognito:groups") or []
    if isinstance(groups, str):
        groups = [g.strip() for g in groups.split(",")]
    return config.ADMIN_GROUP in groups


def _authenticate(
    event: Dict[str, Any],
    *,
    require_admin: bool = True,
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Authenticate a request.

    Returns (claims, None) on success or (None, error_response) on failure.
    """
    token = _extract_token(event)
    if not token:
        return None, _error(401, "Authentication required. Please sign in.")

    try:
        claims = _verify_token(token)
    except ValueError as exc:
        return None, _error(401, str(exc))

    if require_admin and not _is_admin(claims):
        logger.warning("non-admin user %s denied", claims.get("sub", "?"))
        return None, _error(403, "Administrator access required")
    return claims, None
