"""
Keycloak bearer-token validation for the technician app and admin panel.

The token subject identifies the technician who starts an inspection.
Catalog administration additionally requires the inspection-admin role,
granted either as a realm role or as a role on this client.
AUTH_ENABLED=false swaps in a fixed development identity.
"""
from __future__ import annotations

from typing import Optional

import httpx
import structlog
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from app.core.config import Settings, get_settings

logger = structlog.get_logger()
security = HTTPBearer(auto_error=False)

ADMIN_ROLE = "inspection-admin"
DEV_IDENTITY = {"sub": "dev-technician", "preferred_username": "dev", "roles": [ADMIN_ROLE]}

_jwks: dict[str, dict] = {}


async def _load_jwks(keycloak_url: str) -> dict[str, dict]:
    async with httpx.AsyncClient(timeout=5.0) as client:
        resp = await client.get(f"{keycloak_url}/protocol/openid-connect/certs")
        resp.raise_for_status()
    keys = {k["kid"]: k for k in resp.json().get("keys", []) if "kid" in k}
    logger.info("jwks_loaded", keys=len(keys))
    return keys


async def _signing_key(kid: Optional[str], keycloak_url: str) -> Optional[dict]:
    """Cached JWKS lookup; an unknown kid triggers one reload (Keycloak key rotation)."""
    global _jwks
    if kid not in _jwks:
        _jwks = await _load_jwks(keycloak_url)
    return _jwks.get(kid)


async def verify_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
    settings: Settings = Depends(get_settings),
) -> dict:
    """FastAPI dependency returning the validated token claims."""
    if not settings.auth_enabled:
        return dict(DEV_IDENTITY)

    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing authorization header")

    try:
        header = jwt.get_unverified_header(credentials.credentials)
        key = await _signing_key(header.get("kid"), settings.keycloak_url)
        if key is None:
            raise HTTPException(status_code=401, detail="Invalid token signing key")

        return jwt.decode(
            credentials.credentials,
            key,
            algorithms=["RS256"],
            audience=settings.keycloak_audience,
            issuer=settings.keycloak_url,
        )
    except JWTError as e:
        logger.warning("jwt_validation_failed", error=str(e))
        raise HTTPException(status_code=401, detail=f"Token validation failed: {e}")
    except httpx.HTTPError as e:
        logger.error("jwks_fetch_failed", error=str(e))
        raise HTTPException(status_code=503, detail="Identity provider unavailable")


def token_subject(payload: dict) -> str:
    return payload.get("sub") or payload.get("preferred_username") or "unknown"


def token_roles(payload: dict) -> set[str]:
    roles = set(payload.get("roles", []))
    roles.update(payload.get("realm_access", {}).get("roles", []))
    client = payload.get("resource_access", {}).get(get_settings().keycloak_client_id, {})
    roles.update(client.get("roles", []))
    return roles


async def require_admin(token: dict = Depends(verify_token)) -> dict:
    if ADMIN_ROLE not in token_roles(token):
        logger.warning("admin_role_missing", sub=token_subject(token))
        raise HTTPException(status_code=403, detail=f"Role '{ADMIN_ROLE}' required")
    return token
