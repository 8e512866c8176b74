import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests
from fastapi import Header, HTTPException
from jose import JWTError, jwt
from loguru import logger

from app.core.errors import Unauthorized

# "hs256" verifies with AUTH_JWT_SECRET, "jwks" with the issuer's ES256 keys
AUTH_VERIFY_MODE = os.getenv("AUTH_VERIFY_MODE", "jwks").lower()
AUTH_ISSUER_URL = os.getenv("AUTH_ISSUER_URL", "http://localhost:9999")
JWKS_TTL_SECONDS = int(os.getenv("JWKS_TTL_SECONDS", "600"))


@dataclass(frozen=True)
class Identity:
    user_id: str
    display_name: str


class JwksCache:
    """Issuer signing keys by kid, refetched after `ttl` or on an unknown kid."""

    def __init__(self, url: str, ttl: float = JWKS_TTL_SECONDS):
        self.url = url
        self.ttl = ttl
        self._keys: Dict[str, Dict[str, Any]] = {}
        self._fetched_at: Optional[float] = None
        self._lock = threading.Lock()

    def key_for(self, kid: str) -> Dict[str, Any]:
        with self._lock:
            if self._fetched_at is None or time.monotonic() - self._fetched_at >= self.ttl:
                self._refresh()
            if kid not in self._keys:
                # key rotation: one forced refetch
                self._refresh()
            key = self._keys.get(kid)
        if key is None:
            raise Unauthorized("Public key not found for kid")
        return key

    def _refresh(self) -> None:
        self._keys = {k["kid"]: k for k in self._fetch() if k.get("kid")}
        self._fetched_at = time.monotonic()

    def _fetch(self) -> list:
        headers = {}
        api_key = os.getenv("AUTH_API_KEY")
        if api_key:
            headers["apikey"] = api_key
        try:
            resp = requests.get(self.url, headers=headers, timeout=10)
            resp.raise_for_status()
            return resp.json()["keys"]
        except (requests.RequestException, ValueError, KeyError) as e:
            raise Unauthorized(f"JWKS fetch failed: {e}")


_jwks = JwksCache(f"{AUTH_ISSUER_URL}/auth/v1/.well-known/jwks.json")


def _get_bearer_token(authorization: Optional[str]) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise Unauthorized("Missing or malformed bearer token")
    return token.strip()


def _display_name_from_claims(payload: Dict[str, Any], user_id: str) -> str:
    metadata = payload.get("user_metadata")
    for candidate in (
        payload.get("username"),
        metadata.get("username") if isinstance(metadata, dict) else None,
        payload.get("preferred_username"),
    ):
        if candidate:
            return str(candidate)

    email = payload.get("email")
    if email and "@" in email:
        return email.split("@", 1)[0]
    return user_id


def _decode(token: str) -> Dict[str, Any]:
    if AUTH_VERIFY_MODE == "hs256":
        secret = os.getenv("AUTH_JWT_SECRET")
        if not secret:
            raise Unauthorized("AUTH_JWT_SECRET not set")
        key, algorithm = secret, "HS256"
    elif AUTH_VERIFY_MODE == "jwks":
        try:
            kid = jwt.get_unverified_header(token).get("kid")
        except JWTError:
            raise Unauthorized("Invalid token header")
        if not kid:
            raise Unauthorized("Token missing kid")
        key, algorithm = _jwks.key_for(kid), "ES256"
    else:
        raise Unauthorized(f"Invalid AUTH_VERIFY_MODE: {AUTH_VERIFY_MODE}")

    try:
        return jwt.decode(token, key, algorithms=[algorithm], options={"verify_aud": False})
    except JWTError:
        raise Unauthorized("Invalid or expired token")


def verify_token(token: str) -> Identity:
    payload = _decode(token)
    sub = payload.get("sub")
    if not sub:
        raise Unauthorized("Token missing sub claim")
    user_id = str(sub)
    return Identity(user_id=user_id, display_name=_display_name_from_claims(payload, user_id))


def resolve_identity(token: Optional[str]) -> Optional[Identity]:
    """Identity behind a connection's token, or None when it cannot be resolved."""
    if not token:
        return None
    try:
        return verify_token(token)
    except Unauthorized as e:
        logger.info(f"[auth] identity rejected: {e}")
        return None


def get_current_identity(
    authorization: Optional[str] = Header(default=None),
) -> Identity:
    try:
        return verify_token(_get_bearer_token(authorization))
    except Unauthorized as e:
        raise HTTPException(status_code=401, detail=str(e))
