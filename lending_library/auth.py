"""Caller authentication: Google ID token verification plus an email-domain allow-list."""

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx
from authlib.jose import JoseError, JsonWebKey, JsonWebToken
from cachetools import TTLCache

from lending_library.config import settings
from lending_library.errors import AuthenticationError, DomainNotAllowedError
from lending_library.services.http_client import SharedHTTPClient, get_http_client

logger = logging.getLogger(__name__)

TOKEN_HEADER = "x-auth-token"

_jwt = JsonWebToken(["RS256"])


def token_kid(token: str) -> Optional[str]:
    """Key id from the unverified JWT header, or None when the header is unreadable."""
    segment = token.split(".", 1)[0]
    try:
        header = json.loads(base64.urlsafe_b64decode(segment + "=" * (-len(segment) % 4)))
    except ValueError:
        return None
    kid = header.get("kid") if isinstance(header, dict) else None
    return kid if isinstance(kid, str) else None


@dataclass
class AuthenticatedUser:
    email: str
    name: str
    picture: Optional[str] = None


def extract_token(headers: Mapping[str, str]) -> str:
    """X-Auth-Token wins; otherwise a standard bearer Authorization header."""
    token = headers.get(TOKEN_HEADER) or ""
    if token:
        return token.strip()
    authorization = headers.get("authorization") or ""
    scheme, _, credentials = authorization.partition(" ")
    if scheme.lower() == "bearer":
        return credentials.strip()
    return ""


class GoogleIdTokenVerifier:
    """Checks signature, issuer, audience and expiry of a Google-issued ID token."""

    _JWKS_CACHE: TTLCache = TTLCache(maxsize=4, ttl=settings.jwks_cache_ttl)

    def __init__(
        self,
        client_id: Optional[str] = None,
        issuers: Optional[List[str]] = None,
        certs_url: Optional[str] = None,
        http_client: Optional[SharedHTTPClient] = None,
    ):
        self.client_id = client_id if client_id is not None else settings.google_client_id
        self.issuers = issuers or settings.google_issuers
        self.certs_url = certs_url or settings.google_certs_url
        self._http_client = http_client

    async def fetch_jwks(self) -> Dict[str, Any]:
        jwks = self._JWKS_CACHE.get(self.certs_url)
        if jwks:
            return jwks
        client = self._http_client or await get_http_client()
        response = await client.get(self.certs_url)
        response.raise_for_status()
        jwks = response.json()
        self._JWKS_CACHE[self.certs_url] = jwks
        return jwks

    async def verify(self, token: str) -> Dict[str, Any]:
        if not self.client_id:
            raise RuntimeError("GOOGLE_CLIENT_ID is not configured")
        jwks = await self.fetch_jwks()
        kid = token_kid(token)
        if kid and not any(k.get("kid") == kid for k in jwks.get("keys", [])):
            # Google rotated its keys since the set was cached
            logger.info("Unknown key id %s, refetching JWKS", kid)
            self._JWKS_CACHE.pop(self.certs_url, None)
            jwks = await self.fetch_jwks()
        key_set = JsonWebKey.import_key_set(jwks)
        claims = _jwt.decode(
            token,
            key_set,
            claims_options={
                "iss": {"essential": True, "values": self.issuers},
                "aud": {"essential": True, "value": self.client_id},
                "exp": {"essential": True},
            },
        )
        claims.validate(leeway=settings.token_clock_skew)
        return dict(claims)


class Authenticator:
    def __init__(
        self,
        verifier: Optional[GoogleIdTokenVerifier] = None,
        allowed_domains: Optional[List[str]] = None,
        domain_denied_status: Optional[int] = None,
    ):
        self.verifier = verifier or GoogleIdTokenVerifier()
        self.allowed_domains = allowed_domains if allowed_domains is not None else settings.allowed_domains
        self.domain_denied_status = domain_denied_status or settings.domain_denied_status

    async def _verified_user(self, token: str) -> Optional[AuthenticatedUser]:
        try:
            claims = await self.verifier.verify(token)
        except (JoseError, ValueError, KeyError, RuntimeError, httpx.HTTPError) as e:
            logger.warning("Token verification failed: %s", e)
            return None
        email = claims.get("email")
        if not email or claims.get("email_verified") not in (True, "true"):
            return None
        return AuthenticatedUser(
            email=email,
            name=claims.get("name") or email,
            picture=claims.get("picture") or None,
        )

    async def authenticate(self, token: Optional[str]) -> AuthenticatedUser:
        if not token:
            raise AuthenticationError("Token required", reason="missing_token")

        user = await self._verified_user(token)
        if user is None:
            raise AuthenticationError("Unauthorized", reason="invalid_token")

        if self.allowed_domains:
            domain = user.email.split("@")[-1]
            if domain not in self.allowed_domains:
                logger.warning("Rejected sign-in from disallowed domain: %s", domain)
                raise DomainNotAllowedError("Domain not allowed", status_code=self.domain_denied_status)
        return user
