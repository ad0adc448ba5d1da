from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol
from urllib.parse import urlencode

import httpx
import jwt

from boxcheckr.core.config import Settings
from boxcheckr.core.errors import IdentityProviderConfigError, IdentityProviderError

logger = logging.getLogger(__name__)

_ALLOWED_ALGS = {"RS256", "RS384", "RS512", "ES256", "ES384", "ES512"}
_SCOPES = ("openid", "profile", "email")
_METADATA_KEYS = ("authorization_endpoint", "token_endpoint", "jwks_uri")


@dataclass(frozen=True)
class Identity:
    subject: str
    email: str
    name: str
    roles: tuple[str, ...] = field(default_factory=tuple)


def is_admin(roles, admin_role: str) -> bool:
    wanted = admin_role.lower()
    return any(str(role).lower() == wanted for role in roles or ())


def _list_claim(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    return (str(value),)


def claims_to_identity(claims: dict[str, Any]) -> Identity:
    subject = claims.get("sub")
    if not subject:
        raise IdentityProviderError("ID token missing subject")
    # Azure AD often omits email for work accounts; the UPN is the address.
    email = claims.get("email") or claims.get("preferred_username") or claims.get("upn") or ""
    return Identity(
        subject=str(subject),
        email=str(email),
        name=str(claims.get("name") or email),
        roles=_list_claim(claims.get("roles")),
    )


class IdentityProvider(Protocol):
    async def authorization_url(self, *, state: str, nonce: str, redirect_uri: str) -> str: ...

    async def exchange(self, *, code: str, nonce: str, redirect_uri: str) -> Identity: ...


class OIDCProvider:
    """Authorization-code login against an OpenID Connect issuer."""

    def __init__(self, settings: Settings):
        self.issuer = settings.resolved_issuer
        self.client_id = settings.azure_client_id
        self.client_secret = settings.azure_client_secret
        self.timeout = settings.http_timeout_seconds
        self._metadata: dict[str, Any] | None = None

    def _require_config(self) -> None:
        if not (self.issuer and self.client_id and self.client_secret):
            raise IdentityProviderConfigError(
                "AZURE_TENANT_ID (or OIDC_ISSUER), AZURE_CLIENT_ID and AZURE_CLIENT_SECRET are required"
            )

    async def _get(self, url: str) -> dict[str, Any]:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise IdentityProviderError(f"Identity provider request failed: {url}") from e
        return _json_body(response, url)

    async def metadata(self) -> dict[str, Any]:
        self._require_config()
        if self._metadata is None:
            meta = await self._get(f"{self.issuer}/.well-known/openid-configuration")
            missing = [key for key in _METADATA_KEYS if not meta.get(key)]
            if missing:
                raise IdentityProviderError(f"Discovery document missing {', '.join(missing)}")
            self._metadata = meta
        return self._metadata

    async def authorization_url(self, *, state: str, nonce: str, redirect_uri: str) -> str:
        meta = await self.metadata()
        query = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "scope": " ".join(_SCOPES),
            "state": state,
            "nonce": nonce,
        }
        return f"{meta['authorization_endpoint']}?{urlencode(query)}"

    async def exchange(self, *, code: str, nonce: str, redirect_uri: str) -> Identity:
        meta = await self.metadata()
        payload = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(meta["token_endpoint"], data=payload)
        except httpx.HTTPError as e:
            raise IdentityProviderError("Token exchange failed") from e
        if response.status_code >= 400:
            logger.warning("oidc token exchange failed status=%s", response.status_code)
            raise IdentityProviderError("Token exchange failed")

        id_token = _json_body(response, "token endpoint").get("id_token")
        if not id_token:
            raise IdentityProviderError("Token response missing id_token")

        claims = await self._verify(id_token, meta)
        if claims.get("nonce") != nonce:
            raise IdentityProviderError("Nonce mismatch")
        return claims_to_identity(claims)

    async def _verify(self, token: str, meta: dict[str, Any]) -> dict[str, Any]:
        try:
            header = jwt.get_unverified_header(token)
        except jwt.PyJWTError as e:
            raise IdentityProviderError("Malformed ID token") from e
        alg = header.get("alg")
        if alg not in _ALLOWED_ALGS:
            raise IdentityProviderError("Unsupported token algorithm")

        jwks = await self._get(meta["jwks_uri"])
        key = _select_key(jwks, header.get("kid"), alg)
        try:
            return jwt.decode(token, key, algorithms=[alg], audience=self.client_id, issuer=meta.get("issuer", self.issuer))
        except jwt.PyJWTError as e:
            raise IdentityProviderError("ID token verification failed") from e


def _json_body(response: httpx.Response, source: str) -> dict[str, Any]:
    try:
        body = response.json()
    except ValueError as e:
        raise IdentityProviderError(f"Identity provider returned invalid JSON: {source}") from e
    if not isinstance(body, dict):
        raise IdentityProviderError(f"Identity provider returned invalid JSON: {source}")
    return body


def _select_key(jwks: dict[str, Any], kid: str | None, alg: str) -> Any:
    keys = jwks.get("keys")
    keys = [k for k in keys if isinstance(k, dict)] if isinstance(keys, list) else []
    jwk = None
    if kid:
        jwk = next((k for k in keys if k.get("kid") == kid), None)
    elif len(keys) == 1:
        jwk = keys[0]
    if jwk is None:
        raise IdentityProviderError("No matching signing key")
    algorithm = jwt.algorithms.RSAAlgorithm if alg.startswith("RS") else jwt.algorithms.ECAlgorithm
    try:
        return algorithm.from_jwk(json.dumps(jwk))
    except jwt.PyJWTError as e:
        raise IdentityProviderError("Invalid signing key") from e
