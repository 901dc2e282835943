"""OpenID Connect relying party for the external identity provider.

Only what the portal needs from the provider: discovery, the authorization
code flow, refresh, the end-session URL and ID-token verification.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlencode

import httpx
import jwt

logger = logging.getLogger(__name__)

SCOPES = "openid email profile offline_access"


class OIDCError(Exception):
    """The identity provider rejected a request or returned something unusable."""


@dataclass
class TokenSet:
    access_token: str
    refresh_token: Optional[str]
    expires_at: int
    claims: dict = field(default_factory=dict)

    @property
    def expired(self) -> bool:
        return time.time() >= self.expires_at

    def to_session(self) -> dict:
        return {
            "claims": self.claims,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
        }


class OIDCClient:
    def __init__(self, issuer_url: str, client_id: str, client_secret: Optional[str] = None, http: Optional[httpx.Client] = None):
        self.issuer_url = issuer_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.http = http or httpx.Client(timeout=10.0)
        self._metadata: Optional[dict] = None
        self._jwks: Optional[jwt.PyJWKClient] = None

    def metadata(self) -> dict:
        if self._metadata is None:
            url = f"{self.issuer_url}/.well-known/openid-configuration"
            try:
                resp = self.http.get(url)
                resp.raise_for_status()
            except httpx.HTTPError as e:
                raise OIDCError(f"discovery failed: {e}") from e
            self._metadata = resp.json()
        return self._metadata

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "response_type": "code",
            "scope": SCOPES,
            "redirect_uri": redirect_uri,
            "state": state,
            "prompt": "login consent",
        }
        return f"{self.metadata()['authorization_endpoint']}?{urlencode(params)}"

    def end_session_url(self, post_logout_redirect_uri: str) -> Optional[str]:
        endpoint = self.metadata().get("end_session_endpoint")
        if not endpoint:
            return None
        params = {"client_id": self.client_id, "post_logout_redirect_uri": post_logout_redirect_uri}
        return f"{endpoint}?{urlencode(params)}"

    def _token_request(self, data: dict) -> dict:
        data = {**data, "client_id": self.client_id}
        if self.client_secret:
            data["client_secret"] = self.client_secret
        try:
            resp = self.http.post(self.metadata()["token_endpoint"], data=data)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise OIDCError(f"token request failed: {e}") from e
        return resp.json()

    def verify_id_token(self, id_token: str) -> dict:
        if self._jwks is None:
            self._jwks = jwt.PyJWKClient(self.metadata()["jwks_uri"])
        try:
            key = self._jwks.get_signing_key_from_jwt(id_token)
            return jwt.decode(
                id_token,
                key.key,
                algorithms=["RS256", "ES256"],
                audience=self.client_id,
                issuer=self.metadata().get("issuer", self.issuer_url),
            )
        except jwt.PyJWTError as e:
            raise OIDCError(f"invalid id token: {e}") from e

    def close(self):
        self.http.close()

    def _token_set(self, body: dict, previous_claims: Optional[dict] = None) -> TokenSet:
        if "access_token" not in body:
            raise OIDCError("token response without access_token")
        expires_at = int(time.time()) + int(body.get("expires_in", 3600))
        if body.get("id_token"):
            claims = self.verify_id_token(body["id_token"])
            expires_at = claims.get("exp") or expires_at
        elif previous_claims is not None:
            # the old id token's exp is stale; the lifetime comes from expires_in
            claims = previous_claims
        else:
            raise OIDCError("token response without id_token")
        return TokenSet(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            expires_at=int(expires_at),
            claims=claims,
        )

    def exchange_code(self, code: str, redirect_uri: str) -> TokenSet:
        body = self._token_request({"grant_type": "authorization_code", "code": code, "redirect_uri": redirect_uri})
        return self._token_set(body)

    def refresh(self, refresh_token: str, previous_claims: Optional[dict] = None) -> TokenSet:
        body = self._token_request({"grant_type": "refresh_token", "refresh_token": refresh_token})
        tokens = self._token_set(body, previous_claims)
        if tokens.refresh_token is None:
            tokens.refresh_token = refresh_token
        return tokens
