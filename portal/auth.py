import logging
import secrets
import threading
import time
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, Optional, Tuple

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.responses import Response

from . import models
from .config import Settings, get_settings
from .crud import Storage, get_storage
from .models import utcnow
from .oidc import OIDCClient, OIDCError, TokenSet

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
SESSION_COOKIE = "portal_session"
STATE_COOKIE = "portal_login_state"
STATE_EXP_SECONDS = 10 * 60


@dataclass
class Principal:
    """Authenticated requester, resolved from the session cookie."""
    sid: str
    user: models.User
    claims: dict = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.user.id

    @property
    def is_admin(self) -> bool:
        return self.user.role == "admin"


def create_session_token(sid: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    payload = {"sid": sid, "iat": int(time.time())}
    return jwt.encode(payload, settings.session_secret, algorithm=ALGORITHM)


def decode_session_token(token: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    payload = jwt.decode(token, settings.session_secret, algorithms=[ALGORITHM])
    sid = payload.get("sid")
    if not sid:
        raise jwt.InvalidTokenError("missing sid")
    return sid


def create_state_token(state: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    now = int(time.time())
    payload = {"state": state, "iat": now, "exp": now + STATE_EXP_SECONDS}
    return jwt.encode(payload, settings.session_secret, algorithm=ALGORITHM)


def decode_state_token(token: str, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    payload = jwt.decode(token, settings.session_secret, algorithms=[ALGORITHM])
    return payload["state"]


def new_session_id() -> str:
    return secrets.token_urlsafe(32)


def start_session(storage: Storage, tokens: TokenSet, settings: Optional[Settings] = None) -> str:
    settings = settings or get_settings()
    sid = new_session_id()
    expire = utcnow() + timedelta(seconds=settings.session_ttl_seconds)
    storage.save_session(sid, tokens.to_session(), expire)
    return sid


def set_session_cookie(response: Response, sid: str, settings: Optional[Settings] = None):
    settings = settings or get_settings()
    response.set_cookie(
        SESSION_COOKIE,
        create_session_token(sid, settings),
        max_age=settings.session_ttl_seconds,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        path="/",
    )


_oidc_clients: Dict[Tuple[str, str, Optional[str]], OIDCClient] = {}
_oidc_lock = threading.Lock()


def _oidc_client(issuer_url: str, client_id: str, client_secret: Optional[str]) -> OIDCClient:
    key = (issuer_url, client_id, client_secret)
    with _oidc_lock:
        if key not in _oidc_clients:
            _oidc_clients[key] = OIDCClient(issuer_url, client_id, client_secret)
        return _oidc_clients[key]


def close_oidc_clients():
    """Close the HTTP connections of every cached provider client."""
    with _oidc_lock:
        clients = list(_oidc_clients.values())
        _oidc_clients.clear()
    for client in clients:
        try:
            client.close()
        except Exception:
            logger.exception("error closing identity provider client")


def get_oidc_client() -> Optional[OIDCClient]:
    """The configured identity provider, or None when login is not set up."""
    settings = get_settings()
    if not settings.issuer_url or not settings.client_id:
        return None
    return _oidc_client(settings.issuer_url, settings.client_id, settings.client_secret)


def _unauthorized():
    return HTTPException(status_code=401, detail="Unauthorized")


def _refresh(storage: Storage, oidc: Optional[OIDCClient], sid: str, row: models.AuthSession) -> dict:
    sess = row.sess or {}
    refresh_token = sess.get("refresh_token")
    if not refresh_token or oidc is None:
        raise _unauthorized()
    try:
        tokens = oidc.refresh(refresh_token, sess.get("claims"))
    except OIDCError as e:
        logger.warning("token refresh failed for session %s...: %s", sid[:8], e)
        raise _unauthorized()
    payload = tokens.to_session()
    storage.save_session(sid, payload, row.expire)
    return payload


def get_current_user(
    request: Request,
    storage: Storage = Depends(get_storage),
    oidc: Optional[OIDCClient] = Depends(get_oidc_client),
) -> Principal:
    token = request.cookies.get(SESSION_COOKIE)
    if not token:
        raise _unauthorized()
    try:
        sid = decode_session_token(token)
    except jwt.PyJWTError:
        raise _unauthorized()

    row = storage.get_session(sid)
    if row is None:
        raise _unauthorized()
    if row.expire <= utcnow():
        storage.delete_session(sid)
        raise _unauthorized()

    sess = row.sess or {}
    if time.time() >= sess.get("expires_at", 0):
        sess = _refresh(storage, oidc, sid, row)

    claims = sess.get("claims") or {}
    user_id = claims.get("sub")
    if not user_id:
        raise _unauthorized()
    user = storage.get_user(user_id, consistent=True)
    if user is None:
        raise _unauthorized()
    if not user.is_active:
        raise HTTPException(status_code=403, detail="Account is disabled")
    return Principal(sid=sid, user=user, claims=claims)


def require_admin(principal: Principal = Depends(get_current_user)) -> Principal:
    if not principal.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return principal
