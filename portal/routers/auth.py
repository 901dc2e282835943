import logging
import secrets
from typing import Optional

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import RedirectResponse

from .. import schemas
from ..auth import (
    SESSION_COOKIE,
    STATE_COOKIE,
    STATE_EXP_SECONDS,
    Principal,
    create_state_token,
    decode_session_token,
    decode_state_token,
    get_current_user,
    get_oidc_client,
    set_session_cookie,
    start_session,
)
from ..config import get_settings
from ..crud import Storage, get_storage
from ..oidc import OIDCClient, OIDCError

logger = logging.getLogger(__name__)

router = APIRouter()


def _require_provider(oidc: Optional[OIDCClient]) -> OIDCClient:
    if oidc is None:
        raise HTTPException(status_code=503, detail="Identity provider is not configured")
    return oidc


def _profile_from_claims(claims: dict) -> schemas.UserUpsert:
    return schemas.UserUpsert(
        id=str(claims["sub"]),
        email=claims.get("email"),
        first_name=claims.get("first_name") or claims.get("given_name"),
        last_name=claims.get("last_name") or claims.get("family_name"),
        profile_image_url=claims.get("profile_image_url") or claims.get("picture"),
    )


@router.get("/login")
def login(request: Request, oidc: Optional[OIDCClient] = Depends(get_oidc_client)):
    oidc = _require_provider(oidc)
    settings = get_settings()
    host = (request.url.hostname or "").lower()
    if settings.allowed_domains and host not in settings.allowed_domains:
        raise HTTPException(status_code=403, detail="Login is not allowed from this domain")

    state = secrets.token_urlsafe(24)
    try:
        target = oidc.authorization_url(str(request.url_for("callback")), state)
    except OIDCError as e:
        logger.error("cannot start login: %s", e)
        raise HTTPException(status_code=502, detail="Identity provider unavailable")

    response = RedirectResponse(target, status_code=302)
    response.set_cookie(
        STATE_COOKIE,
        create_state_token(state),
        max_age=STATE_EXP_SECONDS,
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
        path="/api",
    )
    return response


@router.get("/callback", name="callback")
def callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    storage: Storage = Depends(get_storage),
    oidc: Optional[OIDCClient] = Depends(get_oidc_client),
):
    oidc = _require_provider(oidc)
    if error or not code or not state:
        return RedirectResponse("/api/login", status_code=302)

    try:
        expected = decode_state_token(request.cookies.get(STATE_COOKIE, ""))
    except jwt.PyJWTError:
        expected = None
    if not expected or not secrets.compare_digest(expected, state):
        raise HTTPException(status_code=400, detail="Invalid login state")

    try:
        tokens = oidc.exchange_code(code, str(request.url_for("callback")))
    except OIDCError as e:
        logger.warning("login failed: %s", e)
        raise HTTPException(status_code=401, detail="Login failed")

    user = storage.upsert_user(_profile_from_claims(tokens.claims))
    sid = start_session(storage, tokens)
    logger.info("user %s logged in", user.id)

    response = RedirectResponse("/", status_code=302)
    set_session_cookie(response, sid)
    response.delete_cookie(STATE_COOKIE, path="/api")
    return response


@router.get("/logout")
def logout(
    request: Request,
    storage: Storage = Depends(get_storage),
    oidc: Optional[OIDCClient] = Depends(get_oidc_client),
):
    token = request.cookies.get(SESSION_COOKIE)
    if token:
        try:
            sid = decode_session_token(token)
        except jwt.PyJWTError:
            sid = None
        if sid:
            storage.delete_session(sid)
            logger.info("session %s... logged out", sid[:8])

    target = "/"
    if oidc is not None:
        try:
            target = oidc.end_session_url(str(request.base_url)) or "/"
        except OIDCError as e:
            logger.warning("end-session endpoint unavailable: %s", e)

    response = RedirectResponse(target, status_code=302)
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


@router.get("/auth/user", response_model=schemas.UserRead)
def current_user(principal: Principal = Depends(get_current_user)):
    return principal.user
