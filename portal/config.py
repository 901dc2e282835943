"""Runtime configuration for the portal (read from the environment, replaceable in tests)."""
import os
from typing import NamedTuple, Optional, Tuple

DEFAULT_DATABASE_URL = "sqlite:///./portal.db"


class Settings(NamedTuple):
    primary_database_url: str
    replica_database_url: str
    pool_max_connections: int = 20
    pool_idle_timeout: int = 30
    pool_acquire_timeout: float = 2.0
    session_secret: str = "dev-session-secret"
    session_ttl_seconds: int = 7 * 24 * 60 * 60
    secure_cookies: bool = True
    issuer_url: str = ""
    client_id: str = ""
    client_secret: Optional[str] = None
    allowed_domains: Tuple[str, ...] = ()
    log_level: str = "INFO"
    create_schema: bool = True


def _flag(value: Optional[str], default: bool) -> bool:
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _split(value: Optional[str]) -> Tuple[str, ...]:
    if not value:
        return ()
    return tuple(part.strip().lower() for part in value.split(",") if part.strip())


def load_settings(environ=None) -> Settings:
    env = os.environ if environ is None else environ
    shared = env.get("DATABASE_URL")
    primary = env.get("DATABASE_URL_PRIMARY") or shared or DEFAULT_DATABASE_URL
    # A single connection string means single-node operation: both pools hit it.
    replica = env.get("DATABASE_URL_REPLICA") or shared or primary
    return Settings(
        primary_database_url=primary,
        replica_database_url=replica,
        pool_max_connections=int(env.get("DB_POOL_MAX", "20")),
        pool_idle_timeout=int(env.get("DB_POOL_IDLE_TIMEOUT", "30")),
        pool_acquire_timeout=float(env.get("DB_POOL_ACQUIRE_TIMEOUT", "2")),
        session_secret=env.get("SESSION_SECRET", "dev-session-secret"),
        session_ttl_seconds=int(env.get("SESSION_TTL_SECONDS", str(7 * 24 * 60 * 60))),
        secure_cookies=_flag(env.get("SECURE_COOKIES"), True),
        issuer_url=env.get("ISSUER_URL", "").rstrip("/"),
        client_id=env.get("OIDC_CLIENT_ID", ""),
        client_secret=env.get("OIDC_CLIENT_SECRET") or None,
        allowed_domains=_split(env.get("ALLOWED_DOMAINS")),
        log_level=env.get("LOG_LEVEL", "INFO").upper(),
        create_schema=_flag(env.get("CREATE_SCHEMA"), True),
    )


state: Optional[Settings] = None


def get_settings() -> Settings:
    global state
    if state is None:
        state = load_settings()
    return state


def set_settings(settings: Optional[Settings]):
    global state
    state = settings


def override(**changes) -> Settings:
    """Replace individual fields of the current settings, returning the new value."""
    updated = get_settings()._replace(**changes)
    set_settings(updated)
    return updated
