import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import models  # noqa: F401  (registers tables on Base.metadata)
from .auth import close_oidc_clients
from .config import get_settings
from .crud import Storage
from .db import Base, close_connections, init_cluster
from .routers import admin, client, contact, health
from .routers import auth as auth_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cluster = init_cluster(settings)
    if settings.create_schema:
        # Create tables if not existing. Schema lives on the primary only.
        Base.metadata.create_all(bind=cluster.primary)
        with cluster.PrimarySession() as db:
            purged = Storage(db, db).purge_expired_sessions()
        if purged:
            logger.info("purged %d expired sessions", purged)
    try:
        yield
    finally:
        # uvicorn turns SIGTERM/SIGINT into this shutdown path
        close_connections()
        close_oidc_clients()


app = FastAPI(title="Client Portal API", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(loc), "message": err.get("msg", ""), "type": err.get("type", "")})
    return JSONResponse(status_code=400, content={"detail": "Invalid request data", "errors": errors})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    # Full detail goes to the server log only.
    logger.exception("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


@app.get("/health")
async def health_check():
    return {"status": "ok"}


app.include_router(auth_router.router, prefix="/api", tags=["auth"])
app.include_router(health.router, prefix="/api")
app.include_router(client.router, prefix="/api", tags=["portal"])
app.include_router(contact.router, prefix="/api", tags=["contact"])
app.include_router(admin.router, prefix="/api")
