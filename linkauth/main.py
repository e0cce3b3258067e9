import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError

from linkauth.config import settings
from linkauth.database import init_db
from linkauth.routers import admin, auth, health, users
from linkauth.services.sessions import session_store
from linkauth.services.users import user_store

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="linkauth")

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(settings.allowed_origins),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

app.include_router(health.router)
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(admin.router)


@app.exception_handler(OperationalError)
def storage_unavailable(request: Request, exc: OperationalError) -> JSONResponse:
    LOGGER.error("Storage error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"detail": "Storage temporarily unavailable", "retryable": True},
        headers={"Retry-After": "1"},
    )


@app.on_event("startup")
def startup() -> None:
    logging.basicConfig(level=settings.log_level)
    settings.validate()
    init_db()
    if settings.seed_admin_email:
        user_store.ensure_admin(settings.seed_admin_email)
    purged = session_store.purge_expired()
    if purged:
        LOGGER.info("Purged %s expired session(s)", purged)


@app.get("/")
def root():
    return {"status": "Backend running"}
