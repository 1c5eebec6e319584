"""Escapebook API — FastAPI application.

Public comment board plus the password gate that guards posting.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from escapebook.config import get_cors_settings
from escapebook.exceptions import EscapebookError, StoreError

from escapebook.api.deps import close_store, init_store
from escapebook.api.routers import comments, login

from escapebook import __version__ as _VERSION

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_store()
    yield
    close_store()


app = FastAPI(
    title="Escapebook API",
    description="One-comment-per-visitor guestbook behind a throttled password gate.",
    version=_VERSION,
    lifespan=lifespan,
)

cors_settings = get_cors_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_settings["allow_origins"],
    allow_methods=cors_settings["allow_methods"],
    allow_headers=cors_settings["allow_headers"],
    allow_credentials=cors_settings["allow_credentials"],
)


# --- Exception handlers ---

@app.exception_handler(StoreError)
async def _store_error(request: Request, exc: StoreError):
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error": "Internal storage error", "code": exc.code},
    )


@app.exception_handler(EscapebookError)
async def _escapebook_error(request: Request, exc: EscapebookError):
    return JSONResponse(status_code=exc.status_code, content={"ok": False, **exc.to_dict()})


# --- Routers ---

app.include_router(comments.router)
app.include_router(login.router)


# --- Health ---

@app.get("/health")
async def health():
    return {"status": "ok", "version": _VERSION}
