"""Login endpoints — password gate with escalating lockout.

POST /api/login    — check the password, set the session cookie on success
POST /api/logout   — drop the session cookie
GET  /api/session  — whether the caller is logged in / admin
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from escapebook.api.deps import client_address, get_settings, get_throttle, has_session, is_admin
from escapebook.api.routers.comments import read_body, read_json_object
from escapebook.config import Settings
from escapebook.exceptions import LockedError, MalformedInputError
from escapebook.models import LoginStage
from escapebook.session import SESSION_COOKIE, issue_token
from escapebook.throttle import LoginThrottle

router = APIRouter(prefix="/api", tags=["login"])

STAGE_MESSAGES = {
    LoginStage.SUCCESS: "Welcome in.",
    LoginStage.NORMAL: "Please, take your time and try carefully.",
    LoginStage.WARNING1: "Guessing blindly is a reckless move.",
    LoginStage.WARNING2: "Final warning. Come in through the proper route.",
    LoginStage.LOCKED: "By your karma, you may not join the game until the lockout ends.",
}


class LoginRequest(BaseModel):
    password: Optional[str] = None


async def read_login_payload(request: Request) -> dict:
    """JSON body, or the urlencoded body a plain HTML login form posts."""
    content_type = request.headers.get("content-type", "").split(";")[0].strip().lower()
    if content_type != "application/x-www-form-urlencoded":
        return await read_json_object(request)
    body = await read_body(request)
    try:
        fields = parse_qs(body.decode("utf-8"), keep_blank_values=True)
    except UnicodeDecodeError:
        raise MalformedInputError("Form body must be UTF-8") from None
    return {name: values[-1] for name, values in fields.items()}


@router.post("/login")
async def login(
    request: Request,
    throttle: LoginThrottle = Depends(get_throttle),
    settings: Settings = Depends(get_settings),
):
    """Check a password attempt for the calling client."""
    payload = await read_login_payload(request)
    try:
        body = LoginRequest.model_validate(payload)
    except ValidationError:
        raise MalformedInputError("password must be a string") from None

    outcome = throttle.authenticate(client_address(request, settings), body.password or "")

    if outcome.stage == LoginStage.LOCKED:
        raise LockedError(
            STAGE_MESSAGES[LoginStage.LOCKED],
            count=outcome.count,
            locked_until=outcome.locked_until,
            retry_after_seconds=outcome.retry_after_seconds(datetime.now(timezone.utc)),
        )

    if not outcome.ok:
        return JSONResponse(
            status_code=401,
            content={
                "ok": False,
                "stage": outcome.stage.value,
                "message": STAGE_MESSAGES[outcome.stage],
                "count": outcome.count,
            },
        )

    response = JSONResponse(
        content={"ok": True, "stage": outcome.stage.value, "message": STAGE_MESSAGES[outcome.stage]},
    )
    response.set_cookie(
        SESSION_COOKIE,
        issue_token(settings.session_secret, settings.session_max_age),
        max_age=settings.session_max_age,
        path="/",
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
    )
    return response


@router.post("/logout")
async def logout():
    response = JSONResponse(content={"ok": True})
    response.delete_cookie(SESSION_COOKIE, path="/")
    return response


@router.get("/session")
async def session(request: Request, settings: Settings = Depends(get_settings)):
    return {
        "authenticated": has_session(request, settings),
        "admin": is_admin(request, settings),
    }
