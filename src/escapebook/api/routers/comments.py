"""Comment board endpoints.

GET    /api/comments              — list comments, paginated
POST   /api/comments              — post a comment (logged-in visitor or admin)
DELETE /api/comments              — admin delete, id in JSON body
DELETE /api/comments/{comment_id} — admin delete, id in path
"""

from __future__ import annotations

import json
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from escapebook.api.deps import (
    bearer_token,
    client_address,
    get_ledger,
    get_settings,
    has_session,
    is_admin,
)
from escapebook.config import MAX_BODY_BYTES, Settings
from escapebook.exceptions import MalformedInputError, TooLongError
from escapebook.ledger import CommentLedger
from escapebook.models import ListOrder

router = APIRouter(prefix="/api/comments", tags=["comments"])


class PostCommentRequest(BaseModel):
    text: Optional[str] = None


class DeleteCommentRequest(BaseModel):
    id: Union[int, str]


async def read_body(request: Request) -> bytes:
    """Raw request body, refusing anything over the payload cap."""
    body = await request.body()
    if len(body) > MAX_BODY_BYTES:
        raise TooLongError(f"Request body exceeds {MAX_BODY_BYTES} bytes")
    return body


async def read_json_object(request: Request) -> dict:
    """Parse the request body as a JSON object or raise MalformedInputError."""
    body = await read_body(request)
    try:
        payload = json.loads(body)
    except ValueError:
        raise MalformedInputError("Request body must be valid JSON") from None
    if not isinstance(payload, dict):
        raise MalformedInputError("Request body must be a JSON object")
    return payload


def _parse_order(value: Optional[str]) -> ListOrder:
    try:
        return ListOrder((value or ListOrder.OLDEST.value).lower())
    except ValueError:
        return ListOrder.OLDEST


@router.get("")
async def list_comments(
    page: Optional[str] = Query(default=None),
    limit: Optional[str] = Query(default=None),
    order: Optional[str] = Query(default=None),
    ledger: CommentLedger = Depends(get_ledger),
):
    """Return one page of comments. Out-of-range paging is clamped."""
    result = ledger.list_comments(
        page=page if page is not None else 1,
        limit=limit,
        order=_parse_order(order),
    )
    return result.model_dump(mode="json")


@router.post("")
async def post_comment(
    request: Request,
    ledger: CommentLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
):
    """Post a comment. Visitors need a login session; admins post freely."""
    payload = await read_json_object(request)
    try:
        body = PostCommentRequest.model_validate(payload)
    except ValidationError:
        raise MalformedInputError("text must be a string") from None

    comment = ledger.submit_comment(
        client_address(request, settings),
        body.text,
        is_authenticated=has_session(request, settings),
        is_privileged=is_admin(request, settings),
    )
    return JSONResponse(status_code=201, content=comment.model_dump(mode="json"))


@router.delete("")
async def delete_comment(
    request: Request,
    ledger: CommentLedger = Depends(get_ledger),
):
    """Admin-only: delete the comment named in the JSON body."""
    payload = await read_json_object(request)
    try:
        body = DeleteCommentRequest.model_validate(payload)
    except ValidationError:
        raise MalformedInputError("id is required") from None

    result = ledger.delete_comment(bearer_token(request), body.id)
    return result.model_dump(mode="json")


@router.delete("/{comment_id}")
async def delete_comment_by_path(
    comment_id: str,
    request: Request,
    ledger: CommentLedger = Depends(get_ledger),
):
    """Admin-only: delete a comment by id in the path."""
    result = ledger.delete_comment(bearer_token(request), comment_id)
    return result.model_dump(mode="json")
