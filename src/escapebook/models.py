"""Pydantic models for Escapebook records and operation results."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator

CommentId = Union[int, str]


# --- Enums ---

class LoginStage(str, Enum):
    SUCCESS = "success"
    NORMAL = "normal"
    WARNING1 = "warning1"
    WARNING2 = "warning2"
    LOCKED = "locked"


class ListOrder(str, Enum):
    OLDEST = "oldest"
    NEWEST = "newest"


# --- Comment board ---

class Comment(BaseModel):
    id: CommentId
    position: int = Field(ge=1)
    text: str
    author_label: str
    created_at: datetime

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: CommentId) -> CommentId:
        if isinstance(v, int) and v < 1:
            raise ValueError("sequential comment ids start at 1")
        if isinstance(v, str) and not v:
            raise ValueError("comment id must not be empty")
        return v


class CommentPage(BaseModel):
    total: int
    page: int
    limit: int
    pages: int
    order: ListOrder = ListOrder.OLDEST
    items: list[Comment] = Field(default_factory=list)


class DeleteResult(BaseModel):
    ok: bool = True
    deleted_id: CommentId
    remaining: int
    released_identity: bool = False


# --- Login throttle ---

class FailureRecord(BaseModel):
    count: int = 0
    lockout_until: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        return self.lockout_until is not None and now < self.lockout_until


class LoginOutcome(BaseModel):
    stage: LoginStage
    count: int = 0
    locked_until: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.stage == LoginStage.SUCCESS

    def retry_after_seconds(self, now: datetime) -> float:
        if self.locked_until is None:
            return 0.0
        return max(0.0, (self.locked_until - now).total_seconds())
