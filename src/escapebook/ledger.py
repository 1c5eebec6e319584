"""Comment board: ordered index, one comment per identity, compacting deletes.

Key layout in the key-value store:

    index                   JSON list of comment ids, display order
    comment:<id>            JSON comment record
    claim:<identity>        JSON comment id authored by that identity
    reverseClaim:<id>       identity hash that authored the comment

Nothing here is transactional. Submission writes record, then index, then
claims: a crash in between leaves either an invisible orphan record or a
visible comment whose author may post once more. Deletion writes the shortened
index first so the deleted comment disappears before compaction starts; a crash
mid-compaction leaves ids that list_comments skips until the next delete.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime, timezone
from typing import Callable, Optional

from pydantic import ValidationError

from escapebook.config import (
    DEFAULT_AUTHOR_PREFIX,
    DEFAULT_PAGE_LIMIT,
    MAX_PAGE_LIMIT,
    IdScheme,
    Settings,
)
from escapebook.exceptions import (
    CommentNotFoundError,
    DuplicateSubmissionError,
    ForbiddenError,
    MalformedInputError,
    UnauthenticatedError,
)
from escapebook.identity import IdentityHasher, secrets_match, short_hash
from escapebook.locking import BOARD_LOCK, LockProvider, NullLocks, identity_lock
from escapebook.models import Comment, CommentId, CommentPage, DeleteResult, ListOrder
from escapebook.sanitize import sanitize_comment
from escapebook.store import KeyValueStore, read_json, write_json

logger = logging.getLogger(__name__)

INDEX_KEY = "index"


def comment_key(comment_id: CommentId) -> str:
    return f"comment:{comment_id}"


def claim_key(identity: str) -> str:
    return f"claim:{identity}"


def reverse_claim_key(comment_id: CommentId) -> str:
    return f"reverseClaim:{comment_id}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_int(value, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


class CommentLedger:
    """The public comment board."""

    def __init__(
        self,
        store: KeyValueStore,
        hasher: IdentityHasher,
        admin_secret: str = "",
        author_prefix: str = DEFAULT_AUTHOR_PREFIX,
        id_scheme: IdScheme = IdScheme.SEQUENTIAL,
        release_identity_on_delete: bool = True,
        locks: Optional[LockProvider] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self._store = store
        self._hasher = hasher
        self._admin_secret = admin_secret
        self._author_prefix = author_prefix
        self._id_scheme = id_scheme
        self._release = release_identity_on_delete
        self._locks = locks or NullLocks()
        self._now = now

    @classmethod
    def from_settings(
        cls,
        store: KeyValueStore,
        settings: Settings,
        locks: Optional[LockProvider] = None,
    ) -> CommentLedger:
        return cls(
            store,
            IdentityHasher(settings.secret_salt),
            admin_secret=settings.admin_secret,
            author_prefix=settings.author_prefix,
            id_scheme=settings.id_scheme,
            release_identity_on_delete=settings.release_identity_on_delete,
            locks=locks,
        )

    # --- Store helpers ---

    def _load_index(self) -> list[CommentId]:
        raw = read_json(self._store, INDEX_KEY)
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning("Comment index is not a list; treating board as empty")
            return []
        return [i for i in raw if isinstance(i, (int, str)) and not isinstance(i, bool)]

    def _save_index(self, index: list[CommentId]) -> None:
        write_json(self._store, INDEX_KEY, index)

    def _load_comment(self, comment_id: CommentId) -> Optional[Comment]:
        raw = read_json(self._store, comment_key(comment_id))
        if raw is None:
            return None
        try:
            return Comment.model_validate(raw)
        except ValidationError:
            logger.warning("Skipping unreadable comment record %s", comment_id)
            return None

    def _save_comment(self, comment: Comment) -> None:
        write_json(self._store, comment_key(comment.id), comment.model_dump(mode="json"))

    def _label(self, position: int) -> str:
        return f"{self._author_prefix}{position}"

    def _allocate_id(self, index: list[CommentId]) -> CommentId:
        if self._id_scheme == IdScheme.TIME_DERIVED:
            millis = int(self._now().timestamp() * 1000)
            return f"{millis:x}-{uuid.uuid4().hex[:8]}"
        numeric = [i for i in index if isinstance(i, int)]
        return max(numeric) + 1 if numeric else 1

    def coerce_id(self, value) -> CommentId:
        """Parse a caller-supplied comment id for the configured id scheme."""
        if value is None or isinstance(value, bool):
            raise MalformedInputError("Comment id is required")
        if self._id_scheme == IdScheme.TIME_DERIVED:
            text = str(value).strip()
            if not text:
                raise MalformedInputError("Comment id is required")
            return text
        if isinstance(value, int):
            return value
        # ASCII digits only; "²" passes isdigit() but int() rejects it
        if isinstance(value, str) and value.strip().isascii() and value.strip().isdecimal():
            return int(value.strip())
        raise MalformedInputError(f"Invalid comment id: {value!r}")

    # --- Operations ---

    def list_comments(
        self,
        page=1,
        limit=DEFAULT_PAGE_LIMIT,
        order: ListOrder = ListOrder.OLDEST,
    ) -> CommentPage:
        """Return one page of visible comments. Never raises for bad paging input."""
        limit = min(max(_as_int(limit, DEFAULT_PAGE_LIMIT), 1), MAX_PAGE_LIMIT)
        index = self._load_index()
        if order == ListOrder.NEWEST:
            index = list(reversed(index))
        total = len(index)
        pages = max(1, math.ceil(total / limit))
        page = min(max(_as_int(page, 1), 1), pages)

        start = (page - 1) * limit
        items = []
        for comment_id in index[start:start + limit]:
            comment = self._load_comment(comment_id)
            if comment is None:
                logger.warning("Index entry %s has no record; skipping", comment_id)
                continue
            items.append(comment)

        return CommentPage(
            total=total, page=page, limit=limit, pages=pages, order=order, items=items,
        )

    def submit_comment(
        self,
        client_address: Optional[str],
        raw_text,
        is_authenticated: bool = False,
        is_privileged: bool = False,
    ) -> Comment:
        """Post a comment. Non-privileged callers get one comment per identity."""
        if not (is_authenticated or is_privileged):
            raise UnauthenticatedError("Login required to post a comment")

        text = sanitize_comment(raw_text)

        if is_privileged:
            return self._append(text, identity=None)

        identity = self._hasher(client_address)
        with self._locks.hold(identity_lock(identity)):
            if self._store.get(claim_key(identity)) is not None:
                raise DuplicateSubmissionError("You have already left a comment")
            return self._append(text, identity=identity)

    def _append(self, text: str, identity: Optional[str]) -> Comment:
        index = self._load_index()
        comment_id = self._allocate_id(index)
        position = len(index) + 1
        comment = Comment(
            id=comment_id,
            position=position,
            text=text,
            author_label=self._label(position),
            created_at=self._now(),
        )

        self._save_comment(comment)
        index.append(comment_id)
        self._save_index(index)
        if identity is not None:
            write_json(self._store, claim_key(identity), comment_id)
            self._store.put(reverse_claim_key(comment_id), identity)
        else:
            self._store.delete(reverse_claim_key(comment_id))
        return comment

    def delete_comment(self, admin_token: Optional[str], comment_id) -> DeleteResult:
        """Admin-only: remove a comment, free its author, and renumber the rest."""
        if not secrets_match(admin_token, self._admin_secret):
            raise ForbiddenError("Administrator secret required")

        target = self.coerce_id(comment_id)
        with self._locks.hold(BOARD_LOCK):
            index = self._load_index()
            if target not in index:
                raise CommentNotFoundError(f"Comment not found: {target}")

            remaining = [i for i in index if i != target]
            self._save_index(remaining)
            self._store.delete(comment_key(target))
            released = self._release_claim(target)

            compacted = self._compact(remaining)

        logger.info("Deleted comment %s; %d remain", target, len(compacted))
        return DeleteResult(
            deleted_id=target, remaining=len(compacted), released_identity=released,
        )

    def _release_claim(self, comment_id: CommentId) -> bool:
        owner = self._store.get(reverse_claim_key(comment_id))
        if owner is None:
            return False
        # The reverse key must go regardless: compaction may hand this id to another comment.
        self._store.delete(reverse_claim_key(comment_id))
        if not self._release:
            return False
        self._store.delete(claim_key(owner))
        logger.info("Released claim for identity %s", short_hash(owner))
        return True

    def _compact(self, index: list[CommentId]) -> list[CommentId]:
        """Renumber positions (and sequential ids) to 1..n. Returns the new index."""
        entries = []
        for old_id in index:
            comment = self._load_comment(old_id)
            if comment is None:
                logger.warning("Dropping index entry %s with no record", old_id)
                self._release_claim(old_id)
                continue
            entries.append(comment)

        sequential = self._id_scheme == IdScheme.SEQUENTIAL
        moved: list[tuple[CommentId, CommentId, Optional[str]]] = []
        new_index: list[CommentId] = []

        # Read every owner before writing, since new keys can shadow old ones.
        owners = {}
        if sequential:
            for position, comment in enumerate(entries, start=1):
                if comment.id != position:
                    owners[comment.id] = self._store.get(reverse_claim_key(comment.id))

        for position, comment in enumerate(entries, start=1):
            new_id = position if sequential else comment.id
            new_index.append(new_id)
            label = self._label(position)
            if new_id == comment.id and comment.position == position and comment.author_label == label:
                continue
            self._save_comment(
                comment.model_copy(update={"id": new_id, "position": position, "author_label": label})
            )
            if new_id != comment.id:
                moved.append((comment.id, new_id, owners.get(comment.id)))

        for old_id, new_id, owner in moved:
            if owner is None:
                self._store.delete(reverse_claim_key(new_id))
                continue
            self._store.put(reverse_claim_key(new_id), owner)
            if self._store.get(claim_key(owner)) is not None:
                write_json(self._store, claim_key(owner), new_id)

        live = set(new_index)
        for old_id, _, _ in moved:
            if old_id not in live:
                self._store.delete(comment_key(old_id))
                self._store.delete(reverse_claim_key(old_id))

        self._save_index(new_index)
        if moved:
            logger.info("Compacted board: %d comments renumbered", len(moved))
        return new_index
