"""
Current and custom status stored on the user document
(``currentStatus``, ``customStatuses``, ``statusUpdatedAt``).

Unlike the relationship services these helpers raise
:class:`~firestore_social_graph.errors.RelationshipError` subclasses
instead of returning an ``OperationResult``.
"""

import asyncio
import logging
import re
import time
from typing import Dict, Iterable, Optional, Tuple

from google.cloud.firestore_v1 import ArrayUnion

from .config import SocialGraphSettings
from .errors import ConflictError, NotFoundError, RelationshipError, ValidationError, store_errors
from .firestore_client import FirestoreDB
from .models import User, utcnow
from .pydantic_compat import BaseModel
from .service import RelationshipService

logger = logging.getLogger(__name__)

_INVALID_STATUS_CHARS = re.compile(r"[<>{}\[\]\\]")


class StatusValidation(BaseModel):
    valid: bool
    error: Optional[str] = None


def validate_status(status: Optional[str], max_length: int = 50) -> StatusValidation:
    if not status or not isinstance(status, str):
        return StatusValidation(valid=False, error="Status must be a non-empty string")
    trimmed = status.strip()
    if not trimmed:
        return StatusValidation(valid=False, error="Status cannot be empty")
    if len(trimmed) > max_length:
        return StatusValidation(valid=False, error=f"Status must be {max_length} characters or less")
    if _INVALID_STATUS_CHARS.search(trimmed):
        return StatusValidation(valid=False, error="Status contains invalid characters")
    return StatusValidation(valid=True)


class StatusService(RelationshipService):

    def __init__(self, db: FirestoreDB, settings: Optional[SocialGraphSettings] = None):
        super().__init__(db, settings)
        # user id -> (status, monotonic time cached)
        self._cache: Dict[str, Tuple[Optional[str], float]] = {}

    # ------------------------------------------------------------------ #
    # Cache                                                              #
    # ------------------------------------------------------------------ #

    def _cached(self, user_id: str) -> Tuple[bool, Optional[str]]:
        entry = self._cache.get(user_id)
        if entry is None:
            return False, None
        status, stored_at = entry
        if time.monotonic() - stored_at >= self.settings.status_cache_ttl:
            self._cache.pop(user_id, None)
            return False, None
        return True, status

    def _remember(self, user_id: str, status: Optional[str]) -> None:
        self._cache.pop(user_id, None)
        max_size = self.settings.status_cache_max_size
        if len(self._cache) >= max_size:
            # Drop the oldest entries to make room for this one.
            remove_count = len(self._cache) - max_size + 1
            oldest = sorted(self._cache.items(), key=lambda item: item[1][1])[:remove_count]
            for key, _ in oldest:
                del self._cache[key]
        self._cache[user_id] = (status, time.monotonic())

    def clear_status_cache(self) -> None:
        self._cache.clear()

    # ------------------------------------------------------------------ #
    # Status operations                                                  #
    # ------------------------------------------------------------------ #

    def _checked(self, status: Optional[str]) -> str:
        result = validate_status(status, self.settings.max_status_length)
        if not result.valid:
            raise ValidationError(result.error)
        return status.strip()

    async def initialize_user_status(self, user_id: str) -> bool:
        """Add empty status fields to a user document, creating it if needed."""
        self.require_user_id(user_id)

        async def _initialize(transaction):
            snapshot = await User.document_ref(user_id).get(transaction=transaction)
            now = utcnow()
            if not snapshot.exists:
                transaction.set(
                    User.document_ref(user_id),
                    {"currentStatus": None, "customStatuses": [], "statusUpdatedAt": now, "createdAt": now},
                )
                return
            data = snapshot.to_dict() or {}
            if "currentStatus" not in data or "customStatuses" not in data:
                transaction.update(
                    User.document_ref(user_id),
                    {"currentStatus": None, "customStatuses": [], "statusUpdatedAt": now},
                )

        with store_errors("initializing user status"):
            await self.bounded(self.db.run_transaction(_initialize))
        return True

    async def get_user_status(self, user_id: str, use_cache: bool = True) -> Optional[str]:
        if not user_id:
            return None
        if use_cache:
            hit, status = self._cached(user_id)
            if hit:
                return status
        try:
            with store_errors("fetching user status"):
                user = await self.bounded(User.get(user_id))
        except RelationshipError as exc:
            logger.error(f"Error fetching status for {user_id}: {exc.message}")
            return None
        if user is None:
            return None
        status = user.current_status or None
        self._remember(user_id, status)
        return status

    async def update_status(self, user_id: str, new_status: str) -> bool:
        self.require_user_id(user_id)
        status = self._checked(new_status)
        with store_errors("updating user status"):
            await self.bounded(
                User.document_ref(user_id).update(
                    {"currentStatus": status, "statusUpdatedAt": utcnow()}
                )
            )
        self._remember(user_id, status)
        return True

    async def add_custom_status(self, user_id: str, custom_status: str) -> bool:
        """
        Save ``custom_status`` in the user's list and make it current.
        A status already in the list is a conflict and nothing is written.
        """
        self.require_user_id(user_id)
        if not custom_status or not custom_status.strip():
            raise ValidationError("Custom status cannot be empty")
        status = self._checked(custom_status)

        async def _add(transaction):
            user = await User.get(user_id, transaction=transaction)
            if user is None:
                raise NotFoundError("User not found")
            if status in user.custom_statuses:
                raise ConflictError("This custom status already exists")
            transaction.update(
                User.document_ref(user_id),
                {
                    "customStatuses": ArrayUnion([status]),
                    "currentStatus": status,
                    "statusUpdatedAt": utcnow(),
                },
            )

        with store_errors("adding custom status"):
            await self.bounded(self.db.run_transaction(_add))
        self._remember(user_id, status)
        return True

    async def clear_status(self, user_id: str) -> bool:
        self.require_user_id(user_id)
        with store_errors("clearing user status"):
            await self.bounded(
                User.document_ref(user_id).update(
                    {"currentStatus": None, "statusUpdatedAt": utcnow()}
                )
            )
        self._cache.pop(user_id, None)
        return True

    async def get_batch_user_statuses(self, user_ids: Iterable[str]) -> Dict[str, Optional[str]]:
        user_ids = list(user_ids)
        if not user_ids:
            return {}
        statuses = await asyncio.gather(*(self.get_user_status(user_id) for user_id in user_ids))
        return dict(zip(user_ids, statuses))
