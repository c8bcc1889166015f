import asyncio
from typing import Awaitable, Optional, TypeVar

from .config import SocialGraphSettings
from .errors import TransientStoreError, ValidationError
from .firestore_client import FirestoreDB
from .firestore_model import init_firestore_odm
from .models import DOCUMENT_MODELS

T = TypeVar("T")


class RelationshipService:
    """
    Shared wiring for the services: the injected store handle and the
    settings.  Constructing a service registers the document models
    against ``db``.
    """

    def __init__(self, db: FirestoreDB, settings: Optional[SocialGraphSettings] = None):
        self.db = db
        self.settings = settings or SocialGraphSettings()
        init_firestore_odm(db, DOCUMENT_MODELS)

    @property
    def timeout(self) -> float:
        return self.settings.operation_timeout

    async def bounded(self, awaitable: Awaitable[T]) -> T:
        """Await with the configured timeout, raising a store error when it expires."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise TransientStoreError("The operation timed out. Please try again.") from exc

    @staticmethod
    def require_user_id(user_id: Optional[str], label: str = "User ID") -> str:
        if not user_id or not str(user_id).strip():
            raise ValidationError(f"{label} is required")
        return user_id

    @classmethod
    def require_distinct(cls, user_id: str, other_id: str, message: str) -> None:
        cls.require_user_id(user_id)
        cls.require_user_id(other_id, "Target user ID")
        if user_id == other_id:
            raise ValidationError(message)
