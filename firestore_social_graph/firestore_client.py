import os
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from google.cloud.firestore_v1 import AsyncClient
from google.cloud.firestore_v1.async_transaction import async_transactional

from .config import SocialGraphSettings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FirestoreDB:
    """
    Store handle shared by every document model and relationship service.

    It wraps a :class:`google.cloud.firestore_v1.AsyncClient` that can point to:

    * **A local Firestore emulator** (local development and CI).
    * **The real Firestore backend** (default when no emulator host is set).
    * **Any injected client** passed as ``client=``, e.g. an in-memory
      double in unit tests.
    """

    def __init__(
        self,
        project_id: str,
        database: Optional[str] = None,
        credentials=None,
        emulator_host: Optional[str] = None,
        client: Optional[Any] = None,
    ):
        """
        Parameters
        ----------
        project_id :
            Google Cloud project identifier.
        database :
            Optional Firestore **database ID** (defaults to the default database).
        credentials :
            Explicit credentials object; if *None*, the Google SDK default
            credentials chain is used.
        emulator_host :
            ``host:port`` of a running **Firestore emulator**.
        client :
            Pre-built client to use instead of creating an ``AsyncClient``.
        """
        self.project_id = project_id
        self.database = database
        self.credentials = credentials
        self._emulator_host = emulator_host

        self.client = client if client is not None else self._init_client()

    @classmethod
    def from_settings(cls, settings: SocialGraphSettings, credentials=None) -> "FirestoreDB":
        return cls(
            project_id=settings.project_id,
            database=settings.database,
            credentials=credentials,
            emulator_host=settings.emulator_host,
        )

    def _init_client(self) -> AsyncClient:
        """
        Instantiate an :class:`AsyncClient`.

        With an emulator host the ``FIRESTORE_EMULATOR_HOST`` variable is
        exported so the Google libraries route traffic locally; otherwise
        any stale value is removed so the real backend is used.
        """
        if self._emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = self._emulator_host
            logger.info(f"Using Firestore emulator on {self._emulator_host}")
        else:
            os.environ.pop("FIRESTORE_EMULATOR_HOST", None)
        return AsyncClient(
            project=self.project_id,
            database=self.database,
            credentials=self.credentials,
        )

    def use_emulator(self, host: str = "localhost:8080"):
        """Point this handle at a local emulator and recreate the client."""
        self._emulator_host = host
        self.client = self._init_client()
        logger.info(f"Emulator enabled on {host}")

    def clear_emulator(self):
        """Reconnect to the production Firestore endpoint."""
        self._emulator_host = None
        self.client = self._init_client()
        logger.info("Emulator disabled, using real Firestore.")

    def mock_firestore_for_tests(self):
        """Replace the underlying client with a :class:`unittest.mock.MagicMock`."""
        from unittest.mock import MagicMock

        self.client = MagicMock()
        logger.info("Firestore client replaced with MagicMock for unit tests.")

    async def run_transaction(
        self, callback: Callable[..., Awaitable[T]], *args, **kwargs
    ) -> T:
        """
        Run ``callback(transaction, *args, **kwargs)`` as one atomic
        read-modify-write unit.

        All reads must happen before the first staged write.  The SDK
        retries the callback when the transaction is contended; if the
        callback raises, nothing it staged is committed and the exception
        propagates unchanged.
        """
        transaction = self.client.transaction()

        @async_transactional
        async def _in_transaction(transaction):
            return await callback(transaction, *args, **kwargs)

        return await _in_transaction(transaction)
