import asyncio
import logging
from contextlib import contextmanager
from functools import wraps
from typing import Any, Dict, Optional

from google.api_core.exceptions import GoogleAPIError, NotFound

from .pydantic_compat import BaseModel, DocumentValidationError

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Something went wrong. Please try again."


class RelationshipError(Exception):
    """Base class for every failure a relationship operation reports."""

    code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(RelationshipError):
    """Malformed input, rejected before any read or write."""

    code = "validation"


class ConflictError(RelationshipError):
    """The requested state already exists (duplicate request, already friends...)."""

    code = "conflict"


class NotFoundError(RelationshipError):
    code = "not_found"


class AuthorizationError(RelationshipError):
    """The acting user is not a party allowed to perform the change."""

    code = "forbidden"


class TransientStoreError(RelationshipError):
    """Network or backend failure while talking to Firestore."""

    code = "unavailable"

    def __init__(self, message: str = GENERIC_FAILURE_MESSAGE):
        super().__init__(message)


class OperationResult(BaseModel):
    """Uniform outcome handed back to the UI layer."""

    success: bool
    message: str
    error: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, message: str, data: Optional[Dict[str, Any]] = None) -> "OperationResult":
        return cls(success=True, message=message, data=data)

    @classmethod
    def failed(cls, exc: RelationshipError) -> "OperationResult":
        return cls(success=False, message=exc.message, error=exc.code)


@contextmanager
def store_errors(action: str):
    """
    Re-raise Firestore client failures, and stored documents that fail model
    validation, as :class:`TransientStoreError`.
    """
    try:
        yield
    except NotFound as exc:
        raise NotFoundError("Document not found") from exc
    except GoogleAPIError as exc:
        logger.error(f"Firestore error while {action}: {exc}", exc_info=True)
        raise TransientStoreError() from exc
    except DocumentValidationError as exc:
        logger.error(f"Stored document rejected while {action}: {exc}")
        raise TransientStoreError() from exc


def operation_result(success_message: str):
    """
    Turn a service coroutine into one that always returns an
    :class:`OperationResult`.

    The wrapped coroutine may return a dict, which becomes ``data``.
    It is bounded by the service's ``timeout`` and is never retried.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs) -> OperationResult:
            try:
                data = await asyncio.wait_for(func(self, *args, **kwargs), timeout=self.timeout)
            except RelationshipError as exc:
                logger.warning(f"{func.__name__} failed: {exc.message}")
                return OperationResult.failed(exc)
            except asyncio.TimeoutError:
                logger.error(f"{func.__name__} timed out after {self.timeout}s")
                return OperationResult.failed(
                    TransientStoreError("The operation timed out. Please try again.")
                )
            except GoogleAPIError as exc:
                logger.error(f"{func.__name__} failed against Firestore: {exc}", exc_info=True)
                return OperationResult.failed(TransientStoreError())
            except DocumentValidationError as exc:
                # A stored document the models cannot read.
                logger.error(f"{func.__name__} read an invalid document: {exc}")
                return OperationResult.failed(TransientStoreError())
            return OperationResult.ok(success_message, data=data)

        return wrapper

    return decorator
