"""
Bound accessor so ``user.subcollection(Follower).find()`` reads like a
property of the owner instead of ``Follower.find(parent=user)``.

This is not a pydantic field, only a query helper.
"""

from typing import TYPE_CHECKING, AsyncGenerator, List, Optional, Type

if TYPE_CHECKING:
    from .firestore_model import BaseFirestoreModel


class SubCollectionAccessor:
    """
    Query and write helper for one subcollection under one owner.

    Example:
        async for edge in user.subcollection(Following).find():
            print(edge.user_id)
    """

    def __init__(self, parent: "BaseFirestoreModel", child_cls: Type["BaseFirestoreModel"]):
        if child_cls.get_parent_model() is not type(parent):
            raise ValueError(
                f"{child_cls.__name__} does not declare "
                f"Settings.parent = {type(parent).__name__}"
            )
        self._parent = parent
        self._child_cls = child_cls

    async def add(self, doc: "BaseFirestoreModel") -> "BaseFirestoreModel":
        return await doc.save(parent=self._parent)

    async def get(self, doc_id: str, transaction=None) -> Optional["BaseFirestoreModel"]:
        return await self._child_cls.get(doc_id, parent=self._parent, transaction=transaction)

    async def find(self, filters=None, **kwargs) -> AsyncGenerator:
        async for doc in self._child_cls.find(filters=filters, parent=self._parent, **kwargs):
            yield doc

    async def all(self) -> List["BaseFirestoreModel"]:
        return [doc async for doc in self.find()]

    async def ids(self) -> List[str]:
        return [doc.id async for doc in self.find()]

    async def count(self, filters=None) -> int:
        return await self._child_cls.count(filters=filters or [], parent=self._parent)

    async def exists(self, doc_id: str, transaction=None) -> bool:
        return await self._child_cls.exists(doc_id, parent=self._parent, transaction=transaction)
