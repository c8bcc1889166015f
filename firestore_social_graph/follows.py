"""
Follow/follower ledger.

A follow is stored twice, ``users/{follower}/following/{followee}`` and
``users/{followee}/followers/{follower}``, with ``followingCount`` and
``followersCount`` kept on the user documents.  Both sides and both
counters change in one transaction.
"""

import logging
from typing import List

from google.cloud.firestore_v1 import Increment

from .enums import BatchOperation
from .errors import ConflictError, NotFoundError, operation_result, store_errors
from .models import Follower, Following, User, utcnow
from .service import RelationshipService

logger = logging.getLogger(__name__)


class FollowService(RelationshipService):

    @operation_result("Followed")
    async def follow(self, follower_id: str, followee_id: str):
        self.require_distinct(follower_id, followee_id, "Cannot follow yourself")
        await self.db.run_transaction(self._follow_in_transaction, follower_id, followee_id)
        logger.info(f"{follower_id} now follows {followee_id}")

    async def _follow_in_transaction(self, transaction, follower_id: str, followee_id: str) -> None:
        if not await User.exists(follower_id, transaction=transaction):
            raise NotFoundError("User not found")
        if not await User.exists(followee_id, transaction=transaction):
            raise NotFoundError("User not found")
        if await Following.exists(followee_id, parent=follower_id, transaction=transaction):
            raise ConflictError("Already following this user")
        # A mirror left behind by an earlier partial write is already counted.
        mirror_exists = await Follower.exists(follower_id, parent=followee_id, transaction=transaction)

        now = utcnow()
        await Following.batch_write(
            [
                (BatchOperation.CREATE, Following(id=followee_id, user_id=followee_id, followed_at=now).bind_parent(follower_id)),
                (BatchOperation.CREATE, Follower(id=follower_id, user_id=follower_id, followed_at=now).bind_parent(followee_id)),
            ],
            transaction=transaction,
        )
        transaction.update(User.document_ref(follower_id), {"followingCount": Increment(1)})
        if not mirror_exists:
            transaction.update(User.document_ref(followee_id), {"followersCount": Increment(1)})

    @operation_result("Unfollowed")
    async def unfollow(self, follower_id: str, followee_id: str):
        self.require_distinct(follower_id, followee_id, "Cannot unfollow yourself")
        await self.db.run_transaction(self._unfollow_in_transaction, follower_id, followee_id)
        logger.info(f"{follower_id} unfollowed {followee_id}")

    async def _unfollow_in_transaction(self, transaction, follower_id: str, followee_id: str) -> None:
        follower = await User.get(follower_id, transaction=transaction)
        followee = await User.get(followee_id, transaction=transaction)
        following_edge = await Following.get(followee_id, parent=follower_id, transaction=transaction)
        follower_edge = await Follower.get(follower_id, parent=followee_id, transaction=transaction)
        if following_edge is None and follower_edge is None:
            raise NotFoundError("You are not following this user")

        await Following.batch_write(
            [(BatchOperation.DELETE, edge) for edge in (following_edge, follower_edge) if edge is not None],
            transaction=transaction,
        )
        # Each counter only moves for the side that actually existed, and never below zero.
        if following_edge is not None and follower is not None and follower.following_count > 0:
            transaction.update(User.document_ref(follower_id), {"followingCount": Increment(-1)})
        if follower_edge is not None and followee is not None and followee.followers_count > 0:
            transaction.update(User.document_ref(followee_id), {"followersCount": Increment(-1)})

    async def is_following(self, follower_id: str, followee_id: str) -> bool:
        with store_errors("checking follow"):
            return await self.bounded(Following.exists(followee_id, parent=follower_id))

    async def get_following(self, user_id: str) -> List[str]:
        self.require_user_id(user_id)
        with store_errors("listing following"):
            edges = await self.bounded(User(id=user_id).subcollection(Following).all())
        return [edge.other_id for edge in edges]

    async def get_followers(self, user_id: str) -> List[str]:
        self.require_user_id(user_id)
        with store_errors("listing followers"):
            edges = await self.bounded(User(id=user_id).subcollection(Follower).all())
        return [edge.other_id for edge in edges]
