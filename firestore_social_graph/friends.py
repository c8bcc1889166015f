"""
Friend request lifecycle and the symmetric friend edges it produces.

    none -> pending -> accepted        (both edges written with the status change)
                    -> rejected/cancelled  (request document deleted)
"""

import logging
from typing import List, Optional

from .enums import BatchOperation, FriendshipState, OrderByDirection, RequestDirection, RequestStatus
from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
    operation_result,
    store_errors,
)
from .models import Friend, FriendRequest, User, utcnow
from .pydantic_compat import BaseModel
from .service import RelationshipService

logger = logging.getLogger(__name__)


class FriendshipStatus(BaseModel):
    status: FriendshipState
    request_id: Optional[str] = None


class FriendService(RelationshipService):

    # ------------------------------------------------------------------ #
    # Requests                                                           #
    # ------------------------------------------------------------------ #

    @operation_result("Friend request sent")
    async def send_request(self, from_user_id: str, to_user_id: str):
        """
        Create a pending request from ``from_user_id`` to ``to_user_id``.

        A pending request in the opposite direction is reported as a
        conflict instead of being accepted on the recipient's behalf.
        """
        self.require_distinct(from_user_id, to_user_id, "Cannot send friend request to yourself")
        request_id = await self.db.run_transaction(
            self._send_in_transaction, from_user_id, to_user_id
        )
        logger.info(f"Friend request {request_id} sent: {from_user_id} -> {to_user_id}")
        return {"request_id": request_id}

    async def _send_in_transaction(self, transaction, from_user_id: str, to_user_id: str) -> str:
        if not await User.exists(to_user_id, transaction=transaction):
            raise NotFoundError("User not found")
        if await Friend.exists(to_user_id, parent=from_user_id, transaction=transaction):
            raise ConflictError("Already friends")

        forward = await FriendRequest.get(
            FriendRequest.pair_id(from_user_id, to_user_id), transaction=transaction
        )
        reverse = await FriendRequest.get(
            FriendRequest.pair_id(to_user_id, from_user_id), transaction=transaction
        )
        # Requests written by older clients have random ids.
        if (forward and forward.is_pending) or await self._find_pending(
            from_user_id, to_user_id, transaction=transaction
        ):
            raise ConflictError("Friend request already sent")
        if (reverse and reverse.is_pending) or await self._find_pending(
            to_user_id, from_user_id, transaction=transaction
        ):
            raise ConflictError("This user already sent you a friend request")

        request = FriendRequest(
            id=FriendRequest.pair_id(from_user_id, to_user_id),
            from_user_id=from_user_id,
            to_user_id=to_user_id,
        )
        await FriendRequest.batch_write([(BatchOperation.CREATE, request)], transaction=transaction)
        return request.id

    @operation_result("Friend request accepted")
    async def accept_request(self, request_id: str, from_user_id: str, accepter_id: str):
        """
        Accept ``request_id`` as ``accepter_id``: the status change and
        both friend edges commit together or not at all.
        """
        self.require_user_id(request_id, "Request ID")
        self.require_distinct(accepter_id, from_user_id, "Cannot accept your own friend request")
        await self.db.run_transaction(
            self._accept_in_transaction, request_id, from_user_id, accepter_id
        )
        logger.info(f"Friend request {request_id} accepted: {from_user_id} <-> {accepter_id}")

    async def _accept_in_transaction(
        self, transaction, request_id: str, from_user_id: str, accepter_id: str
    ) -> None:
        request = await FriendRequest.get(request_id, transaction=transaction)
        if request is None:
            raise NotFoundError("Friend request not found")
        if request.to_user_id != accepter_id:
            raise AuthorizationError("Only the recipient can accept this friend request")
        if request.from_user_id != from_user_id:
            raise ValidationError("Friend request sender does not match")
        if not request.is_pending:
            raise ConflictError("Friend request is no longer pending")

        now = utcnow()
        request.status = RequestStatus.ACCEPTED.value
        request.accepted_at = now
        await FriendRequest.batch_write(
            [
                (BatchOperation.UPDATE, request),
                (BatchOperation.CREATE, Friend(id=from_user_id, user_id=from_user_id, added_at=now).bind_parent(accepter_id)),
                (BatchOperation.CREATE, Friend(id=accepter_id, user_id=accepter_id, added_at=now).bind_parent(from_user_id)),
            ],
            transaction=transaction,
        )

    @operation_result("Friend request rejected")
    async def reject_request(self, request_id: str, actor_id: Optional[str] = None):
        """Delete the request.  When ``actor_id`` is given it must be the recipient."""
        await self._delete_request(request_id, actor_id, "to_user_id")

    @operation_result("Friend request cancelled")
    async def cancel_request(self, request_id: str, actor_id: Optional[str] = None):
        """Delete the request.  When ``actor_id`` is given it must be the sender."""
        await self._delete_request(request_id, actor_id, "from_user_id")

    async def _delete_request(self, request_id: str, actor_id: Optional[str], party: str) -> None:
        self.require_user_id(request_id, "Request ID")
        if actor_id is None:
            # Deleting a missing document succeeds, so repeats are harmless.
            await FriendRequest.document_ref(request_id).delete()
            return

        async def _delete_in_transaction(transaction):
            request = await FriendRequest.get(request_id, transaction=transaction)
            if request is None:
                return
            if getattr(request, party) != actor_id:
                raise AuthorizationError("You are not allowed to change this friend request")
            await FriendRequest.batch_write([(BatchOperation.DELETE, request)], transaction=transaction)

        await self.db.run_transaction(_delete_in_transaction)

    # ------------------------------------------------------------------ #
    # Friend edges                                                       #
    # ------------------------------------------------------------------ #

    @operation_result("Friend removed")
    async def remove_friend(self, user_id: str, friend_id: str):
        """Delete both friend edges and any request left between the pair."""
        self.require_distinct(user_id, friend_id, "Cannot remove yourself as a friend")

        async def _remove_in_transaction(transaction):
            mine = await Friend.get(friend_id, parent=user_id, transaction=transaction)
            theirs = await Friend.get(user_id, parent=friend_id, transaction=transaction)
            if mine is None and theirs is None:
                raise NotFoundError("You are not friends with this user")
            stale_requests = [
                FriendRequest(id=FriendRequest.pair_id(a, b), from_user_id=a, to_user_id=b)
                for a, b in ((user_id, friend_id), (friend_id, user_id))
            ]
            await Friend.batch_write(
                [(BatchOperation.DELETE, edge) for edge in (mine, theirs) if edge is not None]
                + [(BatchOperation.DELETE, request) for request in stale_requests],
                transaction=transaction,
            )

        await self.db.run_transaction(_remove_in_transaction)
        logger.info(f"Friendship removed: {user_id} <-> {friend_id}")

    # ------------------------------------------------------------------ #
    # Reads                                                              #
    # ------------------------------------------------------------------ #

    async def check_if_friends(self, user_id: str, other_id: str) -> bool:
        with store_errors("checking friendship"):
            return await self.bounded(Friend.exists(other_id, parent=user_id))

    async def get_friends(self, user_id: str) -> List[str]:
        self.require_user_id(user_id)
        with store_errors("listing friends"):
            edges = await self.bounded(User(id=user_id).subcollection(Friend).all())
        return [edge.other_id for edge in edges]

    async def get_friend_requests(
        self, user_id: str, direction: RequestDirection = RequestDirection.RECEIVED
    ) -> List[FriendRequest]:
        """Pending requests addressed to (``received``) or sent by (``sent``) a user, newest first."""
        self.require_user_id(user_id)
        direction = RequestDirection(direction)
        field = (
            FriendRequest.to_user_id if direction == RequestDirection.RECEIVED
            else FriendRequest.from_user_id
        )

        async def _collect():
            return [
                request
                async for request in FriendRequest.find(
                    filters=[field == user_id, FriendRequest.status == RequestStatus.PENDING.value],
                    order_by=(FriendRequest.created_at, OrderByDirection.DESCENDING),
                )
            ]

        with store_errors("listing friend requests"):
            return await self.bounded(_collect())

    async def get_friendship_status(self, user_id: str, other_id: str) -> FriendshipStatus:
        """
        Relationship between two users as seen by ``user_id``.

        Friendship wins over any pending request, so an orphaned request
        left behind an existing friendship is never reported.
        """
        self.require_user_id(user_id)
        self.require_user_id(other_id, "Target user ID")
        if user_id == other_id:
            return FriendshipStatus(status=FriendshipState.SELF)

        async def _resolve() -> FriendshipStatus:
            if await Friend.exists(other_id, parent=user_id):
                return FriendshipStatus(status=FriendshipState.FRIENDS)
            sent = await self._find_pending(user_id, other_id)
            if sent is not None:
                return FriendshipStatus(status=FriendshipState.PENDING_SENT, request_id=sent.id)
            received = await self._find_pending(other_id, user_id)
            if received is not None:
                return FriendshipStatus(status=FriendshipState.PENDING_RECEIVED, request_id=received.id)
            return FriendshipStatus(status=FriendshipState.NONE)

        with store_errors("resolving friendship status"):
            return await self.bounded(_resolve())

    async def _find_pending(
        self, from_user_id: str, to_user_id: str, transaction=None
    ) -> Optional[FriendRequest]:
        return await FriendRequest.find_one(
            filters=[
                FriendRequest.from_user_id == from_user_id,
                FriendRequest.to_user_id == to_user_id,
                FriendRequest.status == RequestStatus.PENDING.value,
            ],
            transaction=transaction,
        )
