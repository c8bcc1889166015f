"""
Community membership ledger.

A membership is a ``communities_members/{uid}_{communityId}`` record plus
the denormalized ``members`` array and ``members_count`` on the community
document.  Both change in one transaction keyed on the community.
"""

import logging
from typing import Any, Dict, List, Optional

from google.cloud.firestore_v1 import ArrayRemove, ArrayUnion, Increment

from .enums import BatchOperation
from .errors import ConflictError, NotFoundError, operation_result, store_errors
from .models import Community, CommunityMembership
from .service import RelationshipService

logger = logging.getLogger(__name__)


def _legacy_count(community: Community) -> bool:
    value = community.community_members
    return isinstance(value, int) and not isinstance(value, bool)


class MembershipService(RelationshipService):

    @operation_result("Joined community")
    async def join_community(self, user_id: str, community_id: str):
        self.require_user_id(user_id)
        self.require_user_id(community_id, "Community ID")
        membership_id = await self.db.run_transaction(self._join_in_transaction, user_id, community_id)
        logger.info(f"{user_id} joined community {community_id}")
        return {"membership_id": membership_id}

    async def _join_in_transaction(self, transaction, user_id: str, community_id: str) -> str:
        community = await Community.get(community_id, transaction=transaction)
        if community is None:
            raise NotFoundError("Community not found")
        if await self._find_membership(user_id, community_id, transaction=transaction):
            raise ConflictError("Already a member of this community")

        membership = CommunityMembership(
            id=CommunityMembership.membership_id(user_id, community_id),
            user_id=user_id,
            community_id=community_id,
        )
        await CommunityMembership.batch_write([(BatchOperation.CREATE, membership)], transaction=transaction)

        updates: Dict[str, Any] = {}
        if user_id not in community.members:
            updates["members"] = ArrayUnion([user_id])
            updates["members_count"] = Increment(1)
        if _legacy_count(community):
            updates["community_members"] = Increment(1)
        elif user_id not in (community.community_members or []):
            updates["community_members"] = ArrayUnion([user_id])
        if updates:
            transaction.update(Community.document_ref(community_id), updates)
        return membership.id

    @operation_result("Left community")
    async def leave_community(self, user_id: str, community_id: str):
        self.require_user_id(user_id)
        self.require_user_id(community_id, "Community ID")
        await self.db.run_transaction(self._leave_in_transaction, user_id, community_id)
        logger.info(f"{user_id} left community {community_id}")

    async def _leave_in_transaction(self, transaction, user_id: str, community_id: str) -> None:
        community = await Community.get(community_id, transaction=transaction)
        membership = await self._find_membership(user_id, community_id, transaction=transaction)
        if membership is None:
            raise NotFoundError("Not a member of this community")

        await CommunityMembership.batch_write([(BatchOperation.DELETE, membership)], transaction=transaction)
        if community is None:
            return

        updates: Dict[str, Any] = {}
        if user_id in community.members:
            updates["members"] = ArrayRemove([user_id])
            if community.members_count > 0:
                updates["members_count"] = Increment(-1)
        if _legacy_count(community):
            if community.community_members > 0:
                updates["community_members"] = Increment(-1)
        elif user_id in (community.community_members or []):
            updates["community_members"] = ArrayRemove([user_id])
        if updates:
            transaction.update(Community.document_ref(community_id), updates)

    async def check_membership(self, user_id: str, community_id: str) -> bool:
        """
        Membership lookup by the deterministic ``{uid}_{communityId}`` id,
        falling back to a field query for legacy records.
        """
        with store_errors("checking membership"):
            membership = await self.bounded(self._find_membership(user_id, community_id))
        return membership is not None

    async def get_user_communities(self, user_id: str) -> List[str]:
        self.require_user_id(user_id)

        async def _collect():
            return [
                membership.community_id
                async for membership in CommunityMembership.find(
                    filters=[CommunityMembership.user_id == user_id]
                )
            ]

        with store_errors("listing communities"):
            return await self.bounded(_collect())

    async def _find_membership(
        self, user_id: str, community_id: str, transaction=None
    ) -> Optional[CommunityMembership]:
        membership = await CommunityMembership.get(
            CommunityMembership.membership_id(user_id, community_id), transaction=transaction
        )
        if membership is not None:
            return membership
        return await CommunityMembership.find_one(
            filters=[
                CommunityMembership.user_id == user_id,
                CommunityMembership.community_id == community_id,
            ],
            transaction=transaction,
        )
