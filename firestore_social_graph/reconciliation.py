"""
One-shot repair jobs for relationship data that drifted out of symmetry.

They are meant to be run by an operator, not wired to user actions.
Every job is idempotent: on consistent data it reads but never writes.
Progress goes to the module logger and a report model is returned;
nothing is raised to the caller.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional, Set, Tuple

from google.api_core.exceptions import GoogleAPIError
from google.cloud.firestore_v1 import ArrayUnion

from .enums import BatchOperation
from .firestore_client import FirestoreDB
from .firestore_model import init_firestore_odm
from .models import (
    DOCUMENT_MODELS,
    Community,
    CommunityMembership,
    Follower,
    Following,
    Friend,
    User,
    utcnow,
)
from .pydantic_compat import BaseModel, DocumentValidationError

logger = logging.getLogger(__name__)

RULE = "=" * 50

# Per-item failures are counted and the scan goes on.
ITEM_ERRORS = (GoogleAPIError, DocumentValidationError)


class RepairReport(BaseModel):
    success: bool = True
    errors: int = 0
    error: Optional[str] = None


class FollowersRepairReport(RepairReport):
    total_follows_processed: int = 0
    total_followers_created: int = 0


class FriendEdgesRepairReport(RepairReport):
    total_edges_processed: int = 0
    total_edges_created: int = 0


class MembershipRepairReport(RepairReport):
    total_memberships_processed: int = 0
    total_communities_updated: int = 0


async def _user_labels() -> List[Tuple[str, str]]:
    """
    (id, label) of every user document.

    Only the name fields are read, so a user document the full model
    rejects is still visited.
    """
    users = []
    async for snapshot in User.collection_ref().select(["name", "displayName"]).stream():
        data = snapshot.to_dict() or {}
        users.append((snapshot.id, data.get("name") or data.get("displayName") or "Unknown"))
    return users


def _log_summary(title: str, counts: Dict[str, int]) -> None:
    logger.info(RULE)
    logger.info(title)
    for label, value in counts.items():
        logger.info(f"{label}: {value}")
    logger.info(RULE)


async def fix_followers_subcollection(db: FirestoreDB) -> FollowersRepairReport:
    """
    Create the missing ``users/{followee}/followers/{follower}`` mirror for
    every ``users/{follower}/following/{followee}`` edge.

    The mirror keeps the original ``followedAt``; counters are left alone
    (see :func:`verify_followers_structure`).
    """
    init_firestore_odm(db, DOCUMENT_MODELS)
    report = FollowersRepairReport()
    logger.info("Starting followers subcollection repair")

    try:
        users = await _user_labels()
    except GoogleAPIError as exc:
        logger.error(f"Followers repair failed: {exc}", exc_info=True)
        return FollowersRepairReport(success=False, error=str(exc))

    logger.info(f"Found {len(users)} users to process")
    for user_id, label in users:
        try:
            following = [edge async for edge in Following.find(parent=user_id)]
            if not following:
                continue
            logger.debug(f"Processing {label} ({user_id}): {len(following)} following entries")

            for edge in following:
                target_id = edge.other_id
                report.total_follows_processed += 1

                if not await User.exists(target_id):
                    logger.warning(f"Target user {target_id} does not exist, skipping")
                    continue
                if await Follower.exists(user_id, parent=target_id):
                    continue

                mirror = Follower(
                    id=user_id,
                    user_id=user_id,
                    followed_at=edge.followed_at or utcnow(),
                ).bind_parent(target_id)
                await Follower.batch_write([(BatchOperation.CREATE, mirror)])
                report.total_followers_created += 1
                logger.info(f"Created follower entry {user_id} in {target_id}'s followers")
        except ITEM_ERRORS as exc:
            logger.error(f"Error processing user {user_id}: {exc}")
            report.errors += 1

    _log_summary(
        "Followers repair complete",
        {
            "Total follows processed": report.total_follows_processed,
            "New follower entries created": report.total_followers_created,
            "Errors encountered": report.errors,
        },
    )
    return report


async def verify_followers_structure(db: FirestoreDB, user_id: str) -> bool:
    """
    Compare a user's stored ``followersCount``/``followingCount`` with the
    real subcollection sizes.  Mismatches are logged, not repaired.
    """
    init_firestore_odm(db, DOCUMENT_MODELS)
    logger.info(f"Verifying followers structure for user: {user_id}")
    try:
        user = await User.get(user_id)
        if user is None:
            logger.warning(f"User {user_id} not found")
            return False
        following_size = await user.subcollection(Following).count()
        followers_size = await user.subcollection(Follower).count()
    except ITEM_ERRORS as exc:
        logger.error(f"Verification failed for {user_id}: {exc}")
        return False

    logger.info(f"User: {user.label}")
    logger.info(f"Followers count (stored): {user.followers_count}, subcollection: {followers_size}")
    logger.info(f"Following count (stored): {user.following_count}, subcollection: {following_size}")

    consistent = True
    if user.followers_count != followers_size:
        logger.warning(
            f"followersCount is {user.followers_count} but {followers_size} follower "
            f"documents exist; run fix_followers_subcollection() and recount"
        )
        consistent = False
    if user.following_count != following_size:
        logger.warning(
            f"followingCount is {user.following_count} but {following_size} following "
            f"documents exist"
        )
        consistent = False
    if consistent:
        logger.info("Followers structure looks good")
    return consistent


async def fix_friend_edges(db: FirestoreDB) -> FriendEdgesRepairReport:
    """Recreate the missing mirror of every one-sided friend edge."""
    init_firestore_odm(db, DOCUMENT_MODELS)
    report = FriendEdgesRepairReport()
    logger.info("Starting friend edge repair")

    try:
        users = await _user_labels()
    except GoogleAPIError as exc:
        logger.error(f"Friend edge repair failed: {exc}", exc_info=True)
        return FriendEdgesRepairReport(success=False, error=str(exc))

    # Every edge is read before the first mirror is written, so mirrors
    # created by this run are not counted as existing edges.
    edges_by_user: List[Tuple[str, List[Friend]]] = []
    for user_id, _label in users:
        try:
            edges_by_user.append((user_id, [edge async for edge in Friend.find(parent=user_id)]))
        except ITEM_ERRORS as exc:
            logger.error(f"Error reading friends of {user_id}: {exc}")
            report.errors += 1

    for user_id, edges in edges_by_user:
        try:
            for edge in edges:
                friend_id = edge.other_id
                report.total_edges_processed += 1

                if not await User.exists(friend_id):
                    logger.warning(f"Friend {friend_id} of {user_id} does not exist, skipping")
                    continue
                if await Friend.exists(user_id, parent=friend_id):
                    continue

                mirror = Friend(
                    id=user_id,
                    user_id=user_id,
                    added_at=edge.added_at or utcnow(),
                ).bind_parent(friend_id)
                await Friend.batch_write([(BatchOperation.CREATE, mirror)])
                report.total_edges_created += 1
                logger.info(f"Restored friend edge {friend_id} -> {user_id}")
        except ITEM_ERRORS as exc:
            logger.error(f"Error processing user {user_id}: {exc}")
            report.errors += 1

    _log_summary(
        "Friend edge repair complete",
        {
            "Total edges processed": report.total_edges_processed,
            "Mirror edges created": report.total_edges_created,
            "Errors encountered": report.errors,
        },
    )
    return report


async def fix_community_members(db: FirestoreDB) -> MembershipRepairReport:
    """
    Make every community's ``members`` array include each user holding a
    membership record, and ``members_count`` equal the array length.
    Members without a record are left in place.
    """
    init_firestore_odm(db, DOCUMENT_MODELS)
    report = MembershipRepairReport()
    logger.info("Starting community membership repair")

    members_by_community: Dict[str, Set[str]] = defaultdict(set)
    try:
        async for membership in CommunityMembership.find():
            report.total_memberships_processed += 1
            members_by_community[membership.community_id].add(membership.user_id)
    except ITEM_ERRORS as exc:
        logger.error(f"Membership repair failed: {exc}", exc_info=True)
        return MembershipRepairReport(success=False, error=str(exc))

    async def _heal(transaction, community_id: str, member_ids: Set[str]) -> bool:
        community = await Community.get(community_id, transaction=transaction)
        if community is None:
            logger.warning(f"Community {community_id} does not exist, skipping")
            return False
        missing = sorted(member_ids - set(community.members))
        expected_count = len(community.members) + len(missing)
        if not missing and community.members_count == expected_count:
            return False
        updates = {"members_count": expected_count}
        if missing:
            updates["members"] = ArrayUnion(missing)
        transaction.update(Community.document_ref(community_id), updates)
        return True

    for community_id, member_ids in members_by_community.items():
        try:
            if await db.run_transaction(_heal, community_id, member_ids):
                report.total_communities_updated += 1
                logger.info(f"Repaired members of community {community_id}")
        except ITEM_ERRORS as exc:
            logger.error(f"Error repairing community {community_id}: {exc}")
            report.errors += 1

    _log_summary(
        "Community membership repair complete",
        {
            "Total memberships processed": report.total_memberships_processed,
            "Communities updated": report.total_communities_updated,
            "Errors encountered": report.errors,
        },
    )
    return report
