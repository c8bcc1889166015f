from typing import Optional

from .config import SocialGraphSettings
from .firestore_client import FirestoreDB
from .follows import FollowService
from .friends import FriendService
from .memberships import MembershipService
from .reconciliation import (
    FollowersRepairReport,
    FriendEdgesRepairReport,
    MembershipRepairReport,
    fix_community_members,
    fix_followers_subcollection,
    fix_friend_edges,
    verify_followers_structure,
)
from .statuses import StatusService


class SocialGraph:
    """
    Entry point that binds every relationship service to one store handle.

    >>> graph = SocialGraph(FirestoreDB(project_id="my-project"))
    >>> await graph.friends.send_request("alice", "bob")
    """

    def __init__(self, db: FirestoreDB, settings: Optional[SocialGraphSettings] = None):
        self.db = db
        self.settings = settings or SocialGraphSettings()
        self.friends = FriendService(db, self.settings)
        self.follows = FollowService(db, self.settings)
        self.memberships = MembershipService(db, self.settings)
        self.statuses = StatusService(db, self.settings)

    @classmethod
    def from_env(cls, credentials=None) -> "SocialGraph":
        settings = SocialGraphSettings.from_env()
        return cls(FirestoreDB.from_settings(settings, credentials=credentials), settings)

    async def fix_followers_subcollection(self) -> FollowersRepairReport:
        return await fix_followers_subcollection(self.db)

    async def verify_followers_structure(self, user_id: str) -> bool:
        return await verify_followers_structure(self.db, user_id)

    async def fix_friend_edges(self) -> FriendEdgesRepairReport:
        return await fix_friend_edges(self.db)

    async def fix_community_members(self) -> MembershipRepairReport:
        return await fix_community_members(self.db)
