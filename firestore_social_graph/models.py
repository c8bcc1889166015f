"""
Document models for the social graph.

Layout in Firestore::

    users/{uid}                          User (profile, counters, status)
    users/{uid}/friends/{otherUid}       Friend edge, mirrored on the other user
    users/{uid}/following/{followee}     Following edge
    users/{uid}/followers/{follower}     Follower edge, mirror of Following
    friend_requests/{from}_{to}          FriendRequest
    communities/{communityId}            Community (members array + count)
    communities_members/{uid}_{cid}      CommunityMembership
"""

from datetime import datetime, timezone
from typing import List, Optional, Union

from .enums import MemberRole, RequestStatus
from .firestore_model import BaseFirestoreModel
from .pydantic_compat import Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Older clients wrote ISO strings instead of timestamps.
Timestamp = Optional[Union[datetime, str]]


class User(BaseFirestoreModel):
    class Settings:
        name = "users"

    name: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")
    followers_count: int = Field(default=0, alias="followersCount")
    following_count: int = Field(default=0, alias="followingCount")
    current_status: Optional[str] = Field(default=None, alias="currentStatus")
    custom_statuses: List[str] = Field(default_factory=list, alias="customStatuses")
    status_updated_at: Timestamp = Field(default=None, alias="statusUpdatedAt")

    @property
    def label(self) -> str:
        return self.name or self.display_name or "Unknown"


class FriendRequest(BaseFirestoreModel):
    class Settings:
        name = "friend_requests"

    from_user_id: str = Field(alias="fromUserId")
    to_user_id: str = Field(alias="toUserId")
    status: RequestStatus = RequestStatus.PENDING
    created_at: Timestamp = Field(default_factory=utcnow, alias="createdAt")
    accepted_at: Timestamp = Field(default=None, alias="acceptedAt")

    @staticmethod
    def pair_id(from_user_id: str, to_user_id: str) -> str:
        return f"{from_user_id}_{to_user_id}"

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING

    def involves(self, user_id: str) -> bool:
        return user_id in (self.from_user_id, self.to_user_id)


class Edge(BaseFirestoreModel):
    """
    One side of a relationship stored under the owning user.  The document
    id is the other user's id; ``userId`` repeats it but is missing on
    some legacy documents.
    """

    user_id: Optional[str] = Field(default=None, alias="userId")

    @property
    def other_id(self) -> str:
        return self.user_id or self.id


class Friend(Edge):
    class Settings:
        name = "friends"
        parent = User

    added_at: Timestamp = Field(default_factory=utcnow, alias="addedAt")


class Following(Edge):
    class Settings:
        name = "following"
        parent = User

    followed_at: Timestamp = Field(default_factory=utcnow, alias="followedAt")


class Follower(Edge):
    class Settings:
        name = "followers"
        parent = User

    followed_at: Timestamp = Field(default_factory=utcnow, alias="followedAt")


class Community(BaseFirestoreModel):
    class Settings:
        name = "communities"

    name: Optional[str] = None
    members: List[str] = Field(default_factory=list)
    members_count: int = 0
    # Legacy field: a number on old documents, an array on newer ones.
    community_members: Optional[Union[int, List[str]]] = None


class CommunityMembership(BaseFirestoreModel):
    class Settings:
        name = "communities_members"

    user_id: str
    community_id: str
    joined_at: Timestamp = Field(default_factory=utcnow, alias="joinedAt")
    role: MemberRole = MemberRole.MEMBER
    validated: bool = True

    @staticmethod
    def membership_id(user_id: str, community_id: str) -> str:
        return f"{user_id}_{community_id}"


DOCUMENT_MODELS = [
    User,
    FriendRequest,
    Friend,
    Following,
    Follower,
    Community,
    CommunityMembership,
]
