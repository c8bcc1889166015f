from .config import SocialGraphSettings
from .enums import (
    BatchOperation,
    FirestoreOperators,
    FriendshipState,
    MemberRole,
    OrderByDirection,
    RequestDirection,
    RequestStatus,
)
from .errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    OperationResult,
    RelationshipError,
    TransientStoreError,
    ValidationError,
)
from .firestore_client import FirestoreDB
from .firestore_fields import FirestoreField
from .firestore_model import BaseFirestoreModel, init_firestore_odm
from .follows import FollowService
from .friends import FriendService, FriendshipStatus
from .memberships import MembershipService
from .models import (
    DOCUMENT_MODELS,
    Community,
    CommunityMembership,
    Follower,
    Following,
    Friend,
    FriendRequest,
    User,
)
from .reconciliation import (
    FollowersRepairReport,
    FriendEdgesRepairReport,
    MembershipRepairReport,
    fix_community_members,
    fix_followers_subcollection,
    fix_friend_edges,
    verify_followers_structure,
)
from .social_graph import SocialGraph
from .statuses import StatusService, StatusValidation, validate_status
from .subcollection_accessor import SubCollectionAccessor

__all__ = [
    "AuthorizationError",
    "BaseFirestoreModel",
    "BatchOperation",
    "Community",
    "CommunityMembership",
    "ConflictError",
    "DOCUMENT_MODELS",
    "FirestoreDB",
    "FirestoreField",
    "FirestoreOperators",
    "FollowService",
    "Follower",
    "FollowersRepairReport",
    "Following",
    "Friend",
    "FriendEdgesRepairReport",
    "FriendRequest",
    "FriendService",
    "FriendshipState",
    "FriendshipStatus",
    "MemberRole",
    "MembershipRepairReport",
    "MembershipService",
    "NotFoundError",
    "OperationResult",
    "OrderByDirection",
    "RelationshipError",
    "RequestDirection",
    "RequestStatus",
    "SocialGraph",
    "SocialGraphSettings",
    "StatusService",
    "StatusValidation",
    "SubCollectionAccessor",
    "TransientStoreError",
    "User",
    "ValidationError",
    "fix_community_members",
    "fix_followers_subcollection",
    "fix_friend_edges",
    "init_firestore_odm",
    "validate_status",
    "verify_followers_structure",
]
