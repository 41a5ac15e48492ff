"""
Access-control resolver for the Project -> BuildingType -> Space -> Element tree.

Given any node of the tree and the acting user, walk up to the owning
Project and decide read/write permission from its owner and sharing list.
The walk is a pure read; callers run it once per request, inside the
same transaction as the mutation when there is one.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from bson.objectid import ObjectId

from errors import Forbidden, NotFound
from logger import get_logger
from store import BUILDING_TYPES, ELEMENTS, PROJECTS, SPACES, to_object_id

logger = get_logger(__name__)

EDITOR = "editor"
VIEWER = "viewer"
SHARE_ROLES = (EDITOR, VIEWER)


class EntityKind(str, Enum):
    PROJECT = "project"
    BUILDING_TYPE = "buildingType"
    SPACE = "space"
    ELEMENT = "element"


# kind -> (collection, parent reference field, parent kind, label used in messages)
CHAIN = {
    EntityKind.ELEMENT: (ELEMENTS, "space", EntityKind.SPACE, "Element"),
    EntityKind.SPACE: (SPACES, "buildingType", EntityKind.BUILDING_TYPE, "Space"),
    EntityKind.BUILDING_TYPE: (BUILDING_TYPES, "project", EntityKind.PROJECT, "Building type"),
    EntityKind.PROJECT: (PROJECTS, None, None, "Project"),
}


def collection_for(kind: EntityKind) -> str:
    return CHAIN[kind][0]


def label_for(kind: EntityKind) -> str:
    return CHAIN[kind][3]


def project_permissions(project: Dict[str, Any], user_id: Any) -> Tuple[bool, bool]:
    """Return (allowed, write_allowed) for a user on a project document."""
    user_id = str(user_id)
    if str(project.get("owner")) == user_id:
        return True, True
    for share in project.get("sharedWith") or []:
        if str(share.get("user")) == user_id:
            return True, share.get("role") == EDITOR
    return False, False


@dataclass
class AccessResult:
    allowed: bool
    write_allowed: bool
    reason: Optional[str] = None
    # Ancestors fetched during the walk, keyed by EntityKind
    chain: Dict[EntityKind, Dict[str, Any]] = field(default_factory=dict)

    @property
    def project(self) -> Dict[str, Any]:
        return self.chain[EntityKind.PROJECT]

    def entity(self, kind: EntityKind) -> Dict[str, Any]:
        return self.chain[kind]

    def require_read(self) -> "AccessResult":
        if not self.allowed:
            raise Forbidden(self.reason or "Not authorized to access this resource")
        return self

    def require_write(self, message: str) -> "AccessResult":
        self.require_read()
        if not self.write_allowed:
            raise Forbidden(message)
        return self


class AccessResolver:
    """Resolves permissions by walking from a node up to its Project."""

    def __init__(self, store):
        self.store = store

    def load(self, kind: EntityKind, entity_id: Any, session=None) -> Dict[str, Any]:
        """Fetch a single node or raise NotFound naming its level."""
        object_id = to_object_id(entity_id)
        doc = None
        if object_id is not None:
            doc = self.store.find_by_id(collection_for(kind), object_id, session=session)
        if doc is None:
            raise NotFound(f"{label_for(kind)} not found")
        return doc

    def walk(self, kind: EntityKind, entity_id: Any, session=None) -> Dict[EntityKind, Dict[str, Any]]:
        chain: Dict[EntityKind, Dict[str, Any]] = {}
        current_kind: Optional[EntityKind] = kind
        current_id = entity_id
        while current_kind is not None:
            doc = self.load(current_kind, current_id, session=session)
            chain[current_kind] = doc
            _, parent_field, parent_kind, _ = CHAIN[current_kind]
            current_kind = parent_kind
            current_id = doc.get(parent_field) if parent_field else None
        return chain

    def resolve(self, kind: EntityKind, entity_id: Any, user_id: Any, session=None) -> AccessResult:
        chain = self.walk(kind, entity_id, session=session)
        allowed, write_allowed = project_permissions(chain[EntityKind.PROJECT], user_id)
        reason = None
        if not allowed:
            reason = f"Not authorized to access this {label_for(kind).lower()}"
            logger.warn("User %s denied access to %s %s", user_id, kind.value, entity_id)
        return AccessResult(allowed=allowed, write_allowed=write_allowed, reason=reason, chain=chain)


def is_owner(project: Dict[str, Any], user_id: Any) -> bool:
    return str(project.get("owner")) == str(user_id)


def user_object_id(user_id: Any) -> ObjectId:
    object_id = to_object_id(user_id)
    if object_id is None:
        raise NotFound("User not found")
    return object_id
