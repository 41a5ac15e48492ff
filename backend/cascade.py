"""
Transactional cascade deletes for the Project -> BuildingType -> Space -> Element tree.

Every delete runs inside one store transaction: descendants are removed
before their parent, and any failure rolls the whole subtree back.
Stored project images are removed only after the transaction commits.
"""
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from bson.objectid import ObjectId

from access_control import EntityKind, collection_for, label_for
from errors import NotFound
from logger import get_logger
from store import BUILDING_TYPES, ELEMENTS, PROJECTS, SPACES, USERS, to_object_id

logger = get_logger(__name__)

Authorize = Callable[[Any], None]


@dataclass
class DeleteSummary:
    projects: int = 0
    building_types: int = 0
    spaces: int = 0
    elements: int = 0
    users: int = 0
    images: List[str] = field(default_factory=list)
    space_ids: List[ObjectId] = field(default_factory=list)

    def as_dict(self) -> Dict[str, int]:
        return {
            "projects": self.projects,
            "buildingTypes": self.building_types,
            "spaces": self.spaces,
            "elements": self.elements,
            "users": self.users,
        }


class CascadeDeleter:
    def __init__(self, store, image_storage=None):
        self.store = store
        self.image_storage = image_storage

    def delete_subtree(self, kind: EntityKind, entity_id: Any,
                       authorize: Optional[Authorize] = None) -> DeleteSummary:
        """Delete a node and all its descendants atomically.

        `authorize` is called with the open session after the root is found
        and before anything is removed; it raises to refuse the delete.
        """
        object_id = to_object_id(entity_id)
        summary = DeleteSummary()
        with self.store.transaction() as session:
            root = None
            if object_id is not None:
                root = self.store.find_by_id(collection_for(kind), object_id, session=session)
            if root is None:
                raise NotFound(f"{label_for(kind)} not found")
            if authorize is not None:
                authorize(session)

            if kind is EntityKind.PROJECT:
                self._delete_project(session, root, summary)
            elif kind is EntityKind.BUILDING_TYPE:
                self._delete_building_types(session, [object_id], summary)
                self._detach_spaces(session, root["project"], summary.space_ids)
            elif kind is EntityKind.SPACE:
                self._delete_spaces(session, [object_id], summary)
                building_type = self.store.find_by_id(BUILDING_TYPES, root["buildingType"], session=session)
                if building_type is not None:
                    self._detach_spaces(session, building_type["project"], summary.space_ids)
            else:
                summary.elements += self.store.delete_by_id(ELEMENTS, object_id, session=session)

        logger.info("Deleted %s %s: %s", kind.value, object_id, summary.as_dict())
        self._remove_images(summary.images)
        return summary

    def delete_user(self, user_id: Any) -> DeleteSummary:
        """Remove a user, every project they own, and their shares on other projects."""
        object_id = to_object_id(user_id)
        summary = DeleteSummary()
        with self.store.transaction() as session:
            user = self.store.find_by_id(USERS, object_id, session=session) if object_id else None
            if user is None:
                raise NotFound("User not found")

            for project in self.store.find(PROJECTS, {"owner": object_id}, session=session):
                self._delete_project(session, project, summary)

            for project in self.store.find(PROJECTS, {"sharedWith.user": object_id}, session=session):
                remaining = [s for s in project.get("sharedWith", []) if s.get("user") != object_id]
                self.store.update_by_id(PROJECTS, project["_id"], {"sharedWith": remaining}, session=session)

            summary.users += self.store.delete_by_id(USERS, object_id, session=session)

        logger.info("Deleted user %s: %s", object_id, summary.as_dict())
        self._remove_images(summary.images)
        return summary

    def clear_space(self, space_id: ObjectId, session) -> int:
        """Remove every element of a space within the caller's transaction."""
        return self.store.delete_many(ELEMENTS, {"space": space_id}, session=session)

    def _delete_project(self, session, project: Dict[str, Any], summary: DeleteSummary):
        project_id = project["_id"]
        building_type_ids = [
            bt["_id"] for bt in self.store.find(BUILDING_TYPES, {"project": project_id}, session=session)
        ]
        self._delete_building_types(session, building_type_ids, summary)
        summary.projects += self.store.delete_by_id(PROJECTS, project_id, session=session)
        if project.get("image"):
            summary.images.append(project["image"])

    def _delete_building_types(self, session, building_type_ids: List[ObjectId], summary: DeleteSummary):
        if not building_type_ids:
            return
        space_ids = [
            space["_id"]
            for space in self.store.find(SPACES, {"buildingType": {"$in": building_type_ids}}, session=session)
        ]
        self._delete_spaces(session, space_ids, summary)
        summary.building_types += self.store.delete_many(
            BUILDING_TYPES, {"_id": {"$in": building_type_ids}}, session=session
        )

    def _delete_spaces(self, session, space_ids: List[ObjectId], summary: DeleteSummary):
        if not space_ids:
            return
        summary.elements += self.store.delete_many(ELEMENTS, {"space": {"$in": space_ids}}, session=session)
        summary.spaces += self.store.delete_many(SPACES, {"_id": {"$in": space_ids}}, session=session)
        summary.space_ids.extend(space_ids)

    def _detach_spaces(self, session, project_id: ObjectId, space_ids: List[ObjectId]):
        project = self.store.find_by_id(PROJECTS, project_id, session=session)
        if project is None or not space_ids:
            return
        remaining = [s for s in project.get("spaces", []) if s not in space_ids]
        if len(remaining) != len(project.get("spaces", [])):
            self.store.update_by_id(PROJECTS, project_id, {"spaces": remaining}, session=session)

    def _remove_images(self, images: List[str]):
        if self.image_storage is None:
            return
        for path in images:
            try:
                if self.image_storage.exists(path):
                    self.image_storage.delete(path)
            except OSError as e:
                # The tree is already gone; a leftover file is only logged
                logger.warn("Could not remove stored image %s: %s", path, e)
