"""
Write operations for the project tree.

Composite project creation builds Project, BuildingTypes, Spaces and
Elements in one transaction; space updates that carry an element list
replace the space's elements in one transaction. Every operation runs the
access resolver first and validates before it mutates.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from bson.objectid import ObjectId
from pymongo.errors import PyMongoError

from access_control import SHARE_ROLES, AccessResolver, EntityKind, is_owner
from cascade import CascadeDeleter
from errors import Forbidden, NotFound, QuotaExceeded, ValidationError
from logger import get_logger
from models import (
    BuildingTypeInput, ElementInput, ProjectCreate, ProjectUpdate, ShareRequest, SpaceInput,
)
from store import BUILDING_TYPES, ELEMENTS, PROJECTS, SPACES, USERS, to_object_id
from validators import (
    BUILDING_TYPE_TYPES, BUILDING_VERSIONS, PROJECT_AREAS, SPACE_TYPES,
    derive_building_version, parse_calendar_date, require_name, validate_choice, validate_element,
)

logger = get_logger(__name__)

MAX_PROJECTS_PER_OWNER = 50

# Fields an element update may never overwrite
_ELEMENT_IMMUTABLE = ("_id", "space", "createdAt", "updatedAt")
_WALL_FIELDS = ("outsideCover", "buildMethod", "buildMethodIsolation", "isolationCoverage")


class ProjectBuilder:
    def __init__(self, store, resolver: AccessResolver, cascade: CascadeDeleter,
                 cities=None, images=None, max_projects: int = MAX_PROJECTS_PER_OWNER):
        self.store = store
        self.resolver = resolver
        self.cascade = cascade
        self.cities = cities
        self.images = images
        self.max_projects = max_projects

    # --- Projects ---
    def create_project(self, owner_id: ObjectId, payload: ProjectCreate) -> Dict[str, Any]:
        """Create a project with its embedded spaces and elements atomically."""
        owned = self.store.count(PROJECTS, {"owner": owner_id})
        if owned >= self.max_projects:
            raise QuotaExceeded(f"You have reached the maximum number of projects ({self.max_projects})")

        fields = self._project_fields(payload.model_dump(by_alias=True, exclude_none=True, exclude={"spaces"}),
                                      creating=True)

        with self.store.transaction() as session:
            project = self.store.insert_one(
                PROJECTS, dict(fields, owner=owner_id, sharedWith=[], spaces=[]), session=session
            )
            building_types: Dict[str, Dict[str, Any]] = {}
            space_ids: List[ObjectId] = []
            for space_input in payload.spaces:
                bt_type = validate_choice(space_input.building_type, BUILDING_TYPE_TYPES,
                                          "Please specify a valid building type for each space")
                if bt_type not in building_types:
                    building_types[bt_type] = self.store.insert_one(
                        BUILDING_TYPES, {"name": bt_type, "type": bt_type, "project": project["_id"]},
                        session=session,
                    )
                space, _ = self._insert_space(session, building_types[bt_type]["_id"], space_input)
                space_ids.append(space["_id"])
            if space_ids:
                project = self.store.update_by_id(PROJECTS, project["_id"], {"spaces": space_ids}, session=session)

        logger.info("User %s created project %s with %d spaces", owner_id, project["_id"], len(space_ids))
        return project

    def update_project(self, user_id: ObjectId, project_id: str, payload: ProjectUpdate) -> Dict[str, Any]:
        with self.store.transaction() as session:
            access = self.resolver.resolve(EntityKind.PROJECT, project_id, user_id, session=session)
            access.require_write("Not authorized to update this project")
            fields = self._project_fields(payload.to_document(), creating=False)
            if not fields:
                return access.project
            project = self.store.update_by_id(PROJECTS, access.project["_id"], fields, session=session)
        logger.info("User %s updated project %s: %s", user_id, project_id, sorted(fields))
        return project

    def _project_fields(self, doc: Dict[str, Any], creating: bool) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        if creating or "name" in doc:
            fields["name"] = require_name(doc.get("name"), "Please add a project name")
        if creating or "address" in doc:
            fields["address"] = require_name(doc.get("address"), "Please add an address")
        if creating or "location" in doc:
            fields["location"] = require_name(doc.get("location"), "Please add a location")

        if creating or "permissionDate" in doc:
            if not doc.get("permissionDate"):
                raise ValidationError("Please add a permission date")
            fields["permissionDate"] = parse_calendar_date(doc["permissionDate"])

        if "creationDate" in doc:
            fields["creationDate"] = parse_calendar_date(doc["creationDate"], "creationDate")
        elif creating:
            fields["creationDate"] = datetime.now(timezone.utc)

        if "area" in doc:
            fields["area"] = validate_choice(doc["area"], PROJECT_AREAS, "Area must be one of A, B, C, D")
        elif creating:
            area = self.cities.area_for(fields["location"]) if self.cities is not None else None
            if area is None:
                raise ValidationError("Area is required")
            fields["area"] = area

        if "buildingVersion" in doc:
            fields["buildingVersion"] = validate_choice(doc["buildingVersion"], BUILDING_VERSIONS,
                                                        "Invalid building version")
        elif "permissionDate" in fields:
            fields["buildingVersion"] = derive_building_version(fields["permissionDate"])
        return fields

    # --- Sharing ---
    def share_project(self, owner_id: ObjectId, project_id: str, share: ShareRequest) -> Dict[str, Any]:
        validate_choice(share.role, SHARE_ROLES, "Invalid role. Role must be editor or viewer")
        email = share.email.strip().lower()
        with self.store.transaction() as session:
            project = self.resolver.load(EntityKind.PROJECT, project_id, session=session)
            if not is_owner(project, owner_id):
                raise Forbidden("Not authorized to share this project")
            matches = self.store.find(USERS, {"email": email}, session=session, limit=1)
            if not matches:
                raise NotFound("User not found")
            target_id = matches[0]["_id"]
            if target_id == project["owner"]:
                raise ValidationError("Cannot share a project with its owner")

            shared = [dict(s) for s in project.get("sharedWith", [])]
            for entry in shared:
                if entry["user"] == target_id:
                    entry["role"] = share.role
                    break
            else:
                shared.append({"user": target_id, "role": share.role})
            project = self.store.update_by_id(PROJECTS, project["_id"], {"sharedWith": shared}, session=session)
        logger.info("Project %s shared with %s as %s", project_id, email, share.role)
        return project

    def remove_share(self, owner_id: ObjectId, project_id: str, shared_user_id: str) -> Dict[str, Any]:
        target_id = to_object_id(shared_user_id)
        with self.store.transaction() as session:
            project = self.resolver.load(EntityKind.PROJECT, project_id, session=session)
            if not is_owner(project, owner_id):
                raise Forbidden("Not authorized to remove shared access")
            current = project.get("sharedWith", [])
            shared = [s for s in current if s["user"] != target_id]
            if target_id is None or len(shared) == len(current):
                raise NotFound("User not found")
            project = self.store.update_by_id(PROJECTS, project["_id"], {"sharedWith": shared}, session=session)
        logger.info("Removed user %s from project %s", shared_user_id, project_id)
        return project

    # --- Image ---
    def set_project_image(self, user_id: ObjectId, project_id: str, data: bytes, filename: str) -> Dict[str, Any]:
        access = self.resolver.resolve(EntityKind.PROJECT, project_id, user_id)
        access.require_write("Not authorized to update this project")
        path = self.images.store(data, filename)
        try:
            project = self.store.update_by_id(PROJECTS, access.project["_id"], {"image": path})
        except PyMongoError:
            self.images.delete(path)
            raise
        if project is None:
            self.images.delete(path)
            raise NotFound("Project not found")
        old_image = access.project.get("image")
        if old_image and old_image != path and self.images.exists(old_image):
            self.images.delete(old_image)
        return project

    # --- Building types ---
    def create_building_type(self, user_id: ObjectId, project_id: str, payload: BuildingTypeInput) -> Dict[str, Any]:
        name = require_name(payload.name, "Please add a type name")
        bt_type = validate_choice(payload.type, BUILDING_TYPE_TYPES, "Please specify the building type")
        access = self.resolver.resolve(EntityKind.PROJECT, project_id, user_id)
        access.require_write("Not authorized to create building types for this project")
        building_type = self.store.insert_one(
            BUILDING_TYPES, {"name": name, "type": bt_type, "project": access.project["_id"]}
        )
        logger.info("User %s created building type %s in project %s", user_id, building_type["_id"], project_id)
        return building_type

    def update_building_type(self, user_id: ObjectId, building_type_id: str,
                             payload: BuildingTypeInput) -> Dict[str, Any]:
        access = self.resolver.resolve(EntityKind.BUILDING_TYPE, building_type_id, user_id)
        access.require_write("Not authorized to update this building type")
        fields = {}
        if payload.name is not None:
            fields["name"] = require_name(payload.name, "Please add a type name")
        if payload.type is not None:
            fields["type"] = validate_choice(payload.type, BUILDING_TYPE_TYPES, "Please specify the building type")
        building_type = access.entity(EntityKind.BUILDING_TYPE)
        if fields:
            building_type = self.store.update_by_id(BUILDING_TYPES, building_type["_id"], fields)
            logger.info("User %s updated building type %s: %s", user_id, building_type_id, sorted(fields))
        return building_type

    # --- Spaces ---
    def create_space(self, user_id: ObjectId, building_type_id: str,
                     payload: SpaceInput) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        with self.store.transaction() as session:
            access = self.resolver.resolve(EntityKind.BUILDING_TYPE, building_type_id, user_id, session=session)
            access.require_write("Not authorized to create spaces for this building type")
            building_type = access.entity(EntityKind.BUILDING_TYPE)
            space, elements = self._insert_space(session, building_type["_id"], payload)
            project = access.project
            self.store.update_by_id(PROJECTS, project["_id"],
                                    {"spaces": list(project.get("spaces", [])) + [space["_id"]]}, session=session)
        logger.info("User %s created space %s with %d elements", user_id, space["_id"], len(elements))
        return space, elements

    def update_space(self, user_id: ObjectId, space_id: str,
                     payload: SpaceInput) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        """Update name/type; an `elements` list (even empty) replaces all elements."""
        with self.store.transaction() as session:
            access = self.resolver.resolve(EntityKind.SPACE, space_id, user_id, session=session)
            access.require_write("Not authorized to update this space")
            space = access.entity(EntityKind.SPACE)
            fields = {}
            if payload.name is not None:
                fields["name"] = require_name(payload.name, "Please add a space name")
            if payload.type is not None:
                fields["type"] = validate_choice(payload.type, SPACE_TYPES, "Please specify the space type")
            if fields:
                space = self.store.update_by_id(SPACES, space["_id"], fields, session=session)
                logger.info("User %s updated space %s: %s", user_id, space_id, sorted(fields))

            if payload.elements is not None:
                removed = self.cascade.clear_space(space["_id"], session)
                elements = self._insert_elements(session, space["_id"], payload.elements)
                logger.info("Replaced %d elements of space %s with %d", removed, space_id, len(elements))
            else:
                elements = self.store.find(ELEMENTS, {"space": space["_id"]}, session=session)
        return space, elements

    def _insert_space(self, session, building_type_id: ObjectId,
                      payload: SpaceInput) -> Tuple[Dict[str, Any], List[Dict[str, Any]]]:
        name = require_name(payload.name, "Please add a space name")
        space_type = validate_choice(payload.type, SPACE_TYPES, "Please specify the space type")
        space = self.store.insert_one(
            SPACES, {"name": name, "type": space_type, "buildingType": building_type_id}, session=session
        )
        elements = self._insert_elements(session, space["_id"], payload.elements or [])
        return space, elements

    def _insert_elements(self, session, space_id: ObjectId,
                         inputs: List[ElementInput]) -> List[Dict[str, Any]]:
        docs = [dict(validate_element(element.to_document()), space=space_id) for element in inputs]
        return self.store.insert_many(ELEMENTS, docs, session=session)

    # --- Elements ---
    def create_element(self, user_id: ObjectId, space_id: str, payload: ElementInput) -> Dict[str, Any]:
        access = self.resolver.resolve(EntityKind.SPACE, space_id, user_id)
        access.require_write("Not authorized to create elements for this space")
        space = access.entity(EntityKind.SPACE)
        doc = dict(validate_element(payload.to_document()), space=space["_id"])
        element = self.store.insert_one(ELEMENTS, doc)
        logger.info("User %s created %s element %s in space %s", user_id, element["type"], element["_id"], space_id)
        return element

    def update_element(self, user_id: ObjectId, element_id: str, payload: ElementInput) -> Dict[str, Any]:
        access = self.resolver.resolve(EntityKind.ELEMENT, element_id, user_id)
        access.require_write("Not authorized to update this element")
        current = access.entity(EntityKind.ELEMENT)
        changes = payload.to_document()
        merged = {k: v for k, v in current.items() if k not in _ELEMENT_IMMUTABLE and v is not None}
        if "type" in changes and changes["type"] != current.get("type") and "subType" not in changes:
            # The stored subType belongs to the old type
            merged.pop("subType", None)
        merged.update(changes)
        fields = validate_element(merged)
        for wall_field in _WALL_FIELDS:
            fields.setdefault(wall_field, None)
        if "subType" not in fields:
            fields["subType"] = None
        element = self.store.update_by_id(ELEMENTS, current["_id"], fields)
        logger.info("User %s updated element %s", user_id, element_id)
        return element

    def clear_elements(self, user_id: ObjectId, space_id: str) -> int:
        with self.store.transaction() as session:
            access = self.resolver.resolve(EntityKind.SPACE, space_id, user_id, session=session)
            access.require_write("Not authorized to clear elements for this space")
            removed = self.cascade.clear_space(access.entity(EntityKind.SPACE)["_id"], session)
        logger.info("User %s cleared %d elements from space %s", user_id, removed, space_id)
        return removed
