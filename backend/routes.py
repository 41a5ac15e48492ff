"""
HTTP routes for projects, the building tree and cities.
"""
from typing import Any, Dict, Iterable, List, Optional

from bson.objectid import ObjectId
from fastapi import APIRouter, Depends, File, Query, UploadFile, status

from access_control import AccessResolver, EntityKind, is_owner
from auth_middleware import CurrentUser, verify_token
from cascade import CascadeDeleter
from cities import CityDirectory
from compliance import ComplianceChecker
from config import Settings
from dependencies import (
    get_builder, get_cascade, get_checker, get_cities, get_resolver, get_settings_state, get_store,
)
from errors import Forbidden, NotFound, ValidationError
from logger import get_logger
from models import (
    BuildingTypeInput, ElementInput, Pagination, ProjectCreate, ProjectUpdate, ShareRequest, SpaceInput,
)
from project_builder import ProjectBuilder
from responses import respond
from store import BUILDING_TYPES, ELEMENTS, PROJECTS, SPACES, USERS

logger = get_logger(__name__)

router = APIRouter()

USER_SUMMARY_FIELDS = ("_id", "name", "email")
NEWEST_FIRST = [("creationDate", -1), ("createdAt", -1)]
OLDEST_FIRST = [("createdAt", 1)]


def user_summaries(store, user_ids: Iterable[ObjectId]) -> Dict[ObjectId, Dict[str, Any]]:
    ids = list({uid for uid in user_ids if uid is not None})
    if not ids:
        return {}
    users = store.find(USERS, {"_id": {"$in": ids}})
    return {u["_id"]: {k: u.get(k) for k in USER_SUMMARY_FIELDS} for u in users}


def populate_projects(store, projects: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Replace owner and sharedWith user ids with {_id, name, email}."""
    ids = []
    for project in projects:
        ids.append(project.get("owner"))
        ids.extend(share.get("user") for share in project.get("sharedWith", []))
    summaries = user_summaries(store, ids)

    populated = []
    for project in projects:
        doc = dict(project)
        doc["owner"] = summaries.get(project.get("owner"), project.get("owner"))
        doc["sharedWith"] = [
            dict(share, user=summaries.get(share.get("user"), share.get("user")))
            for share in project.get("sharedWith", [])
        ]
        populated.append(doc)
    return populated


def populate_project(store, project: Dict[str, Any]) -> Dict[str, Any]:
    return populate_projects(store, [project])[0]


def paginate(store, collection: str, query: Dict[str, Any], page: int, limit: int, sort=None):
    total = store.count(collection, query)
    docs = store.find(collection, query, sort=sort, skip=(page - 1) * limit, limit=limit)
    return docs, Pagination.build(total, page, limit)


# --- Projects ---
@router.get("/projects")
def list_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(verify_token),
    store=Depends(get_store),
):
    query = {"$or": [{"owner": user.id}, {"sharedWith.user": user.id}]}
    projects, pagination = paginate(store, PROJECTS, query, page, limit, sort=NEWEST_FIRST)
    return respond(populate_projects(store, projects), count=len(projects), pagination=pagination)


@router.post("/projects", status_code=status.HTTP_201_CREATED)
def create_project(
    payload: ProjectCreate,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
    store=Depends(get_store),
):
    project = builder.create_project(user.id, payload)
    return respond(populate_project(store, project), status_code=status.HTTP_201_CREATED)


@router.get("/projects/{project_id}")
def get_project(
    project_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    store=Depends(get_store),
):
    access = resolver.resolve(EntityKind.PROJECT, project_id, user.id).require_read()
    return respond(populate_project(store, access.project))


@router.put("/projects/{project_id}")
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
    store=Depends(get_store),
):
    project = builder.update_project(user.id, project_id, payload)
    return respond(populate_project(store, project))


@router.delete("/projects/{project_id}")
def delete_project(
    project_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    cascade: CascadeDeleter = Depends(get_cascade),
):
    def authorize(session):
        project = resolver.load(EntityKind.PROJECT, project_id, session=session)
        if not is_owner(project, user.id):
            logger.warn("User %s tried to delete project %s they do not own", user.id, project_id)
            raise Forbidden("Not authorized to delete this project")

    summary = cascade.delete_subtree(EntityKind.PROJECT, project_id, authorize=authorize)
    return respond(summary.as_dict(), message="Project deleted successfully")


@router.post("/projects/{project_id}/share")
def share_project(
    project_id: str,
    share: ShareRequest,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
    store=Depends(get_store),
):
    project = builder.share_project(user.id, project_id, share)
    return respond(populate_project(store, project), message="Project shared successfully")


@router.delete("/projects/{project_id}/share/{shared_user_id}")
def remove_share(
    project_id: str,
    shared_user_id: str,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
    store=Depends(get_store),
):
    project = builder.remove_share(user.id, project_id, shared_user_id)
    return respond(populate_project(store, project), message="Shared access removed")


@router.put("/projects/{project_id}/image")
async def upload_project_image(
    project_id: str,
    image: UploadFile = File(...),
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
    settings: Settings = Depends(get_settings_state),
    store=Depends(get_store),
):
    if not (image.content_type or "").startswith("image/"):
        raise ValidationError("Please upload an image file")
    data = await image.read()
    if not data:
        raise ValidationError("Please upload a file")
    if len(data) > settings.max_image_bytes:
        raise ValidationError(f"Please upload an image smaller than {settings.max_image_bytes} bytes")

    project = builder.set_project_image(user.id, project_id, data, image.filename or "")
    logger.info("User %s uploaded image for project %s", user.id, project_id)
    return respond(populate_project(store, project))


# --- Building types ---
@router.get("/projects/{project_id}/building-types")
def list_building_types(
    project_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    store=Depends(get_store),
):
    access = resolver.resolve(EntityKind.PROJECT, project_id, user.id).require_read()
    building_types = store.find(BUILDING_TYPES, {"project": access.project["_id"]}, sort=OLDEST_FIRST)
    return respond(building_types, count=len(building_types))


@router.post("/projects/{project_id}/building-types", status_code=status.HTTP_201_CREATED)
def create_building_type(
    project_id: str,
    payload: BuildingTypeInput,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
):
    building_type = builder.create_building_type(user.id, project_id, payload)
    return respond(building_type, status_code=status.HTTP_201_CREATED)


@router.get("/building-types/{building_type_id}")
def get_building_type(
    building_type_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
):
    access = resolver.resolve(EntityKind.BUILDING_TYPE, building_type_id, user.id).require_read()
    return respond(access.entity(EntityKind.BUILDING_TYPE))


@router.put("/building-types/{building_type_id}")
def update_building_type(
    building_type_id: str,
    payload: BuildingTypeInput,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
):
    return respond(builder.update_building_type(user.id, building_type_id, payload))


@router.delete("/building-types/{building_type_id}")
def delete_building_type(
    building_type_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    cascade: CascadeDeleter = Depends(get_cascade),
):
    def authorize(session):
        resolver.resolve(EntityKind.BUILDING_TYPE, building_type_id, user.id, session=session) \
            .require_write("Not authorized to delete this building type")

    summary = cascade.delete_subtree(EntityKind.BUILDING_TYPE, building_type_id, authorize=authorize)
    return respond(summary.as_dict(), message="Building type deleted successfully")


# --- Spaces ---
@router.get("/building-types/{building_type_id}/spaces")
def list_spaces(
    building_type_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    store=Depends(get_store),
):
    access = resolver.resolve(EntityKind.BUILDING_TYPE, building_type_id, user.id).require_read()
    building_type = access.entity(EntityKind.BUILDING_TYPE)
    spaces = store.find(SPACES, {"buildingType": building_type["_id"]}, sort=OLDEST_FIRST)
    return respond(spaces, count=len(spaces))


@router.post("/building-types/{building_type_id}/spaces", status_code=status.HTTP_201_CREATED)
def create_space(
    building_type_id: str,
    payload: SpaceInput,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
):
    space, elements = builder.create_space(user.id, building_type_id, payload)
    return respond({"space": space, "elements": elements}, status_code=status.HTTP_201_CREATED)


@router.get("/spaces/{space_id}")
def get_space(
    space_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    store=Depends(get_store),
):
    access = resolver.resolve(EntityKind.SPACE, space_id, user.id).require_read()
    space = access.entity(EntityKind.SPACE)
    elements = store.find(ELEMENTS, {"space": space["_id"]}, sort=OLDEST_FIRST)
    return respond({"space": space, "elements": elements})


@router.put("/spaces/{space_id}")
def update_space(
    space_id: str,
    payload: SpaceInput,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
):
    space, elements = builder.update_space(user.id, space_id, payload)
    return respond({"space": space, "elements": elements})


@router.delete("/spaces/{space_id}")
def delete_space(
    space_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    cascade: CascadeDeleter = Depends(get_cascade),
):
    def authorize(session):
        resolver.resolve(EntityKind.SPACE, space_id, user.id, session=session) \
            .require_write("Not authorized to delete this space")

    summary = cascade.delete_subtree(EntityKind.SPACE, space_id, authorize=authorize)
    return respond(summary.as_dict(), message="Space deleted successfully")


# --- Elements ---
@router.get("/spaces/{space_id}/elements")
def list_elements(
    space_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    store=Depends(get_store),
):
    access = resolver.resolve(EntityKind.SPACE, space_id, user.id).require_read()
    elements = store.find(ELEMENTS, {"space": access.entity(EntityKind.SPACE)["_id"]}, sort=OLDEST_FIRST)
    return respond(elements, count=len(elements))


@router.post("/spaces/{space_id}/elements", status_code=status.HTTP_201_CREATED)
def create_element(
    space_id: str,
    payload: ElementInput,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
):
    element = builder.create_element(user.id, space_id, payload)
    return respond(element, status_code=status.HTTP_201_CREATED)


@router.delete("/spaces/{space_id}/elements")
def clear_elements(
    space_id: str,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
):
    removed = builder.clear_elements(user.id, space_id)
    return respond({"deleted": removed}, message="Elements cleared successfully")


@router.get("/elements/{element_id}")
def get_element(
    element_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
):
    access = resolver.resolve(EntityKind.ELEMENT, element_id, user.id).require_read()
    return respond(access.entity(EntityKind.ELEMENT))


@router.put("/elements/{element_id}")
def update_element(
    element_id: str,
    payload: ElementInput,
    user: CurrentUser = Depends(verify_token),
    builder: ProjectBuilder = Depends(get_builder),
):
    return respond(builder.update_element(user.id, element_id, payload))


@router.delete("/elements/{element_id}")
def delete_element(
    element_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    cascade: CascadeDeleter = Depends(get_cascade),
):
    def authorize(session):
        resolver.resolve(EntityKind.ELEMENT, element_id, user.id, session=session) \
            .require_write("Not authorized to delete this element")

    cascade.delete_subtree(EntityKind.ELEMENT, element_id, authorize=authorize)
    return respond({}, message="Element deleted successfully")


@router.post("/elements/{element_id}/compliance-check")
def check_element_compliance(
    element_id: str,
    user: CurrentUser = Depends(verify_token),
    resolver: AccessResolver = Depends(get_resolver),
    checker: ComplianceChecker = Depends(get_checker),
):
    access = resolver.resolve(EntityKind.ELEMENT, element_id, user.id).require_read()
    result = checker.check(access.entity(EntityKind.ELEMENT))
    logger.info("Compliance check for element %s: compliant=%s", element_id, result.is_compliant)
    return respond(result.to_document())


# --- Cities ---
@router.get("/cities/search")
def search_cities(
    query: Optional[str] = None,
    user: CurrentUser = Depends(verify_token),
    cities: CityDirectory = Depends(get_cities),
):
    if not query:
        raise ValidationError("Please provide a search query")
    matches = cities.search(query)
    return respond(matches, count=len(matches))


@router.get("/cities/{name}")
def get_city(
    name: str,
    user: CurrentUser = Depends(verify_token),
    cities: CityDirectory = Depends(get_cities),
):
    city = cities.get(name)
    if city is None:
        raise NotFound("City not found")
    return respond(city)
