"""
Administrative routes: user management and a global view of projects.
"""
from fastapi import APIRouter, Depends, Query, status

from access_control import EntityKind, user_object_id
from accounts import AccountService, public_user
from auth_middleware import ADMIN_ROLE, CurrentUser, require_admin
from cascade import CascadeDeleter
from dependencies import get_accounts, get_cascade, get_resolver, get_store
from errors import NotFound, ValidationError
from logger import get_logger
from models import UserCreate, UserStatusUpdate
from responses import respond
from routes import NEWEST_FIRST, paginate, populate_project, populate_projects
from store import PROJECTS, USERS
from validators import validate_choice

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])

USER_ROLES = ("user", ADMIN_ROLE)


def _load_user(store, user_id: str):
    user = store.find_by_id(USERS, user_object_id(user_id))
    if user is None:
        raise NotFound("User not found")
    return user


@router.get("/users")
def list_users(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store=Depends(get_store),
):
    users, pagination = paginate(store, USERS, {}, page, limit, sort=[("createdAt", -1)])
    return respond([public_user(u) for u in users], count=len(users), pagination=pagination)


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    admin: CurrentUser = Depends(require_admin),
    accounts: AccountService = Depends(get_accounts),
):
    role = validate_choice(payload.role, USER_ROLES, "Role must be user or admin")
    user = accounts.create_user(payload, role=role)
    logger.info("Admin %s created user %s (%s)", admin.id, user["_id"], user["email"])
    return respond(public_user(user), status_code=status.HTTP_201_CREATED)


@router.get("/users/{user_id}")
def get_user(user_id: str, store=Depends(get_store)):
    user = _load_user(store, user_id)
    projects = store.find(PROJECTS, {"owner": user["_id"]}, sort=NEWEST_FIRST)
    return respond(dict(public_user(user), projects=projects))


@router.put("/users/{user_id}/status")
def update_user_status(
    user_id: str,
    payload: UserStatusUpdate,
    admin: CurrentUser = Depends(require_admin),
    store=Depends(get_store),
):
    user = _load_user(store, user_id)
    if user["_id"] == admin.id and not payload.active:
        raise ValidationError("You cannot deactivate your own account")
    user = store.update_by_id(USERS, user["_id"], {"active": payload.active})
    logger.info("Admin %s set user %s active=%s", admin.id, user_id, payload.active)
    return respond(public_user(user))


@router.delete("/users/{user_id}")
def delete_user(
    user_id: str,
    admin: CurrentUser = Depends(require_admin),
    cascade: CascadeDeleter = Depends(get_cascade),
):
    if user_object_id(user_id) == admin.id:
        raise ValidationError("You cannot delete your own account")
    summary = cascade.delete_user(user_id)
    logger.info("Admin %s deleted user %s", admin.id, user_id)
    return respond(summary.as_dict(), message="User deleted successfully")


@router.get("/projects")
def list_all_projects(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    store=Depends(get_store),
):
    projects, pagination = paginate(store, PROJECTS, {}, page, limit, sort=NEWEST_FIRST)
    return respond(populate_projects(store, projects), count=len(projects), pagination=pagination)


@router.get("/projects/{project_id}")
def get_any_project(project_id: str, resolver=Depends(get_resolver), store=Depends(get_store)):
    project = resolver.load(EntityKind.PROJECT, project_id)
    return respond(populate_project(store, project))
