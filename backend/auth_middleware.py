"""
Authentication middleware for the compliance backend
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from bson.objectid import ObjectId
from fastapi import Depends, HTTPException, Request, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from logger import get_logger
from store import USERS, to_object_id

logger = get_logger(__name__)

# Security scheme; missing headers are reported by verify_token itself
security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"
ADMIN_ROLE = "admin"

NOT_AUTHORIZED = "Not authorized to access this route"


class CurrentUser:
    """User loaded from the users collection for the bearer token"""
    def __init__(self, document: Dict[str, Any]):
        self.document = document
        self.id: ObjectId = document["_id"]
        self.email = document.get("email", "")
        self.name = document.get("name", "")
        self.role = document.get("role", "user")
        self.active = document.get("active", True)

    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE

    def public(self) -> Dict[str, Any]:
        """User profile as returned by the API (no secrets)"""
        return {k: v for k, v in self.document.items() if k != "password"}


def create_access_token(user_id: Any, secret: str, expire_days: int = 30) -> str:
    """Issue a signed token carrying the user id in the `id` claim"""
    expires = datetime.now(timezone.utc) + timedelta(days=expire_days)
    return jwt.encode({"id": str(user_id), "exp": expires}, secret, algorithm=ALGORITHM)


def _unauthorized(detail: str = NOT_AUTHORIZED) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


async def verify_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security),
) -> CurrentUser:
    """Verify JWT token and return the active user it names"""
    if credentials is None or not credentials.credentials:
        raise _unauthorized()

    settings = request.app.state.settings
    try:
        payload = jwt.decode(credentials.credentials, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError as e:
        logger.warn(f"JWT verification failed: {e}")
        raise _unauthorized()

    user_id = to_object_id(payload.get("id"))
    document = request.app.state.store.find_by_id(USERS, user_id) if user_id else None
    if document is None:
        raise _unauthorized("User not found")

    user = CurrentUser(document)
    if not user.active:
        raise _unauthorized("Account is deactivated")
    return user


async def require_admin(user: CurrentUser = Depends(verify_token)) -> CurrentUser:
    """Require the admin role for the endpoint"""
    if not user.is_admin():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"User role {user.role} is not authorized to access this route",
        )
    return user
