"""
User accounts: registration, credential checks, profile details and settings.

Passwords are stored as bcrypt hashes and never leave this module; tokens
are issued through create_access_token so login and the bearer dependency
agree on one format.
"""
from typing import Any, Dict, Tuple

import bcrypt
from bson.objectid import ObjectId
from pymongo.errors import DuplicateKeyError

from auth_middleware import create_access_token
from cascade import CascadeDeleter, DeleteSummary
from config import Settings
from errors import NotFound, Unauthorized, ValidationError
from logger import get_logger
from models import DetailsUpdate, LoginRequest, PasswordUpdate, RegisterRequest, UserSettings
from store import USERS
from validators import require_name, validate_email, validate_password

logger = get_logger(__name__)

OPTIONAL_PROFILE_FIELDS = ("phone", "companyName", "companyAddress")
DUPLICATE_EMAIL = "User with this email already exists"


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def check_password(password: str, hashed: str) -> bool:
    if not password or not hashed:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))


def public_user(user: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in user.items() if k != "password"}


class AccountService:
    def __init__(self, store, cascade: CascadeDeleter, settings: Settings):
        self.store = store
        self.cascade = cascade
        self.settings = settings

    def issue_token(self, user: Dict[str, Any]) -> str:
        return create_access_token(user["_id"], self.settings.jwt_secret, self.settings.jwt_expire_days)

    def _load(self, user_id: ObjectId) -> Dict[str, Any]:
        user = self.store.find_by_id(USERS, user_id)
        if user is None:
            raise NotFound("User not found")
        return user

    def create_user(self, payload: RegisterRequest, role: str = "user") -> Dict[str, Any]:
        email = validate_email(payload.email)
        doc = {
            "name": require_name(payload.name, "Please add a name"),
            "email": email,
            "password": hash_password(validate_password(payload.password), self.settings.bcrypt_rounds),
            "role": role,
            "active": True,
            "settings": UserSettings().to_document(),
        }
        provided = payload.to_document()
        for field in OPTIONAL_PROFILE_FIELDS:
            if field in provided:
                doc[field] = provided[field].strip()

        if self.store.find(USERS, {"email": email}, limit=1):
            raise ValidationError(DUPLICATE_EMAIL)
        try:
            user = self.store.insert_one(USERS, doc)
        except DuplicateKeyError:
            raise ValidationError(DUPLICATE_EMAIL)
        logger.info("Created %s account %s (%s)", role, user["_id"], email)
        return user

    def register(self, payload: RegisterRequest) -> Tuple[Dict[str, Any], str]:
        user = self.create_user(payload)
        return user, self.issue_token(user)

    def login(self, payload: LoginRequest) -> Tuple[Dict[str, Any], str]:
        if not payload.email or not payload.password:
            raise ValidationError("Please provide an email and password")
        matches = self.store.find(USERS, {"email": payload.email.strip().lower()}, limit=1)
        user = matches[0] if matches else None
        if user is None or not check_password(payload.password, user.get("password")):
            logger.warn("Failed login for %s", payload.email)
            raise Unauthorized("Invalid credentials")
        if not user.get("active", True):
            raise Unauthorized("Account is deactivated")
        logger.info("User %s logged in", user["_id"])
        return user, self.issue_token(user)

    def update_details(self, user_id: ObjectId, payload: DetailsUpdate) -> Dict[str, Any]:
        provided = payload.to_document()
        fields = {}
        if "name" in provided:
            fields["name"] = require_name(provided["name"], "Please add a name")
        for field in OPTIONAL_PROFILE_FIELDS:
            if field in provided:
                fields[field] = provided[field].strip()
        if not fields:
            return self._load(user_id)
        user = self.store.update_by_id(USERS, user_id, fields)
        if user is None:
            raise NotFound("User not found")
        logger.info("User %s updated details: %s", user_id, sorted(fields))
        return user

    def update_password(self, user_id: ObjectId, payload: PasswordUpdate) -> Dict[str, Any]:
        user = self._load(user_id)
        if not check_password(payload.current_password, user.get("password")):
            raise Unauthorized("Password is incorrect")
        hashed = hash_password(validate_password(payload.new_password), self.settings.bcrypt_rounds)
        user = self.store.update_by_id(USERS, user_id, {"password": hashed})
        logger.info("User %s changed password", user_id)
        return user

    def delete_account(self, user_id: ObjectId) -> DeleteSummary:
        return self.cascade.delete_user(user_id)

    def get_settings(self, user_id: ObjectId) -> Dict[str, Any]:
        user = self._load(user_id)
        return UserSettings.model_validate(user.get("settings") or {}).to_document()

    def update_settings(self, user_id: ObjectId, settings: UserSettings) -> Dict[str, Any]:
        user = self.store.update_by_id(USERS, user_id, {"settings": settings.to_document()})
        if user is None:
            raise NotFound("User not found")
        return user["settings"]
