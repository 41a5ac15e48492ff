"""
Account routes: registration, login, the current user's profile and settings.
"""
from fastapi import APIRouter, Depends, status

from accounts import AccountService, public_user
from auth_middleware import CurrentUser, verify_token
from dependencies import get_accounts
from models import DetailsUpdate, LoginRequest, PasswordUpdate, RegisterRequest, UserSettings
from responses import respond

router = APIRouter(prefix="/auth")
user_router = APIRouter(prefix="/user")


@router.post("/register", status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, accounts: AccountService = Depends(get_accounts)):
    user, token = accounts.register(payload)
    return respond(
        {"token": token, "user": public_user(user)},
        message="User registered successfully",
        status_code=status.HTTP_201_CREATED,
    )


@router.post("/login")
def login(payload: LoginRequest, accounts: AccountService = Depends(get_accounts)):
    user, token = accounts.login(payload)
    return respond({"token": token, "user": public_user(user)})


@router.get("/me")
def get_me(user: CurrentUser = Depends(verify_token)):
    return respond(user.public())


@router.put("/update-details")
def update_details(
    payload: DetailsUpdate,
    user: CurrentUser = Depends(verify_token),
    accounts: AccountService = Depends(get_accounts),
):
    return respond(public_user(accounts.update_details(user.id, payload)))


@router.put("/update-password")
def update_password(
    payload: PasswordUpdate,
    user: CurrentUser = Depends(verify_token),
    accounts: AccountService = Depends(get_accounts),
):
    updated = accounts.update_password(user.id, payload)
    return respond({"token": accounts.issue_token(updated)}, message="Password updated")


@router.delete("/delete-account")
def delete_account(user: CurrentUser = Depends(verify_token), accounts: AccountService = Depends(get_accounts)):
    summary = accounts.delete_account(user.id)
    return respond(summary.as_dict(), message="Account deleted successfully")


@user_router.get("/profile")
def get_profile(user: CurrentUser = Depends(verify_token)):
    return respond(user.public())


@user_router.put("/profile")
def update_profile(
    payload: DetailsUpdate,
    user: CurrentUser = Depends(verify_token),
    accounts: AccountService = Depends(get_accounts),
):
    return respond(public_user(accounts.update_details(user.id, payload)), message="Profile updated")


@user_router.get("/settings")
def get_user_settings(user: CurrentUser = Depends(verify_token), accounts: AccountService = Depends(get_accounts)):
    return respond(accounts.get_settings(user.id))


@user_router.put("/settings")
def update_user_settings(
    payload: UserSettings,
    user: CurrentUser = Depends(verify_token),
    accounts: AccountService = Depends(get_accounts),
):
    return respond(accounts.update_settings(user.id, payload), message="Settings updated")
