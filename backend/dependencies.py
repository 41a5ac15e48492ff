"""
Dependency wiring for the FastAPI app.

Collaborators are built once in create_app() and kept on app.state so tests
can hand in in-memory replacements.
"""
from fastapi import Request

from access_control import AccessResolver
from accounts import AccountService
from cascade import CascadeDeleter
from cities import CityDirectory
from compliance import ComplianceChecker
from config import Settings
from project_builder import ProjectBuilder


def get_settings_state(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request):
    return request.app.state.store


def get_resolver(request: Request) -> AccessResolver:
    return request.app.state.resolver


def get_cascade(request: Request) -> CascadeDeleter:
    return request.app.state.cascade


def get_builder(request: Request) -> ProjectBuilder:
    return request.app.state.builder


def get_cities(request: Request) -> CityDirectory:
    return request.app.state.cities


def get_checker(request: Request) -> ComplianceChecker:
    return request.app.state.checker


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts
