from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

import admin_routes
import auth_routes
import routes
from accounts import AccountService
from access_control import AccessResolver
from cascade import CascadeDeleter
from cities import CityDirectory
from compliance import PlaceholderComplianceChecker
from config import Settings, get_settings
from errors import ComplianceError
from logger import configure_logging, get_logger
from models import HealthResponse
from project_builder import ProjectBuilder
from responses import error_response, respond
from storage import LocalImageStorage
from store import InMemoryStore, MongoStore

logger = get_logger(__name__)


def build_store(settings: Settings):
    if settings.use_in_memory_store:
        logger.warn("USE_IN_MEMORY_STORE is set; data will not survive a restart")
        return InMemoryStore()
    return MongoStore(
        settings.mongo_uri,
        settings.mongo_db,
        max_retries=settings.mongo_max_retries,
        retry_delay=settings.mongo_retry_delay,
    )


def wire(app: FastAPI, store, image_storage, cities: CityDirectory, checker, settings: Settings):
    """Attach the collaborators request handlers resolve through app.state."""
    resolver = AccessResolver(store)
    cascade = CascadeDeleter(store, image_storage)
    app.state.store = store
    app.state.image_storage = image_storage
    app.state.cities = cities
    app.state.checker = checker
    app.state.resolver = resolver
    app.state.cascade = cascade
    app.state.accounts = AccountService(store, cascade, settings)
    app.state.builder = ProjectBuilder(
        store, resolver, cascade,
        cities=cities, images=image_storage, max_projects=settings.max_projects_per_owner,
    )


def _validation_message(exc: RequestValidationError) -> str:
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part not in ("body", "query", "path"))
        messages.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return ", ".join(messages) or "Invalid request"


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(ComplianceError)
    async def compliance_error_handler(request: Request, exc: ComplianceError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(status.HTTP_400_BAD_REQUEST, _validation_message(exc))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        return error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Server Error")


def create_app(store=None, image_storage=None, cities: Optional[CityDirectory] = None,
               checker=None, settings: Optional[Settings] = None) -> FastAPI:
    """Build the API; collaborators not passed in are created from settings."""
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    cities = cities or CityDirectory(settings.cities_file)
    checker = checker or PlaceholderComplianceChecker()

    app = FastAPI(
        title="Construction Compliance API",
        description="API for managing construction projects and checking element compliance",
        version="1.0.0",
    )
    app.state.settings = settings

    logger.info(f"CORS origins: {settings.cors_origins}")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    app.include_router(auth_routes.router, prefix=settings.api_prefix)
    app.include_router(auth_routes.user_router, prefix=settings.api_prefix)
    app.include_router(routes.router, prefix=settings.api_prefix)
    app.include_router(admin_routes.router, prefix=settings.api_prefix)

    if image_storage is None:
        # Served files live under UPLOAD_DIR; the directory is created on startup
        app.mount("/uploads", StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")

    if store is not None:
        wire(app, store, image_storage or LocalImageStorage(settings.upload_dir), cities, checker, settings)
    else:
        @app.on_event("startup")
        async def startup_event():
            """Connect to the store and create local upload storage"""
            local_images = image_storage or LocalImageStorage(settings.upload_dir)
            wire(app, build_store(settings), local_images, cities, checker, settings)
            logger.info(f"Store initialized: {type(app.state.store).__name__}")

    @app.get("/")
    def read_root():
        """API root endpoint that confirms the service is running"""
        return respond(message="Construction Compliance API is running")

    @app.get("/health")
    def health_check(request: Request):
        """Health check endpoint for monitoring service status"""
        current_store = getattr(request.app.state, "store", None)
        mongodb_status = "connected" if current_store is not None and current_store.ping() else "disconnected"
        health = HealthResponse(status="healthy", mongodb=mongodb_status)
        return respond(health.model_dump())

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    logger.info("Starting Construction Compliance API server")
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level=settings.log_level.lower())
