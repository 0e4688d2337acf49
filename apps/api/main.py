# FastAPI entrypoint: module composition, guards, filters and middleware

import sys
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.routing import APIRoute
from loguru import logger

from auth.auth_manager import AuthManager
from auth.auth_routes import router as auth_router
from auth.config import AuthConfig
from auth.errors import register_exception_handlers
from auth.google_oauth import GoogleOAuthClient
from auth.guards import verify_jwt_token
from auth.models import DatabaseManager
from auth.security_middleware import SecurityHeadersMiddleware, SecurityLoggingMiddleware
from quantify.quantify_routes import router as quantify_router

MANAGER_BASE_PATH = "/q"
VERSION = "1.0.0"


def configure_logging(level: str = "INFO"):
    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
    )


# ==================== MANAGER ROUTER (JWT-GUARDED) ====================

manager_router = APIRouter(tags=["manager"])


@manager_router.get("/")
async def manager_root(user: dict = Depends(verify_jwt_token)):
    """Service info and the routes mounted under the manager base path."""
    return {
        "service": "raptor-manager",
        "version": VERSION,
        "user": user.get("sub"),
        "routes": manager_routes(),
    }


manager_router.include_router(quantify_router)  # /q/quantify


def manager_routes() -> list:
    """Routes under /q, read from the manager routers themselves."""
    # Some FastAPI releases keep included routers nested instead of copying
    # their routes, so each router is listed directly.
    seen = {}
    for router in (manager_router, quantify_router):
        for route in router.routes:
            if not isinstance(route, APIRoute):
                continue
            path = f"{MANAGER_BASE_PATH}{route.path}"
            seen.setdefault(path, {
                "path": path,
                "name": route.name,
                "methods": sorted(route.methods - {"HEAD", "OPTIONS"}),
            })
    return list(seen.values())


# ==================== APP FACTORY ====================

def create_app(config: AuthConfig = None) -> FastAPI:
    """
    Build the API application.

    Configuration is resolved once here and passed by reference to the
    database, auth manager and Google client stored on app.state.
    """
    if config is None:
        config = AuthConfig()

    configure_logging(config.log_level)

    db = DatabaseManager(config.database_url, echo=config.db_echo)
    auth_manager = AuthManager(config, db)
    google_client = GoogleOAuthClient(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("[STARTUP] Initializing auth database...")
        db.create_tables()
        auth_manager.initialize_admin_user()
        logger.info("[STARTUP] Auth database initialized")
        yield
        logger.info("[SHUTDOWN] Disposing database engine")
        db.dispose()

    app = FastAPI(
        title="Raptor Manager API",
        description="Authentication and quantification gateway",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.config = config
    app.state.db = db
    app.state.auth_manager = auth_manager
    app.state.google_client = google_client

    # ==================== FILTERS ====================

    register_exception_handlers(app)

    # ==================== MIDDLEWARE ====================

    app.add_middleware(
        SecurityLoggingMiddleware,
        watched_prefixes=(config.api_base_path or "/", MANAGER_BASE_PATH),
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
        max_age=86400,
    )

    # ==================== ROUTERS ====================

    app.include_router(auth_router, prefix=config.api_base_path)  # /api/auth
    app.include_router(
        manager_router,
        prefix=MANAGER_BASE_PATH,
        dependencies=[Depends(verify_jwt_token)],
    )  # /q, /q/quantify

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring system status."""
        healthy = db.health_check()
        return {
            "status": "healthy" if healthy else "unhealthy",
            "database": healthy,
            "google_oauth": google_client.enabled,
        }

    return app


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "apps.api.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=8000,
    )
