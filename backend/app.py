"""
Caption Review Backend - Unified Application Entry Point
Mounts all service apps under a single FastAPI application
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from services.assets.app import app as assets_app
from services.auth import add_session_middleware, router as auth_router
from services.ingest.app import app as ingest_app
from services.media.app import app as media_app
from shared.utils import config, setup_logging

logger = setup_logging("caption-review-backend")

API_PREFIX = "/api"

app = FastAPI(
    title="Caption Review Backend API",
    description="""
    Upload caption and video files, review and edit segments, comment on videos
    and export the results. All routes live under /api.
    """,
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=[
        {"name": "Authentication", "description": "Shared admin login via session cookie"},
        {"name": "Health", "description": "Service health and status endpoints"},
        {"name": "Assets", "description": "Files, folders, comments, exports and versions"},
        {"name": "Ingest", "description": "Caption/video uploads with pairing and version stacking"},
        {"name": "Media", "description": "Video and thumbnail delivery"},
    ],
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.get("allowed_origins", ["*"]),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
add_session_middleware(app)

app.include_router(auth_router, prefix=API_PREFIX)

# Routes to exclude (internal FastAPI docs routes and per-service health checks)
EXCLUDED_PATHS = {"/openapi.json", "/docs", "/docs/oauth2-redirect", "/redoc", "/health"}


def mount_service(service_app: FastAPI, tag: str, name_prefix: str) -> None:
    """Copy a service app's routes onto the gateway under the API prefix."""
    for route in service_app.routes:
        if not (hasattr(route, "path") and hasattr(route, "endpoint")):
            continue
        if route.path in EXCLUDED_PATHS:
            continue
        route_kwargs = {
            "path": f"{API_PREFIX}{route.path}",
            "endpoint": route.endpoint,
            "methods": route.methods,
            "tags": [tag],
        }
        if hasattr(route, "name"):
            route_kwargs["name"] = f"{name_prefix}_{route.name}"
        if hasattr(route, "response_model"):
            route_kwargs["response_model"] = route.response_model
        app.add_api_route(**route_kwargs)


mount_service(assets_app, "Assets", "assets")
mount_service(ingest_app, "Ingest", "ingest")
mount_service(media_app, "Media", "media")


@app.get("/", tags=["Health"])
async def root():
    """Root endpoint with service information and API navigation"""
    return {
        "service": "Caption Review Backend API",
        "version": "1.0.0",
        "api_prefix": API_PREFIX,
        "documentation": {
            "swagger_ui": "/docs",
            "redoc": "/redoc",
            "openapi_json": "/openapi.json",
        },
    }


@app.get("/health", tags=["Health"])
@app.get(f"{API_PREFIX}/health", tags=["Health"])
async def health_check():
    """Health check endpoint for all services"""
    return {
        "status": "healthy",
        "services": {
            "api_gateway": "operational",
            "assets": "operational",
            "ingest": "operational",
            "media": "operational",
        },
    }


if __name__ == "__main__":
    import uvicorn

    logger.info("Starting Caption Review Backend on http://0.0.0.0:8000")
    uvicorn.run("app:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
