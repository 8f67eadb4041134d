"""Main FastAPI application entry point.

Provides CORS, health, the Program → Folder → List → Course hierarchy CRUD,
tri-state selection, bulk operations and spreadsheet import/export.
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
from datetime import datetime

from coursetrack.routers import bulk, courses, data, health, hierarchy, selection
from coursetrack.utils.errors import ValidationError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Application metadata
APP_NAME = "CourseTrack Hierarchy API"
VERSION = os.getenv("APP_VERSION", "1.0.0")
DESCRIPTION = """
CourseTrack Hierarchy API

## Features

* **Hierarchy**: Programs, folders, lists and courses with ordered siblings
* **Selection**: Tri-state selection over whole subtrees
* **Bulk Operations**: Assign, reschedule, reprioritize, transition or archive many courses
* **Data Management**: Excel/CSV export and import with name reconciliation
"""

app = FastAPI(
    title=APP_NAME,
    description=DESCRIPTION,
    version=VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

cors_origins = os.getenv(
    "CORS_ORIGINS",
    "http://localhost:3000,http://localhost:3001"
).split(",")

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


def _error_body(request, error) -> dict:
    return {
        "success": False,
        "error": error,
        "timestamp": datetime.utcnow().isoformat(),
        "path": str(request.url)
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions with consistent error format"""
    return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.detail))


@app.exception_handler(ValidationError)
async def validation_exception_handler(request, exc):
    """Engine validation failures: nothing was applied"""
    return JSONResponse(status_code=422, content=_error_body(request, exc.to_dict()))


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(status_code=500, content=_error_body(request, "Internal server error"))


app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(hierarchy.router, prefix="/api/v1")
app.include_router(courses.router, prefix="/api/v1")
app.include_router(selection.router, prefix="/api/v1")
app.include_router(bulk.router, prefix="/api/v1")
app.include_router(data.router, prefix="/api/v1")


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "name": APP_NAME,
        "version": VERSION,
        "status": "running",
        "environment": os.getenv("ENVIRONMENT", "development"),
        "timestamp": datetime.utcnow().isoformat(),
        "docs": "/docs",
        "health": "/api/v1/health"
    }


@app.on_event("startup")
async def startup_event():
    logger.info("Starting %s v%s", APP_NAME, VERSION)
    logger.info("Environment: %s", os.getenv("ENVIRONMENT", "development"))
    logger.info("CORS Origins: %s", cors_origins)
    # Optional automatic Alembic upgrade
    if os.getenv("AUTO_MIGRATE", "false").lower() in {"1", "true", "yes"}:
        try:
            import subprocess
            logger.info("AUTO_MIGRATE enabled: running 'alembic upgrade head'")
            result = subprocess.run(
                ["alembic", "upgrade", "head"],
                cwd=os.path.join(os.path.dirname(__file__), ".."),
                capture_output=True,
                text=True,
                check=False,
            )
            if result.returncode != 0:
                logger.error(
                    "Alembic upgrade failed (code %s): %s\n%s",
                    result.returncode,
                    result.stdout,
                    result.stderr,
                )
            else:
                logger.info("Alembic migration applied successfully")
        except FileNotFoundError:
            logger.error("Alembic not found - ensure it's installed in the environment")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down %s", APP_NAME)


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    host = os.getenv("HOST", "0.0.0.0")

    uvicorn.run(
        "coursetrack.main:app",
        host=host,
        port=port,
        reload=True,
        log_level="info"
    )
