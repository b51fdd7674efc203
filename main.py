import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from api.routes import router
from api.auth import router as auth_router
from config import API_HOST, API_PORT, setup_logging
from database.connection import close_database, init_database, ping_database
from models.errors import AttendanceError
from services.attendance_submission import drain_pending_notifications

setup_logging()
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


async def _startup():
    if not await ping_database():
        logger.warning("Database not available. Profile and attendance endpoints will fail.")
        return
    try:
        await init_database()
    except Exception as e:
        logger.warning(f"Table creation failed: {e}")
        return
    logger.info("Face Attendance API ready")


async def _shutdown():
    # In-flight attendance emails finish before the loop goes away
    try:
        await drain_pending_notifications()
    except Exception as e:
        logger.warning(f"Notification drain warning: {e}")
    await close_database()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: check the database and create missing tables.
    Shutdown: drain notification tasks, dispose the engine.
    """
    logger.info("Starting Face Attendance API...")
    await _startup()
    yield
    logger.info("Shutting down...")
    await _shutdown()


app = FastAPI(
    title="Face Attendance API",
    description="""
    Face Attendance Submission API

    Features:
    - Untrusted image validation (magic bytes, size and dimension bounds)
    - Enrollment photo upload with a per-user photo cap
    - Attendance submission with idempotent record creation
    - Signed, time-limited image URLs
    """,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api/v1", tags=["Face Attendance"])
app.include_router(auth_router, prefix="/api/v1", tags=["Authentication"])


@app.exception_handler(AttendanceError)
async def attendance_error_handler(request: Request, exc: AttendanceError):
    """Render pipeline errors as {success, error, kind}"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": "Face Attendance API",
        "version": API_VERSION,
        "docs": "/docs",
        "health": "/api/v1/health"
    }


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=API_HOST,
        port=API_PORT,
        reload=True
    )
