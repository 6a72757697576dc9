from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.exc import IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import re
from pathlib import Path

from firstmoments.database import engine, Base
from firstmoments import models  # Import all models to register them with Base
from firstmoments.constants import (
    DEFAULT_LOG_DIRECTORY_DEV, LOG_DIR, LOG_FILE, CORS_ALLOWED_ORIGINS,
    RATE_LIMIT, RATE_LIMIT_ENABLED, CLEANUP_ENABLED,
)
from firstmoments.exceptions import FirstMomentsException
from firstmoments.routes import auth, users, profiles, moments, achievements, locations, notifications
from firstmoments.scheduler import start_scheduler, stop_scheduler
from firstmoments.shared.responses import error_body

# Create log directory if it doesn't exist (for development)
try:
    Path(LOG_DIR).mkdir(parents=True, exist_ok=True)
    log_path = Path(LOG_DIR) / LOG_FILE
except PermissionError:
    # Fallback to local directory if no permissions for /var/log
    Path(DEFAULT_LOG_DIRECTORY_DEV).mkdir(parents=True, exist_ok=True)
    log_path = Path(DEFAULT_LOG_DIRECTORY_DEV) / LOG_FILE

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(log_path),
        logging.StreamHandler()  # Also log to console
    ]
)

logger = logging.getLogger("first_moments")

# Create database tables
Base.metadata.create_all(bind=engine)

app = FastAPI(
    title="First Moments API",
    description="Life journal backend: profiles, moments, achievements, locations and notifications",
    version="1.0.0",
    docs_url="/api-docs",
    openapi_url="/api-docs/openapi.json",
)

# Rate limiting per client address
limiter = Limiter(key_func=get_remote_address, default_limits=[RATE_LIMIT], enabled=RATE_LIMIT_ENABLED)
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)

# CORS settings for the mobile and web clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth.router)
app.include_router(users.router)
app.include_router(profiles.router)
app.include_router(moments.router)
app.include_router(achievements.router)
app.include_router(locations.router)
app.include_router(notifications.router)


# ===== ERROR HANDLERS =====

UNIQUE_FIELD_PATTERNS = (
    re.compile(r"UNIQUE constraint failed: \w+\.(\w+)"),  # sqlite
    re.compile(r"Key \((\w+)(?:, \w+)*\)=.* already exists"),  # postgres
)


def _duplicate_field(exc: IntegrityError) -> str:
    text = str(exc.orig)
    for pattern in UNIQUE_FIELD_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1)
    return "value"


@app.exception_handler(FirstMomentsException)
async def app_exception_handler(request: Request, exc: FirstMomentsException):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.message, exc.errors))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part not in ("body", "query", "path")),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]
    message = errors[0]["message"] if errors else "Validation failed"
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(message, errors))


@app.exception_handler(IntegrityError)
async def integrity_exception_handler(request: Request, exc: IntegrityError):
    field = _duplicate_field(exc)
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error_body(f"{field} already exists"))


@app.exception_handler(RateLimitExceeded)
async def rate_limit_exception_handler(request: Request, exc: RateLimitExceeded):
    logger.warning(f"Rate limit exceeded by {get_remote_address(request)}")
    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content=error_body("Too many requests, please try again later"),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
        message = f"Route {request.url.path} not found"
    return JSONResponse(status_code=exc.status_code, content=error_body(message), headers=exc.headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body("Internal server error"),
    )


# Startup event
@app.on_event("startup")
async def startup_event():
    logger.info(f"First Moments API started. Logging to: {log_path}")
    if CLEANUP_ENABLED:
        start_scheduler()


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    logger.info("Shutting down First Moments API")
    stop_scheduler()


# Health check (no auth required)
@app.get("/")
@limiter.exempt
async def root():
    return {"success": True, "message": "First Moments API", "data": {"status": "active"}}


@app.get("/api/health")
@limiter.exempt
async def health():
    return {"success": True, "message": "OK", "data": {"status": "healthy"}}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
