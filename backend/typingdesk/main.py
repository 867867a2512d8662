"""
TypingDesk - FastAPI Application Entry Point.

This is the main application module that:
1. Initializes the FastAPI app with CORS middleware
2. Sets up structured JSON logging
3. Implements request ID middleware (X-Request-ID header)
4. Maps service-layer errors to JSON error responses
5. Registers all API route handlers

The application follows a modular architecture:
- routes/: API endpoint handlers
- models/: SQLAlchemy ORM models
- services/: Business logic (membership sync, guards, CRUD)
- repository.py: Generic entity access over a session
- logging_config.py: Structured logging configuration
- database.py: Database connection and transaction scope
"""

import time
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from typingdesk.logging_config import (
    setup_logging, get_logger, log_with_context, request_scope
)
from typingdesk.errors import TypingDeskError
from typingdesk.routes import admin_students, auth, batches, shifts, student, tests
from typingdesk.database import DATABASE_URL, create_tables

# Import all models so they are registered with Base.metadata
from typingdesk import models  # noqa: F401

# ──────────────────────────────────────────────────────────────
# Initialize structured logging BEFORE anything else
# ──────────────────────────────────────────────────────────────
setup_logging()
logger = get_logger("http")

# Auto-create tables for SQLite local development
if DATABASE_URL.startswith("sqlite"):
    logger.info("Using SQLite, creating tables directly")
    create_tables()

# ──────────────────────────────────────────────────────────────
# Create FastAPI application
# ──────────────────────────────────────────────────────────────
app = FastAPI(
    title="TypingDesk",
    description=(
        "Administration backend for a typing-test platform: students, batches, "
        "tests and shifts with consistent two-sided memberships, approval "
        "gating, batch capacity and result submission."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc"
)

# ──────────────────────────────────────────────────────────────
# CORS Middleware
#
# In production, restrict origins to the actual frontend domain.
# ──────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"]
)


# ──────────────────────────────────────────────────────────────
# Request ID Middleware
# ──────────────────────────────────────────────────────────────
@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """
    Generate a request ID for every HTTP request.

    The ID is stored in a context variable so every log entry written
    while handling the request carries it, and it is echoed back in the
    X-Request-ID response header.
    """
    with request_scope() as req_id:
        start_time = time.time()
        log_with_context(logger, "INFO",
            "Request started: {} {}".format(request.method, request.url.path),
            extra_data={
                "ip": request.client.host if request.client else "unknown",
                "user_agent": request.headers.get("user-agent", ""),
                "query_params": dict(request.query_params)
            })

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        response.headers["X-Request-ID"] = req_id
        log_with_context(logger, "INFO",
            "Request completed: {} {} -> {}".format(request.method, request.url.path, response.status_code),
            extra_data={
                "duration_ms": round(duration_ms, 2),
                "status_code": response.status_code
            })

    return response


# ──────────────────────────────────────────────────────────────
# Error mapping
#
# Every service-layer error carries its own kind and status code.
# ──────────────────────────────────────────────────────────────
@app.exception_handler(TypingDeskError)
async def typingdesk_error_handler(request: Request, exc: TypingDeskError):
    level = "ERROR" if exc.status_code >= 500 else "WARNING"
    log_with_context(logger, level,
        "Request failed: {} {} -> {} ({})".format(
            request.method, request.url.path, exc.status_code, exc.kind),
        extra_data=exc.to_dict())
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_dict()})


# ──────────────────────────────────────────────────────────────
# Register API routes
# ──────────────────────────────────────────────────────────────
app.include_router(auth.router, tags=["Auth"])
app.include_router(batches.router, tags=["Batches"])
app.include_router(admin_students.router, tags=["Students (admin)"])
app.include_router(student.router, tags=["Student"])
app.include_router(tests.router, tags=["Tests"])
app.include_router(shifts.router, tags=["Shifts"])


# ──────────────────────────────────────────────────────────────
# Health check endpoint
# ──────────────────────────────────────────────────────────────
@app.get("/health", tags=["Health"])
def health_check():
    """Health check endpoint for Docker health checks and monitoring."""
    return {"status": "healthy", "service": "typingdesk-backend", "version": "1.0.0"}


@app.get("/", tags=["Root"])
def root():
    """Root endpoint with API information."""
    return {
        "service": "TypingDesk",
        "version": "1.0.0",
        "docs": "/docs",
        "health": "/health",
        "endpoints": {
            "login": "POST /api/v1/auth/login",
            "batches": "GET /api/v1/batches",
            "batch_students": "POST /api/v1/batches/{id}/students",
            "students": "GET /api/v1/admin/students",
            "student_batches": "PUT /api/v1/admin/students/{id}/batches",
            "my_tests": "GET /api/v1/student/my-tests",
            "submit_result": "POST /api/v1/student/results",
            "tests": "GET /api/v1/tests",
            "shifts": "GET /api/v1/shifts"
        }
    }
