"""
Credit Chat - FastAPI Backend
Main application entry point with health check and API routing.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import (
    health,
    chats,
    messages,
    users,
)
from services.errors import ChatError, UnknownError, ValidationError
from services.responses import error_response

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Credit Chat API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    if not (settings.GEMINI_API_KEY or "").strip():
        print("⚠️ GEMINI_API_KEY missing; message requests will answer 503.")
    yield
    # Shutdown
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Credit Chat API",
    description="Multi-turn AI chat paid per turn from a credit balance",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ChatError)
async def chat_error_handler(request: Request, exc: ChatError):
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = {}
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ()) if part != "body"]
        errors[".".join(loc) or "body"] = item.get("msg", "Invalid value")
    return error_response(ValidationError(errors, message="Request body must be a JSON object"))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code in (404, 405):
        message = f"Cannot {request.method} {request.url.path}"
    else:
        message = str(exc.detail)
    codes = {404: "NotFound", 405: "MethodNotAllowed"}
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": message, "code": codes.get(exc.status_code, "HTTPError")},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    error = UnknownError("Internal server error", detail=str(exc))
    return error_response(error)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(chats.router, prefix="/chats", tags=["Chats"])
app.include_router(messages.router, prefix="/messages", tags=["Messages"])
app.include_router(users.router, prefix="/users", tags=["Users"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Credit Chat API",
        "version": "0.1.0",
        "status": "running"
    }
