from __future__ import annotations

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from chatastro import __version__
from chatastro.chat import chat_router
from chatastro.config import get_settings
from chatastro.dependencies import Services, build_services, get_services
from chatastro.exceptions import ChatAstroException
from chatastro.logger import configure_logging, logger
from chatastro.middleware.correlation import CorrelationIdMiddleware
from chatastro.payment import payment_router
from chatastro.users import users_router
from chatastro.utils.models import utcnow

app = FastAPI(
    title="ChatAstro API",
    description="""
# ChatAstro

Conversational Vedic astrology backend.

## Flow
1. `POST /api/user/create` with birth details; returns a user id and session id
2. `POST /api/chat/message` to ask questions (first general overview is free)
3. After the free questions run out, buy a plan through `/api/payment/*`
    """,
    version=__version__,
    openapi_tags=[
        {"name": "users", "description": "User profiles"},
        {"name": "chat", "description": "Astrology conversation"},
        {"name": "payment", "description": "Plans, orders and payment verification"},
        {"name": "health", "description": "Health check"},
    ],
)


@app.exception_handler(ChatAstroException)
async def chatastro_exception_handler(request: Request, exc: ChatAstroException):
    """Handle all custom ChatAstro exceptions."""
    logger.warning(
        "chatastro_exception",
        error_code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return JSONResponse(status_code=exc.status_code, content={"success": False, **exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    field_errors = []
    for error in exc.errors():
        loc = error.get("loc", [])
        field = ".".join(str(part) for part in loc if part != "body")
        field_errors.append({"field": field, "message": error.get("msg", "Invalid value")})

    logger.warning("validation_error", path=request.url.path, errors=field_errors)
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "VALIDATION_ERROR",
            "message": "Invalid request data",
            "details": {"errors": field_errors},
        },
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    logger.warning("http_exception", status_code=exc.status_code, detail=exc.detail, path=request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": "HTTP_ERROR",
            "message": str(exc.detail) if exc.detail else "An error occurred",
            "details": {"status_code": exc.status_code},
        },
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Log everything, return nothing internal."""
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
            "details": {},
        },
    )


_settings = get_settings()

# Last added runs first.
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins_list,
    allow_credentials=_settings.cors_origins_list != ["*"],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Correlation-ID"],
)

app.include_router(users_router)
app.include_router(chat_router)
app.include_router(payment_router)


@app.on_event("startup")
async def startup_event() -> None:
    settings = get_settings()
    configure_logging(settings.log_level, json_format=settings.is_production)
    app.state.settings = settings
    app.state.services = build_services(settings)
    logger.info(
        "startup_complete",
        environment=settings.environment,
        providers=settings.configured_providers(),
        free_question_limit=settings.free_question_limit,
    )


@app.get("/health", tags=["health"])
@app.get("/api/health", tags=["health"], include_in_schema=False)
async def health(services: Services = Depends(get_services)) -> dict:
    return {
        "status": "ok",
        "version": __version__,
        "timestamp": utcnow(),
        "stores": {**services.engine.stats(), **services.payments.stats()},
        "providers": services.settings.configured_providers(),
    }
