import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import settings
from .database import Base, engine
from .limiter import limiter
from .logging_config import setup_logging
from .routers import (
    admin,
    auth,
    chapters,
    comments,
    communities,
    follows,
    health,
    media,
    organizers,
    photos,
    profile,
    push,
    ride_routes,
    rides,
    rsvps,
    snippets,
    sponsors,
    strava,
)
from .scheduler import start_scheduler, stop_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    # Create tables on startup
    Base.metadata.create_all(bind=engine)

    if settings.ENABLE_SCHEDULER:
        start_scheduler()

    yield

    stop_scheduler()


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    # pydantic prefixes messages raised from validators
    message = message.removeprefix("Value error, ")
    if errors and errors[0].get("type") == "missing":
        field = errors[0]["loc"][-1]
        message = f"{field} is required"
    return JSONResponse(status_code=400, content={"error": message})


async def rate_limit_handler(request: Request, exc: RateLimitExceeded):
    return JSONResponse(status_code=429, content={"error": "Too many requests"})


async def global_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def create_app() -> FastAPI:
    app = FastAPI(title=f"{settings.APP_NAME} API", lifespan=lifespan)
    app.state.limiter = limiter

    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    app.include_router(auth.router, prefix="/api/auth", tags=["auth"])
    for module in (health, profile, communities, sponsors, chapters, organizers, rides,
                   comments, photos, ride_routes, rsvps, follows, snippets, push,
                   strava, media, admin):
        app.include_router(module.router, prefix="/api", tags=[module.__name__.rsplit(".", 1)[-1]])

    @app.get("/")
    def read_root():
        return {"message": f"{settings.APP_NAME} API is running"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("rideswith.main:app", host="0.0.0.0", port=8000)
