import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import all models to ensure they're registered with SQLAlchemy Base
# This is needed for relationships between models in different files
from . import (
    models,  # noqa: F401
    models_loyalty,  # noqa: F401
    models_messaging,  # noqa: F401
    models_opportunities,  # noqa: F401
    models_promotions,  # noqa: F401
    models_support,  # noqa: F401
)
from .config import ALLOWED_ORIGINS, SECURITY_HEADERS_ENABLED
from .database import Base, SessionLocal, engine
from .domain.customers import router as customers_router
from .domain.jobs import router as jobs_router
from .domain.loyalty import router as loyalty_router
from .domain.loyalty.tiers import seed_default_tiers
from .domain.opportunities import router as opportunities_router
from .domain.portal import router as portal_router
from .domain.promotions import router as promotions_router
from .domain.reviews import router as reviews_router
from .domain.support import router as support_router
from .routes.cron import router as cron_router
from .routes.reminders import router as reminders_router
from .security_headers import SecurityHeadersMiddleware
from .shared.responses import HTTP_STATUS_ERROR_CODES, APIError, error_response

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    db = SessionLocal()
    try:
        seeded = seed_default_tiers(db)
        if seeded:
            logger.info(f"🏆 Seeded {seeded} default loyalty tiers")
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to seed loyalty tiers: {e}")
    finally:
        db.close()

    try:
        from .rate_limiter import get_redis_client

        get_redis_client()
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed - portal writes will be refused until it recovers: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="FieldCRM API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(APIError)
async def api_error_handler(request: Request, exc: APIError):
    if exc.status >= 500:
        logger.error(f"{request.method} {request.url.path} - {exc.error}: {exc.message}")
    return error_response(exc.error, exc.message, exc.status, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    response = error_response(
        HTTP_STATUS_ERROR_CODES.get(exc.status_code, "error"), str(exc.detail), exc.status_code
    )
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures as 400 with the offending fields"""
    errors = exc.errors()
    logger.warning(f"Validation error for {request.url.path}: {errors}")
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
    message = first.get("msg", "Invalid request data")
    return error_response(
        "validation_failed",
        f"{field}: {message}" if field else message,
        400,
        {"errors": [{"field": ".".join(str(p) for p in e.get("loc", ())), "message": e.get("msg")} for e in errors]},
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=["/health", "/docs", "/openapi.json"])
    logger.info("Security headers enabled")
else:
    logger.warning("Security headers DISABLED - only use in development!")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(customers_router)
app.include_router(jobs_router)
app.include_router(opportunities_router)
app.include_router(loyalty_router)
app.include_router(promotions_router)
app.include_router(reviews_router)
app.include_router(support_router)
app.include_router(portal_router)
app.include_router(reminders_router)
app.include_router(cron_router)


@app.get("/")
def root():
    return {"message": "FieldCRM API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
