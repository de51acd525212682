import logging
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from marketplace.api import auth, categories, orders, payments, products
from marketplace.config import settings
from marketplace.db_init import init_db, seed_admin_user
from marketplace.models import Database
from marketplace.services.exceptions import ServiceError
from marketplace.webhooks import payhere_notify

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("marketplace.startup")


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.hostname)


def _get_cors_origins(cors_raw: str) -> list[str]:
    return [origin.strip() for origin in cors_raw.split(",") if origin.strip()]


def _validate_database_url_for_runtime(database_url: str) -> None:
    parsed = urlparse(database_url)
    scheme = parsed.scheme
    postgres_schemes = {"postgres", "postgresql", "postgresql+psycopg"}

    if not scheme:
        raise RuntimeError("DATABASE_URL is missing URL scheme (expected postgresql:// or postgresql+psycopg://).")
    if scheme == "sqlite":
        return
    if scheme not in postgres_schemes:
        raise RuntimeError(
            f"DATABASE_URL has unsupported scheme '{scheme}' "
            "(expected postgresql:// or postgresql+psycopg://)."
        )
    if not parsed.hostname:
        raise RuntimeError("DATABASE_URL is missing host.")
    if not parsed.path.lstrip("/"):
        raise RuntimeError("DATABASE_URL is missing database name in path.")


def _validate_required_env_for_runtime() -> None:
    errors = []
    warnings = []

    if not settings.JWT_SECRET.strip():
        errors.append("JWT_SECRET is required.")

    if not _is_http_url(settings.BASE_URL):
        errors.append("BASE_URL must be an absolute http(s) URL, e.g. https://api.example.com")

    origins = _get_cors_origins(settings.CORS_ORIGINS)
    if not origins:
        errors.append("CORS_ORIGINS must contain at least one comma-separated origin URL.")
    else:
        invalid_origins = [origin for origin in origins if not _is_http_url(origin)]
        if invalid_origins:
            errors.append(f"CORS_ORIGINS contains invalid URL(s): {', '.join(invalid_origins)}")

    if not settings.PAYHERE_MERCHANT_ID or not settings.PAYHERE_SECRET_KEY:
        warnings.append(
            "PAYHERE_MERCHANT_ID/PAYHERE_SECRET_KEY not set: checkout hashes and PayHere notifications "
            "will be rejected."
        )

    if warnings:
        logger.warning("Startup environment warnings: %s", " | ".join(warnings))

    if errors:
        raise RuntimeError("Startup environment validation failed: " + " | ".join(errors))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup initiated.")
    database_url = settings.DATABASE_URL
    _validate_database_url_for_runtime(database_url)
    _validate_required_env_for_runtime()

    database = Database(database_url)
    try:
        init_db(database)
    except Exception:
        logger.exception("Database initialization failed (host=%s)", urlparse(database_url).hostname)
        database.dispose()
        raise
    app.state.database = database

    db = database.session()
    try:
        seed_admin_user(db)
    finally:
        db.close()
    logger.info("Application startup completed successfully.")
    try:
        yield
    finally:
        database.dispose()
        logger.info("Database connections closed.")


app = FastAPI(
    title="Craft Marketplace API",
    description=(
        "Backend API for the craft marketplace: catalog, orders (user or guest checkout) "
        "and PayHere payments. Use **Authorize** with the token from `POST /api/auth/login`."
    ),
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Auth", "description": "Register, verify email and login (JWT)."},
        {"name": "Categories", "description": "Product categories."},
        {"name": "Products", "description": "Catalog management."},
        {"name": "Orders", "description": "Place, list, cancel and update orders."},
        {"name": "Payments", "description": "PayHere checkout hash, confirmation and history."},
        {"name": "Webhooks", "description": "Called by PayHere."},
    ],
)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


app.add_middleware(
    CORSMiddleware,
    allow_origins=_get_cors_origins(settings.CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/auth", tags=["Auth"])
app.include_router(categories.router, prefix="/api/categories", tags=["Categories"])
app.include_router(products.router, prefix="/api/products", tags=["Products"])
app.include_router(orders.router, prefix="/api/orders", tags=["Orders"])
app.include_router(payments.router, prefix="/api/payments", tags=["Payments"])
app.include_router(payhere_notify.router, prefix="/webhooks", tags=["Webhooks"])


@app.get("/")
def root():
    return {"status": "ok", "service": "Craft Marketplace API"}


@app.get("/health")
def health():
    return {"status": "ok"}
