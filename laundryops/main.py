import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

# Import all models to ensure they're registered with SQLAlchemy Base
from . import (
    models,  # noqa: F401
    models_invoice,  # noqa: F401
    models_routing,  # noqa: F401
    models_whatsapp,  # noqa: F401
)
from .cache import get_cache_stats
from .config import ALLOWED_ORIGINS
from .database import Base, SessionLocal, engine
from .domain.customers.router import router as customers_router
from .domain.orders.router import router as orders_router
from .routes.business import router as business_router
from .routes.dashboard import router as dashboard_router
from .routes.delivery_routes import router as delivery_routes_router
from .routes.delivery_zones import router as delivery_zones_router
from .routes.invoices import router as invoices_router
from .routes.route_assignments import router as route_assignments_router
from .routes.route_integration import router as route_integration_router
from .routes.services_catalog import router as services_router
from .routes.users import router as users_router
from .routes.vehicle_tracking import router as vehicle_tracking_router
from .routes.vehicles import router as vehicles_router
from .routes.whatsapp import router as whatsapp_router

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
        # Several workers may race on the first start
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    from .rate_limiter import get_redis_client

    if get_redis_client() is not None:
        logger.info("Redis connection established")
    else:
        logger.warning("Redis unavailable - rate limiting falls back to in-memory counters")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="LaundryOps API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors from HTTPBearer to 401 authentication errors
    when the issue is with the Authorization header
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": jsonable_errors(exc)})


def jsonable_errors(exc: RequestValidationError) -> list:
    # ValueError instances raised in validators are not JSON serializable
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# Routes
app.include_router(business_router)
app.include_router(users_router)
app.include_router(customers_router)
app.include_router(orders_router)
app.include_router(services_router)
app.include_router(vehicles_router)
app.include_router(delivery_zones_router)
app.include_router(delivery_routes_router)
app.include_router(route_assignments_router)
app.include_router(route_integration_router)
app.include_router(vehicle_tracking_router)
app.include_router(invoices_router)
app.include_router(whatsapp_router)
app.include_router(dashboard_router)


@app.get("/")
def root():
    return {"message": "LaundryOps API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}


@app.get("/health/database")
def database_health_check():
    """Check database connectivity for monitoring"""
    db = SessionLocal()
    try:
        start_time = time.time()
        db.execute(text("SELECT 1"))
        response_time = (time.time() - start_time) * 1000
        return {"status": "healthy", "database": {"connected": True, "response_time_ms": round(response_time, 2)}}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "unhealthy", "database": {"connected": False, "error": str(e)}},
        )
    finally:
        db.close()


@app.get("/health/cache")
def cache_health_check():
    return get_cache_stats()
