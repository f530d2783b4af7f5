import logging

from fastapi import APIRouter, Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from vehicle_rental.core.config import settings
from vehicle_rental.core.errors import register_error_handlers
from vehicle_rental.core.rate_limit import limit_api_requests
from vehicle_rental.core.mongodb import connect_to_mongodb, close_mongodb_connection, get_database
from vehicle_rental.core.crud import seed_database

# Import routes
from vehicle_rental.api.routes import (
    admin,
    auth,
    bookings,
    mechanic_bookings,
    mechanics,
    payments,
    support,
    users,
    vehicles,
)

logger = logging.getLogger(__name__)


def configure_logging():
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events"""
    # Startup
    configure_logging()
    logger.info("Starting %s v%s", settings.APP_NAME, settings.APP_VERSION)
    connect_to_mongodb()

    if settings.SEED_ON_STARTUP:
        seed_database(get_database())

    yield

    # Shutdown
    logger.info("Shutting down %s", settings.APP_NAME)
    close_mongodb_connection()


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Vehicle rental marketplace with vendor listings, bookings and mechanic services",
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app)

# Everything under /api shares the per-client request limit
api_router = APIRouter(prefix="/api", dependencies=[Depends(limit_api_requests)])


@api_router.get("/health")
def health_check():
    return {"status": "OK", "message": "Vehicle Rental API is running"}


# Include routers; mechanic bookings first so /mechanics/bookings/* wins over /mechanics/{id}
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(vehicles.router)
api_router.include_router(bookings.router)
api_router.include_router(payments.router)
api_router.include_router(mechanic_bookings.router)
api_router.include_router(mechanics.router)
api_router.include_router(admin.router)
api_router.include_router(support.router)

app.include_router(api_router)


@app.get("/")
def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "docs": "/api/docs"
    }
