from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from scanfarma.core.config import get_settings
from scanfarma.core.errors import ScanFarmaError
from scanfarma.routers.auth import router as auth_router
from scanfarma.routers.health import router as health_router

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.APP_NAME,
    description="Pharmacy expiration tracking API - FIFO stock deduction, expiry alerts, waste analytics and restocking suggestions.",
    version="0.1.0",
)


@app.exception_handler(ScanFarmaError)
async def domain_exception_handler(request: Request, exc: ScanFarmaError):
    """Expected domain failures map to their own status codes."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{exc.code} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Global exception handler for unhandled errors
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected server errors with structured response."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID"),
        }
    )

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
from scanfarma.routers.products import router as products_router
from scanfarma.routers.batches import router as batches_router
from scanfarma.routers.sales import router as sales_router
from scanfarma.routers.waste import router as waste_router
from scanfarma.routers.intelligence import router as intelligence_router
from scanfarma.routers.intelligence import alerts_router, capture_router
from scanfarma.routers.settings import router as settings_router

app.include_router(health_router)
app.include_router(auth_router, prefix="/api")
app.include_router(products_router, prefix="/api")
app.include_router(batches_router, prefix="/api")
app.include_router(sales_router, prefix="/api")
app.include_router(waste_router, prefix="/api")
app.include_router(intelligence_router, prefix="/api")
app.include_router(alerts_router, prefix="/api")
app.include_router(capture_router, prefix="/api")
app.include_router(settings_router, prefix="/api")


@app.get("/")
def read_root():
    return {
        "message": "Welcome to ScanFarma API",
        "docs": "/docs",
        "health": "/health"
    }
