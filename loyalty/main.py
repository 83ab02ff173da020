from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from contextlib import asynccontextmanager
import time
import logging
import uvicorn
from loyalty.core.config import settings
from loyalty.core.database import Base, engine
from loyalty.api import user, caisse, admin, setting, promotion

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    # Startup
    logger.info(f"Starting {settings.app_name}...")

    try:
        # Import all models to ensure they're registered
        from loyalty import database_model  # noqa: F401

        logger.info("Creating database tables...")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created successfully")

    except Exception as e:
        logger.error(f"Failed to create database tables: {e}")
        raise

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await engine.dispose()

app = FastAPI(
    title=settings.app_name,
    description="Backend API for the supermarket loyalty card: cashback, vouchers, sponsoring and promotions",
    version=settings.version,
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_hosts,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add processing time to response headers."""
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    return response

def error_response(status_code: int, message, headers=None, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "message": message, **extra},
        headers=headers
    )

# Exception handlers
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors, including the loyalty exceptions, in the response envelope."""
    extra = getattr(exc, "extra", None) or {}
    return error_response(
        exc.status_code,
        exc.detail,
        headers=getattr(exc, "headers", None),
        **extra
    )

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies are reported as 400."""
    errors = exc.errors()
    field = ".".join(str(part) for part in errors[0]["loc"][1:]) if errors else ""
    message = f"Champ invalide : {field}." if field else "Données invalides."
    return error_response(400, message)

@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return error_response(500, "Une erreur interne s'est produite.")

# Include API routers
app.include_router(user.router, prefix="/api/v1")
app.include_router(caisse.router, prefix="/api/v1")
app.include_router(admin.router, prefix="/api/v1")
app.include_router(setting.router, prefix="/api/v1")
app.include_router(promotion.router, prefix="/api/v1")

# Health check endpoint
@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": time.time(),
        "version": settings.version,
        "environment": settings.environment
    }

if __name__ == "__main__":
    uvicorn.run(
        "loyalty.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
