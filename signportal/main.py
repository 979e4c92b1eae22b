# signportal/main.py

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from signportal.core.config import settings
from signportal.core.db import init_db
from signportal.docuseal.client import DocusealAPIError
from signportal.utils.logger import setup_app_logging, get_logger
# Local application imports - Routes
from signportal.users.router import router as user_routes
from signportal.docuseal.router import router as docuseal_routes


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Ensure the database tables exist before serving requests
    """
    if settings.auto_create_tables:
        init_db()
    yield


# Create the FastAPI app
signportal_app = FastAPI(
    title=f"SignPortal - {settings.environment}",
    description="SignPortal e-signature API",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# Configure logging
if settings.environment.lower() != "production":
    setup_app_logging(
        signportal_app,
        log_level=settings.log_level,
        use_json=False,
        log_file=settings.log_file,
        app_name="SignPortal",
        environment=settings.environment,
    )
else:
    setup_app_logging(
        signportal_app,
        log_level=settings.log_level,
        use_json=True,
        log_file=settings.log_file,
        app_name="SignPortal",
        environment="production",
    )
logger = get_logger(__name__)

# Add CORS middleware
signportal_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_cors_urls.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@signportal_app.exception_handler(DocusealAPIError)
async def docuseal_error_handler(request: Request, exc: DocusealAPIError):
    """
    Relay DocuSeal failures with the provider's own status and body
    """
    logger.warning(
        "Relaying DocuSeal error",
        path=request.url.path,
        status=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.body)


# Include routers
signportal_app.include_router(user_routes)
signportal_app.include_router(docuseal_routes)


# Root API to check if the server is up
@signportal_app.get("/", tags=["Base"])
async def health_check():
    """
    Root API to check if the server is up
    """
    logger.info("Calling root API for testing")
    return {"status": "ok"}
