"""
FastAPI Application Entry Point
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from franchise_crm.api.v1.routes import api_router
from franchise_crm.core.config import Settings, get_settings
from franchise_crm.core.container import AppContainer
from franchise_crm.core.identity_middleware import IdentityMiddleware
from franchise_crm.domain.errors import (
    CorruptedPartitionError,
    CRMError,
    MissingFollowUpError,
    PersistenceError,
    RecordNotFoundError,
    TenantAccessError,
    UnknownTenantError,
    ValidationError,
)

load_dotenv()

logger = logging.getLogger(__name__)


ERROR_STATUS = {
    ValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    MissingFollowUpError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    UnknownTenantError: status.HTTP_404_NOT_FOUND,
    RecordNotFoundError: status.HTTP_404_NOT_FOUND,
    TenantAccessError: status.HTTP_403_FORBIDDEN,
    CorruptedPartitionError: status.HTTP_409_CONFLICT,
    PersistenceError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


async def crm_error_handler(request: Request, exc: CRMError) -> JSONResponse:
    """Map domain errors to HTTP responses."""
    status_code = status.HTTP_400_BAD_REQUEST
    for error_class, code in ERROR_STATUS.items():
        if isinstance(exc, error_class):
            status_code = code
            break

    body = {"detail": exc.message, "error": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.fields:
        body["fields"] = exc.fields

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=status_code, content=body)


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[AppContainer] = None
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings override (defaults to environment)
        container: Pre-built container; when given, startup does not build one
    """
    settings = settings or (container.settings if container else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Startup:
        - Validates configuration
        - Builds the container (storage backend, notifier, stores)

        Shutdown:
        - Closes notifier subscriptions and backend connections
        """
        logger.info("Starting Franchise CRM...")

        strict_validation = settings.environment == "production"
        try:
            from franchise_crm.core.validation import validate_config_on_startup
            validate_config_on_startup(settings, strict=strict_validation)
        except RuntimeError as e:
            if strict_validation:
                logger.error(f"Startup failed: {e}")
                raise
            logger.warning(f"Configuration warnings (non-fatal in {settings.environment}): {e}")

        owns_container = getattr(app.state, "container", None) is None
        if owns_container:
            app.state.container = await AppContainer.build(settings)

        logger.info("Franchise CRM started successfully")

        yield

        logger.info("Shutting down Franchise CRM...")
        if owns_container:
            try:
                await app.state.container.shutdown()
            except Exception as e:
                logger.error(f"Error during shutdown: {e}")
            app.state.container = None
        logger.info("Franchise CRM shutdown complete")

    app = FastAPI(
        title="Franchise CRM",
        description="Multi-tenant franchise CRM: partitioned records, aggregation and outreach campaigns",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(IdentityMiddleware)

    app.add_exception_handler(CRMError, crm_error_handler)
    app.include_router(api_router, prefix=settings.api_prefix)

    @app.get("/")
    async def root():
        return {"message": "Franchise CRM API", "status": "running"}

    @app.get("/health")
    async def health_check():
        """
        Health check endpoint.

        Returns backend names and the number of active campaign sessions.
        """
        health = {"status": "healthy"}
        current = app.state.container
        if current is None:
            health["status"] = "starting"
            return health

        health["storage_backend"] = current.backend.name
        health["notifier_backend"] = settings.notifier_backend
        health["active_campaigns"] = current.sessions.get_active_session_count()
        return health

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
