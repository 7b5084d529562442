"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from guest_access.api.face import router as face_router
from guest_access.api.galleries import router as galleries_router
from guest_access.app_logging import configure_logging
from guest_access.containers import AppContainer
from guest_access.domain.errors import (
    ActionForbiddenError,
    AuthenticationError,
    GalleryAccessDeniedError,
    GuestAccessError,
    InvalidGuestSessionError,
    InvalidSelfieError,
    InvalidSettingsError,
    MobileRequiredError,
    NoFaceDetectedError,
    ProviderUnavailableError,
    RateLimitedError,
    SelfieRequiredError,
    SelfieTooLargeError,
)

_STATUS_CODES: dict[type[GuestAccessError], int] = {
    RateLimitedError: status.HTTP_429_TOO_MANY_REQUESTS,
    SelfieTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    InvalidSelfieError: status.HTTP_400_BAD_REQUEST,
    InvalidSettingsError: status.HTTP_400_BAD_REQUEST,
    NoFaceDetectedError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ProviderUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    GalleryAccessDeniedError: status.HTTP_403_FORBIDDEN,
    ActionForbiddenError: status.HTTP_403_FORBIDDEN,
    MobileRequiredError: status.HTTP_400_BAD_REQUEST,
    InvalidGuestSessionError: status.HTTP_400_BAD_REQUEST,
    SelfieRequiredError: status.HTTP_400_BAD_REQUEST,
    AuthenticationError: status.HTTP_401_UNAUTHORIZED,
}


def status_for(exc: GuestAccessError) -> int:
    """Return the HTTP status for an engine error."""
    for error_type, status_code in _STATUS_CODES.items():
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging()
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "Guest access API using %s matching provider",
            app.state.container.matching_provider.provider_name,
        )
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(face_router)
    app.include_router(galleries_router)

    @app.exception_handler(GuestAccessError)
    async def guest_access_error(request: Request, exc: GuestAccessError) -> JSONResponse:
        status_code = status_for(exc)
        body: dict[str, object] = {"error": {"code": exc.code, "message": exc.message}}
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitedError):
            body["retryAfter"] = exc.reset_in_seconds
            headers["Retry-After"] = str(exc.reset_in_seconds)
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.warning("%s on %s: %s", exc.code, request.url.path, exc.message)
        return JSONResponse(status_code=status_code, content=body, headers=headers)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
