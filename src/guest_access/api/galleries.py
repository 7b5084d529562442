"""Session-scoped gallery endpoints for clients, guests and photographers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Body, Depends, Header, Request

from guest_access.api.models import DownloadAuthorization, DownloadRequest
from guest_access.domain.downloads import sanitize_downloads_for_client
from guest_access.domain.errors import AuthenticationError
from guest_access.domain.guests import ClientIdentity, PhotographerIdentity
from guest_access.services.sessions import verify_photographer_token

if TYPE_CHECKING:
    from guest_access.containers import AppContainer

router = APIRouter(prefix="/api/galleries", tags=["galleries"])

_BEARER_PREFIX = "Bearer "


async def require_client(
    gallery_id: str,
    request: Request,
    x_session_token: str | None = Header(default=None),
) -> ClientIdentity:
    """Resolve the session token of a client or guest for this gallery."""
    container: AppContainer = request.app.state.container
    return container.session_service.authenticate(x_session_token, gallery_id)


async def require_photographer(
    request: Request,
    authorization: str | None = Header(default=None),
) -> PhotographerIdentity:
    """Resolve a photographer from a signed bearer token."""
    if not authorization or not authorization.startswith(_BEARER_PREFIX):
        raise AuthenticationError("Authentication required")
    container: AppContainer = request.app.state.container
    return verify_photographer_token(
        authorization[len(_BEARER_PREFIX) :], container.settings.jwt_secret
    )


@router.get("/{gallery_id}/settings")
async def gallery_settings(
    gallery_id: str,
    request: Request,
    identity: ClientIdentity = Depends(require_client),
) -> dict[str, object]:
    """Return the client-facing settings of a gallery."""
    container: AppContainer = request.app.state.container
    return container.gallery_settings_service.client_settings(gallery_id)


@router.patch("/{gallery_id}/downloads")
async def update_download_settings(
    gallery_id: str,
    request: Request,
    patch: dict[str, object] = Body(...),
    photographer: PhotographerIdentity = Depends(require_photographer),
) -> dict[str, object]:
    """Update the download settings of a gallery the photographer owns."""
    container: AppContainer = request.app.state.container
    effective = container.gallery_settings_service.update_downloads(
        gallery_id, patch, photographer
    )
    return sanitize_downloads_for_client(effective)


@router.post(
    "/{gallery_id}/downloads/authorize",
    response_model=DownloadAuthorization,
    response_model_by_alias=True,
)
async def authorize_download(
    gallery_id: str,
    payload: DownloadRequest,
    request: Request,
    identity: ClientIdentity = Depends(require_client),
) -> DownloadAuthorization:
    """Check a download request against the gallery's download settings."""
    container: AppContainer = request.app.state.container
    photo_ids = container.authorization_gate.authorize_download(
        identity, gallery_id, payload.type, payload.photo_ids
    )
    return DownloadAuthorization(allowed=True, photoIds=photo_ids)
