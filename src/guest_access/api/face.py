"""Guest selfie access endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, File, Form, Request, UploadFile

from guest_access.api.models import (
    CheckMobileResponse,
    GuestAccessResponse,
    InvalidateSelfieResponse,
    MobileRequest,
)
from guest_access.domain.errors import (
    InvalidSelfieError,
    SelfieRequiredError,
    SelfieTooLargeError,
)
from guest_access.domain.guests import GuestAccessRequest

if TYPE_CHECKING:
    from guest_access.containers import AppContainer

router = APIRouter(prefix="/api/face", tags=["face"])

MAX_SELFIE_BYTES = 20 * 1024 * 1024


@router.post("/guest-access", response_model=GuestAccessResponse, response_model_by_alias=True)
async def guest_access(
    request: Request,
    selfie: UploadFile = File(...),
    gallery_id: str = Form(alias="galleryId"),
    mobile_number: str | None = Form(default=None, alias="mobileNumber"),
    guest_session_token: str | None = Form(default=None, alias="guestSessionToken"),
) -> GuestAccessResponse:
    """Match a selfie against a gallery and open a guest session."""
    container: AppContainer = request.app.state.container
    if selfie.content_type and not selfie.content_type.startswith("image/"):
        raise InvalidSelfieError("Only image files are allowed")
    content = await selfie.read()
    if not content:
        raise SelfieRequiredError("No selfie provided")
    if len(content) > MAX_SELFIE_BYTES:
        raise SelfieTooLargeError("Selfie is too large")

    resolution = await container.identity_resolver.resolve(
        gallery_id,
        GuestAccessRequest(
            selfie=content,
            mobile_number=mobile_number,
            session_token=guest_session_token,
        ),
    )
    return GuestAccessResponse(
        sessionToken=resolution.identity.session_token,
        matchedCount=len(resolution.identity.matched_photo_ids),
        cacheHit=resolution.cache_hit,
    )


@router.post(
    "/check-mobile", response_model=CheckMobileResponse, response_model_by_alias=True
)
async def check_mobile(payload: MobileRequest, request: Request) -> CheckMobileResponse:
    """Reuse an earlier selfie match for a returning mobile number."""
    container: AppContainer = request.app.state.container
    resolution = container.identity_resolver.check_mobile(
        payload.gallery_id, payload.mobile_number
    )
    if resolution is None:
        return CheckMobileResponse(found=False)
    return CheckMobileResponse(
        found=True,
        sessionToken=resolution.identity.session_token,
        matchedCount=len(resolution.identity.matched_photo_ids),
    )


@router.post(
    "/invalidate-selfie",
    response_model=InvalidateSelfieResponse,
    response_model_by_alias=True,
)
async def invalidate_selfie(
    payload: MobileRequest, request: Request
) -> InvalidateSelfieResponse:
    """Forget a mobile number's cached selfie."""
    container: AppContainer = request.app.state.container
    deleted = container.identity_resolver.invalidate_selfie(
        payload.gallery_id, payload.mobile_number
    )
    return InvalidateSelfieResponse(success=True, deletedCount=deleted)
