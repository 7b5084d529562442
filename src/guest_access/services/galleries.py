"""Gallery settings reads, normalized writes and cleanup hooks."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from pydantic import ValidationError

from guest_access.domain.downloads import (
    DownloadSettings,
    get_effective_downloads,
    normalize_downloads_for_storage,
    sanitize_downloads_for_client,
)
from guest_access.domain.errors import (
    ActionForbiddenError,
    GalleryAccessDeniedError,
    InvalidSettingsError,
)
from guest_access.domain.galleries import GalleryRecord, PhotoRecord
from guest_access.domain.guests import PhotographerIdentity
from guest_access.services.face_cache import FaceCache
from guest_access.services.matching import MatchingProvider
from guest_access.services.rate_limit import AttemptLimiter

logger = logging.getLogger(__name__)


class GalleryRepository(Protocol):
    """Read access to galleries and their photos."""

    def get_gallery(self, gallery_id: str) -> GalleryRecord | None:
        """Return a gallery by id, if present."""

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        """Return a photo by id, if present."""

    def list_photo_ids(self, gallery_id: str) -> set[str]:
        """Return ids of all photos currently in a gallery."""

    def filter_photo_ids(self, gallery_id: str, photo_ids: Iterable[str]) -> set[str]:
        """Return the given ids that are photos currently in a gallery."""

    def update_downloads(self, gallery_id: str, downloads: dict[str, object]) -> None:
        """Persist normalized download settings."""


@dataclass
class GallerySettingsService:
    """Exposes gallery settings through the merge and sanitize helpers."""

    gallery_repository: GalleryRepository
    face_cache: FaceCache
    attempt_limiter: AttemptLimiter
    matching_provider: MatchingProvider

    def get_gallery(self, gallery_id: str) -> GalleryRecord:
        gallery = self.gallery_repository.get_gallery(gallery_id)
        if gallery is None:
            raise GalleryAccessDeniedError("Gallery not found")
        return gallery

    def effective_downloads(self, gallery_id: str) -> DownloadSettings:
        """Return stored download settings merged with the defaults."""
        return get_effective_downloads(self.get_gallery(gallery_id).downloads)

    def client_settings(self, gallery_id: str) -> dict[str, object]:
        """Return the settings a client may see."""
        gallery = self.get_gallery(gallery_id)
        return {
            "selectionState": gallery.selection_state.value,
            "commentsEnabled": gallery.comments_enabled,
            "selfieMatchingEnabled": gallery.selfie_matching_enabled,
            "requireMobileForSelfie": gallery.require_mobile_for_selfie,
            "downloads": sanitize_downloads_for_client(
                get_effective_downloads(gallery.downloads)
            ),
        }

    def update_downloads(
        self,
        gallery_id: str,
        patch: dict[str, object],
        photographer: PhotographerIdentity | None = None,
    ) -> DownloadSettings:
        """Apply a download settings patch and persist the normalized result.

        When a photographer is given, the gallery must belong to them.
        """
        gallery = self.get_gallery(gallery_id)
        if photographer is not None and gallery.photographer_id != photographer.id:
            raise ActionForbiddenError("You do not own this gallery")
        try:
            normalized = normalize_downloads_for_storage(gallery.downloads, patch)
        except ValidationError as exc:
            raise InvalidSettingsError("Invalid download settings") from exc
        self.gallery_repository.update_downloads(gallery_id, normalized)
        logger.info("Updated download settings for gallery %s", gallery_id)
        return get_effective_downloads(normalized)

    async def on_gallery_deleted(self, gallery_id: str) -> None:
        """Best-effort cleanup of cached faces, attempt windows and indexed faces."""
        try:
            self.face_cache.clear_for_gallery(gallery_id)
        except Exception:
            logger.exception("Failed to clear face cache for gallery %s", gallery_id)
        try:
            self.attempt_limiter.clear_for_gallery(gallery_id)
        except Exception:
            logger.exception("Failed to clear rate limits for gallery %s", gallery_id)
        try:
            await self.matching_provider.delete_gallery_faces(gallery_id)
        except Exception:
            logger.exception("Failed to delete provider faces for gallery %s", gallery_id)
