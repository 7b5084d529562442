"""Authorization decisions for gallery clients and guests.

Every check denies unless an explicit positive condition holds. Guest
actions are re-checked against the guest's matched photos on each request.
"""

import logging
from dataclasses import dataclass

from guest_access.domain.downloads import (
    DownloadAction,
    DownloadSettings,
    UserRole,
    check_download_allowed,
    get_effective_downloads,
)
from guest_access.domain.errors import ActionForbiddenError, GalleryAccessDeniedError
from guest_access.domain.galleries import GalleryRecord, PhotoRecord, SelectionState
from guest_access.domain.guests import GuestIdentity, PrimaryClientIdentity
from guest_access.services.galleries import GalleryRepository

logger = logging.getLogger(__name__)

INDIVIDUAL_DOWNLOAD_DISABLED = "INDIVIDUAL_DOWNLOAD_DISABLED"
BULK_DOWNLOAD_NOT_ALLOWED = "BULK_DOWNLOAD_NOT_ALLOWED"
FAVORITES_LIMIT_EXCEEDED = "FAVORITES_LIMIT_EXCEEDED"
INVALID_DOWNLOAD_REQUEST = "INVALID_DOWNLOAD_REQUEST"
PHOTO_ACCESS_DENIED = "PHOTO_ACCESS_DENIED"
SELECTION_NOT_OPEN = "SELECTION_NOT_OPEN"
COMMENTS_DISABLED = "COMMENTS_DISABLED"
PRIMARY_CLIENT_REQUIRED = "PRIMARY_CLIENT_REQUIRED"


def role_of(identity: object) -> UserRole | None:
    """Return the download role of an identity."""
    if isinstance(identity, PrimaryClientIdentity):
        return "primary_client"
    if isinstance(identity, GuestIdentity):
        return "guest"
    return None


@dataclass
class AuthorizationGate:
    """Decides which actions an identity may take in a gallery."""

    gallery_repository: GalleryRepository

    def is_allowed(
        self, settings: DownloadSettings, action: DownloadAction, role: UserRole
    ) -> bool:
        return check_download_allowed(settings, action, role)

    def can_access_photo(self, identity: object, photo_id: str) -> bool:
        """Return True if the identity may see a photo."""
        if isinstance(identity, GuestIdentity):
            return photo_id in identity.matched_photo_ids
        if isinstance(identity, PrimaryClientIdentity):
            photo = self.gallery_repository.get_photo(photo_id)
            return photo is not None and photo.gallery_id == identity.gallery_id
        return False

    def can_select(self, identity: object, gallery: GalleryRecord | None) -> bool:
        if gallery is None or not isinstance(identity, PrimaryClientIdentity):
            return False
        return (
            identity.gallery_id == gallery.id
            and gallery.selection_state == SelectionState.OPEN
        )

    def can_comment(self, identity: object, gallery: GalleryRecord | None) -> bool:
        if gallery is None or not isinstance(identity, PrimaryClientIdentity):
            return False
        return identity.gallery_id == gallery.id and gallery.comments_enabled is True

    def authorize_view(self, identity: object, photo_id: str) -> PhotoRecord:
        return self._accessible_photo(
            identity, photo_id, "You do not have access to this photo"
        )

    def authorize_print(self, identity: object, photo_id: str) -> PhotoRecord:
        return self._accessible_photo(
            identity, photo_id, "You can only request prints for photos you appear in"
        )

    def authorize_comment(self, identity: object, photo_id: str) -> PhotoRecord:
        if not isinstance(identity, PrimaryClientIdentity):
            raise ActionForbiddenError(
                "Only primary clients can comment", PRIMARY_CLIENT_REQUIRED
            )
        photo = self.authorize_view(identity, photo_id)
        if not self.can_comment(identity, self.gallery_repository.get_gallery(photo.gallery_id)):
            raise ActionForbiddenError(
                "Comments are not enabled for this gallery", COMMENTS_DISABLED
            )
        return photo

    def authorize_selection(self, identity: object, photo_id: str) -> PhotoRecord:
        if not isinstance(identity, PrimaryClientIdentity):
            raise ActionForbiddenError(
                "Only primary clients can select photos", PRIMARY_CLIENT_REQUIRED
            )
        photo = self.authorize_view(identity, photo_id)
        if not self.can_select(identity, self.gallery_repository.get_gallery(photo.gallery_id)):
            raise ActionForbiddenError(
                "Selection is not currently open for this gallery", SELECTION_NOT_OPEN
            )
        return photo

    def authorize_download(
        self,
        identity: object,
        gallery_id: str,
        action: DownloadAction,
        photo_ids: list[str],
    ) -> list[str]:
        """Return the photo ids an identity may download for an action.

        An empty ``photo_ids`` for ``bulkAll`` expands to every photo the
        identity can access.
        """
        gallery = self.gallery_repository.get_gallery(gallery_id)
        if gallery is None:
            raise GalleryAccessDeniedError("Gallery not found")
        role = role_of(identity)
        if role is None or getattr(identity, "gallery_id", None) != gallery_id:
            raise ActionForbiddenError(
                "You do not have access to this gallery", PHOTO_ACCESS_DENIED
            )

        settings = get_effective_downloads(gallery.downloads)
        if not self.is_allowed(settings, action, role):
            code = (
                INDIVIDUAL_DOWNLOAD_DISABLED
                if action == "individual"
                else BULK_DOWNLOAD_NOT_ALLOWED
            )
            logger.info("Download %s denied for %s in gallery %s", action, role, gallery_id)
            raise ActionForbiddenError("This download is not allowed", code)

        requested = list(dict.fromkeys(photo_ids))
        if action == "individual" and len(requested) != 1:
            raise ActionForbiddenError(
                "Individual downloads take exactly one photo", INVALID_DOWNLOAD_REQUEST
            )
        if action == "bulkFavorites" and len(requested) > settings.bulk_favorites.max_count:
            raise ActionForbiddenError(
                "Too many favorites selected for download", FAVORITES_LIMIT_EXCEEDED
            )
        if action == "bulkAll" and not requested:
            requested = sorted(self._accessible_ids(identity, gallery_id))

        for photo_id in requested:
            if not self.can_access_photo(identity, photo_id):
                raise ActionForbiddenError(
                    "You can only download photos you have access to",
                    PHOTO_ACCESS_DENIED,
                )
        return requested

    def _accessible_ids(self, identity: object, gallery_id: str) -> set[str]:
        if isinstance(identity, GuestIdentity):
            return self.gallery_repository.filter_photo_ids(
                gallery_id, identity.matched_photo_ids
            )
        return self.gallery_repository.list_photo_ids(gallery_id)

    def _accessible_photo(
        self, identity: object, photo_id: str, message: str
    ) -> PhotoRecord:
        photo = self.gallery_repository.get_photo(photo_id)
        if (
            photo is None
            or photo.gallery_id != getattr(identity, "gallery_id", None)
            or not self.can_access_photo(identity, photo_id)
        ):
            raise ActionForbiddenError(message, PHOTO_ACCESS_DENIED)
        return photo
