"""Gallery-scoped cache of resolved selfie matches."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

from guest_access.domain.guests import GuestCacheEntry

logger = logging.getLogger(__name__)


class FaceCacheRepository(Protocol):
    """Persistence interface for cached selfie resolutions."""

    def get_by_hash(self, gallery_id: str, face_hash: str) -> GuestCacheEntry | None:
        """Return the entry for a gallery and perceptual hash."""

    def get_latest_by_mobile(
        self, gallery_id: str, mobile_number: str
    ) -> GuestCacheEntry | None:
        """Return the most recently used entry for a mobile number."""

    def get_latest_by_session_token(
        self, gallery_id: str, session_token: str
    ) -> GuestCacheEntry | None:
        """Return the most recently used entry for a browser session token."""

    def insert_entry(  # noqa: PLR0913
        self,
        gallery_id: str,
        face_hash: str,
        face_id: str,
        matched_photo_ids: list[str],
        mobile_number: str | None,
        session_token: str | None,
        selfie_storage_key: str | None,
    ) -> GuestCacheEntry | None:
        """Insert an entry; None if the hash is already cached for the gallery."""

    def touch(self, entry_id: str) -> None:
        """Set last_used_at to now."""

    def delete_by_mobile(self, gallery_id: str, mobile_number: str) -> int:
        """Delete entries for a mobile number and return how many were removed."""

    def delete_for_gallery(self, gallery_id: str) -> None:
        """Delete every entry of a gallery."""


@dataclass
class FaceCache:
    """Point lookups and idempotent writes over the face cache.

    The lookup precedence between hash, mobile and session token belongs to
    the identity resolver.
    """

    repository: FaceCacheRepository

    def lookup_by_hash(self, gallery_id: str, face_hash: str) -> GuestCacheEntry | None:
        return self.repository.get_by_hash(gallery_id, face_hash)

    def lookup_by_mobile(
        self, gallery_id: str, mobile_number: str
    ) -> GuestCacheEntry | None:
        return self.repository.get_latest_by_mobile(gallery_id, mobile_number)

    def lookup_by_session_token(
        self, gallery_id: str, session_token: str
    ) -> GuestCacheEntry | None:
        return self.repository.get_latest_by_session_token(gallery_id, session_token)

    def store(  # noqa: PLR0913
        self,
        gallery_id: str,
        face_hash: str,
        face_id: str,
        matched_photo_ids: Iterable[str],
        mobile_number: str | None = None,
        session_token: str | None = None,
        selfie_storage_key: str | None = None,
    ) -> GuestCacheEntry:
        """Cache a resolution, returning the existing row if one won a race."""
        entry = self.repository.insert_entry(
            gallery_id=gallery_id,
            face_hash=face_hash,
            face_id=face_id,
            matched_photo_ids=sorted(set(matched_photo_ids)),
            mobile_number=mobile_number,
            session_token=session_token,
            selfie_storage_key=selfie_storage_key,
        )
        if entry is not None:
            return entry
        logger.info("Face cache insert lost a race, reading existing entry")
        existing = self.repository.get_by_hash(gallery_id, face_hash)
        if existing is None:
            raise RuntimeError("Failed to store face cache entry")
        return existing

    def touch(self, entry_id: str) -> None:
        self.repository.touch(entry_id)

    def invalidate_mobile(self, gallery_id: str, mobile_number: str) -> int:
        """Forget one guest's selfie so they can submit a new one."""
        return self.repository.delete_by_mobile(gallery_id, mobile_number)

    def clear_for_gallery(self, gallery_id: str) -> None:
        self.repository.delete_for_gallery(gallery_id)
