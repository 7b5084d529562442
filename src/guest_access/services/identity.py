"""Guest identity resolution from selfies, mobile numbers and session tokens."""

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from uuid import uuid4

from guest_access.app_logging import mask_mobile, mask_token
from guest_access.domain.errors import (
    GalleryAccessDeniedError,
    InvalidGuestSessionError,
    MobileRequiredError,
    NoFaceDetectedError,
    RateLimitedError,
    SelfieRequiredError,
)
from guest_access.domain.galleries import GalleryRecord
from guest_access.domain.guests import (
    GuestAccessRequest,
    GuestCacheEntry,
    GuestResolution,
)
from guest_access.services.face_cache import FaceCache
from guest_access.services.galleries import GalleryRepository
from guest_access.services.hashing import average_hash
from guest_access.services.matching import MatchingService
from guest_access.services.rate_limit import AttemptLimiter
from guest_access.services.sessions import GuestRepository, mint_session_token

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def normalize_mobile(raw: str | None) -> str | None:
    """Strip everything but digits from a mobile number."""
    if raw is None:
        return None
    digits = _NON_DIGITS.sub("", raw)
    return digits or None


def build_guest_session_id(
    gallery_id: str, mobile_number: str | None, session_token: str | None
) -> str | None:
    """Return the attempt limiter key for a guest, preferring the mobile number."""
    if mobile_number:
        return f"{gallery_id}:m:{mobile_number}"
    if session_token:
        return f"{gallery_id}:s:{session_token}"
    return None


@dataclass
class IdentityResolver:
    """Resolves guests to matched photos with at most one search per selfie.

    Lookups run hash first, then mobile number, then browser session token.
    A mobile number shared by two people in one gallery resolves both to the
    same matches.
    """

    gallery_repository: GalleryRepository
    attempt_limiter: AttemptLimiter
    face_cache: FaceCache
    matching_service: MatchingService
    guest_repository: GuestRepository
    _locks: dict[tuple[str, str], asyncio.Lock] = field(
        default_factory=dict, init=False, repr=False
    )
    _lock_users: dict[tuple[str, str], int] = field(
        default_factory=dict, init=False, repr=False
    )

    async def resolve(
        self,
        gallery_id: str,
        request: GuestAccessRequest,
        require_match: bool = False,
    ) -> GuestResolution:
        """Resolve a guest access request to a new guest session."""
        gallery = self._require_selfie_gallery(gallery_id)
        mobile = normalize_mobile(request.mobile_number)
        if gallery.require_mobile_for_selfie and not mobile:
            raise MobileRequiredError("Mobile number is required for selfie access")

        session_token = request.session_token or None
        guest_session_id = build_guest_session_id(gallery_id, mobile, session_token)
        if guest_session_id is None:
            raise InvalidGuestSessionError(
                "Either mobile number or session token is required"
            )

        limit = self.attempt_limiter.check(gallery_id, guest_session_id)
        if not limit.allowed:
            logger.warning(
                "Selfie attempt blocked for gallery %s (mobile %s, token %s)",
                gallery_id,
                mask_mobile(mobile),
                mask_token(session_token),
            )
            raise RateLimitedError(limit.reset_in_seconds, limit.error)

        face_hash = average_hash(request.selfie) if request.selfie else None
        entry = self._lookup(gallery_id, face_hash, mobile, session_token)
        if entry is not None:
            self.face_cache.touch(entry.id)
            return self._mint(gallery_id, entry.matched_photo_ids, mobile, cache_hit=True)

        if not request.selfie or face_hash is None:
            raise SelfieRequiredError("A selfie is required for first access")

        async with self._hash_lock(gallery_id, face_hash):
            entry = self.face_cache.lookup_by_hash(gallery_id, face_hash)
            if entry is not None:
                logger.info("Face cache filled while waiting, hash %s", mask_token(face_hash))
                self.face_cache.touch(entry.id)
                return self._mint(
                    gallery_id, entry.matched_photo_ids, mobile, cache_hit=True
                )

            logger.info("Face cache MISS in gallery %s, searching faces", gallery_id)
            matches = await self.matching_service.search_faces(request.selfie, gallery_id)
            logger.info("Found %d matches in gallery %s", len(matches), gallery_id)
            if not matches and require_match:
                raise NoFaceDetectedError("No matching face found, try another selfie")

            face_id = matches[0].matched_face_id if matches else f"no-match-{uuid4()}"
            entry = self.face_cache.store(
                gallery_id=gallery_id,
                face_hash=face_hash,
                face_id=face_id,
                matched_photo_ids=[match.photo_id for match in matches],
                mobile_number=mobile,
                session_token=session_token,
            )
        return self._mint(gallery_id, entry.matched_photo_ids, mobile, cache_hit=False)

    def check_mobile(
        self, gallery_id: str, mobile_number: str
    ) -> GuestResolution | None:
        """Reuse an earlier resolution for a returning mobile number."""
        gallery = self.gallery_repository.get_gallery(gallery_id)
        mobile = normalize_mobile(mobile_number)
        if gallery is None or not gallery.selfie_matching_enabled or not mobile:
            return None
        entry = self.face_cache.lookup_by_mobile(gallery_id, mobile)
        if entry is None:
            logger.info("Mobile reuse MISS for %s", mask_mobile(mobile))
            return None
        logger.info("Mobile reuse HIT for %s", mask_mobile(mobile))
        self.face_cache.touch(entry.id)
        return self._mint(gallery_id, entry.matched_photo_ids, mobile, cache_hit=True)

    def invalidate_selfie(self, gallery_id: str, mobile_number: str) -> int:
        """Drop a mobile number's cached selfie so a new one can be submitted."""
        mobile = normalize_mobile(mobile_number)
        if not mobile:
            return 0
        deleted = self.face_cache.invalidate_mobile(gallery_id, mobile)
        logger.info(
            "Invalidated %d cached selfies for %s in gallery %s",
            deleted,
            mask_mobile(mobile),
            gallery_id,
        )
        return deleted

    def _require_selfie_gallery(self, gallery_id: str) -> GalleryRecord:
        gallery = self.gallery_repository.get_gallery(gallery_id)
        if gallery is None:
            raise GalleryAccessDeniedError("Gallery not found")
        if not gallery.selfie_matching_enabled:
            logger.info("Selfie matching disabled for gallery %s", gallery_id)
            raise GalleryAccessDeniedError("Selfie matching is disabled for this gallery")
        return gallery

    def _lookup(
        self,
        gallery_id: str,
        face_hash: str | None,
        mobile: str | None,
        session_token: str | None,
    ) -> GuestCacheEntry | None:
        if face_hash:
            entry = self.face_cache.lookup_by_hash(gallery_id, face_hash)
            if entry is not None:
                logger.info("Hash reuse HIT, hash %s", mask_token(face_hash))
                return entry
        if mobile:
            entry = self.face_cache.lookup_by_mobile(gallery_id, mobile)
            if entry is not None:
                logger.info("Mobile reuse HIT for %s", mask_mobile(mobile))
                return entry
        elif session_token:
            entry = self.face_cache.lookup_by_session_token(gallery_id, session_token)
            if entry is not None:
                logger.info("Session reuse HIT for token %s", mask_token(session_token))
                return entry
        return None

    def _mint(
        self,
        gallery_id: str,
        matched_photo_ids: Iterable[str],
        mobile: str | None,
        cache_hit: bool,
    ) -> GuestResolution:
        visible = sorted(
            self.gallery_repository.filter_photo_ids(gallery_id, matched_photo_ids)
        )
        identity = self.guest_repository.create_guest(
            gallery_id=gallery_id,
            session_token=mint_session_token(),
            matched_photo_ids=visible,
            mobile_number=mobile,
        )
        return GuestResolution(identity=identity, cache_hit=cache_hit)

    @asynccontextmanager
    async def _hash_lock(self, gallery_id: str, face_hash: str) -> AsyncIterator[None]:
        key = (gallery_id, face_hash)
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                self._locks.pop(key, None)
