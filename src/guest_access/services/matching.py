"""Face matching provider interface and timeout-bounded service."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from guest_access.domain.errors import ProviderUnavailableError
from guest_access.domain.faces import FaceDetectionResult, FaceMatchResult, FaceRecord

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 80.0


class FaceDataRepository(Protocol):
    """Persistence interface for faces indexed in gallery photos."""

    def create_faces(self, faces: list[FaceRecord]) -> None:
        """Persist detected faces."""

    def list_gallery_faces(self, gallery_id: str) -> list[FaceRecord]:
        """Return all faces indexed in a gallery."""

    def list_photo_faces(self, photo_id: str) -> list[FaceRecord]:
        """Return faces indexed in one photo."""

    def delete_photo_faces(self, photo_id: str) -> None:
        """Delete faces of one photo."""

    def delete_gallery_faces(self, gallery_id: str) -> None:
        """Delete faces of every photo in a gallery."""


class MatchingProvider(Protocol):
    """External face detection and search capability."""

    provider_name: str

    async def index_faces(
        self, image: bytes, photo_id: str, gallery_id: str
    ) -> list[FaceDetectionResult]:
        """Detect and index faces in an uploaded photo."""

    async def search_faces(
        self,
        selfie: bytes,
        gallery_id: str,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> list[FaceMatchResult]:
        """Return gallery photos matching a selfie, best similarity first."""

    async def delete_faces(self, photo_id: str, gallery_id: str) -> None:
        """Remove indexed faces of a photo."""

    async def delete_gallery_faces(self, gallery_id: str) -> None:
        """Remove indexed faces of a gallery."""


def dedupe_matches(matches: list[FaceMatchResult]) -> list[FaceMatchResult]:
    """Keep the best match per photo, sorted by similarity descending."""
    best: dict[str, FaceMatchResult] = {}
    for match in matches:
        current = best.get(match.photo_id)
        if current is None or match.similarity > current.similarity:
            best[match.photo_id] = match
    return sorted(best.values(), key=lambda item: item.similarity, reverse=True)


@dataclass
class MatchingService:
    """Calls the configured provider with a timeout."""

    provider: MatchingProvider
    timeout_seconds: float = 15.0
    threshold: float = DEFAULT_MATCH_THRESHOLD

    async def search_faces(self, selfie: bytes, gallery_id: str) -> list[FaceMatchResult]:
        """Search a gallery for a selfie, failing on timeout or provider error."""
        logger.info(
            "Searching faces with %s provider in gallery %s",
            self.provider.provider_name,
            gallery_id,
        )
        try:
            matches = await asyncio.wait_for(
                self.provider.search_faces(selfie, gallery_id, self.threshold),
                timeout=self.timeout_seconds,
            )
        except TimeoutError as exc:
            logger.warning("Face search timed out after %ss", self.timeout_seconds)
            raise ProviderUnavailableError("Face matching timed out") from exc
        except Exception as exc:
            logger.exception("Face search failed")
            raise ProviderUnavailableError("Face matching is unavailable") from exc
        return dedupe_matches(
            [match for match in matches if match.similarity >= self.threshold]
        )
