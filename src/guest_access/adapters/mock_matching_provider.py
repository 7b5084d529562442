"""Deterministic matching provider for development and tests.

Indexing derives faces from photo filenames:

- ``face1`` .. ``face5`` in a filename yields one face per pattern
- ``group`` yields three faces that match every selfie
- other filenames get one face for roughly a third of photos

Searching derives a seed from the selfie bytes, so the same selfie always
matches the same photos of a gallery.
"""

import hashlib
import logging
from dataclasses import dataclass

from guest_access.domain.faces import (
    BoundingBox,
    FaceDetectionResult,
    FaceMatchResult,
    FaceRecord,
)
from guest_access.services.galleries import GalleryRepository
from guest_access.services.matching import (
    DEFAULT_MATCH_THRESHOLD,
    FaceDataRepository,
    MatchingProvider,
    dedupe_matches,
)

logger = logging.getLogger(__name__)

FACE_PATTERNS = ("face1", "face2", "face3", "face4", "face5")

# pattern -> (seed residue mod 5, base similarity)
_PATTERN_RULES = {
    "face1": (0, 92),
    "face2": (1, 90),
    "face3": (2, 88),
    "face4": (3, 86),
    "face5": (4, 84),
}


def stable_int(data: bytes | str) -> int:
    """Return a stable non-negative integer digest."""
    raw = data.encode("utf-8") if isinstance(data, str) else data
    return int.from_bytes(hashlib.sha256(raw).digest()[:8], "big")


def selfie_seed(selfie: bytes) -> int:
    return stable_int(selfie)


def mock_similarity(face_id: str, photo_id: str, seed: int) -> float | None:
    """Return the similarity of a mock face to a selfie seed, or None."""
    face_id = face_id.lower()
    if "-group-" in face_id:
        return float(85 + seed % 10)
    for pattern, (residue, base) in _PATTERN_RULES.items():
        if f"-{pattern}-" in face_id:
            if seed % 5 == residue:
                return float(base + seed % (100 - base))
            return None
    if "-auto-" in face_id:
        combined = seed + stable_int(photo_id)
        if combined % 3 == 0:
            return float(80 + combined % 15)
    return None


@dataclass
class MockMatchingProvider(MatchingProvider):
    """Filename and hash based matching behind the provider interface."""

    gallery_repository: GalleryRepository
    face_repository: FaceDataRepository
    provider_name: str = "mock"

    async def index_faces(
        self, image: bytes, photo_id: str, gallery_id: str
    ) -> list[FaceDetectionResult]:
        photo = self.gallery_repository.get_photo(photo_id)
        if photo is None or photo.gallery_id != gallery_id:
            return []

        filename = photo.filename.lower()
        suffix = hashlib.sha256(photo_id.encode("utf-8")).hexdigest()[:8]
        faces: list[FaceDetectionResult] = []
        for index, pattern in enumerate(FACE_PATTERNS):
            if pattern in filename:
                faces.append(
                    FaceDetectionResult(
                        external_face_id=f"mock-{pattern}-{suffix}",
                        confidence=99.5,
                        bounding_box=BoundingBox(
                            left=0.2 + index * 0.1, top=0.2, width=0.15, height=0.2
                        ),
                    )
                )
        if "group" in filename:
            for label, left, confidence in (
                ("a", 0.1, 98.0),
                ("b", 0.4, 97.5),
                ("c", 0.7, 96.0),
            ):
                faces.append(
                    FaceDetectionResult(
                        external_face_id=f"mock-group-{label}{suffix}",
                        confidence=confidence,
                        bounding_box=BoundingBox(
                            left=left, top=0.2, width=0.15, height=0.2
                        ),
                    )
                )
        if not faces:
            digest = stable_int(filename)
            if digest % 3 == 0:
                faces.append(
                    FaceDetectionResult(
                        external_face_id=f"mock-auto-{digest:x}"[:32],
                        confidence=float(85 + digest % 15),
                        bounding_box=BoundingBox(
                            left=0.3, top=0.2, width=0.2, height=0.25
                        ),
                    )
                )

        self.face_repository.create_faces(
            [
                FaceRecord(
                    external_face_id=face.external_face_id,
                    photo_id=photo_id,
                    gallery_id=gallery_id,
                    provider=self.provider_name,
                    confidence=face.confidence,
                    bounding_box=face.bounding_box,
                )
                for face in faces
            ]
        )
        logger.info("Indexed %d mock faces for photo %s", len(faces), photo_id)
        return faces

    async def search_faces(
        self,
        selfie: bytes,
        gallery_id: str,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> list[FaceMatchResult]:
        seed = selfie_seed(selfie)
        matches: list[FaceMatchResult] = []
        for face in self.face_repository.list_gallery_faces(gallery_id):
            similarity = mock_similarity(face.external_face_id, face.photo_id, seed)
            if similarity is None or similarity < threshold:
                continue
            matches.append(
                FaceMatchResult(
                    photo_id=face.photo_id,
                    similarity=similarity,
                    matched_face_id=face.external_face_id,
                )
            )
        return dedupe_matches(matches)

    async def delete_faces(self, photo_id: str, gallery_id: str) -> None:
        self.face_repository.delete_photo_faces(photo_id)

    async def delete_gallery_faces(self, gallery_id: str) -> None:
        self.face_repository.delete_gallery_faces(gallery_id)
