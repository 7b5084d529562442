"""Models for face detection and matching results."""

from dataclasses import dataclass


@dataclass(frozen=True)
class BoundingBox:
    """Face bounding box in normalized 0-1 coordinates."""

    left: float
    top: float
    width: float
    height: float


@dataclass(frozen=True)
class FaceDetectionResult:
    """A face detected in an indexed photo."""

    external_face_id: str
    confidence: float
    bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class FaceRecord:
    """A persisted face reference for one photo."""

    external_face_id: str
    photo_id: str
    gallery_id: str
    provider: str
    confidence: float
    bounding_box: BoundingBox | None = None


@dataclass(frozen=True)
class FaceMatchResult:
    """A photo matched by a selfie search."""

    photo_id: str
    similarity: float
    matched_face_id: str
