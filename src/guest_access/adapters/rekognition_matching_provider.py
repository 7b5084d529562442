"""AWS Rekognition matching provider."""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import boto3
from botocore.exceptions import ClientError

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

DELETE_BATCH_SIZE = 100


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


@dataclass
class RekognitionMatchingProvider(MatchingProvider):
    """Face indexing and search in a single Rekognition collection.

    Faces are indexed with the photo id as ``ExternalImageId``; search
    results are filtered to the photos of the requested gallery.
    """

    client: Any
    collection_id: str
    gallery_repository: GalleryRepository
    face_repository: FaceDataRepository
    provider_name: str = "rekognition"
    _collection_ready: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(  # noqa: PLR0913
        cls,
        region: str,
        collection_id: str,
        gallery_repository: GalleryRepository,
        face_repository: FaceDataRepository,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
    ) -> "RekognitionMatchingProvider":
        """Create a provider with a boto3 Rekognition client."""
        client = boto3.client(
            "rekognition",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )
        return cls(
            client=client,
            collection_id=collection_id,
            gallery_repository=gallery_repository,
            face_repository=face_repository,
        )

    async def index_faces(
        self, image: bytes, photo_id: str, gallery_id: str
    ) -> list[FaceDetectionResult]:
        await self._ensure_collection()
        response = await asyncio.to_thread(
            self.client.index_faces,
            CollectionId=self.collection_id,
            Image={"Bytes": image},
            ExternalImageId=photo_id,
            DetectionAttributes=["DEFAULT"],
            MaxFaces=10,
            QualityFilter="AUTO",
        )
        faces: list[FaceDetectionResult] = []
        for record in response.get("FaceRecords", []):
            face = record.get("Face") or {}
            face_id = face.get("FaceId")
            if not face_id:
                continue
            box = face.get("BoundingBox")
            faces.append(
                FaceDetectionResult(
                    external_face_id=face_id,
                    confidence=float(face.get("Confidence") or 0.0),
                    bounding_box=(
                        BoundingBox(
                            left=float(box.get("Left", 0.0)),
                            top=float(box.get("Top", 0.0)),
                            width=float(box.get("Width", 0.0)),
                            height=float(box.get("Height", 0.0)),
                        )
                        if box
                        else None
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
        return faces

    async def search_faces(
        self,
        selfie: bytes,
        gallery_id: str,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> list[FaceMatchResult]:
        await self._ensure_collection()
        try:
            response = await asyncio.to_thread(
                self.client.search_faces_by_image,
                CollectionId=self.collection_id,
                Image={"Bytes": selfie},
                MaxFaces=100,
                FaceMatchThreshold=threshold,
            )
        except ClientError as exc:
            if _error_code(exc) == "InvalidParameterException":
                logger.info("No face detected in selfie")
                return []
            raise

        face_matches = response.get("FaceMatches") or []
        logger.info("Rekognition returned %d raw face matches", len(face_matches))
        if not face_matches:
            return []

        gallery_photo_ids = self.gallery_repository.filter_photo_ids(
            gallery_id,
            [
                (match.get("Face") or {}).get("ExternalImageId") or ""
                for match in face_matches
            ],
        )
        matches: list[FaceMatchResult] = []
        for match in face_matches:
            face = match.get("Face") or {}
            photo_id = face.get("ExternalImageId")
            face_id = face.get("FaceId")
            if not photo_id or not face_id or photo_id not in gallery_photo_ids:
                continue
            matches.append(
                FaceMatchResult(
                    photo_id=photo_id,
                    similarity=float(match.get("Similarity") or 0.0),
                    matched_face_id=face_id,
                )
            )
        return dedupe_matches(matches)

    async def delete_faces(self, photo_id: str, gallery_id: str) -> None:
        faces = self.face_repository.list_photo_faces(photo_id)
        await self._delete_face_ids([face.external_face_id for face in faces])
        self.face_repository.delete_photo_faces(photo_id)

    async def delete_gallery_faces(self, gallery_id: str) -> None:
        faces = self.face_repository.list_gallery_faces(gallery_id)
        await self._delete_face_ids([face.external_face_id for face in faces])
        self.face_repository.delete_gallery_faces(gallery_id)

    async def _delete_face_ids(self, face_ids: list[str]) -> None:
        if not face_ids:
            return
        await self._ensure_collection()
        for start in range(0, len(face_ids), DELETE_BATCH_SIZE):
            await asyncio.to_thread(
                self.client.delete_faces,
                CollectionId=self.collection_id,
                FaceIds=face_ids[start : start + DELETE_BATCH_SIZE],
            )

    async def _ensure_collection(self) -> None:
        if self._collection_ready:
            return
        response = await asyncio.to_thread(self.client.list_collections)
        if self.collection_id not in response.get("CollectionIds", []):
            await asyncio.to_thread(
                self.client.create_collection, CollectionId=self.collection_id
            )
            logger.info("Created Rekognition collection %s", self.collection_id)
        self._collection_ready = True
