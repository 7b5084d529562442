"""Supabase-backed storage of indexed faces."""

from dataclasses import dataclass

from supabase import Client

from guest_access.adapters.supabase_gallery_repository import PAGE_SIZE
from guest_access.domain.faces import BoundingBox, FaceRecord
from guest_access.services.matching import FaceDataRepository

_COLUMNS = "external_face_id, photo_id, gallery_id, provider, confidence, bounding_box"


def _row_to_face(row: dict[str, object]) -> FaceRecord:
    box = row.get("bounding_box")
    return FaceRecord(
        external_face_id=str(row["external_face_id"]),
        photo_id=str(row["photo_id"]),
        gallery_id=str(row["gallery_id"]),
        provider=str(row["provider"]),
        confidence=float(row.get("confidence") or 0.0),
        bounding_box=BoundingBox(**box) if isinstance(box, dict) else None,
    )


@dataclass
class SupabaseFaceDataRepository(FaceDataRepository):
    """Supabase implementation for the face_data table."""

    client: Client

    def create_faces(self, faces: list[FaceRecord]) -> None:
        """Insert face rows."""
        if not faces:
            return
        self.client.table("face_data").insert(
            [
                {
                    "external_face_id": face.external_face_id,
                    "photo_id": face.photo_id,
                    "gallery_id": face.gallery_id,
                    "provider": face.provider,
                    "confidence": face.confidence,
                    "bounding_box": (
                        {
                            "left": face.bounding_box.left,
                            "top": face.bounding_box.top,
                            "width": face.bounding_box.width,
                            "height": face.bounding_box.height,
                        }
                        if face.bounding_box
                        else None
                    ),
                }
                for face in faces
            ]
        ).execute()

    def list_gallery_faces(self, gallery_id: str) -> list[FaceRecord]:
        """Return all faces in a gallery, reading page by page."""
        faces: list[FaceRecord] = []
        start = 0
        while True:
            response = (
                self.client.table("face_data")
                .select(_COLUMNS)
                .eq("gallery_id", gallery_id)
                .order("external_face_id")
                .range(start, start + PAGE_SIZE - 1)
                .execute()
            )
            rows = response.data or []
            faces.extend(_row_to_face(row) for row in rows)
            if len(rows) < PAGE_SIZE:
                return faces
            start += PAGE_SIZE

    def list_photo_faces(self, photo_id: str) -> list[FaceRecord]:
        """Return faces of one photo."""
        response = (
            self.client.table("face_data")
            .select(_COLUMNS)
            .eq("photo_id", photo_id)
            .execute()
        )
        return [_row_to_face(row) for row in response.data or []]

    def delete_photo_faces(self, photo_id: str) -> None:
        self.client.table("face_data").delete().eq("photo_id", photo_id).execute()

    def delete_gallery_faces(self, gallery_id: str) -> None:
        self.client.table("face_data").delete().eq("gallery_id", gallery_id).execute()
