"""Supabase-backed read access to galleries and photos."""

from collections.abc import Iterable
from dataclasses import dataclass

from supabase import Client

from guest_access.domain.galleries import GalleryRecord, PhotoRecord, SelectionState
from guest_access.services.galleries import GalleryRepository

# PostgREST caps responses at max_rows (1000 by default).
PAGE_SIZE = 1000
ID_FILTER_CHUNK = 200

_GALLERY_COLUMNS = (
    "id, name, selection_state, comments_enabled, selfie_matching_enabled, "
    "require_mobile_for_selfie, downloads, photographer_id"
)


@dataclass
class SupabaseGalleryRepository(GalleryRepository):
    """Supabase implementation for gallery lookups."""

    client: Client

    def get_gallery(self, gallery_id: str) -> GalleryRecord | None:
        """Return a gallery by id, if present."""
        response = (
            self.client.table("galleries")
            .select(_GALLERY_COLUMNS)
            .eq("id", gallery_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        try:
            selection_state = SelectionState(row.get("selection_state") or "DISABLED")
        except ValueError:
            selection_state = SelectionState.DISABLED
        downloads = row.get("downloads")
        return GalleryRecord(
            id=str(row["id"]),
            name=str(row.get("name") or ""),
            selection_state=selection_state,
            comments_enabled=row.get("comments_enabled") is True,
            selfie_matching_enabled=row.get("selfie_matching_enabled") is True,
            require_mobile_for_selfie=row.get("require_mobile_for_selfie") is True,
            downloads=downloads if isinstance(downloads, dict) else None,
            photographer_id=(
                str(row["photographer_id"]) if row.get("photographer_id") else None
            ),
        )

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        """Return a photo by id, if present."""
        response = (
            self.client.table("photos")
            .select("id, gallery_id, filename")
            .eq("id", photo_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return PhotoRecord(
            id=str(row["id"]),
            gallery_id=str(row["gallery_id"]),
            filename=str(row.get("filename") or ""),
        )

    def list_photo_ids(self, gallery_id: str) -> set[str]:
        """Return ids of all photos in a gallery, reading page by page."""
        photo_ids: set[str] = set()
        start = 0
        while True:
            response = (
                self.client.table("photos")
                .select("id")
                .eq("gallery_id", gallery_id)
                .order("id")
                .range(start, start + PAGE_SIZE - 1)
                .execute()
            )
            rows = response.data or []
            photo_ids.update(str(row["id"]) for row in rows)
            if len(rows) < PAGE_SIZE:
                return photo_ids
            start += PAGE_SIZE

    def filter_photo_ids(self, gallery_id: str, photo_ids: Iterable[str]) -> set[str]:
        """Return the given ids that belong to photos of a gallery."""
        candidates = sorted({photo_id for photo_id in photo_ids if photo_id})
        present: set[str] = set()
        for start in range(0, len(candidates), ID_FILTER_CHUNK):
            response = (
                self.client.table("photos")
                .select("id")
                .eq("gallery_id", gallery_id)
                .in_("id", candidates[start : start + ID_FILTER_CHUNK])
                .execute()
            )
            present.update(str(row["id"]) for row in response.data or [])
        return present

    def update_downloads(self, gallery_id: str, downloads: dict[str, object]) -> None:
        """Persist normalized download settings."""
        self.client.table("galleries").update({"downloads": downloads}).eq(
            "id", gallery_id
        ).execute()
