"""Supabase-backed face cache repository."""

from dataclasses import dataclass
from datetime import UTC, datetime

from postgrest.exceptions import APIError
from supabase import Client

from guest_access.domain.guests import GuestCacheEntry
from guest_access.services.face_cache import FaceCacheRepository

UNIQUE_VIOLATION = "23505"

_COLUMNS = (
    "id, gallery_id, face_hash, face_id, matched_photo_ids, mobile_number, "
    "guest_session_token, selfie_storage_key, created_at, last_used_at"
)


def _row_to_entry(row: dict[str, object]) -> GuestCacheEntry:
    return GuestCacheEntry(
        id=str(row["id"]),
        gallery_id=str(row["gallery_id"]),
        face_hash=str(row["face_hash"]),
        face_id=str(row["face_id"]),
        matched_photo_ids=frozenset(str(i) for i in row.get("matched_photo_ids") or []),
        mobile_number=row.get("mobile_number"),
        guest_session_token=row.get("guest_session_token"),
        selfie_storage_key=row.get("selfie_storage_key"),
        created_at=datetime.fromisoformat(str(row["created_at"])),
        last_used_at=datetime.fromisoformat(str(row["last_used_at"])),
    )


@dataclass
class SupabaseFaceCacheRepository(FaceCacheRepository):
    """Stores selfie resolutions in the guest_selfie_faces table.

    The table has a unique constraint on (gallery_id, face_hash).
    """

    client: Client

    def get_by_hash(self, gallery_id: str, face_hash: str) -> GuestCacheEntry | None:
        """Return the entry for a gallery and hash."""
        response = (
            self.client.table("guest_selfie_faces")
            .select(_COLUMNS)
            .eq("gallery_id", gallery_id)
            .eq("face_hash", face_hash)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_entry(response.data[0])

    def get_latest_by_mobile(
        self, gallery_id: str, mobile_number: str
    ) -> GuestCacheEntry | None:
        """Return the most recently used entry for a mobile number."""
        return self._latest_by(gallery_id, "mobile_number", mobile_number)

    def get_latest_by_session_token(
        self, gallery_id: str, session_token: str
    ) -> GuestCacheEntry | None:
        """Return the most recently used entry for a session token."""
        return self._latest_by(gallery_id, "guest_session_token", session_token)

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
        """Insert an entry, returning None when the hash is already cached."""
        try:
            response = (
                self.client.table("guest_selfie_faces")
                .insert(
                    {
                        "gallery_id": gallery_id,
                        "face_hash": face_hash,
                        "face_id": face_id,
                        "matched_photo_ids": matched_photo_ids,
                        "mobile_number": mobile_number,
                        "guest_session_token": session_token,
                        "selfie_storage_key": selfie_storage_key,
                    }
                )
                .execute()
            )
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                return None
            raise
        if not response.data:
            raise RuntimeError("Failed to create face cache entry")
        return _row_to_entry(response.data[0])

    def touch(self, entry_id: str) -> None:
        """Update last_used_at for an entry."""
        self.client.table("guest_selfie_faces").update(
            {"last_used_at": datetime.now(tz=UTC).isoformat()}
        ).eq("id", entry_id).execute()

    def delete_by_mobile(self, gallery_id: str, mobile_number: str) -> int:
        """Delete entries for a mobile number in a gallery."""
        response = (
            self.client.table("guest_selfie_faces")
            .delete()
            .eq("gallery_id", gallery_id)
            .eq("mobile_number", mobile_number)
            .execute()
        )
        return len(response.data or [])

    def delete_for_gallery(self, gallery_id: str) -> None:
        """Delete all entries of a gallery."""
        self.client.table("guest_selfie_faces").delete().eq(
            "gallery_id", gallery_id
        ).execute()

    def _latest_by(
        self, gallery_id: str, column: str, value: str
    ) -> GuestCacheEntry | None:
        response = (
            self.client.table("guest_selfie_faces")
            .select(_COLUMNS)
            .eq("gallery_id", gallery_id)
            .eq(column, value)
            .order("last_used_at", desc=True)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_entry(response.data[0])
