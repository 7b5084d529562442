"""Supabase-backed attempt window repository."""

from dataclasses import dataclass
from datetime import datetime

from postgrest.exceptions import APIError
from supabase import Client

from guest_access.adapters.supabase_face_cache_repository import UNIQUE_VIOLATION
from guest_access.domain.guests import RateLimitWindow
from guest_access.services.rate_limit import RateLimitRepository

INCREMENT_FUNCTION = "increment_selfie_attempts"


def _row_to_window(row: dict[str, object]) -> RateLimitWindow:
    return RateLimitWindow(
        id=str(row["id"]),
        gallery_id=str(row["gallery_id"]),
        guest_session_id=str(row["guest_session_id"]),
        attempt_count=int(row["attempt_count"]),
        window_start=datetime.fromisoformat(str(row["window_start"])),
    )


@dataclass
class SupabaseRateLimitRepository(RateLimitRepository):
    """Stores attempt windows in the selfie_rate_limits table.

    Increments go through a Postgres function so the counter is updated in a
    single statement.
    """

    client: Client

    def get_window(
        self, gallery_id: str, guest_session_id: str
    ) -> RateLimitWindow | None:
        """Return the window for a guest session, if present."""
        response = (
            self.client.table("selfie_rate_limits")
            .select("id, gallery_id, guest_session_id, attempt_count, window_start")
            .eq("gallery_id", gallery_id)
            .eq("guest_session_id", guest_session_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_window(response.data[0])

    def create_window(
        self, gallery_id: str, guest_session_id: str, window_start: datetime
    ) -> RateLimitWindow | None:
        """Insert a window with one attempt, or None if one exists."""
        try:
            response = (
                self.client.table("selfie_rate_limits")
                .insert(
                    {
                        "gallery_id": gallery_id,
                        "guest_session_id": guest_session_id,
                        "attempt_count": 1,
                        "window_start": window_start.isoformat(),
                    }
                )
                .execute()
            )
        except APIError as exc:
            if exc.code == UNIQUE_VIOLATION:
                return None
            raise
        if not response.data:
            raise RuntimeError("Failed to create rate limit window")
        return _row_to_window(response.data[0])

    def reset_window(
        self, window_id: str, expected_window_start: datetime, window_start: datetime
    ) -> bool:
        """Restart a window if no other request has restarted it first."""
        response = (
            self.client.table("selfie_rate_limits")
            .update({"attempt_count": 1, "window_start": window_start.isoformat()})
            .eq("id", window_id)
            .eq("window_start", expected_window_start.isoformat())
            .execute()
        )
        return bool(response.data)

    def increment_attempts(self, window_id: str, max_attempts: int) -> int | None:
        """Add one attempt below the cap and return the new count."""
        response = self.client.rpc(
            INCREMENT_FUNCTION,
            {"p_window_id": window_id, "p_max_attempts": max_attempts},
        ).execute()
        data = response.data
        if isinstance(data, list):
            data = data[0] if data else None
        if isinstance(data, dict):
            data = data.get("attempt_count")
        if data is None:
            return None
        return int(data)

    def delete_for_gallery(self, gallery_id: str) -> None:
        """Delete all windows of a gallery."""
        self.client.table("selfie_rate_limits").delete().eq(
            "gallery_id", gallery_id
        ).execute()
