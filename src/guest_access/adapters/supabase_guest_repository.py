"""Supabase-backed guest and primary client sessions."""

from dataclasses import dataclass

from supabase import Client

from guest_access.domain.guests import GuestIdentity, PrimaryClientIdentity
from guest_access.services.sessions import GuestRepository


def _row_to_guest(row: dict[str, object]) -> GuestIdentity:
    return GuestIdentity(
        id=str(row["id"]),
        session_token=str(row["session_token"]),
        gallery_id=str(row["gallery_id"]),
        matched_photo_ids=frozenset(str(i) for i in row.get("matched_photo_ids") or []),
    )


@dataclass
class SupabaseGuestRepository(GuestRepository):
    """Supabase implementation for client sessions."""

    client: Client

    def create_guest(
        self,
        gallery_id: str,
        session_token: str,
        matched_photo_ids: list[str],
        mobile_number: str | None,
    ) -> GuestIdentity:
        """Create a guest row and return its identity."""
        response = (
            self.client.table("guests")
            .insert(
                {
                    "gallery_id": gallery_id,
                    "session_token": session_token,
                    "matched_photo_ids": matched_photo_ids,
                    "mobile_number": mobile_number,
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create guest session")
        return _row_to_guest(response.data[0])

    def get_guest_by_token(self, session_token: str) -> GuestIdentity | None:
        """Return a guest by session token."""
        response = (
            self.client.table("guests")
            .select("id, session_token, gallery_id, matched_photo_ids")
            .eq("session_token", session_token)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return _row_to_guest(response.data[0])

    def get_primary_client_by_token(
        self, session_token: str
    ) -> PrimaryClientIdentity | None:
        """Return a primary client by session token."""
        response = (
            self.client.table("primary_clients")
            .select("id, session_token, gallery_id")
            .eq("session_token", session_token)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        row = response.data[0]
        return PrimaryClientIdentity(
            id=str(row["id"]),
            session_token=str(row["session_token"]),
            gallery_id=str(row["gallery_id"]),
        )
