"""Session-token authentication for gallery clients and photographers."""

import secrets
from dataclasses import dataclass
from typing import Protocol

from jose import JWTError, jwt

from guest_access.domain.errors import ActionForbiddenError, AuthenticationError
from guest_access.domain.guests import (
    ClientIdentity,
    GuestIdentity,
    PhotographerIdentity,
    PrimaryClientIdentity,
)

JWT_ALGORITHM = "HS256"


class GuestRepository(Protocol):
    """Persistence interface for guest and primary client sessions."""

    def create_guest(
        self,
        gallery_id: str,
        session_token: str,
        matched_photo_ids: list[str],
        mobile_number: str | None,
    ) -> GuestIdentity:
        """Create a guest session and return its identity."""

    def get_guest_by_token(self, session_token: str) -> GuestIdentity | None:
        """Return a guest by session token, if present."""

    def get_primary_client_by_token(
        self, session_token: str
    ) -> PrimaryClientIdentity | None:
        """Return a primary client by session token, if present."""


def mint_session_token() -> str:
    """Return a new opaque session token."""
    return secrets.token_urlsafe(32)


@dataclass
class ClientSessionService:
    """Resolves session tokens to client identities."""

    repository: GuestRepository

    def authenticate(
        self, session_token: str | None, gallery_id: str | None = None
    ) -> ClientIdentity:
        """Return the identity for a token, checking its gallery if given.

        Primary clients take precedence over guests.
        """
        if not session_token:
            raise AuthenticationError("No session token provided")

        identity: ClientIdentity | None = self.repository.get_primary_client_by_token(
            session_token
        )
        if identity is None:
            identity = self.repository.get_guest_by_token(session_token)
        if identity is None:
            raise AuthenticationError("Invalid session token")
        if gallery_id and identity.gallery_id != gallery_id:
            raise ActionForbiddenError("Session token not valid for this gallery")
        return identity


def verify_photographer_token(
    token: str, secret: str, algorithm: str = JWT_ALGORITHM
) -> PhotographerIdentity:
    """Decode a photographer bearer token."""
    try:
        payload = jwt.decode(token, secret, algorithms=[algorithm])
    except JWTError as exc:
        raise AuthenticationError("Invalid token") from exc
    photographer_id = payload.get("photographerId")
    email = payload.get("email")
    if not isinstance(photographer_id, str) or not isinstance(email, str):
        raise AuthenticationError("Invalid token")
    return PhotographerIdentity(id=photographer_id, email=email)
