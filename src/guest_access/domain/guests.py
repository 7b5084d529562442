"""Domain models for guest identities, face cache and attempt windows."""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class GuestCacheEntry:
    """A memoized resolution of one selfie to a set of matched photos."""

    id: str
    gallery_id: str
    face_hash: str
    face_id: str
    matched_photo_ids: frozenset[str]
    mobile_number: str | None
    guest_session_token: str | None
    selfie_storage_key: str | None
    created_at: datetime
    last_used_at: datetime


@dataclass(frozen=True)
class RateLimitWindow:
    """Attempt counter for one guest session within one gallery."""

    id: str
    gallery_id: str
    guest_session_id: str
    attempt_count: int
    window_start: datetime


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of an attempt limiter check."""

    allowed: bool
    remaining: int
    reset_in_seconds: int
    error: str | None = None


@dataclass(frozen=True)
class GuestIdentity:
    """A resolved guest restricted to the photos matching their selfie."""

    id: str
    session_token: str
    gallery_id: str
    matched_photo_ids: frozenset[str]


@dataclass(frozen=True)
class PrimaryClientIdentity:
    """A client with full access to one gallery."""

    id: str
    session_token: str
    gallery_id: str


@dataclass(frozen=True)
class PhotographerIdentity:
    """A photographer authenticated with a bearer token."""

    id: str
    email: str


ClientIdentity = GuestIdentity | PrimaryClientIdentity


@dataclass(frozen=True)
class GuestAccessRequest:
    """Signals a guest can present when asking for access."""

    selfie: bytes | None = None
    mobile_number: str | None = None
    session_token: str | None = None


@dataclass(frozen=True)
class GuestResolution:
    """A resolved guest identity and whether it came from the face cache."""

    identity: GuestIdentity
    cache_hit: bool
