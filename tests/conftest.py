"""Shared test fixtures."""

import asyncio
import io
import struct
import threading
import zlib
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from PIL import Image

from guest_access.config import Settings
from guest_access.containers import AppContainer
from guest_access.domain.faces import FaceDetectionResult, FaceMatchResult, FaceRecord
from guest_access.domain.galleries import GalleryRecord, PhotoRecord
from guest_access.domain.guests import (
    GuestCacheEntry,
    GuestIdentity,
    PrimaryClientIdentity,
    RateLimitWindow,
)
from guest_access.services.authorization import AuthorizationGate
from guest_access.services.face_cache import FaceCache, FaceCacheRepository
from guest_access.services.galleries import GalleryRepository, GallerySettingsService
from guest_access.services.identity import IdentityResolver
from guest_access.services.matching import (
    DEFAULT_MATCH_THRESHOLD,
    FaceDataRepository,
    MatchingProvider,
    MatchingService,
)
from guest_access.services.rate_limit import AttemptLimiter, RateLimitRepository
from guest_access.services.sessions import ClientSessionService, GuestRepository

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)


@dataclass
class FakeClock:
    """Controllable clock for time-window tests."""

    now: datetime = BASE_TIME

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass
class InMemoryGalleryRepository(GalleryRepository):
    """In-memory gallery repository for tests."""

    galleries: dict[str, GalleryRecord] = field(default_factory=dict)
    photos: dict[str, PhotoRecord] = field(default_factory=dict)

    def add_gallery(self, gallery_id: str, **kwargs) -> GalleryRecord:  # type: ignore[no-untyped-def]
        gallery = GalleryRecord(id=gallery_id, name=kwargs.pop("name", gallery_id), **kwargs)
        self.galleries[gallery_id] = gallery
        return gallery

    def add_photo(self, gallery_id: str, photo_id: str, filename: str = "") -> PhotoRecord:
        photo = PhotoRecord(
            id=photo_id, gallery_id=gallery_id, filename=filename or f"{photo_id}.jpg"
        )
        self.photos[photo_id] = photo
        return photo

    def get_gallery(self, gallery_id: str) -> GalleryRecord | None:
        return self.galleries.get(gallery_id)

    def get_photo(self, photo_id: str) -> PhotoRecord | None:
        return self.photos.get(photo_id)

    def list_photo_ids(self, gallery_id: str) -> set[str]:
        return {p.id for p in self.photos.values() if p.gallery_id == gallery_id}

    def filter_photo_ids(self, gallery_id: str, photo_ids) -> set[str]:  # type: ignore[no-untyped-def]
        return set(photo_ids) & self.list_photo_ids(gallery_id)

    def update_downloads(self, gallery_id: str, downloads: dict[str, object]) -> None:
        self.galleries[gallery_id] = replace(
            self.galleries[gallery_id], downloads=downloads
        )


@dataclass
class InMemoryFaceCacheRepository(FaceCacheRepository):
    """In-memory face cache with the (gallery_id, face_hash) unique constraint."""

    entries: dict[str, GuestCacheEntry] = field(default_factory=dict)
    touched: list[str] = field(default_factory=list)
    _ticks: int = 0

    def _now(self) -> datetime:
        self._ticks += 1
        return BASE_TIME + timedelta(seconds=self._ticks)

    def get_by_hash(self, gallery_id: str, face_hash: str) -> GuestCacheEntry | None:
        for entry in self.entries.values():
            if entry.gallery_id == gallery_id and entry.face_hash == face_hash:
                return entry
        return None

    def get_latest_by_mobile(
        self, gallery_id: str, mobile_number: str
    ) -> GuestCacheEntry | None:
        return self._latest(gallery_id, lambda e: e.mobile_number == mobile_number)

    def get_latest_by_session_token(
        self, gallery_id: str, session_token: str
    ) -> GuestCacheEntry | None:
        return self._latest(gallery_id, lambda e: e.guest_session_token == session_token)

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
        if self.get_by_hash(gallery_id, face_hash) is not None:
            return None
        now = self._now()
        entry = GuestCacheEntry(
            id=str(uuid4()),
            gallery_id=gallery_id,
            face_hash=face_hash,
            face_id=face_id,
            matched_photo_ids=frozenset(matched_photo_ids),
            mobile_number=mobile_number,
            guest_session_token=session_token,
            selfie_storage_key=selfie_storage_key,
            created_at=now,
            last_used_at=now,
        )
        self.entries[entry.id] = entry
        return entry

    def touch(self, entry_id: str) -> None:
        self.touched.append(entry_id)
        self.entries[entry_id] = replace(self.entries[entry_id], last_used_at=self._now())

    def delete_by_mobile(self, gallery_id: str, mobile_number: str) -> int:
        doomed = [
            entry_id
            for entry_id, entry in self.entries.items()
            if entry.gallery_id == gallery_id and entry.mobile_number == mobile_number
        ]
        for entry_id in doomed:
            del self.entries[entry_id]
        return len(doomed)

    def delete_for_gallery(self, gallery_id: str) -> None:
        self.entries = {
            entry_id: entry
            for entry_id, entry in self.entries.items()
            if entry.gallery_id != gallery_id
        }

    def _latest(self, gallery_id: str, predicate) -> GuestCacheEntry | None:  # type: ignore[no-untyped-def]
        candidates = [
            entry
            for entry in self.entries.values()
            if entry.gallery_id == gallery_id and predicate(entry)
        ]
        if not candidates:
            return None
        return max(candidates, key=lambda entry: entry.last_used_at)


@dataclass
class InMemoryRateLimitRepository(RateLimitRepository):
    """In-memory attempt windows with atomic conditional increments."""

    windows: dict[str, RateLimitWindow] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def get_window(
        self, gallery_id: str, guest_session_id: str
    ) -> RateLimitWindow | None:
        for window in self.windows.values():
            if (
                window.gallery_id == gallery_id
                and window.guest_session_id == guest_session_id
            ):
                return window
        return None

    def create_window(
        self, gallery_id: str, guest_session_id: str, window_start: datetime
    ) -> RateLimitWindow | None:
        with self._lock:
            if self.get_window(gallery_id, guest_session_id) is not None:
                return None
            window = RateLimitWindow(
                id=str(uuid4()),
                gallery_id=gallery_id,
                guest_session_id=guest_session_id,
                attempt_count=1,
                window_start=window_start,
            )
            self.windows[window.id] = window
            return window

    def reset_window(
        self, window_id: str, expected_window_start: datetime, window_start: datetime
    ) -> bool:
        with self._lock:
            window = self.windows.get(window_id)
            if window is None or window.window_start != expected_window_start:
                return False
            self.windows[window_id] = replace(
                window, attempt_count=1, window_start=window_start
            )
            return True

    def increment_attempts(self, window_id: str, max_attempts: int) -> int | None:
        with self._lock:
            window = self.windows.get(window_id)
            if window is None or window.attempt_count >= max_attempts:
                return None
            self.windows[window_id] = replace(
                window, attempt_count=window.attempt_count + 1
            )
            return window.attempt_count + 1

    def delete_for_gallery(self, gallery_id: str) -> None:
        with self._lock:
            self.windows = {
                window_id: window
                for window_id, window in self.windows.items()
                if window.gallery_id != gallery_id
            }


@dataclass
class InMemoryGuestRepository(GuestRepository):
    """In-memory guest and primary client sessions."""

    guests: dict[str, GuestIdentity] = field(default_factory=dict)
    primary_clients: dict[str, PrimaryClientIdentity] = field(default_factory=dict)
    mobiles: dict[str, str | None] = field(default_factory=dict)

    def add_primary_client(self, gallery_id: str, token: str) -> PrimaryClientIdentity:
        client = PrimaryClientIdentity(id=str(uuid4()), session_token=token, gallery_id=gallery_id)
        self.primary_clients[token] = client
        return client

    def create_guest(
        self,
        gallery_id: str,
        session_token: str,
        matched_photo_ids: list[str],
        mobile_number: str | None,
    ) -> GuestIdentity:
        guest = GuestIdentity(
            id=str(uuid4()),
            session_token=session_token,
            gallery_id=gallery_id,
            matched_photo_ids=frozenset(matched_photo_ids),
        )
        self.guests[session_token] = guest
        self.mobiles[guest.id] = mobile_number
        return guest

    def get_guest_by_token(self, session_token: str) -> GuestIdentity | None:
        return self.guests.get(session_token)

    def get_primary_client_by_token(
        self, session_token: str
    ) -> PrimaryClientIdentity | None:
        return self.primary_clients.get(session_token)


@dataclass
class InMemoryFaceDataRepository(FaceDataRepository):
    """In-memory indexed faces."""

    faces: list[FaceRecord] = field(default_factory=list)

    def create_faces(self, faces: list[FaceRecord]) -> None:
        self.faces.extend(faces)

    def list_gallery_faces(self, gallery_id: str) -> list[FaceRecord]:
        return [face for face in self.faces if face.gallery_id == gallery_id]

    def list_photo_faces(self, photo_id: str) -> list[FaceRecord]:
        return [face for face in self.faces if face.photo_id == photo_id]

    def delete_photo_faces(self, photo_id: str) -> None:
        self.faces = [face for face in self.faces if face.photo_id != photo_id]

    def delete_gallery_faces(self, gallery_id: str) -> None:
        self.faces = [face for face in self.faces if face.gallery_id != gallery_id]


@dataclass
class CountingMatchingProvider(MatchingProvider):
    """Provider returning fixed matches per gallery and counting searches."""

    matches: dict[str, list[FaceMatchResult]] = field(default_factory=dict)
    search_calls: int = 0
    delay_seconds: float = 0.0
    error: Exception | None = None
    deleted_galleries: list[str] = field(default_factory=list)
    provider_name: str = "counting"

    async def index_faces(
        self, image: bytes, photo_id: str, gallery_id: str
    ) -> list[FaceDetectionResult]:
        return []

    async def search_faces(
        self,
        selfie: bytes,
        gallery_id: str,
        threshold: float = DEFAULT_MATCH_THRESHOLD,
    ) -> list[FaceMatchResult]:
        self.search_calls += 1
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return list(self.matches.get(gallery_id, []))

    async def delete_faces(self, photo_id: str, gallery_id: str) -> None:
        return None

    async def delete_gallery_faces(self, gallery_id: str) -> None:
        self.deleted_galleries.append(gallery_id)


QUADRANTS = ((0, 0, 32, 32), (32, 0, 64, 32), (0, 32, 32, 64), (32, 32, 64, 64))


def make_image(quadrant: int = 0, fmt: str = "PNG") -> bytes:
    """Create a black 64x64 image with one white quadrant."""
    image = Image.new("RGB", (64, 64), (0, 0, 0))
    image.paste((255, 255, 255), QUADRANTS[quadrant])
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


def png_header(width: int, height: int) -> bytes:
    """Return a PNG that declares a size but carries almost no pixel data."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        return (
            struct.pack(">I", len(data))
            + kind
            + data
            + struct.pack(">I", zlib.crc32(kind + data) & 0xFFFFFFFF)
        )

    header = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    return (
        b"\x89PNG\r\n\x1a\n"
        + chunk(b"IHDR", header)
        + chunk(b"IDAT", zlib.compress(b"\x00"))
        + chunk(b"IEND", b"")
    )


@dataclass
class Engine:
    """Services wired over in-memory repositories."""

    galleries: InMemoryGalleryRepository
    cache_repository: InMemoryFaceCacheRepository
    rate_limits: InMemoryRateLimitRepository
    guests: InMemoryGuestRepository
    provider: CountingMatchingProvider
    clock: FakeClock
    limiter: AttemptLimiter
    face_cache: FaceCache
    resolver: IdentityResolver
    gate: AuthorizationGate
    sessions: ClientSessionService
    gallery_settings: GallerySettingsService


def build_engine(provider: CountingMatchingProvider | None = None) -> Engine:
    galleries = InMemoryGalleryRepository()
    cache_repository = InMemoryFaceCacheRepository()
    rate_limits = InMemoryRateLimitRepository()
    guests = InMemoryGuestRepository()
    resolved_provider = provider or CountingMatchingProvider()
    clock = FakeClock()
    limiter = AttemptLimiter(rate_limits, max_attempts=10, window_seconds=3600, clock=clock)
    face_cache = FaceCache(cache_repository)
    resolver = IdentityResolver(
        gallery_repository=galleries,
        attempt_limiter=limiter,
        face_cache=face_cache,
        matching_service=MatchingService(resolved_provider, timeout_seconds=1.0),
        guest_repository=guests,
    )
    return Engine(
        galleries=galleries,
        cache_repository=cache_repository,
        rate_limits=rate_limits,
        guests=guests,
        provider=resolved_provider,
        clock=clock,
        limiter=limiter,
        face_cache=face_cache,
        resolver=resolver,
        gate=AuthorizationGate(galleries),
        sessions=ClientSessionService(guests),
        gallery_settings=GallerySettingsService(
            gallery_repository=galleries,
            face_cache=face_cache,
            attempt_limiter=limiter,
            matching_provider=resolved_provider,
        ),
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-key",
        jwt_secret="jwt-secret",
    )


@pytest.fixture
def engine() -> Engine:
    return build_engine()


@pytest.fixture
def container(settings: Settings, engine: Engine) -> AppContainer:
    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=settings,
        matching_provider=engine.provider,
        identity_resolver=engine.resolver,
        authorization_gate=engine.gate,
        session_service=engine.sessions,
        gallery_settings_service=engine.gallery_settings,
        close_resources=close_resources,
    )
