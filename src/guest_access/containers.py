"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import Client, create_client

from guest_access.adapters.mock_matching_provider import MockMatchingProvider
from guest_access.adapters.rekognition_matching_provider import (
    RekognitionMatchingProvider,
)
from guest_access.adapters.supabase_face_cache_repository import (
    SupabaseFaceCacheRepository,
)
from guest_access.adapters.supabase_face_data_repository import (
    SupabaseFaceDataRepository,
)
from guest_access.adapters.supabase_gallery_repository import SupabaseGalleryRepository
from guest_access.adapters.supabase_guest_repository import SupabaseGuestRepository
from guest_access.adapters.supabase_rate_limit_repository import (
    SupabaseRateLimitRepository,
)
from guest_access.config import Settings, parse_face_provider
from guest_access.services.authorization import AuthorizationGate
from guest_access.services.face_cache import FaceCache
from guest_access.services.galleries import GalleryRepository, GallerySettingsService
from guest_access.services.identity import IdentityResolver
from guest_access.services.matching import (
    FaceDataRepository,
    MatchingProvider,
    MatchingService,
)
from guest_access.services.rate_limit import AttemptLimiter
from guest_access.services.sessions import ClientSessionService


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    matching_provider: MatchingProvider
    identity_resolver: IdentityResolver
    authorization_gate: AuthorizationGate
    session_service: ClientSessionService
    gallery_settings_service: GallerySettingsService
    close_resources: Callable[[], Awaitable[None]]


def build_matching_provider(
    settings: Settings,
    gallery_repository: GalleryRepository,
    face_repository: FaceDataRepository,
) -> MatchingProvider:
    """Select the matching provider named in settings."""
    if parse_face_provider(settings.face_provider) == "rekognition":
        return RekognitionMatchingProvider.create(
            region=settings.aws_region,
            collection_id=settings.rekognition_collection_id,
            gallery_repository=gallery_repository,
            face_repository=face_repository,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )
    return MockMatchingProvider(
        gallery_repository=gallery_repository,
        face_repository=face_repository,
    )


def build_container(
    settings: Settings | None = None, supabase_client: Client | None = None
) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    client = supabase_client or create_client(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    gallery_repository = SupabaseGalleryRepository(client)
    face_repository = SupabaseFaceDataRepository(client)
    guest_repository = SupabaseGuestRepository(client)
    face_cache = FaceCache(SupabaseFaceCacheRepository(client))
    attempt_limiter = AttemptLimiter(
        repository=SupabaseRateLimitRepository(client),
        max_attempts=resolved_settings.selfie_rate_limit_max_attempts,
        window_seconds=resolved_settings.selfie_rate_limit_window_seconds,
    )
    matching_provider = build_matching_provider(
        resolved_settings, gallery_repository, face_repository
    )
    matching_service = MatchingService(
        provider=matching_provider,
        timeout_seconds=resolved_settings.provider_timeout_seconds,
        threshold=resolved_settings.face_match_threshold,
    )
    identity_resolver = IdentityResolver(
        gallery_repository=gallery_repository,
        attempt_limiter=attempt_limiter,
        face_cache=face_cache,
        matching_service=matching_service,
        guest_repository=guest_repository,
    )
    gallery_settings_service = GallerySettingsService(
        gallery_repository=gallery_repository,
        face_cache=face_cache,
        attempt_limiter=attempt_limiter,
        matching_provider=matching_provider,
    )

    async def close_resources() -> None:
        return None

    return AppContainer(
        settings=resolved_settings,
        matching_provider=matching_provider,
        identity_resolver=identity_resolver,
        authorization_gate=AuthorizationGate(gallery_repository),
        session_service=ClientSessionService(guest_repository),
        gallery_settings_service=gallery_settings_service,
        close_resources=close_resources,
    )
