"""Download settings for galleries.

Stored settings are partial JSON. They are always merged with the defaults
before use, and the favorites limit is always taken from the server.
"""

import logging
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

MAX_FAVORITES_DOWNLOAD = 200

AllowedFor = Literal["clients", "guests", "both"]
DownloadAction = Literal["individual", "bulkAll", "bulkFavorites"]
UserRole = Literal["primary_client", "guest"]

DOWNLOAD_ACTIONS: tuple[DownloadAction, ...] = ("individual", "bulkAll", "bulkFavorites")


class DownloadPolicy(BaseModel):
    """Policy for one download action."""

    model_config = ConfigDict(strict=True, populate_by_name=True, frozen=True)

    enabled: bool = False
    allowed_for: AllowedFor = Field(default="clients", alias="allowedFor")


class BulkFavoritesPolicy(DownloadPolicy):
    """Policy for downloading a client's favorites in bulk."""

    max_count: int = Field(default=MAX_FAVORITES_DOWNLOAD, alias="maxCount")


class DownloadSettings(BaseModel):
    """Effective download policy of a gallery."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    individual: DownloadPolicy = Field(default_factory=DownloadPolicy)
    bulk_all: DownloadPolicy = Field(default_factory=DownloadPolicy, alias="bulkAll")
    bulk_favorites: BulkFavoritesPolicy = Field(
        default_factory=BulkFavoritesPolicy, alias="bulkFavorites"
    )

    def policy(self, action: DownloadAction) -> DownloadPolicy:
        """Return the policy for a download action."""
        if action == "individual":
            return self.individual
        if action == "bulkAll":
            return self.bulk_all
        if action == "bulkFavorites":
            return self.bulk_favorites
        raise ValueError(f"Unknown download action: {action}")


_SECTION_MODELS: dict[DownloadAction, type[DownloadPolicy]] = {
    "individual": DownloadPolicy,
    "bulkAll": DownloadPolicy,
    "bulkFavorites": BulkFavoritesPolicy,
}


def get_effective_downloads(stored: dict[str, object] | None) -> DownloadSettings:
    """Merge stored partial settings with the defaults.

    A section that cannot be validated falls back to its defaults, which keep
    the action disabled.
    """
    defaults = DownloadSettings()
    if not isinstance(stored, dict):
        return defaults

    sections: dict[str, DownloadPolicy] = {}
    for action, model in _SECTION_MODELS.items():
        base = defaults.policy(action).model_dump(by_alias=True)
        raw = stored.get(action)
        if isinstance(raw, dict):
            base.update({k: v for k, v in raw.items() if k != "maxCount"})
        try:
            sections[action] = model.model_validate(base)
        except ValidationError:
            logger.warning("Ignoring invalid stored download settings for %s", action)
            sections[action] = defaults.policy(action)

    favorites = sections["bulkFavorites"]
    return DownloadSettings(
        individual=sections["individual"],
        bulkAll=sections["bulkAll"],
        bulkFavorites=favorites.model_copy(
            update={"max_count": MAX_FAVORITES_DOWNLOAD}
        ),
    )


def sanitize_downloads_for_client(settings: DownloadSettings) -> dict[str, object]:
    """Return client-facing settings without the favorites limit."""
    return settings.model_dump(
        by_alias=True, exclude={"bulk_favorites": {"max_count"}}
    )


def normalize_downloads_for_storage(
    current: dict[str, object] | None, patch: dict[str, object]
) -> dict[str, object]:
    """Apply a settings patch and return the normalized JSON to persist.

    Submitted ``maxCount`` values are discarded. Invalid patch values raise
    ``pydantic.ValidationError``.
    """
    effective = get_effective_downloads(current)
    sections: dict[str, object] = {}
    for action, model in _SECTION_MODELS.items():
        merged = effective.policy(action).model_dump(by_alias=True)
        raw = patch.get(action)
        if isinstance(raw, dict):
            merged.update({k: v for k, v in raw.items() if k != "maxCount"})
        sections[action] = model.model_validate(merged)
    return DownloadSettings.model_validate(sections).model_dump(by_alias=True)


def check_download_allowed(
    settings: DownloadSettings, action: DownloadAction, role: UserRole
) -> bool:
    """Return True if a download action is allowed for a role."""
    policy = settings.policy(action)
    if not policy.enabled:
        return False
    if policy.allowed_for == "both":
        return True
    if policy.allowed_for == "clients" and role == "primary_client":
        return True
    if policy.allowed_for == "guests" and role == "guest":
        return True
    return False
