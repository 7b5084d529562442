"""Request and response models for the guest access API."""

from pydantic import BaseModel, ConfigDict, Field

from guest_access.domain.downloads import DownloadAction


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class GuestAccessResponse(_CamelModel):
    session_token: str = Field(alias="sessionToken")
    matched_count: int = Field(alias="matchedCount")
    cache_hit: bool = Field(alias="cacheHit")


class MobileRequest(_CamelModel):
    gallery_id: str = Field(alias="galleryId", min_length=1)
    mobile_number: str = Field(alias="mobileNumber", min_length=10, max_length=15)


class CheckMobileResponse(_CamelModel):
    found: bool
    session_token: str | None = Field(default=None, alias="sessionToken")
    matched_count: int | None = Field(default=None, alias="matchedCount")


class InvalidateSelfieResponse(_CamelModel):
    success: bool
    deleted_count: int = Field(alias="deletedCount")


class DownloadRequest(_CamelModel):
    type: DownloadAction
    photo_ids: list[str] = Field(default_factory=list, alias="photoIds")


class DownloadAuthorization(_CamelModel):
    allowed: bool
    photo_ids: list[str] = Field(alias="photoIds")
