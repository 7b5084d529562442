"""Domain models for galleries and photos."""

from dataclasses import dataclass, field
from enum import Enum


class SelectionState(str, Enum):
    """Gallery-level photo selection state."""

    DISABLED = "DISABLED"
    OPEN = "OPEN"
    LOCKED = "LOCKED"


@dataclass(frozen=True)
class GalleryRecord:
    """Represents the access policy of a gallery."""

    id: str
    name: str
    selection_state: SelectionState = SelectionState.DISABLED
    comments_enabled: bool = False
    selfie_matching_enabled: bool = False
    require_mobile_for_selfie: bool = False
    downloads: dict[str, object] | None = field(default=None)
    photographer_id: str | None = None


@dataclass(frozen=True)
class PhotoRecord:
    """Represents a photo stored in a gallery."""

    id: str
    gallery_id: str
    filename: str
