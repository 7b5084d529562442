"""Errors raised by the guest access engine."""


class GuestAccessError(Exception):
    """Base error carrying a stable machine-readable code."""

    code = "GUEST_ACCESS_ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class RateLimitedError(GuestAccessError):
    """Raised when a guest has exhausted their attempt budget."""

    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, reset_in_seconds: int, message: str | None = None) -> None:
        super().__init__(message or "Rate limit exceeded.")
        self.reset_in_seconds = reset_in_seconds


class NoFaceDetectedError(GuestAccessError):
    """Raised when a required match finds no faces."""

    code = "NO_FACE_DETECTED"


class ProviderUnavailableError(GuestAccessError):
    """Raised when the matching provider fails or times out."""

    code = "PROVIDER_UNAVAILABLE"


class GalleryAccessDeniedError(GuestAccessError):
    """Raised when a gallery is missing or does not allow selfie access."""

    code = "GALLERY_ACCESS_DENIED"


class ActionForbiddenError(GuestAccessError):
    """Raised when an identity may not perform an action."""

    code = "FORBIDDEN"


class MobileRequiredError(GuestAccessError):
    code = "MOBILE_REQUIRED"


class InvalidGuestSessionError(GuestAccessError):
    code = "INVALID_GUEST_SESSION"


class SelfieRequiredError(GuestAccessError):
    code = "SELFIE_REQUIRED"


class InvalidSelfieError(GuestAccessError):
    """Raised when an uploaded selfie is not an acceptable image."""

    code = "INVALID_SELFIE"


class SelfieTooLargeError(InvalidSelfieError):
    code = "SELFIE_TOO_LARGE"


class InvalidSettingsError(GuestAccessError):
    code = "INVALID_SETTINGS"


class AuthenticationError(GuestAccessError):
    code = "UNAUTHORIZED"
