"""Error taxonomy shared by services, workers, and the API layer.

NotFoundError is raised only where a missing row makes the whole operation
meaningless (e.g. publishing an unknown post). Single-row metric lookups
return ``None`` instead.
"""


class CreatorPulseError(Exception):
    """Base class for all domain errors."""


class NotFoundError(CreatorPulseError):
    """The requested entity does not exist (or is soft-deleted)."""


class ValidationError(CreatorPulseError):
    """A state-transition precondition failed; nothing was changed."""


class CredentialError(CreatorPulseError):
    """No usable credentials for a platform (missing, expired, revoked)."""

    def __init__(self, platform: str, message: str):
        self.platform = platform
        super().__init__(message)


class AdapterError(CreatorPulseError):
    """A platform API call failed (network error or platform-side rejection)."""

    def __init__(self, platform: str, message: str, status_code: int | None = None):
        self.platform = platform
        self.status_code = status_code
        super().__init__(message)


class StoreError(CreatorPulseError):
    """Underlying data-store failure. The original message is kept verbatim."""
