from typing import Optional


class LiveOfferBackendError(Exception):
    """Base class for failures talking to the live-offer backend."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class BackendUnavailableError(LiveOfferBackendError):
    """Transport failure or timeout; the backend never answered."""


class BackendRejectedError(LiveOfferBackendError):
    """The backend answered with a non-2xx status."""


class IntentCreationError(Exception):
    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(reason)
        self.reason = reason
        self.status_code = status_code
