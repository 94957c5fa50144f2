"""
Error taxonomy shared by the relay server and the client session.

Relay handlers convert every one of these into a ``{success: false, error}``
response. The session converts them into inline error state.
"""

from typing import Optional


class TravelBuddyError(Exception):
    """Base class for all expected failures."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgument(TravelBuddyError):
    """Input had the wrong shape before any network call was made."""


class MissingArgument(TravelBuddyError):
    """A required field was absent from a relay request."""


class MisconfiguredService(TravelBuddyError):
    """A provider credential is not configured."""


class ProviderError(TravelBuddyError):
    """An upstream weather or AI call failed or returned malformed data."""


class ChannelUnavailable(TravelBuddyError):
    """A send was attempted while the channel was disconnected."""


class RequestInFlight(TravelBuddyError):
    """A request of the same kind is already outstanding."""


class GeolocationError(TravelBuddyError):
    """The device position could not be determined."""


class SpeechCaptureError(TravelBuddyError):
    """The speech capability reported an error."""

    def __init__(self, kind, message: Optional[str] = None):
        super().__init__(message or kind.name)
        self.kind = kind
