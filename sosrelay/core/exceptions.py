"""SOS Relay exception hierarchy."""


class SosRelayError(Exception):
    """Base exception for all SOS Relay errors."""


class ValidationError(SosRelayError):
    """An intake payload failed validation. Nothing was stored."""


class TransportError(SosRelayError):
    """The push transport failed to deliver a notification."""


class StoreConflict(SosRelayError):
    """A conditional update lost a race with another writer."""

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        super().__init__(f"Request {request_id} was modified concurrently")


class StoreUnavailable(SosRelayError):
    """The request store could not be reached."""
