"""Error types raised by the orchestrator, schedule controller and store.

Remote failures are folded into result envelopes at the client boundary
(see clients/), then surfaced here as exceptions carrying the message text
the remote service supplied. The message is what a user sees, so it always
prefers the remote text over a generic fallback.
"""


class DigestError(Exception):
    """Base class for all digestctl errors."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class EmptyTopicSetError(DigestError):
    """A pipeline run was requested with no topics. Never reaches the network."""

    def __init__(self, message: str = "Add at least one research topic before generating a preview."):
        super().__init__(message)


class CallFailedError(DigestError):
    """The remote pipeline call failed at the transport or reported failure."""


class RunInProgressError(DigestError):
    """A pipeline run is already in flight on this orchestrator."""

    def __init__(self, message: str = "A digest run is already in progress."):
        super().__init__(message)


class FetchError(DigestError):
    """A read against the schedule service failed."""


class ActionError(DigestError):
    """A mutating schedule action failed or could not be attempted."""


class MalformedPersistedState(DigestError):
    """A stored slot could not be decoded.

    Never raised to callers: store.read_json() captures it inside a
    ReadResult and falls back to the default value.
    """

    def __init__(self, key: str, reason: str):
        super().__init__(f"Malformed value in slot '{key}': {reason}")
        self.key = key
        self.reason = reason
