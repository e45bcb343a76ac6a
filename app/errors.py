from __future__ import annotations


class ToolError(Exception):
    """Failure raised by a tool handler, carried to the caller as a message."""

    category = "internal"
    http_status = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ToolError):
    """Missing or malformed tool arguments."""

    category = "invalid_arguments"
    http_status = 400


class ResolutionError(ToolError):
    """A free-text area could not be geocoded."""

    category = "unresolved_location"
    http_status = 400


class ProviderError(ToolError):
    """The places provider failed as a whole (bad status, missing key, missing data)."""

    category = "upstream"
    http_status = 502
