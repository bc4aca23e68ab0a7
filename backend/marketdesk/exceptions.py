"""Error taxonomy for the dashboard core.

None of these are fatal: callers recover locally and keep the last known
display state.
"""


class MarketDeskError(Exception):
    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code
        self.message = message

    def __str__(self) -> str:
        if self.code:
            return f"[{self.code}] {self.message}"
        return self.message


class NetworkUnavailable(MarketDeskError):
    """A fetch or stream failed at the transport or HTTP status level."""

    def __init__(self, message: str = "Market data service unavailable", code: str | None = None):
        super().__init__(message, code)


class MalformedResponse(MarketDeskError):
    """A payload could not be decoded or did not match its schema."""

    def __init__(self, message: str = "Malformed market data payload", code: str | None = None):
        super().__init__(message, code)


class Superseded(MarketDeskError):
    """A response arrived after a newer request replaced it."""

    def __init__(self, message: str = "Response superseded by a newer request", code: str | None = None):
        super().__init__(message, code)
