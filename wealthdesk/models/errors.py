"""
WealthDesk — Domain Exceptions

Raised by the engine and the data store; the HTTP layer maps them to status codes.
"""


class WealthDeskError(Exception):
    """Base class for all domain errors."""


class NotFoundError(WealthDeskError):
    """A record id did not resolve in the data store."""

    def __init__(self, kind: str, record_id: str):
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} '{record_id}' not found")


class ValidationError(WealthDeskError):
    """Input was structurally valid but violates a domain rule."""


class OrderRejected(WealthDeskError):
    """A pre-trade check (suitability, cash, concentration) failed."""

    def __init__(self, check: str, reason: str):
        self.check = check
        self.reason = reason
        super().__init__(reason)
