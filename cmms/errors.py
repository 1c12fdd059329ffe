"""
Typed errors for the CMMS API.

Every error carries a stable ``kind`` (machine-readable, returned to API
callers) and the HTTP ``status_code`` it maps to. Callers catch by type,
never by message.

    CmmsError
    +-- Unauthenticated      401  no bearer token / not a bearer credential
    +-- InvalidToken         401  malformed, expired or tampered token
    +-- InvalidCredential    401  wrong email or password at login
    +-- Forbidden            403  role or ownership check failed
    +-- NotFound             404  target id does not exist
    +-- InvalidInput         422  malformed or disallowed fields
    |   +-- InvalidSchedule       PM schedule with bad interval/frequency
    +-- Conflict             409  duplicate email at registration
"""


class CmmsError(Exception):
    """Base exception for all CMMS errors."""

    kind: str = "Error"
    status_code: int = 500

    def __init__(self, message: str = ""):
        self.message = message or self.kind
        super().__init__(self.message)


class Unauthenticated(CmmsError):
    kind = "Unauthenticated"
    status_code = 401


class InvalidToken(CmmsError):
    kind = "InvalidToken"
    status_code = 401


class InvalidCredential(CmmsError):
    kind = "InvalidCredential"
    status_code = 401


class Forbidden(CmmsError):
    kind = "Forbidden"
    status_code = 403


class NotFound(CmmsError):
    """A resource with the given id does not exist."""

    kind = "NotFound"
    status_code = 404

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found: {resource_id}")


class InvalidInput(CmmsError):
    kind = "InvalidInput"
    status_code = 422


class InvalidSchedule(InvalidInput):
    """A PM schedule cannot be projected (interval < 1 or unknown frequency)."""


class Conflict(CmmsError):
    kind = "Conflict"
    status_code = 409
