# error taxonomy shared by the store, the auth provider and the function gateway


class BackendError(Exception):
    """Anything the hosted backend can fail with. `status` mirrors the HTTP code."""

    status = 500

    def __init__(self, message: str = "Unknown error occurred", status: int | None = None):
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status

    def to_payload(self) -> dict:
        return {"error": self.message}


class StoreError(BackendError):
    """The relational store could not be reached or the statement failed."""


class AuthError(BackendError):
    status = 401


class AccessDenied(BackendError):
    status = 403


class NotFound(BackendError):
    status = 404


class ValidationError(BackendError):
    status = 400


class ConflictError(BackendError):
    status = 409


class FunctionError(BackendError):
    """Raised client-side when a serverless function answers with an error body."""

    def __init__(self, function: str, status: int, message: str):
        super().__init__(message, status)
        self.function = function

    def __str__(self) -> str:
        return f"{self.function}: {self.message} ({self.status})"


def is_transient(exc: BaseException) -> bool:
    """True for failures worth retrying: store outages and 5xx answers."""
    if isinstance(exc, StoreError):
        return True
    return isinstance(exc, FunctionError) and exc.status >= 500
