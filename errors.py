from typing import Optional, Sequence


class ValidationError(ValueError):
    """Missing or malformed input. ``errors`` holds per-row messages for batches."""

    def __init__(self, message: str, errors: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.errors: list[str] = list(errors or [])


class DuplicateError(ValidationError):
    pass


class NotFoundError(ValueError):
    pass


class StorageError(RuntimeError):
    pass


class AuthorizationError(PermissionError):
    pass
