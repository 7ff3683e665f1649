# utils/errors.py
from typing import Any


class FieldValidationError(ValueError):
    """User-correctable input problem. ``key`` is a locale key, never sent to the store."""

    def __init__(self, key: str, **params: Any) -> None:
        super().__init__(key)
        self.key = key
        self.params = params


class BackendUnavailableError(RuntimeError):
    """The submission store is not configured, not initialised or unreachable."""


class RemoteRejectedError(RuntimeError):
    """The store or the auth service refused the request."""
