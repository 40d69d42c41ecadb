"""
Presale Admin - Errors
======================
Exception types raised by the store, auth and route layers.

Every error carries the HTTP status it is reported with. The exception
handler registered in main.py renders them as {"message": ...} bodies.
Store, connection and configuration errors are rendered with a generic
"Server error" message so no internal detail reaches the caller.
"""

from typing import Any


class PresaleError(Exception):
    """Base class for all errors reported at the handler boundary."""

    status_code = 500
    public = True

    def __init__(self, message: str, status_code: int | None = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.data = data
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PresaleError):
    """Missing or malformed request input."""

    status_code = 400


class AuthError(PresaleError):
    """Missing/invalid token, wrong password or uninitialized admin."""

    status_code = 401


class ConflictError(PresaleError):
    """A record with the same unique key already exists."""

    status_code = 409


class StoreError(PresaleError):
    """A document store operation failed."""

    public = False


class StoreConnectionError(StoreError):
    """The document store could not be reached."""


class ConfigError(PresaleError):
    """Required configuration is missing or invalid."""

    public = False
