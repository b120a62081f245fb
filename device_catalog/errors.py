"""Exceptions raised while building the device catalog."""
from __future__ import annotations

import uuid
from typing import Optional


class CatalogError(Exception):
    """Base class for device catalog failures."""


class InvalidInputLocationError(CatalogError):
    """Raised when a required input path is missing or of the wrong kind."""

    def __init__(self, message: str, *, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class MalformedRecordError(CatalogError):
    """Raised when an input record does not match its expected shape."""

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        if source:
            message = f"{message} ({source})"
        super().__init__(message)
        self.source = source


class DigestError(CatalogError, ValueError):
    """Raised when a certificate cannot be parsed or digested."""


class DuplicateFeedAaguidError(CatalogError):
    """Raised when the metadata feed lists the same AAGUID more than once."""

    def __init__(self, aaguid: uuid.UUID, count: int) -> None:
        super().__init__(
            f"FIDO MDS claims AAGUIDs are unique, but {aaguid} appears {count} times."
        )
        self.aaguid = aaguid
        self.count = count


__all__ = [
    "CatalogError",
    "DigestError",
    "DuplicateFeedAaguidError",
    "InvalidInputLocationError",
    "MalformedRecordError",
]
