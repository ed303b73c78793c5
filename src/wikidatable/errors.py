from __future__ import annotations

from typing import Any, Optional


class WikidatableError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class ConfigurationError(WikidatableError):
    """A configuration page, data page or template could not be used."""


class ResolutionError(WikidatableError):
    """A claim or its reference could not be resolved for a marker."""


class MetadataLookupError(WikidatableError):
    """The citation metadata service gave no usable answer."""


class WriteError(WikidatableError):
    """Saving the resolved page failed. Halts the run."""
