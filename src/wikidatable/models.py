from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass
class Reference:
    """Provenance for one claim. Fields other than ``found`` are meaningless when it is False."""

    found: bool = False
    url: str = ""
    title: str = ""
    published: str = ""
    retrieved: str = ""
    language: str = ""
    website: str = ""

    def has_metadata(self) -> bool:
        return bool(self.title and self.language and self.website)


@dataclass(frozen=True)
class CitationMetadata:
    title: str = ""
    language: str = ""
    website: str = ""


@dataclass(frozen=True)
class ClaimResolution:
    value: float
    reference: Reference


@dataclass(frozen=True)
class HeadingConfig:
    key: str
    data: str
    per: Optional[str] = None

    @property
    def is_ratio(self) -> bool:
        return bool(self.per)

    @classmethod
    def from_dict(cls, key: str, payload: dict) -> "HeadingConfig":
        per = payload.get("per")
        return cls(key=key, data=payload["data"], per=per if isinstance(per, str) and per else None)


@dataclass(frozen=True)
class Marker:
    raw: str
    heading_key: str
    data_key: str


@dataclass
class ResolvedMarker:
    marker: Marker
    value: float
    reference: Reference
    is_ratio: bool = False
    per_reference: Optional[Reference] = None
    citation: Optional[str] = None
