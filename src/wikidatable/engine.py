"""
Template resolution: DATASLOT markers become values, REFSLOT markers become citations.

Resolution runs in two passes. ``resolve_markers`` walks the markers left to right,
resolves claims and renders citations into ``ResolvedMarker`` records; then
``apply_substitutions`` rewrites the template text from those records without
touching the network.
"""

import logging
import re

from . import config
from .citations import build_citation
from .errors import ResolutionError
from .models import HeadingConfig, Marker, ResolvedMarker
from .utils import format_value, ratio_percent

logger = logging.getLogger(__name__)


def log_failure(thing, config_title, err):
    logger.warning("Failed to get %s for config %s with error %s", thing, config_title, err)


def find_markers(template_text):
    """Return every DATASLOT marker in scan order (duplicates included)."""
    return [
        Marker(raw=match.group(0), heading_key=match.group(1), data_key=match.group(2))
        for match in config.DATASLOT_PATTERN.finditer(template_text or "")
    ]


def refslot_pattern(heading_key, data_key):
    """Return the REFSLOT regex for one (heading, data key) pair."""
    return re.compile(
        config.REFSLOT_TEMPLATE.format(heading=re.escape(heading_key), data=re.escape(data_key)),
        re.IGNORECASE,
    )


def entity_for_property(entry, property_id):
    """Return the entity id a data entry maps for a property (a bare string maps every property)."""
    if isinstance(entry, str):
        return entry
    if isinstance(entry, dict):
        entity_id = entry.get(property_id)
        if isinstance(entity_id, str) and entity_id:
            return entity_id
    return None


def apply_substitutions(template_text, resolved_markers):
    """Write values and citations for resolved markers into the template text."""
    text = template_text
    for resolved in resolved_markers:
        marker = resolved.marker
        if resolved.citation is not None:
            citation = resolved.citation
            text = refslot_pattern(marker.heading_key, marker.data_key).sub(lambda _match: citation, text)
        text = text.replace(marker.raw, format_value(resolved.value))
    return text


class TemplateEngine:
    """Resolves the markers of one template against a ReferenceSource."""

    def __init__(self, source, metadata_resolver=None):
        self.source = source
        self.metadata_resolver = metadata_resolver
        self.stats = {"markers_seen": 0, "markers_resolved": 0, "markers_failed": 0, "markers_skipped": 0}

    def _lookup(self, entry, property_id, thing, config_title):
        entity_id = entity_for_property(entry, property_id)
        try:
            if entity_id is None:
                raise ResolutionError(
                    "MISSING_ENTITY",
                    f"Data entry has no entity for {property_id}.",
                    {"pid": property_id},
                )
            return self.source.resolve(entity_id, property_id)
        except ResolutionError as exc:
            log_failure(thing, config_title, exc)
            return None

    def _resolve_marker(self, marker, heading, entry, config_title):
        primary = self._lookup(
            entry, heading.data, f"claim for {heading.data} in {marker.heading_key}", config_title
        )
        if primary is None:
            return None
        if not heading.is_ratio:
            return ResolvedMarker(marker=marker, value=primary.value, reference=primary.reference)

        per_entry = entry
        if entity_for_property(entry, heading.per) is None:
            per_entry = entity_for_property(entry, heading.data)
        secondary = self._lookup(
            per_entry, heading.per, f"claim for perProp {heading.per} in {marker.heading_key}", config_title
        )
        if secondary is None:
            return None
        return ResolvedMarker(
            marker=marker,
            value=ratio_percent(primary.value, secondary.value),
            reference=primary.reference,
            is_ratio=True,
            per_reference=secondary.reference,
        )

    def resolve_markers(self, template_text, headings, data_map, config_title=""):
        """First pass: resolve each distinct marker into a ResolvedMarker."""
        resolved_markers = []
        done = set()
        failed_keys = set()
        for marker in find_markers(template_text):
            self.stats["markers_seen"] += 1
            # Each marker text is handled once; substitution replaces every occurrence.
            if marker.raw in done or marker.data_key in failed_keys:
                self.stats["markers_skipped"] += 1
                continue
            done.add(marker.raw)

            heading_payload = headings.get(marker.heading_key)
            if not isinstance(heading_payload, (dict, HeadingConfig)):
                log_failure(f"heading {marker.heading_key}", config_title, "heading not configured")
                self.stats["markers_failed"] += 1
                continue

            entry = data_map.get(marker.data_key)
            if entry is None:
                log_failure(f"data key {marker.data_key}", config_title, "data key not found")
                failed_keys.add(marker.data_key)
                self.stats["markers_failed"] += 1
                continue

            if isinstance(heading_payload, HeadingConfig):
                heading = heading_payload
            elif isinstance(heading_payload.get("data"), str) and heading_payload["data"]:
                heading = HeadingConfig.from_dict(marker.heading_key, heading_payload)
            else:
                log_failure(f"config heading data for {marker.heading_key}", config_title, "missing data property")
                self.stats["markers_failed"] += 1
                continue

            resolved = self._resolve_marker(marker, heading, entry, config_title)
            if resolved is None:
                self.stats["markers_failed"] += 1
                continue
            resolved.citation = build_citation(
                resolved.reference,
                self.metadata_resolver,
                is_ratio=resolved.is_ratio,
                per_reference=resolved.per_reference,
            )
            resolved_markers.append(resolved)
            self.stats["markers_resolved"] += 1
        return resolved_markers

    def resolve(self, template_text, headings, data_map, config_title=""):
        """Return the template text with every resolvable marker substituted."""
        resolved_markers = self.resolve_markers(template_text, headings, data_map, config_title)
        return apply_substitutions(template_text, resolved_markers)
