"""
Claim value and reference resolution.

Two interchangeable strategies implement ``ReferenceSource.resolve``:

* ``SnapshotReferenceSource`` reads the full EntityData JSON for the entity and
  takes the last claim of the property and the last reference of that claim.
  There is no rank ordering here.
* ``QueryReferenceSource`` asks the Wikidata Query Service for the single best
  row: preferred rank first, then the most complete reference data.

Both return a ``ClaimResolution`` whose reference dates are already normalized
for display.
"""

import logging
import threading
from collections import OrderedDict

from . import config
from .caching import EntitySnapshotFetcher
from .dates import display_date
from .errors import ResolutionError
from .models import ClaimResolution, Reference
from .sparql import SparqlClient, build_lookup_query
from .utils import first_snak_value, parse_amount, safe_get

logger = logging.getLogger(__name__)


def _time_value(datavalue):
    if isinstance(datavalue, dict):
        return datavalue.get("time")
    return None


def _signed_time(raw):
    """SPARQL serializes dateTimes without the leading sign used by Wikibase."""
    if raw and raw[0] not in "+-":
        return "+" + raw
    return raw


class ReferenceSource:
    """Resolves (entity, property) into a float claim value plus its best reference."""

    name = "base"

    def resolve(self, entity_id, property_id):
        raise NotImplementedError

    def component_stats(self):
        """Return {component name: stats dict} for this source and what it wraps."""
        return {}


class SnapshotReferenceSource(ReferenceSource):
    name = "snapshot"

    def __init__(self, fetcher=None):
        self.fetcher = fetcher if fetcher is not None else EntitySnapshotFetcher()

    def component_stats(self):
        return {"entity_snapshots": self.fetcher.stats}

    def resolve(self, entity_id, property_id):
        claims = self.fetcher.get_claims(entity_id)
        property_claims = claims.get(property_id)
        if not property_claims:
            raise ResolutionError(
                "MISSING_CLAIM",
                f"No {property_id} claims on {entity_id}.",
                {"qid": entity_id, "pid": property_id},
            )
        claim = property_claims[-1]
        amount = safe_get(claim, "mainsnak", "datavalue", "value", "amount")
        try:
            value = parse_amount(amount)
        except ValueError as exc:
            raise ResolutionError(
                "BAD_AMOUNT",
                f"Claim {property_id} on {entity_id} has no numeric amount.",
                {"qid": entity_id, "pid": property_id, "amount": amount, "error": str(exc)},
            )
        return ClaimResolution(value=value, reference=self._reference_for_claim(claim))

    def _reference_for_claim(self, claim):
        reference = Reference()
        references = claim.get("references") or []
        if not references:
            return reference
        snaks = references[-1].get("snaks") or {}

        for url_property in config.PROP_REFERENCE_URLS:
            url = first_snak_value(snaks, url_property)
            if isinstance(url, str) and url:
                reference.url = url
                break
        stated_in = first_snak_value(snaks, config.PROP_STATED_IN)
        if not reference.url and isinstance(stated_in, dict) and stated_in.get("id"):
            # No label service here; the item id is the best available title.
            reference.title = stated_in["id"]
        reference.found = bool(reference.url or reference.title)
        if not reference.found:
            return reference

        reference.retrieved = display_date(_time_value(first_snak_value(snaks, config.PROP_RETRIEVED)))
        reference.published = display_date(_time_value(first_snak_value(snaks, config.PROP_PUBLISHED)))
        if not reference.published:
            point_in_time = display_date(
                _time_value(first_snak_value(claim.get("qualifiers"), config.PROP_POINT_IN_TIME))
            )
            if point_in_time:
                reference.retrieved = point_in_time
        return reference


class QueryReferenceSource(ReferenceSource):
    name = "query"

    def __init__(self, client=None):
        self.client = client if client is not None else SparqlClient()

    def component_stats(self):
        stats = getattr(self.client, "stats", None)
        return {"sparql": stats} if stats is not None else {}

    def resolve(self, entity_id, property_id):
        rows = self.client.select(build_lookup_query(entity_id, property_id))
        if not rows:
            raise ResolutionError(
                "NO_SOLUTIONS",
                "no solutions found for given parameters",
                {"qid": entity_id, "pid": property_id},
            )
        row = rows[0]
        try:
            value = parse_amount(row.get("val"))
        except ValueError as exc:
            raise ResolutionError(
                "BAD_AMOUNT",
                f"Claim {property_id} on {entity_id} has no numeric value.",
                {"qid": entity_id, "pid": property_id, "value": row.get("val"), "error": str(exc)},
            )
        return ClaimResolution(value=value, reference=self._reference_from_row(row))

    def _reference_from_row(self, row):
        reference = Reference()
        if row.get("refLabel"):
            reference.found = True
            reference.title = row["refLabel"]
        if row.get("url"):
            reference.found = True
            reference.url = row["url"]
        if not reference.found:
            return reference
        reference.retrieved = display_date(_signed_time(row.get("retrieved")))
        reference.published = display_date(_signed_time(row.get("published")))
        if not reference.published:
            reference.published = display_date(_signed_time(row.get("pointintime")))
        return reference


class CachingReferenceSource(ReferenceSource):
    """Bounded LRU over another source, keyed by (entity, property). Failures are not cached."""

    def __init__(self, inner, max_entries=config.CLAIM_CACHE_SIZE):
        self.inner = inner
        self.name = inner.name
        self.max_entries = max_entries
        self._cache = OrderedDict()
        self._lock = threading.Lock()
        self.stats = {"hits": 0, "misses": 0}

    def component_stats(self):
        return {"claim_cache": self.stats, **self.inner.component_stats()}

    def resolve(self, entity_id, property_id):
        key = (entity_id, property_id)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                self.stats["hits"] += 1
                return cached
            self.stats["misses"] += 1
        resolution = self.inner.resolve(entity_id, property_id)
        with self._lock:
            self._cache[key] = resolution
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)
        return resolution


def build_reference_source(kind=config.DEFAULT_REFERENCE_SOURCE, cache_claims=True):
    """Return the configured reference source, optionally wrapped in the claim cache."""
    if kind == "snapshot":
        source = SnapshotReferenceSource()
    elif kind == "query":
        source = QueryReferenceSource()
    else:
        raise ValueError(f"Unknown reference source {kind!r}; expected one of {config.REFERENCE_SOURCES}")
    logger.info("[*] Resolving claims via the %s reference source.", source.name)
    if cache_claims:
        return CachingReferenceSource(source)
    return source
