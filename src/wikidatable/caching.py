import logging
import threading

import requests

from . import config
from .errors import ResolutionError
from .utils import is_qid

logger = logging.getLogger(__name__)


class EntitySnapshotFetcher:
    """Fetches EntityData JSON snapshots and keeps the parsed claims in memory for the run.

    Entries are never evicted; a fetcher lives exactly as long as one run.
    """

    def __init__(self, session=None):
        self._session = session or requests
        self._memory_cache = {}
        self._lock = threading.Lock()
        self.stats = {
            "cache_hits": 0,
            "cache_misses": 0,
            "network_calls": 0,
            "network_errors": 0,
        }

    def _get_memory_cached(self, qid):
        with self._lock:
            cached = self._memory_cache.get(qid)
            if cached is None:
                self.stats["cache_misses"] += 1
                return None
            self.stats["cache_hits"] += 1
            return cached

    def store(self, qid, claims):
        """Seed the in-memory cache with a claims dict."""
        with self._lock:
            self._memory_cache[qid] = claims

    def __len__(self):
        with self._lock:
            return len(self._memory_cache)

    def _parse_snapshot(self, data, qid):
        entities = data.get("entities") if isinstance(data, dict) else None
        if not isinstance(entities, dict):
            return None
        entity = entities.get(qid)
        if not isinstance(entity, dict) or "missing" in entity:
            return None
        claims = entity.get("claims", {})
        return claims if isinstance(claims, dict) else {}

    def _fetch_snapshot_network(self, qid):
        endpoint = config.ENTITY_DATA_URL.format(qid=qid)
        logger.debug("[*] Fetching entity data for %s", qid)
        self.stats["network_calls"] += 1
        try:
            response = self._session.get(endpoint, headers=config.HEADERS, timeout=config.API_TIMEOUT)
        except requests.RequestException as exc:
            self.stats["network_errors"] += 1
            raise ResolutionError("SNAPSHOT_FETCH", f"Entity data request failed for {qid}.", {"error": str(exc)})
        if response.status_code != 200:
            self.stats["network_errors"] += 1
            raise ResolutionError(
                "SNAPSHOT_FETCH",
                f"HTTP {response.status_code} fetching entity data for {qid}.",
                {"status": response.status_code},
            )
        try:
            return response.json()
        except ValueError as exc:
            self.stats["network_errors"] += 1
            raise ResolutionError("SNAPSHOT_FETCH", f"Entity data for {qid} is not JSON.", {"error": str(exc)})

    def get_claims(self, qid):
        """Return the claims dict for an entity, fetching it once per run."""
        if not is_qid(qid):
            raise ResolutionError("INVALID_ID", f"Invalid entity id {qid!r}.", {"value": qid})
        qid = qid.strip()
        cached = self._get_memory_cached(qid)
        if cached is not None:
            return cached
        data = self._fetch_snapshot_network(qid)
        claims = self._parse_snapshot(data, qid)
        if claims is None:
            raise ResolutionError("MISSING_ENTITY", f"Entity {qid} missing from entity data.", {"qid": qid})
        self.store(qid, claims)
        return claims


class CitationMetadataCache:
    """URL -> CitationMetadata memo for one run. The first stored value per URL wins."""

    def __init__(self, seed=None):
        self._entries = dict(seed or {})
        self._lock = threading.Lock()
        self.stats = {"hits": 0, "misses": 0}

    def get(self, url):
        with self._lock:
            cached = self._entries.get(url)
            if cached is None:
                self.stats["misses"] += 1
            else:
                self.stats["hits"] += 1
            return cached

    def store(self, url, metadata):
        """Record metadata for a URL unless one is already cached; return the cached value."""
        with self._lock:
            return self._entries.setdefault(url, metadata)

    def __contains__(self, url):
        with self._lock:
            return url in self._entries

    def __len__(self):
        with self._lock:
            return len(self._entries)
