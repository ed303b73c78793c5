import logging
from urllib.parse import quote

import requests

from . import config
from .caching import CitationMetadataCache
from .errors import MetadataLookupError
from .models import CitationMetadata

logger = logging.getLogger(__name__)


def _string_field(payload, key):
    value = payload.get(key)
    return value if isinstance(value, str) else ""


class CitationMetadataResolver:
    """Title / language / website lookup for source URLs via the Citoid REST API."""

    def __init__(self, cache=None, session=None):
        self.cache = cache if cache is not None else CitationMetadataCache()
        self._session = session or requests
        self.stats = {"network_calls": 0, "lookup_failures": 0}

    def _fetch(self, url):
        endpoint = config.CITATION_ENDPOINT.format(url=quote(url, safe=""))
        self.stats["network_calls"] += 1
        try:
            response = self._session.get(
                endpoint,
                headers=config.HEADERS,
                params=config.CITATION_PARAMS,
                timeout=config.API_TIMEOUT,
            )
        except requests.RequestException as exc:
            raise MetadataLookupError("CITOID_REQUEST", f"Citation request failed for {url}.", {"error": str(exc)})
        if response.status_code != 200:
            raise MetadataLookupError(
                "CITOID_REQUEST",
                f"HTTP {response.status_code} from citation service for {url}.",
                {"status": response.status_code},
            )
        try:
            results = response.json()
        except ValueError as exc:
            raise MetadataLookupError("CITOID_PARSE", f"Citation response for {url} is not JSON.", {"error": str(exc)})
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise MetadataLookupError("CITOID_PARSE", f"Citation response for {url} has no results.")
        first = results[0]
        return CitationMetadata(
            title=_string_field(first, "title"),
            language=_string_field(first, "language"),
            website=_string_field(first, "websiteTitle"),
        )

    def resolve(self, url):
        """Return cached or freshly fetched metadata; failures are cached as empty metadata."""
        cached = self.cache.get(url)
        if cached is not None:
            return cached
        try:
            metadata = self._fetch(url)
        except MetadataLookupError as exc:
            self.stats["lookup_failures"] += 1
            logger.warning("[!] Citation metadata unavailable for %s: %s", url, exc)
            metadata = CitationMetadata()
        return self.cache.store(url, metadata)

    def fill_reference(self, reference):
        """Fill empty title/language/website fields on a reference from its URL metadata."""
        if not reference.url or reference.has_metadata():
            return reference
        metadata = self.resolve(reference.url)
        if not reference.title:
            reference.title = metadata.title
        if not reference.language:
            reference.language = metadata.language
        if not reference.website:
            reference.website = metadata.website
        return reference
