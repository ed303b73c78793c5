import logging
import time
from string import Template

import requests

from . import config
from .errors import ResolutionError
from .utils import is_pid, is_qid

logger = logging.getLogger(__name__)

# All statements for (entity, property) joined with whatever reference data exists.
# Sorted by rank, then dates, so the top row is the preferred claim if there is one,
# otherwise the latest normal-rank claim, preferring rows that carry reference data.
LOOKUP_QUERY = Template(
    """
SELECT ?val ?pointintime ?refLabel ?url ?retrieved ?published ?rank WHERE {
  wd:$entity p:$property ?statement.
  ?statement ps:$property ?val;
    wikibase:rank ?rank.
  OPTIONAL { ?statement pq:$point_in_time ?pointintime. }
  OPTIONAL {
    ?statement prov:wasDerivedFrom ?refnode.
    OPTIONAL { ?refnode pr:$stated_in ?ref. }
    OPTIONAL { ?refnode $url_path ?url. }
    OPTIONAL { ?refnode pr:$published ?published. }
    OPTIONAL { ?refnode pr:$retrieved ?retrieved. }
  }
  SERVICE wikibase:label { bd:serviceParam wikibase:language "en". }
}
ORDER BY DESC(?rank) DESC(?pointintime) DESC(?published) DESC(?retrieved) DESC(?url) DESC(?refLabel) LIMIT 1
"""
)


def build_lookup_query(entity_id, property_id):
    """Render the lookup query for one (entity, property) pair."""
    if not is_qid(entity_id):
        raise ResolutionError("INVALID_ID", f"Invalid entity id {entity_id!r}.", {"value": entity_id})
    if not is_pid(property_id):
        raise ResolutionError("INVALID_ID", f"Invalid property id {property_id!r}.", {"value": property_id})
    return LOOKUP_QUERY.substitute(
        entity=entity_id.strip(),
        property=property_id.strip(),
        point_in_time=config.PROP_POINT_IN_TIME,
        stated_in=config.PROP_STATED_IN,
        url_path="|".join(f"pr:{pid}" for pid in config.PROP_REFERENCE_URLS),
        published=config.PROP_PUBLISHED,
        retrieved=config.PROP_RETRIEVED,
    )


def flatten_binding(binding):
    """Reduce a SPARQL JSON result binding to {variable: lexical value}."""
    return {name: term.get("value", "") for name, term in binding.items() if isinstance(term, dict)}


class SparqlClient:
    """Minimal SPARQL-over-HTTP client for the Wikidata Query Service."""

    def __init__(
        self,
        endpoint=config.SPARQL_ENDPOINT,
        timeout=config.SPARQL_TIMEOUT,
        max_attempts=config.SPARQL_MAX_ATTEMPTS,
        retry_delay=config.SPARQL_RETRY_DELAY,
        session=None,
    ):
        self.endpoint = endpoint
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self._session = session or requests
        self.stats = {"queries": 0, "attempts": 0, "failures": 0}

    def _attempt(self, query):
        response = self._session.get(
            self.endpoint,
            headers={**config.HEADERS, "Accept": "application/sparql-results+json"},
            params={"query": query, "format": "json"},
            timeout=self.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        results = payload.get("results") if isinstance(payload, dict) else None
        bindings = results.get("bindings") if isinstance(results, dict) else None
        if not isinstance(bindings, list):
            raise ValueError("SPARQL response carries no result bindings")
        return [flatten_binding(binding) for binding in bindings]

    def select(self, query):
        """Run a SELECT query and return its rows, retrying on transport failures."""
        self.stats["queries"] += 1
        last_error = None
        for attempt in range(self.max_attempts):
            self.stats["attempts"] += 1
            try:
                return self._attempt(query)
            except (requests.RequestException, ValueError) as exc:
                last_error = exc
                logger.debug("[!] SPARQL attempt %s/%s failed: %s", attempt + 1, self.max_attempts, exc)
            if attempt < self.max_attempts - 1 and self.retry_delay:
                time.sleep(self.retry_delay)
        self.stats["failures"] += 1
        raise ResolutionError(
            "SPARQL_FAILED",
            f"SPARQL query failed after {self.max_attempts} attempts.",
            {"error": str(last_error)},
        )
