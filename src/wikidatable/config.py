import os
import re

# HTTP identity and base endpoints
HEADERS = {"User-Agent": "Wikidatable/1.0 (Wikidata table updater bot; https://en.wikipedia.org/wiki/User:Yapperbot)"}
ENTITY_DATA_URL = "https://www.wikidata.org/wiki/Special:EntityData/{qid}.json"
SPARQL_ENDPOINT = "https://query.wikidata.org/sparql"
CITATION_ENDPOINT = "https://en.wikipedia.org/api/rest_v1/data/citation/mediawiki/{url}"
CITATION_PARAMS = {"action": "query", "format": "json"}

# Network tuning knobs
API_TIMEOUT = 30  # Seconds per entity data / citation request
SPARQL_TIMEOUT = 1.5  # Seconds per SPARQL attempt
SPARQL_MAX_ATTEMPTS = 3
SPARQL_RETRY_DELAY = 0.1  # Seconds between SPARQL attempts

# Cache sizing
CLAIM_CACHE_SIZE = 2048

# Reference resolution strategy: "query" (SPARQL) or "snapshot" (EntityData JSON)
DEFAULT_REFERENCE_SOURCE = "query"
REFERENCE_SOURCES = ("query", "snapshot")

# Wikidata properties read from claims and references
PROP_STATED_IN = "P248"
PROP_REFERENCE_URLS = ("P854", "P856", "P1065")  # reference URL, official website, archive URL
PROP_PUBLISHED = "P577"
PROP_RETRIEVED = "P813"
PROP_POINT_IN_TIME = "P585"

# Identifier validation
QID_EXACT_PATTERN = re.compile(r"^Q\d+$")
PID_EXACT_PATTERN = re.compile(r"^P\d+$")

# Template markers
DATASLOT_PATTERN = re.compile(r"<!-- *DATASLOT:([^:]+?):([^:]+?) *-->", re.IGNORECASE)
REFSLOT_TEMPLATE = r"<!-- *REFSLOT:{heading}:{data} *-->"
VALUE_DECIMALS = 10  # Fixed-point digits written for every resolved value

# Citation rendering; see https://en.wikipedia.org/wiki/Help:CS1_errors#invisible_char
CITE_PIPE_ESCAPE = "{{!}}"
CITE_CLEAN_CHARS = (
    "\u00A0",
    "\u00AD",
    "\uFFFD",
    "\u200A",
    "\u200B",
    "\u200D",
    "\u0009",
    "\u0010",
    "\u0013",
    "\u007F",
)
UNKNOWN_SOURCE = "an unknown source"

# Wiki target and bot identity
WIKI_HOST = "en.wikipedia.org"
WIKI_PATH = "/w/"
MASTER_CONFIG_PAGE = "User:Yapperbot/Wikidatable.json"
CONFIG_PAGE_SUFFIX = ".json"
EDIT_SUMMARY = "Updating Wikidatatable from template"
WIKI_USERNAME = os.environ.get("WIKIDATABLE_USERNAME")
WIKI_PASSWORD = os.environ.get("WIKIDATABLE_PASSWORD")

# Shape of the per-table configuration page
CONFIGURATION_SCHEMA = {
    "type": "object",
    "required": ["data", "template", "headings"],
    "properties": {
        "data": {"type": "string", "minLength": 1},
        "template": {"type": "string", "minLength": 1},
        "headings": {
            "type": "object",
            "additionalProperties": {"type": "object"},
        },
    },
}
MASTER_CONFIG_SCHEMA = {
    "type": "object",
    "required": ["configurations"],
    "properties": {
        "configurations": {"type": "array", "items": {"type": "string"}},
    },
}
