import argparse
import logging

import jsonschema
from tqdm import tqdm

from . import config
from .caching import CitationMetadataCache
from .citoid import CitationMetadataResolver
from .engine import TemplateEngine, log_failure
from .errors import ConfigurationError, WriteError
from .sources import build_reference_source
from .wiki import WikiClient

logger = logging.getLogger(__name__)


def validate_document(payload, schema, title):
    """Raise ConfigurationError naming the first missing or malformed field."""
    validator = jsonschema.Draft202012Validator(schema)
    errors = sorted(validator.iter_errors(payload), key=lambda e: len(list(e.absolute_path)))
    if errors:
        error = errors[0]
        field = ".".join(str(part) for part in error.absolute_path)
        if not field and error.validator == "required":
            field = next((name for name in error.validator_value if name not in (payload or {})), "")
        details = {"title": title, "path": list(error.absolute_path), "message": error.message}
        raise ConfigurationError("SCHEMA_VIOLATION", f"{field or 'document'}: {error.message}", details)
    return payload


def output_title(config_title):
    """The table page is the configuration page title without its .json suffix."""
    if config_title.endswith(config.CONFIG_PAGE_SUFFIX):
        return config_title[: -len(config.CONFIG_PAGE_SUFFIX)]
    return config_title


def process_configuration(wiki, engine, config_title, dry_run=False):
    """Resolve one configuration's template and write the result. Returns the new text."""
    config_json = validate_document(wiki.load_json(config_title), config.CONFIGURATION_SCHEMA, config_title)
    data_map = wiki.load_json(config_json["data"])
    if not isinstance(data_map, dict):
        raise ConfigurationError("SCHEMA_VIOLATION", "data: page must hold a JSON object", {"title": config_json["data"]})
    template_text = wiki.fetch_wikitext(config_json["template"])

    text = engine.resolve(template_text, config_json["headings"], data_map, config_title=config_title)
    if dry_run:
        logger.info("[*] Dry run: not saving %s", output_title(config_title))
        return text
    wiki.save_page(output_title(config_title), text)
    return text


def load_configuration_titles(wiki, master_page=config.MASTER_CONFIG_PAGE):
    master = validate_document(wiki.load_json(master_page), config.MASTER_CONFIG_SCHEMA, master_page)
    return master["configurations"]


def run(wiki, engine, config_titles, dry_run=False):
    """Process configurations in order. ConfigurationError skips one; WriteError halts the run."""
    results = {}
    for config_title in tqdm(config_titles, desc="Configurations", unit="config"):
        try:
            results[config_title] = process_configuration(wiki, engine, config_title, dry_run=dry_run)
        except ConfigurationError as exc:
            log_failure("configuration", config_title, exc)
    return results


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Update Wikipedia tables from Wikidata claims.")
    parser.add_argument(
        "--source",
        choices=config.REFERENCE_SOURCES,
        default=config.DEFAULT_REFERENCE_SOURCE,
        help="Claim/reference resolution strategy (SPARQL query or EntityData snapshot).",
    )
    parser.add_argument(
        "--master-page",
        default=config.MASTER_CONFIG_PAGE,
        help="Wiki page listing the configuration pages to process.",
    )
    parser.add_argument(
        "--config",
        dest="config_titles",
        action="append",
        default=None,
        help="Process only this configuration page (repeatable).",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Resolve templates without saving any page.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    wiki = WikiClient()
    wiki.login()
    source = build_reference_source(args.source)
    metadata_resolver = CitationMetadataResolver(CitationMetadataCache())
    engine = TemplateEngine(source, metadata_resolver)

    try:
        config_titles = args.config_titles or load_configuration_titles(wiki, args.master_page)
    except ConfigurationError as exc:
        logger.critical("Failed to get configurations with error %s", exc)
        return 1

    try:
        results = run(wiki, engine, config_titles, dry_run=args.dry_run)
    except WriteError as exc:
        logger.critical("Error raised when editing, can't handle, so failing. Error was %s", exc)
        return 1

    logger.info(
        "[+] Processed %s/%s configurations. Markers: %s",
        len(results),
        len(config_titles),
        engine.stats,
    )
    log_run_stats(source, metadata_resolver)
    return 0


def log_run_stats(source, metadata_resolver):
    """Summarize every source, cache and client counter at the end of a run."""
    for name, stats in source.component_stats().items():
        logger.info("[*] %s: %s", name, stats)
    logger.info("[*] citation_metadata: %s", metadata_resolver.stats)
    logger.info("[*] citation_cache: %s entries, %s", len(metadata_resolver.cache), metadata_resolver.cache.stats)


if __name__ == "__main__":
    raise SystemExit(main())
