from urllib.parse import urlsplit

from . import config


def clean_cite_text(text):
    """Escape pipes and drop invisible characters that break CS1 citation templates."""
    working = (text or "").replace("|", config.CITE_PIPE_ESCAPE)
    for char in config.CITE_CLEAN_CHARS:
        working = working.replace(char, "")
    return working


def title_is_url(text):
    """Return True if a title is really just an absolute URL."""
    if not text or any(char.isspace() for char in text):
        return False
    try:
        parts = urlsplit(text)
    except ValueError:
        return False
    return bool(parts.scheme and parts.netloc)


def date_clauses(reference):
    """Return the " (published {{date|...}}) (retrieved {{date|...}})" suffix for set dates."""
    clauses = []
    if reference.published:
        clauses.append(f" (published {{{{date|{reference.published}}}}})")
    if reference.retrieved:
        clauses.append(f" (retrieved {{{{date|{reference.retrieved}}}}})")
    return "".join(clauses)


def cite_web(reference):
    return (
        "{{cite web"
        f"|url={reference.url}"
        f"|title={clean_cite_text(reference.title)}"
        f"|date={reference.published}"
        f"|access-date={reference.retrieved}"
        f"|language={reference.language}"
        f"|website={clean_cite_text(reference.website)}"
        "}}"
    )


def cite_reference(reference, metadata_resolver=None):
    """Render one reference as citation markup, or None when there is no reference."""
    if reference is None or not reference.found:
        return None
    if not reference.url:
        return reference.title + date_clauses(reference)
    if metadata_resolver is not None:
        metadata_resolver.fill_reference(reference)
    if not reference.title or title_is_url(reference.title):
        return f"[{reference.url}]" + date_clauses(reference)
    return cite_web(reference)


def build_citation(reference, metadata_resolver=None, is_ratio=False, per_reference=None):
    """Return the <ref> tag for a resolved marker, or None if the primary reference is absent."""
    primary = cite_reference(reference, metadata_resolver)
    if primary is None:
        return None
    if is_ratio:
        secondary = cite_reference(per_reference, metadata_resolver) or config.UNKNOWN_SOURCE
        body = f"Calculated from {primary} and {secondary}"
    else:
        body = primary
    return f"<ref>{body}.</ref>"
