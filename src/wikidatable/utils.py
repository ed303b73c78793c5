import math

from . import config


def is_qid(value):
    """Return True if the value looks like a Wikidata item id (Q*)."""
    if not isinstance(value, str):
        return False
    return bool(config.QID_EXACT_PATTERN.fullmatch(value.strip()))


def is_pid(value):
    """Return True if the value looks like a Wikidata property id (P*)."""
    if not isinstance(value, str):
        return False
    return bool(config.PID_EXACT_PATTERN.fullmatch(value.strip()))


def safe_get(payload, *keys, default=None):
    """Traverse nested dicts/lists safely and return default on missing keys."""
    cur = payload
    for key in keys:
        if isinstance(cur, dict):
            if key not in cur:
                return default
            cur = cur[key]
        elif isinstance(cur, list) and isinstance(key, int):
            if not -len(cur) <= key < len(cur):
                return default
            cur = cur[key]
        else:
            return default
    return cur


def first_snak_value(snaks, property_id):
    """Return the datavalue payload of the first snak recorded for a property."""
    entries = (snaks or {}).get(property_id) or []
    if not entries:
        return None
    return safe_get(entries[0], "datavalue", "value")


def parse_amount(raw):
    """Parse a Wikibase quantity amount ("+1234.5") into a float."""
    if isinstance(raw, bool):
        raise ValueError(f"Unsupported amount {raw!r}")
    if isinstance(raw, (int, float)):
        return float(raw)
    if not isinstance(raw, str) or not raw.strip():
        raise ValueError(f"Unsupported amount {raw!r}")
    return float(raw.strip())


def ratio_percent(primary, secondary):
    """Return (primary / secondary) * 100.0 with IEEE semantics for a zero divisor."""
    if secondary == 0:
        if primary == 0 or math.isnan(primary):
            return math.nan
        return math.copysign(math.inf, primary) * math.copysign(1.0, secondary)
    return (primary / secondary) * 100.0


def format_value(value, decimals=config.VALUE_DECIMALS):
    """Render a resolved value in fixed-point notation."""
    return f"{value:.{decimals}f}"
