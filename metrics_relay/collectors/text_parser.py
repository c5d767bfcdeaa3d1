"""Field extraction from loosely structured text metrics bodies."""

import math
from typing import Dict, Iterable, Optional, Tuple

SEPARATORS = "=:"


def parse_field(line: str, token: str) -> Optional[float]:
    """
    Parse the numeric value that follows ``token`` on ``line``.

    Accepts ``token=42``, ``token: 42``, ``token 42`` and the Prometheus form
    ``token{label="x"} 42``. Trailing text after the value (a timestamp, a
    unit) is ignored.

    Returns:
        The parsed value, or None when the line holds no finite number.
    """
    index = line.find(token)
    if index < 0:
        return None

    rest = line[index + len(token):]
    if rest.startswith('{'):
        closing = rest.find('}')
        if closing < 0:
            return None
        rest = rest[closing + 1:]

    rest = rest.strip()
    if rest and rest[0] in SEPARATORS:
        rest = rest[1:].strip()

    parts = rest.split()
    if not parts:
        return None

    try:
        value = float(parts[0].rstrip(',;%'))
    except ValueError:
        return None

    if not math.isfinite(value):
        return None
    return value


def extract_fields(
    body: str,
    fields: Iterable[str]
) -> Tuple[Dict[str, float], Tuple[str, ...]]:
    """
    Extract numeric fields from a text body.

    For every field the first non-comment line containing its token decides
    the value. Fields that never appear, or whose first line does not parse,
    default to 0.0 and are reported as missing.

    Args:
        body: Full response body
        fields: Field tokens to look for

    Returns:
        (values, missing): values holds an entry for every requested field
    """
    lines = [
        line for line in body.splitlines()
        if line.strip() and not line.lstrip().startswith('#')
    ]

    values: Dict[str, float] = {}
    missing = []

    for token in fields:
        value = None
        for line in lines:
            if token in line:
                value = parse_field(line, token)
                break

        if value is None:
            missing.append(token)
            value = 0.0
        values[token] = value

    return values, tuple(missing)
