import re
from itertools import islice
from typing import Iterable

from audit2csv.records import tokenize
from audit2csv.rows import RECORD_FIELD_COLUMNS


DEFAULT_DISCOVER_MAX = 100000
HANDLED_FIELDS = frozenset({*RECORD_FIELD_COLUMNS, "msg", "audit", "serial", "items"})
ARGUMENT_FIELD_RE = re.compile(r"^a\d+$")


def is_excluded(key: str, excluded: frozenset[str] = HANDLED_FIELDS) -> bool:
    return key in excluded or bool(ARGUMENT_FIELD_RE.match(key))


def discover_fields(
    lines: Iterable[str],
    max_lines: int = DEFAULT_DISCOVER_MAX,
    excluded: frozenset[str] = HANDLED_FIELDS,
) -> list[str]:
    """Collect extra field names seen in the first `max_lines` lines.

    Keys from both the record body and its `msg='...'` payload count. Core
    columns and positional `aN` arguments are left out. Fields that only show
    up past the sampled prefix are not reported.
    """
    seen: set[str] = set()
    for line in islice(lines, max_lines):
        if not line.strip():
            continue
        seen.update(tokenize(line).keys())
    return sorted(key for key in seen if not is_excluded(key, excluded))
