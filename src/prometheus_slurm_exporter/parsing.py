"""Helpers for parsing SLURM command output.

SLURM tools print loosely structured, line-oriented text. These helpers
turn that text into numbers while tolerating malformed fields: anything
that does not parse counts as zero instead of failing the scrape.
"""

import math
from dataclasses import dataclass

QUOTE_CHARS = "\"'"


@dataclass
class CPUStates:
    """CPU counts from SLURM's ``allocated/idle/other/total`` format."""

    alloc: float = 0.0
    idle: float = 0.0
    other: float = 0.0
    total: float = 0.0


def decode_lines(raw: bytes) -> list[str]:
    """Decode command output into non-empty, unquoted lines.

    Some format strings make SLURM wrap each line in quotes, so enclosing
    quote characters are stripped along with whitespace.

    Args:
        raw: Raw command output.

    Returns:
        Cleaned lines, without empty ones.
    """
    if not raw:
        return []

    lines = []
    for line in raw.decode("utf-8", errors="replace").splitlines():
        cleaned = line.strip().strip(QUOTE_CHARS).strip()
        if cleaned:
            lines.append(cleaned)
    return lines


def parse_float(token: str) -> float:
    """Parse a count, returning 0.0 for anything malformed, negative or non-finite."""
    try:
        value = float(token)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


def split_fields(line: str, separator: str) -> list[str]:
    """Split a line on a separator and strip every field."""
    return [field.strip() for field in line.split(separator)]


def parse_tagged_counts(
    raw: bytes,
    prefix: str,
    field: int | None = None,
) -> tuple[dict[str, float], float]:
    """Sum ``<prefix><type>:<count>`` records per type.

    Accounting output (one allocation per line) is matched on the whole
    line. Inventory output (one node per line) is split on whitespace and
    matched on the given field.

    Examples with ``prefix="board:"``:
        "board:a100:2" -> {"a100": 2.0}, 2.0
        "node01 board:a100:4" (field=1) -> {"a100": 4.0}, 4.0
        "board:a100:x" -> {"a100": 0.0}, 0.0

    Args:
        raw: Raw command output.
        prefix: Sentinel a record must start with.
        field: Whitespace-delimited field holding the record, or None to
            use the whole line.

    Returns:
        Tuple of (count per type, total count).
    """
    counts: dict[str, float] = {}
    total = 0.0

    for line in decode_lines(raw):
        if field is None:
            record = line
        else:
            fields = line.split()
            if len(fields) <= field:
                continue
            record = fields[field]

        if not record.startswith(prefix):
            continue

        # Remaining "<type>:<count>"; a missing count contributes nothing
        parts = record[len(prefix) :].split(":")
        record_type = parts[0]
        value = parse_float(parts[1]) if len(parts) > 1 else 0.0

        counts[record_type] = counts.get(record_type, 0.0) + value
        total += value

    return counts, total


def parse_cpu_states(token: str) -> CPUStates:
    """Parse SLURM's ``allocated/idle/other/total`` CPU quadruple.

    Missing or malformed parts are zero.
    """
    parts = token.strip().split("/")
    values = [parse_float(part) for part in parts[:4]]
    values += [0.0] * (4 - len(values))
    return CPUStates(*values)
