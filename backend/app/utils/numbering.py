"""Shared number generation utility.

Reads format templates from tenant_config and generates sequential codes.

Format tokens:
  {year}       → YYYY (current year, UTC)
  {date}       → YYYYMMDD
  {seq:N}      → zero-padded sequence number, N digits, per prefix

Default formats:
  batch:     BRW-{year}-{seq:4}
  blend:     BLEND-{year}-{seq:4}

Split children are not numbered from a template: they take the parent
code plus a letter suffix ({parent}-A, {parent}-B, …).
"""

import logging
import re
import string

from app.lineage.entities import LineageSnapshot, utcnow

logger = logging.getLogger(__name__)

DEFAULT_FORMATS = {
    "batch": "BRW-{year}-{seq:4}",
    "blend": "BLEND-{year}-{seq:4}",
}

SPLIT_SUFFIXES = string.ascii_uppercase


def _get_format(snapshot: LineageSnapshot, entity: str) -> str:
    """Get the format template for an entity type from tenant_config."""
    overrides = snapshot.config.get("number_formats") or {}
    fmt = overrides.get(entity) if isinstance(overrides, dict) else None
    if isinstance(fmt, str) and re.search(r"\{seq:\d+\}", fmt):
        return fmt
    if fmt is not None:
        logger.warning(
            "Ignoring malformed number format",
            extra={"tenant_id": snapshot.tenant_id, "entity": entity, "format": fmt},
        )
    return DEFAULT_FORMATS[entity]


def _existing_codes(snapshot: LineageSnapshot, entity: str) -> list[str]:
    if entity == "batch":
        return [b.batch_number for b in snapshot.batches.values()]
    return [lot.lot_code for lot in snapshot.lots.values() if lot.lot_code]


def generate_code(snapshot: LineageSnapshot, entity: str) -> str:
    """Generate the next sequential code for `entity` ("batch" or "blend").

    The sequence continues from the highest number already issued under
    the same prefix, so codes stay unique even when older rows carry
    suffixes (e.g. split children of a blend lot).
    """
    fmt = _get_format(snapshot, entity)
    now = utcnow()
    rendered = fmt.replace("{year}", f"{now.year:04d}").replace(
        "{date}", now.strftime("%Y%m%d")
    )

    seq_match = re.search(r"\{seq:(\d+)\}", rendered)
    seq_width = int(seq_match.group(1))
    prefix = rendered[: seq_match.start()]
    suffix = rendered[seq_match.end():]
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+){re.escape(suffix)}$")

    highest = 0
    for code in _existing_codes(snapshot, entity):
        match = pattern.match(code)
        if match:
            highest = max(highest, int(match.group(1)))

    return f"{prefix}{highest + 1:0{seq_width}d}{suffix}"


def split_codes(parent_code: str, suffixes: list[str | None]) -> list[str]:
    """Build child codes for a split, auto-assigning A, B, … where no suffix is given."""
    taken = {s.upper() for s in suffixes if s}
    free = iter(letter for letter in SPLIT_SUFFIXES if letter not in taken)
    codes = []
    for suffix in suffixes:
        letter = suffix.upper() if suffix else next(free)
        codes.append(f"{parent_code}-{letter}")
    return codes
