"""Collapse duplicate records in the line-delimited decisions index."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


LOGGER = logging.getLogger("fos_runner.dedup")

IDENTITY_FIELDS = ("pdf_url", "source_url", "decision_reference")


def parse_record(line: str) -> Optional[Dict[str, Any]]:
    """Return the JSON object on *line*, or ``None`` if it is not one."""
    text = line.strip()
    if not text:
        return None
    try:
        record = json.loads(text)
    except json.JSONDecodeError:
        return None
    return record if isinstance(record, dict) else None


def identity_key(record: Dict[str, Any]) -> Optional[str]:
    """First non-empty identity field, in priority order."""
    for name in IDENTITY_FIELDS:
        value = record.get(name)
        if value:
            return str(value)
    return None


def dedupe_records(lines: Iterable[str]) -> List[Dict[str, Any]]:
    """Keep the first record seen for each identity key, in input order."""
    seen = set()
    output: List[Dict[str, Any]] = []
    for record in filter(None, map(parse_record, lines)):
        key = identity_key(record)
        if key is None or key in seen:
            continue
        seen.add(key)
        output.append(record)
    return output


def dedupe_index(path: Path) -> Optional[int]:
    """
    Rewrite *path* in place with duplicates and malformed lines removed.

    Returns the number of surviving records, or ``None`` when the file could
    not be read or written. The rewrite is not atomic.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding="utf-8")
        records = dedupe_records(raw.splitlines())
        body = "\n".join(json.dumps(record, ensure_ascii=False, separators=(",", ":")) for record in records)
        path.write_text(body + "\n", encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        LOGGER.warning("Dedup skipped for %s: %s", path, exc)
        return None
    return len(records)
