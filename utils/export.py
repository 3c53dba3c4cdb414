"""Export accumulated records as CSV, TSV or JSON."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Sequence

from loguru import logger


def flatten_record(record: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Flatten nested objects into dotted keys: ``{"scores": {"a": 1}}`` → ``{"scores.a": 1}``."""
    flat: Dict[str, Any] = {}
    for key, value in record.items():
        name = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_record(value, prefix=f"{name}."))
        else:
            flat[name] = value
    return flat


def _rows(records: Sequence[Dict[str, Any]]) -> List[List[str]]:
    flat = [flatten_record(r) for r in records]
    headers: List[str] = []
    for row in flat:
        for key in row:
            if key not in headers:
                headers.append(key)
    body = [["" if row.get(h) is None else str(row.get(h)) for h in headers] for row in flat]
    return [headers] + body


def to_csv(records: Sequence[Dict[str, Any]]) -> str:
    """Every cell double-quoted, embedded quotes doubled."""
    if not records:
        return ""
    return "\n".join(
        ",".join('"' + cell.replace('"', '""') + '"' for cell in row) for row in _rows(records)
    )


def to_tsv(records: Sequence[Dict[str, Any]]) -> str:
    """Tabs and newlines inside cells become spaces."""
    if not records:
        return ""
    return "\n".join(
        "\t".join(cell.replace("\t", " ").replace("\n", " ") for cell in row) for row in _rows(records)
    )


def to_json(records: Sequence[Dict[str, Any]]) -> str:
    return json.dumps(list(records), indent=2, ensure_ascii=False)


_FORMATTERS = {
    ".csv": to_csv,
    ".tsv": to_tsv,
    ".json": to_json,
}


def export_records(records: Sequence[Dict[str, Any]], path: str) -> Path:
    """Write ``records`` to ``path``; the extension picks the format."""
    target = Path(path)
    formatter = _FORMATTERS.get(target.suffix.lower())
    if formatter is None:
        raise ValueError(f"Unsupported export format {target.suffix!r}; use one of {sorted(_FORMATTERS)}")
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as fh:
        fh.write(formatter(records))
    logger.info(f"Exported {len(records)} records to {target}")
    return target
