"""Generic CSV writer for report rows."""

import csv
import logging
from pathlib import Path
from typing import Any

from ncs_inventory.fields import ABSENT

logger = logging.getLogger(__name__)


def _format_value(value: Any) -> str:
    """Normalize a cell value for CSV output."""
    if value is ABSENT or value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "; ".join(_format_value(v) for v in value)
    text = str(value)
    return text.replace("\r\n", " ").replace("\n", " ").replace("\r", "")


def export_csv(
    rows: list[dict[str, Any]],
    headers: list[str],
    output_path: str | Path,
    sort_by: list[str] | None = None,
) -> int:
    """Write *rows* to *output_path* as CSV with exactly *headers* as columns.

    Rows are keyed by header name; missing keys produce blank cells.
    Returns the number of data rows written.
    """
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if sort_by:
        keys = [h for h in sort_by if h in headers]
        rows = sorted(rows, key=lambda r: tuple(_format_value(r.get(k)).lower() for k in keys))

    with open(path, "w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh, quoting=csv.QUOTE_MINIMAL)
        writer.writerow(headers)
        for row in rows:
            writer.writerow([_format_value(row.get(h)) for h in headers])

    logger.info("Wrote %d rows to %s", len(rows), path)
    return len(rows)
