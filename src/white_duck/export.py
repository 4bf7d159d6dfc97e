"""CSV encoding of query results, shared by every CSV exit."""

import csv
import io
import json

from .engine import QueryResult


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)


def to_csv(result: QueryResult) -> str:
    """Header row plus one line per row; fields are quoted only when needed."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([c.name for c in result.columns])
    for row in result.rows:
        writer.writerow([_cell(v) for v in row])
    return buffer.getvalue()
