"""
CSV export of report rows
"""
import csv
import io
from typing import Any, Dict, List, Sequence

from utils import format_cell


def encode_csv(rows: Sequence[Dict[str, Any]]) -> str:
    """
    Encode report rows as comma-separated text

    The header is the key list of the first row; every row is written in
    that column order and a missing key becomes an empty cell. Cells that
    contain a comma, a double quote or a newline are quoted with inner
    quotes doubled.

    Args:
        rows: Report rows sharing the same keys

    Returns:
        CSV text, or an empty string when there are no rows
    """
    if not rows:
        return ''

    keys: List[str] = list(rows[0].keys())

    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator='\n')

    writer.writerow(keys)
    for row in rows:
        writer.writerow([format_cell(row.get(key)) for key in keys])

    return output.getvalue()
