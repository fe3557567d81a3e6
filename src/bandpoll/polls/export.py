from __future__ import annotations

import re
from typing import List

from .schema import Poll


CHECK = "✓"
_LAYOUT_CHARS = re.compile(r"[\t\r\n]+")


def export_rows(poll: Poll) -> List[List[str]]:
    """Spreadsheet rows: available participants per date with their instruments that day.

    Dates are grouped and separated by an empty row.
    """
    rows: List[List[str]] = [["Date", "Participant", *poll.instruments]]
    for d in poll.dates:
        for r in poll.responses:
            if not r.is_available(d):
                continue
            chosen = r.instruments_on(d)
            rows.append([d, r.name, *(CHECK if i in chosen else "" for i in poll.instruments)])
        rows.append([])
    return rows


def export_tsv(poll: Poll) -> str:
    # Plain tab-join, no quoting; tabs and line breaks inside a value become spaces
    lines = ["\t".join(_LAYOUT_CHARS.sub(" ", cell) for cell in row) for row in export_rows(poll)]
    return "".join(line + "\n" for line in lines)


def export_filename(poll: Poll) -> str:
    return re.sub(r"[^a-z0-9]", "_", poll.title, flags=re.IGNORECASE) + "_export.tsv"
