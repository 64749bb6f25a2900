"""Parser for loosely structured delimited text (CSV, semicolon, tab).

The parser is a four-state machine over the character stream:

- start of field: leading whitespace is skipped, a quote opens a quoted
  field, the delimiter or a newline closes an empty field;
- unquoted field: characters are copied until delimiter or newline;
- quoted body: everything is copied until a quote;
- possible closing quote: a second quote is a literal quote, otherwise the
  field is closed and only delimiter, newline or whitespace may follow.

Rows are produced lazily so callers can window over large files.
"""

from __future__ import annotations

from collections.abc import Iterator
import csv
from dataclasses import dataclass, field
from enum import Enum
import io

from core.errors import GenericError, QuotationError

QUOTE = '"'
RECOGNIZED_DELIMITERS = (",", ";", "\t")
DEFAULT_DELIMITER = ","


class _State(Enum):
    START = 0
    UNQUOTED = 1
    QUOTED = 2
    QUOTE_IN_QUOTED = 3


def guess_delimiter(text: str) -> str:
    """Return the first recognized delimiter on the first line, skipping quoted spans."""
    in_quotes = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch in "\r\n":
            break
        if in_quotes:
            if ch == QUOTE:
                if i + 1 < n and text[i + 1] == QUOTE:
                    i += 2
                    continue
                in_quotes = False
        elif ch == QUOTE:
            in_quotes = True
        elif ch in RECOGNIZED_DELIMITERS:
            return ch
        i += 1
    return DEFAULT_DELIMITER


def iter_rows(
    text: str,
    delimiter: str | None = None,
    skip_rows: int = 0,
    max_rows: int | None = None,
) -> Iterator[list[str]]:
    """Yield rows of `text` as lists of cell strings.

    Args:
        text: Full input text.
        delimiter: Field separator; guessed from the first line when None.
        skip_rows: Number of leading rows to parse but not yield.
        max_rows: Stop after yielding this many rows.

    Raises:
        QuotationError: A quote appears where it cannot be structurally valid.
        GenericError: A quoted field is not terminated before end of input.
    """
    if delimiter is None:
        delimiter = guess_delimiter(text)
    if len(delimiter) != 1 or delimiter in (QUOTE, "\r", "\n"):
        raise ValueError(f"Invalid delimiter: {delimiter!r}")
    if max_rows is not None and max_rows <= 0:
        return

    state = _State.START
    row: list[str] = []
    cell: list[str] = []
    row_number = 1
    seen = 0
    emitted = 0

    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        # "\r\n" counts as one newline
        if ch == "\r" and i + 1 < n and text[i + 1] == "\n":
            i += 1
            ch = "\n"
        elif ch == "\r":
            ch = "\n"

        if state is _State.START:
            if ch == QUOTE:
                state = _State.QUOTED
            elif ch == delimiter:
                row.append("")
            elif ch == "\n":
                if row:
                    row.append("")
                    if seen >= skip_rows:
                        yield row
                        emitted += 1
                        if max_rows is not None and emitted >= max_rows:
                            return
                    seen += 1
                row = []
                row_number += 1
            elif ch.isspace():
                pass
            else:
                cell.append(ch)
                state = _State.UNQUOTED
        elif state is _State.UNQUOTED:
            if ch == QUOTE:
                raise QuotationError("quotes can only surround the whole field", row_number)
            if ch == delimiter:
                row.append("".join(cell))
                cell = []
                state = _State.START
            elif ch == "\n":
                row.append("".join(cell))
                cell = []
                state = _State.START
                if seen >= skip_rows:
                    yield row
                    emitted += 1
                    if max_rows is not None and emitted >= max_rows:
                        return
                seen += 1
                row = []
                row_number += 1
            else:
                cell.append(ch)
        elif state is _State.QUOTED:
            if ch == QUOTE:
                state = _State.QUOTE_IN_QUOTED
            else:
                cell.append(ch)
                if ch == "\n":
                    row_number += 1
        else:
            if ch == QUOTE:
                cell.append(QUOTE)
                state = _State.QUOTED
            elif ch == delimiter:
                row.append("".join(cell))
                cell = []
                state = _State.START
            elif ch == "\n":
                row.append("".join(cell))
                cell = []
                state = _State.START
                if seen >= skip_rows:
                    yield row
                    emitted += 1
                    if max_rows is not None and emitted >= max_rows:
                        return
                seen += 1
                row = []
                row_number += 1
            elif ch.isspace():
                pass
            else:
                raise QuotationError("unexpected character after closing quote", row_number)
        i += 1

    if state is _State.QUOTED:
        raise GenericError("unterminated quoted field", row_number)
    if state is not _State.START:
        row.append("".join(cell))
    elif row:
        row.append("")
    if row and seen >= skip_rows:
        yield row


@dataclass
class NamedTable:
    """Header plus rows keyed by header name."""

    header: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)


def parse_named(
    text: str,
    delimiter: str | None = None,
    skip_rows: int = 0,
    max_rows: int | None = None,
) -> NamedTable:
    """Parse `text` into a header and named rows.

    The first row is the header. Duplicate header names keep their first
    column. Short rows are padded with empty strings and extra cells dropped.
    `skip_rows`/`max_rows` window over the data rows after the header.
    """
    if delimiter is None:
        delimiter = guess_delimiter(text)
    rows = iter_rows(text, delimiter)
    try:
        raw_header = next(rows)
    except StopIteration:
        return NamedTable(header=[])

    header: list[str] = []
    columns: list[int] = []
    for idx, name in enumerate(raw_header):
        if name in header:
            continue
        header.append(name)
        columns.append(idx)

    table = NamedTable(header=header)
    seen = 0
    for raw in rows:
        if seen < skip_rows:
            seen += 1
            continue
        if max_rows is not None and len(table.rows) >= max_rows:
            break
        record: dict[str, str] = {}
        for name, idx in zip(header, columns):
            record[name] = raw[idx] if idx < len(raw) else ""
        table.rows.append(record)
    return table


def serialize_rows(header: list[str], rows: list[dict[str, str]], delimiter: str = ",") -> str:
    """Write `rows` back as delimited text, quoting cells only when needed."""
    buf = io.StringIO()
    writer = csv.DictWriter(
        buf,
        fieldnames=header,
        delimiter=delimiter,
        quotechar=QUOTE,
        lineterminator="\n",
        extrasaction="ignore",
    )
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buf.getvalue()
