# processors/gtfs_static/parser.py
# -*- coding: utf-8 -*-
"""
Delimited table parser shared by every ingestion path.

The grammar is deliberately small: comma separated fields, double quotes
toggle a quoted section, ``""`` inside a quoted section is a literal quote,
fields are whitespace-trimmed and quoted fields never span lines.
"""

import logging
from pathlib import Path
from typing import Dict, List, Union

from pydantic import BaseModel, Field

from .categories import LOAD_ORDER, FeedTable
from .errors import FeedParseError

module_logger = logging.getLogger(__name__)


class ParsedTable(BaseModel):
    """Headers plus rows keyed by header, all values as raw strings."""

    headers: List[str] = Field(default_factory=list)
    rows: List[Dict[str, str]] = Field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def is_empty(self) -> bool:
        return not self.rows


def split_delimited_line(line: str) -> List[str]:
    """
    Split one line into trimmed fields.

    >>> split_delimited_line('a,"b,c",d')
    ['a', 'b,c', 'd']
    >>> split_delimited_line('x,"say ""hi"" now"')
    ['x', 'say "hi" now']
    """
    fields: List[str] = []
    current: List[str] = []
    in_quotes = False
    i = 0
    length = len(line)

    while i < length:
        char = line[i]
        if char == '"':
            if in_quotes and i + 1 < length and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif char == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(char)
        i += 1

    fields.append("".join(current).strip())
    return fields


def parse_delimited_table(content: str) -> ParsedTable:
    """
    Parse a whole table: the first non-blank line is the header, every other
    non-blank line a row. Rows shorter than the header are padded with empty
    strings; extra fields are dropped.
    """
    lines = [line for line in content.split("\n") if line.strip()]
    if not lines:
        return ParsedTable()

    headers = split_delimited_line(lines[0])
    rows: List[Dict[str, str]] = []
    for line in lines[1:]:
        values = split_delimited_line(line)
        rows.append(
            {
                header: values[index] if index < len(values) else ""
                for index, header in enumerate(headers)
            }
        )
    return ParsedTable(headers=headers, rows=rows)


def parse_table_file(file_path: Union[str, Path]) -> ParsedTable:
    """
    Parse a table file from disk.

    A missing file is not an error and yields an empty table. A file that
    exists but cannot be read or decoded raises :class:`FeedParseError`.
    """
    path = Path(file_path)
    if not path.exists():
        module_logger.warning(f"Table file not found, treating as empty: {path}")
        return ParsedTable()

    try:
        # utf-8-sig drops the byte-order mark some publishers prepend.
        content = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise FeedParseError(
            f"Could not read table file {path}: {e}", original_error=e
        ) from e

    # Windows line endings leave a trailing \r that trimming removes.
    parsed = parse_delimited_table(content)
    module_logger.info(f"Parsed {path.name}: {parsed.total_rows} rows")
    return parsed


def parse_feed_directory(
    directory: Union[str, Path],
) -> Dict[FeedTable, ParsedTable]:
    """Parse all eight feed tables found in ``directory``."""
    base = Path(directory)
    return {table: parse_table_file(base / table.file_name) for table in LOAD_ORDER}
