"""Candidate unit-code discovery from spreadsheet cells.

Spreadsheets that list units of competency are messy: codes appear inside
sentences, next to qualification names and alongside acronyms that merely look
like codes. Discovery therefore scans every string cell for code-shaped tokens
and keeps only those that pass the identifier grammar.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

from unitsync.core.constants import (
    IDENTIFIER_DENYLIST,
    IDENTIFIER_MAX_LENGTH,
    IDENTIFIER_MIN_DIGITS,
    IDENTIFIER_MIN_LENGTH,
)
from unitsync.core.errors import InputUnavailableError

logger = logging.getLogger(__name__)

Row = Sequence[object]
Sheets = Mapping[str, Iterable[Row]]

_SCAN_PATTERN = re.compile(r"\b([A-Z]{2,4}[A-Z0-9]{3,10})\b", re.IGNORECASE)
_LEADING_LETTERS = re.compile(r"^[A-Z]{2,4}")
_FULL_GRAMMAR = re.compile(r"^[A-Z]{2,4}[A-Z0-9]*\d+[A-Z]?$")


def is_valid_identifier(token: str) -> bool:
    """Return True if token is a plausible unit-of-competency code.

    Rules: 6-12 characters, 2-4 leading uppercase letters, at least three
    digits, not a denylisted word, and matches the full code grammar.
    """
    if not token or len(token) < IDENTIFIER_MIN_LENGTH or len(token) > IDENTIFIER_MAX_LENGTH:
        return False
    if not _LEADING_LETTERS.match(token):
        return False
    if sum(ch.isdigit() for ch in token) < IDENTIFIER_MIN_DIGITS:
        return False
    if token in IDENTIFIER_DENYLIST:
        return False
    return bool(_FULL_GRAMMAR.match(token))


def find_identifiers(text: str) -> List[str]:
    """Return valid identifiers found in text, in order of appearance (duplicates removed)."""
    found: List[str] = []
    for match in _SCAN_PATTERN.finditer(text):
        token = match.group(1).upper()
        if is_valid_identifier(token) and token not in found:
            found.append(token)
    return found


def _column_index(header: Row, column: str) -> Optional[int]:
    wanted = column.strip().lower()
    for idx, cell in enumerate(header):
        if isinstance(cell, str) and cell.strip().lower() == wanted:
            return idx
    return None


def extract_identifiers(sheets: Sheets, column: Optional[str] = None) -> Set[str]:
    """Collect every valid identifier from the string cells of all sheets.

    Args:
        sheets: Mapping of sheet name to rows (each row a sequence of cell values)
        column: Optional header name; when given only that column is scanned and
            the first row of each sheet is treated as its header. Sheets without
            the column contribute nothing.

    Returns:
        Set of upper-case identifiers
    """
    identifiers: Set[str] = set()

    for sheet_name, rows in sheets.items():
        row_iter = iter(rows)
        target: Optional[int] = None

        if column is not None:
            header = next(row_iter, None)
            if header is None:
                continue
            target = _column_index(header, column)
            if target is None:
                logger.debug(f"Sheet {sheet_name!r} has no column {column!r}")
                continue

        for row in row_iter:
            cells = row if target is None else (row[target:target + 1] if target < len(row) else ())
            for cell in cells:
                if isinstance(cell, str):
                    identifiers.update(find_identifiers(cell))

    return identifiers


def read_workbook(path: Union[str, Path]) -> Dict[str, List[Row]]:
    """Load an .xlsx workbook as {sheet name: rows of cell values}.

    Raises:
        InputUnavailableError: If the file is missing or cannot be parsed
    """
    from openpyxl import load_workbook

    path = Path(path)
    if not path.is_file():
        raise InputUnavailableError(str(path), "not found")

    try:
        workbook = load_workbook(filename=str(path), read_only=True, data_only=True)
    except Exception as e:
        raise InputUnavailableError(str(path), f"unreadable: {e}")

    try:
        return {
            sheet.title: [tuple(row) for row in sheet.iter_rows(values_only=True)]
            for sheet in workbook.worksheets
        }
    finally:
        workbook.close()


def extract_identifiers_from_workbook(path: Union[str, Path], column: Optional[str] = None) -> List[str]:
    """Read a workbook and return its identifiers in sorted order."""
    sheets = read_workbook(path)
    identifiers = sorted(extract_identifiers(sheets, column=column))
    logger.info(f"Found {len(identifiers)} candidate unit codes in {Path(path).name}")
    return identifiers
