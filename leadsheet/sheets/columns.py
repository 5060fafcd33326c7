# leadsheet/sheets/columns.py

from __future__ import annotations

import re


_SAFE_TITLE_RE = re.compile(r"^[A-Za-z0-9_]+$")


def letter_to_index(col: str) -> int:
    """Column letters -> zero-based index ("A" -> 0, "Z" -> 25, "AA" -> 26).

    Letters are digits 1..26 of a base-26 numeral with no zero digit.
    """
    letters = (col or "").strip().upper()
    if not letters or not letters.isascii() or not letters.isalpha():
        raise ValueError(f"Invalid column letters: {col!r}")

    index = 0
    for ch in letters:
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


def index_to_letter(index: int) -> str:
    """Zero-based index -> column letters. Exact inverse of letter_to_index."""
    if index < 0:
        raise ValueError("Column index must be >= 0")

    n = index + 1
    letters: list[str] = []
    while n:
        n, r = divmod(n - 1, 26)
        letters.append(chr(65 + r))
    return "".join(reversed(letters))


def quote_worksheet(title: str) -> str:
    """Quote a worksheet title for A1 notation when it needs it."""
    title = (title or "").strip()
    if not title:
        raise ValueError("Worksheet title must not be empty")
    if _SAFE_TITLE_RE.match(title):
        return title
    return "'" + title.replace("'", "''") + "'"


def a1_range(worksheet: str, cells: str) -> str:
    return f"{quote_worksheet(worksheet)}!{cells}"


def cell_range(worksheet: str, column: str, row: int) -> str:
    if row < 1:
        raise ValueError("Row number must be >= 1")
    return a1_range(worksheet, f"{column.strip().upper()}{row}")


def column_range(worksheet: str, column: str, first_row: int, last_row: int) -> str:
    col = column.strip().upper()
    return a1_range(worksheet, f"{col}{first_row}:{col}{last_row}")
