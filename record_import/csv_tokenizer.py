from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field

from record_import.errors import FatalInputError

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


@dataclass
class ParsedCsv:
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.headers


def split_csv_row(line: str) -> list[str]:
    # A record never spans lines, so each line is read on its own.
    cells = next(csv.reader([line], skipinitialspace=True), [])
    return [cell.strip() for cell in cells] or [""]


def parse_csv(text: str) -> ParsedCsv:
    lines = [line for line in _LINE_BREAK.split(text) if line.strip()]
    if not lines:
        return ParsedCsv()
    try:
        return ParsedCsv(
            headers=split_csv_row(lines[0]),
            rows=[split_csv_row(line) for line in lines[1:]],
        )
    except csv.Error as exc:
        raise FatalInputError(f"CSV file is empty or invalid: {exc}") from exc
