# logwarden/services/normalizer.py
"""
CSV Normalizer
Turns an uploaded proxy-log export into a list of LogRecord dicts

Two shapes are accepted:
1. Well-formed CSV -> parsed with the csv module (header row = keys)
2. "Malformed" exports where every line, header included, is wrapped
   in one extra pair of double quotes, e.g.
       "timestamp,srcip,url,action"
       "2025-03-01 10:00:00,10.0.0.5,""http://a.tk/x"",Blocked"
   These are unwrapped and split by a quote-aware comma scanner.

Values are never type-coerced. Parsing is pure: the same text always
gives the same records.
"""

import csv
import io
import logging
from pathlib import Path
from typing import List, Union

from ..core.errors import EmptyInputError, UnreadableFileError
from ..core.models import LogRecord

logger = logging.getLogger(__name__)

QUOTE = '"'
BOM = "\ufeff"


class CSVNormalizer:
    """
    Parse raw CSV text into LogRecord dicts

    Usage:
        >>> records = CSVNormalizer().parse(text)
        >>> records[0]["srcip"]
        '10.0.0.5'
    """

    def parse(self, text: str) -> List[LogRecord]:
        """
        Parse CSV text into records

        Args:
            text: Full file content

        Returns:
            One dict per data row, in file order

        Raises:
            EmptyInputError: If the text has no non-blank lines
        """
        if text.startswith(BOM):
            text = text[1:]

        lines = [line for line in text.split("\n") if line.strip()]
        if not lines:
            raise EmptyInputError()

        if self.is_malformed_export(lines[0]):
            logger.debug("Quote-wrapped export detected, using line scanner")
            records = self._parse_malformed(lines)
        else:
            records = self._parse_standard(text)

        logger.debug(f"Parsed {len(records)} log records")
        return records

    @staticmethod
    def is_malformed_export(first_line: str) -> bool:
        """Whole header wrapped in quotes and containing at least one comma"""
        first_line = first_line.strip()
        return (
            len(first_line) >= 2
            and first_line.startswith(QUOTE)
            and first_line.endswith(QUOTE)
            and "," in first_line
        )

    # ========================================
    # QUOTE-WRAPPED EXPORTS
    # ========================================

    def _parse_malformed(self, lines: List[str]) -> List[LogRecord]:
        header_line = lines[0].strip()[1:-1]
        headers = [h.strip() for h in header_line.split(",")]

        records = []
        for line in lines[1:]:
            values = self._split_quoted_line(self._strip_enclosing_quotes(line.strip()))

            record: LogRecord = {}
            # zip() drops extra values and leaves missing trailing keys unset
            for header, value in zip(headers, values):
                record[header] = self._strip_enclosing_quotes(value)
            records.append(record)

        return records

    @staticmethod
    def _strip_enclosing_quotes(value: str) -> str:
        if len(value) >= 2 and value.startswith(QUOTE) and value.endswith(QUOTE):
            return value[1:-1]
        return value

    @staticmethod
    def _split_quoted_line(line: str) -> List[str]:
        """
        Split on commas outside quoted spans

        Inside a quoted span "" is a literal quote; any other quote
        toggles the span. Every token is trimmed.
        """
        values = []
        current = []
        in_quotes = False
        i = 0

        while i < len(line):
            char = line[i]

            if char == QUOTE:
                if in_quotes and i + 1 < len(line) and line[i + 1] == QUOTE:
                    current.append(QUOTE)
                    i += 1
                else:
                    in_quotes = not in_quotes
            elif char == "," and not in_quotes:
                values.append("".join(current).strip())
                current = []
            else:
                current.append(char)

            i += 1

        values.append("".join(current).strip())
        return values

    # ========================================
    # WELL-FORMED CSV
    # ========================================

    def _parse_standard(self, text: str) -> List[LogRecord]:
        """
        Header row gives the keys; blank rows are skipped

        The csv module is non-strict by default, so a stray quote inside
        an unquoted field is kept as a literal character.
        """
        reader = csv.reader(io.StringIO(text, newline=""), strict=False)

        headers = None
        records = []
        for row in reader:
            if not row or (len(row) == 1 and not row[0].strip()):
                continue

            if headers is None:
                headers = row
                continue

            records.append({header: value for header, value in zip(headers, row)})

        return records


# ===== CONVENIENCE FUNCTIONS =====

_normalizer = CSVNormalizer()


def normalize_csv(text: str) -> List[LogRecord]:
    """Parse CSV text with the shared normalizer"""
    return _normalizer.parse(text)


def read_log_file(file_path: Union[str, Path]) -> str:
    """
    Read a stored upload as text

    Raises:
        UnreadableFileError: If the file is missing or cannot be read
    """
    path = Path(file_path)
    if not path.is_file():
        raise UnreadableFileError(str(path), "file not found")

    try:
        with open(path, "r", encoding="utf-8", errors="replace", newline="") as f:
            return f.read()
    except OSError as e:
        raise UnreadableFileError(str(path), str(e)) from e
