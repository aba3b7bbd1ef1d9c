"""
Expiry date capture: validate the text an OCR pass read off a package.

OCR output is noisy ("VENC 1O/2O26", "exp: 15-03-27", "0326"). This module
normalizes the usual letter/digit confusions and extracts one calendar date.
Month-only dates resolve to the first day of the month.
"""
import logging
import re
from datetime import date
from typing import Optional

logger = logging.getLogger(__name__)

MIN_YEAR = 2020
MAX_YEAR = 2040
TWO_DIGIT_YEAR_PIVOT = 50

PREFIX_PATTERN = re.compile(r"(?:venc|exp|vto|cad)[a-z]*\.?[:\s]*(.+)", re.IGNORECASE)

# Checked in order; the first match that yields a valid date wins
DATE_PATTERNS = [
    (re.compile(r"(\d{4})[/\-.](\d{1,2})[/\-.](\d{1,2})"), "YMD"),
    (re.compile(r"(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})"), "DMY"),
    (re.compile(r"(\d{1,2})[/\-.](\d{4}|\d{2})"), "MY"),
    (re.compile(r"(?<!\d)(\d{2})(\d{4}|\d{2})(?!\d)"), "MY_NO_SEP"),
]

OCR_ZERO = re.compile(r"(?<=\d)[oO]|[oO](?=\d)")
OCR_ONE = re.compile(r"(?<=\d)[lI]|[lI](?=\d)")


def normalize_ocr_text(text: str) -> str:
    """Replace O with 0 and l/I with 1 where they touch a digit."""
    # run twice so runs like "1OO" are fully converted
    for _ in range(2):
        text = OCR_ZERO.sub("0", text)
        text = OCR_ONE.sub("1", text)
    return text


def expand_year(year: int) -> int:
    if year < 100:
        return 1900 + year if year > TWO_DIGIT_YEAR_PIVOT else 2000 + year
    return year


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    year = expand_year(year)
    if not (1 <= month <= 12 and MIN_YEAR <= year <= MAX_YEAR):
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _match_patterns(text: str) -> Optional[date]:
    for pattern, fmt in DATE_PATTERNS:
        match = pattern.search(text)
        if not match:
            continue

        a, b = int(match.group(1)), int(match.group(2))
        if fmt == "YMD":
            parsed = _build_date(a, b, int(match.group(3)))
        elif fmt == "DMY":
            parsed = _build_date(int(match.group(3)), b, a)
        else:
            parsed = _build_date(b, a, 1)

        if parsed is not None:
            return parsed
    return None


def parse_expiry_text(text: Optional[str]) -> Optional[date]:
    """
    Extract an expiration date from OCR text.

    Accepts YYYY-MM-DD, DD/MM/YYYY (or DD-MM-YY), MM/YYYY, MMYYYY and any of
    those after a VENC / EXP / VTO / CAD label. Two-digit years above 50 are
    read as 19xx and therefore rejected, as is any year outside 2020-2040,
    a month outside 1-12 or a day the month does not have.

    Args:
        text: Raw string from the capture step

    Returns:
        The date, or None if nothing valid was found

    Examples:
        >>> parse_expiry_text("VENC 15/03/2026")
        datetime.date(2026, 3, 15)
        >>> parse_expiry_text("03/27")
        datetime.date(2027, 3, 1)
    """
    if not text or not text.strip():
        return None

    labelled = PREFIX_PATTERN.search(text)
    if labelled:
        parsed = _match_patterns(normalize_ocr_text(labelled.group(1)))
        if parsed is not None:
            return parsed

    parsed = _match_patterns(normalize_ocr_text(text))
    if parsed is None:
        logger.debug(f"No expiry date found in OCR text {text!r}")
    return parsed
