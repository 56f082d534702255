"""TUID extraction from raw OCR text.

A TUID is a leading 'A' or 'B' followed by 15-30 digits. Engines commonly
misread the leading letter as a digit ('A' as 4, 'B' as 8, 5 or 6), so those
digits are accepted in first position and corrected back to letters.
"""

import re
from typing import List, Optional

NON_ALNUM_PATTERN = re.compile(r"[^A-Za-z0-9\n]")
TUID_PATTERN = re.compile(r"[AB4856][0-9]{15,30}")

MIN_LINE_LENGTH = 18
MAX_LINE_LENGTH = 31

LEADING_CORRECTIONS = {
    "4": "A",
    "8": "B",
    "5": "B",
    "6": "B",
}


def candidate_lines(text: str) -> List[str]:
    """Strip everything but letters, digits and newlines; keep lines of TUID length."""
    cleaned = NON_ALNUM_PATTERN.sub("", text)
    return [line for line in cleaned.split("\n") if MIN_LINE_LENGTH <= len(line) <= MAX_LINE_LENGTH]


def correct_leading(match: str) -> str:
    """Map a misread leading digit back to its letter."""
    replacement = LEADING_CORRECTIONS.get(match[0])
    if replacement is None:
        return match
    return replacement + match[1:]


def extract_tuid(text: Optional[str]) -> Optional[str]:
    """Extract the first TUID-shaped identifier from OCR text.

    Pure and deterministic: the same text always yields the same result.

    Args:
        text: Raw engine output (may be None or empty)

    Returns:
        Optional[str]: Corrected identifier, or None if no line matches
    """
    if not text:
        return None

    for line in candidate_lines(text):
        match = TUID_PATTERN.search(line)
        if match:
            return correct_leading(match.group(0))
    return None
