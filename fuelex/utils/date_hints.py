"""
Filename Date Hints

Derives an anchor date from file naming conventions such as
``fuel-invoice-2025-01-15.pdf`` or ``UKF_15.01.2025.png``. Failing to find a
hint is not an error; callers simply get None.
"""

import logging
import re
from datetime import date
from pathlib import PurePath
from typing import Optional

logger = logging.getLogger(__name__)

# Ordered: year-first forms are tried before day-first forms
_PATTERNS = [
    ('ymd', re.compile(r'(?<!\d)(\d{4})[-_.](\d{1,2})[-_.](\d{1,2})(?!\d)')),
    ('dmy', re.compile(r'(?<!\d)(\d{1,2})[-_.](\d{1,2})[-_.](\d{4})(?!\d)')),
    ('ymd', re.compile(r'(?<!\d)(\d{4})(\d{2})(\d{2})(?!\d)')),
]


def _build(order: str, groups) -> Optional[date]:
    if order == 'ymd':
        year, month, day = (int(g) for g in groups)
    else:
        day, month, year = (int(g) for g in groups)
    try:
        return date(year, month, day)
    except ValueError:
        return None


def date_hint_from_filename(name: str) -> Optional[date]:
    """
    Parse a date out of a file name.

    Args:
        name: File name or path; only the stem is inspected

    Returns:
        The first valid date found, or None
    """
    if not name:
        return None

    stem = PurePath(name).stem
    for order, pattern in _PATTERNS:
        for match in pattern.finditer(stem):
            parsed = _build(order, match.groups())
            if parsed is not None:
                logger.debug(f"Date hint {parsed.isoformat()} derived from {name!r}")
                return parsed
    return None


def document_date_hint(document) -> Optional[date]:
    """Default date-hint function for RawDocument inputs"""
    return date_hint_from_filename(getattr(document, 'name', '') or '')
