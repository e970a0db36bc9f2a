"""Shared utilities for cleaning raw payloads and reference extracts.

Reference spreadsheets are typed by hand and exported from several tools,
so the same value shows up in many shapes. This module normalizes them:

- Text normalization: strip invisible characters, remove accents
- Number parsing: EU ("1.234,56") and US ("1,234.56") formats
- Date parsing: ISO and day-first formats used by the reference exports
- Name keys: case/whitespace/accent-insensitive lookup keys

Examples:
    >>> from ops_metrics.cleaning import to_float, to_date, name_key
    >>> to_float("1.234,56")
    1234.56
    >>> to_date("15/01/2024")
    Timestamp('2024-01-15 00:00:00')
    >>> name_key("  Bar  BÉA ")
    'bar bea'
"""

from __future__ import annotations

import math
import re
import unicodedata
from typing import Any, Optional

import numpy as np
import pandas as pd

NBSP = "\u00a0"
NNBSP = "\u202f"
ZW = "".join(chr(c) for c in (0x200B, 0x200C, 0x200D, 0xFEFF))

# Currency symbols and letters go, separators and sign stay
_CURRENCY_RE = re.compile(r"[^\d,.\-\(\)\s]")

# Reference exports are day-first; ISO first because it is unambiguous
DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%Y/%m/%d")


def is_missing(x: Any) -> bool:
    """True for None, NaN and NaT."""
    if x is None:
        return True
    try:
        return bool(pd.isna(x))
    except (TypeError, ValueError):
        return False


def strip_invisibles(x: Any) -> Optional[str]:
    """Remove invisible characters and collapse whitespace.

    Examples:
        >>> strip_invisibles("  Bar Bea  ")
        'Bar Bea'
        >>> strip_invisibles(None) is None
        True
    """
    if is_missing(x):
        return None
    s = str(x)
    s = s.replace("\r", "").replace("\t", " ").replace(NBSP, " ").replace(NNBSP, " ")
    s = re.sub(r"[%s]" % re.escape(ZW), "", s)
    s = re.sub(r"\s+", " ", s).strip()
    return s


def remove_accents(s: str) -> str:
    """Remove accents and diacritics ("Café" -> "Cafe")."""
    return "".join(c for c in unicodedata.normalize("NFKD", s) if not unicodedata.combining(c))


def name_key(s: Any) -> str:
    """Build a case, whitespace and accent insensitive lookup key.

    Used wherever two sources spell the same location, worker or team
    differently.

    Examples:
        >>> name_key("Keuken ")
        'keuken'
        >>> name_key("JANE   doe")
        'jane doe'
        >>> name_key(None)
        ''
    """
    base = strip_invisibles(s)
    if not base:
        return ""
    return remove_accents(base).lower()


def to_snake(s: Any) -> str:
    """Convert a spreadsheet header to snake_case ("Totaal Omzet" -> "totaal_omzet")."""
    s1 = name_key(s)
    s1 = re.sub(r"[^\w\s]", " ", s1)
    return re.sub(r"\s+", "_", s1).strip("_")


def to_float(x: Any) -> Optional[float]:
    """Robustly parse numbers in various formats.

    Handles:
    - US format: '1,234.56'
    - EU format: '1.234,56'
    - Negative in parentheses: '(1,234.56)'
    - Currency symbols: '€ 1 234,56'

    Returns:
        Parsed float value or None if parsing fails.

    Examples:
        >>> to_float("€ 1.234,56")
        1234.56
        >>> to_float("(12,5)")
        -12.5
        >>> to_float("abc") is None
        True
    """
    if x is None or isinstance(x, bool):
        return None
    if isinstance(x, (int, float, np.integer, np.floating)):
        v = float(x)
        return None if math.isnan(v) or math.isinf(v) else v
    s = str(x).strip()
    if not s:
        return None

    neg = False
    if s.startswith("(") and s.endswith(")"):
        neg, s = True, s[1:-1].strip()

    s = _CURRENCY_RE.sub("", s)
    s = re.sub(r"\s+", "", s)
    if s.startswith("-"):
        neg, s = not neg, s[1:]
    if not s:
        return None

    def _finalize(num_str: str) -> Optional[float]:
        try:
            v = float(num_str)
        except ValueError:
            return None
        return -v if neg else v

    has_dot = "." in s
    has_com = "," in s

    # 1.234,56
    if re.fullmatch(r"\d{1,3}(?:\.\d{3})+,\d+", s):
        return _finalize(s.replace(".", "").replace(",", "."))

    # 1,234.56
    if re.fullmatch(r"\d{1,3}(?:,\d{3})+\.\d+", s):
        return _finalize(s.replace(",", ""))

    if has_com and not has_dot:
        # 1,234,567 without decimals
        if re.fullmatch(r"\d{1,3}(?:,\d{3}){2,}", s):
            return _finalize(s.replace(",", ""))
        return _finalize(s.replace(",", "."))

    if has_dot and not has_com:
        if s.count(".") == 1:
            return _finalize(s)
        if re.fullmatch(r"\d{1,3}(?:\.\d{3})+", s):
            return _finalize(s.replace(".", ""))
        return None

    return _finalize(s.replace(",", "."))


def to_date(val: Any) -> pd.Timestamp:
    """Parse a calendar date from the formats used by reference exports.

    Tries ISO (YYYY-MM-DD) first, then the day-first formats
    (DD/MM/YYYY, DD-MM-YYYY, DD.MM.YYYY), then pandas with dayfirst=True.
    Time-of-day is dropped.

    Returns:
        Normalized Timestamp or pd.NaT if parsing fails.

    Examples:
        >>> to_date("2024-06-01")
        Timestamp('2024-06-01 00:00:00')
        >>> to_date("01/06/2024")
        Timestamp('2024-06-01 00:00:00')
    """
    if is_missing(val):
        return pd.NaT
    if isinstance(val, (pd.Timestamp, np.datetime64)) or hasattr(val, "year"):
        ts = pd.to_datetime(val, errors="coerce")
        return ts.normalize() if not pd.isna(ts) else pd.NaT
    s = strip_invisibles(val) or ""
    # Excel exports sometimes append a midnight time
    s = re.sub(r"[ T]00:00(:00)?$", "", s)
    for fmt in DATE_FORMATS:
        try:
            return pd.to_datetime(s, format=fmt)
        except (ValueError, TypeError):
            continue
    ts = pd.to_datetime(s, errors="coerce", dayfirst=True)
    return ts.normalize() if not pd.isna(ts) else pd.NaT
