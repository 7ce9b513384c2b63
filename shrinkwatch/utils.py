import io
import logging
import math
import numbers
import re
from pathlib import Path
from typing import Any, Union

import pandas as pd

from . import settings

logger = logging.getLogger(__name__)

_CURRENCY_NOISE = re.compile(r"[$€£¥,()\s]")

_MARKET_PREFIX = re.compile(
    r"^(Market|Location|Name|Site|Loc|Mkt|Point of Sale|POS|Site Name):\s*",
    re.IGNORECASE,
)
_MARKET_SEPARATOR = re.compile(r"\s*[-|:/]\s+")
_NUMERIC_SEGMENT = re.compile(r"^\d+$")
_SITE_CODE_SEGMENT = re.compile(r"^[A-Z0-9]{2,4}$")


def coerce_number(value: Any) -> float:
    """
    Converts a raw cell value into a finite float. Never raises.
    - Native numbers pass through (NaN/inf become 0).
    - Strings lose currency symbols, commas and parentheses; parentheses or a
      a minus sign before the digits make the result negative.
    - Anything unparseable is 0.
    """
    if isinstance(value, numbers.Real):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    if not isinstance(value, str):
        return 0.0

    text = value.strip()
    cleaned = _CURRENCY_NOISE.sub("", text)
    negative = cleaned.startswith("-") or ("(" in text and ")" in text)
    cleaned = cleaned.lstrip("-")
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return -abs(number) if negative else number


def humanize_market_name(name: str) -> str:
    """Strips POS boilerplate and site codes from a raw market label."""
    if not name:
        return ""

    cleaned = _MARKET_PREFIX.sub("", name)
    segments = _MARKET_SEPARATOR.split(cleaned)

    meaningful = []
    for segment in segments:
        s = segment.strip()
        if not s:
            continue
        # A lone segment is the name, even when it looks like a code.
        if len(segments) > 1 and (
            _NUMERIC_SEGMENT.match(s) or _SITE_CODE_SEGMENT.match(s)
        ):
            continue
        meaningful.append(s)

    if meaningful:
        return " - ".join(meaningful).strip()
    return cleaned.strip() or name


def normalize_period(label: Any) -> str:
    """
    Maps a free-text period to a canonical month name when the label contains
    one ("March 2024 Report" -> "March"); otherwise returns the trimmed label.
    Abbreviations such as "Jan" are left as they are.
    """
    if label is None:
        return "Unknown"
    text = str(label).strip()
    if not text:
        return "Unknown"

    lowered = text.lower()
    for month in settings.MONTHS:
        if month.lower() in lowered:
            return month
    return text


def cell_text(value: Any) -> str:
    """Renders a sheet cell as text; integral floats drop their '.0'."""
    if value is None:
        return ""
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def load_workbook(
    source: Union[Path, str, bytes],
) -> dict[str, pd.DataFrame] | None:
    """
    Reads every sheet of a workbook as a raw grid (no header row, values only).
    The source is read once; failures are logged and reported as None.
    """
    name = source.name if isinstance(source, Path) else "<upload>"
    handle = io.BytesIO(source) if isinstance(source, bytes) else source

    try:
        return pd.read_excel(
            handle, sheet_name=None, header=None, dtype=object, engine="openpyxl"
        )

    except FileNotFoundError:
        logger.warning(f"⚠️ Workbook not found at {source}, skipping.")
        return None

    except Exception as e_general:
        # openpyxl raises a mix of zipfile, KeyError and ValueError subclasses
        # for corrupt or non-xlsx input.
        logger.error(f"❌ Could not read workbook {name}. Reason: {e_general}")
        return None
