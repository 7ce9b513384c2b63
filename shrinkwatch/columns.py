import logging
from typing import Any, Callable, NamedTuple, Optional, Sequence

from . import settings
from .schemas import ColumnMap

logger = logging.getLogger(__name__)

# A header row needs one keyword from each group.
ITEM_KEYWORDS = ("item", "description", "number", "code")
VALUE_KEYWORDS = ("variance", "revenue", "qty", "diff")


def _contains_any(*needles: str) -> Callable[[str], bool]:
    return lambda label: any(n in label for n in needles)


def _equals_any(*names: str) -> Callable[[str], bool]:
    return lambda label: label in names


def _is_variance_label(label: str) -> bool:
    if "variance" not in label and "diff" not in label:
        return False
    # "Variance Cost" / "Variance $" are money columns, unless they are
    # explicitly unit counts ("Variance Qty $").
    if "cost" in label or "$" in label:
        return "qty" in label or "count" in label
    return True


def _is_unit_cost_label(label: str) -> bool:
    return "cost" in label and not any(
        word in label for word in ("variance", "diff", "total")
    )


# --- Column Rule Table ---
# Ordered (field, predicate) pairs. The first rule accepting a cell claims it;
# when several cells claim the same field, the right-most one is kept.
COLUMN_RULES: tuple[tuple[str, Callable[[str], bool]], ...] = (
    ("item_number", _contains_any("number", "code", "#", "sku")),
    (
        "item_name",
        _equals_any("item", "description", "item name", "item description", "product"),
    ),
    ("variance", _is_variance_label),
    ("revenue", _contains_any("revenue")),
    ("sold_qty", _contains_any("sold", "qty", "quantity")),
    ("sale_price", _contains_any("price")),
    ("item_cost", _is_unit_cost_label),
)


class HeaderMatch(NamedTuple):
    row_index: int
    columns: ColumnMap


def normalize_label(cell: Any) -> str:
    if cell is None:
        return ""
    return str(cell).strip().lower()


def classify_label(label: str) -> Optional[str]:
    """Returns the canonical field a header label maps to, if any."""
    for field, predicate in COLUMN_RULES:
        if predicate(label):
            return field
    return None


def is_header_row(row: Sequence[Any]) -> bool:
    joined = "|".join(normalize_label(cell) for cell in row)
    return any(k in joined for k in ITEM_KEYWORDS) and any(
        k in joined for k in VALUE_KEYWORDS
    )


def map_columns(row: Sequence[Any]) -> ColumnMap:
    """Builds a column map from a header row, seeded with the default positions."""
    claimed: dict[str, int] = {}
    for idx, cell in enumerate(row):
        label = normalize_label(cell)
        if not label:
            continue
        field = classify_label(label)
        if field:
            claimed[field] = idx

    mapping: dict[str, Optional[int]] = {}
    for field, default_idx in settings.DEFAULT_COLUMN_MAP.items():
        if field in claimed:
            mapping[field] = claimed[field]
        elif default_idx in claimed.values():
            # The default position belongs to another labelled column.
            mapping[field] = None
        else:
            mapping[field] = default_idx
    return ColumnMap(**mapping)


def detect_header(
    rows: Sequence[Sequence[Any]], scan_limit: int = settings.HEADER_SCAN_LIMIT
) -> HeaderMatch | None:
    """
    Scans the first `scan_limit` rows for the first plausible header row.
    Returns None when the window holds no header; the sheet then yields nothing.
    """
    for i, row in enumerate(rows[:scan_limit]):
        if not row or not is_header_row(row):
            continue
        columns = map_columns(row)
        logger.debug(f"Header found at row {i}: {columns.model_dump()}")
        return HeaderMatch(row_index=i, columns=columns)
    return None
