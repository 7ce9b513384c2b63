import logging
from typing import Any, NamedTuple, Optional, Sequence

import pandas as pd
from pydantic import ValidationError

from . import settings
from .columns import HeaderMatch, detect_header
from .schemas import StagedRecord
from .utils import cell_text, coerce_number, humanize_market_name, normalize_period

logger = logging.getLogger(__name__)

# Footer rows repeat the item columns but carry sheet totals.
SUMMARY_MARKERS = ("total", "summary")


class SheetResult(NamedTuple):
    market_name: str
    records: list[StagedRecord]


class ExtractionResult(NamedTuple):
    records: list[StagedRecord]
    market_names: list[str]


def sheet_rows(df: pd.DataFrame) -> list[list[Any]]:
    """Turns a header-less sheet DataFrame into plain rows with blanks as ''."""
    grid = df.astype(object).where(pd.notna(df), "")
    return grid.values.tolist()


def _cell(row: Sequence[Any], idx: Optional[int]) -> Any:
    if idx is None or not 0 <= idx < len(row):
        return ""
    return row[idx]


def _optional_number(row: Sequence[Any], idx: Optional[int]) -> Optional[float]:
    raw = _cell(row, idx)
    if cell_text(raw) == "":
        return None
    return coerce_number(raw)


def sheet_market_name(rows: Sequence[Sequence[Any]], sheet_name: str) -> str:
    """Reads the market label from the sheet's metadata rows, falling back to the sheet name."""
    for row_idx in settings.MARKET_HINT_ROWS:
        if row_idx < len(rows):
            label = cell_text(_cell(rows[row_idx], 0))
            if label:
                return humanize_market_name(label)
    return humanize_market_name(str(sheet_name))


def compute_variance_impact(variance: float, unit_cost: float) -> tuple[float, float]:
    """Returns (shrink_loss, overage_gain); at most one of them is non-zero."""
    if variance < 0:
        return abs(variance * unit_cost), 0.0
    if variance > 0:
        return 0.0, abs(variance * unit_cost)
    return 0.0, 0.0


def build_record(
    row: Sequence[Any], header: HeaderMatch, market_name: str, period: str
) -> StagedRecord | None:
    """
    Converts one data row into a staged record, or None when the row is noise:
    no identifying cells, a total/summary footer, or a zero variance.
    """
    cols = header.columns
    item_number = cell_text(_cell(row, cols.item_number))
    item_name = cell_text(_cell(row, cols.item_name))

    if not item_number and not item_name:
        return None
    if any(marker in item_name.lower() for marker in SUMMARY_MARKERS):
        return None

    variance = coerce_number(_cell(row, cols.variance))
    if abs(variance) < settings.ZERO_VARIANCE_TOLERANCE:
        return None

    unit_cost = coerce_number(_cell(row, cols.item_cost))
    sold_qty = _optional_number(row, cols.sold_qty)
    sale_price = _optional_number(row, cols.sale_price)
    revenue = coerce_number(_cell(row, cols.revenue))

    if revenue == 0 and (sale_price or 0) > 0 and (sold_qty or 0) > 0:
        revenue = sale_price * sold_qty

    item_profit = None
    if sold_qty is not None and sale_price is not None:
        item_profit = (sale_price - unit_cost) * sold_qty

    shrink_loss, overage_gain = compute_variance_impact(variance, unit_cost)

    return StagedRecord(
        item_number=item_number,
        item_name=item_name,
        inv_variance=variance,
        total_revenue=revenue,
        sold_qty=sold_qty,
        sale_price=sale_price,
        unit_cost=unit_cost,
        shrink_loss=shrink_loss,
        overage_gain=overage_gain,
        item_profit=item_profit,
        market_name=market_name,
        period=period,
    )


def extract_records(
    rows: Sequence[Sequence[Any]],
    header: HeaderMatch,
    market_name: str,
    period: str,
) -> list[StagedRecord]:
    """Walks every row below the header and keeps the ones describing a real variance."""
    canonical_period = normalize_period(period)
    records = []
    for row_number, row in enumerate(rows[header.row_index + 1 :], start=header.row_index + 1):
        try:
            record = build_record(row, header, market_name, canonical_period)
        except ValidationError as e:
            logger.warning(f"  > ⚠️ Row {row_number} rejected: {e}")
            continue
        if record is not None:
            records.append(record)
    return records


def parse_sheet(df: pd.DataFrame, sheet_name: str, period: str) -> SheetResult | None:
    """Parses one sheet. Returns None when no header row can be found."""
    rows = sheet_rows(df)
    header = detect_header(rows)
    if header is None:
        logger.info(f"  > No header row in sheet '{sheet_name}', skipping.")
        return None

    market_name = sheet_market_name(rows, sheet_name)
    records = extract_records(rows, header, market_name, period)
    logger.info(
        f"  > Sheet '{sheet_name}' ({market_name}): header at row {header.row_index}, "
        f"{len(records)} variance rows."
    )
    return SheetResult(market_name=market_name, records=records)


def parse_workbook(sheets: dict[str, pd.DataFrame], period: str) -> ExtractionResult:
    """Parses every sheet independently and concatenates their records."""
    records: list[StagedRecord] = []
    market_names: list[str] = []

    for sheet_name, df in sheets.items():
        result = parse_sheet(df, sheet_name, period)
        if result is None:
            continue
        if result.market_name not in market_names:
            market_names.append(result.market_name)
        records.extend(result.records)

    return ExtractionResult(records=records, market_names=market_names)
