"""
Filter-then-reduce statistics over the shrink ledger.

Every function here is pure: records are never mutated and the same inputs
always give the same outputs.
"""

from typing import Iterable, NamedTuple, Optional, Sequence

import pandas as pd

from . import settings
from .schemas import (
    FilterState,
    LeaderboardEntry,
    MarketRisk,
    MarketVariance,
    PeriodTrend,
    Segment,
    ShrinkRecord,
    Stats,
)
from .segments import matches_segment, record_segment
from .utils import normalize_period

FRAME_COLUMNS = [
    "item_number",
    "item_name",
    "inv_variance",
    "total_revenue",
    "unit_cost",
    "shrink_loss",
    "overage_gain",
    "market_name",
    "period",
    "segment",
]


class Leaderboards(NamedTuple):
    top_shrink: list[LeaderboardEntry]
    top_overage: list[LeaderboardEntry]


class Dashboard(NamedTuple):
    stats: Stats
    trend: list[PeriodTrend]
    markets: list[MarketVariance]
    leaderboards: Leaderboards
    risk: list[MarketRisk]


def records_to_frame(records: Iterable[ShrinkRecord]) -> pd.DataFrame:
    """Flattens records into a DataFrame keyed by canonical period and segment."""
    rows = [
        {
            "item_number": r.item_number,
            "item_name": r.item_name,
            "inv_variance": r.inv_variance,
            "total_revenue": r.total_revenue,
            "unit_cost": r.unit_cost,
            "shrink_loss": r.shrink_loss,
            "overage_gain": r.overage_gain,
            "market_name": r.market_name,
            "period": normalize_period(r.period),
            "segment": record_segment(r).value,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=FRAME_COLUMNS)


# --- Filtering ---


def record_passes(record: ShrinkRecord, filter_state: FilterState) -> bool:
    if filter_state.months and normalize_period(record.period) not in filter_state.months:
        return False
    if filter_state.market != settings.ALL_MARKETS and record.market_name != filter_state.market:
        return False
    return matches_segment(record, filter_state.segment)


def filter_records(
    records: Iterable[ShrinkRecord], filter_state: Optional[FilterState] = None
) -> list[ShrinkRecord]:
    if filter_state is None:
        return list(records)
    return [r for r in records if record_passes(r, filter_state)]


# --- Reductions ---


def compute_accuracy(total_shrink: float, total_overage: float, total_revenue: float) -> float:
    """Both shrink and overage count as errors against revenue; 100 when there is no revenue."""
    if total_revenue <= 0:
        return 100.0
    accuracy = (1 - (total_shrink + total_overage) / total_revenue) * 100
    return round(max(0.0, accuracy), 2)


def aggregate(
    records: Iterable[ShrinkRecord], filter_state: Optional[FilterState] = None
) -> Stats:
    filtered = filter_records(records, filter_state)
    if not filtered:
        return Stats()

    df = records_to_frame(filtered)
    total_revenue = float(df["total_revenue"].sum())
    total_shrink = float(df["shrink_loss"].sum())
    total_overage = float(df["overage_gain"].sum())

    return Stats(
        total_revenue=total_revenue,
        total_shrink=total_shrink,
        total_overage=total_overage,
        net_variance=total_overage - total_shrink,
        accuracy=compute_accuracy(total_shrink, total_overage, total_revenue),
        count=len(filtered),
    )


def _period_sort_key(period: str) -> tuple[int, str]:
    if period in settings.MONTHS:
        return settings.MONTHS.index(period), ""
    return len(settings.MONTHS), period


def monthly_trend(records: Sequence[ShrinkRecord]) -> list[PeriodTrend]:
    """Per-period shrink, overage, revenue and shrink rate, in calendar order."""
    df = records_to_frame(records)
    if df.empty:
        return []

    grouped = df.groupby("period").agg(
        shrink=("shrink_loss", "sum"),
        overage=("overage_gain", "sum"),
        revenue=("total_revenue", "sum"),
    )

    trend = []
    for period, row in grouped.iterrows():
        revenue = float(row["revenue"])
        shrink = float(row["shrink"])
        overage = float(row["overage"])
        trend.append(
            PeriodTrend(
                period=str(period),
                shrink=shrink,
                overage=overage,
                revenue=revenue,
                net=overage - shrink,
                shrink_rate=round(shrink / revenue * 100, 2) if revenue > 0 else 0.0,
            )
        )
    return sorted(trend, key=lambda t: _period_sort_key(t.period))


def timeline_stats(records: Sequence[ShrinkRecord]) -> dict[str, PeriodTrend]:
    """Unfiltered per-period totals, keyed by period, for the month timeline."""
    return {t.period: t for t in monthly_trend(records)}


def populated_months(records: Iterable[ShrinkRecord]) -> list[str]:
    periods = {normalize_period(r.period) for r in records}
    return [m for m in settings.MONTHS if m in periods]


def market_variance(
    records: Sequence[ShrinkRecord], limit: int = settings.MARKET_BREAKDOWN_SIZE
) -> list[MarketVariance]:
    """Shortage vs. overage dollars per market, largest total first."""
    df = records_to_frame(records)
    if df.empty:
        return []

    grouped = df.groupby("market_name").agg(
        shortage=("shrink_loss", "sum"), overage=("overage_gain", "sum")
    )
    grouped["total"] = grouped["shortage"] + grouped["overage"]
    grouped = grouped.sort_values("total", ascending=False, kind="mergesort").head(limit)

    return [
        MarketVariance(name=str(name), shortage=float(row["shortage"]), overage=float(row["overage"]))
        for name, row in grouped.iterrows()
    ]


def _top_items(df: pd.DataFrame, column: str, limit: int) -> list[LeaderboardEntry]:
    positive = df[df[column] > 0]
    if positive.empty:
        return []
    totals = (
        positive.groupby("item_name")[column]
        .sum()
        .sort_values(ascending=False, kind="mergesort")
        .head(limit)
    )
    return [LeaderboardEntry(name=str(name), value=float(value)) for name, value in totals.items()]


def item_leaderboards(
    records: Sequence[ShrinkRecord], limit: int = settings.LEADERBOARD_SIZE
) -> Leaderboards:
    df = records_to_frame(records)
    if df.empty:
        return Leaderboards(top_shrink=[], top_overage=[])
    return Leaderboards(
        top_shrink=_top_items(df, "shrink_loss", limit),
        top_overage=_top_items(df, "overage_gain", limit),
    )


def _scale_to_max(series: pd.Series) -> pd.Series:
    peak = series.max()
    if not peak or peak <= 0:
        return series * 0.0
    return (series / peak * 100).round(2)


def market_risk_radar(records: Sequence[ShrinkRecord]) -> list[MarketRisk]:
    """
    Scores each market on shrink rate, overage rate and how many variance rows
    it produced. Every axis is scaled so the worst market scores 100.
    """
    df = records_to_frame(records)
    if df.empty:
        return []

    grouped = df.groupby("market_name").agg(
        shrink=("shrink_loss", "sum"),
        overage=("overage_gain", "sum"),
        revenue=("total_revenue", "sum"),
        rows=("inv_variance", "count"),
    )
    revenue = grouped["revenue"].where(grouped["revenue"] > 0)
    shrink_rate = (grouped["shrink"] / revenue).fillna(0.0)
    overage_rate = (grouped["overage"] / revenue).fillna(0.0)

    scores = pd.DataFrame(
        {
            "shrink_score": _scale_to_max(shrink_rate),
            "overage_score": _scale_to_max(overage_rate),
            "frequency_score": _scale_to_max(grouped["rows"].astype(float)),
        }
    )
    return [
        MarketRisk(
            name=str(name),
            shrink_score=float(row["shrink_score"]),
            overage_score=float(row["overage_score"]),
            frequency_score=float(row["frequency_score"]),
        )
        for name, row in scores.iterrows()
    ]


def build_dashboard(
    records: Sequence[ShrinkRecord],
    filter_state: FilterState,
    leaderboard_size: int = settings.LEADERBOARD_SIZE,
) -> Dashboard:
    """Every breakdown for one filter selection, all computed from the same filtered set."""
    filtered = filter_records(records, filter_state)
    return Dashboard(
        stats=aggregate(filtered),
        trend=monthly_trend(filtered),
        markets=market_variance(filtered),
        leaderboards=item_leaderboards(filtered, leaderboard_size),
        risk=market_risk_radar(filtered),
    )


def segment_label(segment: Segment) -> str:
    return {
        Segment.ALL: "All items",
        Segment.COLD: "Cold food (KF/F/B)",
        Segment.SODA_SNACK: "Soda & snack",
    }[segment]
