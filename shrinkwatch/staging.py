import logging
from typing import NamedTuple, Sequence

from .schemas import ShrinkRecord, StagedRecord
from .store import RecordStore
from .utils import normalize_period

logger = logging.getLogger(__name__)


class ImportStaging(NamedTuple):
    """Extraction result waiting for the user to commit or discard it."""

    records: tuple[StagedRecord, ...]
    market_names: tuple[str, ...]
    period: str


def stage(
    records: Sequence[StagedRecord], market_names: Sequence[str], period: str
) -> ImportStaging:
    staging = ImportStaging(
        records=tuple(records), market_names=tuple(market_names), period=period
    )
    logger.info(
        f"Staged {len(staging.records)} variances across "
        f"{len(staging.market_names)} markets for '{period}'."
    )
    return staging


def commit(staging: ImportStaging, store: RecordStore) -> list[ShrinkRecord]:
    """
    Assigns identifiers and replaces the whole period in the store. Committing
    the same import twice leaves the store as committing it once.
    """
    period = normalize_period(staging.period)
    new_records = [
        ShrinkRecord(
            **{**staged.model_dump(), "period": period},
            id=store.next_id(),
        )
        for staged in staging.records
    ]
    store.replace_period(period, new_records)
    return new_records


def discard(staging: ImportStaging) -> None:
    logger.info(f"Discarded staged import for '{staging.period}' ({len(staging.records)} rows).")
