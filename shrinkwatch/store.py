import itertools
import logging
import time
from typing import Callable, Iterable, Sequence

from . import aggregation
from .schemas import ShrinkRecord
from .utils import normalize_period

logger = logging.getLogger(__name__)


class RecordStore:
    """
    The canonical record set. It is only mutated by a full-period replace or a
    full purge; readers get an immutable snapshot.
    """

    def __init__(self, records: Iterable[ShrinkRecord] = ()):
        self._records: tuple[ShrinkRecord, ...] = tuple(records)
        self._sequence = itertools.count()

    @property
    def records(self) -> tuple[ShrinkRecord, ...]:
        return self._records

    def __len__(self) -> int:
        return len(self._records)

    def next_id(self) -> str:
        # The nanosecond clock keeps ids unique across sessions sharing a store.
        return f"imp-{next(self._sequence)}-{time.time_ns()}"

    def replace_period(self, period: str, new_records: Sequence[ShrinkRecord]) -> None:
        """Drops every record of the period (after normalization) and appends the new ones."""
        target = normalize_period(period)
        kept = [r for r in self._records if normalize_period(r.period) != target]
        replaced = len(self._records) - len(kept)
        self._records = tuple(kept) + tuple(new_records)
        logger.info(
            f"Committed {len(new_records)} records for '{target}' "
            f"(replaced {replaced}); ledger now holds {len(self._records)}."
        )

    def purge(self, confirm: Callable[[], bool]) -> bool:
        """Clears every record once `confirm()` agrees. Returns whether anything was purged."""
        if not confirm():
            logger.info("Purge cancelled.")
            return False
        self._records = ()
        logger.warning("⚠️ Ledger purged.")
        return True

    def markets(self) -> list[str]:
        return sorted({r.market_name for r in self._records if r.market_name})

    def populated_months(self) -> list[str]:
        """Calendar months that hold at least one record, in calendar order."""
        return aggregation.populated_months(self._records)
