import json
import logging
from pathlib import Path
from typing import Any, Iterable

from pydantic import TypeAdapter, ValidationError

from . import settings
from .schemas import FilterState, Segment, ShrinkRecord

logger = logging.getLogger(__name__)

SLOTS = ("records", "months", "market", "segment")

_RECORDS_ADAPTER = TypeAdapter(list[ShrinkRecord])
_MONTHS_ADAPTER = TypeAdapter(list[str])


class StateStore:
    """
    Key/value persistence for the ledger and the active filter. Each slot is a
    small JSON file named after a versioned key, so a layout from another
    version is never read. Loads fail soft to defaults; writes never raise.
    """

    def __init__(self, directory: Path = settings.STATE_DIR, version: str = settings.STORE_VERSION):
        self.directory = Path(directory)
        self.version = version

    def key(self, slot: str) -> str:
        return f"shrink_{slot}_{self.version}"

    def path(self, slot: str) -> Path:
        return self.directory / f"{self.key(slot)}.json"

    # --- Raw slots ---

    def get(self, slot: str) -> Any:
        path = self.path(slot)
        if not path.exists():
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Ignoring unreadable state slot '{self.key(slot)}': {e}")
            return None

    def set(self, slot: str, value: Any) -> bool:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(self.path(slot), "w", encoding="utf-8") as f:
                json.dump(value, f, indent=2, default=str)
            return True
        except (OSError, TypeError) as e:
            logger.error(f"❌ Could not persist '{self.key(slot)}': {e}")
            return False

    def clear(self) -> None:
        for slot in SLOTS:
            try:
                self.path(slot).unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"❌ Could not remove '{self.key(slot)}': {e}")

    # --- Typed views ---

    def load_records(self) -> list[ShrinkRecord]:
        raw = self.get("records")
        if raw is None:
            return []
        try:
            return _RECORDS_ADAPTER.validate_python(raw)
        except ValidationError as e:
            logger.warning(f"⚠️ Stored records do not match the schema, starting empty. ({e.error_count()} errors)")
            return []

    def load_filter(self) -> FilterState:
        months: set[str] = set()
        raw_months = self.get("months")
        if raw_months is not None:
            try:
                months = set(_MONTHS_ADAPTER.validate_python(raw_months))
            except ValidationError:
                logger.warning("⚠️ Stored month selection is invalid, using all months.")

        market = self.get("market")
        if not isinstance(market, str) or not market:
            market = settings.ALL_MARKETS

        try:
            segment = Segment(self.get("segment") or Segment.ALL.value)
        except (ValueError, TypeError):
            segment = Segment.ALL

        return FilterState(months=months, market=market, segment=segment)

    def save(self, records: Iterable[ShrinkRecord], filter_state: FilterState) -> bool:
        """Writes every slot. Returns False if any write failed; the caller keeps its in-memory state."""
        results = [
            self.set("records", [r.model_dump(mode="json", by_alias=True) for r in records]),
            self.set("months", sorted(filter_state.months)),
            self.set("market", filter_state.market),
            self.set("segment", filter_state.segment.value),
        ]
        return all(results)
