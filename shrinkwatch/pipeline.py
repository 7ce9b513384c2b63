import logging
from abc import ABC, abstractmethod
from typing import Any

from .parsers import ExtractionResult
from .staging import ImportStaging, stage

logger = logging.getLogger(__name__)


class DataPipeline(ABC):
    """
    Abstract base class for import pipelines (workbook upload, pasted report text).
    Follows an Extract -> Transform -> Load pattern where Load means staging the
    records for the user to confirm; nothing touches the ledger until commit.
    """

    def __init__(self, source_type: str, period: str):
        self.source_type = source_type
        self.period = period

    def run(self) -> ImportStaging | None:
        """
        Orchestrates the pipeline execution. Returns None when no data was detected.
        """
        logger.info(f"🚀 STEP: {self.source_type.upper()} IMPORT")
        logger.info("-" * 30)

        # --- 1. EXTRACT ---
        raw_data = self.extract()
        if raw_data is None:
            logger.warning(f"⚠️ No data detected in {self.source_type} import.")
            return None

        # --- 2. TRANSFORM ---
        result = self.transform(raw_data)
        if not result.records:
            logger.warning(f"⚠️ No data detected in {self.source_type} import.")
            return None

        # --- 3. LOAD ---
        staging = self.load(result)
        logger.info(f"✅ {self.source_type.capitalize()} import staged.")
        logger.info("=" * 60)
        return staging

    @abstractmethod
    def extract(self) -> Any | None:
        """
        Reads the source once and returns its raw content, or None when it cannot be read.
        """

    @abstractmethod
    def transform(self, raw_data: Any) -> ExtractionResult:
        """
        Turns raw content into staged records plus the market names they came from.
        """

    def load(self, result: ExtractionResult) -> ImportStaging:
        return stage(result.records, result.market_names, self.period)
