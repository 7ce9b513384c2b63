import logging
from pathlib import Path
from typing import Union

import pandas as pd

from shrinkwatch import utils
from shrinkwatch.parsers import ExtractionResult, parse_workbook
from shrinkwatch.pipeline import DataPipeline

logger = logging.getLogger(__name__)


class WorkbookImportPipeline(DataPipeline):
    """Imports one multi-sheet variance workbook for a target month."""

    def __init__(self, source: Union[Path, str, bytes], period: str):
        super().__init__("workbook", period)
        self.source = Path(source) if isinstance(source, str) else source

    def extract(self) -> dict[str, pd.DataFrame] | None:
        label = self.source.name if isinstance(self.source, Path) else "uploaded bytes"
        logger.info(f"-- Reading workbook: {label} --")

        sheets = utils.load_workbook(self.source)
        if not sheets:
            return None
        logger.info(f"  > Found {len(sheets)} sheet(s).")
        return sheets

    def transform(self, raw_data: dict[str, pd.DataFrame]) -> ExtractionResult:
        result = parse_workbook(raw_data, self.period)
        logger.info(
            f"Extracted {len(result.records)} variance rows across "
            f"{len(result.market_names)} market(s)."
        )
        return result
