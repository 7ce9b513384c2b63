import logging
from datetime import date

from pydantic import ValidationError

from shrinkwatch.assistant import (
    AssistantError,
    AssistantStatus,
    AuthorizationError,
    ClientFactory,
    CredentialGate,
    GeminiClient,
    ParsedReport,
    parse_report_text,
)
from shrinkwatch.parsers import ExtractionResult, compute_variance_impact
from shrinkwatch.pipeline import DataPipeline
from shrinkwatch.schemas import StagedRecord
from shrinkwatch.utils import coerce_number, humanize_market_name, normalize_period

logger = logging.getLogger(__name__)

DEFAULT_MARKET = "Imported Market"


class RawTextImportPipeline(DataPipeline):
    """
    Imports copy-pasted report text by letting the language model structure it.
    The period and market come from the model; an unavailable model yields no data.
    """

    def __init__(
        self,
        raw_text: str,
        gate: CredentialGate,
        client_factory: ClientFactory = GeminiClient,
    ):
        super().__init__("report text", period="")
        self.raw_text = raw_text
        self.gate = gate
        self.client_factory = client_factory
        self.status = AssistantStatus.ONLINE if gate.ready else AssistantStatus.OFFLINE

    def extract(self) -> ParsedReport | None:
        if not self.raw_text.strip():
            return None
        try:
            parsed = parse_report_text(self.gate, self.raw_text, self.client_factory)
        except AuthorizationError as e:
            logger.warning(f"⚠️ {e}")
            self.status = AssistantStatus.NEEDS_REAUTH
            return None
        except AssistantError as e:
            logger.error(f"❌ Could not structure report text: {e}")
            self.status = AssistantStatus.OFFLINE
            return None

        self.status = AssistantStatus.ONLINE
        self.period = normalize_period(
            parsed.detected_period or date.today().strftime("%B")
        )
        logger.info(
            f"  > Model found {len(parsed.items)} rows "
            f"(period '{self.period}', market '{parsed.detected_market or DEFAULT_MARKET}')."
        )
        return parsed

    def _to_record(self, item: dict, market_name: str) -> StagedRecord:
        variance = coerce_number(item.get("invVariance"))
        unit_cost = coerce_number(item.get("unitCost"))
        if unit_cost:
            shrink_loss, overage_gain = compute_variance_impact(variance, unit_cost)
        elif variance <= 0:
            # Without a cost only the reported loss is trustworthy.
            shrink_loss, overage_gain = abs(coerce_number(item.get("shrinkLoss"))), 0.0
        else:
            shrink_loss, overage_gain = 0.0, 0.0

        return StagedRecord(
            item_number=str(item.get("itemNumber") or ""),
            item_name=str(item.get("itemName") or ""),
            inv_variance=variance,
            total_revenue=coerce_number(item.get("totalRevenue")),
            unit_cost=unit_cost,
            shrink_loss=shrink_loss,
            overage_gain=overage_gain,
            market_name=market_name,
            period=self.period,
        )

    def transform(self, raw_data: ParsedReport) -> ExtractionResult:
        market_name = humanize_market_name(raw_data.detected_market) or DEFAULT_MARKET

        records = []
        for item in raw_data.items:
            try:
                records.append(self._to_record(item, market_name))
            except ValidationError as e:
                logger.warning(f"  > ⚠️ Model row rejected: {e}")

        return ExtractionResult(records=records, market_names=[market_name] if records else [])
