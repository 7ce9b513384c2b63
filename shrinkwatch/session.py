import logging
from pathlib import Path
from typing import Callable, Optional, Union

from . import settings
from .aggregation import Dashboard, aggregate, build_dashboard, filter_records
from .assistant import (
    AUTH_REQUIRED,
    AnswerBuffer,
    AssistantError,
    AssistantStatus,
    ClientFactory,
    CredentialGate,
    GeminiClient,
    deep_dive,
    quick_query,
)
from .data_handler import StateStore
from .pipelines.raw_text import RawTextImportPipeline
from .pipelines.workbook import WorkbookImportPipeline
from .schemas import FilterState, Segment, ShrinkRecord, Stats
from .staging import ImportStaging, commit, discard
from .store import RecordStore
from .utils import normalize_period

logger = logging.getLogger(__name__)


class ShrinkSession:
    """
    One user's working session: the ledger, the filter selection, the pending
    import and the AI analyst state. Every mutation is persisted right away;
    a failed write is logged and the in-memory state stays authoritative.
    """

    def __init__(
        self,
        state: Optional[StateStore] = None,
        gate: Optional[CredentialGate] = None,
        client_factory: ClientFactory = GeminiClient,
    ):
        self.state = state or StateStore()
        self.gate = gate or CredentialGate.from_settings()
        self.client_factory = client_factory

        self.store = RecordStore(self.state.load_records())
        self.filter = self.state.load_filter()
        self.staging: Optional[ImportStaging] = None
        self.answer = AnswerBuffer()
        self.assistant_status = (
            AssistantStatus.ONLINE if self.gate.ready else AssistantStatus.OFFLINE
        )
        logger.info(f"Loaded {len(self.store)} records from {self.state.directory}.")

    def persist(self) -> bool:
        return self.state.save(self.store.records, self.filter)

    # --- Imports ---

    def import_workbook(self, source: Union[Path, str, bytes], period: str) -> Optional[ImportStaging]:
        self.staging = WorkbookImportPipeline(source, period).run()
        return self.staging

    def import_text(self, raw_text: str) -> Optional[ImportStaging]:
        pipeline = RawTextImportPipeline(raw_text, self.gate, self.client_factory)
        self.staging = pipeline.run()
        self.assistant_status = pipeline.status
        return self.staging

    def commit_staging(self) -> list[ShrinkRecord]:
        if self.staging is None:
            return []
        committed = commit(self.staging, self.store)
        self.filter = self.filter.model_copy(
            update={"months": self.filter.months | {normalize_period(self.staging.period)}}
        )
        self.staging = None
        self.persist()
        return committed

    def discard_staging(self) -> None:
        if self.staging is not None:
            discard(self.staging)
        self.staging = None

    def purge(self, confirm: Callable[[], bool]) -> bool:
        if not self.store.purge(confirm):
            return False
        self.filter = FilterState()
        self.state.clear()
        return True

    # --- Filter ---

    def toggle_month(self, month: str) -> FilterState:
        month = normalize_period(month)
        months = set(self.filter.months)
        months.symmetric_difference_update({month})
        self.filter = self.filter.model_copy(update={"months": months})
        self.persist()
        return self.filter

    def set_months(self, months: set[str]) -> FilterState:
        self.filter = self.filter.model_copy(update={"months": {normalize_period(m) for m in months}})
        self.persist()
        return self.filter

    def set_market(self, market: str) -> FilterState:
        self.filter = self.filter.model_copy(update={"market": market or settings.ALL_MARKETS})
        self.persist()
        return self.filter

    def set_segment(self, segment: Segment) -> FilterState:
        self.filter = self.filter.model_copy(update={"segment": Segment(segment)})
        self.persist()
        return self.filter

    # --- Read paths ---

    def filtered_records(self) -> list[ShrinkRecord]:
        return filter_records(self.store.records, self.filter)

    def stats(self) -> Stats:
        return aggregate(self.store.records, self.filter)

    def dashboard(self) -> Dashboard:
        return build_dashboard(self.store.records, self.filter)

    # --- AI analyst ---

    def reauthorize(self, gate: CredentialGate) -> None:
        self.gate = gate
        self.assistant_status = AssistantStatus.ONLINE if gate.ready else AssistantStatus.OFFLINE

    def ask(self, question: str, on_chunk: Optional[Callable[[str], None]] = None) -> str:
        """
        Streams an answer into the answer buffer. A newer question supersedes
        this one: its stream stops and its text is never shown.
        """
        if not question.strip() or not len(self.store):
            return self.answer.text

        token = self.answer.begin()
        write = self.answer.writer(token)

        def deliver(text: str) -> None:
            if text == AUTH_REQUIRED:
                text = "DIAGNOSTIC ENGINE OFFLINE. Re-authorize to continue."
            write(text)
            if on_chunk is not None and self.answer.is_current(token):
                on_chunk(text)

        self.assistant_status = quick_query(
            self.gate,
            self.filtered_records(),
            self.stats(),
            question,
            deliver,
            segment=self.filter.segment,
            is_cancelled=lambda: not self.answer.is_current(token),
            client_factory=self.client_factory,
        )
        return self.answer.text

    def deep_dive(self) -> Optional[str]:
        if not len(self.store):
            return None
        try:
            result = deep_dive(
                self.gate,
                self.filtered_records(),
                self.stats(),
                segment=self.filter.segment,
                client_factory=self.client_factory,
            )
        except AssistantError as e:
            logger.error(f"❌ Deep dive failed: {e}")
            self.assistant_status = AssistantStatus.OFFLINE
            return None

        if result == AUTH_REQUIRED:
            self.assistant_status = AssistantStatus.NEEDS_REAUTH
            return None
        self.assistant_status = AssistantStatus.ONLINE
        return result
