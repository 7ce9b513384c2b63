"""
Client side of the hosted language-model analyst.

The ledger hands the model a pre-aggregated summary plus a question and gets
back opaque Markdown text. Credentials arrive through a CredentialGate, which
is filled once at startup and reset explicitly for re-authorization; nothing
here polls for a key or reads it from global state at call time.
"""

import json
import logging
import threading
from enum import Enum
from typing import Callable, Iterator, NamedTuple, Optional, Sequence

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel, ConfigDict

from . import settings
from .schemas import Segment, ShrinkRecord, Stats

logger = logging.getLogger(__name__)

AUTH_REQUIRED = "AUTH_REQUIRED"
AUDIT_ERROR_TEXT = (
    "### Audit Error\n\nThe forensic engine encountered an error analyzing the dataset."
)

_PLACEHOLDER_KEYS = {"%%API_KEY_INJECTION%%", "undefined", "MISSING_IN_WORKER"}


class AssistantStatus(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    NEEDS_REAUTH = "needs_reauth"


class AssistantError(Exception):
    """The model could not be reached or returned something unusable."""


class AuthorizationError(AssistantError):
    """Credentials are missing or were rejected."""


class AssistantConfig(BaseModel):
    api_key: str
    model: str = settings.GEMINI_MODEL
    timeout: int = settings.LLM_TIMEOUT

    model_config = ConfigDict(frozen=True)


def is_usable_key(key: Optional[str]) -> bool:
    return bool(key) and len(key) > 10 and key not in _PLACEHOLDER_KEYS


class CredentialGate:
    """
    A "configuration ready" signal for the model capability. `provide()` resolves
    it, `revoke()` resets it so the user can re-authorize, `wait()` blocks until
    a configuration is available.
    """

    def __init__(self):
        self._ready = threading.Event()
        self._lock = threading.Lock()
        self._config: Optional[AssistantConfig] = None

    @classmethod
    def from_settings(cls) -> "CredentialGate":
        gate = cls()
        if is_usable_key(settings.GEMINI_API_KEY):
            gate.provide(AssistantConfig(api_key=settings.GEMINI_API_KEY))
        else:
            logger.warning("⚠️ GEMINI_API_KEY not set. The AI analyst is offline.")
        return gate

    @property
    def ready(self) -> bool:
        return self._ready.is_set()

    def provide(self, config: AssistantConfig) -> None:
        if not is_usable_key(config.api_key):
            raise AuthorizationError("API key is missing or malformed.")
        with self._lock:
            self._config = config
            self._ready.set()

    def revoke(self) -> None:
        with self._lock:
            self._config = None
            self._ready.clear()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._ready.wait(timeout)

    def current(self) -> Optional[AssistantConfig]:
        with self._lock:
            return self._config


class GeminiClient:
    """Wraps the google-genai client and maps its failures onto AssistantError."""

    def __init__(self, config: AssistantConfig, client: Optional[genai.Client] = None):
        self.config = config
        self.client = client or genai.Client(
            api_key=config.api_key,
            http_options=types.HttpOptions(timeout=config.timeout * 1000),
        )

    @staticmethod
    def _translate(error: Exception) -> AssistantError:
        if isinstance(error, genai_errors.APIError):
            # An unknown key comes back as 400 INVALID_ARGUMENT rather than 401.
            rejected = error.code in (401, 403) or (
                error.code == 400 and "API key" in (error.message or "")
            )
            if rejected:
                return AuthorizationError(f"Language model rejected credentials ({error.code}).")
            return AssistantError(f"Language model error ({error.code}): {error.message}")
        return AssistantError(f"Request to language model failed: {error}")

    def stream(self, prompt: str) -> Iterator[str]:
        """Yields text fragments as the streamed response arrives."""
        try:
            for chunk in self.client.models.generate_content_stream(
                model=self.config.model, contents=prompt
            ):
                if chunk.text:
                    yield chunk.text
        except (genai_errors.APIError, httpx.HTTPError) as e:
            raise self._translate(e) from e

    def generate(self, prompt: str, response_schema: Optional[dict] = None) -> str:
        config = None
        if response_schema is not None:
            config = types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=response_schema,
            )
        try:
            response = self.client.models.generate_content(
                model=self.config.model, contents=prompt, config=config
            )
        except (genai_errors.APIError, httpx.HTTPError) as e:
            raise self._translate(e) from e
        return response.text or ""


ClientFactory = Callable[[AssistantConfig], GeminiClient]


def _client(gate: CredentialGate, client_factory: ClientFactory) -> GeminiClient:
    config = gate.current() if gate.wait(settings.CREDENTIAL_WAIT) else None
    if config is None:
        raise AuthorizationError("No language model credentials configured.")
    return client_factory(config)


# --- Summary handed to the model ---


def build_summary(
    records: Sequence[ShrinkRecord], stats: Stats, segment: Segment = Segment.ALL
) -> dict:
    monthly: dict[str, dict[str, float]] = {}
    for r in records:
        bucket = monthly.setdefault(r.period, {"loss": 0.0, "rev": 0.0})
        bucket["loss"] += r.shrink_loss
        bucket["rev"] += r.total_revenue

    outliers = [
        {
            "item": r.item_name,
            "market": r.market_name,
            "loss": r.shrink_loss,
            "variance": r.inv_variance,
            "rev": r.total_revenue,
        }
        for r in sorted(records, key=lambda r: r.shrink_loss, reverse=True)[: settings.OUTLIER_LIMIT]
    ]

    return {
        "totalRevenue": round(stats.total_revenue, 2),
        "totalShrink": round(stats.total_shrink, 2),
        "totalOverage": round(stats.total_overage, 2),
        "netVariance": round(stats.net_variance, 2),
        "accuracy": stats.accuracy,
        "activeSegment": segment.value,
        "topLosses": outliers,
        "monthly": monthly,
    }


def _quick_prompt(summary: dict, question: str) -> str:
    return (
        "ROLE: Senior micro-market forensic analyst.\n"
        f"DATA SUMMARY: {json.dumps(summary)}\n"
        f'USER QUESTION: "{question}"\n'
        "Be concise and data-driven. Answer in Markdown."
    )


def _deep_dive_prompt(summary: dict) -> str:
    return (
        "ROLE: Senior micro-market forensic analyst.\n"
        f"DATA SUMMARY: {json.dumps(summary)}\n"
        "TASK: Write a full integrity audit of this portfolio: shrink drivers, "
        "overage patterns, receiving errors, and the markets and items to act on first. "
        "Answer in Markdown."
    )


# --- Public calls ---


def quick_query(
    gate: CredentialGate,
    records: Sequence[ShrinkRecord],
    stats: Stats,
    question: str,
    on_chunk: Callable[[str], None],
    segment: Segment = Segment.ALL,
    is_cancelled: Callable[[], bool] = lambda: False,
    client_factory: ClientFactory = GeminiClient,
) -> AssistantStatus:
    """
    Streams an answer, calling `on_chunk` with the full text received so far.
    Stops early once `is_cancelled()` reports the request was superseded.
    """
    try:
        client = _client(gate, client_factory)
        full_text = ""
        for chunk in client.stream(_quick_prompt(build_summary(records, stats, segment), question)):
            if is_cancelled():
                logger.info("Quick query superseded, dropping the rest of the stream.")
                break
            full_text += chunk
            on_chunk(full_text)
        return AssistantStatus.ONLINE
    except AuthorizationError as e:
        logger.warning(f"⚠️ {e}")
        on_chunk(AUTH_REQUIRED)
        return AssistantStatus.NEEDS_REAUTH
    except AssistantError as e:
        logger.error(f"❌ Quick query failed: {e}")
        on_chunk(AUDIT_ERROR_TEXT)
        return AssistantStatus.OFFLINE


def deep_dive(
    gate: CredentialGate,
    records: Sequence[ShrinkRecord],
    stats: Stats,
    segment: Segment = Segment.ALL,
    client_factory: ClientFactory = GeminiClient,
) -> str:
    """Returns the full audit text, or AUTH_REQUIRED. Other failures raise AssistantError."""
    try:
        client = _client(gate, client_factory)
        return client.generate(_deep_dive_prompt(build_summary(records, stats, segment)))
    except AuthorizationError as e:
        logger.warning(f"⚠️ {e}")
        return AUTH_REQUIRED


# --- Pasted report text ---

REPORT_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "detectedPeriod": {"type": "STRING"},
        "detectedMarket": {"type": "STRING"},
        "items": {
            "type": "ARRAY",
            "items": {
                "type": "OBJECT",
                "properties": {
                    "itemNumber": {"type": "STRING"},
                    "itemName": {"type": "STRING"},
                    "invVariance": {"type": "NUMBER"},
                    "totalRevenue": {"type": "NUMBER"},
                    "shrinkLoss": {"type": "NUMBER"},
                    "unitCost": {"type": "NUMBER"},
                },
                "required": ["itemNumber", "itemName", "shrinkLoss"],
            },
        },
    },
}


class ParsedReport(NamedTuple):
    items: list[dict]
    detected_period: str
    detected_market: str


def _report_prompt(raw_text: str) -> str:
    return (
        "ACT AS: Forensic data entry clerk for micro-market variance reports.\n"
        "TASK: Extract all item rows, the report period and the market name "
        "from the messy text below. Return JSON only.\n"
        f'TEXT:\n"""\n{raw_text[: settings.RAW_TEXT_LIMIT]}\n"""'
    )


def parse_report_text(
    gate: CredentialGate, raw_text: str, client_factory: ClientFactory = GeminiClient
) -> ParsedReport:
    """Asks the model to structure pasted report text. Raises AssistantError subclasses on failure."""
    client = _client(gate, client_factory)
    text = client.generate(_report_prompt(raw_text), response_schema=REPORT_SCHEMA)
    try:
        parsed = json.loads(text or "{}")
    except json.JSONDecodeError as e:
        raise AssistantError(f"Model returned invalid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise AssistantError("Model returned JSON that is not an object.")

    items = [item for item in parsed.get("items") or [] if isinstance(item, dict)]
    return ParsedReport(
        items=items,
        detected_period=str(parsed.get("detectedPeriod") or ""),
        detected_market=str(parsed.get("detectedMarket") or ""),
    )


class AnswerBuffer:
    """
    The visible answer text. Each request takes a token from `begin()`; writes
    carrying an older token are dropped, so a superseded stream can never
    overwrite the newer answer.
    """

    def __init__(self):
        self.text = ""
        self._token = 0
        self._lock = threading.Lock()

    def begin(self) -> int:
        with self._lock:
            self._token += 1
            self.text = ""
            return self._token

    def is_current(self, token: int) -> bool:
        with self._lock:
            return token == self._token

    def writer(self, token: int) -> Callable[[str], None]:
        def write(text: str) -> None:
            with self._lock:
                if token == self._token:
                    self.text = text

        return write
