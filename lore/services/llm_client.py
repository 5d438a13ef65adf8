"""Ollama-backed fact extraction and consistency checking.

Uses ollama.Client.chat() with the `format=` parameter for grammar-constrained JSON
output. All calls use stream=True so that slow generations don't hit the HTTP read
timeout.
"""

import logging
import threading
import time
from typing import TypeVar

import httpx
import ollama
from pydantic import BaseModel, Field, ValidationError

from lore.memory.entities import ConsistencyIssue, Fact, Severity
from lore.settings import Settings
from lore.utils.exceptions import LLMError
from lore.utils.streaming import consume_stream

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Module-level cache for Ollama clients (keyed by (url, timeout))
_ollama_clients: dict[tuple[str, float], ollama.Client] = {}
_ollama_clients_lock = threading.Lock()

EXTRACTION_SYSTEM_PROMPT = (
    "You extract atomic facts about a fictional world from text. "
    "Each fact is a subject-predicate-object statement. Only state what the text says."
)

EXTRACTION_PROMPT = """Extract every fact from the text below.

For each fact give:
- type: one of {types}
- subject: the entity the fact is about
- predicate: the relation or property
- object: the value or related entity
- context: optional qualifier (time, place, condition), empty if none
- confidence: 0.0 to 1.0, how clearly the text states it

TEXT:
{text}"""

CONSISTENCY_SYSTEM_PROMPT = (
    "You check new facts about a fictional world against established facts and report "
    "contradictions. Report nothing when the facts are compatible."
)

CONSISTENCY_PROMPT = """Compare the NEW facts with the EXISTING facts.

Report each contradiction with:
- new_fact_index: index of the new fact
- existing_fact_index: index of the existing fact it contradicts
- description: what conflicts
- severity: "minor" (detail mismatch), "major" (significant conflict)
  or "critical" (direct contradiction)

NEW FACTS:
{new_facts}

EXISTING FACTS:
{existing_facts}"""


class ExtractedFact(BaseModel):
    """A fact as returned by the model, before normalization."""

    type: str
    subject: str
    predicate: str
    object: str | int | float | bool | None = None
    context: str = ""
    confidence: float = 0.8


class ExtractionResponse(BaseModel):
    """Structured output for fact extraction."""

    facts: list[ExtractedFact] = Field(default_factory=list)


class ReportedIssue(BaseModel):
    """A consistency issue as returned by the model, indices unchecked."""

    new_fact_index: int
    existing_fact_index: int
    description: str
    severity: str


class ConsistencyResponse(BaseModel):
    """Structured output for consistency checking."""

    issues: list[ReportedIssue] = Field(default_factory=list)


def get_ollama_client(settings: Settings) -> ollama.Client:
    """Get or create an Ollama client for the given settings.

    The client is cached based on URL and timeout to avoid recreating it for each call.
    Thread-safe via double-checked locking.
    """
    timeout = float(settings.ollama_timeout)
    cache_key = (settings.ollama_url, timeout)

    if cache_key not in _ollama_clients:
        with _ollama_clients_lock:
            if cache_key not in _ollama_clients:
                _ollama_clients[cache_key] = ollama.Client(
                    host=settings.ollama_url, timeout=timeout
                )
                logger.debug(
                    f"Created Ollama client for {settings.ollama_url} (timeout={timeout:.0f}s)"
                )

    return _ollama_clients[cache_key]


def strip_code_fences(content: str) -> str:
    """Remove a surrounding ```json ... ``` fence if the model added one."""
    text = content.strip()
    if text.startswith("```"):
        text = text.removeprefix("```json").removeprefix("```")
        text = text.removesuffix("```")
    return text.strip()


def generate_structured(
    settings: Settings,
    model: str,
    prompt: str,
    response_model: type[T],
    system_prompt: str | None = None,
    temperature: float = 0.1,
    max_retries: int = 3,
) -> T:
    """Generate structured output using native Ollama format parameter.

    Args:
        settings: Application settings.
        model: The Ollama model to use.
        prompt: The user prompt to send.
        response_model: Pydantic model class defining the expected output structure.
        system_prompt: Optional system prompt.
        temperature: Temperature for generation (default 0.1 for structured output).
        max_retries: Maximum number of attempts on validation or transport failure.

    Returns:
        Instance of response_model with validated data.

    Raises:
        LLMError: If generation fails after all retries or on non-retryable Ollama errors.
        ValueError: If max_retries < 1.
    """
    if max_retries < 1:
        raise ValueError(f"max_retries must be >= 1, got {max_retries}")

    client = get_ollama_client(settings)

    messages: list[dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    messages.append({"role": "user", "content": prompt})

    json_schema = response_model.model_json_schema()
    logger.debug(
        f"Generating structured output: model={model}, response_model={response_model.__name__}, "
        f"temperature={temperature}, max_retries={max_retries}"
    )

    last_error: Exception | None = None

    for attempt in range(max_retries):
        try:
            start_time = time.time()
            stream = client.chat(
                model=model,
                messages=messages,
                format=json_schema,
                options={"temperature": temperature, "num_ctx": settings.context_size},
                stream=True,
            )
            response = consume_stream(
                stream,
                inter_chunk_timeout=settings.stream_inter_chunk_timeout,
                wall_clock_timeout=settings.stream_wall_clock_timeout,
            )
            content = strip_code_fences(response["message"]["content"])
            result = response_model.model_validate_json(content)

            logger.info(
                "LLM call complete: model=%s, schema=%s, %.2fs, tokens: %s+%s",
                model,
                response_model.__name__,
                time.time() - start_time,
                response.get("prompt_eval_count"),
                response.get("eval_count"),
            )
            return result

        except (ValidationError, KeyError, TypeError) as e:
            last_error = e
            logger.warning(
                "Structured output validation/parsing failed (attempt %d/%d): %s",
                attempt + 1,
                max_retries,
                e,
            )

        except (ConnectionError, TimeoutError, httpx.TimeoutException, httpx.TransportError) as e:
            last_error = e
            logger.warning(
                "Transient error in structured output (attempt %d/%d): %s",
                attempt + 1,
                max_retries,
                e,
            )
            if attempt < max_retries - 1:
                backoff = min(2**attempt, 10)
                logger.debug("Backing off %.1fs before retry", backoff)
                time.sleep(backoff)

        except ollama.ResponseError as e:
            logger.error("Ollama response error during structured generation: %s", e)
            raise LLMError(
                f"Structured generation failed for {response_model.__name__}: {e}"
            ) from e

    logger.error("Structured output generation failed after %d attempts", max_retries)
    raise LLMError(
        f"Structured generation failed for {response_model.__name__} "
        f"after {max_retries} attempts: {last_error}"
    ) from last_error


def object_to_string(value: str | int | float | bool | None) -> str:
    """Coerce a fact object the model returned as JSON scalar into text.

    Booleans become "true"/"false", whole-number floats lose their ".0".
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return repr(value)
    return str(value)


def _format_fact_list(facts: list[Fact]) -> str:
    return "\n".join(f"[{i}] ({fact.type}) {fact.as_text()}" for i, fact in enumerate(facts))


class OllamaFactAnalyzer:
    """Fact extraction and consistency checking through a local Ollama model."""

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or Settings.load()

    def _generate(
        self, prompt: str, system_prompt: str, response_model: type[T]
    ) -> T:
        return generate_structured(
            self.settings,
            self.settings.extraction_model,
            prompt,
            response_model,
            system_prompt=system_prompt,
            temperature=self.settings.extraction_temperature,
            max_retries=self.settings.llm_max_retries,
        )

    def extract_facts(self, text: str, valid_types: str) -> list[Fact]:
        """Extract facts from a chunk of text.

        Args:
            text: Source text.
            valid_types: Comma-separated type names the model may use.

        Returns:
            Facts without IDs or source information; the caller assigns those.
        """
        if not text.strip():
            return []
        response = self._generate(
            EXTRACTION_PROMPT.format(types=valid_types, text=text),
            EXTRACTION_SYSTEM_PROMPT,
            ExtractionResponse,
        )

        facts: list[Fact] = []
        for raw in response.facts:
            if not raw.subject.strip() or not raw.predicate.strip():
                logger.debug("Dropping extracted fact without subject/predicate: %s", raw)
                continue
            facts.append(
                Fact(
                    type=raw.type.strip().lower(),
                    subject=raw.subject.strip(),
                    predicate=raw.predicate.strip(),
                    object=object_to_string(raw.object),
                    context=raw.context.strip(),
                    confidence=min(max(raw.confidence, 0.0), 1.0),
                )
            )
        logger.debug("Extracted %d facts from %d chars", len(facts), len(text))
        return facts

    def check_consistency(self, new: list[Fact], existing: list[Fact]) -> list[ConsistencyIssue]:
        """Compare new facts with existing ones in a single call.

        Issues whose indices fall outside either list, or whose severity is not
        recognised, are dropped.
        """
        if not new or not existing:
            return []
        response = self._generate(
            CONSISTENCY_PROMPT.format(
                new_facts=_format_fact_list(new), existing_facts=_format_fact_list(existing)
            ),
            CONSISTENCY_SYSTEM_PROMPT,
            ConsistencyResponse,
        )

        issues: list[ConsistencyIssue] = []
        for raw in response.issues:
            if not 0 <= raw.new_fact_index < len(new):
                logger.debug("Dropping issue with new_fact_index %d", raw.new_fact_index)
                continue
            if not 0 <= raw.existing_fact_index < len(existing):
                logger.debug("Dropping issue with existing_fact_index %d", raw.existing_fact_index)
                continue
            try:
                severity = Severity(raw.severity.strip().lower())
            except ValueError:
                logger.warning("Dropping issue with unknown severity %r", raw.severity)
                continue
            issues.append(
                ConsistencyIssue(
                    new_fact_index=raw.new_fact_index,
                    existing_fact_index=raw.existing_fact_index,
                    new_fact=new[raw.new_fact_index],
                    existing_fact=existing[raw.existing_fact_index],
                    description=raw.description,
                    severity=severity,
                )
            )
        return issues
