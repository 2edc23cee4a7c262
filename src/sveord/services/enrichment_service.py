"""AI enrichment of vocabulary entries."""
import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from sveord import monitoring
from sveord.config import settings
from sveord.models.models import Word
from sveord.models.word_models import Enrichment
from sveord.services.backend_client import BackendClient

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com"

PROMPT_TEMPLATE = """You are a Swedish lexicographer. Describe the Swedish word "{word}".
Reply with JSON only, no markdown, using exactly these keys:
{{
  "partOfSpeech": "noun | verb | adjective | ...",
  "gender": "en | ett | empty if not a noun",
  "meanings": [{{"english": "...", "context": "optional usage note"}}],
  "examples": [{{"swedish": "...", "english": "..."}}],
  "synonyms": ["..."],
  "antonyms": ["..."],
  "cefr_level": "A1 | A2 | B1 | B2 | C1 | C2"
}}
Give 1-3 meanings, 2 examples that contain the word itself, and at most 3 synonyms and antonyms."""


class EnrichmentError(Exception):
    """The enrichment provider could not produce data for a word."""


class CancellationToken:
    """Cooperative stop signal for long-running batches."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def parse_model_json(text: Optional[str]) -> Any:
    """Parse JSON out of a model reply, tolerating code fences and trailing prose."""
    if not text or not text.strip():
        raise EnrichmentError("Empty response body")

    clean = text.strip()
    clean = re.sub(r"^```(?:json)?\s*", "", clean)
    clean = re.sub(r"\s*```$", "", clean)
    try:
        return json.loads(clean)
    except json.JSONDecodeError:
        match = re.search(r"\{[\s\S]*\}", clean) or re.search(r"\[[\s\S]*\]", clean)
        if match:
            try:
                return json.loads(match.group(0))
            except json.JSONDecodeError as e:
                raise EnrichmentError(f"Malformed JSON in response: {e}") from e
        raise EnrichmentError("No JSON found in response")


class GeminiEnrichmentProvider:
    """Generates word enrichment with the Gemini generateContent API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.enrichment.api_key
        # Strip "models/" prefix and whitespace to keep the URL valid
        model = (model or settings.enrichment.model).strip()
        self.model = re.sub(r"\s+", "", re.sub(r"^models/", "", model))
        self.api_version = re.sub(r"\s+", "", api_version or settings.enrichment.api_version)
        self.timeout = timeout or settings.enrichment.timeout
        self._transport = transport

        if not self.api_key:
            raise ValueError("GEMINI_API_KEY is required for enrichment")

    @property
    def endpoint(self) -> str:
        return f"{GEMINI_BASE_URL}/{self.api_version}/models/{self.model}:generateContent"

    async def generate(self, headword: str) -> Enrichment:
        """Ask the model for meanings, examples, synonyms and antonyms of a word."""
        payload = {"contents": [{"parts": [{"text": PROMPT_TEMPLATE.format(word=headword)}]}]}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.endpoint, params={"key": self.api_key}, json=payload)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise EnrichmentError(f"Enrichment request for {headword!r} failed: {e}") from e

        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise EnrichmentError(f"Unexpected response shape for {headword!r}") from e

        data = parse_model_json(text)
        enrichment = Enrichment.from_dict(data)
        if enrichment is None or not enrichment.meanings:
            raise EnrichmentError(f"No meanings returned for {headword!r}")
        enrichment.populated_at = datetime.now(UTC).isoformat()
        return enrichment


@dataclass
class BatchResult:
    """Outcome of a batch enrichment run."""
    processed: int = 0
    enriched: int = 0
    failed: int = 0
    next_id: Optional[int] = None
    cancelled: bool = False


class EnrichmentService:
    """Fills in missing enrichment for words in the local store."""

    def __init__(self, db: Session, provider: Any, backend: Optional[BackendClient] = None):
        """Initialize the service.

        Args:
            db: Local store session.
            provider: Object with an async ``generate(headword) -> Enrichment``.
            backend: Optional backend client the enrichment is written back to.
        """
        self.db = db
        self.provider = provider
        self.backend = backend

    def status(self) -> Dict[str, int]:
        """How many words are enriched and how many are left."""
        total = self.db.query(Word).count()
        completed = self.db.query(Word).filter(Word.enrichment.isnot(None)).count()
        return {"total": total, "completed": completed, "remaining": total - completed}

    def _next_batch(self, start_id: int, end_id: int, batch_size: int, overwrite: bool) -> List[Word]:
        query = self.db.query(Word).filter(Word.id >= start_id, Word.id <= end_id)
        if not overwrite:
            query = query.filter(Word.enrichment.is_(None))
        return query.order_by(Word.id).limit(batch_size).all()

    async def _enrich(self, word: Word) -> bool:
        try:
            enrichment = await self.provider.generate(word.headword)
        except EnrichmentError as e:
            logger.warning(f"Could not enrich {word.headword!r}: {e}")
            monitoring.enrichment_failures.inc()
            return False

        data = enrichment.to_dict()
        word.enrichment = data
        self.db.commit()
        if self.backend is not None:
            await self.backend.update_word_enrichment(word.id, data)
        monitoring.words_enriched.inc()
        return True

    async def run(
        self,
        token: Optional[CancellationToken] = None,
        range_start: Optional[int] = None,
        range_end: Optional[int] = None,
        batch_size: Optional[int] = None,
        overwrite: Optional[bool] = None,
    ) -> BatchResult:
        """Enrich words batch by batch until the range is exhausted or the token is cancelled.

        The token is checked between words, never in the middle of one.
        Failures of the provider are counted and skipped; a backend write
        failure stops the run with everything before it already committed.
        """
        token = token or CancellationToken()
        cursor = range_start if range_start is not None else settings.enrichment.range_start
        range_end = range_end if range_end is not None else settings.enrichment.range_end
        batch_size = batch_size or settings.enrichment.batch_size
        overwrite = settings.enrichment.overwrite if overwrite is None else overwrite

        result = BatchResult(next_id=cursor)
        logger.info(f"Starting enrichment for IDs {cursor} to {range_end} (overwrite={overwrite})")

        while not token.cancelled:
            words = self._next_batch(cursor, range_end, batch_size, overwrite)
            if not words:
                break

            for position, word in enumerate(words, start=1):
                if token.cancelled:
                    break
                logger.info(f"Generating meaning for {word.headword!r} ({position}/{len(words)})...")
                if await self._enrich(word):
                    result.enriched += 1
                else:
                    result.failed += 1
                result.processed += 1
                cursor = word.id + 1
                result.next_id = cursor

            if len(words) < batch_size or cursor > range_end:
                break

        result.cancelled = token.cancelled
        if result.cancelled:
            logger.info(f"Enrichment paused after {result.processed} words")
        else:
            logger.info(f"Enrichment finished: {result.enriched} enriched, {result.failed} failed")
        return result

    async def regenerate_word(self, word_id: int) -> Word:
        """Regenerate the enrichment of a single word."""
        word = self.db.query(Word).filter(Word.id == word_id).first()
        if not word:
            raise ValueError(f"Word {word_id} not found")
        if not await self._enrich(word):
            raise EnrichmentError(f"Regeneration failed for {word.headword!r}")
        self.db.refresh(word)
        return word
