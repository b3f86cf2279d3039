"""
Intent pipeline orchestrator.
Ties together fast-path rules -> optional Gemini call -> catch-all scraping
-> clarification for a single query, with a context-aware variant for
multi-turn sessions.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from querymap.clarify import annotate
from querymap.config import get_settings
from querymap.context import SessionContext, merge_follow_up, rewrite_follow_up
from querymap.extractor import PatternExtractor
from querymap.llm import GeminiIntentClassifier, RemoteClassifierError, is_complex_query
from querymap.models import IntentResult

logger = logging.getLogger(__name__)


class IntentPipeline:
    def __init__(self, extractor: Optional[PatternExtractor] = None,
                 classifier: Optional[GeminiIntentClassifier] = None):
        self.extractor = extractor or PatternExtractor()
        self.classifier = classifier if classifier is not None else GeminiIntentClassifier()
        self.complex_min_words = get_settings().extraction.complex_min_words

    async def process(self, text: str) -> IntentResult:
        """
        Interpret one query. Never raises for user input: unexpected errors
        are logged and answered with the default result.
        """
        start = time.monotonic()
        result = annotate(await self._extract_safe(text), text)
        self._log_result(text, result, start)
        return result

    async def process_with_context(self, text: str, session: SessionContext) -> IntentResult:
        """
        Interpret a query as a possible follow-up to the session's previous
        turn, then record it as the session's latest turn.
        """
        start = time.monotonic()
        rewritten, kind = rewrite_follow_up(text, session)
        result = await self._extract_safe(rewritten)
        result = merge_follow_up(result, kind, session)
        # Clarification looks at what the user actually typed
        result = annotate(result, text)
        session.record(text, result)
        self._log_result(text, result, start, turn=session.turn_count)
        return result

    async def _extract_safe(self, text: str) -> IntentResult:
        try:
            return await self._extract(text)
        except Exception:
            logger.exception("Error processing query %r", text)
            return self.extractor.default_result()

    async def _extract(self, text: str) -> IntentResult:
        # ── Tier 1: fast-path rules ───────────────────────────────────
        fast = self.extractor.match_fast(text)
        if fast is not None:
            return fast

        # ── Tier 2: remote classifier for complex queries ─────────────
        if self.classifier.enabled and is_complex_query(text, self.complex_min_words):
            try:
                return await self.classifier.classify(text)
            except RemoteClassifierError as e:
                logger.warning("Remote classifier failed, falling back to patterns: %s", e)
        elif self.classifier.enabled:
            logger.debug("Query is simple, skipping remote classifier")

        # ── Tier 3: catch-all ─────────────────────────────────────────
        return self.extractor.catch_all(text)

    @staticmethod
    def _log_result(text: str, result: IntentResult, start: float, turn: Optional[int] = None) -> None:
        logger.info(
            "Query %r -> %s %s via %s/%s in %.1fms%s",
            text, result.intent_type.value, result.location_names,
            result.source.value, result.matched_rule,
            (time.monotonic() - start) * 1000,
            f" (turn {turn})" if turn is not None else "",
        )


# Singleton pipeline instance
_pipeline: Optional[IntentPipeline] = None


def get_pipeline() -> IntentPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = IntentPipeline()
    return _pipeline
