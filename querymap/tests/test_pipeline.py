"""
Tests for the intent pipeline and multi-turn session handling.
The remote classifier is a stub or a Gemini client on httpx.MockTransport; no network.
"""

from __future__ import annotations

import asyncio
import json

import httpx

from querymap.config import LLMConfig
from querymap.context import (
    SessionContext,
    SessionStore,
    classify_follow_up,
    merge_follow_up,
    rewrite_follow_up,
)
from querymap.extractor import PatternExtractor
from querymap.llm import ClassifierTimeout, GeminiIntentClassifier
from querymap.models import (
    ExtractionSource,
    IntentResult,
    IntentType,
    Location,
    VisualizationType,
)
from querymap.pipeline import IntentPipeline

COMPLEX_QUERY = "Tell me about the famous landmarks in Kyoto and Osaka"


class StubClassifier:
    def __init__(self, enabled: bool = True, result: IntentResult = None, error: Exception = None):
        self.enabled = enabled
        self.result = result
        self.error = error
        self.calls: list[str] = []

    async def classify(self, text: str) -> IntentResult:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return self.result


def _llm_result() -> IntentResult:
    return IntentResult(
        intent_type=IntentType.LOCATIONS,
        locations=[Location(name="Kyoto"), Location(name="Osaka")],
        visualization_type=VisualizationType.SEQUENCE,
        source=ExtractionSource.LLM,
        matched_rule="gemini",
    )


def _pipeline(classifier: StubClassifier = None) -> IntentPipeline:
    return IntentPipeline(PatternExtractor(), classifier or StubClassifier(enabled=False))


class TestPipeline:
    def test_fast_path_skips_classifier(self):
        classifier = StubClassifier(result=_llm_result())
        result = asyncio.run(_pipeline(classifier).process("Route from Paris to London"))
        assert result.location_names == ["Paris", "London"]
        assert classifier.calls == []

    def test_complex_query_uses_classifier(self):
        classifier = StubClassifier(result=_llm_result())
        result = asyncio.run(_pipeline(classifier).process(COMPLEX_QUERY))
        assert classifier.calls == [COMPLEX_QUERY]
        assert result.source == ExtractionSource.LLM
        assert result.location_names == ["Kyoto", "Osaka"]

    def test_simple_unmatched_query_skips_classifier(self):
        classifier = StubClassifier(result=_llm_result())
        result = asyncio.run(_pipeline(classifier).process("Display Paris and Berlin"))
        assert classifier.calls == []
        assert result.matched_rule == "scrape"

    def test_classifier_timeout_matches_pattern_chain(self):
        failing = StubClassifier(error=ClassifierTimeout("slow"))
        with_timeout = asyncio.run(_pipeline(failing).process(COMPLEX_QUERY))
        without = asyncio.run(_pipeline().process(COMPLEX_QUERY))
        assert failing.calls == [COMPLEX_QUERY]
        assert with_timeout == without
        assert with_timeout.source == ExtractionSource.PATTERN

    def test_blank_remote_name_falls_back_to_patterns(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request.url.path)
            answer = json.dumps({"intentType": "locations", "locations": [{"name": " "}]})
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": answer}]}}]})

        config = LLMConfig(enabled=True, api_key="key", base_url="https://gemini.test/v1beta", timeout=1.0)
        gemini = GeminiIntentClassifier(config, transport=httpx.MockTransport(handler))
        result = asyncio.run(IntentPipeline(PatternExtractor(), gemini).process(COMPLEX_QUERY))
        assert len(calls) == 1
        assert result.source == ExtractionSource.PATTERN
        assert result == asyncio.run(_pipeline().process(COMPLEX_QUERY))

    def test_unexpected_error_gives_default(self):
        broken = StubClassifier(error=RuntimeError("bug"))
        result = asyncio.run(_pipeline(broken).process(COMPLEX_QUERY))
        assert result.source == ExtractionSource.DEFAULT

    def test_result_is_annotated(self):
        result = asyncio.run(_pipeline().process("Portland to Seattle"))
        assert result.needs_clarification is True


class TestFollowUps:
    def test_classify(self):
        assert classify_follow_up("and Berlin") == "addition"
        assert classify_follow_up("then to Denver") == "continuation"
        assert classify_follow_up("what about Rome?") == "question"
        assert classify_follow_up("actually make it walking") == "refinement"
        assert classify_follow_up("zoom into that area") == "reference"
        assert classify_follow_up("Paris to London") is None

    def test_no_rewrite_without_history(self):
        assert rewrite_follow_up("and Berlin", SessionContext.create()) == ("and Berlin", None)

    def test_rewrites(self):
        session = SessionContext.create("s")
        session.record("Paris to London", PatternExtractor().extract("Paris to London"))
        assert rewrite_follow_up("and Berlin", session) == ("Berlin", "addition")
        assert rewrite_follow_up("then to Denver", session) == ("from London then to Denver", "continuation")
        assert rewrite_follow_up("what about there?", session) == ("what about Paris and London?", "question")

    def test_merge_requires_previous_route(self):
        session = SessionContext.create()
        session.record("Show me Tokyo", PatternExtractor().extract("Show me Tokyo"))
        result = PatternExtractor().extract("Berlin")
        assert merge_follow_up(result, "addition", session) is result

    def test_conversation(self):
        pipeline = _pipeline()
        session = SessionContext.create("abc")

        async def scenario():
            first = await pipeline.process_with_context("Paris to London", session)
            second = await pipeline.process_with_context("and Berlin", session)
            third = await pipeline.process_with_context("then to Denver", session)
            return first, second, third

        first, second, third = asyncio.run(scenario())
        assert first.location_names == ["Paris", "London"]
        assert second.location_names == ["Paris", "London", "Berlin"]
        assert second.source == ExtractionSource.CONTEXT
        assert second.matched_rule == "follow_up:addition"
        assert second.message == "Continuing route with Berlin"
        assert third.location_names == ["Paris", "London", "Berlin", "Denver"]
        assert third.matched_rule == "follow_up:continuation"
        assert session.turn_count == 3
        assert session.last_query == "then to Denver"

    def test_reset(self):
        session = SessionContext.create()
        asyncio.run(_pipeline().process_with_context("Paris to London", session))
        session.reset()
        assert session.turn_count == 0
        assert session.last_locations == []
        assert rewrite_follow_up("and Berlin", session) == ("and Berlin", None)


class TestSessionStore:
    def test_get_creates_and_reuses(self):
        store = SessionStore(max_sessions=5)
        assert store.get("a") is store.get("a")
        assert len(store) == 1

    def test_evicts_least_recently_used(self):
        store = SessionStore(max_sessions=2)
        a = store.get("a")
        store.get("b")
        store.get("a")
        store.get("c")
        assert store.get("a") is a
        assert len(store) == 2
        assert store.reset("b") is False

    def test_reset(self):
        store = SessionStore()
        session = store.get("a")
        session.turn_count = 4
        assert store.reset("a") is True
        assert session.turn_count == 0
        assert store.reset("missing") is False
