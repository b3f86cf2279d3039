"""
Tests for the clarification heuristic and entity classification.
"""

from __future__ import annotations

from querymap.clarify import (
    ALTERNATIVES,
    CONFIDENT,
    INTENT_OPTIONS,
    UNSURE,
    alternatives_for,
    annotate,
    is_ambiguous_intent,
    is_ambiguous_location,
)
from querymap.entities import classify_entity
from querymap.extractor import PatternExtractor
from querymap.models import ClarificationType, EntityType


def _interpret(text: str):
    return annotate(PatternExtractor().extract(text), text)


class TestAmbiguousLocations:
    def test_listed_names(self):
        assert is_ambiguous_location("Portland")
        assert is_ambiguous_location("springfield")
        assert not is_ambiguous_location("Paris")

    def test_short_names(self):
        assert is_ambiguous_location("Zzq")
        # Part of "rio" in the well-known city list
        assert not is_ambiguous_location("Rio")

    def test_alternatives(self):
        assert alternatives_for("Portland") == ALTERNATIVES["portland"]
        assert alternatives_for("Zzq") == ["Zzq City", "Zzq, USA", "Zzq, Europe"]
        assert alternatives_for("Gotham") == [
            "Gotham, USA", "Gotham, Europe", "Gotham (the city)", "Gotham (the landmark)",
        ]


class TestAmbiguousIntent:
    def test_show_me_is_never_ambiguous(self):
        assert not is_ambiguous_intent("Show me Paris and Rome", 2)

    def test_generic_verbs(self):
        assert is_ambiguous_intent("Display Paris and Rome", 2)
        assert is_ambiguous_intent("find Paris and Rome", 2)

    def test_many_locations(self):
        assert is_ambiguous_intent("Paris and Rome, Berlin, Madrid", 4)
        assert not is_ambiguous_intent("Paris and Rome, Berlin", 3)


class TestAnnotate:
    def test_confident_route(self):
        result = _interpret("Route from Paris to London")
        assert result.needs_clarification is False
        assert result.clarification is None
        assert result.confidence == CONFIDENT

    def test_ambiguous_location(self):
        result = _interpret("Portland to Seattle")
        assert result.needs_clarification is True
        assert result.confidence == UNSURE
        assert result.clarification.type == ClarificationType.AMBIGUOUS_LOCATIONS
        assert result.clarification.ambiguous_locations == ["Portland"]
        assert result.clarification.alternatives == ALTERNATIVES["portland"]

    def test_ambiguous_intent(self):
        result = _interpret("Display Paris and Berlin")
        assert result.needs_clarification is True
        assert result.clarification.type == ClarificationType.AMBIGUOUS_INTENT
        assert result.clarification.options == INTENT_OPTIONS

    def test_show_me_list_skips_clarification(self):
        # "Washington" alone would otherwise ask which one was meant
        result = _interpret("Show me Paris, Washington and Rome")
        assert result.needs_clarification is False
        assert result.suggested_sequence == ["Paris", "Washington", "Rome"]

    def test_original_result_untouched(self):
        raw = PatternExtractor().extract("Portland to Seattle")
        annotate(raw, "Portland to Seattle")
        assert raw.needs_clarification is False


class TestEntityTypes:
    def test_keywords(self):
        assert classify_entity("Mount Everest") == EntityType.NATURAL_FEATURE
        assert classify_entity("Byzantine Empire") == EntityType.ADMINISTRATIVE_AREA
        assert classify_entity("Central Park") == EntityType.POINT_OF_INTEREST
        assert classify_entity("Springfield") == EntityType.PLACE

    def test_country_and_city_override(self):
        assert classify_entity("France") == EntityType.COUNTRY
        assert classify_entity("Ancient Rome") == EntityType.MAJOR_CITY
