"""
Tests for rule-based intent extraction.
Pure regex / gazetteer work, no network required.
"""

from __future__ import annotations

import pytest

from querymap.extractor import (
    DEFAULT_LOCATIONS,
    ExtractionRule,
    PatternExtractor,
    RuleMatch,
    canonical_name,
    clean_waypoint,
    detect_preferences,
    detect_travel_mode,
    display_name,
    informational_target,
)
from querymap.models import ExtractionSource, IntentType, TravelMode, VisualizationType


@pytest.fixture
def extractor():
    return PatternExtractor()


class TestHelpers:
    def test_travel_mode(self):
        assert detect_travel_mode("walk from A to B") == TravelMode.WALKING
        assert detect_travel_mode("bike ride to the lake") == TravelMode.CYCLING
        assert detect_travel_mode("Boston to New York by train") == TravelMode.TRANSIT
        assert detect_travel_mode("Boston to New York") == TravelMode.DRIVING

    def test_preferences(self):
        assert detect_preferences("scenic route avoiding tolls") == ["avoid tolls", "scenic route"]
        assert detect_preferences("no highways please") == ["avoid highways"]
        assert detect_preferences("Paris to London") == []

    def test_clean_waypoint(self):
        assert clean_waypoint("Chicago avoiding highways") == "Chicago"
        assert clean_waypoint("Seattle please") == "Seattle"
        assert clean_waypoint("Drive from Denver") == "Denver"
        assert clean_waypoint("Portland by car") == "Portland"

    def test_display_name(self):
        assert display_name("ancient Rome") == "Ancient Rome"
        assert display_name("statue of liberty") == "Statue of Liberty"

    def test_canonical_name(self):
        assert canonical_name("nyc") == "New York"
        assert canonical_name("LA") == "Los Angeles"
        assert canonical_name("paris") == "Paris"

    def test_informational_target(self):
        assert informational_target("Historical sites in ancient Rome") == "Ancient Rome"
        assert informational_target("Things to do in Paris") == "Paris"
        assert informational_target("Visit Paris and Rome") is None


class TestFastRules:
    def test_route_from_to(self, extractor):
        result = extractor.extract("Route from Paris to London")
        assert result.intent_type == IntentType.ROUTE
        assert result.location_names == ["Paris", "London"]
        assert result.matched_rule == "route_from_to"
        assert result.travel_mode == TravelMode.DRIVING

    def test_bare_to(self, extractor):
        result = extractor.extract("Paris to London")
        assert result.intent_type == IntentType.ROUTE
        assert result.location_names == ["Paris", "London"]
        assert result.suggested_sequence == ["Paris", "London"]
        assert result.matched_rule == "bare_to"

    @pytest.mark.parametrize("a,b", [
        ("Boston", "Chicago"),
        ("Kyoto", "Osaka"),
        ("Santa Fe", "El Paso"),
        ("Lyon", "Marseille"),
    ])
    def test_a_to_b(self, extractor, a, b):
        result = extractor.extract(f"{a} to {b}")
        assert result.intent_type == IntentType.ROUTE
        assert result.location_names == [a, b]

    def test_intercontinental_pair(self, extractor):
        result = extractor.extract("NYC to London")
        assert result.location_names == ["New York", "London"]
        assert result.matched_rule == "intercontinental_pair"

    def test_intercontinental_names_must_be_whole(self, extractor):
        result = extractor.extract("Paris to La Rochelle")
        assert result.location_names == ["Paris", "La Rochelle"]
        assert result.matched_rule == "bare_to"

    def test_chain_containing_a_known_pair_keeps_every_stop(self, extractor):
        result = extractor.extract("From Berlin to Paris to New York to Boston")
        assert result.location_names == ["Berlin", "Paris", "New York", "Boston"]
        assert result.matched_rule == "from_to_chain"

    def test_intercontinental_with_mode_phrase(self, extractor):
        result = extractor.extract("Fly from NYC to Tokyo")
        assert result.location_names == ["New York", "Tokyo"]
        assert result.matched_rule == "intercontinental_pair"

    def test_from_to_chain_with_preferences(self, extractor):
        result = extractor.extract("From Boston to New York to Washington avoiding tolls")
        assert result.intent_type == IntentType.ROUTE
        assert result.location_names == ["Boston", "New York", "Washington"]
        assert result.preferences == ["avoid tolls"]
        assert result.matched_rule == "from_to_chain"

    def test_walking_route(self, extractor):
        result = extractor.extract("Walk from Central Park to Times Square")
        assert result.location_names == ["Central Park", "Times Square"]
        assert result.travel_mode == TravelMode.WALKING

    def test_show_me_list_keeps_order(self, extractor):
        result = extractor.extract("Show me Paris, Berlin and Rome")
        assert result.intent_type == IntentType.ROUTE
        assert result.suggested_sequence == ["Paris", "Berlin", "Rome"]
        assert result.skip_clarification is True
        assert result.matched_rule == "show_me_list"

    def test_show_me_single(self, extractor):
        result = extractor.extract("Show me Tokyo")
        assert result.intent_type == IntentType.LOCATIONS
        assert result.location_names == ["Tokyo"]

    def test_informational(self, extractor):
        result = extractor.extract("Historical sites in ancient Rome")
        assert result.intent_type == IntentType.LOCATIONS
        assert result.location_names == ["Ancient Rome"]
        assert result.matched_rule == "informational"

    def test_things_to_do_is_not_a_route(self, extractor):
        result = extractor.extract("Things to do in Paris")
        assert result.intent_type == IntentType.LOCATIONS
        assert result.location_names == ["Paris"]

    def test_custom_rule_table(self):
        rule = ExtractionRule(
            "always_tokyo", 1,
            lambda text, config: RuleMatch(IntentType.LOCATIONS, ["Tokyo"], "Tokyo it is"),
        )
        result = PatternExtractor(rules=[rule]).match_fast("anything at all")
        assert result.location_names == ["Tokyo"]
        assert result.matched_rule == "always_tokyo"

    def test_no_fast_match(self, extractor):
        assert extractor.match_fast("What's the distance between Boston and Chicago?") is None


class TestCatchAll:
    def test_between(self, extractor):
        result = extractor.extract("What's the distance between Boston and Chicago?")
        assert result.intent_type == IntentType.ROUTE
        assert result.location_names == ["Boston", "Chicago"]
        assert result.matched_rule == "between"

    def test_scraped_names_get_coordinates(self, extractor):
        result = extractor.extract("Display Paris and Berlin")
        assert result.intent_type == IntentType.ROUTE
        assert result.location_names == ["Paris", "Berlin"]
        assert result.locations[0].coordinates == (2.3522, 48.8566)
        assert result.matched_rule == "scrape"

    def test_dated_paragraph_is_timeline(self, extractor):
        text = (
            "The Ottoman Empire captured Constantinople in 1453. "
            "Later the empire expanded toward Vienna in 1529. "
            "Its armies were finally turned back there."
        )
        result = extractor.extract(text)
        assert result.intent_type == IntentType.LOCATIONS
        assert result.visualization_type == VisualizationType.TIMELINE
        assert result.location_names == ["Ottoman Empire", "Constantinople", "Vienna"]
        by_name = {loc.name: loc for loc in result.locations}
        assert by_name["Constantinople"].time_context == "1453"
        assert by_name["Vienna"].time_context == "1529"

    def test_undated_paragraph_is_region(self, extractor):
        text = (
            "Merchants carried silk from China across Persia and into the Mediterranean world. "
            "Caravans stopped in many towns along the way. "
            "The trade shaped every culture it touched."
        )
        result = extractor.extract(text)
        assert result.visualization_type == VisualizationType.REGION
        assert result.location_names == ["China", "Persia", "Mediterranean"]
        assert result.intent_type == IntentType.LOCATIONS

    def test_unknown_proper_noun(self, extractor):
        result = extractor.extract("hotels near Timbuktu")
        assert result.location_names == ["Timbuktu"]
        assert result.locations[0].coordinates is None

    def test_default_result(self, extractor):
        result = extractor.extract("asdf qwerty")
        assert result.source == ExtractionSource.DEFAULT
        assert result.location_names == list(DEFAULT_LOCATIONS)
        assert result.intent_type == IntentType.LOCATIONS

    def test_empty_text(self, extractor):
        assert extractor.extract("   ").source == ExtractionSource.DEFAULT
