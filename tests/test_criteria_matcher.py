"""Tests for the criteria matcher: field resolution, range/set/word rules, AND/OR."""
import pytest

from listingwatch.services.criteria import InvalidCriterion, WordSearch, flatten_criteria
from listingwatch.services.criteria_matcher import (
    ABSENT,
    AttachmentDetector,
    CriteriaMatcher,
    collect_field_names,
    resolve_field,
)

IMAGE = {"ID": 7, "url": "https://example.test/a.jpg", "alt": "", "width": 800, "height": 600}


@pytest.fixture()
def matcher():
    return CriteriaMatcher(AttachmentDetector(["id", "url", "alt", "width", "height"], 3))


@pytest.mark.unit
class TestResolveField:

    def test_top_level_and_nested(self):
        attrs = {"hinta": 5, "osoite": {"kaupunki": "Espoo", "alue": {"nimi": "Tapiola"}}}
        assert resolve_field(attrs, "hinta") == 5
        assert resolve_field(attrs, "osoite.kaupunki") == "Espoo"
        assert resolve_field(attrs, "osoite.alue.nimi") == "Tapiola"

    def test_missing_segments_are_absent(self):
        attrs = {"osoite": {"kaupunki": "Espoo"}, "hinta": 5}
        assert resolve_field(attrs, "puuttuu") is ABSENT
        assert resolve_field(attrs, "osoite.katu") is ABSENT
        assert resolve_field(attrs, "hinta.arvo") is ABSENT
        assert resolve_field(None, "hinta") is ABSENT
        assert resolve_field(attrs, "") is ABSENT

    def test_null_value_is_not_absent(self):
        assert resolve_field({"hinta": None}, "hinta") is None

    def test_attachment_is_a_leaf(self):
        detector = AttachmentDetector(["id", "url", "alt", "width", "height"], 3)
        attrs = {"kuva": IMAGE}
        assert resolve_field(attrs, "kuva", detector) == IMAGE
        assert resolve_field(attrs, "kuva.url", detector) is ABSENT
        # Without a detector the dict is an ordinary mapping
        assert resolve_field(attrs, "kuva.url") == IMAGE["url"]

    def test_absent_is_falsy_singleton(self):
        assert not ABSENT
        assert type(ABSENT)() is ABSENT


@pytest.mark.unit
class TestAttachmentDetector:

    def test_threshold(self):
        detector = AttachmentDetector(["id", "url", "alt", "width", "height"], 3)
        assert detector(IMAGE)
        assert detector({"url": "x", "width": 1, "height": 2})
        assert not detector({"url": "x", "alt": "y"})
        assert not detector("url")

    def test_configurable(self):
        detector = AttachmentDetector(["file", "mime"], 2)
        assert detector({"file": "a.pdf", "mime": "application/pdf"})
        assert not detector(IMAGE)


@pytest.mark.unit
class TestRangeRule:

    def test_price_range_example(self, matcher):
        criteria = flatten_criteria([{"field_path": "hinta", "kind": "range", "values": ["40000", "100000"]}])
        assert matcher.matches({"hinta": 50000}, criteria)
        assert not matcher.matches({"hinta": 300000}, criteria)

    def test_bounds_inclusive(self, matcher):
        criteria = {"hinta_min": 40000, "hinta_max": 100000}
        assert matcher.matches({"hinta": 40000}, criteria)
        assert matcher.matches({"hinta": "100000"}, criteria)
        assert not matcher.matches({"hinta": 39999.99}, criteria)

    def test_one_sided(self, matcher):
        assert matcher.matches({"hinta": 10}, {"hinta_max": 20})
        assert not matcher.matches({"hinta": 30}, {"hinta_max": 20})
        assert matcher.matches({"hinta": 30}, {"hinta_min": 20})

    def test_numeric_strings(self, matcher):
        assert matcher.matches({"hinta": "75 000"}, {"hinta_min": 50000})
        assert matcher.matches({"koko": "45,5"}, {"koko_min": 45, "koko_max": 46})

    @pytest.mark.parametrize("actual", [None, "n/a", True, [50000], {"a": 1}])
    def test_non_numeric_actual_never_matches(self, matcher, actual):
        assert not matcher.matches({"hinta": actual}, {"hinta_min": 1})

    def test_absent_field_never_matches(self, matcher):
        assert not matcher.matches({}, {"hinta_min": 1})

    def test_non_numeric_bound_never_matches(self, matcher):
        assert not matcher.matches({"hinta": 5}, {"hinta_min": "cheap"})


@pytest.mark.unit
class TestSetRule:

    def test_city_example(self, matcher):
        criteria = {"sijainti": ["Helsinki", "Espoo"]}
        assert matcher.matches({"sijainti": "Helsinki"}, criteria)
        assert not matcher.matches({"sijainti": "Tampere"}, criteria)
        assert matcher.matches({"sijainti": "HELSINKI "}, criteria)

    def test_accents_normalized(self, matcher):
        assert matcher.matches({"maakunta": "paijat hame"}, {"maakunta": "Päijät-Häme"})

    def test_list_actual_intersects(self, matcher):
        assert matcher.matches({"varusteet": ["Sauna", "Parveke"]}, {"varusteet": "sauna"})
        assert not matcher.matches({"varusteet": ["Hissi"]}, {"varusteet": ["sauna", "parveke"]})
        assert not matcher.matches({"varusteet": []}, {"varusteet": "sauna"})

    def test_scalar_types(self, matcher):
        assert matcher.matches({"huoneet": 3}, {"huoneet": "3"})
        assert matcher.matches({"uusi": True}, {"uusi": "true"})

    def test_mapping_or_missing_actual_never_matches(self, matcher):
        assert not matcher.matches({"osoite": {"kaupunki": "Espoo"}}, {"osoite": "Espoo"})
        assert not matcher.matches({}, {"sijainti": "Espoo"})
        assert not matcher.matches({"sijainti": None}, {"sijainti": "Espoo"})

    def test_nested_path(self, matcher):
        assert matcher.matches({"osoite": {"kaupunki": "Espoo"}}, {"osoite.kaupunki": "espoo"})


@pytest.mark.unit
class TestWordSearch:

    @pytest.mark.parametrize("title", ["Kaksi talot", "Asunto talossa", "Iso talo"])
    def test_prefix_wildcard_matches(self, matcher, title):
        assert matcher.matches({}, {"__word_search": WordSearch(("talo*",))}, title=title)

    def test_prefix_is_token_based(self, matcher):
        assert not matcher.matches({}, {"__word_search": WordSearch(("talo*",))}, title="Ravintola keskustassa")

    def test_whole_word_without_wildcard(self, matcher):
        criteria = {"__word_search": WordSearch(("talo",))}
        assert matcher.matches({}, criteria, title="Iso talo")
        assert not matcher.matches({}, criteria, title="Iso talossa")

    def test_searches_attribute_text(self, matcher):
        attrs = {"kuvaus": "Rauhallinen omakotitalo", "lisatiedot": {"piha": "Iso piha"}, "kuva": IMAGE}
        assert matcher.matches(attrs, {"__word_search": WordSearch(("piha",))}, title="")
        # Attachment text is not searched
        assert not matcher.matches(attrs, {"__word_search": WordSearch(("example",))}, title="")

    def test_terms_are_ored(self, matcher):
        assert matcher.matches({}, {"__word_search": WordSearch(("mökki", "sauna"))}, title="Oma sauna")

    def test_field_word_search(self, matcher):
        criteria = {"kuvaus": WordSearch(("meri*",))}
        assert matcher.matches({"kuvaus": "Merinäköala"}, criteria)
        assert not matcher.matches({"otsikko": "Merinäköala"}, criteria)

    def test_plain_value_under_sentinel_key(self, matcher):
        assert matcher.matches({}, {"__word_search": "talo*"}, title="talot")

    @pytest.mark.parametrize("term, title", [
        ("rivi-talo", "Uusi rivi-talo"),
        ("talo,", "Iso talo, hyvä sijainti"),
        ("3h+k", "Valoisa 3h+k parvekkeella"),
        ("rivi-ta*", "Uusi rivi-talo"),
    ])
    def test_punctuated_terms_match(self, matcher, term, title):
        assert matcher.matches({}, {"__word_search": WordSearch((term,))}, title=title)

    def test_multi_word_term_needs_adjacent_words(self, matcher):
        criteria = {"__word_search": WordSearch(("rivi-talo",))}
        assert matcher.matches({}, criteria, title="Rivi talo")
        assert not matcher.matches({}, criteria, title="Talo ja rivi")

    def test_punctuation_only_term_never_matches(self, matcher):
        assert not matcher.matches({}, {"__word_search": WordSearch(("--", "*"))}, title="Iso talo")


@pytest.mark.unit
class TestCombination:

    def test_and_requires_all(self, matcher):
        criteria = {"sijainti": "Espoo", "hinta_max": 100}
        assert matcher.matches({"sijainti": "Espoo", "hinta": 50}, criteria)
        assert not matcher.matches({"sijainti": "Espoo", "hinta": 500}, criteria)

    def test_or_requires_any(self, matcher):
        criteria = {"sijainti": "Espoo", "hinta_max": 100}
        assert matcher.matches({"sijainti": "Vantaa", "hinta": 50}, criteria, logic="OR")
        assert not matcher.matches({"sijainti": "Vantaa", "hinta": 500}, criteria, logic="or")

    def test_zero_criteria_never_match(self, matcher):
        assert not matcher.matches({"a": 1}, {})
        assert not matcher.matches({"a": 1}, {}, logic="OR")

    def test_unknown_logic_falls_back_to_and(self, matcher):
        criteria = {"sijainti": "Espoo", "hinta_max": 100}
        assert not matcher.matches({"sijainti": "Espoo", "hinta": 500}, criteria, logic="XOR")

    def test_invalid_criterion_fails_and_but_not_or(self, matcher):
        criteria = {"broken": InvalidCriterion("no values"), "sijainti": "Espoo"}
        assert not matcher.matches({"sijainti": "Espoo"}, criteria)
        assert matcher.matches({"sijainti": "Espoo"}, criteria, logic="OR")

    def test_repeated_word_search_is_anded(self, matcher):
        criteria = flatten_criteria([
            {"field_path": "__word_search", "kind": "word_search", "values": ["sauna"]},
            {"field_path": "__word_search", "kind": "word_search", "values": ["talo*"]},
        ])
        assert not matcher.matches({}, criteria, title="Iso talo")
        assert matcher.matches({}, criteria, title="Iso talo ja sauna")
        assert matcher.matches({}, criteria, logic="OR", title="Iso talo")

    def test_repeated_range_on_one_field(self, matcher):
        criteria = flatten_criteria([
            {"field_path": "hinta", "kind": "range", "values": ["40000", "100000"]},
            {"field_path": "hinta", "kind": "range", "values": [">= 60000"]},
        ])
        assert not matcher.matches({"hinta": 50000}, criteria)
        assert matcher.matches({"hinta": 70000}, criteria)
        result = matcher.evaluate({"hinta": 70000}, criteria)
        assert [o.key for o in result.per_criterion] == ["hinta", "hinta#2"]
        assert all(o.actual == 70000 for o in result.per_criterion)

    def test_per_criterion_outcomes(self, matcher):
        result = matcher.evaluate(
            {"sijainti": "Espoo", "hinta": 500},
            {"sijainti": "Espoo", "hinta_min": 1, "hinta_max": 100},
        )
        assert not result.matched
        outcomes = {o.key: o for o in result.per_criterion}
        assert set(outcomes) == {"sijainti", "hinta"}
        assert outcomes["sijainti"].matched
        assert not outcomes["hinta"].matched
        assert outcomes["hinta"].kind == "range"
        assert outcomes["hinta"].actual == 500
        assert result.matched_keys() == ["sijainti"]


@pytest.mark.unit
class TestCollectFieldNames:

    def test_dotted_leaves_and_attachments(self):
        detector = AttachmentDetector(["id", "url", "alt", "width", "height"], 3)
        attrs = {"hinta": 1, "osoite": {"katu": "x", "kaupunki": "y"}, "kuva": IMAGE, "tyhja": {}}
        names = collect_field_names(attrs, detector)
        assert sorted(names) == ["hinta", "kuva", "osoite.katu", "osoite.kaupunki", "tyhja"]
