"""Unit tests for analyzer pipelines and filters."""

import pytest

from research_search.search import analyzers
from research_search.search.analyzers import (
    AnalyzerPipeline,
    LowercaseFilter,
    MinLengthFilter,
    RegexTokenizer,
    StandardAnalyzer,
    StopFilter,
    Token,
    analyze_terms,
    get_analyzer,
    strip_html,
)


@pytest.mark.unit
class TestToken:
    def test_copy_with_does_not_share_attributes(self):
        token = Token(text="Policy", position=1, start_char=4, end_char=10, attributes={"field": "title"})

        clone = token.copy_with(text="policy")
        clone.attributes["field"] = "content"

        assert clone.text == "policy"
        assert clone.position == 1
        assert token.text == "Policy"
        assert token.attributes["field"] == "title"


@pytest.mark.unit
class TestStripHtml:
    def test_removes_tags_and_decodes_entities(self):
        assert strip_html("<p>Farm&nbsp;<b>output</b> &amp; trade</p>") == "Farm output & trade"

    def test_plain_text_only_collapses_whitespace(self):
        assert strip_html("  wheat\n\n and   barley ") == "wheat and barley"

    def test_empty_input(self):
        assert strip_html("") == ""


@pytest.mark.unit
class TestRegexTokenizer:
    def test_emits_tokens_with_offsets(self):
        tokens = list(RegexTokenizer()("Trade-policy, 2024"))

        assert [t.text for t in tokens] == ["Trade", "policy", "2024"]
        assert [t.position for t in tokens] == [0, 1, 2]
        assert (tokens[1].start_char, tokens[1].end_char) == (6, 12)

    def test_underscore_is_a_separator(self):
        assert [t.text for t in RegexTokenizer()("snake_case")] == ["snake", "case"]


@pytest.mark.unit
class TestFilters:
    def test_lowercase_filter(self):
        tokens = [Token("GDP", 0, 0, 3), Token("growth", 1, 4, 10)]
        assert [t.text for t in LowercaseFilter()(tokens)] == ["gdp", "growth"]

    def test_stop_filter_uses_default_list(self):
        tokens = [Token(word, i, 0, 0) for i, word in enumerate(["the", "state", "of", "trade"])]
        assert [t.text for t in StopFilter()(tokens)] == ["state", "trade"]

    def test_stop_filter_accepts_custom_list(self):
        tokens = [Token("state", 0, 0, 5), Token("the", 1, 6, 9)]
        assert [t.text for t in StopFilter(["state"])(tokens)] == ["the"]

    def test_min_length_filter(self):
        tokens = [Token("a", 0, 0, 1), Token("eu", 1, 2, 4), Token("tax", 2, 5, 8)]
        assert [t.text for t in MinLengthFilter(2)(tokens)] == ["eu", "tax"]


@pytest.mark.unit
class TestStandardAnalyzer:
    def test_normalizes_and_renumbers_positions(self):
        tokens = StandardAnalyzer()("The Policy of Agriculture!")

        assert [t.text for t in tokens] == ["policy", "agriculture"]
        assert [t.position for t in tokens] == [0, 1]

    def test_no_stemming(self):
        assert analyze_terms(StandardAnalyzer(), "policies policy") == ["policies", "policy"]

    def test_only_stop_words_yields_nothing(self):
        assert analyze_terms(StandardAnalyzer(), "the and of a") == []

    def test_markup_characters_are_separators(self):
        assert analyze_terms(StandardAnalyzer(), "<drought>/trade") == ["drought", "trade"]

    def test_entities_are_not_decoded(self):
        assert analyze_terms(StandardAnalyzer(), "Keyword &lt;drought&gt;") == ["keyword", "lt", "drought", "gt"]

    def test_escaped_word_survives_markup_stripping(self):
        text = strip_html("<p>Keyword &lt;drought&gt; here.</p>")

        assert text == "Keyword <drought> here."
        assert analyze_terms(StandardAnalyzer(), text) == ["keyword", "drought", "here"]


@pytest.mark.unit
class TestAnalyzerRegistry:
    def test_default_is_standard(self):
        assert isinstance(get_analyzer(None), StandardAnalyzer)
        assert isinstance(get_analyzer("Default"), StandardAnalyzer)

    @pytest.mark.parametrize("name", ["klingon", "keyword", "plain"])
    def test_unknown_analyzer_raises(self, name):
        with pytest.raises(ValueError, match=r"Unknown analyzer .*\['default', 'standard'\]"):
            get_analyzer(name)

    def test_registry_can_be_extended(self, monkeypatch):
        monkeypatch.setattr(analyzers, "_ANALYZER_FACTORIES", dict(analyzers._ANALYZER_FACTORIES))
        analyzers._ANALYZER_FACTORIES["upper"] = lambda: AnalyzerPipeline(RegexTokenizer())

        assert analyze_terms(get_analyzer("upper"), "Trade Policy") == ["Trade", "Policy"]
