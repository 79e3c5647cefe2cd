"""Tests for prose text utilities and lenient JSON parsing."""

import pytest


class TestRoundHalfUp:
    def test_half_goes_up(self):
        from tools.text_utils import round_half_up
        assert round_half_up(2.5) == 3
        assert round_half_up(0.5) == 1

    def test_below_half_goes_down(self):
        from tools.text_utils import round_half_up
        assert round_half_up(2.49) == 2

    def test_integer_unchanged(self):
        from tools.text_utils import round_half_up
        assert round_half_up(7) == 7


class TestCountWords:
    def test_empty_string(self):
        from tools.text_utils import count_words
        assert count_words("") == 0

    def test_whitespace_only(self):
        from tools.text_utils import count_words
        assert count_words("  \n\t ") == 0

    def test_mixed_whitespace(self):
        from tools.text_utils import count_words
        assert count_words("one  two\nthree\tfour") == 4


class TestSegmentation:
    def test_trailing_terminator_counts_empty_segment(self):
        from tools.text_utils import count_sentences
        assert count_sentences("One. Two.") == 3

    def test_sentences_at_least_one(self):
        from tools.text_utils import count_sentences
        assert count_sentences("") == 1

    def test_paragraphs_split_on_blank_lines(self):
        from tools.text_utils import count_paragraphs, split_paragraphs
        text = "First para.\n\nSecond para.\n   \nThird."
        assert count_paragraphs(text) == 3
        assert split_paragraphs(text) == ["First para.", "Second para.", "Third."]


class TestDensities:
    def test_emotional_density(self):
        from tools.text_utils import emotional_density
        assert emotional_density("She felt joy and fear today") == pytest.approx(3 / 6)

    def test_emotional_density_empty(self):
        from tools.text_utils import emotional_density
        assert emotional_density("") == 0.0

    def test_quote_density(self):
        from tools.text_utils import quote_density
        assert quote_density('"Go," he said.') == pytest.approx(2 / 3)

    def test_curly_quotes_counted(self):
        from tools.text_utils import quote_density
        assert quote_density("“Go,” he said.") == pytest.approx(2 / 3)


class TestTailAndTruncate:
    def test_get_tail_short_content(self):
        from tools.text_utils import get_tail
        assert get_tail("short", 500) == "short"

    def test_get_tail_long_content(self):
        from tools.text_utils import get_tail
        assert get_tail("abcdefghij", 3) == "hij"

    def test_get_tail_empty(self):
        from tools.text_utils import get_tail
        assert get_tail("", 10) == ""

    def test_truncate_marks_cut(self):
        from tools.text_utils import truncate
        assert truncate("abcdefghij", 4) == "abcd..."
        assert truncate("abc", 4) == "abc"


class TestParseJsonResponse:
    def test_direct_json(self):
        from tools.json_utils import parse_json_response
        assert parse_json_response('{"key": "value", "num": 42}') == {"key": "value", "num": 42}

    def test_markdown_code_fence_with_lang(self):
        from tools.json_utils import parse_json_response
        assert parse_json_response('```json\n{"key": "value"}\n```') == {"key": "value"}

    def test_json_embedded_in_prose(self):
        from tools.json_utils import parse_json_response
        result = parse_json_response('Here you go: {"score": 85, "ok": true} hope it helps.')
        assert result == {"score": 85, "ok": True}

    def test_raw_newline_inside_string(self):
        from tools.json_utils import parse_json_response
        result = parse_json_response('{"text": "line one\nline two"}')
        assert result["text"] == "line one\nline two"

    def test_list_yields_first_dict(self):
        from tools.json_utils import parse_json_response
        assert parse_json_response('[{"a": 1}, {"b": 2}]') == {"a": 1}

    def test_list_of_scalars_is_wrapped(self):
        from tools.json_utils import parse_json_response
        assert parse_json_response("[1, 2, 3]") == {"items": [1, 2, 3]}

    def test_invalid_raises_value_error(self):
        from tools.json_utils import parse_json_response
        with pytest.raises(ValueError, match="Failed to parse"):
            parse_json_response("definitely not json")

    def test_try_parse_json_returns_default(self):
        from tools.json_utils import try_parse_json
        assert try_parse_json("nope", {"fallback": True}) == {"fallback": True}
