"""Tests for recovering JSON objects from model text."""

import pytest

from pitchscan.errors import ExtractionError
from pitchscan.services.json_extractor import (
    balanced_object,
    extract_json,
    fenced_code_block,
    outermost_braces,
    strip_noise,
)


class TestStrategies:
    """Tests for individual extraction strategies."""

    def test_outermost_braces(self):
        value, ok = outermost_braces('Result: {"a": {"b": 1}} done')
        assert ok
        assert value == {"a": {"b": 1}}

    def test_outermost_braces_spanning_two_objects(self):
        """Test two separate objects defeat the outermost-brace strategy."""
        assert outermost_braces('{"a": 1} and {"b": 2}') == (None, False)

    def test_fenced_code_block(self):
        value, ok = fenced_code_block('Here:\n```json\n{"players": []}\n```\nThanks')
        assert ok
        assert value == {"players": []}

    def test_untagged_fence(self):
        value, ok = fenced_code_block('```\n{"x": 1}\n```')
        assert ok
        assert value == {"x": 1}

    def test_balanced_object(self):
        """Test the first balanced object is used when several are present."""
        value, ok = balanced_object('{"a": 1} and {"b": 2}')
        assert ok
        assert value == {"a": 1}

    def test_strip_noise(self):
        value, ok = strip_noise('Sure! {"a": 1} hope that helps }')
        assert ok
        assert value == {"a": 1}

    def test_arrays_are_not_objects(self):
        assert outermost_braces("[1, 2, 3]") == (None, False)
        assert fenced_code_block("```json\n[1, 2]\n```") == (None, False)


class TestExtractJson:
    """Tests for the prioritized extraction."""

    def test_plain_object(self):
        assert extract_json('{"players": [{"id": 1}]}') == {"players": [{"id": 1}]}

    def test_prose_and_fence(self):
        """Test an object wrapped in prose and a code fence is recovered."""
        text = 'Here is the analysis:\n```json\n{"teamColors": {"home": "Blue"}, "players": []}\n```\nLet me know!'
        assert extract_json(text) == {"teamColors": {"home": "Blue"}, "players": []}

    def test_two_objects_falls_through(self):
        """Test later strategies recover when the first one fails."""
        assert extract_json('{"a": 1} {"b": 2}') == {"a": 1}

    @pytest.mark.parametrize("text", ["", "   ", "no json here", "{not: valid}", "[1, 2]"])
    def test_failure_keeps_raw_text(self, text):
        """Test failures raise with the original text attached."""
        with pytest.raises(ExtractionError) as exc_info:
            extract_json(text)
        assert exc_info.value.raw_text == text

    def test_custom_strategies(self):
        """Test callers can replace the strategy list."""
        always = lambda text: ({"custom": True}, True)  # noqa: E731
        assert extract_json("anything", strategies=[always]) == {"custom": True}

    def test_custom_strategies_in_order(self):
        calls = []

        def failing(text):
            calls.append("failing")
            return None, False

        def succeeding(text):
            calls.append("succeeding")
            return {"ok": 1}, True

        assert extract_json("x", strategies=[failing, succeeding]) == {"ok": 1}
        assert calls == ["failing", "succeeding"]

    def test_deep_nesting_does_not_escape(self):
        """Test pathological nesting is handled as a strategy failure."""
        text = "Here:" + '{"a":' * 100000 + "1" + "}" * 100000
        # Only the innermost balanced pair parses.
        assert extract_json(text) == {"a": {"a": 1}}

    def test_oversized_integer_literal(self):
        """Test a runaway digit string raises ExtractionError."""
        text = '{"players":[{"id":1,"x":' + "9" * 5000 + "}]}"
        with pytest.raises(ExtractionError) as exc_info:
            extract_json(text)
        assert exc_info.value.raw_text == text
