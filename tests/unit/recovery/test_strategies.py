"""Unit tests for the built-in recovery strategies, one at a time."""

from __future__ import annotations

import time

import pytest

from castor.errors import ParseError
from castor.pipeline.recovery import (
    FallbackSynthesis,
    create_strategy_registry,
    default_strategies,
    fallback_synthesis_strategy,
    minimal_fields_strategy,
    partial_salvage_strategy,
    regex_cleaning_strategy,
    targeted_fields_strategy,
)
from castor.pipeline.recovery.strategies import (
    clean_content,
    close_open_structures,
    strip_trailing_commas,
)
from castor.types import CanonicalResult

pytestmark = pytest.mark.unit


def test_default_chain_order():
    assert [s.name for s in default_strategies()] == [
        "targeted_fields",
        "minimal_fields",
        "regex_cleaning",
        "partial_salvage",
        "fallback_synthesis",
    ]
    assert set(create_strategy_registry()) == {s.name for s in default_strategies()}


class TestTargetedFields:
    recover = staticmethod(targeted_fields_strategy().recover)

    def test_extracts_media_and_hints_from_truncated_envelope(self):
        content = (
            '{"success": false, "message": "partial \\"ok\\"", '
            '"data": {"image_url": "https://x.io/y.png", "caption": "cat", "size": "lg'
        )

        result = self.recover(content)

        assert result.success is False
        assert result.message == 'partial "ok"'
        assert result.data == {"image_url": "https://x.io/y.png", "caption": "cat"}

    def test_defaults_to_success_without_flag(self):
        result = self.recover('garbage "image_url": "abc" more garbage')

        assert result.success is True
        assert result.message == "Media recovered from malformed tool output"
        assert result.data == {"image_url": "abc"}

    def test_finds_bare_base64_data_url(self):
        result = self.recover("oops data:image/png;base64,iVBOR= trailing")

        assert result.data["image_url"] == "data:image/png;base64,iVBOR="

    def test_fails_without_media_reference(self):
        with pytest.raises(ParseError):
            self.recover('{"success": true, "message": "no media"')


class TestMinimalFields:
    recover = staticmethod(minimal_fields_strategy().recover)

    def test_keeps_only_flag_and_message(self):
        result = self.recover('{"success": "true", "message": "ok", "data": {"a": ')

        assert result == CanonicalResult(True, "ok", {})

    @pytest.mark.parametrize(
        ("content", "message"),
        [('{"success": true', "Tool executed"), ('{"success": false', "Tool execution failed")],
    )
    def test_default_messages(self, content, message):
        assert self.recover(content).message == message

    def test_fails_without_success_flag(self):
        with pytest.raises(ParseError):
            self.recover('{"message": "hello"')


class TestRegexCleaning:
    recover = staticmethod(regex_cleaning_strategy().recover)

    def test_strips_fences_and_trailing_commas(self):
        content = '```json\n{"success": true, "data": {"a": 1,}}\n```'

        assert self.recover(content) == CanonicalResult(True, "Tool executed", {"a": 1})

    def test_terminates_unterminated_string(self):
        result = self.recover('{"success": true, "message": "cut off here')

        assert result.message == "cut off here"

    def test_removes_control_characters_and_leading_noise(self):
        result = self.recover('log line\x00\x07 {"success": true, "message": "ok"}')

        assert result == CanonicalResult(True, "ok", {})

    def test_commas_inside_strings_are_kept(self):
        result = self.recover('{"success": true, "message": "a, }", "data": {"b": ",]",}')

        assert result.message == "a, }"
        assert result.data == {"b": ",]"}

    def test_fails_when_cleaning_is_not_enough(self):
        with pytest.raises(ParseError):
            self.recover('{"a": tru')


class TestPartialSalvage:
    recover = staticmethod(partial_salvage_strategy().recover)

    def test_complete_object_followed_by_garbage(self):
        result = self.recover('{"success": true, "message": "ok"} <<trailing junk>>')

        assert result == CanonicalResult(True, "ok", {})

    def test_drops_unparseable_tail(self):
        result = self.recover('{"success": true, "data": {"rows": [1, 2, 3], "bad": tru')

        assert result.success is True
        assert result.data == {"rows": [1, 2, 3]}

    def test_fails_without_object(self):
        with pytest.raises(ParseError):
            self.recover("[1, 2, 3")

    def test_nested_truncation_closes_every_open_container(self):
        result = self.recover('{"data": {"rows": [[1, 2], [3, ')

        assert result.data == {"rows": [[1, 2], [3]]}

    def test_large_truncated_body_keeps_the_valid_prefix(self):
        content = '{"success": true, "data": {"rows": [' + "1, " * 200_000 + '"x": 1'

        started = time.perf_counter()
        result = self.recover(content)
        elapsed = time.perf_counter() - started

        assert result.success is True
        assert len(result.data["rows"]) == 200_000
        assert elapsed < 5.0

    def test_large_malformed_body_fails_quickly(self):
        content = '{"a" x, ' + '"k": 1, ' * 100_000

        started = time.perf_counter()
        with pytest.raises(ParseError):
            self.recover(content)

        assert time.perf_counter() - started < 5.0


class TestFallbackSynthesis:
    def test_never_fails_and_keeps_content_verbatim(self):
        recover = fallback_synthesis_strategy().recover
        for content in ["", "plain text", "{", "\x00\x01"]:
            result = recover(content)
            assert result.success is False
            assert result.message == content
            assert result.data == {"recovery_attempted": True}

    def test_tolerates_non_string_input(self):
        assert FallbackSynthesis().synthesize(42).message == "42"  # type: ignore[arg-type]


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('{"a": [1, 2', '{"a": [1, 2]}'),
        ('{"a": "x', '{"a": "x"}'),
        ('{"a": ', '{"a": null}'),
        ('{"a": 1, ', '{"a": 1}'),
        ('{"a": "x\\', '{"a": "x"}'),
    ],
)
def test_close_open_structures(text, expected):
    assert close_open_structures(text) == expected


def test_clean_content_normalizes_newlines():
    assert clean_content('{"a":\r\n1}') == '{"a":  1}'


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ('{"a": [1, 2, ], "b": 3,}', '{"a": [1, 2 ], "b": 3}'),
        ('{"a": "x, }"}', '{"a": "x, }"}'),
        ('{"a": "q\\",]",}', '{"a": "q\\",]"}'),
        ('[1,,]', '[1,]'),
        ('{"a": 1}', '{"a": 1}'),
    ],
)
def test_strip_trailing_commas_skips_string_contents(text, expected):
    assert strip_trailing_commas(text) == expected
