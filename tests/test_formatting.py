"""
Tests for core.formatting helpers
"""
import pytest

from core.formatting import (
    format_private_key,
    from_base_units,
    hex_to_decimal,
    split_message,
    to_base_units,
    truncate_words,
)


class TestFormatPrivateKey:
    def test_empty_is_none(self):
        assert format_private_key("") is None
        assert format_private_key(None) is None

    def test_strips_quotes_and_whitespace(self):
        assert format_private_key('"0xabc"') == "0xabc"
        assert format_private_key("  0xabc \n") == "0xabc"

    def test_literal_newlines_are_converted(self):
        key = '"-----BEGIN KEY-----\\nabc\\n-----END KEY-----"'
        assert format_private_key(key) == "-----BEGIN KEY-----\nabc\n-----END KEY-----"

    def test_whitespace_only_is_none(self):
        assert format_private_key("   ") is None


class TestTruncateWords:
    def test_keeps_first_four_words(self):
        assert truncate_words("organic fair trade dark roast coffee") == "organic fair trade dark"

    def test_short_text_unchanged(self):
        assert truncate_words("dark roast") == "dark roast"

    def test_collapses_whitespace(self):
        assert truncate_words("  a   b  ") == "a b"


class TestHexConversion:
    def test_hex_string(self):
        assert hex_to_decimal("0x1bc16d674ec80000") == 2 * 10**18

    def test_int_passthrough(self):
        assert hex_to_decimal(42) == 42

    def test_bytes(self):
        assert hex_to_decimal(b"\x01\x00") == 256

    def test_non_hex_returned_as_is(self):
        assert hex_to_decimal("hello") == "hello"
        assert hex_to_decimal(None) is None


class TestBaseUnits:
    def test_to_base_units(self):
        assert to_base_units("1.5", 6) == 1_500_000
        assert to_base_units("0.0001", 18) == 10**14

    def test_extra_precision_truncated(self):
        assert to_base_units("1.1234567", 6) == 1_123_456

    @pytest.mark.parametrize("bad", ["abc", "", "NaN", "Infinity"])
    def test_invalid_amount(self, bad):
        with pytest.raises(ValueError):
            to_base_units(bad, 6)

    def test_from_base_units(self):
        assert from_base_units(1_500_000, 6) == "1.5"
        assert from_base_units(100 * 10**6, 6) == "100"
        assert from_base_units(0, 18) == "0"


class TestSplitMessage:
    def test_short_message_single_chunk(self):
        assert split_message("hello") == ["hello"]

    def test_long_message_split_at_newline(self):
        text = ("a" * 3000) + "\n" + ("b" * 3000)
        chunks = split_message(text)
        assert chunks == ["a" * 3000, "b" * 3000]

    def test_chunks_fit_limit(self):
        text = "x" * 10000
        chunks = split_message(text, max_length=4096)
        assert all(len(c) <= 4096 for c in chunks)
        assert "".join(chunks) == text
