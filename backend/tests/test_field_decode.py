"""Tests for decode_list_field: the list-field decoder used by profiles.

Pure Python, no I/O.  The decoder must never raise.
"""

import pytest

from field_decode import decode_list_field


class TestShapes:
    def test_array(self):
        assert decode_list_field(["Banking", "Finance"]) == ["Banking", "Finance"]

    def test_tuple(self):
        assert decode_list_field(("Banking",)) == ["Banking"]

    def test_json_string(self):
        assert decode_list_field('["Banking", "Finance"]') == ["Banking", "Finance"]

    def test_csv_string(self):
        assert decode_list_field("Banking, Finance , Marketing") == ["Banking", "Finance", "Marketing"]

    def test_bare_word(self):
        assert decode_list_field("Banking") == ["Banking"]

    def test_number_scalar(self):
        assert decode_list_field(42) == ["42"]

    def test_bytes(self):
        assert decode_list_field(b'["Data Science"]') == ["Data Science"]

    def test_json_object_values(self):
        assert decode_list_field('{"0": "Banking", "1": "Finance"}') == ["Banking", "Finance"]

    def test_json_encoded_csv_string(self):
        assert decode_list_field('"Banking, Finance"') == ["Banking", "Finance"]


class TestDegenerateInput:
    @pytest.mark.parametrize("raw", [None, "", "   ", [], "[]", ["", " "], '[""]', '["  ", null]'])
    def test_empty_inputs_decode_to_empty_list(self, raw):
        assert decode_list_field(raw) == []

    def test_malformed_json_falls_through_to_csv(self):
        assert decode_list_field('[Banking, Finance') == ["[Banking", "Finance"]

    def test_blank_array_items_dropped(self):
        assert decode_list_field(["Banking", "", None, "  "]) == ["Banking"]

    @pytest.mark.parametrize("raw", [
        ["x"], '["x"]', "x, y", "x", 3.5, True, b"x",
    ])
    def test_nonempty_input_yields_at_least_one_element(self, raw):
        result = decode_list_field(raw)
        assert len(result) >= 1
        assert all(isinstance(item, str) for item in result)

    def test_unprintable_object_does_not_raise(self):
        class Weird:
            def __str__(self):
                raise RuntimeError("no str")

            def __repr__(self):
                return "<Weird>"

        assert decode_list_field(Weird()) == ["<Weird>"]
