"""Tests for the record case transforms."""

import pytest

from stepline_io.transforms import FieldCaseTransform, lowercase, uppercase
from stepline_kernel.exceptions import TransformError


class TestFieldCaseTransform:
    def test_uppercase_selected_fields(self):
        record = {"first_name": "Jill", "last_name": "Doe", "city": "Leeds"}
        result = uppercase(["first_name", "last_name"]).process(record)
        assert result == {"first_name": "JILL", "last_name": "DOE", "city": "Leeds"}

    def test_input_record_not_mutated(self):
        record = {"first_name": "Jill"}
        uppercase().process(record)
        assert record == {"first_name": "Jill"}

    def test_lowercase_all_string_fields(self):
        result = lowercase().process({"first_name": "JILL", "age": 40})
        assert result == {"first_name": "jill", "age": 40}

    def test_missing_field_ignored(self):
        assert uppercase(["nickname"]).process({"first_name": "Jill"}) == {"first_name": "Jill"}

    def test_non_mapping_record(self):
        with pytest.raises(TransformError) as info:
            uppercase().process(["Jill", "Doe"])
        assert info.value.item == ["Jill", "Doe"]

    def test_invalid_mode(self):
        with pytest.raises(ValueError, match="mode"):
            FieldCaseTransform(mode="title")
