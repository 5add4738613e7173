"""Tests for steward/graph/validation.py -- type names and property schemas."""

from __future__ import annotations

import pytest

from steward.errors import TypeNameError
from steward.graph.validation import (
    check_edge_type_name,
    check_node_type_name,
    format_type_names,
    validate_properties,
)

COMPANY_SCHEMA = {
    "type": "object",
    "properties": {
        "ticker": {"type": "string", "pattern": "^[A-Z]+$"},
        "employees": {"type": "integer", "minimum": 0},
        "sector": {"type": "string", "enum": ["semis", "software"]},
        "founded_at": {"type": "string", "format": "date-time"},
        "tags": {"type": "array", "items": {"type": "string"}, "maxItems": 2},
        "hq": {
            "type": "object",
            "properties": {"city": {"type": "string", "minLength": 2}},
            "required": ["city"],
        },
    },
    "required": ["ticker"],
}


class TestTypeNames:
    @pytest.mark.parametrize("name", ["Company", "Market Event", "Q3 Report", "ETF"])
    def test_valid_node_type_names(self, name):
        check_node_type_name(name)

    @pytest.mark.parametrize("name", ["company", "Market  Event", " Company", "Market-Event", ""])
    def test_invalid_node_type_names(self, name):
        with pytest.raises(TypeNameError):
            check_node_type_name(name)

    @pytest.mark.parametrize("name", ["regulates", "competes_with"])
    def test_valid_edge_type_names(self, name):
        check_edge_type_name(name)

    @pytest.mark.parametrize("name", ["Regulates", "competesWith", "has-part", "_x", "owns2"])
    def test_invalid_edge_type_names(self, name):
        with pytest.raises(TypeNameError):
            check_edge_type_name(name)

    def test_format_type_names(self):
        assert format_type_names([]) == "(none)"
        assert format_type_names(["b", "A", "c"]) == "A, b, c"


class TestValidateProperties:
    def test_valid_properties(self):
        props = {
            "ticker": "NVDA",
            "employees": 29600,
            "sector": "semis",
            "founded_at": "1993-04-05T00:00:00Z",
            "tags": ["gpu"],
            "hq": {"city": "Santa Clara"},
        }
        assert validate_properties(props, COMPANY_SCHEMA) == []

    def test_no_schema_accepts_anything(self):
        assert validate_properties({"anything": object()}, None) == []

    def test_missing_required(self):
        assert validate_properties({}, COMPANY_SCHEMA) == ["properties.ticker is required"]

    def test_wrong_type_reports_value(self):
        errors = validate_properties({"ticker": "NVDA", "employees": "many"}, COMPANY_SCHEMA)
        assert errors == ['properties.employees expected integer, got string ("many")']

    def test_booleans_are_not_numbers(self):
        errors = validate_properties({"ticker": "NVDA", "employees": True}, COMPANY_SCHEMA)
        assert errors == ["properties.employees expected integer, got boolean (true)"]

    def test_integral_float_is_an_integer(self):
        assert validate_properties({"ticker": "NVDA", "employees": 10.0}, COMPANY_SCHEMA) == []

    def test_collects_every_violation(self):
        props = {
            "ticker": "nvda",
            "employees": -1,
            "sector": "retail",
            "founded_at": "not a date",
            "tags": ["a", "b", 3],
            "hq": {"city": "X"},
        }
        errors = validate_properties(props, COMPANY_SCHEMA)

        assert "properties.ticker must match pattern ^[A-Z]+$, got \"nvda\"" in errors
        assert "properties.employees must be >= 0, got -1" in errors
        assert 'properties.sector must be one of "semis", "software"' in errors
        assert 'properties.founded_at must be a valid date-time string, got "not a date"' in errors
        assert "properties.tags must have at most 2 items, got 3" in errors
        assert "properties.tags[2] expected string, got number (3)" in errors
        assert "properties.hq.city must have length >= 2, got 1" in errors
        assert len(errors) == 7

    def test_type_list_allows_null(self):
        schema = {"type": "object", "properties": {"note": {"type": ["string", "null"]}}}
        assert validate_properties({"note": None}, schema) == []

    def test_unknown_properties_are_allowed(self):
        assert validate_properties({"ticker": "AMD", "extra": 1}, COMPANY_SCHEMA) == []

    def test_broken_pattern_is_ignored(self):
        schema = {"type": "object", "properties": {"code": {"type": "string", "pattern": "("}}}
        assert validate_properties({"code": "x"}, schema) == []
