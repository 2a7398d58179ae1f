"""Tests for expression autosuggest."""

import pytest

from smartform.expressions import Registry, suggest
from smartform.expressions.suggestions import generate_suggestions, sample_value, value_type


@pytest.fixture
def registry():
    reg = Registry()
    reg.register_variable(
        "user",
        {"name": "Ann", "address": {"city": "Wellington"}},
        "The signed-in user",
    )
    reg.register_variable("items", [{"sku": "a1", "qty": 2}])
    return reg


def exprs(suggestions):
    return [s.expr for s in suggestions]


class TestSuggest:
    def test_prefix(self, registry):
        results = suggest("us", registry)

        assert results[0].expr == "user"
        assert results[0].description == "The signed-in user"
        assert "user.name" in exprs(results)

    def test_strips_template_marker(self, registry):
        assert suggest("${us", registry)[0].expr == "user"

    def test_exact_match_first(self, registry):
        assert suggest("user", registry)[0].expr == "user"

    def test_object_children(self, registry):
        assert exprs(suggest("user.", registry)) == ["user.address", "user.name"]

    def test_object_children_with_prefix(self, registry):
        assert exprs(suggest("user.address.c", registry)) == ["user.address.city"]

    def test_array_element(self, registry):
        assert exprs(suggest("items.", registry)) == ["items[0]"]

    def test_array_element_properties(self, registry):
        assert exprs(suggest("items[0].", registry)) == ["items[0].qty", "items[0].sku"]
        assert exprs(suggest("items[0].s", registry)) == ["items[0].sku"]

    def test_function_argument(self, registry):
        results = suggest("concat(user.na", registry)

        assert results[0].expr == "user.name"

    def test_empty_argument_lists_variables(self, registry):
        results = suggest("count(", registry)

        assert results
        assert not any(s.is_function for s in results)
        assert results[0].expr in ("items", "user")

    def test_functions(self, registry):
        results = suggest("toUp", registry)

        assert results[0].is_function
        assert results[0].expr == "toUpper"
        assert results[0].signature.startswith("toUpper(")

    def test_case_insensitive(self, registry):
        assert "toUpper" in exprs(suggest("TOUP", registry))

    def test_limit(self, registry):
        assert len(suggest("", registry, limit=3)) == 3

    def test_unknown_path(self, registry):
        assert suggest("nope.", registry) == []

    def test_snapshot_accepted(self, registry):
        assert suggest("user.", registry.snapshot())


class TestSuggestionDetails:
    def test_object(self, registry):
        user = next(s for s in generate_suggestions(registry.snapshot()) if s.expr == "user")

        assert user.type == "object"
        assert user.children == ["address", "name"]
        assert user.is_nested is False

    def test_array(self, registry):
        items = next(s for s in generate_suggestions(registry.snapshot()) if s.expr == "items")

        assert items.type == "array<object>"
        assert items.array_info.to_dict() == {"itemType": "object", "sampleAccess": "items[0]"}

    def test_nested(self, registry):
        city = next(
            s for s in generate_suggestions(registry.snapshot()) if s.expr == "user.address.city"
        )

        assert city.is_nested is True
        assert city.type == "string"
        assert city.value == "Wellington"

    def test_to_dict(self, registry):
        data = suggest("user.name", registry)[0].to_dict()

        assert data["expr"] == "user.name"
        assert data["isFunction"] is False
        assert data["arrayInfo"] is None

    def test_value_type(self):
        assert value_type([1, 2]) == "array<number>"
        assert value_type([]) == "array"
        assert value_type(None) == "null"

    def test_sample_value_truncates(self):
        assert sample_value("x" * 30) == "x" * 20 + "..."
        assert sample_value([1, 2, 3]) == [1, "..."]
