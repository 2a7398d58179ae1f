"""Tests for the field dependency graph.

Tests cover:
- Reference extraction from conditions, templates, options and rules
- Binding of nested paths to their declaring field
- affected_by closure and idempotence
- Evaluation order and cycle reporting
"""

import pytest

from smartform.graph import DependencyGraph, field_references
from smartform.schema.types import FieldSpec, FormSchema


def make_schema(*fields, **kwargs) -> FormSchema:
    return FormSchema.from_dict({"id": kwargs.get("id", "test"), "fields": list(fields)})


@pytest.fixture
def signup_schema():
    return make_schema(
        {"id": "country", "type": "select", "options": ["NZ", "AU"]},
        {
            "id": "state",
            "type": "select",
            "visible": {"type": "simple", "field": "country", "operator": "eq", "value": "AU"},
        },
        {"id": "postcode", "label": "Postcode for ${state}"},
        {"id": "notes", "type": "textarea"},
    )


# =============================================================================
# Reference extraction
# =============================================================================


class TestFieldReferences:
    def test_condition_and_template_references(self):
        spec = FieldSpec.from_dict(
            {
                "id": "summary",
                "label": "${firstName} ${lastName}",
                "visible": {"type": "exists", "field": "email"},
            }
        )

        assert field_references(spec) == ["email", "firstName", "lastName"]

    def test_no_duplicates(self):
        spec = FieldSpec.from_dict(
            {"id": "x", "label": "${a}", "placeholder": "${a}", "helpText": "${a + 1}"}
        )

        assert field_references(spec) == ["a"]

    def test_options_dependency(self):
        spec = FieldSpec.from_dict(
            {
                "id": "city",
                "options": {
                    "type": "dependent",
                    "dependency": {"field": "country", "valueMap": {"NZ": ["Auckland"]}},
                },
            }
        )

        assert field_references(spec) == ["country"]

    def test_dynamic_source(self):
        spec = FieldSpec.from_dict(
            {
                "id": "model",
                "options": {
                    "type": "dynamic",
                    "dynamicSource": {
                        "functionName": "models",
                        "parameters": {"make": "${make}"},
                        "refreshOn": ["year"],
                    },
                },
            }
        )

        assert field_references(spec) == ["year", "make"]

    def test_validation_rules(self):
        spec = FieldSpec.from_dict(
            {
                "id": "confirm",
                "validationRules": [
                    {"type": "dependency", "parameters": {"field": "password"}},
                    {
                        "type": "requiredIf",
                        "parameters": {"field": "newsletter", "operator": "eq", "value": True},
                    },
                ],
            }
        )

        assert field_references(spec) == ["password", "newsletter"]

    def test_expression_field(self):
        spec = FieldSpec.from_dict(
            {"id": "x", "visible": {"type": "simple", "field": "${age * 2}", "operator": "gt", "value": 10}}
        )

        assert field_references(spec) == ["age"]


# =============================================================================
# Graph
# =============================================================================


class TestDependencyGraph:
    def test_edges(self, signup_schema):
        graph = DependencyGraph(signup_schema)

        assert graph.dependencies_of("state") == {"country"}
        assert graph.dependents_of("country") == {"state"}
        assert graph.dependencies_of("notes") == set()

    def test_external_references(self):
        graph = DependencyGraph(make_schema({"id": "greeting", "label": "Hi ${user.name}"}))

        assert graph.external_references == {"greeting": {"user.name"}}

    def test_nested_binding(self):
        schema = make_schema(
            {"id": "address", "type": "group", "nested": [{"id": "city"}, {"id": "zip"}]},
            {"id": "summary", "label": "${address.city.name}"},
        )
        graph = DependencyGraph(schema)

        assert graph.bind("address.city.name") == "address.city"
        assert graph.dependencies_of("summary") == {"address.city"}

    def test_self_reference_ignored(self):
        graph = DependencyGraph(make_schema({"id": "a", "label": "${a}"}))

        assert graph.dependencies_of("a") == set()
        assert graph.has_cycles is False


class TestAffectedBy:
    def test_transitive(self, signup_schema):
        graph = DependencyGraph(signup_schema)

        assert graph.affected_by(["country"]) == {"country", "state", "postcode"}

    def test_visibility_chain(self):
        schema = make_schema(
            {"id": "A", "visible": {"field": "B", "operator": "eq", "value": 1}},
            {"id": "B", "visible": {"field": "C", "operator": "eq", "value": 1}},
            {"id": "C"},
        )

        assert DependencyGraph(schema).affected_by(["C"]) == {"C", "B", "A"}

    def test_includes_changed_ids(self, signup_schema):
        graph = DependencyGraph(signup_schema)

        assert graph.affected_by(["notes"]) == {"notes"}
        assert graph.affected_by(["unknown"]) == {"unknown"}

    def test_idempotent(self, signup_schema):
        graph = DependencyGraph(signup_schema)
        once = graph.affected_by(["country"])

        assert graph.affected_by(once) == once

    def test_group_change_reaches_children(self):
        schema = make_schema(
            {"id": "address", "type": "group", "nested": [{"id": "city"}]},
            {"id": "label", "label": "${address.city}"},
        )
        graph = DependencyGraph(schema)

        assert graph.affected_by(["address"]) == {"address", "address.city", "label"}

    def test_indexed_path(self):
        schema = make_schema(
            {"id": "items", "type": "array"},
            {"id": "total", "defaultValue": "${count(items)}"},
        )
        graph = DependencyGraph(schema)

        assert "total" in graph.affected_by(["items[0].price"])


class TestEvaluationOrder:
    def test_dependencies_first(self):
        schema = make_schema(
            {"id": "c", "label": "${b}"},
            {"id": "b", "label": "${a}"},
            {"id": "a"},
        )

        assert DependencyGraph(schema).evaluation_order() == ["a", "b", "c"]

    def test_declaration_order_breaks_ties(self, signup_schema):
        order = DependencyGraph(signup_schema).evaluation_order()

        assert order == ["country", "state", "postcode", "notes"]

    def test_order_for(self, signup_schema):
        graph = DependencyGraph(signup_schema)

        assert graph.order_for(["state"]) == ["state", "postcode"]

    def test_cycle_reported_not_raised(self):
        schema = make_schema(
            {"id": "a", "label": "${b}"},
            {"id": "b", "label": "${a}"},
            {"id": "c"},
        )
        graph = DependencyGraph(schema)

        order = graph.evaluation_order()

        assert sorted(order) == ["a", "b", "c"]
        assert graph.has_cycles
        assert graph.cycles[0].cycle == ["a", "b", "a"]

    def test_cycle_affected_by_terminates(self):
        schema = make_schema({"id": "a", "label": "${b}"}, {"id": "b", "label": "${a}"})

        assert DependencyGraph(schema).affected_by(["a"]) == {"a", "b"}

    def test_to_dict(self, signup_schema):
        data = DependencyGraph(signup_schema).to_dict()

        assert data["fields"]["state"] == {"dependsOn": ["country"], "dependents": ["postcode"]}
        assert data["order"][0] == "country"
        assert data["cycles"] == []
