"""Tests for FormEngine.

Tests cover:
- Field state evaluation (visibility, enablement, requirement)
- Defaults filled into values
- Group visibility propagating to nested fields
- Incremental re-evaluation after a change
- Static, dependent and dynamic options
- Lenient and strict handling of failing conditions
- Form validation through the engine
"""

import pytest

from smartform.config import EngineConfig
from smartform.dynamic import DynamicFunctionService
from smartform.engine import FieldState, FormEngine
from smartform.errors import ResolutionError
from smartform.expressions import Registry
from smartform.schema.types import FormSchema, Option


@pytest.fixture
def schema():
    return FormSchema.from_dict(
        {
            "id": "signup",
            "variables": {"minAge": 18},
            "fields": [
                {"id": "name", "label": "Name", "required": True},
                {"id": "age", "type": "number", "label": "Age"},
                {
                    "id": "guardian",
                    "label": "Guardian of ${name}",
                    "visible": "age < minAge",
                    "requiredIf": {"field": "age", "operator": "lt", "value": "${minAge}"},
                },
                {
                    "id": "country",
                    "type": "select",
                    "defaultValue": "NZ",
                    "options": ["NZ", "AU"],
                },
                {
                    "id": "city",
                    "type": "select",
                    "options": {
                        "type": "dependent",
                        "dependency": {
                            "field": "country",
                            "valueMap": {
                                "NZ": [{"value": "akl", "label": "Auckland"}],
                                "AU": [{"value": "syd", "label": "Sydney"}],
                            },
                        },
                    },
                },
                {
                    "id": "company",
                    "type": "group",
                    "visible": {"field": "employed", "operator": "eq", "value": True},
                    "nested": [{"id": "title", "label": "Job title"}],
                },
                {"id": "employed", "type": "checkbox", "defaultValue": False},
            ],
        }
    )


@pytest.fixture
def engine(schema):
    return FormEngine(schema)


# =============================================================================
# Evaluation
# =============================================================================


class TestEvaluate:
    def test_states_for_every_field(self, engine, schema):
        states = engine.evaluate({"name": "Ann", "age": 30})

        assert set(states) == set(schema.field_paths())
        assert all(isinstance(state, FieldState) for state in states.values())

    def test_schema_variables_registered(self, engine):
        assert engine.registry.get_variable("minAge") == 18

    def test_existing_registry_variable_kept(self, schema):
        registry = Registry()
        registry.register_variable("minAge", 21)

        engine = FormEngine(schema, registry=registry)

        assert engine.field_state("guardian", {"age": 20}).visible is True

    def test_conditions(self, engine):
        adult = engine.evaluate({"name": "Ann", "age": 30})
        minor = engine.evaluate({"name": "Ann", "age": 12})

        assert adult["guardian"].visible is False
        assert adult["guardian"].required is False
        assert minor["guardian"].visible is True
        assert minor["guardian"].required is True

    def test_label_resolved(self, engine):
        states = engine.evaluate({"name": "Ann", "age": 12})

        assert states["guardian"].label == "Guardian of Ann"

    def test_defaults_applied(self, engine):
        states = engine.evaluate({})

        assert states["country"].value == "NZ"
        assert states["employed"].value is False

    def test_with_defaults_does_not_mutate(self, engine):
        values = {"name": "Ann"}

        result = engine.with_defaults(values)

        assert values == {"name": "Ann"}
        assert result["country"] == "NZ"

    def test_with_defaults_keeps_user_values(self, engine):
        assert engine.with_defaults({"country": "AU"})["country"] == "AU"

    def test_group_hides_children(self, engine):
        hidden = engine.evaluate({"employed": False})
        shown = engine.evaluate({"employed": True})

        assert hidden["company"].visible is False
        assert hidden["company.title"].visible is False
        assert shown["company.title"].visible is True

    def test_nested_value(self, engine):
        states = engine.evaluate({"employed": True, "company": {"title": "Engineer"}})

        assert states["company.title"].value == "Engineer"

    def test_to_dict(self, engine):
        data = engine.field_state("city", {"country": "AU"}).to_dict()

        assert data["path"] == "city"
        assert data["options"] == [{"value": "syd", "label": "Sydney"}]
        assert "errors" not in data


class TestOnChange:
    def test_only_affected_fields(self, engine):
        states = engine.on_change(["age"], {"name": "Ann", "age": 12})

        assert list(states) == ["age", "guardian"]
        assert states["guardian"].visible is True

    def test_accepts_generator(self, engine):
        states = engine.on_change((path for path in ["country"]), {"country": "AU"})

        assert list(states) == ["country", "city"]
        assert states["city"].options == [Option("syd", "Sydney")]

    def test_group_change_reaches_children(self, engine):
        states = engine.on_change(["employed"], {"employed": False})

        assert states["company"].visible is False
        assert states["company.title"].visible is False


class TestConditionFailures:
    @pytest.fixture
    def broken_schema(self):
        return FormSchema.from_dict(
            {
                "id": "broken",
                "fields": [
                    {"id": "a", "visible": "missing > 1", "enabled": "missing > 1"},
                ],
            }
        )

    def test_lenient_uses_fallback(self, broken_schema):
        state = FormEngine(broken_schema).field_state("a", {})

        assert state.visible is True
        assert state.enabled is True
        assert len(state.errors) == 2
        assert isinstance(state.errors[0], ResolutionError)

    def test_strict_raises(self, broken_schema):
        engine = FormEngine(broken_schema, config=EngineConfig(strict=True))

        with pytest.raises(ResolutionError):
            engine.field_state("a", {})

    def test_unknown_field(self, engine):
        with pytest.raises(KeyError):
            engine.field_state("nope", {})


class TestProviderFailures:
    @pytest.fixture
    def registry(self):
        def remote_user():
            raise ConnectionError("backend down")

        registry = Registry()
        registry.register_provider("remoteUser", remote_user)
        return registry

    def test_unread_provider_does_not_break_evaluation(self, schema, registry):
        engine = FormEngine(schema, registry=registry)

        states = engine.evaluate({"name": "Ann", "age": 12})
        changed = engine.on_change(["age"], {"name": "Ann", "age": 12})

        assert states["guardian"].label == "Guardian of Ann"
        assert states["guardian"].errors == []
        assert changed["guardian"].visible is True

    def test_failure_scoped_to_reading_field(self, registry):
        schema = FormSchema.from_dict(
            {
                "id": "profile",
                "fields": [
                    {"id": "greeting", "label": "Hi ${remoteUser.name}"},
                    {"id": "name", "label": "Name of ${who}"},
                    {"id": "badge", "visible": "remoteUser.admin"},
                ],
            }
        )
        engine = FormEngine(schema, registry=registry)

        states = engine.evaluate({"who": "Ann"})

        assert states["greeting"].label == "Hi ${remoteUser.name}"
        assert states["name"].label == "Name of Ann"
        assert states["badge"].visible is True
        assert len(states["badge"].errors) == 1
        assert states["name"].errors == []


class TestFieldValuesShadowVariables:
    @pytest.fixture
    def engine(self):
        schema = FormSchema.from_dict(
            {
                "id": "shipping",
                "variables": {"country": "US"},
                "fields": [
                    {"id": "country", "type": "select", "options": ["NZ", "US"]},
                    {
                        "id": "nzOnly",
                        "visible": {"field": "country", "operator": "eq", "value": "NZ"},
                    },
                    {"id": "nzNote", "visible": "country == 'NZ'"},
                ],
            }
        )
        return FormEngine(schema)

    def test_live_value_wins(self, engine):
        states = engine.evaluate({"country": "NZ"})

        assert states["nzOnly"].visible is True
        assert states["nzNote"].visible is True

    def test_variable_used_when_field_unset(self, engine):
        states = engine.evaluate({})

        assert states["nzOnly"].visible is False
        assert states["nzNote"].visible is False


# =============================================================================
# Options
# =============================================================================


class TestOptions:
    def test_static(self, engine):
        assert engine.resolve_options("country") == [Option("NZ", "NZ"), Option("AU", "AU")]

    def test_dependent_value_map(self, engine):
        assert engine.resolve_options("city", {"country": "NZ"}) == [Option("akl", "Auckland")]

    def test_dependent_unmapped_value(self, engine):
        assert engine.resolve_options("city", {"country": "US"}) == []
        assert engine.resolve_options("city", {}) == []

    def test_dependent_expression(self):
        schema = FormSchema.from_dict(
            {
                "id": "f",
                "fields": [
                    {"id": "sizes"},
                    {
                        "id": "size",
                        "options": {
                            "type": "dependent",
                            "dependency": {"field": "sizes", "expression": "split(sizes, ',')"},
                        },
                    },
                ],
            }
        )

        options = FormEngine(schema).resolve_options("size", {"sizes": "S,M"})

        assert [o.value for o in options] == ["S", "M"]

    def test_no_options(self, engine):
        assert engine.resolve_options("name") == []


class TestDynamicOptions:
    @pytest.fixture
    def service(self):
        svc = DynamicFunctionService()
        svc.register_function(
            "models",
            lambda args, state: {
                "toyota": [{"value": "corolla", "label": "Corolla"}, {"value": "yaris", "label": "Yaris"}],
                "honda": [{"value": "civic", "label": "Civic"}],
            }.get(args["make"], []),
        )
        svc.register_transformer("reverse", lambda data, params: list(reversed(data)))
        return svc

    def make_engine(self, service, source):
        schema = FormSchema.from_dict(
            {
                "id": "car",
                "fields": [
                    {"id": "make"},
                    {"id": "model", "options": {"type": "dynamic", "dynamicSource": source}},
                ],
            }
        )
        return FormEngine(schema, dynamic_service=service)

    def test_function_source(self, service):
        engine = self.make_engine(
            service, {"functionName": "models", "parameters": {"make": "${make}"}}
        )

        options = engine.resolve_options("model", {"make": "honda"})

        assert options == [Option("civic", "Civic")]

    def test_search_parameters(self, service):
        engine = self.make_engine(
            service,
            {
                "functionName": "models",
                "parameters": {"make": "${make}", "sort": "label", "sortDir": "desc", "limit": 1},
            },
        )

        options = engine.resolve_options("model", {"make": "toyota"})

        assert options == [Option("yaris", "Yaris")]

    def test_transformer(self, service):
        engine = self.make_engine(
            service,
            {
                "functionName": "models",
                "parameters": {"make": "${make}"},
                "functionConfig": {"transformerName": "reverse"},
            },
        )

        options = engine.resolve_options("model", {"make": "toyota"})

        assert [o.value for o in options] == ["yaris", "corolla"]

    def test_api_source_uses_static(self, service):
        engine = self.make_engine(service, {"type": "api", "endpoint": "https://example.com"})

        assert engine.resolve_options("model", {}) == []

    def test_failure_recorded_on_state(self, service):
        engine = self.make_engine(service, {"functionName": "unknown"})

        state = engine.field_state("model", {})

        assert state.options == []
        assert isinstance(state.errors[0], ResolutionError)


# =============================================================================
# Validation
# =============================================================================


class TestValidate:
    def test_valid(self, engine):
        result = engine.validate({"name": "Ann", "age": 30})

        assert result.valid is True
        assert result.errors == []

    def test_required(self, engine):
        result = engine.validate({"age": 30})

        assert result.valid is False
        assert [e.message for e in result.errors_for("name")] == ["Name is required"]

    def test_required_if(self, engine):
        result = engine.validate({"name": "Ann", "age": 12})

        assert [e.field for e in result.errors] == ["guardian"]

    def test_hidden_fields_skipped(self):
        schema = FormSchema.from_dict(
            {
                "id": "f",
                "fields": [
                    {"id": "show", "type": "checkbox"},
                    {"id": "secret", "required": True, "visible": "show"},
                ],
            }
        )
        engine = FormEngine(schema)

        assert engine.validate({"show": False}).valid is True
        assert engine.validate({"show": True}).valid is False
