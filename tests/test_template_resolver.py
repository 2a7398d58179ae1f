"""Tests for recursive template resolution.

Tests cover:
- Native values for single fragments, strings for mixed text
- Pass-through of marker-free values and idempotence
- Context precedence (form data, field context, registry, globals)
- Lenient fallbacks and strict failures
- Depth limit and recursive re-resolution
- Default values and defaultWhen
- Field configuration resolution
"""

import copy

import pytest

from smartform.errors import ResolutionDepthError, ResolutionError
from smartform.expressions import Registry
from smartform.resolver import ResolutionOptions, TemplateResolver
from smartform.schema.types import FieldSpec, FormSchema


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def resolver(registry):
    return TemplateResolver(registry=registry)


@pytest.fixture
def schema():
    return FormSchema.from_dict(
        {
            "id": "shipping",
            "fields": [
                {"id": "country", "defaultValue": "NZ"},
                {
                    "id": "currency",
                    "defaultValue": "USD",
                    "defaultWhen": [
                        {
                            "condition": {"field": "country", "operator": "eq", "value": "NZ"},
                            "value": "NZD",
                        },
                        {
                            "condition": {"field": "country", "operator": "in", "value": ["NZ", "AU"]},
                            "value": "AUD",
                        },
                    ],
                },
                {"id": "greeting", "defaultValue": "Kia ora from ${country}"},
                {"id": "notes"},
                {
                    "id": "address",
                    "type": "group",
                    "nested": [{"id": "city", "defaultValue": "Wellington"}],
                },
            ],
        }
    )


# =============================================================================
# resolve
# =============================================================================


class TestResolve:
    def test_single_fragment_keeps_type(self, resolver):
        assert resolver.resolve("${user.age}", {"user": {"age": 30}}) == 30

    def test_mixed_text(self, resolver):
        assert resolver.resolve("Hello ${user.name}!", {"user": {"name": "Ann"}}) == "Hello Ann!"

    @pytest.mark.parametrize("value", ["plain text", "", "$ {x}", "{x}", 42, None, True])
    def test_marker_free_values_unchanged(self, resolver, value):
        assert resolver.resolve(value, {"x": 1}) == value

    def test_containers(self, resolver):
        value = {"title": "${name}", "tags": ["${name}", "static"], "pair": ("${n}", 2)}

        result = resolver.resolve(value, {"name": "Ann", "n": 1})

        assert result == {"title": "Ann", "tags": ["Ann", "static"], "pair": (1, 2)}

    def test_input_not_mutated(self, resolver):
        value = {"title": "${name}", "tags": ["${name}"]}
        original = copy.deepcopy(value)

        resolver.resolve(value, {"name": "Ann"})

        assert value == original

    def test_idempotent(self, resolver):
        context = {"user": {"name": "Ann", "age": 30}}
        once = resolver.resolve({"a": "Hi ${user.name}", "b": "${user.age}"}, context)

        assert resolver.resolve(once, context) == once


class TestContextPrecedence:
    def test_registry_over_form_data(self, registry, resolver):
        registry.register_variable("plan", "pro")

        assert resolver.resolve("${plan}", {"plan": "free"}) == "pro"

    def test_globals_over_registry(self, registry):
        registry.register_variable("plan", "pro")
        resolver = TemplateResolver(registry=registry, global_variables={"plan": "enterprise"})

        assert resolver.resolve("${plan}", {"plan": "free"}) == "enterprise"

    def test_set_global(self, resolver):
        resolver.set_global("tenant", "acme")

        assert resolver.resolve("${tenant}") == "acme"

    def test_unread_provider_not_called(self, registry, resolver):
        def remote_user():
            raise ConnectionError("backend down")

        registry.register_provider("remoteUser", remote_user)

        assert resolver.resolve("Hi ${who}", {"who": "Ann"}) == "Hi Ann"
        assert resolver.resolve("Hi ${remoteUser}", {}) == "Hi ${remoteUser}"

    def test_template_values_excluded(self, resolver):
        context = resolver.build_context({"a": "x", "b": "${a}"})

        assert context["a"] == "x"
        assert "b" not in context

    def test_field_context(self, resolver):
        spec = FieldSpec.from_dict({"id": "email", "type": "email"})
        context = resolver.build_context({}, spec, "contact.email")

        assert context["currentField"] == "contact.email"
        assert context["fieldType"] == "email"

    def test_registry_functions(self, resolver):
        assert resolver.resolve("${toUpper(name)}", {"name": "ann"}) == "ANN"


class TestResolveFormData:
    def test_references_other_values(self, resolver):
        data = {"first": "Ann", "last": "Lee", "full": "${first} ${last}"}

        assert resolver.resolve_form_data(data)["full"] == "Ann Lee"

    def test_template_referencing_template_falls_back(self, resolver):
        data = {"a": "${b}", "b": "${c}", "c": 1}

        result = resolver.resolve_form_data(data)

        assert result == {"a": "${b}", "b": 1, "c": 1}


# =============================================================================
# Failure handling
# =============================================================================


class TestFailures:
    def test_lenient_keeps_original_text(self, resolver):
        assert resolver.resolve("Hi ${missing}", {}) == "Hi ${missing}"

    def test_default_on_error(self, resolver):
        options = ResolutionOptions(default_on_error="n/a")

        assert resolver.resolve("${missing}", {}, options) == "n/a"

    def test_preserve_nulls(self, resolver):
        options = ResolutionOptions(preserve_nulls=True)

        assert resolver.resolve("${missing}", {}, options) is None
        assert resolver.resolve("Hi ${missing}", {}, options) == "Hi ${missing}"

    def test_strict_raises(self, resolver):
        with pytest.raises(ResolutionError):
            resolver.resolve("${missing}", {}, ResolutionOptions(strict=True))

    def test_failure_isolated_to_fragment_value(self, resolver):
        result = resolver.resolve({"ok": "${a}", "bad": "${missing}"}, {"a": 1})

        assert result == {"ok": 1, "bad": "${missing}"}

    def test_resolve_field_value_reports_error(self, resolver):
        result = resolver.resolve_field_value("name", "${missing}", {})

        assert result.resolved is False
        assert isinstance(result.error, ResolutionError)
        assert result.value == "${missing}"

    def test_resolve_field_value_success(self, resolver):
        result = resolver.resolve_field_value("name", "${first}", {"first": "Ann"})

        assert result.resolved is True
        assert result.error is None
        assert result.value == "Ann"


class TestDepth:
    def test_depth_exceeded_lenient(self, resolver):
        options = ResolutionOptions(max_depth=1)
        value = {"a": {"b": "${x}"}}

        assert resolver.resolve(value, {"x": 1}, options) == {"a": {"b": "${x}"}}

    def test_depth_exceeded_strict(self, resolver):
        options = ResolutionOptions(max_depth=1, strict=True)

        with pytest.raises(ResolutionDepthError):
            resolver.resolve({"a": {"b": "${x}"}}, {"x": 1}, options)

    def test_within_depth(self, resolver):
        options = ResolutionOptions(max_depth=2)

        assert resolver.resolve({"a": {"b": "${x}"}}, {"x": 1}, options) == {"a": {"b": 1}}


class TestRecursion:
    def test_disabled_by_default(self, resolver):
        resolver.set_global("greeting", "Hello ${name}")

        assert resolver.resolve("${greeting}", {"name": "Ann"}) == "Hello ${name}"

    def test_enabled(self, resolver):
        resolver.set_global("greeting", "Hello ${name}")
        options = ResolutionOptions(enable_recursion=True)

        assert resolver.resolve("${greeting}", {"name": "Ann"}, options) == "Hello Ann"

    def test_self_reference_terminates(self, resolver):
        resolver.set_global("loop", "${loop}")
        options = ResolutionOptions(enable_recursion=True)

        assert resolver.resolve("${loop}", {}, options) == "${loop}"

    def test_mutual_reference_terminates(self, resolver):
        resolver.set_global("a", "${b}")
        resolver.set_global("b", "${a}")
        options = ResolutionOptions(enable_recursion=True)

        assert resolver.resolve("${a}", {}, options) in ("${a}", "${b}")


# =============================================================================
# Defaults
# =============================================================================


class TestDefaults:
    def test_default_values(self, registry, schema):
        resolver = TemplateResolver(schema, registry)

        defaults = resolver.resolve_default_values({"country": "NZ"})

        assert defaults == {
            "country": "NZ",
            "currency": "NZD",
            "greeting": "Kia ora from NZ",
            "address.city": "Wellington",
        }

    def test_first_matching_default_when_wins(self, registry, schema):
        resolver = TemplateResolver(schema, registry)

        assert resolver.resolve_default_values({"country": "AU"})["currency"] == "AUD"

    def test_static_default_when_nothing_matches(self, registry, schema):
        resolver = TemplateResolver(schema, registry)

        assert resolver.resolve_default_values({"country": "US"})["currency"] == "USD"

    def test_resolve_default(self, registry, schema):
        resolver = TemplateResolver(schema, registry)

        assert resolver.resolve_default(schema.get_field("notes")) == (False, None)
        assert resolver.resolve_default(schema.get_field("currency"), {"country": "NZ"}) == (
            True,
            "NZD",
        )

    def test_failing_condition_skipped(self, registry):
        spec = FieldSpec.from_dict(
            {
                "id": "tier",
                "defaultValue": "basic",
                "defaultWhen": [{"condition": "missing > 1", "value": "gold"}],
            }
        )
        resolver = TemplateResolver(registry=registry)

        assert resolver.resolve_default(spec, {}) == (True, "basic")

    def test_no_schema(self, resolver):
        assert resolver.resolve_default_values({"a": 1}) == {}


class TestFieldConfiguration:
    def test_resolves_text_and_properties(self, resolver):
        spec = FieldSpec.from_dict(
            {
                "id": "age",
                "type": "number",
                "label": "Age of ${name}",
                "placeholder": "${minAge}",
                "helpText": "Field ${currentField} (${fieldType})",
                "defaultValue": "${minAge}",
                "properties": {"max": "${maxAge}"},
            }
        )

        resolved = resolver.resolve_field_configuration(
            spec, {"name": "Ann", "minAge": 18, "maxAge": 99}
        )

        assert resolved.label == "Age of Ann"
        assert resolved.placeholder == "18"
        assert resolved.help_text == "Field age (number)"
        assert resolved.default_value == 18
        assert resolved.properties == {"max": 99}
        assert spec.label == "Age of ${name}"

    def test_unresolvable_text_kept(self, resolver):
        spec = FieldSpec.from_dict({"id": "x", "label": "Hi ${missing}"})

        assert resolver.resolve_field_configuration(spec, {}).label == "Hi ${missing}"

    def test_strict_raises(self, resolver):
        spec = FieldSpec.from_dict({"id": "x", "label": "Hi ${missing}"})

        with pytest.raises(ResolutionError):
            resolver.resolve_field_configuration(spec, {}, ResolutionOptions(strict=True))


class TestResolveCondition:
    def test_uses_registry_context(self, registry, resolver):
        registry.register_variable("minAge", 18)

        assert resolver.resolve_condition("age >= minAge", {"age": 20}) is True

    def test_field_context(self, resolver):
        spec = FieldSpec.from_dict({"id": "email", "type": "email"})

        assert resolver.resolve_condition("fieldType == 'email'", {}, spec) is True

    def test_form_values_shadow_variables(self, registry, resolver):
        registry.register_variable("country", "US")
        condition = {"field": "country", "operator": "eq", "value": "NZ"}

        assert resolver.resolve_condition(condition, {"country": "NZ"}) is True
        assert resolver.resolve_condition(condition, {}) is False
