"""
Tests for smartform.schema.loader

Covers:
  - load_form() / load_form_string(): valid documents build a FormSchema
  - JSON Schema pass: unknown keys, bad types, missing ids
  - Structural pass: conditions, expressions, duplicates
  - validate_form_file(): issues returned instead of raised
"""
from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from smartform.errors import StructuralError
from smartform.schema.loader import (
    ValidationIssue,
    document_issues,
    load_form,
    load_form_string,
    validate_form_file,
)
from smartform.schema.types import FieldType, OptionsType


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _write_yaml(path: Path, data: dict) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(yaml.dump(data))
    return path


def _write_raw(path: Path, content: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


def _form(*fields: dict, **extra) -> dict:
    return {"form": {"id": "signup", "title": "Sign up", "fields": list(fields), **extra}}


SIGNUP = """
form:
  id: signup
  title: Sign up
  variables:
    minAge: 18
  fields:
    - id: name
      label: Name
      required: true
      validationRules:
        - type: minLength
          parameters: 2
    - id: age
      type: number
    - id: guardian
      label: Guardian of ${name}
      visible: age < minAge
    - id: address
      type: group
      nested:
        - id: country
          type: select
          options: [NZ, AU]
        - id: city
          type: select
          options:
            type: dependent
            dependency:
              field: address.country
              valueMap:
                NZ: [Auckland, Wellington]
"""


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestLoadForm:
    def test_load_string(self):
        schema = load_form_string(SIGNUP)

        assert schema.id == "signup"
        assert schema.title == "Sign up"
        assert schema.variables == {"minAge": 18}
        assert schema.field_paths() == [
            "name",
            "age",
            "guardian",
            "address",
            "address.country",
            "address.city",
        ]

    def test_field_details(self):
        schema = load_form_string(SIGNUP)

        age = schema.get_field("age")
        city = schema.get_field("address.city")
        name = schema.get_field("name")

        assert age.type == FieldType.NUMBER
        assert city.options.type == OptionsType.DEPENDENT
        assert [o.label for o in city.options.dependency.value_map["NZ"]] == ["Auckland", "Wellington"]
        assert name.validation_rules[0].parameters == 2

    def test_load_file(self, tmp_path):
        path = _write_raw(tmp_path / "signup.yaml", SIGNUP)

        assert load_form(path).id == "signup"

    def test_schema_round_trip(self):
        schema = load_form_string(SIGNUP)

        assert load_form_string(yaml.dump({"form": schema.to_dict()})) == schema

    def test_boolean_conditions(self):
        schema = load_form_string(
            yaml.dump(_form({"id": "a", "visible": True}, {"id": "b", "visible": False}))
        )

        assert schema.get_field("a").visible is None
        assert schema.get_field("b").visible is not None


class TestJsonSchemaPass:
    def test_unknown_field_type(self):
        issues = document_issues(_form({"id": "a", "type": "bogus"}))

        assert len(issues) == 1
        assert issues[0].path == "form/fields[0]/type"

    def test_unknown_key(self):
        issues = document_issues(_form({"id": "a", "colour": "red"}))

        assert issues
        assert "colour" in issues[0].message

    def test_missing_id(self):
        issues = document_issues(_form({"label": "No id"}))

        assert any("'id' is a required property" in issue.message for issue in issues)

    def test_missing_form(self):
        assert document_issues({"fields": []})

    def test_empty_document(self):
        issues = document_issues(None, "empty.yaml")

        assert issues == [ValidationIssue("empty.yaml", "File is empty or contains only whitespace")]

    def test_load_raises(self):
        with pytest.raises(StructuralError) as exc:
            load_form_string(yaml.dump(_form({"id": "a", "type": "bogus"})))

        assert exc.value.issues[0].path == "form/fields[0]/type"


class TestStructuralPass:
    def test_empty_group_rejected(self):
        document = _form({"id": "gate", "visible": {"type": "and", "conditions": []}})

        with pytest.raises(StructuralError) as exc:
            load_form_string(yaml.dump(document))

        assert exc.value.issues[0].path == "gate.visible.conditions"

    def test_empty_group_allowed(self):
        document = _form({"id": "gate", "visible": {"type": "and", "conditions": []}})

        schema = load_form_string(yaml.dump(document), allow_empty_groups=True)

        assert schema.has_field("gate")

    def test_bad_template(self):
        document = _form({"id": "name", "label": "Hello ${name +}"})

        with pytest.raises(StructuralError) as exc:
            load_form_string(yaml.dump(document))

        assert exc.value.issues[0].path == "name.label"

    def test_bad_nested_property_template(self):
        document = _form({"id": "name", "properties": {"hint": {"text": "${"}}})

        with pytest.raises(StructuralError) as exc:
            load_form_string(yaml.dump(document))

        assert exc.value.issues[0].path == "name.properties.hint.text"

    def test_bad_condition_expression(self):
        document = _form({"id": "name", "visible": "age >"})

        with pytest.raises(StructuralError) as exc:
            load_form_string(yaml.dump(document))

        assert exc.value.issues[0].path == "name.visible.expression"

    def test_duplicate_ids(self):
        with pytest.raises(StructuralError, match="duplicate field id 'a'"):
            load_form_string(yaml.dump(_form({"id": "a"}, {"id": "a"})))

    def test_yaml_error(self):
        with pytest.raises(StructuralError, match="YAML parse error"):
            load_form_string("form: [unclosed")


class TestValidateFormFile:
    def test_valid(self, tmp_path):
        path = _write_raw(tmp_path / "signup.yaml", SIGNUP)

        assert validate_form_file(path) == []

    def test_collects_issues(self, tmp_path):
        path = _write_yaml(
            tmp_path / "bad.yaml",
            _form(
                {"id": "a", "visible": {"type": "or", "conditions": []}},
                {"id": "b", "label": "${"},
            ),
        )

        issues = validate_form_file(path)

        assert [issue.path for issue in issues] == ["a.visible.conditions", "b.label"]
        assert all(issue.source == str(path) for issue in issues)

    def test_duplicates_reported(self, tmp_path):
        path = _write_yaml(tmp_path / "dup.yaml", _form({"id": "a"}, {"id": "a"}))

        issues = validate_form_file(path)

        assert len(issues) == 1
        assert issues[0].path == "a"

    def test_yaml_error(self, tmp_path):
        path = _write_raw(tmp_path / "broken.yaml", "form: [unclosed")

        issues = validate_form_file(path)

        assert len(issues) == 1
        assert "YAML parse error" in issues[0].message

    def test_issue_str(self):
        issue = ValidationIssue("f.yaml", "bad", "form/id")

        assert str(issue) == "[ERROR] f.yaml at form/id: bad"
