"""Tests for SmartForm CLI commands."""

import json
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from smartform.cli.main import cli


@pytest.fixture
def runner():
    return CliRunner()


def _write_form(path: Path, fields: list[dict], **extra) -> Path:
    path.write_text(yaml.dump({"form": {"id": "signup", "fields": fields, **extra}}))
    return path


@pytest.fixture
def form_file(tmp_path):
    return _write_form(
        tmp_path / "signup.yaml",
        [
            {"id": "country", "type": "select", "defaultValue": "NZ", "options": ["NZ", "AU"]},
            {
                "id": "state",
                "visible": {"field": "country", "operator": "eq", "value": "AU"},
            },
            {"id": "greeting", "label": "Hello ${user.name} from ${country}"},
        ],
        variables={"user": {"name": "Ann", "email": "ann@example.com"}},
    )


@pytest.fixture
def cyclic_file(tmp_path):
    return _write_form(
        tmp_path / "cyclic.yaml",
        [{"id": "a", "label": "${b}"}, {"id": "b", "label": "${a}"}],
    )


class TestValidate:
    def test_valid(self, runner, form_file):
        result = runner.invoke(cli, ["validate", str(form_file)])

        assert result.exit_code == 0
        assert "Form 'signup' is valid (3 fields)." in result.output

    def test_invalid(self, runner, tmp_path):
        path = _write_form(tmp_path / "bad.yaml", [{"id": "a", "type": "bogus"}])

        result = runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 1
        assert "1 error(s) found" in result.output

    def test_structural_issue(self, runner, tmp_path):
        path = _write_form(
            tmp_path / "bad.yaml", [{"id": "a", "visible": {"type": "or", "conditions": []}}]
        )

        result = runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 1
        assert "a.visible.conditions" in result.output

    def test_empty_groups_allowed_by_env(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("SMARTFORM_ALLOW_EMPTY_GROUPS", "true")
        path = _write_form(
            tmp_path / "ok.yaml", [{"id": "a", "visible": {"type": "or", "conditions": []}}]
        )

        result = runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 0

    def test_cycle_is_warning(self, runner, cyclic_file):
        result = runner.invoke(cli, ["validate", str(cyclic_file)])

        assert result.exit_code == 0
        assert "[WARNING]" in result.output
        assert "a -> b -> a" in result.output
        assert "1 warning(s) found." in result.output

    def test_cycle_fails_strict(self, runner, cyclic_file):
        result = runner.invoke(cli, ["validate", "--strict", str(cyclic_file)])

        assert result.exit_code == 1

    def test_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["validate", str(tmp_path / "nope.yaml")])

        assert result.exit_code != 0


class TestGraph:
    def test_changed(self, runner, form_file):
        result = runner.invoke(cli, ["graph", str(form_file), "--changed", "country"])

        assert result.exit_code == 0
        assert "3 field(s) affected:" in result.output
        assert "  1. country" in result.output

    def test_nothing_affected(self, runner, tmp_path):
        path = _write_form(tmp_path / "f.yaml", [{"id": "a"}])

        result = runner.invoke(cli, ["graph", str(path), "--changed", "zzz"])

        assert result.exit_code == 0
        assert "No fields affected." in result.output

    def test_json(self, runner, form_file):
        result = runner.invoke(cli, ["graph", str(form_file)])

        data = json.loads(result.output)
        assert data["order"] == ["country", "state", "greeting"]
        assert data["fields"]["state"]["dependsOn"] == ["country"]
        assert data["external"] == {"greeting": ["user.name"]}


class TestResolve:
    def test_defaults_only(self, runner, form_file):
        result = runner.invoke(cli, ["resolve", str(form_file)])

        assert result.exit_code == 0
        states = json.loads(result.output)
        assert states["country"]["value"] == "NZ"
        assert states["state"]["visible"] is False
        assert states["greeting"]["label"] == "Hello Ann from NZ"

    def test_with_data(self, runner, form_file, tmp_path):
        data = tmp_path / "values.yaml"
        data.write_text(yaml.dump({"country": "AU"}))

        result = runner.invoke(cli, ["resolve", str(form_file), "--data", str(data)])

        states = json.loads(result.output)
        assert states["state"]["visible"] is True
        assert states["greeting"]["label"] == "Hello Ann from AU"

    def test_data_must_be_mapping(self, runner, form_file, tmp_path):
        data = tmp_path / "values.yaml"
        data.write_text("- a\n- b\n")

        result = runner.invoke(cli, ["resolve", str(form_file), "--data", str(data)])

        assert result.exit_code == 1

    def test_invalid_form(self, runner, tmp_path):
        path = _write_form(tmp_path / "bad.yaml", [{"id": "a", "label": "${"}])

        result = runner.invoke(cli, ["resolve", str(path)])

        assert result.exit_code == 1


class TestSuggest:
    def test_form_variables(self, runner, form_file):
        result = runner.invoke(cli, ["suggest", str(form_file), "user."])

        assert result.exit_code == 0
        assert "user.email" in result.output
        assert "user.name" in result.output

    def test_functions_shown_with_signature(self, runner, form_file):
        result = runner.invoke(cli, ["suggest", str(form_file), "toUp"])

        assert "toUpper(value)" in result.output

    def test_no_suggestions(self, runner, form_file):
        result = runner.invoke(cli, ["suggest", str(form_file), "zzzz"])

        assert "No suggestions." in result.output

    def test_limit(self, runner, form_file):
        result = runner.invoke(cli, ["suggest", str(form_file), "", "--limit", "2"])

        assert len(result.output.strip().splitlines()) == 2


class TestFunctions:
    def test_list(self, runner):
        result = runner.invoke(cli, ["functions"])

        assert result.exit_code == 0
        assert "string" in result.output
        assert "toUpper(value)" in result.output

    def test_json(self, runner):
        result = runner.invoke(cli, ["functions", "--json"])

        data = json.loads(result.output)
        assert "toUpper" in data["functions"]
        assert "math" in data["byCategory"]


class TestCLIEntryPoint:
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "SmartForm" in result.output
        for command in ("validate", "graph", "resolve", "suggest", "functions"):
            assert command in result.output

    def test_verbose_flag(self, runner):
        result = runner.invoke(cli, ["-v", "functions"])

        assert result.exit_code == 0
