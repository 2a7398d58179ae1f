"""Tests for EngineConfig."""

import pytest

from smartform.config import EngineConfig

ENV_VARS = [
    "SMARTFORM_MAX_DEPTH",
    "SMARTFORM_STRICT",
    "SMARTFORM_CACHE_TTL",
    "SMARTFORM_CASE_SENSITIVE",
    "SMARTFORM_ALLOW_EMPTY_GROUPS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestFromEnv:
    def test_defaults(self):
        assert EngineConfig.from_env() == EngineConfig()

    def test_reads_variables(self, monkeypatch):
        monkeypatch.setenv("SMARTFORM_MAX_DEPTH", "4")
        monkeypatch.setenv("SMARTFORM_STRICT", "yes")
        monkeypatch.setenv("SMARTFORM_CACHE_TTL", "2.5")
        monkeypatch.setenv("SMARTFORM_CASE_SENSITIVE", "false")
        monkeypatch.setenv("SMARTFORM_ALLOW_EMPTY_GROUPS", "1")

        config = EngineConfig.from_env()

        assert config == EngineConfig(
            max_depth=4,
            strict=True,
            cache_ttl=2.5,
            case_sensitive=False,
            allow_empty_groups=True,
        )

    def test_blank_keeps_default(self, monkeypatch):
        monkeypatch.setenv("SMARTFORM_MAX_DEPTH", " ")

        assert EngineConfig.from_env().max_depth == 10

    @pytest.mark.parametrize(
        "name,value",
        [
            ("SMARTFORM_MAX_DEPTH", "deep"),
            ("SMARTFORM_MAX_DEPTH", "0"),
            ("SMARTFORM_CACHE_TTL", "soon"),
            ("SMARTFORM_CACHE_TTL", "-1"),
        ],
    )
    def test_invalid(self, monkeypatch, name, value):
        monkeypatch.setenv(name, value)

        with pytest.raises(ValueError, match=name):
            EngineConfig.from_env()


class TestResolutionOptions:
    def test_carries_strict_and_depth(self):
        options = EngineConfig(strict=True, max_depth=3).resolution_options()

        assert options.strict is True
        assert options.max_depth == 3
        assert options.enable_recursion is False
