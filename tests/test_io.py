"""Tests for form documents and result export in livecompute._io."""

import tomllib
from pathlib import Path

import pytest
from pydantic import ValidationError

from livecompute._config import ConfigError, EngineSettings
from livecompute._engine import ReactiveEngine
from livecompute._io import FormDocument, OutputModel, collect_results, export_results, load_form

FORM = """
focus = "qty"

[inputs]
harga = "10.000"
qty = 2

[[outputs]]
id = "total"
expression = "harga * qty"
format = "currency"

[[outputs]]
id = "preview"
expression = "qty * 10"
auto_apply = false
trigger_variables = ["refresh"]
scope = "summary"

[settings]
max-passes = 4
"""


@pytest.fixture
def form_path(tmp_path: Path) -> Path:
    path = tmp_path / "order.toml"
    path.write_text(FORM)
    return path


class TestOutputModel:
    def test_to_spec(self):
        spec = OutputModel(id="total", expression="a + b", trigger_variables=["x"]).to_spec()
        assert spec.id == "total"
        assert spec.trigger_variables == ("x",)
        assert spec.auto_apply
        assert spec.format is None

    def test_rejects_unknown_keys(self):
        with pytest.raises(ValidationError):
            OutputModel.model_validate({"id": "total", "expression": "1", "formula": "2"})


class TestLoadForm:
    def test_loads_document(self, form_path: Path):
        document = load_form(form_path)
        assert document.inputs == {"harga": "10.000", "qty": 2}
        assert [output.id for output in document.outputs] == ["total", "preview"]
        assert document.outputs[1].auto_apply is False
        assert document.focus == "qty"

    def test_rejects_unknown_top_level_key(self, tmp_path: Path):
        path = tmp_path / "bad.toml"
        path.write_text('[fields]\nx = "1"\n')
        with pytest.raises(ValidationError):
            load_form(path)

    def test_invalid_toml(self, tmp_path: Path):
        path = tmp_path / "bad.toml"
        path.write_text("[inputs\n")
        with pytest.raises(tomllib.TOMLDecodeError):
            load_form(path)


class TestEngineSettings:
    def test_document_settings_override_base(self, form_path: Path):
        document = load_form(form_path)
        settings = document.engine_settings(EngineSettings(batch_size=7))
        assert settings.max_passes == 4
        assert settings.batch_size == 7

    def test_no_settings_returns_base(self):
        base = EngineSettings(batch_size=7)
        assert FormDocument().engine_settings(base) is base

    def test_bad_settings(self):
        document = FormDocument(settings={"max_passes": 0})
        with pytest.raises(ConfigError, match=r"\[settings\]"):
            document.engine_settings()


class TestBuildTree:
    def test_fields_and_focus(self, form_path: Path):
        tree = load_form(form_path).build_tree()
        assert tree.values() == {"harga": "10.000", "qty": "2", "total": "", "preview": ""}
        assert [spec.id for spec in tree.output_specs()] == ["total", "preview"]
        assert tree.output_specs()[1].scope == "summary"
        assert tree.is_focused("qty")
        assert tree.writes == []


class TestResults:
    def test_collect_and_export(self, form_path: Path, tmp_path: Path):
        tree = load_form(form_path).build_tree()
        engine = ReactiveEngine(tree)
        engine.attach()

        results = collect_results(engine)
        assert results == {
            "total": {"value": 20000.0, "display": "20.000"},
            "preview": {"value": 20.0, "display": "20"},
        }

        output = tmp_path / "results.toml"
        export_results(results, output)
        with output.open("rb") as f:
            exported = tomllib.load(f)
        assert exported == {"outputs": results}

    def test_unevaluated_nodes_are_empty(self, form_path: Path):
        engine = ReactiveEngine(load_form(form_path).build_tree())
        engine.attach(compute=False)
        assert collect_results(engine)["total"] == {"value": "", "display": ""}
