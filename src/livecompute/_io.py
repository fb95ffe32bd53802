"""Form documents: TOML files holding inputs and output declarations."""

from __future__ import annotations

import dataclasses
import logging
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any, TypeAlias

import tomli_w
from pydantic import BaseModel, ConfigDict, Field

from ._config import EngineSettings, settings_from_mapping
from ._tree import MemoryTree, OutputSpec

if TYPE_CHECKING:
    from ._engine import ReactiveEngine

logger = logging.getLogger(__name__)

Scalar: TypeAlias = str | int | float | bool


class OutputModel(BaseModel):
    """One ``[[outputs]]`` entry of a form document."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    expression: str
    format: str | None = None
    auto_apply: bool = True
    skip_while_editing: bool = False
    trigger_variables: list[str] = Field(default_factory=list)
    scope: str = ""
    value: Scalar = ""

    def to_spec(self) -> OutputSpec:
        return OutputSpec(
            id=self.id,
            expression=self.expression,
            format=self.format,
            auto_apply=self.auto_apply,
            skip_while_editing=self.skip_while_editing,
            trigger_variables=tuple(self.trigger_variables),
            scope=self.scope,
        )


class FormDocument(BaseModel):
    """A form: input values, output declarations and optional engine settings.

    Example:
        ```toml
        [inputs]
        harga = "10.000"
        qty = 2

        [[outputs]]
        id = "total"
        expression = "harga * qty"
        format = "currency"
        ```

    """

    model_config = ConfigDict(extra="forbid")

    inputs: dict[str, Scalar] = Field(default_factory=dict)
    outputs: list[OutputModel] = Field(default_factory=list)
    focus: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)

    def engine_settings(self, base: EngineSettings | None = None) -> EngineSettings:
        """Settings from the document's ``[settings]`` table layered over ``base``.

        Raises:
            ConfigError: If the table holds unknown keys or bad values.

        """
        base = base or EngineSettings()
        if not self.settings:
            return base
        overrides = {key.replace("-", "_"): value for key, value in self.settings.items()}
        return settings_from_mapping({**dataclasses.asdict(base), **overrides}, section="[settings]")

    def build_tree(self) -> MemoryTree:
        """Create an in-memory tree holding the document's fields."""
        tree = MemoryTree()
        for name, value in self.inputs.items():
            tree.add_field(name, value, notify=False)
        for output in self.outputs:
            tree.add_output(output.to_spec(), output.value, notify=False)
        tree.focus(self.focus)
        return tree


def load_form(path: Path | str) -> FormDocument:
    """Load and validate a form document.

    Raises:
        tomllib.TOMLDecodeError: If the file is not valid TOML.
        pydantic.ValidationError: If the document does not have the form shape.

    """
    path = Path(path)
    with path.open("rb") as f:
        data = tomllib.load(f)
    document = FormDocument.model_validate(data)
    logger.debug("Loaded form %s: %d inputs, %d outputs", path, len(document.inputs), len(document.outputs))
    return document


def collect_results(engine: ReactiveEngine) -> dict[str, dict[str, Any]]:
    """Raw and displayed value of every output node, keyed by field name.

    Nodes never evaluated are reported with an empty value.
    """
    results: dict[str, dict[str, Any]] = {}
    for node in engine.nodes:
        value = "" if node.last_value is None else node.last_value
        results[node.field] = {"value": value, "display": engine.display(node.id)}
    return results


def export_results(results: dict[str, dict[str, Any]], output_path: Path | str) -> None:
    """Write collected results to a TOML file under an ``[outputs]`` table."""
    output_path = Path(output_path)
    with output_path.open("wb") as f:
        tomli_w.dump({"outputs": results}, f)

    logger.debug("Exported results to %s", output_path)
