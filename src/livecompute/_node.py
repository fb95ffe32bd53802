"""Output node records and the registry that owns them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ._expr import extract_variables
from ._names import variable_name

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ._tree import OutputSpec

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OutputNode:
    """Engine-side state of one output field.

    Attributes:
        id: Variable name of the field (``rows[0][total]`` is ``rows_0_total``).
        field: Field name in the bound tree, used for reads and writes.
        expression: Expression computing the value.
        dependencies: Referenced variables plus declared trigger variables.
        format: Display format kind.
        auto_apply: Whether computed values are written to the field.
        skip_while_editing: Whether edits to the field pause recomputation.
        trigger_variables: Declared extra dependencies.
        scope: Dotted subtree path of the field.
        last_value: Last raw value computed, None before the first evaluation.
        last_written: Last formatted text written, None if never written.
        evaluated: Whether the node has been evaluated at least once.
        linked: Bidirectionally linked peers, set by the engine.

    """

    id: str
    field: str
    expression: str
    dependencies: frozenset[str]
    format: str | None = None
    auto_apply: bool = True
    skip_while_editing: bool = False
    trigger_variables: tuple[str, ...] = ()
    scope: str = ""
    last_value: Any = None
    last_written: str | None = None
    evaluated: bool = False
    linked: frozenset[str] = frozenset()

    @classmethod
    def from_spec(cls, spec: OutputSpec) -> OutputNode:
        triggers = tuple(variable_name(name) for name in spec.trigger_variables)
        return cls(
            id=variable_name(spec.id),
            field=spec.id,
            expression=spec.expression,
            dependencies=extract_variables(spec.expression) | frozenset(triggers),
            format=spec.format,
            auto_apply=spec.auto_apply,
            skip_while_editing=spec.skip_while_editing,
            trigger_variables=triggers,
            scope=spec.scope,
        )

    def update_from(self, spec: OutputSpec) -> bool:
        """Take over declared attributes from a rescanned spec.

        Returns:
            True if anything changed. A new expression also resets the cached values.

        """
        fresh = OutputNode.from_spec(spec)
        declared = ("field", "format", "auto_apply", "skip_while_editing", "trigger_variables", "scope")
        changed = any(getattr(self, name) != getattr(fresh, name) for name in declared)
        for name in declared:
            setattr(self, name, getattr(fresh, name))

        if fresh.expression != self.expression or fresh.dependencies != self.dependencies:
            self.expression = fresh.expression
            self.dependencies = fresh.dependencies
            self.last_value = None
            self.last_written = None
            self.evaluated = False
            changed = True
        return changed


@dataclass(slots=True)
class RegistryDiff:
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    changed: list[str] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.added or self.removed or self.changed)


class NodeRegistry:
    """Owns the output nodes of one engine, keyed by id in document order."""

    def __init__(self) -> None:
        self._nodes: dict[str, OutputNode] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[OutputNode]:
        return iter(self._nodes.values())

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._nodes

    def get(self, node_id: str) -> OutputNode | None:
        return self._nodes.get(node_id)

    def ids(self) -> list[str]:
        return list(self._nodes)

    def sync(self, specs: Iterable[OutputSpec]) -> RegistryDiff:
        """Bring the registry in line with the declared outputs.

        Existing nodes keep their cached values unless their expression
        changed; nodes absent from ``specs`` are discarded. If two specs
        flatten to the same id, the later one wins.

        Args:
            specs: Declared outputs in document order.

        Returns:
            Ids that were added, removed, or whose declaration changed.

        """
        diff = RegistryDiff()
        nodes: dict[str, OutputNode] = {}
        for spec in specs:
            node_id = variable_name(spec.id)
            if node_id in nodes:
                logger.warning("Output fields flatten to the same id '%s', keeping '%s'", node_id, spec.id)
            node = self._nodes.get(node_id)
            if node is None:
                nodes[node_id] = OutputNode.from_spec(spec)
                if node_id not in diff.added:
                    diff.added.append(node_id)
            else:
                if node.update_from(spec):
                    diff.changed.append(node_id)
                nodes[node_id] = node

        diff.removed = [node_id for node_id in self._nodes if node_id not in nodes]
        self._nodes = nodes
        if diff:
            logger.debug(
                "Registry sync: %d added, %d removed, %d changed",
                len(diff.added),
                len(diff.removed),
                len(diff.changed),
            )
        return diff
