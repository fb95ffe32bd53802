"""Reactive recomputation of output fields over a bound tree."""

from __future__ import annotations

import logging
import time
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Any, TypeAlias

from ._coerce import format_value
from ._config import EngineSettings
from ._convergence import ConvergenceDetector, Verdict
from ._debounce import Debouncer
from ._expr import ExpressionEvaluator
from ._graph import LinkGraph, build_link_graph
from ._names import row_indices, variable_name
from ._node import NodeRegistry, OutputNode, RegistryDiff
from ._scheduler import Priority, SchedulerEntry, UpdateScheduler
from ._tree import in_scope

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ._debounce import Timers
    from ._scheduler import YieldPoint
    from ._tree import BoundTree

    ChangeListener: TypeAlias = Callable[[list[str]], None]
    Watcher: TypeAlias = Callable[[str, Any, Any], None]

logger = logging.getLogger(__name__)


class EngineState(StrEnum):
    """Lifecycle of the engine between propagation cycles."""

    IDLE = auto()  # Nothing pending
    QUEUED = auto()  # Work waits for a debounce window
    EVALUATING = auto()  # The update queue is being drained


class ReactiveEngine:
    """Keeps the output fields of one bound tree in sync with their expressions.

    Input edits and structural changes are debounced (when a timer backend is
    given), turned into scheduler entries for the affected output nodes, and
    drained in batches. Each evaluation is checked by the convergence
    detector; a changed value is written back to the tree and the node's
    bidirectional peers are re-queued at high priority. A per-cycle pass cap
    stops propagation that does not settle.

    Args:
        tree: The bound tree to read, write and watch.
        settings: Tunables; defaults if omitted.
        yield_point: Where the scheduler resumes between batches; runs to
            completion synchronously if omitted.
        timers: Timer backend for debouncing; without one, notifications are
            processed immediately.
        clock: Monotonic clock in seconds, used for edit cooldowns.

    """

    def __init__(
        self,
        tree: BoundTree,
        settings: EngineSettings | None = None,
        *,
        yield_point: YieldPoint | None = None,
        timers: Timers | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        self._tree = tree
        self.settings = settings or EngineSettings()
        self._clock = clock or time.monotonic
        self._locale = self.settings.number_locale

        self._registry = NodeRegistry()
        self._link_graph = LinkGraph()
        self._detector = ConvergenceDetector(
            tolerance=self.settings.tolerance,
            relative_tolerance=self.settings.relative_tolerance,
            history_size=self.settings.history_size,
        )
        self._evaluator = ExpressionEvaluator(locale=self._locale, precision=self.settings.precision)
        self._scheduler = UpdateScheduler(
            batch_size=self.settings.batch_size,
            max_queue=self.settings.max_queue,
            yield_point=yield_point,
            clock=self._clock,
        )
        self._debouncer = Debouncer(timers) if timers is not None else None

        self._variables: dict[str, str] = {}  # variable name -> field name
        self._row_indices: frozenset[int] = frozenset()
        self._last_edit: dict[str, float] = {}

        self._state = EngineState.IDLE
        self._passes: dict[str, int] = {}
        self._changed: list[str] = []
        self._scope: str | None = None
        self._halted = False
        self._writing = False

        self._listeners: list[ChangeListener] = []
        self._watchers: dict[str, list[Watcher]] = {}
        self._unsubscribe: Callable[[], None] | None = None

    # Introspection

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def nodes(self) -> list[OutputNode]:
        """Registered output nodes in document order."""
        return list(self._registry)

    @property
    def link_graph(self) -> LinkGraph:
        return self._link_graph

    @property
    def scheduler(self) -> UpdateScheduler:
        return self._scheduler

    @property
    def detector(self) -> ConvergenceDetector:
        return self._detector

    def node(self, node_id: str) -> OutputNode:
        """Get a registered node by id.

        Raises:
            KeyError: If no such node is registered.

        """
        node = self._registry.get(node_id)
        if node is None:
            msg = f"Unknown output node: {node_id}"
            raise KeyError(msg)
        return node

    def value(self, node_id: str) -> Any:
        """Last raw value computed for a node (None before its first evaluation)."""
        return self.node(node_id).last_value

    def display(self, node_id: str) -> str:
        """Formatted text of a node's last value."""
        node = self.node(node_id)
        if node.last_written is not None:
            return node.last_written
        return format_value(node.last_value, node.format, locale=self._locale)

    # Subscriptions

    def on_change(self, callback: ChangeListener) -> Callable[[], None]:
        """Call ``callback`` with the ids of changed nodes after each propagation cycle.

        Returns:
            A callable that removes the listener.

        """
        self._listeners.append(callback)

        def remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return remove

    def watch(self, node_id: str, callback: Watcher) -> Callable[[], None]:
        """Call ``callback(node_id, old, new)`` whenever a node's value changes.

        Returns:
            A callable that removes the watcher.

        """
        watchers = self._watchers.setdefault(node_id, [])
        watchers.append(callback)

        def remove() -> None:
            if callback in watchers:
                watchers.remove(callback)

        return remove

    # Tree binding

    def attach(self, *, compute: bool = True) -> None:
        """Subscribe to the tree, scan its outputs and (by default) compute them all."""
        if self._unsubscribe is None:
            self._unsubscribe = self._tree.subscribe(self)
        if compute:
            self.recompute()
        else:
            self.rescan()

    def detach(self) -> None:
        """Stop listening to the tree and drop pending work."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._debouncer is not None:
            self._debouncer.cancel_all()
        self._scheduler.clear()
        self._state = EngineState.IDLE

    def on_input_change(self, name: str, *, user: bool) -> None:
        self.notify_input(name, user=user)

    def on_structure_change(self) -> None:
        self.notify_structure()

    # Notifications

    def notify_input(self, name: str, *, user: bool = True) -> None:
        """Handle a changed field.

        Direct edits settle in the immediate window; programmatic changes in
        the settle window. Notifications caused by the engine's own writes are
        ignored.

        Args:
            name: Field name as the tree knows it.
            user: Whether the change came from an edit rather than a script.

        """
        if self._writing:
            return
        variable = variable_name(name)
        if variable not in self._variables:
            self._variables[variable] = name
            self._row_indices = row_indices(self._variables.values())

        if user and variable in self._registry:
            self._last_edit[variable] = self._clock()

        if self._debouncer is None:
            self._input_changed(variable)
            return
        delay = self.settings.immediate_delay if user else self.settings.settle_delay
        self._debouncer.schedule(("input", variable), delay, lambda: self._input_changed(variable))
        self._mark_queued()

    def notify_structure(self) -> None:
        """Handle added or removed fields; outputs are rescanned after the settle window."""
        if self._debouncer is None:
            self._structure_changed()
            return
        self._debouncer.schedule(("structure",), self.settings.settle_delay, self._structure_changed)
        self._mark_queued()

    def flush(self) -> int:
        """Run pending debounced work now.

        Returns:
            Number of debounced callbacks run.

        """
        if self._debouncer is None:
            return 0
        return self._debouncer.flush()

    def _mark_queued(self) -> None:
        if self._state is EngineState.IDLE:
            self._state = EngineState.QUEUED

    def _input_changed(self, variable: str) -> None:
        dependents = self._link_graph.dependents_of(variable)
        logger.debug("Input %s changed, %d dependent node(s)", variable, len(dependents))
        # An edit to an output field must not be recomputed over by its own readers
        source = variable if variable in self._registry else None
        self._schedule(dependents, Priority.NORMAL, source)
        self._drain()

    def _structure_changed(self) -> None:
        self.rescan()
        self._schedule(self._link_graph.order, Priority.LOW, None)
        self._drain()

    # Scanning and recomputing

    def rescan(self) -> RegistryDiff:
        """Re-read the tree's outputs and inputs and rebuild the link graph.

        Returns:
            Which nodes were added, removed or redeclared.

        """
        diff = self._registry.sync(self._tree.output_specs(None))
        for node_id in diff.removed:
            self._detector.forget(node_id)
            self._last_edit.pop(node_id, None)
            self._passes.pop(node_id, None)

        names = self._tree.input_names(None)
        self._variables = {variable_name(name): name for name in names}
        for node in self._registry:
            self._variables.setdefault(node.id, node.field)
        self._row_indices = row_indices(self._variables.values())

        self._link_graph = build_link_graph({node.id: node.dependencies for node in self._registry})
        for node in self._registry:
            node.linked = self._link_graph.peers(node.id)
        return diff

    def recompute(self, scope: str | None = None) -> None:
        """Rescan and recompute every output node, or those under ``scope``.

        Args:
            scope: Dotted subtree path; None recomputes the whole tree.

        """
        self.rescan()
        node_ids = [
            node_id for node_id in self._link_graph.order if in_scope(self.node(node_id).scope, scope)
        ]
        logger.debug("Recomputing %d node(s) in scope %r", len(node_ids), scope)
        self._schedule(node_ids, Priority.NORMAL, None, scope=scope)
        self._drain()

    def _schedule(
        self,
        node_ids: Iterable[str],
        priority: Priority,
        source: str | None,
        *,
        scope: str | None = None,
    ) -> None:
        if self._state is not EngineState.EVALUATING:
            self._scope = scope
        elif self._scope != scope:
            # Work from outside the running scope widens it to the whole tree
            self._scope = None
        for node_id in node_ids:
            # A fresh trigger resets the pass count
            self._passes.pop(node_id, None)
            self._scheduler.enqueue(node_id, priority, source)

    # Draining

    def _drain(self) -> None:
        if not self._scheduler.draining:
            self._state = EngineState.EVALUATING
        self._scheduler.drain(self._process, on_batch=self._batch_done, on_idle=self._cycle_complete)

    def _batch_done(self, batch: list[SchedulerEntry]) -> None:
        logger.debug("Batch done: %s", ", ".join(entry.node_id for entry in batch))

    def _cycle_complete(self) -> None:
        changed = self._changed
        self._changed = []
        self._passes.clear()
        self._scope = None
        self._halted = False
        pending = self._debouncer is not None and len(self._debouncer) > 0
        self._state = EngineState.QUEUED if pending else EngineState.IDLE

        if not changed:
            return
        logger.debug("Cycle complete, changed: %s", ", ".join(changed))
        for listener in list(self._listeners):
            try:
                listener(list(changed))
            except Exception:
                logger.exception("Change listener failed")

    def _should_skip(self, node: OutputNode) -> bool:
        if not node.skip_while_editing:
            return False
        if self._tree.is_focused(node.field):
            return True
        last_edit = self._last_edit.get(node.id)
        return last_edit is not None and self._clock() - last_edit < self.settings.edit_cooldown

    def _resolve(self, variable: str) -> str | None:
        name = self._variables.get(variable)
        if name is None:
            return None
        text = self._tree.read(name)
        node = self._registry.get(variable)
        # Formatted text does not always parse back; use the raw value while the field still shows it
        if node is not None and node.last_written is not None and text == node.last_written:
            return node.last_value
        return text

    def _process(self, entry: SchedulerEntry) -> None:
        if self._halted:
            return
        node = self._registry.get(entry.node_id)
        if node is None:
            logger.debug("Skipping %s (no longer registered)", entry.node_id)
            return
        if entry.source == node.id:
            return
        if self._should_skip(node):
            logger.debug("Skipping %s (being edited)", node.id)
            return

        passes = self._passes.get(node.id, 0) + 1
        if passes > self.settings.max_passes:
            logger.warning(
                "Node %s did not settle within %d passes, stopping propagation",
                node.id,
                self.settings.max_passes,
            )
            self._halted = True
            self._scheduler.clear()
            return
        self._passes[node.id] = passes
        if passes == 1:
            # Convergence is judged within one propagation cycle
            self._detector.forget(node.id)

        value = self._evaluator.evaluate(node.expression, self._resolve, self._row_indices)
        from_peer = entry.source is not None and entry.source in node.linked
        verdict = self._detector.observe(node.id, value, from_peer=from_peer)
        logger.debug("Evaluated %s = %r (%s, pass %d)", node.id, value, verdict, passes)

        if verdict is Verdict.OSCILLATING:
            logger.info("Node %s oscillates, keeping %r", node.id, node.last_value)
            return
        if verdict is Verdict.CONVERGED:
            return
        if node.evaluated and self._detector.values_converged(value, node.last_value):
            return

        old = node.last_value
        node.last_value = value
        node.evaluated = True
        self._apply(node)
        self._record_change(node.id, old, value)
        self._propagate(node, entry)

    def _apply(self, node: OutputNode) -> bool:
        text = format_value(node.last_value, node.format, locale=self._locale)
        current = node.last_written if node.last_written is not None else self._tree.read(node.field)
        if text == current or not node.auto_apply:
            return False
        self._writing = True
        try:
            self._tree.write(node.field, text)
        finally:
            self._writing = False
        node.last_written = text
        logger.debug("Wrote %s = %r", node.field, text)
        return True

    def _record_change(self, node_id: str, old: Any, new: Any) -> None:
        if node_id not in self._changed:
            self._changed.append(node_id)
        for watcher in list(self._watchers.get(node_id, ())):
            try:
                watcher(node_id, old, new)
            except Exception:
                logger.exception("Watcher of %s failed", node_id)

    def _propagate(self, node: OutputNode, entry: SchedulerEntry) -> None:
        readers = self._link_graph.graph.successors(node.id)
        for peer in self._link_graph.order:
            if peer not in node.linked or peer == entry.source:
                continue
            if not in_scope(self.node(peer).scope, self._scope):
                continue
            # A queued evaluation already runs after this write
            if self._scheduler.is_pending(peer):
                continue
            # Peers sharing only inputs with this node need no second pass
            if peer in self._passes and peer not in readers:
                continue
            self._scheduler.enqueue(peer, Priority.HIGH, node.id)
