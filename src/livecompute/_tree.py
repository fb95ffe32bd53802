"""The read/write interface the engine binds to, and an in-memory implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from ._coerce import plain_string

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OutputSpec:
    """Declared attributes of an output field.

    Attributes:
        id: Field name the computed value is written to.
        expression: Expression computing the value.
        format: Display format kind, or None for the plain string form.
        auto_apply: Write the value to the field; False only notifies watchers.
        skip_while_editing: Leave the field alone while it is focused or
            recently edited by hand.
        trigger_variables: Extra variables that force a recompute when they change.
        scope: Dotted subtree path the field lives in.

    """

    id: str
    expression: str
    format: str | None = None
    auto_apply: bool = True
    skip_while_editing: bool = False
    trigger_variables: tuple[str, ...] = ()
    scope: str = ""


def in_scope(field_scope: str, scope: str | None) -> bool:
    """Check whether a field's scope lies within ``scope`` (None or "" is everything)."""
    if not scope:
        return True
    return field_scope == scope or field_scope.startswith(f"{scope}.")


class TreeListener(Protocol):
    def on_input_change(self, name: str, *, user: bool) -> None: ...

    def on_structure_change(self) -> None: ...


class BoundTree(Protocol):
    """A tree of named fields the engine reads, writes and watches."""

    def output_specs(self, scope: str | None = None) -> list[OutputSpec]:
        """Output fields in document order."""
        ...

    def input_names(self, scope: str | None = None) -> list[str]:
        """Names of every readable field, outputs included."""
        ...

    def read(self, name: str) -> str | None:
        """Current text of a field, or None if there is no such field."""
        ...

    def is_focused(self, name: str) -> bool: ...

    def write(self, name: str, text: str) -> None: ...

    def subscribe(self, listener: TreeListener) -> Callable[[], None]:
        """Register for change notifications; returns the unsubscribe callable."""
        ...


@dataclass(slots=True)
class _Field:
    value: str
    scope: str
    output: OutputSpec | None = None


@dataclass(slots=True)
class MemoryTree:
    """In-process bound tree, used by the CLI and tests.

    Programmatic writes through ``write`` are recorded in ``writes`` and do
    not notify listeners; ``set_value`` stands for an edit and does.
    """

    _fields: dict[str, _Field] = field(default_factory=dict)
    _listeners: list[TreeListener] = field(default_factory=list)
    focused: str | None = None
    writes: list[tuple[str, str]] = field(default_factory=list)

    def add_field(self, name: str, value: Any = "", *, scope: str = "", notify: bool = True) -> None:
        self._fields[name] = _Field(value=plain_string(value), scope=scope)
        if notify:
            self._notify_structure()

    def add_output(self, spec: OutputSpec, value: Any = "", *, notify: bool = True) -> None:
        self._fields[spec.id] = _Field(value=plain_string(value), scope=spec.scope, output=spec)
        if notify:
            self._notify_structure()

    def remove_field(self, name: str, *, notify: bool = True) -> None:
        """Remove an input or output field.

        Raises:
            KeyError: If there is no such field.

        """
        del self._fields[name]
        if self.focused == name:
            self.focused = None
        if notify:
            self._notify_structure()

    def set_value(self, name: str, value: Any, *, user: bool = True) -> None:
        """Change a field as an edit (``user``) or a script would, notifying listeners.

        Raises:
            KeyError: If there is no such field.

        """
        if name not in self._fields:
            msg = f"Unknown field: {name}"
            raise KeyError(msg)
        self._fields[name].value = plain_string(value)
        for listener in list(self._listeners):
            listener.on_input_change(name, user=user)

    def focus(self, name: str | None) -> None:
        self.focused = name

    def values(self) -> dict[str, str]:
        return {name: f.value for name, f in self._fields.items()}

    # BoundTree

    def output_specs(self, scope: str | None = None) -> list[OutputSpec]:
        return [f.output for f in self._fields.values() if f.output is not None and in_scope(f.scope, scope)]

    def input_names(self, scope: str | None = None) -> list[str]:
        return [name for name, f in self._fields.items() if in_scope(f.scope, scope)]

    def read(self, name: str) -> str | None:
        f = self._fields.get(name)
        return None if f is None else f.value

    def is_focused(self, name: str) -> bool:
        return self.focused == name

    def write(self, name: str, text: str) -> None:
        f = self._fields.get(name)
        if f is None:
            logger.debug("Ignoring write to missing field %s", name)
            return
        f.value = text
        self.writes.append((name, text))

    def subscribe(self, listener: TreeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify_structure(self) -> None:
        for listener in list(self._listeners):
            listener.on_structure_change()
