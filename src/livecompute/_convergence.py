"""Convergence and oscillation detection for recomputed values."""

import logging
from collections import deque
from dataclasses import dataclass, field
from enum import StrEnum, auto
from typing import Any

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 1e-4
DEFAULT_RELATIVE_TOLERANCE = 1e-6
DEFAULT_HISTORY_SIZE = 10

# Entries inspected for a 2-cycle: h[n]~h[n-2] and h[n-1]~h[n-3]
OSCILLATION_WINDOW = 4
# A peer-triggered update only needs to return to h[n-2] to be settled
PEER_OSCILLATION_WINDOW = 3


class Verdict(StrEnum):
    """Outcome of observing a newly computed value."""

    CHANGED = auto()  # Keep propagating
    CONVERGED = auto()  # Repeats the previous value within tolerance
    OSCILLATING = auto()  # Bounces between two values


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, int | float) and not isinstance(value, bool)


@dataclass(slots=True)
class ConvergenceDetector:
    """Keeps a bounded history of produced values per node.

    A node is stable once its newest value converges with the previous one,
    or once the last four values form a 2-cycle. Updates made in response to
    a bidirectional peer use a three-entry window instead, because a
    legitimate two-way binding bounces once before settling.

    Attributes:
        tolerance: Absolute tolerance for numeric convergence.
        relative_tolerance: Tolerance relative to the larger magnitude, for
            values where the absolute tolerance is meaningless.
        history_size: Maximum number of values remembered per node.

    """

    tolerance: float = DEFAULT_TOLERANCE
    relative_tolerance: float = DEFAULT_RELATIVE_TOLERANCE
    history_size: int = DEFAULT_HISTORY_SIZE
    _history: dict[str, deque[Any]] = field(default_factory=dict)

    def values_converged(self, a: Any, b: Any) -> bool:
        """Check whether two raw values are the same within tolerance.

        An empty value never converges with a numeric 0, so "no input yet"
        stays distinct from "computed zero".
        """
        if _is_empty(a) or _is_empty(b):
            return _is_empty(a) and _is_empty(b)
        if _is_number(a) and _is_number(b):
            diff = abs(a - b)
            if diff <= self.tolerance:
                return True
            return diff <= self.relative_tolerance * max(abs(a), abs(b))
        return a == b

    def observe(self, node_id: str, candidate: Any, *, from_peer: bool = False) -> Verdict:
        """Record a candidate value and classify it against the node's history.

        Args:
            node_id: The node that produced the value.
            candidate: The newly computed raw value.
            from_peer: Whether the update was triggered by a bidirectional peer.

        Returns:
            The verdict for this candidate.

        """
        history = self._history.get(node_id)
        if history is None:
            history = deque(maxlen=self.history_size)
            self._history[node_id] = history

        previous = history[-1] if history else None
        had_previous = bool(history)
        history.append(candidate)

        if had_previous and self.values_converged(candidate, previous):
            return Verdict.CONVERGED

        window = PEER_OSCILLATION_WINDOW if from_peer else OSCILLATION_WINDOW
        if self._oscillates(history, window):
            logger.debug("Oscillation detected for %s: %r", node_id, list(history)[-window:])
            return Verdict.OSCILLATING

        return Verdict.CHANGED

    def is_stable(self, node_id: str, candidate: Any, *, from_peer: bool = False) -> bool:
        """Record a candidate and report whether further propagation should stop."""
        return self.observe(node_id, candidate, from_peer=from_peer) is not Verdict.CHANGED

    def _oscillates(self, history: deque[Any], window: int) -> bool:
        if len(history) < window:
            return False
        if not self.values_converged(history[-1], history[-3]):
            return False
        if window < OSCILLATION_WINDOW:
            return True
        return self.values_converged(history[-2], history[-4])

    def history(self, node_id: str) -> tuple[Any, ...]:
        """Values recorded for a node, oldest first."""
        return tuple(self._history.get(node_id, ()))

    def forget(self, node_id: str) -> None:
        """Drop a node's history (the node left the tree)."""
        self._history.pop(node_id, None)

    def reset(self) -> None:
        """Drop all histories."""
        self._history.clear()
