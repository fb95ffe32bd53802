"""Tests for the convergence and oscillation detector."""

import pytest

from livecompute._convergence import ConvergenceDetector, Verdict


@pytest.fixture
def detector() -> ConvergenceDetector:
    return ConvergenceDetector()


class TestValuesConverged:
    def test_within_absolute_tolerance(self, detector: ConvergenceDetector) -> None:
        assert detector.values_converged(1.00009, 1.00001)
        assert not detector.values_converged(1.0, 1.001)

    def test_within_relative_tolerance(self, detector: ConvergenceDetector) -> None:
        assert detector.values_converged(1_000_000_000.0, 1_000_000_000.5)
        assert not detector.values_converged(1_000_000.0, 1_000_010.0)

    def test_empty_never_equals_zero(self, detector: ConvergenceDetector) -> None:
        assert not detector.values_converged("", 0.0)
        assert not detector.values_converged(None, 0)
        assert detector.values_converged(None, "  ")

    def test_strings_compare_exactly(self, detector: ConvergenceDetector) -> None:
        assert detector.values_converged("paid", "paid")
        assert not detector.values_converged("paid", "Paid")


class TestObserve:
    def test_first_value_changes(self, detector: ConvergenceDetector) -> None:
        assert detector.observe("a", 1.0) is Verdict.CHANGED

    def test_repeat_converges(self, detector: ConvergenceDetector) -> None:
        detector.observe("a", 1.0)
        assert detector.observe("a", 1.00005) is Verdict.CONVERGED
        assert detector.is_stable("a", 1.00005)

    def test_two_cycle_over_four_values(self, detector: ConvergenceDetector) -> None:
        verdicts = [detector.observe("a", v) for v in (1.0, 2.0, 1.0, 2.0)]
        assert verdicts == [Verdict.CHANGED, Verdict.CHANGED, Verdict.CHANGED, Verdict.OSCILLATING]

    def test_peer_update_uses_three_value_window(self, detector: ConvergenceDetector) -> None:
        detector.observe("a", 1.0)
        detector.observe("a", 2.0)
        assert detector.observe("a", 1.0, from_peer=True) is Verdict.OSCILLATING

    def test_bounce_without_peer_keeps_changing(self, detector: ConvergenceDetector) -> None:
        detector.observe("a", 1.0)
        detector.observe("a", 2.0)
        assert detector.observe("a", 1.0) is Verdict.CHANGED

    def test_peer_repeat_still_converges(self, detector: ConvergenceDetector) -> None:
        detector.observe("a", 1.0)
        assert detector.observe("a", 1.0, from_peer=True) is Verdict.CONVERGED

    def test_growing_values_keep_changing(self, detector: ConvergenceDetector) -> None:
        assert all(detector.observe("a", float(v), from_peer=True) is Verdict.CHANGED for v in range(8))

    def test_histories_are_per_node(self, detector: ConvergenceDetector) -> None:
        detector.observe("a", 1.0)
        assert detector.observe("b", 1.0) is Verdict.CHANGED

    def test_history_is_bounded(self) -> None:
        detector = ConvergenceDetector(history_size=3)
        for v in range(6):
            detector.observe("a", float(v))
        assert detector.history("a") == (3.0, 4.0, 5.0)

    def test_forget_and_reset(self, detector: ConvergenceDetector) -> None:
        detector.observe("a", 1.0)
        detector.observe("b", 1.0)
        detector.forget("a")
        assert detector.history("a") == ()
        assert detector.observe("a", 1.0) is Verdict.CHANGED
        detector.reset()
        assert detector.history("b") == ()
