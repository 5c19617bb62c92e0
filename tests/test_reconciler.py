"""Tests for snapshot reconciliation."""

import pytest

from emergency.core.entities import Phase
from emergency.model.outcome import Rejection
from emergency.model.state import PlayerGameState
from emergency.sync.reconciler import Reconciler


def make_state(hour, phase, version):
    return PlayerGameState(
        current_phase=phase, last_arrivals_hour=hour, version=version
    )


class TestReconciler:
    """Test each rejection rule and its precedence."""

    @pytest.fixture
    def reconciler(self):
        return Reconciler()

    def test_newer_snapshot_applied(self, reconciler):
        local = make_state(5, Phase.SEQUENCING, 3)
        incoming = make_state(5, Phase.ROLLING, 4)
        outcome = reconciler.evaluate(local, incoming)
        assert outcome.is_applied
        assert outcome.value is incoming

    def test_echo_is_stale(self, reconciler):
        """A snapshot at the local version is the client's own echo."""
        local = make_state(5, Phase.ROLLING, 4)
        assert reconciler.evaluate(local, make_state(5, Phase.ROLLING, 4)).reason == Rejection.STALE_VERSION
        assert reconciler.evaluate(local, make_state(6, Phase.SEQUENCING, 2)).reason == Rejection.STALE_VERSION

    def test_phase_regression(self, reconciler):
        """Local 5/sequencing rejects 5/waiting even when newer."""
        local = make_state(5, Phase.SEQUENCING, 3)
        outcome = reconciler.evaluate(local, make_state(5, Phase.WAITING, 9))
        assert outcome.reason == Rejection.PHASE_REGRESSION

    @pytest.mark.parametrize("phase", list(Phase))
    def test_next_hour_accepted(self, reconciler, phase):
        """Local 5/sequencing accepts hour 6 in any phase, even a lower-ordered one."""
        local = make_state(5, Phase.SEQUENCING, 3)
        assert reconciler.evaluate(local, make_state(6, phase, 4)).is_applied

    def test_behind_local_hour(self, reconciler):
        local = make_state(6, Phase.SEQUENCING, 3)
        outcome = reconciler.evaluate(local, make_state(5, Phase.REVIEW, 4))
        assert outcome.reason == Rejection.BEHIND_LOCAL_HOUR

    def test_behind_processed_hour(self, reconciler):
        """The locally processed watermark wins even if local state was replaced."""
        reconciler.note_local_arrivals(7)
        local = make_state(5, Phase.WAITING, 3)
        outcome = reconciler.evaluate(local, make_state(6, Phase.SEQUENCING, 4))
        assert outcome.reason == Rejection.BEHIND_PROCESSED_HOUR

    def test_processed_hour_only_increases(self, reconciler):
        reconciler.note_local_arrivals(4)
        reconciler.note_local_arrivals(2)
        assert reconciler.processed_arrivals_hour == 4

    def test_stale_checked_first(self, reconciler):
        reconciler.note_local_arrivals(9)
        local = make_state(5, Phase.SEQUENCING, 3)
        outcome = reconciler.evaluate(local, make_state(1, Phase.WAITING, 1))
        assert outcome.reason == Rejection.STALE_VERSION

    def test_same_phase_accepted(self, reconciler):
        """Equal hour and phase with a newer version is a legitimate update."""
        local = make_state(5, Phase.SEQUENCING, 3)
        assert reconciler.evaluate(local, make_state(5, Phase.SEQUENCING, 4)).is_applied
