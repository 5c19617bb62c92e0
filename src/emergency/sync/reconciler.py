"""Merge server-confirmed snapshots with optimistic local state.

The store echoes every write back to every subscriber, including the
writer. A client that has already moved on (say from ``sequencing`` to
``rolling``) must not be dragged back by the echo of its own earlier
write. Rules, in priority order:

1. Drop snapshots whose version is not newer than the local version.
2. Drop snapshots whose arrivals watermark is behind the hour this
   client has itself processed arrivals for.
3. Drop snapshots whose arrivals watermark is behind the local state's.
4. With equal arrivals watermarks, drop snapshots whose phase is earlier
   in the canonical order than the local phase.
"""

import logging

from emergency.model.outcome import Outcome, Rejection
from emergency.model.state import PlayerGameState

logger = logging.getLogger(__name__)


class Reconciler:
    """Decides whether an incoming snapshot may replace local state.

    Attributes:
        processed_arrivals_hour: Highest hour this client has processed
            arrivals for locally, independent of what the state says.
    """

    def __init__(self) -> None:
        self.processed_arrivals_hour = 0

    def note_local_arrivals(self, hour: int) -> None:
        """Record that this client processed arrivals for ``hour``."""
        self.processed_arrivals_hour = max(self.processed_arrivals_hour, hour)

    def evaluate(self, local: PlayerGameState, incoming: PlayerGameState) -> Outcome:
        """Accept or reject ``incoming`` against ``local``.

        Returns:
            Applied outcome (value is the incoming state) or a rejection
            naming the rule that fired.
        """
        if incoming.version <= local.version:
            return Outcome.rejected(Rejection.STALE_VERSION)

        if self.processed_arrivals_hour > incoming.last_arrivals_hour:
            logger.debug(
                f"Rejecting snapshot at arrivals hour {incoming.last_arrivals_hour}; "
                f"locally processed {self.processed_arrivals_hour}"
            )
            return Outcome.rejected(Rejection.BEHIND_PROCESSED_HOUR)

        if incoming.last_arrivals_hour < local.last_arrivals_hour:
            return Outcome.rejected(Rejection.BEHIND_LOCAL_HOUR)

        if (
            incoming.last_arrivals_hour == local.last_arrivals_hour
            and incoming.current_phase.order < local.current_phase.order
        ):
            logger.debug(
                f"Rejecting phase regression {local.current_phase.value} -> "
                f"{incoming.current_phase.value} at hour {local.last_arrivals_hour}"
            )
            return Outcome.rejected(Rejection.PHASE_REGRESSION)

        return Outcome.applied(incoming)
