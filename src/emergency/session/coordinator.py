"""Instructor-side session control.

The coordinator owns the shared session clock. It creates sessions,
admits players, advances the hour once every player has finished it,
and rescues players whose clients have stalled mid-hour.

Several processes may poll ``maybe_advance`` concurrently (the monitor
screen and every client's auto-advance). Advancing is a compare-and-set
on ``current_hour`` so only one of them can move the clock per hour.
"""

import logging
import time
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from emergency.core.arrivals import ArrivalSchedule, generate_arrivals, pregenerated_schedule
from emergency.core.entities import HOURS_PER_DAY, Phase, SessionStatus
from emergency.core.parameters import GameParameters
from emergency.model.engine import TurnEngine
from emergency.model.patient import new_id
from emergency.model.state import PlayerGameState, initial_game_state
from emergency.session.session import Session, generate_session_code
from emergency.sync.store import Document, ReplicatedStore, StoreError

logger = logging.getLogger(__name__)

MAX_CODE_ATTEMPTS = 20
STUCK_PHASES = (Phase.ROLLING, Phase.TREATING)


def player_ready(state: PlayerGameState, hour: int) -> bool:
    """True when a player has fully finished ``hour``.

    Every watermark must have reached the hour. Checking the phase
    alone would count a player still ``waiting`` from the previous
    hour as done.
    """
    return (
        state.current_phase == Phase.WAITING
        and state.hour_complete
        and state.last_completed_hour >= hour
        and state.last_arrivals_hour >= hour
        and state.last_treatment_hour >= hour
        and state.last_sequencing_hour >= hour
    )


def is_stuck(state: PlayerGameState, hour: int) -> bool:
    """Whether a player's state is one a stalled client leaves behind."""
    if state.last_arrivals_hour < hour:
        return False
    if state.current_phase in STUCK_PHASES:
        return True
    return (
        state.current_phase == Phase.WAITING
        and not state.hour_complete
        and state.last_sequencing_hour >= hour
    )


def join_session(store: ReplicatedStore, code_or_id: str, name: str) -> Optional[Document]:
    """Join a session by code (or id), reconnecting by player name.

    Returns:
        The player document, or None if the session does not exist or
        has ended and ``name`` is not already in it.
    """
    session_doc = store.find_session_by_code(code_or_id) or store.get_session(code_or_id)
    if session_doc is None:
        logger.warning(f"Join failed: no session {code_or_id!r}")
        return None

    session_id = session_doc["id"]
    for player in store.session_players(session_id):
        if player.get("name") == name:
            store.update_player_fields(player["id"], {"is_connected": True})
            player["is_connected"] = True
            logger.info(f"Player {name!r} reconnected to session {session_doc['code']}")
            return player

    if session_doc.get("status") == SessionStatus.COMPLETED.value:
        logger.warning(f"Join refused: session {session_doc['code']} has ended")
        return None

    player = {
        "id": new_id(),
        "name": name,
        "session_id": session_id,
        "is_connected": True,
        "game_state": initial_game_state().to_dict(),
    }
    store.add_player(player)
    store.update_session_fields(
        session_id, {"players": list(session_doc.get("players", [])) + [player["id"]]}
    )
    logger.info(f"Player {name!r} joined session {session_doc['code']}")
    return player


class SessionCoordinator:
    """Advances one session's clock and keeps its players moving.

    Attributes:
        store: Replicated store.
        session_id: Session document id.
        clock: Returns the current time in seconds.
        min_dwell_seconds: Minimum time an hour stays current before an
            automatic advance.
        rescue_after_seconds: How long a player's state must sit
            unchanged in a stuck shape before it is rescued.
    """

    def __init__(
        self,
        store: ReplicatedStore,
        session_id: str,
        clock: Callable[[], float] = time.monotonic,
        min_dwell_seconds: float = 1.0,
        rescue_after_seconds: float = 6.0,
    ):
        self.store = store
        self.session_id = session_id
        self.clock = clock
        self.min_dwell_seconds = min_dwell_seconds
        self.rescue_after_seconds = rescue_after_seconds
        self.advances = 0
        self.rescues = 0
        self._advancing = False
        self._hour_key: Optional[Tuple[str, int]] = None
        self._hour_changed_at = clock()
        self._last_seen: Dict[str, Tuple[tuple, float]] = {}

    @classmethod
    def create_session(
        cls,
        store: ReplicatedStore,
        name: str,
        params: Optional[GameParameters] = None,
        use_pregenerated: bool = False,
        rng: Optional[np.random.Generator] = None,
        **kwargs,
    ) -> "SessionCoordinator":
        """Create a session document and return its coordinator.

        Args:
            store: Replicated store.
            name: Display name.
            params: Game parameters (defaults if None).
            use_pregenerated: Use the bundled fixed arrivals.
            rng: Generator for the join code and sampled arrivals.
            **kwargs: Passed to the coordinator constructor.
        """
        params = params if params is not None else GameParameters()
        rng = rng if rng is not None else np.random.default_rng()

        code = generate_session_code(rng)
        attempts = 1
        while store.find_session_by_code(code) is not None:
            if attempts >= MAX_CODE_ATTEMPTS:
                raise StoreError("Could not allocate a unique session code")
            code = generate_session_code(rng)
            attempts += 1

        arrivals = pregenerated_schedule() if use_pregenerated else generate_arrivals(params, rng)
        session = Session(
            id=new_id(),
            code=code,
            name=name,
            parameters=params,
            arrivals=arrivals,
            use_pregenerated=use_pregenerated,
        )
        store.put_session(session.to_dict())
        logger.info(f"Created session {code} ({name!r}), {arrivals.totals()['total']} arrivals")
        return cls(store, session.id, **kwargs)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> Optional[Session]:
        doc = self.store.get_session(self.session_id)
        return Session.from_dict(doc) if doc is not None else None

    def _update_session(self, fields: dict) -> bool:
        try:
            self.store.update_session_fields(self.session_id, fields)
        except StoreError as e:
            logger.error(f"Error updating session {self.session_id}: {e}")
            return False
        return True

    def start_session(self) -> bool:
        """Open staffing (setup -> staffing)."""
        session = self.load()
        if session is None or session.status != SessionStatus.SETUP:
            return False
        return self._update_session({"status": SessionStatus.STAFFING.value})

    def advance(self, expected_hour: Optional[int] = None) -> bool:
        """Move the session clock forward by one step.

        staffing -> sequencing at hour 1; then hour + 1; after hour 24
        the session completes and stays at hour 24.

        Args:
            expected_hour: If given, only advance when the session is
                still at this hour.

        Returns:
            True if the session document was updated.
        """
        session = self.load()
        if session is None:
            return False
        if expected_hour is not None and session.current_hour != expected_hour:
            return False

        if session.status == SessionStatus.STAFFING:
            fields = {"status": SessionStatus.SEQUENCING.value, "current_hour": 1}
        elif session.status == SessionStatus.SEQUENCING:
            new_hour = session.current_hour + 1
            if new_hour > HOURS_PER_DAY:
                fields = {"status": SessionStatus.COMPLETED.value, "current_hour": HOURS_PER_DAY}
            else:
                fields = {"current_hour": new_hour}
        else:
            return False

        if not self._update_session(fields):
            return False
        self.advances += 1
        self._hour_key = (fields.get("status", session.status.value), fields["current_hour"])
        self._hour_changed_at = self.clock()
        logger.info(
            f"Session {session.code}: {session.status.value} hour {session.current_hour} -> "
            f"{fields.get('status', session.status.value)} hour {fields['current_hour']}"
        )
        return True

    def end_session_early(self) -> bool:
        session = self.load()
        if session is None or session.status == SessionStatus.COMPLETED:
            return False
        logger.info(f"Session {session.code} ended early at hour {session.current_hour}")
        return self._update_session({"status": SessionStatus.COMPLETED.value})

    def delete_session(self) -> int:
        """Tear the session down: every player document, then the session.

        Subscribed clients receive a ``None`` snapshot and treat it as
        being kicked.

        Returns:
            Number of player documents deleted.
        """
        players = self.store.session_players(self.session_id)
        for doc in players:
            self.store.remove_player(doc["id"])
        self.store.remove_session(self.session_id)
        self._last_seen.clear()
        logger.info(f"Deleted session {self.session_id} and {len(players)} players")
        return len(players)

    def update_parameters(self, params: GameParameters) -> bool:
        """Replace the game parameters while the session is still in setup."""
        session = self.load()
        if session is None or session.status != SessionStatus.SETUP:
            return False
        return self._update_session({"parameters": params.to_dict()})

    def update_arrivals(
        self,
        arrivals: Optional[ArrivalSchedule] = None,
        use_pregenerated: bool = False,
        rng: Optional[np.random.Generator] = None,
    ) -> bool:
        """Replace the day's arrival schedule while the session is in setup.

        Args:
            arrivals: Schedule to use. Ignored when ``use_pregenerated``.
            use_pregenerated: Switch to the bundled fixed arrivals.
            rng: Generator for a fresh sample when no schedule is given.
        """
        session = self.load()
        if session is None or session.status != SessionStatus.SETUP:
            return False
        if use_pregenerated:
            arrivals = pregenerated_schedule()
        elif arrivals is None:
            rng = rng if rng is not None else np.random.default_rng()
            arrivals = generate_arrivals(session.parameters, rng)
        logger.info(f"Session {session.code}: {arrivals.totals()['total']} arrivals scheduled")
        return self._update_session(
            {"arrivals": arrivals.to_records(), "use_pregenerated": use_pregenerated}
        )

    def kick_player(self, player_id: str) -> bool:
        """Remove a player from the roster and delete their document."""
        if self.store.get_player(player_id) is None:
            return False
        session = self.load()
        if session is not None:
            self._update_session({"players": [p for p in session.players if p != player_id]})
        self.store.remove_player(player_id)
        self._last_seen.pop(player_id, None)
        logger.info(f"Kicked player {player_id}")
        return True

    def set_connected(self, player_id: str, is_connected: bool) -> bool:
        if self.store.get_player(player_id) is None:
            return False
        try:
            self.store.update_player_fields(player_id, {"is_connected": is_connected})
        except StoreError as e:
            logger.error(f"Error updating connection for player {player_id}: {e}")
            return False
        return True

    def join(self, name: str) -> Optional[Document]:
        return join_session(self.store, self.session_id, name)

    # ------------------------------------------------------------------
    # Readiness and advancing
    # ------------------------------------------------------------------

    def player_states(self) -> Dict[str, PlayerGameState]:
        return {
            doc["id"]: PlayerGameState.from_dict(doc.get("game_state") or {})
            for doc in self.store.session_players(self.session_id)
        }

    def all_players_ready(self, session: Optional[Session] = None) -> bool:
        session = session if session is not None else self.load()
        if session is None:
            return False
        states = list(self.player_states().values())
        if not states:
            return False
        if session.status == SessionStatus.STAFFING:
            return all(s.staffing_complete for s in states)
        if session.status == SessionStatus.SEQUENCING:
            return all(player_ready(s, session.current_hour) for s in states)
        return False

    def _track_hour(self, session: Session) -> None:
        key = (session.status.value, session.current_hour)
        if key != self._hour_key:
            self._hour_key = key
            self._hour_changed_at = self.clock()

    def maybe_advance(self) -> bool:
        """Advance if every player is ready and the hour has dwelt long enough.

        Safe to call from any number of triggers; re-entrant calls made
        while an advance is being written are ignored.
        """
        if self._advancing:
            return False
        session = self.load()
        if session is None or not session.is_active:
            return False

        self._track_hour(session)
        if (
            session.status == SessionStatus.SEQUENCING
            and self.clock() - self._hour_changed_at < self.min_dwell_seconds
        ):
            return False
        if not self.all_players_ready(session):
            return False

        self._advancing = True
        try:
            return self.advance(expected_hour=session.current_hour)
        finally:
            self._advancing = False

    # ------------------------------------------------------------------
    # Rescue
    # ------------------------------------------------------------------

    def _write_changes(self, player_id: str, before: Document, state: PlayerGameState) -> bool:
        """Write only the ``game_state`` keys that differ from ``before``."""
        after = state.to_dict()
        fields = {
            f"game_state.{key}": value
            for key, value in after.items()
            if before.get(key) != value
        }
        try:
            self.store.update_player_fields(player_id, fields)
        except StoreError as e:
            logger.error(f"Error writing game state for player {player_id}: {e}")
            return False
        return True

    def rescue_player(self, player_id: str, params: Optional[GameParameters] = None) -> bool:
        """Finish a player's current hour on their behalf.

        Treatment is run through the turn engine, so it ticks exactly
        once and earns the same revenue the client would have. Only the
        fields that changed are written back, with the version bumped so
        the player's client accepts the correction.
        """
        doc = self.store.get_player(player_id)
        if doc is None:
            return False
        if params is None:
            session = self.load()
            params = session.parameters if session is not None else GameParameters()

        before = doc.get("game_state") or {}
        state = PlayerGameState.from_dict(before)
        version = state.version
        from_phase = state.current_phase
        engine = TurnEngine(params, state=state)

        changed = False
        # Treat (-> review), then settle the hour (-> waiting)
        for _ in range(2):
            outcome = engine.process_treatment()
            if not outcome.changed_state:
                break
            changed = True
        if not changed:
            return False

        engine.state.version = version + 1
        if not self._write_changes(player_id, before, engine.state):
            return False

        self.rescues += 1
        logger.warning(
            f"Rescued player {player_id} from {from_phase.value} "
            f"at hour {engine.state.last_arrivals_hour}"
        )
        return True

    def force_end_decision(
        self, player_id: str, rng: Optional[np.random.Generator] = None
    ) -> bool:
        """End a player's hour from sequencing with their current assignments.

        The instructor's "End" action for a player who never submits.
        The hour is played through the same engine steps the client
        would take: submit, roll and apply risk events, treat, then
        acknowledge. Only the changed fields are written, with the
        version bumped.

        Args:
            player_id: Player to finish.
            rng: Generator for the risk rolls.
        """
        doc = self.store.get_player(player_id)
        session = self.load()
        if doc is None or session is None:
            return False

        before = doc.get("game_state") or {}
        state = PlayerGameState.from_dict(before)
        if state.current_phase not in (Phase.SEQUENCING,) + STUCK_PHASES:
            return False
        version = state.version
        hour = state.last_arrivals_hour
        engine = TurnEngine(session.parameters, state=state, rng=rng)

        engine.complete_sequencing(hour)
        if engine.state.current_phase == Phase.ROLLING:
            engine.apply_risk_event_results(engine.roll_for_risk_events(), hour)
        if not engine.process_treatment().is_applied:
            return False
        engine.complete_turn()

        engine.state.version = version + 1
        if not self._write_changes(player_id, before, engine.state):
            return False

        self._last_seen.pop(player_id, None)
        logger.warning(f"Ended decision for player {player_id} at hour {hour}")
        return True

    def rescue_stuck_players(self) -> List[str]:
        """Rescue players left in a stuck shape for ``rescue_after_seconds``.

        A player is only considered once their state has not changed at
        all for the whole delay, so a client that is merely slow (dice
        animation, review screen) is never overtaken.

        Returns:
            Ids of rescued players.
        """
        session = self.load()
        if session is None or session.status != SessionStatus.SEQUENCING:
            return []

        now = self.clock()
        rescued = []
        for player_id, state in self.player_states().items():
            fingerprint = (
                state.version,
                state.current_phase.value,
                state.hour_complete,
                state.last_arrivals_hour,
                state.last_treatment_hour,
            )
            seen = self._last_seen.get(player_id)
            if seen is None or seen[0] != fingerprint:
                self._last_seen[player_id] = (fingerprint, now)
                continue
            if now - seen[1] < self.rescue_after_seconds:
                continue
            if not is_stuck(state, session.current_hour):
                continue
            if self.rescue_player(player_id, session.parameters):
                self._last_seen.pop(player_id, None)
                rescued.append(player_id)
        return rescued
