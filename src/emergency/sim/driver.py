"""SimPy driver for fully automated sessions.

Runs a whole classroom session headless: one process per player client,
a store process that delivers notifications with latency, and an
instructor monitor that polls ``maybe_advance`` and the rescue sweep.
Every player client also polls ``maybe_advance`` through its own
coordinator instance, so advancement triggers race exactly as they do
with real browsers.

Clients can be made to stall after sequencing (closed tab, lost
connection). A stalled client goes silent, is rescued by the monitor,
and later reconnects by reloading its state from the store.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Generator, List, Optional

import numpy as np
import simpy

from emergency.core.entities import Phase, RoomTier, SessionStatus
from emergency.core.parameters import GameParameters
from emergency.model.outcome import Rejection
from emergency.results.summary import session_results
from emergency.session.coordinator import SessionCoordinator, join_session, player_ready
from emergency.sim.policy import DEFAULT_STAFFING_PLAN, greedy_assignments, staffing_layout
from emergency.sync.client import PlayerClient
from emergency.sync.store import InMemoryStore

logger = logging.getLogger(__name__)


@dataclass
class SimScenario:
    """Configuration for an automated session.

    Times are in seconds of simulated wall clock.

    Attributes:
        n_players: Number of automated players.
        params: Game parameters shared by the session.
        use_pregenerated: Use the bundled fixed arrivals.
        staffing_plan: Rooms per tier every player builds.
        allow_mismatch: Whether players use higher-tier rooms as overflow.
        think_time_mean: Mean (exponential) time to make a decision.
        dice_reveal_seconds: Time the risk rolls are shown before applying.
        review_seconds: Time spent on the turn summary.
        echo_latency: Interval at which the store delivers notifications.
        poll_interval: How often clients and the monitor poll.
        stall_probability: Chance per hour a client stalls after sequencing.
        stall_seconds: How long a stalled client stays away.
        min_dwell_seconds: Coordinator debounce after an hour change.
        rescue_after_seconds: Coordinator rescue delay.
        max_time: Hard stop for the simulation.
        random_seed: Master seed for reproducibility.
    """

    n_players: int = 4
    params: GameParameters = field(default_factory=GameParameters)
    use_pregenerated: bool = False
    staffing_plan: Dict[RoomTier, int] = field(default_factory=lambda: dict(DEFAULT_STAFFING_PLAN))
    allow_mismatch: bool = True

    think_time_mean: float = 2.0
    dice_reveal_seconds: float = 3.0
    review_seconds: float = 2.0
    echo_latency: float = 0.2
    poll_interval: float = 0.5

    stall_probability: float = 0.0
    stall_seconds: float = 15.0

    min_dwell_seconds: float = 1.0
    rescue_after_seconds: float = 6.0
    max_time: float = 20000.0

    random_seed: int = 42

    # RNG streams (created in __post_init__)
    rng_session: Optional[np.random.Generator] = None
    rng_behaviour: Optional[np.random.Generator] = None
    rng_dice: Optional[List[np.random.Generator]] = None

    def __post_init__(self) -> None:
        """Validate and initialize separate RNG streams."""
        if self.n_players < 1:
            raise ValueError("n_players must be at least 1")
        if not 0.0 <= self.stall_probability <= 1.0:
            raise ValueError("stall_probability must be between 0 and 1")
        if self.poll_interval <= 0 or self.echo_latency <= 0:
            raise ValueError("poll_interval and echo_latency must be positive")
        if self.think_time_mean < 0:
            raise ValueError("think_time_mean must be non-negative")

        self.rng_session = np.random.default_rng(self.random_seed)
        self.rng_behaviour = np.random.default_rng(self.random_seed + 1)
        # One dice stream per player
        self.rng_dice = [
            np.random.default_rng(self.random_seed + 100 + i)
            for i in range(self.n_players)
        ]

    def clone_with_seed(self, new_seed: int) -> "SimScenario":
        """Create a copy of this scenario with a different seed."""
        return SimScenario(
            n_players=self.n_players,
            params=self.params,
            use_pregenerated=self.use_pregenerated,
            staffing_plan=dict(self.staffing_plan),
            allow_mismatch=self.allow_mismatch,
            think_time_mean=self.think_time_mean,
            dice_reveal_seconds=self.dice_reveal_seconds,
            review_seconds=self.review_seconds,
            echo_latency=self.echo_latency,
            poll_interval=self.poll_interval,
            stall_probability=self.stall_probability,
            stall_seconds=self.stall_seconds,
            min_dwell_seconds=self.min_dwell_seconds,
            rescue_after_seconds=self.rescue_after_seconds,
            max_time=self.max_time,
            random_seed=new_seed,
        )

    def think_time(self) -> float:
        if self.think_time_mean == 0:
            return 0.0
        return float(self.rng_behaviour.exponential(self.think_time_mean))


def store_delivery(
    env: simpy.Environment, store: InMemoryStore, interval: float
) -> Generator[simpy.Event, None, None]:
    """Deliver queued store notifications every ``interval`` seconds."""
    while True:
        yield env.timeout(interval)
        store.deliver_pending()


def monitor_process(
    env: simpy.Environment,
    coordinator: SessionCoordinator,
    scenario: SimScenario,
    results: Dict[str, Any],
) -> Generator[simpy.Event, None, None]:
    """Instructor screen: open the session, then advance and rescue."""
    coordinator.start_session()
    while True:
        yield env.timeout(scenario.poll_interval)
        session = coordinator.load()
        if session is None or session.status == SessionStatus.COMPLETED:
            results["completed_at"] = env.now
            return
        coordinator.maybe_advance()
        results["rescued"].extend(coordinator.rescue_stuck_players())


def player_process(
    env: simpy.Environment,
    store: InMemoryStore,
    session_id: str,
    player_id: str,
    dice: np.random.Generator,
    scenario: SimScenario,
    results: Dict[str, Any],
) -> Generator[simpy.Event, None, None]:
    """One automated player from staffing to the end of the day."""
    params = scenario.params
    client = PlayerClient(store, player_id, params, rng=dice)
    client.connect()
    trigger = SessionCoordinator(
        store,
        session_id,
        clock=lambda: env.now,
        min_dwell_seconds=scenario.min_dwell_seconds,
        rescue_after_seconds=scenario.rescue_after_seconds,
    )

    while True:
        session = trigger.load()
        if session is None or session.status == SessionStatus.COMPLETED:
            break

        if session.status == SessionStatus.STAFFING and not client.state.staffing_complete:
            for tier, position in staffing_layout(scenario.staffing_plan, params):
                yield env.timeout(scenario.think_time() / 4)
                client.add_room(tier, position)
            client.complete_staffing()

        elif session.status == SessionStatus.SEQUENCING:
            hour = session.current_hour
            state = client.state
            phase = state.current_phase

            if state.last_arrivals_hour < hour and phase not in (Phase.ROLLING, Phase.TREATING):
                client.try_advance(hour, session.arrivals.for_hour(hour))

            elif phase == Phase.SEQUENCING:
                yield env.timeout(scenario.think_time())
                for patient_id, room_id in greedy_assignments(client.state, scenario.allow_mismatch):
                    client.move_patient_to_room(patient_id, room_id)
                client.complete_sequencing(hour)

                if scenario.rng_behaviour.random() < scenario.stall_probability:
                    client.disconnect()
                    trigger.set_connected(player_id, False)
                    results["stalls"] += 1
                    logger.info(f"t={env.now:.1f}: player {player_id} stalled in hour {hour}")
                    yield env.timeout(scenario.stall_seconds)
                    # Reload, as a browser refresh would
                    client = PlayerClient(store, player_id, params, rng=dice)
                    client.connect()
                    trigger.set_connected(player_id, True)
                    continue

            elif phase == Phase.ROLLING:
                rolls = client.roll_for_risk_events()
                yield env.timeout(scenario.dice_reveal_seconds)
                outcome = client.apply_risk_event_results(rolls, hour)
                if outcome.is_applied:
                    client.process_treatment(outcome.value)

            elif phase == Phase.TREATING:
                client.process_treatment(client.state.turn_events.risk_events)

            elif phase == Phase.REVIEW:
                yield env.timeout(scenario.review_seconds)
                client.complete_turn()

            elif player_ready(state, hour):
                trigger.maybe_advance()

            else:
                # Settles a waiting-but-incomplete state
                outcome = client.try_advance(hour)
                if outcome.is_rejected and outcome.reason != Rejection.ALREADY_PROCESSED:
                    logger.debug(f"Player {player_id} idle: {outcome.reason.value}")

        yield env.timeout(scenario.poll_interval)

    results["write_failures"] += client.write_failures
    results["rejected_snapshots"] += client.rejected_snapshots
    client.disconnect()


def run_session(scenario: SimScenario) -> Dict[str, Any]:
    """Execute a single automated session.

    Args:
        scenario: Session configuration with all parameters.

    Returns:
        Dictionary containing session results:
        - completed: Whether the session reached the end of hour 24
        - final_hour: Session hour at the end of the run
        - sim_time: Simulated seconds elapsed
        - advances: Successful hour advances (all triggers)
        - rescued: Ids of rescued players (one entry per rescue)
        - stalls: Number of client stalls
        - leaderboard: Profit-ranked DataFrame of player results
        - mean_profit, mean_utilisation, total_arrivals
    """
    env = simpy.Environment()
    store = InMemoryStore(deferred=True)

    coordinator = SessionCoordinator.create_session(
        store,
        name=f"Automated session {scenario.random_seed}",
        params=scenario.params,
        use_pregenerated=scenario.use_pregenerated,
        rng=scenario.rng_session,
        clock=lambda: env.now,
        min_dwell_seconds=scenario.min_dwell_seconds,
        rescue_after_seconds=scenario.rescue_after_seconds,
    )
    session_id = coordinator.session_id

    player_ids = []
    for i in range(scenario.n_players):
        player = join_session(store, session_id, f"Player {i + 1}")
        player_ids.append(player["id"])
    store.deliver_pending()

    results: Dict[str, Any] = {
        "rescued": [],
        "stalls": 0,
        "write_failures": 0,
        "rejected_snapshots": 0,
        "completed_at": None,
    }

    env.process(store_delivery(env, store, scenario.echo_latency))
    processes = [env.process(monitor_process(env, coordinator, scenario, results))]
    for player_id, dice in zip(player_ids, scenario.rng_dice):
        processes.append(
            env.process(player_process(env, store, session_id, player_id, dice, scenario, results))
        )

    # Stop once everyone has left, or at the hard limit
    finished = simpy.AllOf(env, processes)
    env.run(until=simpy.AnyOf(env, [finished, env.timeout(scenario.max_time)]))
    store.deliver_pending()

    session = coordinator.load()
    leaderboard = session_results(store.session_players(session_id))

    results["completed"] = session.status == SessionStatus.COMPLETED
    results["final_hour"] = session.current_hour
    results["sim_time"] = results["completed_at"] if results["completed_at"] is not None else env.now
    results["advances"] = session.current_hour + (1 if results["completed"] else 0)
    results["total_arrivals"] = session.arrivals.totals()["total"]
    results["leaderboard"] = leaderboard
    results["mean_profit"] = float(leaderboard["total_profit"].mean())
    results["mean_utilisation"] = float(leaderboard["avg_utilisation"].mean())

    if not results["completed"]:
        logger.warning(
            f"Session {session.code} did not complete by t={scenario.max_time} "
            f"(hour {session.current_hour})"
        )
    return results
