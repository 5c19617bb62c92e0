"""Replicated document store contract and an in-memory implementation.

The game treats persistence as a document store with get / put /
dotted-path partial update / subscribe semantics. Subscriptions fire on
every write, including the writer's own echo, which is what makes the
client-side reconciler necessary.

``InMemoryStore`` can deliver notifications synchronously or queue
them until ``deliver_pending`` is called, which is how tests and the
SimPy driver reproduce echo latency and interleaving.

Documents:
    sessions/<id>: {"id", "code", "name", "status", "current_hour", ...}
    players/<id>:  {"id", "name", "session_id", "is_connected", "game_state"}
"""

import copy
from abc import ABC, abstractmethod
from collections import defaultdict, deque
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

Document = Dict[str, Any]
Callback = Callable[[Optional[Document]], None]
Unsubscribe = Callable[[], None]


class StoreError(Exception):
    """Raised when a store read or write fails."""


def set_path(doc: Document, path: str, value: Any) -> None:
    """Set a value in a nested document by dotted path.

    Example:
        >>> doc = {"game_state": {"current_phase": "treating"}}
        >>> set_path(doc, "game_state.current_phase", "waiting")
        >>> doc["game_state"]["current_phase"]
        'waiting'
    """
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        child = target.get(part)
        if not isinstance(child, dict):
            child = {}
            target[part] = child
        target = child
    target[parts[-1]] = value


class ReplicatedStore(ABC):
    """Abstract store consumed by player clients and the coordinator."""

    # Players

    @abstractmethod
    def get_player(self, player_id: str) -> Optional[Document]:
        """Return a copy of the player document, or None."""

    @abstractmethod
    def add_player(self, player: Document) -> None:
        """Create a player document."""

    @abstractmethod
    def remove_player(self, player_id: str) -> None:
        """Delete a player document."""

    @abstractmethod
    def put_player_state(self, player_id: str, game_state: Document) -> None:
        """Overwrite the whole ``game_state`` of a player."""

    @abstractmethod
    def update_player_fields(self, player_id: str, fields: Dict[str, Any]) -> None:
        """Write only the given dotted paths, e.g. ``game_state.hour_complete``."""

    @abstractmethod
    def subscribe_player(self, player_id: str, callback: Callback) -> Unsubscribe:
        """Call ``callback`` with a snapshot after every write to the player."""

    @abstractmethod
    def session_players(self, session_id: str) -> List[Document]:
        """All player documents in a session."""

    # Sessions

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[Document]:
        """Return a copy of the session document, or None."""

    @abstractmethod
    def find_session_by_code(self, code: str) -> Optional[Document]:
        """Look up a session by its join code."""

    @abstractmethod
    def put_session(self, session: Document) -> None:
        """Create or overwrite a session document."""

    @abstractmethod
    def remove_session(self, session_id: str) -> None:
        """Delete a session document."""

    @abstractmethod
    def update_session_fields(self, session_id: str, fields: Dict[str, Any]) -> None:
        """Write only the given dotted paths of a session."""

    @abstractmethod
    def subscribe_session(self, session_id: str, callback: Callback) -> Unsubscribe:
        """Call ``callback`` with a snapshot after every write to the session."""


class InMemoryStore(ReplicatedStore):
    """Dictionary-backed store with optional deferred notifications.

    Attributes:
        deferred: Queue notifications until ``deliver_pending`` instead of
            calling subscribers inside the write.
        writes: Number of successful writes (players and sessions).
    """

    def __init__(self, deferred: bool = False):
        self.deferred = deferred
        self.writes = 0
        self._players: Dict[str, Document] = {}
        self._sessions: Dict[str, Document] = {}
        self._player_subs: Dict[str, List[Callback]] = defaultdict(list)
        self._session_subs: Dict[str, List[Callback]] = defaultdict(list)
        self._pending: Deque[Tuple[Callback, Optional[Document]]] = deque()

    # Notification plumbing

    def _notify(self, subs: List[Callback], doc: Optional[Document]) -> None:
        for callback in list(subs):
            snapshot = copy.deepcopy(doc)
            if self.deferred:
                self._pending.append((callback, snapshot))
            else:
                callback(snapshot)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def deliver_pending(self, limit: Optional[int] = None) -> int:
        """Deliver queued notifications in write order.

        Args:
            limit: Maximum number to deliver (all if None).

        Returns:
            Number of notifications delivered.
        """
        delivered = 0
        while self._pending and (limit is None or delivered < limit):
            callback, snapshot = self._pending.popleft()
            callback(snapshot)
            delivered += 1
        return delivered

    def _subscribe(self, subs: Dict[str, List[Callback]], key: str, callback: Callback) -> Unsubscribe:
        subs[key].append(callback)

        def unsubscribe() -> None:
            if callback in subs[key]:
                subs[key].remove(callback)

        return unsubscribe

    # Players

    def get_player(self, player_id: str) -> Optional[Document]:
        doc = self._players.get(player_id)
        return copy.deepcopy(doc) if doc is not None else None

    def add_player(self, player: Document) -> None:
        self._players[player["id"]] = copy.deepcopy(player)
        self.writes += 1
        self._notify(self._player_subs[player["id"]], self._players[player["id"]])

    def remove_player(self, player_id: str) -> None:
        if self._players.pop(player_id, None) is not None:
            self.writes += 1
            self._notify(self._player_subs[player_id], None)

    def put_player_state(self, player_id: str, game_state: Document) -> None:
        doc = self._players.get(player_id)
        if doc is None:
            raise StoreError(f"Player {player_id} not found")
        doc["game_state"] = copy.deepcopy(game_state)
        self.writes += 1
        self._notify(self._player_subs[player_id], doc)

    def update_player_fields(self, player_id: str, fields: Dict[str, Any]) -> None:
        doc = self._players.get(player_id)
        if doc is None:
            raise StoreError(f"Player {player_id} not found")
        for path, value in fields.items():
            set_path(doc, path, copy.deepcopy(value))
        self.writes += 1
        self._notify(self._player_subs[player_id], doc)

    def subscribe_player(self, player_id: str, callback: Callback) -> Unsubscribe:
        return self._subscribe(self._player_subs, player_id, callback)

    def session_players(self, session_id: str) -> List[Document]:
        return [
            copy.deepcopy(doc) for doc in self._players.values()
            if doc.get("session_id") == session_id
        ]

    # Sessions

    def get_session(self, session_id: str) -> Optional[Document]:
        doc = self._sessions.get(session_id)
        return copy.deepcopy(doc) if doc is not None else None

    def find_session_by_code(self, code: str) -> Optional[Document]:
        code = code.upper()
        for doc in self._sessions.values():
            if doc.get("code") == code:
                return copy.deepcopy(doc)
        return None

    def put_session(self, session: Document) -> None:
        self._sessions[session["id"]] = copy.deepcopy(session)
        self.writes += 1
        self._notify(self._session_subs[session["id"]], self._sessions[session["id"]])

    def remove_session(self, session_id: str) -> None:
        if self._sessions.pop(session_id, None) is not None:
            self.writes += 1
            self._notify(self._session_subs[session_id], None)

    def update_session_fields(self, session_id: str, fields: Dict[str, Any]) -> None:
        doc = self._sessions.get(session_id)
        if doc is None:
            raise StoreError(f"Session {session_id} not found")
        for path, value in fields.items():
            set_path(doc, path, copy.deepcopy(value))
        self.writes += 1
        self._notify(self._session_subs[session_id], doc)

    def subscribe_session(self, session_id: str, callback: Callback) -> Unsubscribe:
        return self._subscribe(self._session_subs, session_id, callback)
