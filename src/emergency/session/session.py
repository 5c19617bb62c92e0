"""Session document model and join codes."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from emergency.core.arrivals import ArrivalSchedule
from emergency.core.entities import HOURS_PER_DAY, SessionStatus
from emergency.core.parameters import GameParameters

# No 0/O or 1/I
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 6


def generate_session_code(rng: Optional[np.random.Generator] = None) -> str:
    """Random join code, e.g. ``"K7QX2M"``."""
    rng = rng if rng is not None else np.random.default_rng()
    picks = rng.integers(0, len(CODE_ALPHABET), size=CODE_LENGTH)
    return "".join(CODE_ALPHABET[int(i)] for i in picks)


@dataclass
class Session:
    """A classroom game run by one instructor.

    Attributes:
        id: Session document id.
        code: Join code players type in.
        name: Display name.
        status: setup -> staffing -> sequencing -> completed.
        current_hour: 0 before play, then 1..24.
        parameters: Game parameters shared by every player.
        arrivals: The day's arrival schedule, identical for all players.
        players: Ids of joined players.
        use_pregenerated: Whether ``arrivals`` came from a fixed dataset.
    """

    id: str
    code: str
    name: str
    status: SessionStatus = SessionStatus.SETUP
    current_hour: int = 0
    parameters: GameParameters = field(default_factory=GameParameters)
    arrivals: Optional[ArrivalSchedule] = None
    players: List[str] = field(default_factory=list)
    use_pregenerated: bool = False

    def __post_init__(self) -> None:
        self.status = SessionStatus(self.status)
        if not 0 <= self.current_hour <= HOURS_PER_DAY:
            raise ValueError(f"current_hour must be in 0..{HOURS_PER_DAY}")

    @property
    def is_active(self) -> bool:
        return self.status in (SessionStatus.STAFFING, SessionStatus.SEQUENCING)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "status": self.status.value,
            "current_hour": self.current_hour,
            "parameters": self.parameters.to_dict(),
            "arrivals": self.arrivals.to_records() if self.arrivals is not None else [],
            "players": list(self.players),
            "use_pregenerated": self.use_pregenerated,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Session":
        records = d.get("arrivals") or []
        use_pregenerated = bool(d.get("use_pregenerated", False))
        return cls(
            id=d["id"],
            code=d["code"],
            name=d.get("name", ""),
            status=SessionStatus(d.get("status", SessionStatus.SETUP.value)),
            current_hour=int(d.get("current_hour", 0)),
            parameters=GameParameters.from_dict(d.get("parameters") or {}),
            arrivals=(
                ArrivalSchedule.from_records(records, pregenerated=use_pregenerated)
                if records else None
            ),
            players=list(d.get("players", [])),
            use_pregenerated=use_pregenerated,
        )
