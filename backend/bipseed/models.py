from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


ADMIN_PREFIX = '/admin '
ADMIN_LABEL = 'admin'


def to_millis(ts: Optional[float]) -> Optional[int]:
    """Seconds since the epoch -> integer milliseconds (browser clock units)."""
    if ts is None:
        return None
    return int(round(ts * 1000))


class Status(str, Enum):
    ACTIVE = 'ACTIVE'
    INPUT_PHASE = 'INPUT_PHASE'
    FAILED = 'FAILED'


@dataclass
class SystemState:
    status: Status = Status.ACTIVE
    cycle_start_time: float = 0.0
    input_phase_start_time: Optional[float] = None
    words_submitted: List[str] = field(default_factory=list)
    current_cycle_id: int = 1
    connected_users: int = 0
    is_transitioning: bool = False

    def to_dict(self, time_remaining_ms: int = 0):
        return {
            'status': self.status.value,
            'cycleStartTime': to_millis(self.cycle_start_time),
            'inputPhaseStartTime': to_millis(self.input_phase_start_time),
            'wordsSubmitted': list(self.words_submitted),
            'connectedUsers': self.connected_users,
            'currentCycleId': self.current_cycle_id,
            'isTransitioning': self.is_transitioning,
            'timeRemaining': time_remaining_ms,
        }


@dataclass(frozen=True)
class ChatMessage:
    id: int
    text: str
    timestamp: float
    user: str

    @property
    def is_admin(self) -> bool:
        return self.text.startswith(ADMIN_PREFIX)

    def display(self):
        """Return the (user, text) pair as shown in the chat panel.

        The admin marker is a display convention only: anyone can type it.
        """
        if self.is_admin:
            return ADMIN_LABEL, self.text[len(ADMIN_PREFIX):]
        return self.user, self.text

    def to_dict(self):
        return {
            'id': self.id,
            'text': self.text,
            'timestamp': to_millis(self.timestamp),
            'user': self.user,
        }
