import logging
import threading
from typing import Callable, Optional

from werkzeug.security import generate_password_hash, check_password_hash

from bipseed.models import Status, SystemState
from .timers import TimerHandle
from .words import REQUIRED_WORDS, WordLedger

CYCLE_DURATION = 15 * 60.0
INPUT_PHASE_DURATION = 60.0
COMPLETION_GRACE = 1.0
TICK_INTERVAL = 1.0

# Allowed status changes; new-cycle re-entry into ACTIVE is listed explicitly
TRANSITIONS = {
    Status.ACTIVE: {Status.INPUT_PHASE},
    Status.INPUT_PHASE: {Status.ACTIVE, Status.FAILED},
    Status.FAILED: {Status.ACTIVE},
}


class InvalidTransition(RuntimeError):
    pass


def _noop_emit(event: str, payload) -> None:
    return None


class CycleStateMachine:
    """Owner of the single authoritative SystemState.

    Every mutation (inbound events, timer expiries, the periodic tick) runs
    under ``self._lock`` so transitions are applied atomically. Each phase
    entry bumps ``_phase_token``; timer callbacks carry the token they were
    armed with and do nothing once a newer phase has started.
    """

    def __init__(self, timers, admin_code: str, emit: Callable[[str, dict], None] = None,
                 logger=None, cycle_duration: float = CYCLE_DURATION,
                 input_phase_duration: float = INPUT_PHASE_DURATION,
                 required_words: int = REQUIRED_WORDS,
                 completion_grace: float = COMPLETION_GRACE,
                 tick_interval: float = TICK_INTERVAL):
        self.timers = timers
        self.emit = emit or _noop_emit
        self.logger = logger or logging.getLogger(__name__)
        self.cycle_duration = cycle_duration
        self.input_phase_duration = input_phase_duration
        self.required_words = required_words
        self.completion_grace = completion_grace
        self.tick_interval = tick_interval
        self._admin_hash = generate_password_hash(admin_code)
        self._lock = threading.RLock()
        self.ledger = WordLedger(capacity=required_words)
        self.state = SystemState(cycle_start_time=timers.now())
        self._phase_timer: Optional[TimerHandle] = None
        self._tick_timer: Optional[TimerHandle] = None
        self._phase_token = 0
        self.started = False

    # ---- Queries ----

    def time_remaining(self) -> float:
        """Seconds left in the current phase; always 0 while FAILED."""
        now = self.timers.now()
        st = self.state
        if st.status == Status.ACTIVE:
            return max(0.0, self.cycle_duration - (now - st.cycle_start_time))
        if st.status == Status.INPUT_PHASE and st.input_phase_start_time is not None:
            return max(0.0, self.input_phase_duration - (now - st.input_phase_start_time))
        return 0.0

    def snapshot(self) -> dict:
        with self._lock:
            return self.state.to_dict(time_remaining_ms=int(round(self.time_remaining() * 1000)))

    def tick_payload(self) -> dict:
        with self._lock:
            return {
                'timeRemaining': int(round(self.time_remaining() * 1000)),
                'status': self.state.status.value,
            }

    @property
    def phase_timer(self) -> Optional[TimerHandle]:
        return self._phase_timer

    # ---- Lifecycle ----

    def start(self) -> None:
        """Enter the boot cycle (cycle id unchanged) and start ticking."""
        with self._lock:
            if self.started:
                return
            self.started = True
            self._enter_active()
            self.logger.info(f"[cycle-start] cycle={self.state.current_cycle_id} (boot)")
            self._broadcast_state()
            self._tick_timer = self.timers.call_every(self.tick_interval, self._tick, name='tick')

    def shutdown(self) -> None:
        with self._lock:
            self._cancel_phase_timer()
            if self._tick_timer is not None:
                self._tick_timer.cancel()
                self._tick_timer = None
            self._phase_token += 1
            self.started = False
            self.logger.info("[shutdown] timers cancelled")

    # ---- Inbound operations ----

    def connect(self) -> dict:
        """Count a new connection and return the snapshot to send to it."""
        with self._lock:
            self.state.connected_users += 1
            self.logger.info(f"[connect] users={self.state.connected_users}")
            return self.snapshot()

    def disconnect(self) -> None:
        with self._lock:
            self.state.connected_users = max(0, self.state.connected_users - 1)
            self.logger.info(f"[disconnect] users={self.state.connected_users}")

    def submit_word(self, raw) -> bool:
        with self._lock:
            st = self.state
            if st.status != Status.INPUT_PHASE or st.is_transitioning:
                return False
            word = self.ledger.add(raw)
            if word is None:
                return False
            st.words_submitted = self.ledger.words
            self.logger.info(
                f"[word] cycle={st.current_cycle_id} word={word!r} "
                f"count={len(self.ledger)}/{self.required_words}"
            )
            self._broadcast_state()
            if len(self.ledger) >= self.required_words and not st.is_transitioning:
                self._begin_early_completion()
            return True

    def admin_restart(self, code) -> bool:
        with self._lock:
            if self.state.status != Status.FAILED:
                return False
            if not isinstance(code, str) or not check_password_hash(self._admin_hash, code):
                self.logger.warning("[admin-restart] rejected code")
                return False
            self.logger.info("[admin-restart] authorized")
            self._start_new_cycle()
            return True

    # ---- Transitions ----

    def _check_transition(self, target: Status) -> None:
        current = self.state.status
        if target not in TRANSITIONS[current]:
            raise InvalidTransition(f"{current.value} -> {target.value}")

    def _cancel_phase_timer(self) -> None:
        if self._phase_timer is not None:
            self._phase_timer.cancel()
            self._phase_timer = None

    def _arm_phase_timer(self, delay: float, callback, name: str) -> None:
        # Invariant: at most one phase timer; the previous one is always cancelled first
        self._cancel_phase_timer()
        token = self._phase_token
        self._phase_timer = self.timers.call_later(delay, lambda: callback(token), name=name)

    def _next_phase(self) -> None:
        self._cancel_phase_timer()
        self._phase_token += 1

    def _enter_active(self) -> None:
        self._next_phase()
        st = self.state
        st.status = Status.ACTIVE
        st.cycle_start_time = self.timers.now()
        st.input_phase_start_time = None
        self.ledger.clear()
        st.words_submitted = []
        st.is_transitioning = False
        self._arm_phase_timer(self.cycle_duration, self._on_cycle_expired, name='cycle')

    def _start_new_cycle(self) -> None:
        self._check_transition(Status.ACTIVE)
        self.state.current_cycle_id += 1
        self._enter_active()
        self.logger.info(f"[cycle-start] cycle={self.state.current_cycle_id}")
        self._broadcast_state()

    def _start_input_phase(self) -> None:
        self._check_transition(Status.INPUT_PHASE)
        self._next_phase()
        st = self.state
        st.status = Status.INPUT_PHASE
        st.input_phase_start_time = self.timers.now()
        self.ledger.clear()
        st.words_submitted = []
        st.is_transitioning = False
        self._arm_phase_timer(self.input_phase_duration, self._on_input_phase_expired, name='input-phase')
        self.logger.info(f"[input-phase] cycle={st.current_cycle_id} started")
        self._broadcast_state()

    def _fail(self) -> None:
        self._check_transition(Status.FAILED)
        self._next_phase()
        st = self.state
        st.status = Status.FAILED
        st.is_transitioning = False
        self.logger.warning(
            f"[failed] cycle={st.current_cycle_id} only {len(self.ledger)}/{self.required_words} words"
        )
        self._broadcast_state()

    def _begin_early_completion(self) -> None:
        st = self.state
        st.is_transitioning = True
        self.logger.info(f"[complete] cycle={st.current_cycle_id} threshold reached, grace={self.completion_grace}s")
        # Replaces the input-phase timer; the phase token stays the same
        self._arm_phase_timer(self.completion_grace, self._on_grace_expired, name='grace')

    # ---- Timer callbacks ----

    def _is_stale(self, token: int, what: str) -> bool:
        if token != self._phase_token:
            self.logger.info(f"[timer-abort] {what} token={token} current={self._phase_token}")
            return True
        return False

    def _on_cycle_expired(self, token: int) -> None:
        with self._lock:
            if self._is_stale(token, 'cycle'):
                return
            if self.state.status != Status.ACTIVE or self.state.is_transitioning:
                return
            self._phase_timer = None
            self._start_input_phase()

    def _on_input_phase_expired(self, token: int) -> None:
        with self._lock:
            if self._is_stale(token, 'input-phase'):
                return
            st = self.state
            if st.status != Status.INPUT_PHASE or st.is_transitioning:
                return
            self._phase_timer = None
            st.is_transitioning = True
            if len(self.ledger) >= self.required_words:
                self._start_new_cycle()
            else:
                self._fail()

    def _on_grace_expired(self, token: int) -> None:
        with self._lock:
            if self._is_stale(token, 'grace'):
                return
            if not self.state.is_transitioning:
                return
            self._phase_timer = None
            self._start_new_cycle()

    def _tick(self) -> None:
        with self._lock:
            if self.state.status == Status.FAILED:
                return
            payload = self.tick_payload()
        self.emit('timeUpdate', payload)

    # ---- Broadcast ----

    def _broadcast_state(self) -> None:
        self.emit('systemUpdate', self.snapshot())
