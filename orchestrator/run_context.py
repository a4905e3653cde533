"""
Per-run coordination state: cancellation, run state, step list and progress.

A ``RunContext`` is created for every migration run and threaded through
discovery, copy and wiki stages. Nothing here is module-global.
"""

import logging
import threading
import time
from typing import Callable, Dict, List, Optional

from config_loader import MigrationSettings
from errors import MigrationCancelled
from models import MIGRATION_STEPS, RunState, StepState

logger = logging.getLogger('feishu_wiki_migrator.orchestrator.run_context')


class CancellationToken:
    """Cooperative cancellation flag shared between a run and its controller."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        if not self._event.is_set():
            logger.warning("Cancellation requested")
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise MigrationCancelled()

    def sleep(self, seconds: float, interval: float = 0.5) -> None:
        """
        Sleep in slices of ``interval`` seconds, checking the flag before each.

        Raises:
            MigrationCancelled: If cancellation is observed
        """
        remaining = max(0.0, float(seconds))
        interval = max(0.01, float(interval))
        while remaining > 0:
            self.raise_if_cancelled()
            step = min(interval, remaining)
            # Wakes early when cancel() is called
            if self._event.wait(step):
                raise MigrationCancelled()
            remaining -= step
        self.raise_if_cancelled()


class RunContext:
    """State of a single migration run."""

    def __init__(
        self,
        settings: Optional[MigrationSettings] = None,
        token: Optional[CancellationToken] = None
    ):
        self.settings = settings or MigrationSettings()
        self.token = token or CancellationToken()
        self.state = RunState.SELECTING
        self.error: Optional[BaseException] = None
        self.steps: Dict[str, StepState] = {step_id: StepState.PENDING for step_id, _ in MIGRATION_STEPS}
        self.progress: Dict[str, Dict[str, int]] = {
            'nodes': {'done': 0, 'total': 0},
            'moves': {'done': 0, 'total': 0}
        }
        self.started_at = time.time()
        self._progress_listeners: List[Callable[[str, int, int], None]] = []
        self._state_listeners: List[Callable[[RunState], None]] = []

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def check(self) -> None:
        """Raise MigrationCancelled if the run was cancelled."""
        self.token.raise_if_cancelled()

    def cancel(self) -> None:
        self.token.cancel()

    def pause(self, seconds: float) -> None:
        """Cancellable sleep used for cooldowns and task polling."""
        self.token.sleep(seconds, self.settings.cancel_check_interval)

    # ------------------------------------------------------------------
    # State and steps
    # ------------------------------------------------------------------

    def transition(self, state: RunState) -> None:
        if self.state.is_terminal:
            logger.debug(f"Ignoring transition to {state.value}: run already {self.state.value}")
            return
        logger.debug(f"Run state: {self.state.value} -> {state.value}")
        self.state = state
        for listener in self._state_listeners:
            listener(state)

    def fail(self, error: BaseException) -> None:
        self.error = error
        self.transition(RunState.FAILED)

    def mark_cancelled(self) -> None:
        self.transition(RunState.CANCELLED)

    def start_step(self, step_id: str) -> None:
        self.steps[step_id] = StepState.ACTIVE

    def finish_step(self, step_id: str) -> None:
        self.steps[step_id] = StepState.DONE

    def reset_steps(self) -> None:
        for step_id in self.steps:
            self.steps[step_id] = StepState.PENDING

    def step_list(self) -> List[Dict[str, str]]:
        """Ordered step list with labels and display state."""
        return [
            {'id': step_id, 'label': label, 'state': self.steps[step_id].value}
            for step_id, label in MIGRATION_STEPS
        ]

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    def on_progress(self, callback: Callable[[str, int, int], None]) -> None:
        """Register ``callback(kind, done, total)`` for 'nodes' and 'moves'."""
        self._progress_listeners.append(callback)

    def on_state(self, callback: Callable[[RunState], None]) -> None:
        self._state_listeners.append(callback)

    def set_total(self, kind: str, total: int) -> None:
        self.progress[kind] = {'done': 0, 'total': total}
        self._emit(kind)

    def advance(self, kind: str, amount: int = 1) -> None:
        self.progress[kind]['done'] += amount
        self._emit(kind)

    def _emit(self, kind: str) -> None:
        counter = self.progress[kind]
        for listener in self._progress_listeners:
            listener(kind, counter['done'], counter['total'])

    @property
    def elapsed(self) -> float:
        return time.time() - self.started_at


__all__ = ['CancellationToken', 'RunContext']
