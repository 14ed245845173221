"""
Progress reporting and cooperative cancellation

A progress callback is any callable taking (step_id, percent, message).
Stages poll a CancellationToken between units of work (one window, one ring,
one face row) and raise Cancelled when it is set.
"""

import logging
import threading
from dataclasses import dataclass

from sculpture_errors import Cancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe flag a caller sets to abort a running stage"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def is_cancelled(self):
        return self._event.is_set()

    def raise_if_cancelled(self, step):
        if self._event.is_set():
            logger.info("%s cancelled", step)
            raise Cancelled(step)


def check_cancelled(cancel_token, step):
    """No-op when no token was supplied"""
    if cancel_token is not None:
        cancel_token.raise_if_cancelled(step)


def report(progress, step_id, percent, message):
    if progress is not None:
        progress(step_id, max(0.0, min(100.0, float(percent))), message)


@dataclass
class ProgressStep:
    id: str
    name: str
    weight: float = 1.0
    status: str = "pending"
    progress: float = 0.0
    message: str = ""


class ProgressTracker:
    """Weighted multi-step progress

    Instances are callable, so a tracker can be handed to any stage as its
    progress callback. Every update is forwarded to the optional listener
    as (overall_percent, step, message).
    """

    def __init__(self, steps, listener=None):
        self.steps = {}
        for step in steps:
            if isinstance(step, ProgressStep):
                self.steps[step.id] = step
            else:
                self.steps[step[0]] = ProgressStep(*step)
        self.listener = listener
        self._lock = threading.Lock()

    def _step(self, step_id):
        try:
            return self.steps[step_id]
        except KeyError:
            raise ValueError(f"Step {step_id} not found") from None

    def start_step(self, step_id, message=""):
        with self._lock:
            step = self._step(step_id)
            step.status = "in-progress"
            step.progress = 0.0
            step.message = message or f"Starting {step.name}"
        self._notify(step)

    def update(self, step_id, percent, message=""):
        with self._lock:
            step = self._step(step_id)
            if step.status == "pending":
                step.status = "in-progress"
            step.progress = max(0.0, min(100.0, float(percent)))
            if message:
                step.message = message
        self._notify(step)

    __call__ = update

    def complete_step(self, step_id, message=""):
        with self._lock:
            step = self._step(step_id)
            step.status = "completed"
            step.progress = 100.0
            step.message = message or f"{step.name} complete"
        self._notify(step)

    def fail_step(self, step_id, status="failed", message=""):
        with self._lock:
            step = self._step(step_id)
            step.status = status
            if message:
                step.message = message
        self._notify(step)

    @property
    def overall_progress(self):
        total = sum(step.weight for step in self.steps.values())
        if total <= 0:
            return 0.0
        done = sum(step.weight * step.progress for step in self.steps.values())
        return done / total

    def _notify(self, step):
        logger.debug("%s: %.0f%% %s", step.id, step.progress, step.message)
        if self.listener is not None:
            self.listener(self.overall_progress, step, step.message)
