"""Per-client classification sessions with last-submitted-wins semantics.

Every submission takes the next sequence number. Runs finish on worker threads
in any order; a run may only publish its state and outcome while its sequence
number is still the newest one issued, so a slow earlier image can never
overwrite the result of a later one.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import TYPE_CHECKING

from ingredientx.ml.outcomes import ErrorKind, Failed, PipelineState

if TYPE_CHECKING:
    from ingredientx.ml.inference import InferencePool
    from ingredientx.ml.outcomes import PipelineOutcome
    from ingredientx.ml.pipeline import ClassificationPipeline

logger = logging.getLogger(__name__)


class ClassificationSession:
    """Tracks the single in-flight classification of one client."""

    def __init__(self, pipeline: ClassificationPipeline, pool: InferencePool) -> None:
        self._pipeline = pipeline
        self._pool = pool
        self._lock = threading.Lock()
        self._latest_sequence: int = 0
        self._state = PipelineState.IDLE
        self._outcome: PipelineOutcome | None = None

    @property
    def latest_sequence(self) -> int:
        with self._lock:
            return self._latest_sequence

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    @property
    def outcome(self) -> PipelineOutcome | None:
        """Outcome of the newest submission, or None while it is still running."""
        with self._lock:
            return self._outcome

    async def submit(self, image_bytes: bytes) -> PipelineOutcome | None:
        """Classify an image, superseding any run still in flight.

        Returns:
            The outcome, or None if a newer image was submitted before this
            run finished.
        """
        sequence = self._issue()

        def on_state(state: PipelineState) -> None:
            with self._lock:
                if sequence == self._latest_sequence:
                    self._state = state

        try:
            outcome = await self._pool.run(self._pipeline.classify, image_bytes, on_state)
        except TimeoutError:
            outcome = Failed(ErrorKind.INFERENCE_ERROR, "Classifier busy, try again")
            on_state(PipelineState.FAILED)

        if not self._publish(sequence, outcome):
            logger.info("Discarding result of superseded run %d", sequence)
            return None
        return outcome

    def _issue(self) -> int:
        with self._lock:
            self._latest_sequence += 1
            self._state = PipelineState.IDLE
            self._outcome = None
            return self._latest_sequence

    def _publish(self, sequence: int, outcome: PipelineOutcome) -> bool:
        with self._lock:
            if sequence != self._latest_sequence:
                return False
            self._outcome = outcome
            return True


class SessionRegistry:
    """Get-or-create sessions by client id, evicting the least recently used."""

    def __init__(self, pipeline: ClassificationPipeline, pool: InferencePool, max_sessions: int) -> None:
        self._pipeline = pipeline
        self._pool = pool
        self._max_sessions = max_sessions
        self._lock = threading.Lock()
        self._sessions: OrderedDict[str, ClassificationSession] = OrderedDict()

    def get(self, session_id: str) -> ClassificationSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions.move_to_end(session_id)
                return session

            session = ClassificationSession(self._pipeline, self._pool)
            self._sessions[session_id] = session
            while len(self._sessions) > self._max_sessions:
                evicted, _ = self._sessions.popitem(last=False)
                logger.debug("Evicted session %s", evicted)
            return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
