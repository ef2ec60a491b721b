import inspect
import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from .active_checker import (
    eye_band,
    evaluate_blink,
    evaluate_blink_coarse,
    evaluate_smile,
    evaluate_turn,
)
from .clock import SystemClock
from .config import Config
from .exceptions import MalformedFrameError
from .face_locator import FaceLocator, create_face_locator, is_valid_frame
from .models.challenges import Challenge
from .models.results import (
    NO_FACE_DETECTED,
    FaceBox,
    LivenessResult,
    Step,
    challenge_failed_reason,
)
from .video_processor import FrameSource

logger = logging.getLogger(__name__)


class SequenceState(Enum):
    IDLE = "idle"
    PREPARING = "preparing"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"


class SequenceController:
    """
    Runs one proof-of-life sequence: the prepare gate, then every challenge
    in order, each until it passes or its deadline expires.

    A controller owns its locator and state and runs once. Cancel the task
    awaiting :meth:`run` to abandon it; nothing is captured or notified
    after that.

    ``on_challenge`` is a plain synchronous callable that receives the id of
    each step as it starts. Coroutine functions are rejected.
    """

    def __init__(self, frame_source: FrameSource,
                 challenges: Optional[Sequence[Challenge]] = None,
                 config: Config = None,
                 locator: FaceLocator = None,
                 clock=None,
                 on_challenge: Optional[Callable[[str], None]] = None,
                 require_prepare: Optional[bool] = None):
        self.config = config or Config()
        self.frame_source = frame_source
        names = challenges if challenges is not None else self.config.CHALLENGES
        self.challenges: List[Challenge] = [Challenge(name) for name in names]
        if Challenge.PREPARE in self.challenges:
            raise ValueError("prepare is a gate and cannot be part of the scored challenges.")
        if inspect.iscoroutinefunction(on_challenge) or inspect.iscoroutinefunction(
                getattr(on_challenge, "__call__", None)):
            raise TypeError("on_challenge must be a synchronous callable.")
        self._owns_locator = locator is None
        self.locator = locator or create_face_locator(self.config)
        self.clock = clock or SystemClock()
        self.on_challenge = on_challenge
        self.require_prepare = self.config.REQUIRE_PREPARE if require_prepare is None else require_prepare

        self.state = SequenceState.IDLE
        self.current_index: Optional[int] = None
        self.steps: List[Step] = []

    # ------------------------------------------------------------------
    # Sampling
    # ------------------------------------------------------------------

    def _capture(self) -> Optional[np.ndarray]:
        try:
            frame = self.frame_source.capture_frame()
        except MalformedFrameError as e:
            logger.debug(f"Discarding capture: {e}")
            return None
        return frame if is_valid_frame(frame) else None

    def _sample(self) -> Tuple[Optional[np.ndarray], Optional[FaceBox]]:
        frame = self._capture()
        if frame is None:
            return None, None
        return frame, self.locator.locate(frame)

    # ------------------------------------------------------------------
    # Challenges
    # ------------------------------------------------------------------

    async def wait_for_face(self) -> bool:
        """Prepare gate: poll until a face shows up or the gate times out."""
        start = self.clock.now()
        while self.clock.now() - start < self.config.PREPARE_TIMEOUT_SECONDS:
            _, box = self._sample()
            if box is not None:
                return True
            await self.clock.sleep(self.config.PREPARE_POLL_INTERVAL_SECONDS)
        return False

    async def check_blink(self) -> bool:
        frame_a, box_a = self._sample()
        if box_a is None:
            return False

        height, width = frame_a.shape[:2]
        interval = self.config.BLINK_SAMPLE_INTERVAL_SECONDS
        if self.config.BLINK_STRATEGY == 'box_delta' or eye_band(box_a, width, height) is None:
            await self.clock.sleep(interval)
            _, box_b = self._sample()
            return evaluate_blink_coarse(box_a, box_b, self.config.BLINK_BOX_DELTA_PX)

        await self.clock.sleep(interval)
        frame_b = self._capture()
        await self.clock.sleep(interval)
        frame_c = self._capture()
        return evaluate_blink([frame_a, frame_b, frame_c], box_a,
                              self.config.PIXEL_NOISE_FLOOR, self.config.BLINK_CHANGE_RATIO)

    async def check_movement(self, direction: str) -> bool:
        _, box_a = self._sample()
        await self.clock.sleep(self.config.MOVEMENT_SAMPLE_INTERVAL_SECONDS)
        _, box_b = self._sample()
        return evaluate_turn(box_a, box_b, direction, self.config.MOVEMENT_THRESHOLD_PX)

    async def check_turn_left(self) -> bool:
        return await self.check_movement('left')

    async def check_turn_right(self) -> bool:
        return await self.check_movement('right')

    async def check_smile(self) -> bool:
        frame_a, box_a = self._sample()
        await self.clock.sleep(self.config.MOVEMENT_SAMPLE_INTERVAL_SECONDS)
        frame_b, box_b = self._sample()
        return evaluate_smile(frame_a, frame_b, box_a, box_b,
                              self.config.PIXEL_NOISE_FLOOR, self.config.SMILE_CHANGE_RATIO)

    def _evaluator_for(self, challenge: Challenge):
        return getattr(self, f"check_{challenge.value.replace('-', '_')}")

    async def _run_challenge(self, challenge: Challenge) -> Tuple[bool, int]:
        evaluator = self._evaluator_for(challenge)
        deadline = self.clock.now() + self.config.CHALLENGE_TIMEOUT_SECONDS
        attempts = 0
        passed = False
        while not passed and self.clock.now() < deadline:
            attempts += 1
            passed = await evaluator()
            if not passed:
                await self.clock.sleep(self.config.RETRY_INTERVAL_SECONDS)
        return passed, attempts

    # ------------------------------------------------------------------
    # Sequence
    # ------------------------------------------------------------------

    def _notify(self, challenge: Challenge) -> None:
        if self.on_challenge is None:
            return
        try:
            self.on_challenge(challenge.value)
        except Exception:
            logger.exception(f"Challenge listener failed for '{challenge.value}'")

    def _append(self, step: Step) -> None:
        self.steps.append(step)
        outcome = 'passed' if step.passed else 'failed'
        if step.details:
            outcome = f"{outcome} ({step.details})"
        logger.info(f"Step '{step.name}': {outcome}")

    def _finish(self, alive: bool, reason: Optional[str] = None) -> LivenessResult:
        self.state = SequenceState.PASSED if alive else SequenceState.FAILED
        result = LivenessResult(alive=alive, steps=tuple(self.steps), reason=reason)
        logger.info(f"Liveness sequence finished: alive={alive}, reason={reason}")
        return result

    async def run(self) -> LivenessResult:
        if self.state is not SequenceState.IDLE:
            raise RuntimeError("A SequenceController can only run once.")
        try:
            return await self._run()
        finally:
            if self._owns_locator:
                self.locator.close()

    async def _run(self) -> LivenessResult:
        logger.info(f"Starting liveness sequence: {[c.value for c in self.challenges]}")

        if self.require_prepare:
            self.state = SequenceState.PREPARING
            self._notify(Challenge.PREPARE)
            started = self.clock.now()
            ready = await self.wait_for_face()
            logger.debug(f"Prepare gate settled after {self.clock.now() - started:.2f}s")
            self._append(Step(Challenge.PREPARE.value, ready))
            if not ready:
                return self._finish(False, NO_FACE_DETECTED)

        for index, challenge in enumerate(self.challenges):
            self.state = SequenceState.RUNNING
            self.current_index = index
            self._notify(challenge)
            passed, attempts = await self._run_challenge(challenge)
            self._append(Step(challenge.value, passed, f"attempts={attempts}"))
            if not passed:
                return self._finish(False, challenge_failed_reason(challenge.value))

        return self._finish(True)


def sequence_horizon(challenge_count: int, config: Config = None,
                     require_prepare: Optional[bool] = None) -> float:
    """
    Upper bound, in seconds from the start of a run, of the clock time at
    which a sequence can still capture a frame.

    The prepare gate stops polling at its timeout. A challenge attempt may
    start just before the deadline and sample for one more evaluator span,
    then the retry pause runs before the next step begins.
    """
    config = config or Config()
    if require_prepare is None:
        require_prepare = config.REQUIRE_PREPARE
    evaluator_span = max(2 * config.BLINK_SAMPLE_INTERVAL_SECONDS,
                         config.MOVEMENT_SAMPLE_INTERVAL_SECONDS)
    step = config.CHALLENGE_TIMEOUT_SECONDS + evaluator_span + config.RETRY_INTERVAL_SECONDS
    prepare = config.PREPARE_TIMEOUT_SECONDS if require_prepare else 0.0
    return prepare + challenge_count * step


async def run_liveness_sequence(frame_source: FrameSource,
                                on_challenge: Optional[Callable[[str], None]] = None,
                                **kwargs) -> LivenessResult:
    """Build a SequenceController for ``frame_source`` and run it to its verdict."""
    controller = SequenceController(frame_source, on_challenge=on_challenge, **kwargs)
    return await controller.run()
