# facevote/liveness.py
"""
Client-side liveness challenge: position -> tilt -> straighten.

The challenge is a plain state machine evaluated once per detection tick
against timestamps from a Clock, so it can be driven frame by frame in
tests without real delays. LivenessRunner is the cooperative poll loop that
feeds it from a camera at a fixed cadence, skipping a tick whenever the
previous detection has not finished yet.

Timings (ms / degrees) come from config:
    - position -> tilt       face seen continuously for STABILIZE_MS
    - tilt -> straighten     |roll| > TILT_ANGLE_DEG held for TILT_HOLD_MS
    - straighten -> success  |roll| < STRAIGHTEN_ANGLE_DEG held for STRAIGHTEN_HOLD_MS
    - position/tilt -> failed  CHALLENGE_TIMEOUT_MS after first entering position
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

import cv2
import numpy as np

from . import config
from .clock import Clock, SystemClock
from .face_utils import Detection, FaceDetector, head_roll

logger = logging.getLogger(__name__)


class ChallengeState(str, Enum):
    LOADING = "loading"
    POSITION = "position"
    TILT = "tilt"
    STRAIGHTEN = "straighten"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_STATES = (ChallengeState.SUCCESS, ChallengeState.FAILED)
TIMED_STATES = (ChallengeState.POSITION, ChallengeState.TILT)


@dataclass
class Capture:
    frame: Any
    descriptor: np.ndarray


@dataclass
class LivenessSession:
    """Ephemeral challenge state; never persisted."""
    state: ChallengeState = ChallengeState.LOADING
    # global ceiling, armed on entering position
    started_at: Optional[float] = None
    # start of the current hold (stabilize / tilt / straighten)
    hold_started_at: Optional[float] = None
    last_roll: Optional[float] = None
    capture: Optional[Capture] = None


class LivenessChallenge:
    def __init__(self, clock: Clock = None,
                 on_transition: Callable[[ChallengeState, ChallengeState], None] = None,
                 stabilize_ms: float = config.STABILIZE_MS,
                 tilt_angle: float = config.TILT_ANGLE_DEG,
                 tilt_hold_ms: float = config.TILT_HOLD_MS,
                 straighten_angle: float = config.STRAIGHTEN_ANGLE_DEG,
                 straighten_hold_ms: float = config.STRAIGHTEN_HOLD_MS,
                 timeout_ms: float = config.CHALLENGE_TIMEOUT_MS):
        self.clock = clock or SystemClock()
        self.on_transition = on_transition
        self.stabilize_ms = stabilize_ms
        self.tilt_angle = tilt_angle
        self.tilt_hold_ms = tilt_hold_ms
        self.straighten_angle = straighten_angle
        self.straighten_hold_ms = straighten_hold_ms
        self.timeout_ms = timeout_ms
        self.session = LivenessSession()

    @property
    def state(self) -> ChallengeState:
        return self.session.state

    @property
    def finished(self) -> bool:
        return self.session.state in TERMINAL_STATES

    @property
    def capture(self) -> Optional[Capture]:
        return self.session.capture

    def tick(self, detection: Optional[Detection], frame: Any = None) -> ChallengeState:
        return self.step(detection, self.clock.monotonic_ms(), frame)

    def step(self, detection: Optional[Detection], now: float, frame: Any = None) -> ChallengeState:
        s = self.session
        if s.state in TERMINAL_STATES:
            return s.state

        roll = head_roll(detection.landmarks) if detection is not None else None
        if roll is not None:
            s.last_roll = roll

        if s.state == ChallengeState.LOADING:
            if detection is not None:
                self._enter(ChallengeState.POSITION)
                s.started_at = now
                s.hold_started_at = now
            return s.state

        if s.state in TIMED_STATES and now - s.started_at >= self.timeout_ms:
            self._enter(ChallengeState.FAILED)
            s.hold_started_at = None
            return s.state

        if s.state == ChallengeState.POSITION:
            if self._held(detection is not None, now, self.stabilize_ms):
                self._enter(ChallengeState.TILT)
        elif s.state == ChallengeState.TILT:
            tilted = roll is not None and abs(roll) > self.tilt_angle
            if self._held(tilted, now, self.tilt_hold_ms):
                self._enter(ChallengeState.STRAIGHTEN)
        elif s.state == ChallengeState.STRAIGHTEN:
            straight = roll is not None and abs(roll) < self.straighten_angle
            if self._held(straight, now, self.straighten_hold_ms):
                s.capture = Capture(frame=frame, descriptor=detection.descriptor)
                self._enter(ChallengeState.SUCCESS)
        return s.state

    def retry(self, now: float = None) -> None:
        """User-triggered restart from failed; clears every timer."""
        s = self.session
        if s.state != ChallengeState.FAILED:
            raise RuntimeError(f"retry is only possible from failed, not {s.state.value}")
        s.hold_started_at = None
        s.capture = None
        self._enter(ChallengeState.POSITION)
        s.started_at = self.clock.monotonic_ms() if now is None else now

    def _held(self, condition: bool, now: float, hold_ms: float) -> bool:
        # No partial credit: the hold restarts whenever the condition breaks
        s = self.session
        if not condition:
            s.hold_started_at = None
            return False
        if s.hold_started_at is None:
            s.hold_started_at = now
        if now - s.hold_started_at >= hold_ms:
            s.hold_started_at = None
            return True
        return False

    def _enter(self, new_state: ChallengeState) -> None:
        old = self.session.state
        self.session.state = new_state
        logger.debug(f"Liveness {old.value} -> {new_state.value}")
        if self.on_transition:
            self.on_transition(old, new_state)


# ==============================================================================
# Camera and poll loop
# ==============================================================================

class Camera:
    """OpenCV webcam as a scoped resource; released on every exit path."""

    def __init__(self, index: int = 0, width: int = 640, height: int = 480):
        self.index = index
        self.width = width
        self.height = height
        self._cap = None

    def open(self) -> "Camera":
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            raise RuntimeError(f"Could not open camera {self.index}")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._cap = cap
        logger.info(f"Camera {self.index} opened")
        return self

    def read(self) -> Optional[np.ndarray]:
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        return frame if ok else None

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info(f"Camera {self.index} released")

    def __enter__(self) -> "Camera":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class LivenessRunner:
    """
    Single-threaded cooperative poll loop. Every interval a detection tick is
    scheduled unless the previous one is still running, in which case the
    tick is skipped. Detection itself runs in a worker thread so the loop
    keeps its cadence.
    """

    def __init__(self, challenge: LivenessChallenge, detector: FaceDetector, source,
                 interval_ms: float = config.DETECTION_INTERVAL_MS):
        self.challenge = challenge
        self.detector = detector
        self.source = source
        self.interval_ms = interval_ms
        self.skipped_ticks = 0
        self._busy = False
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    async def run(self) -> ChallengeState:
        self._stopped = False
        pending = set()
        try:
            while not self.challenge.finished and not self._stopped:
                if self._busy:
                    self.skipped_ticks += 1
                else:
                    self._busy = True
                    task = asyncio.create_task(self._tick())
                    pending.add(task)
                    task.add_done_callback(pending.discard)
                await asyncio.sleep(self.interval_ms / 1000.0)
            if pending:
                await asyncio.gather(*pending)
        finally:
            leftover = list(pending)
            for task in leftover:
                task.cancel()
            if leftover:
                await asyncio.gather(*leftover, return_exceptions=True)
        return self.challenge.state

    async def _tick(self) -> None:
        try:
            frame = await asyncio.to_thread(self.source.read)
            detection = None
            if frame is not None:
                detection = await asyncio.to_thread(self.detector.detect, frame)
            self.challenge.tick(detection, frame)
        except Exception:
            logger.exception("Detection error")
        finally:
            self._busy = False
