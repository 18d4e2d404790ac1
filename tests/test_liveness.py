import math

import numpy as np
import pytest

from facevote.face_utils import Detection, Landmarks
from facevote.liveness import ChallengeState, LivenessChallenge

EMBEDDING = np.full(128, 0.05, dtype=np.float32)


def face(roll=0.0):
    rad = math.radians(roll)
    left = (100.0, 100.0)
    right = (100.0 + 60 * math.cos(rad), 100.0 + 60 * math.sin(rad))
    return Detection(box=(50, 50, 200, 200), landmarks=Landmarks(left, right), descriptor=EMBEDDING)


def to_tilt(challenge):
    challenge.step(face(), 0)
    assert challenge.step(face(), 1000) == ChallengeState.TILT


def to_straighten(challenge):
    to_tilt(challenge)
    challenge.step(face(20), 1100)
    assert challenge.step(face(20), 1600) == ChallengeState.STRAIGHTEN


@pytest.fixture
def challenge(clock):
    return LivenessChallenge(clock=clock)


class TestPosition:
    """A face must stay in frame for a full second."""

    def test_waits_for_first_face(self, challenge):
        assert challenge.step(None, 0) == ChallengeState.LOADING
        assert challenge.step(face(), 100) == ChallengeState.POSITION

    def test_stabilizes_after_one_second(self, challenge):
        challenge.step(face(), 0)
        assert challenge.step(face(), 800) == ChallengeState.POSITION
        assert challenge.step(face(), 1000) == ChallengeState.TILT

    def test_lost_face_restarts_hold(self, challenge):
        challenge.step(face(), 0)
        challenge.step(face(), 200)
        challenge.step(None, 400)
        challenge.step(face(), 600)
        assert challenge.step(face(), 1400) == ChallengeState.POSITION
        assert challenge.step(face(), 1600) == ChallengeState.TILT


class TestTiltAndStraighten:
    def test_tilt_either_side(self, challenge):
        to_tilt(challenge)
        challenge.step(face(-18), 1100)
        assert challenge.step(face(-18), 1600) == ChallengeState.STRAIGHTEN

    def test_tilt_must_exceed_angle(self, challenge):
        to_tilt(challenge)
        challenge.step(face(14.9), 1100)
        assert challenge.step(face(14.9), 5000) == ChallengeState.TILT

    def test_broken_tilt_restarts_hold(self, challenge):
        to_tilt(challenge)
        challenge.step(face(20), 1100)
        challenge.step(face(5), 1400)
        challenge.step(face(20), 1500)
        assert challenge.step(face(20), 1900) == ChallengeState.TILT
        assert challenge.step(face(20), 2000) == ChallengeState.STRAIGHTEN

    def test_straighten_captures(self, challenge):
        to_straighten(challenge)
        frame = np.zeros((4, 4, 3), dtype=np.uint8)
        challenge.step(face(3), 1700, frame)
        assert challenge.step(face(3), 2400, frame) == ChallengeState.STRAIGHTEN
        assert challenge.step(face(3), 2500, frame) == ChallengeState.SUCCESS
        assert challenge.finished
        assert challenge.capture.frame is frame
        np.testing.assert_array_equal(challenge.capture.descriptor, EMBEDDING)

    def test_straighten_needs_small_roll(self, challenge):
        to_straighten(challenge)
        challenge.step(face(8.5), 1700)
        assert challenge.step(face(8.5), 4000) == ChallengeState.STRAIGHTEN

    def test_straighten_has_no_timeout(self, challenge):
        to_straighten(challenge)
        assert challenge.step(face(20), 90000) == ChallengeState.STRAIGHTEN


class TestTimeout:
    """Thirty seconds after first entering position, position or tilt fail."""

    def test_stuck_in_tilt(self, challenge):
        to_tilt(challenge)
        assert challenge.step(face(), 29999) == ChallengeState.TILT
        assert challenge.step(face(), 30000) == ChallengeState.FAILED

    def test_idle_position(self, challenge):
        challenge.step(face(), 0)
        assert challenge.step(None, 30000) == ChallengeState.FAILED

    def test_failed_is_terminal(self, challenge):
        challenge.step(face(), 0)
        challenge.step(None, 30000)
        assert challenge.step(face(), 31000) == ChallengeState.FAILED
        assert challenge.capture is None

    def test_retry_rearms(self, challenge):
        challenge.step(face(), 0)
        challenge.step(None, 30000)

        challenge.retry(now=40000)

        assert challenge.state == ChallengeState.POSITION
        assert challenge.step(face(), 60000) == ChallengeState.POSITION
        assert challenge.step(face(), 70000) == ChallengeState.FAILED

    def test_retry_only_from_failed(self, challenge):
        challenge.step(face(), 0)
        with pytest.raises(RuntimeError):
            challenge.retry()


class TestClockDriven:
    def test_tick_uses_clock(self, clock):
        seen = []
        challenge = LivenessChallenge(clock=clock, on_transition=lambda old, new: seen.append(new))
        challenge.tick(face())
        clock.advance(1000)
        challenge.tick(face())
        assert seen == [ChallengeState.POSITION, ChallengeState.TILT]

    def test_thirty_seconds_idle(self, clock):
        challenge = LivenessChallenge(clock=clock)
        challenge.tick(face())
        for _ in range(150):
            clock.advance(200)
            challenge.tick(None)
        assert challenge.state == ChallengeState.FAILED
