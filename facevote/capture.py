# facevote/capture.py
"""
Webcam liveness capture.

Runs the position -> tilt -> straighten challenge against a local camera,
saves the captured frame and its descriptor, and can log straight in or
cast a ballot with it:

    facevote-capture --out-dir captures
    facevote-capture --login alice@example.com --server http://localhost:8000
"""
import argparse
import asyncio
import getpass
import json
import logging
import os
from typing import Callable, Optional

from . import config
from .clock import Clock, SystemClock
from .errors import VotingError
from .face_utils import FaceDetector, build_detector, encode_jpeg
from .liveness import Camera, Capture, ChallengeState, LivenessChallenge, LivenessRunner

logger = logging.getLogger(__name__)

PROMPTS = {
    ChallengeState.POSITION: "Position your face in the frame and hold still",
    ChallengeState.TILT: "Slowly tilt your head to one side",
    ChallengeState.STRAIGHTEN: "Now straighten your head",
    ChallengeState.SUCCESS: "Liveness confirmed",
    ChallengeState.FAILED: "Liveness check timed out",
}


def _announce(old: ChallengeState, new: ChallengeState) -> None:
    prompt = PROMPTS.get(new)
    if prompt:
        print(prompt)


def _ask_retry() -> bool:
    return input("Try again? [y/N] ").strip().lower() in ("y", "yes")


def run_challenge(detector: FaceDetector, source, clock: Clock = None,
                  confirm_retry: Callable[[], bool] = _ask_retry,
                  interval_ms: float = config.DETECTION_INTERVAL_MS) -> Optional[Capture]:
    """Drive the challenge until it succeeds or the user declines a retry."""
    challenge = LivenessChallenge(clock=clock or SystemClock(), on_transition=_announce)
    while True:
        runner = LivenessRunner(challenge, detector, source, interval_ms=interval_ms)
        state = asyncio.run(runner.run())
        if runner.skipped_ticks:
            logger.debug(f"Skipped {runner.skipped_ticks} ticks while detection was busy")
        if state == ChallengeState.SUCCESS:
            return challenge.capture
        if state != ChallengeState.FAILED or not confirm_retry():
            return None
        challenge.retry()


def save_capture(capture: Capture, out_dir: str, name: str = "capture") -> str:
    os.makedirs(out_dir, exist_ok=True)
    image_path = os.path.join(out_dir, f"{name}.jpg")
    with open(image_path, "wb") as f:
        f.write(encode_jpeg(capture.frame))
    with open(os.path.join(out_dir, f"{name}.json"), "w") as f:
        json.dump({"descriptor": [float(v) for v in capture.descriptor]}, f)
    return image_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Capture a live face descriptor from the webcam")
    parser.add_argument("--camera", type=int, default=0, help="camera index")
    parser.add_argument("--model", choices=["fast", "accurate"], default=config.FACE_MODEL)
    parser.add_argument("--out-dir", default="captures")
    parser.add_argument("--login", metavar="IDENTIFIER", help="log in with the captured face")
    parser.add_argument("--vote", metavar="CANDIDATE_ID", help="cast a ballot after logging in")
    parser.add_argument("--server", default="http://localhost:8000")
    return parser


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO)
    args = build_parser().parse_args(argv)

    detector = build_detector(args.model)
    with Camera(args.camera) as camera:
        capture = run_challenge(detector, camera)
    if capture is None:
        print("No face captured")
        return 1

    path = save_capture(capture, args.out_dir)
    print(f"Saved {path}")
    if not args.login:
        return 0

    from .client import VoterClient
    from .session import AuthSession

    client = VoterClient(AuthSession(), base_url=args.server)
    try:
        user = client.login(args.login, getpass.getpass("Password: "), capture.descriptor)
        print(f"Logged in as {user['name']}")
        if args.vote:
            receipt = client.cast_vote(args.vote)
            print(f"Vote cast for {receipt['candidate']}")
    except VotingError as e:
        print(f"Error: {e.message}")
        return 2
    finally:
        client.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
