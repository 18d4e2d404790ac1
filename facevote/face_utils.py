# facevote/face_utils.py
import os
import math
import base64
import binascii
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np
from cryptography.fernet import Fernet, InvalidToken

from . import config
from .errors import CorruptBiometricData, ValidationError

logger = logging.getLogger(__name__)

Point = Tuple[float, float]


@dataclass(frozen=True)
class Landmarks:
    # One fixed reference point per eye, in image coordinates
    left_eye: Point
    right_eye: Point


@dataclass(frozen=True)
class Detection:
    box: Tuple[float, float, float, float]  # x1, y1, x2, y2
    landmarks: Landmarks
    descriptor: np.ndarray
    score: float = 1.0


def head_roll(landmarks: Landmarks) -> float:
    """Head roll in degrees from the line joining the two eye reference points."""
    dy = landmarks.right_eye[1] - landmarks.left_eye[1]
    dx = landmarks.right_eye[0] - landmarks.left_eye[0]
    return math.degrees(math.atan2(dy, dx))


# ==============================================================================
# Face detectors
# ==============================================================================

class FaceDetector:
    """Given one video frame, return the single best face or None."""

    def detect(self, frame: np.ndarray) -> Optional[Detection]:
        raise NotImplementedError


class InsightFaceDetector(FaceDetector):
    """
    InsightFace analysis pipeline (SCRFD detection + ArcFace recognition).
    The model pack is loaded lazily on first use so importing this module
    never touches the model files.
    """

    def __init__(self, model_name: str = "buffalo_l", det_size: Tuple[int, int] = (640, 640),
                 root: Optional[str] = None):
        self.model_name = model_name
        self.det_size = det_size
        self.root = root or os.path.expanduser("~/.insightface")
        self._app = None

    def get_face_app(self):
        if self._app is None:
            from insightface.app import FaceAnalysis

            app = FaceAnalysis(name=self.model_name, root=self.root,
                               providers=["CPUExecutionProvider"])
            app.prepare(ctx_id=0, det_size=self.det_size)
            logger.info(f"Loaded InsightFace model pack {self.model_name} (det_size={self.det_size})")
            self._app = app
        return self._app

    def detect(self, frame: np.ndarray) -> Optional[Detection]:
        faces = self.get_face_app().get(frame)
        if not faces:
            return None
        # Use the largest face
        face = sorted(faces, key=lambda f: (f.bbox[2] - f.bbox[0]) * (f.bbox[3] - f.bbox[1]))[-1]
        # kps: left eye, right eye, nose, left mouth, right mouth
        kps = face.kps
        landmarks = Landmarks(
            left_eye=(float(kps[0][0]), float(kps[0][1])),
            right_eye=(float(kps[1][0]), float(kps[1][1])),
        )
        return Detection(
            box=tuple(float(v) for v in face.bbox),
            landmarks=landmarks,
            descriptor=face.normed_embedding.astype(np.float32),
            score=float(face.det_score),
        )


DETECTOR_PRESETS = {
    "fast": {"model_name": "buffalo_s", "det_size": (320, 320)},
    "accurate": {"model_name": "buffalo_l", "det_size": (640, 640)},
}


def build_detector(kind: str = None) -> FaceDetector:
    kind = kind or config.FACE_MODEL
    try:
        preset = DETECTOR_PRESETS[kind]
    except KeyError:
        raise ValueError(f"Unknown face model '{kind}', expected one of {sorted(DETECTOR_PRESETS)}")
    return InsightFaceDetector(**preset)


def encode_jpeg(frame: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".jpg", frame)
    if not ok:
        raise ValueError("Could not encode frame as JPEG")
    return buf.tobytes()


# ==============================================================================
# Descriptors
# ==============================================================================

def parse_descriptor(values: Optional[Sequence[float]], field: str = "descriptor") -> Optional[np.ndarray]:
    """Validate a client-supplied descriptor. None passes through."""
    if values is None:
        return None
    try:
        arr = np.asarray(values, dtype=np.float32)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} must be a list of numbers")
    if arr.ndim != 1 or arr.size == 0:
        raise ValidationError(f"{field} must be a non-empty flat list of numbers")
    if not np.all(np.isfinite(arr)):
        raise ValidationError(f"{field} contains non-finite values")
    return arr


@lru_cache(maxsize=1)
def get_fernet() -> Fernet:
    # In production: use secure key management (Vault/KMS) and pass DESCRIPTOR_KEY.
    key = config.DESCRIPTOR_KEY
    if key:
        return Fernet(key.encode() if isinstance(key, str) else key)
    key_dir = os.path.dirname(config.KEY_FILE)
    if key_dir:
        os.makedirs(key_dir, exist_ok=True)
    if not os.path.exists(config.KEY_FILE):
        with open(config.KEY_FILE, "wb") as kf:
            kf.write(Fernet.generate_key())
        logger.warning(f"Generated new descriptor key at {config.KEY_FILE}")
    with open(config.KEY_FILE, "rb") as kf:
        return Fernet(kf.read())


def encrypt_descriptor(descriptor: np.ndarray, fernet: Fernet = None) -> str:
    fernet = fernet or get_fernet()
    emb_enc = fernet.encrypt(np.asarray(descriptor, dtype=np.float32).tobytes())
    return base64.b64encode(emb_enc).decode("utf-8")


def decrypt_descriptor(descriptor_enc: str, dim: Optional[int] = None, fernet: Fernet = None) -> np.ndarray:
    """Inverse of encrypt_descriptor. Anything unreadable is CorruptBiometricData."""
    fernet = fernet or get_fernet()
    try:
        emb_bytes = fernet.decrypt(base64.b64decode(descriptor_enc, validate=True))
    except (InvalidToken, binascii.Error, ValueError, TypeError) as exc:
        raise CorruptBiometricData(reason=type(exc).__name__)
    if not emb_bytes or len(emb_bytes) % 4:
        raise CorruptBiometricData(reason="bad length")
    emb = np.frombuffer(emb_bytes, dtype=np.float32)
    if dim is not None and emb.size != dim:
        raise CorruptBiometricData(reason="dimension mismatch")
    if not np.all(np.isfinite(emb)):
        raise CorruptBiometricData(reason="non-finite values")
    return emb
