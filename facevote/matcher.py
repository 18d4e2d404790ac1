# facevote/matcher.py
from dataclasses import dataclass
from enum import Enum

import numpy as np

from . import config


class MatchContext(str, Enum):
    LOGIN = "login"
    EXPLICIT_VERIFY = "explicit-verify"


THRESHOLDS = {
    MatchContext.LOGIN: config.LOGIN_THRESHOLD,
    MatchContext.EXPLICIT_VERIFY: config.VERIFY_THRESHOLD,
}


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    distance: float
    threshold: float


def threshold_for(context: MatchContext) -> float:
    return THRESHOLDS[MatchContext(context)]


def euclidean_distance(a, b) -> float:
    """
    Euclidean distance over paired dimensions. Vectors of different length
    are as far apart as possible.
    """
    a = np.asarray(a, dtype=np.float64).ravel()
    b = np.asarray(b, dtype=np.float64).ravel()
    if a.shape != b.shape:
        return config.MISMATCHED_DISTANCE
    return float(np.linalg.norm(a - b))


def match(live, enrolled, context: MatchContext = MatchContext.LOGIN) -> MatchResult:
    threshold = threshold_for(context)
    distance = euclidean_distance(live, enrolled)
    return MatchResult(matched=distance < threshold, distance=distance, threshold=threshold)
