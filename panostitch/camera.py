"""
Camera parameter estimation from pairwise homographies.
"""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

logger = logging.getLogger(__name__)


@dataclass
class Camera:
    focal: float = 1.0


def _focal_candidate(d1: float, d2: float, v1: float, v2: float) -> Optional[float]:
    if v1 < v2:
        v1, v2 = v2, v1
    if v1 > 0 and v2 > 0:
        return math.sqrt(v1 if abs(d1) > abs(d2) else v2)
    if v1 > 0:
        return math.sqrt(v1)
    return None


def focal_from_homography(H: np.ndarray) -> Optional[float]:
    """Closed-form focal length of a rotation-only homography (Shum & Szeliski).

    Returns None when either side of the homography gives no positive
    estimate.
    """
    h = (H / H[2, 2]).ravel()

    # focal of the destination image
    d1 = h[6] * h[7]
    d2 = (h[7] - h[6]) * (h[7] + h[6])
    v1 = -(h[0] * h[1] + h[3] * h[4]) / d1 if d1 != 0 else -1.0
    v2 = (h[0] * h[0] + h[3] * h[3] - h[1] * h[1] - h[4] * h[4]) / d2 if d2 != 0 else -1.0
    f1 = _focal_candidate(d1, d2, v1, v2)

    # focal of the source image
    d1 = h[0] * h[3] + h[1] * h[4]
    d2 = h[0] * h[0] + h[1] * h[1] - h[3] * h[3] - h[4] * h[4]
    v1 = -h[2] * h[5] / d1 if d1 != 0 else -1.0
    v2 = (h[5] * h[5] - h[2] * h[2]) / d2 if d2 != 0 else -1.0
    f0 = _focal_candidate(d1, d2, v1, v2)

    if f0 is None or f1 is None:
        return None
    return math.sqrt(f0 * f1)


def estimate_focal(graph) -> float:
    """Median focal length over all matched pairs, or -1 if none is usable."""
    estimates = []
    for (i, j), info in graph.matches.items():
        if i >= j or info.confidence <= 0:
            continue
        focal = focal_from_homography(info.homo)
        if focal is not None and math.isfinite(focal):
            estimates.append(focal)

    if not estimates:
        return -1.0
    return float(np.median(estimates))


def estimate_cameras(graph, images) -> List[Camera]:
    focal = estimate_focal(graph)
    if focal > 0:
        logger.info(f"Estimated focal length: {focal:.2f}")
        return [Camera(focal) for _ in images]

    logger.info("Focal estimation inconclusive, using aspect-ratio guess per image")
    return [Camera(img.shape[1] / img.shape[0] * 0.5) for img in images]
