"""
Cylindrical warp-factor search for panoramic sequences.

Images shot from a rotating camera are unwrapped onto a cylinder before
fitting. The vertical centre of that cylinder (the h-factor) is unknown;
a wrong value makes chained homographies drift up or down along the
sequence. The search picks the factor whose chain drifts least, measured
as the slope y/x of the chain's end point.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

import numpy as np

from .bundle import Bundle, ProjectionMethod
from .errors import ConnectivityError, ExhaustedSearchError
from .homography import trans2d
from .utils import parallel_map, timed
from .warp import CylinderWarper

logger = logging.getLogger(__name__)


@dataclass
class HFactorSearch:
    factor: float = 1.0
    min_slope: float = math.inf
    chain: List[np.ndarray] = field(default_factory=list)
    trials: List[Tuple[float, float, bool]] = field(default_factory=list)


def sequential_matches(feats, matcher, workers=1):
    """Correspondences for every pair (k, k + 1), independent of any warp."""
    n = len(feats)
    with timed("sequential_matches()"):
        return parallel_map(lambda k: matcher.match(feats[k], feats[k + 1]),
                            range(n - 1), workers)


def chain_slope(H):
    """Slope y/x of the origin mapped through ``H``."""
    x, y = trans2d(H, np.zeros(2))
    if x == 0:
        return 0.0 if y == 0 else math.copysign(math.inf, y)
    return float(y / x)


def evaluate_h_factor(factor, feats, sizes, matches, mid, estimator, workers=1):
    """
    Chain the forward half of the sequence under one trial factor.
    
    Args:
        factor: Trial h-factor
        feats: FeatureSet per image, unwarped
        sizes: (width, height) per image
        matches: Cached correspondences, matches[k] for pair (k, k + 1)
        mid: Identity index; images mid..n-1 take part
        estimator: Transform estimator
        workers: Thread pool size
        
    Returns:
        (slope, chain): chain[k] maps image mid + k + 1 into image mid, or
        (0.0, None) if any fit failed
    """
    n = len(feats)
    warper = CylinderWarper(factor)
    now_feats = parallel_map(
        lambda k: warper.warp_features(feats[k], *sizes[k]), range(mid, n), workers)

    def fit(k):
        succ, info = estimator.fit(matches[mid + k - 1], now_feats[k - 1], now_feats[k])
        return info.homo if succ else None

    # Each fit fills its own slot; composition waits for all of them
    chain = parallel_map(fit, range(1, len(now_feats)), workers)
    if any(H is None for H in chain):
        logger.debug(f"hfactor={factor:.4f}: a forward fit failed")
        return 0.0, None

    for k in range(1, len(chain)):
        chain[k] = chain[k - 1] @ chain[k]

    slope = chain_slope(chain[-1])
    logger.debug(f"hfactor={factor:.4f}: slope={slope:.6f}")
    return slope, chain


def search_h_factor(evaluate: Callable[[float], Tuple[float, Optional[List[np.ndarray]]]],
                    rounds: int = 3, slope_plain: float = 8e-3) -> HFactorSearch:
    """
    Refine the h-factor with a halving step, keeping the flattest chain.
    
    Raises:
        ExhaustedSearchError: if not a single trial produced a chain
    """
    best = HFactorSearch()

    def trial(factor):
        slope, chain = evaluate(factor)
        best.trials.append((factor, slope, chain is not None))
        if chain is not None and abs(slope) < best.min_slope:
            best.factor, best.min_slope, best.chain = factor, abs(slope), chain
        return slope

    factor = 1.0
    slope = trial(factor)
    if not best.chain:
        raise ExhaustedSearchError("Failed to find hfactor", phase="search_h_factor")

    # Which way the sequence runs decides the sign of the correction
    order = 1.0 if trans2d(best.chain[0], np.zeros(2))[0] > 0 else -1.0
    for k in range(rounds):
        if abs(slope) < slope_plain:
            break
        factor += (order if slope < 0 else -order) / (5 * 2 ** k)
        slope = trial(factor)

    return best


def build_bundle_warp(images, feats, matcher, estimator, rounds=3,
                      slope_plain=8e-3, workers=1, proj_method=None):
    """
    Search the h-factor, warp everything with it and chain the whole sequence.
    
    Returns:
        (bundle, search): bundle over the warped images, and the search record
    """
    n = len(images)
    mid = n // 2
    sizes = [(img.shape[1], img.shape[0]) for img in images]
    matches = sequential_matches(feats, matcher, workers)

    search = HFactorSearch()
    with timed("search_h_factor()"):
        if n - mid > 1:
            search = search_h_factor(
                lambda f: evaluate_h_factor(f, feats, sizes, matches, mid, estimator, workers),
                rounds=rounds, slope_plain=slope_plain)
    logger.info(f"Best hfactor: {search.factor:.4f}")

    warper = CylinderWarper(search.factor)
    warped = parallel_map(lambda k: warper.warp(images[k], feats[k]), range(n), workers)
    warped_images = [img for img, _ in warped]
    warped_feats = [f for _, f in warped]

    bundle = Bundle(warped_images, proj_method or ProjectionMethod.FLAT)
    bundle.place(range(n), mid)
    comp = bundle.components
    for k in range(mid + 1, n):
        comp[k].homo = search.chain[k - mid - 1]

    def fit_reverse(i):
        succ, info = estimator.fit(matches[i].reversed(), warped_feats[i + 1], warped_feats[i])
        if not succ:
            raise ConnectivityError(f"Image {i} and {i + 1} don't match",
                                    indices=(i, i + 1), phase="build_bundle_warp")
        return info.homo

    reverse = parallel_map(fit_reverse, range(mid - 1, -1, -1), workers)
    for i, H in zip(range(mid - 1, -1, -1), reverse):
        comp[i].homo = H
    for i in range(mid - 2, -1, -1):
        comp[i].homo = comp[i + 1].homo @ comp[i].homo

    bundle.calc_inverse_homo()
    return bundle, search
