"""
Homography algebra and RANSAC-based transform estimation.

All homographies are 3x3 float64 arrays acting on column vectors of
centred pixel coordinates.
"""

import itertools
import logging
from dataclasses import dataclass, field

import numpy as np

from .errors import DegenerateGeometryError
from .matcher import MatchData

logger = logging.getLogger(__name__)


def identity():
    return np.eye(3, dtype=np.float64)


def inverse(H, indices=None, phase=None):
    """
    Invert a homography.
    
    Raises:
        DegenerateGeometryError: if the matrix is singular
    """
    try:
        return np.linalg.inv(H)
    except np.linalg.LinAlgError:
        raise DegenerateGeometryError(
            "Homography is not invertible", indices=indices, phase=phase)


def trans(H, points):
    """
    Apply a homography to 2-D points, keeping the homogeneous result.
    
    Args:
        H: Homography matrix (3 x 3)
        points: Points (N x 2) or a single point (2,)
        
    Returns:
        Homogeneous points (N x 3), or (3,) for a single point
    """
    points = np.asarray(points, dtype=np.float64)
    single = points.ndim == 1
    points = points.reshape(-1, 2)
    homogeneous = np.hstack([points, np.ones((len(points), 1))])
    result = homogeneous @ H.T
    return result[0] if single else result


def trans_normalize(H, homogeneous):
    """Apply a homography to homogeneous points (..., 3) and return 2-D points."""
    homogeneous = np.asarray(homogeneous, dtype=np.float64)
    result = homogeneous @ H.T
    with np.errstate(divide='ignore', invalid='ignore'):
        return result[..., :2] / result[..., 2:3]


def trans2d(H, points):
    """
    Apply a homography to 2-D points.
    
    Args:
        H: Homography matrix (3 x 3)
        points: Points (N x 2) or a single point (2,)
        
    Returns:
        Transformed points with the same shape as ``points``
    """
    points = np.asarray(points, dtype=np.float64)
    homogeneous = np.concatenate([points, np.ones(points.shape[:-1] + (1,))], axis=-1)
    return trans_normalize(H, homogeneous)


def _has_collinear_triple(points, eps=1e-9):
    scale = max(np.ptp(points, axis=0).max(), 1.0)
    for i, j, k in itertools.combinations(range(4), 3):
        d1 = points[j] - points[i]
        d2 = points[k] - points[i]
        if abs(d1[0] * d2[1] - d1[1] * d2[0]) < eps * scale * scale:
            return True
    return False


def get_perspective_transform(src, dst):
    """
    Solve the perspective transform mapping four points onto four points.
    
    Args:
        src: Source points (4 x 2)
        dst: Destination points (4 x 2)
        
    Returns:
        H: Homography matrix (3 x 3) with H[2, 2] = 1
    """
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    if src.shape != (4, 2) or dst.shape != (4, 2):
        raise ValueError("Need exactly 4 point correspondences")
    
    A = np.zeros((8, 8))
    b = np.zeros(8)
    for i in range(4):
        x, y = src[i]
        u, v = dst[i]
        A[2 * i] = [x, y, 1, 0, 0, 0, -x * u, -y * u]
        A[2 * i + 1] = [0, 0, 0, x, y, 1, -x * v, -y * v]
        b[2 * i] = u
        b[2 * i + 1] = v
    
    try:
        if _has_collinear_triple(src) or _has_collinear_triple(dst):
            raise np.linalg.LinAlgError("three corners are collinear")
        h = np.linalg.solve(A, b)
    except np.linalg.LinAlgError:
        raise DegenerateGeometryError(
            "Corner configuration admits no perspective transform",
            phase="get_perspective_transform")
    
    return np.append(h, 1.0).reshape(3, 3)


@dataclass
class MatchInfo:
    """
    Result of fitting one image onto another.
    
    For the entry stored at (i, j), ``homo`` maps image j's centred
    coordinates into image i.
    """
    homo: np.ndarray
    match: MatchData = field(default_factory=MatchData)
    confidence: float = 0.0
    
    @property
    def n_inliers(self):
        return len(self.match)
    
    def reversed(self, indices=None):
        """The same fit seen from the other image."""
        return MatchInfo(inverse(self.homo, indices=indices, phase="reverse_match"),
                         self.match.reversed(), self.confidence)


class TransformEstimator:
    """
    Homography estimation using RANSAC algorithm.
    
    A homography is a 3x3 matrix that describes the projective transformation
    between two planes (images).
    """
    
    def __init__(self, ransac_reproj_threshold=4.0, max_iters=2000, 
                 confidence=0.995, min_inliers=10, min_confidence=1.0, seed=0):
        """
        Initialize the estimator.
        
        Args:
            ransac_reproj_threshold: Maximum reprojection error to be considered inlier
            max_iters: Maximum number of RANSAC iterations
            confidence: Desired confidence level for RANSAC
            min_inliers: Minimum number of inliers required
            min_confidence: Minimum inliers / (8 + 0.3 * matches) for a valid fit
            seed: Seed of the per-call random generator
        """
        self.ransac_reproj_threshold = ransac_reproj_threshold
        self.max_iters = max_iters
        self.confidence = confidence
        self.min_inliers = min_inliers
        self.min_confidence = min_confidence
        self.seed = seed
    
    def fit(self, match, feats1, feats2):
        """
        Fit the homography mapping the second image onto the first.
        
        Args:
            match: MatchData between feats1 and feats2
            feats1: FeatureSet of the first (destination) image
            feats2: FeatureSet of the second (source) image
            
        Returns:
            (success, MatchInfo or None)
        """
        if len(match) < 4:
            return False, None
        
        dst_points = feats1.coords[match.pairs[:, 0]]
        src_points = feats2.coords[match.pairs[:, 1]]
        
        H, inliers = self.find_homography(src_points, dst_points)
        if H is None:
            return False, None
        
        n_inliers = int(np.sum(inliers))
        conf = n_inliers / (8 + 0.3 * len(match))
        if n_inliers < self.min_inliers or conf < self.min_confidence:
            logger.debug(f"Rejected fit: {n_inliers} inliers of {len(match)}, conf={conf:.3f}")
            return False, None
        
        return True, MatchInfo(H, match.subset(inliers), conf)
    
    def find_homography(self, src_points, dst_points):
        """
        Find homography matrix using RANSAC.
        
        Args:
            src_points: Source points (N x 2)
            dst_points: Destination points (N x 2)
            
        Returns:
            H: Homography matrix (3 x 3), or None
            mask: Inlier mask (N,), or None
        """
        src_points = np.asarray(src_points, dtype=np.float64)
        dst_points = np.asarray(dst_points, dtype=np.float64)
        
        n_points = len(src_points)
        if n_points < 4:
            return None, None
        
        # Own generator per call so parallel fits stay reproducible
        rng = np.random.default_rng(self.seed)
        
        best_H = None
        best_inliers = None
        best_num_inliers = 0
        
        for iteration in range(self.max_iters):
            indices = rng.choice(n_points, 4, replace=False)
            H = self._compute_homography_dlt(src_points[indices], dst_points[indices])
            
            if H is None:
                continue
            
            inliers = self._get_inliers(src_points, dst_points, H)
            num_inliers = np.sum(inliers)
            
            if num_inliers > best_num_inliers:
                best_num_inliers = num_inliers
                best_inliers = inliers
                best_H = H
                
                # Adaptive termination
                inlier_ratio = num_inliers / n_points
                if inlier_ratio >= 1.0:
                    break
                if inlier_ratio > 0.01:
                    n_iters_needed = np.log(1 - self.confidence) / np.log(1 - inlier_ratio**4)
                    if iteration > n_iters_needed:
                        break
        
        if best_H is None:
            return None, None
        
        # Refine homography using all inliers
        if best_num_inliers >= 4:
            refined = self._compute_homography_dlt(src_points[best_inliers],
                                                   dst_points[best_inliers])
            if refined is not None:
                best_H = refined
                best_inliers = self._get_inliers(src_points, dst_points, best_H)
        
        return best_H, best_inliers
    
    def _compute_homography_dlt(self, src_pts, dst_pts):
        """
        Compute homography using Direct Linear Transform.
        
        For each point correspondence (x, y) -> (x', y'), we have:
        x' = (h11*x + h12*y + h13) / (h31*x + h32*y + h33)
        y' = (h21*x + h22*y + h23) / (h31*x + h32*y + h33)
        """
        n = len(src_pts)
        if n < 4:
            return None
        
        # Normalize points for better numerical stability
        src_pts_norm, T_src = self._normalize_points(src_pts)
        dst_pts_norm, T_dst = self._normalize_points(dst_pts)
        
        x, y = src_pts_norm[:, 0], src_pts_norm[:, 1]
        xp, yp = dst_pts_norm[:, 0], dst_pts_norm[:, 1]
        zeros = np.zeros(n)
        ones = np.ones(n)
        
        A = np.empty((2 * n, 9))
        A[0::2] = np.column_stack([-x, -y, -ones, zeros, zeros, zeros, x * xp, y * xp, xp])
        A[1::2] = np.column_stack([zeros, zeros, zeros, -x, -y, -ones, x * yp, y * yp, yp])
        
        try:
            _, _, Vt = np.linalg.svd(A)
        except np.linalg.LinAlgError:
            return None
        
        H = Vt[-1].reshape(3, 3)
        H = np.linalg.inv(T_dst) @ H @ T_src
        
        if abs(H[2, 2]) < 1e-12:
            return None
        H = H / H[2, 2]
        
        if abs(np.linalg.det(H)) < 1e-12:
            return None
        return H
    
    def _normalize_points(self, points):
        """
        Translate points so centroid is at origin and scale so
        average distance from origin is sqrt(2).
        """
        centroid = np.mean(points, axis=0)
        points_centered = points - centroid
        
        avg_dist = np.mean(np.sqrt(np.sum(points_centered**2, axis=1)))
        if avg_dist < 1e-10:
            avg_dist = 1.0
        
        scale = np.sqrt(2) / avg_dist
        T = np.array([
            [scale, 0, -scale * centroid[0]],
            [0, scale, -scale * centroid[1]],
            [0, 0, 1]
        ])
        
        return points_centered * scale, T
    
    def _get_inliers(self, src_pts, dst_pts, H):
        """
        Get inlier mask based on reprojection error.
        
        Returns:
            mask: Boolean mask indicating inliers
        """
        dst_projected = trans2d(H, src_pts)
        errors = np.sqrt(np.sum((dst_pts - dst_projected)**2, axis=1))
        # NaN errors compare False and drop out
        return errors < self.ransac_reproj_threshold
