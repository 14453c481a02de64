"""
Panorama stitching from overlapping photographs.

Pairwise homographies are chained into one reference frame, along a
linear chain or a spanning tree of the match graph. Panoramic mode
first searches for the cylindrical warp that keeps the sequence level.
Each output pixel is then mapped back into the source images and
linearly blended.

Main components:
- FeatureDetector: Harris corners with patch descriptors
- FeatureMatcher: Brute-force matcher with Lowe's ratio test
- TransformEstimator: RANSAC-based homography estimation
- CylinderWarper: Cylindrical unwrapping of images and keypoints
- Bundle: Per-image homographies into one reference frame
- LinearBlender: Weighted blending of remapped images

Example usage:
    from panostitch import stitch, to_uint8
    
    canvas = stitch(images, pano=True)
    panorama = to_uint8(canvas)
"""

__version__ = '1.0.0'

from .config import Settings
from .errors import (StitchError, ConnectivityError, DegenerateGeometryError,
                     ExhaustedSearchError)
from .features import FeatureSet, FeatureDetector
from .matcher import MatchData, FeatureMatcher
from .homography import MatchInfo, TransformEstimator
from .warp import CylinderWarper
from .bundle import Bundle, Component, ProjectionMethod
from .blending import LinearBlender, SampleMap
from .imgproc import NO_COLOR, to_uint8
from .stitcher import Stitcher, stitch

__all__ = [
    'Settings',
    'StitchError',
    'ConnectivityError',
    'DegenerateGeometryError',
    'ExhaustedSearchError',
    'FeatureSet',
    'FeatureDetector',
    'MatchData',
    'FeatureMatcher',
    'MatchInfo',
    'TransformEstimator',
    'CylinderWarper',
    'Bundle',
    'Component',
    'ProjectionMethod',
    'LinearBlender',
    'SampleMap',
    'NO_COLOR',
    'to_uint8',
    'Stitcher',
    'stitch',
]
