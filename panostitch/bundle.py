"""
Images placed in one shared reference frame.

Coordinates go through three spaces:

* image space: centred pixel coordinates of one source image;
* homogeneous reference space: a component's homography applied to image
  space, divided by the identity image's size and shifted so the identity
  image spans [0, 1] x [0, 1];
* projected space: the projection method applied to reference space,
  scaled back by the identity image's size.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .homography import identity, inverse

logger = logging.getLogger(__name__)

# Samples per frame side when measuring a component's projected range
RANGE_SAMPLES = 101


class ProjectionMethod(enum.Enum):
    FLAT = "flat"
    CYLINDRICAL = "cylindrical"


def flat_homo2proj(homo):
    with np.errstate(divide='ignore', invalid='ignore'):
        return homo[..., :2] / homo[..., 2:3]


def flat_proj2homo(proj):
    return np.concatenate([proj, np.ones(proj.shape[:-1] + (1,))], axis=-1)


def cylindrical_homo2proj(homo):
    x, y, z = homo[..., 0], homo[..., 1], homo[..., 2]
    with np.errstate(divide='ignore', invalid='ignore'):
        return np.stack([np.arctan2(x, z), y / np.hypot(x, z)], axis=-1)


def cylindrical_proj2homo(proj):
    theta, h = proj[..., 0], proj[..., 1]
    return np.stack([np.sin(theta), h, np.cos(theta)], axis=-1)


_PROJECTIONS = {
    ProjectionMethod.FLAT: (flat_homo2proj, flat_proj2homo),
    ProjectionMethod.CYLINDRICAL: (cylindrical_homo2proj, cylindrical_proj2homo),
}


@dataclass
class ProjRange:
    min: np.ndarray = field(default_factory=lambda: np.full(2, np.inf))
    max: np.ndarray = field(default_factory=lambda: np.full(2, -np.inf))

    def update(self, points):
        self.min = np.minimum(self.min, points.min(axis=0))
        self.max = np.maximum(self.max, points.max(axis=0))

    def union(self, other):
        self.min = np.minimum(self.min, other.min)
        self.max = np.maximum(self.max, other.max)

    @property
    def size(self):
        return self.max - self.min


@dataclass
class Component:
    idx: int
    homo: np.ndarray = field(default_factory=identity)
    homo_inv: Optional[np.ndarray] = None
    range: ProjRange = field(default_factory=ProjRange)


class Bundle:
    """
    Per-image homographies into the frame of one identity image.
    
    ``components`` only lists images a builder actually placed, in
    ascending image index.
    """

    def __init__(self, images, proj_method=ProjectionMethod.FLAT):
        self.images = list(images)
        self.components: List[Component] = []
        self.identity_idx = 0
        self.proj_method = proj_method
        self.proj_range = ProjRange()

    def place(self, indices, identity_idx):
        """Start a fresh set of components for the given image indices."""
        self.components = [Component(i) for i in sorted(indices)]
        self.identity_idx = identity_idx
        self.proj_range = ProjRange()

    def component(self, idx) -> Component:
        for comp in self.components:
            if comp.idx == idx:
                return comp
        raise KeyError(f"Image {idx} is not part of the bundle")

    def image_of(self, comp):
        return self.images[comp.idx]

    @property
    def indices(self):
        return [comp.idx for comp in self.components]

    @property
    def ref_size(self):
        """(width, height) of the identity image."""
        h, w = self.images[self.identity_idx].shape[:2]
        return np.array([w, h], dtype=np.float64)

    def get_homo2proj(self):
        return _PROJECTIONS[self.proj_method][0]

    def get_proj2homo(self):
        return _PROJECTIONS[self.proj_method][1]

    def calc_inverse_homo(self):
        for comp in self.components:
            comp.homo_inv = inverse(comp.homo, indices=(comp.idx,), phase="calc_inverse_homo")

    def to_proj(self, comp, points):
        """
        Project points of a component's image into pixel-scaled projected space.
        
        Args:
            comp: Component the points belong to
            points: Centred image coordinates (N x 2)
        """
        refw, refh = self.ref_size
        homo = np.hstack([points, np.ones((len(points), 1))]) @ comp.homo.T
        homo[:, 0] /= refw
        homo[:, 1] /= refh
        homo[:, 0] += 0.5 * homo[:, 2]
        homo[:, 1] += 0.5 * homo[:, 2]
        return self.get_homo2proj()(homo) * self.ref_size

    def update_proj_range(self):
        ts = np.linspace(-0.5, 0.5, RANGE_SAMPLES)
        gx, gy = np.meshgrid(ts, ts)
        grid = np.column_stack([gx.ravel(), gy.ravel()])

        self.proj_range = ProjRange()
        for comp in self.components:
            h, w = self.image_of(comp).shape[:2]
            proj = self.to_proj(comp, grid * [w, h])
            proj = proj[np.all(np.isfinite(proj), axis=1)]
            comp.range = ProjRange()
            if len(proj):
                comp.range.update(proj)
                self.proj_range.union(comp.range)
            logger.debug(f"Image {comp.idx} projected range: {comp.range.min} - {comp.range.max}")

        logger.info(f"Projection range: {self.proj_range.min} - {self.proj_range.max}")
