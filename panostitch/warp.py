"""
Cylindrical warping of images and their keypoints.
"""

import numpy as np

from .blending import bilinear_sample
from .imgproc import NO_COLOR


class CylinderWarper:
    """
    Unwrap an image onto a cylinder whose axis is vertical.
    
    The cylinder radius equals the image width. ``h_factor`` moves the
    vertical centre of projection: 1 puts it at the image centre, larger
    values push it down.
    """
    
    def __init__(self, h_factor=1.0):
        self.h_factor = h_factor
    
    def _center(self, width, height):
        return width / 2.0, height / 2.0 * self.h_factor
    
    def warp_points(self, coords, width, height):
        """
        Move centred keypoint coordinates into warped image space.
        
        Args:
            coords: Centred points (N x 2)
            width, height: Size of the image the points belong to
        """
        coords = np.asarray(coords, dtype=np.float64).reshape(-1, 2)
        r = float(width)
        cx, cy = self._center(width, height)
        
        x = coords[:, 0] + width / 2.0 - cx
        y = coords[:, 1] + height / 2.0 - cy
        
        wx = r * np.arctan(x / r) + cx
        wy = r * y / np.hypot(x, r) + cy
        return np.column_stack([wx - width / 2.0, wy - height / 2.0])
    
    def warp_features(self, feats, width, height):
        return feats.with_coords(self.warp_points(feats.coords, width, height))
    
    def warp_image(self, image):
        """
        Resample an image onto the cylinder.
        
        Output has the input's size; pixels with no source are NO_COLOR.
        """
        h, w = image.shape[:2]
        r = float(w)
        cx, cy = self._center(w, h)
        
        ys, xs = np.mgrid[0:h, 0:w].astype(np.float64)
        theta = (xs - cx) / r
        src_x = r * np.tan(theta) + cx
        src_y = (ys - cy) / np.cos(theta) + cy
        
        inside = (src_x >= 0) & (src_x < w) & (src_y >= 0) & (src_y < h)
        out = np.full(image.shape, NO_COLOR, dtype=image.dtype)
        values, covered = bilinear_sample(image, src_x[inside], src_y[inside])
        
        rows, cols = np.nonzero(inside)
        keep = covered
        out[rows[keep], cols[keep]] = values[keep].astype(image.dtype)
        return out
    
    def warp(self, image, feats):
        """
        Warp an image together with its features.
        
        Returns:
            (warped image, warped FeatureSet); inputs are left untouched
        """
        h, w = image.shape[:2]
        return self.warp_image(image), self.warp_features(feats, w, h)
