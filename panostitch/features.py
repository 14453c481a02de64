"""
Feature detection for panorama stitching.

Harris corners with bias/gain normalised patch descriptors, built on
scipy.ndimage filters.
"""

from dataclasses import dataclass

import numpy as np
from scipy.ndimage import gaussian_filter, maximum_filter, sobel

from .imgproc import to_grayscale


@dataclass
class FeatureSet:
    """
    Keypoints and descriptors of one image.
    
    Coordinates are centred: (0, 0) is the image centre, x grows to the
    right and y grows downwards.
    """
    coords: np.ndarray
    descriptors: np.ndarray

    def __post_init__(self):
        self.coords = np.asarray(self.coords, dtype=np.float64).reshape(-1, 2)
        self.descriptors = np.asarray(self.descriptors, dtype=np.float32)
        if len(self.descriptors) != len(self.coords):
            raise ValueError("coords and descriptors must have the same length")

    def __len__(self):
        return len(self.coords)

    def with_coords(self, coords):
        """Return a copy that shares descriptors but has new coordinates."""
        return FeatureSet(coords, self.descriptors)


class FeatureDetector:
    """
    Harris corner detector with patch descriptors.
    
    Pipeline:
    1. Grayscale conversion and Gaussian smoothing
    2. Harris response from Sobel gradients
    3. Non-maximum suppression and border rejection
    4. Patch descriptor sampling on a blurred copy
    """
    
    def __init__(self, max_features=1000, sigma=1.0, harris_k=0.04,
                 nms_radius=3, response_threshold=0.01,
                 patch_radius=8, patch_step=2, descriptor_sigma=2.0):
        """
        Initialize the detector.
        
        Args:
            max_features: Maximum number of keypoints kept per image
            sigma: Integration scale of the structure tensor
            harris_k: Harris trace weight
            nms_radius: Radius for non-maximum suppression
            response_threshold: Minimum response relative to the strongest corner
            patch_radius: Half size of the descriptor window in pixels
            patch_step: Sampling step inside the descriptor window
            descriptor_sigma: Blur applied before sampling descriptors
        """
        self.max_features = max_features
        self.sigma = sigma
        self.harris_k = harris_k
        self.nms_radius = nms_radius
        self.response_threshold = response_threshold
        self.patch_radius = patch_radius
        self.patch_step = patch_step
        self.descriptor_sigma = descriptor_sigma
        
        offsets = np.arange(-patch_radius, patch_radius, patch_step)
        oy, ox = np.meshgrid(offsets, offsets, indexing='ij')
        self._offsets = np.stack([oy.ravel(), ox.ravel()], axis=1)
    
    def detect(self, image):
        """
        Detect keypoints and compute descriptors.
        
        Args:
            image: Image array (H x W) or (H x W x C)
            
        Returns:
            FeatureSet with centred coordinates
        """
        gray = to_grayscale(np.asarray(image, dtype=np.float32)).astype(np.float64)
        h, w = gray.shape
        
        ys, xs = self._find_corners(gray)
        descriptors = self._compute_descriptors(gray, ys, xs)
        
        coords = np.column_stack([xs - w / 2.0, ys - h / 2.0])
        return FeatureSet(coords, descriptors)
    
    def _harris_response(self, gray):
        """Compute the Harris corner response map."""
        smoothed = gaussian_filter(gray, sigma=1.0)
        ix = sobel(smoothed, axis=1)
        iy = sobel(smoothed, axis=0)
        
        sxx = gaussian_filter(ix * ix, sigma=self.sigma)
        syy = gaussian_filter(iy * iy, sigma=self.sigma)
        sxy = gaussian_filter(ix * iy, sigma=self.sigma)
        
        det = sxx * syy - sxy * sxy
        trace = sxx + syy
        return det - self.harris_k * trace * trace
    
    def _find_corners(self, gray):
        """Return row and column arrays of the strongest local maxima."""
        response = self._harris_response(gray)
        peak = response.max()
        if peak <= 0:
            return np.empty(0, dtype=int), np.empty(0, dtype=int)
        
        local_max = maximum_filter(response, size=2 * self.nms_radius + 1)
        mask = (response == local_max) & (response > self.response_threshold * peak)
        
        # Descriptor windows must stay inside the image
        border = self.patch_radius + 1
        mask[:border, :] = False
        mask[-border:, :] = False
        mask[:, :border] = False
        mask[:, -border:] = False
        
        ys, xs = np.nonzero(mask)
        order = np.argsort(-response[ys, xs], kind='stable')[:self.max_features]
        return ys[order], xs[order]
    
    def _compute_descriptors(self, gray, ys, xs):
        """Sample bias/gain normalised patches around each keypoint."""
        if len(ys) == 0:
            return np.empty((0, len(self._offsets)), dtype=np.float32)
        
        blurred = gaussian_filter(gray, sigma=self.descriptor_sigma)
        rows = ys[:, np.newaxis] + self._offsets[np.newaxis, :, 0]
        cols = xs[:, np.newaxis] + self._offsets[np.newaxis, :, 1]
        patches = blurred[rows, cols]
        
        patches = patches - patches.mean(axis=1, keepdims=True)
        std = patches.std(axis=1, keepdims=True)
        patches = patches / np.maximum(std, 1e-8)
        
        return patches.astype(np.float32)
