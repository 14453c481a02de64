"""
Linear blending of remapped images onto a shared canvas.

The renderer hands the blender one sample map per image: for every
destination pixel, where to read in the source image and whether that
position is defined at all. The blender averages the defined samples,
weighting each by its distance to the source image border.
"""

import numpy as np

from .imgproc import NO_COLOR


class SampleMap:
    """
    Source positions for a block of destination pixels.
    
    ``coords[i, j]`` is the (x, y) source position for destination pixel
    (i, j); it only carries meaning where ``valid[i, j]`` is True.
    """
    
    def __init__(self, coords, valid):
        self.coords = np.asarray(coords, dtype=np.float64)
        self.valid = np.asarray(valid, dtype=bool)
        if self.coords.shape[:2] != self.valid.shape:
            raise ValueError("coords and valid mask disagree in shape")
    
    @property
    def shape(self):
        return self.valid.shape
    
    @classmethod
    def from_positions(cls, xs, ys, width, height):
        """Build a map, marking non-finite or out-of-image positions undefined."""
        with np.errstate(invalid='ignore'):
            valid = (np.isfinite(xs) & np.isfinite(ys)
                     & (xs >= 0) & (xs < width) & (ys >= 0) & (ys < height))
        coords = np.stack([np.where(valid, xs, 0.0), np.where(valid, ys, 0.0)], axis=-1)
        return cls(coords, valid)


def bilinear_sample(image, x, y):
    """
    Bilinear interpolation at arbitrary positions.
    
    Args:
        image: Input image (H x W x C)
        x: X coordinates (any shape), inside [0, W)
        y: Y coordinates (same shape as x), inside [0, H)
        
    Returns:
        values: Interpolated values (shape + (C,))
        covered: False where any contributing pixel holds NO_COLOR
    """
    h, w = image.shape[:2]
    
    x0 = np.clip(np.floor(x).astype(int), 0, w - 1)
    y0 = np.clip(np.floor(y).astype(int), 0, h - 1)
    x1 = np.clip(x0 + 1, 0, w - 1)
    y1 = np.clip(y0 + 1, 0, h - 1)
    
    fx = (x - x0)[..., np.newaxis]
    fy = (y - y0)[..., np.newaxis]
    
    I00 = image[y0, x0]
    I01 = image[y1, x0]
    I10 = image[y0, x1]
    I11 = image[y1, x1]
    
    values = ((1 - fx) * (1 - fy) * I00 + (1 - fx) * fy * I01
              + fx * (1 - fy) * I10 + fx * fy * I11)
    
    covered = ((I00[..., 0] != NO_COLOR) & (I01[..., 0] != NO_COLOR)
               & (I10[..., 0] != NO_COLOR) & (I11[..., 0] != NO_COLOR))
    return values, covered


class LinearBlender:
    """
    Weighted-average blender for multiple remapped images.
    
    One instance serves one output image: add every layer, then run once.
    """
    
    def __init__(self, min_weight=1e-6):
        """
        Args:
            min_weight: Weight floor so samples on the image border still count
        """
        self.min_weight = min_weight
        self.layers = []
    
    def add_image(self, top_left, sample_map, image):
        """
        Queue one layer.
        
        Args:
            top_left: (x, y) canvas position of sample_map[0, 0]
            sample_map: SampleMap into ``image``
            image: Source image (H x W x C)
        """
        self.layers.append((tuple(int(v) for v in top_left), sample_map, image))
    
    def run(self, canvas):
        """
        Composite all queued layers into ``canvas`` in place.
        
        Pixels no layer reaches keep their current value.
        """
        ch, cw = canvas.shape[:2]
        channels = canvas.shape[2]
        acc = np.zeros((ch, cw, channels), dtype=np.float64)
        weight_sum = np.zeros((ch, cw), dtype=np.float64)
        
        for (left, top), sample_map, image in self.layers:
            h, w = sample_map.shape
            
            # Clip the layer to the canvas
            x_start, y_start = max(left, 0), max(top, 0)
            x_end, y_end = min(left + w, cw), min(top + h, ch)
            if x_start >= x_end or y_start >= y_end:
                continue
            
            sub = (slice(y_start - top, y_end - top), slice(x_start - left, x_end - left))
            valid = sample_map.valid[sub]
            if not np.any(valid):
                continue
            
            coords = sample_map.coords[sub][valid]
            values, covered = bilinear_sample(image, coords[:, 0], coords[:, 1])
            
            ih, iw = image.shape[:2]
            wx = np.maximum(0.5 - np.abs(coords[:, 0] / iw - 0.5), 0)
            wy = np.maximum(0.5 - np.abs(coords[:, 1] / ih - 0.5), 0)
            weights = (wx * wy + self.min_weight) * covered
            
            rows, cols = np.nonzero(valid)
            rows += y_start
            cols += x_start
            acc[rows, cols] += values[:, :channels] * weights[:, np.newaxis]
            weight_sum[rows, cols] += weights
        
        filled = weight_sum > 0
        canvas[filled] = (acc[filled] / weight_sum[filled][:, np.newaxis]).astype(canvas.dtype)
        self.layers = []
        return canvas
