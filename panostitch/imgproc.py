"""
Image buffer helpers shared by the pipeline stages.

Images travel through the pipeline as float32 arrays of shape (H, W, C)
with values in [0, 1]. Canvas pixels that no image reached hold NO_COLOR.
"""

import numpy as np

NO_COLOR = -1.0


def to_float_image(image):
    """
    Normalize an input image for stitching.
    
    Args:
        image: numpy array (H x W) or (H x W x C), uint8 or float
        
    Returns:
        float32 array (H x W x C) with values in [0, 1]
    """
    image = np.asarray(image)
    
    if image.ndim not in (2, 3):
        raise ValueError(f"Expected a 2-D or 3-D image array, got shape {image.shape}")
    
    if image.dtype == np.uint8:
        image = image.astype(np.float32) / 255.0
    else:
        image = image.astype(np.float32)
    
    if image.ndim == 2:
        image = image[:, :, np.newaxis]
    
    return image


def to_uint8(canvas, background=0):
    """
    Convert a rendered canvas to uint8, painting unreached pixels.
    
    Args:
        canvas: float canvas as returned by the stitcher
        background: value used where the canvas holds NO_COLOR
        
    Returns:
        uint8 image with the same shape
    """
    empty = np.all(canvas == NO_COLOR, axis=2)
    out = np.clip(canvas * 255.0, 0, 255).astype(np.uint8)
    out[empty] = background
    return out


def to_grayscale(image):
    """Convert image to grayscale if needed."""
    if image.ndim == 3:
        if image.shape[2] >= 3:
            # RGB to grayscale using standard weights
            return np.dot(image[..., :3], [0.299, 0.587, 0.114])
        return image[..., 0]
    return image
