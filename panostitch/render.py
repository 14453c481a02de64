"""
Canvas rendering for a finished bundle.

Every canvas pixel is mapped back through the bundle into each
contributing source image; the blender then averages whatever samples
are defined.
"""

import logging

import numpy as np

from .blending import LinearBlender, SampleMap
from .errors import DegenerateGeometryError
from .homography import get_perspective_transform, inverse, trans2d, trans_normalize
from .imgproc import NO_COLOR
from .utils import timed

logger = logging.getLogger(__name__)


def pixel_scale(bundle):
    """
    Projected-space units per output pixel, measured on the identity image.
    
    Returns:
        array (x_per_pixel, y_per_pixel)
    """
    homo2proj = bundle.get_homo2proj()
    ref = bundle.ref_size
    corners = homo2proj(np.array([[1.0, 1.0, 1.0], [0.0, 0.0, 1.0]]))
    id_img_range = (corners[0] - corners[1]) * ref
    return id_img_range / ref


def canvas_size(proj_range, per_pixel, max_pixels=None):
    """
    Output size in pixels for a projection range.
    
    Returns:
        (width, height)
    """
    size = proj_range.size / per_pixel
    if not np.all(np.isfinite(size)):
        raise DegenerateGeometryError("Projection range is not finite", phase="canvas_size")

    width, height = (int(round(v)) for v in size)
    if width <= 0 or height <= 0:
        raise DegenerateGeometryError(f"Empty canvas {width}x{height}", phase="canvas_size")
    if max_pixels is not None and width * height > max_pixels:
        raise DegenerateGeometryError(
            f"Canvas {width}x{height} exceeds {max_pixels} pixels", phase="canvas_size")
    return width, height


def component_rect(comp_range, proj_min, per_pixel):
    """
    Placement of one component on the canvas.
    
    Returns:
        top_left (x, y) and size (w, h), in canvas pixels
    """
    top_left = np.round((comp_range.min - proj_min) / per_pixel).astype(int)
    bottom_right = np.round((comp_range.max - proj_min) / per_pixel).astype(int)
    size = np.maximum(bottom_right - top_left, 0)
    return (int(top_left[0]), int(top_left[1])), (int(size[0]), int(size[1]))


def sample_map(bundle, comp, top_left, size, per_pixel):
    """
    Source positions in ``comp``'s image for a block of canvas pixels.
    
    Args:
        bundle: Bundle with inverse homographies computed
        comp: Component being rendered
        top_left: Canvas (x, y) of the block's first pixel
        size: Block (w, h)
        per_pixel: Result of pixel_scale
        
    Returns:
        SampleMap; positions outside the source image are undefined
    """
    w, h = size
    refw, refh = bundle.ref_size
    proj_min = bundle.proj_range.min

    ys, xs = np.mgrid[0:h, 0:w].astype(np.float64)
    proj = np.stack([
        ((xs + top_left[0]) * per_pixel[0] + proj_min[0]) / refw,
        ((ys + top_left[1]) * per_pixel[1] + proj_min[1]) / refh,
    ], axis=-1)

    homo = bundle.get_proj2homo()(proj)
    # shift the centre back for the homography
    homo[..., 0] = (homo[..., 0] - 0.5 * homo[..., 2]) * refw
    homo[..., 1] = (homo[..., 1] - 0.5 * homo[..., 2]) * refh

    image = bundle.image_of(comp)
    ih, iw = image.shape[:2]
    pos = trans_normalize(comp.homo_inv, homo) + [iw / 2.0, ih / 2.0]
    return SampleMap.from_positions(pos[..., 0], pos[..., 1], iw, ih)


def blend(bundle, max_canvas_pixels=None):
    """
    Render every component of the bundle onto one canvas.
    
    Returns:
        float32 canvas (H x W x C); unreached pixels hold NO_COLOR
    """
    with timed("blend()"):
        per_pixel = pixel_scale(bundle)
        proj_min = bundle.proj_range.min
        width, height = canvas_size(bundle.proj_range, per_pixel, max_canvas_pixels)
        logger.info(f"Final image size: {width}x{height}")

        channels = bundle.images[bundle.identity_idx].shape[2]
        canvas = np.full((height, width, channels), NO_COLOR, dtype=np.float32)

        blender = LinearBlender()
        for comp in bundle.components:
            if not np.all(np.isfinite(comp.range.min)):
                logger.warning(f"Image {comp.idx} has no finite projection, skipping it")
                continue
            top_left, size = component_rect(comp.range, proj_min, per_pixel)
            if size[0] == 0 or size[1] == 0:
                logger.warning(f"Image {comp.idx} covers no canvas pixels")
                continue
            blender.add_image(top_left, sample_map(bundle, comp, top_left, size, per_pixel),
                              bundle.image_of(comp))
        blender.run(canvas)

    return canvas


def frame_corners(bundle):
    """
    Outer frame corners of the first and last component, in canvas pixels.
    
    Order: first top-left, first bottom-left, last top-right, last bottom-right.
    """
    per_pixel = pixel_scale(bundle)
    corners = []
    for comp, offsets in ((bundle.components[0], [(-0.5, -0.5), (-0.5, 0.5)]),
                          (bundle.components[-1], [(0.5, -0.5), (0.5, 0.5)])):
        h, w = bundle.image_of(comp).shape[:2]
        proj = bundle.to_proj(comp, np.array(offsets) * [w, h])
        corners.append((proj - bundle.proj_range.min) / per_pixel)
    return np.vstack(corners)


def perspective_correction(canvas, bundle):
    """
    Undo the trapezoid left by cylindrical unwrapping.
    
    The outer frame corners are pulled onto the canvas rectangle by a
    perspective remap of the already rendered canvas.
    """
    with timed("perspective_correction()"):
        h, w = canvas.shape[:2]
        corners = frame_corners(bundle)
        corners_std = np.array([[0, 0], [0, h], [w, 0], [w, h]], dtype=np.float64)

        m = get_perspective_transform(corners, corners_std)
        inv = inverse(m, phase="perspective_correction")

        ys, xs = np.mgrid[0:h, 0:w].astype(np.float64)
        pos = trans2d(inv, np.stack([xs, ys], axis=-1))

        blender = LinearBlender()
        blender.add_image((0, 0), SampleMap.from_positions(pos[..., 0], pos[..., 1], w, h), canvas)
        ret = np.full(canvas.shape, NO_COLOR, dtype=np.float32)
        blender.run(ret)

    return ret
