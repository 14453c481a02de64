"""
Panorama stitching pipeline: features, pairwise transforms, bundle,
rendering and, for cylindrical panoramas, perspective correction.
"""

import logging

from .bundle import Bundle, ProjectionMethod
from .bundle_builder import build_linear_chain, build_spanning_tree, straighten
from .camera import estimate_cameras
from .config import Settings
from .connectivity import assume_pano_pairwise, pairwise_match
from .errors import StitchError
from .features import FeatureDetector
from .homography import TransformEstimator
from .imgproc import to_float_image
from .matcher import FeatureMatcher
from .render import blend, perspective_correction
from .utils import parallel_map, timed
from .warp_search import build_bundle_warp

logger = logging.getLogger(__name__)


class Stitcher:
    """
    Complete panorama stitching pipeline.
    
    This class coordinates all components:
    1. Feature detection, once per image
    2. Pairwise transform acquisition (ring or full pairwise)
    3. Bundle construction (linear chain, spanning tree or warp search)
    4. Canvas rendering and blending
    5. Perspective correction in panoramic mode
    
    Intermediate results stay on the instance after ``build``.
    """
    
    def __init__(self, settings=None, detector=None, matcher=None, estimator=None):
        """
        Initialize the stitcher.
        
        Args:
            settings: Settings instance; defaults are used when omitted
            detector: Feature source with detect(image) -> FeatureSet
            matcher: Pair matcher with match(feats1, feats2) -> MatchData
            estimator: Transform estimator with fit(match, feats1, feats2)
        """
        self.settings = settings or Settings()
        self.settings.validate()
        self.logger = logging.getLogger(__name__)
        
        self.detector = detector or FeatureDetector(**self.settings.detector)
        self.matcher = matcher or FeatureMatcher(**self.settings.matcher)
        self.estimator = estimator or TransformEstimator(**self.settings.ransac)
        
        self.images = []
        self.features = []
        self.graph = None
        self.cameras = []
        self.bundle = None
        self.h_factor = None
    
    def build(self, images, pano=None):
        """
        Stitch a sequence of images.
        
        Args:
            images: Sequence of image arrays, in capture order
            pano: Panoramic (warp search) mode; defaults to settings.pano
            
        Returns:
            float32 canvas (H x W x C); pixels no image reached hold NO_COLOR
        """
        if pano is None:
            pano = self.settings.pano
        
        self.images = [to_float_image(img) for img in images]
        if len(self.images) == 0:
            raise ValueError("No images provided")
        if len(self.images) == 1:
            return self.images[0].copy()
        
        self.logger.info(f"Stitching {len(self.images)} images, pano={pano}")
        self.calc_feature()
        
        if pano:
            self.build_bundle_warp()
        else:
            self.build_bundle_graph()
        self.logger.info(f"Using projection method: {self.bundle.proj_method.value}")
        
        self.bundle.update_proj_range()
        canvas = blend(self.bundle, self.settings.max_canvas_pixels)
        if pano:
            canvas = perspective_correction(canvas, self.bundle)
        return canvas
    
    def calc_feature(self):
        with timed("calc_feature()"):
            self.features = parallel_map(self.detector.detect, self.images, self.settings.workers)
        for k, feats in enumerate(self.features):
            self.logger.debug(f"Image {k} has {len(feats)} features")
    
    def build_bundle_graph(self):
        if self.settings.connectivity == "ring":
            self.graph = assume_pano_pairwise(self.features, self.matcher, self.estimator)
        else:
            self.graph = pairwise_match(self.features, self.matcher, self.estimator,
                                        self.settings.workers)
        self.estimate_camera()
        
        self.bundle = Bundle(self.images, self._projection(ProjectionMethod.CYLINDRICAL))
        if self.settings.connectivity == "ring":
            build_linear_chain(self.bundle, self.graph)
        else:
            build_spanning_tree(self.bundle, self.graph)
        if self.settings.straighten:
            straighten(self.bundle)
    
    def estimate_camera(self):
        # TODO use the focal length to estimate camera rotations
        self.cameras = estimate_cameras(self.graph, self.images)
    
    def build_bundle_warp(self):
        self.bundle, search = build_bundle_warp(
            self.images, self.features, self.matcher, self.estimator,
            rounds=self.settings.h_factor_rounds,
            slope_plain=self.settings.slope_plain,
            workers=self.settings.workers,
            proj_method=self._projection(ProjectionMethod.FLAT))
        self.h_factor = search.factor
    
    def _projection(self, default):
        if self.settings.projection is None:
            return default
        return ProjectionMethod(self.settings.projection)


def stitch(images, pano=False, settings=None, **collaborators):
    """
    Stitch images into one canvas.
    
    Args:
        images: Sequence of image arrays, in capture order
        pano: Use the cylindrical warp-factor search
        settings: Settings instance
        **collaborators: detector, matcher or estimator overrides
        
    Returns:
        float32 canvas (H x W x C); pixels no image reached hold NO_COLOR
        
    Raises:
        StitchError: when the images cannot be put in one frame
    """
    stitcher = Stitcher(settings, **collaborators)
    try:
        return stitcher.build(images, pano)
    except StitchError as e:
        where = f" (images {e.indices})" if e.indices else ""
        logger.error(f"Stitching failed{where}: {e}")
        raise
