import numpy as np
import pytest
from scipy.ndimage import gaussian_filter

from panostitch.features import FeatureSet


def _key(image):
    return np.ascontiguousarray(image, dtype=np.float32).tobytes()


class ScriptedDetector:
    """Feature source that looks up precomputed features by image content."""

    def __init__(self):
        self.table = {}
        self.calls = 0

    def register(self, image, feats):
        self.table[_key(image)] = feats

    def detect(self, image):
        self.calls += 1
        return self.table[_key(image)]


def _texture(rng, height, width):
    world = gaussian_filter(rng.random((height, width)), sigma=2.0)
    world = (world - world.min()) / (world.max() - world.min())
    return np.repeat(world[:, :, np.newaxis], 3, axis=2).astype(np.float32)


class Scene:
    """
    Images cut from one textured plane at known integer offsets.
    
    Every world point carries a unique descriptor, so matching and fitting
    recover the offsets exactly.
    """

    def __init__(self, offsets, size=(80, 60), n_points=400, seed=0, margin=4):
        self.rng = np.random.default_rng(seed)
        self.width, self.height = size
        self.offsets = [np.asarray(o, dtype=np.float64) for o in offsets]
        max_off = np.max(self.offsets, axis=0)
        self.world = _texture(self.rng, int(max_off[1]) + self.height,
                              int(max_off[0]) + self.width)

        world_w, world_h = self.world.shape[1], self.world.shape[0]
        self.points = self.rng.uniform([0, 0], [world_w, world_h], size=(n_points, 2))
        self.descriptors = self.rng.normal(size=(n_points, 16)).astype(np.float32)
        self.margin = margin
        self.detector = ScriptedDetector()
        self.images = []

        for off in self.offsets:
            ox, oy = int(off[0]), int(off[1])
            image = self.world[oy:oy + self.height, ox:ox + self.width].copy()
            self.images.append(image)
            self.detector.register(image, self.features_for(off))

    def features_for(self, off):
        local = self.points - off
        inside = ((local[:, 0] >= self.margin) & (local[:, 0] < self.width - self.margin)
                  & (local[:, 1] >= self.margin) & (local[:, 1] < self.height - self.margin))
        centred = local[inside] - [self.width / 2.0, self.height / 2.0]
        return FeatureSet(centred, self.descriptors[inside])

    def add_noise_image(self, index=None, seed=99):
        """Insert an image whose content and features share nothing with the scene."""
        rng = np.random.default_rng(seed)
        image = _texture(rng, self.height, self.width)
        coords = rng.uniform([-self.width / 2.0, -self.height / 2.0],
                             [self.width / 2.0, self.height / 2.0], size=(150, 2))
        feats = FeatureSet(coords, rng.normal(size=(150, 16)))
        self.detector.register(image, feats)
        if index is None:
            self.images.append(image)
        else:
            self.images.insert(index, image)
        return image


@pytest.fixture
def make_scene():
    return Scene
