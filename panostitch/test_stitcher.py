import numpy as np
import pytest

from panostitch import NO_COLOR, Settings, Stitcher, stitch, to_uint8
from panostitch.errors import ConnectivityError
from panostitch.homography import TransformEstimator


def flat_settings(**overrides):
    settings = Settings()
    settings.projection = "flat"
    settings.workers = 2
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


def test_identical_images_give_one_image_canvas(make_scene):
    scene = make_scene([(0, 0), (0, 0), (0, 0)])
    stitcher = Stitcher(flat_settings(), detector=scene.detector)
    canvas = stitcher.build(scene.images, pano=False)

    h, w = scene.height, scene.width
    assert abs(canvas.shape[0] - h) <= 1 and abs(canvas.shape[1] - w) <= 1
    assert stitcher.bundle.identity_idx == 1
    assert np.array_equal(stitcher.bundle.component(1).homo, np.eye(3))

    inner = canvas[1:-1, 1:-1]
    assert np.all(inner != NO_COLOR)
    assert np.allclose(inner, scene.images[1][1:inner.shape[0] + 1, 1:inner.shape[1] + 1],
                       atol=1e-3)


def test_identical_images_default_cylindrical_projection(make_scene):
    scene = make_scene([(0, 0), (0, 0), (0, 0)])
    stitcher = Stitcher(detector=scene.detector)
    canvas = stitcher.build(scene.images)

    assert stitcher.bundle.proj_method.value == "cylindrical"
    assert canvas.shape[1] == pytest.approx(scene.width, abs=1)
    cy, cx = canvas.shape[0] // 2, canvas.shape[1] // 2
    assert np.all(canvas[cy, cx] != NO_COLOR)
    assert len(stitcher.cameras) == 3


def test_ring_mode_aborts_on_unmatched_neighbour(make_scene):
    scene = make_scene([(0, 0), (30, 0)])
    scene.add_noise_image(index=1)

    with pytest.raises(ConnectivityError) as excinfo:
        stitch(scene.images, pano=False, settings=flat_settings(), detector=scene.detector)

    assert excinfo.value.indices == (0, 1)
    assert "0 and 1" in str(excinfo.value)


def test_pairwise_mode_renders_connected_subgraph_only(make_scene):
    scene = make_scene([(0, 0), (30, 0), (60, 0)])
    scene.add_noise_image()
    stitcher = Stitcher(flat_settings(connectivity="pairwise"), detector=scene.detector)
    canvas = stitcher.build(scene.images)

    bundle = stitcher.bundle
    assert bundle.indices == [0, 1, 2]
    assert bundle.identity_idx == 1
    assert np.allclose(bundle.component(0).homo[:2, 2], [-30, 0], atol=1e-6)
    assert np.allclose(bundle.component(2).homo[:2, 2], [30, 0], atol=1e-6)

    assert canvas.shape[:2] == (scene.height, scene.width + 60)
    world = scene.world[:scene.height, :scene.width + 60]
    assert np.allclose(canvas[1:-1, 1:-1], world[1:-1, 1:-1], atol=1e-3)


def test_pano_mode_runs_warp_search(make_scene):
    scene = make_scene([(0, 0), (30, 0), (60, 0)], size=(120, 40), n_points=600)
    settings = Settings()
    settings.workers = 2
    stitcher = Stitcher(settings, detector=scene.detector,
                        estimator=TransformEstimator(ransac_reproj_threshold=6.0))
    canvas = stitcher.build(scene.images, pano=True)

    bundle = stitcher.bundle
    assert bundle.proj_method.value == "flat"
    assert bundle.indices == [0, 1, 2]
    assert np.array_equal(bundle.component(1).homo, np.eye(3))
    assert stitcher.h_factor is not None
    assert canvas.shape[1] > scene.width
    cy, cx = canvas.shape[0] // 2, canvas.shape[1] // 2
    assert np.all(canvas[cy, cx] != NO_COLOR)


def test_features_are_detected_once_per_image(make_scene):
    scene = make_scene([(0, 0), (30, 0), (60, 0)])
    Stitcher(flat_settings(workers=1), detector=scene.detector).build(scene.images)
    assert scene.detector.calls == 3


def test_single_image_is_returned_normalised():
    image = np.full((10, 12, 3), 255, dtype=np.uint8)
    canvas = stitch([image])
    assert canvas.dtype == np.float32
    assert np.allclose(canvas, 1.0)
    assert np.array_equal(to_uint8(canvas), image)


def test_no_images_is_an_error():
    with pytest.raises(ValueError):
        stitch([])
