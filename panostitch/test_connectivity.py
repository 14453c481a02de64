import numpy as np
import pytest

from panostitch.connectivity import assume_pano_pairwise, pairwise_match
from panostitch.errors import ConnectivityError
from panostitch.homography import TransformEstimator, trans2d
from panostitch.matcher import FeatureMatcher


def _features(scene):
    return [scene.detector.detect(img) for img in scene.images]


def test_ring_entries_are_exact_inverses(make_scene):
    scene = make_scene([(0, 0), (25, 0), (50, 3), (20, 2)])
    graph = assume_pano_pairwise(_features(scene), FeatureMatcher(), TransformEstimator())

    n = len(scene.images)
    pts = np.array([[0.0, 0.0], [13.5, -7.25], [-30.0, 20.0]])
    for i in range(n):
        j = (i + 1) % n
        forward = graph.matches[(i, j)].homo
        backward = graph.matches[(j, i)].homo
        assert np.allclose(trans2d(backward, trans2d(forward, pts)), pts)
        assert graph.has_edge(i, j) and graph.has_edge(j, i)


def test_ring_fit_recovers_offsets(make_scene):
    scene = make_scene([(0, 0), (30, 0), (60, 0)])
    graph = assume_pano_pairwise(_features(scene), FeatureMatcher(), TransformEstimator())
    # image 1 seen from image 0 sits 30 pixels to the right
    assert np.allclose(graph.transform(0, 1)[:2, 2], [30, 0], atol=1e-6)
    assert graph.matches[(0, 1)].confidence > 1


def test_ring_failure_names_the_pair(make_scene):
    scene = make_scene([(0, 0), (30, 0), (60, 0)])
    scene.add_noise_image(index=2)

    with pytest.raises(ConnectivityError) as excinfo:
        assume_pano_pairwise(_features(scene), FeatureMatcher(), TransformEstimator())

    assert excinfo.value.indices == (1, 2)
    assert excinfo.value.phase == "assume_pano_pairwise"
    assert "1 and 2" in str(excinfo.value)


def test_pairwise_drops_unmatched_pairs(make_scene):
    scene = make_scene([(0, 0), (30, 0), (60, 0)])
    scene.add_noise_image()
    graph = pairwise_match(_features(scene), FeatureMatcher(), TransformEstimator(), workers=2)

    assert graph.adjacency[3] == set()
    assert graph.has_edge(0, 1) and graph.has_edge(1, 2)
    assert graph.connected_components()[0] == [0, 1, 2]
    assert graph.connected_components()[1] == [3]
    for (i, j) in graph.edges():
        assert np.allclose(graph.matches[(i, j)].homo @ graph.matches[(j, i)].homo, np.eye(3))
