import numpy as np

from panostitch.camera import estimate_cameras, estimate_focal, focal_from_homography
from panostitch.connectivity import PairwiseGraph
from panostitch.homography import MatchInfo


def rotation_homography(focal, angle):
    K = np.diag([focal, focal, 1.0])
    c, s = np.cos(angle), np.sin(angle)
    R = np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])
    return K @ R @ np.linalg.inv(K)


def test_focal_from_rotation_homography():
    assert np.isclose(focal_from_homography(rotation_homography(500.0, 0.2)), 500.0)


def test_translation_gives_no_focal():
    H = np.eye(3)
    H[0, 2] = 20
    assert focal_from_homography(H) is None


def test_estimate_focal_takes_median():
    graph = PairwiseGraph(4)
    graph.add(0, 1, MatchInfo(rotation_homography(400.0, 0.1), confidence=2.0))
    graph.add(1, 2, MatchInfo(rotation_homography(500.0, 0.1), confidence=2.0))
    graph.add(2, 3, MatchInfo(rotation_homography(900.0, 0.1), confidence=2.0))
    assert np.isclose(estimate_focal(graph), 500.0)


def test_inconclusive_focal_falls_back_per_image():
    graph = PairwiseGraph(2)
    H = np.eye(3)
    H[0, 2] = 15
    graph.add(0, 1, MatchInfo(H, confidence=2.0))
    images = [np.zeros((50, 100, 3)), np.zeros((80, 40, 3))]

    assert estimate_focal(graph) == -1
    cameras = estimate_cameras(graph, images)
    assert [c.focal for c in cameras] == [1.0, 0.25]
