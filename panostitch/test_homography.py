import numpy as np
import pytest

from panostitch.errors import DegenerateGeometryError
from panostitch.features import FeatureSet
from panostitch.homography import (TransformEstimator, get_perspective_transform,
                                   identity, inverse, trans, trans2d, trans_normalize)
from panostitch.matcher import FeatureMatcher, MatchData


def translation(tx, ty):
    H = identity()
    H[0, 2], H[1, 2] = tx, ty
    return H


def test_trans2d_single_point_and_batch():
    H = translation(3, -2)
    assert np.allclose(trans2d(H, [1.0, 1.0]), [4.0, -1.0])
    assert np.allclose(trans2d(H, [[0, 0], [1, 2]]), [[3, -2], [4, 0]])


def test_trans_keeps_homogeneous_coordinate():
    H = np.diag([1.0, 1.0, 2.0])
    assert np.allclose(trans(H, [2.0, 4.0]), [2.0, 4.0, 2.0])
    assert np.allclose(trans_normalize(H, [2.0, 4.0, 1.0]), [1.0, 2.0])


def test_inverse_of_singular_matrix_is_degenerate():
    with pytest.raises(DegenerateGeometryError):
        inverse(np.zeros((3, 3)), indices=(1, 2))


def test_perspective_transform_maps_corners():
    src = np.array([[0, 0], [0, 10], [12, 1], [11, 9]], dtype=float)
    dst = np.array([[0, 0], [0, 10], [10, 0], [10, 10]], dtype=float)
    M = get_perspective_transform(src, dst)
    assert np.allclose(trans2d(M, src), dst)


def test_perspective_transform_collinear_corners_fail():
    src = np.array([[0, 0], [1, 1], [2, 2], [3, 3]], dtype=float)
    dst = np.array([[0, 0], [0, 1], [1, 0], [1, 1]], dtype=float)
    with pytest.raises(DegenerateGeometryError):
        get_perspective_transform(src, dst)


def test_fit_recovers_homography():
    rng = np.random.default_rng(1)
    coords_b = rng.uniform(-50, 50, size=(60, 2))
    H_true = np.array([[1.02, 0.01, 7.0], [-0.02, 0.98, -3.0], [1e-4, 2e-4, 1.0]])
    coords_a = trans2d(H_true, coords_b)
    desc = rng.normal(size=(60, 16))
    feats_a, feats_b = FeatureSet(coords_a, desc), FeatureSet(coords_b, desc)

    match = FeatureMatcher().match(feats_a, feats_b)
    succ, info = TransformEstimator().fit(match, feats_a, feats_b)

    assert succ
    assert info.n_inliers == 60
    assert info.confidence > 1
    assert np.allclose(info.homo, H_true, atol=1e-6)


def test_fit_with_too_few_matches_fails_without_raising():
    feats = FeatureSet(np.zeros((3, 2)), np.eye(3))
    succ, info = TransformEstimator().fit(MatchData([[0, 0], [1, 1], [2, 2]]), feats, feats)
    assert not succ
    assert info is None


def test_reversed_match_info_is_exact_inverse():
    rng = np.random.default_rng(2)
    coords = rng.uniform(-40, 40, size=(30, 2))
    desc = rng.normal(size=(30, 8))
    feats_a = FeatureSet(coords + [5, 1], desc)
    feats_b = FeatureSet(coords, desc)
    succ, info = TransformEstimator().fit(FeatureMatcher().match(feats_a, feats_b), feats_a, feats_b)
    assert succ

    back = info.reversed()
    assert np.allclose(back.homo @ info.homo, np.eye(3))
    assert np.array_equal(back.match.pairs, info.match.pairs[:, ::-1])
    assert back.confidence == info.confidence
