"""
Tests for the distance map filters.
"""

import numpy as np

from imfilter import MetaImage, imfilter


def _single_voxel(value=7, dtype=np.uint8):
    image = np.zeros((5, 5), dtype=dtype)
    image[2, 2] = value
    return image


def test_danielsson_distance_voronoi_and_offsets():
    distance, voronoi, offsets = imfilter('dandist', _single_voxel())

    assert distance.dtype == np.float64
    assert distance[2, 2] == 0
    assert distance[0, 0] == np.sqrt(8)
    assert distance[2, 4] == 2
    assert (voronoi == 7).all()
    np.testing.assert_array_equal(offsets[:, 0, 0], [2, 2])
    np.testing.assert_array_equal(offsets[:, 4, 1], [-2, 1])
    np.testing.assert_array_equal(offsets[:, 2, 2], [0, 0])


def test_danielsson_voronoi_partition():
    image = np.zeros((3, 9), dtype=np.int32)
    image[1, 0] = 3
    image[1, 8] = 4
    _, voronoi, _ = imfilter('dandist', image)
    assert (voronoi[:, :3] == 3).all()
    assert (voronoi[:, 6:] == 4).all()


def test_signed_danielsson_signs(sphere_mask):
    distance, voronoi, offsets = imfilter('signdandist', sphere_mask)

    assert distance.dtype == np.float32
    assert (distance[sphere_mask == 1] < 0).all()
    assert (distance[sphere_mask == 0] > 0).all()
    assert distance[10, 10, 10] < distance[10, 10, 6]
    assert offsets.shape == (3, 20, 20, 20)
    assert (voronoi == 1).all()


def test_maurer_boundary_is_zero(square_mask):
    distance = imfilter('maudist', square_mask)

    assert distance.dtype == np.float32
    assert distance[2, 4] == 0
    assert distance[4, 4] == -2
    assert distance[0, 4] == 2
    assert distance[0, 0] == np.float32(np.sqrt(8))


def test_maurer_all_background_gives_largest_float32():
    distance = imfilter('maudist', np.zeros((6, 6, 6), dtype=np.uint8))
    assert (distance == np.finfo(np.float32).max).all()


def test_maurer_all_object_gives_negative_largest():
    distance = imfilter('maudist', np.ones((4, 4), dtype=np.int16))
    assert (distance == -np.finfo(np.float32).max).all()


def test_danielsson_all_background():
    distance, voronoi, offsets = imfilter('dandist', np.zeros((4, 4), dtype=np.uint8))
    assert (distance == np.finfo(np.float64).max).all()
    assert not voronoi.any()
    assert not offsets.any()


def test_signed_danielsson_all_object():
    distance, voronoi, _ = imfilter('signdandist', np.full((4, 4), 2, dtype=np.uint8))
    assert (distance == -np.finfo(np.float32).max).all()
    assert (voronoi == 2).all()


def test_approximate_signed_distance_signs(square_mask):
    distance = imfilter('appsigndist', square_mask)

    assert distance.dtype == np.float32
    assert (distance[square_mask == 1] < 0).all()
    assert (distance[square_mask == 0] > 0).all()
    # farther from the boundary means larger magnitude
    assert distance[4, 4] < distance[3, 4] < 0
    assert distance[0, 4] > distance[1, 4] > 0


def test_approximate_signed_distance_threshold():
    image = np.zeros((6, 6), dtype=np.float64)
    image[2:4, 2:4] = 0.4
    image[0, 0] = 0.6
    distance = imfilter('appsigndist', image)
    # only the voxel above 0.5 is inside
    assert distance[0, 0] < 0
    assert distance[2, 2] > 0


def test_approximate_signed_distance_honors_spacing(square_mask):
    plain = imfilter('appsigndist', square_mask)
    stretched = imfilter('appsigndist', MetaImage(square_mask, spacing=[3.0, 3.0]))
    assert stretched[0, 4] > plain[0, 4]
