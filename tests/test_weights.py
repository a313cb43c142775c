"""demmosaic.weights test suite."""
import unittest

import numpy
from demmosaic import weights
from demmosaic.mosaic_core import DRAFT_MODE_WEIGHT


class TestWeights(unittest.TestCase):
    """Tests for the blend weight engine."""

    def test_valid_mask(self):
        """weights: nodata and NaN are both invalid."""
        dem_array = numpy.array([[1.0, -9999.0], [numpy.nan, 3.0]])
        numpy.testing.assert_array_equal(
            weights.valid_mask(dem_array, -9999),
            [[True, False], [False, True]])

        # NaN as the declared nodata value
        numpy.testing.assert_array_equal(
            weights.valid_mask(dem_array, numpy.nan),
            [[True, True], [False, True]])

        numpy.testing.assert_array_equal(
            weights.valid_mask(dem_array, None),
            [[True, True], [False, True]])

    def test_grassfire_weights_full_window(self):
        """weights: window edges count as invalid data."""
        mask = numpy.ones((5, 5), dtype=bool)
        weight_array = weights.grassfire_weights(mask)
        expected_array = numpy.array([
            [1, 1, 1, 1, 1],
            [1, 2, 2, 2, 1],
            [1, 2, 3, 2, 1],
            [1, 2, 2, 2, 1],
            [1, 1, 1, 1, 1]], dtype=numpy.float64)
        numpy.testing.assert_allclose(weight_array, expected_array)

    def test_grassfire_weights_hole(self):
        """weights: invalid pixels get 0, neighbours of a hole get 1."""
        mask = numpy.ones((7, 7), dtype=bool)
        mask[3, 3] = False
        weight_array = weights.grassfire_weights(mask)
        self.assertEqual(weight_array[3, 3], 0)
        for row, col in [(2, 3), (4, 3), (3, 2), (3, 4)]:
            self.assertEqual(weight_array[row, col], 1)
        numpy.testing.assert_allclose(weight_array[2, 2], numpy.sqrt(2))

    def test_weight_monotonicity(self):
        """weights: weight never drops moving away from invalid data."""
        mask = numpy.ones((1, 41), dtype=bool)
        mask[0, 0] = False
        weight_array = weights.grassfire_weights(
            numpy.repeat(mask, 81, axis=0))
        middle_row = weight_array[40, :]
        # walk from the invalid column towards the middle of the window
        self.assertTrue(numpy.all(numpy.diff(middle_row[:20]) >= 0))

    def test_erode_weights(self):
        """weights: erosion subtracts the length and clamps."""
        weight_array = numpy.array([[0, 1, 2, 3, 4, 5]], dtype=float)
        eroded_array = weights.erode_weights(weight_array, 2)
        numpy.testing.assert_allclose(
            eroded_array, [[0, 0, 0, 1, 2, 3]])

    def test_erode_weights_fallback(self):
        """weights: erosion longer than every weight zeroes everything."""
        weight_array = numpy.array([[0, 1, 2, 1, 0]], dtype=float)
        eroded_array = weights.erode_weights(weight_array, 5)
        numpy.testing.assert_allclose(eroded_array, numpy.zeros((1, 5)))

        # erode length equal to the maximum
        eroded_array = weights.erode_weights(weight_array, 2)
        numpy.testing.assert_allclose(eroded_array, numpy.zeros((1, 5)))

    def test_erosion_containment(self):
        """weights: eroded weights are 0 within erode_length of a hole."""
        dem_array = numpy.full((31, 31), 10.0)
        dem_array[15, 15] = -1
        erode_length = 4
        weight_array = weights.compute_weights(
            dem_array, -1, erode_length, False)
        row_array, col_array = numpy.mgrid[0:31, 0:31]
        distance_to_hole = numpy.hypot(row_array - 15, col_array - 15)
        near_hole = distance_to_hole <= erode_length
        self.assertTrue(numpy.all(weight_array[near_hole] == 0))
        self.assertTrue(numpy.all(weight_array >= 0))
        # the window border is also treated as invalid
        self.assertTrue(numpy.all(weight_array[0, :] == 0))

    def test_draft_weights(self):
        """weights: draft weights are binary."""
        dem_array = numpy.array([[1.0, -1.0, 2.0]])
        weight_array = weights.compute_weights(dem_array, -1, 0, True)
        numpy.testing.assert_allclose(
            weight_array, [[DRAFT_MODE_WEIGHT, 0, DRAFT_MODE_WEIGHT]])

    def test_compute_weights_blend(self):
        """weights: compute_weights matches grassfire without erosion."""
        dem_array = numpy.arange(36, dtype=float).reshape((6, 6))
        dem_array[2, 2] = numpy.nan
        weight_array = weights.compute_weights(dem_array, None, 0, False)
        numpy.testing.assert_allclose(
            weight_array, weights.grassfire_weights(
                weights.valid_mask(dem_array, None)))
