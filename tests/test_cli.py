"""demmosaic.cli test suite."""
import glob
import os
import shutil
import tempfile
import unittest

import numpy
from demmosaic import cli
from demmosaic.raster_io import numpy_array_to_raster
from demmosaic.raster_io import raster_to_numpy_array
from osgeo import osr

_DEFAULT_ORIGIN = (444720, 3751320)
_DEFAULT_PIXEL_SIZE = 32
_NODATA = -1.0


def _array_to_raster(base_array, target_path, origin=_DEFAULT_ORIGIN):
    """Passthrough to demmosaic.numpy_array_to_raster."""
    projection = osr.SpatialReference()
    projection.ImportFromEPSG(3116)
    numpy_array_to_raster(
        base_array, _NODATA,
        (origin[0], _DEFAULT_PIXEL_SIZE, 0, origin[1], 0,
         -_DEFAULT_PIXEL_SIZE),
        projection.ExportToWkt(), target_path)


class CLITests(unittest.TestCase):
    """Test the dem_mosaic command line interface."""

    def setUp(self):
        """Create a temporary workspace that's deleted later."""
        self.workspace_dir = tempfile.mkdtemp()
        self.output_dir = os.path.join(self.workspace_dir, 'output')
        self.target_prefix = os.path.join(self.output_dir, 'run')
        self.left_path = os.path.join(self.workspace_dir, 'left.tif')
        self.right_path = os.path.join(self.workspace_dir, 'right.tif')
        _array_to_raster(
            numpy.full((4, 4), 10, dtype=numpy.float32), self.left_path)
        _array_to_raster(
            numpy.full((4, 4), 20, dtype=numpy.float32), self.right_path,
            origin=(_DEFAULT_ORIGIN[0] + 2 * _DEFAULT_PIXEL_SIZE,
                    _DEFAULT_ORIGIN[1]))

    def tearDown(self):
        """Clean up remaining files."""
        shutil.rmtree(self.workspace_dir)

    def test_mosaic(self):
        """CLI: mosaic two DEMs and write a log file."""
        exit_code = cli.main([
            self.left_path, self.right_path, '-o', self.target_prefix,
            '--threads', '2'])
        self.assertEqual(exit_code, 0)

        tile_path = f'{self.target_prefix}-tile-0.tif'
        result = raster_to_numpy_array(tile_path)
        numpy.testing.assert_allclose(result[0], [10, 10, 15, 15, 20, 20])
        self.assertEqual(
            len(glob.glob(f'{self.target_prefix}-log-dem_mosaic-*.txt')), 1)

    def test_draft_mode_with_erosion(self):
        """CLI: draft mode with erosion fails before opening any DEM."""
        with self.assertRaises(SystemExit) as cm:
            cli.main([
                'missing_a.tif', 'missing_b.tif', '-o', self.target_prefix,
                '--draft-mode', '--erode-length', '1'])
        self.assertEqual(cm.exception.code, 1)
        self.assertFalse(os.path.exists(self.output_dir))

    def test_tile_index_out_of_range(self):
        """CLI: an out of range tile index succeeds without output."""
        exit_code = cli.main([
            self.left_path, self.right_path, '-o', self.target_prefix,
            '--tile-index', '1'])
        self.assertEqual(exit_code, 0)
        self.assertEqual(glob.glob(f'{self.target_prefix}-tile-*.tif'), [])

    def test_negative_tile_index(self):
        """CLI: a negative tile index writes every tile."""
        exit_code = cli.main([
            self.left_path, self.right_path, '-o', self.target_prefix,
            '--tile-index', '-1', '--tile-size', '3'])
        self.assertEqual(exit_code, 0)
        self.assertEqual(
            sorted(glob.glob(f'{self.target_prefix}-tile-*.tif')),
            [f'{self.target_prefix}-tile-{tile_id}.tif'
             for tile_id in range(4)])

    def test_dem_list_file(self):
        """CLI: DEMs can be listed in a text file."""
        list_path = os.path.join(self.workspace_dir, 'dems.txt')
        with open(list_path, 'w') as list_file:
            list_file.write(f'{self.left_path}\n  {self.right_path}\n\n')
        self.assertEqual(
            cli.read_dem_list_file(list_path),
            [self.left_path, self.right_path])

        exit_code = cli.main(
            ['-l', list_path, '-o', self.target_prefix, '--draft-mode'])
        self.assertEqual(exit_code, 0)
        numpy.testing.assert_array_equal(
            raster_to_numpy_array(f'{self.target_prefix}-tile-0.tif')[0],
            [10, 10, 20, 20, 20, 20])

    def test_dem_list_file_and_dems(self):
        """CLI: a list file excludes DEMs on the command line."""
        list_path = os.path.join(self.workspace_dir, 'dems.txt')
        with open(list_path, 'w') as list_file:
            list_file.write(self.left_path)
        with self.assertRaises(SystemExit) as cm:
            cli.main(
                ['-l', list_path, self.right_path, '-o', self.target_prefix])
        self.assertEqual(cm.exception.code, 1)

    def test_empty_dem_list_file(self):
        """CLI: an empty list file is an error."""
        list_path = os.path.join(self.workspace_dir, 'empty.txt')
        with open(list_path, 'w') as list_file:
            list_file.write('\n')
        with self.assertRaises(SystemExit) as cm:
            cli.main(['-l', list_path, '-o', self.target_prefix])
        self.assertEqual(cm.exception.code, 1)

    def test_missing_output_prefix(self):
        """CLI: the output prefix is required."""
        with self.assertRaises(SystemExit) as cm:
            cli.main([self.left_path])
        self.assertEqual(cm.exception.code, 1)

    def test_missing_georeference(self):
        """CLI: a DEM without georeference exits with an error."""
        plain_path = os.path.join(self.workspace_dir, 'plain.tif')
        numpy_array_to_raster(
            numpy.ones((3, 3), dtype=numpy.float32), _NODATA, None, None,
            plain_path)
        with self.assertRaises(SystemExit) as cm:
            cli.main([plain_path, '-o', self.target_prefix])
        self.assertEqual(cm.exception.code, 1)
        self.assertEqual(glob.glob(f'{self.target_prefix}-tile-*.tif'), [])
