"""demmosaic.scheduler test suite."""
import os
import shutil
import tempfile
import threading
import unittest
import unittest.mock

import numpy
from demmosaic import rasterizer
from demmosaic import scheduler
from demmosaic.raster_io import get_raster_info
from demmosaic.raster_io import numpy_array_to_raster
from numpy.random import MT19937
from numpy.random import RandomState
from numpy.random import SeedSequence
from osgeo import osr

_DEFAULT_ORIGIN = (444720, 3751320)
_DEFAULT_PIXEL_SIZE = 32
_DEFAULT_EPSG = 3116
_NODATA = -9999.0


def _array_to_raster(base_array, target_nodata, target_path, origin):
    """Passthrough to demmosaic.numpy_array_to_raster."""
    projection = osr.SpatialReference()
    projection.ImportFromEPSG(_DEFAULT_EPSG)
    numpy_array_to_raster(
        base_array, target_nodata,
        (origin[0], _DEFAULT_PIXEL_SIZE, 0,
         origin[1], 0, -_DEFAULT_PIXEL_SIZE),
        projection.ExportToWkt(), target_path)


class TestScheduler(unittest.TestCase):
    """Tests for the threaded block scheduler."""

    def setUp(self):
        """Create a temporary workspace and two overlapping DEMs."""
        self.workspace_dir = tempfile.mkdtemp()
        rs = RandomState(MT19937(SeedSequence(123456789)))
        mosaic_input_list = []
        for index, (x_shift, y_shift) in enumerate([(0, 0), (7, 5)]):
            dem_array = rs.uniform(0, 100, (15, 20)).astype(numpy.float32)
            dem_array[rs.random_sample((15, 20)) < 0.1] = _NODATA
            dem_path = os.path.join(self.workspace_dir, f'dem_{index}.tif')
            _array_to_raster(dem_array, _NODATA, dem_path, (
                _DEFAULT_ORIGIN[0] + x_shift * _DEFAULT_PIXEL_SIZE,
                _DEFAULT_ORIGIN[1] - y_shift * _DEFAULT_PIXEL_SIZE))
            raster_info = get_raster_info(dem_path)
            mosaic_input_list.append(rasterizer.MosaicInput(
                dem_path, 1, _NODATA, raster_info['geotransform'],
                raster_info['raster_size']))
        self.dem_mosaic = rasterizer.DemMosaic(
            input_list=mosaic_input_list,
            geotransform=mosaic_input_list[0].geotransform,
            projection_wkt=None,
            raster_size=(27, 20),
            target_nodata=_NODATA,
            erode_length=0,
            blending_length=200,
            draft_mode=False)

    def tearDown(self):
        """Clean up remaining files."""
        shutil.rmtree(self.workspace_dir)

    def test_rasterize_tile_matches_single_block(self):
        """scheduler: splitting into blocks does not change the result."""
        tile_offset_dict = {
            'xoff': 3, 'yoff': 2, 'win_xsize': 22, 'win_ysize': 17}
        expected_array = rasterizer.compute_block(
            self.dem_mosaic, tile_offset_dict)

        for block_size, n_workers in [(4, 3), (5, 1), (64, 4)]:
            tile_array = scheduler.rasterize_tile(
                self.dem_mosaic, tile_offset_dict, block_size, n_workers)
            numpy.testing.assert_allclose(tile_array, expected_array)

    def test_rasterize_tile_overlap_index(self):
        """scheduler: the overlap prefilter does not change the result."""
        tile_offset_dict = {
            'xoff': 0, 'yoff': 0, 'win_xsize': 27, 'win_ysize': 20}
        overlap_index = rasterizer.build_overlap_index(self.dem_mosaic)
        tile_array = scheduler.rasterize_tile(
            self.dem_mosaic, tile_offset_dict, 4, 4,
            overlap_index=overlap_index)
        numpy.testing.assert_allclose(
            tile_array,
            rasterizer.compute_block(self.dem_mosaic, tile_offset_dict))

        # the two corners neither DEM reaches
        self.assertTrue(numpy.all(tile_array[:5, 20:] == _NODATA))
        self.assertTrue(numpy.all(tile_array[15:, :7] == _NODATA))

    def test_worker_exception_propagates(self):
        """scheduler: an error in a worker is raised in the caller."""
        tile_offset_dict = {
            'xoff': 0, 'yoff': 0, 'win_xsize': 27, 'win_ysize': 20}
        with unittest.mock.patch(
                'demmosaic.scheduler.compute_block',
                side_effect=RuntimeError('unreadable block')):
            with self.assertRaises(RuntimeError) as cm:
                scheduler.rasterize_tile(
                    self.dem_mosaic, tile_offset_dict, 4, 2)
        self.assertIn('unreadable block', str(cm.exception))

    def test_worker_exception_stops_all_workers(self):
        """scheduler: no worker thread outlives a failed tile."""
        tile_offset_dict = {
            'xoff': 0, 'yoff': 0, 'win_xsize': 27, 'win_ysize': 20}

        def _compute_block(dem_mosaic, block_offset, input_index_list=None):
            if block_offset['xoff'] == 0 and block_offset['yoff'] == 0:
                raise RuntimeError('unreadable block')
            return numpy.zeros(
                (block_offset['win_ysize'], block_offset['win_xsize']))

        # 35 blocks of 4x4 against a result queue of 2 slots per worker,
        # so the healthy workers fill it while the caller bails out
        with unittest.mock.patch(
                'demmosaic.scheduler.compute_block',
                side_effect=_compute_block):
            with self.assertRaises(RuntimeError):
                scheduler.rasterize_tile(
                    self.dem_mosaic, tile_offset_dict, 4, 3)

        self.assertEqual(
            [thread.name for thread in threading.enumerate()
             if thread.name.startswith('mosaic_block_worker')], [])

    def test_empty_tile(self):
        """scheduler: a tile without pixels gives an empty array."""
        tile_array = scheduler.rasterize_tile(
            self.dem_mosaic,
            {'xoff': 0, 'yoff': 20, 'win_xsize': 27, 'win_ysize': 0}, 4, 2)
        self.assertEqual(tile_array.shape, (0, 27))
