# coding=UTF-8
"""Mosaic and blend DEMs and write the result as tiles."""
import logging
import os
import shutil
import tempfile

from .mosaic_core import DEFAULT_BLENDING_LENGTH
from .mosaic_core import DEFAULT_GTIFF_CREATION_TUPLE_OPTIONS
from .mosaic_core import DEFAULT_TILE_SIZE
from .mosaic_core import FLOAT64_NODATA
from .mosaic_core import gdal_use_exceptions
from .mosaic_core import MosaicConfigurationError
from .raster_io import build_reprojected_view
from .raster_io import get_raster_info
from .raster_io import numpy_array_to_raster
from .rasterizer import build_overlap_index
from .rasterizer import DemMosaic
from .rasterizer import MosaicInput
from .rasterizer import read_margin
from .scheduler import rasterize_tile
from .slurm_utils import log_warning_if_mosaic_will_exhaust_slurm_memory
from .tiling import calculate_block_size
from .tiling import plan_mosaic_grid
from .tiling import tile_geotransform
from .tiling import tile_id_list
from .tiling import tile_offset
from .tiling import tile_path
from .tiling import tile_size_from_georef_size
from .transforms import canonicalize_projection
from .transforms import Georeference
from .transforms import projections_equal
from .transforms import read_georeference

LOGGER = logging.getLogger(__name__)


def validate_mosaic_options(
        dem_path_list, target_prefix, tile_size=DEFAULT_TILE_SIZE,
        georef_tile_size=None, tile_index=None, erode_length=0,
        blending_length=DEFAULT_BLENDING_LENGTH, target_pixel_size=None,
        n_workers=None, draft_mode=False):
    """Check mosaic options for consistency without touching any raster.

    See ``mosaic_dems`` for the arguments.

    Return:
        None

    Raises:
        MosaicConfigurationError
            describing the first problem found.
    """
    if not target_prefix:
        raise MosaicConfigurationError('No output prefix was specified.')
    if not dem_path_list:
        raise MosaicConfigurationError('No input DEMs were specified.')
    if n_workers is not None and n_workers <= 0:
        raise MosaicConfigurationError(
            f'The number of threads must be positive, got {n_workers}.')
    if erode_length < 0:
        raise MosaicConfigurationError(
            f'The erode length must not be negative, got {erode_length}.')
    if blending_length < 0:
        raise MosaicConfigurationError(
            f'The blending length must not be negative, got '
            f'{blending_length}.')
    if tile_size <= 0:
        raise MosaicConfigurationError(
            f'The size of a tile in pixels must be positive, got '
            f'{tile_size}.')
    if draft_mode and erode_length > 0:
        raise MosaicConfigurationError('Cannot erode pixels in draft mode.')
    if georef_tile_size is not None and georef_tile_size < 0:
        raise MosaicConfigurationError(
            f'The size of a tile in georeferenced units must not be '
            f'negative, got {georef_tile_size}.')
    if target_pixel_size is not None and target_pixel_size <= 0:
        raise MosaicConfigurationError(
            f'The output resolution must be positive, got '
            f'{target_pixel_size}.')


def _choose_target_nodata(first_dem_path, target_nodata):
    if target_nodata is not None:
        return float(target_nodata)
    first_nodata = get_raster_info(first_dem_path)['nodata'][0]
    if first_nodata is not None:
        return float(first_nodata)
    return FLOAT64_NODATA


def _mosaic_georeference(
        first_georeference, target_pixel_size, target_projection):
    """Output georeference before the origin is moved onto the mosaic.

    Return:
        ``(Georeference, pixel_spacing)``
    """
    projection_wkt = first_georeference.projection_wkt
    if target_projection:
        try:
            target_projection_wkt = canonicalize_projection(target_projection)
        except ValueError as error:
            raise MosaicConfigurationError(str(error))
        if (not projections_equal(target_projection_wkt, projection_wkt) and
                target_pixel_size is None):
            raise MosaicConfigurationError(
                'Changing the projection was requested. The output DEM '
                'resolution must be specified as well.')
        projection_wkt = target_projection_wkt

    if target_pixel_size is not None:
        geotransform = (
            0.0, float(target_pixel_size), 0.0,
            0.0, 0.0, -float(target_pixel_size))
        pixel_spacing = float(target_pixel_size)
    else:
        geotransform = first_georeference.geotransform
        pixel_spacing = geotransform[1]
    return Georeference(geotransform, projection_wkt), pixel_spacing


def _load_mosaic_inputs(
        dem_path_list, target_georeference, target_nodata, working_dir):
    """Describe every DEM as a ``MosaicInput`` in the target projection.

    DEMs in another projection are replaced by a VRT warped onto the target
    grid.

    Return:
        ``(mosaic_input_list, mosaic_bounding_box)`` where the bounding box
        is the union of all inputs in the target projection.
    """
    mosaic_input_list = []
    mosaic_bounding_box = None
    for dem_index, dem_path in enumerate(dem_path_list):
        LOGGER.info(
            'reading DEM %d of %d: %s', dem_index + 1, len(dem_path_list),
            dem_path)
        georeference = read_georeference(dem_path)
        raster_info = get_raster_info(dem_path)
        dem_nodata = raster_info['nodata'][0]
        if dem_nodata is None:
            dem_nodata = target_nodata

        if projections_equal(
                georeference.projection_wkt,
                target_georeference.projection_wkt):
            raster_path = dem_path
        else:
            raster_path = build_reprojected_view(
                dem_path, georeference, target_georeference, dem_nodata,
                os.path.join(working_dir, f'reprojected_{dem_index}.vrt'))
            raster_info = get_raster_info(raster_path)

        mosaic_input_list.append(MosaicInput(
            raster_path, 1, dem_nodata, tuple(raster_info['geotransform']),
            tuple(raster_info['raster_size'])))

        bounding_box = raster_info['bounding_box']
        if mosaic_bounding_box is None:
            mosaic_bounding_box = list(bounding_box)
        else:
            mosaic_bounding_box = [
                min(mosaic_bounding_box[0], bounding_box[0]),
                min(mosaic_bounding_box[1], bounding_box[1]),
                max(mosaic_bounding_box[2], bounding_box[2]),
                max(mosaic_bounding_box[3], bounding_box[3])]
    return mosaic_input_list, mosaic_bounding_box


@gdal_use_exceptions
def mosaic_dems(
        dem_path_list, target_prefix, tile_size=DEFAULT_TILE_SIZE,
        georef_tile_size=None, tile_index=None, erode_length=0,
        blending_length=DEFAULT_BLENDING_LENGTH, target_pixel_size=None,
        target_projection=None, target_nodata=None, draft_mode=False,
        n_workers=None, working_dir=None,
        raster_driver_creation_tuple=DEFAULT_GTIFF_CREATION_TUPLE_OPTIONS):
    """Mosaic and blend DEMs into one or more output tiles.

    Overlapping DEMs are blended with weights that grow with the distance
    from each DEM's edges and holes, so seams fade smoothly. The mosaic is
    computed block by block on a thread pool and never held in memory as a
    whole; only one output tile at a time is. Tiles are written as float64,
    the type the mosaic is computed in.

    Args:
        dem_path_list (sequence): paths to the input DEMs. Where DEMs
            overlap in draft mode, later DEMs win.
        target_prefix (str): output tiles are written to
            ``<target_prefix>-tile-<index>.tif``.
        tile_size (int): maximum width and height of an output tile in
            pixels.
        georef_tile_size (float): if given and > 0, the tile size in
            georeferenced units; overrides ``tile_size``.
        tile_index (int): if not None and >= 0, only this tile (numbered
            row by row from 0) is written. None or a negative index writes
            every tile; an index past the last tile writes nothing.
        erode_length (int): erode input DEMs by this many pixels at their
            boundary and hole edges before mosaicking.
        blending_length (int): pixels of context, in input DEM pixels, read
            around every block. Larger values blend more smoothly.
        target_pixel_size (float): output resolution in georeferenced units.
            Defaults to the resolution of the first DEM.
        target_projection (str): output projection in any form OSR accepts.
            Defaults to the projection of the first DEM. Requires
            ``target_pixel_size`` if it differs from the first DEM's.
        target_nodata (float): output nodata value. Defaults to the first
            DEM's nodata value, or ``FLOAT64_NODATA`` if it has none.
        draft_mode (bool): if True, DEMs are put together without blending.
            Incompatible with ``erode_length > 0``.
        n_workers (int): number of worker threads, defaults to the CPU
            count.
        working_dir (str): where temporary files are created. Defaults to
            the system temp directory.
        raster_driver_creation_tuple (tuple): a tuple containing a GDAL driver
            name string as the first element and a GDAL creation options
            tuple/list as the second.

    Return:
        list of the tile paths written.

    Raises:
        MosaicConfigurationError
            if the options are invalid. This happens before any output is
            written.
        MissingGeoreferenceError
            if an input DEM has no georeference.
    """
    validate_mosaic_options(
        dem_path_list, target_prefix, tile_size=tile_size,
        georef_tile_size=georef_tile_size, tile_index=tile_index,
        erode_length=erode_length, blending_length=blending_length,
        target_pixel_size=target_pixel_size, n_workers=n_workers,
        draft_mode=draft_mode)
    if n_workers is None:
        n_workers = os.cpu_count() or 1
    target_dir = os.path.dirname(target_prefix)
    if target_dir:
        os.makedirs(target_dir, exist_ok=True)

    target_nodata = _choose_target_nodata(dem_path_list[0], target_nodata)
    LOGGER.info('Using output no-data value: %s', target_nodata)

    target_georeference, pixel_spacing = _mosaic_georeference(
        read_georeference(dem_path_list[0]), target_pixel_size,
        target_projection)
    if georef_tile_size:
        tile_size = tile_size_from_georef_size(
            georef_tile_size, pixel_spacing)
        LOGGER.info('Tile size in pixels: %d', tile_size)

    temp_working_dir = tempfile.mkdtemp(dir=working_dir, prefix='dem_mosaic_')
    try:
        mosaic_input_list, mosaic_bounding_box = _load_mosaic_inputs(
            dem_path_list, target_georeference, target_nodata,
            temp_working_dir)
        mosaic_grid = plan_mosaic_grid(
            target_georeference.geotransform,
            target_georeference.projection_wkt, mosaic_bounding_box)
        dem_mosaic = DemMosaic(
            input_list=mosaic_input_list,
            geotransform=mosaic_grid.geotransform,
            projection_wkt=mosaic_grid.projection_wkt,
            raster_size=mosaic_grid.raster_size,
            target_nodata=target_nodata,
            erode_length=erode_length,
            blending_length=blending_length,
            draft_mode=draft_mode)

        block_size = calculate_block_size(erode_length, blending_length)
        LOGGER.debug('Cache block size: %d', block_size)
        log_warning_if_mosaic_will_exhaust_slurm_memory(
            block_size, read_margin(dem_mosaic), n_workers, (
                min(tile_size, mosaic_grid.raster_size[0]),
                min(tile_size, mosaic_grid.raster_size[1])))

        overlap_index = build_overlap_index(dem_mosaic)
        target_path_list = []
        for tile_id in tile_id_list(
                mosaic_grid.raster_size, tile_size, tile_index=tile_index):
            target_tile_path = tile_path(target_prefix, tile_id)
            tile_offset_dict = tile_offset(
                tile_id, mosaic_grid.raster_size, tile_size)
            if (tile_offset_dict['win_xsize'] == 0 or
                    tile_offset_dict['win_ysize'] == 0):
                LOGGER.info(
                    'Skip writing empty image: %s', target_tile_path)
                continue

            tile_array = rasterize_tile(
                dem_mosaic, tile_offset_dict, block_size, n_workers,
                overlap_index=overlap_index)
            LOGGER.info('Writing: %s', target_tile_path)
            numpy_array_to_raster(
                tile_array, target_nodata,
                tile_geotransform(mosaic_grid.geotransform, tile_offset_dict),
                mosaic_grid.projection_wkt, target_tile_path,
                raster_driver_creation_tuple=raster_driver_creation_tuple)
            target_path_list.append(target_tile_path)
    finally:
        shutil.rmtree(temp_working_dir, ignore_errors=True)
    return target_path_list
