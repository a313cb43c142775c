"""GDAL raster access used by the mosaic engine."""
import logging
import os

import numpy
from osgeo import gdal
from osgeo import gdal_array

from .mosaic_core import DEFAULT_GTIFF_CREATION_TUPLE_OPTIONS
from .mosaic_core import gdal_use_exceptions
from .mosaic_core import make_logger_callback
from .transforms import apply_geotransform
from .transforms import lonlat_to_pixel_bbox_with_adjustment
from .transforms import pixel_to_lonlat_bbox

LOGGER = logging.getLogger(__name__)


@gdal_use_exceptions
def get_raster_info(raster_path):
    """Get information about a GDAL raster (dataset).

    Args:
       raster_path (String): a path to a GDAL raster.

    Return:
        raster_properties (dictionary):
            a dictionary with the properties stored under relevant keys.

        * ``'pixel_size'`` (tuple): (pixel x-size, pixel y-size)
          from geotransform.
        * ``'raster_size'`` (tuple):  number of raster pixels in (x, y)
          direction.
        * ``'nodata'`` (sequence): a sequence of the nodata values in the bands
          of the raster in the same order as increasing band index.
        * ``'n_bands'`` (int): number of bands in the raster.
        * ``'geotransform'`` (tuple): a 6-tuple representing the geotransform
          of (x orign, x-increase, xy-increase, y origin, yx-increase,
          y-increase).
        * ``'datatype'`` (int): the gdal.GDT_* type of band 1.
        * ``'projection_wkt'`` (string): projection of the raster in Well Known
          Text, or None.
        * ``'bounding_box'`` (sequence): sequence of floats representing the
          bounding box in projected coordinates in the order
          [minx, miny, maxx, maxy]

    """
    raster = gdal.OpenEx(raster_path, gdal.OF_RASTER)
    raster_properties = {}
    projection_wkt = raster.GetProjection()
    if not projection_wkt:
        projection_wkt = None
    raster_properties['projection_wkt'] = projection_wkt
    geo_transform = raster.GetGeoTransform()
    raster_properties['geotransform'] = geo_transform
    raster_properties['pixel_size'] = (geo_transform[1], geo_transform[5])
    raster_properties['raster_size'] = (
        raster.RasterXSize, raster.RasterYSize)
    raster_properties['n_bands'] = raster.RasterCount
    raster_properties['nodata'] = [
        raster.GetRasterBand(index).GetNoDataValue() for index in range(
            1, raster_properties['n_bands']+1)]
    raster_properties['datatype'] = raster.GetRasterBand(1).DataType

    # rotated geotransforms can put any corner at the extremes, so transform
    # all four and take the min/max
    n_cols, n_rows = raster_properties['raster_size']
    x_bounds, y_bounds = apply_geotransform(
        geo_transform, numpy.array([0, n_cols, 0, n_cols]),
        numpy.array([0, 0, n_rows, n_rows]))
    raster_properties['bounding_box'] = [
        float(numpy.min(x_bounds)), float(numpy.min(y_bounds)),
        float(numpy.max(x_bounds)), float(numpy.max(y_bounds))]

    raster = None
    return raster_properties


@gdal_use_exceptions
def read_window(raster_path, band_id, window):
    """Read a window of a raster band as a float64 array.

    Every call opens its own dataset handle so this is safe to call from
    several threads at once.

    Args:
        raster_path (str): path to the raster.
        band_id (int): 1-based band index.
        window (dict): ``xoff``, ``yoff``, ``win_xsize`` and ``win_ysize``
            as accepted by ``gdal.Band.ReadAsArray``.

    Return:
        2D numpy float64 array of shape ``(win_ysize, win_xsize)``.
    """
    raster = gdal.OpenEx(raster_path, gdal.OF_RASTER)
    band = raster.GetRasterBand(band_id)
    array = band.ReadAsArray(**window)
    # A corrupt raster can hand back None rather than raising, catch it here
    # rather than later as a confusing shape error.
    if not isinstance(array, numpy.ndarray):
        raise ValueError(
            f'got a {array} when trying to read {raster_path} at '
            f'{window}, expected numpy.ndarray.')
    band = None
    raster = None
    return array.astype(numpy.float64)


@gdal_use_exceptions
def build_reprojected_view(
        base_raster_path, base_georeference, target_georeference,
        base_nodata, target_vrt_path):
    """Create a virtual raster of a base raster warped onto a target grid.

    The lon/lat footprint of the base raster is located in the target grid,
    the target geotransform is shifted to the integer pixel at the footprint
    corner and the base is warped (bilinear) into a VRT covering the
    footprint. Nothing is resampled until the VRT is read.

    Args:
        base_raster_path (str): path to the raster to reproject.
        base_georeference (Georeference): georeference of the base raster.
        target_georeference (Georeference): georeference of the mosaic. Its
            geotransform must be north up.
        base_nodata (float): nodata value of the base raster.
        target_vrt_path (str): path of the VRT to create.

    Return:
        ``target_vrt_path``.
    """
    base_info = get_raster_info(base_raster_path)
    n_cols, n_rows = base_info['raster_size']
    lonlat_bbox = pixel_to_lonlat_bbox(
        base_georeference, [0, 0, n_cols, n_rows])
    pixel_bbox = lonlat_to_pixel_bbox_with_adjustment(
        target_georeference, lonlat_bbox)
    xoff = int(numpy.floor(pixel_bbox[0]))
    yoff = int(numpy.floor(pixel_bbox[1]))
    target_x_size = max(1, int(numpy.ceil(pixel_bbox[2])) - xoff)
    target_y_size = max(1, int(numpy.ceil(pixel_bbox[3])) - yoff)

    target_gt = target_georeference.geotransform
    ul_x, ul_y = apply_geotransform(target_gt, xoff, yoff)
    lr_x, lr_y = apply_geotransform(
        target_gt, xoff + target_x_size, yoff + target_y_size)
    output_bounds = [
        float(min(ul_x, lr_x)), float(min(ul_y, lr_y)),
        float(max(ul_x, lr_x)), float(max(ul_y, lr_y))]
    LOGGER.debug(
        'reprojecting %s onto %s x %s pixels at %s', base_raster_path,
        target_x_size, target_y_size, output_bounds)

    base_raster = gdal.OpenEx(base_raster_path, gdal.OF_RASTER)
    gdal.Warp(
        target_vrt_path, base_raster,
        format='VRT',
        outputBounds=output_bounds,
        width=target_x_size,
        height=target_y_size,
        resampleAlg='bilinear',
        srcSRS=base_georeference.projection_wkt,
        dstSRS=target_georeference.projection_wkt,
        srcNodata=base_nodata,
        dstNodata=base_nodata,
        outputType=gdal.GDT_Float64,
        callback=make_logger_callback('Reproject %.1f%% complete %s', LOGGER),
        callback_data=[os.path.basename(base_raster_path)])
    base_raster = None
    return target_vrt_path


@gdal_use_exceptions
def numpy_array_to_raster(
        base_array, target_nodata, geotransform, projection_wkt,
        target_path,
        raster_driver_creation_tuple=DEFAULT_GTIFF_CREATION_TUPLE_OPTIONS):
    """Create a single band raster of size ``base_array.shape``.

    The GDAL datatype of the target raster is determined by the numpy dtype of
    ``base_array``.

    Args:
        base_array (numpy.array): a 2d numpy array.
        target_nodata (numeric): nodata value of target array, can be None.
        geotransform (sequence): 6 element GDAL geotransform, can be None to
            indicate no stated geotransform.
        projection_wkt (str): target projection in wkt.  Can be None to
            indicate no projection/SRS.
        target_path (str): path to raster to create that will be of the
            same type of base_array with contents of base_array.
        raster_driver_creation_tuple (tuple): a tuple containing a GDAL driver
            name string as the first element and a GDAL creation options
            tuple/list as the second.

    Return:
        None
    """
    driver_name, creation_options = raster_driver_creation_tuple
    raster_driver = gdal.GetDriverByName(driver_name)
    ny, nx = base_array.shape
    gdal_type = gdal_array.NumericTypeCodeToGDALTypeCode(base_array.dtype)
    if gdal_type is None:
        raise ValueError(f'Unsupported DataType: {base_array.dtype}')
    new_raster = raster_driver.Create(
        target_path, nx, ny, 1, gdal_type, options=list(creation_options))
    if projection_wkt is not None:
        new_raster.SetProjection(projection_wkt)
    if geotransform is not None:
        new_raster.SetGeoTransform(list(geotransform))
    new_band = new_raster.GetRasterBand(1)
    if target_nodata is not None:
        new_band.SetNoDataValue(float(target_nodata))
    new_band.WriteArray(base_array)
    new_band.FlushCache()
    new_band = None
    new_raster = None


@gdal_use_exceptions
def raster_to_numpy_array(raster_path, band_id=1):
    """Read the entire contents of the raster band to a numpy array.

    Args:
        raster_path (str): path to raster.
        band_id (int): band in the raster to read.

    Return:
        numpy array contents of `band_id` in raster.

    """
    raster = gdal.OpenEx(raster_path, gdal.OF_RASTER)
    band = raster.GetRasterBand(band_id)
    array = band.ReadAsArray()
    band = None
    raster = None
    return array
