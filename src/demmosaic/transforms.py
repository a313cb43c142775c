"""Coordinate box conversions between pixel, projected and lon/lat space.

None of the box conversions here grow their result to whole pixels. Callers
decide how to round, which is what keeps mosaic corners reproducible.

Boxes are sequences in the order ``[minx, miny, maxx, maxy]``. Pixel boxes
use GDAL's area convention: pixel ``(i, j)`` covers ``[i, i+1] x [j, j+1]``
and its sample sits at the center ``(i+0.5, j+0.5)``.
"""
import collections
import logging
import math

import numpy
from osgeo import gdal
from osgeo import osr

from .mosaic_core import DEFAULT_OSR_AXIS_MAPPING_STRATEGY
from .mosaic_core import gdal_use_exceptions
from .mosaic_core import MissingGeoreferenceError

LOGGER = logging.getLogger(__name__)

Georeference = collections.namedtuple(
    'Georeference', ['geotransform', 'projection_wkt'])

_LONLAT_EDGE_SAMPLES = 1000


def apply_geotransform(geotransform, x_array, y_array):
    """Apply a GDAL-style geotransform to arrays of pixel coordinates.

    Args:
        geotransform (sequence): 6 element GDAL geotransform.
        x_array (numpy.ndarray or float): pixel column coordinates.
        y_array (numpy.ndarray or float): pixel row coordinates.

    Return:
        ``(x, y)`` tuple of projected coordinates with the broadcast shape of
        the inputs.
    """
    x_array = numpy.asarray(x_array, dtype=numpy.float64)
    y_array = numpy.asarray(y_array, dtype=numpy.float64)
    return (
        geotransform[0] + x_array * geotransform[1] +
        y_array * geotransform[2],
        geotransform[3] + x_array * geotransform[4] +
        y_array * geotransform[5])


def invert_geotransform(geotransform):
    """Return the inverse of ``geotransform``.

    Raises:
        ValueError if the geotransform is not invertible.
    """
    inverse = gdal.InvGeoTransform(geotransform)
    if inverse is None:
        raise ValueError(
            f'Geotransform {geotransform} is not invertible.')
    return inverse


def _bbox_corners(bbox):
    return (
        numpy.array([bbox[0], bbox[2], bbox[0], bbox[2]], dtype=float),
        numpy.array([bbox[1], bbox[3], bbox[3], bbox[1]], dtype=float))


def pixel_to_point_bbox(geotransform, pixel_bbox):
    """Convert a pixel box to the projected box spanned by its corners."""
    x_list, y_list = apply_geotransform(
        geotransform, *_bbox_corners(pixel_bbox))
    return [x_list.min(), y_list.min(), x_list.max(), y_list.max()]


def point_to_pixel_bbox_nogrow(geotransform, point_bbox):
    """Convert a projected box to fractional pixel space.

    Unlike the usual conversion the result is not expanded to whole pixels,
    giving callers full control over rounding.

    Args:
        geotransform (sequence): geotransform of the raster whose pixel
            space is the target.
        point_bbox (sequence): projected ``[minx, miny, maxx, maxy]``.

    Return:
        ``[minx, miny, maxx, maxy]`` in fractional pixel coordinates.
    """
    x_list, y_list = apply_geotransform(
        invert_geotransform(geotransform), *_bbox_corners(point_bbox))
    return [x_list.min(), y_list.min(), x_list.max(), y_list.max()]


def map_pixel_centers(
        base_geotransform, target_geotransform, col_array, row_array):
    """Locate base pixel centers in a target raster's pixel grid.

    The base pixel ``(c, r)`` is taken through the base geotransform to
    projected space and back through the inverse target geotransform. The
    result is expressed so that integer values land exactly on target pixel
    indices, which lets aligned grids be sampled without interpolation.

    Args:
        base_geotransform (sequence): geotransform of the base grid.
        target_geotransform (sequence): geotransform of the target grid, in
            the same projection.
        col_array (numpy.ndarray): integer base pixel columns.
        row_array (numpy.ndarray): integer base pixel rows.

    Return:
        ``(x, y)`` tuple of float64 arrays of target pixel indices.
    """
    point_x, point_y = apply_geotransform(
        base_geotransform, numpy.asarray(col_array) + 0.5,
        numpy.asarray(row_array) + 0.5)
    target_x, target_y = apply_geotransform(
        invert_geotransform(target_geotransform), point_x, point_y)
    return target_x - 0.5, target_y - 0.5


@gdal_use_exceptions
def transform_bounding_box(
        bounding_box, base_projection_wkt, target_projection_wkt,
        edge_samples=11,
        osr_axis_mapping_strategy=DEFAULT_OSR_AXIS_MAPPING_STRATEGY):
    """Transform input bounding box to output projection.

    The edges of the box are sampled and every sample is transformed, so a
    box that warps in the target system is still fully enclosed.

    Args:
        bounding_box (sequence): ``[xmin, ymin, xmax, ymax]`` in the base
            coordinate system.
        base_projection_wkt (string): the spatial reference of the input
            coordinate system in Well Known Text.
        target_projection_wkt (string): the spatial reference of the desired
            output coordinate system in Well Known Text.
        edge_samples (int): the number of interpolated points along each
            bounding box edge to sample along. A value of 2 will sample just
            the corners.
        osr_axis_mapping_strategy (int): OSR axis mapping strategy for
            ``SpatialReference`` objects.

    Return:
        A list of the form ``[xmin, ymin, xmax, ymax]``.

    Raises:
        ``ValueError`` if resulting transform yields non-finite coordinates.
    """
    base_ref = osr.SpatialReference()
    base_ref.ImportFromWkt(base_projection_wkt)
    target_ref = osr.SpatialReference()
    target_ref.ImportFromWkt(target_projection_wkt)
    base_ref.SetAxisMappingStrategy(osr_axis_mapping_strategy)
    target_ref.SetAxisMappingStrategy(osr_axis_mapping_strategy)
    transformer = osr.CreateCoordinateTransformation(base_ref, target_ref)

    # points are numbered from 0 starting upper left as follows:
    # 0--3
    # |  |
    # 1--2
    p_0 = numpy.array((bounding_box[0], bounding_box[3]))
    p_1 = numpy.array((bounding_box[0], bounding_box[1]))
    p_2 = numpy.array((bounding_box[2], bounding_box[1]))
    p_3 = numpy.array((bounding_box[2], bounding_box[3]))
    edge_point_list = []
    for p_a, p_b in [(p_0, p_1), (p_1, p_2), (p_2, p_3), (p_3, p_0)]:
        for v in numpy.linspace(0, 1, edge_samples):
            edge_point_list.append(tuple(p_a * v + p_b * (1 - v)))
    transformed = numpy.array([
        point[:2] for point in transformer.TransformPoints(edge_point_list)])

    transformed_bounding_box = [
        transformed[:, 0].min(), transformed[:, 1].min(),
        transformed[:, 0].max(), transformed[:, 1].max()]
    if not all(numpy.isfinite(numpy.array(transformed_bounding_box))):
        raise ValueError(
            f'Could not transform bounding box from base to target '
            f'projection. Some transformed coordinates are not finite: '
            f'{transformed_bounding_box}\n'
            f'Original bounding box: {bounding_box}\n'
            f'Base projection: {base_projection_wkt}\n'
            f'Target projection: {target_projection_wkt}\n')
    return transformed_bounding_box


@gdal_use_exceptions
def transform_point(
        x, y, base_projection_wkt, target_projection_wkt,
        osr_axis_mapping_strategy=DEFAULT_OSR_AXIS_MAPPING_STRATEGY):
    """Transform a single ``(x, y)`` point between projections."""
    base_ref = osr.SpatialReference()
    base_ref.ImportFromWkt(base_projection_wkt)
    target_ref = osr.SpatialReference()
    target_ref.ImportFromWkt(target_projection_wkt)
    base_ref.SetAxisMappingStrategy(osr_axis_mapping_strategy)
    target_ref.SetAxisMappingStrategy(osr_axis_mapping_strategy)
    transformer = osr.CreateCoordinateTransformation(base_ref, target_ref)
    trans_x, trans_y, _ = transformer.TransformPoint(x, y)
    return trans_x, trans_y


def _lonlat_wkt():
    lonlat_ref = osr.SpatialReference()
    lonlat_ref.ImportFromEPSG(4326)
    return lonlat_ref.ExportToWkt()


def pixel_to_lonlat_bbox(
        georeference, pixel_bbox, edge_samples=_LONLAT_EDGE_SAMPLES):
    """Convert a pixel box of a raster to a lon/lat box.

    Args:
        georeference (Georeference): georeference of the raster.
        pixel_bbox (sequence): ``[minx, miny, maxx, maxy]`` in pixels.
        edge_samples (int): samples per box edge when reprojecting.

    Return:
        ``[min_lon, min_lat, max_lon, max_lat]``.
    """
    return transform_bounding_box(
        pixel_to_point_bbox(georeference.geotransform, pixel_bbox),
        georeference.projection_wkt, _lonlat_wkt(),
        edge_samples=edge_samples)


def shift_lonlat_bbox(lonlat_bbox, reference_lon):
    """Move a lon/lat box by whole turns to sit nearest ``reference_lon``.

    The box is shifted by the integer multiple of 360 degrees that minimizes
    the distance between its center longitude and ``reference_lon``.

    Return:
        the shifted ``[min_lon, min_lat, max_lon, max_lat]``.
    """
    center_lon = (lonlat_bbox[0] + lonlat_bbox[2]) / 2.0
    shift = 360.0 * round((reference_lon - center_lon) / 360.0)
    return [
        lonlat_bbox[0] + shift, lonlat_bbox[1],
        lonlat_bbox[2] + shift, lonlat_bbox[3]]


def lonlat_to_pixel_bbox_with_adjustment(
        georeference, lonlat_bbox, edge_samples=_LONLAT_EDGE_SAMPLES):
    """Convert a lon/lat box to fractional pixels of ``georeference``.

    A lon/lat box may be offset by a multiple of 360 degrees from the
    longitudes native to the target raster. Before conversion the box is
    moved next to the longitude of the raster's pixel ``(0, 0)``.

    Args:
        georeference (Georeference): georeference of the target raster.
        lonlat_bbox (sequence): ``[min_lon, min_lat, max_lon, max_lat]``.
        edge_samples (int): samples per box edge when reprojecting.

    Return:
        ``[minx, miny, maxx, maxy]`` in un-grown pixel coordinates.
    """
    lonlat_wkt = _lonlat_wkt()
    origin_x, origin_y = apply_geotransform(georeference.geotransform, 0, 0)
    reference_lon, _ = transform_point(
        float(origin_x), float(origin_y), georeference.projection_wkt,
        lonlat_wkt)
    adjusted_bbox = shift_lonlat_bbox(lonlat_bbox, reference_lon)
    point_bbox = transform_bounding_box(
        adjusted_bbox, lonlat_wkt, georeference.projection_wkt,
        edge_samples=edge_samples)
    return point_to_pixel_bbox_nogrow(georeference.geotransform, point_bbox)


@gdal_use_exceptions
def read_georeference(raster_path):
    """Read the geotransform and projection of a raster.

    Args:
        raster_path (str): path to a GDAL raster.

    Return:
        ``Georeference(geotransform, projection_wkt)``.

    Raises:
        MissingGeoreferenceError
            if the raster defines no geotransform or no projection.
    """
    raster = gdal.OpenEx(raster_path, gdal.OF_RASTER)
    geotransform = raster.GetGeoTransform(can_return_null=True)
    projection_wkt = raster.GetProjection()
    raster = None
    if geotransform is None or not projection_wkt:
        raise MissingGeoreferenceError(raster_path)
    return Georeference(tuple(geotransform), projection_wkt)


@gdal_use_exceptions
def canonicalize_projection(projection):
    """Parse any OSR user input (WKT, PROJ string, ``EPSG:n``) to WKT.

    Raises:
        ValueError if ``projection`` cannot be parsed.
    """
    spatial_ref = osr.SpatialReference()
    try:
        # osr may not share gdal's exception state, check the code as well
        error_code = spatial_ref.SetFromUserInput(projection)
    except RuntimeError as error:
        raise ValueError(
            f'Could not interpret projection "{projection}": {error}')
    if error_code != 0:
        raise ValueError(f'Could not interpret projection "{projection}"')
    return spatial_ref.ExportToWkt()


@gdal_use_exceptions
def projections_equal(projection_a, projection_b):
    """Return True if two projection strings describe the same system."""
    if projection_a == projection_b:
        return True
    ref_a = osr.SpatialReference()
    ref_a.SetFromUserInput(projection_a)
    ref_b = osr.SpatialReference()
    ref_b.SetFromUserInput(projection_b)
    return bool(ref_a.IsSame(ref_b))


def is_near_integer(value_list, tolerance):
    """Return True if the point ``value_list`` is within ``tolerance``
    (Euclidean) of its rounded self."""
    return math.hypot(*[v - round(v) for v in value_list]) < tolerance
