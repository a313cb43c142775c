"""Per-block mosaic rasterization.

A ``DemMosaic`` describes the whole mosaic: its inputs, output grid and
blending parameters. ``compute_block`` turns one rectangle of the output grid
into finished pixel values, reading only the parts of the inputs it needs.
It keeps no state between calls, so blocks can be computed in any order and
on any thread.
"""
import collections
import logging

import numpy
import rtree

from .mosaic_core import BILINEAR_PIXEL_BUFFER
from .mosaic_core import INTEGER_SNAP_TOLERANCE
from .raster_io import read_window
from .transforms import map_pixel_centers
from .transforms import pixel_to_point_bbox
from .transforms import point_to_pixel_bbox_nogrow
from .weights import compute_weights

LOGGER = logging.getLogger(__name__)

MosaicInput = collections.namedtuple(
    'MosaicInput',
    ['raster_path', 'band_id', 'nodata', 'geotransform', 'raster_size'])

DemMosaic = collections.namedtuple(
    'DemMosaic',
    ['input_list', 'geotransform', 'projection_wkt', 'raster_size',
     'target_nodata', 'erode_length', 'blending_length', 'draft_mode'])


def read_margin(dem_mosaic):
    """Pixels of context read around a block in every input."""
    return (
        dem_mosaic.erode_length + dem_mosaic.blending_length +
        BILINEAR_PIXEL_BUFFER + 1)


def input_footprint(dem_mosaic, mosaic_input):
    """Bounding box of ``mosaic_input`` in mosaic pixel space."""
    n_cols, n_rows = mosaic_input.raster_size
    point_bbox = pixel_to_point_bbox(
        mosaic_input.geotransform, [0, 0, n_cols, n_rows])
    return point_to_pixel_bbox_nogrow(dem_mosaic.geotransform, point_bbox)


def build_overlap_index(dem_mosaic):
    """Build an R-tree of input footprints in mosaic pixel space.

    Return:
        ``rtree.index.Index`` whose ids are positions in
        ``dem_mosaic.input_list``.
    """
    r_tree_index_stream = [
        (input_index, tuple(input_footprint(dem_mosaic, mosaic_input)), None)
        for input_index, mosaic_input in enumerate(dem_mosaic.input_list)]
    return rtree.index.Index(r_tree_index_stream)


def overlapping_inputs(overlap_index, block_offset):
    """List, in input order, the inputs whose footprint meets a block.

    An input that does not touch the block cannot contain the center of any
    block pixel, so skipping it never changes the result.
    """
    block_bbox = (
        block_offset['xoff'], block_offset['yoff'],
        block_offset['xoff'] + block_offset['win_xsize'],
        block_offset['yoff'] + block_offset['win_ysize'])
    return sorted(overlap_index.intersection(block_bbox))


def input_read_window(dem_mosaic, mosaic_input, block_offset):
    """Find the window of ``mosaic_input`` needed to compute a block.

    The block is converted to the input's pixel space, grown to whole
    pixels, expanded by ``read_margin`` and clipped to the input.

    Return:
        a window dict for ``read_window`` or None if the clipped window is
        empty.
    """
    point_bbox = pixel_to_point_bbox(
        dem_mosaic.geotransform, [
            block_offset['xoff'], block_offset['yoff'],
            block_offset['xoff'] + block_offset['win_xsize'],
            block_offset['yoff'] + block_offset['win_ysize']])
    pixel_bbox = point_to_pixel_bbox_nogrow(
        mosaic_input.geotransform, point_bbox)
    margin = read_margin(dem_mosaic)
    n_cols, n_rows = mosaic_input.raster_size
    xmin = max(int(numpy.floor(pixel_bbox[0])) - margin, 0)
    ymin = max(int(numpy.floor(pixel_bbox[1])) - margin, 0)
    xmax = min(int(numpy.ceil(pixel_bbox[2])) + margin, n_cols)
    ymax = min(int(numpy.ceil(pixel_bbox[3])) + margin, n_rows)
    if xmax <= xmin or ymax <= ymin:
        return None
    return {
        'xoff': xmin,
        'yoff': ymin,
        'win_xsize': xmax - xmin,
        'win_ysize': ymax - ymin,
    }


def _bilinear(array, i, j, i1, j1, fx, fy):
    return (
        array[j, i] * (1 - fx) * (1 - fy) + array[j, i1] * fx * (1 - fy) +
        array[j1, i] * (1 - fx) * fy + array[j1, i1] * fx * fy)


def sample_window(dem_array, weight_array, x_array, y_array):
    """Sample values and weights of a window at fractional pixel positions.

    A position within ``INTEGER_SNAP_TOLERANCE`` of a pixel inside the window
    takes that pixel as is. Any other position inside the window is
    bilinearly interpolated, but only if all four neighbours have positive
    weight; interpolating next to invalid data would smear it into the
    result. Everything else gets weight 0.

    Args:
        dem_array (numpy.ndarray): 2D window of DEM values.
        weight_array (numpy.ndarray): weights of ``dem_array``.
        x_array, y_array (numpy.ndarray): fractional column and row
            positions relative to the window.

    Return:
        ``(value_array, weight_array)`` with the shape of ``x_array``.
        Values are only meaningful where the weight is positive.
    """
    n_rows, n_cols = dem_array.shape
    value_result = numpy.zeros(x_array.shape, dtype=numpy.float64)
    weight_result = numpy.zeros(x_array.shape, dtype=numpy.float64)

    x_round = numpy.rint(x_array)
    y_round = numpy.rint(y_array)
    direct_mask = (
        (numpy.abs(x_array - x_round) < INTEGER_SNAP_TOLERANCE) &
        (numpy.abs(y_array - y_round) < INTEGER_SNAP_TOLERANCE) &
        (x_round >= 0) & (x_round <= n_cols - 1) &
        (y_round >= 0) & (y_round <= n_rows - 1))
    i0 = x_round[direct_mask].astype(numpy.intp)
    j0 = y_round[direct_mask].astype(numpy.intp)
    value_result[direct_mask] = dem_array[j0, i0]
    weight_result[direct_mask] = weight_array[j0, i0]

    interp_mask = (
        ~direct_mask &
        (x_array >= 0) & (x_array <= n_cols - 1) &
        (y_array >= 0) & (y_array <= n_rows - 1))
    if not interp_mask.any():
        return value_result, weight_result

    x_interp = x_array[interp_mask]
    y_interp = y_array[interp_mask]
    i = numpy.floor(x_interp).astype(numpy.intp)
    j = numpy.floor(y_interp).astype(numpy.intp)
    # on the last row/column the far neighbour has zero interpolation
    # weight, clamp it so it stays in the window
    i1 = numpy.minimum(i + 1, n_cols - 1)
    j1 = numpy.minimum(j + 1, n_rows - 1)
    neighbors_valid = (
        (weight_array[j, i] > 0) & (weight_array[j, i1] > 0) &
        (weight_array[j1, i] > 0) & (weight_array[j1, i1] > 0))
    i, j, i1, j1 = i[neighbors_valid], j[neighbors_valid], (
        i1[neighbors_valid]), j1[neighbors_valid]
    fx = x_interp[neighbors_valid] - i
    fy = y_interp[neighbors_valid] - j

    interp_index = numpy.flatnonzero(interp_mask)[neighbors_valid]
    value_result.flat[interp_index] = _bilinear(
        dem_array, i, j, i1, j1, fx, fy)
    weight_result.flat[interp_index] = _bilinear(
        weight_array, i, j, i1, j1, fx, fy)
    return value_result, weight_result


def compute_block(dem_mosaic, block_offset, input_index_list=None):
    """Compute the mosaic pixel values of one block.

    Every input (in input order) that overlaps the block is read around the
    block, weighted, resampled onto the block pixels and accumulated. In
    blend mode the result is the weighted mean of all contributions, in
    draft mode the last contributing input wins. Pixels nobody contributes
    to hold ``dem_mosaic.target_nodata``.

    Args:
        dem_mosaic (DemMosaic): the mosaic description.
        block_offset (dict): ``xoff``, ``yoff``, ``win_xsize`` and
            ``win_ysize`` of the block in mosaic pixel space.
        input_index_list (sequence): if not None, only these positions in
            ``dem_mosaic.input_list`` are considered. They are processed in
            ascending order.

    Return:
        float64 numpy array of shape ``(win_ysize, win_xsize)``.
    """
    shape = (block_offset['win_ysize'], block_offset['win_xsize'])
    target_block = numpy.full(
        shape, dem_mosaic.target_nodata, dtype=numpy.float64)
    weight_sum = numpy.zeros(shape, dtype=numpy.float64)
    # pixels with a single contributor take its value as is, dividing
    # w*v by w can be off by an ulp
    contrib_count = numpy.zeros(shape, dtype=numpy.int32)
    single_value = numpy.zeros(shape, dtype=numpy.float64)

    if input_index_list is None:
        input_index_list = range(len(dem_mosaic.input_list))
    else:
        input_index_list = sorted(input_index_list)

    row_array, col_array = numpy.mgrid[
        block_offset['yoff']:block_offset['yoff'] + shape[0],
        block_offset['xoff']:block_offset['xoff'] + shape[1]]

    for input_index in input_index_list:
        mosaic_input = dem_mosaic.input_list[input_index]
        window = input_read_window(dem_mosaic, mosaic_input, block_offset)
        if window is None:
            continue

        dem_array = read_window(
            mosaic_input.raster_path, mosaic_input.band_id, window)
        weight_array = compute_weights(
            dem_array, mosaic_input.nodata, dem_mosaic.erode_length,
            dem_mosaic.draft_mode)

        x_array, y_array = map_pixel_centers(
            dem_mosaic.geotransform, mosaic_input.geotransform,
            col_array, row_array)
        value_array, sample_weight_array = sample_window(
            dem_array, weight_array, x_array - window['xoff'],
            y_array - window['yoff'])

        contrib_mask = sample_weight_array > 0
        if not contrib_mask.any():
            continue
        # the first contribution to a pixel replaces the nodata fill
        target_block[contrib_mask & (weight_sum <= 0)] = 0.0
        if dem_mosaic.draft_mode:
            target_block[contrib_mask] = value_array[contrib_mask]
            weight_sum[contrib_mask] = 1.0
        else:
            first_mask = contrib_mask & (contrib_count == 0)
            single_value[first_mask] = value_array[first_mask]
            contrib_count[contrib_mask] += 1
            target_block[contrib_mask] += (
                sample_weight_array[contrib_mask] * value_array[contrib_mask])
            weight_sum[contrib_mask] += sample_weight_array[contrib_mask]

    if not dem_mosaic.draft_mode:
        covered_mask = weight_sum > 0
        target_block[covered_mask] /= weight_sum[covered_mask]
        single_mask = contrib_count == 1
        target_block[single_mask] = single_value[single_mask]
    return target_block
