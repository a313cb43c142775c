"""Output grid, tile and cache block planning."""
import collections
import logging
import math

from .mosaic_core import INTEGER_SNAP_TOLERANCE
from .mosaic_core import MIN_BLOCK_SIZE
from .transforms import apply_geotransform
from .transforms import is_near_integer
from .transforms import point_to_pixel_bbox_nogrow

LOGGER = logging.getLogger(__name__)

MosaicGrid = collections.namedtuple(
    'MosaicGrid', ['geotransform', 'projection_wkt', 'raster_size'])


def shift_geotransform(geotransform, xoff, yoff):
    """Move the origin of ``geotransform`` to pixel ``(xoff, yoff)``."""
    origin_x, origin_y = apply_geotransform(geotransform, xoff, yoff)
    return (
        float(origin_x), geotransform[1], geotransform[2],
        float(origin_y), geotransform[4], geotransform[5])


def plan_mosaic_grid(geotransform, projection_wkt, mosaic_bounding_box):
    """Compute the output pixel grid that covers ``mosaic_bounding_box``.

    The origin of ``geotransform`` is moved to the upper left corner of the
    bounding box. If that corner is within ``INTEGER_SNAP_TOLERANCE`` of a
    whole pixel of the initial grid it is snapped onto it, so mosaicking a
    single DEM reproduces its corners exactly instead of drifting by
    floating point noise.

    Args:
        geotransform (sequence): initial output geotransform; defines pixel
            size and orientation.
        projection_wkt (str): output projection.
        mosaic_bounding_box (sequence): union of the input bounding boxes in
            the output projection, ``[minx, miny, maxx, maxy]``.

    Return:
        ``MosaicGrid(geotransform, projection_wkt, (n_cols, n_rows))``.
    """
    pixel_bbox = point_to_pixel_bbox_nogrow(geotransform, mosaic_bounding_box)
    begin_pixel = [pixel_bbox[0], pixel_bbox[1]]
    if is_near_integer(begin_pixel, INTEGER_SNAP_TOLERANCE):
        begin_pixel = [round(v) for v in begin_pixel]
    mosaic_geotransform = shift_geotransform(geotransform, *begin_pixel)

    pixel_bbox = point_to_pixel_bbox_nogrow(
        mosaic_geotransform, mosaic_bounding_box)
    n_cols = int(round(pixel_bbox[2]))
    n_rows = int(round(pixel_bbox[3]))
    LOGGER.info('The size of the mosaic is %d x %d pixels.', n_cols, n_rows)
    return MosaicGrid(mosaic_geotransform, projection_wkt, (n_cols, n_rows))


def tile_size_from_georef_size(georef_tile_size, pixel_spacing):
    """Convert a tile size in projected units to whole pixels (>= 1)."""
    return max(int(round(georef_tile_size / abs(pixel_spacing))), 1)


def calculate_block_size(erode_length, blending_length):
    """Size of a square cache block.

    The block is the smallest power of two at least four times the combined
    erode and blending length, so the context read around each block stays
    small next to the block itself, and never less than ``MIN_BLOCK_SIZE``.
    """
    block_size = 1 << int(math.ceil(
        math.log2(4 * max(1, erode_length + blending_length))))
    return max(block_size, MIN_BLOCK_SIZE)


def tile_layout(raster_size, tile_size):
    """Return the ``(n_tiles_x, n_tiles_y)`` needed to cover the mosaic."""
    n_cols, n_rows = raster_size
    n_tiles_x = max(int(math.ceil(n_cols / float(tile_size))), 1)
    n_tiles_y = max(int(math.ceil(n_rows / float(tile_size))), 1)
    return n_tiles_x, n_tiles_y


def tile_offset(tile_id, raster_size, tile_size):
    """Pixel extent of tile ``tile_id``, tiles numbered row by row.

    Return:
        offset dict with ``xoff``, ``yoff``, ``win_xsize`` and ``win_ysize``.
        The size is clipped to the mosaic and may be 0.
    """
    n_cols, n_rows = raster_size
    n_tiles_x, _ = tile_layout(raster_size, tile_size)
    tile_y, tile_x = divmod(tile_id, n_tiles_x)
    xoff = tile_x * tile_size
    yoff = tile_y * tile_size
    return {
        'xoff': xoff,
        'yoff': yoff,
        'win_xsize': max(min(xoff + tile_size, n_cols) - xoff, 0),
        'win_ysize': max(min(yoff + tile_size, n_rows) - yoff, 0),
    }


def tile_id_list(raster_size, tile_size, tile_index=None):
    """Tiles to produce: all of them, or only ``tile_index``.

    A ``tile_index`` of None or below 0 selects every tile.

    Return:
        a list of tile ids, empty if ``tile_index`` is past the last tile.
    """
    n_tiles_x, n_tiles_y = tile_layout(raster_size, tile_size)
    n_tiles = n_tiles_x * n_tiles_y
    LOGGER.info(
        'Number of tiles: %d x %d = %d', n_tiles_x, n_tiles_y, n_tiles)
    if tile_index is None or tile_index < 0:
        return list(range(n_tiles))
    if tile_index >= n_tiles:
        LOGGER.info('Tile with index: %d is out of bounds.', tile_index)
        return []
    return [tile_index]


def tile_geotransform(geotransform, tile_offset_dict):
    """Geotransform of a tile: the mosaic's shifted to the tile corner."""
    return shift_geotransform(
        geotransform, tile_offset_dict['xoff'], tile_offset_dict['yoff'])


def tile_path(target_prefix, tile_id):
    """Path of tile ``tile_id`` for ``target_prefix``."""
    return f'{target_prefix}-tile-{tile_id}.tif'


def iter_block_offsets(tile_offset_dict, block_size):
    """Iterate over the cache blocks of a tile, row by row.

    Blocks are aligned to the tile corner; the last row and column are
    clipped to the tile.

    Args:
        tile_offset_dict (dict): tile extent in mosaic pixel space.
        block_size (int): side of a square block.

    Yields:
        offset dicts with ``xoff``, ``yoff``, ``win_xsize`` and ``win_ysize``
        in mosaic pixel space.
    """
    n_cols = tile_offset_dict['win_xsize']
    n_rows = tile_offset_dict['win_ysize']
    n_col_blocks = int(math.ceil(n_cols / float(block_size)))
    n_row_blocks = int(math.ceil(n_rows / float(block_size)))

    for row_block_index in range(n_row_blocks):
        row_offset = row_block_index * block_size
        row_block_width = n_rows - row_offset
        if row_block_width > block_size:
            row_block_width = block_size
        for col_block_index in range(n_col_blocks):
            col_offset = col_block_index * block_size
            col_block_width = n_cols - col_offset
            if col_block_width > block_size:
                col_block_width = block_size
            yield {
                'xoff': tile_offset_dict['xoff'] + col_offset,
                'yoff': tile_offset_dict['yoff'] + row_offset,
                'win_xsize': col_block_width,
                'win_ysize': row_block_width,
            }
