import logging
import os
import warnings

from osgeo import gdal

from .mosaic_core import gdal_use_exceptions

LOGGER = logging.getLogger(__name__)

# float64 arrays alive per worker for one input window: values, weights and
# the bilinear scratch arrays.
_WINDOW_ARRAYS_PER_WORKER = 4
# float64 arrays alive per worker for the block itself: accumulator, weight
# sum and the pixel index grids.
_BLOCK_ARRAYS_PER_WORKER = 6


def estimate_mosaic_memory_mb(
        block_size, read_margin, n_workers, tile_raster_size):
    """Estimate peak memory of the mosaic engine in megabytes.

    Args:
        block_size (int): side of a cache block in pixels.
        read_margin (int): pixels read around a block in each input.
        n_workers (int): number of worker threads.
        tile_raster_size (tuple): ``(n_cols, n_rows)`` of the largest tile.

    Return:
        estimated megabytes, not counting GDAL's cache.
    """
    window_pixels = (block_size + 2 * read_margin) ** 2
    block_pixels = block_size ** 2
    per_worker_bytes = 8 * (
        _WINDOW_ARRAYS_PER_WORKER * window_pixels +
        _BLOCK_ARRAYS_PER_WORKER * block_pixels)
    tile_bytes = 8 * tile_raster_size[0] * tile_raster_size[1]
    return (n_workers * per_worker_bytes + tile_bytes) / 1024 / 1024


@gdal_use_exceptions
def log_warning_if_mosaic_will_exhaust_slurm_memory(
        block_size, read_margin, n_workers, tile_raster_size):
    """Warn if GDAL's cache plus the mosaic buffers exceed SLURM's memory.

    This function checks GDAL's max cache (set by the ``GDAL_CACHEMAX``
    environment variable or ``gdal.SetCacheMax()`` function) plus the
    estimate from ``estimate_mosaic_memory_mb`` against the amount of memory
    available to the current SLURM node, identified by the
    ``SLURM_MEM_PER_NODE`` environment variable. Outside of SLURM nothing is
    checked.

    If ``logging.captureWarnings(True)`` is in effect, a warning is logged
    with the logging system.  Otherwise, the warnings system is used
    directly.

    Args:
        block_size (int): side of a cache block in pixels.
        read_margin (int): pixels read around a block in each input.
        n_workers (int): number of worker threads.
        tile_raster_size (tuple): ``(n_cols, n_rows)`` of the largest tile.

    Return:
        None
    """
    if 'SLURM_MEM_PER_NODE' not in os.environ:
        return

    gdal_cache_size = gdal.GetCacheMax()
    if gdal_cache_size < 100000:
        # If the cache size is 100,000 or greater, it's assumed to be in
        # bytes.  Otherwise, units are interpreted as megabytes.
        gdal_cache_size_mb = gdal_cache_size
    else:
        gdal_cache_size_mb = gdal_cache_size / 1024 / 1024
    mosaic_mb = estimate_mosaic_memory_mb(
        block_size, read_margin, n_workers, tile_raster_size)

    slurm_mem_per_node = os.environ['SLURM_MEM_PER_NODE']
    if gdal_cache_size_mb + mosaic_mb > int(slurm_mem_per_node):
        message = (
            "GDAL's cache max plus the mosaic buffers exceed the memory "
            "SLURM has allocated for this node. The process will probably "
            "be killed by the kernel's oom-killer. Consider fewer threads or "
            "a smaller tile size. "
            f"GDAL_CACHEMAX={gdal_cache_size} (interpreted as "
            f"{gdal_cache_size_mb:.0f} MB), estimated mosaic buffers "
            f"{mosaic_mb:.0f} MB, "
            f"SLURM_MEM_PER_NODE={slurm_mem_per_node}")

        # This appears to be the easiest way to identify whether we're in a
        # logging.captureWarnings(True) block.
        if logging._warnings_showwarning is None:
            warnings.warn(message)
        else:
            LOGGER.warning(message)
