"""Parallel evaluation of the cache blocks of an output tile."""
import logging
import queue
import threading

import numpy

from .mosaic_core import TimedLoggingAdapter
from .rasterizer import compute_block
from .rasterizer import overlapping_inputs
from .tiling import iter_block_offsets

LOGGER = logging.getLogger(__name__)


def _mosaic_block_worker(dem_mosaic, work_queue, result_queue, stop_event):
    """Worker function to be used by ``rasterize_tile``.

    Args:
        dem_mosaic (DemMosaic): the mosaic description.
        work_queue (Queue): holds ``(block_offset, input_index_list)``
            tuples, and a ``None`` per worker to signal the end of work.
        result_queue (Queue): receives ``(block_offset, block_array)``
            tuples, or the exception that stopped this worker.
        stop_event (threading.Event): set by the caller to abandon the
            remaining work.

    Return:
        None
    """
    while not stop_event.is_set():
        payload = work_queue.get()
        if payload is None:
            break
        block_offset, input_index_list = payload
        try:
            block_array = compute_block(
                dem_mosaic, block_offset, input_index_list=input_index_list)
        except Exception as error:
            LOGGER.exception('error computing block %s', block_offset)
            result_queue.put(error)
            return
        result_queue.put((block_offset, block_array))


def _stop_workers(worker_list, result_queue, stop_event):
    """Stop the workers and wait for them to exit.

    Workers blocked on a full ``result_queue`` can only notice
    ``stop_event`` once their result is taken, so the queue is drained until
    every worker is gone.
    """
    stop_event.set()
    while any(worker.is_alive() for worker in worker_list):
        try:
            result_queue.get(timeout=0.1)
        except queue.Empty:
            pass
    for worker in worker_list:
        worker.join()


def rasterize_tile(
        dem_mosaic, tile_offset_dict, block_size, n_workers,
        overlap_index=None):
    """Compute all pixels of one output tile.

    The tile is split into cache blocks that ``n_workers`` threads compute
    independently. Finished blocks are copied into the tile buffer from the
    calling thread only, and blocks never overlap, so no locking is needed.

    Args:
        dem_mosaic (DemMosaic): the mosaic description.
        tile_offset_dict (dict): tile extent in mosaic pixel space.
        block_size (int): side of a square cache block.
        n_workers (int): number of worker threads, > 0.
        overlap_index (rtree.index.Index): if not None, an index from
            ``build_overlap_index`` used to skip inputs that miss a block.

    Return:
        float64 numpy array of shape ``(win_ysize, win_xsize)`` of the tile.

    Raises:
        whatever exception a worker hit while computing a block.
    """
    tile_array = numpy.full(
        (tile_offset_dict['win_ysize'], tile_offset_dict['win_xsize']),
        dem_mosaic.target_nodata, dtype=numpy.float64)
    block_offset_list = list(
        iter_block_offsets(tile_offset_dict, block_size))
    n_blocks = len(block_offset_list)
    if n_blocks == 0:
        return tile_array
    n_workers = min(n_workers, n_blocks)

    work_queue = queue.Queue()
    for block_offset in block_offset_list:
        if overlap_index is not None:
            input_index_list = overlapping_inputs(overlap_index, block_offset)
        else:
            input_index_list = None
        work_queue.put((block_offset, input_index_list))
    for _ in range(n_workers):
        work_queue.put(None)

    # bounded so finished blocks can't pile up faster than they are copied
    result_queue = queue.Queue(2 * n_workers)
    stop_event = threading.Event()
    worker_list = []
    for worker_index in range(n_workers):
        worker = threading.Thread(
            name=f'mosaic_block_worker_{worker_index}',
            target=_mosaic_block_worker,
            args=(dem_mosaic, work_queue, result_queue, stop_event))
        worker.daemon = True
        worker.start()
        worker_list.append(worker)
    LOGGER.debug(
        '%d blocks sent to %d workers, wait for worker results', n_blocks,
        n_workers)

    timed_logger = TimedLoggingAdapter(LOGGER)
    n_blocks_processed = 0
    while n_blocks_processed < n_blocks:
        payload = result_queue.get()
        if isinstance(payload, Exception):
            _stop_workers(worker_list, result_queue, stop_event)
            raise payload
        block_offset, block_array = payload
        row_start = block_offset['yoff'] - tile_offset_dict['yoff']
        col_start = block_offset['xoff'] - tile_offset_dict['xoff']
        tile_array[
            row_start:row_start + block_offset['win_ysize'],
            col_start:col_start + block_offset['win_xsize']] = block_array
        n_blocks_processed += 1
        timed_logger.info(
            'mosaic tile approximately %.1f%% complete',
            100.0 * n_blocks_processed / n_blocks)

    for worker in worker_list:
        worker.join()
    LOGGER.debug('mosaic tile 100.0% complete')
    return tile_array
