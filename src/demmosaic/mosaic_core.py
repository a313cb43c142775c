"""Shared constants, GDAL exception handling and logging helpers."""
import functools
import logging
import sys
import time

import numpy
from osgeo import gdal
from osgeo import osr

LOGGER = logging.getLogger(__name__)

# Fractional pixel coordinates closer than this to an integer are treated as
# that integer, both for direct sampling and for the mosaic origin snap.
INTEGER_SNAP_TOLERANCE = 1e-6

# Extra pixels bilinear interpolation needs around a window.
BILINEAR_PIXEL_BUFFER = 1

# Weight given to every valid pixel in draft mode.
DRAFT_MODE_WEIGHT = 1e8

DEFAULT_TILE_SIZE = 1000000
DEFAULT_BLENDING_LENGTH = 200
MIN_BLOCK_SIZE = 256

FLOAT64_NODATA = float(numpy.finfo(numpy.float64).min)

DEFAULT_CREATION_OPTIONS = (
    'TILED=YES', 'BIGTIFF=YES', 'COMPRESS=LZW',
    'BLOCKXSIZE=256', 'BLOCKYSIZE=256')
DEFAULT_GTIFF_CREATION_TUPLE_OPTIONS = ('GTIFF', DEFAULT_CREATION_OPTIONS)
DEFAULT_OSR_AXIS_MAPPING_STRATEGY = osr.OAMS_TRADITIONAL_GIS_ORDER

_LOGGING_PERIOD = 5.0  # min seconds between progress log messages


class MosaicConfigurationError(ValueError):
    """Raised when the mosaic options are invalid or inconsistent.

    These are detected before any raster pixels are read so that no partial
    output is ever written.
    """


class MissingGeoreferenceError(MosaicConfigurationError):
    """Raised when an input raster has no geotransform or projection.

    Attributes:
        raster_path (str): path to the offending raster.
    """

    def __init__(self, raster_path):
        """See Attributes for args docstring."""
        self.raster_path = raster_path
        super().__init__(f'No georeference found in {raster_path}.')


class GDALUseExceptions:
    """Context manager that enables GDAL exceptions and restores state after."""

    def __enter__(self):
        self.currentUseExceptions = gdal.GetUseExceptions()
        gdal.UseExceptions()

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.currentUseExceptions == 0:
            gdal.DontUseExceptions()


def gdal_use_exceptions(func):
    """Decorator that enables GDAL exceptions and restores state after.

    Args:
        func (callable): function to call with GDAL exceptions enabled

    Returns:
        Wrapper function that calls ``func`` with GDAL exceptions enabled
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        with GDALUseExceptions():
            return func(*args, **kwargs)
    return wrapper


class TimedLoggingAdapter(logging.LoggerAdapter):
    """A logging adapter to restrict logging based on a timer.

    Progress messages from the block scheduler arrive once per finished
    block, which can be many times a second. This adapter only lets a
    message through every ``interval_s`` seconds.
    """

    def __init__(self, logger, interval_s=_LOGGING_PERIOD):
        """Initialize the timed logging adapter.

        Args:
            logger (logging.Logger): the logger to forward messages to.
            interval_s (float): The logging interval, in seconds.  Defaults to
                ``_LOGGING_PERIOD``.
        """
        logging.LoggerAdapter.__init__(self, logger, extra=None)
        self.interval = interval_s
        self.last_time = time.time()

    def log(self, level, msg, *args, **kwargs):
        """Log a ``LogRecord`` if at least ``interval`` seconds have passed.

        Args:
            level (int): The logging level.
            msg (str): The log message.
            args (list): The user-defined positional arguments for the log
                message.
            kwargs (dict): The user-defined keyword arguments for the log
                message.

        Returns:
            ``None``.
        """
        if 'stacklevel' not in kwargs:
            # Based on logging internals, 3 is the expected stack depth.
            kwargs['stacklevel'] = 3
            # Python 3.11 made stacklevel consistent with warnings.
            if sys.version_info >= (3, 11):
                kwargs['stacklevel'] -= 1

        now = time.time()
        if now >= self.last_time + self.interval:
            self.last_time = now
            self.logger.log(level, msg, *args, **kwargs)


def make_logger_callback(message, logger=LOGGER):
    """Build a timed logger callback for GDAL progress reporting.

    Args:
        message (string): a string that expects 2 placement %% variables,
            first for % complete from ``df_complete``, second from
            ``p_progress_arg[0]``.
        logger (logging.Logger): logger that receives the messages.

    Return:
        Function with signature:
            logger_callback(df_complete, psz_message, p_progress_arg)

    """
    def logger_callback(df_complete, _, p_progress_arg):
        """Argument names come from the GDAL API for callbacks."""
        current_time = time.time()
        if ((current_time - logger_callback.last_time) > _LOGGING_PERIOD or
                df_complete == 1.0):
            if p_progress_arg:
                logger.info(message, df_complete * 100, p_progress_arg[0])
            else:
                logger.info(message, df_complete * 100, '')
            logger_callback.last_time = current_time
        return 1

    logger_callback.last_time = time.time()
    return logger_callback
