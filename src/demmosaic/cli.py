"""Command line entry point for ``dem_mosaic``."""
import argparse
import datetime
import logging
import os
import sys

from . import mosaic
from .mosaic_core import DEFAULT_BLENDING_LENGTH
from .mosaic_core import DEFAULT_TILE_SIZE
from .mosaic_core import MosaicConfigurationError

LOGGER = logging.getLogger('demmosaic.cli')
_LOG_FORMAT = '%(asctime)s %(name)-18s %(levelname)-8s %(message)s'
_LOG_DATEFMT = '%m/%d/%Y %H:%M:%S '


def _build_parser():
    parser = argparse.ArgumentParser(
        prog='dem_mosaic',
        usage=(
            '%(prog)s [options] <dem files or -l dem_file_list.txt> '
            '-o output_file_prefix'),
        description=(
            'Mosaic and blend DEMs, and write the mosaic as tiles.'))
    parser.add_argument(
        'dem_files', nargs='*', help='DEM files to mosaic.')
    parser.add_argument(
        '-l', '--dem-list-file', dest='dem_list_file',
        help='Text file listing the DEM files to mosaic, one per line.')
    parser.add_argument(
        '-o', '--output-prefix', dest='output_prefix',
        help='Specify the output prefix.')
    parser.add_argument(
        '--tile-size', type=int, default=DEFAULT_TILE_SIZE,
        help=(
            'The maximum size of output DEM tile files to write, in '
            'pixels.'))
    parser.add_argument(
        '--tile-index', type=int, default=None,
        help=(
            'The index of the tile to save (starting from zero). The '
            'number of tiles is logged. A negative index saves all tiles. '
            'Default: save all tiles.'))
    parser.add_argument(
        '--erode-length', type=int, default=0,
        help=(
            'Erode input DEMs by this many pixels at boundary and hole '
            'edges before mosaicking them.'))
    parser.add_argument(
        '--blending-length', type=int, default=DEFAULT_BLENDING_LENGTH,
        help=(
            'Larger values of this number (measured in input DEM pixels) '
            'may result in smoother blending while using more memory and '
            'computing time.'))
    parser.add_argument(
        '--tr', type=float, default=None,
        help=(
            'Output DEM resolution in target georeferenced units per pixel. '
            'Default: the resolution of the first DEM.'))
    parser.add_argument(
        '--t_srs', default=None,
        help=(
            'Output projection (WKT, PROJ string or EPSG:code). Default: '
            'the projection of the first DEM.'))
    parser.add_argument(
        '--georef-tile-size', type=float, default=None,
        help=(
            'Set the tile size in georeferenced (projected) units (e.g., '
            'degrees or meters).'))
    parser.add_argument(
        '--output-nodata-value', type=float, default=None,
        help=(
            'No-data value to use on output. Default: the one from the '
            'first DEM.'))
    parser.add_argument(
        '--draft-mode', action='store_true', default=False,
        help=(
            'Put the DEMs together without blending them (the result is '
            'less smooth).'))
    parser.add_argument(
        '--threads', type=int, default=os.cpu_count() or 1,
        help='Number of threads to use.')
    parser.add_argument(
        '-v', '--verbose', action='count', default=0,
        help='Increase logging verbosity.')
    return parser


def read_dem_list_file(dem_list_path):
    """Read whitespace separated DEM paths from a text file."""
    with open(dem_list_path) as dem_list_file:
        return dem_list_file.read().split()


def _log_to_file(output_prefix, args):
    """Mirror log output to a timestamped file next to the output."""
    timestamp = datetime.datetime.now().strftime('%Y-%m-%d-%H%M%S')
    log_path = f'{output_prefix}-log-dem_mosaic-{timestamp}.txt'
    handler = logging.FileHandler(log_path)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, _LOG_DATEFMT))
    logging.getLogger().addHandler(handler)
    LOGGER.info('dem_mosaic %s', ' '.join(args))
    return handler


def main(args=None):
    """Command line entry point for ``dem_mosaic``.

    Args:
        args (None or list of strings): If None, `sys.argv[1:]` will be used.
            Otherwise, a list of strings is expected, where the strings
            are each parameter (optional and position) that would be passed
            to the program normally through the command line.

    Returns:
        0 on success. Configuration errors exit the process with status 1.
    """
    if args is None:
        args = sys.argv[1:]

    parser = _build_parser()
    user_args = parser.parse_args(args)
    logging.basicConfig(
        format=_LOG_FORMAT, datefmt=_LOG_DATEFMT,
        level=logging.DEBUG if user_args.verbose else logging.INFO)

    if user_args.dem_list_file:
        if user_args.dem_files:
            parser.exit(1, (
                'E: The DEMs were specified via a list. There were however '
                'extraneous files or options passed in.\n'))
        dem_path_list = read_dem_list_file(user_args.dem_list_file)
        if not dem_path_list:
            parser.exit(1, 'E: No DEM files to mosaic.\n')
    else:
        dem_path_list = user_args.dem_files

    mosaic_kwargs = {
        'tile_size': user_args.tile_size,
        'georef_tile_size': user_args.georef_tile_size,
        'tile_index': user_args.tile_index,
        'erode_length': user_args.erode_length,
        'blending_length': user_args.blending_length,
        'target_pixel_size': user_args.tr,
        'n_workers': user_args.threads,
        'draft_mode': user_args.draft_mode,
    }
    try:
        mosaic.validate_mosaic_options(
            dem_path_list, user_args.output_prefix, **mosaic_kwargs)
    except MosaicConfigurationError as error:
        parser.exit(1, f'E: {error}\n')

    output_dir = os.path.dirname(user_args.output_prefix)
    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
    log_handler = _log_to_file(user_args.output_prefix, args)
    try:
        target_path_list = mosaic.mosaic_dems(
            dem_path_list, user_args.output_prefix,
            target_projection=user_args.t_srs,
            target_nodata=user_args.output_nodata_value,
            **mosaic_kwargs)
    except MosaicConfigurationError as error:
        LOGGER.error('%s', error)
        parser.exit(1, f'E: {error}\n')
    finally:
        logging.getLogger().removeHandler(log_handler)
        log_handler.close()
    LOGGER.info('Wrote %d tile(s).', len(target_path_list))
    return 0


if __name__ == '__main__':
    sys.exit(main())
