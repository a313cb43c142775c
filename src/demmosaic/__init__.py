"""demmosaic: mosaic and blend georeferenced DEMs into tiles.

__init__ module imports the public mosaic functions into this namespace.
"""
import logging
import types

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version

from . import mosaic
from .mosaic import mosaic_dems
from .mosaic import validate_mosaic_options
from .mosaic_core import MissingGeoreferenceError
from .mosaic_core import MosaicConfigurationError
from .raster_io import get_raster_info
from .raster_io import numpy_array_to_raster
from .raster_io import raster_to_numpy_array
from .rasterizer import compute_block
from .scheduler import rasterize_tile
from .transforms import read_georeference
from .transforms import transform_bounding_box
from .weights import compute_weights

try:
    __version__ = version('demmosaic')
except PackageNotFoundError:
    # package is not installed
    pass


# Programmatically defining __all__ based on what's been imported.
# Thus, the imports are the source of truth for __all__.
__all__ = ('MissingGeoreferenceError', 'MosaicConfigurationError')
exclude_set = {'version'}
for attrname in [k for k in locals().keys()]:
    if (isinstance(locals()[attrname], types.FunctionType)
            and attrname not in exclude_set):
        __all__ += (attrname,)

LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())  # silence logging by default
