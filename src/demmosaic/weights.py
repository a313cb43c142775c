"""Blend weights for one window of an input DEM.

Weights express how far a sample is from unreliable data. In blend mode this
is the Euclidean distance from each valid pixel to the nearest invalid pixel
or window edge (a "grassfire" transform), so overlapping DEMs fade into each
other across seams instead of meeting at a hard edge.
"""
import numpy
import scipy.ndimage

from .mosaic_core import DRAFT_MODE_WEIGHT


def valid_mask(dem_array, nodata):
    """Return a boolean mask of samples that are neither nodata nor NaN."""
    mask = ~numpy.isnan(dem_array)
    if nodata is not None and not numpy.isnan(nodata):
        mask &= dem_array != nodata
    return mask


def grassfire_weights(mask):
    """Distance from every valid pixel to the nearest invalid one.

    Pixels outside the array count as invalid, so a valid pixel on the array
    edge gets a distance of 1 and invalid pixels get 0.

    Args:
        mask (numpy.ndarray): 2D boolean array, True where valid.

    Return:
        float64 array of the same shape as ``mask``.
    """
    padded_mask = numpy.pad(mask, 1, mode='constant', constant_values=False)
    distance = scipy.ndimage.distance_transform_edt(padded_mask)
    return distance[1:-1, 1:-1].astype(numpy.float64)


def draft_weights(mask):
    """Binary weights: a large constant where valid, 0 elsewhere."""
    return numpy.where(mask, DRAFT_MODE_WEIGHT, 0.0)


def erode_weights(weight_array, erode_length):
    """Zero out weights within ``erode_length`` of invalid data.

    ``erode_length`` is subtracted from every weight and the result is
    clamped to ``[0, max_weight - erode_length]``. If no weight exceeds
    ``erode_length`` the ceiling becomes 1 so the clamp range stays valid.

    Args:
        weight_array (numpy.ndarray): non-negative weights.
        erode_length (int): erosion distance in pixels, >= 0.

    Return:
        a new float64 array of eroded weights.
    """
    max_cutoff = float(weight_array.max()) if weight_array.size else 0.0
    min_cutoff = float(erode_length)
    if max_cutoff <= min_cutoff:
        max_cutoff = min_cutoff + 1
    return numpy.clip(
        weight_array - min_cutoff, 0.0, max_cutoff - min_cutoff)


def compute_weights(dem_array, nodata, erode_length, draft_mode):
    """Compute the blend weights of a DEM window.

    Args:
        dem_array (numpy.ndarray): 2D window of DEM samples.
        nodata (float): nodata value of the DEM; NaN is always invalid.
        erode_length (int): erosion distance in pixels.
        draft_mode (bool): if True use binary draft weights rather than
            grassfire weights.

    Return:
        float64 weight array of the same shape as ``dem_array``.
    """
    mask = valid_mask(dem_array, nodata)
    if draft_mode:
        weight_array = draft_weights(mask)
    else:
        weight_array = grassfire_weights(mask)
    return erode_weights(weight_array, erode_length)
