"""
Binary morphology, thinning and rank filters for 2D to 4D images.
"""

import numpy as np
from scipy.ndimage import binary_dilation, binary_erosion, median_filter
from skimage.morphology import skeletonize
from typing import Sequence
import logging

from .exceptions import ParameterError

logger = logging.getLogger(__name__)


def ball_structuring_element(radius: int, ndim: int) -> np.ndarray:
    """
    Discretized ball of voxels within ``radius + 0.5`` of the centre.

    The ball is an ellipsoid with semi-axis radius + 0.5. A radius of 1 gives
    the full 3x3 block in 2D but drops the corners in 3D (19 voxels) and 4D
    (33 voxels). A radius of 0 gives a single voxel.

    Args:
        radius: Ball radius in voxels
        ndim: Number of image dimensions

    Returns:
        Boolean array of shape (2*radius+1,) * ndim
    """
    if radius < 0:
        raise ParameterError(f"RADIUS must be non-negative, got {radius}")
    grid = np.ogrid[tuple(slice(-radius, radius + 1) for _ in range(ndim))]
    squared = sum(axis.astype(np.float64) ** 2 for axis in grid)
    return squared <= (radius + 0.5) ** 2


def binary_dilate(image: np.ndarray, radius: int = 0, foreground=1) -> np.ndarray:
    """
    Dilate the voxels equal to ``foreground`` with a ball structuring element.

    Args:
        image: 2D to 4D array
        radius: Radius of the ball in voxels
        foreground: Value of the voxels to dilate

    Returns:
        Copy of the image where the dilated region is set to ``foreground``
    """
    mask = image == foreground
    result = image.copy()
    if radius == 0 or not mask.any():
        return result

    structure = ball_structuring_element(radius, image.ndim)
    logger.info(f"Dilating {int(mask.sum())} foreground voxels with a ball of radius {radius}")
    dilated = binary_dilation(mask, structure=structure)
    result[dilated] = foreground
    return result


def binary_erode(image: np.ndarray, radius: int = 0, foreground=1) -> np.ndarray:
    """
    Erode the voxels equal to ``foreground`` with a ball structuring element.

    Voxels outside the image count as foreground, so objects touching the
    border are not eroded from that side.

    Args:
        image: 2D to 4D array
        radius: Radius of the ball in voxels
        foreground: Value of the voxels to erode

    Returns:
        Copy of the image where eroded voxels are set to 0
    """
    mask = image == foreground
    result = image.copy()
    if radius == 0 or not mask.any():
        return result

    structure = ball_structuring_element(radius, image.ndim)
    logger.info(f"Eroding {int(mask.sum())} foreground voxels with a ball of radius {radius}")
    eroded = binary_erosion(mask, structure=structure, border_value=1)
    result[mask & ~eroded] = 0
    return result


def skeletonize_volume(mask: np.ndarray) -> np.ndarray:
    """
    Skeletonize a 3D segmentation by thinning.

    Args:
        mask: 3D array, non-zero voxels are object

    Returns:
        Array of the same type with 1 on skeleton voxels and 0 elsewhere
    """
    skeleton = skeletonize(mask != 0, method='lee') > 0
    result = np.zeros_like(mask)
    result[skeleton] = 1
    return result


def median_filter_image(image: np.ndarray, radius: Sequence[int]) -> np.ndarray:
    """
    Median of a rectangular neighbourhood.

    Args:
        image: 2D to 4D array
        radius: Half size of the box in each dimension, e.g. (2, 3, 4) gives
            a (5, 7, 9) neighbourhood

    Returns:
        Filtered image of the same type
    """
    radius = [int(r) for r in radius]
    if len(radius) != image.ndim:
        raise ParameterError(f"RADIUS must have {image.ndim} elements, got {len(radius)}")
    if not any(radius):
        return image.copy()

    size = tuple(2 * r + 1 for r in radius)
    if image.dtype == bool:
        return median_filter(image.view(np.uint8), size=size, mode='nearest').astype(bool)
    return median_filter(image, size=size, mode='nearest')
