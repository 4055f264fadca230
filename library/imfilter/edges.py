"""
N-dimensional Canny edge detection.
"""

import itertools
import numpy as np
from scipy.ndimage import gaussian_filter1d
from scipy.special import erfcinv
from skimage.filters import apply_hysteresis_threshold
from typing import Dict, List, Optional, Sequence
import logging

from .exceptions import ParameterError

logger = logging.getLogger(__name__)


def gaussian_truncation(maximum_error: float) -> float:
    """
    Kernel half width, in standard deviations, that keeps the discarded
    Gaussian tail mass below ``maximum_error``.
    """
    if not 0 < maximum_error < 1:
        raise ParameterError(f"MAXERR must be in (0, 1), got {maximum_error}")
    return float(np.sqrt(2.0) * erfcinv(maximum_error))


def smooth_image(image: np.ndarray,
                 variance: Sequence[float],
                 maximum_error: Sequence[float],
                 spacing: Sequence[float]) -> np.ndarray:
    """Separable Gaussian smoothing with per-axis variance in real world units."""
    smoothed = image.astype(np.float64)
    for axis, (var, err, step) in enumerate(zip(variance, maximum_error, spacing)):
        if var < 0:
            raise ParameterError(f"VAR must be non-negative, got {list(variance)}")
        if var == 0:
            continue
        sigma = np.sqrt(var) / step
        smoothed = gaussian_filter1d(smoothed, sigma, axis=axis, mode='nearest',
                                     truncate=gaussian_truncation(err))
    return smoothed


def axis_gradient(values: np.ndarray, step: float, axis: int) -> np.ndarray:
    """Central difference gradient along one axis, zero along axes too short to differentiate."""
    if values.shape[axis] < 2:
        return np.zeros(values.shape, dtype=np.float64)
    return np.gradient(values, step, axis=axis)


def spatial_gradient(values: np.ndarray, spacing: Sequence[float]) -> List[np.ndarray]:
    """Gradient component along every axis, in real world units."""
    return [axis_gradient(values, step, axis) for axis, step in enumerate(spacing)]


def _shifted(values: np.ndarray, offset: Sequence[int]) -> np.ndarray:
    """values[x + offset] for every x, zero outside the image."""
    result = np.zeros_like(values)
    source, target = [], []
    for step, extent in zip(offset, values.shape):
        if step >= 0:
            source.append(slice(step, extent))
            target.append(slice(0, extent - step))
        else:
            source.append(slice(0, extent + step))
            target.append(slice(-step, extent))
    result[tuple(target)] = values[tuple(source)]
    return result


def non_maximum_suppression(magnitude: np.ndarray, gradient: Sequence[np.ndarray]) -> np.ndarray:
    """
    Keep the gradient magnitude only where it is a local maximum along the
    gradient direction, quantized to the nearest neighbour offset.
    """
    # a component counts when the gradient is within 67.5 degrees of its axis
    cutoff = np.cos(3 * np.pi / 8) * magnitude
    direction = [np.where(np.abs(g) >= cutoff, np.sign(g), 0).astype(np.int8) for g in gradient]

    suppressed = np.zeros_like(magnitude)
    for offset in itertools.product((-1, 0, 1), repeat=magnitude.ndim):
        if not any(offset):
            continue
        selected = magnitude > 0
        for axis, step in enumerate(offset):
            selected &= direction[axis] == step
        if not selected.any():
            continue
        forward = _shifted(magnitude, offset)
        backward = _shifted(magnitude, [-o for o in offset])
        keep = selected & (magnitude >= forward) & (magnitude >= backward)
        suppressed[keep] = magnitude[keep]
    return suppressed


def canny_edges(image: np.ndarray,
                variance: Sequence[float],
                upper_threshold: float,
                lower_threshold: float,
                maximum_error: Sequence[float],
                spacing: Optional[Sequence[float]] = None) -> Dict[str, np.ndarray]:
    """
    Canny edge detector.

    Args:
        image: 2D to 4D floating point array
        variance: Variance of the Gaussian pre-smoothing in each dimension.
            Zero means no smoothing along that axis.
        upper_threshold: Magnitude that seeds an edge
        lower_threshold: Magnitude that extends an edge from a seed
        maximum_error: Maximum truncation error of the Gaussian kernel in each
            dimension
        spacing: Voxel size along each axis

    Returns:
        Dictionary with
            'B': edge mask, 1 on edges and 0 elsewhere, same type as image
            'C': non-maximum suppressed gradient magnitude before thresholding
    """
    spacing = tuple(spacing) if spacing is not None else (1.0,) * image.ndim
    smoothed = smooth_image(image, variance, maximum_error, spacing)

    gradient = spatial_gradient(smoothed, spacing)
    magnitude = np.sqrt(sum(g ** 2 for g in gradient))
    suppressed = non_maximum_suppression(magnitude, gradient)

    edges = apply_hysteresis_threshold(suppressed, lower_threshold, upper_threshold)
    logger.info(f"Canny found {int(edges.sum())} edge voxels")
    return {
        'B': edges.astype(image.dtype),
        'C': suppressed.astype(image.dtype),
    }
