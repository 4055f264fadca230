"""
Segmentation refinement: Markov Random Field labelling and voting hole filling.
"""

import numpy as np
from scipy.ndimage import convolve, correlate
from typing import Optional, Sequence
import logging

from .exceptions import ParameterError

logger = logging.getLogger(__name__)

MAX_MRF_CLASSES = 256


def default_mrf_weights(ndim: int) -> np.ndarray:
    """
    Hypercube of side 3 with all weights 1.0 except the central one, 0.0.
    """
    weights = np.ones((3,) * ndim, dtype=np.float64)
    weights[(1,) * ndim] = 0.0
    return weights


def _neighbourhood_weights(weights: np.ndarray, ndim: int) -> np.ndarray:
    """Pad trailing singleton axes and check every extent is odd."""
    weights = np.asarray(weights, dtype=np.float64)
    if weights.ndim > ndim:
        raise ParameterError(
            f"WEIGHTS must have at most {ndim} dimensions, got {weights.ndim}"
        )
    weights = weights.reshape(weights.shape + (1,) * (ndim - weights.ndim))
    if any(extent % 2 == 0 for extent in weights.shape):
        raise ParameterError(f"WEIGHTS must have an odd size in every dimension, got {weights.shape}")
    return weights


def scale_mrf_weights(weights: np.ndarray, centroids: np.ndarray, smoothing: float) -> np.ndarray:
    """
    Bring neighbour weights into the range of the centroid distances.

    The fidelity term is a distance to the class centroid, so its values are
    of the order of the centroids. Weights are multiplied by the mean centroid
    over twice their total, and then by the smoothing factor.
    """
    total_weight = weights.sum()
    if total_weight == 0:
        raise ParameterError("WEIGHTS must not add up to zero")
    mean_distance = float(np.mean(centroids.astype(np.float64)))
    return weights * mean_distance / (2 * total_weight) * smoothing


def mrf_segmentation(image: np.ndarray,
                     centroids: Sequence,
                     weights: Optional[np.ndarray] = None,
                     smoothing: float = 1e-7,
                     max_iterations: int = 100,
                     tolerance: float = 1e-7) -> np.ndarray:
    """
    Markov Random Field segmentation by iterated conditional modes.

    Voxels are first assigned to the class with the closest centroid. Each
    iteration then relabels every voxel with the class that minimises the
    distance to its centroid minus the weighted number of neighbours already
    in that class.

    Args:
        image: 2D to 4D array
        centroids: Mean intensity of each class, cast to the image type
        weights: Neighbourhood weights, with the same number of dimensions as
            the image (trailing dimensions may be omitted) and odd extents
        smoothing: Trade-off between fidelity to the image and smoothness of
            the labels. Typical values are 1 to 5.
        max_iterations: Maximum number of iterations
        tolerance: Stop when the fraction of relabelled voxels is at or below it

    Returns:
        uint8 label image, labels are the 0-based centroid indices
    """
    centroids = np.asarray(centroids).astype(image.dtype).reshape(-1)
    num_classes = centroids.size
    if num_classes == 0:
        raise ParameterError("MU must contain at least one class centroid")
    if num_classes > MAX_MRF_CLASSES:
        raise ParameterError(f"MU can have at most {MAX_MRF_CLASSES} classes, got {num_classes}")

    if weights is None:
        weights = default_mrf_weights(image.ndim)
    weights = _neighbourhood_weights(weights, image.ndim)
    weights = scale_mrf_weights(weights, centroids, smoothing)

    values = image.astype(np.float64)
    fidelity = np.abs(values[..., np.newaxis] - centroids.astype(np.float64))
    labels = np.argmin(fidelity, axis=-1)

    logger.info(f"MRF segmentation into {num_classes} classes, "
                f"up to {max_iterations} iterations")
    for iteration in range(max_iterations):
        influence = np.stack(
            [correlate((labels == c).astype(np.float64), weights, mode='nearest')
             for c in range(num_classes)],
            axis=-1,
        )
        relabelled = np.argmin(fidelity - influence, axis=-1)
        changed = np.count_nonzero(relabelled != labels)
        labels = relabelled
        logger.debug(f"MRF iteration {iteration + 1}: {changed} voxels relabelled")
        if changed / labels.size <= tolerance:
            break

    return labels.astype(np.uint8)


def voting_hole_filling(image: np.ndarray,
                        radius: Sequence[int],
                        max_iterations: int = 1,
                        majority_threshold: int = 2,
                        background=0,
                        foreground=1) -> np.ndarray:
    """
    Fill holes and cavities by iterative voting.

    A background voxel becomes foreground when the number of foreground
    voxels in the box around it reaches (box size - 1) / 2 plus the majority
    threshold. Iterations stop when no voxel changes.

    Args:
        image: 2D to 4D binary image
        radius: Half size of the voting box in each dimension
        max_iterations: Maximum number of iterations
        majority_threshold: Votes over 50% needed to flip a voxel
        background, foreground: Voxel values of background and foreground

    Returns:
        Filled image with the same type as ``image``
    """
    radius = [int(r) for r in radius]
    if len(radius) != image.ndim:
        raise ParameterError(f"RADIUS must have {image.ndim} elements, got {len(radius)}")

    box = np.ones(tuple(2 * r + 1 for r in radius), dtype=np.int64)
    birth_threshold = (box.size - 1) // 2 + majority_threshold

    result = image.copy()
    for iteration in range(max_iterations):
        votes = convolve((result == foreground).astype(np.int64), box, mode='nearest')
        flipped = (result == background) & (votes >= birth_threshold)
        changed = int(np.count_nonzero(flipped))
        logger.debug(f"Hole filling iteration {iteration + 1}: {changed} voxels filled")
        if changed == 0:
            break
        result[flipped] = foreground
    return result
