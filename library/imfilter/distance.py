"""
Distance maps of binary segmentations.

Exact Euclidean maps (Danielsson and Maurer style) come from
``scipy.ndimage.distance_transform_edt``; the approximate signed map is a
Chamfer-style path distance computed with ``skimage.graph.MCP_Geometric``.

When a map has no object to measure from (all background), every distance is
the largest finite value of the output type, and its negation for signed maps
of images that are all object.
"""

import numpy as np
from scipy.ndimage import binary_erosion, distance_transform_edt, generate_binary_structure
from skimage.graph import MCP_Geometric
from typing import Dict, Optional, Sequence, Tuple
import logging

logger = logging.getLogger(__name__)


def _largest(dtype) -> float:
    return float(np.finfo(dtype).max)


def _nearest_object(mask: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Distance in voxels to, and index of, the nearest non-zero voxel of ``mask``."""
    distance, indices = distance_transform_edt(~mask, return_indices=True)
    return distance, indices


def _voronoi_and_offsets(image: np.ndarray, indices: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    voronoi = image[tuple(indices)]
    offsets = (indices - np.indices(image.shape)).astype(np.int64)
    return voronoi, offsets


def danielsson_distance_map(image: np.ndarray) -> Dict[str, np.ndarray]:
    """
    Unsigned Euclidean distance to the closest object voxel, in voxel units.

    Args:
        image: 2D to 4D array, non-zero voxels are object

    Returns:
        Dictionary with
            'B': float64 distance map
            'V': Voronoi partition, the image value of the closest object voxel
            'W': int64 array of shape (ndim,) + image.shape with the index
                offset from each voxel to its closest object voxel
    """
    mask = image != 0
    if not mask.any():
        logger.warning("Image has no object voxels, distance map is undefined")
        return {
            'B': np.full(image.shape, _largest(np.float64)),
            'V': np.zeros_like(image),
            'W': np.zeros((image.ndim,) + image.shape, dtype=np.int64),
        }

    distance, indices = _nearest_object(mask)
    voronoi, offsets = _voronoi_and_offsets(image, indices)
    return {'B': distance.astype(np.float64), 'V': voronoi, 'W': offsets}


def signed_danielsson_distance_map(image: np.ndarray) -> Dict[str, np.ndarray]:
    """
    Signed Euclidean distance map, in voxel units.

    Background voxels hold the distance to the closest object voxel, object
    voxels minus the distance to the closest background voxel. V and W are
    the same as for ``danielsson_distance_map``.
    """
    mask = image != 0
    if not mask.any() or mask.all():
        sign = 1.0 if not mask.any() else -1.0
        logger.warning("Image has no boundary between object and background")
        voronoi = np.zeros_like(image) if not mask.any() else image.copy()
        return {
            'B': np.full(image.shape, sign * _largest(np.float32), dtype=np.float32),
            'V': voronoi,
            'W': np.zeros((image.ndim,) + image.shape, dtype=np.int64),
        }

    outside, indices = _nearest_object(mask)
    inside = distance_transform_edt(mask)
    signed = np.where(mask, -inside, outside)
    voronoi, offsets = _voronoi_and_offsets(image, indices)
    return {'B': signed.astype(np.float32), 'V': voronoi, 'W': offsets}


def signed_maurer_distance_map(image: np.ndarray,
                               spacing: Optional[Sequence[float]] = None) -> np.ndarray:
    """
    Signed Euclidean distance to the object boundary, in real world units.

    The boundary is the set of object voxels with a face-connected background
    neighbour. Boundary voxels are 0, object voxels negative and background
    voxels positive.

    Args:
        image: 2D to 4D array, non-zero voxels are object
        spacing: Voxel size along each axis (default 1.0)

    Returns:
        float32 distance map
    """
    mask = image != 0
    if not mask.any():
        logger.warning("Image has no object voxels, distance map is undefined")
        return np.full(image.shape, _largest(np.float32), dtype=np.float32)

    structure = generate_binary_structure(image.ndim, 1)
    boundary = mask & ~binary_erosion(mask, structure=structure, border_value=1)
    if not boundary.any():
        logger.warning("Image is all object, distance map is undefined")
        return np.full(image.shape, -_largest(np.float32), dtype=np.float32)

    distance = distance_transform_edt(~boundary, sampling=spacing)
    return np.where(mask, -distance, distance).astype(np.float32)


def _path_distance(seeds: np.ndarray, spacing: Sequence[float]) -> np.ndarray:
    """Shortest path length from any seed voxel through the full 3^n neighbourhood."""
    mcp = MCP_Geometric(np.ones(seeds.shape), fully_connected=True, sampling=tuple(spacing))
    costs, _ = mcp.find_costs([tuple(index) for index in np.argwhere(seeds)])
    return costs


def approximate_signed_distance_map(image: np.ndarray,
                                    spacing: Optional[Sequence[float]] = None) -> np.ndarray:
    """
    Chamfer approximation of the signed distance map.

    Voxels with value > 0.5 are inside. Distances propagate through the full
    neighbourhood of each voxel and are shifted by half a voxel so that the
    zero level lies halfway between inside and outside voxels. Faster but
    less exact than the Euclidean maps.

    Args:
        image: 2D to 4D array with 1 inside and 0 outside
        spacing: Voxel size along each axis (default 1.0)

    Returns:
        float32 distance map, negative inside
    """
    spacing = tuple(spacing) if spacing is not None else (1.0,) * image.ndim
    inside = image.astype(np.float64) > 0.5
    if not inside.any():
        logger.warning("Image has no inside voxels, distance map is undefined")
        return np.full(image.shape, _largest(np.float32), dtype=np.float32)
    if inside.all():
        logger.warning("Image has no outside voxels, distance map is undefined")
        return np.full(image.shape, -_largest(np.float32), dtype=np.float32)

    half_step = 0.5 * min(spacing)
    to_inside = _path_distance(inside, spacing)
    to_outside = _path_distance(~inside, spacing)
    signed = np.where(inside, half_step - to_outside, to_inside - half_step)
    return signed.astype(np.float32)
