"""
Image header inspection.

Filters accept either a plain numpy array or an image carrying spatial
metadata (voxel spacing and origin). This module normalises both forms into
the data array plus an ``ImageHeader`` without copying the pixel buffer.
"""

import numpy as np
import logging
from typing import Any, Mapping, NamedTuple, Optional, Sequence, Tuple

from .exceptions import UnsupportedImageError

logger = logging.getLogger(__name__)

MIN_RANK = 2
MAX_RANK = 4

# element types the dispatcher knows about, by numpy dtype name
TYPE_TAGS = (
    'bool',
    'float64',
    'float32',
    'int8',
    'uint8',
    'int16',
    'uint16',
    'int32',
    'uint32',
    'int64',
    'uint64',
)
FLOAT_TAGS = ('float64', 'float32')
SIGNED_TAGS = ('float64', 'float32', 'int8', 'int16', 'int32', 'int64')


class ImageHeader(NamedTuple):
    """Rank, element type and geometry of an input image."""
    rank: int
    dtype: np.dtype
    type_tag: str
    size: Tuple[int, ...]
    spacing: Tuple[float, ...]
    origin: Tuple[float, ...]


class MetaImage:
    """
    Image array with per-axis voxel spacing and origin.

    Args:
        data: N-dimensional image array
        spacing: Voxel size along each axis (default 1.0)
        origin: Real world coordinates of the first voxel (default 0.0)
    """

    def __init__(self,
                 data: np.ndarray,
                 spacing: Optional[Sequence[float]] = None,
                 origin: Optional[Sequence[float]] = None):
        self.data = np.asarray(data)
        ndim = self.data.ndim
        self.spacing = tuple(float(s) for s in spacing) if spacing is not None else (1.0,) * ndim
        self.origin = tuple(float(o) for o in origin) if origin is not None else (0.0,) * ndim

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> 'MetaImage':
        """
        Build a MetaImage from a ``{'data': array, 'axis': [...]}`` record.

        Each axis entry may carry 'size', 'spacing' and 'origin' (or 'min',
        the name used by SCI MAT files). Other fields are ignored.
        """
        if 'data' not in record:
            raise UnsupportedImageError("Image record has no 'data' field")
        data = np.asarray(record['data'])
        axes = record.get('axis')
        if axes is None:
            return cls(data)

        axes = list(axes)
        if len(axes) != data.ndim:
            raise UnsupportedImageError(
                f"Image record has {len(axes)} axis entries for {data.ndim}D data"
            )

        spacing, origin = [], []
        for i, axis in enumerate(axes):
            if 'size' in axis and int(axis['size']) != data.shape[i]:
                raise UnsupportedImageError(
                    f"Axis {i} size {axis['size']} does not match data size {data.shape[i]}"
                )
            spacing.append(axis.get('spacing', 1.0))
            origin.append(axis.get('origin', axis.get('min', 0.0)))
        return cls(data, spacing=spacing, origin=origin)

    def __repr__(self) -> str:
        return (f"MetaImage(shape={self.data.shape}, dtype={self.data.dtype}, "
                f"spacing={self.spacing}, origin={self.origin})")


def type_tag_of(dtype: np.dtype) -> str:
    """Return the dispatcher's type tag for a numpy dtype."""
    tag = np.dtype(dtype).name
    if tag not in TYPE_TAGS:
        raise UnsupportedImageError(f"Input image has invalid type: {tag}")
    return tag


def inspect_image(image: Any) -> Tuple[np.ndarray, ImageHeader]:
    """
    Extract the data array and header of an input image.

    Args:
        image: numpy array, MetaImage, or mapping with 'data' and 'axis' fields

    Returns:
        Tuple of (data, header). ``data`` is a view of the caller's buffer.

    Raises:
        UnsupportedImageError: If the rank is not 2 to 4, the element type is not
            supported or the spatial metadata is inconsistent
    """
    if isinstance(image, MetaImage):
        meta = image
    elif isinstance(image, Mapping):
        meta = MetaImage.from_record(image)
    elif isinstance(image, (str, bytes)):
        raise UnsupportedImageError("Input image must be an array, not a string")
    else:
        meta = None

    data = meta.data if meta is not None else np.asarray(image)

    rank = data.ndim
    if rank < MIN_RANK or rank > MAX_RANK:
        raise UnsupportedImageError(
            f"Input image can only have {MIN_RANK} to {MAX_RANK} dimensions, got {rank}"
        )

    type_tag = type_tag_of(data.dtype)

    if meta is not None:
        spacing, origin = meta.spacing, meta.origin
        if len(spacing) != rank or len(origin) != rank:
            raise UnsupportedImageError(
                f"Spacing and origin must have {rank} elements, got {len(spacing)} and {len(origin)}"
            )
        if any(not np.isfinite(s) or s <= 0 for s in spacing):
            raise UnsupportedImageError(f"Voxel spacing must be positive, got {spacing}")
    else:
        spacing, origin = (1.0,) * rank, (0.0,) * rank

    header = ImageHeader(
        rank=rank,
        dtype=data.dtype,
        type_tag=type_tag,
        size=tuple(data.shape),
        spacing=tuple(spacing),
        origin=tuple(origin),
    )
    logger.debug(f"Inspected image: {header}")
    return data, header
