"""
Catalog of the filters ``imfilter`` can run.

Each filter is described once by an ``OperationDescriptor``: its names, its
parameters in positional order with their defaults, the image ranks and
element types it accepts, its outputs and the function that runs it. The
flat dispatch table keyed by (canonical name, rank, type tag) is derived
from the descriptors at import time.
"""

import numpy as np
from typing import Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Tuple
import logging

from .exceptions import InvalidFilterError
from .header import FLOAT_TAGS, ImageHeader, MAX_RANK, MIN_RANK, SIGNED_TAGS, TYPE_TAGS
from .distance import (
    approximate_signed_distance_map,
    danielsson_distance_map,
    signed_danielsson_distance_map,
    signed_maurer_distance_map,
)
from .edges import canny_edges
from .morphology import binary_dilate, binary_erode, median_filter_image, skeletonize_volume
from .segmentation import default_mrf_weights, mrf_segmentation, voting_hole_filling
from .vesselness import hessian_vesselness, vessel_enhancing_diffusion

logger = logging.getLogger(__name__)


class _Sentinel:
    def __init__(self, name: str):
        self.name = name

    def __repr__(self) -> str:
        return self.name


REQUIRED = _Sentinel('REQUIRED')        # parameter has no default
RANK = _Sentinel('RANK')                # vector length equals the image rank
IMAGE_DTYPE = _Sentinel('IMAGE_DTYPE')  # cast to the image element type
SAME = _Sentinel('SAME')                # output has the image element type

ALL_RANKS = tuple(range(MIN_RANK, MAX_RANK + 1))


class Parameter(NamedTuple):
    """
    Filter parameter.

    ``default`` is a constant, ``REQUIRED``, or a callable taking the image
    header and the parameters bound so far.
    """
    name: str
    kind: str
    default: Any
    dtype: Any = None
    length: Any = None
    minimum: Optional[float] = None


class Output(NamedTuple):
    name: str
    dtype: Any


class OperationDescriptor(NamedTuple):
    """Everything the dispatcher needs to know about one filter."""
    short_name: str
    canonical_name: str
    description: str
    parameters: Tuple[Parameter, ...]
    ranks: Tuple[int, ...]
    type_tags: Tuple[str, ...]
    outputs: Tuple[Output, ...]
    run: Callable[..., Any]
    rank_error: str
    type_error: str
    honors_spacing: bool = False

    def supports(self, rank: int, type_tag: str) -> bool:
        return rank in self.ranks and type_tag in self.type_tags

    def unsupported_message(self, rank: int, type_tag: str) -> str:
        """Reason why this filter rejects an image, rank first."""
        if rank not in self.ranks:
            return self.rank_error
        return self.type_error


def output_dtype(output: Output, header: ImageHeader) -> np.dtype:
    """Element type of an output for a given input image."""
    if output.dtype is SAME:
        return header.dtype
    return np.dtype(output.dtype)


def _zeros(header: ImageHeader, bound: Dict[str, Any]) -> np.ndarray:
    return np.zeros(header.rank, dtype=np.int64)


def _ones(header: ImageHeader, bound: Dict[str, Any]) -> np.ndarray:
    return np.ones(header.rank, dtype=np.int64)


def _zero_variance(header: ImageHeader, bound: Dict[str, Any]) -> np.ndarray:
    return np.zeros(header.rank, dtype=np.float64)


def _default_maximum_error(header: ImageHeader, bound: Dict[str, Any]) -> np.ndarray:
    return np.full(header.rank, 0.01)


def _largest_value(header: ImageHeader, bound: Dict[str, Any]):
    return header.dtype.type(np.finfo(header.dtype).max)


def _half_upper_threshold(header: ImageHeader, bound: Dict[str, Any]):
    return header.dtype.type(bound['uppthr'] / 2)


def _default_weights(header: ImageHeader, bound: Dict[str, Any]) -> np.ndarray:
    return default_mrf_weights(header.rank)


def _rank_only(rank: int, name: str) -> str:
    return f"{name} only accepts {rank}D input images"


def _run_skeleton(data, header):
    return skeletonize_volume(data)


def _run_danielsson(data, header):
    return danielsson_distance_map(data)


def _run_signed_danielsson(data, header):
    return signed_danielsson_distance_map(data)


def _run_maurer(data, header):
    return signed_maurer_distance_map(data, header.spacing)


def _run_approximate(data, header):
    return approximate_signed_distance_map(data, header.spacing)


def _run_dilate(data, header, radius, foreground):
    return binary_dilate(data, radius, foreground)


def _run_erode(data, header, radius, foreground):
    return binary_erode(data, radius, foreground)


def _run_diffusion(data, header, sigmamin, sigmamax, numsigmasteps, issigmasteplog,
                   numiterations, wstrength, sensitivity, timestep, epsilon):
    return vessel_enhancing_diffusion(
        data,
        sigma_min=sigmamin,
        sigma_max=sigmamax,
        num_sigma_steps=numsigmasteps,
        is_sigma_step_log=issigmasteplog,
        num_iterations=numiterations,
        w_strength=wstrength,
        sensitivity=sensitivity,
        time_step=timestep,
        epsilon=epsilon,
        spacing=header.spacing,
    )


def _run_vesselness(data, header, sigmamin, sigmamax, numsigmasteps, issigmasteplog):
    return hessian_vesselness(
        data,
        sigma_min=sigmamin,
        sigma_max=sigmamax,
        num_sigma_steps=numsigmasteps,
        is_sigma_step_log=issigmasteplog,
        spacing=header.spacing,
    )


def _run_median(data, header, radius):
    return median_filter_image(data, radius)


def _run_mrf(data, header, mu, weights, smooth, niter, tol):
    return mrf_segmentation(data, mu, weights, smoothing=smooth,
                            max_iterations=niter, tolerance=tol)


def _run_hole_filling(data, header, radius, maxiter, thr, background, foreground):
    return voting_hole_filling(data, radius, max_iterations=maxiter,
                               majority_threshold=thr,
                               background=background, foreground=foreground)


def _run_canny(data, header, var, uppthr, lowthr, maxerr):
    return canny_edges(data, var, uppthr, lowthr, maxerr, spacing=header.spacing)


_SIGMA_PARAMETERS = (
    Parameter('sigmamin', 'scalar', 0.2, float),
    Parameter('sigmamax', 'scalar', 2.0, float),
    Parameter('numsigmasteps', 'scalar', 10, int, minimum=1),
    Parameter('issigmasteplog', 'scalar', True, bool),
)

_MORPHOLOGY_PARAMETERS = (
    Parameter('radius', 'scalar', 0, int, minimum=0),
    Parameter('foreground', 'scalar', 1, IMAGE_DTYPE),
)

_DISTANCE_OUTPUTS = (
    Output('B', np.float64),
    Output('V', SAME),
    Output('W', np.int64),
)

_SIGNED_DISTANCE_OUTPUTS = (
    Output('B', np.float32),
    Output('V', SAME),
    Output('W', np.int64),
)


_CATALOG = (
    OperationDescriptor(
        short_name='skel',
        canonical_name='BinaryThinningImageFilter3D',
        description='Skeletonize a 3D segmentation by thinning',
        parameters=(),
        ranks=(3,),
        type_tags=TYPE_TAGS,
        outputs=(Output('B', SAME),),
        run=_run_skeleton,
        rank_error=_rank_only(3, 'BinaryThinningImageFilter3D'),
        type_error='',
    ),
    OperationDescriptor(
        short_name='dandist',
        canonical_name='DanielssonDistanceMapImageFilter',
        description='Unsigned distance map, Voronoi partition and offsets to the closest object voxel',
        parameters=(),
        ranks=ALL_RANKS,
        type_tags=TYPE_TAGS,
        outputs=_DISTANCE_OUTPUTS,
        run=_run_danielsson,
        rank_error='',
        type_error='',
    ),
    OperationDescriptor(
        short_name='signdandist',
        canonical_name='SignedDanielssonDistanceMapImageFilter',
        description='Signed distance map, Voronoi partition and offsets to the closest object voxel',
        parameters=(),
        ranks=ALL_RANKS,
        type_tags=TYPE_TAGS,
        outputs=_SIGNED_DISTANCE_OUTPUTS,
        run=_run_signed_danielsson,
        rank_error='',
        type_error='',
    ),
    OperationDescriptor(
        short_name='maudist',
        canonical_name='SignedMaurerDistanceMapImageFilter',
        description='Signed Euclidean distance to the object boundary in real world units',
        parameters=(),
        ranks=ALL_RANKS,
        type_tags=tuple(tag for tag in TYPE_TAGS if tag != 'bool'),
        outputs=(Output('B', np.float32),),
        run=_run_maurer,
        rank_error='',
        type_error='SignedMaurerDistanceMapImageFilter does not accept input images with type bool',
        honors_spacing=True,
    ),
    OperationDescriptor(
        short_name='appsigndist',
        canonical_name='ApproximateSignedDistanceMapImageFilter',
        description='Chamfer approximation of the signed distance map',
        parameters=(),
        ranks=ALL_RANKS,
        type_tags=TYPE_TAGS,
        outputs=(Output('B', np.float32),),
        run=_run_approximate,
        rank_error='',
        type_error='',
        honors_spacing=True,
    ),
    OperationDescriptor(
        short_name='bwdilate',
        canonical_name='BinaryDilateImageFilter',
        description='Binary dilation with a ball structuring element',
        parameters=_MORPHOLOGY_PARAMETERS,
        ranks=ALL_RANKS,
        type_tags=TYPE_TAGS,
        outputs=(Output('B', SAME),),
        run=_run_dilate,
        rank_error='',
        type_error='',
    ),
    OperationDescriptor(
        short_name='bwerode',
        canonical_name='BinaryErodeImageFilter',
        description='Binary erosion with a ball structuring element',
        parameters=_MORPHOLOGY_PARAMETERS,
        ranks=ALL_RANKS,
        type_tags=TYPE_TAGS,
        outputs=(Output('B', SAME),),
        run=_run_erode,
        rank_error='',
        type_error='',
    ),
    OperationDescriptor(
        short_name='advess',
        canonical_name='AnisotropicDiffusionVesselEnhancementImageFilter',
        description='Vessel enhancing anisotropic diffusion',
        parameters=_SIGMA_PARAMETERS + (
            Parameter('numiterations', 'scalar', 1, int, minimum=0),
            Parameter('wstrength', 'scalar', 25.0, float),
            Parameter('sensitivity', 'scalar', 5.0, float),
            Parameter('timestep', 'scalar', 1e-3, float),
            Parameter('epsilon', 'scalar', 1e-2, float),
        ),
        ranks=(3,),
        type_tags=SIGNED_TAGS,
        outputs=(Output('B', SAME),),
        run=_run_diffusion,
        rank_error=_rank_only(3, 'AnisotropicDiffusionVesselEnhancementImageFilter'),
        type_error=('AnisotropicDiffusionVesselEnhancementImageFilter only accepts '
                    'input images with signed type'),
        honors_spacing=True,
    ),
    OperationDescriptor(
        short_name='hesves',
        canonical_name='MultiScaleHessianSmoothed3DToVesselnessMeasureImageFilter',
        description='Multiscale Hessian vesselness measure',
        parameters=_SIGMA_PARAMETERS,
        ranks=(3,),
        type_tags=TYPE_TAGS,
        outputs=(Output('B', np.float64),),
        run=_run_vesselness,
        rank_error=_rank_only(3, 'MultiScaleHessianSmoothed3DToVesselnessMeasureImageFilter'),
        type_error='',
        honors_spacing=True,
    ),
    OperationDescriptor(
        short_name='median',
        canonical_name='MedianImageFilter',
        description='Median of a box neighbourhood',
        parameters=(
            Parameter('radius', 'vector', _zeros, int, RANK, minimum=0),
        ),
        ranks=ALL_RANKS,
        type_tags=TYPE_TAGS,
        outputs=(Output('B', SAME),),
        run=_run_median,
        rank_error='',
        type_error='',
    ),
    OperationDescriptor(
        short_name='mrf',
        canonical_name='MRFImageFilter',
        description='Markov Random Field segmentation from class centroids',
        parameters=(
            Parameter('mu', 'vector', REQUIRED, IMAGE_DTYPE),
            Parameter('weights', 'array', _default_weights, np.float64),
            Parameter('smooth', 'scalar', 1e-7, float, minimum=0),
            Parameter('niter', 'scalar', 100, int, minimum=0),
            Parameter('tol', 'scalar', 1e-7, float, minimum=0),
        ),
        ranks=ALL_RANKS,
        type_tags=TYPE_TAGS,
        outputs=(Output('B', np.uint8),),
        run=_run_mrf,
        rank_error='',
        type_error='',
    ),
    OperationDescriptor(
        short_name='voteholefill',
        canonical_name='VotingBinaryIterativeHoleFillingImageFilter',
        description='Fill holes and cavities by iterative voting',
        parameters=(
            Parameter('radius', 'vector', _ones, int, RANK, minimum=0),
            Parameter('maxiter', 'scalar', 1, int, minimum=0),
            Parameter('thr', 'scalar', 2, int),
            Parameter('background', 'scalar', 0, IMAGE_DTYPE),
            Parameter('foreground', 'scalar', 1, IMAGE_DTYPE),
        ),
        ranks=ALL_RANKS,
        type_tags=TYPE_TAGS,
        outputs=(Output('B', SAME),),
        run=_run_hole_filling,
        rank_error='',
        type_error='',
    ),
    OperationDescriptor(
        short_name='canny',
        canonical_name='CannyEdgeDetectionImageFilter',
        description='Canny edge detector',
        parameters=(
            Parameter('var', 'vector', _zero_variance, np.float64, RANK, minimum=0),
            Parameter('uppthr', 'scalar', _largest_value, IMAGE_DTYPE),
            Parameter('lowthr', 'scalar', _half_upper_threshold, IMAGE_DTYPE),
            Parameter('maxerr', 'vector', _default_maximum_error, np.float64, RANK),
        ),
        ranks=ALL_RANKS,
        type_tags=FLOAT_TAGS,
        outputs=(Output('B', SAME), Output('C', SAME)),
        run=_run_canny,
        rank_error='',
        type_error=('CannyEdgeDetectionImageFilter only accepts input images with '
                    'floating type (float64 or float32)'),
        honors_spacing=True,
    ),
)

_ALIASES: Dict[str, OperationDescriptor] = {}
for _descriptor in _CATALOG:
    _ALIASES[_descriptor.short_name] = _descriptor
    _ALIASES[_descriptor.canonical_name] = _descriptor

DISPATCH_TABLE: Dict[Tuple[str, int, str], OperationDescriptor] = {
    (descriptor.canonical_name, rank, tag): descriptor
    for descriptor in _CATALOG
    for rank in descriptor.ranks
    for tag in descriptor.type_tags
}


def get_descriptor(name: str) -> OperationDescriptor:
    """
    Look up a filter by short or canonical name.

    Raises:
        InvalidFilterError: If no filter has that name
    """
    if not isinstance(name, str) or name not in _ALIASES:
        raise InvalidFilterError(name)
    return _ALIASES[name]


def list_filters() -> List[OperationDescriptor]:
    """All filters, in catalog order."""
    return list(_CATALOG)


def iter_supported() -> Iterator[Tuple[str, int, str]]:
    """Yield every supported (canonical name, rank, type tag) triple."""
    for descriptor in _CATALOG:
        for rank in descriptor.ranks:
            for tag in descriptor.type_tags:
                yield descriptor.canonical_name, rank, tag
