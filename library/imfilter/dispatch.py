"""
Run-time filter selection.

``imfilter`` checks the input image, finds the filter for its rank and
element type, binds the caller's parameters and runs the filter once.
"""

import numpy as np
from typing import Any, Dict, Optional, Sequence, Tuple, Union
import logging

from .arguments import ArgumentRegistry, FilterOutputs
from .catalog import (
    DISPATCH_TABLE,
    IMAGE_DTYPE,
    RANK,
    REQUIRED,
    OperationDescriptor,
    get_descriptor,
    output_dtype,
)
from .exceptions import ParameterError, UnsupportedImageError
from .header import ImageHeader, inspect_image

logger = logging.getLogger(__name__)

_ABSENT = object()


def select_filter(filter_type: str, header: ImageHeader) -> OperationDescriptor:
    """
    Find the filter that processes images with this header.

    Raises:
        InvalidFilterError: If the filter name is unknown
        UnsupportedImageError: If the filter does not accept the image rank or type
    """
    descriptor = get_descriptor(filter_type)
    key = (descriptor.canonical_name, header.rank, header.type_tag)
    if key not in DISPATCH_TABLE:
        raise UnsupportedImageError(descriptor.unsupported_message(header.rank, header.type_tag))
    return DISPATCH_TABLE[key]


def bind_parameters(descriptor: OperationDescriptor,
                    header: ImageHeader,
                    params: Sequence = (),
                    named_params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Match the caller's positional and named values to the filter parameters.

    Absent values take the parameter default, which may depend on the image
    header or on parameters bound before it.

    Returns:
        Dictionary mapping parameter name to value
    """
    registry = ArgumentRegistry(params, named_params)
    registry.check_number_of_arguments(len(descriptor.parameters), descriptor.canonical_name)
    arguments = [registry.register(p.name, position)
                 for position, p in enumerate(descriptor.parameters)]
    registry.check_unused_keywords(descriptor.canonical_name)

    bound: Dict[str, Any] = {}
    for parameter, argument in zip(descriptor.parameters, arguments):
        dtype = header.dtype if parameter.dtype is IMAGE_DTYPE else parameter.dtype
        length = header.rank if parameter.length is RANK else parameter.length
        value = registry.read(argument, _ABSENT, parameter.kind, dtype, length, parameter.minimum)

        if value is _ABSENT:
            default = parameter.default
            if default is REQUIRED:
                raise ParameterError(
                    f"{descriptor.canonical_name} requires parameter {parameter.name.upper()}"
                )
            if callable(default):
                value = default(header, bound)
            elif parameter.dtype is IMAGE_DTYPE:
                value = header.dtype.type(default)
            else:
                value = default
        bound[parameter.name] = value
    return bound


def execute(descriptor: OperationDescriptor,
            data: np.ndarray,
            header: ImageHeader,
            bound: Dict[str, Any]) -> Tuple[np.ndarray, ...]:
    """Run a filter once and return its outputs in declared order."""
    result = descriptor.run(data, header, **bound)
    if not isinstance(result, dict):
        result = {descriptor.outputs[0].name: result}

    outputs = FilterOutputs([output.name for output in descriptor.outputs])
    declared = {output.name: output for output in descriptor.outputs}
    for name, value in result.items():
        if name in declared:
            value = np.asarray(value).astype(output_dtype(declared[name], header), copy=False)
        outputs.write(name, value)
    return outputs.collect()


def imfilter(filter_type: str, image: Any, *params, **named_params) -> Union[np.ndarray, Tuple[np.ndarray, ...]]:
    """
    Run an N-dimensional image filter selected by name.

    Args:
        filter_type: Short name ('skel', 'dandist', 'signdandist', 'maudist',
            'appsigndist', 'bwdilate', 'bwerode', 'advess', 'hesves',
            'median', 'mrf', 'voteholefill', 'canny') or canonical name
            (e.g. 'MedianImageFilter') of the filter
        image: 2D to 4D numpy array, MetaImage or {'data', 'axis'} record
        *params: Filter parameters in their declared order. None skips a
            parameter and keeps its default.
        **named_params: Filter parameters by name (case-insensitive)

    Returns:
        The output array, or a tuple of arrays for filters with several
        outputs ('dandist', 'signdandist' and 'canny')

    Raises:
        InvalidFilterError: Unknown filter name
        UnsupportedImageError: Image rank or type not accepted by the filter
        ParameterError: Malformed, surplus or missing parameters

    Example:
        >>> b = imfilter('bwdilate', mask, 2)
        >>> dist, voronoi, offsets = imfilter('dandist', mask)
    """
    data, header = inspect_image(image)
    descriptor = select_filter(filter_type, header)
    bound = bind_parameters(descriptor, header, params, named_params)

    logger.info(f"Running {descriptor.canonical_name} on {header.rank}D "
                f"{header.type_tag} image of size {header.size}")
    logger.debug(f"Parameters: {bound}")

    outputs = execute(descriptor, data, header, bound)
    if len(outputs) == 1:
        return outputs[0]
    return outputs
