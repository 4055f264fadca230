"""
imfilter Package

N-dimensional image filters selected by name at run time: skeletonization,
distance maps, binary morphology, vessel enhancement, median, MRF
segmentation, hole filling and Canny edges.
"""

__version__ = "1.0.0"

from .dispatch import imfilter
from .catalog import get_descriptor, list_filters, iter_supported
from .header import MetaImage, ImageHeader, inspect_image
from .exceptions import (
    ImFilterError,
    InvalidFilterError,
    UnsupportedImageError,
    ParameterError,
    RegistryError,
)
from .volume_loader import load_image, save_image, load_bmp_stack

__all__ = [
    'imfilter',
    'get_descriptor',
    'list_filters',
    'iter_supported',
    'MetaImage',
    'ImageHeader',
    'inspect_image',
    'ImFilterError',
    'InvalidFilterError',
    'UnsupportedImageError',
    'ParameterError',
    'RegistryError',
    'load_image',
    'save_image',
    'load_bmp_stack'
]
