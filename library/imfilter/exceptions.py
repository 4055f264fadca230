"""
Custom exceptions for ``imfilter``.
"""


class ImFilterError(Exception):
    """
    Base exception for all exceptions raised by the dispatch layer
    """
    pass


class InvalidFilterError(ImFilterError, ValueError):
    """
    Exception raised when the requested filter name is not in the catalog
    """
    def __init__(self, filter_type):
        self.filter_type = filter_type
        super().__init__(f"Invalid filter type: {filter_type!r}")


class UnsupportedImageError(ImFilterError, ValueError):
    """
    Exception raised when an input image has a rank, element type or metadata
    that the requested filter cannot process
    """
    pass


class ParameterError(ImFilterError, ValueError):
    """
    Exception raised when a filter parameter has the wrong type, size or value
    """
    pass


class RegistryError(ImFilterError, LookupError):
    """
    Exception raised when an argument or output is looked up before it was registered.

    This is a programming error in a filter definition, not a user error.
    """
    pass
