"""
Argument marshaling between callers and filter implementations.

Filters register each parameter they understand, by name and positional slot,
and then read it back with a default. Outputs go through a matching registry
so that every declared output is written exactly once.
"""

import numpy as np
import logging
from typing import Any, Dict, NamedTuple, Optional, Sequence, Tuple

from .exceptions import ParameterError, RegistryError

logger = logging.getLogger(__name__)

PARAMETER_KINDS = ('scalar', 'vector', 'array')


class Argument(NamedTuple):
    """A registered input argument."""
    name: str
    position: Optional[int]
    value: Any
    supplied: bool


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    return np.ndim(value) > 0 and np.size(value) == 0


def _cast(values: np.ndarray, dtype, label: str) -> np.ndarray:
    """Cast a numeric array to ``dtype``, flooring floats that become integers."""
    if dtype is None:
        return values

    target = np.dtype(dtype)
    if target.kind in 'iu' and values.dtype.kind == 'f':
        if not np.all(np.isfinite(values)):
            raise ParameterError(f"{label} must be finite, got {values.tolist()}")
        values = np.floor(values)
    if target.kind == 'u' and values.dtype.kind in 'if' and np.any(values < 0):
        raise ParameterError(f"{label} must be non-negative, got {values.tolist()}")

    # values outside the target range would wrap or overflow to inf
    if target.kind in 'iuf' and values.dtype.kind in 'iuf':
        info = np.iinfo(target) if target.kind in 'iu' else np.finfo(target)
        finite = values[np.isfinite(values)] if values.dtype.kind == 'f' else values
        if np.any(finite < info.min) or np.any(finite > info.max):
            raise ParameterError(
                f"{label} must be within [{info.min}, {info.max}] for type {target.name}, "
                f"got {values.tolist()}"
            )
    return values.astype(target)


class ArgumentRegistry:
    """
    Positional and named parameters of one filter invocation.

    Args:
        args: Positional parameter values, in the order the filter declares them
        kwargs: Named parameter values. Names are case-insensitive.
    """

    def __init__(self, args: Sequence = (), kwargs: Optional[Dict[str, Any]] = None):
        self._args = tuple(args)
        self._kwargs = {}
        for key, value in (kwargs or {}).items():
            lowered = key.lower()
            if lowered in self._kwargs:
                raise ParameterError(f"Parameter {key.upper()} given more than once")
            self._kwargs[lowered] = value
        self._registered: Dict[str, Argument] = {}

    @property
    def number_of_arguments(self) -> int:
        return len(self._args) + len(self._kwargs)

    def check_number_of_arguments(self, max_args: int, filter_name: str = "Filter") -> None:
        """Reject more positional values than the filter has parameters."""
        if len(self._args) > max_args:
            raise ParameterError(
                f"{filter_name} accepts at most {max_args} parameters, got {len(self._args)}"
            )

    def register(self, name: str, position: Optional[int] = None) -> Argument:
        """
        Register a parameter and capture the value the caller supplied for it.

        Args:
            name: Parameter name
            position: Index among the positional parameters, or None for keyword-only

        Returns:
            Handle to pass to ``read``
        """
        key = name.lower()
        if key in self._registered:
            raise RegistryError(f"Argument {name.upper()} registered twice")

        positional = position is not None and position < len(self._args)
        if positional and key in self._kwargs:
            raise ParameterError(f"Parameter {name.upper()} given both by position and by name")

        if positional:
            argument = Argument(key, position, self._args[position], True)
        else:
            argument = Argument(key, position, self._kwargs.get(key), key in self._kwargs)

        self._registered[key] = argument
        return argument

    def get_registered(self, name: str) -> Argument:
        """Return the handle of a registered parameter."""
        try:
            return self._registered[name.lower()]
        except KeyError:
            raise RegistryError(f"Argument {name.upper()} has not been registered") from None

    def check_unused_keywords(self, filter_name: str = "Filter") -> None:
        """Reject named parameters the filter never registered."""
        unknown = sorted(set(self._kwargs) - set(self._registered))
        if unknown:
            names = ', '.join(name.upper() for name in unknown)
            raise ParameterError(f"{filter_name} got unexpected parameters: {names}")

    def read(self,
             argument: Argument,
             default: Any = None,
             kind: str = 'scalar',
             dtype=None,
             length: Optional[int] = None,
             minimum: Optional[float] = None) -> Any:
        """
        Read a registered parameter, falling back to ``default`` when it is absent.

        ``None`` and empty arrays count as absent, so callers can skip a
        positional slot.

        Args:
            argument: Handle returned by ``register``
            default: Value returned when the parameter was not supplied
            kind: 'scalar', 'vector' or 'array'
            dtype: Type the value is cast to (None keeps the caller's type)
            length: Required number of elements for vectors. Scalars broadcast.
            minimum: Smallest accepted value

        Returns:
            Python/numpy scalar for 'scalar', numpy array otherwise
        """
        if argument.name not in self._registered:
            raise RegistryError(f"Argument {argument.name.upper()} has not been registered")
        if kind not in PARAMETER_KINDS:
            raise RegistryError(f"Unknown parameter kind {kind!r} for {argument.name.upper()}")

        if _is_empty(argument.value):
            return default

        label = argument.name.upper()
        values = np.asarray(argument.value)
        if values.dtype.kind not in 'biuf':
            raise ParameterError(
                f"{label} must be numeric, got {type(argument.value).__name__}"
            )

        if kind == 'scalar':
            if values.size != 1:
                raise ParameterError(f"{label} must be a scalar, got {values.size} elements")
            values = values.reshape(-1)
        elif kind == 'vector':
            if sum(extent != 1 for extent in values.shape) > 1:
                raise ParameterError(f"{label} must be a vector, got shape {values.shape}")
            values = values.reshape(-1)
            if length is not None:
                if values.size == 1:
                    values = np.repeat(values, length)
                elif values.size != length:
                    raise ParameterError(
                        f"{label} must have {length} elements, got {values.size}"
                    )

        values = _cast(values, dtype, label)

        if minimum is not None and values.dtype.kind != 'b' and np.any(values < minimum):
            raise ParameterError(f"{label} must be >= {minimum}, got {values.tolist()}")

        if kind == 'scalar':
            scalar = values[0]
            if dtype is None or any(dtype is builtin for builtin in (int, float, bool)):
                return scalar.item()
            return scalar
        return values


class FilterOutputs:
    """
    Declared outputs of one filter invocation.

    Args:
        names: Output names, in the order they are returned to the caller
    """

    def __init__(self, names: Sequence[str]):
        self._names = tuple(names)
        self._values: Dict[str, Any] = {}

    @property
    def names(self) -> Tuple[str, ...]:
        return self._names

    def write(self, name: str, value: Any) -> None:
        if name not in self._names:
            raise RegistryError(f"Output {name} has not been registered")
        if name in self._values:
            raise RegistryError(f"Output {name} written more than once")
        self._values[name] = value

    def collect(self) -> Tuple[Any, ...]:
        """Return the outputs in declared order, failing if any is missing."""
        missing = [name for name in self._names if name not in self._values]
        if missing:
            raise RegistryError(f"Outputs never written: {', '.join(missing)}")
        return tuple(self._values[name] for name in self._names)
