"""
Tests for argument registration and reading.
"""

import numpy as np
import pytest

from imfilter.arguments import ArgumentRegistry, FilterOutputs
from imfilter.exceptions import ParameterError, RegistryError


def test_positional_and_named_values():
    registry = ArgumentRegistry([3], {'FOREGROUND': 2})
    radius = registry.register('radius', 0)
    foreground = registry.register('foreground', 1)

    assert registry.number_of_arguments == 2
    assert registry.read(radius, 0, dtype=int) == 3
    # names are case-insensitive
    assert registry.read(foreground, 1, dtype=int) == 2


def test_absent_none_and_empty_take_default():
    registry = ArgumentRegistry([None, []])
    first = registry.register('first', 0)
    second = registry.register('second', 1)
    third = registry.register('third', 2)

    assert registry.read(first, 7) == 7
    assert registry.read(second, 8) == 8
    assert registry.read(third, 9) == 9
    assert not third.supplied


def test_scalar_cast_floors_floats():
    registry = ArgumentRegistry([2.7])
    radius = registry.register('radius', 0)
    value = registry.read(radius, 0, dtype=int)
    assert value == 2
    assert isinstance(value, int)


def test_scalar_rejects_several_elements():
    registry = ArgumentRegistry([[1, 2]])
    radius = registry.register('radius', 0)
    with pytest.raises(ParameterError, match="RADIUS must be a scalar"):
        registry.read(radius, 0, dtype=int)


def test_vector_broadcasts_scalar_and_checks_length():
    registry = ArgumentRegistry([2, [1, 2]])
    first = registry.register('first', 0)
    second = registry.register('second', 1)

    np.testing.assert_array_equal(registry.read(first, None, 'vector', int, 3), [2, 2, 2])
    with pytest.raises(ParameterError, match="SECOND must have 3 elements"):
        registry.read(second, None, 'vector', int, 3)


def test_vector_squeezes_column_shape():
    registry = ArgumentRegistry([np.array([[1.0], [2.0], [3.0]])])
    var = registry.register('var', 0)
    value = registry.read(var, None, 'vector', np.float64, 3)
    assert value.shape == (3,)


def test_vector_rejects_matrix():
    registry = ArgumentRegistry([np.ones((2, 2))])
    var = registry.register('var', 0)
    with pytest.raises(ParameterError, match="must be a vector"):
        registry.read(var, None, 'vector', np.float64)


def test_array_keeps_shape():
    weights = np.ones((3, 3, 3))
    registry = ArgumentRegistry([], {'weights': weights})
    argument = registry.register('weights', 1)
    assert registry.read(argument, None, 'array', np.float64).shape == (3, 3, 3)


def test_non_numeric_value_rejected():
    registry = ArgumentRegistry(['abc'])
    radius = registry.register('radius', 0)
    with pytest.raises(ParameterError, match="RADIUS must be numeric"):
        registry.read(radius, 0)


def test_minimum_and_unsigned_checks():
    registry = ArgumentRegistry([-1, -2])
    radius = registry.register('radius', 0)
    foreground = registry.register('foreground', 1)
    with pytest.raises(ParameterError, match="RADIUS must be >= 0"):
        registry.read(radius, 0, dtype=int, minimum=0)
    with pytest.raises(ParameterError, match="FOREGROUND must be non-negative"):
        registry.read(foreground, 1, dtype=np.uint8)


def test_values_outside_target_type_rejected():
    registry = ArgumentRegistry([300, 1e40, [10, 70000]])
    foreground = registry.register('foreground', 0)
    upper = registry.register('uppthr', 1)
    mu = registry.register('mu', 2)
    with pytest.raises(ParameterError, match="FOREGROUND must be within \\[0, 255\\]"):
        registry.read(foreground, 1, dtype=np.dtype(np.uint8))
    with pytest.raises(ParameterError, match="UPPTHR must be within"):
        registry.read(upper, 0.0, dtype=np.dtype(np.float32))
    with pytest.raises(ParameterError, match="MU must be within"):
        registry.read(mu, None, kind='vector', dtype=np.dtype(np.int16))
    assert registry.read(upper, 0.0, dtype=np.float64) == 1e40


def test_image_dtype_scalar_is_numpy_scalar():
    registry = ArgumentRegistry([5])
    foreground = registry.register('foreground', 0)
    value = registry.read(foreground, 1, dtype=np.dtype(np.int16))
    assert value.dtype == np.int16


def test_too_many_positional_values():
    registry = ArgumentRegistry([1, 2, 3])
    with pytest.raises(ParameterError, match="accepts at most 2 parameters"):
        registry.check_number_of_arguments(2, "BinaryDilateImageFilter")


def test_value_by_position_and_name():
    registry = ArgumentRegistry([1], {'radius': 2})
    with pytest.raises(ParameterError, match="both by position and by name"):
        registry.register('radius', 0)


def test_duplicate_keyword_after_lowercasing():
    with pytest.raises(ParameterError, match="more than once"):
        ArgumentRegistry([], {'radius': 1, 'RADIUS': 2})


def test_unused_keywords():
    registry = ArgumentRegistry([], {'radius': 1, 'size': 3})
    registry.register('radius', 0)
    with pytest.raises(ParameterError, match="unexpected parameters: SIZE"):
        registry.check_unused_keywords("MedianImageFilter")


def test_registry_misuse():
    registry = ArgumentRegistry()
    registry.register('radius', 0)
    with pytest.raises(RegistryError):
        registry.register('radius', 0)
    with pytest.raises(RegistryError):
        registry.get_registered('foreground')
    assert registry.get_registered('RADIUS').name == 'radius'


def test_outputs_written_once_in_declared_order():
    outputs = FilterOutputs(['B', 'V', 'W'])
    outputs.write('W', 3)
    outputs.write('B', 1)
    outputs.write('V', 2)
    assert outputs.collect() == (1, 2, 3)

    with pytest.raises(RegistryError, match="written more than once"):
        outputs.write('B', 4)
    with pytest.raises(RegistryError, match="has not been registered"):
        outputs.write('C', 5)


def test_missing_output():
    outputs = FilterOutputs(['B', 'C'])
    outputs.write('B', 1)
    with pytest.raises(RegistryError, match="never written: C"):
        outputs.collect()
