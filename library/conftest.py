"""
Shared fixtures for the imfilter tests.
"""

import os
import shutil
import tempfile

import numpy as np
import pytest
from PIL import Image


def make_test_image(rank: int, type_tag: str, size: int = 6) -> np.ndarray:
    """Cube of ones inside a background of zeros."""
    image = np.zeros((size,) * rank, dtype=np.float64)
    image[(slice(1, 4),) * rank] = 1
    return image.astype(type_tag)


@pytest.fixture
def sphere_mask():
    """20^3 uint8 volume with a ball of radius 5 in the middle."""
    z, y, x = np.ogrid[:20, :20, :20]
    mask = ((z - 10) ** 2 + (y - 10) ** 2 + (x - 10) ** 2) <= 25
    return mask.astype(np.uint8)


@pytest.fixture
def square_mask():
    """9x9 uint8 image with a 5x5 object."""
    mask = np.zeros((9, 9), dtype=np.uint8)
    mask[2:7, 2:7] = 1
    return mask


@pytest.fixture
def temp_dir():
    directory = tempfile.mkdtemp(prefix="imfilter_test_")
    yield directory
    shutil.rmtree(directory)


@pytest.fixture
def bmp_directory(temp_dir):
    """Five 64x64 BMP slices with two discs and a square."""
    y, x = np.ogrid[:64, :64]
    for i in range(5):
        img = np.zeros((64, 64), dtype=np.uint8)
        img[(x - 20) ** 2 + (y - 20) ** 2 <= 10 ** 2] = 150
        img[(x - 44) ** 2 + (y - 44) ** 2 <= 12 ** 2] = 200
        img[25:35, 25:35] = 100
        Image.fromarray(img).save(os.path.join(temp_dir, f"test_slice_{i:03d}.bmp"))
    return temp_dir
