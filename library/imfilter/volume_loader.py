"""
Image loading and saving for the command line tool.
"""

import os
import glob
import numpy as np
import pandas as pd
import tifffile as tiff
from PIL import Image
from pathlib import Path
from typing import Dict, Optional, Sequence
import logging
from tqdm import tqdm

logger = logging.getLogger(__name__)

BITMAP_SUFFIXES = ('.bmp', '.png')
TIFF_SUFFIXES = ('.tif', '.tiff')


def load_bmp_stack(directory: str,
                   file_pattern: str = "*.bmp",
                   exclude_pattern: Optional[str] = None,
                   sort_by: str = "name") -> np.ndarray:
    """
    Load a stack of BMP files into a 3D volume.

    Args:
        directory: Path to directory containing BMP files
        file_pattern: Glob pattern for file matching
        exclude_pattern: Glob pattern for files to exclude
        sort_by: Sorting method ('name', 'number', 'date')

    Returns:
        3D numpy array with shape (depth, height, width)

    Raises:
        FileNotFoundError: If no BMP files found
        ValueError: If images have inconsistent dimensions
    """
    file_list = glob.glob(os.path.join(directory, file_pattern))

    if exclude_pattern:
        excluded_files = set(glob.glob(os.path.join(directory, exclude_pattern)))
        logger.info(f"Excluding files: {sorted(excluded_files)}")
        file_list = [f for f in file_list if f not in excluded_files]

    if not file_list:
        raise FileNotFoundError(f"No BMP files found in {directory}")

    if sort_by == "name":
        file_list.sort()
    elif sort_by == "number":
        # natural order of the digits in each file name
        file_list.sort(key=lambda x: int(''.join(filter(str.isdigit, os.path.basename(x))) or 0))
    elif sort_by == "date":
        file_list.sort(key=os.path.getmtime)
    else:
        raise ValueError(f"Unknown sort method: {sort_by}")

    logger.info(f"Loading {len(file_list)} BMP files from {directory}")

    first_img = load_single_bmp(file_list[0])
    height, width = first_img.shape
    volume = np.zeros((len(file_list), height, width), dtype=np.uint8)

    for i, file_path in enumerate(tqdm(file_list, desc="Loading slices", unit="slice")):
        img_array = first_img if i == 0 else load_single_bmp(file_path)
        if img_array.shape != (height, width):
            raise ValueError(f"Image {file_path} has inconsistent dimensions: "
                             f"expected {(height, width)}, got {img_array.shape}")
        volume[i] = img_array

    logger.info(f"Volume loaded successfully: {volume.shape}")
    return volume


def load_single_bmp(file_path: str) -> np.ndarray:
    """
    Load a single bitmap as a greyscale 2D array.
    """
    with Image.open(file_path) as img:
        return np.array(img.convert('L'))


def load_image(path: str) -> np.ndarray:
    """
    Load an image from disk.

    Supported inputs are ``.npy`` arrays, ``.tif``/``.tiff`` files, single
    ``.bmp``/``.png`` bitmaps and directories of BMP slices.

    Raises:
        FileNotFoundError: If the path does not exist
        ValueError: If the file type is not supported
    """
    path = Path(path)
    if path.is_dir():
        return load_bmp_stack(str(path))
    if not path.exists():
        raise FileNotFoundError(f"Input does not exist: {path}")

    suffix = path.suffix.lower()
    logger.info(f"Loading image from {path}")
    if suffix == '.npy':
        return np.load(path, allow_pickle=False)
    if suffix in TIFF_SUFFIXES:
        return tiff.imread(str(path))
    if suffix in BITMAP_SUFFIXES:
        return load_single_bmp(str(path))
    raise ValueError(f"Unsupported input file type: {suffix}")


def save_image(path: str, image: np.ndarray) -> None:
    """
    Save an image as ``.npy`` or ``.tif``/``.tiff``.

    TIFF has no boolean samples, so boolean images are written as uint8.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True)

    logger.info(f"Saving image with shape: {image.shape}, dtype: {image.dtype} to {path}")
    if suffix == '.npy':
        np.save(path, image, allow_pickle=False)
    elif suffix in TIFF_SUFFIXES:
        if image.dtype == bool:
            image = image.astype(np.uint8)
        tiff.imwrite(str(path), image, bigtiff=True, photometric='minisblack')
    else:
        raise ValueError(f"Unsupported output file type: {suffix}")


def get_volume_info(volume: np.ndarray) -> dict:
    """
    Get information about an image.

    Args:
        volume: N-dimensional numpy array

    Returns:
        Dictionary with image information
    """
    values = volume.astype(np.float64) if volume.dtype == bool else volume
    return {
        'shape': tuple(volume.shape),
        'dtype': str(volume.dtype),
        'min_value': float(values.min()),
        'max_value': float(values.max()),
        'mean_value': float(values.mean()),
        'std_value': float(values.std()),
    }


def summarize_outputs(outputs: Dict[str, np.ndarray]) -> pd.DataFrame:
    """
    One row of statistics per filter output.

    Args:
        outputs: Mapping of output name to array

    Returns:
        DataFrame with an 'output' column followed by the ``get_volume_info`` fields
    """
    rows = []
    for name, array in outputs.items():
        info = get_volume_info(array)
        info['shape'] = 'x'.join(str(extent) for extent in info['shape'])
        rows.append({'output': name, **info})
    return pd.DataFrame(rows)


def output_paths(output: str, names: Sequence[str]) -> Dict[str, Path]:
    """
    File name of each output: ``output`` itself for a single output,
    ``<stem>_<NAME><suffix>`` otherwise.
    """
    output = Path(output)
    if len(names) == 1:
        return {names[0]: output}
    return {name: output.with_name(f"{output.stem}_{name}{output.suffix}") for name in names}
