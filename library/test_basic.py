#!/usr/bin/env python3
"""
End-to-end tests for the imfilter package: image I/O, filtering and the CLI.
"""

import json
import os
import argparse
import subprocess
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from imfilter import imfilter, load_bmp_stack, load_image, save_image
from imfilter.cli import collect_parameters, main, parse_parameter
from imfilter.exceptions import ParameterError
from imfilter.volume_loader import get_volume_info, output_paths, summarize_outputs


def test_basic_functionality(bmp_directory, temp_dir):
    """Load a BMP stack, segment it and save the labels."""
    print("Testing basic functionality...")

    # Test 1: Load BMP stack
    volume = load_bmp_stack(bmp_directory)
    assert volume.shape == (5, 64, 64), f"Unexpected volume shape {volume.shape}"
    assert volume.dtype == np.uint8

    # Test 2: Segment the volume into background, square and discs
    labels = imfilter('mrf', volume, [0, 100, 150, 200])
    assert labels.dtype == np.uint8
    assert set(np.unique(labels)) == {0, 1, 2, 3}
    assert labels[0, 30, 30] == 1

    # Test 3: Distance to the segmented objects
    distance = imfilter('maudist', (labels > 0).astype(np.uint8))
    assert distance[0, 30, 30] < 0 < distance[0, 0, 0]

    # Test 4: Save and reload
    path = os.path.join(temp_dir, "labels.tif")
    save_image(path, labels)
    np.testing.assert_array_equal(load_image(path), labels)


def test_load_image_formats(bmp_directory, temp_dir):
    volume = load_image(bmp_directory)
    assert volume.shape == (5, 64, 64)

    single = load_image(os.path.join(bmp_directory, "test_slice_000.bmp"))
    np.testing.assert_array_equal(single, volume[0])

    path = os.path.join(temp_dir, "volume.npy")
    save_image(path, volume.astype(np.float32))
    assert load_image(path).dtype == np.float32

    with pytest.raises(FileNotFoundError):
        load_image(os.path.join(temp_dir, "missing.tif"))
    with pytest.raises(ValueError, match="Unsupported"):
        save_image(os.path.join(temp_dir, "volume.jpg"), volume)


def test_bool_tiff_saved_as_uint8(temp_dir):
    mask = np.zeros((3, 4, 5), dtype=bool)
    mask[1, 2, 3] = True
    path = os.path.join(temp_dir, "mask.tif")
    save_image(path, mask)

    reloaded = load_image(path)
    assert reloaded.dtype == np.uint8
    np.testing.assert_array_equal(reloaded, mask.astype(np.uint8))


def test_tiff_keeps_volume_shape(temp_dir):
    for shape in [(3, 4, 5), (4, 6, 7)]:
        volume = np.arange(np.prod(shape), dtype=np.uint16).reshape(shape)
        path = os.path.join(temp_dir, "volume.tif")
        save_image(path, volume)

        reloaded = load_image(path)
        assert reloaded.shape == shape
        np.testing.assert_array_equal(reloaded, volume)


def test_bmp_stack_sorting_and_exclusion(bmp_directory):
    volume = load_bmp_stack(bmp_directory, exclude_pattern="test_slice_004.bmp", sort_by="number")
    assert volume.shape[0] == 4
    with pytest.raises(FileNotFoundError):
        load_bmp_stack(bmp_directory, file_pattern="*.png")


def test_volume_summaries():
    info = get_volume_info(np.array([[0, 2], [4, 6]], dtype=np.int16))
    assert info['shape'] == (2, 2)
    assert info['dtype'] == 'int16'
    assert info['max_value'] == 6.0
    assert info['mean_value'] == 3.0

    summary = summarize_outputs({'B': np.zeros((2, 3)), 'W': np.ones((2, 2, 3), dtype=np.int64)})
    assert isinstance(summary, pd.DataFrame)
    assert list(summary['output']) == ['B', 'W']
    assert summary.loc[1, 'shape'] == '2x2x3'


def test_output_paths():
    assert output_paths("out/dist.npy", ['B']) == {'B': Path("out/dist.npy")}
    paths = output_paths("out/dist.npy", ['B', 'V', 'W'])
    assert [p.name for p in paths.values()] == ['dist_B.npy', 'dist_V.npy', 'dist_W.npy']


def test_parse_parameter():
    assert parse_parameter("radius=2") == ('radius', 2)
    assert parse_parameter("mu=[10, 100]") == ('mu', [10, 100])
    assert parse_parameter("issigmasteplog=false") == ('issigmasteplog', False)
    with pytest.raises(argparse.ArgumentTypeError):
        parse_parameter("radius")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_parameter("radius=two")


def test_repeated_parameter_rejected(square_mask, temp_dir):
    with pytest.raises(ParameterError, match="RADIUS given more than once"):
        collect_parameters([('radius', 1), ('Radius', 2)])
    assert collect_parameters([('radius', 1), ('foreground', 2)]) == {'radius': 1, 'foreground': 2}

    source = os.path.join(temp_dir, "mask.npy")
    target = os.path.join(temp_dir, "dilated.npy")
    np.save(source, square_mask)
    with pytest.raises(SystemExit) as excinfo:
        main(['bwdilate', source, '-o', target, '-p', 'radius=1', '-p', 'radius=2'])
    assert excinfo.value.code == 1
    assert not os.path.exists(target)


def test_cli_single_output(square_mask, temp_dir):
    """Dilate through the CLI and write a CSV report."""
    source = os.path.join(temp_dir, "mask.npy")
    target = os.path.join(temp_dir, "dilated.npy")
    report = os.path.join(temp_dir, "report.csv")
    np.save(source, square_mask)

    main(['bwdilate', source, '--output', target, '-p', 'radius=1', '--report', report])

    np.testing.assert_array_equal(np.load(target), imfilter('bwdilate', square_mask, 1))
    assert list(pd.read_csv(report)['output']) == ['B']


def test_cli_multiple_outputs(square_mask, temp_dir):
    source = os.path.join(temp_dir, "mask.npy")
    report = os.path.join(temp_dir, "report.json")
    np.save(source, square_mask)

    main(['dandist', source, '-o', os.path.join(temp_dir, "dist.npy"),
          '--spacing', '1', '2', '--report', report])

    for name in ('B', 'V', 'W'):
        assert os.path.exists(os.path.join(temp_dir, f"dist_{name}.npy"))
    with open(report) as f:
        assert [row['output'] for row in json.load(f)] == ['B', 'V', 'W']


def test_cli_failure_exits_with_error(temp_dir):
    source = os.path.join(temp_dir, "line.npy")
    np.save(source, np.zeros(5))

    with pytest.raises(SystemExit) as excinfo:
        main(['median', source, '-o', os.path.join(temp_dir, "out.npy")])
    assert excinfo.value.code == 1

    with pytest.raises(SystemExit) as excinfo:
        main(['blur', source, '-o', os.path.join(temp_dir, "out.npy")])
    assert excinfo.value.code == 1


def test_cli_list_filters(capsys):
    main(['--list-filters'])
    printed = capsys.readouterr().out
    assert 'voteholefill' in printed
    assert 'CannyEdgeDetectionImageFilter' in printed


def test_cli_subprocess(square_mask, temp_dir):
    """Run the CLI as a separate process."""
    source = os.path.join(temp_dir, "mask.npy")
    target = os.path.join(temp_dir, "eroded.tif")
    np.save(source, square_mask)

    env = dict(os.environ)
    library = os.path.dirname(os.path.abspath(__file__))
    env['PYTHONPATH'] = os.pathsep.join(filter(None, [library, env.get('PYTHONPATH')]))
    cmd = [sys.executable, "-m", "imfilter.cli", "bwerode", source, "--output", target, "-p", "radius=1"]

    result = subprocess.run(cmd, capture_output=True, text=True, env=env)

    assert result.returncode == 0, result.stderr
    assert "Filtering completed successfully" in result.stdout
    assert load_image(target).sum() == 9
