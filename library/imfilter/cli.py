#!/usr/bin/env python3
"""
Command-line interface for imfilter.
"""

import argparse
import ast
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .catalog import get_descriptor, list_filters
from .dispatch import imfilter
from .exceptions import ParameterError
from .header import MetaImage
from .volume_loader import get_volume_info, load_image, output_paths, save_image, summarize_outputs

_LITERALS = {'true': True, 'false': False, 'none': None}


def setup_logging(verbose: bool = False) -> None:
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def parse_parameter(text: str) -> tuple:
    """
    Parse a ``NAME=VALUE`` option. The value is a Python literal, e.g.
    ``radius=2``, ``mu=[10, 100]`` or ``issigmasteplog=false``.
    """
    name, sep, value = text.partition('=')
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got {text!r}")
    value = value.strip()
    if value.lower() in _LITERALS:
        return name.strip(), _LITERALS[value.lower()]
    try:
        return name.strip(), ast.literal_eval(value)
    except (ValueError, SyntaxError):
        raise argparse.ArgumentTypeError(f"Cannot parse value of {name}: {value!r}") from None


def parse_arguments(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Run N-dimensional image filters on volumes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=
        """
            Examples:

            # Dilate a segmentation with a ball of radius 2
            imfilter bwdilate mask.tif --output dilated.tif -p radius=2

            # Distance map with anisotropic voxels, writes dist_B.npy, dist_V.npy and dist_W.npy
            imfilter dandist mask.npy --output dist.npy

            # MRF segmentation into three classes, with a summary report
            imfilter mrf scan.tif --output labels.tif -p "mu=[10, 80, 200]" -p smooth=2 --report stats.csv

            # List the available filters
            imfilter --list-filters
        """
    )

    parser.add_argument(
        'filter_type',
        nargs='?',
        help='Filter name, short (e.g. median) or canonical (e.g. MedianImageFilter)'
    )

    parser.add_argument(
        'input',
        nargs='?',
        help='Input image (.npy, .tif, .bmp, .png or directory of BMP slices)'
    )

    # Output options
    parser.add_argument(
        '--output', '-o',
        help='Output image path (.npy or .tif)'
    )

    parser.add_argument(
        '--report',
        help='Write a summary of the outputs (CSV or JSON)'
    )

    # Filter parameters
    parser.add_argument(
        '--param', '-p',
        action='append',
        type=parse_parameter,
        default=[],
        metavar='NAME=VALUE',
        help='Filter parameter, may be repeated'
    )

    parser.add_argument(
        '--spacing',
        nargs='+',
        type=float,
        help='Voxel size along each axis (default: 1.0)'
    )

    parser.add_argument(
        '--origin',
        nargs='+',
        type=float,
        help='Coordinates of the first voxel (default: 0.0)'
    )

    # Additional options
    parser.add_argument(
        '--list-filters',
        action='store_true',
        help='List available filters and exit'
    )

    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Verbose output'
    )

    args = parser.parse_args(argv)
    if not args.list_filters and (args.filter_type is None or args.input is None or args.output is None):
        parser.error('FILTER_TYPE, INPUT and --output are required')
    return args


def format_filter_list() -> str:
    """Table of the available filters and their parameters."""
    lines = []
    for descriptor in list_filters():
        parameters = ', '.join(p.name for p in descriptor.parameters) or '-'
        outputs = ', '.join(o.name for o in descriptor.outputs)
        lines.append(f"{descriptor.short_name:<14}{descriptor.canonical_name}")
        lines.append(f"{'':<14}{descriptor.description}")
        lines.append(f"{'':<14}parameters: {parameters}; outputs: {outputs}")
    return '\n'.join(lines)


def write_report(path: str, outputs: Dict[str, Any]) -> None:
    """Save the output summary as CSV, or JSON for a .json path."""
    summary = summarize_outputs(outputs)
    if Path(path).suffix.lower() == '.json':
        summary.to_json(path, orient='records', indent=2)
    else:
        summary.to_csv(path, index=False)


def collect_parameters(pairs: Sequence[tuple]) -> Dict[str, Any]:
    """Named filter parameters from repeated --param options, rejecting repeats."""
    params: Dict[str, Any] = {}
    for name, value in pairs:
        if name.lower() in (key.lower() for key in params):
            raise ParameterError(f"Parameter {name.upper()} given more than once")
        params[name] = value
    return params


def run(args: argparse.Namespace) -> Dict[str, Any]:
    """Load the input, run the filter and save its outputs."""
    logger = logging.getLogger(__name__)

    descriptor = get_descriptor(args.filter_type)
    data = load_image(args.input)
    logger.info(f"Input: {get_volume_info(data)}")

    image = data
    if args.spacing is not None or args.origin is not None:
        image = MetaImage(data, spacing=args.spacing, origin=args.origin)

    result = imfilter(descriptor.short_name, image, **collect_parameters(args.param))
    if not isinstance(result, tuple):
        result = (result,)

    names: List[str] = [output.name for output in descriptor.outputs]
    outputs = dict(zip(names, result))
    for name, path in output_paths(args.output, names).items():
        save_image(path, outputs[name])

    if args.report:
        write_report(args.report, outputs)
        logger.info(f"Report saved to {args.report}")
    return outputs


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Main function."""
    args = parse_arguments(argv)
    setup_logging(args.verbose)

    logger = logging.getLogger(__name__)

    if args.list_filters:
        print(format_filter_list())
        return

    try:
        logger.info(f"Starting {args.filter_type} on {args.input}")
        run(args)
        logger.info("Filtering completed successfully!")
    except Exception as e:
        logger.error(f"Filtering failed: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
