#!/usr/bin/env python3
"""
Luz/Sombra plot analyzer - command line entry point.
"""

import argparse
import logging
import sys
from pathlib import Path

from LuzSombraApp.config.settings import Settings
from LuzSombraApp.processing.batch_processor import BatchProcessorCore
from LuzSombraApp.processing.classification_engine import create_engine
from LuzSombraApp.processing.decision_policies import POLICIES
from LuzSombraApp.processing.errors import ConfigurationError
from LuzSombraApp.processing.feature_extraction import FEATURE_SETS
from LuzSombraApp.processing.utils import setup_logging


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog='luz-sombra-analyzer',
        description='Classify plot photographs into light and shadow areas'
    )
    parser.add_argument('input', type=str, help='Image file or directory of images')
    parser.add_argument('-o', '--output', type=str, default='output',
                        help='Output directory for overlays and results CSV (default: output)')
    parser.add_argument('--config', type=str, default=None, help='JSON settings file')
    parser.add_argument('--policy', type=str, choices=sorted(POLICIES), default=None,
                        help='Decision policy (default: from settings, threshold)')
    parser.add_argument('--threshold', type=float, default=None,
                        help='Brightness threshold for the threshold policy (default: 130)')
    parser.add_argument('--region-size', type=int, default=None,
                        help='Tile size in pixels for region-level policies')
    parser.add_argument('--feature-set', type=str, choices=sorted(FEATURE_SETS), default=None,
                        help='Feature set for the trained policy')
    parser.add_argument('--model', type=str, default=None,
                        help='Saved model file for the trained policy')
    parser.add_argument('--workers', type=int, default=None,
                        help='Worker threads per image (default: 1)')
    parser.add_argument('--visualize', action='store_true',
                        help='Also save side-by-side visualizations with a legend')
    parser.add_argument('--raster-backend', type=str, choices=['pillow', 'opencv'], default=None,
                        help='Library used to encode overlay images')
    for field in ('empresa', 'fundo', 'sector', 'lote'):
        parser.add_argument(f'--{field}', type=str, default=None, help=f'{field.capitalize()} recorded with each result')
    parser.add_argument('-v', '--verbose', action='store_true', help='Debug logging')
    return parser


def build_engine_config(parsed_args) -> dict:
    options = {
        'policy': parsed_args.policy,
        'threshold': parsed_args.threshold,
        'region_size': parsed_args.region_size,
        'feature_set': parsed_args.feature_set,
        'model_path': parsed_args.model,
        'max_workers': parsed_args.workers,
    }
    return {key: value for key, value in options.items() if value is not None}


def main(args=None):
    """Main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    setup_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)
    logger = logging.getLogger(__name__)

    input_path = Path(parsed_args.input)
    if not input_path.exists():
        print(f"Error: Input not found: {input_path}", file=sys.stderr)
        return 1

    settings = Settings(parsed_args.config)
    if parsed_args.visualize:
        settings.config['output']['save_visualizations'] = True
    if parsed_args.raster_backend:
        settings.config['output']['raster_backend'] = parsed_args.raster_backend

    try:
        engine = create_engine(settings, build_engine_config(parsed_args))
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    processor = BatchProcessorCore(engine, parsed_args.output, settings)
    metadata = {field: getattr(parsed_args, field) for field in ('empresa', 'fundo', 'sector', 'lote')
                if getattr(parsed_args, field)}

    if input_path.is_dir():
        results = processor.process_directory(input_path, metadata)
    else:
        results = processor.process_files([str(input_path)], metadata)

    failed = [row for row in results if row.get('error')]
    for row in results:
        if row.get('error'):
            print(f"{row['filename']}: FAILED ({row['error']})")
        else:
            print(f"{row['filename']}: {row['porcentaje_luz']:.2f}% light / "
                  f"{row['porcentaje_sombra']:.2f}% shadow")

    logger.info(f"Processed {len(results)} images, {len(failed)} failed; results in {parsed_args.output}")
    return 1 if failed or not results else 0


if __name__ == '__main__':
    sys.exit(main())
