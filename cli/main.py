#!/usr/bin/env python
"""
Cell Proximity CLI
Main entry point for the command-line interface
"""
import argparse
import sys
import logging

from cli.commands.nearest import run_nearest_distances
from cli.commands.within import run_count_within
from cli.commands.touches import run_touch_counts
from cli.commands.pipeline import STEPS, run_full_pipeline
from cli.config import load_config, save_config, get_default_config, rules_from_config
from cli.state import get_state

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser, scaled: bool = True):
    """Arguments shared by the per-analysis commands"""
    parser.add_argument(
        '--input', '-i',
        type=str,
        required=True,
        help='Input directory with cell seg data files'
    )
    parser.add_argument(
        '--output', '-o',
        type=str,
        required=True,
        help='Output directory for result CSVs'
    )
    parser.add_argument(
        '--config', '-c',
        type=str,
        help='Configuration YAML file to take phenotype rules from'
    )
    parser.add_argument(
        '--categories',
        nargs='+',
        type=str,
        help='Tissue categories to keep (default: all cells)'
    )
    if scaled:
        parser.add_argument(
            '--pixels-per-micron',
            type=float,
            help='Conversion factor for cell positions (default: positions are in microns)'
        )
    parser.add_argument(
        '--n-jobs',
        type=int,
        default=1,
        help='Number of fields processed in parallel (default: 1)'
    )


def create_parser():
    """Create the main argument parser"""
    parser = argparse.ArgumentParser(
        prog='cell-proximity',
        description="Spatial proximity analysis of phenotyped cells",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run all enabled analyses with a config file
  cell-proximity pipeline --config configs/dataset1_config.yaml

  # Run specific steps only
  cell-proximity pipeline --config configs/dataset1_config.yaml --steps nearest within

  # Run individual commands
  cell-proximity nearest --input data/cell_seg --output data/proximity --mutual-pairs CD8:Tumor
  cell-proximity within --input data/cell_seg --output data/proximity --pairs Tumor:CD8 --radii 10 25
  cell-proximity touches --input data/cell_seg --output data/proximity --pairs CD8:Tumor \\
      --write-images --colors CD8:yellow Tumor:cyan

  # Generate default config file
  cell-proximity init --name my_dataset --output configs/my_config.yaml
        """
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )

    subparsers = parser.add_subparsers(dest='command', help='Analysis commands')

    # Init command - generate config file
    init_parser = subparsers.add_parser('init', help='Generate default configuration file')
    init_parser.add_argument(
        '--name', '-n',
        type=str,
        default='dataset1',
        help='Dataset name (default: dataset1)'
    )
    init_parser.add_argument(
        '--output', '-o',
        type=str,
        default='configs/config.yaml',
        help='Output path for config file'
    )

    # Full pipeline command
    pipeline_parser = subparsers.add_parser('pipeline', help='Run all enabled analyses')
    pipeline_parser.add_argument(
        '--config', '-c',
        type=str,
        required=True,
        help='Path to configuration YAML file'
    )
    pipeline_parser.add_argument(
        '--steps',
        nargs='+',
        choices=STEPS,
        help='Specific steps to run (default: all)'
    )
    pipeline_parser.add_argument(
        '--output-dir',
        type=str,
        help='Override output directory from config'
    )
    pipeline_parser.add_argument(
        '--resume',
        action='store_true',
        help='Resume from last interrupted state (skips completed steps and fields)'
    )
    pipeline_parser.add_argument(
        '--reset',
        action='store_true',
        help='Reset batch state and start fresh (use with --resume to clear state)'
    )
    pipeline_parser.add_argument(
        '--status',
        action='store_true',
        help='Show batch progress status and exit'
    )

    # Nearest command
    nearest_parser = subparsers.add_parser('nearest', help='Nearest-neighbor distances')
    _add_common_arguments(nearest_parser)
    nearest_parser.add_argument(
        '--phenotypes',
        nargs='+',
        type=str,
        help='Phenotypes to measure distances to (default: all)'
    )
    nearest_parser.add_argument(
        '--mutual-pairs',
        nargs='+',
        type=str,
        default=[],
        help='Phenotype pairs as from:to for mutual nearest neighbors'
    )

    # Within command
    within_parser = subparsers.add_parser('within', help='Count cells within a radius')
    _add_common_arguments(within_parser)
    within_parser.add_argument(
        '--pairs',
        nargs='+',
        type=str,
        required=True,
        help='Phenotype pairs as from:to; join names with + for unions (e.g. Tumor:CD4+CD8)'
    )
    within_parser.add_argument(
        '--radii',
        nargs='+',
        type=float,
        required=True,
        help='Radii to count within, in microns'
    )

    # Touches command
    touches_parser = subparsers.add_parser('touches', help='Count touching cells')
    _add_common_arguments(touches_parser, scaled=False)
    touches_parser.add_argument(
        '--pairs',
        nargs='+',
        type=str,
        required=True,
        help='Phenotype pairs as phenotype1:phenotype2'
    )
    touches_parser.add_argument(
        '--mutual',
        action='store_true',
        help='Count mutually touching pairs instead of touching cells'
    )
    touches_parser.add_argument(
        '--write-images',
        action='store_true',
        help='Write an image of touching cells per field and pair'
    )
    touches_parser.add_argument(
        '--colors',
        nargs='+',
        type=str,
        default=[],
        help='Phenotype colors as name:color (required with --write-images)'
    )
    touches_parser.add_argument(
        '--output-base',
        type=str,
        help='Directory for images (default: next to the composite image)'
    )

    return parser


def _selector(text: str):
    names = text.split('+')
    return names[0] if len(names) == 1 else names


def parse_pairs(pair_args, allow_unions=False):
    """Parse phenotype pair arguments from command line

    Args:
        pair_args: List of 'first:second' strings
        allow_unions: Whether names may be joined with '+' into unions

    Returns:
        List of (first, second) tuples
    """
    pairs = []
    for pair in pair_args:
        parts = pair.split(':')
        if len(parts) != 2 or not all(parts):
            raise ValueError(f"Invalid pair format: {pair}. Use 'first:second' format.")
        if allow_unions:
            pairs.append((_selector(parts[0]), _selector(parts[1])))
        else:
            pairs.append((parts[0], parts[1]))
    return pairs


def parse_colors(color_args):
    """Parse color arguments from command line

    Args:
        color_args: List of 'name:color' strings

    Returns:
        Dictionary mapping phenotype names to colors
    """
    colors = {}
    for item in color_args:
        if ':' in item:
            name, color = item.split(':', 1)
            colors[name] = color
        else:
            raise ValueError(f"Invalid color format: {item}. Use 'name:color' format.")
    return colors


def main():
    """Main entry point"""
    parser = create_parser()
    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == 'init':
            logger.info(f"Generating default config for '{args.name}'...")
            config = get_default_config(args.name)
            save_config(config, args.output)
            logger.info(f"Config saved to: {args.output}")

        elif args.command == 'pipeline':
            config = load_config(args.config)
            if args.output_dir:
                config['output_dir'] = args.output_dir

            output_dir = config['output_dir']
            state = get_state(output_dir)

            # Handle --status flag
            if args.status:
                print(state.get_progress_summary())
                sys.exit(0)

            # Handle --reset flag
            if args.reset:
                state.reset()
                logger.info("Batch state has been reset")
                if not args.resume:
                    # Just reset and exit if not also resuming
                    print("Batch state reset. Run again without --reset to start fresh.")
                    sys.exit(0)

            steps = args.steps if args.steps else list(STEPS)

            # Handle --resume flag
            if args.resume:
                logger.info("Resume mode enabled - checking for previous progress...")
                print(state.get_progress_summary())
                resume_steps = state.get_resume_steps(steps)
                if not resume_steps:
                    logger.info("All requested steps are already completed!")
                    print("\nAll requested steps are already completed. Use --reset to start fresh.")
                    sys.exit(0)
                logger.info(f"Resuming with steps: {', '.join(resume_steps)}")
                steps = resume_steps

            run_full_pipeline(config, steps, state=state, resume=args.resume)

        else:
            rules = rules_from_config(load_config(args.config)) if args.config else None

            if args.command == 'nearest':
                run_nearest_distances(
                    input_dir=args.input,
                    output_dir=args.output,
                    phenotype_rules=rules,
                    phenotypes=args.phenotypes,
                    mutual_pairs=parse_pairs(args.mutual_pairs),
                    categories=args.categories,
                    pixels_per_micron=args.pixels_per_micron,
                    n_jobs=args.n_jobs
                )

            elif args.command == 'within':
                run_count_within(
                    input_dir=args.input,
                    output_dir=args.output,
                    pairs=parse_pairs(args.pairs, allow_unions=True),
                    radii=args.radii,
                    phenotype_rules=rules,
                    categories=args.categories,
                    pixels_per_micron=args.pixels_per_micron,
                    n_jobs=args.n_jobs
                )

            elif args.command == 'touches':
                run_touch_counts(
                    input_dir=args.input,
                    output_dir=args.output,
                    pairs=parse_pairs(args.pairs),
                    phenotype_rules=rules,
                    categories=args.categories,
                    mutual=args.mutual,
                    colors=parse_colors(args.colors),
                    write_images=args.write_images,
                    output_base=args.output_base,
                    n_jobs=args.n_jobs
                )

        print(f"\n[OK] {args.command} completed successfully")

    except Exception as e:
        print(f"\n[ERROR] {args.command}: {str(e)}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
