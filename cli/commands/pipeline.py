"""Full pipeline execution"""
import logging
from pathlib import Path
from typing import List, Dict, Any, Optional

from cli.commands.nearest import run_nearest_distances
from cli.commands.within import run_count_within
from cli.commands.touches import run_touch_counts
from cli.config import pixels_per_micron, rules_from_config, validate_config
from cli.state import BatchState

logger = logging.getLogger(__name__)

STEPS = ['nearest', 'within', 'touches']


def run_full_pipeline(
    config: Dict[str, Any],
    steps: List[str] = None,
    state: Optional[BatchState] = None,
    resume: bool = False
):
    """Run every enabled analysis over the fields in the input directory

    Args:
        config: Configuration dictionary
        steps: List of steps to run (default: all)
        state: Batch state manager for tracking progress
        resume: Whether we're resuming from a previous run
    """
    if steps is None:
        steps = list(STEPS)

    unknown = [s for s in steps if s not in STEPS]
    if unknown:
        raise ValueError(f"Unknown pipeline steps: {', '.join(unknown)}")

    # Configuration problems surface before any field is read
    validate_config(config)
    rules = rules_from_config(config)
    scale = pixels_per_micron(config)
    categories = config.get('categories')
    n_jobs = config.get('n_jobs', 1)

    logger.info("=" * 60)
    logger.info("Starting Cell Proximity Pipeline")
    logger.info(f"Dataset: {config.get('dataset_name', 'unknown')}")
    logger.info(f"Steps: {', '.join(steps)}")
    if resume:
        logger.info("Mode: RESUME (skipping processed fields)")
    logger.info("=" * 60)

    input_dir = config['input_dir']
    output_dir = config['output_dir']
    Path(output_dir).mkdir(parents=True, exist_ok=True)

    # Create state manager if not provided
    if state is None:
        from cli.state import get_state
        state = get_state(output_dir)

    # Step 1: Nearest neighbors
    nearest_config = config.get('nearest', {})
    if 'nearest' in steps and nearest_config.get('enabled', True):
        logger.info("\n" + "=" * 40)
        logger.info("Step 1/3: Nearest-neighbor distances")
        logger.info("=" * 40)

        try:
            run_nearest_distances(
                input_dir=input_dir,
                output_dir=output_dir,
                phenotype_rules=rules,
                phenotypes=nearest_config.get('phenotypes'),
                mutual_pairs=nearest_config.get('mutual_pairs'),
                categories=categories,
                pixels_per_micron=scale,
                n_jobs=n_jobs,
                state=state,
                resume=resume
            )
            state.complete_step('nearest')
        except Exception as e:
            state.fail_step('nearest', str(e))
            raise

    # Step 2: Counts within radius
    within_config = config.get('within', {})
    if 'within' in steps and within_config.get('enabled', True):
        logger.info("\n" + "=" * 40)
        logger.info("Step 2/3: Counting cells within radius")
        logger.info("=" * 40)

        try:
            run_count_within(
                input_dir=input_dir,
                output_dir=output_dir,
                pairs=within_config.get('pairs', []),
                radii=within_config.get('radii', []),
                phenotype_rules=rules,
                categories=categories,
                pixels_per_micron=scale,
                n_jobs=n_jobs,
                state=state,
                resume=resume
            )
            state.complete_step('within')
        except Exception as e:
            state.fail_step('within', str(e))
            raise

    # Step 3: Touching cells
    touching_config = config.get('touching', {})
    if 'touches' in steps and touching_config.get('enabled', True):
        logger.info("\n" + "=" * 40)
        logger.info("Step 3/3: Counting touching cells")
        logger.info("=" * 40)

        try:
            run_touch_counts(
                input_dir=input_dir,
                output_dir=output_dir,
                pairs=touching_config.get('pairs', []),
                phenotype_rules=rules,
                categories=categories,
                mutual=touching_config.get('mutual', False),
                colors=touching_config.get('colors'),
                write_images=touching_config.get('write_images', False),
                output_base=touching_config.get('output_base'),
                n_jobs=n_jobs,
                state=state,
                resume=resume
            )
            state.complete_step('touches')
        except Exception as e:
            state.fail_step('touches', str(e))
            raise

    logger.info("\n" + "=" * 60)
    logger.info("Pipeline completed successfully!")
    logger.info(f"Results saved to: {output_dir}")
    logger.info("=" * 60)

    # Save final state
    state.save()
