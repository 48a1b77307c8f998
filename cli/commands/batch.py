"""Run a per-field analysis over many cell seg files"""
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, Sequence, TYPE_CHECKING

import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from proximity.io import source_name

if TYPE_CHECKING:
    from cli.state import BatchState

logger = logging.getLogger(__name__)


def map_fields(process: Callable, paths: Sequence[str], n_jobs: int = 1, desc: str = "Fields") -> list:
    """Apply `process` to every path, in parallel when n_jobs != 1

    Fields share no state, so each one can run in its own worker.
    `process` must be picklable (a module-level function or a partial of one).
    """
    path_iter = tqdm(paths, desc=desc, unit="field")
    if n_jobs == 1:
        return [process(path) for path in path_iter]
    return Parallel(n_jobs=n_jobs)(delayed(process)(path) for path in path_iter)


def _concat(frames: List[pd.DataFrame]) -> pd.DataFrame:
    frames = [f for f in frames if f is not None and len(f) > 0]
    return pd.concat(frames, ignore_index=True) if frames else pd.DataFrame()


def run_batch(
    step: str,
    paths: Sequence[str],
    process: Callable,
    output_dir: str,
    output_names: Sequence[str],
    state: Optional["BatchState"] = None,
    resume: bool = False,
    n_jobs: int = 1
) -> List[pd.DataFrame]:
    """Process every field and write one consolidated CSV per output

    Args:
        step: Step name used for state tracking
        paths: Cell seg table paths
        process: Function of one path returning a tuple of DataFrames,
            one per entry of `output_names`
        output_dir: Directory for the CSV files
        output_names: CSV file names
        state: Batch state manager for tracking progress
        resume: Whether to skip fields processed by a previous run

    Returns:
        The consolidated DataFrames, in `output_names` order
    """
    Path(output_dir).mkdir(parents=True, exist_ok=True)
    output_paths = [os.path.join(output_dir, name) for name in output_names]

    # Determine which fields need processing
    to_process = list(paths)
    previous = [pd.DataFrame() for _ in output_names]
    if resume and state:
        to_process = [p for p in paths if not state.is_field_processed(step, source_name(p))]
        for i, path in enumerate(output_paths):
            if os.path.exists(path):
                try:
                    previous[i] = pd.read_csv(path)
                except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
                    logger.warning(f"Could not load existing results from {path}: {e}")
        if len(to_process) < len(paths):
            logger.info(f"Resuming: {len(paths) - len(to_process)} fields already processed")

    logger.info(f"Found {len(paths)} fields, {len(to_process)} to process")
    if state:
        state.start_step(step, total_fields=len(paths))

    results = map_fields(process, to_process, n_jobs, desc=step)

    combined = []
    for i, path in enumerate(output_paths):
        frame = _concat([previous[i]] + [r[i] for r in results])
        frame.to_csv(path, index=False)
        logger.info(f"Saved {len(frame)} rows to {path}")
        combined.append(frame)

    if state:
        state.mark_fields_processed(step, [source_name(p) for p in to_process])

    return combined
