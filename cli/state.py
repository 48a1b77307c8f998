"""Batch state management for resuming interrupted runs"""
import json
import os
import logging
from pathlib import Path
from datetime import datetime
from typing import Dict, List, Any

logger = logging.getLogger(__name__)

STATE_FILE_NAME = ".proximity_state.json"


class BatchState:
    """Tracks which fields each analysis step has finished"""

    STEPS = ['nearest', 'within', 'touches']

    def __init__(self, output_dir: str):
        self.output_dir = output_dir
        self.state_file = os.path.join(output_dir, STATE_FILE_NAME)
        self.state = self._load_or_create()

    def _load_or_create(self) -> Dict[str, Any]:
        """Load existing state or create new one"""
        if os.path.exists(self.state_file):
            try:
                with open(self.state_file, 'r') as f:
                    return json.load(f)
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Could not load state file: {e}. Creating new state.")

        return self._create_new_state()

    @staticmethod
    def _new_step() -> Dict[str, Any]:
        return {
            'status': 'pending',  # pending, in_progress, completed, failed
            'started_at': None,
            'completed_at': None,
            'processed_fields': [],
            'total_fields': 0,
            'error': None
        }

    def _create_new_state(self) -> Dict[str, Any]:
        """Create a fresh state"""
        now = datetime.now().isoformat()
        return {
            'version': '1.0',
            'created_at': now,
            'updated_at': now,
            'current_step': None,
            'steps': {step: self._new_step() for step in self.STEPS}
        }

    def save(self):
        """Save current state to file"""
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)
        self.state['updated_at'] = datetime.now().isoformat()
        with open(self.state_file, 'w') as f:
            json.dump(self.state, f, indent=2)

    def start_step(self, step: str, total_fields: int = 0):
        """Mark a step as started"""
        step_state = self.state['steps'][step]
        self.state['current_step'] = step
        step_state['status'] = 'in_progress'
        step_state['started_at'] = datetime.now().isoformat()
        step_state['total_fields'] = total_fields
        step_state['error'] = None
        self.save()
        logger.info(f"Started step: {step}")

    def complete_step(self, step: str):
        """Mark a step as completed"""
        self.state['steps'][step]['status'] = 'completed'
        self.state['steps'][step]['completed_at'] = datetime.now().isoformat()
        self.state['current_step'] = None
        self.save()
        logger.info(f"Completed step: {step}")

    def fail_step(self, step: str, error: str):
        """Mark a step as failed"""
        self.state['steps'][step]['status'] = 'failed'
        self.state['steps'][step]['error'] = error
        self.save()
        logger.error(f"Step {step} failed: {error}")

    def mark_fields_processed(self, step: str, sources: List[str]):
        """Record fields whose results have been written for a step"""
        processed = self.state['steps'][step]['processed_fields']
        for source in sources:
            if source not in processed:
                processed.append(source)
        self.save()

    def is_field_processed(self, step: str, source: str) -> bool:
        """Check if a field has already been processed in a step"""
        return source in self.state['steps'][step]['processed_fields']

    def is_step_completed(self, step: str) -> bool:
        """Check if a step is completed"""
        return self.state['steps'][step]['status'] == 'completed'

    def get_resume_steps(self, requested_steps: List[str]) -> List[str]:
        """Steps from `requested_steps` that still need to run"""
        return [step for step in requested_steps if not self.is_step_completed(step)]

    def get_progress_summary(self) -> str:
        """Get a summary of batch progress"""
        lines = ["Batch State Summary:"]
        lines.append("-" * 40)

        for step in self.STEPS:
            step_state = self.state['steps'][step]
            status = step_state['status']
            processed = len(step_state['processed_fields'])
            total = step_state['total_fields']

            if status == 'completed':
                lines.append(f"  {step}: COMPLETED ({processed} fields)")
            elif status == 'in_progress':
                lines.append(f"  {step}: IN PROGRESS ({processed}/{total} fields)")
            elif status == 'failed':
                lines.append(f"  {step}: FAILED - {step_state['error']}")
            else:
                lines.append(f"  {step}: pending")

        lines.append("-" * 40)
        return "\n".join(lines)

    def reset(self):
        """Reset state to start fresh"""
        self.state = self._create_new_state()
        self.save()
        logger.info("Batch state reset")


def get_state(output_dir: str) -> BatchState:
    """Get or create batch state for an output directory"""
    return BatchState(output_dir)
