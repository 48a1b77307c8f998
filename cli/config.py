"""Configuration loading and validation"""
import yaml
from pathlib import Path
from typing import Dict, Any, Optional

from proximity.phenotypes import parse_phenotype_rules, unique_phenotypes, validate_phenotypes


def load_config(config_path: str) -> Dict[str, Any]:
    """Load configuration from YAML file

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Dictionary containing configuration
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    # Validate required fields
    required_fields = ['dataset_name', 'input_dir', 'output_dir']
    for field in required_fields:
        if field not in config:
            raise ValueError(f"Missing required config field: {field}")

    validate_config(config)
    return config


def save_config(config: Dict[str, Any], output_path: str):
    """Save configuration to YAML file

    Args:
        config: Configuration dictionary
        output_path: Path to save configuration
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)


def rules_from_config(config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Phenotype rules from the `phenotypes` section, or None if there is none"""
    specs = config.get('phenotypes')
    if not specs:
        return None
    return parse_phenotype_rules(specs)


def pixels_per_micron(config: Dict[str, Any]) -> Optional[float]:
    """Pixel to micron conversion factor; None means positions are in microns"""
    return config.get('units', {}).get('pixels_per_micron')


def validate_config(config: Dict[str, Any]):
    """Check that every phenotype named in the analysis sections has a rule

    Raises InvalidConfigurationError before any field is processed.
    """
    rules = rules_from_config(config)
    if rules is None:
        return

    touching = config.get('touching', {})
    if touching.get('enabled', False):
        validate_phenotypes(unique_phenotypes(touching.get('pairs', [])), rules)

    within = config.get('within', {})
    if within.get('enabled', False):
        names = []
        for pair in within.get('pairs', []):
            for selector in pair:
                names.extend([selector] if isinstance(selector, str) else selector)
        validate_phenotypes(names, rules)

    nearest = config.get('nearest', {})
    if nearest.get('enabled', False):
        validate_phenotypes(unique_phenotypes(nearest.get('mutual_pairs') or []), rules)
        validate_phenotypes(nearest.get('phenotypes') or [], rules)


def get_default_config(dataset_name: str = "dataset1") -> Dict[str, Any]:
    """Get default configuration template

    Args:
        dataset_name: Name of the dataset

    Returns:
        Default configuration dictionary
    """
    return {
        'dataset_name': dataset_name,
        'input_dir': f'data/{dataset_name}/cell_seg',
        'output_dir': f'data/{dataset_name}/proximity',
        'n_jobs': 1,
        'units': {
            'pixels_per_micron': 2.0
        },
        'phenotypes': {
            'CD8': 'CD8',
            'Tumor': 'Tumor',
            'CD68': 'CD68',
            'Lymphocyte': ['CD4', 'CD8']
        },
        'categories': None,
        'nearest': {
            'enabled': True,
            'phenotypes': None,
            'mutual_pairs': [['CD8', 'Tumor']]
        },
        'within': {
            'enabled': True,
            'pairs': [['Tumor', 'CD8'], ['Tumor', 'Lymphocyte']],
            'radii': [10, 25, 50]
        },
        'touching': {
            'enabled': True,
            'pairs': [['CD8', 'Tumor'], ['CD8', 'CD68']],
            'mutual': False,
            'write_images': False,
            'colors': {
                'CD8': 'yellow',
                'Tumor': 'cyan',
                'CD68': 'magenta'
            },
            'output_base': None
        }
    }
